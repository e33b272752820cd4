"""
Reliability utilities.

Includes the Circuit Breaker used to protect calls to the driver
location service.
"""

import asyncio
import logging
import threading
import time
from typing import Any, Callable, Optional

logger = logging.getLogger("driver_matching.reliability")

CLOSED = "CLOSED"
OPEN = "OPEN"
HALF_OPEN = "HALF_OPEN"


class CircuitOpenError(Exception):
    """Raised when a call is rejected without being attempted."""

    def __init__(self, name: str, state: str, message: Optional[str] = None):
        self.name = name
        self.state = state
        super().__init__(message or f"Circuit '{name}' is {state}")


class CircuitBreaker:
    """
    Circuit Breaker with CLOSED, OPEN and HALF_OPEN states.

    CLOSED: calls pass through. Failures are counted within a rolling
    `interval`; the counts reset every time the interval elapses. Once
    `failure_threshold` failures are recorded inside one interval the
    circuit opens.

    OPEN: calls are rejected with CircuitOpenError for `reset_timeout`
    seconds, without invoking the wrapped function.

    HALF_OPEN: at most `half_open_max_requests` trial calls are let
    through. Any failure reopens the circuit; that many consecutive
    successes close it.

    One instance is meant to be shared by every concurrent caller of a
    dependency, so all state changes happen under a lock and never
    across an await.
    """

    def __init__(
        self,
        name: str = "default",
        failure_threshold: int = 5,
        reset_timeout: float = 10.0,
        interval: float = 60.0,
        half_open_max_requests: int = 3,
        is_failure: Optional[Callable[[BaseException], bool]] = None,
        clock: Callable[[], float] = time.monotonic,
    ):
        if failure_threshold < 1:
            raise ValueError("failure_threshold must be at least 1")
        if half_open_max_requests < 1:
            raise ValueError("half_open_max_requests must be at least 1")

        self.name = name
        self.failure_threshold = failure_threshold
        self.reset_timeout = reset_timeout
        self.interval = interval
        self.half_open_max_requests = half_open_max_requests
        self._is_failure = is_failure or (lambda exc: True)
        self._clock = clock

        self._lock = threading.Lock()
        self._state = CLOSED
        self._generation = 0
        self.failures = 0
        self.consecutive_successes = 0
        self.requests = 0
        self._expiry = self._clock() + interval if interval > 0 else 0.0

    @property
    def state(self) -> str:
        with self._lock:
            self._refresh_state(self._clock())
            return self._state

    async def call(self, func: Callable, *args, **kwargs) -> Any:
        generation = self._before_call()
        try:
            result = await func(*args, **kwargs)
        except asyncio.CancelledError:
            self._release(generation)
            raise
        except Exception as exc:
            if self._is_failure(exc):
                self._on_failure(generation)
            else:
                self._on_success(generation)
            raise
        self._on_success(generation)
        return result

    def reset_state(self):
        with self._lock:
            self._transition(CLOSED, self._clock())

    def _before_call(self) -> int:
        with self._lock:
            now = self._clock()
            self._refresh_state(now)

            if self._state == OPEN:
                raise CircuitOpenError(self.name, OPEN)
            if self._state == HALF_OPEN and self.requests >= self.half_open_max_requests:
                raise CircuitOpenError(self.name, HALF_OPEN, f"Circuit '{self.name}' is HALF_OPEN: too many trial requests")

            self.requests += 1
            return self._generation

    def _on_success(self, generation: int):
        with self._lock:
            now = self._clock()
            self._refresh_state(now)
            if generation != self._generation:
                return

            self.consecutive_successes += 1
            if self._state == HALF_OPEN and self.consecutive_successes >= self.half_open_max_requests:
                self._transition(CLOSED, now)

    def _on_failure(self, generation: int):
        with self._lock:
            now = self._clock()
            self._refresh_state(now)
            if generation != self._generation:
                return

            self.failures += 1
            self.consecutive_successes = 0
            if self._state == HALF_OPEN or self.failures >= self.failure_threshold:
                self._transition(OPEN, now)

    def _release(self, generation: int):
        # A cancelled call frees its trial slot without counting either way.
        with self._lock:
            if generation == self._generation and self.requests > 0:
                self.requests -= 1

    def _refresh_state(self, now: float):
        if self._state == CLOSED:
            if self._expiry and now >= self._expiry:
                self._new_generation(now)
        elif self._state == OPEN:
            if now >= self._expiry:
                self._transition(HALF_OPEN, now)

    def _transition(self, state: str, now: float):
        previous = self._state
        self._state = state
        self._new_generation(now)
        if previous != state:
            log = logger.warning if state == OPEN else logger.info
            log("Circuit breaker '%s' changed state %s -> %s", self.name, previous, state)

    def _new_generation(self, now: float):
        self._generation += 1
        self.failures = 0
        self.consecutive_successes = 0
        self.requests = 0
        if self._state == CLOSED:
            self._expiry = now + self.interval if self.interval > 0 else 0.0
        elif self._state == OPEN:
            self._expiry = now + self.reset_timeout
        else:
            self._expiry = 0.0
