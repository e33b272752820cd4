"""
Bulk driver importer.

Reads `latitude,longitude` rows from a CSV file (header skipped) and
pushes them to the location service's batch endpoint with a fixed pool
of workers. Prints requested/created/error totals at the end.

Usage:
    driver-import --file Coordinates.csv --url http://localhost:8086
"""

import argparse
import asyncio
import csv
import logging
import sys
from dataclasses import dataclass
from typing import Iterator, List, Optional, Sequence, Union

import httpx
from pydantic import TypeAdapter, ValidationError as SchemaValidationError

from driver_matching.app.core.config import settings
from driver_matching.app.core.observability import configure_logging
from driver_matching.app.schemas.driver import CreateDriverRequest, DriverListData, Point
from driver_matching.app.schemas.envelope import FailureEnvelope, SuccessEnvelope

logger = logging.getLogger("driver_matching.importer")

CSV_FILE_PATH = "Coordinates.csv"
BATCH_PATH = "/api/v1/drivers/batch"
BATCH_SIZE = 100
NUM_WORKERS = 4

_batch_envelope_adapter = TypeAdapter(Union[SuccessEnvelope[DriverListData], FailureEnvelope])


@dataclass
class ImportResult:
    requested_count: int = 0
    created_count: int = 0
    error_count: int = 0

    def __add__(self, other: "ImportResult") -> "ImportResult":
        return ImportResult(
            requested_count=self.requested_count + other.requested_count,
            created_count=self.created_count + other.created_count,
            error_count=self.error_count + other.error_count,
        )


def parse_driver_location(record: Sequence[str]) -> CreateDriverRequest:
    """Turn a `latitude,longitude` row into a create request."""
    if len(record) < 2:
        raise ValueError(f"invalid record format: expected at least 2 fields (latitude,longitude), got {len(record)}")

    try:
        latitude = float(record[0])
    except ValueError:
        raise ValueError(f"invalid latitude '{record[0]}'")
    try:
        longitude = float(record[1])
    except ValueError:
        raise ValueError(f"invalid longitude '{record[1]}'")

    return CreateDriverRequest(location=Point.from_lon_lat(longitude, latitude))


def read_batches(path: str, batch_size: int = BATCH_SIZE) -> Iterator[List[CreateDriverRequest]]:
    """Yield create requests in batches, skipping the header and bad rows."""
    with open(path, newline="") as handle:
        reader = csv.reader(handle)
        next(reader, None)

        batch = []
        for line_number, record in enumerate(reader, start=2):
            try:
                batch.append(parse_driver_location(record))
            except ValueError as exc:
                logger.warning("Skipping line %d %s: %s", line_number, record, exc)
                continue

            if len(batch) >= batch_size:
                yield batch
                batch = []

        if batch:
            yield batch


async def process_batch(
    client: httpx.AsyncClient,
    batch: List[CreateDriverRequest],
    worker_id: int,
    api_key: str = "",
) -> ImportResult:
    """POST one batch; every failure is counted against the whole batch."""
    result = ImportResult(requested_count=len(batch))
    headers = {"X-API-Key": api_key} if api_key else {}
    body = {"drivers": [item.model_dump(mode="json", exclude_none=True) for item in batch]}

    try:
        response = await client.post(BATCH_PATH, json=body, headers=headers)
    except httpx.HTTPError as exc:
        logger.error("Worker %d: HTTP request error: %s", worker_id, exc)
        result.error_count = len(batch)
        return result

    try:
        envelope = _batch_envelope_adapter.validate_json(response.content)
    except SchemaValidationError:
        logger.error("Worker %d: API error (status %d): %s", worker_id, response.status_code, response.text)
        result.error_count = len(batch)
        return result

    if isinstance(envelope, FailureEnvelope) or response.status_code != 201:
        error = getattr(envelope, "error", "")
        message = getattr(envelope, "message", "")
        logger.error("Worker %d: API operation failed (status %d): %s - %s",
                     worker_id, response.status_code, error, message)
        result.error_count = len(batch)
        return result

    result.created_count = envelope.data.count
    if result.created_count != len(batch):
        logger.warning("Worker %d: Batch discrepancy - requested: %d, created: %d",
                       worker_id, len(batch), result.created_count)
        result.error_count = len(batch) - result.created_count

    logger.info("Worker %d: Batch completed - requested: %d, created: %d",
                worker_id, len(batch), result.created_count)
    return result


async def import_drivers(
    path: str,
    client: httpx.AsyncClient,
    api_key: str = "",
    batch_size: int = BATCH_SIZE,
    num_workers: int = NUM_WORKERS,
) -> ImportResult:
    """
    Import every row of path through a pool of num_workers.

    Batches flow through a bounded queue; each worker posts its batches
    independently and reports per-batch results on a second queue,
    which is summed once all workers have finished.
    """
    batch_queue: asyncio.Queue = asyncio.Queue(maxsize=num_workers * 2)
    result_queue: asyncio.Queue = asyncio.Queue()

    async def worker(worker_id: int):
        while True:
            batch = await batch_queue.get()
            if batch is None:
                return
            await result_queue.put(await process_batch(client, batch, worker_id, api_key))

    workers = [asyncio.create_task(worker(worker_id)) for worker_id in range(num_workers)]
    try:
        for batch in read_batches(path, batch_size):
            await batch_queue.put(batch)
    finally:
        # One stop marker per worker closes the queue.
        for _ in workers:
            await batch_queue.put(None)
        await asyncio.gather(*workers)

    total = ImportResult()
    while not result_queue.empty():
        total += result_queue.get_nowait()
    return total


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(description="Import driver locations from a CSV file")
    parser.add_argument("--file", default=CSV_FILE_PATH, help="CSV file with latitude,longitude rows")
    parser.add_argument("--url", default=settings.driver_location_base_url, help="Driver location service base URL")
    parser.add_argument("--api-key", default=settings.matching_api_key, help="Shared API key")
    parser.add_argument("--batch-size", type=int, default=BATCH_SIZE)
    parser.add_argument("--workers", type=int, default=NUM_WORKERS)
    return parser


async def _run(args: argparse.Namespace) -> ImportResult:
    timeout = httpx.Timeout(settings.client_request_timeout_seconds, connect=settings.client_connect_timeout_seconds)
    async with httpx.AsyncClient(base_url=args.url, timeout=timeout) as client:
        return await import_drivers(args.file, client, args.api_key, args.batch_size, args.workers)


def main(argv: Optional[Sequence[str]] = None) -> int:
    args = build_parser().parse_args(argv)
    configure_logging(settings.log_level)
    logger.info("Driver location importer started...")

    try:
        result = asyncio.run(_run(args))
    except OSError as exc:
        logger.error("Import failed: %s", exc)
        return 1

    logger.info("Import completed. Requested: %d, Created: %d, Errors: %d",
                result.requested_count, result.created_count, result.error_count)
    return 0


if __name__ == "__main__":
    sys.exit(main())
