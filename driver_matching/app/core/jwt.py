"""
JWT validation for rider authentication.

Riders arrive with tokens issued elsewhere; this service only verifies
the signature and expiry and hands back the claims.
"""

from typing import Any, Dict, Optional

from jose import JWTError, jwt

from driver_matching.app.core.config import settings


def decode_access_token(
    token: str,
    secret_key: Optional[str] = None,
    algorithm: Optional[str] = None,
) -> Optional[Dict[str, Any]]:
    """
    Decode and validate a JWT access token.

    Args:
        token: JWT token string to decode
        secret_key: Verification key, defaults to the configured secret
        algorithm: Expected algorithm, defaults to the configured algorithm

    Returns:
        Decoded token payload if valid, None otherwise
    """
    try:
        return jwt.decode(
            token,
            secret_key or settings.secret_key,
            algorithms=[algorithm or settings.algorithm],
        )
    except JWTError:
        return None
