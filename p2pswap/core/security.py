"""
Core security module — JWT verification for the identity boundary.

Tokens are issued by the external identity service. This module verifies
them and also exposes ``create_access_token`` so that service (and the test
suite) mint tokens with the same claims layout. Supports RS256 with HS256
fallback when the RSA public key file is missing.
"""

import logging
from datetime import datetime, timedelta, timezone
from pathlib import Path

import jwt

from p2pswap.config import settings
from p2pswap.core.errors import AuthenticationError

logger = logging.getLogger(__name__)

# ---------------------------------------------------------------------------
# Key loading
# ---------------------------------------------------------------------------

_signing_key: str | bytes | None = None
_verifying_key: str | bytes | None = None
_algorithm: str = settings.JWT_ALGORITHM


def _load_keys() -> None:
    """
    Load the RSA public key from disk (and the private key, when present in
    development). Falls back to HS256 with SECRET_KEY.
    """
    global _signing_key, _verifying_key, _algorithm

    private_path = Path(settings.JWT_PRIVATE_KEY_PATH)
    public_path = Path(settings.JWT_PUBLIC_KEY_PATH)

    if settings.JWT_ALGORITHM == "RS256" and public_path.exists():
        _signing_key = private_path.read_bytes() if private_path.exists() else None
        _verifying_key = public_path.read_bytes()
        _algorithm = "RS256"
        logger.info("Loaded RSA public key for JWT verification (RS256).")
    else:
        _signing_key = settings.SECRET_KEY
        _verifying_key = settings.SECRET_KEY
        _algorithm = "HS256"
        logger.warning("RSA public key not found. Falling back to HS256.")


_load_keys()


def configure_keys(
    *, signing_key: str | bytes | None, verifying_key: str | bytes, algorithm: str = "HS256"
) -> None:
    """Override keys at runtime (used in tests)."""
    global _signing_key, _verifying_key, _algorithm
    _signing_key = signing_key
    _verifying_key = verifying_key
    _algorithm = algorithm


# ---------------------------------------------------------------------------
# Token creation
# ---------------------------------------------------------------------------


def create_access_token(user_uuid: str) -> str:
    """Create a short-lived access JWT whose subject is the user's public UUID."""
    if _signing_key is None:
        raise RuntimeError("No signing key configured; tokens are issued by the identity service")
    now = datetime.now(timezone.utc)
    payload = {
        "sub": str(user_uuid),
        "type": "access",
        "iat": now,
        "exp": now + timedelta(minutes=settings.ACCESS_TOKEN_EXPIRE_MINUTES),
    }
    return jwt.encode(payload, _signing_key, algorithm=_algorithm)


# ---------------------------------------------------------------------------
# Token verification
# ---------------------------------------------------------------------------


def decode_token(token: str) -> dict:
    """
    Decode and return the JWT payload.

    Raises ``AuthenticationError`` on expiry or any other invalid-token error.
    """
    try:
        return jwt.decode(token, _verifying_key, algorithms=[_algorithm])
    except jwt.ExpiredSignatureError:
        raise AuthenticationError("Token has expired")
    except jwt.InvalidTokenError:
        raise AuthenticationError("Invalid token")


def verify_token(token: str, expected_type: str = "access") -> dict:
    """Decode a JWT and validate its ``type`` claim."""
    payload = decode_token(token)
    if payload.get("type") != expected_type:
        raise AuthenticationError(f"Expected {expected_type} token")
    return payload
