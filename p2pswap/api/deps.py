"""
Reusable FastAPI dependencies for authentication and service wiring.

Dependencies:
  - get_current_user       — resolves the caller from a bearer JWT (401 if invalid)
  - get_match_coordinator  — the lifecycle coordinator (overridable in tests)
"""

from uuid import UUID

from fastapi import Depends, Header
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from p2pswap.core.errors import AuthenticationError
from p2pswap.core.security import verify_token
from p2pswap.database import get_db
from p2pswap.models.user import User
from p2pswap.schemas.common import CallerIdentity
from p2pswap.services.match_coordinator import MatchCoordinator, match_coordinator


# ---------------------------------------------------------------------------
# Core: extract caller from JWT
# ---------------------------------------------------------------------------


async def get_current_user(
    authorization: str | None = Header(None, description="Bearer <access_token>"),
    db: AsyncSession = Depends(get_db),
) -> CallerIdentity:
    """
    Parse the ``Authorization: Bearer <token>`` header, verify the JWT,
    look up the user by the UUID in ``sub``, and return the caller identity.

    Raises AuthenticationError if the header is missing or malformed, the
    token is invalid or expired, or the user does not exist.
    """
    if not authorization or not authorization.startswith("Bearer "):
        raise AuthenticationError("Invalid authorization header")

    token = authorization[len("Bearer "):]
    payload = verify_token(token, expected_type="access")

    try:
        user_uuid = UUID(str(payload.get("sub")))
    except ValueError:
        raise AuthenticationError("Invalid token subject")

    result = await db.execute(select(User).where(User.uuid == user_uuid))
    user = result.scalar_one_or_none()
    if user is None:
        raise AuthenticationError("User not found")

    return CallerIdentity(
        user_id=user.id,
        user_uuid=user.uuid,
        country_of_residence=user.country_of_residence,
    )


def get_match_coordinator() -> MatchCoordinator:
    return match_coordinator
