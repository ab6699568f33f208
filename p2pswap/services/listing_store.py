"""
Listing store — durable record of exchange offers.

Every function takes the caller's ``AsyncSession`` so reads and writes can
share one transaction with the match coordinator. The store enforces field
integrity only; business rules live in the coordinator and matching engine.
"""

from __future__ import annotations

import logging
import uuid
from collections.abc import Iterable
from datetime import datetime
from typing import TYPE_CHECKING

from sqlalchemy import select
from sqlalchemy.orm import joinedload

from p2pswap.core.errors import NotFoundError
from p2pswap.models.listing import Listing, ListingStatus, utcnow
from p2pswap.models.user import User
from p2pswap.schemas.common import CallerIdentity
from p2pswap.schemas.listing import ListingCreate

if TYPE_CHECKING:
    from sqlalchemy.ext.asyncio import AsyncSession

logger = logging.getLogger(__name__)


# ---------------------------------------------------------------------------
# Create
# ---------------------------------------------------------------------------


async def create_listing(
    session: "AsyncSession",
    caller: CallerIdentity,
    payload: ListingCreate,
) -> Listing:
    """
    Insert a new ACTIVE listing owned by *caller*.

    ``location`` is taken from the caller's country of residence, never
    from the payload. The owner row is loaded so the result is readable
    without further IO.
    """
    owner = await session.get(User, caller.user_id)
    if owner is None:
        raise NotFoundError("Listing owner not found.")

    listing = Listing(
        user=owner,
        type=payload.type,
        currency_from=payload.currency_from,
        currency_to=payload.currency_to,
        amount_from=payload.amount_from,
        amount_to=payload.amount_to,
        exchange_rate=payload.exchange_rate,
        payment_method=payload.payment_method,
        description=payload.description,
        location=caller.country_of_residence,
        status=ListingStatus.ACTIVE,
    )
    session.add(listing)
    await session.flush()

    logger.info(
        "Listing %s created by user %s: %s %s %s -> %s %s",
        listing.uuid, caller.user_id, listing.type.value,
        listing.amount_from, listing.currency_from,
        listing.amount_to, listing.currency_to,
    )
    return listing


# ---------------------------------------------------------------------------
# Read
# ---------------------------------------------------------------------------


async def get_listing(session: "AsyncSession", listing_uuid: uuid.UUID) -> Listing | None:
    """Fetch a listing (with its owner) by public UUID."""
    result = await session.execute(
        select(Listing)
        .options(joinedload(Listing.user, innerjoin=True))
        .where(Listing.uuid == listing_uuid)
    )
    return result.scalar_one_or_none()


async def get_visible_listing(
    session: "AsyncSession",
    listing_uuid: uuid.UUID,
    country_of_residence: str,
    now: datetime | None = None,
) -> Listing:
    """
    Fetch a listing the caller is allowed to browse.

    Only ACTIVE, unexpired listings located in the caller's country of
    residence are visible; anything else is reported as not found.
    """
    listing = await get_listing(session, listing_uuid)
    if (
        listing is None
        or listing.location != country_of_residence
        or not listing.is_available(now)
    ):
        raise NotFoundError("Listing not found or not available in your country.")
    return listing


async def active_listings_for_user(
    session: "AsyncSession",
    user_id: int,
    now: datetime | None = None,
) -> list[Listing]:
    """Return the user's ACTIVE, unexpired listings, owner row included."""
    now = now or utcnow()
    result = await session.execute(
        select(Listing)
        .options(joinedload(Listing.user, innerjoin=True))
        .where(
            Listing.user_id == user_id,
            Listing.status == ListingStatus.ACTIVE,
            Listing.expires_at > now,
        )
        .order_by(Listing.id)
    )
    return list(result.scalars().all())


# ---------------------------------------------------------------------------
# Locking reads (used inside coordinator transactions)
# ---------------------------------------------------------------------------


async def lock_listings_by_uuid(
    session: "AsyncSession",
    listing_uuids: Iterable[uuid.UUID],
) -> dict[uuid.UUID, Listing]:
    """
    SELECT ... FOR UPDATE the listings with the given UUIDs.

    Rows are locked in id order so two transactions touching the same pair
    cannot deadlock. Missing UUIDs are simply absent from the result.
    ``populate_existing`` refreshes any stale copy already in the session.
    """
    result = await session.execute(
        select(Listing)
        .options(joinedload(Listing.user, innerjoin=True))
        .where(Listing.uuid.in_(list(listing_uuids)))
        .order_by(Listing.id)
        .with_for_update(of=Listing)
        .execution_options(populate_existing=True)
    )
    return {listing.uuid: listing for listing in result.scalars().all()}


async def lock_listings_by_id(
    session: "AsyncSession",
    listing_ids: Iterable[int],
) -> dict[int, Listing]:
    """Same as ``lock_listings_by_uuid`` but keyed by internal id."""
    result = await session.execute(
        select(Listing)
        .options(joinedload(Listing.user, innerjoin=True))
        .where(Listing.id.in_(list(listing_ids)))
        .order_by(Listing.id)
        .with_for_update(of=Listing)
        .execution_options(populate_existing=True)
    )
    return {listing.id: listing for listing in result.scalars().all()}
