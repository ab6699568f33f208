"""
Match store — persistence helpers for Match rows.

Like the listing store, every function runs on the caller's session; the
match coordinator owns the transaction boundary.
"""

from __future__ import annotations

import logging
import uuid
from collections.abc import Iterable
from typing import TYPE_CHECKING

from sqlalchemy import or_, select

from p2pswap.models.listing import Listing
from p2pswap.models.match import LIVE_MATCH_STATUSES, Match, MatchStatus

if TYPE_CHECKING:
    from sqlalchemy.ext.asyncio import AsyncSession

logger = logging.getLogger(__name__)


async def lock_match(session: "AsyncSession", match_uuid: uuid.UUID) -> Match | None:
    """SELECT ... FOR UPDATE a match by public UUID, refreshing any cached copy."""
    result = await session.execute(
        select(Match)
        .where(Match.uuid == match_uuid)
        .with_for_update(of=Match)
        .execution_options(populate_existing=True)
    )
    return result.scalar_one_or_none()


async def find_live_match(
    session: "AsyncSession",
    listing_ids: Iterable[int],
) -> Match | None:
    """Return any PENDING/ACCEPTED match referencing one of *listing_ids* on either side."""
    ids = list(listing_ids)
    result = await session.execute(
        select(Match)
        .where(
            Match.status.in_(LIVE_MATCH_STATUSES),
            or_(
                Match.initiator_listing_id.in_(ids),
                Match.matched_listing_id.in_(ids),
            ),
        )
        .order_by(Match.id)
        .limit(1)
    )
    return result.scalar_one_or_none()


def add_match(
    session: "AsyncSession",
    initiator_id: int,
    initiator_listing: Listing,
    matched_listing: Listing,
) -> Match:
    """Stage a new PENDING match; the caller flushes."""
    match = Match(
        initiator_id=initiator_id,
        initiator_listing=initiator_listing,
        matched_listing=matched_listing,
        status=MatchStatus.PENDING,
    )
    session.add(match)
    return match
