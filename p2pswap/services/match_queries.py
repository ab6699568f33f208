"""
Read-only match queries for the "my matches" view.
"""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING

from sqlalchemy import func, or_, select
from sqlalchemy.orm import selectinload

from p2pswap.core.errors import validate_input
from p2pswap.matching_engine.config import DEFAULT_PAGE_SIZE
from p2pswap.models.listing import Listing
from p2pswap.models.match import Match
from p2pswap.schemas.match import MatchListQuery, MatchRead

if TYPE_CHECKING:
    from sqlalchemy.ext.asyncio import AsyncSession

logger = logging.getLogger(__name__)


async def list_my_matches(
    session: "AsyncSession",
    user_id: int,
    page: int = 1,
    limit: int = DEFAULT_PAGE_SIZE,
    status: str | None = None,
) -> tuple[list[MatchRead], int]:
    """
    Page through matches where the user is the initiator or owns the
    matched listing, newest first. *status* must be a MatchStatus value.
    """
    query = validate_input(MatchListQuery, page=page, limit=limit, status=status)

    conditions = [
        or_(
            Match.initiator_id == user_id,
            Match.matched_listing.has(Listing.user_id == user_id),
        )
    ]
    if query.status is not None:
        conditions.append(Match.status == query.status)

    count_stmt = select(func.count(Match.id)).where(*conditions)
    total = (await session.execute(count_stmt)).scalar_one()

    items_stmt = (
        select(Match)
        .options(
            selectinload(Match.initiator_listing).selectinload(Listing.user),
            selectinload(Match.matched_listing).selectinload(Listing.user),
        )
        .where(*conditions)
        .order_by(Match.created_at.desc(), Match.id.desc())
        .offset((query.page - 1) * query.limit)
        .limit(query.limit)
    )
    result = await session.execute(items_stmt)
    matches = [
        MatchRead.from_records(m, m.initiator_listing, m.matched_listing)
        for m in result.scalars().all()
    ]

    logger.debug("User %s has %d matches (status=%s)", user_id, total, query.status)
    return matches, total
