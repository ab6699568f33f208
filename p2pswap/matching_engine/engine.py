"""
Matching engine — discovers compatible counter-offers for a user.

Read-only. Loads the caller's active listings, turns each into a
complementary filter, ORs them together, and pages through the other
users' listings that satisfy the combined predicate.
"""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING

from sqlalchemy import func, select
from sqlalchemy.orm import contains_eager

from p2pswap.core.errors import validate_input
from p2pswap.matching_engine.config import (
    DEFAULT_PAGE_SIZE,
    DEFAULT_SORT_FIELD,
    DEFAULT_SORT_ORDER,
)
from p2pswap.matching_engine.filters import candidate_predicate
from p2pswap.models.listing import Listing, utcnow
from p2pswap.models.user import User
from p2pswap.schemas.common import CallerIdentity
from p2pswap.schemas.listing import CandidateQuery, ListingRead
from p2pswap.services import listing_store

if TYPE_CHECKING:
    from sqlalchemy.ext.asyncio import AsyncSession

logger = logging.getLogger(__name__)


async def find_candidates(
    session: "AsyncSession",
    caller: CallerIdentity,
    page: int = 1,
    limit: int = DEFAULT_PAGE_SIZE,
    sort_by: str = DEFAULT_SORT_FIELD,
    sort_order: str = DEFAULT_SORT_ORDER,
) -> tuple[list[ListingRead], int]:
    """
    Return one page of listings complementing the caller's active listings.

    1. Validate paging and sort options (``ValidationError`` on bad input)
    2. Load the caller's ACTIVE, unexpired listings
    3. Short-circuit to ``([], 0)`` when there are none
    4. Count and fetch with the same predicate object

    Returns ``(candidates, total)``.
    """
    query = validate_input(
        CandidateQuery, page=page, limit=limit, sort_by=sort_by, sort_order=sort_order,
    )

    now = utcnow()
    own_listings = await listing_store.active_listings_for_user(session, caller.user_id, now)
    if not own_listings:
        logger.debug("User %s has no active listings; no candidates", caller.user_id)
        return [], 0

    predicate = candidate_predicate(
        own_listings, caller.user_id, caller.country_of_residence, now,
    )

    # Count total matching
    count_stmt = (
        select(func.count(Listing.id))
        .select_from(Listing)
        .join(User, Listing.user_id == User.id)
        .where(predicate)
    )
    total = (await session.execute(count_stmt)).scalar_one()

    # Fetch page
    sort_column = getattr(Listing, query.sort_by)
    if query.sort_order == "asc":
        order_by = (sort_column.asc(), Listing.id.asc())
    else:
        order_by = (sort_column.desc(), Listing.id.desc())

    items_stmt = (
        select(Listing)
        .join(User, Listing.user_id == User.id)
        .options(contains_eager(Listing.user))
        .where(predicate)
        .order_by(*order_by)
        .offset((query.page - 1) * query.limit)
        .limit(query.limit)
    )
    result = await session.execute(items_stmt)
    candidates = [ListingRead.model_validate(listing) for listing in result.scalars().all()]

    logger.info(
        "Matching for user %s: %d own listings, %d candidates (page %d)",
        caller.user_id, len(own_listings), total, query.page,
    )
    return candidates, total
