"""
Listing endpoints.

Publishing a listing, browsing a single listing, and discovering
matching counter-offers for the caller's active listings.
"""

from uuid import UUID

from fastapi import APIRouter, Depends, Query, status
from sqlalchemy.ext.asyncio import AsyncSession

from p2pswap.api.deps import get_current_user
from p2pswap.database import get_db
from p2pswap.matching_engine import engine
from p2pswap.matching_engine.config import (
    DEFAULT_PAGE_SIZE,
    DEFAULT_SORT_FIELD,
    DEFAULT_SORT_ORDER,
)
from p2pswap.schemas.common import CallerIdentity, Pagination
from p2pswap.schemas.listing import ListingCreate, ListingPage, ListingRead
from p2pswap.services import listing_store

router = APIRouter()


@router.post("", response_model=ListingRead, status_code=status.HTTP_201_CREATED)
async def create_listing(
    payload: ListingCreate,
    caller: CallerIdentity = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
):
    """Publish a new ACTIVE listing located in the caller's country of residence."""
    listing = await listing_store.create_listing(db, caller, payload)
    return ListingRead.model_validate(listing)


@router.get("/matching", response_model=ListingPage)
async def get_matching_listings(
    page: int = Query(1),
    limit: int = Query(DEFAULT_PAGE_SIZE),
    sort_by: str = Query(DEFAULT_SORT_FIELD, alias="sortBy"),
    sort_order: str = Query(DEFAULT_SORT_ORDER, alias="sortOrder"),
    caller: CallerIdentity = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
):
    """
    Listings from other users that complement any of the caller's active
    listings. Paging and sort values are validated by the engine.
    """
    items, total = await engine.find_candidates(
        db, caller, page=page, limit=limit, sort_by=sort_by, sort_order=sort_order,
    )
    return ListingPage(items=items, pagination=Pagination.build(page, limit, total))


@router.get("/{listing_uuid}", response_model=ListingRead)
async def get_listing(
    listing_uuid: UUID,
    caller: CallerIdentity = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
):
    """Get an active listing in the caller's country of residence."""
    listing = await listing_store.get_visible_listing(
        db, listing_uuid, caller.country_of_residence,
    )
    return ListingRead.model_validate(listing)
