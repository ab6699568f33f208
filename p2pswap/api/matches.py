"""
Match endpoints.

Propose a match, list the caller's matches, and drive a match through
accept / reject / cancel / confirm-completion. Each lifecycle call runs in
its own coordinator transaction.
"""

from uuid import UUID

from fastapi import APIRouter, Depends, Query, status
from sqlalchemy.ext.asyncio import AsyncSession

from p2pswap.api.deps import get_current_user, get_match_coordinator
from p2pswap.database import get_db
from p2pswap.matching_engine.config import DEFAULT_PAGE_SIZE
from p2pswap.schemas.common import CallerIdentity, Pagination
from p2pswap.schemas.match import MatchPage, MatchProposal, MatchRead
from p2pswap.services import match_queries
from p2pswap.services.match_coordinator import MatchCoordinator

router = APIRouter()


@router.post("", response_model=MatchRead, status_code=status.HTTP_201_CREATED)
async def propose_match(
    payload: MatchProposal,
    caller: CallerIdentity = Depends(get_current_user),
    coordinator: MatchCoordinator = Depends(get_match_coordinator),
):
    """Propose the caller's listing against another user's listing."""
    return await coordinator.propose(
        caller, payload.initiator_listing_uuid, payload.matched_listing_uuid,
    )


@router.get("", response_model=MatchPage)
async def list_my_matches(
    page: int = Query(1),
    limit: int = Query(DEFAULT_PAGE_SIZE),
    match_status: str | None = Query(None, alias="status"),
    caller: CallerIdentity = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
):
    """Matches where the caller is the initiator or the recipient."""
    items, total = await match_queries.list_my_matches(
        db, caller.user_id, page=page, limit=limit, status=match_status,
    )
    return MatchPage(items=items, pagination=Pagination.build(page, limit, total))


@router.put("/{match_uuid}/accept", response_model=MatchRead)
async def accept_match(
    match_uuid: UUID,
    caller: CallerIdentity = Depends(get_current_user),
    coordinator: MatchCoordinator = Depends(get_match_coordinator),
):
    """Recipient accepts a pending match."""
    return await coordinator.accept(caller, match_uuid)


@router.put("/{match_uuid}/reject", response_model=MatchRead)
async def reject_match(
    match_uuid: UUID,
    caller: CallerIdentity = Depends(get_current_user),
    coordinator: MatchCoordinator = Depends(get_match_coordinator),
):
    """Recipient rejects a pending match; both listings become ACTIVE again."""
    return await coordinator.reject(caller, match_uuid)


@router.put("/{match_uuid}/cancel", response_model=MatchRead)
async def cancel_match(
    match_uuid: UUID,
    caller: CallerIdentity = Depends(get_current_user),
    coordinator: MatchCoordinator = Depends(get_match_coordinator),
):
    """Either participant cancels a pending or accepted match."""
    return await coordinator.cancel(caller, match_uuid)


@router.put("/{match_uuid}/confirm-completion", response_model=MatchRead)
async def confirm_completion(
    match_uuid: UUID,
    caller: CallerIdentity = Depends(get_current_user),
    coordinator: MatchCoordinator = Depends(get_match_coordinator),
):
    """Confirm the caller's side of an accepted match."""
    return await coordinator.confirm_completion(caller, match_uuid)
