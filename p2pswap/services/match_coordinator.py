"""
Match lifecycle coordinator.

The only writer of Match rows and of Listing.status once a listing is bound
to a match. Every public operation runs in its own transaction:

1. Lock the match row (if any), then both listing rows in id order
2. Re-check every pre-condition against the locked rows
3. Apply the transition to the match and both listings together
4. Flush, build the response, commit

Lock waits are bounded by ``DATABASE_LOCK_TIMEOUT_MS``. Lock timeouts,
serialization failures, deadlocks and stale ``version_id`` writes all
surface as ``ConcurrencyConflictError`` after a full rollback.
"""

from __future__ import annotations

import logging
import uuid
from contextlib import asynccontextmanager
from typing import TYPE_CHECKING

from sqlalchemy import text
from sqlalchemy.exc import DBAPIError, SQLAlchemyError
from sqlalchemy.orm.exc import StaleDataError

from p2pswap.config import settings
from p2pswap.core.errors import (
    AppError,
    AuthorizationError,
    ConcurrencyConflictError,
    ConflictError,
    NotFoundError,
    UnexpectedError,
    validate_input,
)
from p2pswap.models.listing import Listing, ListingStatus, utcnow
from p2pswap.models.match import Confirmation, Match, MatchStatus
from p2pswap.schemas.common import CallerIdentity
from p2pswap.schemas.match import MatchProposal, MatchRead, MatchReference
from p2pswap.services import listing_store, match_store

if TYPE_CHECKING:
    from sqlalchemy.ext.asyncio import AsyncSession

logger = logging.getLogger(__name__)

# lock_not_available, serialization_failure, deadlock_detected
LOCK_CONFLICT_SQLSTATES = frozenset({"55P03", "40001", "40P01"})


def is_lock_conflict(exc: DBAPIError) -> bool:
    """True when the driver error means we lost a race rather than broke."""
    orig = exc.orig
    sqlstate = (
        getattr(orig, "sqlstate", None)
        or getattr(orig, "pgcode", None)
        or getattr(orig.__cause__, "sqlstate", None)
    )
    if sqlstate in LOCK_CONFLICT_SQLSTATES:
        return True
    return "database is locked" in str(orig)


class MatchCoordinator:
    """Drives a match and its two listings through the lifecycle."""

    def __init__(self, session_factory=None):
        """
        Args:
            session_factory: Async session factory for DB access
                             (defaults to ``p2pswap.database.async_session``).
        """
        self._session_factory = session_factory

    @property
    def session_factory(self):
        if self._session_factory is not None:
            return self._session_factory
        from p2pswap.database import async_session
        return async_session

    # ── Transaction scope ────────────────────────────────────────────────

    @asynccontextmanager
    async def _unit_of_work(self, operation: str):
        """Open a session, begin, and commit or roll back on every exit path."""
        async with self.session_factory() as session:
            try:
                async with session.begin():
                    await self._bound_lock_wait(session)
                    yield session
            except AppError:
                raise
            except StaleDataError as exc:
                logger.warning("%s lost a concurrent update: %s", operation, exc)
                raise ConcurrencyConflictError(
                    "The match or listing was modified by another request. Please retry."
                ) from exc
            except DBAPIError as exc:
                if is_lock_conflict(exc):
                    logger.warning("%s could not acquire row locks: %s", operation, exc.orig)
                    raise ConcurrencyConflictError(
                        "The match or listing is busy. Please retry."
                    ) from exc
                logger.exception("%s failed in storage", operation)
                raise UnexpectedError("Storage failure.") from exc
            except SQLAlchemyError as exc:
                logger.exception("%s failed in storage", operation)
                raise UnexpectedError("Storage failure.") from exc

    @staticmethod
    async def _bound_lock_wait(session: "AsyncSession") -> None:
        if session.get_bind().dialect.name != "postgresql":
            return
        timeout_ms = int(settings.DATABASE_LOCK_TIMEOUT_MS)
        await session.execute(text(f"SET LOCAL lock_timeout = {timeout_ms}"))

    # ── Propose ──────────────────────────────────────────────────────────

    async def propose(
        self,
        caller: CallerIdentity,
        initiator_listing_uuid,
        matched_listing_uuid,
    ) -> MatchRead:
        """
        Bind the caller's listing to another user's listing in a new PENDING match.

        Raises NotFoundError for a missing or foreign initiator listing and a
        missing matched listing; ConflictError for every other pre-condition.
        """
        proposal = validate_input(
            MatchProposal,
            initiator_listing_uuid=initiator_listing_uuid,
            matched_listing_uuid=matched_listing_uuid,
        )

        async with self._unit_of_work("propose") as session:
            now = utcnow()
            locked = await listing_store.lock_listings_by_uuid(
                session,
                {proposal.initiator_listing_uuid, proposal.matched_listing_uuid},
            )

            own = locked.get(proposal.initiator_listing_uuid)
            if own is None or own.user_id != caller.user_id:
                raise NotFoundError("Your listing was not found.")
            if not own.is_available(now):
                raise ConflictError(
                    f"Your listing is not available for matching. "
                    f"Current status: {own.status.value}."
                )

            other = locked.get(proposal.matched_listing_uuid)
            if other is None:
                raise NotFoundError("Matched listing not found.")
            if other.user_id == caller.user_id:
                raise ConflictError("You cannot match with your own listing.")
            if not other.is_available(now):
                raise ConflictError(
                    f"Matched listing is not available for matching. "
                    f"Current status: {other.status.value}."
                )

            self._check_corridor(own, other)
            self._check_compatible(own, other)

            live = await match_store.find_live_match(session, (own.id, other.id))
            if live is not None:
                raise ConflictError("An active match already exists for one of these listings.")

            match = match_store.add_match(session, caller.user_id, own, other)
            own.transition_to(ListingStatus.PENDING)
            other.transition_to(ListingStatus.PENDING)
            await session.flush()
            result = MatchRead.from_records(match, own, other)

        logger.info(
            "Match %s proposed by user %s: listing %s <-> %s",
            result.uuid, caller.user_id, own.uuid, other.uuid,
        )
        return result

    @staticmethod
    def _check_corridor(own: Listing, other: Listing) -> None:
        if own.user.country_of_residence != other.user.country_of_residence:
            raise ConflictError("Listings must be in the same country of residence.")
        if own.user.country_of_origin != other.user.country_of_origin:
            raise ConflictError("Listings must share the same country of origin.")

    @staticmethod
    def _check_compatible(own: Listing, other: Listing) -> None:
        if own.type == other.type:
            raise ConflictError("Listings must be of opposite types (BUY and SELL).")
        same_pair = {own.currency_from, own.currency_to} == {
            other.currency_from, other.currency_to,
        }
        if not same_pair:
            raise ConflictError("Listings must exchange the same currency pair.")

    # ── Recipient decisions ──────────────────────────────────────────────

    async def accept(self, caller: CallerIdentity, match_uuid) -> MatchRead:
        """PENDING -> ACCEPTED. Recipient only; listings stay PENDING."""
        ref = validate_input(MatchReference, match_uuid=match_uuid)
        async with self._unit_of_work("accept") as session:
            match, own, other = await self._load_locked(session, ref.match_uuid)
            if other.user_id != caller.user_id:
                raise AuthorizationError("Only the recipient can accept this match.")
            match.require_status("accepted", MatchStatus.PENDING)
            match.transition_to(MatchStatus.ACCEPTED)
            await session.flush()
            result = MatchRead.from_records(match, own, other)

        logger.info("Match %s accepted by user %s", result.uuid, caller.user_id)
        return result

    async def reject(self, caller: CallerIdentity, match_uuid) -> MatchRead:
        """PENDING -> REJECTED. Recipient only; both listings return to ACTIVE."""
        ref = validate_input(MatchReference, match_uuid=match_uuid)
        async with self._unit_of_work("reject") as session:
            match, own, other = await self._load_locked(session, ref.match_uuid)
            if other.user_id != caller.user_id:
                raise AuthorizationError("Only the recipient can reject this match.")
            match.require_status("rejected", MatchStatus.PENDING)
            match.transition_to(MatchStatus.REJECTED)
            self._release(own, other)
            await session.flush()
            result = MatchRead.from_records(match, own, other)

        logger.info("Match %s rejected by user %s", result.uuid, caller.user_id)
        return result

    # ── Either party ─────────────────────────────────────────────────────

    async def cancel(self, caller: CallerIdentity, match_uuid) -> MatchRead:
        """PENDING|ACCEPTED -> CANCELED. Either owner; both listings return to ACTIVE."""
        ref = validate_input(MatchReference, match_uuid=match_uuid)
        async with self._unit_of_work("cancel") as session:
            match, own, other = await self._load_locked(session, ref.match_uuid)
            if caller.user_id not in (own.user_id, other.user_id):
                raise AuthorizationError("You are not a participant in this match.")
            match.require_status("canceled", MatchStatus.PENDING, MatchStatus.ACCEPTED)
            match.transition_to(MatchStatus.CANCELED)
            self._release(own, other)
            await session.flush()
            result = MatchRead.from_records(match, own, other)

        logger.info("Match %s canceled by user %s", result.uuid, caller.user_id)
        return result

    async def confirm_completion(self, caller: CallerIdentity, match_uuid) -> MatchRead:
        """
        Record the caller's side as confirmed on an ACCEPTED match.

        When both sides have confirmed, the match and both listings move to
        COMPLETED in the same transaction; otherwise the match stays ACCEPTED.
        """
        ref = validate_input(MatchReference, match_uuid=match_uuid)
        async with self._unit_of_work("confirm_completion") as session:
            match, own, other = await self._load_locked(session, ref.match_uuid)
            match.require_status("confirmed", MatchStatus.ACCEPTED)

            if caller.user_id == own.user_id:
                side = Confirmation.INITIATOR
            elif caller.user_id == other.user_id:
                side = Confirmation.RECIPIENT
            else:
                raise AuthorizationError("You are not a participant in this match.")

            state = match.record_confirmation(side)
            if state == Confirmation.BOTH:
                match.transition_to(MatchStatus.COMPLETED)
                own.transition_to(ListingStatus.COMPLETED)
                other.transition_to(ListingStatus.COMPLETED)
            await session.flush()
            result = MatchRead.from_records(match, own, other)

        if result.status == MatchStatus.COMPLETED:
            logger.info("Match %s completed", result.uuid)
        else:
            logger.info(
                "Match %s: user %s confirmed completion (%s)",
                result.uuid, caller.user_id, result.confirmation,
            )
        return result

    # ── Helpers ──────────────────────────────────────────────────────────

    @staticmethod
    async def _load_locked(
        session: "AsyncSession", match_uuid: uuid.UUID,
    ) -> tuple[Match, Listing, Listing]:
        """Lock the match, then its two listings; 404 if the match is unknown."""
        match = await match_store.lock_match(session, match_uuid)
        if match is None:
            raise NotFoundError("Match not found.")

        listings = await listing_store.lock_listings_by_id(
            session, (match.initiator_listing_id, match.matched_listing_id),
        )
        own = listings.get(match.initiator_listing_id)
        other = listings.get(match.matched_listing_id)
        if own is None or other is None:
            raise UnexpectedError(f"Match {match.uuid} references a missing listing.")
        return match, own, other

    @staticmethod
    def _release(own: Listing, other: Listing) -> None:
        own.transition_to(ListingStatus.ACTIVE)
        other.transition_to(ListingStatus.ACTIVE)


# Module-level singleton
match_coordinator = MatchCoordinator()
