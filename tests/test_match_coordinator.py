"""
Tests for the match lifecycle coordinator — propose, accept, reject, cancel,
confirm-completion, and the rollback guarantees around them.
"""

import asyncio
import uuid
from datetime import timedelta
from decimal import Decimal

import pytest
import pytest_asyncio
from sqlalchemy import func, select, text
from sqlalchemy.exc import OperationalError, SQLAlchemyError

from p2pswap.core.errors import (
    AuthorizationError,
    ConcurrencyConflictError,
    ConflictError,
    NotFoundError,
    UnexpectedError,
    ValidationError,
)
from p2pswap.models.listing import Listing, ListingStatus, ListingType, utcnow
from p2pswap.models.match import Match, MatchStatus
from p2pswap.schemas.match import MatchRead
from p2pswap.services import match_store
from p2pswap.services.match_coordinator import is_lock_conflict


# ── Helpers ────────────────────────────────────────────────────────────────


async def _statuses(fetch, *listings) -> list[ListingStatus]:
    return [(await fetch(Listing, listing.id)).status for listing in listings]


async def _match_count(session_factory) -> int:
    async with session_factory() as session:
        return (await session.execute(select(func.count(Match.id)))).scalar_one()


@pytest_asyncio.fixture
async def proposed(coordinator, corridor, as_caller):
    """Alice's listing proposed against Bob's."""
    return await coordinator.propose(
        as_caller(corridor["alice"]),
        corridor["listing_a"].uuid,
        corridor["listing_b"].uuid,
    )


@pytest_asyncio.fixture
async def accepted(coordinator, corridor, proposed, as_caller):
    return await coordinator.accept(as_caller(corridor["bob"]), proposed.uuid)


class _DriverError(Exception):
    def __init__(self, message: str, sqlstate: str | None = None):
        super().__init__(message)
        self.sqlstate = sqlstate


# ===========================================================================
# PROPOSE
# ===========================================================================


class TestPropose:
    @pytest.mark.asyncio
    async def test_creates_pending_match_and_binds_listings(
        self, coordinator, corridor, as_caller, fetch,
    ):
        """USD->EUR SELL against EUR->USD BUY in the same corridor."""
        match = await coordinator.propose(
            as_caller(corridor["alice"]),
            corridor["listing_a"].uuid,
            corridor["listing_b"].uuid,
        )

        assert match.status == MatchStatus.PENDING
        assert match.initiator.uuid == corridor["alice"].uuid
        assert match.initiator_listing.uuid == corridor["listing_a"].uuid
        assert match.matched_listing.uuid == corridor["listing_b"].uuid
        assert match.confirmation == "NONE"
        assert await _statuses(fetch, corridor["listing_a"], corridor["listing_b"]) == [
            ListingStatus.PENDING, ListingStatus.PENDING,
        ]

    @pytest.mark.asyncio
    async def test_recipient_can_initiate_too(self, coordinator, corridor, as_caller):
        match = await coordinator.propose(
            as_caller(corridor["bob"]),
            corridor["listing_b"].uuid,
            corridor["listing_a"].uuid,
        )
        assert match.initiator.uuid == corridor["bob"].uuid

    @pytest.mark.asyncio
    async def test_accepts_uuid_strings(self, coordinator, corridor, as_caller):
        match = await coordinator.propose(
            as_caller(corridor["alice"]),
            str(corridor["listing_a"].uuid),
            str(corridor["listing_b"].uuid),
        )
        assert match.status == MatchStatus.PENDING

    @pytest.mark.asyncio
    async def test_malformed_uuid_is_validation_error(self, coordinator, corridor, as_caller):
        with pytest.raises(ValidationError) as exc_info:
            await coordinator.propose(
                as_caller(corridor["alice"]), "not-a-uuid", corridor["listing_b"].uuid,
            )
        assert exc_info.value.errors[0]["field"] in ("initiator_listing_uuid", "initiatorListingUuid")

    @pytest.mark.asyncio
    async def test_initiator_listing_must_exist(self, coordinator, corridor, as_caller):
        with pytest.raises(NotFoundError):
            await coordinator.propose(
                as_caller(corridor["alice"]), uuid.uuid4(), corridor["listing_b"].uuid,
            )

    @pytest.mark.asyncio
    async def test_initiator_listing_must_be_owned(
        self, coordinator, corridor, make_user, as_caller, session_factory,
    ):
        mallory = await make_user()
        with pytest.raises(NotFoundError):
            await coordinator.propose(
                as_caller(mallory), corridor["listing_a"].uuid, corridor["listing_b"].uuid,
            )
        assert await _match_count(session_factory) == 0

    @pytest.mark.asyncio
    async def test_matched_listing_must_exist(self, coordinator, corridor, as_caller):
        with pytest.raises(NotFoundError, match="Matched listing"):
            await coordinator.propose(
                as_caller(corridor["alice"]), corridor["listing_a"].uuid, uuid.uuid4(),
            )

    @pytest.mark.asyncio
    async def test_cannot_match_own_listing(
        self, coordinator, corridor, make_listing, as_caller,
    ):
        own_buy = await make_listing(
            corridor["alice"], type=ListingType.BUY, currency_from="EUR", currency_to="USD",
        )
        with pytest.raises(ConflictError, match="own listing"):
            await coordinator.propose(
                as_caller(corridor["alice"]), corridor["listing_a"].uuid, own_buy.uuid,
            )

    @pytest.mark.asyncio
    async def test_same_listing_twice_is_conflict(self, coordinator, corridor, as_caller):
        with pytest.raises(ConflictError):
            await coordinator.propose(
                as_caller(corridor["alice"]),
                corridor["listing_a"].uuid,
                corridor["listing_a"].uuid,
            )

    @pytest.mark.asyncio
    async def test_expired_listing_is_unavailable(
        self, coordinator, corridor, make_user, make_listing, as_caller,
    ):
        carol = await make_user()
        stale = await make_listing(
            carol, type=ListingType.BUY, currency_from="EUR", currency_to="USD",
            expires_at=utcnow() - timedelta(hours=1),
        )
        with pytest.raises(ConflictError, match="not available"):
            await coordinator.propose(
                as_caller(corridor["alice"]), corridor["listing_a"].uuid, stale.uuid,
            )

    @pytest.mark.asyncio
    @pytest.mark.parametrize(
        "user_overrides, message",
        [
            ({"country_of_residence": "Canada"}, "country of residence"),
            ({"country_of_origin": "Nigeria"}, "country of origin"),
        ],
    )
    async def test_corridor_must_match(
        self, coordinator, corridor, make_user, make_listing, as_caller,
        user_overrides, message,
    ):
        outsider = await make_user(**user_overrides)
        offer = await make_listing(
            outsider, type=ListingType.BUY, currency_from="EUR", currency_to="USD",
        )
        with pytest.raises(ConflictError, match=message):
            await coordinator.propose(
                as_caller(corridor["alice"]), corridor["listing_a"].uuid, offer.uuid,
            )

    @pytest.mark.asyncio
    async def test_same_direction_is_conflict(
        self, coordinator, corridor, make_user, make_listing, as_caller,
    ):
        carol = await make_user()
        seller = await make_listing(carol, currency_from="EUR", currency_to="USD")
        with pytest.raises(ConflictError, match="opposite types"):
            await coordinator.propose(
                as_caller(corridor["alice"]), corridor["listing_a"].uuid, seller.uuid,
            )

    @pytest.mark.asyncio
    async def test_different_pair_is_conflict(
        self, coordinator, corridor, make_user, make_listing, as_caller,
    ):
        carol = await make_user()
        offer = await make_listing(
            carol, type=ListingType.BUY, currency_from="XAF", currency_to="USD",
            amount_from=Decimal("300000"),
        )
        with pytest.raises(ConflictError, match="currency pair"):
            await coordinator.propose(
                as_caller(corridor["alice"]), corridor["listing_a"].uuid, offer.uuid,
            )

    @pytest.mark.asyncio
    async def test_bound_listing_cannot_be_proposed_again(
        self, coordinator, corridor, proposed, make_user, make_listing, as_caller,
        session_factory,
    ):
        carol = await make_user()
        carol_sell = await make_listing(carol)
        with pytest.raises(ConflictError, match="not available"):
            await coordinator.propose(
                as_caller(carol), carol_sell.uuid, corridor["listing_b"].uuid,
            )
        assert await _match_count(session_factory) == 1

    @pytest.mark.asyncio
    async def test_live_match_blocks_even_if_listing_looks_active(
        self, coordinator, corridor, proposed, make_user, make_listing, as_caller,
        session_factory,
    ):
        """The live-match lookup is checked independently of listing status."""
        async with session_factory() as session:
            await session.execute(
                text("UPDATE listings SET status = 'ACTIVE' WHERE id = :id"),
                {"id": corridor["listing_b"].id},
            )
            await session.commit()

        carol = await make_user()
        carol_sell = await make_listing(carol)
        with pytest.raises(ConflictError, match="active match already exists"):
            await coordinator.propose(
                as_caller(carol), carol_sell.uuid, corridor["listing_b"].uuid,
            )

    @pytest.mark.asyncio
    async def test_failed_propose_leaves_listings_active(
        self, coordinator, corridor, as_caller, fetch,
    ):
        with pytest.raises(NotFoundError):
            await coordinator.propose(
                as_caller(corridor["alice"]), corridor["listing_a"].uuid, uuid.uuid4(),
            )
        assert await _statuses(fetch, corridor["listing_a"], corridor["listing_b"]) == [
            ListingStatus.ACTIVE, ListingStatus.ACTIVE,
        ]


# ===========================================================================
# ACCEPT / REJECT
# ===========================================================================


class TestAccept:
    @pytest.mark.asyncio
    async def test_recipient_accepts(self, coordinator, corridor, proposed, as_caller, fetch):
        match = await coordinator.accept(as_caller(corridor["bob"]), proposed.uuid)

        assert match.status == MatchStatus.ACCEPTED
        assert await _statuses(fetch, corridor["listing_a"], corridor["listing_b"]) == [
            ListingStatus.PENDING, ListingStatus.PENDING,
        ]

    @pytest.mark.asyncio
    async def test_initiator_cannot_accept(self, coordinator, corridor, proposed, as_caller):
        with pytest.raises(AuthorizationError):
            await coordinator.accept(as_caller(corridor["alice"]), proposed.uuid)

    @pytest.mark.asyncio
    async def test_accept_twice_conflicts(self, coordinator, corridor, accepted, as_caller):
        with pytest.raises(ConflictError, match="Current status: ACCEPTED"):
            await coordinator.accept(as_caller(corridor["bob"]), accepted.uuid)

    @pytest.mark.asyncio
    async def test_unknown_match(self, coordinator, corridor, as_caller):
        with pytest.raises(NotFoundError):
            await coordinator.accept(as_caller(corridor["bob"]), uuid.uuid4())


class TestReject:
    @pytest.mark.asyncio
    async def test_reject_restores_listings(
        self, coordinator, corridor, proposed, as_caller, fetch,
    ):
        match = await coordinator.reject(as_caller(corridor["bob"]), proposed.uuid)

        assert match.status == MatchStatus.REJECTED
        assert await _statuses(fetch, corridor["listing_a"], corridor["listing_b"]) == [
            ListingStatus.ACTIVE, ListingStatus.ACTIVE,
        ]

    @pytest.mark.asyncio
    async def test_reject_after_accept_conflicts(
        self, coordinator, corridor, accepted, as_caller, fetch,
    ):
        with pytest.raises(ConflictError) as exc_info:
            await coordinator.reject(as_caller(corridor["bob"]), accepted.uuid)

        assert "Current status: ACCEPTED" in exc_info.value.message
        assert "Required status: PENDING" in exc_info.value.message
        assert (await fetch(Match, 1)).status == MatchStatus.ACCEPTED

    @pytest.mark.asyncio
    async def test_initiator_cannot_reject(self, coordinator, corridor, accepted, as_caller):
        """Ownership is checked before status."""
        with pytest.raises(AuthorizationError):
            await coordinator.reject(as_caller(corridor["alice"]), accepted.uuid)

    @pytest.mark.asyncio
    async def test_listings_can_be_matched_again_after_reject(
        self, coordinator, corridor, proposed, as_caller,
    ):
        await coordinator.reject(as_caller(corridor["bob"]), proposed.uuid)
        again = await coordinator.propose(
            as_caller(corridor["alice"]),
            corridor["listing_a"].uuid,
            corridor["listing_b"].uuid,
        )
        assert again.status == MatchStatus.PENDING
        assert again.uuid != proposed.uuid


# ===========================================================================
# CANCEL
# ===========================================================================


class TestCancel:
    @pytest.mark.asyncio
    @pytest.mark.parametrize("who", ["alice", "bob"])
    async def test_either_party_cancels_pending(
        self, coordinator, corridor, proposed, as_caller, fetch, who,
    ):
        match = await coordinator.cancel(as_caller(corridor[who]), proposed.uuid)

        assert match.status == MatchStatus.CANCELED
        assert await _statuses(fetch, corridor["listing_a"], corridor["listing_b"]) == [
            ListingStatus.ACTIVE, ListingStatus.ACTIVE,
        ]

    @pytest.mark.asyncio
    async def test_cancel_accepted(self, coordinator, corridor, accepted, as_caller, fetch):
        match = await coordinator.cancel(as_caller(corridor["alice"]), accepted.uuid)

        assert match.status == MatchStatus.CANCELED
        assert await _statuses(fetch, corridor["listing_a"], corridor["listing_b"]) == [
            ListingStatus.ACTIVE, ListingStatus.ACTIVE,
        ]

    @pytest.mark.asyncio
    async def test_stranger_cannot_cancel(
        self, coordinator, proposed, make_user, as_caller,
    ):
        stranger = await make_user()
        with pytest.raises(AuthorizationError):
            await coordinator.cancel(as_caller(stranger), proposed.uuid)

    @pytest.mark.asyncio
    async def test_cancel_twice_conflicts(self, coordinator, corridor, proposed, as_caller):
        await coordinator.cancel(as_caller(corridor["alice"]), proposed.uuid)
        with pytest.raises(ConflictError, match="PENDING or ACCEPTED"):
            await coordinator.cancel(as_caller(corridor["bob"]), proposed.uuid)


# ===========================================================================
# CONFIRM COMPLETION
# ===========================================================================


class TestConfirmCompletion:
    @pytest.mark.asyncio
    async def test_first_confirmation_keeps_match_accepted(
        self, coordinator, corridor, accepted, as_caller, fetch,
    ):
        match = await coordinator.confirm_completion(as_caller(corridor["alice"]), accepted.uuid)

        assert match.status == MatchStatus.ACCEPTED
        assert match.initiator_confirmed_completion is True
        assert match.matched_confirmed_completion is False
        assert match.confirmation == "INITIATOR"
        assert await _statuses(fetch, corridor["listing_a"], corridor["listing_b"]) == [
            ListingStatus.PENDING, ListingStatus.PENDING,
        ]

    @pytest.mark.asyncio
    @pytest.mark.parametrize("order", [("alice", "bob"), ("bob", "alice")])
    async def test_both_confirmations_complete(
        self, coordinator, corridor, accepted, as_caller, fetch, order,
    ):
        first, second = order
        await coordinator.confirm_completion(as_caller(corridor[first]), accepted.uuid)
        match = await coordinator.confirm_completion(as_caller(corridor[second]), accepted.uuid)

        assert match.status == MatchStatus.COMPLETED
        assert match.confirmation == "BOTH"
        assert await _statuses(fetch, corridor["listing_a"], corridor["listing_b"]) == [
            ListingStatus.COMPLETED, ListingStatus.COMPLETED,
        ]

    @pytest.mark.asyncio
    async def test_same_side_twice_conflicts(self, coordinator, corridor, accepted, as_caller):
        await coordinator.confirm_completion(as_caller(corridor["bob"]), accepted.uuid)
        with pytest.raises(ConflictError, match="already confirmed"):
            await coordinator.confirm_completion(as_caller(corridor["bob"]), accepted.uuid)

    @pytest.mark.asyncio
    async def test_requires_accepted(self, coordinator, corridor, proposed, as_caller):
        with pytest.raises(ConflictError, match="Required status: ACCEPTED"):
            await coordinator.confirm_completion(as_caller(corridor["alice"]), proposed.uuid)

    @pytest.mark.asyncio
    async def test_stranger_cannot_confirm(
        self, coordinator, accepted, make_user, as_caller,
    ):
        stranger = await make_user()
        with pytest.raises(AuthorizationError):
            await coordinator.confirm_completion(as_caller(stranger), accepted.uuid)

    @pytest.mark.asyncio
    async def test_completed_match_is_final(self, coordinator, corridor, accepted, as_caller):
        await coordinator.confirm_completion(as_caller(corridor["alice"]), accepted.uuid)
        await coordinator.confirm_completion(as_caller(corridor["bob"]), accepted.uuid)

        with pytest.raises(ConflictError):
            await coordinator.cancel(as_caller(corridor["alice"]), accepted.uuid)


# ===========================================================================
# ROLLBACK AND CONCURRENCY MAPPING
# ===========================================================================


class TestConcurrencyGuards:
    @pytest.mark.asyncio
    async def test_racing_proposals_bind_listing_once(
        self, coordinator, corridor, make_user, make_listing, as_caller, fetch, session_factory,
    ):
        """Two proposals for Bob's listing at once: one match, one conflict."""
        carol = await make_user(name="Carol Mbah")
        carol_sell = await make_listing(carol)

        results = await asyncio.gather(
            coordinator.propose(
                as_caller(corridor["alice"]), corridor["listing_a"].uuid, corridor["listing_b"].uuid,
            ),
            coordinator.propose(as_caller(carol), carol_sell.uuid, corridor["listing_b"].uuid),
            return_exceptions=True,
        )

        assert len([r for r in results if isinstance(r, MatchRead)]) == 1
        assert len([r for r in results if isinstance(r, ConflictError)]) == 1
        assert await _match_count(session_factory) == 1

        statuses = await _statuses(fetch, corridor["listing_a"], carol_sell)
        assert sorted(s.value for s in statuses) == ["ACTIVE", "PENDING"]
        assert (await fetch(Listing, corridor["listing_b"].id)).status == ListingStatus.PENDING

    @pytest.mark.asyncio
    async def test_stale_listing_write_is_concurrency_conflict(
        self, coordinator, corridor, as_caller, fetch, session_factory, monkeypatch,
    ):
        """A row changed after it was read makes the whole proposal roll back."""
        original = match_store.find_live_match

        async def racing_find_live_match(session, listing_ids):
            await session.execute(
                text("UPDATE listings SET version_id = version_id + 1 WHERE id = :id"),
                {"id": corridor["listing_b"].id},
            )
            return await original(session, listing_ids)

        monkeypatch.setattr(match_store, "find_live_match", racing_find_live_match)

        with pytest.raises(ConcurrencyConflictError):
            await coordinator.propose(
                as_caller(corridor["alice"]),
                corridor["listing_a"].uuid,
                corridor["listing_b"].uuid,
            )

        assert await _match_count(session_factory) == 0
        assert await _statuses(fetch, corridor["listing_a"], corridor["listing_b"]) == [
            ListingStatus.ACTIVE, ListingStatus.ACTIVE,
        ]
        assert (await fetch(Listing, corridor["listing_b"].id)).version_id == 1

    @pytest.mark.asyncio
    async def test_lock_timeout_is_concurrency_conflict(
        self, coordinator, corridor, as_caller, monkeypatch,
    ):
        async def locked_out(session, listing_ids):
            raise OperationalError(
                "SELECT", {}, _DriverError("canceling statement due to lock timeout", "55P03"),
            )

        monkeypatch.setattr(match_store, "find_live_match", locked_out)

        with pytest.raises(ConcurrencyConflictError) as exc_info:
            await coordinator.propose(
                as_caller(corridor["alice"]),
                corridor["listing_a"].uuid,
                corridor["listing_b"].uuid,
            )
        assert exc_info.value.status_code == 409

    @pytest.mark.asyncio
    async def test_storage_failure_is_unexpected(
        self, coordinator, corridor, as_caller, fetch, monkeypatch,
    ):
        async def broken(session, listing_ids):
            raise SQLAlchemyError("connection reset")

        monkeypatch.setattr(match_store, "find_live_match", broken)

        with pytest.raises(UnexpectedError):
            await coordinator.propose(
                as_caller(corridor["alice"]),
                corridor["listing_a"].uuid,
                corridor["listing_b"].uuid,
            )
        assert await _statuses(fetch, corridor["listing_a"], corridor["listing_b"]) == [
            ListingStatus.ACTIVE, ListingStatus.ACTIVE,
        ]


class TestIsLockConflict:
    @pytest.mark.parametrize("sqlstate", ["55P03", "40001", "40P01"])
    def test_postgres_lock_states(self, sqlstate):
        exc = OperationalError("SELECT", {}, _DriverError("boom", sqlstate))
        assert is_lock_conflict(exc)

    def test_sqlite_busy(self):
        exc = OperationalError("UPDATE", {}, _DriverError("database is locked"))
        assert is_lock_conflict(exc)

    def test_other_errors(self):
        exc = OperationalError("SELECT", {}, _DriverError("relation does not exist", "42P01"))
        assert not is_lock_conflict(exc)
