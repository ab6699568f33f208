"""
Match model — a proposal pairing two listings owned by different users.

The initiator proposes with their own listing against someone else's
(the "matched" listing, whose owner is the recipient). A match then moves
along MATCH_TRANSITIONS; completion needs both sides to confirm.
"""

import enum
from uuid import UUID, uuid4
from datetime import datetime, timezone

from sqlalchemy import (
    Boolean,
    DateTime,
    ForeignKey,
    Integer,
    Uuid,
    Enum as SAEnum,
    event,
)
from sqlalchemy.orm import Mapped, mapped_column, relationship

from p2pswap.core.errors import ConflictError
from p2pswap.database import Base

# ---------------------------------------------------------------------------
# Enums
# ---------------------------------------------------------------------------


class MatchStatus(str, enum.Enum):
    PENDING = "PENDING"
    ACCEPTED = "ACCEPTED"
    REJECTED = "REJECTED"
    CANCELED = "CANCELED"
    COMPLETED = "COMPLETED"
    DISPUTED = "DISPUTED"


LIVE_MATCH_STATUSES = (MatchStatus.PENDING, MatchStatus.ACCEPTED)


class Confirmation(enum.Flag):
    """Which sides have confirmed completion of an accepted match."""

    NONE = 0
    INITIATOR = enum.auto()
    RECIPIENT = enum.auto()
    BOTH = INITIATOR | RECIPIENT


# ---------------------------------------------------------------------------
# Status transition map
# ---------------------------------------------------------------------------

# DISPUTED is reserved: nothing moves into or out of it yet.
MATCH_TRANSITIONS: dict[MatchStatus, set[MatchStatus]] = {
    MatchStatus.PENDING: {
        MatchStatus.ACCEPTED,
        MatchStatus.REJECTED,
        MatchStatus.CANCELED,
    },
    MatchStatus.ACCEPTED: {
        MatchStatus.COMPLETED,
        MatchStatus.CANCELED,
    },
    MatchStatus.REJECTED: set(),
    MatchStatus.CANCELED: set(),
    MatchStatus.COMPLETED: set(),
    MatchStatus.DISPUTED: set(),
}


# ---------------------------------------------------------------------------
# Model
# ---------------------------------------------------------------------------


class Match(Base):
    __tablename__ = "matches"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    uuid: Mapped[UUID] = mapped_column(
        Uuid, unique=True, index=True, nullable=False, default=uuid4,
    )

    initiator_id: Mapped[int] = mapped_column(
        Integer, ForeignKey("users.id"), index=True, nullable=False,
    )
    initiator_listing_id: Mapped[int] = mapped_column(
        Integer, ForeignKey("listings.id"), index=True, nullable=False,
    )
    matched_listing_id: Mapped[int] = mapped_column(
        Integer, ForeignKey("listings.id"), index=True, nullable=False,
    )

    status: Mapped[MatchStatus] = mapped_column(
        SAEnum(MatchStatus, name="matchstatus"),
        default=MatchStatus.PENDING,
        index=True,
    )
    initiator_confirmed_completion: Mapped[bool] = mapped_column(Boolean, default=False)
    matched_confirmed_completion: Mapped[bool] = mapped_column(Boolean, default=False)
    version_id: Mapped[int] = mapped_column(Integer, nullable=False)

    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        default=lambda: datetime.now(timezone.utc),
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        default=lambda: datetime.now(timezone.utc),
        onupdate=lambda: datetime.now(timezone.utc),
    )

    # Relationships
    initiator = relationship("User", foreign_keys=[initiator_id])
    initiator_listing = relationship("Listing", foreign_keys=[initiator_listing_id])
    matched_listing = relationship("Listing", foreign_keys=[matched_listing_id])

    __mapper_args__ = {"version_id_col": version_id}

    # ------------------------------------------------------------------
    # Status transition validation
    # ------------------------------------------------------------------

    @staticmethod
    def is_valid_transition(from_status: MatchStatus, to_status: MatchStatus) -> bool:
        """Check whether a match status transition is allowed."""
        return to_status in MATCH_TRANSITIONS.get(from_status, set())

    def require_status(self, action: str, *allowed: MatchStatus) -> None:
        """Raise ConflictError naming current vs. required status."""
        if self.status not in allowed:
            required = " or ".join(s.value for s in allowed)
            raise ConflictError(
                f"Match cannot be {action}. Current status: {self.status.value}. "
                f"Required status: {required}."
            )

    def transition_to(self, new_status: MatchStatus) -> None:
        """
        Transition to *new_status* if the move is valid.

        Completion additionally needs both confirmations recorded.
        """
        if not self.is_valid_transition(self.status, new_status):
            raise ConflictError(
                f"Invalid transition: {self.status.value} -> {new_status.value}"
            )
        if new_status == MatchStatus.COMPLETED and self.confirmation != Confirmation.BOTH:
            raise ConflictError("Match cannot complete before both sides confirm.")
        self.status = new_status

    # ------------------------------------------------------------------
    # Completion confirmations
    # ------------------------------------------------------------------

    @property
    def confirmation(self) -> Confirmation:
        state = Confirmation.NONE
        if self.initiator_confirmed_completion:
            state |= Confirmation.INITIATOR
        if self.matched_confirmed_completion:
            state |= Confirmation.RECIPIENT
        return state

    def record_confirmation(self, side: Confirmation) -> Confirmation:
        """Set one side's flag and return the resulting two-side state."""
        if side not in (Confirmation.INITIATOR, Confirmation.RECIPIENT):
            raise ValueError(f"Unknown confirmation side: {side!r}")
        if side in self.confirmation:
            raise ConflictError("You have already confirmed completion for this match.")
        if side is Confirmation.INITIATOR:
            self.initiator_confirmed_completion = True
        else:
            self.matched_confirmed_completion = True
        return self.confirmation

    def __repr__(self) -> str:
        return (
            f"<Match {self.uuid} "
            f"{self.initiator_listing_id}<->{self.matched_listing_id} "
            f"status={self.status.value if self.status else 'N/A'}>"
        )


@event.listens_for(Match, "init")
def _set_match_defaults(target, args, kwargs):
    if "uuid" not in kwargs:
        target.uuid = uuid4()
    if "status" not in kwargs:
        target.status = MatchStatus.PENDING
    if "initiator_confirmed_completion" not in kwargs:
        target.initiator_confirmed_completion = False
    if "matched_confirmed_completion" not in kwargs:
        target.matched_confirmed_completion = False
    created_at = kwargs.get("created_at") or datetime.now(timezone.utc)
    if "created_at" not in kwargs:
        target.created_at = created_at
    if "updated_at" not in kwargs:
        target.updated_at = created_at
