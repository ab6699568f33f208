"""
Listing model — an offer to exchange one currency for another.

- Public UUID for every external reference, integer id internally
- Expires one calendar month after creation
- Status moves only along LISTING_TRANSITIONS; once a match references
  the listing, the match coordinator is its only writer
- ``version_id`` guards every UPDATE against concurrent writers
"""

import calendar
import enum
from uuid import UUID, uuid4
from datetime import datetime, timezone
from decimal import Decimal

from sqlalchemy import (
    CheckConstraint,
    DateTime,
    ForeignKey,
    Integer,
    Numeric,
    String,
    Text,
    Uuid,
    Enum as SAEnum,
    event,
)
from sqlalchemy.orm import Mapped, mapped_column, relationship

from p2pswap.config import settings
from p2pswap.core.errors import ConflictError
from p2pswap.database import Base

# ---------------------------------------------------------------------------
# Enums
# ---------------------------------------------------------------------------


class ListingType(str, enum.Enum):
    BUY = "BUY"
    SELL = "SELL"

    @property
    def opposite(self) -> "ListingType":
        return ListingType.SELL if self is ListingType.BUY else ListingType.BUY


class ListingStatus(str, enum.Enum):
    ACTIVE = "ACTIVE"
    PENDING = "PENDING"
    COMPLETED = "COMPLETED"
    CANCELED = "CANCELED"


# ---------------------------------------------------------------------------
# Status transition map
# ---------------------------------------------------------------------------

# No match operation cancels a listing; CANCELED has no inbound edge.
LISTING_TRANSITIONS: dict[ListingStatus, set[ListingStatus]] = {
    ListingStatus.ACTIVE: {
        ListingStatus.PENDING,
    },
    ListingStatus.PENDING: {
        ListingStatus.ACTIVE,
        ListingStatus.COMPLETED,
    },
    ListingStatus.COMPLETED: set(),
    ListingStatus.CANCELED: set(),
}


# ---------------------------------------------------------------------------
# Time helpers
# ---------------------------------------------------------------------------


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


def as_utc(moment: datetime) -> datetime:
    """Attach UTC to naive datetimes (SQLite drops the offset on storage)."""
    if moment.tzinfo is None:
        return moment.replace(tzinfo=timezone.utc)
    return moment


def add_months(moment: datetime, months: int) -> datetime:
    """Calendar-month arithmetic, clamping the day (Jan 31 + 1 month -> Feb 28/29)."""
    month_index = moment.month - 1 + months
    year = moment.year + month_index // 12
    month = month_index % 12 + 1
    day = min(moment.day, calendar.monthrange(year, month)[1])
    return moment.replace(year=year, month=month, day=day)


# ---------------------------------------------------------------------------
# Model
# ---------------------------------------------------------------------------


class Listing(Base):
    __tablename__ = "listings"
    __table_args__ = (
        CheckConstraint("amount_from > 0", name="ck_listings_amount_from_positive"),
        CheckConstraint("amount_to > 0", name="ck_listings_amount_to_positive"),
    )

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    uuid: Mapped[UUID] = mapped_column(
        Uuid, unique=True, index=True, nullable=False, default=uuid4,
    )

    # Owner
    user_id: Mapped[int] = mapped_column(
        Integer, ForeignKey("users.id"), index=True, nullable=False,
    )

    # Offer
    type: Mapped[ListingType] = mapped_column(
        SAEnum(ListingType, name="listingtype"), nullable=False,
    )
    currency_from: Mapped[str] = mapped_column(String(3), nullable=False)
    currency_to: Mapped[str] = mapped_column(String(3), nullable=False)
    amount_from: Mapped[Decimal] = mapped_column(
        Numeric(precision=18, scale=2), nullable=False,
    )
    amount_to: Mapped[Decimal] = mapped_column(
        Numeric(precision=18, scale=2), nullable=False,
    )
    exchange_rate: Mapped[Decimal | None] = mapped_column(
        Numeric(precision=12, scale=6), nullable=True,
    )
    payment_method: Mapped[str] = mapped_column(String(100), nullable=False)
    description: Mapped[str | None] = mapped_column(Text)
    location: Mapped[str] = mapped_column(String(100), nullable=False)

    # Status
    status: Mapped[ListingStatus] = mapped_column(
        SAEnum(ListingStatus, name="listingstatus"),
        default=ListingStatus.ACTIVE,
        index=True,
    )
    version_id: Mapped[int] = mapped_column(Integer, nullable=False)

    # Timestamps (timezone-aware)
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), default=utcnow,
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), default=utcnow, onupdate=utcnow,
    )
    expires_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False,
    )

    # Relationships
    user = relationship("User")

    __mapper_args__ = {"version_id_col": version_id}

    # ------------------------------------------------------------------
    # Availability
    # ------------------------------------------------------------------

    def is_expired(self, now: datetime | None = None) -> bool:
        return as_utc(self.expires_at) <= (now or utcnow())

    def is_available(self, now: datetime | None = None) -> bool:
        """Active and not yet expired; only such listings can join a new match."""
        return self.status == ListingStatus.ACTIVE and not self.is_expired(now)

    # ------------------------------------------------------------------
    # Status transition validation
    # ------------------------------------------------------------------

    @staticmethod
    def is_valid_transition(from_status: ListingStatus, to_status: ListingStatus) -> bool:
        """Check whether a listing status transition is allowed."""
        return to_status in LISTING_TRANSITIONS.get(from_status, set())

    def transition_to(self, new_status: ListingStatus) -> None:
        """
        Transition to *new_status* if the move is valid.

        Raises ConflictError if the transition is not allowed.
        """
        if not self.is_valid_transition(self.status, new_status):
            raise ConflictError(
                f"Listing {self.uuid} cannot move from {self.status.value} "
                f"to {new_status.value}."
            )
        self.status = new_status

    def __repr__(self) -> str:
        return (
            f"<Listing {self.uuid} {self.type.value if self.type else 'N/A'} "
            f"{self.currency_from}->{self.currency_to} "
            f"status={self.status.value if self.status else 'N/A'}>"
        )


# ---------------------------------------------------------------------------
# Auto-set Python-side defaults on construction
# ---------------------------------------------------------------------------


@event.listens_for(Listing, "init")
def _set_listing_defaults(target, args, kwargs):
    if "uuid" not in kwargs:
        target.uuid = uuid4()
    if "status" not in kwargs:
        target.status = ListingStatus.ACTIVE
    # kwargs are applied to target after this hook runs
    created_at = kwargs.get("created_at") or utcnow()
    if "created_at" not in kwargs:
        target.created_at = created_at
    if "updated_at" not in kwargs:
        target.updated_at = created_at
    if "expires_at" not in kwargs:
        target.expires_at = add_months(as_utc(created_at), settings.LISTING_LIFETIME_MONTHS)
