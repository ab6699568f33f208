"""
Pydantic schemas for listing creation, candidate queries, and responses.
"""

from datetime import datetime
from decimal import Decimal
from typing import Literal
from uuid import UUID

from pydantic import BaseModel, ConfigDict, Field, field_validator, model_validator
from pydantic.alias_generators import to_camel

from p2pswap.matching_engine.config import (
    DEFAULT_PAGE_SIZE,
    DEFAULT_SORT_FIELD,
    DEFAULT_SORT_ORDER,
    MAX_PAGE,
    MAX_PAGE_SIZE,
    SORT_FIELDS,
)
from p2pswap.models.listing import ListingStatus, ListingType
from p2pswap.schemas.common import Pagination


# ---------------------------------------------------------------------------
# Create
# ---------------------------------------------------------------------------


class ListingCreate(BaseModel):
    """Schema for publishing a new listing. ``location`` is never accepted."""
    currency_from: str = Field(..., min_length=3, max_length=3, examples=["USD"])
    currency_to: str = Field(..., min_length=3, max_length=3, examples=["EUR"])
    amount_from: Decimal = Field(..., gt=0, examples=[500])
    amount_to: Decimal = Field(..., gt=0, examples=[460])
    exchange_rate: Decimal | None = Field(None, gt=0)
    type: ListingType
    payment_method: str = Field(..., min_length=1, max_length=100, examples=["Bank transfer"])
    description: str | None = Field(None, max_length=2000)

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True, extra="ignore")

    @field_validator("currency_from", "currency_to")
    @classmethod
    def normalize_currency(cls, v: str) -> str:
        if not v.isalpha():
            raise ValueError("Currency must be a 3-letter code")
        return v.upper()

    @field_validator("type", mode="before")
    @classmethod
    def normalize_type(cls, v):
        return v.upper() if isinstance(v, str) else v

    @field_validator("payment_method")
    @classmethod
    def payment_method_not_blank(cls, v: str) -> str:
        if not v.strip():
            raise ValueError("Payment method is required")
        return v.strip()

    @model_validator(mode="after")
    def currencies_differ(self) -> "ListingCreate":
        if self.currency_from == self.currency_to:
            raise ValueError("currency_from and currency_to must differ")
        return self


# ---------------------------------------------------------------------------
# Candidate query
# ---------------------------------------------------------------------------


class CandidateQuery(BaseModel):
    """Pagination and ordering for matching-candidate discovery."""
    page: int = Field(1, ge=1, le=MAX_PAGE)
    limit: int = Field(DEFAULT_PAGE_SIZE, ge=1, le=MAX_PAGE_SIZE)
    sort_by: str = DEFAULT_SORT_FIELD
    sort_order: Literal["asc", "desc"] = DEFAULT_SORT_ORDER

    @field_validator("sort_by")
    @classmethod
    def sort_field_allowed(cls, v: str) -> str:
        if v not in SORT_FIELDS:
            allowed = ", ".join(sorted(set(SORT_FIELDS.values())))
            raise ValueError(f"Invalid sort field. Must be one of: {allowed}")
        return SORT_FIELDS[v]


# ---------------------------------------------------------------------------
# Responses
# ---------------------------------------------------------------------------


class UserSummary(BaseModel):
    """Public view of a listing owner or match initiator."""
    uuid: UUID
    name: str
    country_of_origin: str

    model_config = {"from_attributes": True}


class ListingRead(BaseModel):
    """Schema returned when reading listing data."""
    uuid: UUID
    type: ListingType
    currency_from: str
    currency_to: str
    amount_from: Decimal
    amount_to: Decimal
    exchange_rate: Decimal | None
    payment_method: str
    description: str | None
    location: str
    status: ListingStatus
    created_at: datetime
    updated_at: datetime
    expires_at: datetime
    user: UserSummary

    model_config = {"from_attributes": True}


class ListingPage(BaseModel):
    """A page of matching candidates."""
    items: list[ListingRead]
    pagination: Pagination
