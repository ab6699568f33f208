"""
Pydantic schemas for match proposals, queries, and responses.
"""

from datetime import datetime
from uuid import UUID

from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel

from p2pswap.matching_engine.config import DEFAULT_PAGE_SIZE, MAX_PAGE, MAX_PAGE_SIZE
from p2pswap.models.listing import Listing
from p2pswap.models.match import Match, MatchStatus
from p2pswap.schemas.common import Pagination
from p2pswap.schemas.listing import ListingRead, UserSummary


class MatchProposal(BaseModel):
    """Schema for proposing a match: caller's listing against another user's."""
    initiator_listing_uuid: UUID
    matched_listing_uuid: UUID

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


class MatchReference(BaseModel):
    """Validated match identifier for lifecycle operations."""
    match_uuid: UUID


class MatchListQuery(BaseModel):
    """Pagination and status filter for listing a user's matches."""
    page: int = Field(1, ge=1, le=MAX_PAGE)
    limit: int = Field(DEFAULT_PAGE_SIZE, ge=1, le=MAX_PAGE_SIZE)
    status: MatchStatus | None = None


class MatchRead(BaseModel):
    """Schema returned when reading match data."""
    uuid: UUID
    status: MatchStatus
    initiator: UserSummary
    initiator_listing: ListingRead
    matched_listing: ListingRead
    initiator_confirmed_completion: bool
    matched_confirmed_completion: bool
    confirmation: str
    created_at: datetime
    updated_at: datetime

    @classmethod
    def from_records(
        cls, match: Match, initiator_listing: Listing, matched_listing: Listing,
    ) -> "MatchRead":
        """Build from ORM rows already loaded in the current session."""
        return cls(
            uuid=match.uuid,
            status=match.status,
            initiator=UserSummary.model_validate(initiator_listing.user),
            initiator_listing=ListingRead.model_validate(initiator_listing),
            matched_listing=ListingRead.model_validate(matched_listing),
            initiator_confirmed_completion=match.initiator_confirmed_completion,
            matched_confirmed_completion=match.matched_confirmed_completion,
            confirmation=match.confirmation.name,
            created_at=match.created_at,
            updated_at=match.updated_at,
        )


class MatchPage(BaseModel):
    """A page of the caller's matches."""
    items: list[MatchRead]
    pagination: Pagination
