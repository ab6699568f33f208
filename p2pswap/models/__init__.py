"""SQLAlchemy ORM models for P2P Swap."""

from p2pswap.models.user import User
from p2pswap.models.listing import Listing, ListingStatus, ListingType
from p2pswap.models.match import Confirmation, Match, MatchStatus

__all__ = [
    "User",
    "Listing", "ListingStatus", "ListingType",
    "Match", "MatchStatus", "Confirmation",
]
