"""
Complementary-listing predicates.

A candidate complements one of the caller's listings when it is the other
side of the same trade in the same remittance corridor:

* opposite direction (BUY <-> SELL)
* reversed currency pair
* owner shares the caller's country of origin
* owner lives in the caller's country of residence
* ACTIVE, unexpired, and owned by someone else

Amounts are not compared; they are negotiated after a match
is proposed. The per-listing predicates are OR-ed into one clause that the
engine reuses verbatim for both the page query and the count query.
"""

from __future__ import annotations

from datetime import datetime

from sqlalchemy import ColumnElement, and_, or_

from p2pswap.models.listing import Listing, ListingStatus
from p2pswap.models.user import User


def complement_of(own: Listing) -> ColumnElement[bool]:
    """Listing-specific half of the filter for one of the caller's listings."""
    return and_(
        Listing.type == own.type.opposite,
        Listing.currency_from == own.currency_to,
        Listing.currency_to == own.currency_from,
        User.country_of_origin == own.user.country_of_origin,
    )


def candidate_predicate(
    own_listings: list[Listing],
    user_id: int,
    country_of_residence: str,
    now: datetime,
) -> ColumnElement[bool]:
    """
    Build the full WHERE clause over ``Listing JOIN User``.

    *own_listings* must be non-empty: an empty OR would either match
    nothing or, on some backends, everything.
    """
    if not own_listings:
        raise ValueError("candidate_predicate needs at least one listing")

    return and_(
        Listing.status == ListingStatus.ACTIVE,
        Listing.expires_at > now,
        Listing.user_id != user_id,
        User.country_of_residence == country_of_residence,
        or_(*(complement_of(own) for own in own_listings)),
    )
