"""
Development seeder — populates the database with a working corridor.

Usage:
    python scripts/seed_data.py

Creates:
  - 6 users: 4 Cameroonians living in the USA, 2 Nigerians living in the UK
  - 8 ACTIVE listings, so every user has at least one complementary offer
  - prints a bearer token per user for trying the API

Idempotent: existing emails are reused and their listings left alone.
"""

import asyncio
from decimal import Decimal

from sqlalchemy import select

from p2pswap.core.security import create_access_token
from p2pswap.database import async_session
from p2pswap.models.listing import Listing, ListingType
from p2pswap.models.user import User

# ---------------------------------------------------------------------------
# Users in two corridors
# ---------------------------------------------------------------------------

SAMPLE_USERS: list[dict] = [
    # --- Cameroon -> USA ----------------------------------------------------
    {"email": "amara@example.com", "name": "Amara Nkeng",
     "country_of_origin": "Cameroon", "country_of_residence": "USA"},
    {"email": "bertrand@example.com", "name": "Bertrand Fotso",
     "country_of_origin": "Cameroon", "country_of_residence": "USA"},
    {"email": "clarisse@example.com", "name": "Clarisse Mbah",
     "country_of_origin": "Cameroon", "country_of_residence": "USA"},
    {"email": "desire@example.com", "name": "Desire Tchami",
     "country_of_origin": "Cameroon", "country_of_residence": "USA"},
    # --- Nigeria -> UK --------------------------------------------------------
    {"email": "emeka@example.com", "name": "Emeka Okafor",
     "country_of_origin": "Nigeria", "country_of_residence": "UK"},
    {"email": "funke@example.com", "name": "Funke Adeyemi",
     "country_of_origin": "Nigeria", "country_of_residence": "UK"},
]

# (user index, type, from, to, amount_from, amount_to, payment method)
SAMPLE_LISTINGS: list[tuple] = [
    (0, ListingType.SELL, "USD", "EUR", "500.00", "460.00", "Zelle"),
    (1, ListingType.BUY, "EUR", "USD", "460.00", "500.00", "Bank transfer"),
    (2, ListingType.SELL, "USD", "XAF", "300.00", "180000.00", "Mobile money"),
    (3, ListingType.BUY, "XAF", "USD", "120000.00", "200.00", "Mobile money"),
    (3, ListingType.BUY, "EUR", "USD", "920.00", "1000.00", "Wise"),
    (4, ListingType.SELL, "GBP", "NGN", "250.00", "480000.00", "Bank transfer"),
    (5, ListingType.BUY, "NGN", "GBP", "960000.00", "500.00", "Bank transfer"),
    (5, ListingType.SELL, "GBP", "NGN", "100.00", "192000.00", "Cash"),
]


# ---------------------------------------------------------------------------
# Main seed routine
# ---------------------------------------------------------------------------


async def seed() -> None:
    """Insert sample data into the database. Safe to run multiple times."""

    async with async_session() as session:
        # ==================================================================
        # 1. USERS
        # ==================================================================

        existing = {
            u.email: u
            for u in (await session.execute(select(User))).scalars().all()
        }

        users: list[User] = []
        new_users: set[int] = set()
        for idx, data in enumerate(SAMPLE_USERS):
            user = existing.get(data["email"])
            if user is None:
                user = User(**data)
                session.add(user)
                new_users.add(idx)
            users.append(user)

        # Flush so user IDs are usable for FK relationships
        await session.flush()
        print(f"  Users: {len(new_users)} new, {len(users) - len(new_users)} existing")

        # ==================================================================
        # 2. LISTINGS (only for newly created users)
        # ==================================================================

        created = 0
        for owner_idx, kind, cur_from, cur_to, amt_from, amt_to, method in SAMPLE_LISTINGS:
            if owner_idx not in new_users:
                continue
            owner = users[owner_idx]
            session.add(
                Listing(
                    user=owner,
                    type=kind,
                    currency_from=cur_from,
                    currency_to=cur_to,
                    amount_from=Decimal(amt_from),
                    amount_to=Decimal(amt_to),
                    payment_method=method,
                    location=owner.country_of_residence,
                )
            )
            created += 1

        await session.flush()
        print(f"  Listings: {created} new")

        await session.commit()
        _print_summary(users)


def _print_summary(users: list[User]) -> None:
    """Print seeded users with a bearer token each, when tokens can be minted."""
    print("\n  Seed complete!")
    for user in users:
        corridor = f"{user.country_of_origin}/{user.country_of_residence}"
        print(f"    {user.email:<24} {corridor}")
        try:
            token = create_access_token(user.uuid)
        except RuntimeError:
            print("  No private key loaded; run scripts/generate_keys.py to print tokens.")
            return
        print(f"      Bearer {token}")


if __name__ == "__main__":
    asyncio.run(seed())
