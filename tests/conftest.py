"""
Shared test fixtures for P2P Swap.

Provides a throwaway SQLite database (via aiosqlite), user/listing
factories, an async test client wired to that database, and RSA key
fixtures for JWT testing.
"""

from decimal import Decimal
from uuid import uuid4

import pytest
import pytest_asyncio
from cryptography.hazmat.primitives import serialization
from cryptography.hazmat.primitives.asymmetric import rsa
from httpx import ASGITransport, AsyncClient
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine

import p2pswap.models  # noqa: F401  (registers every table on Base.metadata)
from p2pswap.api.deps import get_match_coordinator
from p2pswap.core import security
from p2pswap.database import Base, get_db
from p2pswap.models.listing import Listing, ListingType
from p2pswap.models.user import User
from p2pswap.schemas.common import CallerIdentity
from p2pswap.services.match_coordinator import MatchCoordinator


# --- RSA Key Fixtures ---


@pytest.fixture(scope="session")
def test_rsa_keys():
    """Generate a temporary RSA keypair for test JWT signing."""
    private_key = rsa.generate_private_key(public_exponent=65537, key_size=2048)

    private_pem = private_key.private_bytes(
        encoding=serialization.Encoding.PEM,
        format=serialization.PrivateFormat.PKCS8,
        encryption_algorithm=serialization.NoEncryption(),
    )
    public_pem = private_key.public_key().public_bytes(
        encoding=serialization.Encoding.PEM,
        format=serialization.PublicFormat.SubjectPublicKeyInfo,
    )

    return {"private_key": private_pem, "public_key": public_pem}


@pytest.fixture(autouse=True)
def security_with_keys(test_rsa_keys):
    """Configure token verification to use test RSA keys for every test."""
    security.configure_keys(
        signing_key=test_rsa_keys["private_key"],
        verifying_key=test_rsa_keys["public_key"],
        algorithm="RS256",
    )


# --- Database ---


@pytest_asyncio.fixture
async def db_engine(tmp_path):
    """File-backed SQLite so every session gets its own connection."""
    engine = create_async_engine(f"sqlite+aiosqlite:///{tmp_path / 'p2pswap.db'}")
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    yield engine
    await engine.dispose()


@pytest.fixture
def session_factory(db_engine):
    return async_sessionmaker(db_engine, class_=AsyncSession, expire_on_commit=False)


@pytest_asyncio.fixture
async def db_session(session_factory):
    async with session_factory() as session:
        yield session


@pytest.fixture
def coordinator(session_factory):
    """MatchCoordinator bound to the test database."""
    return MatchCoordinator(session_factory=session_factory)


# --- Factories ---


@pytest.fixture
def make_user(session_factory):
    """Factory fixture: insert and commit a User (Cameroon/USA by default)."""

    async def _make(**overrides) -> User:
        defaults = {
            "email": f"{uuid4().hex[:10]}@example.com",
            "name": "Amara Nkeng",
            "country_of_origin": "Cameroon",
            "country_of_residence": "USA",
        }
        defaults.update(overrides)
        async with session_factory() as session:
            user = User(**defaults)
            session.add(user)
            await session.commit()
        return user

    return _make


@pytest.fixture
def make_listing(session_factory):
    """Factory fixture: insert and commit a Listing owned by *user* (SELL USD->EUR by default)."""

    async def _make(user: User, **overrides) -> Listing:
        defaults = {
            "user_id": user.id,
            "type": ListingType.SELL,
            "currency_from": "USD",
            "currency_to": "EUR",
            "amount_from": Decimal("500.00"),
            "amount_to": Decimal("460.00"),
            "payment_method": "Zelle",
            "location": user.country_of_residence,
        }
        defaults.update(overrides)
        async with session_factory() as session:
            listing = Listing(**defaults)
            session.add(listing)
            await session.commit()
        return listing

    return _make


@pytest.fixture
def fetch(session_factory):
    """Re-read a row in a fresh session."""

    async def _fetch(model, pk):
        async with session_factory() as session:
            return await session.get(model, pk)

    return _fetch


def caller_for(user: User) -> CallerIdentity:
    return CallerIdentity(
        user_id=user.id,
        user_uuid=user.uuid,
        country_of_residence=user.country_of_residence,
    )


@pytest.fixture
def as_caller():
    return caller_for


# --- Scenario data: one remittance corridor ---


@pytest_asyncio.fixture
async def corridor(make_user, make_listing):
    """
    Alice sells USD for EUR, Bob buys USD with EUR; both are Cameroonians
    living in the USA.
    """
    alice = await make_user(name="Alice Nkeng", email="alice@example.com")
    bob = await make_user(name="Bob Fotso", email="bob@example.com")
    listing_a = await make_listing(alice)
    listing_b = await make_listing(
        bob,
        type=ListingType.BUY,
        currency_from="EUR",
        currency_to="USD",
        amount_from=Decimal("460.00"),
        amount_to=Decimal("500.00"),
        payment_method="Bank transfer",
    )
    return {"alice": alice, "bob": bob, "listing_a": listing_a, "listing_b": listing_b}


# --- Dependency Override Helpers ---


@pytest_asyncio.fixture
async def client(session_factory, coordinator):
    """
    Async HTTP test client with get_db and get_match_coordinator overridden
    to use the test database.
    """
    from p2pswap.main import app

    async def override_get_db():
        async with session_factory() as session:
            try:
                yield session
                await session.commit()
            except Exception:
                await session.rollback()
                raise

    app.dependency_overrides[get_db] = override_get_db
    app.dependency_overrides[get_match_coordinator] = lambda: coordinator

    transport = ASGITransport(app=app)
    async with AsyncClient(transport=transport, base_url="http://test") as ac:
        yield ac

    app.dependency_overrides.clear()


@pytest.fixture
def auth_headers():
    """Build an Authorization header for a user."""

    def _headers(user: User) -> dict:
        return {"Authorization": f"Bearer {security.create_access_token(user.uuid)}"}

    return _headers
