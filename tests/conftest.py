# tests/conftest.py
import pytest

from plastik.core.config import Settings
from plastik.database import Base, build_engine, build_sessionmaker
from plastik.models import InventorySyncEvent, Order, OrderItem  # noqa: F401  (registers tables)
from plastik.services.cache import InMemoryCache
from plastik.services.discogs import DiscogsClient, InventoryService, build_release_batcher
from tests.mocks import FakeDiscogs, make_listing, make_release

WEBHOOK_SECRET = "whsec_test_secret"
SHOPPER_TOKEN_SECRET = "test-shopper-token-secret-0123456789abcdef"


@pytest.fixture
def settings(tmp_path):
    """Provide test settings (SQLite file database, in-memory cache, no real credentials)"""
    return Settings(
        DATABASE_URL=f"sqlite+aiosqlite:///{tmp_path / 'plastik_test.db'}",
        SECRET_KEY=SHOPPER_TOKEN_SECRET,
        ADMIN_USERNAME="admin",
        ADMIN_PASSWORD="test-password",
        DISCOGS_API_TOKEN="test-token",
        DISCOGS_USERNAME="plastik-records",
        DISCOGS_MAX_ATTEMPTS=3,
        DISCOGS_BACKOFF_SECONDS=0,
        REDIS_URL="memory://",
        BATCH_MAX_SIZE=10,
        BATCH_MAX_WAIT_SECONDS=0.01,
        STRIPE_SECRET_KEY="sk_test_dummy",
        STRIPE_WEBHOOK_SECRET=WEBHOOK_SECRET,
    )


@pytest.fixture(scope="function")
async def test_engine(settings):
    """Create the schema on a throwaway SQLite file for each test."""
    engine = build_engine(settings.DATABASE_URL)
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    yield engine
    await engine.dispose()


@pytest.fixture
def session_factory(test_engine):
    return build_sessionmaker(test_engine)


@pytest.fixture
async def db_session(session_factory):
    """Provide a database session for tests"""
    async with session_factory() as session:
        yield session
        await session.rollback()


@pytest.fixture
def memory_cache():
    return InMemoryCache()


@pytest.fixture
def fake_discogs():
    """A small seller inventory: four records for sale, one sold out."""
    listings = [
        make_listing(1001, "Selected Ambient Works 85-92", artist="Aphex Twin", price=35.0,
                     posted="2024-03-01T10:00:00-00:00", genre=["Electronic"]),
        make_listing(1002, "Blue Lines", artist="Massive Attack", price=28.0,
                     posted="2024-03-02T10:00:00-00:00", genre=["Electronic", "Hip Hop"]),
        make_listing(1003, "Kind Of Blue", artist="Miles Davis", price=42.0,
                     posted="2024-03-03T10:00:00-00:00", genre=["Jazz"], label="Columbia"),
        make_listing(1004, "Sold Out Classic", artist="Nobody", price=10.0, quantity=0,
                     posted="2024-03-04T10:00:00-00:00"),
        make_listing(1005, "Dance Compilation", artist="Various", price=15.0, quantity=2,
                     posted="2024-03-05T10:00:00-00:00"),
    ]
    releases = [make_release(l["release"]["id"]) for l in listings]
    return FakeDiscogs(listings, releases)


@pytest.fixture
def no_sleep():
    """Records requested backoff delays instead of sleeping."""
    delays = []

    async def sleep(seconds):
        delays.append(seconds)

    sleep.delays = delays
    return sleep


@pytest.fixture
def discogs_client(settings, fake_discogs, no_sleep):
    return DiscogsClient.from_settings(settings, transport=fake_discogs.transport, sleep=no_sleep)


@pytest.fixture
async def inventory_service(discogs_client, memory_cache, settings):
    batcher = build_release_batcher(discogs_client, memory_cache, settings)
    yield InventoryService(discogs_client, memory_cache, batcher, settings)
    await batcher.aclose()


@pytest.fixture
def sample_cart():
    """Cart snapshot as stored in Stripe checkout metadata"""
    return [
        {"id": 1001, "title": "Selected Ambient Works 85-92", "artist": "Aphex Twin",
         "price": 32.2, "quantity": 1, "condition": "Very Good Plus (VG+)", "format": "LP, Album"},
        {"id": 1005, "title": "Dance Compilation", "artist": "Various",
         "price": 13.8, "quantity": 2, "condition": "Very Good Plus (VG+)", "format": "LP, Album"},
    ]
