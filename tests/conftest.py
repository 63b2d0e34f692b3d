"""
Shared fixtures.

Every test gets a fresh schema on one in-memory SQLite connection
(StaticPool keeps the database alive across sessions) with foreign keys
enforced.  HTTP tests go through the ASGI app with `get_db` and
`get_storage` overridden and the global cache left unconnected; service
tests build a ContentService from a session, a fakeredis-backed
CacheManager, a temporary file store and their own EventBus.
"""
import pytest
import pytest_asyncio
from fakeredis import aioredis
from httpx import AsyncClient, ASGITransport
from sqlalchemy.ext.asyncio import create_async_engine, async_sessionmaker, AsyncSession
from sqlalchemy.pool import StaticPool

from cms.cache import CacheManager, cache
from cms.database import Base, get_db, install_sqlite_pragmas
from cms.dependencies import get_storage
from cms.events import EventBus
from cms.main import app
from cms.middleware import install_query_counter
from cms.services.content_service import ContentService
from cms.storage import FileStorage

# ---------------------------------------------------------------------------
# Test database engine: SQLite in-memory with aiosqlite
# ---------------------------------------------------------------------------

TEST_DATABASE_URL = "sqlite+aiosqlite:///:memory:"

engine_test = create_async_engine(
    TEST_DATABASE_URL,
    connect_args={"check_same_thread": False},
    poolclass=StaticPool,
)

install_query_counter(engine_test)
install_sqlite_pragmas(engine_test)

async_session_test = async_sessionmaker(
    engine_test,
    class_=AsyncSession,
    expire_on_commit=False,
)


# ---------------------------------------------------------------------------
# Dependency override: replace production get_db with the test session factory
# ---------------------------------------------------------------------------

async def override_get_db():
    async with async_session_test() as session:
        try:
            yield session
            await session.commit()
        except Exception:
            await session.rollback()
            raise


app.dependency_overrides[get_db] = override_get_db


# ---------------------------------------------------------------------------
# Fixtures
# ---------------------------------------------------------------------------

@pytest_asyncio.fixture(autouse=True)
async def setup_db():
    """Fresh schema per test."""
    async with engine_test.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    yield
    async with engine_test.begin() as conn:
        await conn.run_sync(Base.metadata.drop_all)


@pytest_asyncio.fixture
async def db_session() -> AsyncSession:
    """Session for seeding rows and for the service under test."""
    async with async_session_test() as session:
        yield session


@pytest.fixture
def file_storage(tmp_path) -> FileStorage:
    return FileStorage(root=tmp_path / "media", base_url="/storage")


@pytest_asyncio.fixture
async def redis_cache():
    """A CacheManager talking to an in-process fake Redis."""
    client = aioredis.FakeRedis(decode_responses=True)
    await client.flushall()
    manager = CacheManager(client)
    yield manager
    await manager.disconnect()


@pytest.fixture
def bus() -> EventBus:
    return EventBus()


@pytest.fixture
def content_service(db_session, redis_cache, file_storage, bus) -> ContentService:
    return ContentService(db_session, cache=redis_cache, storage=file_storage, events=bus)


@pytest_asyncio.fixture
async def async_client(file_storage) -> AsyncClient:
    """HTTP client bound to the app, with uploads going to the temp store."""
    cache._redis = None
    app.dependency_overrides[get_storage] = lambda: file_storage
    transport = ASGITransport(app=app)
    async with AsyncClient(transport=transport, base_url="http://test") as client:
        yield client
    app.dependency_overrides.pop(get_storage, None)

