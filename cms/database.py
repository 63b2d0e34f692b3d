from sqlalchemy import event
from sqlalchemy.ext.asyncio import create_async_engine, async_sessionmaker, AsyncSession
from sqlalchemy.orm import DeclarativeBase

from cms.config import settings
from cms.middleware import install_query_counter

# Module-level engine variable allows tests to override with a test engine.
engine = create_async_engine(
    settings.DATABASE_URL,
    echo=settings.DEBUG,
    pool_pre_ping=True,
)


def install_sqlite_pragmas(engine) -> None:
    """
    Turn on foreign-key enforcement for every SQLite connection opened by
    *engine*.  SQLite ships with it disabled, which would let association
    rows point at missing categories or tags.  No-op for other dialects.
    """
    if engine.dialect.name != "sqlite":
        return

    @event.listens_for(engine.sync_engine, "connect")
    def _enable_foreign_keys(dbapi_connection, connection_record):
        cursor = dbapi_connection.cursor()
        cursor.execute("PRAGMA foreign_keys=ON")
        cursor.close()


# Register the per-request SQL query counter on the production engine.
install_query_counter(engine)
install_sqlite_pragmas(engine)

async_session = async_sessionmaker(
    engine,
    class_=AsyncSession,
    expire_on_commit=False,
)


class Base(DeclarativeBase):
    pass


def dialect_name(db: AsyncSession) -> str:
    """Name of the SQL dialect *db* is bound to (``postgresql``, ``sqlite``...)."""
    return db.get_bind().dialect.name


async def get_db():
    async with async_session() as session:
        try:
            yield session
            await session.commit()
        except Exception:
            await session.rollback()
            raise
