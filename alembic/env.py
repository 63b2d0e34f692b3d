"""Alembic environment for the content database.

Runs offline (emit SQL) or online against the async engine configured by
``cms.config.settings``.  Autogenerate compares against ``Base.metadata``
with column types included, so enum length or JSON changes show up in
generated revisions.
"""

import asyncio
from logging.config import fileConfig

from alembic import context
from sqlalchemy.engine import Connection
from sqlalchemy.ext.asyncio import create_async_engine

from cms.config import settings
from cms.database import Base

# Registers users, contents, categories, tags, media and the two
# association tables on Base.metadata.
import cms.models  # noqa: F401

config = context.config

if config.config_file_name is not None:
    fileConfig(config.config_file_name)

config.set_main_option("sqlalchemy.url", settings.DATABASE_URL)

target_metadata = Base.metadata


def _options(dialect: str) -> dict:
    # SQLite cannot ALTER most constraints in place (the partial slug
    # index, FKs); batch mode recreates the table instead.
    return {
        "target_metadata": target_metadata,
        "compare_type": True,
        "render_as_batch": dialect == "sqlite",
    }


def run_migrations_offline() -> None:
    """Write the migration SQL to stdout instead of executing it."""
    url = config.get_main_option("sqlalchemy.url")
    context.configure(
        url=url,
        literal_binds=True,
        dialect_opts={"paramstyle": "named"},
        **_options(url.split(":", 1)[0].split("+", 1)[0]),
    )

    with context.begin_transaction():
        context.run_migrations()


def do_run_migrations(connection: Connection) -> None:
    context.configure(connection=connection, **_options(connection.dialect.name))
    with context.begin_transaction():
        context.run_migrations()


async def run_async_migrations() -> None:
    """Hand a sync connection from the async engine to the migration runner."""
    connectable = create_async_engine(settings.DATABASE_URL, pool_pre_ping=True)

    async with connectable.connect() as connection:
        await connection.run_sync(do_run_migrations)

    await connectable.dispose()


if context.is_offline_mode():
    run_migrations_offline()
else:
    asyncio.run(run_async_migrations())
