"""
Alembic environment for the order lifecycle schema.

Migrations always run online through the asyncpg driver, against the
database configured in application settings.
"""

import asyncio
from logging.config import fileConfig

from alembic import context
from sqlalchemy import pool
from sqlalchemy.ext.asyncio import create_async_engine

import recycletrade.database.models  # noqa: F401  registers every table
from recycletrade.core.config import get_settings
from recycletrade.database.base import Base
from recycletrade.database.connection import async_database_url

config = context.config
if config.config_file_name is not None:
    fileConfig(config.config_file_name)

target_metadata = Base.metadata


def do_run_migrations(connection) -> None:
    context.configure(
        connection=connection,
        target_metadata=target_metadata,
        compare_type=True,
        transaction_per_migration=True,
    )
    with context.begin_transaction():
        context.run_migrations()


async def run_async_migrations() -> None:
    """Apply pending migrations over a single unpooled connection."""
    engine = create_async_engine(
        async_database_url(get_settings().database_url),
        poolclass=pool.NullPool,
    )
    try:
        async with engine.connect() as connection:
            await connection.run_sync(do_run_migrations)
    finally:
        await engine.dispose()


if context.is_offline_mode():
    raise SystemExit("Offline SQL generation is not supported; run migrations against a database")

asyncio.run(run_async_migrations())
