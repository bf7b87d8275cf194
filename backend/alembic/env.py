"""Alembic environment for the goldfinger schema (async SQLAlchemy)."""

import asyncio
from logging.config import fileConfig

from alembic import context
from sqlalchemy import pool
from sqlalchemy.ext.asyncio import create_async_engine

from goldfinger.config import Settings
from goldfinger.database import Base

# Every table must be registered on Base.metadata before autogenerate runs
import goldfinger.accounts.models  # noqa: F401
import goldfinger.expenses.models  # noqa: F401
import goldfinger.income.models  # noqa: F401
import goldfinger.recurring.models  # noqa: F401

config = context.config
if config.config_file_name is not None:
    fileConfig(config.config_file_name)

target_metadata = Base.metadata


def _database_url() -> str:
    # `alembic -x database_url=...` wins over the .env setting
    override = context.get_x_argument(as_dictionary=True).get("database_url")
    return override or Settings().database_url


def _migrate(**options) -> None:
    # Batch mode lets ALTERs on SQLite recreate the table with named constraints
    context.configure(target_metadata=target_metadata, render_as_batch=True, **options)
    with context.begin_transaction():
        context.run_migrations()


async def _migrate_online(url: str) -> None:
    engine = create_async_engine(url, poolclass=pool.NullPool)
    async with engine.connect() as connection:
        await connection.run_sync(lambda sync_conn: _migrate(connection=sync_conn))
    await engine.dispose()


if context.is_offline_mode():
    _migrate(url=_database_url(), literal_binds=True, dialect_opts={"paramstyle": "named"})
else:
    asyncio.run(_migrate_online(_database_url()))
