"""
Alembic Migration Environment
=============================

What:  Runs the `ai_settings` migrations against PostgreSQL (asyncpg) or
       SQLite (aiosqlite), whichever DATABASE_URL names.
How:   The URL comes from Settings, never from alembic.ini. Online runs open
       an async engine and hand Alembic a sync connection through
       connection.run_sync(). Both modes share `migration_options()`, which
       turns on batch mode for SQLite.
Who:   Called by `alembic` CLI commands (upgrade, downgrade, revision).
"""

import asyncio
from logging.config import fileConfig

from sqlalchemy import pool
from sqlalchemy.ext.asyncio import async_engine_from_config
from alembic import context

from coffeetime.config import settings
from coffeetime.database import migration_options

# Registers the table on Base.metadata for --autogenerate
from coffeetime.models.ai_settings import AISettingsRecord  # noqa: F401

config = context.config

if config.config_file_name is not None:
    fileConfig(config.config_file_name)

config.set_main_option("sqlalchemy.url", settings.database_url)
options = migration_options(settings.database_url)


def run_migrations_offline() -> None:
    """Emit SQL to stdout without connecting to the database."""
    context.configure(
        url=settings.database_url,
        literal_binds=True,
        dialect_opts={"paramstyle": "named"},
        **options,
    )
    with context.begin_transaction():
        context.run_migrations()


def apply_migrations(connection) -> None:
    context.configure(connection=connection, **options)
    with context.begin_transaction():
        context.run_migrations()


async def run_migrations_online() -> None:
    engine = async_engine_from_config(
        config.get_section(config.config_ini_section, {}),
        prefix="sqlalchemy.",
        poolclass=pool.NullPool,
    )
    try:
        async with engine.connect() as connection:
            await connection.run_sync(apply_migrations)
    finally:
        await engine.dispose()


if context.is_offline_mode():
    run_migrations_offline()
else:
    asyncio.run(run_migrations_online())
