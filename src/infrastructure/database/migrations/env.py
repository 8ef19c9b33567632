# Copyright (C) 2025 Global Digital Labs (gdlabs.io)
# SPDX-License-Identifier: LGPL-3.0-or-later
"""Alembic environment for the tenancy datastore.

The target URL is resolved from the application settings (DB_DSN, or the
individual DB_* variables) so migrations and the API always point at the
same database. Online runs reuse the application's engine builder.

Usage:
    alembic upgrade head
    alembic revision --autogenerate -m "describe change"
"""

import asyncio
import logging
from logging.config import fileConfig

from alembic import context
from sqlalchemy.engine import Connection

from src.core.config import get_settings
from src.infrastructure.database.connection import build_engine
from src.infrastructure.database.models import Base

config = context.config

if config.config_file_name is not None:
    fileConfig(config.config_file_name)

logger = logging.getLogger("alembic.env")


def _configure(**options) -> None:
    context.configure(
        target_metadata=Base.metadata,
        compare_type=True,
        compare_server_default=True,
        render_as_batch=options.pop("render_as_batch", False),
        **options,
    )


def run_offline(url: str) -> None:
    """Emit migration SQL to the script output without connecting."""
    _configure(url=url, literal_binds=True, dialect_opts={"paramstyle": "named"})
    with context.begin_transaction():
        context.run_migrations()


def _run_with_connection(connection: Connection) -> None:
    # SQLite needs batch mode to alter tables.
    _configure(
        connection=connection,
        render_as_batch=connection.dialect.name == "sqlite",
    )
    with context.begin_transaction():
        context.run_migrations()


async def run_online(url: str) -> None:
    """Apply migrations over an async connection."""
    engine = build_engine(url, pool_size=1, max_overflow=0)
    try:
        async with engine.connect() as connection:
            await connection.run_sync(_run_with_connection)
    finally:
        await engine.dispose()


database_url = get_settings().database.url

if context.is_offline_mode():
    logger.info("Generating offline migration SQL")
    run_offline(database_url)
else:
    logger.info("Applying migrations to %s", database_url.rsplit("@", 1)[-1])
    asyncio.run(run_online(database_url))
