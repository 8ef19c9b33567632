# Copyright (C) 2025 Global Digital Labs (gdlabs.io)
# SPDX-License-Identifier: LGPL-3.0-or-later
"""Engine and sessionmaker for the tenancy datastore.

Deployments run on PostgreSQL through asyncpg; local runs and the test
suite use SQLite through aiosqlite. Stores never hold a session between
calls: each one takes the shared ``async_sessionmaker`` and opens a short
transaction per operation.

Example:
    await init_database(settings)
    stores = TenantStore(get_sessionmaker(), retry)
"""

from typing import TYPE_CHECKING, Any, Optional

from sqlalchemy import text
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import (
    AsyncEngine,
    AsyncSession,
    async_sessionmaker,
    create_async_engine,
)

if TYPE_CHECKING:
    from src.core.config.settings import Settings

_engine: Optional[AsyncEngine] = None
_sessionmaker: Optional[async_sessionmaker[AsyncSession]] = None


class DatabaseError(Exception):
    """The datastore is unavailable or was never initialized.

    Attributes:
        message: Human-readable error description.
        original_error: Underlying driver or SQLAlchemy error, if any.
    """

    def __init__(self, message: str, original_error: Optional[Exception] = None) -> None:
        super().__init__(message)
        self.message = message
        self.original_error = original_error

    def __str__(self) -> str:
        if self.original_error:
            return f"{self.message}: {self.original_error}"
        return self.message


def build_engine(url: str, pool_size: int = 10, max_overflow: int = 20, echo: bool = False) -> AsyncEngine:
    """Create an async engine for the given URL.

    Pool sizing only applies to server databases; SQLite URLs get the
    dialect's default pool.

    Args:
        url: Async SQLAlchemy URL.
        pool_size: Connection pool size.
        max_overflow: Maximum overflow connections.
        echo: Whether to log emitted SQL.

    Returns:
        The configured AsyncEngine.
    """
    options: dict[str, Any] = {"echo": echo}
    if not url.startswith("sqlite"):
        options.update(
            pool_size=pool_size,
            max_overflow=max_overflow,
            pool_pre_ping=True,
            pool_recycle=1800,
        )
    return create_async_engine(url, **options)


def build_sessionmaker(engine: AsyncEngine) -> async_sessionmaker[AsyncSession]:
    """Create the sessionmaker used by every store."""
    return async_sessionmaker(
        bind=engine,
        class_=AsyncSession,
        expire_on_commit=False,
        autoflush=False,
    )


async def init_database(settings: "Settings") -> None:
    """Create the shared engine and check that the datastore answers.

    Raises:
        DatabaseError: If the engine cannot be built or the first
            connection fails. Module state is left unset in that case.
    """
    global _engine, _sessionmaker

    db = settings.database
    try:
        engine = build_engine(
            db.url,
            pool_size=db.pool_size,
            max_overflow=db.max_overflow,
            echo=db.echo,
        )
    except SQLAlchemyError as e:
        raise DatabaseError("Failed to create datastore engine", e) from e

    try:
        async with engine.connect() as conn:
            await conn.execute(text("SELECT 1"))
    except (SQLAlchemyError, OSError) as e:
        await engine.dispose()
        raise DatabaseError("Failed to connect to datastore", e) from e

    _engine = engine
    _sessionmaker = build_sessionmaker(engine)


async def close_database() -> None:
    """Dispose of the shared engine, if any."""
    global _engine, _sessionmaker

    if _engine is not None:
        await _engine.dispose()
    _engine = None
    _sessionmaker = None


def get_engine() -> AsyncEngine:
    """Return the shared engine.

    Raises:
        DatabaseError: If ``init_database`` has not run.
    """
    if _engine is None:
        raise DatabaseError("Database not initialized. Call init_database() first.")
    return _engine


def get_sessionmaker() -> async_sessionmaker[AsyncSession]:
    """Return the shared sessionmaker.

    Raises:
        DatabaseError: If ``init_database`` has not run.
    """
    if _sessionmaker is None:
        raise DatabaseError("Database not initialized. Call init_database() first.")
    return _sessionmaker
