"""
CoffeeTime AI Backend: Database Session Management
==================================================

What:  Async SQLAlchemy engine, session factory, and FastAPI dependency.
How:   Creates an async engine with connection pooling, provides a session
       dependency that auto-commits on success and auto-rolls-back on error.
Who:   AI Settings routes via FastAPI's dependency injection system, the
       health check, and Alembic (through `Base.metadata`).
When:  Engine is created at module import; sessions are created per-request.

Connection Pooling:
    pool_size / max_overflow come from Settings (PostgreSQL only).
    pool_pre_ping validates connections before use.
    pool_recycle=3600 recycles connections every hour.
    SQLite URLs (used by the test suite) get the driver's default pool.
"""

from typing import Any, AsyncGenerator, Dict

from sqlalchemy.ext.asyncio import (
    AsyncEngine,
    AsyncSession,
    async_sessionmaker,
    create_async_engine,
)
from sqlalchemy.orm import DeclarativeBase

from coffeetime.config import Settings, settings


def build_engine(config: Settings) -> AsyncEngine:
    options: Dict[str, Any] = {"echo": config.log_level == "DEBUG"}
    if not config.database_url.startswith("sqlite"):
        options.update(
            pool_size=config.db_pool_size,
            max_overflow=config.db_max_overflow,
            pool_pre_ping=config.db_pool_pre_ping,
            pool_recycle=3600,
        )
    return create_async_engine(config.database_url, **options)


# ── Engine Configuration ──────────────────────────────────────────────────
engine = build_engine(settings)

# ── Session Factory ───────────────────────────────────────────────────────
# expire_on_commit=False: attributes stay readable after commit
async_session_factory = async_sessionmaker(
    engine,
    class_=AsyncSession,
    expire_on_commit=False,
)


# ── Base Model ────────────────────────────────────────────────────────────
class Base(DeclarativeBase):
    """
    Base class for all SQLAlchemy ORM models.

    Shares one metadata object, which Alembic reads for migrations.
    """

    pass


# ── Session Dependency ────────────────────────────────────────────────────
async def get_db_session() -> AsyncGenerator[AsyncSession, None]:
    """
    FastAPI dependency that provides a database session per request.

    How it works:
        1. Creates a new session from the factory
        2. Yields it to the route handler
        3. On success: commits the transaction
        4. On error: rolls back the transaction
        5. Always: closes the session (returns connection to pool)

    Example usage in a route:
        @router.get("/users/{user_id}/ai-settings")
        async def get_settings(user_id: str, db: AsyncSession = Depends(get_db_session)):
            return await ai_settings_service.get_settings(db, user_id)

    Raises:
        Database exceptions are propagated to the global error handler.
    """
    async with async_session_factory() as session:
        try:
            yield session
            await session.commit()
        except Exception:
            await session.rollback()
            raise
        finally:
            await session.close()


# ── Lifecycle Helpers ─────────────────────────────────────────────────────
async def dispose_engine() -> None:
    """Close all pooled connections. Called from the app lifespan on shutdown."""
    await engine.dispose()


# ── Migration Options ─────────────────────────────────────────────────────
def migration_options(database_url: str) -> Dict[str, Any]:
    """Alembic `context.configure` options shared by offline and online runs."""
    return {
        "target_metadata": Base.metadata,
        # Column type changes (JSON key maps, String lengths) are part of the diff
        "compare_type": True,
        # SQLite cannot ALTER columns in place; batch mode rebuilds the table
        "render_as_batch": database_url.startswith("sqlite"),
    }
