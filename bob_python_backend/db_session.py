"""
SQLAlchemy async session setup for the Based-or-Biased backend.

The engine is built lazily so that importing this module never requires a
database; without DATABASE_URL the app falls back to the in-memory store.
"""

from typing import Optional

from sqlalchemy.ext.asyncio import AsyncEngine, AsyncSession, async_sessionmaker, create_async_engine

from bob_python_backend.config import DATABASE_URL

_engine: Optional[AsyncEngine] = None
_session_factory: Optional[async_sessionmaker] = None


def normalize_database_url(url: str) -> str:
    """Convert postgres:// and postgresql:// to postgresql+asyncpg:// for SQLAlchemy async."""
    if url.startswith("postgres://"):
        return url.replace("postgres://", "postgresql+asyncpg://", 1)
    if url.startswith("postgresql://"):
        return url.replace("postgresql://", "postgresql+asyncpg://", 1)
    return url


def create_engine_for(url: str) -> AsyncEngine:
    return create_async_engine(
        normalize_database_url(url),
        echo=False,  # Set to True for SQL query logging
        future=True,
    )


def create_session_factory(engine: AsyncEngine) -> async_sessionmaker:
    return async_sessionmaker(engine, class_=AsyncSession, expire_on_commit=False)


def get_session_factory() -> Optional[async_sessionmaker]:
    """Process-wide session factory, or None when DATABASE_URL is unset."""
    global _engine, _session_factory
    if _session_factory is None and DATABASE_URL:
        _engine = create_engine_for(DATABASE_URL)
        _session_factory = create_session_factory(_engine)
    return _session_factory


def get_engine() -> Optional[AsyncEngine]:
    get_session_factory()
    return _engine


async def dispose_engine() -> None:
    global _engine, _session_factory
    if _engine is not None:
        await _engine.dispose()
    _engine = None
    _session_factory = None
