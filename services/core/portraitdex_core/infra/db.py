"""Database infrastructure for Portraitdex.

The fetch job writes through the async engine; the read API uses its own
read-only sync engine so the two never share a connection.
"""

from pathlib import Path
from typing import Optional

from sqlalchemy import create_engine
from sqlalchemy.engine import make_url
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine
from sqlalchemy.orm import Session, sessionmaker

from portraitdex_core.config import get_settings
from portraitdex_core.domain.models import Base

# Sync driver -> async driver
_ASYNC_DRIVERS = {
    "sqlite": "sqlite+aiosqlite",
    "sqlite+pysqlite": "sqlite+aiosqlite",
    "mysql+pymysql": "mysql+aiomysql",
}


def to_async_url(url: str) -> str:
    """Swap the sync driver of a database URL for its async counterpart."""
    parsed = make_url(url)
    driver = _ASYNC_DRIVERS.get(parsed.drivername)
    if driver is None:
        return url
    return parsed.set(drivername=driver).render_as_string(hide_password=False)


def sqlite_database_path(url: str) -> Optional[Path]:
    """Return the file path of a SQLite URL, or None for other backends."""
    parsed = make_url(url)
    if not parsed.drivername.startswith("sqlite"):
        return None
    if not parsed.database or parsed.database == ":memory:":
        return None
    return Path(parsed.database).resolve()


def to_readonly_url(url: str) -> str:
    """Open SQLite files read-only; other URLs are returned as-is."""
    path = sqlite_database_path(url)
    if path is None:
        return url
    return f"sqlite:///file:{path}?mode=ro&uri=true"


def get_sync_engine():
    """Get synchronous database engine."""
    settings = get_settings()
    return create_engine(
        settings.database_url,
        pool_pre_ping=True,
        pool_recycle=3600,
        echo=False,
    )


def get_readonly_engine():
    """Get the read-only engine used by the HTTP API."""
    settings = get_settings()
    return create_engine(
        to_readonly_url(settings.database_url),
        pool_pre_ping=True,
        pool_recycle=3600,
        echo=False,
    )


def get_async_engine(database_url: Optional[str] = None):
    """Get async database engine."""
    database_url = database_url or get_settings().database_url
    return create_async_engine(
        to_async_url(database_url),
        pool_pre_ping=True,
        pool_recycle=3600,
        echo=False,
    )


# Session factories
_readonly_engine = None
_readonly_session_factory = None


def get_readonly_session_factory() -> sessionmaker[Session]:
    """Get read-only session factory (singleton)."""
    global _readonly_engine, _readonly_session_factory
    if _readonly_session_factory is None:
        _readonly_engine = get_readonly_engine()
        _readonly_session_factory = sessionmaker(
            bind=_readonly_engine,
            autocommit=False,
            autoflush=False,
        )
    return _readonly_session_factory


def create_async_session_factory(engine=None) -> async_sessionmaker[AsyncSession]:
    """Build an async session factory for one fetch run.

    asyncio.run() gives each run a fresh event loop, so the async engine
    is not cached across runs.
    """
    return async_sessionmaker(
        bind=engine or get_async_engine(),
        autocommit=False,
        autoflush=False,
        expire_on_commit=False,
    )


def init_db(engine=None) -> None:
    """Create missing tables and the search index table."""
    from portraitdex_core.domain.services.search_index import SqliteFtsSearchIndex

    engine = engine or get_sync_engine()
    Base.metadata.create_all(bind=engine)
    if engine.dialect.name == "sqlite":
        with engine.begin() as conn:
            SqliteFtsSearchIndex().ensure(conn)


async def init_async_db(engine) -> None:
    """Async variant of init_db for the fetch job."""
    from portraitdex_core.domain.services.search_index import SqliteFtsSearchIndex

    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
        if engine.dialect.name == "sqlite":
            await conn.run_sync(SqliteFtsSearchIndex().ensure)
