import logging
from pathlib import Path
from typing import Optional

from sqlalchemy import text
from sqlalchemy.engine import make_url
from sqlalchemy.ext.asyncio import AsyncEngine, AsyncSession, async_sessionmaker, create_async_engine
from sqlalchemy.orm import DeclarativeBase

from screenreader.core.settings import get_settings

logger = logging.getLogger(__name__)


class Base(DeclarativeBase):
    pass


_async_engine: Optional[AsyncEngine] = None
_async_session_factory: Optional[async_sessionmaker[AsyncSession]] = None


def init_db(url: Optional[str] = None) -> async_sessionmaker[AsyncSession]:
    global _async_engine, _async_session_factory

    if url is None:
        url = get_settings().data.effective_database_url()

    parsed = make_url(url)
    if parsed.drivername.startswith("sqlite") and parsed.database and parsed.database != ":memory:":
        Path(parsed.database).parent.mkdir(parents=True, exist_ok=True)

    safe_url = url.split("@")[-1] if "@" in url else url
    logger.info(f"Connecting to database: {safe_url}")

    _async_engine = create_async_engine(url, echo=False, pool_pre_ping=True)
    _async_session_factory = async_sessionmaker(_async_engine, expire_on_commit=False)
    return _async_session_factory


def get_session_factory() -> async_sessionmaker[AsyncSession]:
    if _async_session_factory is None:
        raise RuntimeError("Database not initialized")
    return _async_session_factory


async def create_tables() -> None:
    if _async_engine:
        # Register mapped classes on Base.metadata
        import screenreader.models.reading_row  # noqa: F401

        async with _async_engine.begin() as conn:
            await conn.run_sync(Base.metadata.create_all)


async def check_db_health() -> dict:
    if not _async_engine:
        return {"ok": False, "error": "Database not initialized"}

    try:
        async with _async_engine.connect() as conn:
            await conn.execute(text("SELECT 1"))
        return {"ok": True, "driver": _async_engine.driver}
    except Exception as e:
        logger.error(f"DB Health Check Failed: {e}")
        return {"ok": False, "error": str(e)}


async def dispose_db() -> None:
    global _async_engine, _async_session_factory
    if _async_engine:
        await _async_engine.dispose()
    _async_engine = None
    _async_session_factory = None
