import sys
from pathlib import Path

import pytest

ROOT = Path(__file__).resolve().parents[1]
TESTS_PATH = Path(__file__).resolve().parent
for path in (ROOT, TESTS_PATH):
    str_path = str(path)
    if str_path not in sys.path:
        sys.path.insert(0, str_path)

from screenreader.core.settings import get_settings  # noqa: E402


@pytest.fixture(autouse=True)
def _isolated_settings(monkeypatch, tmp_path):
    for var in ("NIGHTSCOUT_URL", "NIGHTSCOUT_BASE_URL", "NIGHTSCOUT_API_SECRET", "NIGHTSCOUT_TOKEN", "DATABASE_URL"):
        monkeypatch.delenv(var, raising=False)
    monkeypatch.setenv("DATA_DIR", str(tmp_path))
    get_settings.cache_clear()
    yield
    get_settings.cache_clear()


TEST_DB_URL = "sqlite+aiosqlite:///:memory:"


@pytest.fixture
async def session_factory():
    from sqlalchemy.ext.asyncio import async_sessionmaker, create_async_engine
    from sqlalchemy.pool import StaticPool

    import screenreader.models.reading_row  # noqa: F401
    from screenreader.core.db import Base

    # StaticPool: all sessions share the one in-memory database
    engine = create_async_engine(TEST_DB_URL, echo=False, poolclass=StaticPool)
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)

    yield async_sessionmaker(engine, expire_on_commit=False)

    await engine.dispose()


@pytest.fixture
def repository(session_factory):
    from screenreader.services.reading_repository import ReadingRepository

    return ReadingRepository(session_factory)
