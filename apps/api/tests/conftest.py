import asyncio
import os
import tempfile

import pytest

# Must be set before devscore.db.session creates the engine
_DB_DIR = tempfile.mkdtemp(prefix="devscore-tests-")
os.environ["DATABASE_URL"] = f"sqlite+aiosqlite:///{_DB_DIR}/devscore.db"
os.environ.setdefault("ENABLE_SCHEDULER", "false")
os.environ.setdefault("ANALYSIS_PACING_SECONDS", "0")

from devscore.db.base import Base  # noqa: E402
import devscore.db.models  # noqa: E402,F401
from devscore.db.session import engine  # noqa: E402

from fakes import FakeLLM, FakeSource  # noqa: E402


@pytest.fixture(autouse=True)
def fresh_schema():
    async def _create() -> None:
        async with engine.begin() as conn:
            await conn.run_sync(Base.metadata.drop_all)
            await conn.run_sync(Base.metadata.create_all)

    asyncio.run(_create())
    yield


@pytest.fixture
def fake_llm() -> FakeLLM:
    return FakeLLM()


@pytest.fixture
def fake_source() -> FakeSource:
    return FakeSource()
