import asyncio
import os
import tempfile

# Settings are read at import time; point the app at a throwaway SQLite file
# before anything from marketstall is imported. CI may override with Postgres.
_DB_DIR = tempfile.mkdtemp(prefix="marketstall-tests-")
os.environ.setdefault("DATABASE_URL", f"sqlite+aiosqlite:///{_DB_DIR}/marketstall.db")
os.environ.setdefault("CELERY_TASK_ALWAYS_EAGER", "true")

import pytest  # noqa: E402
from fastapi.testclient import TestClient  # noqa: E402

from marketstall.database import engine  # noqa: E402
from marketstall.main import app  # noqa: E402
from marketstall.models import Base  # noqa: E402


async def _reset_schema() -> None:
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.drop_all)
        await conn.run_sync(Base.metadata.create_all)


@pytest.fixture(autouse=True)
def clean_db():
    """Every test starts from an empty schema."""

    asyncio.run(_reset_schema())
    yield


@pytest.fixture()
def client() -> TestClient:
    return TestClient(app)
