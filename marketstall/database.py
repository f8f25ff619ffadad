from __future__ import annotations

from collections.abc import AsyncGenerator
import os
import sys

from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine
from sqlalchemy.pool import NullPool

from marketstall.config import settings


_engine_kwargs: dict = {"pool_pre_ping": True}

# NOTE: FastAPI's sync TestClient (AnyIO portal) and asyncio.run() in tests run
# on different event loops. Pooled driver connections cannot be shared across
# loops, so pooling is disabled under pytest.
if os.getenv("PYTEST_CURRENT_TEST") or ("pytest" in sys.modules):
    _engine_kwargs["poolclass"] = NullPool

# Concurrent writers on a SQLite file wait on the database lock instead of
# failing immediately.
if settings.database_url.startswith("sqlite"):
    _engine_kwargs["connect_args"] = {"timeout": 30}

engine = create_async_engine(settings.database_url, **_engine_kwargs)
SessionLocal = async_sessionmaker(engine, expire_on_commit=False, class_=AsyncSession)


async def get_db() -> AsyncGenerator[AsyncSession, None]:
    async with SessionLocal() as session:
        yield session
