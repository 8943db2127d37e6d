"""
Shared test setup for LiftLog.
Points the app at a throwaway SQLite file and configures an API key BEFORE
any application module is imported.
"""
import os
import tempfile

os.environ.pop("CLOUD_SQL_CONNECTION_NAME", None)
os.environ.pop("CLERK_DOMAIN", None)
os.environ["LIFTLOG_DB"] = os.path.join(tempfile.mkdtemp(prefix="liftlog-"), "test.db")
os.environ["API_KEYS"] = "test-key"
os.environ["RATE_LIMIT_REQUESTS"] = "10000"  # effectively disable for tests

import pytest_asyncio  # noqa: E402

from db import Base, engine  # noqa: E402

API_KEY = "test-key"


def auth_headers(user_id: str) -> dict:
    return {"X-API-Key": f"{API_KEY}:{user_id}"}


@pytest_asyncio.fixture
async def fresh_db():
    """Create a fresh schema for one test and release pooled connections after."""
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.drop_all)
        await conn.run_sync(Base.metadata.create_all)
    yield
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.drop_all)
    await engine.dispose()
