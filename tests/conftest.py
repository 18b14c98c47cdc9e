# --- keep this shim at the very top ---
import os
import sys

ROOT = os.path.abspath(os.path.join(os.path.dirname(__file__), ".."))
if ROOT not in sys.path:
    sys.path.insert(0, ROOT)
# --------------------------------------

import pytest
import pytest_asyncio
import httpx

from contextlib import asynccontextmanager


# Force an in-memory SQLite for unit tests so we never touch Postgres pooling.
os.environ.setdefault("DATABASE_URL", "sqlite+aiosqlite:///:memory:")
os.environ.pop("DB_POOL_SIZE", None)
os.environ.pop("DB_MAX_OVERFLOW", None)
os.environ.pop("DB_POOL_RECYCLE", None)
os.environ.pop("DB_STATEMENT_TIMEOUT_MS", None)
# Keep the shared limiter out of the way; the rate limit test mounts its own route.
os.environ["RATE_LIMIT"] = "10000/minute"
os.environ["CACHE_BACKEND"] = "memory"

from app import db  # noqa: E402

db.configure_engine(os.environ["DATABASE_URL"])

import app.main as app_main  # noqa: E402  (patch names bound inside main.py)
from app.cache import MemoryBackend  # noqa: E402
from app.result_cache import ResultCache  # noqa: E402


ALICE = {
    "firstName": "Alice",
    "lastName": "Smith",
    "city": "Boston",
    "degree": "MD",
    "specialties": ["Anxiety"],
    "yearsOfExperience": 5,
    "phoneNumber": 5551234567,
}


def advocate_record(first: str, last: str, **overrides) -> dict:
    """A valid camelCase advocate record with overridable fields."""
    rec = {
        "firstName": first,
        "lastName": last,
        "city": "Chicago",
        "degree": "PhD",
        "specialties": ["Trauma & PTSD"],
        "yearsOfExperience": 3,
        "phoneNumber": 5550001111,
    }
    rec.update(overrides)
    return rec


@pytest.fixture
def alice_record():
    return dict(ALICE, specialties=list(ALICE["specialties"]))


@pytest.fixture
def make_record():
    return advocate_record


@pytest.fixture
def result_cache():
    """A fresh in-process ResultCache per test."""
    return ResultCache(MemoryBackend(maxsize=128), ttl=300)


class BrokenBackend:
    """Backend whose every operation fails, like an unreachable Redis."""

    name = "broken"

    async def get(self, key):
        raise ConnectionError("cache offline")

    async def set(self, key, value, ttl):
        raise ConnectionError("cache offline")

    async def delete(self, key):
        raise ConnectionError("cache offline")

    async def clear(self, prefix):
        raise ConnectionError("cache offline")

    async def ping(self):
        raise ConnectionError("cache offline")

    async def close(self):
        raise ConnectionError("cache offline")


@pytest.fixture
def broken_cache():
    """A ResultCache whose backing store is unreachable."""
    return ResultCache(BrokenBackend())


@pytest_asyncio.fixture(autouse=True)
async def memory_db_and_overrides(monkeypatch, result_cache):
    """
    Use an in-memory SQLite DB for all tests.
    - Ensure schema is created.
    - Make FastAPI dependencies pull sessions from this engine and use a
      per-test result cache.
    - Replace app lifespan so startup doesn't build a real cache or seed.
    """
    db.configure_engine("sqlite+aiosqlite:///:memory:")
    await db.init_db()

    async def override_get_session():
        async with db.SessionLocal() as session:
            yield session

    app_main.app.dependency_overrides[app_main.get_session] = override_get_session
    app_main.app.dependency_overrides[app_main.get_cache] = lambda: result_cache

    @asynccontextmanager
    async def test_lifespan(_app):
        await db.init_db()
        yield

    monkeypatch.setattr(
        app_main.app.router, "lifespan_context", test_lifespan, raising=False
    )

    yield

    app_main.app.dependency_overrides.pop(app_main.get_session, None)
    app_main.app.dependency_overrides.pop(app_main.get_cache, None)


@pytest_asyncio.fixture
async def session():
    async with db.SessionLocal() as s:
        yield s


@pytest_asyncio.fixture
async def test_app():
    from app.main import app as _app

    yield _app


@pytest_asyncio.fixture
async def test_client(test_app):
    transport = httpx.ASGITransport(app=test_app)
    async with httpx.AsyncClient(
        transport=transport, base_url="http://testserver"
    ) as c:
        yield c
