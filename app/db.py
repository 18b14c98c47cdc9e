"""Async engine, session factory and schema bootstrap for the advocates table.

Connection settings come from `app.settings` (DATABASE_URL, DB_POOL_*,
DB_STATEMENT_TIMEOUT_MS, DB_WAIT_*). SQLite is used for local runs and tests;
Postgres (asyncpg) in deployments.
"""

from __future__ import annotations

import json
import asyncio
import logging
from typing import Any, AsyncIterator, Dict, Optional

from sqlalchemy import event, text
from sqlalchemy.engine.url import make_url
from sqlalchemy.exc import ArgumentError
from sqlalchemy.ext.asyncio import (
    AsyncEngine,
    AsyncSession,
    async_sessionmaker,
    create_async_engine,
)
from sqlalchemy.orm import DeclarativeBase
from sqlalchemy.pool import NullPool, StaticPool

from .settings import Settings, settings

log = logging.getLogger(__name__)


class Base(DeclarativeBase):
    """Declarative base for ORM models."""


def _describe(url_str: str) -> str:
    """Render an SQLAlchemy URL as `driver://host:port/db` without credentials."""
    try:
        u = make_url(url_str)
    except ArgumentError:
        return "unknown"
    return f"{u.drivername}://{u.host or ''}:{u.port or ''}/{u.database or ''}"


def _sqlite_json(value) -> str:
    # Keep non-ASCII specialties searchable with LIKE
    return json.dumps(value, ensure_ascii=False)


def engine_options(url: str, cfg: Settings) -> Dict[str, Any]:
    """Keyword arguments for `create_async_engine` suited to the backend of `url`."""
    opts: Dict[str, Any] = {"pool_pre_ping": True}

    if url.startswith("sqlite"):
        opts["json_serializer"] = _sqlite_json
        # :memory: needs one shared connection or every checkout sees an empty DB
        opts["poolclass"] = StaticPool if ":memory:" in url else NullPool
        return opts

    if url.startswith("postgresql"):
        pool = {
            "pool_size": cfg.DB_POOL_SIZE,
            "max_overflow": cfg.DB_MAX_OVERFLOW,
            "pool_recycle": cfg.DB_POOL_RECYCLE,
        }
        opts.update({k: v for k, v in pool.items() if v is not None})
        if cfg.DB_STATEMENT_TIMEOUT_MS:
            opts["connect_args"] = {
                "server_settings": {"statement_timeout": str(cfg.DB_STATEMENT_TIMEOUT_MS)}
            }
    return opts


def _register_engine_listeners(eng) -> None:
    """Log pool connects/disposals; no-op for engines without a sync core."""
    sync_eng = getattr(eng, "sync_engine", None)
    if sync_eng is None:
        log.debug("db.listeners skipped: engine has no sync_engine")
        return

    target = _describe(str(eng.url))

    @event.listens_for(sync_eng, "connect")
    def _on_connect(_dbapi_conn, _record):
        log.info("db.connect target=%s", target)

    @event.listens_for(sync_eng, "engine_disposed")
    def _on_dispose(_engine):
        log.info("db.dispose target=%s", target)


def _mk_engine(url: str, cfg: Optional[Settings] = None) -> AsyncEngine:
    opts = engine_options(url, cfg or settings)
    eng = create_async_engine(url, **opts)
    _register_engine_listeners(eng)
    log.debug(
        "db.engine_created target=%s options=%s",
        _describe(url),
        sorted(k for k in opts if k != "json_serializer"),
    )
    return eng


engine = _mk_engine(settings.DATABASE_URL)
SessionLocal = async_sessionmaker(engine, expire_on_commit=False, class_=AsyncSession)


def configure_engine(url: str) -> None:
    """Rebind the module-level engine and session factory to `url` (tests, tooling)."""
    global engine, SessionLocal
    engine = _mk_engine(url)
    SessionLocal = async_sessionmaker(engine, expire_on_commit=False, class_=AsyncSession)
    log.info("db.engine_reconfigured target=%s", _describe(url))


async def get_session() -> AsyncIterator[AsyncSession]:
    """FastAPI dependency that yields an `AsyncSession`."""
    async with SessionLocal() as session:
        yield session


async def init_db() -> None:
    """Create the advocates table and its indexes if they do not exist."""
    from . import models  # noqa: F401 (registers the table on Base.metadata)

    log.info("db.init begin target=%s", _describe(str(engine.url)))
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)


async def dispose_db() -> None:
    """Release pooled connections (called at shutdown)."""
    await engine.dispose()


async def ping_db() -> bool:
    """True when a trivial round trip to the database succeeds."""
    try:
        async with engine.connect() as conn:
            await conn.execute(text("SELECT 1"))
    except Exception as exc:
        log.debug("db.ping failed: %r", exc)
        return False
    return True


async def wait_for_db(
    *,
    max_attempts: Optional[int] = None,
    backoff_start: Optional[float] = None,
    backoff_max: Optional[float] = None,
) -> None:
    """Poll `ping_db()` with capped exponential backoff until it succeeds.

    Unset arguments fall back to the DB_WAIT_* settings.

    Raises:
        RuntimeError: the database was still unreachable after `max_attempts`.
    """
    attempts = max_attempts or settings.DB_WAIT_MAX_ATTEMPTS
    delay = backoff_start if backoff_start is not None else settings.DB_WAIT_BACKOFF_START
    cap = backoff_max if backoff_max is not None else settings.DB_WAIT_BACKOFF_MAX

    log.info(
        "db.wait start attempts=%d target=%s", attempts, _describe(str(engine.url))
    )
    for attempt in range(1, attempts + 1):
        if await ping_db():
            log.info("db.wait ready attempt=%d", attempt)
            return
        if attempt < attempts:
            log.debug("db.wait retry attempt=%d sleep=%.2fs", attempt, delay)
            await asyncio.sleep(delay)
            delay = min(delay * 2.0, cap)

    raise RuntimeError(f"database not reachable after {attempts} attempts")
