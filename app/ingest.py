"""Seeding pipeline for the advocates table.

Validates bootstrap records, upserts them one at a time, and invalidates the
result cache once the batch is written.
"""

import logging
from contextlib import asynccontextmanager, suppress
from dataclasses import dataclass, field
from typing import Any, Dict, Iterable, List, Optional

from pydantic import ValidationError
from sqlalchemy import text
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from . import crud, metrics, seed_data
from .result_cache import ResultCache
from .schemas import AdvocateIn

log = logging.getLogger(__name__)

SEED_LOCK_KEY = 0xAD70CA7E  # only one instance seeds at a time


@dataclass
class SeedReport:
    """Outcome of one seeding batch."""

    advocates: List[Dict[str, Any]] = field(default_factory=list)
    inserted: int = 0
    updated: int = 0
    failed: int = 0
    errors: List[str] = field(default_factory=list)

    @property
    def total(self) -> int:
        return self.inserted + self.updated

    def stats(self) -> Dict[str, int]:
        return {
            "inserted": self.inserted,
            "updated": self.updated,
            "total": self.total,
            "failed": self.failed,
        }


def _label(record: Any) -> str:
    if isinstance(record, dict):
        return f"{record.get('firstName', '?')} {record.get('lastName', '?')}"
    return repr(record)


async def seed_advocates(
    session: AsyncSession,
    records: Iterable[Dict[str, Any]],
    cache: Optional[ResultCache] = None,
) -> SeedReport:
    """Upsert `records` sequentially, isolating failures per record.

    Each record is validated and committed on its own, so a bad record (invalid
    fields or a database error) is rolled back, logged and counted without
    aborting the rest. The cache is invalidated once, after the batch, if any
    record was written.

    Args:
        session: Active async SQLAlchemy session.
        records: camelCase advocate dicts (see `seed_data.SEED_ADVOCATES`).
        cache: Result cache to invalidate afterwards, if any.

    Returns:
        A `SeedReport` with the stored rows and insert/update/failure counts.
    """
    report = SeedReport()

    for record in records:
        try:
            data = AdvocateIn.model_validate(record).model_dump()
        except ValidationError as exc:
            report.failed += 1
            report.errors.append(f"{_label(record)}: invalid record")
            log.warning("seed.record_invalid advocate=%s errors=%d", _label(record), exc.error_count())
            continue

        try:
            row, inserted = await crud.upsert_advocate(session, data)
        except SQLAlchemyError as exc:
            await session.rollback()
            report.failed += 1
            report.errors.append(f"{_label(record)}: database error")
            log.warning("seed.record_failed advocate=%s error=%r", _label(record), exc)
            continue

        report.advocates.append(row)
        if inserted:
            report.inserted += 1
        else:
            report.updated += 1

    metrics.record_seed("inserted", report.inserted)
    metrics.record_seed("updated", report.updated)
    metrics.record_seed("failed", report.failed)

    if report.total and cache is not None:
        await cache.invalidate_all()

    log.info(
        "seed complete inserted=%d updated=%d failed=%d",
        report.inserted,
        report.updated,
        report.failed,
    )
    return report


@asynccontextmanager
async def _pg_advisory_lock(session: AsyncSession, key: int):
    """Try to take a Postgres advisory lock; yield True if held.

    The lock lives on its own connection because the seeding session commits
    (and hands its connection back to the pool) after every record.

    Other engines have no advisory locks, so this yields True without locking
    there (single-writer dev/test setups).
    """
    if session.get_bind().dialect.name != "postgresql":
        yield True
        return

    async with session.bind.connect() as conn:
        res = await conn.execute(text("SELECT pg_try_advisory_lock(:k)"), {"k": key})
        have = bool(res.scalar())
        log.debug("advisory_lock key=%s acquired=%s", hex(key), have)
        try:
            yield have
        finally:
            if have:
                with suppress(SQLAlchemyError):
                    await conn.execute(text("SELECT pg_advisory_unlock(:k)"), {"k": key})
                    log.debug("advisory_lock key=%s released", hex(key))


async def initial_seed_if_empty(
    session: AsyncSession, cache: Optional[ResultCache] = None
) -> int:
    """Seed the bootstrap dataset if the advocates table is empty.

    Returns:
        Number of rows written (0 if the table was already populated or another
        instance holds the seed lock).
    """
    async with _pg_advisory_lock(session, SEED_LOCK_KEY) as have_lock:
        if not have_lock:
            log.debug("initial_seed skipped: lock held by another instance")
            return 0

        count = await crud.count_advocates(session)
        if count > 0:
            log.debug("initial_seed skipped: table already populated (rows=%d)", count)
            return 0

        log.info("initial_seed starting: empty table detected")
        report = await seed_advocates(session, seed_data.SEED_ADVOCATES, cache)
        return report.total
