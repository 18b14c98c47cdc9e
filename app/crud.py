"""Data access helpers (CRUD) for Advocate.

Holds read/write/query logic so HTTP handlers can stay thin. All functions are
async and accept an `AsyncSession`. Queries are written to run on both SQLite
(tests/dev) and Postgres (prod); the few dialect-specific predicates live in
`query.py`.
"""

from typing import List, Dict, Any, Tuple
from sqlalchemy import select, func
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from .models import Advocate
from .query import FilterCriteria, build_query

_WRITABLE = (
    "first_name",
    "last_name",
    "city",
    "degree",
    "specialties",
    "years_of_experience",
    "phone_number",
)


class DuplicateAdvocateError(Exception):
    """An advocate with the same first and last name already exists."""

    def __init__(self, first_name: str, last_name: str) -> None:
        super().__init__(f"Advocate {first_name} {last_name} already exists")
        self.first_name = first_name
        self.last_name = last_name


def _row_to_dict(a: Advocate) -> Dict[str, Any]:
    """Map an `Advocate` ORM row to the API response dict shape."""
    return {
        "id": a.id,
        "firstName": a.first_name,
        "lastName": a.last_name,
        "city": a.city,
        "degree": a.degree,
        "specialties": list(a.specialties or []),
        "yearsOfExperience": a.years_of_experience,
        "phoneNumber": a.phone_number,
        "createdAt": a.created_at.isoformat() if a.created_at else None,
    }


def _dialect(session: AsyncSession) -> str:
    return session.get_bind().dialect.name


async def count_advocates(session: AsyncSession) -> int:
    """Return the total number of advocates in the table."""
    res = await session.execute(select(func.count()).select_from(Advocate))
    return int(res.scalar_one())


async def search_advocates(
    session: AsyncSession, criteria: FilterCriteria
) -> Tuple[List[Dict[str, Any]], int]:
    """Return one page of matching advocates plus the unpaginated match count.

    Args:
        session: Active async SQLAlchemy session.
        criteria: Validated filters and pagination.

    Returns:
        A tuple of (rows, total):
          * rows: API-shaped dicts in id order, after OFFSET/LIMIT.
          * total: number of rows matching the filters, ignoring pagination.
    """
    built = build_query(criteria, _dialect(session))

    total = int((await session.execute(built.count_statement())).scalar_one())
    res = await session.execute(built.rows_statement())
    rows = [_row_to_dict(a) for a in res.scalars().all()]
    return rows, total


async def create_advocate(session: AsyncSession, data: Dict[str, Any]) -> Dict[str, Any]:
    """Insert one advocate and commit.

    Args:
        session: Active async SQLAlchemy session.
        data: Validated snake_case field values.

    Returns:
        The stored row as an API-shaped dict.

    Raises:
        DuplicateAdvocateError: the (first_name, last_name) pair is taken.
    """
    advocate = Advocate(**{k: data[k] for k in _WRITABLE})
    session.add(advocate)
    try:
        await session.commit()
    except IntegrityError as exc:
        await session.rollback()
        raise DuplicateAdvocateError(data["first_name"], data["last_name"]) from exc
    return _row_to_dict(advocate)


async def upsert_advocate(
    session: AsyncSession, data: Dict[str, Any]
) -> Tuple[Dict[str, Any], bool]:
    """Insert an advocate or update the one with the same first and last name.

    Commits on success. The unique constraint still guards against a concurrent
    writer inserting the same name between the lookup and the insert; that case
    surfaces as `IntegrityError` for the caller to handle.

    Returns:
        (row, inserted) where `inserted` is False when an existing row was updated.
    """
    q = select(Advocate).where(
        Advocate.first_name == data["first_name"],
        Advocate.last_name == data["last_name"],
    )
    existing = (await session.execute(q)).scalar_one_or_none()

    if existing is None:
        advocate = Advocate(**{k: data[k] for k in _WRITABLE})
        session.add(advocate)
        inserted = True
    else:
        advocate = existing
        for k in _WRITABLE:
            setattr(advocate, k, data[k])
        inserted = False

    await session.commit()
    return _row_to_dict(advocate), inserted
