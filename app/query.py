"""Filter criteria parsing and query construction for advocate searches.

`parse_criteria` turns raw query-string values into a validated, normalized
`FilterCriteria`. `build_query` turns criteria into a `BuiltQuery` whose row and
count statements share one predicate, so a page and its total always agree.

The predicate is assembled by folding `PREDICATES` over the criteria: each entry
returns a clause or None, and the clauses that are present are ANDed together.
"""

from __future__ import annotations

import re
from dataclasses import dataclass, asdict
from typing import Callable, Dict, List, Optional, Tuple

from sqlalchemy import Select, Text, and_, cast, func, or_, select, true
from sqlalchemy.sql.elements import ColumnElement

from .models import Advocate

_UINT = re.compile(r"^\d+$")


class CriteriaError(ValueError):
    """Raised when a filter or pagination value cannot be accepted."""

    def __init__(self, field: str, message: str) -> None:
        super().__init__(message)
        self.field = field


@dataclass(frozen=True)
class FilterCriteria:
    """One request's search filters and pagination. Absent fields are None."""

    search: Optional[str] = None
    city: Optional[str] = None
    degree: Optional[str] = None
    min_experience: Optional[int] = None
    max_experience: Optional[int] = None
    specialty: Optional[str] = None
    limit: Optional[int] = None
    offset: Optional[int] = None

    def as_dict(self) -> Dict[str, object]:
        return asdict(self)


# query-string names, used in error messages
_PUBLIC_NAMES = {
    "min_experience": "minExperience",
    "max_experience": "maxExperience",
    "limit": "limit",
    "offset": "offset",
}

# largest value each field can bind: experience is an INTEGER column,
# LIMIT/OFFSET take a 64-bit integer
_MAX_VALUES = {
    "min_experience": 2**31 - 1,
    "max_experience": 2**31 - 1,
    "limit": 2**63 - 1,
    "offset": 2**63 - 1,
}


def _clean_text(value: Optional[str]) -> Optional[str]:
    if value is None:
        return None
    value = value.strip()
    return value or None


def _parse_uint(field: str, value: Optional[str]) -> Optional[int]:
    if value is None:
        return None
    value = value.strip()
    if not value:
        return None
    name = _PUBLIC_NAMES[field]
    if not _UINT.match(value):
        raise CriteriaError(name, f"{name} must be a non-negative integer")
    # digit count first so int() never sees an arbitrarily long string
    ceiling = _MAX_VALUES[field]
    if len(value.lstrip("0")) > len(str(ceiling)) or int(value) > ceiling:
        raise CriteriaError(name, f"{name} must be at most {ceiling}")
    return int(value)


def parse_criteria(
    search: Optional[str] = None,
    city: Optional[str] = None,
    degree: Optional[str] = None,
    min_experience: Optional[str] = None,
    max_experience: Optional[str] = None,
    specialty: Optional[str] = None,
    limit: Optional[str] = None,
    offset: Optional[str] = None,
) -> FilterCriteria:
    """Validate raw query-string values and build `FilterCriteria`.

    Text values are trimmed, and blank text counts as absent, so `?city=` and no
    `city` at all produce the same criteria (and the same cache key). Numeric
    values must be plain non-negative integers; anything else is rejected rather
    than coerced.

    Raises:
        CriteriaError: naming the first offending parameter.
    """
    return FilterCriteria(
        search=_clean_text(search),
        city=_clean_text(city),
        degree=_clean_text(degree),
        min_experience=_parse_uint("min_experience", min_experience),
        max_experience=_parse_uint("max_experience", max_experience),
        specialty=_clean_text(specialty),
        limit=_parse_uint("limit", limit),
        offset=_parse_uint("offset", offset),
    )


# ---------------------------------------------------------------------
# Predicates
# ---------------------------------------------------------------------

Predicate = Callable[[FilterCriteria, str], Optional[ColumnElement]]


def _specialties_text() -> ColumnElement:
    # Postgres renders text[] as {a,"b c"}; SQLite stores the JSON list text
    return cast(Advocate.specialties, Text)


def _search(c: FilterCriteria, dialect: str) -> Optional[ColumnElement]:
    if c.search is None:
        return None
    term = c.search
    return or_(
        Advocate.first_name.icontains(term, autoescape=True),
        Advocate.last_name.icontains(term, autoescape=True),
        Advocate.city.icontains(term, autoescape=True),
        Advocate.degree.icontains(term, autoescape=True),
        _specialties_text().icontains(term, autoescape=True),
    )


def _city(c: FilterCriteria, dialect: str) -> Optional[ColumnElement]:
    if c.city is None:
        return None
    return Advocate.city.icontains(c.city, autoescape=True)


def _degree(c: FilterCriteria, dialect: str) -> Optional[ColumnElement]:
    if c.degree is None:
        return None
    return Advocate.degree.icontains(c.degree, autoescape=True)


def _min_experience(c: FilterCriteria, dialect: str) -> Optional[ColumnElement]:
    if c.min_experience is None:
        return None
    return Advocate.years_of_experience >= c.min_experience


def _max_experience(c: FilterCriteria, dialect: str) -> Optional[ColumnElement]:
    if c.max_experience is None:
        return None
    return Advocate.years_of_experience <= c.max_experience


def _specialty(c: FilterCriteria, dialect: str) -> Optional[ColumnElement]:
    """Exact element membership, never a substring match."""
    if c.specialty is None:
        return None
    if dialect == "postgresql":
        # specialties @> ARRAY[...] (served by the GIN index)
        return Advocate.specialties.contains([c.specialty])
    elements = func.json_each(Advocate.specialties).table_valued("value")
    return (
        select(elements.c.value)
        .where(elements.c.value == c.specialty)
        .exists()
    )


PREDICATES: Tuple[Predicate, ...] = (
    _search,
    _city,
    _degree,
    _min_experience,
    _max_experience,
    _specialty,
)


@dataclass(frozen=True)
class Pagination:
    limit: Optional[int] = None
    offset: Optional[int] = None


@dataclass(frozen=True)
class BuiltQuery:
    """A predicate plus pagination, ready to render as row and count statements."""

    clauses: Tuple[ColumnElement, ...]
    pagination: Pagination

    @property
    def predicate(self) -> ColumnElement:
        if not self.clauses:
            return true()
        return and_(*self.clauses)

    def rows_statement(self) -> Select:
        """Matching rows in id order, with OFFSET/LIMIT applied."""
        stmt = select(Advocate).where(self.predicate).order_by(Advocate.id.asc())
        if self.pagination.offset:
            stmt = stmt.offset(self.pagination.offset)
        if self.pagination.limit is not None:
            stmt = stmt.limit(self.pagination.limit)
        return stmt

    def count_statement(self) -> Select:
        """Total matches for the predicate; pagination is ignored."""
        return select(func.count()).select_from(Advocate).where(self.predicate)


def build_query(criteria: FilterCriteria, dialect: str = "postgresql") -> BuiltQuery:
    """Translate criteria into a `BuiltQuery` for the given SQL dialect name.

    Pure: equal criteria always yield equivalent statements.
    """
    clauses: List[ColumnElement] = []
    for predicate in PREDICATES:
        clause = predicate(criteria, dialect)
        if clause is not None:
            clauses.append(clause)
    return BuiltQuery(
        clauses=tuple(clauses),
        pagination=Pagination(limit=criteria.limit, offset=criteria.offset),
    )
