"""Filter criteria parsing and predicate construction.

Covers:
* Validation/normalization of raw query-string values.
* Each filter in isolation and in combination against a real (SQLite) table,
  checked against a plain-Python reading of the same rules.
* Count/page consistency and id ordering.
* Postgres rendering of the array-membership and substring predicates.
"""

import itertools

import pytest
import pytest_asyncio
from sqlalchemy.dialects import postgresql, sqlite

from app import crud
from app.query import CriteriaError, FilterCriteria, build_query, parse_criteria
from app.schemas import AdvocateIn


ROWS = [
    ("Alice", "Smith", "Boston", "MD", ["Anxiety"], 5),
    ("Bob", "Jones", "New York", "PhD", ["Trauma & PTSD", "Anxiety disorders"], 12),
    ("Carol", "White", "South Boston", "MSW", ["Grief"], 20),
    ("Dan", "Brown", "Chicago", "MD", ["Depression", "Sleep issues"], 0),
    ("Eve", "Black", "Denver", "PhD", ["100% remote"], 7),
]


def _record(first, last, city, degree, specialties, years):
    return AdvocateIn.model_validate(
        {
            "firstName": first,
            "lastName": last,
            "city": city,
            "degree": degree,
            "specialties": specialties,
            "yearsOfExperience": years,
            "phoneNumber": 5550000000,
        }
    ).model_dump()


@pytest_asyncio.fixture
async def populated(session):
    for row in ROWS:
        await crud.upsert_advocate(session, _record(*row))
    return session


def _matches(row, c: FilterCriteria) -> bool:
    """Reference semantics for one row."""
    first, last, city, degree, specialties, years = row

    def has(text, term):
        return term.lower() in text.lower()

    if c.search and not (
        has(first, c.search)
        or has(last, c.search)
        or has(city, c.search)
        or has(degree, c.search)
        or any(has(s, c.search) for s in specialties)
    ):
        return False
    if c.city and not has(city, c.city):
        return False
    if c.degree and not has(degree, c.degree):
        return False
    if c.min_experience is not None and years < c.min_experience:
        return False
    if c.max_experience is not None and years > c.max_experience:
        return False
    if c.specialty and c.specialty not in specialties:
        return False
    return True


def _expected_names(c: FilterCriteria):
    return [r[0] for r in ROWS if _matches(r, c)]


# ---------------------------------------------------------------------
# parse_criteria
# ---------------------------------------------------------------------


def test_parse_criteria_normalizes_blank_text_to_absent():
    """Empty and whitespace-only text parse the same as a missing parameter."""
    assert parse_criteria(search="", city="   ", degree=None) == FilterCriteria()
    assert parse_criteria(city="  Boston ") == FilterCriteria(city="Boston")


def test_parse_criteria_parses_non_negative_integers():
    c = parse_criteria(min_experience="3", max_experience=" 10 ", limit="05", offset="0")
    assert c.min_experience == 3
    assert c.max_experience == 10
    assert c.limit == 5
    assert c.offset == 0


@pytest.mark.parametrize(
    "field,value,name",
    [
        ("limit", "abc", "limit"),
        ("limit", "-1", "limit"),
        ("offset", "1.5", "offset"),
        ("min_experience", "10years", "minExperience"),
        ("max_experience", "+3", "maxExperience"),
        ("limit", "99999999999999999999", "limit"),
        ("offset", str(2**63), "offset"),
        ("min_experience", str(2**31), "minExperience"),
        ("max_experience", "9" * 5000, "maxExperience"),
    ],
)
def test_parse_criteria_rejects_malformed_numbers(field, value, name):
    with pytest.raises(CriteriaError) as ei:
        parse_criteria(**{field: value})
    assert ei.value.field == name
    assert name in str(ei.value)


def test_parse_criteria_accepts_largest_bindable_values():
    c = parse_criteria(
        min_experience=str(2**31 - 1), limit=str(2**63 - 1), offset="000" + str(2**63 - 1)
    )
    assert c.min_experience == 2**31 - 1
    assert c.limit == c.offset == 2**63 - 1


def test_empty_numeric_string_is_absent():
    assert parse_criteria(limit="", offset="  ").limit is None


# ---------------------------------------------------------------------
# Predicates against the table
# ---------------------------------------------------------------------


async def _names(session, c: FilterCriteria):
    rows, total = await crud.search_advocates(session, c)
    return [r["firstName"] for r in rows], total


@pytest.mark.asyncio
@pytest.mark.parametrize(
    "criteria,expected",
    [
        (FilterCriteria(), ["Alice", "Bob", "Carol", "Dan", "Eve"]),
        (FilterCriteria(search="smith"), ["Alice"]),
        (FilterCriteria(search="ANXIETY"), ["Alice", "Bob"]),
        (FilterCriteria(search="boston"), ["Alice", "Carol"]),
        (FilterCriteria(city="boston"), ["Alice", "Carol"]),
        (FilterCriteria(degree="md"), ["Alice", "Dan"]),
        (FilterCriteria(min_experience=10), ["Bob", "Carol"]),
        (FilterCriteria(max_experience=5), ["Alice", "Dan"]),
        (FilterCriteria(min_experience=10, max_experience=5), []),
        (FilterCriteria(specialty="Anxiety"), ["Alice"]),
        (FilterCriteria(specialty="anxiety"), []),
        (FilterCriteria(city="boston", min_experience=10), ["Carol"]),
        (FilterCriteria(search="%"), ["Eve"]),
        (FilterCriteria(city="_"), []),
    ],
)
async def test_each_filter_in_isolation_and_combination(populated, criteria, expected):
    names, total = await _names(populated, criteria)
    assert names == expected
    assert total == len(expected)


@pytest.mark.asyncio
async def test_predicate_is_conjunction_of_present_filters(populated):
    """Across many filter combinations, a row is returned iff it satisfies every filter."""
    options = {
        "search": [None, "o", "anxiety"],
        "city": [None, "boston"],
        "degree": [None, "phd", "md"],
        "min_experience": [None, 5],
        "max_experience": [None, 12],
        "specialty": [None, "Anxiety", "Grief"],
    }
    keys = list(options)
    for combo in itertools.product(*(options[k] for k in keys)):
        c = FilterCriteria(**dict(zip(keys, combo)))
        names, total = await _names(populated, c)
        expected = _expected_names(c)
        assert names == expected, c
        assert total == len(expected), c


@pytest.mark.asyncio
async def test_total_is_invariant_to_pagination(populated):
    _, full_total = await _names(populated, FilterCriteria())
    assert full_total == 5

    for limit, offset in [(2, None), (2, 2), (2, 4), (10, 0), (None, 3), (0, 0)]:
        names, total = await _names(populated, FilterCriteria(limit=limit, offset=offset))
        assert total == full_total
        if limit is not None:
            assert len(names) <= limit

    page1, _ = await _names(populated, FilterCriteria(limit=2))
    page2, _ = await _names(populated, FilterCriteria(limit=2, offset=2))
    page3, _ = await _names(populated, FilterCriteria(limit=2, offset=4))
    assert page1 + page2 + page3 == ["Alice", "Bob", "Carol", "Dan", "Eve"]

    tail, _ = await _names(populated, FilterCriteria(offset=3))
    assert tail == ["Dan", "Eve"]


@pytest.mark.asyncio
async def test_offset_past_end_returns_empty_page_with_total(populated):
    names, total = await _names(populated, FilterCriteria(city="boston", offset=10))
    assert names == []
    assert total == 2


# ---------------------------------------------------------------------
# Statement shape
# ---------------------------------------------------------------------


def _sql(stmt, dialect):
    return str(stmt.compile(dialect=dialect))


def test_postgres_specialty_uses_array_containment():
    built = build_query(FilterCriteria(specialty="Anxiety"), "postgresql")
    sql = _sql(built.rows_statement(), postgresql.dialect())
    assert "@>" in sql


def test_postgres_text_filters_use_ilike():
    built = build_query(FilterCriteria(search="x", city="y"), "postgresql")
    sql = _sql(built.count_statement(), postgresql.dialect())
    assert "ILIKE" in sql
    assert "CAST(advocates.specialties AS TEXT)" in sql


def test_sqlite_specialty_uses_json_each():
    built = build_query(FilterCriteria(specialty="Anxiety"), "sqlite")
    sql = _sql(built.rows_statement(), sqlite.dialect())
    assert "json_each" in sql
    assert "EXISTS" in sql


def test_count_statement_ignores_pagination():
    built = build_query(FilterCriteria(city="Boston", limit=5, offset=10), "postgresql")
    count_sql = _sql(built.count_statement(), postgresql.dialect())
    rows_sql = _sql(built.rows_statement(), postgresql.dialect())
    assert "LIMIT" not in count_sql and "OFFSET" not in count_sql
    assert "LIMIT" in rows_sql and "OFFSET" in rows_sql
    assert "ORDER BY advocates.id ASC" in rows_sql


def test_absent_filters_contribute_no_clauses():
    assert build_query(FilterCriteria()).clauses == ()
    assert len(build_query(FilterCriteria(city="a", max_experience=3)).clauses) == 2


def test_build_query_is_deterministic():
    c = FilterCriteria(search="a", city="b", specialty="c", limit=3, offset=1)
    a = build_query(c, "postgresql")
    b = build_query(FilterCriteria(**c.as_dict()), "postgresql")
    assert _sql(a.rows_statement(), postgresql.dialect()) == _sql(
        b.rows_statement(), postgresql.dialect()
    )
    assert a.pagination == b.pagination
