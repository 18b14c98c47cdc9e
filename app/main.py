"""FastAPI app, lifespan bootstrap, and HTTP routes.

Defines the application instance, startup sequence (result cache + schema init,
optional seeding), and the public REST endpoints:

- GET  /                  -> redirect to Swagger UI (/docs)
- GET  /healthz           -> liveness
- GET  /healthcheck       -> database and cache status
- GET  /advocates         -> every advocate (cached)
- GET  /advocates/search  -> filtered, paginated advocates (cached)
- POST /advocates         -> create one advocate
- POST /seed              -> upsert the bootstrap dataset
"""

import logging
from contextlib import asynccontextmanager
from typing import Any, Dict, Optional

from fastapi import FastAPI, HTTPException, Query, Depends, Request
from fastapi.exceptions import RequestValidationError
from fastapi.responses import RedirectResponse, JSONResponse
from slowapi import Limiter
from slowapi.errors import RateLimitExceeded
from slowapi.util import get_remote_address
from sqlalchemy.ext.asyncio import AsyncSession
from starlette.exceptions import HTTPException as StarletteHTTPException

from . import crud, ingest, metrics, seed_data
from .db import dispose_db, get_session, init_db, wait_for_db
from .logging_config import configure_logging
from .query import CriteriaError, FilterCriteria, parse_criteria
from .result_cache import ResultCache, build_cache
from .schemas import (
    AdvocateIn,
    AdvocateList,
    CreatedOut,
    ErrorOut,
    HealthcheckOut,
    SearchResult,
    SeedOut,
)
from .settings import settings

configure_logging()
log = logging.getLogger(__name__)

# ---------------------------------------------------------------------
# App
# ---------------------------------------------------------------------

app = FastAPI(title="Advocate Directory", version="1.0.0")

limiter = Limiter(key_func=get_remote_address)
app.state.limiter = limiter
metrics.install(app)


def _error(status: int, message: str) -> JSONResponse:
    """Return the uniform `{"error": ...}` body."""
    return JSONResponse(status_code=status, content={"error": message})


@app.exception_handler(StarletteHTTPException)
async def http_exception_handler(_req: Request, exc: StarletteHTTPException):
    detail = exc.detail if isinstance(exc.detail, str) else "Request failed"
    return _error(exc.status_code, detail)


@app.exception_handler(RateLimitExceeded)
async def rate_limit_handler(_req: Request, exc: RateLimitExceeded):
    return _error(429, f"Rate limit exceeded: {exc.detail}")


def _describe_validation_error(err: Dict[str, Any]) -> str:
    loc = [str(p) for p in err.get("loc", ()) if p not in ("body", "query", "path")]
    field = ".".join(loc)
    return f"{field}: {err.get('msg')}" if field else str(err.get("msg"))


@app.exception_handler(RequestValidationError)
async def validation_exception_handler(_req: Request, exc: RequestValidationError):
    errors = exc.errors()
    msg = _describe_validation_error(errors[0]) if errors else "Validation error"
    return _error(400, msg)


@app.exception_handler(Exception)
async def unhandled_exception_handler(req: Request, exc: Exception):
    log.exception("route.unhandled path=%s error=%r", req.url.path, exc)
    return _error(500, "Internal server error")


# ---------------------------------------------------------------------
# Lifespan
# ---------------------------------------------------------------------


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Build the result cache, prepare the schema, optionally seed; clean up on exit."""
    cache = build_cache(settings)
    app.state.result_cache = cache

    if settings.DB_WAIT_FOR_DB:
        try:
            await wait_for_db()
        except Exception as e:
            log.error("startup.db_wait_failed error=%r", e)
            await cache.close()
            raise

    await init_db()
    log.info("startup.db_init complete")

    if settings.SEED_ON_STARTUP:
        async for session in get_session():
            n = await ingest.initial_seed_if_empty(session, cache)
            log.info("startup.initial_seed_if_empty written=%d", n)
            break

    try:
        yield
    finally:
        await cache.close()
        await dispose_db()
        log.info("shutdown complete")


app.router.lifespan_context = lifespan

_error_resp = {"model": ErrorOut}

# ---------------------------------------------------------------------
# Dependencies
# ---------------------------------------------------------------------


def get_cache(request: Request) -> ResultCache:
    """FastAPI dependency returning the process-wide ResultCache."""
    return request.app.state.result_cache


def search_criteria(
    search: Optional[str] = Query(None),
    city: Optional[str] = Query(None),
    degree: Optional[str] = Query(None),
    min_experience: Optional[str] = Query(None, alias="minExperience"),
    max_experience: Optional[str] = Query(None, alias="maxExperience"),
    specialty: Optional[str] = Query(None),
    limit: Optional[str] = Query(None),
    offset: Optional[str] = Query(None),
) -> FilterCriteria:
    """Parse and validate search parameters before any cache or DB access."""
    try:
        return parse_criteria(
            search=search,
            city=city,
            degree=degree,
            min_experience=min_experience,
            max_experience=max_experience,
            specialty=specialty,
            limit=limit,
            offset=offset,
        )
    except CriteriaError as exc:
        log.info("route.search bad_request field=%s error=%s", exc.field, exc)
        raise HTTPException(status_code=400, detail=str(exc)) from exc


async def _search_page(
    criteria: FilterCriteria,
    session: AsyncSession,
    cache: ResultCache,
    failure: str,
) -> Dict[str, Any]:
    """Serve `{"advocates", "total"}` for criteria from the cache or the DB.

    1) Attempt a cache hit.
    2) If miss, acquire the per-key lock (singleflight).
    3) Re-check the cache after acquiring the lock.
    4) On miss, query the DB, store the result unless a write invalidated the
       cache meanwhile, and return it.
    """
    key = cache.key(criteria)
    cached = await cache.get(criteria)
    if cached is not None:
        log.info("route.search cache_hit key=%s", key)
        return cached

    async with cache.singleflight(key):
        cached = await cache.get(criteria)
        if cached is not None:
            log.debug("route.search cache_hit_after_lock key=%s", key)
            return cached

        generation = cache.generation
        try:
            rows, total = await crud.search_advocates(session, criteria)
        except Exception as exc:
            log.error("route.search db_error key=%s error=%r", key, exc)
            raise HTTPException(status_code=500, detail=failure) from exc

        log.info("route.search key=%s returned=%d total=%d", key, len(rows), total)
        value = {"advocates": rows, "total": total}
        await cache.set(criteria, value, generation=generation)
        return value


# ---------------------------------------------------------------------
# Routes
# ---------------------------------------------------------------------


@app.get("/", include_in_schema=False)
async def root(_request: Request):
    """Redirect the root path to the interactive API docs (/docs)."""
    return RedirectResponse(url=app.docs_url or "/docs", status_code=307)


@app.get("/healthz", include_in_schema=False)
async def healthz():
    """In-process liveness probe; touches neither the DB nor the cache."""
    return {"status": "ok"}


@app.get("/healthcheck", response_model=HealthcheckOut)
async def healthcheck(
    request: Request,
    session: AsyncSession = Depends(get_session),
    cache: ResultCache = Depends(get_cache),
):
    """Deep health check for the database and the result cache."""
    db_ok = True
    total = 0
    try:
        total = await crud.count_advocates(session)
    except Exception as exc:
        db_ok = False
        log.debug("route.healthcheck.db_error error=%r", exc)
    cache_ok = await cache.ping()
    metrics.observe_db(db_ok)

    status = "ok" if (db_ok and cache_ok) else "degraded"
    log.info(
        "route.healthcheck status=%s db_ok=%s cache_ok=%s advocate_count=%d",
        status,
        db_ok,
        cache_ok,
        total,
    )
    return {
        "status": status,
        "db_ok": db_ok,
        "cache_ok": cache_ok,
        "cache_backend": cache.backend_name,
        "advocate_count": total,
    }


@app.get(
    "/advocates",
    response_model=AdvocateList,
    responses={429: _error_resp, 500: _error_resp},
)
@limiter.limit(settings.RATE_LIMIT)
async def list_advocates(
    request: Request,
    session: AsyncSession = Depends(get_session),
    cache: ResultCache = Depends(get_cache),
):
    """Return every advocate in id order.

    Shares the cache entry of an unfiltered, unpaginated search.
    """
    page = await _search_page(
        FilterCriteria(), session, cache, failure="Failed to fetch advocates"
    )
    return {"advocates": page["advocates"]}


@app.get(
    "/advocates/search",
    response_model=SearchResult,
    responses={400: _error_resp, 429: _error_resp, 500: _error_resp},
)
@limiter.limit(settings.RATE_LIMIT)
async def search_advocates(
    request: Request,
    criteria: FilterCriteria = Depends(search_criteria),
    session: AsyncSession = Depends(get_session),
    cache: ResultCache = Depends(get_cache),
):
    """Return one page of advocates matching the filters, plus the total match count.

    Args:
        request: Incoming request (used by the rate limiter).
        criteria: Validated filters; invalid numeric values were already
            rejected with 400.
        session: Async SQLAlchemy session.
        cache: Result cache.

    Returns:
        `{advocates, total, limit, offset}`; `total` ignores limit/offset.
    """
    page = await _search_page(
        criteria, session, cache, failure="Failed to search advocates"
    )
    return {
        "advocates": page["advocates"],
        "total": page["total"],
        "limit": criteria.limit,
        "offset": criteria.offset,
    }


@app.post(
    "/advocates",
    status_code=201,
    response_model=CreatedOut,
    responses={400: _error_resp, 409: _error_resp, 429: _error_resp, 500: _error_resp},
)
@limiter.limit(settings.RATE_LIMIT)
async def create_advocate(
    request: Request,
    payload: AdvocateIn,
    session: AsyncSession = Depends(get_session),
    cache: ResultCache = Depends(get_cache),
):
    """Create one advocate; 409 if the first/last name pair already exists."""
    try:
        row = await crud.create_advocate(session, payload.model_dump())
    except crud.DuplicateAdvocateError as exc:
        log.info("route.create conflict advocate=%s %s", exc.first_name, exc.last_name)
        raise HTTPException(
            status_code=409,
            detail="An advocate with this first and last name already exists",
        ) from exc
    except Exception as exc:
        log.error("route.create db_error error=%r", exc)
        raise HTTPException(status_code=500, detail="Failed to create advocate") from exc

    await cache.invalidate_all()
    log.info("route.create id=%s", row["id"])
    return {"message": "Advocate created successfully", "advocate": row}


@app.post(
    "/seed",
    response_model=SeedOut,
    responses={429: _error_resp, 500: _error_resp},
)
@limiter.limit(settings.RATE_LIMIT)
async def seed(
    request: Request,
    session: AsyncSession = Depends(get_session),
    cache: ResultCache = Depends(get_cache),
):
    """Upsert the bootstrap dataset keyed on first and last name."""
    try:
        report = await ingest.seed_advocates(session, seed_data.SEED_ADVOCATES, cache)
    except Exception as exc:
        log.error("route.seed error=%r", exc)
        raise HTTPException(status_code=500, detail="Failed to seed advocates") from exc

    if report.failed and not report.total:
        # nothing landed: treat as an infrastructure failure, not a partial batch
        raise HTTPException(status_code=500, detail="Failed to seed advocates")

    return {
        "message": f"Seeded {report.total} advocates",
        "advocates": report.advocates,
        "stats": report.stats(),
    }
