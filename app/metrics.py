"""Prometheus instruments for the API, the result cache and seeding."""

import time

from fastapi import FastAPI, Request, Response
from prometheus_client import CONTENT_TYPE_LATEST, Counter, Gauge, Histogram, generate_latest

HTTP_REQUESTS = Counter(
    "http_requests_total",
    "HTTP requests by route template, method and status",
    labelnames=["path", "method", "status"],
)
HTTP_LATENCY = Histogram(
    "http_request_latency_seconds",
    "HTTP request latency by route template",
    labelnames=["path", "method"],
)

CACHE_LOOKUPS = Counter(
    "result_cache_requests_total",
    "Search result cache lookups",
    labelnames=["result"],
)
CACHE_ERRORS = Counter(
    "cache_errors_total",
    "Result cache backend failures (absorbed)",
    labelnames=["cache", "op"],
)
CACHE_INVALIDATIONS = Counter(
    "cache_invalidations_total", "Namespace-wide result cache invalidations"
)

SEED_RECORDS = Counter(
    "seed_records_total", "Seed records processed", labelnames=["outcome"]
)
DB_UP = Gauge("db_ok", "1 when the last healthcheck reached the database, else 0")


def record_cache_lookup(hit: bool) -> None:
    CACHE_LOOKUPS.labels(result="hit" if hit else "miss").inc()


def record_cache_error(op: str, cache: str = "memory") -> None:
    CACHE_ERRORS.labels(cache=cache, op=op).inc()


def record_cache_invalidation() -> None:
    CACHE_INVALIDATIONS.inc()


def record_seed(outcome: str, n: int = 1) -> None:
    if n:
        SEED_RECORDS.labels(outcome=outcome).inc(n)


def observe_db(db_ok: bool) -> None:
    DB_UP.set(int(db_ok))


def _path_label(request: Request) -> str:
    # route template keeps label cardinality bounded
    route = request.scope.get("route")
    return getattr(route, "path", None) or "unmatched"


def _observe_request(request: Request, status: int, elapsed: float) -> None:
    path = _path_label(request)
    HTTP_LATENCY.labels(path=path, method=request.method).observe(elapsed)
    HTTP_REQUESTS.labels(path=path, method=request.method, status=str(status)).inc()


def install(app: FastAPI) -> None:
    """Attach the timing middleware and the `/metrics` scrape endpoint."""

    @app.middleware("http")
    async def _timing(request: Request, call_next):
        started = time.perf_counter()
        status = 500  # stays 500 if the handler raised
        try:
            response = await call_next(request)
            status = response.status_code
        finally:
            _observe_request(request, status, time.perf_counter() - started)
        return response

    @app.get("/metrics", include_in_schema=False)
    async def scrape():
        return Response(generate_latest(), media_type=CONTENT_TYPE_LATEST)
