from typing import Optional

from pydantic_settings import BaseSettings


class Settings(BaseSettings):
    # Database
    DATABASE_URL: str = "sqlite+aiosqlite:///./advocates.db"
    DB_POOL_SIZE: Optional[int] = None  # Postgres only
    DB_MAX_OVERFLOW: Optional[int] = None
    DB_POOL_RECYCLE: Optional[int] = None
    DB_STATEMENT_TIMEOUT_MS: Optional[int] = None  # asyncpg server-side timeout

    # Startup readiness wait (see db.wait_for_db)
    DB_WAIT_FOR_DB: bool = False
    DB_WAIT_MAX_ATTEMPTS: int = 30
    DB_WAIT_BACKOFF_START: float = 0.5
    DB_WAIT_BACKOFF_MAX: float = 5.0

    # Result cache
    CACHE_BACKEND: str = "memory"  # "memory" or "redis"
    REDIS_URL: str = "redis://localhost:6379/0"
    CACHE_TTL_SECONDS: int = 300
    CACHE_MAXSIZE: int = 1024  # in-process backend only
    CACHE_NAMESPACE: str = "advocates"

    # API
    RATE_LIMIT: str = "60/minute"  # per client IP
    SEED_ON_STARTUP: bool = False

    class Config:
        env_file = ".env"


settings = Settings()
