"""Process-wide logging: stdout, an optional log file, optional SQL statement echo."""

import os
import logging
import logging.config
from pathlib import Path
from typing import Any, Dict, Optional

_FORMAT = "%(asctime)s %(levelname)s %(name)s: %(message)s"

# Library loggers that should follow the root level.
_ALIGNED_LOGGERS = ("uvicorn", "uvicorn.error", "uvicorn.access", "fastapi", "slowapi")

_configured = False


def _handlers(log_file: Optional[str]) -> Dict[str, Dict[str, Any]]:
    out: Dict[str, Dict[str, Any]] = {
        "console": {
            "class": "logging.StreamHandler",
            "stream": "ext://sys.stdout",
            "formatter": "std",
        }
    }
    if log_file:
        Path(log_file).parent.mkdir(parents=True, exist_ok=True)
        # WatchedFileHandler reopens the file after external rotation
        out["file"] = {
            "class": "logging.handlers.WatchedFileHandler",
            "filename": log_file,
            "encoding": "utf-8",
            "formatter": "std",
        }
    return out


def _build_dict_config(
    log_file: Optional[str], level: str, log_sql: bool = False
) -> Dict[str, Any]:
    handlers = _handlers(log_file)
    return {
        "version": 1,
        "disable_existing_loggers": False,
        "formatters": {"std": {"format": _FORMAT}},
        "handlers": handlers,
        "root": {"level": level, "handlers": list(handlers)},
        # statement echo stays off at DEBUG unless asked for
        "loggers": {"sqlalchemy.engine": {"level": "INFO" if log_sql else "WARNING"}},
    }


def _env_flag(name: str) -> bool:
    return os.getenv(name, "0").lower() in ("1", "true", "yes")


def configure_logging() -> None:
    """Apply the logging config once per process.

    Env:
        LOG_LEVEL       root level (default INFO)
        LOG_FILE_PATH   also write to this file when set
        LOG_SQL         "1"/"true" to log emitted SQL statements
    """
    global _configured
    if _configured:
        return

    level = os.getenv("LOG_LEVEL", "INFO").upper()
    cfg = _build_dict_config(os.getenv("LOG_FILE_PATH") or None, level, _env_flag("LOG_SQL"))
    logging.config.dictConfig(cfg)

    for name in _ALIGNED_LOGGERS:
        logging.getLogger(name).setLevel(level)

    _configured = True
    logging.getLogger(__name__).debug(
        "logging.configured level=%s handlers=%s", level, cfg["root"]["handlers"]
    )
