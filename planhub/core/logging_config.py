# planhub/core/logging_config.py
from __future__ import annotations

import logging.config
import sys
from pathlib import Path
from typing import Any, Dict, Optional

from planhub.core.config import Settings, settings as default_settings

# client libraries that log every request at INFO
QUIET_LOGGERS = ("httpx", "httpcore", "hpack", "aiohttp.access", "urllib3")


def build_logging_config(cfg: Settings) -> Dict[str, Any]:
    handlers: Dict[str, Dict[str, Any]] = {
        "console": {
            "class": "logging.StreamHandler",
            "stream": sys.stdout,
            "level": cfg.LOG_LEVEL,
            "formatter": "plain",
        },
    }
    if cfg.LOG_FILE:
        handlers["file"] = {
            "class": "logging.handlers.RotatingFileHandler",
            "filename": cfg.LOG_FILE,
            "maxBytes": cfg.LOG_MAX_BYTES,
            "backupCount": cfg.LOG_BACKUPS,
            "encoding": "utf-8",
            "level": "DEBUG",
            "formatter": "plain",
        }
    names = list(handlers)

    loggers: Dict[str, Dict[str, Any]] = {
        name: {"handlers": names, "level": cfg.LOG_LEVEL, "propagate": False}
        for name in ("uvicorn.error", "uvicorn.access", "planhub")
    }
    for name in QUIET_LOGGERS:
        loggers[name] = {"level": "WARNING"}

    return {
        "version": 1,
        "disable_existing_loggers": False,
        "formatters": {
            "plain": {
                "format": "%(asctime)s | %(levelname)s | %(name)s | %(message)s",
                "datefmt": "%Y-%m-%d %H:%M:%S",
            },
        },
        "handlers": handlers,
        "loggers": loggers,
        "root": {"handlers": names, "level": cfg.LOG_LEVEL},
    }


def setup_logging(cfg: Optional[Settings] = None) -> None:
    """Console logging, plus a rotating file when LOG_FILE is set."""
    cfg = cfg or default_settings
    if cfg.LOG_FILE:
        Path(cfg.LOG_FILE).parent.mkdir(parents=True, exist_ok=True)
    logging.config.dictConfig(build_logging_config(cfg))
