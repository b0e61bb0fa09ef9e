"""
Console logging. LOG_LEVEL sets the overall level; SCREEN_DEBUG=1 turns on
the reader's debug output (screen texts, menu contents, OCR block counts)
while the HTTP, scheduler and database libraries stay at WARNING.
"""
import logging
import os
from logging.config import dictConfig
from typing import Optional

QUIET_LOGGERS = ("httpx", "httpcore", "apscheduler", "aiosqlite", "sqlalchemy.engine")
SCREEN_LOGGER = "screenreader.services"


def _env_flag(name: str) -> bool:
    return os.environ.get(name, "").strip().lower() in ("1", "true", "yes", "on")


def build_logging_config(level: Optional[str] = None, screen_debug: Optional[bool] = None) -> dict:
    level = (level or os.environ.get("LOG_LEVEL", "INFO")).upper()
    if screen_debug is None:
        screen_debug = _env_flag("SCREEN_DEBUG")

    loggers: dict[str, dict] = {name: {"level": "WARNING"} for name in QUIET_LOGGERS}
    loggers["uvicorn.access"] = {"handlers": ["console"], "level": level, "propagate": False}
    if screen_debug:
        loggers[SCREEN_LOGGER] = {"level": "DEBUG"}

    return {
        "version": 1,
        "disable_existing_loggers": False,
        "formatters": {
            "plain": {
                "format": "%(asctime)s %(levelname)s [%(name)s] %(message)s",
                "datefmt": "%Y-%m-%dT%H:%M:%S%z",
            }
        },
        "handlers": {"console": {"class": "logging.StreamHandler", "formatter": "plain"}},
        "loggers": loggers,
        "root": {"handlers": ["console"], "level": level},
    }


def configure_logging(level: Optional[str] = None, screen_debug: Optional[bool] = None) -> None:
    config = build_logging_config(level, screen_debug)
    dictConfig(config)
    logging.getLogger(__name__).debug("Logging configured at %s", config["root"]["level"])
