from __future__ import annotations

import logging
from logging.config import dictConfig

from asgi_correlation_id.context import correlation_id
from pythonjsonlogger import jsonlogger

# Chatty at INFO; kept at WARNING unless the app itself runs at DEBUG.
NOISY_LOGGERS = ("sqlalchemy.engine", "aiosqlite", "redis", "passlib")


class CorrelationIdFilter(logging.Filter):
    """Tag records with the request id, or the queue message id in the worker."""

    def filter(self, record: logging.LogRecord) -> bool:
        record.correlation_id = correlation_id.get() or "-"
        record.service = "quill"
        return True


def _formatter(log_format: str) -> dict:
    if log_format == "text":
        return {
            "format": (
                "%(asctime)s %(levelname)-8s [%(correlation_id)s] "
                "%(name)s: %(message)s"
            ),
        }
    return {
        "()": jsonlogger.JsonFormatter,
        "fmt": (
            "%(asctime)s %(levelname)s %(name)s %(service)s "
            "%(message)s %(correlation_id)s"
        ),
    }


def configure_logging(level: str = "INFO", log_format: str = "json") -> None:
    """Route the app, uvicorn and worker logs through one handler.

    Args:
        level: Root log level
        log_format: ``json`` for structured output, ``text`` for local runs
    """
    library_level = level if level == "DEBUG" else "WARNING"
    loggers: dict[str, dict] = {
        name: {"handlers": ["default"], "level": level, "propagate": False}
        for name in ("uvicorn.error", "uvicorn.access")
    }
    loggers.update({name: {"level": library_level} for name in NOISY_LOGGERS})

    dictConfig(
        {
            "version": 1,
            "disable_existing_loggers": False,
            "filters": {"with_correlation": {"()": CorrelationIdFilter}},
            "formatters": {"default": _formatter(log_format)},
            "handlers": {
                "default": {
                    "class": "logging.StreamHandler",
                    "formatter": "default",
                    "filters": ["with_correlation"],
                }
            },
            "root": {"handlers": ["default"], "level": level},
            "loggers": loggers,
        }
    )
