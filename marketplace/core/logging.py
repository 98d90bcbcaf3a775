from __future__ import annotations

import json
import logging
import logging.config
from datetime import datetime, timezone
from typing import Any

from marketplace.core.config import settings

_STANDARD_ATTRS = set(logging.makeLogRecord({}).__dict__.keys())
_CONSOLE_FORMAT = "%(asctime)s %(levelname)-7s [%(name)s] %(message)s"


def _extra_fields(record: logging.LogRecord) -> dict[str, Any]:
    return {key: value for key, value in record.__dict__.items() if key not in _STANDARD_ATTRS}


class JsonFormatter(logging.Formatter):
    """One JSON object per record; context passed through ``extra`` is nested."""

    def format(self, record: logging.LogRecord) -> str:
        message = {
            "timestamp": datetime.now(timezone.utc).isoformat(),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
            "environment": settings.ENVIRONMENT,
        }
        if record.exc_info:
            message["exc_info"] = self.formatException(record.exc_info)
        if record.stack_info:
            message["stack_info"] = record.stack_info

        extra = _extra_fields(record)
        if extra:
            message["extra"] = extra

        return json.dumps(message, default=str)


class ConsoleFormatter(logging.Formatter):
    """Human readable lines for local development, context appended as key=value."""

    def __init__(self) -> None:
        super().__init__(_CONSOLE_FORMAT)

    def format(self, record: logging.LogRecord) -> str:
        line = super().format(record)
        extra = _extra_fields(record)
        if extra:
            line += " " + " ".join(f"{key}={value}" for key, value in sorted(extra.items()))
        return line


def setup_logging() -> None:
    """Apply centralized logging configuration."""
    level = getattr(logging, settings.LOG_LEVEL.upper(), logging.INFO)
    formatter = "json" if settings.is_production else "console"
    logging_config: dict[str, Any] = {
        "version": 1,
        "disable_existing_loggers": False,
        "formatters": {
            "json": {"()": JsonFormatter},
            "console": {"()": ConsoleFormatter},
        },
        "handlers": {
            "default": {
                "class": "logging.StreamHandler",
                "formatter": formatter,
            }
        },
        "root": {
            "handlers": ["default"],
            "level": level,
        },
        "loggers": {
            "uvicorn.error": {"level": level},
            "uvicorn.access": {"handlers": ["default"], "level": level, "propagate": False},
            "sqlalchemy.engine": {"level": logging.WARNING},
        },
    }

    logging.config.dictConfig(logging_config)


def get_logger(name: str) -> logging.Logger:
    return logging.getLogger(name)


def security_alert(message: str, **context: Any) -> None:
    """Elevated security alert logs for downstream alerting rules."""
    logger = get_logger("marketplace.security")
    logger.warning(message, extra={"alert": True, **context})


def inventory_audit(action: str, product_id: Any, quantity: int, **context: Any) -> None:
    """Every stock mutation leaves one record on the ``marketplace.inventory`` logger."""
    logger = get_logger("marketplace.inventory")
    logger.info(
        f"stock {action}",
        extra={"action": action, "product_id": str(product_id), "quantity": quantity, **context},
    )
