"""Structured logging for the LEAP bridge gateway.

Every line is a JSON object. Bridge and accessory identifiers passed via
``extra=`` are lifted to the top level; anything else a caller attaches
lands under ``extra``.
"""

from __future__ import annotations

import logging
import os
from datetime import datetime, timezone
from logging import Handler
from logging.config import dictConfig
from logging.handlers import SysLogHandler
from pathlib import Path
from typing import Any

import msgspec

from .const import LOG_STREAM_ENV
from .model import GatewayConfig

SYSLOG_SOCKET = Path("/dev/log")
SYSLOG_SOCKET_FALLBACK = Path("/var/run/log")
SYSLOG_IDENT = "leapbridge "

# Identifiers promoted out of ``extra`` into the top-level object.
CONTEXT_KEYS = ("bridge_id", "uuid")

# Third-party loggers that are too chatty at INFO.
QUIET_LOGGERS = ("zeroconf", "transitions")

_STANDARD_ATTRS = frozenset(logging.makeLogRecord({}).__dict__) | {"message", "asctime"}

_encoder = msgspec.json.Encoder(enc_hook=str)


def _coerce(value: Any) -> Any:
    # Spaced uppercase hex, e.g. "01 AB".
    if isinstance(value, (bytes, bytearray)):
        return bytes(value).hex(" ").upper()
    return value


def _record_extras(record: logging.LogRecord) -> dict[str, Any]:
    return {
        key: _coerce(value)
        for key, value in record.__dict__.items()
        if key not in _STANDARD_ATTRS and not key.startswith("_")
    }


class StructuredLogFormatter(logging.Formatter):
    """Render a record as one JSON line."""

    PREFIX = "leapbridge."

    def format(self, record: logging.LogRecord) -> str:
        payload: dict[str, Any] = {
            "ts": datetime.fromtimestamp(record.created, tz=timezone.utc).isoformat().replace("+00:00", "Z"),
            "level": record.levelname,
            "logger": record.name.removeprefix(self.PREFIX),
            "message": record.getMessage(),
        }

        extras = _record_extras(record)
        for key in CONTEXT_KEYS:
            if key in extras:
                payload[key] = extras.pop(key)
        if extras:
            payload["extra"] = extras
        if record.exc_info:
            payload["exception"] = self.formatException(record.exc_info)

        return _encoder.encode(payload).decode("utf-8")


def _syslog_address() -> str | None:
    for candidate in (SYSLOG_SOCKET, SYSLOG_SOCKET_FALLBACK):
        if candidate.exists():
            return str(candidate)
    return None


def _build_handler() -> Handler:
    if os.environ.get(LOG_STREAM_ENV):
        return logging.StreamHandler()
    address = _syslog_address()
    if address is None:
        return logging.StreamHandler()
    handler = SysLogHandler(address=address, facility=SysLogHandler.LOG_DAEMON)
    handler.ident = SYSLOG_IDENT
    return handler


def build_logging_config(config: GatewayConfig) -> dict[str, Any]:
    """Return the ``dictConfig`` mapping for *config*."""
    level_name = "DEBUG" if config.debug_logging else "INFO"
    library_level = level_name if config.debug_logging else "WARNING"
    return {
        "version": 1,
        "disable_existing_loggers": False,
        "formatters": {"structured": {"()": StructuredLogFormatter}},
        "handlers": {
            "leapbridge": {
                "()": _build_handler,
                "level": level_name,
                "formatter": "structured",
            }
        },
        "loggers": {name: {"level": library_level} for name in QUIET_LOGGERS},
        "root": {"level": level_name, "handlers": ["leapbridge"]},
    }


def configure_logging(config: GatewayConfig) -> None:
    dictConfig(build_logging_config(config))
    logging.captureWarnings(True)
    logging.getLogger("leapbridge").info(
        "Logging configured at level %s", logging.getLevelName(logging.getLogger().level)
    )
