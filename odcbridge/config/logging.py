"""Logging setup for odcbridge: one JSON object per line.

Records from ``odcbridge.*`` loggers are shown without the package prefix.
Attributes passed through ``extra=`` land under ``"extra"``; byte strings
there are rendered as uppercase hex so device payloads stay readable.
"""

from __future__ import annotations

import logging
from datetime import datetime, timezone
from logging import Handler
from logging.config import dictConfig
from logging.handlers import SysLogHandler
from pathlib import Path
from typing import Any

import msgspec

from .settings import RuntimeConfig

SYSLOG_SOCKET = Path("/dev/log")
SYSLOG_SOCKET_FALLBACK = Path("/var/run/log")

# Loggers of the MQTT stack that are only interesting when debugging.
NOISY_LOGGERS = ("aiomqtt", "odcbridge.mqtt.client", "aiohttp.access")

# Everything a bare LogRecord carries, plus what Formatter.format() adds.
_RESERVED_LOG_KEYS = frozenset(
    logging.LogRecord("", logging.NOTSET, "", 0, "", (), None).__dict__
) | {"message", "asctime"}


class LogLine(msgspec.Struct, omit_defaults=True):
    ts: str
    level: str
    logger: str
    message: str
    extra: dict[str, Any] | None = None
    exception: str | None = None


def _hex(data: bytes | bytearray) -> str:
    return "[" + " ".join(format(octet, "02X") for octet in data) + "]"


def _serialise_value(value: Any) -> Any:
    if value is None or isinstance(value, (str, int, float, bool)):
        return value
    if isinstance(value, (bytes, bytearray)):
        return _hex(value)
    return str(value)


class StructuredLogFormatter(logging.Formatter):
    """JSON formatter used by every handler :func:`configure_logging` installs."""

    PREFIX = "odcbridge."

    def format(self, record: logging.LogRecord) -> str:
        name = record.name.removeprefix(self.PREFIX)
        created = datetime.fromtimestamp(record.created, tz=timezone.utc)
        extras = {
            key: _serialise_value(value)
            for key, value in vars(record).items()
            if key not in _RESERVED_LOG_KEYS and not key.startswith("_")
        }
        line = LogLine(
            ts=created.isoformat(timespec="milliseconds").replace("+00:00", "Z"),
            level=record.levelname,
            logger=name,
            message=record.getMessage(),
            extra=extras or None,
            exception=self.formatException(record.exc_info) if record.exc_info else None,
        )
        return msgspec.json.encode(line).decode("utf-8")


def _build_stream_handler() -> Handler:
    return logging.StreamHandler()


def _build_syslog_handler() -> Handler:
    socket_path = next(
        (path for path in (SYSLOG_SOCKET, SYSLOG_SOCKET_FALLBACK) if path.exists()),
        None,
    )
    if socket_path is None:
        return logging.StreamHandler()
    handler = SysLogHandler(address=str(socket_path), facility=SysLogHandler.LOG_USER)
    handler.ident = "odcbridge "
    return handler


def configure_logging(config: RuntimeConfig) -> None:
    """Install the JSON handler on the root logger."""

    level = "DEBUG" if config.debug_logging else "INFO"
    quiet_level = level if config.debug_logging else "WARNING"

    dictConfig(
        {
            "version": 1,
            "disable_existing_loggers": False,
            "formatters": {
                "structured": {"()": StructuredLogFormatter},
            },
            "handlers": {
                "odcbridge": {
                    "()": _build_syslog_handler if config.log_syslog else _build_stream_handler,
                    "level": level,
                    "formatter": "structured",
                }
            },
            "loggers": {name: {"level": quiet_level} for name in NOISY_LOGGERS},
            "root": {"level": level, "handlers": ["odcbridge"]},
        }
    )

    logging.getLogger("odcbridge").debug(
        "Logging configured at %s (syslog=%s)", level, config.log_syslog
    )
