"""Process-wide logging: JSON lines on stderr plus a rotating ingest audit file."""

from __future__ import annotations

import json
import logging
import logging.config
from datetime import datetime, timezone
from pathlib import Path
from typing import Any

AUDIT_LOGGER_NAME = "localrag.ingest.audit"
AUDIT_FILENAME = "ingest_audit.log"
AUDIT_MAX_BYTES = 5 * 1024 * 1024
AUDIT_BACKUP_COUNT = 3

PLAIN_FORMAT = "%(asctime)s %(levelname)-7s %(name)s: %(message)s"

# Attributes every LogRecord carries; anything else was passed through ``extra``.
_STANDARD_ATTRS = frozenset(
    vars(logging.LogRecord("", logging.INFO, "", 0, "", None, None))
) | {"message", "asctime", "taskName"}


class MinimalJSONFormatter(logging.Formatter):
    """Render a record as one JSON object per line.

    Dict messages (the shape emitted by :mod:`localrag.telemetry`) are merged
    into the top level; string messages land under ``message``.
    """

    def format(self, record: logging.LogRecord) -> str:  # noqa: D401 - inherited
        created = datetime.fromtimestamp(record.created, tz=timezone.utc)
        payload: dict[str, Any] = {
            "ts": created.isoformat().replace("+00:00", "Z"),
            "level": record.levelname,
            "module": record.name,
        }

        if isinstance(record.msg, dict):
            payload.update(record.msg)
        else:
            message = record.getMessage()
            if message:
                payload["message"] = message

        if record.exc_info and "exc" not in payload:
            payload["exc_info"] = self.formatException(record.exc_info)

        payload.update(
            (key, value)
            for key, value in record.__dict__.items()
            if key not in _STANDARD_ATTRS and not key.startswith("_")
        )
        return json.dumps(payload, ensure_ascii=False, default=str)


def build_logging_config(log_dir: Path, level: str = "INFO", *, json_console: bool = True) -> dict[str, Any]:
    """Return the ``dictConfig`` mapping used by :func:`configure_logging`."""

    return {
        "version": 1,
        "disable_existing_loggers": False,
        "formatters": {
            "json": {"()": MinimalJSONFormatter},
            "plain": {"format": PLAIN_FORMAT},
        },
        "handlers": {
            "console": {
                "class": "logging.StreamHandler",
                "formatter": "json" if json_console else "plain",
            },
            "ingest_audit": {
                "class": "logging.handlers.RotatingFileHandler",
                "filename": str(log_dir / AUDIT_FILENAME),
                "maxBytes": AUDIT_MAX_BYTES,
                "backupCount": AUDIT_BACKUP_COUNT,
                "encoding": "utf-8",
                "formatter": "json",
            },
        },
        "root": {"level": level, "handlers": ["console"]},
        "loggers": {
            AUDIT_LOGGER_NAME: {
                "level": "INFO",
                "handlers": ["ingest_audit"],
                "propagate": False,
            },
        },
    }


def configure_logging(log_dir: Path | str = Path("logs"), level: str = "INFO", *, json_console: bool = True) -> None:
    """Install the logging configuration, creating *log_dir* if needed."""

    log_dir = Path(log_dir)
    log_dir.mkdir(parents=True, exist_ok=True)
    logging.config.dictConfig(build_logging_config(log_dir, level, json_console=json_console))


__all__ = [
    "AUDIT_LOGGER_NAME",
    "MinimalJSONFormatter",
    "build_logging_config",
    "configure_logging",
]
