"""Application logging configuration utilities."""

from __future__ import annotations

import json
import logging
import logging.config
from datetime import datetime, timezone
from pathlib import Path
from typing import Any

AUDIT_LOGGER_NAME = "docqa.ingest.audit"
AUDIT_LOG_FILE = "ingest_audit.log"

# Attributes every LogRecord carries; anything else was passed through ``extra``.
_RECORD_ATTRIBUTES = frozenset(vars(logging.LogRecord("", logging.INFO, "", 0, "", None, None))) | {
    "message",
    "asctime",
}


def _utc_timestamp(created: float) -> str:
    return datetime.fromtimestamp(created, tz=timezone.utc).isoformat().replace("+00:00", "Z")


class MinimalJSONFormatter(logging.Formatter):
    """Render one compact JSON object per record.

    Dict messages (as produced by :func:`docqa.telemetry.log_event` and the
    ingestion audit trail) are merged into the payload; other messages are
    rendered with their arguments under ``message``.
    """

    def format(self, record: logging.LogRecord) -> str:  # noqa: D401 - inherited
        payload: dict[str, Any] = {
            "timestamp": _utc_timestamp(record.created),
            "level": record.levelname,
            "module": record.name,
        }

        if isinstance(record.msg, dict):
            payload.update(record.msg)
        else:
            message = record.getMessage()
            if message:
                payload["message"] = message

        payload.update(
            (key, value)
            for key, value in vars(record).items()
            if key not in _RECORD_ATTRIBUTES and not key.startswith("_")
        )

        if record.exc_info and "exc" not in payload:
            payload["exc_info"] = self.formatException(record.exc_info)

        return json.dumps(payload, ensure_ascii=False, default=str)


def build_logging_config(level: str, audit_log_path: Path) -> dict[str, Any]:
    """Return the ``dictConfig`` mapping for console plus audit file output."""

    return {
        "version": 1,
        "disable_existing_loggers": False,
        "formatters": {"json": {"()": MinimalJSONFormatter}},
        "handlers": {
            "console": {
                "class": "logging.StreamHandler",
                "formatter": "json",
            },
            "ingest_audit": {
                "class": "logging.FileHandler",
                "filename": str(audit_log_path),
                "mode": "a",
                "encoding": "utf-8",
                "formatter": "json",
            },
        },
        "root": {"level": level.upper(), "handlers": ["console"]},
        "loggers": {
            AUDIT_LOGGER_NAME: {
                "level": "INFO",
                "handlers": ["ingest_audit"],
                "propagate": False,
            }
        },
    }


def configure_logging(level: str = "INFO", log_dir: str | Path = "logs") -> Path:
    """Configure JSON logging and return the path of the ingestion audit log."""

    log_path = Path(log_dir)
    log_path.mkdir(parents=True, exist_ok=True)
    audit_log_path = log_path / AUDIT_LOG_FILE
    logging.config.dictConfig(build_logging_config(level, audit_log_path))
    return audit_log_path


__all__ = [
    "AUDIT_LOGGER_NAME",
    "AUDIT_LOG_FILE",
    "MinimalJSONFormatter",
    "build_logging_config",
    "configure_logging",
]
