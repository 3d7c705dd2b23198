from __future__ import annotations

from datetime import datetime, timezone
import json
import logging
import sys

from .config import settings

# Structured attributes passed through ``extra=`` by the db, migration and CLI loggers.
RECORD_FIELDS = (
    "event",
    "db_path",
    "table",
    "column",
    "index",
    "rows",
    "username",
    "revision",
)


class JsonFormatter(logging.Formatter):
    def format(self, record: logging.LogRecord) -> str:
        payload = {
            "ts": datetime.now(timezone.utc).isoformat(),
            "level": record.levelname,
            "logger": record.name,
            "msg": record.getMessage(),
        }
        for key in RECORD_FIELDS:
            value = getattr(record, key, None)
            if value is not None:
                payload[key] = value
        if record.exc_info:
            payload["exc_info"] = self.formatException(record.exc_info)
        # Paths are rendered as plain strings.
        return json.dumps(payload, ensure_ascii=True, default=str)


def configure_logging() -> None:
    root = logging.getLogger()
    if root.handlers:
        return

    handler = logging.StreamHandler(sys.stdout)
    handler.setFormatter(JsonFormatter())

    root.setLevel(getattr(logging, settings.log_level, logging.INFO))
    root.addHandler(handler)
    logging.getLogger("pickem").info(
        "Logging configured",
        extra={"event": "startup", "db_path": settings.sqlite_db_path},
    )
