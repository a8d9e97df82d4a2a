from __future__ import annotations

import json
import logging
import logging.config
from datetime import datetime, timezone
from typing import Any


# Attributes every LogRecord carries; anything else arrived through `extra=`.
_RECORD_ATTRS = frozenset(vars(logging.makeLogRecord({}))) | {"message", "asctime", "taskName"}


class JSONFormatter(logging.Formatter):
    """One JSON object per line.

    Fixed keys: timestamp (record time, UTC, millisecond Z form), level,
    logger, message. Every `extra=` field with a non-None value is appended,
    then `exception` when exc_info is set.
    """

    def format(self, record: logging.LogRecord) -> str:
        ts = datetime.fromtimestamp(record.created, tz=timezone.utc)
        entry: dict[str, Any] = {
            "timestamp": ts.isoformat(timespec="milliseconds").replace("+00:00", "Z"),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
        }
        entry.update(
            (k, v) for k, v in vars(record).items() if k not in _RECORD_ATTRS and not k.startswith("_") and v is not None
        )
        if record.exc_info:
            entry["exception"] = self.formatException(record.exc_info)
        return json.dumps(entry, ensure_ascii=False, default=str)


def setup_logging(level: str = "INFO", fmt: str = "json") -> None:
    """(Re)configure the root logger with a single stderr handler."""
    name = level.upper()
    if not isinstance(logging.getLevelName(name), int):
        name = "INFO"

    logging.config.dictConfig(
        {
            "version": 1,
            "disable_existing_loggers": False,
            "formatters": {
                "json": {"()": JSONFormatter},
                "text": {"format": "%(asctime)s %(levelname)s %(name)s: %(message)s"},
            },
            "handlers": {
                "stderr": {"class": "logging.StreamHandler", "formatter": fmt if fmt == "text" else "json"},
            },
            "root": {"level": name, "handlers": ["stderr"]},
        }
    )
