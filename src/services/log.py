"""
Logging — Un handler, deux formats (json | text).

Les loggers sont nommés `clyra.<module>`. Les lignes destinées à
l'utilisateur vont dans l'ExecutionReport, pas ici : ici ce sont
les diagnostics.
"""

from __future__ import annotations

import json
import logging
from datetime import datetime, timezone

from services.config import Settings, get_settings


ROOT_LOGGER = "clyra"

_TEXT_FORMAT = "%(asctime)s %(levelname)-8s %(name)s — %(message)s"


class JsonFormatter(logging.Formatter):
    """Une ligne JSON par enregistrement."""

    def format(self, record: logging.LogRecord) -> str:
        entry = {
            "timestamp": datetime.fromtimestamp(record.created, tz=timezone.utc).isoformat(),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
        }
        if record.exc_info:
            entry["exception"] = self.formatException(record.exc_info)
        return json.dumps(entry, ensure_ascii=False)


def configure_logging(settings: Settings | None = None) -> logging.Logger:
    """
    Configure le logger racine `clyra`.

    Idempotent : remplace le handler installé précédemment.
    """
    settings = settings or get_settings()
    logger = logging.getLogger(ROOT_LOGGER)
    logger.setLevel(settings.log_level)

    for handler in list(logger.handlers):
        if getattr(handler, "_clyra", False):
            logger.removeHandler(handler)

    handler = logging.StreamHandler()
    handler._clyra = True  # type: ignore[attr-defined]
    if settings.log_format == "json":
        handler.setFormatter(JsonFormatter())
    else:
        handler.setFormatter(logging.Formatter(_TEXT_FORMAT))
    logger.addHandler(handler)
    logger.propagate = False
    return logger
