"""Logging utilities for doc-indexer.

Records are written to stderr, one JSON object per line by default. Call
sites attach structured fields through ``extra`` using a ``ctx_`` prefix::

    logger.info("Embedding batch %s/%s", 1, 3, extra={"ctx_stage": "embed"})

which renders as ``{"message": "Embedding batch 1/3", "context": {"stage": "embed"}, ...}``.
"""

from __future__ import annotations

import logging
import os
import sys
from datetime import datetime, timezone
from typing import IO, Any

import orjson

CONTEXT_PREFIX = "ctx_"

_DEFAULT_LEVEL = os.environ.get("DOCIX_LOG_LEVEL", "INFO")
_DEFAULT_FORMAT = os.environ.get("DOCIX_LOG_FORMAT", "json")
_TEXT_FORMAT = "%(asctime)s %(levelname)s %(name)s: %(message)s"


class JsonFormatter(logging.Formatter):
    """Render a record as a single JSON line with its ``ctx_`` fields nested."""

    def format(self, record: logging.LogRecord) -> str:
        moment = datetime.fromtimestamp(record.created, tz=timezone.utc)
        payload: dict[str, Any] = {
            "timestamp": moment.isoformat(timespec="milliseconds").replace("+00:00", "Z"),
            "level": record.levelname,
            "name": record.name,
            "message": record.getMessage(),
        }
        context = {
            key[len(CONTEXT_PREFIX) :]: value
            for key, value in record.__dict__.items()
            if key.startswith(CONTEXT_PREFIX)
        }
        if context:
            payload["context"] = context
        if record.exc_info:
            payload["exc_info"] = self.formatException(record.exc_info)
        return orjson.dumps(payload, default=str).decode("utf-8")


def configure_logging(
    level: str | int = _DEFAULT_LEVEL,
    fmt: str = _DEFAULT_FORMAT,
    stream: IO[str] | None = None,
) -> None:
    """Install a single root handler; ``fmt`` is ``json`` or ``text``."""
    logging.captureWarnings(True)
    handler = logging.StreamHandler(stream or sys.stderr)
    handler.setFormatter(JsonFormatter() if fmt == "json" else logging.Formatter(_TEXT_FORMAT))
    root = logging.getLogger()
    root.setLevel(level.upper() if isinstance(level, str) else level)
    root.handlers = [handler]
    # Model downloads and HTTP clients are chatty at INFO.
    for noisy in ("httpx", "urllib3", "sentence_transformers", "selenium"):
        logging.getLogger(noisy).setLevel(max(root.level, logging.WARNING))


def get_logger(name: str = "doc_indexer") -> logging.Logger:
    if not logging.getLogger().handlers:
        configure_logging()
    return logging.getLogger(name)


__all__ = ["CONTEXT_PREFIX", "JsonFormatter", "configure_logging", "get_logger"]
