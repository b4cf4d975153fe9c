"""Application configuration handling.

Values are resolved in increasing priority: field defaults, the YAML config
file, ``DOCIX_*`` environment variables, then explicit keyword overrides.
"""

from __future__ import annotations

import os
from functools import lru_cache
from pathlib import Path
from typing import Any, Literal, Mapping

import yaml
from pydantic import BaseModel, Field, field_validator, model_validator

from doc_indexer.core.logging import get_logger

ENV_PREFIX = "DOCIX_"
DEFAULT_CONFIG_PATH = Path("~/.config/doc-indexer/config.yaml")

# YAML section -> key -> Settings field
_SECTIONS: Mapping[str, Mapping[str, str]] = {
    "store": {
        "url": "qdrant_url",
        "api_key": "qdrant_api_key",
        "collection": "collection_name",
        "backend": "store_backend",
        "timeout": "store_timeout",
        "distance": "distance",
    },
    "embeddings": {
        "dim": "vector_dim",
        "backend": "embedding_backend",
        "model": "embedding_model",
        "batch_size": "embedding_batch_size",
    },
    "chunking": {
        "size": "chunk_size",
        "overlap": "chunk_overlap",
        "min_chars": "min_chunk_chars",
    },
    "writer": {
        "batch_size": "upsert_batch_size",
        "max_attempts": "retry_max_attempts",
        "initial_delay": "retry_initial_delay",
        "backoff": "retry_backoff",
    },
    "scraping": {
        "engine": "scraper_engine",
        "timeout": "scraper_timeout",
        "max_bytes": "scraper_max_bytes",
        "render_timeout": "render_timeout",
        "settle_delay": "render_settle_delay",
        "headless": "render_headless",
    },
}

_log = get_logger(__name__)


class Settings(BaseModel):
    """Runtime configuration for the ingestion pipeline."""

    qdrant_url: str = "http://localhost:6333"
    qdrant_api_key: str = ""
    collection_name: str = "documents"
    store_backend: Literal["qdrant", "memory"] = "qdrant"
    store_timeout: float = Field(default=300.0, gt=0)
    distance: str = "Cosine"

    vector_dim: int = Field(default=384, ge=1)
    embedding_backend: Literal["sentence-transformers", "hashed"] = "sentence-transformers"
    embedding_model: str = "BAAI/bge-small-en-v1.5"
    embedding_batch_size: int = Field(default=50, ge=1)

    chunk_size: int = Field(default=1000, ge=1)
    chunk_overlap: int = Field(default=200, ge=0)
    min_chunk_chars: int = Field(default=10, ge=0)

    upsert_batch_size: int = Field(default=50, ge=1)
    retry_max_attempts: int = Field(default=3, ge=1)
    retry_initial_delay: float = Field(default=1.0, ge=0)
    retry_backoff: float = Field(default=2.0, ge=1)

    scraper_engine: Literal["static", "rendered"] | None = None
    scraper_timeout: float = Field(default=20.0, gt=0)
    scraper_max_bytes: int = Field(default=10 * 1024 * 1024, ge=1)
    render_timeout: float = Field(default=30.0, gt=0)
    render_settle_delay: float = Field(default=2.0, ge=0)
    render_headless: bool = True

    model_config = {
        "validate_assignment": True,
        "extra": "ignore",
    }

    @field_validator("qdrant_url", mode="before")
    @classmethod
    def _strip_trailing_slash(cls, value: Any) -> Any:
        if isinstance(value, str):
            return value.rstrip("/")
        return value

    @field_validator("scraper_engine", mode="before")
    @classmethod
    def _auto_engine(cls, value: Any) -> Any:
        if isinstance(value, str) and value.strip().lower() in ("", "auto"):
            return None
        return value

    @model_validator(mode="after")
    def _check_overlap(self) -> "Settings":
        if self.chunk_overlap >= self.chunk_size:
            raise ValueError("chunk_overlap must be smaller than chunk_size")
        return self

    @classmethod
    def load(cls, path: Path | None = None, **overrides: Any) -> "Settings":
        """Build settings from the config file, the environment and *overrides*.

        ``None`` overrides are ignored so CLI options can be passed straight
        through.
        """
        data: dict[str, Any] = {}
        config_path = resolve_config_path(path)
        if config_path is not None:
            data.update(read_config_file(config_path))
        data.update(env_overrides())
        data.update({key: value for key, value in overrides.items() if value is not None})
        return cls(**data)


def resolve_config_path(path: Path | None = None) -> Path | None:
    """Explicit path, else ``$DOCIX_CONFIG``, else the default file if present."""
    if path is not None:
        candidate = path.expanduser()
        return candidate if candidate.exists() else None
    env_path = os.environ.get(f"{ENV_PREFIX}CONFIG")
    if env_path:
        candidate = Path(env_path).expanduser()
        return candidate if candidate.exists() else None
    default = DEFAULT_CONFIG_PATH.expanduser()
    return default if default.exists() else None


def read_config_file(path: Path) -> dict[str, Any]:
    """Read a YAML config file into Settings field names.

    Sections listed in ``_SECTIONS`` are mapped key by key; top-level keys that
    already match a field name are taken as-is. Anything else is reported and
    ignored.
    """
    with path.open("r", encoding="utf-8") as fh:
        raw = yaml.safe_load(fh) or {}
    if not isinstance(raw, Mapping):
        raise ValueError(f"Config file {path} must contain a mapping at the top level")

    values: dict[str, Any] = {}
    for key, value in raw.items():
        section = _SECTIONS.get(key)
        if section is not None and isinstance(value, Mapping):
            for option, option_value in value.items():
                field_name = section.get(option)
                if field_name is None:
                    _log.warning("Ignoring unknown config key %s.%s in %s", key, option, path)
                    continue
                values[field_name] = option_value
        elif key in Settings.model_fields:
            values[key] = value
        else:
            _log.warning("Ignoring unknown config key %s in %s", key, path)
    return values


def env_overrides() -> dict[str, Any]:
    """Collect ``DOCIX_<FIELD>`` and ``DOCIX_<SECTION>__<KEY>`` variables."""
    values: dict[str, Any] = {}
    for key, value in os.environ.items():
        if not key.startswith(ENV_PREFIX):
            continue
        name = key[len(ENV_PREFIX) :].lower()
        if "__" in name:
            section, _, option = name.partition("__")
            field_name = _SECTIONS.get(section, {}).get(option)
            if field_name is not None:
                values[field_name] = value
        elif name in Settings.model_fields:
            values[name] = value
    return values


@lru_cache(maxsize=1)
def get_settings() -> Settings:
    """Process-wide settings, loaded once."""
    return Settings.load()


__all__ = [
    "Settings",
    "get_settings",
    "resolve_config_path",
    "read_config_file",
    "env_overrides",
]
