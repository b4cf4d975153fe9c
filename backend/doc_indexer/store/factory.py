"""Construct the configured vector-store backend."""

from __future__ import annotations

from doc_indexer.core.config import Settings
from doc_indexer.store.base import VectorStore
from doc_indexer.store.memory import InMemoryVectorStore
from doc_indexer.store.qdrant import QdrantVectorStore


def build_store(settings: Settings) -> VectorStore:
    if settings.store_backend == "memory":
        return InMemoryVectorStore()
    return QdrantVectorStore.from_settings(settings)


__all__ = ["build_store"]
