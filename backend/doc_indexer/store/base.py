"""Abstract base class for vector-store backends.

The pipeline only ever talks to :class:`VectorStore`; a backend is a
subclass implementing the abstract methods below. Stores are constructed once
and injected, never looked up globally.
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from typing import Any, Sequence


@dataclass(slots=True)
class Point:
    """Persisted unit: id + vector + payload."""

    id: str
    vector: list[float]
    payload: dict[str, Any] = field(default_factory=dict)

    def to_dict(self) -> dict[str, Any]:
        return {"id": self.id, "vector": list(self.vector), "payload": self.payload}


@dataclass(slots=True)
class CollectionInfo:
    name: str
    vector_size: int | None
    distance: str | None
    points_count: int
    status: str = "green"


class VectorStore(ABC):
    """Backend-agnostic vector-store interface."""

    @abstractmethod
    def ping(self) -> None:
        """Raise :class:`~doc_indexer.core.errors.ConnectivityError` when unreachable."""

    @abstractmethod
    def collection_exists(self, name: str) -> bool:
        ...

    @abstractmethod
    def create_collection(self, name: str, dimension: int, distance: str = "Cosine") -> None:
        ...

    @abstractmethod
    def upsert(self, name: str, points: Sequence[Point], wait: bool = True) -> None:
        """Insert or replace *points*; with ``wait`` the call returns once they are persisted."""

    @abstractmethod
    def get_collection_info(self, name: str) -> CollectionInfo:
        ...

    @abstractmethod
    def retrieve(self, name: str, ids: Sequence[str]) -> list[Point]:
        """Read points back by id, with payload and vector."""

    @abstractmethod
    def delete_collection(self, name: str) -> None:
        ...

    # -- provided -----------------------------------------------------------

    def ensure_collection(self, name: str, dimension: int, distance: str = "Cosine") -> bool:
        """Create the collection unless it exists. Returns ``True`` when created."""
        if self.collection_exists(name):
            return False
        self.create_collection(name, dimension, distance)
        return True

    def reset_collection(self, name: str, dimension: int, distance: str = "Cosine") -> None:
        """Drop every point by recreating the collection."""
        if self.collection_exists(name):
            self.delete_collection(name)
        self.create_collection(name, dimension, distance)

    def close(self) -> None:
        """Release network resources; optional."""


__all__ = ["Point", "CollectionInfo", "VectorStore"]
