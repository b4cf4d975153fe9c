"""In-process vector store."""

from __future__ import annotations

import threading
from typing import Sequence

from doc_indexer.store.base import CollectionInfo, Point, VectorStore


class _Collection:
    def __init__(self, dimension: int, distance: str) -> None:
        self.dimension = dimension
        self.distance = distance
        self.points: dict[str, Point] = {}


class InMemoryVectorStore(VectorStore):
    """Dictionary-backed store for tests and local runs; nothing survives the process."""

    def __init__(self) -> None:
        self._collections: dict[str, _Collection] = {}
        self._lock = threading.Lock()

    def ping(self) -> None:
        return None

    def collection_exists(self, name: str) -> bool:
        return name in self._collections

    def create_collection(self, name: str, dimension: int, distance: str = "Cosine") -> None:
        with self._lock:
            self._collections[name] = _Collection(dimension, distance)

    def upsert(self, name: str, points: Sequence[Point], wait: bool = True) -> None:
        collection = self._get(name)
        for point in points:
            if len(point.vector) != collection.dimension:
                raise ValueError("Vector dimension mismatch")
        with self._lock:
            for point in points:
                collection.points[point.id] = Point(id=point.id, vector=list(point.vector), payload=dict(point.payload))

    def get_collection_info(self, name: str) -> CollectionInfo:
        collection = self._get(name)
        return CollectionInfo(
            name=name,
            vector_size=collection.dimension,
            distance=collection.distance,
            points_count=len(collection.points),
        )

    def retrieve(self, name: str, ids: Sequence[str]) -> list[Point]:
        collection = self._get(name)
        return [collection.points[point_id] for point_id in ids if point_id in collection.points]

    def points(self, name: str) -> list[Point]:
        return list(self._get(name).points.values())

    def delete_collection(self, name: str) -> None:
        with self._lock:
            self._collections.pop(name, None)

    def _get(self, name: str) -> _Collection:
        try:
            return self._collections[name]
        except KeyError:
            raise KeyError(f"Collection {name!r} does not exist") from None


__all__ = ["InMemoryVectorStore"]
