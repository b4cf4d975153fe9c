"""Qdrant implementation of the vector-store abstraction (REST API via httpx)."""

from __future__ import annotations

from typing import Any, Sequence

import httpx

from doc_indexer.core.config import Settings
from doc_indexer.core.errors import ConnectivityError
from doc_indexer.core.logging import get_logger
from doc_indexer.store.base import CollectionInfo, Point, VectorStore

logger = get_logger(__name__)


class QdrantVectorStore(VectorStore):
    """Qdrant-backed vector store.

    Parameters
    ----------
    base_url:
        Qdrant HTTP endpoint, e.g. ``http://localhost:6333``.
    api_key:
        Sent as the ``api-key`` header when non-empty.
    timeout:
        Per-request timeout in seconds.
    transport:
        Optional httpx transport, used by tests to stub the server.
    """

    def __init__(
        self,
        base_url: str,
        *,
        api_key: str = "",
        timeout: float = 300.0,
        transport: httpx.BaseTransport | None = None,
    ) -> None:
        headers = {"api-key": api_key} if api_key else {}
        self.base_url = base_url.rstrip("/")
        self._client = httpx.Client(
            base_url=self.base_url,
            headers=headers,
            timeout=timeout,
            transport=transport,
        )

    @classmethod
    def from_settings(cls, settings: Settings) -> "QdrantVectorStore":
        return cls(settings.qdrant_url, api_key=settings.qdrant_api_key, timeout=settings.store_timeout)

    # -- VectorStore overrides --------------------------------------------------

    def ping(self) -> None:
        try:
            self._request("GET", "/collections")
        except httpx.HTTPError as exc:
            raise ConnectivityError(f"Qdrant at {self.base_url} is unreachable: {exc}", url=self.base_url) from exc

    def collection_exists(self, name: str) -> bool:
        body = self._request("GET", f"/collections/{name}/exists")
        return bool(body.get("result", {}).get("exists"))

    def create_collection(self, name: str, dimension: int, distance: str = "Cosine") -> None:
        self._request(
            "PUT",
            f"/collections/{name}",
            json={"vectors": {"size": dimension, "distance": distance}},
        )
        logger.info("Created collection %s (size=%s, distance=%s)", name, dimension, distance)

    def upsert(self, name: str, points: Sequence[Point], wait: bool = True) -> None:
        self._request(
            "PUT",
            f"/collections/{name}/points",
            params={"wait": "true" if wait else "false"},
            json={"points": [point.to_dict() for point in points]},
        )

    def get_collection_info(self, name: str) -> CollectionInfo:
        result = self._request("GET", f"/collections/{name}").get("result", {})
        vectors = result.get("config", {}).get("params", {}).get("vectors", {})
        return CollectionInfo(
            name=name,
            vector_size=vectors.get("size"),
            distance=vectors.get("distance"),
            points_count=int(result.get("points_count") or 0),
            status=result.get("status", "green"),
        )

    def retrieve(self, name: str, ids: Sequence[str]) -> list[Point]:
        body = self._request(
            "POST",
            f"/collections/{name}/points",
            json={"ids": list(ids), "with_payload": True, "with_vector": True},
        )
        return [
            Point(id=str(item["id"]), vector=list(item.get("vector") or []), payload=item.get("payload") or {})
            for item in body.get("result", [])
        ]

    def delete_collection(self, name: str) -> None:
        self._request("DELETE", f"/collections/{name}")
        logger.info("Deleted collection %s", name)

    def close(self) -> None:
        self._client.close()

    # -- internals ------------------------------------------------------------

    def _request(self, method: str, endpoint: str, **kwargs: Any) -> dict[str, Any]:
        response = self._client.request(method, endpoint, **kwargs)
        response.raise_for_status()
        return response.json() if response.content else {}


__all__ = ["QdrantVectorStore"]
