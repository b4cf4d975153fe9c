"""Embedding backends and batched embedding."""

from __future__ import annotations

import hashlib
import math
import re
from typing import Callable, Protocol, Sequence

from sentence_transformers import SentenceTransformer

from doc_indexer.core.config import Settings
from doc_indexer.core.errors import EmbeddingError
from doc_indexer.core.logging import get_logger

logger = get_logger(__name__)

_TOKEN_RE = re.compile(r"\w+")


class EmbeddingFunction(Protocol):
    """Black-box ``texts -> vectors`` callable, order-preserving."""

    dim: int

    def embed_batch(self, texts: Sequence[str]) -> list[list[float]]:
        ...


class SentenceTransformerEmbedder:
    """Local sentence-transformers model, loaded on first use."""

    def __init__(self, model_name: str, dim: int = 384, device: str | None = None) -> None:
        self.model_name = model_name
        self.dim = dim
        self._device = device
        self._model: SentenceTransformer | None = None

    @property
    def model(self) -> SentenceTransformer:
        if self._model is None:
            logger.info("Loading embedding model %s", self.model_name)
            self._model = SentenceTransformer(self.model_name, device=self._device)
        return self._model

    def embed_batch(self, texts: Sequence[str]) -> list[list[float]]:
        vectors = self.model.encode(
            list(texts),
            batch_size=max(1, len(texts)),
            normalize_embeddings=True,
            convert_to_numpy=True,
            show_progress_bar=False,
        )
        return vectors.tolist()


class HashedEmbedder:
    """Lightweight hashed bag-of-words embedder with deterministic output."""

    model_name = "hashed"

    def __init__(self, dim: int = 384) -> None:
        self.dim = dim

    def embed_batch(self, texts: Sequence[str]) -> list[list[float]]:
        vectors: list[list[float]] = []
        for text in texts:
            vector = [0.0] * self.dim
            for token in _TOKEN_RE.findall(text.lower()):
                vector[_hash_token(token, self.dim)] += 1.0
            _normalize(vector)
            vectors.append(vector)
        return vectors


_INSTANCES: dict[tuple[str, str, int], EmbeddingFunction] = {}


def get_embedder(settings: Settings) -> EmbeddingFunction:
    """Return a process-wide embedder for the configured backend."""
    key = (settings.embedding_backend, settings.embedding_model, settings.vector_dim)
    if key not in _INSTANCES:
        if settings.embedding_backend == "hashed":
            _INSTANCES[key] = HashedEmbedder(dim=settings.vector_dim)
        else:
            _INSTANCES[key] = SentenceTransformerEmbedder(settings.embedding_model, dim=settings.vector_dim)
    return _INSTANCES[key]


def clear_embedder_cache() -> None:
    _INSTANCES.clear()


ProgressCallback = Callable[[int, int], None]


class EmbeddingBatcher:
    """Embed texts in fixed-size batches, one batch at a time.

    Batches run sequentially so peak memory stays bounded and a failure can be
    attributed to a single batch. Any batch failure aborts the whole call.
    """

    def __init__(
        self,
        embedder: EmbeddingFunction,
        batch_size: int = 50,
        on_progress: ProgressCallback | None = None,
    ) -> None:
        if batch_size < 1:
            raise ValueError("batch_size must be >= 1")
        self.embedder = embedder
        self.batch_size = batch_size
        self.on_progress = on_progress

    def embed(self, texts: Sequence[str]) -> list[list[float]]:
        total_batches = math.ceil(len(texts) / self.batch_size)
        vectors: list[list[float]] = []
        for batch_number, start in enumerate(range(0, len(texts), self.batch_size), start=1):
            batch = list(texts[start : start + self.batch_size])
            logger.info(
                "Embedding batch %s/%s (%s texts)",
                batch_number,
                total_batches,
                len(batch),
                extra={"ctx_stage": "embed"},
            )
            try:
                produced = self.embedder.embed_batch(batch)
            except Exception as exc:
                raise EmbeddingError(
                    f"Embedding batch {batch_number}/{total_batches} failed: {exc}",
                    batch=batch_number,
                    total_batches=total_batches,
                ) from exc
            if len(produced) != len(batch):
                raise EmbeddingError(
                    f"Embedding batch {batch_number}/{total_batches} returned {len(produced)} vectors for {len(batch)} texts",
                    batch=batch_number,
                    total_batches=total_batches,
                )
            vectors.extend(list(vector) if vector is not None else [] for vector in produced)
            if self.on_progress is not None:
                self.on_progress(batch_number, total_batches)
        logger.info("Generated %s embeddings", len(vectors), extra={"ctx_stage": "embed"})
        return vectors


def _hash_token(token: str, dim: int) -> int:
    digest = hashlib.blake2b(token.encode("utf-8"), digest_size=8).digest()
    value = int.from_bytes(digest, "big")
    return value % dim


def _normalize(vector: list[float]) -> None:
    norm = math.sqrt(sum(value * value for value in vector))
    if norm == 0:
        return
    inv = 1.0 / norm
    for idx, value in enumerate(vector):
        vector[idx] = value * inv


__all__ = [
    "EmbeddingFunction",
    "SentenceTransformerEmbedder",
    "HashedEmbedder",
    "EmbeddingBatcher",
    "get_embedder",
    "clear_embedder_cache",
]
