"""Tests for embedding utilities."""

from __future__ import annotations

from typing import Sequence

import pytest

from conftest import FakeEmbedder
from doc_indexer.core.config import Settings
from doc_indexer.core.errors import EmbeddingError
from doc_indexer.ingest.embeddings import EmbeddingBatcher, HashedEmbedder, get_embedder


def test_batches_are_fixed_size_and_sequential() -> None:
    embedder = FakeEmbedder(dim=4)
    progress: list[tuple[int, int]] = []
    batcher = EmbeddingBatcher(embedder, batch_size=50, on_progress=lambda b, t: progress.append((b, t)))
    texts = [f"text {i}" for i in range(120)]

    vectors = batcher.embed(texts)

    assert [len(call) for call in embedder.calls] == [50, 50, 20]
    assert [text for call in embedder.calls for text in call] == texts
    assert len(vectors) == 120
    assert progress == [(1, 3), (2, 3), (3, 3)]


def test_output_order_matches_input() -> None:
    class IndexEmbedder:
        dim = 2

        def embed_batch(self, texts: Sequence[str]) -> list[list[float]]:
            return [[float(text.split()[-1]), 0.0] for text in texts]

    vectors = EmbeddingBatcher(IndexEmbedder(), batch_size=7).embed([f"item {i}" for i in range(30)])
    assert [vector[0] for vector in vectors] == [float(i) for i in range(30)]


def test_empty_input_makes_no_calls() -> None:
    embedder = FakeEmbedder()
    assert EmbeddingBatcher(embedder).embed([]) == []
    assert embedder.calls == []


def test_batch_failure_aborts_call() -> None:
    class BrokenEmbedder:
        dim = 4

        def __init__(self) -> None:
            self.calls = 0

        def embed_batch(self, texts: Sequence[str]) -> list[list[float]]:
            self.calls += 1
            if self.calls == 2:
                raise RuntimeError("model crashed")
            return [[0.0] * 4 for _ in texts]

    embedder = BrokenEmbedder()
    with pytest.raises(EmbeddingError) as excinfo:
        EmbeddingBatcher(embedder, batch_size=10).embed(["t"] * 35)
    assert embedder.calls == 2
    assert excinfo.value.stage == "embed"
    assert excinfo.value.context["batch"] == 2
    assert isinstance(excinfo.value.__cause__, RuntimeError)


def test_count_mismatch_is_an_error() -> None:
    class ShortEmbedder:
        dim = 4

        def embed_batch(self, texts: Sequence[str]) -> list[list[float]]:
            return [[0.0] * 4]

    with pytest.raises(EmbeddingError):
        EmbeddingBatcher(ShortEmbedder()).embed(["a", "b"])


def test_hashed_embedder_is_normalised() -> None:
    model = HashedEmbedder(dim=384)
    vectors = model.embed_batch(["hello", "world"])
    assert len(vectors) == 2
    assert all(len(vec) == model.dim for vec in vectors)
    assert abs(sum(value * value for value in vectors[0]) - 1.0) < 1e-6
    assert model.embed_batch(["hello"])[0] == vectors[0]


def test_get_embedder_reuses_instances() -> None:
    settings = Settings(embedding_backend="hashed", vector_dim=16)
    first = get_embedder(settings)
    assert isinstance(first, HashedEmbedder)
    assert first.dim == 16
    assert get_embedder(settings) is first


def test_invalid_batch_size() -> None:
    with pytest.raises(ValueError):
        EmbeddingBatcher(FakeEmbedder(), batch_size=0)
