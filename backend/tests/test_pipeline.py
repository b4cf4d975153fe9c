"""Tests for the ingest pipeline."""

from __future__ import annotations

from pathlib import Path

import pytest

from conftest import LONG_PARAGRAPH, FakeEmbedder, FlakyStore, write_pdf
from doc_indexer.core.config import Settings
from doc_indexer.core.errors import (
    ConnectivityError,
    LoadError,
    NoValidVectorsError,
    UnsupportedTypeError,
    WriteExhaustionError,
)
from doc_indexer.core.metrics import render_metrics
from doc_indexer.ingest.extractor import STATIC, ContentExtractor
from doc_indexer.ingest.pipeline import IngestPipeline
from doc_indexer.ingest.types import DocumentDescriptor, ScrapedContent
from doc_indexer.store.memory import InMemoryVectorStore


class _UnreachableStore(InMemoryVectorStore):
    def ping(self) -> None:
        raise ConnectivityError("Qdrant at http://qdrant:6333 is unreachable")


class _StaticStub:
    name = STATIC

    def extract(self, url: str) -> ScrapedContent:
        return ScrapedContent(
            content=LONG_PARAGRAPH * 6,
            title="Stub article",
            og_image="https://example.com/og.png",
            source_url=url,
            scraped_at="2024-05-01T10:00:00.000Z",
            strategy=self.name,
        )


def _pipeline(settings: Settings, store, embedder, **kwargs) -> IngestPipeline:
    extractor = ContentExtractor(settings, strategies={STATIC: _StaticStub()})
    return IngestPipeline(store, settings, embedder=embedder, extractor=extractor, **kwargs)


def _pdf(tmp_path: Path, name: str = "guide.pdf") -> Path:
    pages = [LONG_PARAGRAPH * 6, "Second page. " + LONG_PARAGRAPH * 4]
    return write_pdf(tmp_path / name, pages)


def test_ingest_pdf_round_trip(tmp_path: Path, settings: Settings, memory_store, fake_embedder) -> None:
    pdf = _pdf(tmp_path)
    pipeline = _pipeline(settings, memory_store, fake_embedder)

    manifest = pipeline.ingest(DocumentDescriptor(file_name="guide.pdf", locator=str(pdf)))

    points = memory_store.points(settings.collection_name)
    assert manifest.chunks_count == len(points) > 1
    assert manifest.source_type == "pdf"
    assert manifest.skipped_vectors == 0
    assert sorted(p.payload["chunkIndex"] for p in points) == list(range(len(points)))
    assert {p.payload["documentId"] for p in points} == {manifest.document_id}
    assert {p.payload["page"] for p in points} == {1, 2}
    assert all(p.payload["fileName"] == "guide.pdf" for p in points)
    assert all(len(p.payload["text"]) <= settings.chunk_size for p in points)

    point = points[0]
    assert memory_store.retrieve(settings.collection_name, [point.id]) == [point]
    embedded = [text for call in fake_embedder.calls for text in call]
    assert point.payload["text"] in embedded


def test_collection_created_with_configured_shape(tmp_path: Path, settings: Settings, memory_store, fake_embedder) -> None:
    _pipeline(settings, memory_store, fake_embedder).ingest(
        DocumentDescriptor(file_name="guide.pdf", locator=str(_pdf(tmp_path)))
    )
    info = memory_store.get_collection_info(settings.collection_name)
    assert (info.vector_size, info.distance) == (settings.vector_dim, "Cosine")


def test_repeat_ingestion_is_not_deduplicated(tmp_path: Path, settings: Settings, memory_store, fake_embedder) -> None:
    pdf = _pdf(tmp_path)
    pipeline = _pipeline(settings, memory_store, fake_embedder)
    descriptor = DocumentDescriptor(file_name="guide.pdf", locator=str(pdf))

    first = pipeline.ingest(descriptor)
    second = pipeline.ingest(descriptor)

    assert first.document_id != second.document_id
    points = memory_store.points(settings.collection_name)
    assert len(points) == first.chunks_count + second.chunks_count
    by_doc = {first.document_id: set(), second.document_id: set()}
    for point in points:
        by_doc[point.payload["documentId"]].add(point.id)
    assert not by_doc[first.document_id] & by_doc[second.document_id]


def test_empty_pdf_leaves_no_points(tmp_path: Path, settings: Settings, memory_store, fake_embedder) -> None:
    pdf = write_pdf(tmp_path / "blank.pdf", ["", ""])
    pipeline = _pipeline(settings, memory_store, fake_embedder)
    with pytest.raises(LoadError) as excinfo:
        pipeline.ingest(DocumentDescriptor(file_name="blank.pdf", locator=str(pdf)))
    assert excinfo.value.stage == "load"
    assert memory_store.points(settings.collection_name) == []
    assert fake_embedder.calls == []


def test_unreachable_store_fails_before_loading(tmp_path: Path, settings: Settings, fake_embedder) -> None:
    pipeline = _pipeline(settings, _UnreachableStore(), fake_embedder)
    with pytest.raises(ConnectivityError):
        pipeline.ingest(DocumentDescriptor(file_name="guide.pdf", locator=str(tmp_path / "never-read.pdf")))
    assert fake_embedder.calls == []


def test_unsupported_type(tmp_path: Path, settings: Settings, memory_store, fake_embedder) -> None:
    notes = tmp_path / "notes.docx"
    notes.write_bytes(b"PK")
    with pytest.raises(UnsupportedTypeError):
        _pipeline(settings, memory_store, fake_embedder).ingest(
            DocumentDescriptor(file_name="notes.docx", locator=str(notes))
        )


def test_bad_vectors_are_reported_in_manifest(tmp_path: Path, settings: Settings, memory_store) -> None:
    embedder = FakeEmbedder(dim=settings.vector_dim, bad={"Second page": 3})
    manifest = _pipeline(settings, memory_store, embedder).ingest(
        DocumentDescriptor(file_name="guide.pdf", locator=str(_pdf(tmp_path)))
    )
    assert manifest.skipped_vectors == 1
    assert manifest.chunks_count == len(memory_store.points(settings.collection_name))
    assert all("Second page" not in p.payload["text"] for p in memory_store.points(settings.collection_name))


def test_all_bad_vectors_fail(tmp_path: Path, settings: Settings, memory_store) -> None:
    embedder = FakeEmbedder(dim=settings.vector_dim, bad={"": 3})
    with pytest.raises(NoValidVectorsError):
        _pipeline(settings, memory_store, embedder).ingest(
            DocumentDescriptor(file_name="guide.pdf", locator=str(_pdf(tmp_path)))
        )


def test_write_exhaustion_surfaces(tmp_path: Path, settings: Settings, fake_embedder, fake_sleep, recorded_sleeps) -> None:
    store = FlakyStore(fail_when=lambda call: True)
    pipeline = _pipeline(settings, store, fake_embedder, sleep=fake_sleep)
    with pytest.raises(WriteExhaustionError) as excinfo:
        pipeline.ingest(DocumentDescriptor(file_name="guide.pdf", locator=str(_pdf(tmp_path))))
    assert excinfo.value.committed_points == 0
    assert recorded_sleeps == [1.0, 2.0]


def test_ingest_url_returns_scrape_metadata(settings: Settings, memory_store, fake_embedder) -> None:
    manifest = _pipeline(settings, memory_store, fake_embedder).ingest_url("https://example.com/post")

    assert manifest.source_type == "url"
    assert manifest.file_name == "https://example.com/post"
    assert manifest.metadata == {
        "title": "Stub article",
        "og_image": "https://example.com/og.png",
        "scraped_at": "2024-05-01T10:00:00.000Z",
        "strategy": STATIC,
    }
    points = memory_store.points(settings.collection_name)
    assert points and all("page" not in p.payload for p in points)

    body = manifest.to_dict()
    assert body["documentId"] == manifest.document_id
    assert body["chunksCount"] == len(points)
    assert body["createdAt"].endswith("Z")


@pytest.mark.parametrize("url", ["ftp://example.com/file", "not a url", "https://"])
def test_ingest_url_rejects_invalid_urls(url: str, settings: Settings, memory_store, fake_embedder) -> None:
    with pytest.raises(UnsupportedTypeError):
        _pipeline(settings, memory_store, fake_embedder).ingest_url(url)


def test_metrics_record_outcomes(tmp_path: Path, settings: Settings, memory_store, fake_embedder) -> None:
    _pipeline(settings, memory_store, fake_embedder).ingest(
        DocumentDescriptor(file_name="guide.pdf", locator=str(_pdf(tmp_path)))
    )
    exposition = render_metrics().decode("utf-8")
    assert 'docix_ingest_total{source_type="pdf",status="processed"}' in exposition
    assert "docix_points_written_total" in exposition
