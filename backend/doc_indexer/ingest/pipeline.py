"""Ingest pipeline orchestration."""

from __future__ import annotations

import time
from typing import Callable
from urllib.parse import urlparse

from doc_indexer.core.config import Settings
from doc_indexer.core.errors import ConnectivityError, IngestError, LoadError, UnsupportedTypeError
from doc_indexer.core.logging import get_logger
from doc_indexer.core.metrics import CHUNKS_DROPPED, INGEST_DURATION, INGEST_TOTAL
from doc_indexer.ingest.chunker import build_chunks, chunk_segments, filter_chunks
from doc_indexer.ingest.embeddings import EmbeddingBatcher, EmbeddingFunction, get_embedder
from doc_indexer.ingest.extractor import ContentExtractor
from doc_indexer.ingest.loaders import LoaderRegistry
from doc_indexer.ingest.retry import RetryPolicy
from doc_indexer.ingest.types import Document, DocumentDescriptor, IngestManifest
from doc_indexer.ingest.writer import VectorWriter
from doc_indexer.store.base import VectorStore
from doc_indexer.utils.ids import new_id
from doc_indexer.utils.time import iso_timestamp, utc_now

logger = get_logger(__name__)

_URL_METADATA_KEYS = ("title", "og_image", "scraped_at", "strategy")


class IngestPipeline:
    """Coordinate loaders, chunking, embeddings, and persistence.

    Stages run strictly one after another for each call:
    connectivity check, load, chunk, filter, identity, embed, validate+write.
    The first failing stage aborts the call with an :class:`IngestError`
    naming that stage.
    """

    def __init__(
        self,
        store: VectorStore,
        settings: Settings | None = None,
        embedder: EmbeddingFunction | None = None,
        extractor: ContentExtractor | None = None,
        loader_registry: LoaderRegistry | None = None,
        sleep: Callable[[float], None] = time.sleep,
    ) -> None:
        self.settings = settings or Settings()
        self.store = store
        self.embedder = embedder or get_embedder(self.settings)
        self.loader_registry = loader_registry or LoaderRegistry(extractor or ContentExtractor(self.settings))
        self.batcher = EmbeddingBatcher(self.embedder, batch_size=self.settings.embedding_batch_size)
        self.writer = VectorWriter(
            store,
            self.settings.collection_name,
            dimension=self.settings.vector_dim,
            batch_size=self.settings.upsert_batch_size,
            retry_policy=RetryPolicy.from_settings(self.settings),
            sleep=sleep,
        )

    def prepare(self) -> bool:
        """Check the store and create the collection if needed. Returns ``True`` when created."""
        try:
            self.store.ping()
            return self.store.ensure_collection(
                self.settings.collection_name,
                self.settings.vector_dim,
                self.settings.distance,
            )
        except ConnectivityError:
            raise
        except Exception as exc:
            raise ConnectivityError(f"Vector store is unreachable: {exc}") from exc

    def ingest(self, descriptor: DocumentDescriptor, strategy: str | None = None) -> IngestManifest:
        started = time.perf_counter()
        source_type = self._source_type(descriptor)
        try:
            manifest = self._run(descriptor, source_type, strategy)
        except IngestError as exc:
            INGEST_TOTAL.labels(source_type=source_type, status="failed").inc()
            logger.error(
                "Ingestion of %s failed at stage %s: %s",
                descriptor.file_name,
                exc.stage,
                exc,
                extra={"ctx_stage": exc.stage, "ctx_details": exc.context},
            )
            raise
        INGEST_TOTAL.labels(source_type=source_type, status="processed").inc()
        INGEST_DURATION.labels(source_type=source_type).observe(time.perf_counter() - started)
        return manifest

    def ingest_url(self, url: str, strategy: str | None = None) -> IngestManifest:
        """Scrape *url* and index it; the manifest carries the scrape metadata."""
        parsed = urlparse(url)
        if parsed.scheme not in ("http", "https") or not parsed.netloc:
            raise UnsupportedTypeError(f"Invalid URL: {url}", locator=url)
        return self.ingest(DocumentDescriptor(file_name=url, locator=url), strategy=strategy)

    # Internal helpers -------------------------------------------------

    def _source_type(self, descriptor: DocumentDescriptor) -> str:
        try:
            return self.loader_registry.source_type(descriptor.file_name or descriptor.locator)
        except UnsupportedTypeError:
            return "unknown"

    def _run(self, descriptor: DocumentDescriptor, source_type: str, strategy: str | None) -> IngestManifest:
        if self.prepare():
            logger.info("Created collection %s", self.settings.collection_name, extra={"ctx_stage": "connectivity"})
        logger.info("Vector store connection OK", extra={"ctx_stage": "connectivity"})

        segments = self.loader_registry.load(descriptor.locator, file_name=descriptor.file_name, strategy=strategy)
        if not segments:
            raise LoadError(f"No content found in {descriptor.file_name}", locator=descriptor.locator)
        logger.info("Loaded %s segments from %s", len(segments), descriptor.file_name, extra={"ctx_stage": "load"})

        candidates = chunk_segments(
            segments,
            chunk_size=self.settings.chunk_size,
            chunk_overlap=self.settings.chunk_overlap,
        )
        valid, dropped = filter_chunks(candidates, min_chars=self.settings.min_chunk_chars)
        if dropped:
            CHUNKS_DROPPED.inc(dropped)
        logger.info(
            "Processing %s valid chunks (%s empty chunks removed)",
            len(valid),
            dropped,
            extra={"ctx_stage": "chunk"},
        )

        document = Document(id=new_id(), source_ref=descriptor.locator, created_at=utc_now())
        chunks = build_chunks(
            document.id,
            valid,
            file_name=descriptor.file_name,
            uploaded_at=iso_timestamp(document.created_at),
        )

        vectors = self.batcher.embed([chunk.text for chunk in chunks])
        result = self.writer.write(list(zip(chunks, vectors)))

        logger.info(
            "Indexed document %s: %s points committed, %s vectors skipped",
            document.id,
            result.committed,
            result.skipped,
            extra={"ctx_stage": "write", "ctx_document_id": document.id},
        )
        metadata = {}
        if source_type == "url":
            metadata = {key: segments[0].metadata.get(key) for key in _URL_METADATA_KEYS}
        return IngestManifest(
            document_id=document.id,
            chunks_count=result.committed,
            file_name=descriptor.file_name,
            source_type=source_type,
            created_at=document.created_at,
            skipped_vectors=result.skipped,
            dropped_chunks=dropped,
            metadata=metadata,
        )


__all__ = ["IngestPipeline"]
