"""Common ingestion data structures."""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Sequence

from doc_indexer.utils.time import iso_timestamp


@dataclass(slots=True)
class RawSegment:
    """Text unit produced by a loader before chunking."""

    text: str
    metadata: dict[str, Any] = field(default_factory=dict)


@dataclass(slots=True)
class ScrapedContent:
    """Clean text and metadata extracted from one web page."""

    content: str
    title: str | None
    og_image: str | None
    source_url: str
    scraped_at: str
    strategy: str


@dataclass(slots=True)
class ChunkCandidate:
    """Chunk produced by the chunker prior to identity assignment."""

    text: str
    metadata: dict[str, Any]


@dataclass(slots=True)
class Chunk:
    """Filtered, indexed chunk owned by one document."""

    id: str
    document_id: str
    chunk_index: int
    text: str
    file_name: str
    uploaded_at: str
    page: int | None = None

    def payload(self) -> dict[str, Any]:
        """Point payload stored next to the vector."""
        payload: dict[str, Any] = {
            "text": self.text,
            "documentId": self.document_id,
            "chunkIndex": self.chunk_index,
            "fileName": self.file_name,
            "uploadedAt": self.uploaded_at,
        }
        if self.page is not None:
            payload["page"] = self.page
        return payload


@dataclass(slots=True)
class DocumentDescriptor:
    """What the orchestrator is asked to ingest."""

    file_name: str
    locator: str
    file_size: int | None = None


@dataclass(slots=True)
class Document:
    id: str
    source_ref: str
    created_at: datetime


@dataclass(slots=True)
class WriteResult:
    """Outcome of one validate-and-write pass."""

    committed: int
    skipped: int
    batches: int


@dataclass(slots=True)
class IngestManifest:
    """Summary returned after a document has been indexed."""

    document_id: str
    chunks_count: int
    file_name: str
    source_type: str
    created_at: datetime
    skipped_vectors: int = 0
    dropped_chunks: int = 0
    metadata: dict[str, Any] = field(default_factory=dict)

    def to_dict(self) -> dict[str, Any]:
        return {
            "documentId": self.document_id,
            "chunksCount": self.chunks_count,
            "fileName": self.file_name,
            "sourceType": self.source_type,
            "createdAt": iso_timestamp(self.created_at),
            "skippedVectors": self.skipped_vectors,
            "droppedChunks": self.dropped_chunks,
            "metadata": self.metadata,
        }


Vector = Sequence[float]


__all__ = [
    "RawSegment",
    "ScrapedContent",
    "ChunkCandidate",
    "Chunk",
    "DocumentDescriptor",
    "Document",
    "WriteResult",
    "IngestManifest",
    "Vector",
]
