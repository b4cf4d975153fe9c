"""Exception hierarchy for the ingestion pipeline.

Every error carries the pipeline ``stage`` it belongs to plus a small
``context`` mapping (counts, URLs, batch numbers) so callers can report a
failure without digging into internals.
"""

from __future__ import annotations

from typing import Any


class IngestError(RuntimeError):
    """Base exception for ingestion failures."""

    stage = "ingest"

    def __init__(self, message: str, **context: Any) -> None:
        super().__init__(message)
        self.context: dict[str, Any] = context

    def to_dict(self) -> dict[str, Any]:
        return {
            "error": type(self).__name__,
            "stage": self.stage,
            "message": str(self),
            "context": self.context,
        }


class ConnectivityError(IngestError):
    """The vector store could not be reached."""

    stage = "connectivity"


class UnsupportedTypeError(IngestError):
    """The locator is neither an HTTP(S) URL nor a known file type."""

    stage = "load"


class LoadError(IngestError):
    """A source was empty, corrupt or unreadable."""

    stage = "load"


class ExtractionError(IngestError):
    """A web page could not be turned into clean text."""

    stage = "extract"


class HttpStatusError(ExtractionError):
    def __init__(self, message: str, status_code: int, **context: Any) -> None:
        super().__init__(message, status_code=status_code, **context)
        self.status_code = status_code


class ContentTooShortError(ExtractionError):
    def __init__(self, message: str, length: int, **context: Any) -> None:
        super().__init__(message, length=length, **context)
        self.length = length


class FetchTimeoutError(ExtractionError):
    pass


class NetworkError(ExtractionError):
    pass


class NoValidChunksError(IngestError):
    stage = "chunk"


class EmbeddingError(IngestError):
    stage = "embed"


class DimensionMismatchError(IngestError):
    """A single vector has the wrong size; reported, never fatal."""

    stage = "validate"

    def __init__(self, message: str, expected: int, actual: int, **context: Any) -> None:
        super().__init__(message, expected=expected, actual=actual, **context)
        self.expected = expected
        self.actual = actual


class NoValidVectorsError(IngestError):
    stage = "validate"


class WriteExhaustionError(IngestError):
    """A write batch failed on every attempt; earlier batches stay committed."""

    stage = "write"

    def __init__(self, message: str, batch_index: int, committed_points: int, **context: Any) -> None:
        super().__init__(message, batch_index=batch_index, committed_points=committed_points, **context)
        self.batch_index = batch_index
        self.committed_points = committed_points


__all__ = [
    "IngestError",
    "ConnectivityError",
    "UnsupportedTypeError",
    "LoadError",
    "ExtractionError",
    "HttpStatusError",
    "ContentTooShortError",
    "FetchTimeoutError",
    "NetworkError",
    "NoValidChunksError",
    "EmbeddingError",
    "DimensionMismatchError",
    "NoValidVectorsError",
    "WriteExhaustionError",
]
