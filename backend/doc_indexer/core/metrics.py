"""Prometheus metrics instrumentation."""

from __future__ import annotations

from prometheus_client import CollectorRegistry, Counter, Histogram, generate_latest

REGISTRY = CollectorRegistry()

INGEST_DURATION = Histogram(
    "docix_ingest_duration_seconds",
    "Ingest pipeline duration",
    labelnames=("source_type",),
    registry=REGISTRY,
)

INGEST_TOTAL = Counter(
    "docix_ingest_total",
    "Ingestion calls by outcome",
    labelnames=("source_type", "status"),
    registry=REGISTRY,
)

POINTS_WRITTEN = Counter(
    "docix_points_written_total",
    "Points committed to the vector store",
    registry=REGISTRY,
)

VECTORS_SKIPPED = Counter(
    "docix_vectors_skipped_total",
    "Vectors dropped by dimension validation",
    registry=REGISTRY,
)

CHUNKS_DROPPED = Counter(
    "docix_chunks_dropped_total",
    "Chunks filtered out for being too short",
    registry=REGISTRY,
)

WRITE_RETRIES = Counter(
    "docix_write_retries_total",
    "Upsert attempts that failed and were retried",
    registry=REGISTRY,
)


def render_metrics() -> bytes:
    """Return metrics in the Prometheus text exposition format."""
    return generate_latest(REGISTRY)


__all__ = [
    "REGISTRY",
    "INGEST_DURATION",
    "INGEST_TOTAL",
    "POINTS_WRITTEN",
    "VECTORS_SKIPPED",
    "CHUNKS_DROPPED",
    "WRITE_RETRIES",
    "render_metrics",
]
