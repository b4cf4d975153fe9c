"""Validate vectors and write them to the vector store in batches."""

from __future__ import annotations

import math
import time
from typing import Callable, Sequence

from doc_indexer.core.errors import DimensionMismatchError, NoValidVectorsError, WriteExhaustionError
from doc_indexer.core.logging import get_logger
from doc_indexer.core.metrics import POINTS_WRITTEN, VECTORS_SKIPPED, WRITE_RETRIES
from doc_indexer.ingest.retry import RetryPolicy, execute_with_retry
from doc_indexer.ingest.types import Chunk, Vector, WriteResult
from doc_indexer.store.base import Point, VectorStore

logger = get_logger(__name__)


class VectorWriter:
    """Commit ``(chunk, vector)`` pairs to one collection.

    Vectors of the wrong size are skipped with a warning. Valid points are
    upserted ``batch_size`` at a time, each batch retried according to
    ``retry_policy``. If a batch exhausts its retries the error propagates and
    batches already written stay in the store.
    """

    def __init__(
        self,
        store: VectorStore,
        collection_name: str,
        dimension: int = 384,
        batch_size: int = 50,
        retry_policy: RetryPolicy | None = None,
        sleep: Callable[[float], None] = time.sleep,
    ) -> None:
        if batch_size < 1:
            raise ValueError("batch_size must be >= 1")
        self.store = store
        self.collection_name = collection_name
        self.dimension = dimension
        self.batch_size = batch_size
        self.retry_policy = retry_policy or RetryPolicy()
        self._sleep = sleep

    def validate(self, pairs: Sequence[tuple[Chunk, Vector | None]]) -> tuple[list[Point], int]:
        """Build points for pairs whose vector has the expected dimension."""
        points: list[Point] = []
        skipped = 0
        for chunk, vector in pairs:
            try:
                self._check_dimension(chunk, vector)
            except DimensionMismatchError as exc:
                skipped += 1
                logger.warning("Skipping chunk %s: %s", chunk.chunk_index, exc, extra={"ctx_stage": "validate"})
                continue
            points.append(Point(id=chunk.id, vector=[float(value) for value in vector], payload=chunk.payload()))
        if skipped:
            VECTORS_SKIPPED.inc(skipped)
        return points, skipped

    def write(self, pairs: Sequence[tuple[Chunk, Vector | None]]) -> WriteResult:
        points, skipped = self.validate(pairs)
        if not points:
            raise NoValidVectorsError(
                "No valid vectors left after dimension validation",
                expected_dimension=self.dimension,
                skipped=skipped,
            )
        logger.info(
            "%s valid vectors ready for insertion (%s skipped)",
            len(points),
            skipped,
            extra={"ctx_stage": "write"},
        )

        total_batches = math.ceil(len(points) / self.batch_size)
        committed = 0
        for batch_number, start in enumerate(range(0, len(points), self.batch_size), start=1):
            batch = points[start : start + self.batch_size]
            description = f"Upsert batch {batch_number}/{total_batches}"
            try:
                execute_with_retry(
                    lambda: self.store.upsert(self.collection_name, batch, wait=True),
                    self.retry_policy,
                    description=description,
                    sleep=self._sleep,
                    on_retry=lambda *_: WRITE_RETRIES.inc(),
                )
            except Exception as exc:
                raise WriteExhaustionError(
                    f"{description} failed after {self.retry_policy.max_attempts} attempts: {exc}",
                    batch_index=batch_number,
                    committed_points=committed,
                    total_batches=total_batches,
                ) from exc
            committed += len(batch)
            POINTS_WRITTEN.inc(len(batch))
            logger.info("%s committed (%s points)", description, len(batch), extra={"ctx_stage": "write"})

        return WriteResult(committed=committed, skipped=skipped, batches=total_batches)

    def _check_dimension(self, chunk: Chunk, vector: Vector | None) -> None:
        actual = len(vector) if vector is not None else 0
        if actual != self.dimension:
            raise DimensionMismatchError(
                f"vector has dimension {actual}, expected {self.dimension}",
                expected=self.dimension,
                actual=actual,
                chunk_id=chunk.id,
            )


__all__ = ["VectorWriter"]
