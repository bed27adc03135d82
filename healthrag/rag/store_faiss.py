"""FAISS vector index for semantic search.

Handles:
- Dimension enforcement at add time
- Exact cosine search (inner product over L2-normalized vectors)
- Delete by chunk id
- Copy-on-write snapshots so searches never see a half-applied write
"""
import threading
from collections import Counter
from dataclasses import dataclass
from typing import Iterable, List, Optional, Tuple

import faiss
import numpy as np
import structlog

from healthrag.rag.errors import DimensionMismatchError
from healthrag.rag.models import Chunk, Embedding, IndexStats

logger = structlog.get_logger()

DEFAULT_TOP_K = 5


def cosine_similarity(a: Embedding, b: Embedding) -> float:
    """Cosine similarity of two vectors.

    Returns 0.0 when the lengths differ or either norm is zero.
    """
    va = np.asarray(a, dtype=np.float64).ravel()
    vb = np.asarray(b, dtype=np.float64).ravel()

    if va.shape != vb.shape:
        return 0.0

    norm_a = np.linalg.norm(va)
    norm_b = np.linalg.norm(vb)
    if norm_a == 0.0 or norm_b == 0.0:
        return 0.0

    return float(np.dot(va, vb) / (norm_a * norm_b))


@dataclass(frozen=True)
class IndexRecord:
    """One indexed chunk and its raw embedding."""

    chunk: Chunk
    embedding: np.ndarray


@dataclass(frozen=True)
class _Snapshot:
    records: Tuple[IndexRecord, ...]
    index: Optional[faiss.Index]
    dimension: Optional[int]


class FAISSVectorIndex:
    """In-memory exact cosine index over a flat FAISS inner-product index."""

    def __init__(self, dimension: Optional[int] = None, default_top_k: int = DEFAULT_TOP_K):
        """Initialize an empty index.

        Args:
            dimension: Embedding dimension (taken from the first record if not provided)
            default_top_k: Result count used when search gets no positive top_k
        """
        self._configured_dimension = dimension
        self.default_top_k = default_top_k if default_top_k > 0 else DEFAULT_TOP_K

        # Writers serialize here; readers only dereference _snapshot
        self._write_lock = threading.Lock()
        self._snapshot = _Snapshot(records=(), index=None, dimension=dimension)

        logger.info(
            "faiss_index_initialized",
            dimension=dimension,
            default_top_k=self.default_top_k,
            index_type="IndexFlatIP",
        )

    @property
    def dimension(self) -> Optional[int]:
        return self._snapshot.dimension

    def __len__(self) -> int:
        return len(self._snapshot.records)

    def add(
        self,
        items: Iterable[Tuple[Chunk, Embedding]],
        replacing: Iterable[str] = (),
    ) -> int:
        """Append (chunk, embedding) records.

        Duplicate ids are not deduplicated; pass the stale ids as
        ``replacing`` to swap them out in the same step. Records whose
        embedding length differs from the index dimension are rejected and
        logged, the rest are still added.

        Args:
            items: Pairs of chunk and embedding
            replacing: Ids removed in the same snapshot as the additions

        Returns:
            Number of records accepted
        """
        stale = set(replacing)

        with self._write_lock:
            current = self._snapshot
            kept = current.records
            if stale:
                kept = tuple(r for r in kept if r.chunk.record_id not in stale)
            removed = len(current.records) - len(kept)

            dimension = current.dimension
            accepted: List[IndexRecord] = []
            rejected = 0

            for chunk, embedding in items:
                try:
                    vector = self._to_vector(embedding, dimension)
                except DimensionMismatchError as e:
                    rejected += 1
                    logger.warning(
                        "record_rejected_dimension_mismatch",
                        chunk_id=chunk.id,
                        expected=e.expected,
                        actual=e.actual,
                    )
                    continue

                dimension = vector.shape[0]
                accepted.append(IndexRecord(chunk=chunk, embedding=vector))

            if accepted or removed:
                self._snapshot = self._build_snapshot(kept + tuple(accepted), dimension)

        logger.info(
            "records_added",
            accepted=len(accepted),
            rejected=rejected,
            replaced=removed,
            total_records=len(self._snapshot.records),
        )

        return len(accepted)

    def delete(self, ids: Iterable[str]) -> int:
        """Remove every record whose chunk id is in ``ids``.

        Unknown ids are ignored.

        Args:
            ids: Chunk ids to remove

        Returns:
            Number of records removed
        """
        wanted = set(ids)
        if not wanted:
            return 0

        with self._write_lock:
            current = self._snapshot
            kept = tuple(r for r in current.records if r.chunk.record_id not in wanted)
            removed = len(current.records) - len(kept)

            if removed:
                self._snapshot = self._build_snapshot(kept, current.dimension)

        logger.info("records_deleted", requested=len(wanted), removed=removed)

        return removed

    def clear(self) -> None:
        """Drop every record and forget a dimension learned from data."""
        with self._write_lock:
            self._snapshot = _Snapshot(
                records=(), index=None, dimension=self._configured_dimension
            )

        logger.warning("index_cleared")

    def empty_copy(self) -> "FAISSVectorIndex":
        """New empty index with the same configured dimension and default top_k."""
        return FAISSVectorIndex(
            dimension=self._configured_dimension, default_top_k=self.default_top_k
        )

    def replace_contents(self, other: "FAISSVectorIndex") -> None:
        """Adopt another index's records in one step.

        Searches see either the old contents or the new ones, never a mix.
        """
        snapshot = other._snapshot
        with self._write_lock:
            self._snapshot = snapshot

        logger.info("index_contents_replaced", total_records=len(snapshot.records))

    def search_with_scores(
        self, query_embedding: Embedding, top_k: Optional[int] = None
    ) -> List[Tuple[Chunk, float]]:
        """Rank every record by cosine similarity to the query.

        A query whose length differs from the index dimension, or whose norm
        is zero, scores 0 against every record; records then come back in
        scan order.

        Args:
            query_embedding: Query vector
            top_k: Number of results (index default when None or <= 0)

        Returns:
            List of (chunk, similarity), best first
        """
        snapshot = self._snapshot

        if not snapshot.records:
            logger.warning("empty_index_no_results")
            return []

        if top_k is None or top_k <= 0:
            top_k = self.default_top_k
        top_k = min(top_k, len(snapshot.records))

        try:
            query = np.asarray(query_embedding, dtype=np.float32)
        except (TypeError, ValueError):
            query = np.empty((0, 0), dtype=np.float32)

        if query.ndim != 1 or query.shape[0] != snapshot.dimension:
            logger.warning(
                "query_dimension_mismatch",
                expected=snapshot.dimension,
                actual=int(query.size),
            )
            return [(r.chunk, 0.0) for r in snapshot.records[:top_k]]

        if not np.any(query):
            logger.warning("zero_norm_query")
            return [(r.chunk, 0.0) for r in snapshot.records[:top_k]]

        query_matrix = np.ascontiguousarray(query.reshape(1, -1))
        faiss.normalize_L2(query_matrix)
        scores, labels = snapshot.index.search(query_matrix, top_k)

        results = [
            (snapshot.records[label].chunk, float(score))
            for score, label in zip(scores[0].tolist(), labels[0].tolist())
            if label >= 0
        ]

        logger.debug(
            "vector_search_completed",
            top_k=top_k,
            results_found=len(results),
            top_score=results[0][1] if results else None,
        )

        return results

    def search(self, query_embedding: Embedding, top_k: Optional[int] = None) -> List[Chunk]:
        """Return the ``top_k`` chunks most similar to the query, best first."""
        return [chunk for chunk, _ in self.search_with_scores(query_embedding, top_k)]

    def ids_for_source(self, source: str) -> List[str]:
        """Get the record ids of every chunk from one source."""
        return [
            r.chunk.record_id
            for r in self._snapshot.records
            if r.chunk.metadata.source == source
        ]

    def stats(self) -> IndexStats:
        """Get statistics about the index.

        Returns:
            IndexStats for the current snapshot
        """
        records = self._snapshot.records
        sources = {r.chunk.metadata.source for r in records}
        types = Counter(r.chunk.metadata.type for r in records)

        return IndexStats(
            total_chunks=len(records),
            total_sources=len(sources),
            dimension=self._snapshot.dimension,
            types=dict(types),
        )

    @staticmethod
    def _to_vector(embedding: Embedding, dimension: Optional[int]) -> np.ndarray:
        try:
            vector = np.array(embedding, dtype=np.float32)
        except (TypeError, ValueError):
            raise DimensionMismatchError(dimension or 0, 0)

        if vector.ndim != 1 or vector.size == 0:
            raise DimensionMismatchError(dimension or 0, int(vector.size))

        if dimension is not None and vector.shape[0] != dimension:
            raise DimensionMismatchError(dimension, vector.shape[0])

        return vector

    @staticmethod
    def _build_snapshot(records: Tuple[IndexRecord, ...], dimension: int) -> _Snapshot:
        if not records:
            return _Snapshot(records=(), index=None, dimension=dimension)

        matrix = np.ascontiguousarray(
            np.vstack([r.embedding for r in records]), dtype=np.float32
        )
        # Zero vectors stay zero and score 0 against any query
        faiss.normalize_L2(matrix)

        index = faiss.IndexFlatIP(dimension)
        index.add(matrix)

        return _Snapshot(records=records, index=index, dimension=dimension)
