"""
In-memory cosine vector store backed by a NumPy matrix.
"""

from typing import Dict, Iterable, List, Optional, Sequence, Set, Tuple

import numpy as np

from vaultsearch.core.logging import logger
from vaultsearch.embeddings.types import EmbeddingVector


class InMemoryVectorStore:
    """
    Row-per-chunk matrix of normalized embeddings.

    Rows are appended in batches; the matrix is rebuilt lazily on the first search after a
    change. All vectors must share one dimension; mismatching vectors are skipped.
    """

    def __init__(self) -> None:
        self._ids: List[str] = []
        self._paths: List[str] = []
        self._pending: List[np.ndarray] = []
        self._matrix: Optional[np.ndarray] = None
        self._dimension: Optional[int] = None

    def __len__(self) -> int:
        return len(self._ids)

    @property
    def dimension(self) -> Optional[int]:
        return self._dimension

    def add(self, ids: Sequence[str], paths: Sequence[str], vectors: Sequence[Sequence[float]]) -> int:
        """
        Append vectors.

        Returns:
            Number of vectors added
        """
        added = 0
        for chunk_id, path, raw in zip(ids, paths, vectors):
            try:
                vector = EmbeddingVector(raw)
            except ValueError as e:
                logger.warning("Skipping invalid embedding", chunk_id=chunk_id, error=str(e))
                continue

            if self._dimension is None:
                self._dimension = vector.dimension
            elif vector.dimension != self._dimension:
                logger.warning(
                    "Skipping embedding with mismatched dimension",
                    chunk_id=chunk_id,
                    expected=self._dimension,
                    actual=vector.dimension,
                )
                continue

            self._ids.append(chunk_id)
            self._paths.append(path)
            self._pending.append(vector.numpy)
            added += 1
        return added

    def _ensure_matrix(self) -> np.ndarray:
        if self._pending:
            stacked = np.vstack(self._pending)
            self._matrix = stacked if self._matrix is None else np.vstack([self._matrix, stacked])
            self._pending = []
        if self._matrix is None:
            return np.zeros((0, self._dimension or 0), dtype=np.float32)
        return self._matrix

    def search(
        self,
        query: Sequence[float],
        k: int,
        allowed_paths: Optional[Iterable[str]] = None,
    ) -> List[Tuple[str, float]]:
        """
        Top-k rows by cosine similarity.

        Args:
            query: Query embedding
            k: Number of hits
            allowed_paths: Restrict hits to these document paths

        Returns:
            (chunk id, cosine similarity) pairs, best first
        """
        if not self._ids or k <= 0:
            return []

        vector = EmbeddingVector(query)
        if vector.dimension != self._dimension:
            logger.warning(
                "Query embedding dimension mismatch",
                expected=self._dimension,
                actual=vector.dimension,
            )
            return []

        scores = self._ensure_matrix() @ vector.numpy

        if allowed_paths is not None:
            allowed: Set[str] = set(allowed_paths)
            rows = np.array([i for i, p in enumerate(self._paths) if p in allowed], dtype=np.int64)
        else:
            rows = np.arange(len(self._ids))
        if rows.size == 0:
            return []

        k = min(k, rows.size)
        subset = scores[rows]
        top = np.argpartition(-subset, k - 1)[:k]
        # Stable tie order: insertion order among equal scores
        top = top[np.lexsort((rows[top], -subset[top]))]
        return [(self._ids[rows[i]], float(subset[i])) for i in top]

    def paths(self) -> Dict[str, int]:
        """Row count per document path."""
        counts: Dict[str, int] = {}
        for path in self._paths:
            counts[path] = counts.get(path, 0) + 1
        return counts

    def clear(self) -> None:
        self._ids = []
        self._paths = []
        self._pending = []
        self._matrix = None
        self._dimension = None
