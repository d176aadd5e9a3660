"""
Standard embedding representation.

Embeddings travel as plain float lists (JSONL, provider responses) and are turned into
L2-normalized float32 NumPy vectors before they reach the vector store.
"""

from dataclasses import dataclass
from typing import List, Sequence, Union

import numpy as np

from vaultsearch.core.logging import logger


@dataclass
class EmbeddingVector:
    """L2-normalized float32 embedding.

    The dimension is whatever the provider produces; stores check consistency themselves.

    Attributes:
        _data: Normalized 1-D NumPy array (float32)
    """

    _data: np.ndarray

    def __init__(self, data: Union[np.ndarray, Sequence[float]]):
        """Validate and normalize.

        Raises:
            ValueError: If the data is not a non-empty 1-D vector of finite values
        """
        array = np.asarray(data, dtype=np.float32)
        if array.ndim != 1 or array.shape[0] == 0:
            raise ValueError(f"Embedding must be a non-empty 1-D vector, got shape {array.shape}")
        if not np.all(np.isfinite(array)):
            raise ValueError("Embedding contains NaN or infinite values")
        self._data = array
        self._normalize()

    def _normalize(self):
        """L2 normalization for cosine similarity.

        A zero vector has no direction; it becomes a unit vector in the first dimension.
        """
        norm = np.linalg.norm(self._data)
        if norm > 0:
            self._data = self._data / norm
        else:
            logger.warning("Normalizing zero vector, using default unit vector")
            self._data = np.zeros(self._data.shape[0], dtype=np.float32)
            self._data[0] = 1.0

    @property
    def dimension(self) -> int:
        return int(self._data.shape[0])

    @property
    def numpy(self) -> np.ndarray:
        """For efficient mathematical operations."""
        return self._data

    @property
    def list(self) -> List[float]:
        """For serialization."""
        return self._data.tolist()

    def cosine_similarity(self, other: "EmbeddingVector") -> float:
        """Dot product of two normalized vectors."""
        return float(np.dot(self._data, other._data))
