"""
Pairwise distance storage for hubnessCV.

Distances are exchanged in upper-triangular compact form (row ``i`` holds
``d(i, j)`` for ``j > i``) and kept internally as a read-only square array so
that fold sub-matrices can be sliced with numpy fancy indexing.
"""

from typing import List, Optional, Sequence, Union
import numpy as np
import pandas as pd
from scipy.spatial.distance import squareform
from sklearn.metrics import pairwise_distances

from ..utils.logger import get_logger


class DistanceMatrix:
    """Symmetric distance matrix over the whole dataset."""

    def __init__(self, square: np.ndarray, copy: bool = True):
        square = np.array(square, dtype=np.float64) if copy else np.asarray(square, dtype=np.float64)
        if square.ndim != 2 or square.shape[0] != square.shape[1]:
            raise ValueError(f"Distance matrix must be square, got shape {square.shape}")
        self._square = square
        self._square.setflags(write=False)

    @classmethod
    def from_square(cls, square: Union[np.ndarray, pd.DataFrame]) -> 'DistanceMatrix':
        """Wrap a square symmetric array."""
        if isinstance(square, pd.DataFrame):
            square = square.values
        square = np.array(square, dtype=np.float64)
        np.fill_diagonal(square, 0.0)
        return cls(square, copy=False)

    @classmethod
    def from_condensed(cls, condensed: np.ndarray) -> 'DistanceMatrix':
        """Build from the flat upper-triangular vector used by scipy."""
        condensed = np.asarray(condensed, dtype=np.float64)
        return cls(squareform(condensed, checks=False), copy=False)

    @classmethod
    def from_upper_triangular(cls, rows: Sequence[Sequence[float]]) -> 'DistanceMatrix':
        """
        Build from compact rows.

        Args:
            rows: ``rows[i][j - i - 1] = d(i, j)`` for ``j > i``; the last row
                may be empty or omitted.

        Returns:
            DistanceMatrix instance
        """
        rows = [np.asarray(row, dtype=np.float64) for row in rows]
        n = len(rows[0]) + 1 if rows else 1
        if len(rows) not in (n - 1, n):
            raise ValueError(f"Expected {n - 1} upper-triangular rows, got {len(rows)}")
        for i, row in enumerate(rows):
            if len(row) != n - i - 1:
                raise ValueError(
                    f"Row {i} of the upper-triangular matrix has {len(row)} entries, "
                    f"expected {n - i - 1}"
                )
        condensed = np.concatenate(rows) if rows else np.zeros(0)
        return cls.from_condensed(condensed)

    @classmethod
    def from_features(
        cls,
        features: Union[np.ndarray, pd.DataFrame],
        metric: str = "euclidean",
        n_jobs: Optional[int] = None
    ) -> 'DistanceMatrix':
        """Compute primary distances from a feature matrix."""
        logger = get_logger("DistanceMatrix")
        if isinstance(features, pd.DataFrame):
            features = features.values
        logger.info(f"Computing {metric} distances for {features.shape[0]} instances")
        return cls.from_square(pairwise_distances(features, metric=metric, n_jobs=n_jobs))

    def __len__(self) -> int:
        return self._square.shape[0]

    @property
    def size(self) -> int:
        """Number of instances."""
        return self._square.shape[0]

    @property
    def square(self) -> np.ndarray:
        """Read-only square view of the distances."""
        return self._square

    def get(self, i: int, j: int) -> float:
        """Distance between instances ``i`` and ``j``."""
        return float(self._square[i, j])

    def to_condensed(self) -> np.ndarray:
        """Flat upper-triangular vector."""
        return squareform(self._square, checks=False)

    def to_upper_triangular(self) -> List[np.ndarray]:
        """Compact rows, ``rows[i][j - i - 1] = d(i, j)``."""
        return [self._square[i, i + 1:].copy() for i in range(self.size)]

    def sub_matrix(self, indices: Sequence[int]) -> np.ndarray:
        """Square distance matrix restricted to ``indices`` (in that order)."""
        indices = np.asarray(indices, dtype=np.intp)
        return self._square[np.ix_(indices, indices)]

    def cross_distances(self, rows: Sequence[int], cols: Sequence[int]) -> np.ndarray:
        """Distances from every instance in ``rows`` to every instance in ``cols``."""
        rows = np.asarray(rows, dtype=np.intp)
        cols = np.asarray(cols, dtype=np.intp)
        return self._square[np.ix_(rows, cols)]
