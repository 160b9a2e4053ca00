"""
k-nearest neighbor graphs for hubnessCV.

A ``NeighborGraph`` stores, for every query point, its neighbors sorted by
ascending distance together with the distances. Rows are rectangular: the
width is the requested k clipped to the number of available candidates.
The module also contains the exact builders used for the global graph and
for graphs recomputed in a secondary distance space, and the hubness
statistics derived from neighbor occurrences.
"""

from typing import Optional, Tuple
from dataclasses import dataclass
import numpy as np
from joblib import Parallel, delayed

from ..utils.logger import get_logger

# Query rows handled per task by the exact graph builder
ROW_CHUNK = 512


@dataclass
class NeighborGraph:
    """kNN lists of a set of query points."""
    indices: np.ndarray
    distances: np.ndarray

    def __post_init__(self):
        self.indices = np.asarray(self.indices, dtype=np.intp)
        self.distances = np.asarray(self.distances, dtype=np.float64)
        if self.indices.ndim != 2:
            raise ValueError(f"Neighbor indices must be two-dimensional, got shape {self.indices.shape}")
        if self.indices.shape != self.distances.shape:
            raise ValueError(
                f"Neighbor indices {self.indices.shape} and distances "
                f"{self.distances.shape} differ in shape"
            )

    @classmethod
    def empty(cls, num_points: int) -> 'NeighborGraph':
        """Graph with no neighbors for ``num_points`` rows."""
        return cls(np.zeros((num_points, 0), dtype=np.intp), np.zeros((num_points, 0)))

    @property
    def size(self) -> int:
        """Number of query rows."""
        return self.indices.shape[0]

    @property
    def k(self) -> int:
        """Neighbor list length."""
        return self.indices.shape[1]

    @property
    def frozen(self) -> bool:
        """Whether the underlying arrays are read-only."""
        return not self.indices.flags.writeable

    def freeze(self) -> 'NeighborGraph':
        """Make the graph read-only; shared graphs must be copied before mutation."""
        self.indices.setflags(write=False)
        self.distances.setflags(write=False)
        return self

    def copy(self) -> 'NeighborGraph':
        """Private writable copy."""
        return NeighborGraph(self.indices.copy(), self.distances.copy())

    def truncate(self, k: int) -> 'NeighborGraph':
        """First ``k`` neighbors of every row."""
        k = min(k, self.k)
        return NeighborGraph(self.indices[:, :k].copy(), self.distances[:, :k].copy())

    def rows(self, positions: np.ndarray) -> 'NeighborGraph':
        """Neighbor lists of a subset of query rows."""
        positions = np.asarray(positions, dtype=np.intp)
        return NeighborGraph(self.indices[positions], self.distances[positions])

    @property
    def kth_distances(self) -> np.ndarray:
        """Distance to the last neighbor of every row."""
        if self.k == 0:
            return np.zeros(self.size)
        return self.distances[:, -1]

    def occurrence_counts(self, num_points: Optional[int] = None) -> np.ndarray:
        """
        Neighbor occurrence frequency (k-occurrence) of every point.

        Args:
            num_points: Size of the neighbor index space, defaults to the
                number of rows

        Returns:
            Integer array of occurrence counts
        """
        num_points = self.size if num_points is None else num_points
        return np.bincount(self.indices.ravel(), minlength=num_points)

    def class_occurrences(
        self,
        row_labels: np.ndarray,
        num_classes: int,
        num_points: Optional[int] = None
    ) -> np.ndarray:
        """
        Class-conditional occurrence counts.

        Returns:
            Array of shape (num_classes, num_points); entry [c, j] counts how
            often j occurs in neighbor lists of rows labeled c
        """
        num_points = self.size if num_points is None else num_points
        result = np.zeros((num_classes, num_points), dtype=np.int64)
        row_labels = np.repeat(np.asarray(row_labels, dtype=np.intp), self.k)
        np.add.at(result, (row_labels, self.indices.ravel()), 1)
        return result

    def good_bad_occurrences(
        self,
        row_labels: np.ndarray,
        neighbor_labels: Optional[np.ndarray] = None,
        num_points: Optional[int] = None
    ) -> Tuple[np.ndarray, np.ndarray]:
        """Occurrences in label-matching (good) and mismatching (bad) neighbor lists."""
        row_labels = np.asarray(row_labels)
        neighbor_labels = row_labels if neighbor_labels is None else np.asarray(neighbor_labels)
        num_points = len(neighbor_labels) if num_points is None else num_points
        flat = self.indices.ravel()
        matches = (neighbor_labels[flat] == np.repeat(row_labels, self.k))
        good = np.bincount(flat[matches], minlength=num_points)
        bad = np.bincount(flat[~matches], minlength=num_points)
        return good, bad

    def reverse_neighbor_entropies(self, labels: np.ndarray, num_classes: int) -> np.ndarray:
        """
        Label entropy of each point's reverse neighbor set.

        Points occurring at most once get entropy 0.
        """
        counts = self.class_occurrences(labels, num_classes).astype(np.float64)
        totals = counts.sum(axis=0)
        with np.errstate(divide='ignore', invalid='ignore'):
            probs = np.where(totals > 0, counts / np.maximum(totals, 1), 0.0)
            logs = np.where(probs > 0, np.log2(np.where(probs > 0, probs, 1.0)), 0.0)
        entropies = -(probs * logs).sum(axis=0)
        entropies[totals <= 1] = 0.0
        return entropies

    def hw_knn_weights(self, labels: np.ndarray) -> np.ndarray:
        """hw-kNN vote weights from standardized bad occurrences."""
        _, bad = self.good_bad_occurrences(labels)
        return hubness_weights_from_bad_occurrences(bad)


def hubness_weights_from_bad_occurrences(bad: np.ndarray) -> np.ndarray:
    """Weights ``exp(-(b_i - mean(b)) / std(b))``; all ones when ``std(b)`` is 0."""
    bad = np.asarray(bad, dtype=np.float64)
    if len(bad) == 0:
        return bad
    std = bad.std()
    if std == 0:
        return np.ones_like(bad)
    return np.exp(-(bad - bad.mean()) / std)


def top_k_neighbors(
    query_distances: np.ndarray,
    k: int,
    exclude: Optional[np.ndarray] = None
) -> NeighborGraph:
    """
    Brute-force kNN of every query row.

    Args:
        query_distances: Array of shape (m, n), distances from m queries to
            n candidates
        k: Neighborhood size
        exclude: Optional candidate position per row that must not be
            returned (the query itself); negative entries exclude nothing

    Returns:
        NeighborGraph over candidate positions, ties broken by position
    """
    query_distances = np.asarray(query_distances, dtype=np.float64)
    m, n = query_distances.shape
    k_eff = min(k, n - 1 if exclude is not None else n)
    if m == 0 or k_eff <= 0:
        return NeighborGraph.empty(m)

    dists = query_distances.copy()
    if exclude is not None:
        exclude = np.asarray(exclude, dtype=np.intp)
        rows = np.flatnonzero(exclude >= 0)
        dists[rows, exclude[rows]] = np.inf

    if k_eff < n:
        # Of the candidates tied at the k-th distance, the lowest positions win
        kth = np.partition(dists, k_eff - 1, axis=1)[:, k_eff - 1:k_eff]
        closer = dists < kth
        tied = dists == kth
        needed = k_eff - closer.sum(axis=1, keepdims=True)
        selected = closer | (tied & (np.cumsum(tied, axis=1) <= needed))
        candidates = np.nonzero(selected)[1].reshape(m, k_eff)
    else:
        candidates = np.tile(np.arange(n), (m, 1))
    cand_dists = np.take_along_axis(dists, candidates, axis=1)
    order = np.lexsort((candidates, cand_dists), axis=-1)
    return NeighborGraph(
        np.take_along_axis(candidates, order, axis=1),
        np.take_along_axis(cand_dists, order, axis=1)
    )


def _exact_rows(distances: np.ndarray, start: int, stop: int, k: int) -> NeighborGraph:
    rows = np.arange(start, stop)
    return top_k_neighbors(distances[rows], k, exclude=rows)


def compute_exact_neighbor_graph(
    distances: np.ndarray,
    k: int,
    n_jobs: Optional[int] = None
) -> NeighborGraph:
    """
    Exact kNN graph of a square distance matrix, each point excluding itself.

    Rows are processed in chunks, in parallel threads when ``n_jobs`` asks for
    it; ties are broken by index as in :func:`top_k_neighbors`.

    Args:
        distances: Square symmetric distance matrix
        k: Neighborhood size, clipped to ``n - 1``
        n_jobs: Threads used by the neighbor search

    Returns:
        NeighborGraph with ascending neighbor distances
    """
    logger = get_logger("NeighborGraphBuilder")
    distances = np.asarray(distances, dtype=np.float64)
    n = distances.shape[0]
    k = min(k, n - 1)
    if k <= 0:
        return NeighborGraph.empty(n)

    logger.debug(f"Computing exact {k}-NN graph for {n} points")
    parts = Parallel(n_jobs=n_jobs, prefer="threads")(
        delayed(_exact_rows)(distances, start, min(start + ROW_CHUNK, n), k)
        for start in range(0, n, ROW_CHUNK)
    )
    return NeighborGraph(
        np.vstack([part.indices for part in parts]),
        np.vstack([part.distances for part in parts])
    )
