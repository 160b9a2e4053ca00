"""
Approximate kNN graph construction.

Divide-and-conquer construction with overlapping halves, after Chen, Fang and
Saad, "Fast Approximate kNN Graph Construction for High Dimensional Data via
Recursive Lanczos Bisection" (JMLR 2009). Only a distance matrix is available
here, so each node is split along the axis between two far-apart pivot
points instead of a Lanczos direction. Leaves get an exact kNN computation
and each point keeps the best candidates found over all leaves it belongs to.
"""

from typing import List, Optional
import numpy as np
from sklearn.utils import check_random_state

from .neighbor_graph import NeighborGraph, compute_exact_neighbor_graph, top_k_neighbors
from ..utils.logger import get_logger

# Overlap ratio reached at alpha just below 1; the work grows quickly above it
MAX_OVERLAP = 0.4


class ApproximateNeighborGraphBuilder:
    """
    Approximate kNN graph builder.

    Args:
        k: Neighborhood size
        alpha: Quality parameter in (0, 1]. Larger values mean larger overlap
            between sibling subsets and better recall; 1 computes the exact
            graph.
        leaf_size: Nodes at most this large are solved exactly
        random_state: Seed for pivot selection
        n_jobs: Threads for the exact fallback
    """

    def __init__(
        self,
        k: int,
        alpha: float = 0.5,
        leaf_size: int = 250,
        random_state: Optional[int] = None,
        n_jobs: Optional[int] = None
    ):
        if not 0 < alpha <= 1:
            raise ValueError(f"alpha must be in (0, 1], got {alpha}")
        if k < 1:
            raise ValueError(f"k must be positive, got {k}")
        self.k = k
        self.alpha = alpha
        self.leaf_size = leaf_size
        self.random_state = random_state
        self.n_jobs = n_jobs
        self.logger = get_logger("ApproximateNeighborGraphBuilder")

    @property
    def overlap(self) -> float:
        """Fraction of a node shared by both of its children."""
        return MAX_OVERLAP * self.alpha

    def build(self, distances: np.ndarray) -> NeighborGraph:
        """Compute the approximate kNN graph of a square distance matrix."""
        distances = np.asarray(distances, dtype=np.float64)
        n = distances.shape[0]
        k = min(self.k, n - 1)
        min_leaf = max(self.leaf_size, 2 * (k + 1))
        if self.alpha >= 1 or n <= min_leaf or k <= 0:
            return compute_exact_neighbor_graph(distances, self.k, n_jobs=self.n_jobs)

        rng = check_random_state(self.random_state)
        leaves = self._divide(np.arange(n), distances, min_leaf, rng)
        self.logger.debug(f"Approximate {k}-NN graph: {n} points split into {len(leaves)} leaves")

        best_idx = np.full((n, k), -1, dtype=np.intp)
        best_dist = np.full((n, k), np.inf)
        for leaf in leaves:
            local = top_k_neighbors(distances[np.ix_(leaf, leaf)], k, exclude=np.arange(len(leaf)))
            self._merge(best_idx, best_dist, leaf, leaf[local.indices], local.distances, k)

        return NeighborGraph(best_idx, best_dist)

    def _divide(
        self,
        members: np.ndarray,
        distances: np.ndarray,
        min_leaf: int,
        rng: np.random.RandomState
    ) -> List[np.ndarray]:
        """Split recursively into overlapping leaves."""
        leaves = []
        stack = [members]
        while stack:
            node = stack.pop()
            side = int(np.ceil((1 + self.overlap) / 2 * len(node)))
            if len(node) <= min_leaf or side >= len(node):
                leaves.append(node)
                continue
            order = node[np.argsort(self._split_scores(node, distances, rng), kind="stable")]
            stack.append(order[:side])
            stack.append(order[-side:])
        return leaves

    @staticmethod
    def _split_scores(node: np.ndarray, distances: np.ndarray, rng: np.random.RandomState) -> np.ndarray:
        """Position of each member along the axis between two far-apart pivots."""
        start = node[rng.randint(len(node))]
        first = node[np.argmax(distances[start, node])]
        second = node[np.argmax(distances[first, node])]
        return distances[first, node] - distances[second, node]

    @staticmethod
    def _merge(
        best_idx: np.ndarray,
        best_dist: np.ndarray,
        leaf: np.ndarray,
        cand_idx: np.ndarray,
        cand_dist: np.ndarray,
        k: int
    ) -> None:
        """Merge leaf candidates into the current best lists of the leaf members."""
        idx = np.concatenate([best_idx[leaf], cand_idx], axis=1)
        dist = np.concatenate([best_dist[leaf], cand_dist], axis=1)

        by_index = np.lexsort((dist, idx), axis=-1)
        idx = np.take_along_axis(idx, by_index, axis=1)
        dist = np.take_along_axis(dist, by_index, axis=1)
        invalid = idx < 0
        invalid[:, 1:] |= idx[:, 1:] == idx[:, :-1]
        idx[invalid] = -1
        dist[invalid] = np.inf

        by_distance = np.lexsort((idx, dist), axis=-1)[:, :k]
        best_idx[leaf] = np.take_along_axis(idx, by_distance, axis=1)
        best_dist[leaf] = np.take_along_axis(dist, by_distance, axis=1)


def build_neighbor_graph(
    distances: np.ndarray,
    k: int,
    approximate: bool = False,
    alpha: float = 1.0,
    n_jobs: Optional[int] = None,
    random_state: Optional[int] = None
) -> NeighborGraph:
    """Exact graph, or the approximate one when requested with ``alpha < 1``."""
    if approximate and alpha < 1:
        builder = ApproximateNeighborGraphBuilder(k, alpha=alpha, random_state=random_state, n_jobs=n_jobs)
        return builder.build(distances)
    return compute_exact_neighbor_graph(distances, k, n_jobs=n_jobs)
