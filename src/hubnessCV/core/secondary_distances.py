"""
Secondary distances for hubnessCV.

Secondary distances re-scale or replace primary distances using neighborhood
information, reducing the distortion that hubs introduce in high-dimensional
kNN spaces. Each calculator transforms a training fold's distance matrix and
its test-to-training block given the fold's kNN graph and the test points'
kNN lists (both at the secondary neighborhood size, over training positions).
"""

from abc import ABC, abstractmethod
from typing import Optional, Tuple
import numpy as np
from scipy import sparse
from scipy.stats import norm

from .base import SecondaryDistance
from .neighbor_graph import NeighborGraph
from ..utils.logger import get_logger

# Lower bound for Gaussian scale parameters
MIN_SCALE = 1e-12


class SecondaryDistanceCalculator(ABC):
    """Base class for per-fold secondary distance transforms."""

    def __init__(self):
        self.logger = get_logger(self.__class__.__name__)

    @abstractmethod
    def transform(
        self,
        fold_distances: np.ndarray,
        fold_graph: NeighborGraph,
        test_to_train: np.ndarray,
        test_graph: NeighborGraph,
        labels: np.ndarray,
        num_classes: int
    ) -> Tuple[np.ndarray, np.ndarray]:
        """
        Compute secondary distances.

        Args:
            fold_distances: Primary square distances of the training fold
            fold_graph: kNN graph of the training fold
            test_to_train: Primary distances from test to training points
            test_graph: kNN lists of the test points among training points
            labels: Labels of the training points, in fold order
            num_classes: Number of classes

        Returns:
            Secondary training distance matrix and test-to-training block
        """
        pass


def _membership_matrix(graph: NeighborGraph, num_points: int) -> sparse.csr_matrix:
    """Sparse 0/1 matrix with a 1 at (i, j) when j is a neighbor of i."""
    rows = np.repeat(np.arange(graph.size), graph.k)
    data = np.ones(len(rows))
    return sparse.csr_matrix((data, (rows, graph.indices.ravel())), shape=(graph.size, num_points))


class SharedNeighborCalculator(SecondaryDistanceCalculator):
    """
    Shared-neighbor distance.

    ``d(x, y) = k - SNN(x, y)`` where SNN counts the neighbors shared by the two
    kNN sets. With ``weighted=True`` (simhub) each shared neighbor contributes
    ``w_i = log2(n / (N_k(i) + 1)) * (log2(C) - H(i) + theta)``, normalized by
    the largest absolute weight when that exceeds 1; N_k is the occurrence count
    and H the label entropy of the reverse neighbor set. Hubs and points with
    mixed reverse neighbors therefore count less.
    """

    def __init__(self, weighted: bool = False, theta: float = 0.0):
        super().__init__()
        self.weighted = weighted
        self.theta = theta

    def neighbor_weights(self, fold_graph: NeighborGraph, labels: np.ndarray, num_classes: int) -> np.ndarray:
        """Per-point contribution to shared-neighbor counts."""
        n = fold_graph.size
        if not self.weighted:
            return np.ones(n)
        occurrences = fold_graph.occurrence_counts()
        entropies = fold_graph.reverse_neighbor_entropies(labels, num_classes)
        max_entropy = np.log2(num_classes) if num_classes > 1 else 0.0
        weights = np.log2(n / (occurrences + 1.0)) * (max_entropy - entropies + self.theta)
        max_weight = max(np.abs(weights).max() if n else 1.0, 1.0)
        return weights / max_weight

    def transform(self, fold_distances, fold_graph, test_to_train, test_graph, labels, num_classes):
        n = fold_graph.size
        snk = fold_graph.k
        weights = self.neighbor_weights(fold_graph, labels, num_classes)
        train_members = _membership_matrix(fold_graph, n)
        weighted_members = train_members.multiply(weights[None, :]).tocsr()

        shared = (weighted_members @ train_members.T).toarray()
        fold_secondary = np.maximum(snk - shared, 0.0)
        np.fill_diagonal(fold_secondary, 0.0)

        test_members = _membership_matrix(test_graph, n).multiply(weights[None, :]).tocsr()
        test_shared = (test_members @ train_members.T).toarray()
        test_secondary = np.maximum(snk - test_shared, 0.0)

        self.logger.debug(f"Shared-neighbor distances computed with k={snk}, weighted={self.weighted}")
        return fold_secondary, test_secondary


class MutualProximityCalculator(SecondaryDistanceCalculator):
    """
    Mutual proximity with Gaussian neighbor-distance models.

    Each point's distances to its k nearest neighbors are modeled by a normal
    distribution; ``MP(x, y) = 1 - P(X > d) * P(Y > d)`` is the probability that
    the two points are not mutual near neighbors.
    """

    @staticmethod
    def _gaussian_parameters(graph: NeighborGraph) -> Tuple[np.ndarray, np.ndarray]:
        if graph.k == 0:
            return np.zeros(graph.size), np.full(graph.size, MIN_SCALE)
        means = graph.distances.mean(axis=1)
        stds = np.maximum(graph.distances.std(axis=1), MIN_SCALE)
        return means, stds

    def transform(self, fold_distances, fold_graph, test_to_train, test_graph, labels, num_classes):
        means, stds = self._gaussian_parameters(fold_graph)
        test_means, test_stds = self._gaussian_parameters(test_graph)

        row_sf = norm.sf(fold_distances, loc=means[:, None], scale=stds[:, None])
        col_sf = norm.sf(fold_distances, loc=means[None, :], scale=stds[None, :])
        fold_secondary = 1.0 - row_sf * col_sf
        np.fill_diagonal(fold_secondary, 0.0)

        test_row_sf = norm.sf(test_to_train, loc=test_means[:, None], scale=test_stds[:, None])
        test_col_sf = norm.sf(test_to_train, loc=means[None, :], scale=stds[None, :])
        test_secondary = 1.0 - test_row_sf * test_col_sf
        return fold_secondary, test_secondary


class LocalScalingCalculator(SecondaryDistanceCalculator):
    """Local scaling: ``1 - exp(-d^2 / (sigma_x * sigma_y))``, sigma the k-th neighbor distance."""

    @staticmethod
    def _scale(distances: np.ndarray, row_sigma: np.ndarray, col_sigma: np.ndarray) -> np.ndarray:
        denominator = row_sigma[:, None] * col_sigma[None, :]
        ratio = np.divide(
            distances ** 2,
            denominator,
            out=np.where(distances > 0, np.inf, 0.0),
            where=denominator > 0
        )
        return 1.0 - np.exp(-ratio)

    def transform(self, fold_distances, fold_graph, test_to_train, test_graph, labels, num_classes):
        sigma = fold_graph.kth_distances
        fold_secondary = self._scale(fold_distances, sigma, sigma)
        np.fill_diagonal(fold_secondary, 0.0)
        test_secondary = self._scale(test_to_train, test_graph.kth_distances, sigma)
        return fold_secondary, test_secondary


class NICDMCalculator(SecondaryDistanceCalculator):
    """Non-iterative contextual dissimilarity: ``d / sqrt(mu_x * mu_y)``, mu the mean kNN distance."""

    @staticmethod
    def _normalize(distances: np.ndarray, row_mean: np.ndarray, col_mean: np.ndarray) -> np.ndarray:
        # Points whose neighbors all coincide with them keep their primary distances
        denominator = np.sqrt(row_mean[:, None] * col_mean[None, :])
        return np.divide(
            distances,
            denominator,
            out=np.array(distances, dtype=np.float64),
            where=denominator > 0
        )

    def transform(self, fold_distances, fold_graph, test_to_train, test_graph, labels, num_classes):
        means = fold_graph.distances.mean(axis=1) if fold_graph.k else np.zeros(fold_graph.size)
        test_means = test_graph.distances.mean(axis=1) if test_graph.k else np.zeros(test_graph.size)
        fold_secondary = self._normalize(fold_distances, means, means)
        np.fill_diagonal(fold_secondary, 0.0)
        test_secondary = self._normalize(test_to_train, test_means, means)
        return fold_secondary, test_secondary


def create_secondary_calculator(
    kind: SecondaryDistance,
    theta: float = 0.0
) -> Optional[SecondaryDistanceCalculator]:
    """Create the calculator for a secondary distance type (None for NONE)."""
    if kind == SecondaryDistance.NONE:
        return None
    elif kind == SecondaryDistance.SIMCOS:
        return SharedNeighborCalculator(weighted=False)
    elif kind == SecondaryDistance.SIMHUB:
        return SharedNeighborCalculator(weighted=True, theta=theta)
    elif kind == SecondaryDistance.MP:
        return MutualProximityCalculator()
    elif kind == SecondaryDistance.LS:
        return LocalScalingCalculator()
    elif kind == SecondaryDistance.NICDM:
        return NICDMCalculator()
    else:
        raise ValueError(f"Unsupported secondary distance: {kind}")
