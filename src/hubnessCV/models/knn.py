"""
kNN classifier on precomputed distances.

Majority vote among the k nearest training points; the neighborhood size can
be chosen automatically by leave-one-out accuracy on the training fold.
"""

from typing import Optional
import numpy as np

from .base_model import BaseModel, Capability
from ..core.base import ClassifierStateError
from ..core.neighbor_graph import NeighborGraph, top_k_neighbors


def weighted_vote(
    neighbor_indices: np.ndarray,
    train_labels: np.ndarray,
    num_classes: int,
    weights: Optional[np.ndarray] = None,
    class_priors: Optional[np.ndarray] = None
) -> np.ndarray:
    """
    Class with the largest (weighted) vote among each row's neighbors.

    Ties go to the class with the larger prior; rows without neighbors get
    the most frequent class.
    """
    m, k = neighbor_indices.shape
    votes = np.zeros((m, num_classes))
    if k > 0:
        vote_weights = np.ones(neighbor_indices.shape) if weights is None else weights[neighbor_indices]
        rows = np.repeat(np.arange(m), k)
        np.add.at(votes, (rows, train_labels[neighbor_indices].ravel()), vote_weights.ravel())
    if class_priors is None:
        class_priors = np.zeros(num_classes)
    tied = votes == votes.max(axis=1, keepdims=True)
    return np.argmax(np.where(tied, class_priors[None, :], -np.inf), axis=1)


class KNNClassifier(BaseModel):
    """k-nearest neighbor classifier with majority voting."""

    capabilities = frozenset({
        Capability.USES_DISTANCE_MATRIX,
        Capability.DISTANCE_QUERY,
        Capability.NEIGHBOR_QUERY,
        Capability.AUTO_K,
    })

    def __init__(self, k: int = 5):
        super().__init__()
        self.k = k
        self.class_priors_: Optional[np.ndarray] = None

    def _require_training_data(self) -> None:
        if self.train_indices_ is None:
            raise ClassifierStateError(f"{self.__class__.__name__} has no training data")

    def find_k(self, k_min: int, k_max: int) -> int:
        """
        Choose k by leave-one-out accuracy on the training distance matrix.

        Args:
            k_min: Smallest candidate k
            k_max: Largest candidate k

        Returns:
            The smallest k with the best leave-one-out accuracy
        """
        self._require_training_data()
        if self.distance_matrix_ is None:
            raise ClassifierStateError("A distance matrix is required to search for k")

        n = len(self.train_indices_)
        graph = top_k_neighbors(self.distance_matrix_, k_max, exclude=np.arange(n))
        priors = np.bincount(self.train_labels_, minlength=self.num_classes_).astype(np.float64)

        best_k, best_accuracy = k_min, -1.0
        for k in range(k_min, k_max + 1):
            predicted = weighted_vote(graph.indices[:, :k], self.train_labels_, self.num_classes_,
                                      class_priors=priors)
            accuracy = float(np.mean(predicted == self.train_labels_)) if n else 0.0
            if accuracy > best_accuracy:
                best_k, best_accuracy = k, accuracy

        self.logger.debug(f"Selected k={best_k} with leave-one-out accuracy {best_accuracy:.4f}")
        self.k = best_k
        return best_k

    def train(self) -> None:
        self._require_training_data()
        self.class_priors_ = np.bincount(self.train_labels_, minlength=self.num_classes_).astype(np.float64)
        self.is_trained = True

    def _vote_weights(self) -> Optional[np.ndarray]:
        return None

    def _query_neighbors(
        self,
        num_points: int,
        test_to_train_distances: Optional[np.ndarray],
        test_neighbors: Optional[NeighborGraph]
    ) -> np.ndarray:
        if test_neighbors is not None:
            return test_neighbors.indices[:, :self.k]
        if test_to_train_distances is not None:
            return top_k_neighbors(test_to_train_distances, self.k).indices
        if num_points == 0:
            return np.zeros((0, 0), dtype=np.intp)
        raise ValueError("Either test distances or test neighbors must be provided")

    def predict(self, num_points, test_to_train_distances=None, test_neighbors=None):
        self._check_trained()
        neighbors = self._query_neighbors(num_points, test_to_train_distances, test_neighbors)
        return weighted_vote(neighbors, self.train_labels_, self.num_classes_,
                             weights=self._vote_weights(), class_priors=self.class_priors_)
