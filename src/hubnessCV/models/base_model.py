"""
Base model implementation for hubnessCV.

This module contains the capability contract that every classifier evaluated
by the cross-validation engine implements. Classifiers are scikit-learn
estimators: their constructor arguments are their configuration, which
``get_parameters`` reports and ``copy_configuration`` clones.
"""

from abc import ABC, abstractmethod
from enum import Enum
from typing import Any, Dict, FrozenSet, Optional
import numpy as np
from sklearn.base import BaseEstimator, clone

from ..core.base import ClassifierStateError
from ..core.neighbor_graph import NeighborGraph
from ..data.dataset import LabeledDataset
from ..evaluation.metrics import ClassificationEstimator
from ..utils.logger import get_logger


class Capability(Enum):
    """Data a classifier consumes during training and testing."""
    USES_DISTANCE_MATRIX = "uses_distance_matrix"
    USES_NEIGHBOR_GRAPH = "uses_neighbor_graph"
    DISTANCE_QUERY = "distance_query"
    NEIGHBOR_QUERY = "neighbor_query"
    AUTO_K = "auto_k"


class BaseModel(BaseEstimator, ABC):
    """Base class for classifiers evaluated by hubnessCV."""

    capabilities: FrozenSet[Capability] = frozenset()

    def __init__(self):
        self.logger = get_logger(self.__class__.__name__)
        self.train_indices_: Optional[np.ndarray] = None
        self.train_labels_: Optional[np.ndarray] = None
        self.num_classes_: int = 0
        self.distance_matrix_: Optional[np.ndarray] = None
        self.neighbor_graph_: Optional[NeighborGraph] = None
        self.is_trained = False

    def has_capability(self, capability: Capability) -> bool:
        return capability in self.capabilities

    def get_parameters(self) -> Dict[str, Any]:
        """Configuration parameters of the classifier, for reporting."""
        return self.get_params(deep=False)

    def copy_configuration(self) -> 'BaseModel':
        """Untrained classifier with the same configuration."""
        return clone(self)

    def set_data_indexes(self, indexes: np.ndarray, dataset: LabeledDataset) -> None:
        """
        Set the training instances.

        Args:
            indexes: Global indices of the training instances; positions in
                this array are the positions used by distance matrices and
                neighbor graphs
            dataset: Dataset the indices refer to
        """
        self.train_indices_ = np.asarray(indexes, dtype=np.intp)
        self.train_labels_ = dataset.labels_of(self.train_indices_)
        self.num_classes_ = dataset.num_classes

    def set_distance_matrix(self, distances: np.ndarray) -> None:
        self.distance_matrix_ = distances

    def set_neighbor_graph(self, graph: NeighborGraph) -> None:
        self.neighbor_graph_ = graph

    def find_k(self, k_min: int, k_max: int) -> int:
        """Choose the neighborhood size from ``[k_min, k_max]`` on the training data."""
        raise NotImplementedError(f"{self.__class__.__name__} cannot search for k")

    @abstractmethod
    def train(self) -> None:
        """Train on the data set via ``set_data_indexes`` and the setters."""
        pass

    def train_on_reduced_data(self, reducer: Any) -> None:
        """
        Train on prototypes chosen by an instance selector.

        The default ignores the selector's hubness statistics and trains on
        the prototypes as a regular training set.
        """
        self.train()

    @abstractmethod
    def predict(
        self,
        num_points: int,
        test_to_train_distances: Optional[np.ndarray] = None,
        test_neighbors: Optional[NeighborGraph] = None
    ) -> np.ndarray:
        """
        Predict labels of test points.

        Args:
            num_points: Number of test points
            test_to_train_distances: Array (num_points, n_train) of distances
                to the training points
            test_neighbors: kNN lists of the test points among training
                positions

        Returns:
            Predicted class indices
        """
        pass

    def _check_trained(self) -> None:
        if not self.is_trained:
            raise ClassifierStateError(f"{self.__class__.__name__} must be trained before testing")

    def test(
        self,
        correct_counter: Optional[np.ndarray],
        test_indices: np.ndarray,
        dataset: LabeledDataset,
        num_classes: int,
        test_labels: Optional[np.ndarray] = None,
        test_to_train_distances: Optional[np.ndarray] = None,
        test_neighbors: Optional[NeighborGraph] = None
    ) -> ClassificationEstimator:
        """
        Classify held-out points and estimate the classification quality.

        Args:
            correct_counter: Per-point counter over global indices, incremented
                for every correctly classified test point
            test_indices: Global indices of the test points
            dataset: Dataset the indices refer to
            num_classes: Number of classes
            test_labels: Optional labels over global indices that replace the
                dataset labels as ground truth for the test points
            test_to_train_distances: Distances from test to training points
            test_neighbors: kNN lists of the test points among training
                positions

        Returns:
            ClassificationEstimator of this test fold
        """
        self._check_trained()
        test_indices = np.asarray(test_indices, dtype=np.intp)
        predicted = self.predict(len(test_indices), test_to_train_distances, test_neighbors)
        if test_labels is not None:
            actual = np.asarray(test_labels, dtype=np.intp)[test_indices]
        else:
            actual = dataset.labels_of(test_indices)

        if correct_counter is not None:
            np.add.at(correct_counter, test_indices[predicted == actual], 1)
        return ClassificationEstimator.from_predictions(predicted, actual, num_classes)
