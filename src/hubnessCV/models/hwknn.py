"""
Hubness-weighted kNN classifier.

Each training point votes with weight ``exp(-(b - mean(b)) / std(b))`` where
``b`` is its bad k-occurrence: the number of times it appears in neighbor
lists of points with a different label. Bad hubs are thereby down-weighted.
"""

from typing import Any, Optional
import numpy as np

from .base_model import Capability
from .knn import KNNClassifier
from ..core.base import ClassifierStateError


class HwKNNClassifier(KNNClassifier):
    """kNN with hubness-aware vote weights from the training neighbor graph."""

    capabilities = frozenset({
        Capability.USES_NEIGHBOR_GRAPH,
        Capability.NEIGHBOR_QUERY,
        Capability.DISTANCE_QUERY,
    })

    def __init__(self, k: int = 5):
        super().__init__(k=k)
        self.weights_: Optional[np.ndarray] = None

    def train(self) -> None:
        super().train()
        if self.neighbor_graph_ is None:
            self.is_trained = False
            raise ClassifierStateError("HwKNNClassifier requires a training neighbor graph")
        self.weights_ = self.neighbor_graph_.truncate(self.k).hw_knn_weights(self.train_labels_)

    def train_on_reduced_data(self, reducer: Any) -> None:
        """Take vote weights from the prototype hubness estimated by the selector."""
        super().train()
        weights = reducer.knn_hubness_weights()
        if len(weights) != len(self.train_indices_):
            self.is_trained = False
            raise ClassifierStateError(
                f"Selector provides {len(weights)} prototype weights for "
                f"{len(self.train_indices_)} training points"
            )
        self.weights_ = weights

    def _vote_weights(self) -> Optional[np.ndarray]:
        return self.weights_
