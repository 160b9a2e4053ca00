"""
Per-fold structures handed to classifiers.
"""

from typing import Any, Optional
from dataclasses import dataclass
import numpy as np

from .neighbor_graph import NeighborGraph


@dataclass
class FoldData:
    """
    Everything derived for one (repetition, fold) pair.

    ``train_indices`` are global indices of the points classifiers train on
    (the prototypes when instance selection is active); ``distances``,
    ``neighbor_graph``, ``test_to_train`` and ``test_neighbors`` are expressed
    over positions in ``train_indices``.
    """
    repetition: int
    fold: int
    train_indices: np.ndarray
    test_indices: np.ndarray
    distances: np.ndarray
    test_to_train: np.ndarray
    neighbor_graph: Optional[NeighborGraph] = None
    test_neighbors: Optional[NeighborGraph] = None
    reducer: Optional[Any] = None

    def freeze(self) -> 'FoldData':
        """Make the shared arrays read-only for the concurrent classifier tasks."""
        for array in (self.train_indices, self.test_indices, self.distances, self.test_to_train):
            array.setflags(write=False)
        if self.neighbor_graph is not None:
            self.neighbor_graph.freeze()
        if self.test_neighbors is not None:
            self.test_neighbors.freeze()
        return self
