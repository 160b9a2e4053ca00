"""
Instance selection for hubnessCV.

An instance selector picks a subset of a training fold (the prototypes) and
estimates how the prototypes occur as neighbors of the training points. The
unbiased estimate searches the prototype kNN of every training point, so
occurrence statistics reflect the full training distribution; the biased
estimate only counts occurrences among the prototypes themselves.
"""

from abc import ABC, abstractmethod
from typing import Optional
import numpy as np
from sklearn.base import BaseEstimator, clone
from sklearn.utils import check_random_state

from ..core.base import ClassifierStateError
from ..core.fold_neighbors import derive_member_neighbors, position_map
from ..core.neighbor_graph import (
    NeighborGraph,
    hubness_weights_from_bad_occurrences,
    top_k_neighbors,
)
from ..utils.logger import get_logger

# Additive smoothing of class-to-class occurrence priors
LAPLACE_ESTIMATOR = 0.001


def top_ranked_per_class(ranking: np.ndarray, labels: np.ndarray, count: int) -> np.ndarray:
    """
    Best ``count`` positions of a ranking that still represent every class.

    The best-ranked point of each class is always kept, displacing the
    lowest-ranked points of the plain cut. At least one point is kept, and
    more than ``count`` only when there are more classes than ``count``.
    The result keeps the ranking order.
    """
    _, leaders = np.unique(labels[ranking], return_index=True)
    keep = np.zeros(len(ranking), dtype=bool)
    keep[leaders] = True
    remaining = max(1, count) - len(leaders)
    if remaining > 0:
        keep[np.flatnonzero(~keep)[:remaining]] = True
    return ranking[keep]


class InstanceSelector(BaseEstimator, ABC):
    """
    Base class for prototype selection on one training fold.

    Positions returned by the selector refer to the order of the training
    data passed to :meth:`set_training_data`.
    """

    requires_neighbor_graph = False

    def __init__(self):
        self.logger = get_logger(self.__class__.__name__)
        self.global_indices_: Optional[np.ndarray] = None
        self.labels_: Optional[np.ndarray] = None
        self.distances_: Optional[np.ndarray] = None
        self.num_classes_: int = 0
        self.neighbor_graph_: Optional[NeighborGraph] = None
        self.prototype_positions_: Optional[np.ndarray] = None
        self.k_: int = 0
        self.proto_occurrences_: Optional[np.ndarray] = None
        self.proto_good_occurrences_: Optional[np.ndarray] = None
        self.proto_bad_occurrences_: Optional[np.ndarray] = None
        self.proto_class_occurrences_: Optional[np.ndarray] = None
        self.proto_neighbor_sets_: Optional[NeighborGraph] = None

    def copy(self) -> 'InstanceSelector':
        """Unfitted selector with the same configuration."""
        return clone(self)

    def set_training_data(
        self,
        global_indices: np.ndarray,
        labels: np.ndarray,
        distances: np.ndarray,
        num_classes: int
    ) -> None:
        """
        Set the training fold to select from.

        Args:
            global_indices: Global indices of the training points
            labels: Their labels
            distances: Square distance matrix of the training points
            num_classes: Number of classes
        """
        self.global_indices_ = np.asarray(global_indices, dtype=np.intp)
        self.labels_ = np.asarray(labels, dtype=np.intp)
        self.distances_ = distances
        self.num_classes_ = num_classes

    def set_neighbor_graph(self, graph: NeighborGraph) -> None:
        """kNN graph of the training fold, over training positions."""
        self.neighbor_graph_ = graph

    @property
    def training_size(self) -> int:
        return 0 if self.labels_ is None else len(self.labels_)

    def _require_training_data(self) -> None:
        if self.labels_ is None:
            raise ClassifierStateError(f"{self.__class__.__name__} has no training data")

    def _selection_graph(self, k: int) -> NeighborGraph:
        """Training kNN graph of width ``k``, from the given graph when it is wide enough."""
        if self.neighbor_graph_ is not None and self.neighbor_graph_.k >= min(k, self.training_size - 1):
            return self.neighbor_graph_.truncate(k)
        if self.distances_ is None:
            raise ClassifierStateError(f"{self.__class__.__name__} needs distances or a neighbor graph")
        n = self.training_size
        return top_k_neighbors(self.distances_, k, exclude=np.arange(n))

    def reduce_data_set(self, rate: Optional[float] = None) -> np.ndarray:
        """
        Select prototypes.

        Args:
            rate: Fraction of the training points to retain; None or 0 lets
                the selector decide

        Returns:
            Training positions of the prototypes
        """
        self._require_training_data()
        if rate is not None and not 0 <= rate <= 1:
            raise ValueError(f"Selection rate must be in [0, 1], got {rate}")
        selected = self._select(rate if rate else None)
        self.prototype_positions_ = np.asarray(selected, dtype=np.intp)
        self.logger.debug(
            f"Selected {len(self.prototype_positions_)} of {self.training_size} training points"
        )
        return self.prototype_positions_

    @abstractmethod
    def _select(self, rate: Optional[float]) -> np.ndarray:
        """Training positions of the prototypes for a rate (None for automatic)."""
        pass

    def sort_selected_indexes(self) -> None:
        if self.prototype_positions_ is not None:
            self.prototype_positions_ = np.sort(self.prototype_positions_)

    @property
    def prototype_positions(self) -> np.ndarray:
        if self.prototype_positions_ is None:
            raise ClassifierStateError("No prototypes have been selected")
        return self.prototype_positions_

    @property
    def prototype_indices(self) -> np.ndarray:
        """Global indices of the prototypes."""
        return self.global_indices_[self.prototype_positions]

    @property
    def prototype_labels(self) -> np.ndarray:
        return self.labels_[self.prototype_positions]

    @property
    def neighborhood_size(self) -> int:
        return self.k_

    def _store_hubness(self, proto_graph: NeighborGraph, row_labels: np.ndarray) -> None:
        num_prototypes = len(self.prototype_positions)
        self.proto_neighbor_sets_ = proto_graph
        self.proto_occurrences_ = proto_graph.occurrence_counts(num_prototypes)
        self.proto_good_occurrences_, self.proto_bad_occurrences_ = proto_graph.good_bad_occurrences(
            row_labels, self.prototype_labels, num_prototypes
        )
        self.proto_class_occurrences_ = proto_graph.class_occurrences(
            row_labels, self.num_classes_, num_prototypes
        )

    def calculate_prototype_hubness(self, k: int) -> None:
        """
        Unbiased prototype hubness.

        Finds the k nearest prototypes of every training point (prototypes
        excluding themselves) and counts prototype occurrences in those lists.
        With a training neighbor graph the lists are projected from it and
        gap-filled; otherwise they are searched directly.

        Args:
            k: Neighborhood size
        """
        if k <= 0:
            return
        self.k_ = k
        positions = self.prototype_positions
        point_to_proto = self.distances_[:, positions]
        if self.neighbor_graph_ is not None:
            proto_graph = derive_member_neighbors(self.neighbor_graph_, positions, point_to_proto, k)
        else:
            own = position_map(positions, self.training_size)
            proto_graph = top_k_neighbors(point_to_proto, k, exclude=own)
        self._store_hubness(proto_graph, self.labels_)

    def set_prototype_hubness_from_graph(self, graph: NeighborGraph) -> None:
        """Biased prototype hubness: occurrences within the prototype-only kNN graph."""
        self.k_ = graph.k
        self._store_hubness(graph, self.prototype_labels)

    def knn_hubness_weights(self) -> np.ndarray:
        """hw-kNN vote weights of the prototypes from their bad occurrences."""
        if self.proto_bad_occurrences_ is None:
            raise ClassifierStateError("Prototype hubness has not been calculated")
        return hubness_weights_from_bad_occurrences(self.proto_bad_occurrences_)

    def class_to_class_priors(self) -> np.ndarray:
        """
        Smoothed class-to-class occurrence priors.

        Entry [c, d] estimates how often a neighbor of class c occurs in the
        neighbor list of a point of class d, normalized per neighbor class.
        """
        if self.proto_neighbor_sets_ is None:
            raise ClassifierStateError("Prototype hubness has not been calculated")
        one_hot = np.eye(self.num_classes_)[self.prototype_labels]
        priors = (self.proto_class_occurrences_ @ one_hot).T.astype(np.float64)
        totals = priors.sum(axis=1, keepdims=True)
        return (priors + LAPLACE_ESTIMATOR) / (totals + self.num_classes_ * LAPLACE_ESTIMATOR)


class RandomSelector(InstanceSelector):
    """Stratified random sampling of prototypes."""

    def __init__(self, default_rate: float = 0.2, random_state: Optional[int] = None):
        super().__init__()
        self.default_rate = default_rate
        self.random_state = random_state

    def _select(self, rate):
        rate = self.default_rate if rate is None else rate
        rng = check_random_state(self.random_state)
        selected = []
        for label in range(self.num_classes_):
            members = np.flatnonzero(self.labels_ == label)
            if len(members) == 0:
                continue
            count = max(1, int(rate * len(members)))
            selected.append(rng.choice(members, size=count, replace=False))
        return np.concatenate(selected) if selected else np.zeros(0, dtype=np.intp)


class Wilson72Selector(InstanceSelector):
    """
    Edited nearest neighbor (Wilson, 1972).

    Removes points whose label does not win a majority among their
    ``k_selection`` nearest neighbors; the first point seen of every class is
    always kept. With an explicit rate, the ``int(n * rate)`` points with the
    highest same-label neighbor share are kept instead, at least one and
    always including the best point of every class.
    """

    requires_neighbor_graph = True

    def __init__(self, k_selection: Optional[int] = None):
        super().__init__()
        self.k_selection = k_selection

    def _agreement(self):
        k = self.k_selection
        if k is None:
            k = self.neighbor_graph_.k if self.neighbor_graph_ is not None else 1
        graph = self._selection_graph(k)
        if graph.k == 0:
            return np.zeros(graph.size, dtype=np.intp), 0
        same = self.labels_[graph.indices] == self.labels_[:, None]
        return same.sum(axis=1), graph.k

    def _select(self, rate):
        agreement, k = self._agreement()
        if rate is not None:
            ranking = np.argsort(-agreement, kind="stable")
            return top_ranked_per_class(ranking, self.labels_, int(self.training_size * rate))

        threshold = k // 2 + 1
        keep = agreement >= threshold
        # Every class keeps at least its first instance
        labels, first = np.unique(self.labels_, return_index=True)
        for label, position in zip(labels, first):
            if not np.any(keep[self.labels_ == label]):
                keep[position] = True
        return np.flatnonzero(keep)


class InsightSelector(InstanceSelector):
    """
    Hubness-based selection (INSIGHT, Buza et al.).

    Training points are ranked by a score of their good and bad k-occurrences
    and the best-ranked points are kept. Automatic mode keeps points until
    they account for a ``thau`` share of all neighbor occurrences, then adds
    the best point of every class still missing.
    """

    requires_neighbor_graph = True
    CRITERIA = ('good', 'good_relative', 'good_minus_bad', 'xi')

    def __init__(self, k_selection: Optional[int] = None, criterion: str = 'good', thau: float = 0.7):
        super().__init__()
        self.k_selection = k_selection
        self.criterion = criterion
        self.thau = thau

    def instance_scores(self, graph: NeighborGraph) -> np.ndarray:
        """Selection score of every training point."""
        good, bad = graph.good_bad_occurrences(self.labels_)
        total = good + bad
        if self.criterion == 'good':
            return good.astype(np.float64)
        elif self.criterion == 'good_relative':
            return good / (total + 1.0)
        elif self.criterion == 'good_minus_bad':
            return (good - bad) / (total + 1.0)
        elif self.criterion == 'xi':
            return (good - 2.0 * bad).astype(np.float64)
        else:
            raise ValueError(f"Unknown INSIGHT criterion: {self.criterion}. Choose from {self.CRITERIA}")

    def _select(self, rate):
        k = self.k_selection
        if k is None:
            k = self.neighbor_graph_.k if self.neighbor_graph_ is not None else 1
        graph = self._selection_graph(k)
        ranking = np.argsort(-self.instance_scores(graph), kind="stable")
        if rate is not None:
            return top_ranked_per_class(ranking, self.labels_, int(self.training_size * rate))

        occurrences = graph.occurrence_counts()[ranking]
        threshold = self.thau * graph.k * self.training_size
        reached = np.cumsum(occurrences) >= threshold
        count = int(np.argmax(reached)) + 1 if np.any(reached) else len(ranking)
        selected = list(ranking[:count])

        present = set(self.labels_[selected].tolist())
        for position in ranking[count:]:
            label = int(self.labels_[position])
            if label not in present:
                selected.append(position)
                present.add(label)
        return np.asarray(selected, dtype=np.intp)


def create_instance_selector(name: str, **params) -> InstanceSelector:
    """Create an instance selector by name."""
    selector_name = name.lower()

    if selector_name == 'random':
        return RandomSelector(**params)
    elif selector_name in ('enn', 'wilson72'):
        return Wilson72Selector(**params)
    elif selector_name == 'insight':
        return InsightSelector(**params)
    else:
        raise ValueError(f"Unknown instance selector: {name}")
