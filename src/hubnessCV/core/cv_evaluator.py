"""
Repeated stratified cross-validation of kNN-sensitive classifiers.

The evaluator computes one neighbor graph over the whole dataset and derives
the exact per-fold training graphs and test-to-training neighbor lists from
it. Each fold's data is prepared once and shared read-only by one task per
classifier; folds run sequentially.
"""

import time
from concurrent.futures import ThreadPoolExecutor, as_completed
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional, Tuple
import numpy as np

from .base import BaseEvaluator, CVConfig, KMode, ProtoHubnessMode, SecondaryDistance
from .approximate_knn import build_neighbor_graph
from .distance_matrix import DistanceMatrix
from .fold_data import FoldData
from .fold_generator import FoldAssignment, StratifiedFoldGenerator
from .fold_neighbors import (
    derive_fold_graph,
    derive_sub_graph,
    derive_test_neighbors,
    position_map,
    project_neighbor_lists,
)
from .neighbor_graph import NeighborGraph, top_k_neighbors
from .secondary_distances import create_secondary_calculator
from ..data.dataset import LabeledDataset
from ..evaluation.metrics import ClassificationEstimator, EstimatorAccumulator
from ..models.base_model import BaseModel, Capability
from ..utils.helpers import format_time
from ..utils.logger import get_logger

# Extra global neighbors kept beyond the largest requested k in exact mode
EXACT_K_MARGIN = 10


@dataclass
class ClassifierFailure:
    """A classifier task that raised during one fold."""
    classifier: str
    repetition: int
    fold: int
    error: str


@dataclass
class CVResults:
    """Results of a repeated cross-validation run."""
    classifier_names: List[str]
    estimators: Dict[str, List[Optional[ClassificationEstimator]]]
    averages: Dict[str, ClassificationEstimator]
    correct_counts: Dict[str, np.ndarray]
    execution_times: Dict[str, float]
    num_full_folds: Dict[str, int]
    folds: FoldAssignment
    num_completed_folds: Dict[str, int] = field(default_factory=dict)
    k_big: int = 0
    failures: List[ClassifierFailure] = field(default_factory=list)
    parameters: Dict[str, Any] = field(default_factory=dict)

    @property
    def times(self) -> int:
        return self.folds.times

    @property
    def num_folds(self) -> int:
        return self.folds.num_folds

    def failures_of(self, name: str) -> List[ClassifierFailure]:
        return [failure for failure in self.failures if failure.classifier == name]


class MultiCrossValidation(BaseEvaluator):
    """
    Repeated stratified cross-validation of several classifiers at once.

    Args:
        config: Cross-validation configuration
        classifiers: Classifier configurations by name; every fold trains a
            fresh copy of each
        reducer: Optional instance selector applied to every training fold
    """

    def __init__(
        self,
        config: CVConfig,
        classifiers: Dict[str, BaseModel],
        reducer: Optional[Any] = None
    ):
        super().__init__(config)
        self.classifiers = dict(classifiers)
        self.reducer = reducer
        self.logger = get_logger("MultiCrossValidation")
        self.secondary_calculator = create_secondary_calculator(config.secondary_distance)
        self.global_graph_: Optional[NeighborGraph] = None
        self.k_big_ = 0
        self._validate_config()

    def _validate_config(self) -> None:
        """Validate configuration parameters."""
        cfg = self.config
        if cfg.times < 1:
            raise ValueError(f"times must be at least 1, got {cfg.times}")
        if cfg.num_folds < 2:
            raise ValueError(f"num_folds must be at least 2, got {cfg.num_folds}")
        if cfg.k_mode == KMode.SINGLE and cfg.k < 1:
            raise ValueError(f"k must be positive, got {cfg.k}")
        if cfg.k_mode == KMode.INTERVAL and not 1 <= cfg.k_min <= cfg.k_max:
            raise ValueError(f"Invalid k range [{cfg.k_min}, {cfg.k_max}]")
        if cfg.secondary_distance != SecondaryDistance.NONE and cfg.secondary_k < 1:
            raise ValueError(f"secondary_k must be positive, got {cfg.secondary_k}")
        if not 0 < cfg.approximate_alpha <= 1:
            raise ValueError(f"approximate_alpha must be in (0, 1], got {cfg.approximate_alpha}")
        if not 0 <= cfg.selection_rate <= 1:
            raise ValueError(f"selection_rate must be in [0, 1], got {cfg.selection_rate}")
        if cfg.num_common_threads < 1:
            raise ValueError(f"num_common_threads must be at least 1, got {cfg.num_common_threads}")
        if not self.classifiers:
            raise ValueError("At least one classifier is required")

    @property
    def working_k(self) -> int:
        """Width of the per-fold neighbor lists: k (k_max when searching k) or a larger classifier k."""
        classifier_k = [int(classifier.get_parameters().get('k') or 0) for classifier in self.classifiers.values()]
        return max([self.config.k_range[1], *classifier_k])

    def needs_neighbors(self) -> bool:
        """Whether any consumer needs neighbor information."""
        if self.config.secondary_distance != SecondaryDistance.NONE or self.reducer is not None:
            return True
        return any(
            classifier.has_capability(Capability.USES_NEIGHBOR_GRAPH)
            or classifier.has_capability(Capability.NEIGHBOR_QUERY)
            for classifier in self.classifiers.values()
        )

    def compute_k_big(self, num_instances: int) -> int:
        """
        Neighborhood size of the global graph.

        Twice the largest k without a secondary distance, the secondary
        neighborhood plus the largest k with one; exact mode adds a margin.
        """
        margin = 0 if self.config.approximate else EXACT_K_MARGIN
        if self.config.secondary_distance == SecondaryDistance.NONE:
            k_big = 2 * self.working_k + margin
        else:
            k_big = self.config.secondary_k + self.working_k + margin
        return max(0, min(k_big, num_instances - 1))

    def build_global_graph(self, distances: DistanceMatrix) -> NeighborGraph:
        """Compute and freeze the global neighbor graph."""
        self.k_big_ = self.compute_k_big(distances.size)
        self.logger.info(
            f"Computing {'approximate' if self.config.approximate else 'exact'} "
            f"global {self.k_big_}-NN graph for {distances.size} points"
        )
        start = time.perf_counter()
        graph = build_neighbor_graph(
            distances.square,
            self.k_big_,
            approximate=self.config.approximate,
            alpha=self.config.approximate_alpha,
            n_jobs=self.config.num_common_threads,
            random_state=self.config.random_state
        )
        self.logger.info(f"Global neighbor graph computed in {format_time(time.perf_counter() - start)}")
        return graph.freeze()

    def _resolve_folds(self, folds: Optional[FoldAssignment], dataset: LabeledDataset) -> FoldAssignment:
        if folds is None:
            generator = StratifiedFoldGenerator(self.config.times, self.config.num_folds, self.config.random_state)
            return generator.generate(dataset.labels, dataset.num_classes)
        folds.check_shape(self.config.times, self.config.num_folds)
        folds.validate(len(dataset))
        return folds

    def prepare_fold(
        self,
        distances: DistanceMatrix,
        dataset: LabeledDataset,
        folds: FoldAssignment,
        repetition: int,
        fold: int
    ) -> FoldData:
        """
        Derive everything the classifiers need for one fold.

        Args:
            distances: Distance matrix of the whole dataset
            dataset: The dataset
            folds: Fold assignment
            repetition: Repetition index
            fold: Fold index

        Returns:
            FoldData over the training points, or over the prototypes when an
            instance selector is configured
        """
        train_idx = folds.training_indices(repetition, fold)
        # Frozen below; the caller's assignment stays writable
        test_idx = folds.test_indices(repetition, fold).copy()
        fold_dist = distances.sub_matrix(train_idx)
        test_to_train = distances.cross_distances(test_idx, train_idx)
        k = self.working_k

        fold_graph = test_neighbors = None
        if self.global_graph_ is not None:
            if self.secondary_calculator is not None:
                secondary_k = self.config.secondary_k
                secondary_graph = derive_fold_graph(self.global_graph_, train_idx, fold_dist, secondary_k)
                secondary_test = derive_test_neighbors(
                    self.global_graph_, test_idx, train_idx, test_to_train, secondary_k
                )
                fold_dist, test_to_train = self.secondary_calculator.transform(
                    fold_dist, secondary_graph, test_to_train, secondary_test,
                    dataset.labels_of(train_idx), dataset.num_classes
                )
                fold_graph = build_neighbor_graph(
                    fold_dist, k,
                    approximate=self.config.approximate,
                    alpha=self.config.approximate_alpha,
                    n_jobs=self.config.num_common_threads,
                    random_state=self.config.random_state
                )
                test_neighbors = top_k_neighbors(test_to_train, k)
            else:
                fold_graph = derive_fold_graph(self.global_graph_, train_idx, fold_dist, k)
                test_neighbors = derive_test_neighbors(self.global_graph_, test_idx, train_idx, test_to_train, k)

        fold_data = FoldData(
            repetition=repetition,
            fold=fold,
            train_indices=train_idx,
            test_indices=test_idx,
            distances=fold_dist,
            test_to_train=test_to_train,
            neighbor_graph=fold_graph,
            test_neighbors=test_neighbors
        )
        if self.reducer is not None:
            fold_data = self._reduce_fold(fold_data, dataset)
        return fold_data.freeze()

    def _reduce_fold(self, fold_data: FoldData, dataset: LabeledDataset) -> FoldData:
        """Replace the training points of a fold by the selected prototypes."""
        k = self.working_k
        reducer = self.reducer.copy()
        reducer.set_training_data(
            fold_data.train_indices,
            dataset.labels_of(fold_data.train_indices),
            fold_data.distances,
            dataset.num_classes
        )
        if fold_data.neighbor_graph is not None:
            reducer.set_neighbor_graph(fold_data.neighbor_graph.copy())

        rate = self.config.selection_rate
        reducer.reduce_data_set(rate if rate > 0 else None)
        reducer.sort_selected_indexes()
        prototypes = reducer.prototype_positions

        reduced_dist = fold_data.distances[np.ix_(prototypes, prototypes)]
        reduced_test = fold_data.test_to_train[:, prototypes]
        reduced_graph = derive_sub_graph(fold_data.neighbor_graph, prototypes, reduced_dist, k)
        reduced_test_neighbors = project_neighbor_lists(
            fold_data.test_neighbors.indices,
            fold_data.test_neighbors.distances,
            position_map(prototypes, len(fold_data.train_indices)),
            reduced_test,
            k
        )

        if self.config.proto_hubness_mode == ProtoHubnessMode.UNBIASED:
            reducer.calculate_prototype_hubness(k)
        else:
            reducer.set_prototype_hubness_from_graph(reduced_graph)

        self.logger.debug(
            f"Repetition {fold_data.repetition}, fold {fold_data.fold}: "
            f"{len(prototypes)} prototypes out of {len(fold_data.train_indices)} training points"
        )
        return FoldData(
            repetition=fold_data.repetition,
            fold=fold_data.fold,
            train_indices=fold_data.train_indices[prototypes],
            test_indices=fold_data.test_indices,
            distances=reduced_dist,
            test_to_train=reduced_test,
            neighbor_graph=reduced_graph,
            test_neighbors=reduced_test_neighbors,
            reducer=reducer
        )

    def _run_classifier(
        self,
        template: BaseModel,
        fold_data: FoldData,
        dataset: LabeledDataset,
        correct_counter: np.ndarray,
        test_labels: Optional[np.ndarray]
    ) -> Tuple[ClassificationEstimator, float]:
        """Train and test a fresh copy of one classifier on one fold."""
        start = time.perf_counter()
        classifier = template.copy_configuration()
        classifier.set_data_indexes(fold_data.train_indices, dataset)
        if classifier.has_capability(Capability.USES_DISTANCE_MATRIX):
            classifier.set_distance_matrix(fold_data.distances)
        if classifier.has_capability(Capability.AUTO_K) and self.config.k_mode == KMode.INTERVAL:
            classifier.find_k(self.config.k_min, self.config.k_max)
        if classifier.has_capability(Capability.USES_NEIGHBOR_GRAPH):
            classifier.set_neighbor_graph(fold_data.neighbor_graph)

        if fold_data.reducer is not None and self.config.proto_hubness_mode == ProtoHubnessMode.UNBIASED:
            classifier.train_on_reduced_data(fold_data.reducer)
        else:
            classifier.train()

        estimator = classifier.test(
            correct_counter,
            fold_data.test_indices,
            dataset,
            dataset.num_classes,
            test_labels=test_labels,
            test_to_train_distances=(
                fold_data.test_to_train if classifier.has_capability(Capability.DISTANCE_QUERY) else None
            ),
            test_neighbors=(
                fold_data.test_neighbors if classifier.has_capability(Capability.NEIGHBOR_QUERY) else None
            )
        )
        return estimator, time.perf_counter() - start

    def evaluate(
        self,
        distances: DistanceMatrix,
        dataset: LabeledDataset,
        folds: Optional[FoldAssignment] = None,
        test_labels: Optional[np.ndarray] = None
    ) -> CVResults:
        """
        Run the repeated cross-validation.

        Args:
            distances: Distance matrix of the whole dataset
            dataset: Labels of the dataset
            folds: Optional fold assignment; generated when omitted
            test_labels: Optional labels over global indices used as ground
                truth for the test points instead of the dataset labels

        Returns:
            CVResults of the completed run

        Raises:
            FoldConfigurationError: If the supplied folds do not fit the run
            ValueError: If the inputs disagree in size
        """
        if distances.size != len(dataset):
            raise ValueError(
                f"Distance matrix covers {distances.size} points but the dataset has {len(dataset)}"
            )
        if test_labels is not None and len(test_labels) != len(dataset):
            raise ValueError(f"Expected {len(dataset)} test labels, got {len(test_labels)}")

        folds = self._resolve_folds(folds, dataset)
        cfg = self.config
        names = list(self.classifiers)
        self.logger.info(
            f"Starting {cfg.times} x {cfg.num_folds}-fold cross-validation of {len(names)} "
            f"classifiers on {len(dataset)} points ({dataset.num_classes} classes)"
        )
        self.logger.info(f"Parameters: {self.get_parameters()}")

        run_start = time.perf_counter()
        self.global_graph_ = self.build_global_graph(distances) if self.needs_neighbors() else None

        total_tests = cfg.total_tests
        estimators = {name: [None] * total_tests for name in names}
        accumulators = {name: EstimatorAccumulator(dataset.num_classes) for name in names}
        correct_counts = {name: np.zeros(len(dataset), dtype=np.int64) for name in names}
        execution_times = {name: 0.0 for name in names}
        failures: List[ClassifierFailure] = []

        for repetition in range(cfg.times):
            for fold in range(cfg.num_folds):
                fold_data = self.prepare_fold(distances, dataset, folds, repetition, fold)
                with ThreadPoolExecutor(max_workers=len(names)) as executor:
                    futures = {
                        executor.submit(
                            self._run_classifier,
                            self.classifiers[name],
                            fold_data,
                            dataset,
                            correct_counts[name],
                            test_labels
                        ): name
                        for name in names
                    }
                    for future in as_completed(futures):
                        name = futures[future]
                        try:
                            estimator, elapsed = future.result()
                            if not accumulators[name].add(estimator):
                                self.logger.warning(
                                    f"Classifier {name} returned a partial estimate in repetition {repetition}, "
                                    f"fold {fold}: confusion matrix of shape {estimator.confusion_matrix.shape}"
                                )
                        except Exception as e:
                            self.logger.error(
                                f"Classifier {name} failed in repetition {repetition}, fold {fold}: {e}",
                                exc_info=True
                            )
                            failures.append(ClassifierFailure(name, repetition, fold, repr(e)))
                            continue
                        execution_times[name] += elapsed
                        if cfg.keep_all_evaluations:
                            estimators[name][repetition * cfg.num_folds + fold] = estimator
                self.logger.debug(f"Repetition {repetition}, fold {fold} completed")
            self.logger.info(f"Repetition {repetition + 1}/{cfg.times} completed")

        averages = {name: accumulators[name].finalize(cfg.times) for name in names}
        for name in names:
            self.logger.info(
                f"{name}: accuracy={averages[name].accuracy:.4f}, "
                f"macro F1={averages[name].macro_f1:.4f}, "
                f"{accumulators[name].count}/{total_tests} full folds, "
                f"time {format_time(execution_times[name])}"
            )
        if failures:
            self.logger.warning(f"{len(failures)} classifier tasks failed")
        self.logger.info(f"Cross-validation finished in {format_time(time.perf_counter() - run_start)}")

        self.results_ = CVResults(
            classifier_names=names,
            estimators=estimators,
            averages=averages,
            correct_counts=correct_counts,
            execution_times=execution_times,
            num_full_folds={name: accumulators[name].count for name in names},
            num_completed_folds={name: accumulators[name].completed for name in names},
            folds=folds,
            k_big=self.k_big_,
            failures=failures,
            parameters={
                'evaluation': self.get_parameters(),
                'classifiers': {name: clf.get_parameters() for name, clf in self.classifiers.items()},
            }
        )
        return self.results_
