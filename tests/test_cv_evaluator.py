"""
End-to-end tests for the repeated cross-validation orchestrator.
"""
import numpy as np
import pytest

from hubnessCV.core.base import CVConfig, FoldConfigurationError, KMode, ProtoHubnessMode, SecondaryDistance
from hubnessCV.core.cv_evaluator import EXACT_K_MARGIN, MultiCrossValidation
from hubnessCV.core.fold_generator import FoldAssignment, StratifiedFoldGenerator
from hubnessCV.core.neighbor_graph import top_k_neighbors
from hubnessCV.evaluation.metrics import ClassificationEstimator
from hubnessCV.models import HwKNNClassifier, KNNClassifier, ZeroRuleClassifier
from hubnessCV.preprocessing.instance_selection import InsightSelector, RandomSelector


class HeldOutFailingClassifier(KNNClassifier):
    """kNN that fails to train whenever the given points are held out."""

    def __init__(self, k: int = 3, held_out: tuple = ()):
        super().__init__(k=k)
        self.held_out = held_out

    def train(self) -> None:
        if not np.isin(self.held_out, self.train_indices_).any():
            raise RuntimeError("training set without the watched points")
        super().train()


class PartialEstimateClassifier(ZeroRuleClassifier):
    """Baseline whose estimates cover only `size` classes."""

    def __init__(self, size: int = 1):
        super().__init__()
        self.size = size

    def test(self, correct_counter, test_indices, dataset, num_classes, **kwargs):
        return ClassificationEstimator.from_confusion_matrix(np.eye(self.size) * len(test_indices))


def default_classifiers(k=3):
    return {
        'knn': KNNClassifier(k=k),
        'hwknn': HwKNNClassifier(k=k),
        'zerorule': ZeroRuleClassifier(),
    }


class TestMultiCrossValidation:
    """Test suite for MultiCrossValidation."""

    def test_complete_run(self, distances_100, dataset_100):
        """Test a run where every classifier completes every fold."""
        config = CVConfig(times=2, num_folds=5, k=3, random_state=0)
        evaluator = MultiCrossValidation(config, default_classifiers())

        results = evaluator.evaluate(distances_100, dataset_100)

        assert results.classifier_names == ['knn', 'hwknn', 'zerorule']
        assert results.times == 2
        assert results.num_folds == 5
        assert results.failures == []
        assert results.k_big == 2 * 3 + EXACT_K_MARGIN
        for name in results.classifier_names:
            assert results.num_full_folds[name] == 10
            assert len(results.estimators[name]) == 10
            assert all(estimator is not None for estimator in results.estimators[name])
            assert 0.0 <= results.averages[name].accuracy <= 1.0
            assert results.correct_counts[name].max() <= 2

        baseline = results.averages['zerorule']
        assert baseline.accuracy == pytest.approx(0.6)
        assert np.allclose(baseline.confusion_matrix, [[60, 40], [0, 0]])
        assert results.averages['knn'].accuracy > 0.6
        assert evaluator.get_results() is results

    def test_failing_classifier_is_isolated(self, distances_100, dataset_100):
        """Test that one failing fold only affects the failing classifier."""
        folds = StratifiedFoldGenerator(times=1, num_folds=5, random_state=3).generate(dataset_100.labels)
        watched = tuple(folds.test_indices(0, 3).tolist())
        classifiers = {
            'flaky': HeldOutFailingClassifier(k=3, held_out=watched),
            'knn': KNNClassifier(k=3),
        }
        config = CVConfig(times=1, num_folds=5, k=3)

        results = MultiCrossValidation(config, classifiers).evaluate(distances_100, dataset_100, folds=folds)

        assert results.num_full_folds['flaky'] == 4
        assert results.num_full_folds['knn'] == 5
        assert len(results.failures) == 1
        failure = results.failures[0]
        assert (failure.classifier, failure.repetition, failure.fold) == ('flaky', 0, 3)
        assert results.estimators['flaky'][3] is None
        assert results.correct_counts['flaky'][list(watched)].sum() == 0

        # Averages use the classifier's own completed folds
        completed = [est.accuracy for est in results.estimators['flaky'] if est is not None]
        assert results.averages['flaky'].accuracy == pytest.approx(np.mean(completed))

    @pytest.mark.parametrize("size", [1, 3])
    def test_partial_estimates_are_not_full_folds(self, distances_100, dataset_100, size):
        """Test that estimates of the wrong size only contribute their scalars."""
        classifiers = {'partial': PartialEstimateClassifier(size=size), 'zerorule': ZeroRuleClassifier()}
        config = CVConfig(times=1, num_folds=5, random_state=0)

        results = MultiCrossValidation(config, classifiers).evaluate(distances_100, dataset_100)

        assert results.failures == []
        assert results.num_full_folds == {'partial': 0, 'zerorule': 5}
        assert results.num_completed_folds == {'partial': 5, 'zerorule': 5}
        partial = results.averages['partial']
        assert partial.accuracy == pytest.approx(1.0)
        assert np.allclose(partial.confusion_matrix, 0.0)
        assert np.allclose(partial.precision, 0.0)
        assert np.allclose(results.averages['zerorule'].confusion_matrix, [[60, 40], [0, 0]])

    def test_supplied_folds_must_fit(self, distances_100, dataset_100):
        """Test that a fold assignment of the wrong shape is rejected."""
        folds = StratifiedFoldGenerator(times=1, num_folds=4, random_state=0).generate(dataset_100.labels)
        evaluator = MultiCrossValidation(CVConfig(times=1, num_folds=5, k=3), default_classifiers())

        with pytest.raises(FoldConfigurationError):
            evaluator.evaluate(distances_100, dataset_100, folds=folds)

        broken = FoldAssignment([[list(range(0, 50)), list(range(40, 100))]])
        evaluator = MultiCrossValidation(CVConfig(times=1, num_folds=2, k=3), default_classifiers())
        with pytest.raises(FoldConfigurationError):
            evaluator.evaluate(distances_100, dataset_100, folds=broken)

    def test_size_mismatch(self, small_distances, dataset_100):
        """Test that distances and labels must cover the same points."""
        evaluator = MultiCrossValidation(CVConfig(times=1, num_folds=2), default_classifiers())

        with pytest.raises(ValueError):
            evaluator.evaluate(small_distances, dataset_100)

    @pytest.mark.parametrize("changes", [
        {'times': 0},
        {'num_folds': 1},
        {'k': 0},
        {'k_mode': KMode.INTERVAL, 'k_min': 5, 'k_max': 2},
        {'approximate_alpha': 0.0},
        {'selection_rate': 1.5},
        {'num_common_threads': 0},
    ])
    def test_invalid_configuration(self, changes):
        """Test configuration validation."""
        with pytest.raises(ValueError):
            MultiCrossValidation(CVConfig(**changes), default_classifiers())

    def test_requires_classifiers(self):
        """Test that a run needs at least one classifier."""
        with pytest.raises(ValueError):
            MultiCrossValidation(CVConfig(), {})

    def test_k_big(self):
        """Test the global neighborhood size."""
        exact = MultiCrossValidation(CVConfig(k=5), default_classifiers())
        approximate = MultiCrossValidation(CVConfig(k=5, approximate=True, approximate_alpha=0.5), default_classifiers())
        secondary = MultiCrossValidation(
            CVConfig(k_mode=KMode.INTERVAL, k_min=1, k_max=8, secondary_distance=SecondaryDistance.MP, secondary_k=20),
            default_classifiers()
        )

        assert exact.compute_k_big(1000) == 20
        assert approximate.compute_k_big(1000) == 10
        assert secondary.compute_k_big(1000) == 38
        assert secondary.compute_k_big(30) == 29

    def test_working_k_covers_classifier_k(self):
        """Test that a classifier k above the configured k widens the neighbor lists."""
        evaluator = MultiCrossValidation(CVConfig(k=3), {'knn': KNNClassifier(k=7), 'zerorule': ZeroRuleClassifier()})

        assert evaluator.working_k == 7
        assert evaluator.compute_k_big(1000) == 2 * 7 + EXACT_K_MARGIN

    def test_graph_only_built_when_needed(self, distances_100, dataset_100):
        """Test that a run of baselines skips the global graph."""
        evaluator = MultiCrossValidation(CVConfig(times=1, num_folds=5), {'zerorule': ZeroRuleClassifier()})

        assert not evaluator.needs_neighbors()
        evaluator.evaluate(distances_100, dataset_100)
        assert evaluator.global_graph_ is None

    def test_prepared_fold_is_exact_and_frozen(self, distances_100, dataset_100):
        """Test the derived lists of a prepared fold against brute force."""
        evaluator = MultiCrossValidation(CVConfig(times=1, num_folds=5, k=3), default_classifiers())
        folds = StratifiedFoldGenerator(times=1, num_folds=5, random_state=1).generate(dataset_100.labels)
        evaluator.global_graph_ = evaluator.build_global_graph(distances_100)

        fold_data = evaluator.prepare_fold(distances_100, dataset_100, folds, 0, 2)
        expected = top_k_neighbors(fold_data.test_to_train, 3)

        assert np.array_equal(fold_data.test_neighbors.indices, expected.indices)
        assert fold_data.neighbor_graph.k == 3
        assert fold_data.neighbor_graph.frozen
        assert not fold_data.distances.flags.writeable
        assert evaluator.global_graph_.frozen
        assert not fold_data.test_indices.flags.writeable
        assert folds.test_indices(0, 2).flags.writeable

    def test_supplied_folds_stay_writable(self, distances_100, dataset_100):
        """Test that a run leaves the caller's fold assignment untouched."""
        folds = StratifiedFoldGenerator(times=1, num_folds=5, random_state=2).generate(dataset_100.labels)
        before = [fold.copy() for fold in folds.folds[0]]

        MultiCrossValidation(CVConfig(times=1, num_folds=5, k=3), default_classifiers()).evaluate(
            distances_100, dataset_100, folds=folds
        )

        for fold, original_fold in zip(folds.folds[0], before):
            assert fold.flags.writeable
            assert np.array_equal(fold, original_fold)


class TestRunVariants:
    """Runs with secondary distances, k search, approximate graphs and instance selection."""

    @pytest.mark.parametrize("kind", [
        SecondaryDistance.SIMCOS,
        SecondaryDistance.SIMHUB,
        SecondaryDistance.MP,
        SecondaryDistance.LS,
        SecondaryDistance.NICDM,
    ])
    def test_secondary_distances(self, kind, distances_100, dataset_100):
        """Test that runs in every secondary space complete."""
        config = CVConfig(times=1, num_folds=5, k=3, secondary_distance=kind, secondary_k=10, random_state=0)

        results = MultiCrossValidation(config, default_classifiers()).evaluate(distances_100, dataset_100)

        assert results.failures == []
        assert results.k_big == 10 + 3 + EXACT_K_MARGIN

    def test_interval_mode(self, distances_100, dataset_100):
        """Test that kNN searches k inside the interval."""
        config = CVConfig(times=1, num_folds=5, k_mode=KMode.INTERVAL, k_min=1, k_max=6, random_state=0)
        evaluator = MultiCrossValidation(config, {'knn': KNNClassifier(k=1), 'hwknn': HwKNNClassifier(k=3)})

        results = evaluator.evaluate(distances_100, dataset_100)

        assert evaluator.working_k == 6
        assert results.failures == []
        assert results.parameters['classifiers']['knn'] == {'k': 1}

    def test_approximate_graph(self, distances_100, dataset_100):
        """Test a run on the approximate global graph."""
        config = CVConfig(times=1, num_folds=5, k=3, approximate=True, approximate_alpha=0.5, random_state=0)

        results = MultiCrossValidation(config, default_classifiers()).evaluate(distances_100, dataset_100)

        assert results.failures == []
        assert results.k_big == 6

    @pytest.mark.parametrize("mode", [ProtoHubnessMode.UNBIASED, ProtoHubnessMode.BIASED])
    def test_instance_selection(self, mode, distances_100, dataset_100):
        """Test runs where the classifiers train on prototypes."""
        config = CVConfig(times=1, num_folds=5, k=3, selection_rate=0.5, proto_hubness_mode=mode, random_state=0)
        evaluator = MultiCrossValidation(config, default_classifiers(), reducer=RandomSelector(random_state=0))
        folds = StratifiedFoldGenerator(times=1, num_folds=5, random_state=0).generate(dataset_100.labels)
        evaluator.global_graph_ = evaluator.build_global_graph(distances_100)

        fold_data = evaluator.prepare_fold(distances_100, dataset_100, folds, 0, 0)
        assert len(fold_data.train_indices) == 40
        assert fold_data.distances.shape == (40, 40)
        assert fold_data.test_to_train.shape == (20, 40)
        assert np.array_equal(fold_data.test_neighbors.indices, top_k_neighbors(fold_data.test_to_train, 3).indices)
        assert fold_data.reducer.proto_occurrences_ is not None

        results = evaluator.evaluate(distances_100, dataset_100, folds=folds)
        assert results.failures == []

    def test_automatic_selection(self, distances_100, dataset_100):
        """Test a run where the selector chooses the number of prototypes."""
        config = CVConfig(times=1, num_folds=5, k=3, random_state=0)
        evaluator = MultiCrossValidation(config, default_classifiers(), reducer=InsightSelector())

        results = evaluator.evaluate(distances_100, dataset_100)

        assert results.failures == []

    def test_separate_test_labels(self, distances_100, dataset_100):
        """Test that test labels replace the ground truth of held-out points."""
        config = CVConfig(times=1, num_folds=5, random_state=0)
        flipped = 1 - dataset_100.labels
        evaluator = MultiCrossValidation(config, {'zerorule': ZeroRuleClassifier()})

        results = evaluator.evaluate(distances_100, dataset_100, test_labels=flipped)

        assert results.averages['zerorule'].accuracy == pytest.approx(0.4)
