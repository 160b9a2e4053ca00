"""
Sanity tests for the secondary distance calculators.
"""
import numpy as np
import pytest

from hubnessCV.core.base import SecondaryDistance
from hubnessCV.core.neighbor_graph import compute_exact_neighbor_graph, top_k_neighbors
from hubnessCV.core.secondary_distances import (
    LocalScalingCalculator,
    MutualProximityCalculator,
    NICDMCalculator,
    SharedNeighborCalculator,
    create_secondary_calculator,
)

from conftest import random_distances


@pytest.fixture
def fold_inputs():
    """Training block of 24 points and 6 test points at secondary k = 5."""
    distances = random_distances(30, seed=12)
    train, test = np.arange(24), np.arange(24, 30)
    fold_dist = distances[np.ix_(train, train)]
    test_to_train = distances[np.ix_(test, train)]
    labels = np.repeat([0, 1], 12)
    return {
        'fold_distances': fold_dist,
        'fold_graph': compute_exact_neighbor_graph(fold_dist, 5),
        'test_to_train': test_to_train,
        'test_graph': top_k_neighbors(test_to_train, 5),
        'labels': labels,
        'num_classes': 2,
    }


@pytest.mark.parametrize("kind", [
    SecondaryDistance.SIMCOS,
    SecondaryDistance.SIMHUB,
    SecondaryDistance.MP,
    SecondaryDistance.LS,
    SecondaryDistance.NICDM,
])
def test_secondary_matrices_are_well_formed(kind, fold_inputs):
    """Every calculator returns a symmetric, finite, zero-diagonal training block."""
    calculator = create_secondary_calculator(kind)
    fold_secondary, test_secondary = calculator.transform(**fold_inputs)

    assert fold_secondary.shape == (24, 24)
    assert test_secondary.shape == (6, 24)
    assert np.all(np.isfinite(fold_secondary))
    assert np.all(np.isfinite(test_secondary))
    assert np.allclose(fold_secondary, fold_secondary.T)
    assert np.allclose(np.diag(fold_secondary), 0.0)


def test_factory():
    """Test calculator creation by type."""
    assert create_secondary_calculator(SecondaryDistance.NONE) is None
    assert isinstance(create_secondary_calculator(SecondaryDistance.SIMCOS), SharedNeighborCalculator)
    assert create_secondary_calculator(SecondaryDistance.SIMHUB).weighted
    assert isinstance(create_secondary_calculator(SecondaryDistance.MP), MutualProximityCalculator)
    assert isinstance(create_secondary_calculator(SecondaryDistance.LS), LocalScalingCalculator)
    assert isinstance(create_secondary_calculator(SecondaryDistance.NICDM), NICDMCalculator)


def test_shared_neighbor_distance_counts(fold_inputs):
    """simcos is k minus the number of shared neighbors."""
    fold_secondary, test_secondary = SharedNeighborCalculator().transform(**fold_inputs)
    graph = fold_inputs['fold_graph']
    test_graph = fold_inputs['test_graph']

    shared = len(set(graph.indices[0]) & set(graph.indices[1]))
    assert fold_secondary[0, 1] == pytest.approx(5 - shared)
    shared_test = len(set(test_graph.indices[2]) & set(graph.indices[7]))
    assert test_secondary[2, 7] == pytest.approx(5 - shared_test)
    assert np.all((fold_secondary >= 0) & (fold_secondary <= 5))


def test_hub_weights_penalize_frequent_neighbors(fold_inputs):
    """simhub weights decrease with the occurrence count at equal entropy."""
    calculator = SharedNeighborCalculator(weighted=True)
    graph = fold_inputs['fold_graph']
    weights = calculator.neighbor_weights(graph, np.zeros(24, dtype=int), 1)

    # With one class every entropy term is zero
    assert np.allclose(weights, 0.0)

    weights = calculator.neighbor_weights(graph, fold_inputs['labels'], 2)
    assert np.max(np.abs(weights)) <= 1.0 + 1e-12


def test_mutual_proximity_range(fold_inputs):
    """Mutual proximity values are probabilities."""
    fold_secondary, test_secondary = MutualProximityCalculator().transform(**fold_inputs)

    off_diagonal = fold_secondary[~np.eye(24, dtype=bool)]
    assert np.all((off_diagonal >= 0) & (off_diagonal <= 1))
    assert np.all((test_secondary >= 0) & (test_secondary <= 1))


def test_local_scaling_formula(fold_inputs):
    """Local scaling uses the k-th neighbor distance of both points."""
    fold_secondary, _ = LocalScalingCalculator().transform(**fold_inputs)
    sigma = fold_inputs['fold_graph'].kth_distances
    d = fold_inputs['fold_distances'][3, 9]

    assert fold_secondary[3, 9] == pytest.approx(1.0 - np.exp(-d ** 2 / (sigma[3] * sigma[9])))


def test_nicdm_formula(fold_inputs):
    """NICDM divides by the geometric mean of the mean kNN distances."""
    _, test_secondary = NICDMCalculator().transform(**fold_inputs)
    mu_train = fold_inputs['fold_graph'].distances.mean(axis=1)
    mu_test = fold_inputs['test_graph'].distances.mean(axis=1)
    d = fold_inputs['test_to_train'][1, 4]

    assert test_secondary[1, 4] == pytest.approx(d / np.sqrt(mu_test[1] * mu_train[4]))
