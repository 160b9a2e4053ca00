"""
Unit tests for deriving fold-restricted kNN sets from the global graph.

Every derived list is compared with a brute-force search on the restricted
distance matrix.
"""
import numpy as np
import pytest

from hubnessCV.core.fold_generator import StratifiedFoldGenerator
from hubnessCV.core.fold_neighbors import (
    derive_fold_graph,
    derive_member_neighbors,
    derive_sub_graph,
    derive_test_neighbors,
    insert_candidates,
    position_map,
)
from hubnessCV.core.neighbor_graph import compute_exact_neighbor_graph, top_k_neighbors

from conftest import integer_distances, random_distances


def assert_same_graph(derived, expected):
    assert derived.indices.shape == expected.indices.shape
    assert np.array_equal(derived.indices, expected.indices)
    assert np.allclose(derived.distances, expected.distances)


class TestProjectionMatchesBruteForce:
    """Randomized comparison of derived and brute-force neighbor lists."""

    @pytest.mark.parametrize("seed", range(6))
    @pytest.mark.parametrize("k_big", [2, 5, 10, 25])
    @pytest.mark.parametrize("k", [1, 3, 7])
    def test_fold_and_test_neighbors(self, seed, k_big, k):
        """Test training and test lists for every fold of a random split."""
        rng = np.random.RandomState(seed)
        n = 60
        distances = random_distances(n, seed=seed)
        labels = rng.randint(0, 3, size=n)
        folds = StratifiedFoldGenerator(times=1, num_folds=4, random_state=seed).generate(labels)
        global_graph = compute_exact_neighbor_graph(distances, k_big)

        for fold in range(4):
            train_idx = folds.training_indices(0, fold)
            test_idx = folds.test_indices(0, fold)
            fold_dist = distances[np.ix_(train_idx, train_idx)]
            test_to_train = distances[np.ix_(test_idx, train_idx)]

            assert_same_graph(
                derive_fold_graph(global_graph, train_idx, fold_dist, k),
                top_k_neighbors(fold_dist, k, exclude=np.arange(len(train_idx)))
            )
            assert_same_graph(
                derive_test_neighbors(global_graph, test_idx, train_idx, test_to_train, k),
                top_k_neighbors(test_to_train, k)
            )

    @pytest.mark.parametrize("seed", range(10))
    @pytest.mark.parametrize("k", [1, 4, 9])
    def test_tied_distances_keep_brute_force_order(self, seed, k):
        """Test derived lists on integer distances, where ties are the rule."""
        rng = np.random.RandomState(seed)
        n = 60
        distances = integer_distances(n, seed=seed)
        global_graph = compute_exact_neighbor_graph(distances, 8)
        train_idx = np.sort(rng.choice(n, size=45, replace=False))
        test_idx = np.setdiff1d(np.arange(n), train_idx)
        fold_dist = distances[np.ix_(train_idx, train_idx)]
        test_to_train = distances[np.ix_(test_idx, train_idx)]

        fold_graph = derive_fold_graph(global_graph, train_idx, fold_dist, k)
        assert_same_graph(fold_graph, top_k_neighbors(fold_dist, k, exclude=np.arange(45)))
        assert_same_graph(
            derive_test_neighbors(global_graph, test_idx, train_idx, test_to_train, k),
            top_k_neighbors(test_to_train, k)
        )
        members = np.sort(rng.choice(45, size=20, replace=False))
        sub_dist = fold_dist[np.ix_(members, members)]
        assert_same_graph(
            derive_sub_graph(fold_graph, members, sub_dist, min(k, 5)),
            top_k_neighbors(sub_dist, min(k, 5), exclude=np.arange(20))
        )

    @pytest.mark.parametrize("seed", range(4))
    def test_sub_graph_and_member_neighbors(self, seed):
        """Test prototype graphs derived from a training graph."""
        rng = np.random.RandomState(seed)
        n, k = 40, 4
        distances = random_distances(n, seed=seed + 20)
        graph = compute_exact_neighbor_graph(distances, 6)
        members = np.sort(rng.choice(n, size=15, replace=False))
        sub_dist = distances[np.ix_(members, members)]

        assert_same_graph(
            derive_sub_graph(graph, members, sub_dist, k),
            top_k_neighbors(sub_dist, k, exclude=np.arange(len(members)))
        )
        point_to_member = distances[:, members]
        assert_same_graph(
            derive_member_neighbors(graph, members, point_to_member, k),
            top_k_neighbors(point_to_member, k, exclude=position_map(members, n))
        )


class TestGapFilling:
    """Test suite for lists that run short of training members."""

    def test_excluded_nearest_neighbor_is_replaced(self):
        """Test that holding out a point's nearest neighbor still gives the exact list."""
        n, k_big = 50, 10
        distances = random_distances(n, seed=31)
        global_graph = compute_exact_neighbor_graph(distances, k_big)
        point = 0
        nearest = int(global_graph.indices[point, 0])

        train_idx = np.setdiff1d(np.arange(n), [nearest])
        fold_dist = distances[np.ix_(train_idx, train_idx)]
        derived = derive_fold_graph(global_graph, train_idx, fold_dist, k_big)
        expected = top_k_neighbors(fold_dist, k_big, exclude=np.arange(len(train_idx)))

        assert_same_graph(derived, expected)
        position = int(np.flatnonzero(train_idx == point)[0])
        second = int(global_graph.indices[point, 1])
        assert train_idx[derived.indices[position, 0]] == second
        # The eleventh true neighbor enters the list through gap-filling
        eleventh = top_k_neighbors(distances[[point]], k_big + 1, exclude=np.array([point])).indices[0, -1]
        assert eleventh in train_idx[derived.indices[position]]

    def test_all_global_neighbors_held_out(self):
        """Test a list whose global neighbors all lie outside the training set."""
        n, k_big, k = 40, 10, 5
        distances = random_distances(n, seed=8)
        global_graph = compute_exact_neighbor_graph(distances, k_big)
        point = 3
        held_out = global_graph.indices[point]

        train_idx = np.setdiff1d(np.arange(n), held_out)
        fold_dist = distances[np.ix_(train_idx, train_idx)]

        assert_same_graph(
            derive_fold_graph(global_graph, train_idx, fold_dist, k),
            top_k_neighbors(fold_dist, k, exclude=np.arange(len(train_idx)))
        )

    def test_k_larger_than_training_set(self):
        """Test that lists are as long as the available training points allow."""
        distances = random_distances(10, seed=1)
        global_graph = compute_exact_neighbor_graph(distances, 4)
        train_idx = np.array([0, 4, 7])
        test_idx = np.array([1, 2])
        fold_dist = distances[np.ix_(train_idx, train_idx)]
        test_to_train = distances[np.ix_(test_idx, train_idx)]

        fold_graph = derive_fold_graph(global_graph, train_idx, fold_dist, 5)
        test_graph = derive_test_neighbors(global_graph, test_idx, train_idx, test_to_train, 5)

        assert fold_graph.k == 2
        assert test_graph.k == 3
        assert_same_graph(test_graph, top_k_neighbors(test_to_train, 5))

    def test_insert_candidates_orders_ties_by_position(self):
        """Test that equal distances are ordered by position."""
        idx, dist = insert_candidates(
            np.array([5, 6]), np.array([1.0, 2.0]),
            np.array([9, 8]), np.array([1.0, 0.5]),
            3
        )

        assert list(idx) == [8, 5, 9]
        assert list(dist) == [0.5, 1.0, 1.0]

        idx, dist = insert_candidates(np.array([5]), np.array([1.0]), np.array([2, 7]), np.array([1.0, 1.0]), 2)

        assert list(idx) == [2, 5]


class TestFoldScenario:
    """100 points, 60/40 classes, one repetition of 5 folds, k = 3."""

    def test_test_neighbors(self, distances_100, dataset_100):
        """Test fold sizes and the shape of the test-to-training lists."""
        k = 3
        folds = StratifiedFoldGenerator(times=1, num_folds=5, random_state=0).generate(dataset_100.labels)
        global_graph = compute_exact_neighbor_graph(distances_100.square, 2 * k + 10)

        for fold in range(5):
            test_idx = folds.test_indices(0, fold)
            train_idx = folds.training_indices(0, fold)
            assert len(test_idx) == 20
            assert len(train_idx) == 80

            test_to_train = distances_100.cross_distances(test_idx, train_idx)
            neighbors = derive_test_neighbors(global_graph, test_idx, train_idx, test_to_train, k)

            assert neighbors.indices.shape == (20, 3)
            global_neighbors = train_idx[neighbors.indices]
            assert not np.isin(global_neighbors, test_idx).any()
            assert np.all(np.diff(neighbors.distances, axis=1) >= 0)
            assert_same_graph(neighbors, top_k_neighbors(test_to_train, k))
