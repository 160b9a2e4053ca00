"""
Pytest fixtures for hubnessCV tests.

Provides random distance matrices, labeled datasets and small helpers
shared by the test modules.
"""
import sys
import tempfile
from pathlib import Path

import numpy as np
import pytest
from sklearn.metrics import pairwise_distances

# Add the src directory to the path
project_root = Path(__file__).parent.parent
sys.path.insert(0, str(project_root / "src"))

from hubnessCV.core.distance_matrix import DistanceMatrix
from hubnessCV.data.dataset import LabeledDataset


def random_features(num_points: int, num_features: int = 5, seed: int = 0) -> np.ndarray:
    """Gaussian feature matrix."""
    return np.random.RandomState(seed).normal(size=(num_points, num_features))


def random_distances(num_points: int, num_features: int = 5, seed: int = 0) -> np.ndarray:
    """Euclidean distances of random points (no ties with probability one)."""
    return pairwise_distances(random_features(num_points, num_features, seed))


def integer_distances(num_points: int, low: int = 1, high: int = 5, seed: int = 0) -> np.ndarray:
    """Symmetric matrix of small integer distances, full of ties."""
    values = np.random.RandomState(seed).randint(low, high + 1, size=(num_points, num_points)).astype(float)
    distances = np.triu(values, 1)
    return distances + distances.T


def two_class_labels(num_first: int, num_second: int) -> np.ndarray:
    return np.array([0] * num_first + [1] * num_second)


@pytest.fixture
def temp_dir():
    """Create a temporary directory for test files."""
    with tempfile.TemporaryDirectory() as tmpdir:
        yield Path(tmpdir)


@pytest.fixture
def distances_100():
    """Distance matrix of 100 random points in two shifted clusters."""
    rng = np.random.RandomState(7)
    features = np.vstack([rng.normal(0.0, 1.0, size=(60, 4)), rng.normal(1.5, 1.0, size=(40, 4))])
    return DistanceMatrix.from_square(pairwise_distances(features))


@pytest.fixture
def dataset_100():
    """100 points, 60 of class 0 followed by 40 of class 1."""
    return LabeledDataset(two_class_labels(60, 40))


@pytest.fixture
def small_distances():
    """Distance matrix of 30 random points."""
    return DistanceMatrix.from_square(random_distances(30, seed=3))


@pytest.fixture
def small_dataset():
    """30 points in three classes of 10."""
    return LabeledDataset(np.repeat([0, 1, 2], 10))
