"""
Data validation utilities for hubnessCV.

This module checks that a distance matrix and a labeled dataset can be used
for a cross-validation run.
"""

import numpy as np

from .dataset import LabeledDataset
from ..core.distance_matrix import DistanceMatrix
from ..utils.logger import get_logger

# Tolerance of the symmetry check
SYMMETRY_TOLERANCE = 1e-6


class DataValidator:
    """Validator for distance matrices and labels."""

    def __init__(self):
        self.logger = get_logger("DataValidator")

    def validate(self, distances: DistanceMatrix, dataset: LabeledDataset, num_folds: int) -> None:
        """
        Validate input data.

        Args:
            distances: Distance matrix of the dataset
            dataset: Labels of the dataset
            num_folds: Number of cross-validation folds

        Raises:
            ValueError: If data validation fails
        """
        self.logger.info("Validating input data...")

        self._validate_distances(distances)
        self._validate_labels(dataset, num_folds)

        if distances.size != len(dataset):
            raise ValueError(
                f"Distance matrix size ({distances.size}) doesn't match labels length ({len(dataset)})"
            )

        self.logger.info("Data validation passed")

    def _validate_distances(self, distances: DistanceMatrix) -> None:
        """Validate distance matrix."""
        square = distances.square
        if distances.size == 0:
            raise ValueError("Distance matrix is empty")

        if not np.all(np.isfinite(square)):
            raise ValueError("Distance matrix contains infinite or NaN values")

        if np.any(square < 0):
            raise ValueError("Distance matrix contains negative distances")

        if not np.allclose(square, square.T, atol=SYMMETRY_TOLERANCE):
            raise ValueError("Distance matrix is not symmetric")

    def _validate_labels(self, dataset: LabeledDataset, num_folds: int) -> None:
        """Validate target labels."""
        if len(dataset) == 0:
            raise ValueError("No labels provided")

        class_counts = dataset.class_counts()
        present = np.flatnonzero(class_counts)
        if len(present) < 2:
            raise ValueError(f"Expected at least 2 classes, found {len(present)}")

        if len(dataset) < num_folds:
            raise ValueError(f"Cannot split {len(dataset)} instances into {num_folds} folds")

        small = [int(c) for c in present if class_counts[c] < num_folds]
        if small:
            self.logger.warning(
                f"Classes {small} have fewer instances than the {num_folds} folds; "
                f"some folds will not contain them"
            )
