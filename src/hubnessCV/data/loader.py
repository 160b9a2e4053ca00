"""
Data loading utilities for hubnessCV.

This module handles loading of distance matrices, feature tables and labels.
"""

from typing import List, Optional, Tuple, Union
from pathlib import Path
import numpy as np
import pandas as pd
from sklearn.preprocessing import LabelEncoder

from .dataset import LabeledDataset
from ..core.distance_matrix import DistanceMatrix
from ..utils.logger import get_logger

TABLE_SEPARATORS = {'.csv': ',', '.tsv': '\t', '.txt': '\t'}


class DataLoader:
    """Loader for precomputed distances, feature tables and label files."""

    def __init__(self):
        self.logger = get_logger("DataLoader")

    @staticmethod
    def _check_path(path: Union[str, Path]) -> Path:
        path = Path(path)
        if not path.exists():
            raise FileNotFoundError(f"File not found: {path}")
        return path

    def _read_table(self, path: Path, index_col: Optional[int] = 0, header: Optional[int] = 0) -> pd.DataFrame:
        suffix = path.suffix.lower()
        if suffix not in TABLE_SEPARATORS:
            raise ValueError(f"Unsupported table format: {path.suffix}")
        return pd.read_table(path, sep=TABLE_SEPARATORS[suffix], index_col=index_col, header=header)

    def load_distance_matrix(
        self,
        path: Union[str, Path],
        has_header: bool = True
    ) -> DistanceMatrix:
        """
        Load a precomputed distance matrix.

        ``.npy`` files hold either a square matrix or the condensed
        upper-triangular vector; ``.csv``/``.tsv`` files hold a square table,
        with row and column labels when ``has_header`` is set.

        Args:
            path: Path to the distance file
            has_header: Whether the table has a header row and an index column

        Returns:
            DistanceMatrix instance
        """
        path = self._check_path(path)
        self.logger.info(f"Loading distance matrix from {path}")

        if path.suffix.lower() == '.npy':
            values = np.load(path)
            if values.ndim == 1:
                distances = DistanceMatrix.from_condensed(values)
            else:
                distances = DistanceMatrix.from_square(values)
        else:
            table = self._read_table(path, index_col=0 if has_header else None, header=0 if has_header else None)
            distances = DistanceMatrix.from_square(table.values)

        self.logger.info(f"Loaded distances for {distances.size} instances")
        return distances

    def load_features(self, path: Union[str, Path]) -> pd.DataFrame:
        """Load a feature table with instances as rows and an index column."""
        path = self._check_path(path)
        self.logger.info(f"Loading features from {path}")
        features = self._read_table(path)
        self.logger.info(f"Loaded feature matrix: {features.shape}")
        return features

    def compute_distances(
        self,
        features: pd.DataFrame,
        metric: str = "euclidean",
        n_jobs: Optional[int] = None
    ) -> DistanceMatrix:
        """Primary distances of a feature table."""
        numeric = features.select_dtypes(include=[np.number])
        dropped = features.shape[1] - numeric.shape[1]
        if dropped:
            self.logger.warning(f"Ignoring {dropped} non-numeric feature columns")
        return DistanceMatrix.from_features(numeric, metric=metric, n_jobs=n_jobs)

    def load_labels(
        self,
        path: Union[str, Path],
        column: Optional[str] = None,
        instance_names: Optional[List[str]] = None
    ) -> LabeledDataset:
        """
        Load class labels and encode them as ``0 .. num_classes - 1``.

        Args:
            path: Table with an index column of instance names and one or more
                label columns
            column: Label column, defaults to the first column
            instance_names: Optional instance order to align the labels to

        Returns:
            LabeledDataset with the encoded labels
        """
        path = self._check_path(path)
        self.logger.info(f"Loading labels from {path}")
        table = self._read_table(path)
        if table.shape[1] == 0:
            raise ValueError(f"No label column found in {path}")
        column = column or table.columns[0]
        if column not in table.columns:
            raise ValueError(f"Label column '{column}' not found in {path}")

        series = table[column]
        if instance_names is not None:
            missing = set(instance_names) - set(series.index.astype(str))
            if missing:
                raise ValueError(f"{len(missing)} instances have no label, e.g. {sorted(missing)[:5]}")
            series = pd.Series(series.values, index=series.index.astype(str), name=column)
            series = series.loc[list(instance_names)]

        if series.isnull().any():
            raise ValueError(f"Label column '{column}' contains missing values")

        encoder = LabelEncoder()
        labels = encoder.fit_transform(series.astype(str).values)
        class_names = [str(name) for name in encoder.classes_]
        self.logger.info(f"Loaded {len(labels)} labels in {len(class_names)} classes: {class_names}")
        return LabeledDataset(
            labels=labels,
            num_classes=len(class_names),
            instance_names=[str(name) for name in series.index],
            class_names=class_names
        )

    def load_test_labels(
        self,
        path: Union[str, Path],
        class_names: List[str],
        instance_names: List[str],
        column: Optional[str] = None
    ) -> np.ndarray:
        """
        Load ground truth labels for the test folds.

        The labels are aligned to ``instance_names`` and encoded with the
        class order of the training labels, so every class must be known.
        """
        test_dataset = self.load_labels(path, column=column, instance_names=instance_names)
        unknown = sorted(set(test_dataset.class_names) - set(class_names))
        if unknown:
            raise ValueError(f"Test labels contain classes absent from the training labels: {unknown}")
        codes = np.array([class_names.index(name) for name in test_dataset.class_names], dtype=np.intp)
        return codes[test_dataset.labels]

    def load_dataset(
        self,
        labels_path: Union[str, Path],
        distances_path: Optional[Union[str, Path]] = None,
        features_path: Optional[Union[str, Path]] = None,
        metric: str = "euclidean",
        label_column: Optional[str] = None,
        n_jobs: Optional[int] = None
    ) -> Tuple[DistanceMatrix, LabeledDataset]:
        """
        Load distances (or features to compute them from) together with labels.

        Labels are aligned to the feature table's instance order when features
        are given.
        """
        if distances_path is None and features_path is None:
            raise ValueError("Either a distance matrix or a feature table is required")

        if distances_path is not None:
            distances = self.load_distance_matrix(distances_path)
            dataset = self.load_labels(labels_path, column=label_column)
        else:
            features = self.load_features(features_path)
            distances = self.compute_distances(features, metric=metric, n_jobs=n_jobs)
            dataset = self.load_labels(
                labels_path,
                column=label_column,
                instance_names=[str(name) for name in features.index]
            )
        return distances, dataset
