"""
Evaluation metrics for hubnessCV.

This module contains the per-fold classification estimator, the running
accumulator that averages estimators across cross-validation folds and a
calculator for summary statistics over folds.
"""

from typing import Any, Dict, List, Optional, Sequence
from dataclasses import dataclass
import numpy as np
import pandas as pd
from sklearn.metrics import confusion_matrix as sk_confusion_matrix

from ..utils.logger import get_logger

SCALAR_METRICS = ('accuracy', 'avg_precision', 'avg_recall', 'micro_f1', 'macro_f1', 'mcc')


@dataclass
class ClassificationEstimator:
    """
    Quality estimate of one classification run.

    The confusion matrix is indexed ``[predicted][actual]``: row sums count
    predictions per class, column sums count actual instances per class.
    """
    confusion_matrix: np.ndarray
    precision: np.ndarray
    recall: np.ndarray
    accuracy: float = 0.0
    avg_precision: float = 0.0
    avg_recall: float = 0.0
    micro_f1: float = 0.0
    macro_f1: float = 0.0
    mcc: float = 0.0

    @classmethod
    def from_confusion_matrix(cls, confusion_matrix: np.ndarray) -> 'ClassificationEstimator':
        """
        Compute all estimates from a ``[predicted][actual]`` confusion matrix.

        Args:
            confusion_matrix: Square matrix of counts

        Returns:
            ClassificationEstimator
        """
        cm = np.asarray(confusion_matrix, dtype=np.float64)
        num_classes = cm.shape[0]
        diagonal = np.diag(cm)
        row_sums = cm.sum(axis=1)
        col_sums = cm.sum(axis=0)
        total = cm.sum()

        precision = np.divide(diagonal, row_sums, out=np.zeros(num_classes), where=row_sums != 0)
        recall = np.divide(diagonal, col_sums, out=np.zeros(num_classes), where=col_sums != 0)
        accuracy = float(diagonal.sum() / total) if total > 0 else 0.0

        pr_sum = precision + recall
        f_scores = np.divide(2 * precision * recall, pr_sum, out=np.zeros(num_classes), where=pr_sum != 0)
        class_distribution = col_sums / total if total > 0 else np.zeros(num_classes)

        mcc = 0.0
        if num_classes == 2:
            denominator = np.sqrt(
                (cm[0, 0] + cm[0, 1]) * (cm[0, 0] + cm[1, 0])
                * (cm[1, 1] + cm[0, 1]) * (cm[1, 1] + cm[1, 0])
            )
            if denominator > 0:
                mcc = float((cm[0, 0] * cm[1, 1] - cm[0, 1] * cm[1, 0]) / denominator)

        return cls(
            confusion_matrix=cm,
            precision=precision,
            recall=recall,
            accuracy=accuracy,
            avg_precision=float(precision.mean()) if num_classes else 0.0,
            avg_recall=float(recall.mean()) if num_classes else 0.0,
            micro_f1=float((class_distribution * f_scores).sum()),
            macro_f1=float(f_scores.mean()) if num_classes else 0.0,
            mcc=mcc
        )

    @classmethod
    def from_predictions(
        cls,
        predicted: np.ndarray,
        actual: np.ndarray,
        num_classes: int
    ) -> 'ClassificationEstimator':
        """Build the estimator from predicted and actual labels."""
        predicted = np.asarray(predicted, dtype=np.intp)
        actual = np.asarray(actual, dtype=np.intp)
        if len(actual) == 0:
            return cls.from_confusion_matrix(np.zeros((num_classes, num_classes)))
        # sklearn indexes [actual][predicted]
        cm = sk_confusion_matrix(actual, predicted, labels=np.arange(num_classes)).T
        return cls.from_confusion_matrix(cm)

    @property
    def num_classes(self) -> int:
        return self.confusion_matrix.shape[0]

    @property
    def is_binary(self) -> bool:
        return self.num_classes == 2

    def f_measure(self, beta: float = 1.0) -> float:
        """F-beta score of the averaged precision and recall."""
        denominator = beta ** 2 * self.avg_precision + self.avg_recall
        if denominator == 0:
            return 0.0
        return (1 + beta ** 2) * self.avg_precision * self.avg_recall / denominator

    def scalars(self) -> Dict[str, float]:
        """Scalar estimates keyed by name."""
        return {name: float(getattr(self, name)) for name in SCALAR_METRICS}

    def to_dict(self) -> Dict[str, Any]:
        """Plain representation, suitable for JSON."""
        result: Dict[str, Any] = self.scalars()
        result['precision'] = self.precision.tolist()
        result['recall'] = self.recall.tolist()
        result['confusion_matrix'] = self.confusion_matrix.tolist()
        return result


class EstimatorAccumulator:
    """
    Running sums of estimators of one classifier across folds.

    Sums are only normalized in :meth:`finalize`, after every fold has
    completed. Folds whose confusion matrix does not cover ``num_classes``
    classes only contribute their scalar estimates; ``count`` tracks the
    full folds and ``completed`` every added fold.
    """

    def __init__(self, num_classes: int):
        self.num_classes = num_classes
        self.confusion_matrix = np.zeros((num_classes, num_classes))
        self.precision = np.zeros(num_classes)
        self.recall = np.zeros(num_classes)
        self.scalar_sums = {name: 0.0 for name in SCALAR_METRICS}
        self.count = 0
        self.completed = 0

    def add(self, estimator: ClassificationEstimator) -> bool:
        """
        Add one fold estimate to the running sums.

        Returns:
            Whether the fold counted as a full fold
        """
        for name, value in estimator.scalars().items():
            self.scalar_sums[name] += value
        self.completed += 1

        if estimator.confusion_matrix.shape != (self.num_classes, self.num_classes):
            return False
        self.confusion_matrix += estimator.confusion_matrix
        self.precision += estimator.precision
        self.recall += estimator.recall
        self.count += 1
        return True

    def finalize(self, times: int) -> ClassificationEstimator:
        """
        Average the accumulated estimates.

        Scalar estimates are divided by the number of completed folds,
        per-class precision and recall by the number of full folds; the
        confusion matrix is divided by the number of repetitions, giving the
        expected matrix of one full pass over the data.

        Args:
            times: Number of repetitions

        Returns:
            Averaged ClassificationEstimator
        """
        def _avg(value, count):
            return value / count if count > 0 else value * 0.0

        scalars = {name: float(_avg(total, self.completed)) for name, total in self.scalar_sums.items()}
        return ClassificationEstimator(
            confusion_matrix=_avg(self.confusion_matrix, times),
            precision=_avg(self.precision, self.count),
            recall=_avg(self.recall, self.count),
            **scalars
        )


class MetricsCalculator:
    """Summary statistics of fold estimates."""

    def __init__(self):
        self.logger = get_logger("MetricsCalculator")

    def fold_table(self, estimators: Sequence[Optional[ClassificationEstimator]]) -> pd.DataFrame:
        """One row of scalar estimates per completed fold, indexed by trial."""
        rows = [
            dict(trial=i, **estimator.scalars())
            for i, estimator in enumerate(estimators)
            if estimator is not None
        ]
        return pd.DataFrame(rows, columns=['trial', *SCALAR_METRICS]).set_index('trial')

    def summarize(self, estimators: Sequence[Optional[ClassificationEstimator]]) -> Dict[str, float]:
        """
        Mean and standard deviation of every scalar estimate across folds.

        Failed folds (``None``) are skipped.

        Args:
            estimators: Per-fold estimators

        Returns:
            Dictionary with ``<metric>_mean``, ``<metric>_std`` and ``n_folds``
        """
        table = self.fold_table(estimators)
        if table.empty:
            self.logger.warning("No completed folds to summarize")
            return {'n_folds': 0}

        summary: Dict[str, float] = {}
        for metric in SCALAR_METRICS:
            summary[f'{metric}_mean'] = float(table[metric].mean())
            summary[f'{metric}_std'] = float(table[metric].std(ddof=0))
        summary['n_folds'] = len(table)
        return summary

    def compare(self, results: Dict[str, List[Optional[ClassificationEstimator]]]) -> pd.DataFrame:
        """Summary statistics of several classifiers side by side."""
        return pd.DataFrame({name: self.summarize(estimators) for name, estimators in results.items()}).T
