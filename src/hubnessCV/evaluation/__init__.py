"""
Evaluation module for hubnessCV.

This module contains evaluation metrics and reporting utilities.
"""

from .metrics import ClassificationEstimator, EstimatorAccumulator, MetricsCalculator, SCALAR_METRICS
from .reporter import ResultsReporter

__all__ = [
    "ClassificationEstimator",
    "EstimatorAccumulator",
    "MetricsCalculator",
    "ResultsReporter",
    "SCALAR_METRICS",
]
