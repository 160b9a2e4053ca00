"""
Core functionality for hubnessCV.

This module contains the fundamental classes of the cross-validation engine:
distance storage, neighbor graphs, fold generation and derivation, secondary
distances and the evaluator itself.
"""

from .base import (
    BaseEvaluator,
    ClassifierStateError,
    CVConfig,
    FoldConfigurationError,
    HubnessCVError,
    KMode,
    ProtoHubnessMode,
    SecondaryDistance,
)
from .distance_matrix import DistanceMatrix
from .neighbor_graph import NeighborGraph, compute_exact_neighbor_graph, top_k_neighbors
from .approximate_knn import ApproximateNeighborGraphBuilder, build_neighbor_graph
from .fold_generator import FoldAssignment, StratifiedFoldGenerator
from .fold_neighbors import derive_fold_graph, derive_sub_graph, derive_test_neighbors, project_neighbor_lists
from .fold_data import FoldData
from .secondary_distances import SecondaryDistanceCalculator, create_secondary_calculator
from .cv_evaluator import ClassifierFailure, CVResults, MultiCrossValidation

__all__ = [
    "BaseEvaluator",
    "ClassifierStateError",
    "CVConfig",
    "FoldConfigurationError",
    "HubnessCVError",
    "KMode",
    "ProtoHubnessMode",
    "SecondaryDistance",
    "DistanceMatrix",
    "NeighborGraph",
    "compute_exact_neighbor_graph",
    "top_k_neighbors",
    "ApproximateNeighborGraphBuilder",
    "build_neighbor_graph",
    "FoldAssignment",
    "StratifiedFoldGenerator",
    "derive_fold_graph",
    "derive_sub_graph",
    "derive_test_neighbors",
    "project_neighbor_lists",
    "FoldData",
    "SecondaryDistanceCalculator",
    "create_secondary_calculator",
    "ClassifierFailure",
    "CVResults",
    "MultiCrossValidation",
]
