"""
hubnessCV

Repeated stratified cross-validation for kNN-based classifiers, with
hubness-aware neighbor graphs, secondary distances and instance selection.
"""

__version__ = "1.0.0"

# Core imports
from .core.base import BaseEvaluator, CVConfig, KMode, ProtoHubnessMode, SecondaryDistance
from .core.distance_matrix import DistanceMatrix
from .core.fold_generator import FoldAssignment, StratifiedFoldGenerator
from .core.neighbor_graph import NeighborGraph
from .core.cv_evaluator import CVResults, MultiCrossValidation

# Data handling
from .data.dataset import LabeledDataset
from .data.loader import DataLoader
from .data.validator import DataValidator
from .data.folds_io import load_folds, save_folds

# Models
from .models import BaseModel, Capability, HwKNNClassifier, KNNClassifier, ModelFactory, ZeroRuleClassifier

# Preprocessing
from .preprocessing.instance_selection import create_instance_selector

# Evaluation
from .evaluation.metrics import ClassificationEstimator, MetricsCalculator
from .evaluation.reporter import ResultsReporter

__all__ = [
    # Core
    "BaseEvaluator",
    "CVConfig",
    "KMode",
    "ProtoHubnessMode",
    "SecondaryDistance",
    "DistanceMatrix",
    "FoldAssignment",
    "StratifiedFoldGenerator",
    "NeighborGraph",
    "CVResults",
    "MultiCrossValidation",

    # Data
    "LabeledDataset",
    "DataLoader",
    "DataValidator",
    "load_folds",
    "save_folds",

    # Models
    "BaseModel",
    "Capability",
    "HwKNNClassifier",
    "KNNClassifier",
    "ModelFactory",
    "ZeroRuleClassifier",

    # Preprocessing
    "create_instance_selector",

    # Evaluation
    "ClassificationEstimator",
    "MetricsCalculator",
    "ResultsReporter",
]
