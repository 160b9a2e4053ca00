"""
Base classes and interfaces for hubnessCV.

This module defines the enumerations, configuration dataclasses, exceptions
and abstract interfaces shared by the cross-validation engine.
"""

from abc import ABC, abstractmethod
from typing import Any, Dict, Optional, Tuple
from dataclasses import dataclass
from enum import Enum


class HubnessCVError(Exception):
    """Base class for errors raised by hubnessCV."""


class FoldConfigurationError(HubnessCVError, ValueError):
    """Raised when a fold assignment is malformed or does not fit the run."""


class ClassifierStateError(HubnessCVError, RuntimeError):
    """Raised when a classifier is used before it has been set up."""


class SecondaryDistance(Enum):
    """Secondary distances that can be computed per fold."""
    NONE = "none"
    SIMCOS = "simcos"   # shared-neighbor count
    SIMHUB = "simhub"   # hubness-weighted shared-neighbor count
    MP = "mp"           # mutual proximity
    LS = "ls"           # local scaling
    NICDM = "nicdm"


class KMode(Enum):
    """How the neighborhood size is chosen for the evaluated classifiers."""
    SINGLE = "single"
    INTERVAL = "interval"


class ProtoHubnessMode(Enum):
    """How prototype hubness is estimated after instance selection."""
    UNBIASED = "unbiased"
    BIASED = "biased"


@dataclass
class CVConfig:
    """Configuration for repeated stratified cross-validation."""
    times: int = 10
    num_folds: int = 10
    k: int = 5
    k_min: int = 1
    k_max: int = 20
    k_mode: KMode = KMode.SINGLE
    secondary_distance: SecondaryDistance = SecondaryDistance.NONE
    secondary_k: int = 50
    approximate: bool = False
    approximate_alpha: float = 1.0
    selection_rate: float = 0.0
    proto_hubness_mode: ProtoHubnessMode = ProtoHubnessMode.UNBIASED
    num_common_threads: int = 1
    keep_all_evaluations: bool = True
    random_state: Optional[int] = None

    def __post_init__(self):
        """Accept plain strings for the enumerated fields."""
        if isinstance(self.k_mode, str):
            self.k_mode = KMode(self.k_mode.lower())
        if isinstance(self.secondary_distance, str):
            self.secondary_distance = SecondaryDistance(self.secondary_distance.lower())
        if isinstance(self.proto_hubness_mode, str):
            self.proto_hubness_mode = ProtoHubnessMode(self.proto_hubness_mode.lower())

    @property
    def k_range(self) -> Tuple[int, int]:
        """Lower and upper neighborhood size considered by the run."""
        if self.k_mode == KMode.SINGLE:
            return self.k, self.k
        return self.k_min, self.k_max

    @property
    def total_tests(self) -> int:
        """Number of (repetition, fold) trials."""
        return self.times * self.num_folds


class BaseEvaluator(ABC):
    """Base class for all evaluators in hubnessCV."""

    def __init__(self, config: CVConfig):
        self.config = config
        self.results_ = None

    @abstractmethod
    def evaluate(self, *args, **kwargs) -> Any:
        """Run the evaluation."""
        pass

    def get_results(self) -> Any:
        """Get evaluation results."""
        return self.results_

    def get_parameters(self) -> Dict[str, Any]:
        """Parameters of the evaluator, enum values rendered as strings."""
        params = {}
        for key, value in vars(self.config).items():
            params[key] = value.value if isinstance(value, Enum) else value
        return params
