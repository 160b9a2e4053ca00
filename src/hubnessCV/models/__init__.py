"""
Classifier implementations for hubnessCV.

This module contains the classifier capability contract and the reference
classifiers evaluated by the cross-validation engine.
"""

from .base_model import BaseModel, Capability
from .knn import KNNClassifier, weighted_vote
from .hwknn import HwKNNClassifier
from .zero_rule import ZeroRuleClassifier


class ModelFactory:
    """Factory for creating models."""

    @staticmethod
    def create_model(name: str, **params) -> BaseModel:
        """Create a classifier by name with the given parameters."""
        model_name = name.lower()

        if model_name == 'knn':
            return KNNClassifier(**params)
        elif model_name == 'hwknn':
            return HwKNNClassifier(**params)
        elif model_name in ('zerorule', 'zero_rule'):
            return ZeroRuleClassifier(**params)
        else:
            raise ValueError(f"Unknown model: {name}")


__all__ = [
    "BaseModel",
    "Capability",
    "KNNClassifier",
    "HwKNNClassifier",
    "ZeroRuleClassifier",
    "ModelFactory",
    "weighted_vote",
]
