"""
Data handling modules for hubnessCV.

This module contains the dataset description, data loading, validation and
fold persistence utilities.
"""

from .dataset import LabeledDataset
from .loader import DataLoader
from .validator import DataValidator
from .folds_io import load_folds, save_folds

__all__ = [
    "LabeledDataset",
    "DataLoader",
    "DataValidator",
    "load_folds",
    "save_folds",
]
