"""
Command pipelines for hubnessCV.

Each pipeline implements one CLI subcommand.
"""

from .evaluate import build_config_manager, create_classifiers, handle_evaluate
from .folds import handle_folds

__all__ = [
    "build_config_manager",
    "create_classifiers",
    "handle_evaluate",
    "handle_folds",
]
