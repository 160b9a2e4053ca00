"""
Preprocessing modules for hubnessCV.

This module contains instance selection (prototype reduction) of training folds.
"""

from .instance_selection import (
    InstanceSelector,
    RandomSelector,
    Wilson72Selector,
    InsightSelector,
    create_instance_selector,
)

__all__ = [
    "InstanceSelector",
    "RandomSelector",
    "Wilson72Selector",
    "InsightSelector",
    "create_instance_selector",
]
