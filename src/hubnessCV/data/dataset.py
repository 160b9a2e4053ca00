"""
Labeled dataset description used by the cross-validation engine.
"""

from typing import List, Optional, Sequence
from dataclasses import dataclass
import numpy as np


@dataclass
class LabeledDataset:
    """Ordered instance labels in ``[0, num_classes)``, plus optional names."""
    labels: np.ndarray
    num_classes: Optional[int] = None
    instance_names: Optional[List[str]] = None
    class_names: Optional[List[str]] = None

    def __post_init__(self):
        self.labels = np.asarray(self.labels, dtype=np.intp)
        if self.labels.ndim != 1:
            raise ValueError("Labels must be a one-dimensional array")
        if len(self.labels) and self.labels.min() < 0:
            raise ValueError("Labels must be non-negative class indices")
        inferred = int(self.labels.max()) + 1 if len(self.labels) else 0
        if self.num_classes is None:
            self.num_classes = inferred
        elif inferred > self.num_classes:
            raise ValueError(f"Found label {inferred - 1} but num_classes is {self.num_classes}")
        self.labels.setflags(write=False)

    def __len__(self) -> int:
        return len(self.labels)

    def class_counts(self) -> np.ndarray:
        """Number of instances per class."""
        return np.bincount(self.labels, minlength=self.num_classes)

    def labels_of(self, indices: Sequence[int]) -> np.ndarray:
        """Labels of a subset of instances."""
        return self.labels[np.asarray(indices, dtype=np.intp)]
