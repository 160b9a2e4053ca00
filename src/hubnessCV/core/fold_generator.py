"""
Stratified fold generation for repeated cross-validation.
"""

from typing import List, Optional, Sequence
import numpy as np
from sklearn.utils import check_random_state

from .base import FoldConfigurationError
from ..utils.logger import get_logger


class FoldAssignment:
    """
    Fold membership for every repetition of a cross-validation run.

    ``folds[r][f]`` is the sorted array of instance indices held out in fold
    ``f`` of repetition ``r``.
    """

    def __init__(self, folds: Sequence[Sequence[Sequence[int]]]):
        self.folds: List[List[np.ndarray]] = [
            [np.sort(np.asarray(fold, dtype=np.intp)) for fold in repetition]
            for repetition in folds
        ]

    @property
    def times(self) -> int:
        """Number of repetitions."""
        return len(self.folds)

    @property
    def num_folds(self) -> int:
        """Number of folds per repetition."""
        return len(self.folds[0]) if self.folds else 0

    def test_indices(self, repetition: int, fold: int) -> np.ndarray:
        """Held-out indices of one fold."""
        return self.folds[repetition][fold]

    def training_indices(self, repetition: int, fold: int) -> np.ndarray:
        """Sorted union of all other folds of the repetition."""
        others = [idx for f, idx in enumerate(self.folds[repetition]) if f != fold]
        if not others:
            return np.zeros(0, dtype=np.intp)
        return np.sort(np.concatenate(others))

    def check_shape(self, times: int, num_folds: int) -> None:
        """Raise if the assignment is not ``times x num_folds``."""
        if self.times != times:
            raise FoldConfigurationError(
                f"Fold assignment has {self.times} repetitions, the run expects {times}"
            )
        for r, repetition in enumerate(self.folds):
            if len(repetition) != num_folds:
                raise FoldConfigurationError(
                    f"Repetition {r} has {len(repetition)} folds, the run expects {num_folds}"
                )

    def validate(self, num_instances: int) -> None:
        """Raise unless every repetition partitions ``range(num_instances)``."""
        for r, repetition in enumerate(self.folds):
            if not repetition:
                raise FoldConfigurationError(f"Repetition {r} contains no folds")
            merged = np.concatenate(repetition)
            if len(merged) and (merged.min() < 0 or merged.max() >= num_instances):
                raise FoldConfigurationError(
                    f"Repetition {r} refers to indices outside [0, {num_instances})"
                )
            counts = np.bincount(merged, minlength=num_instances)
            if not np.all(counts == 1):
                missing = int(np.sum(counts == 0))
                repeated = int(np.sum(counts > 1))
                raise FoldConfigurationError(
                    f"Repetition {r} is not a partition: {missing} indices missing, "
                    f"{repeated} indices repeated"
                )

    def to_lists(self) -> List[List[List[int]]]:
        """Plain nested lists, suitable for JSON."""
        return [[fold.tolist() for fold in repetition] for repetition in self.folds]

    def __eq__(self, other: object) -> bool:
        if not isinstance(other, FoldAssignment):
            return NotImplemented
        return self.to_lists() == other.to_lists()

    def __repr__(self) -> str:
        return f"FoldAssignment(times={self.times}, num_folds={self.num_folds})"


class StratifiedFoldGenerator:
    """
    Class-balanced fold generator.

    Within each repetition every class gets an independent random permutation
    of its members; the i-th member of class c (in dataset order) goes to fold
    ``(perm[c][i] + c) mod num_folds``. The class offset rotates the starting
    fold so the folds do not systematically collect the same class remainders.
    """

    def __init__(self, times: int, num_folds: int, random_state: Optional[int] = None):
        if times < 1:
            raise ValueError(f"times must be at least 1, got {times}")
        if num_folds < 2:
            raise ValueError(f"num_folds must be at least 2, got {num_folds}")
        self.times = times
        self.num_folds = num_folds
        self.random_state = random_state
        self.logger = get_logger("StratifiedFoldGenerator")

    def generate(self, labels: np.ndarray, num_classes: Optional[int] = None) -> FoldAssignment:
        """
        Generate the fold assignment.

        Args:
            labels: Class label of every instance, in [0, num_classes)
            num_classes: Number of classes, inferred from labels if omitted

        Returns:
            FoldAssignment of shape times x num_folds
        """
        labels = np.asarray(labels, dtype=np.intp)
        if num_classes is None:
            num_classes = int(labels.max()) + 1 if len(labels) else 0
        class_counts = np.bincount(labels, minlength=num_classes)
        rng = check_random_state(self.random_state)

        self.logger.info(
            f"Generating {self.times} x {self.num_folds} stratified folds "
            f"for {len(labels)} instances"
        )
        small = [c for c in range(num_classes) if 0 < class_counts[c] < self.num_folds]
        if small:
            self.logger.warning(f"Classes {small} have fewer instances than folds")

        folds = []
        for _ in range(self.times):
            permutations = [rng.permutation(int(count)) for count in class_counts]
            class_counter = np.zeros(num_classes, dtype=np.intp)
            target = np.empty(len(labels), dtype=np.intp)
            for index, label in enumerate(labels):
                target[index] = (permutations[label][class_counter[label]] + label) % self.num_folds
                class_counter[label] += 1
            folds.append([np.flatnonzero(target == f) for f in range(self.num_folds)])

        return FoldAssignment(folds)
