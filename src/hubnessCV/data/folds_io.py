"""
Fold assignment persistence.

Folds are stored as a JSON document::

    {"allFolds": [[[...], ...], ...], "numTimes": t, "numFolds": f}
"""

import json
from pathlib import Path
from typing import Union

from ..core.base import FoldConfigurationError
from ..core.fold_generator import FoldAssignment
from ..utils.logger import get_logger

logger = get_logger("FoldsIO")


def save_folds(folds: FoldAssignment, path: Union[str, Path]) -> None:
    """Write a fold assignment to a JSON file."""
    path = Path(path)
    path.parent.mkdir(parents=True, exist_ok=True)
    document = {
        "allFolds": folds.to_lists(),
        "numTimes": folds.times,
        "numFolds": folds.num_folds,
    }
    with open(path, 'w', encoding='utf-8') as f:
        json.dump(document, f)
    logger.info(f"Saved {folds.times} x {folds.num_folds} folds to {path}")


def load_folds(path: Union[str, Path]) -> FoldAssignment:
    """
    Read a fold assignment from a JSON file.

    Only the top-level shape is checked here: the declared numbers of
    repetitions and folds must match the stored lists. Whether the folds
    partition the dataset is checked when a run uses them.

    Raises:
        FileNotFoundError: If the file does not exist
        FoldConfigurationError: If the document is malformed
    """
    path = Path(path)
    if not path.exists():
        raise FileNotFoundError(f"Folds file not found: {path}")

    with open(path, 'r', encoding='utf-8') as f:
        try:
            document = json.load(f)
        except json.JSONDecodeError as e:
            raise FoldConfigurationError(f"Folds file {path} is not valid JSON: {e}") from e

    if not isinstance(document, dict):
        raise FoldConfigurationError(f"Folds file {path} must contain a JSON object")
    missing = [key for key in ("allFolds", "numTimes", "numFolds") if key not in document]
    if missing:
        raise FoldConfigurationError(f"Folds file {path} is missing {missing}")

    all_folds = document["allFolds"]
    num_times = document["numTimes"]
    num_folds = document["numFolds"]
    if not isinstance(all_folds, list) or len(all_folds) != num_times:
        raise FoldConfigurationError(
            f"Folds file {path} declares {num_times} repetitions but stores "
            f"{len(all_folds) if isinstance(all_folds, list) else 'none'}"
        )
    for r, repetition in enumerate(all_folds):
        if not isinstance(repetition, list) or len(repetition) != num_folds:
            raise FoldConfigurationError(
                f"Repetition {r} in {path} does not hold {num_folds} folds"
            )

    logger.info(f"Loaded {num_times} x {num_folds} folds from {path}")
    return FoldAssignment(all_folds)
