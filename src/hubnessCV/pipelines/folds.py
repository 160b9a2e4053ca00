"""
Fold generation pipeline for hubnessCV.

Generates a stratified fold assignment for a labels file so several runs can
share the same folds.
"""

import argparse

from ..core.fold_generator import StratifiedFoldGenerator
from ..data.folds_io import save_folds
from ..data.loader import DataLoader
from ..utils.logger import get_logger
from .evaluate import build_config_manager


def handle_folds(args: argparse.Namespace) -> None:
    """Handle the folds command."""
    logger = get_logger("FoldsPipeline")

    if not getattr(args, 'labels', None):
        raise ValueError("A labels file is required (--labels)")

    config = build_config_manager(args).get_config()
    dataset = DataLoader().load_labels(args.labels, column=getattr(args, 'label_column', None))
    if len(dataset) < config.num_folds:
        raise ValueError(f"Cannot split {len(dataset)} instances into {config.num_folds} folds")

    generator = StratifiedFoldGenerator(config.times, config.num_folds, random_state=config.random_state)
    folds = generator.generate(dataset.labels, dataset.num_classes)
    save_folds(folds, args.output)
    logger.info(f"Fold assignment written to {args.output}")
