"""
Evaluation pipeline for hubnessCV.

Loads the data, runs the repeated cross-validation of the configured
classifiers and writes the reports.
"""

import argparse
from pathlib import Path
from typing import Any, Dict

from ..config import DEFAULT_CONFIG
from ..core.cv_evaluator import MultiCrossValidation
from ..data.folds_io import load_folds, save_folds
from ..data.loader import DataLoader
from ..data.validator import DataValidator
from ..evaluation.reporter import ResultsReporter
from ..models import BaseModel, ModelFactory
from ..preprocessing.instance_selection import create_instance_selector
from ..utils.config import ConfigManager
from ..utils.helpers import ensure_directory
from ..utils.logger import get_logger


def build_config_manager(args: argparse.Namespace) -> ConfigManager:
    """Layer defaults, the optional configuration file and command line options."""
    manager = ConfigManager()
    manager.load_from_dict({key: value for key, value in DEFAULT_CONFIG.items() if key != 'logging'})

    config_file = getattr(args, 'config_file', None)
    if config_file:
        manager.load_from_file(config_file)

    manager.update_config(
        times=getattr(args, 'times', None),
        num_folds=getattr(args, 'num_folds', None),
        k=getattr(args, 'k', None),
        k_min=getattr(args, 'k_min', None),
        k_max=getattr(args, 'k_max', None),
        k_mode=getattr(args, 'k_mode', None),
        random_state=getattr(args, 'seed', None),
        secondary_distance=getattr(args, 'secondary_distance', None),
        secondary_k=getattr(args, 'secondary_k', None),
        approximate=getattr(args, 'approximate', None),
        approximate_alpha=getattr(args, 'approximate_alpha', None),
        reducer=getattr(args, 'reducer', None),
        selection_rate=getattr(args, 'selection_rate', None),
        proto_hubness_mode=getattr(args, 'proto_hubness_mode', None),
        num_common_threads=getattr(args, 'threads', None),
        keep_all_evaluations=getattr(args, 'keep_all_evaluations', None),
    )
    return manager


def create_classifiers(classifier_configs: Dict[str, Dict[str, Any]]) -> Dict[str, BaseModel]:
    """
    Instantiate the configured classifiers.

    The optional ``model`` entry of a configuration names the classifier
    type, so one type can be evaluated under several names and settings.
    """
    classifiers = {}
    for name, params in classifier_configs.items():
        params = dict(params or {})
        model_name = params.pop('model', name)
        classifiers[name] = ModelFactory.create_model(model_name, **params)
    return classifiers


def handle_evaluate(args: argparse.Namespace) -> None:
    """Handle the evaluate command."""
    logger = get_logger("EvaluatePipeline")
    logger.info("Starting evaluation pipeline...")

    if not getattr(args, 'labels', None):
        raise ValueError("A labels file is required (--labels)")
    if not getattr(args, 'distances', None) and not getattr(args, 'features', None):
        raise ValueError("Either --distances or --features is required")

    manager = build_config_manager(args)
    if getattr(args, 'output', None):
        manager.update_config(output_dir=args.output)
    config = manager.get_config()

    # 1. Load and validate data
    data_loader = DataLoader()
    distances, dataset = data_loader.load_dataset(
        labels_path=args.labels,
        distances_path=getattr(args, 'distances', None),
        features_path=getattr(args, 'features', None),
        metric=getattr(args, 'metric', 'euclidean'),
        label_column=getattr(args, 'label_column', None),
        n_jobs=config.num_common_threads
    )
    DataValidator().validate(distances, dataset, config.num_folds)
    logger.info(f"Data loaded: {len(dataset)} instances, {dataset.num_classes} classes")

    test_labels = None
    if getattr(args, 'test_labels', None):
        test_labels = data_loader.load_test_labels(
            args.test_labels,
            class_names=dataset.class_names,
            instance_names=dataset.instance_names,
            column=getattr(args, 'label_column', None)
        )
        logger.info(f"Scoring test folds against the labels in {args.test_labels}")

    # 2. Classifiers and instance selection
    classifier_configs = config.classifiers
    if getattr(args, 'classifiers', None):
        classifier_configs = {name: config.classifiers.get(name, {}) for name in args.classifiers}
    classifiers = create_classifiers(classifier_configs)

    reducer = None
    if config.reducer:
        reducer_params = {'random_state': config.random_state} if config.reducer == 'random' else {}
        reducer = create_instance_selector(config.reducer, **reducer_params)
        logger.info(f"Instance selection: {config.reducer}")

    folds = load_folds(args.folds_file) if getattr(args, 'folds_file', None) else None

    # 3. Cross-validation
    evaluator = MultiCrossValidation(manager.to_cv_config(), classifiers, reducer=reducer)
    results = evaluator.evaluate(distances, dataset, folds=folds, test_labels=test_labels)

    # 4. Reports
    output_dir = ensure_directory(config.output_dir)
    ResultsReporter().write_all(results, output_dir, dataset.instance_names)
    manager.save_to_file(output_dir / 'config.yaml')
    if getattr(args, 'save_folds', None):
        save_folds(results.folds, Path(args.save_folds))

    logger.info(f"Evaluation pipeline completed, results in {output_dir}")
