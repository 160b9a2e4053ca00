"""
Argument parser for hubnessCV.

Two subcommands are available: ``evaluate`` runs the repeated
cross-validation, ``folds`` only generates and saves a fold assignment.
"""

import argparse
from typing import List, Optional

import yaml

from ..core.base import KMode, ProtoHubnessMode, SecondaryDistance


def str2bool(v):
    """Convert a string to a boolean."""
    if isinstance(v, bool):
        return v
    if v.lower() in ('yes', 'true', 't', 'y', '1'):
        return True
    elif v.lower() in ('no', 'false', 'f', 'n', '0'):
        return False
    else:
        raise argparse.ArgumentTypeError('Boolean value expected.')


def comma_separated_items(value: str) -> List[str]:
    """Parse a comma separated string into a list."""
    if not value:
        return []
    return [item.strip() for item in value.split(',') if item.strip()]


def create_argument_parser() -> argparse.ArgumentParser:
    """Create the CLI parser with the evaluate and folds subcommands."""
    parser = argparse.ArgumentParser(
        description="hubnessCV - repeated cross-validation for kNN-based classifiers",
        formatter_class=argparse.ArgumentDefaultsHelpFormatter
    )

    subparsers = parser.add_subparsers(dest='command', required=True)

    def add_common_options(p):
        """Options shared by every subcommand."""
        p.add_argument('--labels', type=str, required=False, default=None,
                       help="Labels file (first column: instance name)")
        p.add_argument('--label_column', type=str, required=False, default=None,
                       help="Label column name (default: first data column)")
        p.add_argument('--times', type=int, required=False, default=None,
                       help="Number of cross-validation repetitions")
        p.add_argument('--num_folds', type=int, required=False, default=None,
                       help="Number of folds per repetition")
        p.add_argument('--seed', type=int, required=False, default=None,
                       help="Random seed for fold generation and selection")
        p.add_argument('--config', type=str, required=False, default=None,
                       help="YAML configuration file (optional, overrides defaults)")
        p.add_argument('--log_file', type=str, required=False, default=None,
                       help="Also write the log to this file")
        p.add_argument('--verbose', type=str2bool, required=False, default=False,
                       help="Print tracebacks of failed commands")

    # evaluate
    evaluate_p = subparsers.add_parser('evaluate', help='Run repeated cross-validation of the classifiers')
    add_common_options(evaluate_p)

    evaluate_p.add_argument('--distances', type=str, required=False, default=None,
                            help="Distance matrix file (.npy, .csv, .tsv)")
    evaluate_p.add_argument('--features', type=str, required=False, default=None,
                            help="Feature table used to compute distances when no matrix is given")
    evaluate_p.add_argument('--test_labels', type=str, required=False, default=None,
                            help="Ground truth labels for the test folds, read like --labels (default: the labels)")
    evaluate_p.add_argument('--metric', type=str, required=False, default='euclidean',
                            help="Metric for distances computed from features")
    evaluate_p.add_argument('--folds_file', type=str, required=False, default=None,
                            help="JSON fold assignment to reuse instead of generating folds")
    evaluate_p.add_argument('--save_folds', type=str, required=False, default=None,
                            help="Write the fold assignment used by the run to this JSON file")
    evaluate_p.add_argument('--classifiers', type=comma_separated_items, required=False, default=None,
                            help="Classifiers to evaluate (comma separated, e.g. knn,hwknn)")

    # k
    evaluate_p.add_argument('--k', type=int, required=False, default=None,
                            help="Neighborhood size")
    evaluate_p.add_argument('--k_mode', type=str, required=False, default=None,
                            choices=[mode.value for mode in KMode],
                            help="single: fixed k; interval: classifiers choose k in [k_min, k_max]")
    evaluate_p.add_argument('--k_min', type=int, required=False, default=None,
                            help="Lower end of the k interval")
    evaluate_p.add_argument('--k_max', type=int, required=False, default=None,
                            help="Upper end of the k interval")

    # Neighbor graph and secondary distances
    evaluate_p.add_argument('--secondary_distance', type=str, required=False, default=None,
                            choices=[kind.value for kind in SecondaryDistance],
                            help="Secondary distance computed per training fold")
    evaluate_p.add_argument('--secondary_k', type=int, required=False, default=None,
                            help="Neighborhood size of the secondary distance")
    evaluate_p.add_argument('--approximate', type=str2bool, required=False, default=None,
                            help="Build the global kNN graph approximately")
    evaluate_p.add_argument('--approximate_alpha', type=float, required=False, default=None,
                            help="Quality parameter of the approximate graph, in (0, 1]")

    # Instance selection
    evaluate_p.add_argument('--reducer', type=str, required=False, default=None,
                            choices=['random', 'enn', 'wilson72', 'insight'],
                            help="Instance selector applied to every training fold")
    evaluate_p.add_argument('--selection_rate', type=float, required=False, default=None,
                            help="Fraction of training points kept as prototypes (0: automatic)")
    evaluate_p.add_argument('--proto_hubness_mode', type=str, required=False, default=None,
                            choices=[mode.value for mode in ProtoHubnessMode],
                            help="How prototype hubness is estimated")

    # Execution and output
    evaluate_p.add_argument('--threads', type=int, required=False, default=None,
                            help="Threads for shared computations such as the kNN graph")
    evaluate_p.add_argument('--keep_all_evaluations', type=str2bool, required=False, default=None,
                            help="Keep the estimates of every fold")
    evaluate_p.add_argument('--output', type=str, required=False, default=None,
                            help="Output directory")

    # folds
    folds_p = subparsers.add_parser('folds', help='Generate a stratified fold assignment and save it as JSON')
    add_common_options(folds_p)
    folds_p.add_argument('--output', type=str, required=False, default='folds.json',
                         help="Output JSON file")

    return parser


def parse_arguments(argv: Optional[List[str]] = None) -> argparse.Namespace:
    """Parse command line arguments."""
    parser = create_argument_parser()
    args = parser.parse_args(argv)

    # Values of the YAML file fill options left unset on the command line;
    # nested sections are applied later through ConfigManager
    cfg_path = getattr(args, 'config', None)
    if cfg_path:
        setattr(args, 'config_file', cfg_path)
        try:
            with open(cfg_path, 'r', encoding='utf-8') as f:
                cfg = yaml.safe_load(f) or {}
        except (OSError, yaml.YAMLError) as e:
            raise ValueError(f"Failed to load YAML config: {e}") from e
        if not isinstance(cfg, dict):
            raise ValueError(f"YAML config {cfg_path} must contain a mapping")

        data_paths = cfg.get('data_paths') or {}
        for key, value in data_paths.items():
            if getattr(args, key, None) is None:
                setattr(args, key, value)
        for key, value in cfg.items():
            if isinstance(value, dict):
                continue
            if getattr(args, key, None) is None:
                setattr(args, key, value)

    return args
