"""
Default configuration for hubnessCV.

This module contains the default configuration settings. Section names only
group related keys; ``ConfigManager`` flattens them onto ``Config``.
"""

DEFAULT_CONFIG = {
    # Cross-validation configuration
    "cv": {
        "times": 10,
        "num_folds": 10,
        "k": 5,
        "k_min": 1,
        "k_max": 20,
        "k_mode": "single",
        "random_state": 42
    },

    # Neighbor graph and secondary distances
    "neighbors": {
        "secondary_distance": "none",
        "secondary_k": 50,
        "approximate": False,
        "approximate_alpha": 1.0
    },

    # Instance selection
    "selection": {
        "reducer": None,
        "selection_rate": 0.0,
        "proto_hubness_mode": "unbiased"
    },

    # Classifiers and their parameters
    "classifiers": {
        "knn": {"k": 5},
        "hwknn": {"k": 5},
        "zerorule": {}
    },

    # Execution configuration
    "execution": {
        "num_common_threads": 1,
        "keep_all_evaluations": True
    },

    # Output configuration
    "output": {
        "output_dir": "./results",
        "verbose": True
    },

    # Logging configuration
    "logging": {
        "level": "INFO",
        "format": "%(asctime)s | %(levelname)s | %(name)s:%(lineno)d | %(message)s",
        "file": None
    }
}
