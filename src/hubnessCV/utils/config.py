"""
Configuration management for hubnessCV.

This module contains configuration loading and management utilities.
"""

from typing import Any, Dict, List, Optional, Union
import yaml
import json
from pathlib import Path
from dataclasses import dataclass, asdict, field

from .logger import get_logger


@dataclass
class Config:
    """Flat configuration for one evaluation run."""

    # Cross-validation configuration
    times: int = 10
    num_folds: int = 10
    k: int = 5
    k_min: int = 1
    k_max: int = 20
    k_mode: str = "single"
    random_state: Optional[int] = 42

    # Secondary distances
    secondary_distance: str = "none"
    secondary_k: int = 50

    # Approximate kNN graph
    approximate: bool = False
    approximate_alpha: float = 1.0

    # Instance selection
    reducer: Optional[str] = None
    selection_rate: float = 0.0
    proto_hubness_mode: str = "unbiased"

    # Classifiers, name -> parameters
    classifiers: Dict[str, Dict[str, Any]] = field(default_factory=dict)

    # Execution
    num_common_threads: int = 1
    keep_all_evaluations: bool = True

    # Data configuration
    data_paths: Dict[str, str] = field(default_factory=dict)
    output_dir: str = "./results"
    verbose: bool = True

    def __post_init__(self):
        """Replace explicit nulls coming from configuration files."""
        if self.classifiers is None:
            self.classifiers = {}
        if self.data_paths is None:
            self.data_paths = {}


class ConfigManager:
    """Configuration manager for hubnessCV."""

    def __init__(self):
        self.logger = get_logger("ConfigManager")
        self.config = Config()

    def load_from_file(self, config_path: Union[str, Path]) -> 'ConfigManager':
        """
        Load configuration from a file.

        Args:
            config_path: Path to a YAML or JSON configuration file

        Returns:
            Self for method chaining
        """
        config_path = Path(config_path)

        if not config_path.exists():
            raise FileNotFoundError(f"Configuration file not found: {config_path}")

        self.logger.info(f"Loading configuration from {config_path}")

        suffix = config_path.suffix.lower()
        if suffix in ('.yaml', '.yml'):
            self._load_yaml(config_path)
        elif suffix == '.json':
            self._load_json(config_path)
        else:
            raise ValueError(f"Unsupported configuration file format: {config_path.suffix}")

        return self

    def load_from_dict(self, config_data: Dict[str, Any]) -> 'ConfigManager':
        """Update configuration from a (possibly nested) dictionary."""
        self._update_config(config_data)
        return self

    def _load_yaml(self, config_path: Path) -> None:
        """Load configuration from YAML file."""
        with open(config_path, 'r', encoding='utf-8') as f:
            config_data = yaml.safe_load(f) or {}

        self._update_config(config_data)

    def _load_json(self, config_path: Path) -> None:
        """Load configuration from JSON file."""
        with open(config_path, 'r', encoding='utf-8') as f:
            config_data = json.load(f)

        self._update_config(config_data)

    def _update_config(self, config_data: Dict[str, Any]) -> None:
        """Update configuration with loaded data."""
        # Nested sections like {"cv": {...}} are flattened onto the dataclass
        for key, value in config_data.items():
            if isinstance(value, dict) and not hasattr(self.config, key):
                self._update_config(value)
            elif hasattr(self.config, key):
                setattr(self.config, key, value)
            else:
                self.logger.warning(f"Unknown configuration key: {key}")

        self.logger.info("Configuration loaded successfully")

    def save_to_file(self, config_path: Union[str, Path]) -> None:
        """
        Save configuration to a file.

        Args:
            config_path: Path to save configuration file
        """
        config_path = Path(config_path)
        config_path.parent.mkdir(parents=True, exist_ok=True)

        self.logger.info(f"Saving configuration to {config_path}")

        config_data = asdict(self.config)

        suffix = config_path.suffix.lower()
        if suffix in ('.yaml', '.yml'):
            with open(config_path, 'w', encoding='utf-8') as f:
                yaml.dump(config_data, f, default_flow_style=False, indent=2)
        elif suffix == '.json':
            with open(config_path, 'w', encoding='utf-8') as f:
                json.dump(config_data, f, indent=2)
        else:
            raise ValueError(f"Unsupported configuration file format: {config_path.suffix}")

        self.logger.info("Configuration saved successfully")

    def get_config(self) -> Config:
        """Get the current configuration."""
        return self.config

    def update_config(self, **kwargs) -> 'ConfigManager':
        """
        Update configuration with new values.

        ``None`` values are ignored so that unset CLI options keep the
        loaded configuration.

        Args:
            **kwargs: Configuration parameters to update

        Returns:
            Self for method chaining
        """
        for key, value in kwargs.items():
            if value is None:
                continue
            if hasattr(self.config, key):
                setattr(self.config, key, value)
            else:
                self.logger.warning(f"Unknown configuration key: {key}")

        return self

    def to_cv_config(self) -> 'CVConfig':
        """Build the engine configuration from the current values."""
        from ..core.base import CVConfig

        cfg = self.config
        return CVConfig(
            times=cfg.times,
            num_folds=cfg.num_folds,
            k=cfg.k,
            k_min=cfg.k_min,
            k_max=cfg.k_max,
            k_mode=cfg.k_mode,
            secondary_distance=cfg.secondary_distance,
            secondary_k=cfg.secondary_k,
            approximate=cfg.approximate,
            approximate_alpha=cfg.approximate_alpha,
            selection_rate=cfg.selection_rate,
            proto_hubness_mode=cfg.proto_hubness_mode,
            num_common_threads=cfg.num_common_threads,
            keep_all_evaluations=cfg.keep_all_evaluations,
            random_state=cfg.random_state,
        )

    def classifier_names(self) -> List[str]:
        """Names of the configured classifiers."""
        return list(self.config.classifiers.keys())
