"""
Utility modules for hubnessCV.

This module contains logging, configuration and helper utilities.
"""

from .logger import get_logger, setup_logging
from .config import Config, ConfigManager
from .helpers import ensure_directory, save_object, load_object, format_time

__all__ = [
    "get_logger",
    "setup_logging",
    "Config",
    "ConfigManager",
    "ensure_directory",
    "save_object",
    "load_object",
    "format_time",
]
