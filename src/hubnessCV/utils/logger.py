"""
Logging utilities for hubnessCV.

Every component obtains its logger through ``get_logger`` so that console
output shares one format; the CLI calls ``setup_logging`` once to add a file
handler on the root logger.
"""

import logging
import sys
from typing import Optional, Union
from pathlib import Path

LOG_FORMAT = '%(asctime)s | %(levelname)s | %(name)s:%(lineno)d | %(message)s'
DATE_FORMAT = '%Y-%m-%d %H:%M:%S'


def get_logger(name: str, level: int = logging.INFO) -> logging.Logger:
    """
    Get a logger instance for the given name.

    Args:
        name: Logger name, usually the component class name
        level: Logging level

    Returns:
        Logger instance
    """
    logger = logging.getLogger(name)

    if not logger.handlers:
        console_handler = logging.StreamHandler(sys.stdout)
        console_handler.setLevel(level)
        console_handler.setFormatter(logging.Formatter(LOG_FORMAT, datefmt=DATE_FORMAT))

        logger.addHandler(console_handler)
        logger.setLevel(level)

        # Records still reach the root logger, where setup_logging may attach a file
        logger.propagate = True

    return logger


def setup_logging(
    level: int = logging.INFO,
    log_file: Optional[Union[str, Path]] = None,
    log_format: Optional[str] = None
) -> None:
    """
    Setup logging configuration for the whole application.

    Component loggers already write to the console, so the root logger only
    receives a file handler here.

    Args:
        level: Logging level
        log_file: Optional log file path
        log_format: Optional custom log format
    """
    if log_format is None:
        log_format = LOG_FORMAT

    root_logger = logging.getLogger()
    root_logger.setLevel(level)

    if log_file:
        log_file = Path(log_file)
        log_file.parent.mkdir(parents=True, exist_ok=True)
        file_handler = logging.FileHandler(log_file, encoding='utf-8')
        file_handler.setLevel(level)
        file_handler.setFormatter(logging.Formatter(log_format, datefmt=DATE_FORMAT))
        root_logger.addHandler(file_handler)
