#!/usr/bin/env python3
"""
hubnessCV - repeated cross-validation for kNN-based classifiers.

Supported commands:
- evaluate: run the cross-validation and write the reports
- folds: generate a fold assignment and save it as JSON
"""

import logging
import os
import random
import sys
from datetime import datetime
from typing import List, Optional

import numpy as np

from hubnessCV.cli.argument_parser import parse_arguments
from hubnessCV.config import DEFAULT_CONFIG
from hubnessCV.utils.logger import setup_logging


def set_global_seed(seed: int = 42):
    """Seed the global random sources for reproducibility."""
    random.seed(seed)
    np.random.seed(seed)
    os.environ['PYTHONHASHSEED'] = str(seed)


def main(argv: Optional[List[str]] = None) -> None:
    """Main entry point, dispatches to the command handlers."""
    args = parse_arguments(argv)

    handlers = {
        'evaluate': lambda a: __import__('hubnessCV.pipelines.evaluate', fromlist=['handle_evaluate']).handle_evaluate(a),
        'folds': lambda a: __import__('hubnessCV.pipelines.folds', fromlist=['handle_folds']).handle_folds(a),
    }

    cmd = getattr(args, 'command', None)
    handler = handlers.get(cmd)

    if handler is None:
        raise ValueError(f"Unknown command: {cmd}. Supported commands: {', '.join(handlers.keys())}")

    seed = getattr(args, 'seed', None)
    set_global_seed(42 if seed is None else seed)

    log_config = DEFAULT_CONFIG['logging']
    setup_logging(
        level=getattr(logging, str(log_config['level']).upper(), logging.INFO),
        log_file=getattr(args, 'log_file', None) or log_config['file'],
        log_format=log_config['format']
    )

    start_time = datetime.now()
    sys.stdout.write(f"================================================================================\n"
                     f"hubnessCV run\n"
                     f"================================================================================\n"
                     f"Start time: {start_time.strftime('%Y-%m-%d %H:%M:%S')}\n"
                     f"Command: {cmd.upper()}\n"
                     f"Working directory: {os.getcwd()}\n"
                     f"================================================================================\n")
    sys.stdout.flush()

    try:
        handler(args)

        end_time = datetime.now()
        sys.stdout.write(f"\n{cmd.upper()} completed\n"
                         f"End time: {end_time.strftime('%Y-%m-%d %H:%M:%S')}\n"
                         f"Duration: {end_time - start_time}\n"
                         f"================================================================================\n")
        sys.stdout.flush()

    except KeyboardInterrupt:
        sys.stdout.write(f"\n{cmd.upper()} interrupted by user\n")
        sys.exit(130)
    except FileNotFoundError as e:
        sys.stdout.write(f"\nFile not found: {e}\n")
        sys.exit(2)
    except ValueError as e:
        sys.stdout.write(f"\nInvalid argument: {e}\n")
        sys.exit(3)
    except ImportError as e:
        sys.stdout.write(f"\nImport error: {e}\n")
        sys.stdout.write("Check that the dependencies are installed\n")
        sys.exit(4)
    except Exception as e:
        sys.stdout.write(f"\n{cmd.upper()} failed: {e}\n")
        if getattr(args, 'verbose', False):
            import traceback
            sys.stdout.write("\nTraceback:\n")
            traceback.print_exc()
        sys.exit(1)


if __name__ == "__main__":
    main()
