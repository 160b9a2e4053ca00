"""
Command line interface for hubnessCV.
"""

from .argument_parser import comma_separated_items, create_argument_parser, parse_arguments, str2bool

__all__ = [
    "comma_separated_items",
    "create_argument_parser",
    "parse_arguments",
    "str2bool",
]
