"""Command-line argument handling."""

from .common import LOG_LEVELS, args_to_overrides, build_parser, parse_args

__all__ = ["LOG_LEVELS", "args_to_overrides", "build_parser", "parse_args"]
