"""Utility functions and classes for modelterms."""

from .logging import get_logger, setup_logging
from .validation import validate_array_dimensions, validate_column_names

__all__ = [
    "get_logger",
    "setup_logging",
    "validate_array_dimensions",
    "validate_column_names",
]
