"""
Validation utilities for modelterms.

Consistency checks applied to generated column blocks before they are returned.
"""

import numpy as np
from typing import Optional, Sequence, Tuple
from ..core.exceptions import ValidationError


def validate_array_dimensions(
    array: np.ndarray,
    expected_shape: Optional[Tuple[Optional[int], ...]] = None,
    name: str = "array"
) -> None:
    """
    Validate array dimensions.

    Args:
        array: Array to validate
        expected_shape: Expected exact shape (None entries are ignored)
        name: Name for error messages

    Raises:
        ValidationError: If validation fails
    """
    if not hasattr(array, 'shape'):
        raise ValidationError(
            f"{name} must be an array-like object with shape attribute",
            suggestions=[
                "Ensure generated columns are numpy arrays",
            ]
        )

    shape = array.shape
    if expected_shape is None:
        return

    if len(expected_shape) != len(shape):
        raise ValidationError(
            f"{name} has {len(shape)} dimensions, expected {len(expected_shape)}",
            suggestions=[
                f"Expected shape: {expected_shape}",
                f"Actual shape: {shape}",
            ]
        )

    for i, (actual, expected) in enumerate(zip(shape, expected_shape)):
        if expected is not None and actual != expected:
            raise ValidationError(
                f"{name} dimension {i} has size {actual}, expected {expected}",
                suggestions=[
                    f"Expected shape: {expected_shape}",
                    f"Actual shape: {shape}",
                ]
            )


def validate_column_names(matrix: np.ndarray, names: Sequence[str], name: str = "model matrix") -> None:
    """Check that there is exactly one name per generated column."""
    validate_array_dimensions(matrix, (None, len(names)), name=name)
    if len(set(names)) != len(names):
        seen = set()
        repeated = [n for n in names if n in seen or seen.add(n)]
        raise ValidationError(
            f"{name} has repeated column names: {sorted(set(repeated))}",
            suggestions=[
                "Repeated names usually mean colinear columns",
                "Remove duplicated terms from the formula",
            ]
        )
