"""
Function registry for function terms.

Maps callee names to scalar callables that the matrix generator applies row by
row. Includes the arithmetic operators that appear inside function arguments
(``log(x + 1)``) and common math functions; user functions are added with
``register_function`` or passed per call through a ``functions`` mapping.
"""

import operator
from typing import Any, Callable, Dict, Mapping, Optional, Tuple

import numpy as np

from ..core.exceptions import ConfigurationError, UnknownFunctionError


# Identity wrappers whose argument is evaluated as arithmetic, never as formula
# operators
PROTECT_CALLEES = ("protect", "I")


def _identity(x):
    return x


_registry: Dict[str, Callable[..., Any]] = {
    # arithmetic inside function arguments
    "+": operator.add,
    "-": operator.sub,
    "*": operator.mul,
    "/": operator.truediv,
    "^": np.power,
    "neg": operator.neg,
    # math
    "log": np.log,
    "log1p": np.log1p,
    "log2": np.log2,
    "log10": np.log10,
    "exp": np.exp,
    "sqrt": np.sqrt,
    "abs": np.abs,
    "sin": np.sin,
    "cos": np.cos,
    "tan": np.tan,
    "pow": np.power,
    "min": min,
    "max": max,
}

for _callee in PROTECT_CALLEES:
    _registry[_callee] = _identity


def register_function(name: str, fn: Callable[..., Any]) -> None:
    """Register a scalar function usable as ``name(...)`` in formulas."""
    if not name or not callable(fn):
        raise ConfigurationError(config_key=f"functions.{name}", detail="expected a name and a callable")
    if name in PROTECT_CALLEES:
        raise ConfigurationError(config_key=f"functions.{name}", detail=f"'{name}' is reserved")
    _registry[name] = fn


def unregister_function(name: str) -> None:
    if name in PROTECT_CALLEES:
        raise ConfigurationError(config_key=f"functions.{name}", detail=f"'{name}' is reserved")
    _registry.pop(name, None)


def lookup_function(name: str, functions: Optional[Mapping[str, Callable[..., Any]]] = None) -> Callable[..., Any]:
    """Find a callee, checking the per-call mapping before the registry."""
    if functions and name in functions:
        return functions[name]
    try:
        return _registry[name]
    except KeyError:
        available = set(_registry) | set(functions or ())
        raise UnknownFunctionError(name, available=available) from None


def is_registered(name: str) -> bool:
    return name in _registry


def registered_functions() -> Tuple[str, ...]:
    return tuple(sorted(_registry))
