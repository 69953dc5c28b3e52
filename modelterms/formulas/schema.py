"""
Schema extraction.

Classifies every variable a formula references as continuous or categorical by
inspecting the table, and records what resolution needs: summary statistics
for continuous variables and the ordered level set for categorical ones.
"""

import hashlib
from dataclasses import dataclass, field
from typing import Any, Dict, Iterator, Mapping, Optional, Sequence, Tuple, Union

import numpy as np
import pandas as pd

from .contrasts import ContrastScheme, get_contrasts
from .terms import Term, term_variables
from ..config.settings import LevelOrder, ModelTermsConfig, get_default_config
from ..core.exceptions import SchemaMismatchError, TypeCoercionError, UnknownColumnError
from ..data.tables import NUMERIC, as_table
from ..utils.logging import get_logger, log_function_call


logger = get_logger(__name__)

CONTINUOUS = "continuous"
CATEGORICAL = "categorical"

HintValue = Union[str, ContrastScheme, type]


@dataclass(frozen=True)
class Continuous:
    """Schema entry for a numeric variable."""

    name: str
    mean: float = field(default=np.nan, compare=False)
    stdev: float = field(default=np.nan, compare=False)
    minimum: float = field(default=np.nan, compare=False)
    maximum: float = field(default=np.nan, compare=False)

    kind = CONTINUOUS


@dataclass(frozen=True)
class Categorical:
    """
    Schema entry for a discrete variable.

    ``contrasts`` is set when a hint named the coding scheme; the resolver
    prefers it over the configured default.
    """

    name: str
    levels: Tuple[Any, ...]
    contrasts: Optional[ContrastScheme] = field(default=None, compare=False)

    kind = CATEGORICAL


SchemaEntry = Union[Continuous, Categorical]


class Schema(Mapping):
    """Read-only mapping from variable name to schema entry."""

    def __init__(self, entries: Optional[Mapping[str, SchemaEntry]] = None):
        self._entries: Dict[str, SchemaEntry] = dict(entries or {})

    def __getitem__(self, name: str) -> SchemaEntry:
        return self._entries[name]

    def __iter__(self) -> Iterator[str]:
        return iter(self._entries)

    def __len__(self) -> int:
        return len(self._entries)

    def __repr__(self) -> str:
        body = ", ".join(f"{name}: {entry.kind}" for name, entry in self._entries.items())
        return f"Schema({{{body}}})"

    def fingerprint(self) -> str:
        """Stable digest of names, kinds and levels for external memoization."""
        digest = hashlib.sha256()
        for name in sorted(self._entries):
            entry = self._entries[name]
            digest.update(repr((name, entry.kind, getattr(entry, "levels", None))).encode("utf-8"))
        return digest.hexdigest()

    def merge(self, other: Mapping[str, SchemaEntry]) -> "Schema":
        """Combine two schemas; entries already present here take precedence."""
        merged = dict(self._entries)
        for name, entry in other.items():
            existing = merged.get(name)
            if existing is None:
                merged[name] = entry
            elif existing.kind != entry.kind:
                raise SchemaMismatchError(name, expected=existing.kind, found=entry.kind)
        return Schema(merged)


def is_missing(value: Any) -> bool:
    """True for None, NaN and pandas missing markers."""
    return value is None or (pd.api.types.is_scalar(value) and bool(pd.isna(value)))


def as_level(value: Any) -> Any:
    """Convert numpy scalars to plain Python values so levels compare cleanly."""
    return value.item() if isinstance(value, np.generic) else value


def collect_levels(
    values: Sequence[Any],
    categories: Optional[Sequence[Any]] = None,
    level_order: str = LevelOrder.SORTED,
) -> Tuple[Any, ...]:
    """
    Distinct non-missing values in canonical order.

    A declared category order wins (restricted to observed values). Otherwise
    values are sorted, falling back to first occurrence when they cannot be
    compared with each other.
    """
    observed = dict.fromkeys(as_level(v) for v in values if not is_missing(v))
    if categories is not None:
        return tuple(as_level(c) for c in categories if as_level(c) in observed)
    if level_order == LevelOrder.FIRST_OCCURRENCE:
        return tuple(observed)
    try:
        return tuple(sorted(observed))
    except TypeError:
        logger.debug("Levels are not mutually orderable, keeping first occurrence", levels=len(observed))
        return tuple(observed)


def continuous_entry(name: str, values: Sequence[Any]) -> Continuous:
    try:
        array = np.asarray(values, dtype=np.float64)
    except (TypeError, ValueError) as e:
        raise TypeCoercionError(name, detail=str(e)) from e

    finite = array[~np.isnan(array)]
    if finite.size == 0:
        return Continuous(name)
    return Continuous(
        name,
        mean=float(np.mean(finite)),
        stdev=float(np.std(finite)),
        minimum=float(np.min(finite)),
        maximum=float(np.max(finite)),
    )


def _hint_kind(hint: Optional[HintValue]) -> Tuple[Optional[str], Optional[ContrastScheme]]:
    if hint is None:
        return None, None
    if isinstance(hint, str) and hint in (CONTINUOUS, CATEGORICAL):
        return hint, None
    # any contrast scheme (name, class or instance) forces a categorical entry
    return CATEGORICAL, get_contrasts(hint)


@log_function_call
def extract_schema(
    term: Union[Term, Sequence[Term]],
    table: Any,
    hints: Optional[Mapping[str, HintValue]] = None,
    config: Optional[ModelTermsConfig] = None,
) -> Schema:
    """
    Extract a schema for the variables referenced by a term.

    Args:
        term: Formula, term or tuple of terms
        table: A Table, pandas DataFrame or mapping of columns
        hints: Optional per-variable "continuous", "categorical" or contrast scheme
        config: Configuration (defaults to the global configuration)

    Returns:
        Schema with one entry per referenced variable, in first-use order

    Raises:
        UnknownColumnError: If any referenced variable is missing from the table
        TypeCoercionError: If a variable forced continuous has non-numeric values
    """
    config = config or get_default_config()
    table = as_table(table)
    hints = hints or {}

    names = term_variables(term)
    missing = [name for name in names if not table.has_column(name)]
    if missing:
        raise UnknownColumnError(missing, table.column_names)

    entries: Dict[str, SchemaEntry] = {}
    for name in names:
        kind, scheme = _hint_kind(hints.get(name))
        if kind is None:
            kind = CONTINUOUS if table.column_kind(name) == NUMERIC else CATEGORICAL

        values = table.column_values(name)
        if kind == CONTINUOUS:
            entries[name] = continuous_entry(name, values)
        else:
            levels = collect_levels(values, table.column_categories(name), config.extraction.level_order)
            entries[name] = Categorical(name, levels, contrasts=scheme)

    logger.debug(
        f"Extracted schema for {len(entries)} variables",
        continuous=sum(e.kind == CONTINUOUS for e in entries.values()),
        categorical=sum(e.kind == CATEGORICAL for e in entries.values()),
    )
    return Schema(entries)
