"""
Contrast coding schemes for categorical terms.

A scheme maps the ordered levels of a categorical variable to a ``k x k'``
coding matrix, with ``k' = k - 1`` for reduced-rank schemes and ``k' = k`` for
full-rank ones. New schemes are added with ``@register_contrasts("name")``;
the resolver only needs ``full_rank`` and ``full_rank_variant()`` to apply its
rank promotion.
"""

from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from typing import Any, ClassVar, Dict, Optional, Sequence, Tuple, Type, Union

import numpy as np

from ..core.exceptions import AmbiguousCodingError, ConfigurationError


@dataclass(frozen=True)
class ContrastScheme(ABC):
    """Base class for contrast coding schemes."""

    full_rank: ClassVar[bool] = False
    scheme_name: ClassVar[str] = ""

    @abstractmethod
    def _coding_matrix(self, levels: Tuple[Any, ...]) -> np.ndarray:
        """Return the coding matrix for at least two levels."""

    def matrix(self, levels: Sequence[Any]) -> np.ndarray:
        levels = tuple(levels)
        _require_levels(levels)
        return np.asarray(self._coding_matrix(levels), dtype=np.float64)

    def column_labels(self, levels: Sequence[Any]) -> Tuple[str, ...]:
        """Labels of the generated columns; non-base levels by default."""
        levels = tuple(levels)
        base = self.base_index(levels)
        return tuple(str(level) for i, level in enumerate(levels) if i != base)

    def base_index(self, levels: Tuple[Any, ...]) -> int:
        base = getattr(self, "base", None)
        if base is None:
            return 0
        try:
            return levels.index(base)
        except ValueError:
            raise AmbiguousCodingError(
                levels=levels,
                reason=f"base level {base!r} of {type(self).__name__} is not among the levels",
            ) from None

    def full_rank_variant(self) -> "ContrastScheme":
        """Scheme used when the resolver promotes this variable to full rank."""
        if self.full_rank:
            return self
        return FullDummyCoding()

    @property
    def name(self) -> str:
        return self.scheme_name or type(self).__name__


@dataclass(frozen=True, eq=False)
class ContrastMatrix:
    """A scheme applied to concrete levels."""

    scheme: ContrastScheme
    levels: Tuple[Any, ...]
    matrix: np.ndarray = field(repr=False)
    column_labels: Tuple[str, ...]
    _index: Dict[Any, int] = field(init=False, repr=False)

    def __post_init__(self):
        object.__setattr__(self, "levels", tuple(self.levels))
        matrix = np.array(self.matrix, dtype=np.float64)
        matrix.setflags(write=False)
        object.__setattr__(self, "matrix", matrix)
        object.__setattr__(self, "_index", {level: i for i, level in enumerate(self.levels)})
        if matrix.shape[0] != len(self.levels) or matrix.shape[1] != len(self.column_labels):
            raise AmbiguousCodingError(
                levels=self.levels,
                reason=(
                    f"{self.scheme.name} produced a {matrix.shape} matrix for "
                    f"{len(self.levels)} levels and {len(self.column_labels)} labels"
                ),
            )

    @property
    def full_rank(self) -> bool:
        return self.scheme.full_rank

    @property
    def width(self) -> int:
        return self.matrix.shape[1]

    def index_of(self, value: Any) -> Optional[int]:
        try:
            return self._index.get(value)
        except TypeError:
            return None

    def __eq__(self, other):
        if not isinstance(other, ContrastMatrix):
            return NotImplemented
        return self.scheme == other.scheme and self.levels == other.levels

    def __hash__(self):
        return hash((self.scheme, self.levels))


def contrast_matrix(scheme: Union[str, ContrastScheme, Type[ContrastScheme]],
                    levels: Sequence[Any], variable: Optional[str] = None) -> ContrastMatrix:
    """Apply a scheme to levels; fewer than two levels cannot be coded."""
    scheme = get_contrasts(scheme)
    levels = tuple(levels)
    if len(levels) < 2:
        raise AmbiguousCodingError(variable=variable, levels=levels)
    if len(set(levels)) != len(levels):
        raise AmbiguousCodingError(variable=variable, levels=levels, reason="levels must be distinct")
    return ContrastMatrix(
        scheme=scheme,
        levels=levels,
        matrix=scheme.matrix(levels),
        column_labels=scheme.column_labels(levels),
    )


def _require_levels(levels: Tuple[Any, ...]) -> None:
    if len(levels) < 2:
        raise AmbiguousCodingError(levels=levels)


# Registry ------------------------------------------------------------------

_registry: Dict[str, Type[ContrastScheme]] = {}


def register_contrasts(name: str):
    """Class decorator registering a contrast scheme under ``name``."""
    def decorator(cls: Type[ContrastScheme]) -> Type[ContrastScheme]:
        if not (isinstance(cls, type) and issubclass(cls, ContrastScheme)):
            raise ConfigurationError(config_key=name, detail="contrast schemes must subclass ContrastScheme")
        cls.scheme_name = name
        _registry[name] = cls
        return cls
    return decorator


def get_contrasts(spec: Union[str, ContrastScheme, Type[ContrastScheme]]) -> ContrastScheme:
    """Return a scheme instance from a registered name, a class or an instance."""
    if isinstance(spec, ContrastScheme):
        return spec
    if isinstance(spec, type) and issubclass(spec, ContrastScheme):
        return spec()
    if isinstance(spec, str) and spec in _registry:
        return _registry[spec]()
    raise ConfigurationError(
        config_key="contrasts",
        detail=f"unknown contrast scheme {spec!r}; registered: {sorted(_registry)}",
    )


def available_contrasts() -> Tuple[str, ...]:
    return tuple(sorted(_registry))


# Built-in schemes ----------------------------------------------------------


@register_contrasts("dummy")
@dataclass(frozen=True)
class DummyCoding(ContrastScheme):
    """
    Treatment (dummy) coding.

    Each non-base level gets an indicator column; the base level, the first
    level unless ``base`` is given, codes as all zeros.
    """

    base: Any = None

    def _coding_matrix(self, levels):
        keep = [i for i in range(len(levels)) if i != self.base_index(levels)]
        return np.eye(len(levels))[:, keep]


@register_contrasts("full_dummy")
@dataclass(frozen=True)
class FullDummyCoding(ContrastScheme):
    """One indicator column per level (full rank)."""

    full_rank: ClassVar[bool] = True

    def _coding_matrix(self, levels):
        return np.eye(len(levels))

    def column_labels(self, levels):
        return tuple(str(level) for level in levels)


@register_contrasts("effects")
@dataclass(frozen=True)
class EffectsCoding(ContrastScheme):
    """
    Effects (sum-to-zero) coding.

    Like dummy coding, except the base level codes as -1 in every column so
    that coefficients compare each level to the grand mean.
    """

    base: Any = None

    def _coding_matrix(self, levels):
        base = self.base_index(levels)
        keep = [i for i in range(len(levels)) if i != base]
        matrix = np.eye(len(levels))[:, keep]
        matrix[base, :] = -1.0
        return matrix


@register_contrasts("helmert")
@dataclass(frozen=True)
class HelmertCoding(ContrastScheme):
    """
    Helmert coding: each level against the average of the levels before it.

    Column j is -1 for the first j levels, j for level j + 1 and 0 after.
    """

    def _coding_matrix(self, levels):
        n = len(levels)
        matrix = np.zeros((n, n - 1))
        for j in range(n - 1):
            matrix[: j + 1, j] = -1.0
            matrix[j + 1, j] = j + 1
        return matrix

    def column_labels(self, levels):
        return tuple(str(level) for level in levels[1:])


@register_contrasts("seqdiff")
@dataclass(frozen=True)
class SeqDiffCoding(ContrastScheme):
    """Successive differences: each coefficient is level j + 1 minus level j."""

    def _coding_matrix(self, levels):
        n = len(levels)
        matrix = np.zeros((n, n - 1))
        for j in range(n - 1):
            col = j + 1
            matrix[:col, j] = col - n
            matrix[col:, j] = col
        return matrix / n

    def column_labels(self, levels):
        return tuple(str(level) for level in levels[1:])


@register_contrasts("custom")
@dataclass(frozen=True)
class ContrastsCoding(ContrastScheme):
    """User-supplied coding matrix with one row per level."""

    rows: Tuple[Tuple[float, ...], ...] = ()
    labels: Optional[Tuple[str, ...]] = None

    def __post_init__(self):
        rows = tuple(tuple(float(v) for v in row) for row in np.atleast_2d(np.asarray(self.rows, dtype=float)))
        object.__setattr__(self, "rows", rows)
        if self.labels is not None:
            object.__setattr__(self, "labels", tuple(str(label) for label in self.labels))

    @classmethod
    def from_matrix(cls, matrix, labels: Optional[Sequence[str]] = None) -> "ContrastsCoding":
        return cls(rows=np.asarray(matrix, dtype=float).tolist(), labels=labels)

    def _coding_matrix(self, levels):
        matrix = np.asarray(self.rows, dtype=float)
        if matrix.ndim != 2 or matrix.shape[0] != len(levels):
            raise AmbiguousCodingError(
                levels=levels,
                reason=f"custom contrast matrix has {matrix.shape[0]} rows for {len(levels)} levels",
            )
        return matrix

    def column_labels(self, levels):
        width = len(self.rows[0]) if self.rows else 0
        if self.labels is not None:
            return self.labels
        return tuple(str(i) for i in range(1, width + 1))
