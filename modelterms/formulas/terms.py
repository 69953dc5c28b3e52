"""
Formula term representations for modelterms.

Defines the immutable term types that make up a formula and the algebra that
combines them: ``+`` (sum), ``&`` (interaction) and ``*`` (main effects plus
all interactions). Terms compare structurally, so equal terms collapse when
summed.

Unresolved terms (``VariableTerm``) come from parsing or from the programmatic
API. Resolved terms (``ContinuousTerm``, ``CategoricalTerm``, ``InterceptTerm``)
are produced only by ``apply_schema``.
"""

import math
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from functools import reduce
from itertools import combinations
from typing import Any, Callable, Iterable, List, Optional, Tuple, Union

from .contrasts import ContrastMatrix
from ..core.exceptions import MalformedFormulaError


INTERACTION_SEPARATOR = " & "

# Callees that represent arithmetic operators inside function arguments
ARITHMETIC_OPERATORS = ("+", "-", "*", "/", "^")
NEGATION = "neg"


class Term(ABC):
    """Abstract base class for formula terms."""

    @property
    @abstractmethod
    def name(self) -> str:
        """Display name of the term."""

    @property
    def width(self) -> int:
        """Number of columns the term generates once resolved."""
        raise MalformedFormulaError(
            reason=f"term '{self.name}' is not resolved",
            suggestions=["Call apply_schema() before generating columns"],
        )

    def __add__(self, other: "Term") -> "Term":
        return combine_sum(self, other)

    def __and__(self, other: "Term") -> "Term":
        return combine_and(self, other)

    def __mul__(self, other: "Term") -> "Term":
        # stays a raw Product so chained operands expand together
        operands: List[Term] = []
        for t in (self, other):
            if isinstance(t, Product):
                operands.extend(_flatten_product(t))
                continue
            for part in _summands(_expand(t)):
                _reject_constant(part, "*")
            operands.append(t)
        return Product(tuple(operands))

    def __str__(self) -> str:
        return self.name


@dataclass(frozen=True)
class ConstantTerm(Term):
    """Intercept marker: 1 requests an intercept, 0 suppresses it."""

    value: int

    def __post_init__(self):
        if isinstance(self.value, bool) or self.value not in (0, 1):
            raise MalformedFormulaError(
                reason=f"constant terms must be 0 or 1, got {self.value!r}",
            )
        object.__setattr__(self, "value", int(self.value))

    @property
    def name(self) -> str:
        return str(self.value)


@dataclass(frozen=True)
class LiteralTerm(Term):
    """Numeric literal used as a function argument (e.g. the 2 in pow(x, 2))."""

    value: float

    @property
    def name(self) -> str:
        value = float(self.value)
        if value.is_integer():
            return str(int(value))
        return repr(value)

    @property
    def width(self) -> int:
        return 1


@dataclass(frozen=True)
class VariableTerm(Term):
    """Untyped reference to a table column."""

    variable_name: str

    def __post_init__(self):
        if not self.variable_name or not isinstance(self.variable_name, str):
            raise MalformedFormulaError(
                reason=f"invalid variable name: {self.variable_name!r}",
                suggestions=[
                    "Variable names must be non-empty strings",
                    "Examples: 'age', 'sex', 'weight'",
                ],
            )

    @property
    def name(self) -> str:
        return self.variable_name


@dataclass(frozen=True)
class FunctionTerm(Term):
    """
    Elementwise transformation of its arguments (e.g. log(x), pow(x, 2)).

    ``expr`` keeps the source text and ``fn`` the callable bound at resolution;
    neither takes part in equality.
    """

    callee: str
    args: Tuple[Term, ...]
    expr: str = field(default="", compare=False)
    fn: Optional[Callable[..., Any]] = field(default=None, compare=False, repr=False)

    def __post_init__(self):
        if not self.callee:
            raise MalformedFormulaError(reason="function name cannot be empty")
        object.__setattr__(self, "args", tuple(self.args))
        if not self.args:
            raise MalformedFormulaError(
                reason=f"function '{self.callee}' requires arguments",
                suggestions=["Examples: log(x), pow(x, 2), I(a * b)"],
            )
        if not self.expr:
            object.__setattr__(self, "expr", _render_call(self.callee, self.args))

    @property
    def name(self) -> str:
        return self.expr

    @property
    def is_arithmetic(self) -> bool:
        return self.callee in ARITHMETIC_OPERATORS or self.callee == NEGATION

    @property
    def width(self) -> int:
        return 1


class InteractionTerm(Term):
    """
    Interaction of two or more distinct factors.

    Equality ignores factor order; column generation follows it.
    """

    __slots__ = ("factors",)

    def __init__(self, factors: Iterable[Term]):
        factors = tuple(factors)
        if len(factors) < 2:
            raise MalformedFormulaError(
                reason=f"an interaction needs at least 2 factors, got {len(factors)}",
            )
        if len(set(factors)) != len(factors):
            raise MalformedFormulaError(
                reason=f"repeated factors in interaction: {[f.name for f in factors]}",
            )
        for factor in factors:
            if isinstance(factor, (InteractionTerm, CombinationTerm, ConstantTerm, FormulaTerm)):
                raise MalformedFormulaError(
                    reason=f"'{factor.name}' cannot be an interaction factor",
                )
        object.__setattr__(self, "factors", factors)

    def __setattr__(self, key, value):
        raise AttributeError("InteractionTerm is immutable")

    def __eq__(self, other):
        if not isinstance(other, InteractionTerm):
            return NotImplemented
        return frozenset(self.factors) == frozenset(other.factors)

    def __hash__(self):
        return hash(("interaction", frozenset(self.factors)))

    def __repr__(self):
        return f"InteractionTerm(factors={self.factors!r})"

    @property
    def name(self) -> str:
        return INTERACTION_SEPARATOR.join(f.name for f in self.factors)

    @property
    def width(self) -> int:
        return math.prod(f.width for f in self.factors)


class CombinationTerm(Term):
    """Base class for combinator nodes that only exist before normalization."""

    parts: Tuple[Term, ...]
    symbol = "?"

    @property
    def name(self) -> str:
        return f" {self.symbol} ".join(_wrap(p) for p in self.parts)


@dataclass(frozen=True)
class Sum(CombinationTerm):
    """Sum of terms (``+``)."""

    parts: Tuple[Term, ...]
    symbol = "+"


@dataclass(frozen=True)
class Product(CombinationTerm):
    """Main effects and all interactions (``*``)."""

    parts: Tuple[Term, ...]
    symbol = "*"


@dataclass(frozen=True)
class And(CombinationTerm):
    """Explicit interaction (``&``)."""

    parts: Tuple[Term, ...]
    symbol = "&"


@dataclass(frozen=True)
class Tilde(Term):
    """Raw ``lhs ~ rhs`` node produced by the parser."""

    lhs: Term
    rhs: Term

    @property
    def name(self) -> str:
        return f"{self.lhs.name} ~ {self.rhs.name}"


@dataclass(frozen=True)
class FormulaTerm(Term):
    """
    Top-level formula separating response(s) from predictors.

    ``lhs`` is a single term or a tuple of terms (multiple responses);
    ``rhs`` is a flat tuple of non-combinator terms.
    """

    lhs: Union[Term, Tuple[Term, ...]]
    rhs: Tuple[Term, ...]

    def __post_init__(self):
        object.__setattr__(self, "rhs", tuple(self.rhs))
        if isinstance(self.lhs, list):
            object.__setattr__(self, "lhs", tuple(self.lhs))

    @property
    def response_terms(self) -> Tuple[Term, ...]:
        return self.lhs if isinstance(self.lhs, tuple) else (self.lhs,)

    @property
    def has_intercept(self) -> bool:
        return any(
            isinstance(t, InterceptTerm) or (isinstance(t, ConstantTerm) and t.value == 1)
            for t in self.rhs
        )

    @property
    def omits_intercept(self) -> bool:
        return any(isinstance(t, ConstantTerm) and t.value == 0 for t in self.rhs)

    @property
    def name(self) -> str:
        lhs = " + ".join(t.name for t in self.response_terms)
        return f"{lhs} ~ {' + '.join(t.name for t in self.rhs)}"

    def __add__(self, other):
        raise MalformedFormulaError(formula=self.name, reason="a formula cannot be combined with other terms")

    __and__ = __add__
    __mul__ = __add__


# Resolved terms ------------------------------------------------------------


@dataclass(frozen=True)
class InterceptTerm(Term):
    """Resolved intercept: a single column of ones."""

    @property
    def name(self) -> str:
        return "1"

    @property
    def width(self) -> int:
        return 1


@dataclass(frozen=True)
class ContinuousTerm(Term):
    """Numeric variable with summary statistics from the resolution table."""

    variable_name: str
    mean: float = field(default=math.nan, compare=False)
    stdev: float = field(default=math.nan, compare=False)
    minimum: float = field(default=math.nan, compare=False)
    maximum: float = field(default=math.nan, compare=False)

    @property
    def name(self) -> str:
        return self.variable_name

    @property
    def width(self) -> int:
        return 1


@dataclass(frozen=True)
class CategoricalTerm(Term):
    """Categorical variable bound to a contrast matrix over fixed levels."""

    variable_name: str
    contrasts: ContrastMatrix

    @property
    def levels(self) -> Tuple[Any, ...]:
        return self.contrasts.levels

    @property
    def name(self) -> str:
        return self.variable_name

    @property
    def width(self) -> int:
        return self.contrasts.width

    @property
    def full_rank(self) -> bool:
        return self.contrasts.full_rank


RESOLVED_LEAVES = (InterceptTerm, ContinuousTerm, CategoricalTerm, LiteralTerm)


# Algebra -------------------------------------------------------------------


def combine_sum(*terms: Term) -> Term:
    """
    Sum terms, flattening nested sums and dropping structural duplicates.

    First occurrences keep their position. A single surviving term is returned
    as is.
    """
    parts: List[Term] = []
    for t in terms:
        for part in _summands(_expand(t)):
            if part not in parts:
                parts.append(part)
    if not parts:
        raise MalformedFormulaError(reason="cannot sum zero terms")
    return parts[0] if len(parts) == 1 else Sum(tuple(parts))


def combine_and(*terms: Term) -> Term:
    """
    Interact terms, distributing over sums on either side.

    ``(a + b) & c`` becomes ``a & c + b & c``; nested interactions flatten and
    repeated factors collapse (``a & a`` is ``a``).
    """
    if not terms:
        raise MalformedFormulaError(reason="cannot interact zero terms")
    expanded = [_expand(t) for t in terms]
    if len(expanded) == 1:
        return expanded[0]
    return reduce(_interact, expanded)


def combine_star(*terms: Term) -> Term:
    """
    Expand ``t1 * t2 * ... * tn`` into main effects and all interactions.

    Every non-empty subset of the operands is interacted; subsets are ordered
    by size and then by first appearance.
    """
    if not terms:
        raise MalformedFormulaError(reason="cannot expand zero terms")
    operands = [_expand(t) for t in terms]
    for operand in operands:
        for part in _summands(operand):
            _reject_constant(part, "*")

    summands = []
    for order in range(1, len(operands) + 1):
        for subset in combinations(operands, order):
            summands.append(combine_and(*subset))
    return combine_sum(*summands)


def _interact(a: Term, b: Term) -> Term:
    if isinstance(a, Sum):
        return combine_sum(*(_interact(p, b) for p in a.parts))
    if isinstance(b, Sum):
        return combine_sum(*(_interact(a, p) for p in b.parts))
    _reject_constant(a, "&")
    _reject_constant(b, "&")

    factors: List[Term] = []
    for factor in _factors(a) + _factors(b):
        if factor not in factors:
            factors.append(factor)
    return factors[0] if len(factors) == 1 else InteractionTerm(factors)


def _expand(t: Term) -> Term:
    """Rewrite raw combinator nodes into their normalized form."""
    if isinstance(t, Product):
        return combine_star(*_flatten_product(t))
    if isinstance(t, And):
        return combine_and(*t.parts)
    if isinstance(t, Sum):
        return combine_sum(*t.parts)
    if isinstance(t, (Tilde, FormulaTerm)):
        raise MalformedFormulaError(
            formula=t.name,
            reason="'~' may only appear once, at the top level of a formula",
        )
    if not isinstance(t, Term):
        raise MalformedFormulaError(reason=f"expected a term, got {type(t).__name__}: {t!r}")
    return t


def _flatten_product(t: Product) -> List[Term]:
    operands: List[Term] = []
    for part in t.parts:
        if isinstance(part, Product):
            operands.extend(_flatten_product(part))
        else:
            operands.append(part)
    return operands


def _summands(t: Term) -> Tuple[Term, ...]:
    return t.parts if isinstance(t, Sum) else (t,)


def _factors(t: Term) -> Tuple[Term, ...]:
    return t.factors if isinstance(t, InteractionTerm) else (t,)


def _reject_constant(t: Term, operator: str) -> None:
    if isinstance(t, ConstantTerm):
        raise MalformedFormulaError(
            reason=f"constant {t.value} cannot be an operand of '{operator}'",
            suggestions=[
                "Use '0' or '1' only as direct summands (e.g. 'y ~ 0 + a & b')",
            ],
        )


# Construction helpers ------------------------------------------------------


def term(name: str) -> VariableTerm:
    """Create a variable term for programmatic formula construction."""
    return VariableTerm(name)


def terms(*names: str) -> Tuple[VariableTerm, ...]:
    """Create several variable terms at once."""
    return tuple(VariableTerm(n) for n in names)


def constant(value: int) -> ConstantTerm:
    """Create an intercept (1) or no-intercept (0) marker."""
    return ConstantTerm(value)


def function(callee: str, *args: Union[Term, int, float]) -> FunctionTerm:
    """Create a function term; plain numbers become literals."""
    return FunctionTerm(callee, tuple(_as_argument(a) for a in args))


def protect(t: Term) -> FunctionTerm:
    """Wrap a term so its operators are evaluated as arithmetic."""
    return FunctionTerm("protect", (t,))


def _as_argument(value: Union[Term, int, float]) -> Term:
    if isinstance(value, Term):
        return value
    if isinstance(value, (int, float)) and not isinstance(value, bool):
        return LiteralTerm(float(value))
    raise MalformedFormulaError(reason=f"invalid function argument: {value!r}")


def term_variables(t: Union[Term, Iterable[Term]]) -> Tuple[str, ...]:
    """Return the column names referenced by a term, in first-use order."""
    names: List[str] = []

    def visit(node):
        if isinstance(node, (tuple, list)):
            for child in node:
                visit(child)
        elif isinstance(node, (VariableTerm, ContinuousTerm, CategoricalTerm)):
            if node.variable_name not in names:
                names.append(node.variable_name)
        elif isinstance(node, FunctionTerm):
            visit(node.args)
        elif isinstance(node, InteractionTerm):
            visit(node.factors)
        elif isinstance(node, CombinationTerm):
            visit(node.parts)
        elif isinstance(node, (Tilde, FormulaTerm)):
            visit(node.lhs)
            visit(node.rhs)

    visit(t)
    return tuple(names)


def _wrap(t: Term) -> str:
    if isinstance(t, (CombinationTerm, Tilde)):
        return f"({t.name})"
    return t.name


def _render_call(callee: str, args: Tuple[Term, ...]) -> str:
    def arg_text(a):
        if isinstance(a, FunctionTerm) and a.is_arithmetic:
            return f"({a.name})"
        return _wrap(a)

    if callee in ARITHMETIC_OPERATORS and len(args) == 2:
        sep = callee if callee == "^" else f" {callee} "
        return f"{arg_text(args[0])}{sep}{arg_text(args[1])}"
    if callee == NEGATION and len(args) == 1:
        return f"-{arg_text(args[0])}"
    return f"{callee}({', '.join(a.name for a in args)})"
