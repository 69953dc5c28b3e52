"""
Schema resolution (apply_schema).

Replaces untyped ``VariableTerm`` placeholders with ``ContinuousTerm`` or
``CategoricalTerm`` objects bound to a contrast matrix, binds function terms to
their callables and turns intercept markers into formula-level state.

Categorical rank is decided formula-wide in two passes. The first pass records
which terms are present, keyed by their set of factors (the intercept is the
empty set). The second resolves each term: a categorical factor is coded at
reduced rank when the term without that factor is present, and is promoted to
full rank otherwise, after which the term without it counts as present. So
``y ~ 0 + a & b`` codes both factors at full rank while ``y ~ 1 + a + b + a & b``
codes them at reduced rank everywhere.
"""

from typing import Any, Callable, Dict, FrozenSet, Hashable, List, Mapping, Optional, Set, Tuple, Union

from .contrasts import ContrastScheme, contrast_matrix, get_contrasts
from .functions import PROTECT_CALLEES, is_registered, lookup_function
from .schema import CATEGORICAL, CONTINUOUS, Categorical, Schema, SchemaEntry
from .terms import (
    And,
    CategoricalTerm,
    CombinationTerm,
    ConstantTerm,
    ContinuousTerm,
    FormulaTerm,
    FunctionTerm,
    InteractionTerm,
    InterceptTerm,
    LiteralTerm,
    Product,
    Sum,
    Term,
    Tilde,
    VariableTerm,
)
from ..config.settings import ModelTermsConfig, get_default_config
from ..core.exceptions import (
    DuplicateTermError,
    MalformedFormulaError,
    SchemaMismatchError,
    UnknownColumnError,
)
from ..utils.logging import get_logger, log_function_call


logger = get_logger(__name__)

ContrastSpec = Union[str, ContrastScheme, type]
TermKey = FrozenSet[Hashable]


def _factor_key(factor: Term) -> Hashable:
    if isinstance(factor, (VariableTerm, ContinuousTerm, CategoricalTerm)):
        return factor.variable_name
    return factor


def term_key(t: Term) -> TermKey:
    """Set of factor identities of a term; the intercept has the empty key."""
    if isinstance(t, (InterceptTerm, ConstantTerm)):
        return frozenset()
    factors = t.factors if isinstance(t, InteractionTerm) else (t,)
    return frozenset(_factor_key(f) for f in factors)


class SchemaResolver:
    """
    Resolves terms against a schema.

    Resolved variables are cached by name and rank, so every occurrence of a
    variable in a formula shares one resolved term object.
    """

    def __init__(
        self,
        schema: Mapping[str, SchemaEntry],
        contrasts: Optional[Mapping[str, ContrastSpec]] = None,
        functions: Optional[Mapping[str, Callable[..., Any]]] = None,
        config: Optional[ModelTermsConfig] = None,
    ):
        self.logger = get_logger(self.__class__.__name__)
        self.schema = schema if isinstance(schema, Schema) else Schema(schema)
        self.config = config or get_default_config()
        self.overrides = {name: get_contrasts(spec) for name, spec in (contrasts or {}).items()}
        self.functions = dict(functions or {})
        self._cache: Dict[Tuple[str, bool], Term] = {}

    # Formulas ----------------------------------------------------------------

    def resolve_formula(self, formula: FormulaTerm) -> FormulaTerm:
        rhs = formula.rhs
        has_one = any(isinstance(t, InterceptTerm) or (isinstance(t, ConstantTerm) and t.value == 1) for t in rhs)
        has_zero = formula.omits_intercept
        if has_one and has_zero:
            raise MalformedFormulaError(
                formula=formula.name,
                reason="'0' and '1' cannot both appear on the right-hand side",
            )
        intercept = has_one or (not has_zero and self.config.formulas.implicit_intercept)

        body = [t for t in rhs if not isinstance(t, (ConstantTerm, InterceptTerm))]
        if not body and not intercept:
            raise MalformedFormulaError(
                formula=formula.name,
                reason="the right-hand side generates no columns",
                suggestions=["Use '1' for an intercept-only model"],
            )

        present: Set[TermKey] = {term_key(t) for t in body}
        if intercept:
            present.add(frozenset())

        resolved: List[Term] = [InterceptTerm()] if intercept else []
        for t in body:
            resolved_term = self.resolve_term(t, present)
            if resolved_term in resolved:
                raise DuplicateTermError(resolved_term.name, formula=formula.name)
            resolved.append(resolved_term)

        lhs = formula.lhs
        if isinstance(lhs, tuple):
            response = tuple(self.resolve_term(t) for t in lhs)
        else:
            response = self.resolve_term(lhs)

        result = FormulaTerm(response, tuple(resolved))
        self.logger.debug(
            f"Resolved formula: {result}",
            terms=len(resolved),
            intercept=intercept,
        )
        return result

    # Terms -------------------------------------------------------------------

    def resolve_term(self, t: Term, present: Optional[Set[TermKey]] = None) -> Term:
        """
        Resolve a single term.

        ``present`` holds the keys of the terms in the enclosing formula; it is
        updated as factors are promoted. Without it every categorical factor is
        coded at reduced rank.
        """
        if isinstance(t, VariableTerm):
            return self._variable(t.variable_name, self._needs_full_rank(t, (t,), present))
        if isinstance(t, (ContinuousTerm, CategoricalTerm)):
            return self._already_resolved(t)
        if isinstance(t, InteractionTerm):
            return InteractionTerm(self._factor(f, t.factors, present) for f in t.factors)
        if isinstance(t, FunctionTerm):
            return self._function(t)
        if isinstance(t, (InterceptTerm, LiteralTerm)):
            return t
        if isinstance(t, ConstantTerm):
            return InterceptTerm() if t.value == 1 else t
        if isinstance(t, FormulaTerm):
            return self.resolve_formula(t)
        if isinstance(t, (CombinationTerm, Tilde)):
            raise MalformedFormulaError(
                formula=t.name,
                reason="combinator terms must be normalized before resolution",
                suggestions=["Use parse_formula() or normalize() first"],
            )
        raise MalformedFormulaError(reason=f"cannot resolve {type(t).__name__}: {t!r}")

    def _factor(self, factor: Term, factors: Tuple[Term, ...], present: Optional[Set[TermKey]]) -> Term:
        if isinstance(factor, VariableTerm):
            return self._variable(factor.variable_name, self._needs_full_rank(factor, factors, present))
        return self.resolve_term(factor)

    def _needs_full_rank(self, factor: VariableTerm, factors: Tuple[Term, ...],
                         present: Optional[Set[TermKey]]) -> bool:
        if present is None or self._entry(factor.variable_name).kind != CATEGORICAL:
            return False
        aliased = frozenset(_factor_key(f) for f in factors if f != factor)
        if aliased in present:
            return False
        present.add(aliased)
        return True

    def _entry(self, name: str) -> SchemaEntry:
        try:
            return self.schema[name]
        except KeyError:
            raise UnknownColumnError([name], list(self.schema)) from None

    def _variable(self, name: str, full_rank: bool) -> Term:
        entry = self._entry(name)
        key = (name, full_rank and entry.kind == CATEGORICAL)
        cached = self._cache.get(key)
        if cached is not None:
            return cached

        if entry.kind == CONTINUOUS:
            resolved = ContinuousTerm(
                name,
                mean=entry.mean,
                stdev=entry.stdev,
                minimum=entry.minimum,
                maximum=entry.maximum,
            )
        else:
            scheme = self._scheme(name, entry)
            if full_rank:
                scheme = scheme.full_rank_variant()
            resolved = CategoricalTerm(name, contrast_matrix(scheme, entry.levels, variable=name))

        self._cache[key] = resolved
        return resolved

    def _scheme(self, name: str, entry: Categorical) -> ContrastScheme:
        if name in self.overrides:
            return self.overrides[name]
        if entry.contrasts is not None:
            return entry.contrasts
        return get_contrasts(self.config.contrasts.default)

    def _already_resolved(self, t: Union[ContinuousTerm, CategoricalTerm]) -> Term:
        entry = self.schema.get(t.variable_name)
        expected = CONTINUOUS if isinstance(t, ContinuousTerm) else CATEGORICAL
        if entry is not None and entry.kind != expected:
            raise SchemaMismatchError(t.variable_name, expected=expected, found=entry.kind)
        return t

    # Function terms ----------------------------------------------------------

    def _function(self, t: FunctionTerm) -> FunctionTerm:
        if t.callee in PROTECT_CALLEES and len(t.args) != 1:
            raise MalformedFormulaError(
                formula=t.expr,
                reason=f"'{t.callee}' takes exactly one argument, got {len(t.args)}",
            )
        args = tuple(self._argument(a) for a in t.args)
        if t.fn is not None and t.callee not in self.functions and not is_registered(t.callee):
            # already bound by an earlier resolution with per-call functions
            fn = t.fn
        else:
            fn = lookup_function(t.callee, self.functions)
        return FunctionTerm(t.callee, args, expr=t.expr, fn=fn)

    def _argument(self, t: Term) -> Term:
        """Resolve a function argument; formula operators become arithmetic."""
        if isinstance(t, Sum):
            return self._arithmetic("+", t.parts)
        if isinstance(t, (Product, And)):
            return self._arithmetic("*", t.parts)
        if isinstance(t, InteractionTerm):
            return self._arithmetic("*", t.factors)
        if isinstance(t, ConstantTerm):
            return LiteralTerm(float(t.value))
        if isinstance(t, (Tilde, FormulaTerm)):
            raise MalformedFormulaError(formula=t.name, reason="'~' is not allowed inside a function call")
        return self.resolve_term(t)

    def _arithmetic(self, callee: str, parts: Tuple[Term, ...]) -> Term:
        fn = lookup_function(callee, self.functions)
        result = self._argument(parts[0])
        for part in parts[1:]:
            result = FunctionTerm(callee, (result, self._argument(part)), fn=fn)
        return result


@log_function_call
def apply_schema(
    term: Union[Term, Tuple[Term, ...]],
    schema: Mapping[str, SchemaEntry],
    contrasts: Optional[Mapping[str, ContrastSpec]] = None,
    functions: Optional[Mapping[str, Callable[..., Any]]] = None,
    config: Optional[ModelTermsConfig] = None,
) -> Union[Term, Tuple[Term, ...]]:
    """
    Resolve a formula or term against a schema.

    Args:
        term: Normalized FormulaTerm, single term or tuple of terms
        schema: Schema from extract_schema()
        contrasts: Optional per-variable contrast scheme overrides
        functions: Optional per-call callables for function terms
        config: Configuration (defaults to the global configuration)

    Returns:
        Resolved term of the same shape. Bare terms are coded at reduced rank.

    Raises:
        AmbiguousCodingError: If a categorical variable has fewer than 2 levels
        DuplicateTermError: If two right-hand side terms resolve identically
        SchemaMismatchError: If a resolved term disagrees with the schema
        UnknownFunctionError: If a function callee is not registered
    """
    resolver = SchemaResolver(schema, contrasts=contrasts, functions=functions, config=config)
    if isinstance(term, FormulaTerm):
        return resolver.resolve_formula(term)
    if isinstance(term, (tuple, list)):
        return tuple(resolver.resolve_term(t) for t in term)
    return resolver.resolve_term(term)
