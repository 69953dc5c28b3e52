"""
Formula normalization.

Rewrites the raw term tree produced by the parser (or by the programmatic
``+``/``&``/``*`` API) into a ``FormulaTerm`` whose sides are flat,
deduplicated and free of combinator nodes.
"""

from typing import Iterable, Tuple, Union

from .terms import (
    CombinationTerm,
    ConstantTerm,
    FormulaTerm,
    Sum,
    Term,
    Tilde,
    combine_sum,
)
from ..core.exceptions import MalformedFormulaError


TermsLike = Union[Term, Iterable[Term]]


def normalize(raw: Term) -> FormulaTerm:
    """
    Normalize a raw ``lhs ~ rhs`` tree into a FormulaTerm.

    Args:
        raw: A ``Tilde`` node, or an existing FormulaTerm to normalize again

    Returns:
        FormulaTerm with a single-term or tuple lhs and a flat rhs tuple

    Raises:
        MalformedFormulaError: If '~' is missing or nested, or constants are misused
    """
    if isinstance(raw, FormulaTerm):
        lhs, rhs = raw.lhs, raw.rhs
    elif isinstance(raw, Tilde):
        lhs, rhs = raw.lhs, raw.rhs
    else:
        raise MalformedFormulaError(
            formula=getattr(raw, "name", repr(raw)),
            reason="a formula needs a response and predictors separated by '~'",
            suggestions=[
                "Write the formula as 'y ~ a + b'",
                "Use parse_terms() for a right-hand side without a response",
            ],
        )

    formula_text = raw.name
    response = _normalize_lhs(lhs, formula_text)
    predictors = _normalize_rhs(rhs, formula_text)
    return FormulaTerm(response, predictors)


def normalize_terms(raw: TermsLike) -> Tuple[Term, ...]:
    """
    Normalize a right-hand side into a flat tuple of terms.

    Normalizing an already normalized tuple returns it unchanged.
    """
    return _normalize_rhs(raw, None)


def tilde(lhs: TermsLike, rhs: TermsLike) -> FormulaTerm:
    """Build a FormulaTerm from a response and predictors (programmatic ``~``)."""
    return normalize(Tilde(_as_term(lhs), _as_term(rhs)))


def _as_term(side: TermsLike) -> Term:
    if isinstance(side, Term):
        return side
    parts = tuple(side)
    if not parts:
        raise MalformedFormulaError(reason="a formula side cannot be empty")
    return parts[0] if len(parts) == 1 else Sum(parts)


def _summands(side: TermsLike, formula_text) -> Tuple[Term, ...]:
    side = _as_term(side)
    if isinstance(side, Tilde):
        raise MalformedFormulaError(
            formula=formula_text or side.name,
            reason="'~' may only appear once, at the top level of a formula",
        )
    combined = combine_sum(side)
    return combined.parts if isinstance(combined, Sum) else (combined,)


def _normalize_lhs(lhs: TermsLike, formula_text: str) -> Union[Term, Tuple[Term, ...]]:
    parts = _summands(lhs, formula_text)
    for part in parts:
        if isinstance(part, ConstantTerm):
            raise MalformedFormulaError(
                formula=formula_text,
                reason=f"constant {part.value} cannot be a response",
                suggestions=["Intercept markers '0' and '1' belong on the right of '~'"],
            )
    return parts[0] if len(parts) == 1 else parts


def _normalize_rhs(rhs: TermsLike, formula_text) -> Tuple[Term, ...]:
    parts = _summands(rhs, formula_text)
    values = {part.value for part in parts if isinstance(part, ConstantTerm)}
    if values == {0, 1}:
        raise MalformedFormulaError(
            formula=formula_text,
            reason="'0' and '1' cannot both appear on the right-hand side",
            suggestions=["Keep '1' to include the intercept or '0' to drop it"],
        )
    for part in parts:
        if isinstance(part, (CombinationTerm, Tilde)):
            raise MalformedFormulaError(formula=formula_text, reason=f"unexpanded term '{part.name}'")
    return parts
