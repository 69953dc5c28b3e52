"""
Matrix generation (modelcols) and column naming (coefnames).

Walks a resolved term tree and produces float64 column blocks from a table.
Every block has one row per table row and ``term.width`` columns, and
``coefnames`` names those columns in the same order.
"""

from concurrent.futures import ThreadPoolExecutor
from functools import reduce
from itertools import product
from typing import Any, List, Optional, Sequence, Tuple, Union

import numpy as np

from .schema import as_level
from .terms import (
    CategoricalTerm,
    ContinuousTerm,
    FormulaTerm,
    FunctionTerm,
    InteractionTerm,
    InterceptTerm,
    LiteralTerm,
    Term,
)
from ..config.settings import ModelTermsConfig, get_default_config
from ..core.exceptions import (
    DataFormatError,
    FunctionArityError,
    LevelNotFoundError,
    MalformedFormulaError,
    TypeCoercionError,
)
from ..data.tables import Table, as_table
from ..utils.logging import get_logger, log_function_call
from ..utils.validation import validate_array_dimensions


logger = get_logger(__name__)

TermsLike = Union[Term, Sequence[Term]]


def _unresolved(t: Term) -> MalformedFormulaError:
    return MalformedFormulaError(
        reason=f"term '{t.name}' ({type(t).__name__}) is not resolved",
        suggestions=[
            "Call apply_schema() before generating columns",
            "Or use ModelFrame, which extracts and applies the schema",
        ],
    )


def _column_values(table: Table, name: str) -> Sequence[Any]:
    values = table.column_values(name)
    if len(values) != table.n_rows:
        raise DataFormatError(
            specific_issue=f"Column '{name}' has {len(values)} values for {table.n_rows} rows"
        )
    return values


def _row_kron(left: np.ndarray, right: np.ndarray) -> np.ndarray:
    # last factor varies fastest
    return (left[:, :, None] * right[:, None, :]).reshape(left.shape[0], -1)


class ColumnGenerator:
    """Builds the column block of each resolved term type."""

    def __init__(self, table: Table, config: Optional[ModelTermsConfig] = None):
        self.table = table
        self.config = config or get_default_config()
        self.n_rows = table.n_rows

    def block(self, t: Term) -> np.ndarray:
        if isinstance(t, InterceptTerm):
            block = np.ones((self.n_rows, 1))
        elif isinstance(t, LiteralTerm):
            block = np.full((self.n_rows, 1), float(t.value))
        elif isinstance(t, ContinuousTerm):
            block = self._continuous(t).reshape(-1, 1)
        elif isinstance(t, CategoricalTerm):
            block = self._categorical(t)
        elif isinstance(t, FunctionTerm):
            block = self._function(t).reshape(-1, 1)
        elif isinstance(t, InteractionTerm):
            block = reduce(_row_kron, (self.block(f) for f in t.factors))
        else:
            raise _unresolved(t)

        validate_array_dimensions(block, (self.n_rows, t.width), name=f"columns of '{t.name}'")
        return block

    def _continuous(self, t: ContinuousTerm) -> np.ndarray:
        values = _column_values(self.table, t.variable_name)
        try:
            return np.asarray(values, dtype=np.float64)
        except (TypeError, ValueError) as e:
            raise TypeCoercionError(t.variable_name, detail=str(e)) from e

    def _categorical(self, t: CategoricalTerm) -> np.ndarray:
        contrasts = t.contrasts
        values = _column_values(self.table, t.variable_name)
        rows = np.empty(self.n_rows, dtype=np.intp)
        for i, value in enumerate(values):
            index = contrasts.index_of(as_level(value))
            if index is None:
                raise LevelNotFoundError(t.variable_name, value, contrasts.levels, row=i)
            rows[i] = index
        return contrasts.matrix[rows]

    def _function(self, t: FunctionTerm) -> np.ndarray:
        if t.fn is None:
            raise _unresolved(t)

        columns = []
        for arg in t.args:
            arg_block = self.block(arg)
            if arg_block.shape[1] != 1:
                raise FunctionArityError(t.expr, arg.name, arg_block.shape[1])
            columns.append(arg_block[:, 0])

        with np.errstate(all="ignore"):
            try:
                values = np.fromiter(
                    (t.fn(*row) for row in zip(*columns)),
                    dtype=np.float64,
                    count=self.n_rows,
                )
            except (TypeError, ValueError) as e:
                raise TypeCoercionError(t.expr, detail=str(e)) from e

        if self.config.generation.warn_non_finite and not np.all(np.isfinite(values)):
            logger.warning(
                f"Function term '{t.expr}' produced non-finite values",
                count=int(np.sum(~np.isfinite(values))),
                rows=self.n_rows,
            )
        return values

    def blocks(self, terms: Sequence[Term]) -> List[np.ndarray]:
        """Generate blocks for independent terms, in order."""
        generation = self.config.generation
        if generation.parallel_terms and len(terms) > 1:
            with ThreadPoolExecutor(max_workers=generation.max_workers) as executor:
                return list(executor.map(self.block, terms))
        return [self.block(t) for t in terms]

    def matrix(self, terms: Sequence[Term]) -> np.ndarray:
        if not terms:
            return np.empty((self.n_rows, 0))
        return np.hstack(self.blocks(terms))


@log_function_call
def modelcols(
    term: TermsLike,
    table: Any,
    config: Optional[ModelTermsConfig] = None,
) -> Union[np.ndarray, Tuple[np.ndarray, np.ndarray]]:
    """
    Generate numeric columns for a resolved term.

    Args:
        term: Resolved FormulaTerm, term or tuple of terms
        table: Table, pandas DataFrame or mapping of columns
        config: Configuration (defaults to the global configuration)

    Returns:
        ``(response, predictors)`` for a FormulaTerm, with a 1-D response when
        it is a single column; otherwise a 2-D float64 block

    Raises:
        LevelNotFoundError: If a row holds a level unseen at resolution
        TypeCoercionError: If continuous values cannot be cast to float
        MalformedFormulaError: If the term is not resolved
    """
    generator = ColumnGenerator(as_table(table), config)

    if isinstance(term, FormulaTerm):
        response = generator.matrix(term.response_terms)
        if response.shape[1] == 1:
            response = response[:, 0]
        predictors = generator.matrix(term.rhs)
        logger.debug(
            f"Generated model columns for {term}",
            rows=generator.n_rows,
            columns=predictors.shape[1],
        )
        return response, predictors

    if isinstance(term, (tuple, list)):
        return generator.matrix(term)
    return generator.block(term)


def coefnames(term: TermsLike, config: Optional[ModelTermsConfig] = None):
    """
    Names of the columns generated for a resolved term.

    Returns a list of names, or ``(response_names, predictor_names)`` for a
    FormulaTerm.
    """
    config = config or get_default_config()

    if isinstance(term, FormulaTerm):
        return coefnames(term.response_terms, config), coefnames(term.rhs, config)
    if isinstance(term, (tuple, list)):
        return [name for t in term for name in coefnames(t, config)]

    if isinstance(term, InterceptTerm):
        return [config.formulas.intercept_name]
    if isinstance(term, (ContinuousTerm, LiteralTerm, FunctionTerm)):
        return [term.name]
    if isinstance(term, CategoricalTerm):
        return [f"{term.variable_name}: {label}" for label in term.contrasts.column_labels]
    if isinstance(term, InteractionTerm):
        separator = config.formulas.interaction_separator
        factor_names = [coefnames(f, config) for f in term.factors]
        return [separator.join(combo) for combo in product(*factor_names)]
    raise _unresolved(term)
