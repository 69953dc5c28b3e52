"""
High-level model frame API.

``ModelFrame`` runs the whole pipeline for a formula and a table: parse,
extract the schema, resolve, and generate the response and model matrix.
"""

import numpy as np
import pandas as pd
import jax.numpy as jnp
from dataclasses import dataclass
from typing import Any, Callable, List, Mapping, Optional, Union

from .modelcols import ColumnGenerator, coefnames
from .normalize import normalize
from .parser import parse_formula
from .resolve import ContrastSpec, apply_schema
from .schema import HintValue, Schema, extract_schema
from .terms import FormulaTerm, InterceptTerm, Term
from ..config.settings import MatrixBackend, ModelTermsConfig, get_default_config
from ..core.exceptions import MalformedFormulaError
from ..data.tables import Table, as_table
from ..utils.logging import get_logger
from ..utils.validation import validate_column_names


logger = get_logger(__name__)


@dataclass
class ModelMatrix:
    """A generated model matrix with its column metadata."""
    matrix: Any
    column_names: List[str]
    assign: List[int]
    term_names: List[str]
    has_intercept: bool
    formula_string: str

    @property
    def n_columns(self) -> int:
        return len(self.column_names)

    def columns_for(self, term_name: str) -> List[str]:
        """Column names generated by the rhs term called ``term_name``."""
        index = self.term_names.index(term_name)
        return [name for name, i in zip(self.column_names, self.assign) if i == index]

    def to_dataframe(self) -> pd.DataFrame:
        return pd.DataFrame(np.asarray(self.matrix), columns=self.column_names)


class ModelMatrixBuilder:
    """
    Builds model matrices from resolved formulas and tables.

    The backend (numpy float64 or jax float32) comes from the configuration.
    """

    def __init__(self, config: Optional[ModelTermsConfig] = None):
        self.logger = get_logger(self.__class__.__name__)
        self.config = config or get_default_config()

    def build_matrix(self, formula: FormulaTerm, table: Any) -> ModelMatrix:
        """
        Build the model matrix for a resolved formula.

        Args:
            formula: FormulaTerm returned by apply_schema()
            table: Table, DataFrame or mapping of columns

        Returns:
            ModelMatrix with the matrix and per-column metadata
        """
        if not isinstance(formula, FormulaTerm):
            raise MalformedFormulaError(
                reason=f"expected a resolved FormulaTerm, got {type(formula).__name__}",
            )
        self.logger.debug(f"Building model matrix for {formula}")

        generator = ColumnGenerator(as_table(table), self.config)
        blocks = generator.blocks(formula.rhs)

        column_names = coefnames(formula.rhs, self.config)
        assign = [i for i, block in enumerate(blocks) for _ in range(block.shape[1])]
        matrix = np.hstack(blocks) if blocks else np.empty((generator.n_rows, 0))
        validate_column_names(matrix, column_names)

        if self.config.generation.backend == MatrixBackend.JAX:
            matrix = jnp.array(matrix, dtype=jnp.float32)

        self.logger.debug(
            f"Built model matrix: {matrix.shape} ({len(column_names)} columns: {column_names})"
        )

        return ModelMatrix(
            matrix=matrix,
            column_names=column_names,
            assign=assign,
            term_names=term_names(formula, self.config),
            has_intercept=any(isinstance(t, InterceptTerm) for t in formula.rhs),
            formula_string=formula.name,
        )


def term_names(formula: FormulaTerm, config: Optional[ModelTermsConfig] = None) -> List[str]:
    """Display names of the rhs terms; the intercept uses its column name."""
    config = config or get_default_config()
    return [config.formulas.intercept_name if isinstance(t, InterceptTerm) else t.name for t in formula.rhs]


class ModelFrame:
    """
    A formula resolved against a table.

    Example:
        >>> frame = ModelFrame("y ~ 1 + a * b + log(x)", df, contrasts={"a": "effects"})
        >>> mm = frame.model_matrix()
        >>> mm.column_names
    """

    def __init__(
        self,
        formula: Union[str, Term],
        data: Any,
        contrasts: Optional[Mapping[str, ContrastSpec]] = None,
        hints: Optional[Mapping[str, HintValue]] = None,
        functions: Optional[Mapping[str, Callable[..., Any]]] = None,
        config: Optional[ModelTermsConfig] = None,
    ):
        self.config = config or get_default_config()
        self.logger = get_logger(self.__class__.__name__)

        if isinstance(formula, str):
            unresolved = parse_formula(formula)
        else:
            unresolved = normalize(formula)

        self.table: Table = as_table(data)
        self.schema: Schema = extract_schema(unresolved, self.table, hints=hints, config=self.config)
        self.formula: FormulaTerm = apply_schema(
            unresolved,
            self.schema,
            contrasts=contrasts,
            functions=functions,
            config=self.config,
        )
        self.logger.debug(f"Model frame ready: {self.formula}", rows=self.table.n_rows)

    def response(self) -> np.ndarray:
        generator = ColumnGenerator(self.table, self.config)
        response = generator.matrix(self.formula.response_terms)
        return response[:, 0] if response.shape[1] == 1 else response

    def model_matrix(self) -> ModelMatrix:
        return ModelMatrixBuilder(self.config).build_matrix(self.formula, self.table)

    def coefnames(self) -> List[str]:
        return coefnames(self.formula.rhs, self.config)

    def responsename(self) -> Union[str, List[str]]:
        names = coefnames(self.formula.response_terms, self.config)
        return names[0] if len(names) == 1 else names

    def term_names(self) -> List[str]:
        return term_names(self.formula, self.config)

    def __repr__(self) -> str:
        return f"ModelFrame({self.formula}, n_rows={self.table.n_rows})"


def model_matrix(
    formula: Union[str, Term],
    data: Any,
    contrasts: Optional[Mapping[str, ContrastSpec]] = None,
    hints: Optional[Mapping[str, HintValue]] = None,
    functions: Optional[Mapping[str, Callable[..., Any]]] = None,
    config: Optional[ModelTermsConfig] = None,
) -> ModelMatrix:
    """
    Convenience function to build a model matrix.

    Args:
        formula: Formula string or FormulaTerm
        data: Table, DataFrame or mapping of columns
        contrasts: Optional per-variable contrast schemes
        hints: Optional per-variable continuous/categorical hints
        functions: Optional callables for function terms
        config: Configuration (defaults to the global configuration)

    Returns:
        ModelMatrix for the formula's right-hand side
    """
    frame = ModelFrame(formula, data, contrasts=contrasts, hints=hints, functions=functions, config=config)
    return frame.model_matrix()
