"""
Formula system for modelterms.

Provides formula parsing, term algebra, schema extraction and resolution,
contrast coding and model matrix generation.
"""

from .parser import FormulaParser, parse, parse_formula, parse_terms, tokenize
from .terms import (
    Term,
    ConstantTerm,
    LiteralTerm,
    VariableTerm,
    FunctionTerm,
    InteractionTerm,
    Sum,
    Product,
    And,
    Tilde,
    FormulaTerm,
    InterceptTerm,
    ContinuousTerm,
    CategoricalTerm,
    combine_sum,
    combine_and,
    combine_star,
    term,
    terms,
    constant,
    function,
    protect,
    term_variables,
)
from .normalize import normalize, normalize_terms, tilde
from .contrasts import (
    ContrastScheme,
    ContrastMatrix,
    DummyCoding,
    FullDummyCoding,
    EffectsCoding,
    HelmertCoding,
    SeqDiffCoding,
    ContrastsCoding,
    contrast_matrix,
    register_contrasts,
    get_contrasts,
    available_contrasts,
)
from .functions import register_function, unregister_function, registered_functions
from .schema import Schema, Continuous, Categorical, extract_schema
from .resolve import SchemaResolver, apply_schema
from .modelcols import ColumnGenerator, modelcols, coefnames
from .frame import ModelFrame, ModelMatrix, ModelMatrixBuilder, model_matrix

__all__ = [
    # Main API
    "parse_formula",
    "parse_terms",
    "extract_schema",
    "apply_schema",
    "modelcols",
    "coefnames",
    "model_matrix",
    "ModelFrame",
    "ModelMatrix",
    "ModelMatrixBuilder",
    # Parsing and normalization
    "FormulaParser",
    "parse",
    "tokenize",
    "normalize",
    "normalize_terms",
    "tilde",
    # Term types
    "Term",
    "ConstantTerm",
    "LiteralTerm",
    "VariableTerm",
    "FunctionTerm",
    "InteractionTerm",
    "Sum",
    "Product",
    "And",
    "Tilde",
    "FormulaTerm",
    "InterceptTerm",
    "ContinuousTerm",
    "CategoricalTerm",
    # Algebra and construction
    "combine_sum",
    "combine_and",
    "combine_star",
    "term",
    "terms",
    "constant",
    "function",
    "protect",
    "term_variables",
    # Contrasts
    "ContrastScheme",
    "ContrastMatrix",
    "DummyCoding",
    "FullDummyCoding",
    "EffectsCoding",
    "HelmertCoding",
    "SeqDiffCoding",
    "ContrastsCoding",
    "contrast_matrix",
    "register_contrasts",
    "get_contrasts",
    "available_contrasts",
    # Functions
    "register_function",
    "unregister_function",
    "registered_functions",
    # Schema and resolution
    "Schema",
    "Continuous",
    "Categorical",
    "SchemaResolver",
    "ColumnGenerator",
]
