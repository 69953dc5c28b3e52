"""
modelterms: Statistical model formulas resolved against tabular data

Parses formulas such as ``y ~ 1 + a * b + log(x)``, expands them with the
term algebra, resolves variables against a table's schema with contrast coding,
and generates model matrices with stable column names.
"""

__version__ = "0.1.0"

# Formula system
from .formulas import (
    parse_formula,
    parse_terms,
    term,
    terms,
    constant,
    function,
    protect,
    tilde,
    extract_schema,
    apply_schema,
    modelcols,
    coefnames,
    ModelFrame,
    ModelMatrix,
    model_matrix,
    FormulaTerm,
    Schema,
)

# Contrast coding and function registries
from .formulas.contrasts import (
    DummyCoding,
    FullDummyCoding,
    EffectsCoding,
    HelmertCoding,
    SeqDiffCoding,
    ContrastsCoding,
    register_contrasts,
)
from .formulas.functions import register_function

# Tables
from .data.tables import Table, DataFrameTable, ColumnTable, as_table, load_table

# Configuration
from .config.settings import ModelTermsConfig, get_default_config

# Import key exception classes
from .core.exceptions import (
    ModelTermsError,
    MalformedFormulaError,
    FormulaSyntaxError,
    UnknownColumnError,
    SchemaMismatchError,
    AmbiguousCodingError,
    DuplicateTermError,
    UnknownFunctionError,
    LevelNotFoundError,
    FunctionArityError,
    TypeCoercionError,
    DataFormatError,
    ConfigurationError,
)

__all__ = [
    # Version info
    "__version__",

    # Formula system
    "parse_formula",
    "parse_terms",
    "term",
    "terms",
    "constant",
    "function",
    "protect",
    "tilde",
    "extract_schema",
    "apply_schema",
    "modelcols",
    "coefnames",
    "ModelFrame",
    "ModelMatrix",
    "model_matrix",
    "FormulaTerm",
    "Schema",

    # Contrasts and functions
    "DummyCoding",
    "FullDummyCoding",
    "EffectsCoding",
    "HelmertCoding",
    "SeqDiffCoding",
    "ContrastsCoding",
    "register_contrasts",
    "register_function",

    # Tables
    "Table",
    "DataFrameTable",
    "ColumnTable",
    "as_table",
    "load_table",

    # Configuration
    "ModelTermsConfig",
    "get_config",
    "configure",

    # Exceptions
    "ModelTermsError",
    "MalformedFormulaError",
    "FormulaSyntaxError",
    "UnknownColumnError",
    "SchemaMismatchError",
    "AmbiguousCodingError",
    "DuplicateTermError",
    "UnknownFunctionError",
    "LevelNotFoundError",
    "FunctionArityError",
    "TypeCoercionError",
    "DataFormatError",
    "ConfigurationError",
]


def get_config() -> ModelTermsConfig:
    """Get the global configuration instance."""
    return get_default_config()


def configure(**kwargs) -> None:
    """
    Update global configuration.

    Keys are section names or dotted paths, e.g.
    ``configure(**{"generation.backend": "jax"})``.
    """
    get_default_config().update(**kwargs)
