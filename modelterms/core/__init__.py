"""Core functionality for modelterms."""

from .exceptions import (
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
    ValidationError,
)

__all__ = [
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
    "ValidationError",
]
