"""
Exception classes for modelterms.

Provides rich error information with actionable suggestions. Every stage of the
formula pipeline raises one of these at the point the problem is detected.
"""

from typing import List, Optional, Dict, Any, Sequence


class ModelTermsError(Exception):
    """
    Base exception class for modelterms with rich error information.

    Provides structured error information including suggestions for resolution
    and a machine-readable error code.
    """

    def __init__(
        self,
        message: str,
        suggestions: Optional[List[str]] = None,
        error_code: Optional[str] = None,
        context: Optional[Dict[str, Any]] = None
    ):
        self.message = message
        self.suggestions = suggestions or []
        self.error_code = error_code
        self.context = context or {}
        super().__init__(message)

    def __str__(self) -> str:
        """Return formatted error message with suggestions."""
        message = super().__str__()

        if self.error_code:
            message = f"[{self.error_code}] {message}"

        if self.suggestions:
            message += "\n\nSuggestions:"
            for i, suggestion in enumerate(self.suggestions, 1):
                message += f"\n  {i}. {suggestion}"

        return message


class MalformedFormulaError(ModelTermsError):
    """Structural misuse of '~', constants or combinators in a formula."""

    def __init__(
        self,
        formula: Optional[str] = None,
        reason: Optional[str] = None,
        suggestions: Optional[List[str]] = None,
        **kwargs
    ):
        if formula and reason:
            message = f"Malformed formula '{formula}': {reason}"
        elif reason:
            message = f"Malformed formula: {reason}"
        elif formula:
            message = f"Malformed formula: {formula}"
        else:
            message = "Malformed formula"

        if suggestions is None:
            suggestions = [
                "Use '~' exactly once, between the response and the predictors",
                "Use '0' or '1' only as direct summands (e.g. 'y ~ 0 + a')",
                "Examples: 'y ~ a + b', 'y ~ a * b', 'y ~ 1 + a & b'",
            ]

        super().__init__(
            message=message,
            suggestions=suggestions,
            error_code=kwargs.pop("error_code", "MALFORMED_FORMULA"),
            context={"formula": formula, "reason": reason},
            **kwargs
        )


class FormulaSyntaxError(MalformedFormulaError):
    """The formula source text could not be tokenized or parsed."""

    def __init__(self, source: str, position: int, reason: str):
        self.source = source
        self.position = position
        excerpt = f"{source}\n{' ' * position}^"
        super().__init__(
            reason=f"{reason} at position {position}\n{excerpt}",
            suggestions=[
                "Check for unbalanced parentheses",
                "Operators allowed between terms: '~', '+', '&', '*'",
                "Arithmetic ('-', '/', '^') is only allowed inside function calls",
            ],
            error_code="FORMULA_SYNTAX",
        )


class UnknownColumnError(ModelTermsError):
    """A formula references a column the table does not have."""

    def __init__(
        self,
        missing_columns: Sequence[str],
        available_columns: Optional[Sequence[str]] = None,
    ):
        self.missing_columns = list(missing_columns)
        available = list(available_columns or [])
        message = f"Columns not found in table: {self.missing_columns}"
        suggestions = [
            "Check column name spelling and case sensitivity",
            "Ensure all required data columns are present",
        ]
        if available:
            suggestions.insert(0, f"Available columns: {', '.join(sorted(map(str, available)))}")

        super().__init__(
            message=message,
            suggestions=suggestions,
            error_code="UNKNOWN_COLUMN",
            context={"missing_columns": self.missing_columns, "available_columns": available},
        )


class SchemaMismatchError(ModelTermsError):
    """A variable's kind disagrees with an earlier resolution."""

    def __init__(self, variable: str, expected: str, found: str):
        self.variable = variable
        super().__init__(
            message=(
                f"Variable '{variable}' was resolved as {expected} "
                f"but the schema now describes it as {found}"
            ),
            suggestions=[
                "Resolve the formula again from its unresolved form",
                "Supply a table whose column types match the original data",
                f"Use a hint to force '{variable}' to be {expected}",
            ],
            error_code="SCHEMA_MISMATCH",
            context={"variable": variable, "expected": expected, "found": found},
        )


class AmbiguousCodingError(ModelTermsError):
    """A categorical variable cannot be contrast coded."""

    def __init__(self, variable: Optional[str] = None, levels: Optional[Sequence[Any]] = None,
                 reason: Optional[str] = None):
        levels = list(levels) if levels is not None else []
        if reason is None:
            reason = f"needs at least 2 levels, found {len(levels)}: {levels}"
        label = f"'{variable}'" if variable else "categorical variable"
        super().__init__(
            message=f"Cannot contrast code {label}: {reason}",
            suggestions=[
                "Drop the variable from the formula if it is constant",
                "Treat the variable as continuous with a hint",
                "Check that the table holds the expected rows",
            ],
            error_code="AMBIGUOUS_CODING",
            context={"variable": variable, "levels": levels},
        )


class DuplicateTermError(ModelTermsError):
    """Two resolved terms are structurally identical."""

    def __init__(self, term_name: str, formula: Optional[str] = None):
        super().__init__(
            message=f"Term '{term_name}' appears more than once after resolution",
            suggestions=[
                "Remove the repeated term from the formula",
                "Duplicate terms generate colinear columns",
            ],
            error_code="DUPLICATE_TERM",
            context={"term": term_name, "formula": formula},
        )


class UnknownFunctionError(ModelTermsError):
    """A function term names a callee that is not registered."""

    def __init__(self, callee: str, available: Optional[Sequence[str]] = None):
        suggestions = [
            "Register the function with modelterms.register_function()",
            "Or pass it through the 'functions' mapping",
        ]
        if available:
            suggestions.insert(0, f"Known functions: {', '.join(sorted(available))}")
        super().__init__(
            message=f"Unknown function '{callee}'",
            suggestions=suggestions,
            error_code="UNKNOWN_FUNCTION",
            context={"callee": callee},
        )


class LevelNotFoundError(ModelTermsError):
    """A row holds a categorical value that was not seen at resolution time."""

    def __init__(self, variable: str, value: Any, levels: Sequence[Any], row: Optional[int] = None):
        where = f" (row {row})" if row is not None else ""
        super().__init__(
            message=f"Value {value!r} of '{variable}'{where} is not among the resolved levels {list(levels)}",
            suggestions=[
                "Resolve the formula against data containing every level",
                "Filter rows with unseen levels before generating columns",
            ],
            error_code="LEVEL_NOT_FOUND",
            context={"variable": variable, "value": value, "levels": list(levels), "row": row},
        )


class FunctionArityError(ModelTermsError):
    """A function term received an argument it cannot consume."""

    def __init__(self, expression: str, argument: str, width: int):
        super().__init__(
            message=(
                f"Argument '{argument}' of '{expression}' generates {width} columns; "
                "function arguments must be single-column"
            ),
            suggestions=[
                "Use continuous variables as function arguments",
                "A two-level categorical variable generates a single column",
            ],
            error_code="FUNCTION_ARITY",
            context={"expression": expression, "argument": argument, "width": width},
        )


class TypeCoercionError(ModelTermsError):
    """Values of a continuous variable cannot be converted to numbers."""

    def __init__(self, variable: str, detail: Optional[str] = None):
        message = f"Values of '{variable}' cannot be converted to float"
        if detail:
            message += f": {detail}"
        super().__init__(
            message=message,
            suggestions=[
                f"Check '{variable}' for non-numeric entries",
                f"Use a hint to treat '{variable}' as categorical",
            ],
            error_code="TYPE_COERCION",
            context={"variable": variable},
        )


class DataFormatError(ModelTermsError):
    """Exception raised for table format issues."""

    def __init__(
        self,
        detected_format: Optional[str] = None,
        expected_formats: Optional[List[str]] = None,
        specific_issue: Optional[str] = None,
        **kwargs
    ):
        if detected_format and expected_formats:
            message = f"Unsupported data format: {detected_format}"
            suggestions = [
                f"Convert your data to one of: {', '.join(expected_formats)}",
                "Wrap custom storage in a modelterms.data.Table subclass",
            ]
        elif specific_issue:
            message = f"Data format issue: {specific_issue}"
            suggestions = [
                "Check your data structure and column names",
                "Ensure every column has the same number of rows",
            ]
        else:
            message = "Data format validation failed"
            suggestions = [
                "Check the table structure",
            ]

        kwargs.pop('suggestions', None)

        super().__init__(
            message=message,
            suggestions=suggestions,
            error_code="DATA_FORMAT",
            context={"detected_format": detected_format, "expected_formats": expected_formats},
            **kwargs
        )


class ConfigurationError(ModelTermsError):
    """Exception raised for configuration issues."""

    def __init__(self, config_key: Optional[str] = None, detail: Optional[str] = None, **kwargs):
        if config_key:
            message = f"Invalid configuration for '{config_key}'"
            suggestions = [
                f"Check the value for configuration key '{config_key}'",
                "Review configuration file syntax",
                "Check environment variable formatting",
                "Use modelterms.get_config() to inspect current settings",
            ]
        else:
            message = "Configuration error"
            suggestions = [
                "Check configuration file syntax",
                "Verify all required settings are provided",
            ]
        if detail:
            message += f": {detail}"

        kwargs.pop('suggestions', None)

        super().__init__(
            message=message,
            suggestions=suggestions,
            error_code="CONFIG",
            context={"config_key": config_key},
            **kwargs
        )


class ValidationError(ModelTermsError):
    """Exception raised when a generated array fails a consistency check."""

    def __init__(self, message: str = "Validation checks failed", **kwargs):
        super().__init__(
            message=message,
            suggestions=kwargs.pop("suggestions", None),
            error_code="VALIDATION",
            **kwargs
        )
