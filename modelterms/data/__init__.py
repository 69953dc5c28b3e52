"""Table collaborators for modelterms."""

from .tables import (
    Table,
    DataFrameTable,
    ColumnTable,
    NUMERIC,
    DISCRETE,
    as_table,
    load_table,
    register_adapter,
)

__all__ = [
    "Table",
    "DataFrameTable",
    "ColumnTable",
    "NUMERIC",
    "DISCRETE",
    "as_table",
    "load_table",
    "register_adapter",
]
