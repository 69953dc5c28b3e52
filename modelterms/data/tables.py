"""
Table adapters for modelterms.

The formula pipeline reads data only through the ``Table`` contract: a row
count, a stable set of column names, a numeric/discrete tag per column and the
column values. Adapters wrap concrete storage without copying or mutating it.
"""

import pandas as pd
import numpy as np
from abc import ABC, abstractmethod
from pathlib import Path
from typing import Any, Dict, List, Mapping, Sequence, Tuple, Type, Union

from ..core.exceptions import DataFormatError, UnknownColumnError
from ..utils.logging import get_logger


logger = get_logger(__name__)

NUMERIC = "numeric"
DISCRETE = "discrete"


class Table(ABC):
    """Read-only columnar table consumed by schema extraction and modelcols."""

    @property
    @abstractmethod
    def n_rows(self) -> int:
        """Number of rows."""

    @property
    @abstractmethod
    def column_names(self) -> Tuple[str, ...]:
        """Column names in a stable order."""

    @abstractmethod
    def column_kind(self, name: str) -> str:
        """Return ``"numeric"`` or ``"discrete"`` for a column."""

    @abstractmethod
    def column_values(self, name: str) -> Sequence[Any]:
        """Return the values of a column, one per row."""

    def column_categories(self, name: str) -> Union[Tuple[Any, ...], None]:
        """Declared category order of a column, if the storage carries one."""
        return None

    def has_column(self, name: str) -> bool:
        return name in self.column_names

    def _require(self, name: str) -> None:
        if not self.has_column(name):
            raise UnknownColumnError([name], self.column_names)

    @classmethod
    def accepts(cls, data: Any) -> bool:
        """Detect if this adapter can wrap the given object."""
        return False

    def __len__(self) -> int:
        return self.n_rows

    def __repr__(self) -> str:
        return f"{self.__class__.__name__}(n_rows={self.n_rows}, columns={list(self.column_names)})"


class DataFrameTable(Table):
    """Adapter for pandas DataFrames."""

    def __init__(self, frame: pd.DataFrame):
        if not isinstance(frame, pd.DataFrame):
            raise DataFormatError(
                detected_format=type(frame).__name__,
                expected_formats=["pandas.DataFrame"],
            )
        if not frame.columns.is_unique:
            duplicated = frame.columns[frame.columns.duplicated()].tolist()
            raise DataFormatError(specific_issue=f"Duplicate column names: {duplicated}")
        labels = {}
        for label in frame.columns:
            if str(label) in labels:
                raise DataFormatError(
                    specific_issue=f"Column labels {labels[str(label)]!r} and {label!r} both read as '{str(label)}'"
                )
            labels[str(label)] = label
        self.frame = frame
        self._labels = labels

    @classmethod
    def accepts(cls, data: Any) -> bool:
        return isinstance(data, pd.DataFrame)

    @property
    def n_rows(self) -> int:
        return len(self.frame)

    @property
    def column_names(self) -> Tuple[str, ...]:
        return tuple(self._labels)

    def _series(self, name: str) -> pd.Series:
        self._require(name)
        return self.frame[self._labels[name]]

    def column_kind(self, name: str) -> str:
        dtype = self._series(name).dtype
        if isinstance(dtype, pd.CategoricalDtype):
            return DISCRETE
        if pd.api.types.is_bool_dtype(dtype) or pd.api.types.is_numeric_dtype(dtype):
            return NUMERIC
        return DISCRETE

    def column_values(self, name: str) -> Sequence[Any]:
        series = self._series(name)
        if isinstance(series.dtype, pd.CategoricalDtype):
            return series.astype(object).to_numpy()
        return series.to_numpy()

    def column_categories(self, name: str):
        dtype = self._series(name).dtype
        if isinstance(dtype, pd.CategoricalDtype):
            return tuple(dtype.categories)
        return None


def _as_column(values: Sequence[Any]) -> np.ndarray:
    array = np.asarray(values)
    if array.dtype == object and array.ndim == 1:
        # numbers mixed with None/NaN become a float column with NaN
        if pd.api.types.infer_dtype(array, skipna=True) in ("integer", "floating", "mixed-integer-float"):
            numeric = pd.to_numeric(pd.Series(array), errors="coerce")
            return numeric.to_numpy(dtype=np.float64, na_value=np.nan)
    return array


class ColumnTable(Table):
    """Adapter for a mapping of column name to a sequence or 1-D array."""

    def __init__(self, columns: Mapping[str, Sequence[Any]]):
        if not isinstance(columns, Mapping):
            raise DataFormatError(
                detected_format=type(columns).__name__,
                expected_formats=["mapping of column name to values"],
            )
        self._columns: Dict[str, np.ndarray] = {}
        lengths = {}
        for name, values in columns.items():
            array = _as_column(values)
            if array.ndim != 1:
                raise DataFormatError(
                    specific_issue=f"Column '{name}' must be one-dimensional, got shape {array.shape}"
                )
            if str(name) in self._columns:
                raise DataFormatError(specific_issue=f"Duplicate column names: ['{name}']")
            self._columns[str(name)] = array
            lengths[str(name)] = len(array)

        if len(set(lengths.values())) > 1:
            raise DataFormatError(specific_issue=f"Columns have different lengths: {lengths}")
        self._n_rows = next(iter(lengths.values()), 0)

    @classmethod
    def accepts(cls, data: Any) -> bool:
        return isinstance(data, Mapping)

    @property
    def n_rows(self) -> int:
        return self._n_rows

    @property
    def column_names(self) -> Tuple[str, ...]:
        return tuple(self._columns)

    def column_kind(self, name: str) -> str:
        self._require(name)
        # bool, signed/unsigned int and float arrays are numeric
        return NUMERIC if self._columns[name].dtype.kind in "biuf" else DISCRETE

    def column_values(self, name: str) -> Sequence[Any]:
        self._require(name)
        return self._columns[name]


# Registry of available adapters
_adapters: List[Type[Table]] = [
    DataFrameTable,
    ColumnTable,
]

def register_adapter(adapter: Type[Table]) -> None:
    """Register a new table adapter."""
    _adapters.insert(0, adapter)  # New adapters get priority


def as_table(data: Any) -> Table:
    """
    Wrap data in the appropriate Table adapter.

    Args:
        data: A Table, a pandas DataFrame or a mapping of columns

    Returns:
        Table instance

    Raises:
        DataFormatError: If no suitable adapter is found
    """
    if isinstance(data, Table):
        return data

    for adapter in _adapters:
        if adapter.accepts(data):
            logger.debug(f"Detected table format: {adapter.__name__}")
            return adapter(data)

    raise DataFormatError(
        detected_format=type(data).__name__,
        expected_formats=[a.__name__ for a in _adapters],
    )


def load_table(file_path: Union[str, Path], **kwargs) -> DataFrameTable:
    """
    Load a CSV or Excel file into a DataFrameTable.

    Args:
        file_path: Path to data file
        **kwargs: Additional arguments for the pandas reader

    Raises:
        DataFormatError: If the file cannot be loaded
    """
    file_path = Path(file_path)

    if not file_path.exists():
        raise DataFormatError(specific_issue=f"File not found: {file_path}")

    suffix = file_path.suffix.lower()
    if suffix == '.csv':
        reader = pd.read_csv
    elif suffix in ('.xlsx', '.xls'):
        reader = pd.read_excel
    else:
        raise DataFormatError(
            detected_format=suffix or "no extension",
            expected_formats=[".csv", ".xlsx", ".xls"],
        )

    try:
        frame = reader(file_path, **kwargs)
    except (OSError, ValueError) as e:
        raise DataFormatError(specific_issue=f"Failed to load {file_path}: {e}") from e

    logger.debug(f"Loaded table from {file_path}", rows=len(frame), columns=len(frame.columns))
    return DataFrameTable(frame)
