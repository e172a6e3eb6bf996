"""
Tabular input and output for the engines.

Input rows are converted to a 2-D float array with ``as_points``. Prediction
results come back as a PredictionFrame: an ordered list of row tuples plus the
column schema describing them.
"""

from __future__ import annotations

from collections.abc import Iterator, Sequence
from dataclasses import dataclass
from enum import Enum
from typing import Any

import numpy as np
import numpy.typing as npt

from .exceptions import InvalidArgumentError


def as_points(rows: Any) -> npt.NDArray[np.float64]:
    """
    Convert input rows to a float array of shape (n_samples, n_features).
    Args:
        rows: numpy array, nested sequence, 1-D sequence of scalars (read as a
            single column), or any table object exposing ``to_numpy()``.
    Returns:
        2-D float64 array, one row per input row.
    """
    if rows is None:
        raise InvalidArgumentError("input rows should not be None")

    if hasattr(rows, "to_numpy"):
        rows = rows.to_numpy()

    try:
        Xs = np.asarray(rows, dtype=np.float64)
    except (TypeError, ValueError) as e:
        raise InvalidArgumentError(f"input rows must be numeric with a fixed column count: {e}") from e

    if Xs.ndim == 1:
        Xs = Xs.reshape(-1, 1)
    if Xs.ndim != 2:
        raise InvalidArgumentError(f"input rows must be two-dimensional, got {Xs.ndim} dimensions")
    if Xs.shape[0] > 0 and Xs.shape[1] == 0:
        raise InvalidArgumentError("input rows must have at least one column")
    if not np.all(np.isfinite(Xs)):
        raise InvalidArgumentError("input rows must be finite numbers")
    return Xs


class ColumnType(str, Enum):
    DOUBLE = "DOUBLE"
    BOOLEAN = "BOOLEAN"
    INTEGER = "INTEGER"


@dataclass(frozen=True)
class ColumnMeta:
    name: str
    column_type: ColumnType


class PredictionFrame(Sequence):
    """
    Ordered prediction rows with their column schema.
    Rows are plain tuples of python scalars, one value per column.
    """

    def __init__(self, columns: Sequence[ColumnMeta], rows: list[tuple]) -> None:
        self.columns = tuple(columns)
        self.rows = rows

    @classmethod
    def from_columns(cls, columns: Sequence[ColumnMeta], *values: npt.ArrayLike) -> PredictionFrame:
        converters = {
            ColumnType.DOUBLE: float,
            ColumnType.BOOLEAN: bool,
            ColumnType.INTEGER: int,
        }
        converted = [
            [converters[column.column_type](value) for value in np.asarray(column_values).tolist()]
            for column, column_values in zip(columns, values)
        ]
        return cls(columns, list(zip(*converted)))

    def __len__(self) -> int:
        return len(self.rows)

    def __getitem__(self, index):
        return self.rows[index]

    def __iter__(self) -> Iterator[tuple]:
        return iter(self.rows)

    def column_names(self) -> list[str]:
        return [column.name for column in self.columns]

    def column(self, name: str) -> np.ndarray:
        """Values of one column as a numpy array, in row order."""
        names = self.column_names()
        if name not in names:
            raise KeyError(name)
        idx = names.index(name)
        return np.array([row[idx] for row in self.rows])

    def __repr__(self) -> str:
        return f"PredictionFrame(columns={self.column_names()}, rows={len(self.rows)})"
