from __future__ import annotations

from enum import Enum
from typing import Any, List, Optional

import polars as pl
from pydantic import BaseModel


class Dtype(str, Enum):
    """Closed set of column types an operation can ask for."""
    INT8 = "Int8"
    INT16 = "Int16"
    INT32 = "Int32"
    INT64 = "Int64"
    UINT8 = "UInt8"
    UINT16 = "UInt16"
    UINT32 = "UInt32"
    UINT64 = "UInt64"
    FLOAT32 = "Float32"
    FLOAT64 = "Float64"
    STRING = "String"
    BOOLEAN = "Boolean"
    DATE = "Date"
    DATETIME = "Datetime"
    TIME = "Time"
    DURATION = "Duration"

    def to_polars(self) -> pl.DataType:
        return _TO_POLARS[self]

    @classmethod
    def from_polars(cls, dtype: pl.DataType) -> Optional["Dtype"]:
        return _FROM_POLARS.get(dtype.base_type().__name__)


_TO_POLARS = {
    Dtype.INT8: pl.Int8(),
    Dtype.INT16: pl.Int16(),
    Dtype.INT32: pl.Int32(),
    Dtype.INT64: pl.Int64(),
    Dtype.UINT8: pl.UInt8(),
    Dtype.UINT16: pl.UInt16(),
    Dtype.UINT32: pl.UInt32(),
    Dtype.UINT64: pl.UInt64(),
    Dtype.FLOAT32: pl.Float32(),
    Dtype.FLOAT64: pl.Float64(),
    Dtype.STRING: pl.String(),
    Dtype.BOOLEAN: pl.Boolean(),
    Dtype.DATE: pl.Date(),
    Dtype.DATETIME: pl.Datetime("us"),
    Dtype.TIME: pl.Time(),
    Dtype.DURATION: pl.Duration("us"),
}

# Keyed by class name so parametrised dtypes (Datetime("ms", "UTC")) resolve too
_FROM_POLARS = {v.base_type().__name__: k for k, v in _TO_POLARS.items()}


def dtype_name(dtype: pl.DataType) -> str:
    """Display name for a polars dtype: the Dtype value when it has one, else polars' own name."""
    known = Dtype.from_polars(dtype)
    return known.value if known is not None else str(dtype)


class ColumnInfo(BaseModel):
    """Metadata for a single column."""
    name: str
    dtype: str
    null_count: int


class DatasetMetadata(BaseModel):
    """
    Lightweight description of the frame at one history position.
    Cheap to list and serialize; the frame itself stays in the store.
    """
    id: str
    name: str
    row_count: int
    columns: List[ColumnInfo]
    file_path: str
    imported_at: str

    @classmethod
    def from_frame(cls, df: pl.DataFrame, dataset_id: str, name: str,
                   file_path: str, imported_at: str) -> "DatasetMetadata":
        null_counts = df.null_count().row(0) if df.width else ()
        columns = [
            ColumnInfo(name=col, dtype=dtype_name(dtype), null_count=int(nulls))
            for (col, dtype), nulls in zip(df.schema.items(), null_counts)
        ]
        return cls(
            id=dataset_id,
            name=name,
            row_count=df.height,
            columns=columns,
            file_path=file_path,
            imported_at=imported_at,
        )

    def derive(self, df: pl.DataFrame) -> "DatasetMetadata":
        """Recompute the frame-dependent fields, keeping the lineage fields."""
        return DatasetMetadata.from_frame(df, self.id, self.name, self.file_path, self.imported_at)


class ColumnStats(BaseModel):
    """
    Per-column summary. Optional fields are None when they do not apply to the
    column's dtype family, which is not the same as a zero value.
    """
    name: str
    dtype: str
    total_count: int
    null_count: int
    unique_count: int

    # numeric
    max: Optional[float] = None
    min: Optional[float] = None
    mean: Optional[float] = None
    std: Optional[float] = None
    q25: Optional[float] = None
    q50: Optional[float] = None
    q75: Optional[float] = None

    # date / datetime
    min_datetime: Optional[str] = None
    max_datetime: Optional[str] = None
    range_days: Optional[float] = None

    # boolean
    true_count: Optional[int] = None
    false_count: Optional[int] = None


class DatasetPage(BaseModel):
    """A window of rows from the current frame, ready for JSON transport."""
    columns: List[str]
    rows: List[List[Any]]
    total_rows: int
