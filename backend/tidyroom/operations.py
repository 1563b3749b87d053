"""
Typed operation descriptors.

Every transformation the store can record is one of the models below. They are
immutable, serialize to JSON with a ``type`` tag, and double as the replay log
and the source of the human-readable history labels.

Example payload::

    {"type": "Unpivot", "id_vars": ["name"], "value_vars": ["2020", "2021"]}
"""
from __future__ import annotations

import os
from enum import Enum
from typing import Annotated, Any, ClassVar, Dict, List, Literal, Optional, Union

from pydantic import BaseModel, ConfigDict, Field, TypeAdapter

from .models import Dtype

ImportFormat = Literal["csv", "tsv", "excel", "parquet"]
ExportFormat = Literal["csv", "parquet"]


class FillStrategy(str, Enum):
    FORWARD = "forward"
    BACKWARD = "backward"
    MIN = "min"
    MAX = "max"
    MEAN = "mean"
    ZERO = "zero"
    ONE = "one"


class PivotAggregate(str, Enum):
    FIRST = "first"
    LAST = "last"
    SUM = "sum"
    MEAN = "mean"
    MIN = "min"
    MAX = "max"
    COUNT = "count"


class _Operation(BaseModel):
    model_config = ConfigDict(frozen=True, extra="forbid")

    def describe(self) -> str:
        raise NotImplementedError


class Import(_Operation):
    type: Literal["Import"] = "Import"
    file_path: str
    format: Optional[ImportFormat] = None
    sheet_name: Optional[str] = None

    def describe(self) -> str:
        return f"Import file: {os.path.basename(self.file_path) or 'unknown'}"


class DropNulls(_Operation):
    type: Literal["DropNulls"] = "DropNulls"
    subset: Optional[List[str]] = None

    def describe(self) -> str:
        if self.subset is not None:
            return f"Drop rows with nulls (checking {len(self.subset)} columns)"
        return "Drop rows with nulls (checking all columns)"


class DropAllNulls(_Operation):
    type: Literal["DropAllNulls"] = "DropAllNulls"

    def describe(self) -> str:
        return "Drop fully empty rows"


class SelectColumns(_Operation):
    type: Literal["SelectColumns"] = "SelectColumns"
    columns: List[str]

    def describe(self) -> str:
        return f"Select columns ({len(self.columns)} columns)"


class DropColumns(_Operation):
    type: Literal["DropColumns"] = "DropColumns"
    columns: List[str]

    def describe(self) -> str:
        return f"Drop columns ({len(self.columns)} columns)"


class RenameColumns(_Operation):
    type: Literal["RenameColumns"] = "RenameColumns"
    mapping: Dict[str, str]

    def describe(self) -> str:
        return f"Rename columns ({len(self.mapping)} columns)"


class CastTypes(_Operation):
    type: Literal["CastTypes"] = "CastTypes"
    mapping: Dict[str, Dtype]

    def describe(self) -> str:
        return f"Cast column types ({len(self.mapping)} columns)"


class Sort(_Operation):
    type: Literal["Sort"] = "Sort"
    column: str
    descending: bool = False
    nulls_last: bool = True

    def describe(self) -> str:
        direction = "descending" if self.descending else "ascending"
        nulls = "nulls last" if self.nulls_last else "nulls first"
        return f"Sort by {self.column} ({direction}, {nulls})"


class Filter(_Operation):
    type: Literal["Filter"] = "Filter"
    expression: str

    def describe(self) -> str:
        return f"Filter rows: {self.expression}"


class FillNull(_Operation):
    type: Literal["FillNull"] = "FillNull"
    strategy: FillStrategy
    columns: Optional[List[str]] = None

    def describe(self) -> str:
        target = ", ".join(self.columns) if self.columns else "all columns"
        return f"Fill nulls ({self.strategy.value}) in {target}"


class Pivot(_Operation):
    type: Literal["Pivot"] = "Pivot"
    index: List[str]
    columns: str
    values: str
    aggregate: PivotAggregate = PivotAggregate.FIRST

    def describe(self) -> str:
        return (f"Pivot (index: {', '.join(self.index)}, columns: {self.columns}, "
                f"values: {self.values}, aggregate: {self.aggregate.value})")


class Unpivot(_Operation):
    type: Literal["Unpivot"] = "Unpivot"
    id_vars: List[str]
    value_vars: List[str]
    variable_name: str = "variable"
    value_name: str = "value"
    sort_by: Optional[str] = None

    def describe(self) -> str:
        base = f"Unpivot (id columns: {len(self.id_vars)}, value columns: {len(self.value_vars)})"
        if self.sort_by:
            return f"{base} [sorted by {self.sort_by}]"
        return base


class _Rolling(_Operation):
    statistic: ClassVar[str]
    label: ClassVar[str]

    column: str
    window_size: int
    center: bool = False
    min_periods: int = 1
    new_column: Optional[str] = None

    @property
    def output_column(self) -> str:
        return self.new_column or f"{self.column}_rolling_{self.statistic}"

    def describe(self) -> str:
        return (f"{self.label} (column: {self.column}, window: {self.window_size}, "
                f"centered: {'yes' if self.center else 'no'}, min periods: {self.min_periods})")


class RollingSum(_Rolling):
    statistic: ClassVar[str] = "sum"
    label: ClassVar[str] = "Rolling sum"
    type: Literal["RollingSum"] = "RollingSum"


class RollingAverage(_Rolling):
    statistic: ClassVar[str] = "mean"
    label: ClassVar[str] = "Rolling average"
    type: Literal["RollingAverage"] = "RollingAverage"


class RollingMedian(_Rolling):
    statistic: ClassVar[str] = "median"
    label: ClassVar[str] = "Rolling median"
    type: Literal["RollingMedian"] = "RollingMedian"


class RollingMin(_Rolling):
    statistic: ClassVar[str] = "min"
    label: ClassVar[str] = "Rolling min"
    type: Literal["RollingMin"] = "RollingMin"


class RollingMax(_Rolling):
    statistic: ClassVar[str] = "max"
    label: ClassVar[str] = "Rolling max"
    type: Literal["RollingMax"] = "RollingMax"


class RollingStd(_Rolling):
    statistic: ClassVar[str] = "std"
    label: ClassVar[str] = "Rolling std"
    type: Literal["RollingStd"] = "RollingStd"


class RollingVar(_Rolling):
    statistic: ClassVar[str] = "var"
    label: ClassVar[str] = "Rolling variance"
    type: Literal["RollingVar"] = "RollingVar"


class RollingQuantile(_Rolling):
    statistic: ClassVar[str] = "quantile"
    label: ClassVar[str] = "Rolling quantile"
    type: Literal["RollingQuantile"] = "RollingQuantile"
    quantile: float

    def describe(self) -> str:
        return (f"{self.label} (column: {self.column}, window: {self.window_size}, "
                f"quantile: {self.quantile}, centered: {'yes' if self.center else 'no'}, "
                f"min periods: {self.min_periods})")


ROLLING_OPERATIONS = (
    RollingSum, RollingAverage, RollingMedian, RollingMin,
    RollingMax, RollingStd, RollingVar, RollingQuantile,
)

Operation = Annotated[
    Union[
        Import, DropNulls, DropAllNulls, SelectColumns, DropColumns,
        RenameColumns, CastTypes, Sort, Filter, FillNull, Pivot, Unpivot,
        RollingSum, RollingAverage, RollingMedian, RollingMin,
        RollingMax, RollingStd, RollingVar, RollingQuantile,
    ],
    Field(discriminator="type"),
]

_operation_adapter = TypeAdapter(Operation)


def parse_operation(data: Dict[str, Any]) -> _Operation:
    """Builds an Operation from its JSON form (pydantic.ValidationError on bad input)."""
    return _operation_adapter.validate_python(data)


def dump_operation(op: _Operation) -> Dict[str, Any]:
    return op.model_dump(mode="json")
