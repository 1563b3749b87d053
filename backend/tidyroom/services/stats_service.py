# backend/tidyroom/services/stats_service.py
import math
from typing import Any, Optional

import polars as pl

from ..errors import SchemaError
from ..models import ColumnStats, dtype_name
from .io_service import to_json_value

_QUANTILES = {"q25": 0.25, "q50": 0.5, "q75": 0.75}


def _to_float(value: Any) -> Optional[float]:
    if value is None:
        return None
    value = float(value)
    return value if math.isfinite(value) else None


def column_stats(df: pl.DataFrame, column: str) -> ColumnStats:
    """
    Summary statistics for one column.

    Every column gets counts (unique_count treats null as one value). Numeric
    columns add min/max/mean/std and nearest-rank quartiles, Date/Datetime
    columns add their range, Boolean columns add true/false counts.
    """
    if column not in df.columns:
        raise SchemaError(f"Column '{column}' not found in dataset")

    series = df.get_column(column)
    dtype = series.dtype
    total = series.len()
    nulls = series.null_count()
    stats = {
        "name": column,
        "dtype": dtype_name(dtype),
        "total_count": total,
        "null_count": nulls,
        "unique_count": series.n_unique() if total else 0,
    }

    if dtype.is_numeric():
        stats.update({
            "max": _to_float(series.max()),
            "min": _to_float(series.min()),
            "mean": _to_float(series.mean()),
            "std": _to_float(series.std()),
        })
        for key, q in _QUANTILES.items():
            stats[key] = _to_float(series.quantile(q, interpolation="nearest"))
    elif dtype == pl.Date or dtype == pl.Datetime:
        lo, hi = series.min(), series.max()
        if lo is not None and hi is not None:
            stats.update({
                "min_datetime": to_json_value(lo),
                "max_datetime": to_json_value(hi),
                "range_days": (hi - lo).total_seconds() / 86400,
            })
    elif dtype == pl.Boolean:
        true_count = int(series.sum() or 0)
        stats.update({
            "true_count": true_count,
            "false_count": total - nulls - true_count,
        })

    return ColumnStats(**stats)
