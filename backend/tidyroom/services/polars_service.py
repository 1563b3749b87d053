# backend/tidyroom/services/polars_service.py
import logging
from typing import Iterable, List, Sequence

import polars as pl

from ..errors import ParseError, SchemaError, TidyroomError, ValidationError
from ..models import Dtype
from ..operations import (
    CastTypes, DropAllNulls, DropColumns, DropNulls, FillNull, FillStrategy,
    Filter, Import, Pivot, PivotAggregate, RenameColumns, RollingQuantile,
    ROLLING_OPERATIONS, SelectColumns, Sort, Unpivot,
)
from . import io_service

logger = logging.getLogger(__name__)

_BOOL_TRUE = ["true", "t", "yes", "1"]
_BOOL_FALSE = ["false", "f", "no", "0"]


# --- Helpers ---
def _is_numeric_dtype_pl(df: pl.DataFrame, col_name: str) -> bool:
    """Checks if a Polars column dtype is numeric."""
    if col_name not in df.columns:
        return False
    return df.schema[col_name].is_numeric()


def _require_columns(df: pl.DataFrame, columns: Iterable[str], context: str) -> None:
    missing = [col for col in columns if col not in df.columns]
    if missing:
        raise SchemaError(f"Columns not found for {context}: {', '.join(missing)}")


def _duplicates(names: Sequence[str]) -> List[str]:
    seen, dupes = set(), []
    for name in names:
        if name in seen and name not in dupes:
            dupes.append(name)
        seen.add(name)
    return dupes


def _check_frame(df: pl.DataFrame) -> pl.DataFrame:
    dupes = _duplicates(df.columns)
    if dupes:
        raise SchemaError(f"Operation produced duplicate column names: {', '.join(dupes)}")
    return df


def apply_operation(df: pl.DataFrame, op) -> pl.DataFrame:
    """
    Applies one operation to the frame and returns the new frame.
    The input frame is never modified; polars errors are translated to tidyroom errors.
    """
    logger.debug("Applying operation: %s", type(op).__name__)
    try:
        if isinstance(op, Import): result = _import_pl(op)
        elif isinstance(op, DropNulls): result = _dropna_pl(df, op)
        elif isinstance(op, DropAllNulls): result = _drop_all_null_rows_pl(df)
        elif isinstance(op, SelectColumns): result = _select_columns_pl(df, op)
        elif isinstance(op, DropColumns): result = _drop_columns_pl(df, op)
        elif isinstance(op, RenameColumns): result = _rename_columns_pl(df, op)
        elif isinstance(op, CastTypes): result = _astype_pl(df, op)
        elif isinstance(op, Sort): result = _sort_values_pl(df, op)
        elif isinstance(op, Filter): result = _filter_rows_pl(df, op)
        elif isinstance(op, FillNull): result = _fillna_pl(df, op)
        elif isinstance(op, Pivot): result = _pivot_pl(df, op)
        elif isinstance(op, Unpivot): result = _melt_pl(df, op)
        elif isinstance(op, ROLLING_OPERATIONS): result = _window_function_pl(df, op)
        else:
            raise ValidationError(f"Unsupported operation: {type(op).__name__}")
    except TidyroomError:
        raise
    except pl.exceptions.ColumnNotFoundError as e:
        raise SchemaError(f"Column not found: {e}") from e
    except (pl.exceptions.SQLSyntaxError, pl.exceptions.SQLInterfaceError) as e:
        raise ParseError(f"Invalid expression: {e}") from e
    except pl.exceptions.PolarsError as e:
        raise SchemaError(f"{type(e).__name__}: {e}") from e
    return _check_frame(result)


def replay_operations(operations: Iterable) -> pl.DataFrame:
    """
    Replays a recorded operation log from its Import onwards.
    Returns the final frame.
    """
    ops = list(operations)
    if not ops or not isinstance(ops[0], Import):
        raise ValidationError("Replay log must start with an Import operation")

    current_df = pl.DataFrame()
    for i, op in enumerate(ops):
        try:
            current_df = apply_operation(current_df, op)
        except TidyroomError as e:
            logger.warning("Replay failed at step %d (%s): %s", i + 1, op.describe(), e.message)
            raise e.with_operation(op.describe())
    return current_df


# --- Specific Operations ---

def _import_pl(op: Import) -> pl.DataFrame:
    return io_service.load_file(op.file_path, op.format, op.sheet_name)


def _dropna_pl(df: pl.DataFrame, op: DropNulls) -> pl.DataFrame:
    if op.subset is None:
        return df.drop_nulls()
    if not op.subset:
        raise ValidationError("Subset for dropping nulls cannot be empty")
    _require_columns(df, op.subset, "dropping nulls")
    return df.drop_nulls(subset=list(op.subset))


def _drop_all_null_rows_pl(df: pl.DataFrame) -> pl.DataFrame:
    if df.width == 0:
        return df
    return df.filter(~pl.all_horizontal(pl.all().is_null()))


def _select_columns_pl(df: pl.DataFrame, op: SelectColumns) -> pl.DataFrame:
    dupes = _duplicates(op.columns)
    if dupes:
        raise ValidationError(f"Columns selected more than once: {', '.join(dupes)}")
    _require_columns(df, op.columns, "select")
    return df.select(op.columns)


def _drop_columns_pl(df: pl.DataFrame, op: DropColumns) -> pl.DataFrame:
    dupes = _duplicates(op.columns)
    if dupes:
        raise ValidationError(f"Columns listed more than once: {', '.join(dupes)}")
    _require_columns(df, op.columns, "drop")
    return df.drop(op.columns)


def _rename_columns_pl(df: pl.DataFrame, op: RenameColumns) -> pl.DataFrame:
    if not op.mapping:
        raise ValidationError("No rename mappings provided")
    blank = [old for old, new in op.mapping.items() if not new]
    if blank:
        raise ValidationError(f"New name is empty for: {', '.join(blank)}")
    _require_columns(df, op.mapping, "rename")

    new_names = [op.mapping.get(col, col) for col in df.columns]
    dupes = _duplicates(new_names)
    if dupes:
        raise SchemaError(f"Rename would produce duplicate column names: {', '.join(dupes)}")

    # Aliasing in one select keeps swaps (a->b, b->a) valid
    return df.select([pl.col(old).alias(new) for old, new in zip(df.columns, new_names)])


def _cast_expr_pl(name: str, source: pl.DataType, target: Dtype) -> pl.Expr:
    """Lossy cast: cells that cannot be converted become null."""
    col = pl.col(name)
    if source == pl.String:
        text = col.str.strip_chars()
        if target == Dtype.DATE:
            return text.str.to_date(strict=False).alias(name)
        if target == Dtype.DATETIME:
            return text.str.to_datetime(time_unit="us", strict=False).alias(name)
        if target == Dtype.TIME:
            return text.str.to_time(strict=False).alias(name)
        if target == Dtype.BOOLEAN:
            lowered = text.str.to_lowercase()
            return (
                pl.when(lowered.is_in(_BOOL_TRUE)).then(pl.lit(True))
                .when(lowered.is_in(_BOOL_FALSE)).then(pl.lit(False))
                .otherwise(pl.lit(None, dtype=pl.Boolean))
                .alias(name)
            )
        return text.cast(target.to_polars(), strict=False).alias(name)
    return col.cast(target.to_polars(), strict=False).alias(name)


def _astype_pl(df: pl.DataFrame, op: CastTypes) -> pl.DataFrame:
    if not op.mapping:
        raise ValidationError("No column types provided for cast")
    _require_columns(df, op.mapping, "cast")

    result = df
    for name, target in op.mapping.items():
        try:
            result = result.with_columns(_cast_expr_pl(name, df.schema[name], target))
        except pl.exceptions.PolarsError as e:
            raise SchemaError(f"Cannot cast column '{name}' from {df.schema[name]} to {target.value}: {e}") from e
    return result


def _sort_values_pl(df: pl.DataFrame, op: Sort) -> pl.DataFrame:
    _require_columns(df, [op.column], "sort")
    return df.sort(op.column, descending=op.descending, nulls_last=op.nulls_last, maintain_order=True)


def _filter_rows_pl(df: pl.DataFrame, op: Filter) -> pl.DataFrame:
    if not op.expression or not op.expression.strip():
        raise ValidationError("Filter expression cannot be empty")
    try:
        predicate = pl.sql_expr(op.expression)
    except pl.exceptions.PolarsError as e:
        raise ParseError(f"Invalid filter expression '{op.expression}': {e}") from e

    try:
        return df.filter(predicate)
    except pl.exceptions.ColumnNotFoundError as e:
        raise SchemaError(f"Filter references an unknown column: {e}") from e
    except (pl.exceptions.SQLSyntaxError, pl.exceptions.SQLInterfaceError) as e:
        raise ParseError(f"Invalid filter expression '{op.expression}': {e}") from e
    except pl.exceptions.PolarsError as e:
        raise SchemaError(f"Filter expression does not fit the data: {e}") from e


_NUMERIC_FILLS = (FillStrategy.MIN, FillStrategy.MAX, FillStrategy.MEAN)
_LITERAL_FILLS = {FillStrategy.ZERO: 0, FillStrategy.ONE: 1}


def _supports_fill(dtype: pl.DataType, strategy: FillStrategy) -> bool:
    if strategy in _NUMERIC_FILLS:
        return dtype.is_numeric()
    if strategy in _LITERAL_FILLS:
        return dtype.is_numeric() or dtype == pl.Boolean
    return True


def _fillna_pl(df: pl.DataFrame, op: FillNull) -> pl.DataFrame:
    strategy = op.strategy
    if op.columns is not None:
        if not op.columns:
            raise ValidationError("No columns given to fill")
        _require_columns(df, op.columns, "fill")
        unsupported = [col for col in op.columns if not _supports_fill(df.schema[col], strategy)]
        if unsupported:
            raise ValidationError(
                f"Fill strategy '{strategy.value}' does not apply to columns: {', '.join(unsupported)}")
        targets = list(dict.fromkeys(op.columns))
    else:
        targets = [col for col, dtype in df.schema.items() if _supports_fill(dtype, strategy)]

    exprs = []
    for name in targets:
        series = df.get_column(name)
        dtype = series.dtype
        if strategy in (FillStrategy.FORWARD, FillStrategy.BACKWARD):
            exprs.append(pl.col(name).fill_null(strategy=strategy.value))
        elif strategy in _LITERAL_FILLS:
            exprs.append(pl.col(name).fill_null(pl.lit(_LITERAL_FILLS[strategy]).cast(dtype)))
        else:
            if series.null_count() == series.len():
                continue  # no statistic to fill with
            # Computed once from the input, before any replacement
            if strategy == FillStrategy.MEAN:
                value = series.mean()
                if dtype.is_integer():
                    exprs.append(pl.col(name).cast(pl.Float64).fill_null(pl.lit(value, dtype=pl.Float64)))
                else:
                    exprs.append(pl.col(name).fill_null(pl.lit(value).cast(dtype)))
            else:
                value = series.min() if strategy == FillStrategy.MIN else series.max()
                exprs.append(pl.col(name).fill_null(pl.lit(value).cast(dtype)))

    if not exprs:
        return df
    return df.with_columns(exprs)


def _map_agg_func_pl(func: PivotAggregate, col_name: str) -> pl.Expr:
    col = pl.col(col_name)
    if func == PivotAggregate.FIRST: return col.first()
    elif func == PivotAggregate.LAST: return col.last()
    elif func == PivotAggregate.SUM: return col.sum()
    elif func == PivotAggregate.MEAN: return col.mean()
    elif func == PivotAggregate.MIN: return col.min()
    elif func == PivotAggregate.MAX: return col.max()
    elif func == PivotAggregate.COUNT: return col.count()
    raise ValidationError(f"Unsupported pivot aggregate: {func}")


def _pivot_pl(df: pl.DataFrame, op: Pivot) -> pl.DataFrame:
    if not op.index:
        raise ValidationError("Pivot needs at least one index column")
    roles = list(op.index) + [op.columns, op.values]
    if _duplicates(roles):
        raise ValidationError("Pivot index, columns and values must be distinct columns")
    _require_columns(df, roles, "pivot")
    if op.aggregate in (PivotAggregate.SUM, PivotAggregate.MEAN) and not _is_numeric_dtype_pl(df, op.values):
        raise ValidationError(
            f"Pivot aggregate '{op.aggregate.value}' needs a numeric values column, "
            f"'{op.values}' is {df.schema[op.values]}")

    # Aggregate first so the pivot itself only reshapes unique (index, columns) pairs
    grouped = (
        df.group_by(list(op.index) + [op.columns], maintain_order=True)
        .agg(_map_agg_func_pl(op.aggregate, op.values).alias(op.values))
    )

    new_names = [
        "null" if v is None else v
        for v in grouped.get_column(op.columns).cast(pl.String).unique(maintain_order=True).to_list()
    ]
    collisions = [name for name in new_names if name in op.index]
    if collisions:
        raise SchemaError(f"Pivoted column names collide with index columns: {', '.join(collisions)}")

    return grouped.pivot(on=op.columns, index=list(op.index), values=op.values, aggregate_function=None)


def _melt_pl(df: pl.DataFrame, op: Unpivot) -> pl.DataFrame:
    if not op.value_vars:
        raise ValidationError("Unpivot needs at least one value column")
    if not op.variable_name or not op.value_name:
        raise ValidationError("Unpivot variable and value names cannot be empty")
    dupes = _duplicates(list(op.id_vars) + list(op.value_vars))
    if dupes:
        raise ValidationError(f"Columns used more than once in unpivot: {', '.join(dupes)}")
    _require_columns(df, list(op.id_vars) + list(op.value_vars), "unpivot")

    out_names = list(op.id_vars) + [op.variable_name, op.value_name]
    dupes = _duplicates(out_names)
    if dupes:
        raise SchemaError(f"Unpivot output names collide: {', '.join(dupes)}")

    result = df.unpivot(
        on=list(op.value_vars),
        index=list(op.id_vars),
        variable_name=op.variable_name,
        value_name=op.value_name,
    )
    if op.sort_by:
        if op.sort_by not in result.columns:
            raise SchemaError(f"Unpivot sort column '{op.sort_by}' not found in the result")
        result = result.sort(op.sort_by, maintain_order=True)
    return result


def _window_function_pl(df: pl.DataFrame, op) -> pl.DataFrame:
    if op.window_size < 1:
        raise ValidationError("Rolling window size must be at least 1")
    if not 1 <= op.min_periods <= op.window_size:
        raise ValidationError(
            f"min_periods must be between 1 and the window size ({op.window_size}), got {op.min_periods}")
    if isinstance(op, RollingQuantile) and not 0 < op.quantile < 1:
        raise ValidationError(f"Quantile must be strictly between 0 and 1, got {op.quantile}")
    _require_columns(df, [op.column], "rolling window")
    if not _is_numeric_dtype_pl(df, op.column):
        raise SchemaError(f"Rolling window needs a numeric column, '{op.column}' is {df.schema[op.column]}")
    new_col_name = op.output_column
    if new_col_name in df.columns:
        raise SchemaError(f"Column '{new_col_name}' already exists")

    col = pl.col(op.column)
    window_args = dict(window_size=op.window_size, min_samples=op.min_periods, center=op.center)
    if isinstance(op, RollingQuantile):
        expr = col.rolling_quantile(quantile=op.quantile, interpolation="nearest", **window_args)
    else:
        expr = getattr(col, f"rolling_{op.statistic}")(**window_args)
    return df.with_columns(expr.alias(new_col_name))
