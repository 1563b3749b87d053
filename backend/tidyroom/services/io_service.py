# backend/tidyroom/services/io_service.py
"""
File loading and export for the dataset store, plus conversion of frame rows
into JSON-safe values for paging.
"""
import datetime
import logging
import math
import os
import zipfile
from decimal import Decimal
from typing import Any, List, Optional

import pandas as pd
import polars as pl

from ..config import settings
from ..errors import IoError, ParseError, ValidationError

logger = logging.getLogger(__name__)

_EXTENSION_FORMATS = {
    ".csv": "csv",
    ".txt": "csv",
    ".tsv": "tsv",
    ".tab": "tsv",
    ".xlsx": "excel",
    ".xlsm": "excel",
    ".xls": "excel",
    ".parquet": "parquet",
    ".pq": "parquet",
}
EXPORT_FORMATS = ("csv", "parquet")

# Candidate delimiters, tried in this order; ties keep the earlier one
_SEPARATOR_CANDIDATES = [",", "\t", ";", "|"]
_SNIFF_LINES = 10


def infer_format(file_path: str) -> str:
    ext = os.path.splitext(file_path)[1].lower()
    fmt = _EXTENSION_FORMATS.get(ext)
    if fmt is None:
        raise ValidationError(f"Unsupported file type '{ext or file_path}'. "
                              f"Supported: {', '.join(sorted(_EXTENSION_FORMATS))}")
    return fmt


def _ensure_exists(file_path: str) -> None:
    if not os.path.isfile(file_path):
        raise IoError(f"File not found: {file_path}", status_code=404)


def detect_separator(file_path: str) -> str:
    """
    Picks the delimiter giving the most consistent field count over the first lines.
    A candidate only qualifies when lines average at least two fields; comma otherwise.
    """
    try:
        with open(file_path, "r", encoding="utf-8", errors="replace") as fh:
            sample = []
            for line in fh:
                sample.append(line.rstrip("\r\n"))
                if len(sample) >= _SNIFF_LINES:
                    break
    except OSError as e:
        raise IoError(f"Could not read {file_path}: {e}") from e

    if len(sample) < 2:
        return ","

    best_separator, best_score = ",", math.inf
    for sep in _SEPARATOR_CANDIDATES:
        counts = [line.count(sep) + 1 for line in sample]
        mean = sum(counts) / len(counts)
        variance = sum((c - mean) ** 2 for c in counts) / len(counts)
        if mean >= 2 and variance < best_score:
            best_separator, best_score = sep, variance
    return best_separator


def _read_csv(file_path: str, separator: str) -> pl.DataFrame:
    try:
        return pl.read_csv(
            file_path,
            separator=separator,
            has_header=True,
            infer_schema_length=settings.CSV_INFER_SCHEMA_LENGTH,
            try_parse_dates=True,
        )
    except pl.exceptions.NoDataError as e:
        raise ParseError(f"File is empty: {os.path.basename(file_path)}") from e
    except pl.exceptions.PolarsError as e:
        raise ParseError(f"Failed to parse {os.path.basename(file_path)}: {e}") from e


def list_sheets(file_path: str) -> List[str]:
    _ensure_exists(file_path)
    try:
        with pd.ExcelFile(file_path) as workbook:
            return [str(name) for name in workbook.sheet_names]
    except (ValueError, OSError, KeyError, zipfile.BadZipFile) as e:
        raise ParseError(f"Failed to open workbook {os.path.basename(file_path)}: {e}") from e


def _read_excel(file_path: str, sheet_name: Optional[str]) -> pl.DataFrame:
    sheets = list_sheets(file_path)
    if not sheets:
        raise ParseError(f"Workbook has no sheets: {os.path.basename(file_path)}")
    if sheet_name is None:
        sheet_name = sheets[0]
    elif sheet_name not in sheets:
        raise ValidationError(f"Sheet '{sheet_name}' not found. Available sheets: {', '.join(sheets)}")

    try:
        pdf = pd.read_excel(file_path, sheet_name=sheet_name)
        pdf.columns = [str(c) for c in pdf.columns]
        return pl.from_pandas(pdf)
    except (ValueError, TypeError, pl.exceptions.PolarsError) as e:
        raise ParseError(f"Failed to read sheet '{sheet_name}': {e}") from e


def _read_parquet(file_path: str) -> pl.DataFrame:
    try:
        return pl.read_parquet(file_path)
    except (pl.exceptions.PolarsError, OSError) as e:
        raise ParseError(f"Failed to read parquet file {os.path.basename(file_path)}: {e}") from e


def load_file(file_path: str, fmt: Optional[str] = None, sheet_name: Optional[str] = None) -> pl.DataFrame:
    """Loads a csv/tsv/excel/parquet file into a frame. Format comes from the extension when omitted."""
    if not file_path:
        raise ValidationError("File path cannot be empty")
    fmt = fmt or infer_format(file_path)
    _ensure_exists(file_path)

    if fmt == "csv":
        df = _read_csv(file_path, detect_separator(file_path))
    elif fmt == "tsv":
        df = _read_csv(file_path, "\t")
    elif fmt == "excel":
        df = _read_excel(file_path, sheet_name)
    elif fmt == "parquet":
        df = _read_parquet(file_path)
    else:
        raise ValidationError(f"Unsupported import format: {fmt}")

    logger.info("Loaded %s (%s): %d rows x %d columns", file_path, fmt, df.height, df.width)
    return df


def export_frame(df: pl.DataFrame, output_path: str, fmt: str = "csv") -> str:
    if not output_path:
        raise ValidationError("Output path cannot be empty")
    if fmt not in EXPORT_FORMATS:
        raise ValidationError(f"Unsupported export format: {fmt}. Use one of {list(EXPORT_FORMATS)}")
    try:
        if fmt == "csv":
            df.write_csv(output_path)
        else:
            df.write_parquet(output_path)
    except OSError as e:
        raise IoError(f"Could not write {output_path}: {e}") from e
    except pl.exceptions.PolarsError as e:
        raise IoError(f"Export to {fmt} failed: {e}") from e

    logger.info("Exported %d rows to %s (%s)", df.height, output_path, fmt)
    return output_path


def to_json_value(value: Any) -> Any:
    # datetime before date: datetime is a date subclass
    if isinstance(value, datetime.datetime):
        return value.strftime("%Y-%m-%d %H:%M:%S")
    if isinstance(value, datetime.date):
        return value.strftime("%Y-%m-%d")
    if isinstance(value, datetime.time):
        return value.strftime("%H:%M:%S")
    if isinstance(value, datetime.timedelta):
        return str(value)
    if isinstance(value, float):
        return value if math.isfinite(value) else None
    if isinstance(value, Decimal):
        return str(value)
    if isinstance(value, bytes):
        return value.hex()
    if isinstance(value, list):
        return [to_json_value(v) for v in value]
    if isinstance(value, dict):
        return {k: to_json_value(v) for k, v in value.items()}
    return value


def frame_rows(df: pl.DataFrame) -> List[List[Any]]:
    """Row-major, JSON-safe values for a (small) slice of a frame."""
    return [[to_json_value(v) for v in row] for row in df.iter_rows()]
