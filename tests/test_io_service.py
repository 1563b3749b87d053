"""Tests for file loading, export and row serialization."""

from datetime import date, datetime, time, timedelta

import pandas as pd
import polars as pl
import pytest

from tidyroom.errors import IoError, ValidationError
from tidyroom.services.io_service import (
    detect_separator, export_frame, frame_rows, list_sheets, load_file,
)


def write(tmp_path, name, text):
    path = tmp_path / name
    path.write_text(text)
    return str(path)


class TestSeparatorDetection:
    @pytest.mark.parametrize("sep", [",", ";", "|", "\t"])
    def test_detects_consistent_separator(self, tmp_path, sep):
        text = "\n".join(sep.join(row) for row in [["a", "b", "c"], ["1", "2", "3"], ["4", "5", "6"]])
        assert detect_separator(write(tmp_path, "data.csv", text)) == sep

    def test_single_column_falls_back_to_comma(self, tmp_path):
        assert detect_separator(write(tmp_path, "one.csv", "value\n1\n2\n")) == ","

    def test_semicolon_file_with_decimal_commas(self, tmp_path):
        text = "name;price\nTea;1,50\nCoffee;2,75\n"
        df = load_file(write(tmp_path, "prices.csv", text))
        assert df.columns == ["name", "price"]
        assert df["price"].to_list() == ["1,50", "2,75"]


class TestLoadFile:
    def test_csv_with_dates(self, tmp_path):
        path = write(tmp_path, "events.csv", "id,day\n1,2024-01-05\n2,2024-02-10\n")
        df = load_file(path)
        assert df.schema["day"] == pl.Date
        assert df["day"].to_list() == [date(2024, 1, 5), date(2024, 2, 10)]

    def test_tsv(self, tmp_path):
        path = write(tmp_path, "data.tsv", "a\tb\n1\tx\n2\ty\n")
        df = load_file(path)
        assert df.columns == ["a", "b"]
        assert df.height == 2

    def test_parquet_round_trip(self, tmp_path, people_df):
        path = str(tmp_path / "people.parquet")
        export_frame(people_df, path, "parquet")
        assert load_file(path).equals(people_df)

    def test_csv_export(self, tmp_path, people_df):
        path = str(tmp_path / "out.csv")
        assert export_frame(people_df, path, "csv") == path
        assert load_file(path).equals(people_df)

    def test_missing_file(self, tmp_path):
        with pytest.raises(IoError) as exc:
            load_file(str(tmp_path / "nope.csv"))
        assert exc.value.status_code == 404

    def test_unsupported_extension(self, tmp_path):
        with pytest.raises(ValidationError):
            load_file(write(tmp_path, "notes.docx", "hello"))

    def test_unsupported_export_format(self, tmp_path, people_df):
        with pytest.raises(ValidationError):
            export_frame(people_df, str(tmp_path / "out.json"), "json")


@pytest.fixture
def workbook(tmp_path):
    path = str(tmp_path / "book.xlsx")
    with pd.ExcelWriter(path) as writer:
        pd.DataFrame({"a": [1, 2], "b": ["x", "y"]}).to_excel(writer, sheet_name="First", index=False)
        pd.DataFrame({"c": [3.5]}).to_excel(writer, sheet_name="Second", index=False)
    return path


class TestExcel:
    def test_list_sheets(self, workbook):
        assert list_sheets(workbook) == ["First", "Second"]

    def test_first_sheet_by_default(self, workbook):
        df = load_file(workbook)
        assert df.columns == ["a", "b"]
        assert df["a"].to_list() == [1, 2]

    def test_named_sheet(self, workbook):
        df = load_file(workbook, sheet_name="Second")
        assert df["c"].to_list() == [3.5]

    def test_unknown_sheet(self, workbook):
        with pytest.raises(ValidationError):
            load_file(workbook, sheet_name="Third")


def test_frame_rows_are_json_safe():
    df = pl.DataFrame({
        "d": [date(2024, 1, 5)],
        "ts": [datetime(2024, 1, 5, 13, 4, 5)],
        "t": [time(8, 30, 0)],
        "dur": [timedelta(seconds=90)],
        "nan": [float("nan")],
        "inf": [float("inf")],
        "n": [None],
    })
    assert frame_rows(df) == [["2024-01-05", "2024-01-05 13:04:05", "08:30:00", "0:01:30", None, None, None]]
