from datetime import date, datetime

import polars as pl
import pytest

from tidyroom.errors import SchemaError
from tidyroom.services.stats_service import column_stats


class TestColumnStats:
    def test_numeric(self, people_df):
        stats = column_stats(people_df, "score")
        assert stats.dtype == "Float64"
        assert stats.total_count == 5
        assert stats.null_count == 1
        assert stats.max == 92.0
        assert stats.min == 60.5
        assert stats.mean == pytest.approx(79.0)
        assert stats.std == pytest.approx(people_df["score"].std())
        assert stats.q25 <= stats.q50 <= stats.q75
        assert stats.q50 in {60.5, 75.0, 88.5, 92.0}
        assert stats.true_count is None
        assert stats.min_datetime is None

    def test_unique_count_includes_null(self):
        df = pl.DataFrame({"s": ["a", "b", None, "a"]})
        stats = column_stats(df, "s")
        assert stats.unique_count == 3
        assert stats.max is None

    def test_date_range(self):
        df = pl.DataFrame({"d": [date(2024, 1, 11), None, date(2024, 1, 1)]})
        stats = column_stats(df, "d")
        assert stats.min_datetime == "2024-01-01"
        assert stats.max_datetime == "2024-01-11"
        assert stats.range_days == 10.0

    def test_datetime_range(self):
        df = pl.DataFrame({"ts": [datetime(2024, 1, 1, 0, 0), datetime(2024, 1, 2, 12, 0)]})
        stats = column_stats(df, "ts")
        assert stats.dtype == "Datetime"
        assert stats.max_datetime == "2024-01-02 12:00:00"
        assert stats.range_days == pytest.approx(1.5)

    def test_boolean(self):
        df = pl.DataFrame({"b": [True, False, True, None]})
        stats = column_stats(df, "b")
        assert stats.true_count == 2
        assert stats.false_count == 1

    def test_all_null_numeric(self):
        df = pl.DataFrame({"x": [None, None]}, schema={"x": pl.Int64})
        stats = column_stats(df, "x")
        assert stats.null_count == 2
        assert stats.mean is None
        assert stats.max is None

    def test_unknown_column(self, people_df):
        with pytest.raises(SchemaError):
            column_stats(people_df, "ghost")
