import sys
from pathlib import Path

import pandas as pd

sys.path.append(str(Path(__file__).resolve().parents[1]))

from rch_parser import parse_rch_file
from rch_timeseries import (
    available_years,
    clamp_day,
    entry_for_date,
    numeric_columns,
    timeseries_to_frame,
)

RCH_TEXT = "\n".join(
    [
        "Name: Sorraia 93",
        "yy mm dd hh mm ss flow level status",
        "<BeginTimeSerie>",
        "2021 2 28 0 0 0 4.0 1.1 ok",
        "2020 6 15 13 5 30.7 3.0 1.0 ok",
        "2021 bad 1 0 0 0 5.0 1.2 N/A",
        "2021 3 1 0 0 0 6.0 1.3 ok",
        "<EndTimeSerie>",
    ]
)


def _parsed():
    return parse_rch_file(RCH_TEXT)


def test_numeric_columns_skip_date_parts_and_text():
    assert numeric_columns(_parsed()) == ["flow", "level"]


def test_timeseries_to_frame_sorts_and_flags_invalid_dates():
    df = timeseries_to_frame(_parsed())

    assert list(df.columns[:9]) == ["yy", "month", "dd", "hh", "minute", "ss", "flow", "level", "status"]
    assert {"timestamp", "DateTime", "Date"}.issubset(df.columns)
    assert pd.api.types.is_datetime64_any_dtype(df["DateTime"])
    assert df["flow"].dtype.kind == "f"
    assert df["flow"].tolist() == [3.0, 4.0, 6.0, 5.0]
    assert df["DateTime"].isna().tolist() == [False, False, False, True]
    assert df["DateTime"].iloc[0].second == 30


def test_timeseries_to_frame_empty():
    parsed = parse_rch_file("yy mm dd hh mm ss flow\n<BeginTimeSerie>\n<EndTimeSerie>\n")

    df = timeseries_to_frame(parsed)

    assert df.empty
    assert "DateTime" in df.columns


def test_available_years():
    assert available_years(_parsed()) == [2020, 2021]


def test_clamp_day_limits_to_month_length():
    assert clamp_day(2021, 2, 31) == 28
    assert clamp_day(2020, 2, 31) == 29
    assert clamp_day(2021, 3, 15) == 15


def test_entry_for_date_clamps_the_day():
    entry = entry_for_date(_parsed(), 2021, 2, 30)

    assert entry is not None
    assert entry["flow"] == 4.0


def test_entry_for_date_missing():
    assert entry_for_date(_parsed(), 2019, 1, 1) is None
