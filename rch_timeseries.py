"""Helpers that turn a parsed RCH result into frames and date lookups."""

from __future__ import annotations

import calendar
from typing import Dict, List, Mapping, Optional

import pandas as pd

from rch_parser import INVALID_TIMESTAMP, TIMESTAMP_KEYS

_STAMP_FORMAT = "%Y-%m-%dT%H:%M:%SZ"


def _entries(parsed: Mapping[str, object]) -> List[Dict[str, object]]:
    entries = parsed.get("timeseries") or []
    return list(entries)  # type: ignore[arg-type]


def _parse_stamp(value: object) -> pd.Timestamp:
    if value is None or value == INVALID_TIMESTAMP:
        return pd.NaT
    return pd.to_datetime(str(value), format=_STAMP_FORMAT, errors="coerce")


def numeric_columns(parsed: Mapping[str, object]) -> List[str]:
    """Return data columns whose every value parsed as a number."""

    headers = list(parsed.get("columnHeaders") or [])  # type: ignore[arg-type]
    entries = _entries(parsed)
    if not entries:
        return []

    result: List[str] = []
    for key in headers:
        if key in TIMESTAMP_KEYS:
            continue
        if all(isinstance(entry.get(key), float) for entry in entries):
            result.append(key)
    return result


def timeseries_to_frame(parsed: Mapping[str, object]) -> pd.DataFrame:
    """Return a DataFrame with one row per entry plus ``DateTime``/``Date``.

    Columns follow ``columnHeaders``. Entries with an ``"Invalid Date"``
    timestamp get ``NaT`` and sort last.
    """

    headers = list(parsed.get("columnHeaders") or [])  # type: ignore[arg-type]
    entries = _entries(parsed)
    columns = headers + ["timestamp"]
    if not entries:
        return pd.DataFrame(columns=columns + ["DateTime", "Date"])

    df = pd.DataFrame.from_records(entries, columns=columns)
    for key in headers:
        if all(isinstance(value, float) for value in df[key]):
            df[key] = pd.to_numeric(df[key], errors="coerce")

    df["DateTime"] = pd.to_datetime(df["timestamp"], format=_STAMP_FORMAT, errors="coerce")
    df["Date"] = df["DateTime"].dt.date
    df = df.sort_values("DateTime", kind="stable", na_position="last")
    return df.reset_index(drop=True)


def available_years(parsed: Mapping[str, object]) -> List[int]:
    """Return the sorted unique years covered by valid timestamps."""

    years = set()
    for entry in _entries(parsed):
        ts = _parse_stamp(entry.get("timestamp"))
        if pd.notna(ts):
            years.add(int(ts.year))
    return sorted(years)


def clamp_day(year: int, month: int, day: int) -> int:
    """Limit ``day`` to the length of the given month."""

    days_in_month = calendar.monthrange(year, month)[1]
    return min(max(day, 1), days_in_month)


def entry_for_date(
    parsed: Mapping[str, object], year: int, month: int, day: int
) -> Optional[Dict[str, object]]:
    """Return the first entry stamped on the given calendar date."""

    day = clamp_day(year, month, day)
    for entry in _entries(parsed):
        ts = _parse_stamp(entry.get("timestamp"))
        if pd.isna(ts):
            continue
        if (ts.year, ts.month, ts.day) == (year, month, day):
            return entry
    return None
