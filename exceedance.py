"""Utilities for computing threshold exceedance events on RCH series."""

from typing import Dict, List, Optional

import numpy as np
import pandas as pd


# Minimum duration in minutes to assign to a single-sample exceedance.
EXCEEDANCE_MIN_SINGLE_SAMPLE_MINUTES = 1.0

EVENT_COLUMNS = ["Start", "End", "Duration(min)", "Side", "Peak"]

_SIDE_LABELS = {1: "high", -1: "low"}


def is_exceedance(value: float, lo: Optional[float], hi: Optional[float]) -> bool:
    """Return True when the value is strictly outside the provided bounds."""

    if pd.isna(value):
        return False
    if lo is not None and value < lo:
        return True
    if hi is not None and value > hi:
        return True
    return False


def _side_per_sample(values: np.ndarray, lo: Optional[float], hi: Optional[float]) -> np.ndarray:
    """Return +1 above ``hi``, -1 below ``lo`` and 0 in range, per sample."""

    side = np.zeros(len(values), dtype=np.int8)
    if hi is not None:
        side[values > hi] = 1
    if lo is not None:
        side[values < lo] = -1
    return side


def _sampling_cadence_minutes(times: np.ndarray) -> float:
    """Median spacing between samples in minutes, at least one minute."""

    if len(times) < 2:
        return 1.0
    diffs = np.diff(times).astype("timedelta64[s]").astype(float) / 60.0
    return max(float(np.median(diffs)), 1.0)


def compute_exceedance_events(
    df: pd.DataFrame,
    column: str,
    lo: Optional[float],
    hi: Optional[float],
) -> pd.DataFrame:
    """Return a DataFrame describing runs where ``column`` leaves ``[lo, hi]``.

    ``df`` is the frame built by ``rch_timeseries.timeseries_to_frame``. A run
    is a stretch of consecutive samples beyond the same bound, so a jump from
    above ``hi`` straight to below ``lo`` starts a new event. A run ends at
    the next sample outside it, or one sampling cadence after its last sample
    when nothing follows. ``Side`` is ``"high"`` or ``"low"`` and ``Peak`` is
    the most extreme value on that side.
    """

    if df.empty or column not in df.columns or "DateTime" not in df.columns:
        return pd.DataFrame(columns=EVENT_COLUMNS)

    work = df.loc[:, ["DateTime", column]].copy()
    work["DateTime"] = pd.to_datetime(work["DateTime"], errors="coerce")
    work[column] = pd.to_numeric(work[column], errors="coerce")
    work = work.dropna(subset=["DateTime", column])
    work = work.sort_values("DateTime", kind="stable")
    work = work.drop_duplicates(subset=["DateTime"], keep="last")
    if work.empty:
        return pd.DataFrame(columns=EVENT_COLUMNS)

    values = work[column].to_numpy(dtype=float, copy=False)
    times = work["DateTime"].to_numpy(dtype="datetime64[ns]", copy=False)
    side = _side_per_sample(values, lo, hi)
    if not side.any():
        return pd.DataFrame(columns=EVENT_COLUMNS)

    cadence = pd.to_timedelta(_sampling_cadence_minutes(times), unit="m")

    # Boundaries wherever the side label changes; each segment is uniform.
    change_points = np.flatnonzero(np.diff(side)) + 1
    starts = np.concatenate(([0], change_points))
    stops = np.concatenate((change_points, [len(side)]))

    events: List[Dict[str, object]] = []
    for start_i, stop_i in zip(starts, stops):
        run_side = int(side[start_i])
        if run_side == 0:
            continue

        start_ts = pd.Timestamp(times[start_i])
        if stop_i < len(side):
            end_ts = pd.Timestamp(times[stop_i])
        else:
            end_ts = pd.Timestamp(times[stop_i - 1]) + cadence

        run_values = values[start_i:stop_i]
        peak = run_values.max() if run_side > 0 else run_values.min()
        duration = max(
            (end_ts - start_ts).total_seconds() / 60.0,
            EXCEEDANCE_MIN_SINGLE_SAMPLE_MINUTES,
        )
        events.append(
            {
                "Start": start_ts,
                "End": end_ts,
                "Duration(min)": round(duration, 2),
                "Side": _SIDE_LABELS[run_side],
                "Peak": float(peak),
            }
        )

    return pd.DataFrame(events, columns=EVENT_COLUMNS)
