from pathlib import Path
import sys
from datetime import datetime
from typing import Dict, List, Optional

import streamlit as st
import pandas as pd
import altair as alt

# Ensure imports work whether the app is executed as a module or as a script
# where the repository directory might not already be on ``sys.path``.
CURRENT_DIR = Path(__file__).resolve().parent

if str(CURRENT_DIR) not in sys.path:
    sys.path.insert(0, str(CURRENT_DIR))

from exceedance import compute_exceedance_events
from rch_parser import INVALID_TIMESTAMP, RchParseError, parse_rch_file
from rch_timeseries import (
    available_years,
    clamp_day,
    entry_for_date,
    numeric_columns,
    timeseries_to_frame,
)


st.set_page_config(page_title="RCH Simulation Viewer", layout="wide", page_icon="🌊")
st.markdown(
    """
    <style>
        .stApp { background-color: white; }
    </style>
    """,
    unsafe_allow_html=True,
)

st.sidebar.header("🌊 Simulation Upload")
rch_files = st.sidebar.file_uploader(
    "Upload RCH files",
    type=["rch"],
    accept_multiple_files=True,
    key="rch_uploader",
)


@st.cache_data(show_spinner=False, max_entries=16)
def _parse_cached(file_name: str, file_bytes: bytes) -> Dict[str, object]:
    text = file_bytes.replace(b"\x00", b"").decode("utf-8-sig", errors="replace")
    return parse_rch_file(text)


def _downsample(df: pd.DataFrame, column: str, max_points: int = 5000) -> pd.DataFrame:
    """Thin a long series to roughly ``max_points`` rows for charting."""

    if df is None or df.empty or len(df) <= max_points:
        return df
    step = max(1, len(df) // max_points)
    return df.iloc[::step][["DateTime", column]]


def _build_chart(
    df: pd.DataFrame, column: str, lo: Optional[float], hi: Optional[float], title: str
) -> alt.Chart:
    chart_df = _downsample(df.dropna(subset=["DateTime"]), column)
    base = alt.Chart(chart_df).encode(
        x=alt.X("DateTime:T", title="Date/Time"),
        y=alt.Y(f"{column}:Q", title=column),
    )
    layers = [base.mark_line()]

    limit_records: List[Dict[str, object]] = []
    if lo is not None:
        limit_records.append({"y": float(lo), "Legend": "Lower Limit"})
    if hi is not None:
        limit_records.append({"y": float(hi), "Legend": "Upper Limit"})
    if limit_records:
        layers.append(
            alt.Chart(pd.DataFrame(limit_records))
            .mark_rule(strokeDash=[4, 4])
            .encode(
                y="y:Q",
                color=alt.Color(
                    "Legend:N",
                    scale=alt.Scale(
                        domain=["Lower Limit", "Upper Limit"],
                        range=["#2ca02c", "#d62728"],
                    ),
                ),
            )
        )

    return (
        alt.layer(*layers)
        .properties(title={"text": title, "anchor": "start"})
        .configure(background="white", view=alt.ViewConfig(fill="white", stroke=None))
    )


parsed_files: Dict[str, Dict[str, object]] = {}
if rch_files:
    for uploaded in rch_files:
        try:
            parsed_files[uploaded.name] = _parse_cached(uploaded.name, uploaded.getvalue())
        except RchParseError as exc:
            st.sidebar.error(f"Failed to parse {uploaded.name}: {exc}")
else:
    st.sidebar.info("Upload one or more .rch files to begin.")

if not parsed_files:
    st.stop()

tabs = st.tabs(list(parsed_files))
for tab, (name, parsed) in zip(tabs, parsed_files.items()):
    with tab:
        metadata: Dict[str, str] = parsed["metadata"]  # type: ignore[assignment]
        timeseries = parsed["timeseries"]
        title = metadata.get("name") or Path(name).stem
        st.subheader(title)

        meta_col, summary_col = st.columns(2)
        with meta_col:
            if metadata:
                st.dataframe(
                    pd.DataFrame(sorted(metadata.items()), columns=["Key", "Value"]),
                    hide_index=True,
                )
            else:
                st.info("No metadata lines found.")
        with summary_col:
            invalid = sum(1 for entry in timeseries if entry["timestamp"] == INVALID_TIMESTAMP)
            st.write(f"**Rows:** {len(timeseries)}")
            st.write(f"**Columns:** {', '.join(parsed['columnHeaders'])}")
            if invalid:
                st.warning(f"{invalid} rows have an invalid date and are excluded from charts.")

        years = available_years(parsed)
        if years:
            today = datetime.today()
            y_col, m_col, d_col = st.columns(3)
            default_year = today.year if today.year in years else years[-1]
            year = y_col.selectbox("Year", years, index=years.index(default_year), key=f"year_{name}")
            month = m_col.selectbox(
                "Month", list(range(1, 13)), index=today.month - 1, key=f"month_{name}"
            )
            day = d_col.number_input(
                "Day", min_value=1, max_value=31, value=today.day, key=f"day_{name}"
            )
            day = clamp_day(int(year), int(month), int(day))
            entry = entry_for_date(parsed, int(year), int(month), day)
            st.caption(f"Selected date: {day:02d}/{int(month):02d}/{int(year)}")
            if entry is None:
                st.info("No data for the selected date.")
            else:
                st.dataframe(pd.DataFrame([entry]), hide_index=True)

        columns = numeric_columns(parsed)
        if not columns:
            st.info("No numeric data columns to chart.")
            continue

        df = timeseries_to_frame(parsed)
        column = st.selectbox("Series", columns, key=f"series_{name}")
        lo_col, hi_col = st.columns(2)
        lo_text = lo_col.text_input("Lower threshold", value="", key=f"lo_{name}")
        hi_text = hi_col.text_input("Upper threshold", value="", key=f"hi_{name}")

        bounds: List[Optional[float]] = []
        for text in (lo_text, hi_text):
            try:
                bounds.append(float(text) if text.strip() else None)
            except ValueError:
                st.warning(f"Ignoring non-numeric threshold '{text}'.")
                bounds.append(None)
        lo, hi = bounds

        st.altair_chart(_build_chart(df, column, lo, hi, f"{title} - {column}"), use_container_width=True)

        if lo is None and hi is None:
            continue

        events = compute_exceedance_events(df, column, lo, hi)
        total = float(events["Duration(min)"].sum()) if not events.empty else 0.0
        st.write(f"**Exceedance events:** {len(events)} | **Total minutes:** {total:.1f}")
        if events.empty:
            st.info("The series stays within the thresholds.")
        else:
            st.dataframe(events, hide_index=True)
            st.download_button(
                "Download exceedance events (CSV)",
                data=events.to_csv(index=False).encode("utf-8"),
                file_name=f"{Path(name).stem}_{column}_exceedance.csv",
                mime="text/csv",
                key=f"download_{name}_{column}",
            )
