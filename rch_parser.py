"""Parser for RCH simulation output files.

An RCH file is free text with ``key: value`` metadata lines, a whitespace
separated header line and a time-series block delimited by
``<BeginTimeSerie>`` / ``<EndTimeSerie>``::

    Name: Ribeira Grande
    Serie Initial Data: 2020 1 1 0 0 0
    yy mm dd hh mm ss flow
    <BeginTimeSerie>
    2020 1 1 0 0 0 1.25
    <EndTimeSerie>

``parse_rch_file`` turns the text into a plain, JSON-ready dictionary. It does
no I/O; callers supply the decoded content.
"""

from __future__ import annotations

import logging
import math
import os
import re
from typing import Dict, List, Mapping, Optional, Sequence, Tuple, Union

# Debug toggler: set RCH_DEBUG=1 to enable verbose parse logs
DEBUG = os.getenv("RCH_DEBUG", "0") == "1"

logger = logging.getLogger(__name__)

BEGIN_MARKER = "<BeginTimeSerie>"
END_MARKER = "<EndTimeSerie>"
INVALID_TIMESTAMP = "Invalid Date"

# Entry keys that make up the synthesized timestamp, in order.
TIMESTAMP_KEYS: Tuple[str, ...] = ("yy", "month", "dd", "hh", "minute", "ss")

Value = Union[float, str]

_SEPARATOR_RE = re.compile(r"[/().\s-]")
_UNDERSCORE_RUN_RE = re.compile(r"_+")
_DEGREE_RE = re.compile("[\u00b0\ufffd]")
_NUMBER_RE = re.compile(r"[-+]?(?:[0-9]+\.?[0-9]*|\.[0-9]+)(?:[eE][-+]?[0-9]+)?")


class RchParseError(ValueError):
    """Raised when an RCH file is structurally malformed."""


def dprint(*args, **kwargs):
    if DEBUG:
        print(*args, **kwargs)


def normalize_header_token(token: str) -> str:
    """Return the cleaned key for a single raw header token.

    ``Q(m3/s)`` becomes ``q_m3_s`` and ``T(°C)`` becomes ``t_cc``; the degree
    glyph is mapped after separators are collapsed.
    """

    key = _SEPARATOR_RE.sub("_", token.lower())
    key = _UNDERSCORE_RUN_RE.sub("_", key)
    key = key.strip("_")
    return _DEGREE_RE.sub("c", key)


def process_header_tokens(tokens: Sequence[str]) -> List[str]:
    """Return processed column keys for the raw header ``tokens``.

    RCH headers reuse ``mm`` for month and minute and may repeat ``ss``. The
    first ``mm`` is the month, any later one the minute; ``ss`` keeps its name
    once and is then numbered by how many came before it (``ss_1``, ...).
    """

    keys: List[str] = []
    seen = {"mm": 0, "ss": 0}
    for token in tokens:
        key = normalize_header_token(token)
        if key == "mm":
            key = "month" if seen["mm"] == 0 else "minute"
        elif key == "ss" and seen["ss"] > 0:
            key = f"ss_{seen['ss']}"

        raw = token.lower()
        if raw in seen:
            seen[raw] += 1
        keys.append(key)
    return keys


def parse_metadata_line(line: str) -> Optional[Tuple[str, str]]:
    """Split a ``key: value`` line on its first colon."""

    if ":" not in line:
        return None
    key, _, value = line.partition(":")
    key = key.strip().lower().replace(" ", "_")
    return key, value.strip()


def parse_value(token: str) -> Value:
    """Return ``token`` as a float when it is a plain decimal number.

    Anything else, including ``inf``, ``NaN``, ``1_000`` and values that
    overflow to infinity, is returned unchanged so the result stays valid JSON.
    """

    if not _NUMBER_RE.fullmatch(token):
        return token
    number = float(token)
    if not math.isfinite(number):
        return token
    return number


def build_timestamp(entry: Mapping[str, Value]) -> str:
    """Return the ``YYYY-MM-DDTHH:MM:SSZ`` stamp for a parsed row.

    Returns ``INVALID_TIMESTAMP`` when any date part is missing or not a
    finite number. Seconds are floored.
    """

    parts: List[int] = []
    for key in TIMESTAMP_KEYS:
        value = entry.get(key)
        if isinstance(value, bool) or not isinstance(value, (int, float)):
            return INVALID_TIMESTAMP
        if not math.isfinite(value):
            return INVALID_TIMESTAMP
        parts.append(math.floor(value))

    year, month, day, hour, minute, second = parts
    return f"{year}-{month:02d}-{day:02d}T{hour:02d}:{minute:02d}:{second:02d}Z"


def _locate_structure(
    lines: Sequence[str],
) -> Tuple[Dict[str, str], int, int]:
    """First pass: harvest metadata and find the header and data start."""

    metadata: Dict[str, str] = {}
    header_idx = -1
    data_start = -1

    for idx, raw_line in enumerate(lines):
        line = raw_line.strip()
        if not line:
            continue
        if line == BEGIN_MARKER:
            data_start = idx + 1
            for pos in range(idx - 1, -1, -1):
                if lines[pos].strip():
                    header_idx = pos
                    break
            continue
        if line == END_MARKER:
            break
        if data_start == -1:
            item = parse_metadata_line(line)
            if item is not None:
                key, value = item
                metadata[key] = value

    return metadata, header_idx, data_start


def parse_rch_file(content: str) -> Dict[str, object]:
    """Parse the text of one RCH file.

    Returns a dictionary with ``metadata``, ``columnHeaders`` (processed keys)
    and ``timeseries`` (one dict per data row, each with a ``timestamp``).

    Raises ``RchParseError`` when the begin marker, the header line before it,
    or the header tokens are missing. Data rows with the wrong number of
    values are dropped; rows with unusable date parts are kept with an
    ``"Invalid Date"`` timestamp.
    """

    lines = content.splitlines()
    metadata, header_idx, data_start = _locate_structure(lines)

    if data_start == -1:
        raise RchParseError(f"Could not find '{BEGIN_MARKER}' marker.")
    if header_idx == -1:
        raise RchParseError(f"Could not find header line before '{BEGIN_MARKER}'.")

    original_headers = lines[header_idx].split()
    if not original_headers:
        raise RchParseError(f"Failed to parse any headers from line {header_idx + 1}.")

    column_headers = process_header_tokens(original_headers)
    dprint(f"[rch] header line {header_idx + 1}: {original_headers} -> {column_headers}")

    timeseries: List[Dict[str, Value]] = []
    for idx in range(data_start, len(lines)):
        line = lines[idx].strip()
        if not line or line.startswith("<"):
            continue

        values = line.split()
        if len(values) != len(column_headers):
            logger.warning(
                "Skipping data line %d: expected %d columns, found %d values. Line: %r",
                idx + 1,
                len(column_headers),
                len(values),
                line,
            )
            continue

        entry: Dict[str, Value] = {
            key: parse_value(token) for key, token in zip(column_headers, values)
        }
        timestamp = build_timestamp(entry)
        if timestamp == INVALID_TIMESTAMP:
            logger.warning(
                "Invalid date/time components on line %d: %r", idx + 1, line
            )
        entry["timestamp"] = timestamp
        timeseries.append(entry)

    dprint(f"[rch] parsed {len(timeseries)} rows, metadata keys: {sorted(metadata)}")

    return {
        "metadata": metadata,
        "columnHeaders": column_headers,
        "timeseries": timeseries,
    }
