"""Batch conversion of RCH files to JSON and loading of converted data.

Usage::

    python convert_rch.py --source public/SeriesTemporaisCaudais --dest public/data

Defaults come from ``RCH_SOURCE_DIR`` and ``RCH_JSON_DIR``.
"""

from __future__ import annotations

import argparse
import json
import logging
import os
import sys
from pathlib import Path
from typing import Dict, List, Optional, Sequence

from rch_parser import RchParseError, dprint, parse_rch_file

DEFAULT_SOURCE_DIR = os.getenv("RCH_SOURCE_DIR", os.path.join("public", "SeriesTemporaisCaudais"))
DEFAULT_JSON_DIR = os.getenv("RCH_JSON_DIR", os.path.join("public", "data"))

# Parsed results keyed by location id, filled by ``load_parsed_location``.
_PARSED_CACHE: Dict[str, Dict[str, object]] = {}


def _read_text(path: Path) -> str:
    """Read an RCH file as text handling BOMs and stray null bytes."""

    with open(path, "rb") as file:
        raw = file.read()
    cleaned = raw.replace(b"\x00", b"")
    return cleaned.decode("utf-8-sig", errors="replace")


def convert_rch_file(rch_path: Path, json_dir: Path) -> Path:
    """Parse ``rch_path`` and write ``<json_dir>/<stem>.json``."""

    rch_path = Path(rch_path)
    json_path = Path(json_dir) / f"{rch_path.stem}.json"

    try:
        parsed = parse_rch_file(_read_text(rch_path))
    except RchParseError as exc:
        raise RchParseError(f"{rch_path.name}: {exc}") from exc

    with open(json_path, "w", encoding="utf-8") as file:
        json.dump(parsed, file, indent=2, ensure_ascii=False, allow_nan=False)
    dprint(f"[convert] {rch_path} -> {json_path} ({len(parsed['timeseries'])} rows)")
    return json_path


def convert_rch_directory(rch_dir: Path, json_dir: Path) -> List[Path]:
    """Convert every ``*.rch`` file in ``rch_dir``; stops at the first bad file."""

    rch_dir = Path(rch_dir)
    json_dir = Path(json_dir)
    if not rch_dir.is_dir():
        raise FileNotFoundError(f"RCH directory '{rch_dir}' not found")
    json_dir.mkdir(parents=True, exist_ok=True)

    rch_files = sorted(rch_dir.glob("*.rch"))
    print(f"Found {len(rch_files)} RCH files to convert...")

    written: List[Path] = []
    for rch_path in rch_files:
        print(f"Converting {rch_path.name}...")
        json_path = convert_rch_file(rch_path, json_dir)
        print(f"Created {json_path}")
        written.append(json_path)
    return written


def load_parsed_location(location_id: str, json_dir: Optional[Path] = None) -> Dict[str, object]:
    """Return the converted data for ``location_id``, cached after first load."""

    key = str(location_id)
    if key in _PARSED_CACHE:
        dprint(f"[cache] hit for location {key}")
        return _PARSED_CACHE[key]

    dprint(f"[cache] miss for location {key}")
    json_path = Path(json_dir or DEFAULT_JSON_DIR) / f"{key}.json"
    try:
        with open(json_path, "r", encoding="utf-8") as file:
            data = json.load(file)
    except FileNotFoundError as exc:
        raise LookupError(
            f"Failed to load simulation data for location {key}: {json_path} not found"
        ) from exc
    except ValueError as exc:
        raise LookupError(
            f"Failed to load simulation data for location {key}: {json_path} is not valid JSON ({exc})"
        ) from exc

    _PARSED_CACHE[key] = data
    return data


def clear_cache(location_id: Optional[str] = None) -> None:
    """Drop one cached location, or all of them."""

    if location_id is None:
        _PARSED_CACHE.clear()
    else:
        _PARSED_CACHE.pop(str(location_id), None)


def main(argv: Optional[Sequence[str]] = None) -> int:
    parser = argparse.ArgumentParser(description="Convert RCH time-series files to JSON.")
    parser.add_argument(
        "--source",
        default=DEFAULT_SOURCE_DIR,
        help=f"Directory holding .rch files. (Default: {DEFAULT_SOURCE_DIR})",
    )
    parser.add_argument(
        "--dest",
        default=DEFAULT_JSON_DIR,
        help=f"Directory for the .json output. (Default: {DEFAULT_JSON_DIR})",
    )
    args = parser.parse_args(argv)

    logging.basicConfig(level=logging.WARNING, format="%(levelname)s %(name)s: %(message)s")

    try:
        convert_rch_directory(Path(args.source), Path(args.dest))
    except (RchParseError, OSError) as exc:
        print(f"Error during conversion: {exc}", file=sys.stderr)
        return 1

    print("\nConversion complete! All RCH files have been converted to JSON.")
    return 0


if __name__ == "__main__":
    sys.exit(main())
