import json
import sys
from pathlib import Path

import pytest

sys.path.append(str(Path(__file__).resolve().parents[1]))

import convert_rch
from convert_rch import (
    clear_cache,
    convert_rch_directory,
    convert_rch_file,
    load_parsed_location,
    main,
)
from rch_parser import RchParseError

RCH_TEXT = "\n".join(
    [
        "Name: Ribeira Grande",
        "Localization I: 93",
        "yy mm dd hh mm ss flow",
        "<BeginTimeSerie>",
        "2020 1 1 0 0 0 1.5",
        "2020 1 2 0 0 0 2.5",
        "<EndTimeSerie>",
        "",
    ]
)


@pytest.fixture(autouse=True)
def _empty_cache():
    clear_cache()
    yield
    clear_cache()


def test_convert_rch_file_writes_json(tmp_path):
    rch_path = tmp_path / "93.rch"
    rch_path.write_bytes(b"\xef\xbb\xbf" + RCH_TEXT.encode("utf-8"))

    json_path = convert_rch_file(rch_path, tmp_path)

    assert json_path == tmp_path / "93.json"
    data = json.loads(json_path.read_text(encoding="utf-8"))
    assert data["metadata"] == {"name": "Ribeira Grande", "localization_i": "93"}
    assert data["columnHeaders"][-1] == "flow"
    assert [entry["timestamp"] for entry in data["timeseries"]] == [
        "2020-01-01T00:00:00Z",
        "2020-01-02T00:00:00Z",
    ]


def test_convert_rch_directory_only_picks_rch_files(tmp_path):
    source = tmp_path / "SeriesTemporaisCaudais"
    source.mkdir()
    (source / "93.rch").write_text(RCH_TEXT, encoding="utf-8")
    (source / "94.rch").write_text(RCH_TEXT.replace("1.5", "7.0"), encoding="utf-8")
    (source / "notes.txt").write_text("not an rch file", encoding="utf-8")
    dest = tmp_path / "out" / "data"

    written = convert_rch_directory(source, dest)

    assert [path.name for path in written] == ["93.json", "94.json"]
    assert sorted(path.name for path in dest.iterdir()) == ["93.json", "94.json"]


def test_convert_names_the_broken_file(tmp_path):
    (tmp_path / "bad.rch").write_text("Name: Broken\nno markers here\n", encoding="utf-8")

    with pytest.raises(RchParseError, match="bad.rch"):
        convert_rch_directory(tmp_path, tmp_path / "out")


def test_load_parsed_location_caches(tmp_path):
    (tmp_path / "93.rch").write_text(RCH_TEXT, encoding="utf-8")
    convert_rch_file(tmp_path / "93.rch", tmp_path)

    first = load_parsed_location("93", tmp_path)
    (tmp_path / "93.json").unlink()
    second = load_parsed_location(93, tmp_path)

    assert first is second
    assert first["metadata"]["name"] == "Ribeira Grande"

    clear_cache("93")
    with pytest.raises(LookupError, match="location 93"):
        load_parsed_location("93", tmp_path)


def test_clear_cache_all(tmp_path):
    (tmp_path / "93.rch").write_text(RCH_TEXT, encoding="utf-8")
    convert_rch_file(tmp_path / "93.rch", tmp_path)
    load_parsed_location("93", tmp_path)

    clear_cache()

    assert convert_rch._PARSED_CACHE == {}


def test_main_exit_codes(tmp_path, capsys):
    source = tmp_path / "rch"
    source.mkdir()
    (source / "93.rch").write_text(RCH_TEXT, encoding="utf-8")

    assert main(["--source", str(source), "--dest", str(tmp_path / "json")]) == 0
    assert (tmp_path / "json" / "93.json").exists()
    assert "Conversion complete" in capsys.readouterr().out

    assert main(["--source", str(tmp_path / "missing"), "--dest", str(tmp_path / "json")]) == 1
    assert "Error during conversion" in capsys.readouterr().err


def _reject_constant(name):
    raise ValueError(f"non-standard JSON constant {name}")


def test_converted_json_is_strict(tmp_path):
    text = RCH_TEXT.replace(
        "yy mm dd hh mm ss flow", "yy mm dd hh mm ss flow level note"
    ).replace("1.5", "1.5 inf 1_000").replace("2.5", "2.5 Infinity NaN")
    (tmp_path / "95.rch").write_text(text, encoding="utf-8")

    json_path = convert_rch_file(tmp_path / "95.rch", tmp_path)

    data = json.loads(json_path.read_text(encoding="utf-8"), parse_constant=_reject_constant)
    first, second = data["timeseries"]
    assert (first["flow"], first["level"], first["note"]) == (1.5, "inf", "1_000")
    assert (second["flow"], second["level"], second["note"]) == (2.5, "Infinity", "NaN")


def test_load_parsed_location_wraps_corrupt_json(tmp_path):
    (tmp_path / "96.json").write_text('{"metadata": {', encoding="utf-8")

    with pytest.raises(LookupError, match="Failed to load simulation data for location 96"):
        load_parsed_location("96", tmp_path)
