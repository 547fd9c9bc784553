from __future__ import annotations

import json
from typing import Any, Dict, List

from pulse_terminal.commentary import (
    format_commentary_line,
    minute_from_elapsed,
    parse_commentary,
)
from pulse_terminal.models import CommentaryEntry


TEAMS = ["Arsenal", "Chelsea"]


def ticker_record(text: str, elapsed: Any = 10, plus: Any = None, side: str | None = None) -> Dict[str, Any]:
    record: Dict[str, Any] = {"text": text, "elapsed": elapsed}
    if plus is not None:
        record["elapsedPlus"] = plus
    if side is not None:
        record["teamEvent"] = side
    return record


def valid_records(n: int) -> List[Dict[str, Any]]:
    return [ticker_record(f"Entry {i}", elapsed=i + 1) for i in range(n)]


def test_negative_elapsed_is_no_minute() -> None:
    records = valid_records(9)
    records.insert(4, ticker_record("Substitution, Chelsea.", elapsed=-1, side="away"))
    batch = parse_commentary(json.dumps({"events": records}), TEAMS)

    assert batch.error is None
    assert len(batch.entries) == 10
    assert sum(1 for e in batch.entries if e.minute is None) == 1
    assert sum(1 for e in batch.entries if e.minute is not None) == 9
    assert batch.entries[4].team == "Chelsea"


def test_structural_failure_keeps_prior_entries() -> None:
    records: List[Any] = valid_records(3) + ["not an object"] + valid_records(2)
    batch = parse_commentary(json.dumps({"events": records}), TEAMS)

    assert [e.text for e in batch.entries] == ["Entry 0", "Entry 1", "Entry 2"]
    assert batch.error and "index 3" in batch.error


def test_truncated_json_salvages_complete_records() -> None:
    raw = json.dumps({"events": valid_records(4)})
    broken = raw[: raw.rindex("{")] + '{"text": "cut off'
    batch = parse_commentary(broken, TEAMS)

    assert len(batch.entries) == 3
    assert batch.error and batch.error.startswith("invalid ticker json")
    assert "head=" in batch.error


def test_empty_and_null_payloads() -> None:
    for raw in ("", "   ", "null"):
        batch = parse_commentary(raw)
        assert batch.entries == () and batch.error is None
    assert parse_commentary("{}").entries == ()


def test_wrong_shapes_report_errors() -> None:
    assert parse_commentary("[1, 2]").error
    assert parse_commentary('{"events": {"a": 1}}').error


def test_field_anomalies_are_normalized() -> None:
    records = [
        {"elapsed": "12"},
        {"text": "  Foul  ", "elapsed": 44.0, "elapsedPlus": 2},
        {"text": "Odd minute", "elapsed": "soon", "teamEvent": "home"},
    ]
    batch = parse_commentary(json.dumps({"events": records}), TEAMS)

    assert batch.error is None
    assert batch.entries[0] == CommentaryEntry(text="", minute=12)
    assert batch.entries[1] == CommentaryEntry(text="Foul", minute=44, minute_plus=2)
    assert batch.entries[2].minute is None and batch.entries[2].team == "Arsenal"


def test_minute_from_elapsed() -> None:
    assert minute_from_elapsed(0) == 0
    assert minute_from_elapsed(90) == 90
    assert minute_from_elapsed(-1) is None
    assert minute_from_elapsed("--1") is None
    assert minute_from_elapsed(True) is None
    assert minute_from_elapsed(12.5) is None
    assert minute_from_elapsed(None) is None


def test_format_commentary_line() -> None:
    assert format_commentary_line(CommentaryEntry("Kick-off", minute=1)) == "1' Kick-off"
    assert format_commentary_line(CommentaryEntry("Added time", minute=45, minute_plus=3, team="Arsenal")) == "45+3' [Arsenal] Added time"
    assert format_commentary_line(CommentaryEntry("Sub")) == "-- Sub"
