"""Live-ticker commentary decoding.

Each ticker record is decoded on its own. Field anomalies (a negative or
non-numeric ``elapsed``, a missing ``text``) are normalized in place. A
structural failure (a record that is not an object, a payload that is not
valid JSON) stops decoding but keeps every entry decoded before it and
reports the failure in ``CommentaryBatch.error``.
"""

from __future__ import annotations

import json
from dataclasses import dataclass
from typing import Any, List, Optional, Sequence, Tuple

from .models import CommentaryEntry


PREVIEW_CHARS = 240


@dataclass(frozen=True, slots=True)
class CommentaryBatch:
    entries: Tuple[CommentaryEntry, ...] = ()
    error: Optional[str] = None


def preview(text: str, limit: int = PREVIEW_CHARS) -> str:
    return text.strip()[:limit]


def minute_from_elapsed(value: Any) -> Optional[int]:
    """Map a signed wire minute to an entry minute; negatives mean "no fixed minute"."""
    if isinstance(value, bool):
        return None
    if isinstance(value, float) and value.is_integer():
        value = int(value)
    if isinstance(value, str):
        try:
            value = int(value.strip())
        except ValueError:
            return None
    if not isinstance(value, int):
        return None
    return value if value >= 0 else None


def _team_for_side(side: Any, teams: Sequence[str]) -> Optional[str]:
    if side == "home" and len(teams) >= 1:
        return teams[0]
    if side == "away" and len(teams) >= 2:
        return teams[1]
    return None


def decode_entry(record: dict, teams: Sequence[str]) -> CommentaryEntry:
    text = record.get("text")
    return CommentaryEntry(
        text=text.strip() if isinstance(text, str) else "",
        minute=minute_from_elapsed(record.get("elapsed")),
        minute_plus=minute_from_elapsed(record.get("elapsedPlus")),
        team=_team_for_side(record.get("teamEvent"), teams),
    )


def _decode_records(records: Sequence[Any], teams: Sequence[str]) -> Tuple[List[CommentaryEntry], Optional[str]]:
    entries: List[CommentaryEntry] = []
    for idx, record in enumerate(records):
        if not isinstance(record, dict):
            head = preview(json.dumps(record, default=str))
            return entries, f"invalid ticker record at index {idx}: expected object, got {type(record).__name__}; head={head!r}"
        entries.append(decode_entry(record, teams))
    return entries, None


def _salvage_records(text: str) -> List[Any]:
    """Decode records one by one from a payload whose tail is broken."""
    key = text.find('"events"')
    if key == -1:
        return []
    pos = text.find("[", key)
    if pos == -1:
        return []
    pos += 1
    decoder = json.JSONDecoder()
    out: List[Any] = []
    while pos < len(text):
        while pos < len(text) and text[pos] in " \t\r\n,":
            pos += 1
        if pos >= len(text) or text[pos] == "]":
            break
        try:
            obj, pos = decoder.raw_decode(text, pos)
        except json.JSONDecodeError:
            break
        out.append(obj)
    return out


def parse_commentary(raw: str, teams: Sequence[str] = ()) -> CommentaryBatch:
    trimmed = raw.strip()
    if not trimmed or trimmed == "null":
        return CommentaryBatch()

    try:
        payload = json.loads(trimmed)
    except json.JSONDecodeError as e:
        entries, record_error = _decode_records(_salvage_records(trimmed), teams)
        message = f"invalid ticker json: {e}; head={preview(trimmed)!r}"
        if record_error:
            message = f"{message}; {record_error}"
        return CommentaryBatch(entries=tuple(entries), error=message)

    if payload is None:
        return CommentaryBatch()
    if not isinstance(payload, dict):
        return CommentaryBatch(error=f"invalid ticker payload: expected object, got {type(payload).__name__}; head={preview(trimmed)!r}")

    records = payload.get("events")
    if records is None:
        return CommentaryBatch()
    if not isinstance(records, list):
        return CommentaryBatch(error=f"invalid ticker events: expected list, got {type(records).__name__}")

    entries, error = _decode_records(records, teams)
    return CommentaryBatch(entries=tuple(entries), error=error)


def format_commentary_line(entry: CommentaryEntry) -> str:
    if entry.minute is None:
        minute = "--"
    elif entry.minute_plus:
        minute = f"{entry.minute}+{entry.minute_plus}'"
    else:
        minute = f"{entry.minute}'"
    team = f" [{entry.team}]" if entry.team else ""
    return f"{minute}{team} {entry.text}"
