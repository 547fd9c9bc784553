"""Best-effort mapping of upstream JSON payloads onto the data model.

Field names move around between upstream deployments, so every accessor here
is permissive: missing or oddly-typed fields fall back to defaults instead of
failing the whole payload. Only a body that is not JSON at all raises.
"""

from __future__ import annotations

import json
from dataclasses import dataclass
from typing import Any, Dict, Iterable, List, Optional, Sequence, Tuple

from .commentary import preview
from .errors import DecodeError
from .models import (
    EVENT_CARD,
    EVENT_GOAL,
    EVENT_SHOT,
    EVENT_SUB,
    Event,
    LineupSide,
    MatchDetail,
    PlayerDetail,
    PlayerSlot,
    SquadPlayer,
    StatRow,
    TeamAnalysis,
    UpcomingMatch,
    abbreviate_team,
)


@dataclass(frozen=True, slots=True)
class MatchRow:
    """One fixture from the live list, before probabilities are attached."""

    id: str
    league_id: int
    league_name: str
    home: str
    away: str
    home_score: int
    away_score: int
    utc_time: str
    minute: Optional[int]
    started: bool
    finished: bool
    cancelled: bool

    @property
    def is_live(self) -> bool:
        return self.started and not self.finished and not self.cancelled


def load_json(raw: str, what: str) -> Any:
    trimmed = raw.strip()
    if not trimmed or trimmed == "null":
        return None
    try:
        return json.loads(trimmed)
    except json.JSONDecodeError as e:
        raise DecodeError(f"invalid {what} json: {e}", preview=preview(trimmed)) from e


def _as_dict(value: Any) -> Dict[str, Any]:
    return value if isinstance(value, dict) else {}


def _as_list(value: Any) -> List[Any]:
    return value if isinstance(value, list) else []


def as_string(value: Any) -> Optional[str]:
    if isinstance(value, str):
        return value.strip()
    if isinstance(value, (int, float)) and not isinstance(value, bool):
        return str(value)
    if isinstance(value, dict):
        for key in ("name", "shortName"):
            if isinstance(value.get(key), str):
                return value[key].strip()
        team = value.get("team")
        if isinstance(team, dict) and isinstance(team.get("name"), str):
            return team["name"].strip()
    return None


def pick_string(value: Any, keys: Sequence[str]) -> Optional[str]:
    obj = _as_dict(value)
    for key in keys:
        s = as_string(obj.get(key))
        if s:
            return s
    return None


def as_int(value: Any) -> Optional[int]:
    if isinstance(value, bool):
        return None
    if isinstance(value, int):
        return value
    if isinstance(value, float) and value.is_integer():
        return int(value)
    if isinstance(value, str):
        try:
            return int(value.strip())
        except ValueError:
            return None
    return None


def as_float(value: Any) -> Optional[float]:
    if isinstance(value, bool):
        return None
    if isinstance(value, (int, float)):
        return float(value)
    if isinstance(value, str):
        try:
            return float(value.strip().rstrip("%").replace(",", ""))
        except ValueError:
            return None
    return None


def pick_int(value: Any, keys: Sequence[str]) -> Optional[int]:
    obj = _as_dict(value)
    for key in keys:
        n = as_int(obj.get(key))
        if n is not None:
            return n
    return None


def value_to_string(value: Any) -> str:
    if value is None:
        return "-"
    if isinstance(value, bool):
        return "yes" if value else "no"
    if isinstance(value, str):
        return value.strip()
    if isinstance(value, (int, float)):
        return str(value)
    return json.dumps(value)


# --- live list / upcoming -------------------------------------------------


def live_minute_from_status(status: Dict[str, Any]) -> Optional[int]:
    live_time = _as_dict(status.get("liveTime"))
    if not live_time:
        return None
    base_period = as_int(live_time.get("basePeriod"))
    short = str(live_time.get("short") or "").strip()
    if short.upper() == "HT":
        return base_period if base_period is not None else 45
    long = str(live_time.get("long") or "").strip()
    if long.lower() in ("half-time", "half time"):
        return base_period if base_period is not None else 45
    if ":" in long:
        mm, _, ss = long.partition(":")
        m, s = as_int(mm), as_int(ss)
        if m is not None and s is not None:
            return max(0, min(130, m + (1 if s > 0 else 0)))
    m = as_int(long)
    if m is not None:
        return max(0, min(130, m))
    return base_period


def _iter_fixtures(payload: Any) -> Iterable[Tuple[Dict[str, Any], Dict[str, Any]]]:
    for league in _as_list(_as_dict(payload).get("leagues")):
        league = _as_dict(league)
        for fixture in _as_list(league.get("matches")):
            if isinstance(fixture, dict):
                yield league, fixture


def _team_name(team: Dict[str, Any]) -> str:
    return pick_string(team, ("shortName", "name")) or "TBD"


def parse_matches_json(raw: str) -> List[MatchRow]:
    rows: List[MatchRow] = []
    for league, fixture in _iter_fixtures(load_json(raw, "matches")):
        fixture_id = as_string(fixture.get("id"))
        if not fixture_id:
            continue
        home = _as_dict(fixture.get("home"))
        away = _as_dict(fixture.get("away"))
        status = _as_dict(fixture.get("status"))
        started = bool(status.get("started") or status.get("ongoing") or status.get("liveTime"))
        rows.append(
            MatchRow(
                id=fixture_id,
                league_id=pick_int(league, ("primaryId", "id")) or 0,
                league_name=pick_string(league, ("name",)) or "",
                home=_team_name(home),
                away=_team_name(away),
                home_score=as_int(home.get("score")) or 0,
                away_score=as_int(away.get("score")) or 0,
                utc_time=str(status.get("utcTime") or ""),
                minute=live_minute_from_status(status),
                started=started,
                finished=bool(status.get("finished")),
                cancelled=bool(status.get("cancelled")),
            )
        )
    return rows


def normalize_utc_time(raw: str) -> str:
    trimmed = raw.strip().rstrip("Z").replace(" ", "T")
    return trimmed[:16]


def parse_upcoming_json(raw: str) -> List[UpcomingMatch]:
    out: List[UpcomingMatch] = []
    for league, fixture in _iter_fixtures(load_json(raw, "upcoming")):
        status = _as_dict(fixture.get("status"))
        if status.get("started") or status.get("finished") or status.get("cancelled"):
            continue
        fixture_id = as_string(fixture.get("id"))
        if not fixture_id:
            continue
        kickoff = normalize_utc_time(str(status.get("utcTime") or fixture.get("time") or ""))
        out.append(
            UpcomingMatch(
                id=fixture_id,
                league_id=pick_int(league, ("primaryId", "id")),
                league_name=pick_string(league, ("name",)) or "",
                round=pick_string(fixture, ("tournamentStage", "round")) or "",
                kickoff=kickoff,
                home=_team_name(_as_dict(fixture.get("home"))),
                away=_team_name(_as_dict(fixture.get("away"))),
            )
        )
    return out


# --- match details ----------------------------------------------------------


def parse_event_kind(event_type: Optional[str]) -> Optional[str]:
    if not event_type:
        return None
    lowered = event_type.lower()
    if "goal" in lowered:
        return EVENT_GOAL
    if "card" in lowered:
        return EVENT_CARD
    if "sub" in lowered:
        return EVENT_SUB
    if "shot" in lowered:
        return EVENT_SHOT
    return None


def _parse_player(value: Any, starter: bool) -> Optional[PlayerSlot]:
    obj = _as_dict(value)
    nested = _as_dict(obj.get("player"))
    name = pick_string(obj, ("name", "playerName", "fullName")) or pick_string(nested, ("name", "fullName"))
    if not name:
        return None
    return PlayerSlot(
        name=name,
        number=pick_int(obj, ("shirtNumber", "number")),
        pos=pick_string(obj, ("position", "pos", "role", "positionShort")),
        id=pick_int(obj, ("playerId", "id", "player_id")) or pick_int(nested, ("id", "playerId")),
        starter=starter,
    )


def _parse_lineup_side(value: Any) -> Optional[LineupSide]:
    obj = _as_dict(value)
    name = pick_string(obj, ("name",))
    if not name:
        return None
    subs_raw = obj.get("substitutes") or obj.get("bench") or obj.get("subs")
    starting = tuple(p for p in (_parse_player(v, True) for v in _as_list(obj.get("starters"))) if p)
    subs = tuple(p for p in (_parse_player(v, False) for v in _as_list(subs_raw)) if p)
    return LineupSide(
        team=name,
        team_abbr=abbreviate_team(name),
        formation=pick_string(obj, ("formation",)) or "",
        starting=starting,
        subs=subs,
    )


def _parse_events(value: Any, home: str, away: str) -> Tuple[Event, ...]:
    out: List[Event] = []
    for entry in _as_list(value):
        entry = _as_dict(entry)
        event_type = as_string(entry.get("type"))
        kind = parse_event_kind(event_type)
        if kind is None:
            continue
        player = pick_string(_as_dict(entry.get("player")), ("name", "fullName"))
        is_home = entry.get("isHome")
        out.append(
            Event(
                minute=max(0, as_int(entry.get("time")) or 0),
                kind=kind,
                team=home if is_home is not False else away,
                description=f"{event_type} {player}" if player else str(event_type),
                player=player,
            )
        )
    return tuple(out)


def _parse_stats(value: Any) -> Tuple[StatRow, ...]:
    rows: List[StatRow] = []
    for group in _as_list(value):
        group = _as_dict(group)
        title = pick_string(group, ("title", "key"))
        for stat in _as_list(group.get("stats")):
            stat = _as_dict(stat)
            name = pick_string(stat, ("title", "name"))
            if not name:
                continue
            pair = _as_list(stat.get("stats"))
            home_raw = stat.get("homeValue", stat.get("home", pair[0] if len(pair) > 0 else None))
            away_raw = stat.get("awayValue", stat.get("away", pair[1] if len(pair) > 1 else None))
            rows.append(StatRow(name=name, home=value_to_string(home_raw), away=value_to_string(away_raw), group=title))
    return tuple(rows)


def parse_match_details_value(root: Any) -> MatchDetail:
    root = _as_dict(root)
    general = _as_dict(root.get("general"))
    content = _as_dict(root.get("content"))
    home = pick_string(general, ("homeTeam", "home")) or ""
    away = pick_string(general, ("awayTeam", "away")) or ""
    lineup = _as_dict(content.get("lineup"))
    sides = tuple(s for s in (_parse_lineup_side(lineup.get(k)) for k in ("homeTeam", "awayTeam")) if s)
    events = _as_dict(_as_dict(content.get("matchFacts")).get("events")).get("events")
    return MatchDetail(
        home_team=home or None,
        away_team=away or None,
        events=_parse_events(events, home, away),
        lineups=sides,
        stats=_parse_stats(_as_dict(content.get("stats")).get("stats")),
    )


def parse_match_details_json(raw: str) -> MatchDetail:
    return parse_match_details_value(load_json(raw, "matchDetails"))


def pick_ticker_lang(langs: str) -> Optional[str]:
    options = [s.strip() for s in langs.split(",") if s.strip()]
    for preferred in ("en", "en_gen"):
        if preferred in options:
            return preferred
    return options[0] if options else None


def ticker_request(root: Any) -> Optional[Tuple[str, List[str]]]:
    """Return (language, [home, away]) when the details advertise a live ticker."""
    root = _as_dict(root)
    ticker = _as_dict(_as_dict(root.get("content")).get("liveticker"))
    lang = pick_ticker_lang(str(ticker.get("langs") or ""))
    if lang is None:
        return None
    teams = [t for t in (as_string(v) for v in _as_list(ticker.get("teams"))) if t]
    if len(teams) < 2:
        general = _as_dict(root.get("general"))
        home = pick_string(general, ("homeTeam", "home"))
        away = pick_string(general, ("awayTeam", "away"))
        teams = [home, away] if home and away else []
    return lang, teams


# --- analysis -----------------------------------------------------------------


def _find_table_rows(obj: Any) -> List[Dict[str, Any]]:
    if isinstance(obj, dict):
        rows = obj.get("all")
        if isinstance(rows, list) and rows and all(isinstance(r, dict) and "id" in r for r in rows):
            return rows
        for v in obj.values():
            found = _find_table_rows(v)
            if found:
                return found
    elif isinstance(obj, list):
        for it in obj:
            found = _find_table_rows(it)
            if found:
                return found
    return []


def parse_team_analysis_json(raw: str) -> List[TeamAnalysis]:
    payload = load_json(raw, "league")
    updated = pick_string(_as_dict(_as_dict(payload).get("details")), ("latestSeason", "season"))
    out: List[TeamAnalysis] = []
    seen = set()
    for row in _find_table_rows(payload):
        team_id = as_int(row.get("id"))
        name = pick_string(row, ("name", "shortName"))
        if team_id is None or not name or team_id in seen:
            continue
        seen.add(team_id)
        out.append(
            TeamAnalysis(
                id=team_id,
                name=name,
                rank=as_int(row.get("idx")),
                points=as_int(row.get("pts")),
                updated=updated,
            )
        )
    return out


def parse_squad_json(raw: str, club: str = "") -> List[SquadPlayer]:
    payload = _as_dict(load_json(raw, "team"))
    squad = payload.get("squad")
    groups = _as_list(_as_dict(squad).get("squad") if isinstance(squad, dict) else squad)
    club = club or pick_string(_as_dict(payload.get("details")), ("name",)) or ""
    out: List[SquadPlayer] = []
    for group in groups:
        group = _as_dict(group)
        group_title = pick_string(group, ("title",)) or ""
        if group_title.lower() == "coach":
            continue
        for member in _as_list(group.get("members")):
            member = _as_dict(member)
            player_id = as_int(member.get("id"))
            name = pick_string(member, ("name",))
            if player_id is None or not name:
                continue
            role = member.get("role")
            role_text = pick_string(role, ("fallback", "key")) if isinstance(role, dict) else as_string(role)
            out.append(
                SquadPlayer(
                    id=player_id,
                    name=name,
                    role=role_text or group_title,
                    club=pick_string(member, ("cname", "club")) or club,
                    age=as_int(member.get("age")),
                    shirt_number=as_int(member.get("shirtNumber")),
                )
            )
    return out


STAT_KEYS: Dict[str, str] = {
    "appearances": "appearances",
    "matches": "appearances",
    "minutes played": "minutes",
    "goals": "goals",
    "assists": "assists",
    "expected goals (xg)": "xg",
    "xg": "xg",
    "expected assists (xa)": "xa",
    "xa": "xa",
    "shots": "shots",
    "shots on target": "shots_on_target",
    "key passes": "key_passes",
    "chances created": "chances_created",
    "successful dribbles": "dribbles",
    "dribbles": "dribbles",
    "tackles won": "tackles",
    "tackles": "tackles",
    "interceptions": "interceptions",
    "clearances": "clearances",
    "blocks": "blocks",
    "recoveries": "recoveries",
    "duels won": "duels_won",
    "aerials won": "aerials_won",
    "aerial duels won": "aerials_won",
    "saves": "saves",
    "clean sheets": "clean_sheets",
    "goals conceded": "goals_conceded",
}


def _iter_stat_items(payload: Dict[str, Any]) -> Iterable[Dict[str, Any]]:
    for item in _as_list(_as_dict(payload.get("mainLeague")).get("stats")):
        if isinstance(item, dict):
            yield item
    for group in _as_list(_as_dict(payload.get("statSeasons")).get("groups")) + _as_list(payload.get("seasonStats")):
        for item in _as_list(_as_dict(group).get("items")):
            if isinstance(item, dict):
                yield item


def parse_player_json(raw: str) -> PlayerDetail:
    payload = _as_dict(load_json(raw, "playerData"))
    player_id = as_int(payload.get("id"))
    if player_id is None:
        raise DecodeError("playerData without id", preview=preview(raw))
    stats: Dict[str, float] = {}
    rating: Optional[float] = None
    minutes: Optional[float] = None
    for item in _iter_stat_items(payload):
        title = (pick_string(item, ("title", "localizedTitleId")) or "").lower()
        value = as_float(item.get("value", item.get("statValue")))
        if value is None:
            continue
        if title == "rating" and rating is None:
            rating = value
            continue
        key = STAT_KEYS.get(title)
        if key == "minutes":
            minutes = minutes if minutes is not None else value
        elif key and key not in stats:
            stats[key] = value
    position = _as_dict(_as_dict(payload.get("positionDescription")).get("primaryPosition"))
    return PlayerDetail(
        id=player_id,
        name=pick_string(payload, ("name",)) or str(player_id),
        team=pick_string(_as_dict(payload.get("primaryTeam")), ("teamName", "name")),
        position=pick_string(position, ("label", "key")),
        minutes=minutes,
        rating=rating,
        stats=stats,
    )
