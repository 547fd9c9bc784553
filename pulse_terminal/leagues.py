from __future__ import annotations

import os
from dataclasses import dataclass
from typing import Dict, List, Mapping


@dataclass(frozen=True)
class League:
    slug: str
    name: str
    upstream_id: int


LEAGUES: Dict[str, League] = {
    "premier_league": League("premier_league", "Premier League", 47),
    "la_liga": League("la_liga", "La Liga", 87),
    "bundesliga": League("bundesliga", "Bundesliga", 54),
    "serie_a": League("serie_a", "Serie A", 55),
    "ligue_1": League("ligue_1", "Ligue 1", 53),
    "champions_league": League("champions_league", "Champions League", 42),
    "world_cup": League("world_cup", "World Cup", 77),
}

DEFAULT_LEAGUE = "premier_league"


def get_league(slug: str) -> League:
    try:
        return LEAGUES[slug]
    except KeyError:
        raise ValueError(f"unknown league {slug!r} (expected one of {', '.join(LEAGUES)})") from None


def league_label(slug: str) -> str:
    league = LEAGUES.get(slug)
    return league.name if league else slug


def parse_ids(raw: str) -> List[int]:
    out: List[int] = []
    for part in raw.replace(";", ",").replace(" ", ",").split(","):
        part = part.strip()
        if part.isdigit():
            out.append(int(part))
    return out


def allowed_league_ids(env: Mapping[str, str] = os.environ, env_key: str = "PULSE_LEAGUE_IDS") -> List[int]:
    """League ids kept from the live list; an explicitly empty override means "no filter"."""
    raw = env.get(env_key)
    if raw is None:
        return sorted(l.upstream_id for l in LEAGUES.values())
    return parse_ids(raw)
