"""Best-effort on-disk cache of analysis data and rankings, plus JSON export.

Nothing here is allowed to take the application down: unreadable or
malformed cache files load as empty, failed writes are logged and dropped.
"""

from __future__ import annotations

import json
import logging
import os
import time
from dataclasses import asdict, dataclass, field
from pathlib import Path
from typing import Any, Dict, List, Optional, Tuple

from .leagues import league_label
from .models import (
    AnalysisCache,
    PlayerDetail,
    RankFactor,
    RankingRow,
    SquadPlayer,
    TeamAnalysis,
)


logger = logging.getLogger(__name__)

CACHE_FILE_VERSION = 1
CACHE_FILE_NAME = "cache.json"


@dataclass
class PersistedLeague:
    analysis: AnalysisCache = field(default_factory=AnalysisCache)
    rankings: List[RankingRow] = field(default_factory=list)
    saved_at: Optional[float] = None


def analysis_to_dict(cache: AnalysisCache) -> Dict[str, Any]:
    return {
        "teams": [asdict(t) for t in cache.teams],
        "squads": {str(team_id): [asdict(p) for p in players] for team_id, players in cache.squads.items()},
        "players": {str(player_id): asdict(d) for player_id, d in cache.players.items()},
    }


def dict_to_analysis(d: Dict[str, Any]) -> AnalysisCache:
    teams = tuple(TeamAnalysis(**t) for t in d.get("teams") or [])
    squads: Dict[int, Tuple[SquadPlayer, ...]] = {}
    for team_id, players in (d.get("squads") or {}).items():
        squads[int(team_id)] = tuple(SquadPlayer(**p) for p in players)
    players_by_id: Dict[int, PlayerDetail] = {}
    for player_id, raw in (d.get("players") or {}).items():
        raw = dict(raw)
        raw["stats"] = {str(k): float(v) for k, v in (raw.get("stats") or {}).items()}
        players_by_id[int(player_id)] = PlayerDetail(**raw)
    return AnalysisCache(teams=teams, squads=squads, players=players_by_id)


def ranking_row_to_dict(row: RankingRow) -> Dict[str, Any]:
    return asdict(row)


def dict_to_ranking_row(d: Dict[str, Any]) -> RankingRow:
    d = dict(d)
    d["attack_factors"] = tuple(RankFactor(**f) for f in d.get("attack_factors") or [])
    d["defense_factors"] = tuple(RankFactor(**f) for f in d.get("defense_factors") or [])
    return RankingRow(**d)


class CacheStore:
    def __init__(self, path: Path) -> None:
        self.path = path

    @classmethod
    def in_dir(cls, cache_dir: Path) -> "CacheStore":
        return cls(cache_dir / CACHE_FILE_NAME)

    def _read_raw(self) -> Dict[str, Any]:
        if not self.path.exists():
            return {}
        try:
            payload = json.loads(self.path.read_text(encoding="utf-8"))
        except (OSError, ValueError) as e:
            logger.warning("ignoring unreadable cache %s: %s", self.path, e)
            return {}
        if not isinstance(payload, dict) or payload.get("version") != CACHE_FILE_VERSION:
            logger.info("ignoring cache %s with unknown version", self.path)
            return {}
        if not isinstance(payload.get("leagues", {}), dict):
            logger.warning("ignoring cache %s: leagues is not an object", self.path)
            return {}
        return payload

    def load(self) -> Dict[str, PersistedLeague]:
        out: Dict[str, PersistedLeague] = {}
        for league, entry in (self._read_raw().get("leagues") or {}).items():
            try:
                out[league] = PersistedLeague(
                    analysis=dict_to_analysis(entry.get("analysis") or {}),
                    rankings=[dict_to_ranking_row(r) for r in entry.get("rankings") or []],
                    saved_at=entry.get("saved_at"),
                )
            except (TypeError, ValueError, AttributeError) as e:
                logger.warning("skipping malformed cache entry for %s: %s", league, e)
        return out

    def save(self, league: str, analysis: AnalysisCache, rankings: List[RankingRow]) -> bool:
        payload = self._read_raw() or {"version": CACHE_FILE_VERSION, "leagues": {}}
        payload.setdefault("leagues", {})[league] = {
            "analysis": analysis_to_dict(analysis),
            "rankings": [ranking_row_to_dict(r) for r in rankings],
            "saved_at": time.time(),
        }
        try:
            write_json_atomic(self.path, payload)
        except OSError as e:
            logger.warning("failed to save cache %s: %s", self.path, e)
            return False
        return True


def write_json_atomic(path: Path, payload: Dict[str, Any]) -> None:
    path.parent.mkdir(parents=True, exist_ok=True)
    tmp = path.with_name(path.name + ".tmp")
    tmp.write_text(json.dumps(payload, indent=2), encoding="utf-8")
    os.replace(tmp, path)


def export_analysis(path: Path, league: str, cache: AnalysisCache, rankings: List[RankingRow]) -> Tuple[int, int]:
    """Write a self-contained JSON export; returns (teams, players) written."""
    teams = []
    players = 0
    for team in sorted(cache.teams, key=lambda t: (t.rank is None, t.rank or 0, t.name)):
        squad = []
        for sp in cache.squads.get(team.id, ()):
            detail = cache.players.get(sp.id)
            squad.append({**asdict(sp), "detail": asdict(detail) if detail is not None else None})
            players += 1
        teams.append({**asdict(team), "squad": squad})
    write_json_atomic(
        path,
        {
            "league": league,
            "league_name": league_label(league),
            "exported_at": time.time(),
            "teams": teams,
            "rankings": [ranking_row_to_dict(r) for r in rankings],
        },
    )
    return len(teams), players
