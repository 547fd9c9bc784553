"""Role rankings derived from the cached squads and player details of a league."""

from __future__ import annotations

import logging
import math
from dataclasses import dataclass
from typing import Dict, List, Optional, Tuple

from .deltas import SetRankings
from .models import (
    ROLE_ATTACKER,
    ROLE_DEFENDER,
    ROLE_GOALKEEPER,
    ROLE_MIDFIELDER,
    ROLES,
    AnalysisCache,
    PlayerDetail,
    RankFactor,
    RankingRow,
    SquadPlayer,
    TeamAnalysis,
)
from .state import AppState, apply_delta


logger = logging.getLogger(__name__)

MIN_MINUTES = 270.0
MIN_STATS = 2
MAX_FACTORS = 5

# (stat, weight, higher_is_better)
Weights = Tuple[Tuple[str, float, bool], ...]

ATTACK_WEIGHTS: Dict[str, Weights] = {
    ROLE_ATTACKER: (
        ("goals", 3.0, True),
        ("xg", 2.5, True),
        ("assists", 1.5, True),
        ("shots_on_target", 1.0, True),
        ("dribbles", 0.8, True),
    ),
    ROLE_MIDFIELDER: (
        ("assists", 2.0, True),
        ("xa", 2.0, True),
        ("chances_created", 1.5, True),
        ("goals", 1.5, True),
        ("key_passes", 1.0, True),
    ),
    ROLE_DEFENDER: (
        ("assists", 1.0, True),
        ("goals", 1.0, True),
        ("chances_created", 0.8, True),
    ),
    ROLE_GOALKEEPER: (),
}

DEFENSE_WEIGHTS: Dict[str, Weights] = {
    ROLE_ATTACKER: (
        ("recoveries", 1.0, True),
        ("duels_won", 1.0, True),
        ("tackles", 0.5, True),
    ),
    ROLE_MIDFIELDER: (
        ("tackles", 1.5, True),
        ("interceptions", 1.5, True),
        ("recoveries", 1.0, True),
        ("duels_won", 1.0, True),
    ),
    ROLE_DEFENDER: (
        ("tackles", 1.5, True),
        ("interceptions", 1.5, True),
        ("clearances", 1.2, True),
        ("aerials_won", 1.0, True),
        ("blocks", 0.8, True),
    ),
    ROLE_GOALKEEPER: (
        ("saves", 2.0, True),
        ("clean_sheets", 1.5, True),
        ("goals_conceded", 1.5, False),
    ),
}


def role_from_text(raw: str) -> Optional[str]:
    s = raw.strip().lower()
    if "keeper" in s or s == "gk":
        return ROLE_GOALKEEPER
    if "defender" in s or "back" in s or s == "df":
        return ROLE_DEFENDER
    if "midfield" in s or s == "mf":
        return ROLE_MIDFIELDER
    if any(k in s for k in ("attacker", "forward", "striker", "wing")) or s == "fw":
        return ROLE_ATTACKER
    return None


@dataclass
class _Features:
    role: str
    player: SquadPlayer
    team: TeamAnalysis
    detail: PlayerDetail
    per90: Dict[str, float]


def _per90(detail: PlayerDetail) -> Dict[str, float]:
    minutes = detail.minutes or 0.0
    if minutes < MIN_MINUTES:
        return {}
    out: Dict[str, float] = {}
    for key, value in detail.stats.items():
        if value is None or not math.isfinite(value):
            continue
        # Counts that are already season-level ratios stay as-is.
        out[key] = value if key in ("clean_sheets",) else value / minutes * 90.0
    return out


def _collect(cache: AnalysisCache) -> List[_Features]:
    out: List[_Features] = []
    for team in cache.teams:
        for sp in cache.squads.get(team.id, ()):
            detail = cache.players.get(sp.id)
            if detail is None or detail.is_stub():
                continue
            role = role_from_text(sp.role) or role_from_text(detail.position or "")
            if role is None:
                continue
            out.append(_Features(role=role, player=sp, team=team, detail=detail, per90=_per90(detail)))
    return out


def _distribution(values: List[float]) -> Tuple[float, float]:
    mean = sum(values) / len(values)
    var = sum((v - mean) ** 2 for v in values) / len(values)
    return mean, math.sqrt(var)


def _score(
    row: _Features,
    weights: Weights,
    dists: Dict[str, Tuple[float, float]],
) -> Tuple[Optional[float], Tuple[RankFactor, ...]]:
    factors: List[RankFactor] = []
    total_weight = 0.0
    total = 0.0
    for stat, weight, higher_better in weights:
        raw = row.per90.get(stat)
        dist = dists.get(stat)
        if raw is None or dist is None:
            continue
        mean, std = dist
        z = 0.0 if std == 0 else (raw - mean) / std
        if not higher_better:
            z = -z
        total += z * weight
        total_weight += weight
        factors.append(RankFactor(label=stat, z=z, weight=weight, raw=raw))
    if len(factors) < MIN_STATS or total_weight == 0:
        return None, ()
    factors.sort(key=lambda f: (-abs(f.z * f.weight), f.label))
    return total / total_weight, tuple(factors[:MAX_FACTORS])


def compute_role_rankings(cache: AnalysisCache) -> List[RankingRow]:
    """Rank every cached player within their role. Same input, same output."""
    features = _collect(cache)
    by_role: Dict[str, List[_Features]] = {role: [] for role in ROLES}
    for f in features:
        by_role[f.role].append(f)

    rows: List[RankingRow] = []
    for role, members in by_role.items():
        stats = {s for w in (ATTACK_WEIGHTS[role], DEFENSE_WEIGHTS[role]) for s, _, _ in w}
        dists: Dict[str, Tuple[float, float]] = {}
        for stat in sorted(stats):
            values = [m.per90[stat] for m in members if stat in m.per90]
            if values:
                dists[stat] = _distribution(values)
        for m in members:
            attack, attack_factors = _score(m, ATTACK_WEIGHTS[role], dists)
            defense, defense_factors = _score(m, DEFENSE_WEIGHTS[role], dists)
            rows.append(
                RankingRow(
                    role=role,
                    player_id=m.player.id,
                    player_name=m.player.name,
                    team_id=m.team.id,
                    team_name=m.team.name,
                    club=m.player.club,
                    attack_score=attack,
                    defense_score=defense,
                    rating=m.detail.rating,
                    attack_factors=attack_factors,
                    defense_factors=defense_factors,
                )
            )

    role_order = {role: i for i, role in enumerate(ROLES)}
    rows.sort(
        key=lambda r: (
            role_order[r.role],
            r.attack_score is None,
            -(r.attack_score or 0.0),
            r.player_id,
        )
    )
    return rows


def recompute_rankings(state: AppState, league: str) -> bool:
    """Rebuild rankings for ``league`` from its analysis cache.

    Returns False without touching the dirty flag or the rows when the
    league has no teams yet; the flag stays set so a later call recomputes.
    """
    cache = state.analysis_for(league)
    if cache.is_empty:
        logger.debug("rankings for %s not recomputed: no teams cached", league)
        return False
    rows = compute_role_rankings(cache)
    apply_delta(state, SetRankings(league=league, rows=tuple(rows)))
    logger.info("rankings for %s recomputed (%d rows)", league, len(rows))
    return True
