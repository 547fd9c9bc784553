from __future__ import annotations

import random
from dataclasses import dataclass, field
from typing import Dict, Tuple

from .models import QUALITY_BASIC, QUALITY_EVENT, WinProb


Triple = Tuple[float, float, float]

_BY_MARGIN: Dict[int, Triple] = {
    -2: (0.10, 0.15, 0.75),
    -1: (0.22, 0.28, 0.50),
    0: (0.42, 0.30, 0.28),
    1: (0.58, 0.25, 0.17),
    2: (0.75, 0.15, 0.10),
}


@dataclass(frozen=True)
class ProbabilityParams:
    """Tuning constants for the heuristic win probabilities.

    The score-margin table maps (home - away) to a home/draw/away triple for
    a match still in play; margins beyond +/-2 reuse the +/-2 row.
    """

    by_margin: Dict[int, Triple] = field(default_factory=lambda: dict(_BY_MARGIN))
    confidence_live: int = 68
    confidence_settled: int = 84
    jitter_home: float = 0.025
    jitter_draw: float = 0.015
    jitter_away: float = 0.025
    floor: float = 0.01


DEFAULT_PARAMS = ProbabilityParams()


def normalize(home: float, draw: float, away: float) -> Triple:
    total = home + draw + away
    if total <= 0:
        return (1 / 3, 1 / 3, 1 / 3)
    return (home / total, draw / total, away / total)


def seed_win_prob(
    score_home: int,
    score_away: int,
    is_live: bool,
    *,
    finished: bool = False,
    params: ProbabilityParams = DEFAULT_PARAMS,
) -> WinProb:
    margin = score_home - score_away
    if finished and margin != 0:
        triple: Triple = (1.0, 0.0, 0.0) if margin > 0 else (0.0, 0.0, 1.0)
    elif finished:
        triple = (0.0, 1.0, 0.0)
    else:
        triple = params.by_margin[max(-2, min(2, margin))]
    return WinProb(
        p_home=triple[0],
        p_draw=triple[1],
        p_away=triple[2],
        delta_home=0.0,
        quality=QUALITY_EVENT if is_live else QUALITY_BASIC,
        confidence=params.confidence_live if is_live else params.confidence_settled,
    )


def jitter(win: WinProb, rng: random.Random, params: ProbabilityParams = DEFAULT_PARAMS) -> WinProb:
    """Bounded random walk on the triple, renormalized so it sums to 1."""
    home = max(params.floor, win.p_home + rng.uniform(-params.jitter_home, params.jitter_home))
    draw = max(params.floor, win.p_draw + rng.uniform(-params.jitter_draw, params.jitter_draw))
    away = max(params.floor, win.p_away + rng.uniform(-params.jitter_away, params.jitter_away))
    p_home, p_draw, p_away = normalize(home, draw, away)
    return WinProb(
        p_home=p_home,
        p_draw=p_draw,
        p_away=p_away,
        delta_home=p_home - win.p_home,
        quality=win.quality,
        confidence=win.confidence,
    )
