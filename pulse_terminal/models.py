from __future__ import annotations

from dataclasses import dataclass, field
from typing import Dict, Optional, Tuple


QUALITY_BASIC = "basic"
QUALITY_EVENT = "event"
QUALITY_TRACK = "track"
QUALITY_TIERS = (QUALITY_BASIC, QUALITY_EVENT, QUALITY_TRACK)

EVENT_GOAL = "goal"
EVENT_CARD = "card"
EVENT_SUB = "sub"
EVENT_SHOT = "shot"
EVENT_KINDS = (EVENT_GOAL, EVENT_CARD, EVENT_SUB, EVENT_SHOT)

ROLE_GOALKEEPER = "goalkeeper"
ROLE_DEFENDER = "defender"
ROLE_MIDFIELDER = "midfielder"
ROLE_ATTACKER = "attacker"
ROLES = (ROLE_GOALKEEPER, ROLE_DEFENDER, ROLE_MIDFIELDER, ROLE_ATTACKER)

PLACEHOLDER_MATCH_ID = "placeholder-demo"
PLACEHOLDER_HOME = "ALPHA"
PLACEHOLDER_AWAY = "OMEGA"


@dataclass(frozen=True, slots=True)
class WinProb:
    # Probabilities are fractions in [0, 1] that sum to 1.
    p_home: float
    p_draw: float
    p_away: float
    delta_home: float = 0.0
    quality: str = QUALITY_BASIC
    confidence: int = 0


@dataclass(frozen=True, slots=True)
class Match:
    id: str
    league_name: str
    home: str
    away: str
    minute: int
    score_home: int
    score_away: int
    win: WinProb
    is_live: bool
    league_id: Optional[int] = None


@dataclass(frozen=True, slots=True)
class UpcomingMatch:
    id: str
    league_name: str
    round: str
    kickoff: str  # "YYYY-MM-DDTHH:MM" in UTC when known
    home: str
    away: str
    league_id: Optional[int] = None


@dataclass(frozen=True, slots=True)
class PlayerSlot:
    name: str
    number: Optional[int] = None
    pos: Optional[str] = None
    id: Optional[int] = None
    starter: bool = True


@dataclass(frozen=True, slots=True)
class LineupSide:
    team: str
    team_abbr: str
    formation: str
    starting: Tuple[PlayerSlot, ...] = ()
    subs: Tuple[PlayerSlot, ...] = ()


@dataclass(frozen=True, slots=True)
class Event:
    minute: int
    kind: str
    team: str
    description: str
    player: Optional[str] = None


@dataclass(frozen=True, slots=True)
class StatRow:
    name: str
    home: str
    away: str
    group: Optional[str] = None


@dataclass(frozen=True, slots=True)
class CommentaryEntry:
    text: str
    minute: Optional[int] = None  # None when the ticker has no fixed minute
    minute_plus: Optional[int] = None
    team: Optional[str] = None


@dataclass(frozen=True, slots=True)
class MatchDetail:
    home_team: Optional[str] = None
    away_team: Optional[str] = None
    events: Tuple[Event, ...] = ()
    commentary: Tuple[CommentaryEntry, ...] = ()
    commentary_error: Optional[str] = None
    lineups: Tuple[LineupSide, ...] = ()
    stats: Tuple[StatRow, ...] = ()


@dataclass(frozen=True, slots=True)
class TeamAnalysis:
    id: int
    name: str
    rank: Optional[int] = None
    points: Optional[int] = None
    updated: Optional[str] = None


@dataclass(frozen=True, slots=True)
class SquadPlayer:
    id: int
    name: str
    role: str
    club: str = ""
    age: Optional[int] = None
    shirt_number: Optional[int] = None


@dataclass(frozen=True, slots=True)
class PlayerDetail:
    id: int
    name: str
    team: Optional[str] = None
    position: Optional[str] = None
    minutes: Optional[float] = None
    rating: Optional[float] = None
    # Season totals keyed by canonical stat name ("goals", "tackles", ...).
    stats: Dict[str, float] = field(default_factory=dict)

    def is_stub(self) -> bool:
        return self.team is None and self.position is None and self.minutes is None and not self.stats


@dataclass(frozen=True, slots=True)
class AnalysisCache:
    teams: Tuple[TeamAnalysis, ...] = ()
    squads: Dict[int, Tuple[SquadPlayer, ...]] = field(default_factory=dict)
    players: Dict[int, PlayerDetail] = field(default_factory=dict)

    @property
    def is_empty(self) -> bool:
        return not self.teams


@dataclass(frozen=True, slots=True)
class RankFactor:
    label: str
    z: float
    weight: float
    raw: Optional[float] = None


@dataclass(frozen=True, slots=True)
class RankingRow:
    role: str
    player_id: int
    player_name: str
    team_id: int
    team_name: str
    club: str
    attack_score: Optional[float]
    defense_score: Optional[float]
    rating: Optional[float] = None
    attack_factors: Tuple[RankFactor, ...] = ()
    defense_factors: Tuple[RankFactor, ...] = ()


def abbreviate_team(name: str) -> str:
    trimmed = name.strip()
    if len(trimmed) <= 3:
        return trimmed.upper()
    initials = "".join(part[0] for part in trimmed.split()[:3] if part)
    if len(initials) >= 2:
        return initials.upper()
    return trimmed[:3].upper()


def placeholder_match(league_name: str) -> Match:
    return Match(
        id=PLACEHOLDER_MATCH_ID,
        league_name=league_name,
        home=PLACEHOLDER_HOME,
        away=PLACEHOLDER_AWAY,
        minute=54,
        score_home=2,
        score_away=1,
        win=WinProb(p_home=0.56, p_draw=0.22, p_away=0.22, quality=QUALITY_EVENT, confidence=74),
        is_live=True,
    )


def _slot(name: str, number: int, pos: str, starter: bool = True) -> PlayerSlot:
    return PlayerSlot(name=name, number=number, pos=pos, starter=starter)


def placeholder_detail() -> MatchDetail:
    """Synthetic detail shown for the demo match; never fetched from the network."""
    stats = (
        StatRow("Possession", "58%", "42%"),
        StatRow("Shots", "14", "9"),
        StatRow("Shots on target", "6", "3"),
        StatRow("xG", "1.72", "0.86"),
        StatRow("Passes", "412", "298"),
        StatRow("Corners", "5", "2"),
    )
    events = (
        Event(6, EVENT_GOAL, PLACEHOLDER_HOME, "Goal"),
        Event(27, EVENT_CARD, PLACEHOLDER_AWAY, "Yellow card"),
        Event(41, EVENT_GOAL, PLACEHOLDER_HOME, "Goal"),
        Event(52, EVENT_SUB, PLACEHOLDER_AWAY, "Substitution"),
    )
    home = LineupSide(
        team=PLACEHOLDER_HOME,
        team_abbr="ALP",
        formation="4-3-3",
        starting=(
            _slot("A. Stone", 1, "GK"),
            _slot("R. Vega", 3, "DF"),
            _slot("M. Holt", 4, "DF"),
            _slot("J. Nox", 6, "MF"),
            _slot("T. Vale", 8, "MF"),
            _slot("K. Rook", 9, "FW"),
        ),
        subs=(_slot("P. Vale", 12, "DF", False), _slot("S. Quinn", 18, "FW", False)),
    )
    away = LineupSide(
        team=PLACEHOLDER_AWAY,
        team_abbr="OME",
        formation="4-2-3-1",
        starting=(
            _slot("L. Park", 1, "GK"),
            _slot("D. Moss", 2, "DF"),
            _slot("I. Noor", 5, "DF"),
            _slot("C. Hale", 7, "MF"),
            _slot("V. Ash", 10, "MF"),
            _slot("E. Pike", 11, "FW"),
        ),
        subs=(_slot("N. Gray", 14, "MF", False), _slot("O. Reed", 19, "FW", False)),
    )
    return MatchDetail(
        home_team=PLACEHOLDER_HOME,
        away_team=PLACEHOLDER_AWAY,
        events=events,
        lineups=(home, away),
        stats=stats,
    )
