"""Change records exchanged between the consumer and the background worker.

Deltas flow worker -> consumer and are the only way the application state is
mutated. Commands flow consumer -> worker. Both are immutable.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Tuple, Union

from .models import (
    AnalysisCache,
    Event,
    Match,
    MatchDetail,
    PlayerDetail,
    RankingRow,
    SquadPlayer,
    UpcomingMatch,
)


SOURCE_NETWORK = "network"
SOURCE_LOCAL = "local"


@dataclass(frozen=True, slots=True)
class SetMatches:
    matches: Tuple[Match, ...]


@dataclass(frozen=True, slots=True)
class UpsertMatch:
    match: Match


@dataclass(frozen=True, slots=True)
class SetMatchDetails:
    match_id: str
    detail: MatchDetail
    source: str = SOURCE_NETWORK


@dataclass(frozen=True, slots=True)
class MergeMatchDetails:
    """A partial refresh: empty fields keep whatever the store already has."""

    match_id: str
    detail: MatchDetail


@dataclass(frozen=True, slots=True)
class SetCommentaryError:
    match_id: str
    message: str


@dataclass(frozen=True, slots=True)
class AddEvent:
    match_id: str
    event: Event


@dataclass(frozen=True, slots=True)
class SetUpcoming:
    upcoming: Tuple[UpcomingMatch, ...]


@dataclass(frozen=True, slots=True)
class SetAnalysis:
    league: str
    cache: AnalysisCache


@dataclass(frozen=True, slots=True)
class CacheSquad:
    league: str
    team_id: int
    players: Tuple[SquadPlayer, ...]


@dataclass(frozen=True, slots=True)
class CachePlayerDetail:
    league: str
    detail: PlayerDetail


@dataclass(frozen=True, slots=True)
class SetRankingsDirty:
    league: str


@dataclass(frozen=True, slots=True)
class SetRankings:
    league: str
    rows: Tuple[RankingRow, ...]


@dataclass(frozen=True, slots=True)
class SetPlaceholder:
    enabled: bool


@dataclass(frozen=True, slots=True)
class SelectLeague:
    league: str


@dataclass(frozen=True, slots=True)
class ExportStarted:
    path: str
    league: str


@dataclass(frozen=True, slots=True)
class ExportFinished:
    path: str
    teams: int
    players: int
    errors: int


@dataclass(frozen=True, slots=True)
class Log:
    message: str


Delta = Union[
    SetMatches,
    UpsertMatch,
    SetMatchDetails,
    MergeMatchDetails,
    SetCommentaryError,
    AddEvent,
    SetUpcoming,
    SetAnalysis,
    CacheSquad,
    CachePlayerDetail,
    SetRankingsDirty,
    SetRankings,
    SetPlaceholder,
    SelectLeague,
    ExportStarted,
    ExportFinished,
    Log,
]

# Deltas after which the rankings dirty flag must be re-checked.
ANALYSIS_DELTAS = (SetAnalysis, CacheSquad, CachePlayerDetail, SetRankingsDirty, SelectLeague)


@dataclass(frozen=True, slots=True)
class FetchMatchDetails:
    match_id: str


@dataclass(frozen=True, slots=True)
class FetchMatchDetailsBasic:
    match_id: str


@dataclass(frozen=True, slots=True)
class FetchUpcoming:
    days: int = 7


@dataclass(frozen=True, slots=True)
class FetchAnalysis:
    league: str


@dataclass(frozen=True, slots=True)
class Export:
    league: str
    path: str


Command = Union[FetchMatchDetails, FetchMatchDetailsBasic, FetchUpcoming, FetchAnalysis, Export]
