"""Application state and delta application.

``AppState`` is owned by the consumer loop and is only ever changed through
``apply_delta``. Applying a delta never performs I/O and never blocks.
"""

from __future__ import annotations

import logging
from collections import deque
from dataclasses import dataclass, field, replace
from typing import Callable, Deque, Dict, List, Optional, Set

from .deltas import (
    SOURCE_NETWORK,
    AddEvent,
    CachePlayerDetail,
    CacheSquad,
    Delta,
    ExportFinished,
    ExportStarted,
    Log,
    MergeMatchDetails,
    SelectLeague,
    SetAnalysis,
    SetCommentaryError,
    SetMatchDetails,
    SetMatches,
    SetPlaceholder,
    SetRankings,
    SetRankingsDirty,
    SetUpcoming,
    UpsertMatch,
)
from .leagues import DEFAULT_LEAGUE, league_label
from .models import (
    PLACEHOLDER_MATCH_ID,
    AnalysisCache,
    Match,
    MatchDetail,
    RankingRow,
    UpcomingMatch,
    WinProb,
    placeholder_detail,
    placeholder_match,
)
from .winprob import seed_win_prob


logger = logging.getLogger(__name__)

MAX_LOG_LINES = 200
MAX_HISTORY = 40
PLACEHOLDER_HISTORY = [0.42, 0.48, 0.53, 0.49, 0.57, 0.61, 0.58, 0.56]


@dataclass
class RankingsCache:
    rows: List[RankingRow] = field(default_factory=list)
    dirty: bool = False


@dataclass
class ExportState:
    active: bool = False
    done: bool = False
    path: Optional[str] = None
    message: str = ""
    error_count: int = 0


@dataclass
class AppState:
    league: str = DEFAULT_LEAGUE
    matches: List[Match] = field(default_factory=list)
    upcoming: List[UpcomingMatch] = field(default_factory=list)
    match_detail: Dict[str, MatchDetail] = field(default_factory=dict)
    analysis: Dict[str, AnalysisCache] = field(default_factory=dict)
    rankings: Dict[str, RankingsCache] = field(default_factory=dict)
    win_prob_history: Dict[str, List[float]] = field(default_factory=dict)
    prematch_win: Dict[str, WinProb] = field(default_factory=dict)
    prematch_locked: Set[str] = field(default_factory=set)
    placeholder_enabled: bool = False
    export: ExportState = field(default_factory=ExportState)
    logs: Deque[str] = field(default_factory=lambda: deque(maxlen=MAX_LOG_LINES))
    log_total: int = 0

    def push_log(self, message: str) -> None:
        self.logs.append(message)
        self.log_total += 1

    def match_by_id(self, match_id: str) -> Optional[Match]:
        for m in self.matches:
            if m.id == match_id:
                return m
        return None

    def analysis_for(self, league: str) -> AnalysisCache:
        return self.analysis.get(league) or AnalysisCache()

    def rankings_for(self, league: str) -> RankingsCache:
        cache = self.rankings.get(league)
        if cache is None:
            cache = RankingsCache()
            self.rankings[league] = cache
        return cache

    def live_matches(self) -> List[Match]:
        return [m for m in self.matches if m.is_live]


def _push_history(state: AppState, match_id: str, p_home: float) -> None:
    history = state.win_prob_history.setdefault(match_id, [])
    history.append(p_home)
    if len(history) > MAX_HISTORY:
        del history[: len(history) - MAX_HISTORY]


def _track_prematch(state: AppState, incoming: Match, previous: Optional[Match]) -> None:
    """Keep the pre-match snapshot fresh until kickoff, then freeze it."""
    match_id = incoming.id
    if match_id in state.prematch_locked:
        return
    started = incoming.is_live or incoming.minute > 0
    if previous is not None and not previous.is_live and previous.minute == 0 and started:
        state.prematch_win.setdefault(match_id, previous.win)
        state.prematch_locked.add(match_id)
    elif not started:
        state.prematch_win[match_id] = incoming.win
    else:
        # Kickoff happened before we ever saw the match unstarted.
        state.prematch_win.setdefault(match_id, seed_win_prob(0, 0, False))
        state.prematch_locked.add(match_id)


def _insert_placeholder(state: AppState) -> None:
    state.matches = [m for m in state.matches if m.id != PLACEHOLDER_MATCH_ID]
    state.matches.append(placeholder_match(league_label(state.league)))
    state.match_detail[PLACEHOLDER_MATCH_ID] = placeholder_detail()
    state.win_prob_history[PLACEHOLDER_MATCH_ID] = list(PLACEHOLDER_HISTORY)


def _remove_placeholder(state: AppState) -> None:
    state.matches = [m for m in state.matches if m.id != PLACEHOLDER_MATCH_ID]
    state.match_detail.pop(PLACEHOLDER_MATCH_ID, None)
    state.win_prob_history.pop(PLACEHOLDER_MATCH_ID, None)


def _apply_set_matches(state: AppState, delta: SetMatches) -> None:
    previous = {m.id: m for m in state.matches}
    pinned = previous.get(PLACEHOLDER_MATCH_ID)
    matches: List[Match] = []
    for m in delta.matches:
        # The live list never owns the placeholder; it is re-inserted below.
        if m.id == PLACEHOLDER_MATCH_ID:
            continue
        _track_prematch(state, m, previous.get(m.id))
        matches.append(m)
    if state.placeholder_enabled:
        matches.append(pinned or placeholder_match(league_label(state.league)))
        if PLACEHOLDER_MATCH_ID not in state.match_detail:
            state.match_detail[PLACEHOLDER_MATCH_ID] = placeholder_detail()
    state.matches = matches


def _apply_upsert_match(state: AppState, delta: UpsertMatch) -> None:
    incoming = delta.match
    if incoming.id == PLACEHOLDER_MATCH_ID:
        return
    for idx, existing in enumerate(state.matches):
        if existing.id == incoming.id:
            _track_prematch(state, incoming, existing)
            state.matches[idx] = incoming
            break
    else:
        _track_prematch(state, incoming, None)
        state.matches.append(incoming)
    _push_history(state, incoming.id, incoming.win.p_home)


def _apply_set_match_details(state: AppState, delta: SetMatchDetails) -> None:
    if delta.match_id == PLACEHOLDER_MATCH_ID:
        if delta.source == SOURCE_NETWORK or not state.placeholder_enabled:
            logger.debug("dropping %s detail for placeholder match", delta.source)
            return
    state.match_detail[delta.match_id] = delta.detail


def merge_detail(existing: MatchDetail, incoming: MatchDetail) -> MatchDetail:
    """Overlay a partial detail on a richer one without losing populated fields."""
    commentary = incoming.commentary
    commentary_error = incoming.commentary_error
    if not commentary and existing.commentary:
        commentary = existing.commentary
        commentary_error = existing.commentary_error
    elif not commentary and commentary_error is None:
        commentary_error = existing.commentary_error
    return MatchDetail(
        home_team=incoming.home_team or existing.home_team,
        away_team=incoming.away_team or existing.away_team,
        events=incoming.events or existing.events,
        commentary=commentary,
        commentary_error=commentary_error,
        lineups=incoming.lineups or existing.lineups,
        stats=incoming.stats or existing.stats,
    )


def _apply_merge_match_details(state: AppState, delta: MergeMatchDetails) -> None:
    if delta.match_id == PLACEHOLDER_MATCH_ID:
        return
    existing = state.match_detail.get(delta.match_id)
    detail = merge_detail(existing, delta.detail) if existing is not None else delta.detail
    state.match_detail[delta.match_id] = detail


def _apply_set_commentary_error(state: AppState, delta: SetCommentaryError) -> None:
    if delta.match_id == PLACEHOLDER_MATCH_ID:
        return
    existing = state.match_detail.get(delta.match_id) or MatchDetail()
    state.match_detail[delta.match_id] = replace(existing, commentary_error=delta.message)


def _apply_add_event(state: AppState, delta: AddEvent) -> None:
    if delta.match_id == PLACEHOLDER_MATCH_ID:
        return
    existing = state.match_detail.get(delta.match_id) or MatchDetail()
    state.match_detail[delta.match_id] = replace(existing, events=existing.events + (delta.event,))


def _apply_set_upcoming(state: AppState, delta: SetUpcoming) -> None:
    state.upcoming = list(delta.upcoming)
    for u in state.upcoming:
        if u.id not in state.prematch_locked:
            state.prematch_win[u.id] = seed_win_prob(0, 0, False)


def _apply_set_analysis(state: AppState, delta: SetAnalysis) -> None:
    state.analysis[delta.league] = delta.cache
    # Marked dirty whether or not anything is currently showing rankings.
    state.rankings_for(delta.league).dirty = True


def _apply_cache_squad(state: AppState, delta: CacheSquad) -> None:
    if not delta.players:
        return
    cache = state.analysis_for(delta.league)
    squads = dict(cache.squads)
    squads[delta.team_id] = tuple(delta.players)
    state.analysis[delta.league] = replace(cache, squads=squads)
    state.rankings_for(delta.league).dirty = True


def _apply_cache_player_detail(state: AppState, delta: CachePlayerDetail) -> None:
    if delta.detail.is_stub():
        return
    cache = state.analysis_for(delta.league)
    players = dict(cache.players)
    players[delta.detail.id] = delta.detail
    state.analysis[delta.league] = replace(cache, players=players)
    state.rankings_for(delta.league).dirty = True


def _apply_set_rankings_dirty(state: AppState, delta: SetRankingsDirty) -> None:
    state.rankings_for(delta.league).dirty = True


def _apply_set_rankings(state: AppState, delta: SetRankings) -> None:
    cache = state.rankings_for(delta.league)
    cache.rows = list(delta.rows)
    cache.dirty = False


def _apply_set_placeholder(state: AppState, delta: SetPlaceholder) -> None:
    if delta.enabled:
        _insert_placeholder(state)
    else:
        _remove_placeholder(state)
    state.placeholder_enabled = delta.enabled


def _apply_select_league(state: AppState, delta: SelectLeague) -> None:
    state.league = delta.league
    if state.placeholder_enabled:
        state.matches = [
            placeholder_match(league_label(delta.league)) if m.id == PLACEHOLDER_MATCH_ID else m
            for m in state.matches
        ]


def _apply_export_started(state: AppState, delta: ExportStarted) -> None:
    state.export = ExportState(active=True, path=delta.path, message=f"Exporting {league_label(delta.league)}")


def _apply_export_finished(state: AppState, delta: ExportFinished) -> None:
    state.export = ExportState(
        active=True,
        done=True,
        path=delta.path,
        message=f"Done: {delta.teams} teams, {delta.players} players ({delta.errors} errors)",
        error_count=delta.errors,
    )
    state.push_log(f"[INFO] Export finished ({delta.errors} errors)")


def _apply_log(state: AppState, delta: Log) -> None:
    state.push_log(delta.message)


_HANDLERS: Dict[type, Callable[[AppState, Delta], None]] = {
    SetMatches: _apply_set_matches,
    UpsertMatch: _apply_upsert_match,
    SetMatchDetails: _apply_set_match_details,
    MergeMatchDetails: _apply_merge_match_details,
    SetCommentaryError: _apply_set_commentary_error,
    AddEvent: _apply_add_event,
    SetUpcoming: _apply_set_upcoming,
    SetAnalysis: _apply_set_analysis,
    CacheSquad: _apply_cache_squad,
    CachePlayerDetail: _apply_cache_player_detail,
    SetRankingsDirty: _apply_set_rankings_dirty,
    SetRankings: _apply_set_rankings,
    SetPlaceholder: _apply_set_placeholder,
    SelectLeague: _apply_select_league,
    ExportStarted: _apply_export_started,
    ExportFinished: _apply_export_finished,
    Log: _apply_log,
}


def apply_delta(state: AppState, delta: Delta) -> AppState:
    handler = _HANDLERS.get(type(delta))
    if handler is None:
        raise TypeError(f"not a delta: {delta!r}")
    handler(state, delta)
    return state
