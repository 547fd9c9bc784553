"""Presentation-side loop: the only writer of ``AppState``."""

from __future__ import annotations

import logging
import queue
import time
from pathlib import Path
from typing import Callable, Dict, List, Optional, Set

from .config import Settings
from .deltas import (
    ANALYSIS_DELTAS,
    SOURCE_LOCAL,
    Command,
    Delta,
    Export,
    FetchAnalysis,
    FetchMatchDetails,
    FetchMatchDetailsBasic,
    FetchUpcoming,
    SelectLeague,
    SetAnalysis,
    SetMatchDetails,
    SetPlaceholder,
    SetRankings,
)
from .leagues import get_league
from .models import PLACEHOLDER_MATCH_ID, placeholder_detail
from .persist import CacheStore
from .rankings import recompute_rankings
from .state import AppState, apply_delta


logger = logging.getLogger(__name__)


class Consumer:
    def __init__(
        self,
        state: AppState,
        deltas: "queue.Queue[Delta]",
        commands: "queue.Queue[Command]",
        store: Optional[CacheStore] = None,
        settings: Optional[Settings] = None,
        *,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self.state = state
        self.deltas = deltas
        self.commands = commands
        self.store = store
        self.settings = settings or Settings()
        self.clock = clock
        self._detail_requested_at: Dict[str, float] = {}

    def _send(self, command: Command) -> None:
        self.commands.put(command)

    # -- delta application ---------------------------------------------------

    def apply(self, delta: Delta) -> None:
        apply_delta(self.state, delta)
        if isinstance(delta, ANALYSIS_DELTAS):
            self.maybe_recompute(delta.league)

    def drain(self) -> int:
        """Apply every queued delta in arrival order; returns how many were applied."""
        applied = 0
        analysed: List[str] = []
        while True:
            try:
                delta = self.deltas.get_nowait()
            except queue.Empty:
                break
            self.apply(delta)
            applied += 1
            if isinstance(delta, SetAnalysis):
                analysed.append(delta.league)
        # Once per tick as well, so a flag set by anything else is never stranded.
        self.maybe_recompute(self.state.league)
        for league in dict.fromkeys(analysed):
            self._save(league)
        return applied

    def maybe_recompute(self, league: str) -> bool:
        rankings = self.state.rankings.get(league)
        if rankings is None or not rankings.dirty:
            return False
        return recompute_rankings(self.state, league)

    # -- persistence -----------------------------------------------------------

    def load_persisted(self) -> Set[str]:
        if self.store is None:
            return set()
        loaded = set()
        for league, entry in self.store.load().items():
            if entry.analysis.is_empty:
                continue
            apply_delta(self.state, SetAnalysis(league, entry.analysis))
            if entry.rankings:
                apply_delta(self.state, SetRankings(league, tuple(entry.rankings)))
            loaded.add(league)
        logger.info("loaded cached analysis for %d league(s)", len(loaded))
        return loaded

    def _save(self, league: str) -> None:
        if self.store is None:
            return
        rows = self.state.rankings_for(league).rows
        self.store.save(league, self.state.analysis_for(league), rows)

    # -- requests ----------------------------------------------------------------

    def request_details(self, match_id: str, *, basic: bool = False) -> bool:
        """Ask the worker for match details; returns False when nothing was sent."""
        if match_id == PLACEHOLDER_MATCH_ID:
            if self.state.placeholder_enabled and match_id not in self.state.match_detail:
                self.apply(SetMatchDetails(match_id, placeholder_detail(), source=SOURCE_LOCAL))
            return False
        now = self.clock()
        last = self._detail_requested_at.get(match_id)
        if last is not None and now - last < self.settings.detail_throttle_s:
            return False
        self._detail_requested_at[match_id] = now
        self._send(FetchMatchDetailsBasic(match_id) if basic else FetchMatchDetails(match_id))
        return True

    def request_upcoming(self) -> None:
        self._send(FetchUpcoming(days=self.settings.upcoming_days))

    def request_analysis(self, league: Optional[str] = None) -> None:
        self._send(FetchAnalysis(league or self.state.league))

    def select_league(self, league: str) -> None:
        get_league(league)
        self.apply(SelectLeague(league))
        if self.state.analysis_for(league).is_empty:
            self.request_analysis(league)

    def request_export(self, path: Optional[Path] = None) -> Path:
        league = self.state.league
        if path is None:
            stamp = time.strftime("%Y%m%d-%H%M%S")
            path = self.settings.cache_dir / "exports" / f"{league}-{stamp}.json"
        self._send(Export(league=league, path=str(path)))
        return path

    def toggle_placeholder(self) -> bool:
        enabled = not self.state.placeholder_enabled
        self.apply(SetPlaceholder(enabled))
        return enabled
