"""Background worker: owns every network call and timer.

The worker never touches ``AppState``. It keeps its own copy of the last
live snapshot (to compute probability deltas and spot goals) and talks to
the consumer only through the two queues.
"""

from __future__ import annotations

import logging
import queue
import random
import threading
import time
from collections import deque
from dataclasses import replace
from pathlib import Path
from typing import Callable, Deque, Dict, List, Optional, Tuple

from .config import Settings
from .deltas import (
    SOURCE_LOCAL,
    AddEvent,
    CachePlayerDetail,
    CacheSquad,
    Command,
    Delta,
    Export,
    ExportFinished,
    ExportStarted,
    FetchAnalysis,
    FetchMatchDetails,
    FetchMatchDetailsBasic,
    FetchUpcoming,
    Log,
    MergeMatchDetails,
    SetAnalysis,
    SetCommentaryError,
    SetMatchDetails,
    SetMatches,
    SetUpcoming,
    UpsertMatch,
)
from .errors import FetchError
from .fetch import BaseClient
from .models import (
    EVENT_CARD,
    EVENT_GOAL,
    EVENT_SHOT,
    EVENT_SUB,
    PLACEHOLDER_MATCH_ID,
    AnalysisCache,
    Event,
    Match,
    placeholder_detail,
)
from .parse import MatchRow
from .persist import export_analysis
from .rankings import compute_role_rankings
from .winprob import DEFAULT_PARAMS, ProbabilityParams, jitter, seed_win_prob


logger = logging.getLogger(__name__)

PREFETCH_PER_TICK = 3

_RANDOM_EVENTS = (
    (EVENT_SHOT, "Shot on target"),
    (EVENT_CARD, "Yellow card"),
    (EVENT_SUB, "Substitution"),
)


def merge_live_rows(rows: List[MatchRow], previous: Dict[str, Match], params: ProbabilityParams = DEFAULT_PARAMS) -> Tuple[List[Match], List[Delta]]:
    """Turn fresh live rows into matches, carrying probabilities over from ``previous``.

    Returns the new snapshot and the extra deltas (goal events, alerts) that
    must be emitted before it.
    """
    out: List[Match] = []
    extra: List[Delta] = []
    for row in rows:
        prev = previous.get(row.id)
        is_live = row.is_live
        if is_live:
            minute = row.minute if row.minute is not None else (prev.minute if prev else 1)
        elif row.finished:
            minute = 90
        else:
            minute = 0

        scored = prev is not None and (row.home_score, row.away_score) != (prev.score_home, prev.score_away)
        if prev is None or scored or row.finished or prev.is_live != is_live:
            win = seed_win_prob(row.home_score, row.away_score, is_live, finished=row.finished, params=params)
        else:
            win = prev.win
        win = replace(win, delta_home=win.p_home - prev.win.p_home if prev else 0.0)

        if scored:
            scorer = row.home if row.home_score > prev.score_home else row.away
            extra.append(AddEvent(row.id, Event(minute=minute, kind=EVENT_GOAL, team=scorer, description="Goal")))
            extra.append(Log(f"[ALERT] Goal: {scorer} {row.home_score}-{row.away_score} {row.away}"))

        out.append(
            Match(
                id=row.id,
                league_id=row.league_id,
                league_name=row.league_name,
                home=row.home,
                away=row.away,
                minute=minute,
                score_home=row.home_score,
                score_away=row.away_score,
                win=win,
                is_live=is_live,
            )
        )
    return out, extra


class Worker:
    def __init__(
        self,
        client: BaseClient,
        deltas: "queue.Queue[Delta]",
        commands: "queue.Queue[Command]",
        settings: Optional[Settings] = None,
        *,
        clock: Callable[[], float] = time.monotonic,
        rng: Optional[random.Random] = None,
        params: ProbabilityParams = DEFAULT_PARAMS,
    ) -> None:
        self.client = client
        self.deltas = deltas
        self.commands = commands
        self.settings = settings or Settings()
        self.clock = clock
        self.rng = rng or random.Random()
        self.params = params

        self._matches: Dict[str, Match] = {}
        self._last_live: Optional[float] = None
        self._last_minute: Optional[float] = None
        self._last_jitter: Optional[float] = None
        self._last_upcoming: Optional[float] = None
        self._prefetch: Deque[Tuple[str, str, int]] = deque()
        self._stop = threading.Event()
        self._thread: Optional[threading.Thread] = None

    # -- lifecycle ---------------------------------------------------------

    def start(self) -> None:
        if self._thread is not None:
            return
        self._stop.clear()
        self._thread = threading.Thread(target=self._run, name="pulse-worker", daemon=True)
        self._thread.start()

    def stop(self, timeout: float = 2.0) -> None:
        self._stop.set()
        if self._thread is not None:
            self._thread.join(timeout)
            self._thread = None

    def _run(self) -> None:
        logger.info("worker started (tick every %.2fs)", self.settings.tick_interval_s)
        while not self._stop.is_set():
            try:
                self.tick()
            except Exception:
                logger.exception("worker tick failed")
            self._stop.wait(self.settings.tick_interval_s)
        logger.info("worker stopped")

    def _emit(self, delta: Delta) -> None:
        self.deltas.put(delta)

    def _warn(self, message: str) -> None:
        logger.warning("%s", message)
        self._emit(Log(f"[WARN] {message}"))

    # -- tick ----------------------------------------------------------------

    def tick(self) -> None:
        now = self.clock()
        self._drain_commands(now)

        if self._last_live is None or now - self._last_live >= self.settings.live_interval_s:
            self._last_live = now
            self.refresh_live()

        if self._last_minute is None:
            self._last_minute = now
        elif now - self._last_minute >= self.settings.minute_interval_s:
            self._last_minute = now
            self._advance_minutes()
        elif self._last_jitter is None or now - self._last_jitter >= self.settings.jitter_interval_s:
            self._last_jitter = now
            self._jitter_one()

        self._run_prefetch()

    def _drain_commands(self, now: float) -> None:
        while True:
            try:
                command = self.commands.get_nowait()
            except queue.Empty:
                return
            self.handle(command, now)

    def handle(self, command: Command, now: Optional[float] = None) -> None:
        now = self.clock() if now is None else now
        if isinstance(command, (FetchMatchDetails, FetchMatchDetailsBasic)):
            self._fetch_details(command.match_id, full=isinstance(command, FetchMatchDetails))
        elif isinstance(command, FetchUpcoming):
            self._fetch_upcoming(command.days, now)
        elif isinstance(command, FetchAnalysis):
            self._fetch_analysis(command.league)
        elif isinstance(command, Export):
            self._export(command.league, Path(command.path))
        else:
            raise TypeError(f"not a command: {command!r}")

    # -- live list -------------------------------------------------------------

    def refresh_live(self) -> None:
        try:
            rows = self.client.fetch_live_matches(self.settings.league_ids)
        except FetchError as e:
            self._warn(f"Live fetch error: {e.describe()}")
            return
        matches, extra = merge_live_rows(rows, self._matches, self.params)
        for delta in extra:
            self._emit(delta)
        self._matches = {m.id: m for m in matches}
        self._emit(SetMatches(tuple(matches)))
        logger.debug("live refresh: %d matches", len(matches))

    def _advance_minutes(self) -> None:
        for match_id, m in list(self._matches.items()):
            if match_id == PLACEHOLDER_MATCH_ID or not m.is_live or m.minute >= self.settings.max_minute:
                continue
            bumped = replace(m, minute=m.minute + 1)
            self._matches[match_id] = bumped
            self._emit(UpsertMatch(bumped))

    def _jitter_one(self) -> None:
        if not self._matches:
            return
        m = self._matches[self.rng.choice(sorted(self._matches))]
        if not m.is_live:
            return
        moved = replace(m, win=jitter(m.win, self.rng, self.params))
        self._matches[m.id] = moved
        self._emit(UpsertMatch(moved))

        if self.rng.random() < self.settings.event_chance:
            kind, description = self.rng.choice(_RANDOM_EVENTS)
            self._emit(AddEvent(m.id, Event(minute=m.minute, kind=kind, team=m.home, description=description)))
            if kind == EVENT_CARD:
                self._emit(Log(f"[INFO] Card: {m.home} {m.score_home}-{m.score_away} {m.away}"))

    # -- commands ------------------------------------------------------------

    def _fetch_details(self, match_id: str, *, full: bool) -> None:
        if match_id == PLACEHOLDER_MATCH_ID:
            # The synthetic match is answered locally and never hits the network.
            self._emit(SetMatchDetails(match_id, placeholder_detail(), source=SOURCE_LOCAL))
            return
        try:
            detail = self.client.fetch_match_details(match_id, commentary=full)
        except FetchError as e:
            self._warn(f"Match details error: {e.describe()}")
            self._emit(SetCommentaryError(match_id, e.describe()))
            return
        if full:
            self._emit(SetMatchDetails(match_id, detail))
        else:
            self._emit(MergeMatchDetails(match_id, detail))
        if detail.commentary_error:
            logger.info("commentary for %s degraded: %s", match_id, detail.commentary_error)

    def _fetch_upcoming(self, days: int, now: float) -> None:
        if self._last_upcoming is not None and now - self._last_upcoming < self.settings.upcoming_interval_s:
            logger.debug("upcoming fetch throttled")
            return
        self._last_upcoming = now
        try:
            upcoming = self.client.fetch_upcoming(days, self.settings.league_ids)
        except FetchError as e:
            self._warn(f"Upcoming fetch error: {e.describe()}")
            return
        self._emit(SetUpcoming(tuple(upcoming)))

    def _fetch_analysis(self, league: str) -> None:
        try:
            cache = self.client.fetch_analysis(league)
        except FetchError as e:
            self._warn(f"Analysis fetch error ({league}): {e.describe()}")
            return
        self._emit(SetAnalysis(league, cache))
        # A newer league request supersedes whatever was still queued.
        self._prefetch = deque(("squad", league, t.id) for t in cache.teams)
        logger.info("analysis for %s: %d teams, prefetching squads", league, len(cache.teams))

    def _run_prefetch(self) -> None:
        for _ in range(min(PREFETCH_PER_TICK, len(self._prefetch))):
            kind, league, ident = self._prefetch.popleft()
            if kind == "squad":
                try:
                    players = self.client.fetch_team_squad(ident)
                except FetchError as e:
                    self._warn(f"Squad fetch error ({ident}): {e.describe()}")
                    continue
                self._emit(CacheSquad(league, ident, tuple(players)))
                self._prefetch.extend(("player", league, p.id) for p in players)
            else:
                try:
                    detail = self.client.fetch_player_detail(ident)
                except FetchError as e:
                    logger.debug("player %s prefetch failed: %s", ident, e.describe())
                    continue
                self._emit(CachePlayerDetail(league, detail))

    def _export(self, league: str, path: Path) -> None:
        self._emit(ExportStarted(str(path), league))
        errors = 0
        try:
            cache = self.client.fetch_analysis(league)
        except FetchError as e:
            self._warn(f"Export failed ({league}): {e.describe()}")
            self._emit(ExportFinished(str(path), 0, 0, 1))
            return

        squads = {}
        players = {}
        for team in cache.teams:
            try:
                squad = tuple(self.client.fetch_team_squad(team.id))
            except FetchError as e:
                logger.warning("export: squad %s failed: %s", team.id, e.describe())
                errors += 1
                continue
            squads[team.id] = squad
            for sp in squad:
                try:
                    players[sp.id] = self.client.fetch_player_detail(sp.id)
                except FetchError as e:
                    logger.debug("export: player %s failed: %s", sp.id, e.describe())
                    errors += 1
        full = AnalysisCache(teams=cache.teams, squads=squads, players=players)

        try:
            teams, written = export_analysis(path, league, full, compute_role_rankings(full))
        except OSError as e:
            self._warn(f"Export write failed: {e}")
            self._emit(ExportFinished(str(path), 0, 0, errors + 1))
            return
        self._emit(ExportFinished(str(path), teams, written, errors))
