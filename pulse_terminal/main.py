from __future__ import annotations

import argparse
import logging
import queue
import sys
import time
from dataclasses import replace
from pathlib import Path
from typing import List, Optional, TextIO

from .commentary import format_commentary_line
from .config import Settings
from .consumer import Consumer
from .errors import FetchError
from .fetch import BaseClient, FotmobClient, build_fetcher
from .leagues import LEAGUES, get_league
from .models import PLACEHOLDER_MATCH_ID, Match, MatchDetail, placeholder_detail
from .persist import CacheStore
from .state import AppState
from .worker import Worker


logger = logging.getLogger(__name__)

UPCOMING_EVERY_TICKS = 60


def build_parser() -> argparse.ArgumentParser:
    p = argparse.ArgumentParser(
        prog="pulse-terminal",
        description="Follow live football matches with heuristic win probabilities and role rankings",
    )
    p.add_argument("--league", default=None, choices=sorted(LEAGUES), help="League for analysis and rankings")
    p.add_argument("--placeholder", action="store_true", help="Show the synthetic demo match")
    p.add_argument("--ticks", type=int, default=None, help="Stop after this many consumer ticks (default: run until Ctrl-C)")
    p.add_argument("--tick-interval", type=float, default=None, help="Seconds between ticks (default: 0.9)")
    p.add_argument("--cache-dir", default=None, help="Cache directory (default: $XDG_CACHE_HOME/pulse_terminal)")
    p.add_argument("--log-level", default="WARNING", help="Logging level (default: WARNING)")
    p.add_argument(
        "--dump-match-details",
        metavar="ID",
        default=None,
        help="Fetch details for one match, print a summary and exit",
    )
    p.add_argument(
        "--export",
        metavar="PATH",
        nargs="?",
        const="",
        default=None,
        help="Export the league's teams, squads and rankings to JSON and exit (default: <cache-dir>/exports/)",
    )
    return p


def settings_from_args(args: argparse.Namespace, base: Optional[Settings] = None) -> Settings:
    settings = base or Settings.from_env()
    overrides = {}
    if args.league:
        overrides["league"] = args.league
    if args.tick_interval is not None:
        overrides["tick_interval_s"] = max(0.05, float(args.tick_interval))
        overrides["jitter_interval_s"] = max(0.05, float(args.tick_interval))
    if args.cache_dir:
        overrides["cache_dir"] = Path(args.cache_dir)
    return replace(settings, **overrides) if overrides else settings


def dump_match_details(client: BaseClient, match_id: str, out: TextIO = sys.stdout) -> int:
    if match_id == PLACEHOLDER_MATCH_ID:
        detail = placeholder_detail()
    else:
        try:
            detail = client.fetch_match_details(match_id)
        except FetchError as e:
            print(f"error: {e.describe()}", file=sys.stderr)
            return 1
    for line in describe_detail(match_id, detail):
        print(line, file=out)
    return 0


def export_league(settings: Settings, client: BaseClient, path: Optional[Path] = None, out: TextIO = sys.stdout) -> int:
    deltas: queue.Queue = queue.Queue()
    commands: queue.Queue = queue.Queue()
    state = AppState(league=settings.league)
    consumer = Consumer(state, deltas, commands, settings=settings)
    worker = Worker(client, deltas, commands, settings)

    target = consumer.request_export(path)
    while not commands.empty():
        worker.handle(commands.get_nowait())
    consumer.drain()

    for line in state.logs:
        print(line, file=out)
    print(f"{target}: {state.export.message}", file=out)
    return 0 if state.export.done and target.exists() else 1


def describe_detail(match_id: str, detail: MatchDetail) -> List[str]:
    lines = [
        f"match {match_id}: {detail.home_team or '?'} vs {detail.away_team or '?'}",
        f"events: {len(detail.events)}",
        f"commentary: {len(detail.commentary)}",
        f"commentary_error: {detail.commentary_error or 'none'}",
        f"stats: {len(detail.stats)}",
        f"lineups: {len(detail.lineups)}",
    ]
    lines.extend(f"  {format_commentary_line(entry)}" for entry in detail.commentary[:5])
    return lines


def format_match_line(m: Match) -> str:
    minute = f"{m.minute:>3}'" if m.is_live else " FT" if m.minute >= 90 else "  -"
    win = m.win
    arrow = "+" if win.delta_home > 0 else "-" if win.delta_home < 0 else " "
    return (
        f"{minute} {m.home:>18} {m.score_home}-{m.score_away} {m.away:<18} "
        f"H{win.p_home:5.1%}{arrow} D{win.p_draw:5.1%} A{win.p_away:5.1%} "
        f"[{win.quality} {win.confidence}]"
    )


def _board_key(state: AppState):
    return tuple((m.id, m.minute, m.score_home, m.score_away, m.is_live) for m in state.matches)


def run(settings: Settings, client: BaseClient, *, placeholder: bool, ticks: Optional[int], out: TextIO = sys.stdout) -> int:
    deltas: queue.Queue = queue.Queue()
    commands: queue.Queue = queue.Queue()
    state = AppState(league=settings.league)
    consumer = Consumer(state, deltas, commands, CacheStore.in_dir(settings.cache_dir), settings)
    worker = Worker(client, deltas, commands, settings)

    consumer.load_persisted()
    consumer.select_league(settings.league)
    if placeholder:
        consumer.toggle_placeholder()
    consumer.request_upcoming()

    logger.info("starting: league=%s leagues=%s cache=%s", settings.league, settings.league_ids, settings.cache_dir)
    worker.start()
    seen_logs = 0
    board = None
    tick = 0
    try:
        while ticks is None or tick < ticks:
            time.sleep(settings.tick_interval_s)
            consumer.drain()
            tick += 1
            if tick % UPCOMING_EVERY_TICKS == 0:
                consumer.request_upcoming()

            fresh = min(state.log_total - seen_logs, len(state.logs))
            for line in list(state.logs)[len(state.logs) - fresh:]:
                print(line, file=out)
            seen_logs = state.log_total

            key = _board_key(state)
            if key != board:
                board = key
                print(f"-- {len(state.live_matches())} live / {len(state.matches)} matches --", file=out)
                for m in state.matches:
                    print(format_match_line(m), file=out)
    except KeyboardInterrupt:
        pass
    finally:
        worker.stop()

    rankings = state.rankings.get(state.league)
    if rankings is not None and rankings.rows:
        print(f"-- {len(rankings.rows)} ranked players ({state.league}) --", file=out)
    return 0


def main(argv: list[str] | None = None) -> int:
    args = build_parser().parse_args(argv)
    logging.basicConfig(
        level=getattr(logging, str(args.log_level).upper(), logging.WARNING),
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )

    settings = settings_from_args(args)
    try:
        get_league(settings.league)
    except ValueError as e:
        print(f"error: {e}", file=sys.stderr)
        return 2

    fetcher = build_fetcher(settings.cache_dir, timeout_s=settings.http_timeout_s, cache_ttl_s=settings.http_cache_ttl_s)
    client = FotmobClient(fetcher)
    try:
        if args.dump_match_details:
            return dump_match_details(client, args.dump_match_details)
        if args.export is not None:
            return export_league(settings, client, Path(args.export) if args.export else None)
        return run(settings, client, placeholder=args.placeholder, ticks=args.ticks)
    finally:
        fetcher.close()


if __name__ == "__main__":
    raise SystemExit(main())
