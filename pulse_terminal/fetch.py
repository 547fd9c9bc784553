from __future__ import annotations

import hashlib
import json
import logging
import random
import time
from dataclasses import dataclass, replace
from datetime import date, datetime, timedelta, timezone
from pathlib import Path
from typing import Any, Callable, Dict, List, Optional, Sequence

import httpx

from .commentary import parse_commentary, preview
from .errors import FetchError
from .leagues import get_league
from .models import AnalysisCache, MatchDetail, PlayerDetail, SquadPlayer, UpcomingMatch
from .parse import (
    MatchRow,
    load_json,
    parse_match_details_value,
    parse_matches_json,
    parse_player_json,
    parse_squad_json,
    parse_team_analysis_json,
    parse_upcoming_json,
    ticker_request,
)


logger = logging.getLogger(__name__)

DEFAULT_USER_AGENT = (
    "Mozilla/5.0 (Windows NT 10.0; Win64; x64) "
    "AppleWebKit/537.36 (KHTML, like Gecko) "
    "Chrome/120.0.0.0 Safari/537.36 pulse-terminal/0.1"
)

CACHE_VERSION = 1


@dataclass
class RetryConfig:
    max_attempts: int = 1
    base_delay_s: float = 0.3
    max_delay_s: float = 5.0


class RateLimiter:
    """Spaces requests to the same upstream host; FotMob throttles bursts."""

    def __init__(
        self,
        min_interval_s: float = 0.2,
        *,
        clock: Callable[[], float] = time.monotonic,
        sleep: Callable[[float], None] = time.sleep,
    ) -> None:
        self.min_interval_s = float(min_interval_s)
        self.clock = clock
        self.sleep = sleep
        self._next_by_host: Dict[str, float] = {}

    def wait(self, host: str) -> float:
        """Block until ``host`` may be hit again; returns the seconds slept."""
        now = self.clock()
        pause = max(0.0, self._next_by_host.get(host, now) - now)
        if pause > 0:
            self.sleep(pause)
        self._next_by_host[host] = now + pause + self.min_interval_s
        return pause


class DiskCache:
    """Short-lived response cache; a disabled cache (ttl 0) never touches disk."""

    def __init__(self, cache_dir: Path, ttl_s: int = 20) -> None:
        self.cache_dir = cache_dir
        self.ttl_s = int(ttl_s)
        if self.enabled:
            self.cache_dir.mkdir(parents=True, exist_ok=True)

    @property
    def enabled(self) -> bool:
        return self.ttl_s > 0

    def _path_for_key(self, key: str) -> Path:
        return self.cache_dir / f"{key}.json"

    def get(self, key: str) -> Optional[str]:
        if not self.enabled:
            return None
        path = self._path_for_key(key)
        if not path.exists():
            return None
        try:
            payload = json.loads(path.read_text(encoding="utf-8"))
        except (OSError, ValueError):
            return None
        if not isinstance(payload, dict) or payload.get("v") != CACHE_VERSION:
            return None
        ts = payload.get("ts")
        if not isinstance(ts, (int, float)):
            return None
        if (time.time() - float(ts)) > self.ttl_s:
            return None
        body = payload.get("body")
        return body if isinstance(body, str) else None

    def set(self, key: str, body: str) -> None:
        if not self.enabled:
            return
        payload = {"v": CACHE_VERSION, "ts": time.time(), "body": body}
        try:
            self._path_for_key(key).write_text(json.dumps(payload), encoding="utf-8")
        except OSError as e:
            logger.debug("http cache write failed for %s: %s", key, e)


class Fetcher:
    def __init__(
        self,
        *,
        cache: DiskCache,
        rate_limiter: RateLimiter,
        retry: RetryConfig | None = None,
        user_agent: str = DEFAULT_USER_AGENT,
        timeout_s: float = 10.0,
        transport: httpx.BaseTransport | None = None,
    ) -> None:
        self.cache = cache
        self.rate_limiter = rate_limiter
        self.retry = retry or RetryConfig()
        self.client = httpx.Client(
            timeout=timeout_s,
            headers={"User-Agent": user_agent, "Accept": "application/json"},
            follow_redirects=True,
            transport=transport,
        )

    def close(self) -> None:
        self.client.close()

    @staticmethod
    def request_key(url: str, params: Optional[Dict[str, Any]] = None, headers: Optional[Dict[str, str]] = None) -> str:
        # Player payloads are localised, so the language is part of the identity.
        target = httpx.URL(url, params=sorted((params or {}).items()) or None)
        lang = (headers or {}).get("Accept-Language", "")
        return hashlib.sha256(f"{target}#{lang}".encode("utf-8")).hexdigest()

    def _backoff(self, attempt: int) -> None:
        delay = min(self.retry.max_delay_s, self.retry.base_delay_s * (2 ** (attempt - 1)))
        time.sleep(delay * random.uniform(0.8, 1.2))

    def get_text(
        self,
        url: str,
        *,
        params: Optional[Dict[str, Any]] = None,
        headers: Optional[Dict[str, str]] = None,
    ) -> str:
        """GET ``url`` and return the body, raising ``FetchError`` on any failure."""
        host = httpx.URL(url).host or ""
        key = self.request_key(url, params, headers)
        cached = self.cache.get(key)
        if cached is not None:
            return cached

        attempt = 0
        while True:
            attempt += 1
            self.rate_limiter.wait(host)
            try:
                resp = self.client.get(url, params=params, headers=headers)
            except httpx.TimeoutException as e:
                if attempt >= self.retry.max_attempts:
                    raise FetchError(f"timed out: {e}", target=url) from e
                self._backoff(attempt)
                continue
            except httpx.RequestError as e:
                if attempt >= self.retry.max_attempts:
                    raise FetchError(f"request failed: {e}", target=url) from e
                self._backoff(attempt)
                continue

            if resp.status_code == 429 or 500 <= resp.status_code <= 599:
                if attempt < self.retry.max_attempts:
                    self._backoff(attempt)
                    continue
            if resp.status_code >= 400:
                raise FetchError(f"http {resp.status_code}", target=url, preview=preview(resp.text))

            body = resp.text
            self.cache.set(key, body)
            return body


def build_fetcher(cache_dir: Path, *, timeout_s: float, cache_ttl_s: int) -> Fetcher:
    cache = DiskCache(cache_dir / "http", ttl_s=cache_ttl_s)
    return Fetcher(cache=cache, rate_limiter=RateLimiter(0.2), retry=RetryConfig(), timeout_s=timeout_s)


class BaseClient:
    """The data collaborators the worker talks to. Every method raises ``FetchError`` on failure."""

    def fetch_live_matches(self, league_ids: Sequence[int]) -> List[MatchRow]:
        raise NotImplementedError

    def fetch_upcoming(self, days: int, league_ids: Sequence[int] = ()) -> List[UpcomingMatch]:
        raise NotImplementedError

    def fetch_match_details(self, match_id: str, *, commentary: bool = True) -> MatchDetail:
        raise NotImplementedError

    def fetch_analysis(self, league: str) -> AnalysisCache:
        raise NotImplementedError

    def fetch_team_squad(self, team_id: int) -> List[SquadPlayer]:
        raise NotImplementedError

    def fetch_player_detail(self, player_id: int) -> PlayerDetail:
        raise NotImplementedError


class FotmobClient(BaseClient):
    """Best-effort client for the public FotMob JSON endpoints."""

    API_BASE = "https://www.fotmob.com/api"
    LTC_BASE = "http://data.fotmob.com/webcl/ltc/gsm"

    def __init__(self, fetcher: Fetcher, *, today: Optional[Callable[[], date]] = None) -> None:
        self.fetcher = fetcher
        self._today = today or (lambda: datetime.now(timezone.utc).date())

    def _get(self, path: str, params: Dict[str, Any], *, headers: Optional[Dict[str, str]] = None) -> str:
        return self.fetcher.get_text(f"{self.API_BASE}{path}", params=params, headers=headers)

    def fetch_live_matches(self, league_ids: Sequence[int]) -> List[MatchRow]:
        raw = self._get("/matches", {"date": self._today().strftime("%Y%m%d")})
        rows = parse_matches_json(raw)
        if league_ids:
            allowed = set(league_ids)
            rows = [r for r in rows if r.league_id in allowed]
        return rows

    def fetch_upcoming(self, days: int, league_ids: Sequence[int] = ()) -> List[UpcomingMatch]:
        start = self._today()
        out: List[UpcomingMatch] = []
        seen = set()
        allowed = set(league_ids)
        for offset in range(max(1, days)):
            day = start + timedelta(days=offset)
            for u in parse_upcoming_json(self._get("/matches", {"date": day.strftime("%Y%m%d")})):
                if u.id in seen or (allowed and u.league_id not in allowed):
                    continue
                seen.add(u.id)
                out.append(u)
        out.sort(key=lambda u: (u.kickoff, u.league_name, u.home))
        return out

    def fetch_match_details(self, match_id: str, *, commentary: bool = True) -> MatchDetail:
        root = load_json(self._get("/data/matchDetails", {"matchId": match_id}), "matchDetails")
        detail = parse_match_details_value(root)
        ticker = ticker_request(root) if commentary else None
        if ticker is None:
            return detail
        lang, teams = ticker
        try:
            raw = self._get(
                "/data/ltc",
                {"ltcUrl": f"{self.LTC_BASE}/{match_id}_{lang}.json.gz", "teams": json.dumps(teams)},
            )
        except FetchError as e:
            # Lineups and stats are still good; only the ticker is missing.
            return replace(detail, commentary_error=f"ltc request failed: {e.describe()}")
        batch = parse_commentary(raw, teams)
        return replace(detail, commentary=batch.entries, commentary_error=batch.error)

    def fetch_analysis(self, league: str) -> AnalysisCache:
        upstream_id = get_league(league).upstream_id
        teams = parse_team_analysis_json(self._get("/leagues", {"id": upstream_id}))
        return AnalysisCache(teams=tuple(teams))

    def fetch_team_squad(self, team_id: int) -> List[SquadPlayer]:
        return parse_squad_json(self._get("/teams", {"id": team_id}))

    def fetch_player_detail(self, player_id: int) -> PlayerDetail:
        return parse_player_json(
            self._get("/playerData", {"id": player_id}, headers={"Accept-Language": "en-GB,en;q=0.9"})
        )
