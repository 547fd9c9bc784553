from __future__ import annotations

import json
from datetime import date
from pathlib import Path
from typing import Callable, List

import httpx
import pytest

from pulse_terminal.errors import FetchError
from pulse_terminal.fetch import DiskCache, Fetcher, FotmobClient, RateLimiter


DETAILS = {
    "general": {"homeTeam": {"name": "Arsenal"}, "awayTeam": {"name": "Chelsea"}},
    "content": {"liveticker": {"langs": "en", "teams": ["Arsenal", "Chelsea"]}},
}

TICKER = {
    "events": [
        {"text": "Kick-off", "elapsed": 1},
        {"text": "Substitution, Chelsea.", "elapsed": -1, "teamEvent": "away"},
    ]
}


def make_client(tmp_path: Path, handler: Callable[[httpx.Request], httpx.Response], ttl_s: int = 0) -> FotmobClient:
    fetcher = Fetcher(
        cache=DiskCache(tmp_path / "http", ttl_s=ttl_s),
        rate_limiter=RateLimiter(0.0),
        transport=httpx.MockTransport(handler),
    )
    return FotmobClient(fetcher, today=lambda: date(2026, 10, 19))


def test_match_details_fold_in_commentary(tmp_path: Path) -> None:
    seen: List[httpx.URL] = []

    def handler(request: httpx.Request) -> httpx.Response:
        seen.append(request.url)
        if request.url.path == "/api/data/matchDetails":
            return httpx.Response(200, json=DETAILS)
        return httpx.Response(200, json=TICKER)

    detail = make_client(tmp_path, handler).fetch_match_details("4506263")

    assert detail.commentary_error is None
    assert [e.minute for e in detail.commentary] == [1, None]
    assert detail.commentary[1].team == "Chelsea"
    ltc_url = seen[1].params["ltcUrl"]
    assert ltc_url == "http://data.fotmob.com/webcl/ltc/gsm/4506263_en.json.gz"
    assert json.loads(seen[1].params["teams"]) == ["Arsenal", "Chelsea"]


def test_ticker_failure_keeps_detail(tmp_path: Path) -> None:
    def handler(request: httpx.Request) -> httpx.Response:
        if request.url.path == "/api/data/matchDetails":
            return httpx.Response(200, json=DETAILS)
        return httpx.Response(503, text="upstream down")

    detail = make_client(tmp_path, handler).fetch_match_details("1")
    assert detail.home_team == "Arsenal"
    assert detail.commentary == ()
    assert detail.commentary_error and "http 503" in detail.commentary_error


def test_basic_details_skip_ticker(tmp_path: Path) -> None:
    paths: List[str] = []

    def handler(request: httpx.Request) -> httpx.Response:
        paths.append(request.url.path)
        return httpx.Response(200, json=DETAILS)

    make_client(tmp_path, handler).fetch_match_details("1", commentary=False)
    assert paths == ["/api/data/matchDetails"]


def test_bad_status_and_timeout_raise_fetch_error(tmp_path: Path) -> None:
    def not_found(request: httpx.Request) -> httpx.Response:
        return httpx.Response(404, text="missing")

    with pytest.raises(FetchError) as excinfo:
        make_client(tmp_path, not_found).fetch_live_matches([47])
    assert excinfo.value.cause == "http 404" and excinfo.value.preview == "missing"

    def slow(request: httpx.Request) -> httpx.Response:
        raise httpx.ReadTimeout("too slow", request=request)

    with pytest.raises(FetchError) as excinfo:
        make_client(tmp_path, slow).fetch_live_matches([47])
    assert excinfo.value.cause.startswith("timed out")


def test_live_matches_filtered_by_league(tmp_path: Path) -> None:
    payload = {
        "leagues": [
            {"id": 47, "name": "Premier League", "matches": [{"id": 1, "home": {"name": "A"}, "away": {"name": "B"}, "status": {}}]},
            {"id": 999, "name": "Other", "matches": [{"id": 2, "home": {"name": "C"}, "away": {"name": "D"}, "status": {}}]},
        ]
    }

    def handler(request: httpx.Request) -> httpx.Response:
        assert request.url.params["date"] == "20261019"
        return httpx.Response(200, json=payload)

    client = make_client(tmp_path, handler)
    assert [r.id for r in client.fetch_live_matches([47])] == ["1"]
    assert [r.id for r in client.fetch_live_matches([])] == ["1", "2"]


def test_upcoming_window_spans_days(tmp_path: Path) -> None:
    dates: List[str] = []

    def handler(request: httpx.Request) -> httpx.Response:
        day = request.url.params["date"]
        dates.append(day)
        fixture = {"id": int(day), "home": {"name": "A"}, "away": {"name": "B"}, "status": {"utcTime": f"{day[:4]}-{day[4:6]}-{day[6:]}T12:00:00Z"}}
        return httpx.Response(200, json={"leagues": [{"id": 47, "name": "Premier League", "matches": [fixture]}]})

    upcoming = make_client(tmp_path, handler).fetch_upcoming(3, [47])
    assert dates == ["20261019", "20261020", "20261021"]
    assert [u.kickoff for u in upcoming] == ["2026-10-19T12:00", "2026-10-20T12:00", "2026-10-21T12:00"]


def test_disk_cache_serves_repeat_requests(tmp_path: Path) -> None:
    calls: List[int] = []

    def handler(request: httpx.Request) -> httpx.Response:
        calls.append(1)
        return httpx.Response(200, json={"leagues": []})

    client = make_client(tmp_path, handler, ttl_s=60)
    client.fetch_live_matches([])
    client.fetch_live_matches([])
    assert len(calls) == 1


def test_rate_limiter_spaces_requests_per_host() -> None:
    now = [100.0]
    slept: List[float] = []

    def sleep(seconds: float) -> None:
        slept.append(seconds)
        now[0] += seconds

    limiter = RateLimiter(0.5, clock=lambda: now[0], sleep=sleep)
    assert limiter.wait("www.fotmob.com") == 0.0
    now[0] += 0.2
    assert limiter.wait("www.fotmob.com") == pytest.approx(0.3)
    assert limiter.wait("data.fotmob.com") == 0.0
    assert slept == [pytest.approx(0.3)]


def test_request_key_ignores_param_order_but_not_language() -> None:
    a = Fetcher.request_key("https://www.fotmob.com/api/playerData", {"id": 1, "x": "y"})
    b = Fetcher.request_key("https://www.fotmob.com/api/playerData", {"x": "y", "id": 1})
    c = Fetcher.request_key("https://www.fotmob.com/api/playerData", {"id": 1, "x": "y"}, {"Accept-Language": "de"})
    assert a == b
    assert a != c
