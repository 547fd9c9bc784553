from __future__ import annotations

from pathlib import Path

import pytest

from pulse_terminal.config import Settings, default_cache_dir
from pulse_terminal.leagues import LEAGUES, allowed_league_ids, get_league, parse_ids
from pulse_terminal.main import build_parser, describe_detail, dump_match_details, settings_from_args
from pulse_terminal.models import PLACEHOLDER_MATCH_ID, placeholder_detail


def test_defaults_from_empty_env() -> None:
    settings = Settings.from_env({"XDG_CACHE_HOME": "/tmp/xdg"})
    assert settings.league == "premier_league"
    assert settings.live_interval_s == 15.0
    assert settings.upcoming_days == 7
    assert settings.http_timeout_s == 10.0
    assert settings.cache_dir == Path("/tmp/xdg/pulse_terminal")
    assert sorted(settings.league_ids) == sorted(l.upstream_id for l in LEAGUES.values())


def test_env_values_are_clamped() -> None:
    settings = Settings.from_env(
        {
            "PULSE_POLL_SECS": "1",
            "UPCOMING_POLL_SECS": "2",
            "UPCOMING_WINDOW_DAYS": "30",
            "PULSE_HTTP_TIMEOUT_SECS": "nope",
            "PULSE_LEAGUE_IDS": "47, 87;x",
        }
    )
    assert settings.live_interval_s == 5.0
    assert settings.upcoming_interval_s == 10.0
    assert settings.upcoming_days == 14
    assert settings.http_timeout_s == 10.0
    assert settings.league_ids == [47, 87]


def test_empty_league_override_means_no_filter() -> None:
    assert allowed_league_ids({"PULSE_LEAGUE_IDS": ""}) == []
    assert parse_ids("1,,2 3") == [1, 2, 3]


def test_default_cache_dir_falls_back_to_home() -> None:
    assert default_cache_dir({}) == Path.home() / ".cache" / "pulse_terminal"


def test_unknown_league_is_rejected() -> None:
    with pytest.raises(ValueError):
        get_league("mls")


def test_cli_overrides_settings(tmp_path: Path) -> None:
    args = build_parser().parse_args(["--league", "serie_a", "--tick-interval", "0.2", "--cache-dir", str(tmp_path)])
    settings = settings_from_args(args, Settings.from_env({}))
    assert settings.league == "serie_a"
    assert settings.tick_interval_s == 0.2
    assert settings.cache_dir == tmp_path


def test_dump_placeholder_details_is_offline(capsys: pytest.CaptureFixture[str]) -> None:
    class NoNetwork:
        def fetch_match_details(self, match_id: str, *, commentary: bool = True):
            raise AssertionError("network used")

    assert dump_match_details(NoNetwork(), PLACEHOLDER_MATCH_ID) == 0  # type: ignore[arg-type]
    out = capsys.readouterr().out
    assert "events: 4" in out
    assert "commentary_error: none" in out
    assert describe_detail(PLACEHOLDER_MATCH_ID, placeholder_detail())[5] == "lineups: 2"
