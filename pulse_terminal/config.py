from __future__ import annotations

import os
from dataclasses import dataclass, field
from pathlib import Path
from typing import List, Mapping, Optional

from .leagues import DEFAULT_LEAGUE, allowed_league_ids


def _env_float(env: Mapping[str, str], key: str, default: float, *, minimum: float, maximum: Optional[float] = None) -> float:
    raw = env.get(key)
    try:
        value = float(raw) if raw not in (None, "") else default
    except ValueError:
        value = default
    value = max(minimum, value)
    if maximum is not None:
        value = min(maximum, value)
    return value


def _env_int(env: Mapping[str, str], key: str, default: int, *, minimum: int, maximum: Optional[int] = None) -> int:
    return int(_env_float(env, key, default, minimum=minimum, maximum=maximum))


def default_cache_dir(env: Mapping[str, str] = os.environ) -> Path:
    base = env.get("XDG_CACHE_HOME", "").strip()
    if base:
        return Path(base) / "pulse_terminal"
    return Path.home() / ".cache" / "pulse_terminal"


@dataclass(frozen=True)
class Settings:
    league: str = DEFAULT_LEAGUE
    tick_interval_s: float = 0.9
    live_interval_s: float = 15.0
    minute_interval_s: float = 60.0
    jitter_interval_s: float = 0.9
    upcoming_interval_s: float = 60.0
    upcoming_days: int = 7
    detail_throttle_s: float = 5.0
    http_timeout_s: float = 10.0
    http_cache_ttl_s: int = 20
    event_chance: float = 0.12
    max_minute: int = 90
    league_ids: List[int] = field(default_factory=allowed_league_ids)
    cache_dir: Path = field(default_factory=default_cache_dir)

    @classmethod
    def from_env(cls, env: Mapping[str, str] = os.environ) -> "Settings":
        return cls(
            league=env.get("PULSE_LEAGUE", "").strip() or DEFAULT_LEAGUE,
            tick_interval_s=_env_float(env, "PULSE_TICK_SECS", 0.9, minimum=0.05),
            live_interval_s=_env_float(env, "PULSE_POLL_SECS", 15.0, minimum=5.0),
            minute_interval_s=_env_float(env, "PULSE_MINUTE_SECS", 60.0, minimum=1.0),
            jitter_interval_s=_env_float(env, "PULSE_JITTER_SECS", 0.9, minimum=0.1),
            upcoming_interval_s=_env_float(env, "UPCOMING_POLL_SECS", 60.0, minimum=10.0),
            upcoming_days=_env_int(env, "UPCOMING_WINDOW_DAYS", 7, minimum=1, maximum=14),
            detail_throttle_s=_env_float(env, "DETAILS_THROTTLE_SECS", 5.0, minimum=0.0),
            http_timeout_s=_env_float(env, "PULSE_HTTP_TIMEOUT_SECS", 10.0, minimum=1.0, maximum=60.0),
            http_cache_ttl_s=_env_int(env, "PULSE_HTTP_CACHE_SECS", 20, minimum=0),
            league_ids=allowed_league_ids(env),
            cache_dir=default_cache_dir(env),
        )
