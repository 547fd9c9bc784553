from __future__ import annotations

import json
import queue
from pathlib import Path

from pulse_terminal.consumer import Consumer
from pulse_terminal.deltas import SetAnalysis
from pulse_terminal.models import AnalysisCache, PlayerDetail, SquadPlayer, TeamAnalysis
from pulse_terminal.persist import CACHE_FILE_VERSION, CacheStore, export_analysis
from pulse_terminal.rankings import compute_role_rankings
from pulse_terminal.state import AppState


def create_test_cache() -> AnalysisCache:
    team = TeamAnalysis(id=10, name="Arsenal", rank=1, points=22, updated="2026/2027")
    squad = (
        SquadPlayer(id=1, name="Saka", role="Attacker", club="Arsenal", age=25, shirt_number=7),
        SquadPlayer(id=2, name="Odegaard", role="Midfielder", club="Arsenal"),
    )
    players = {
        1: PlayerDetail(id=1, name="Saka", team="Arsenal", position="Right Winger", minutes=900.0, rating=7.6, stats={"goals": 6.0, "xg": 5.1}),
    }
    return AnalysisCache(teams=(team,), squads={10: squad}, players=players)


def test_save_and_load_round_trip(tmp_path: Path) -> None:
    store = CacheStore.in_dir(tmp_path)
    cache = create_test_cache()
    rows = compute_role_rankings(cache)

    assert store.save("premier_league", cache, rows) is True
    loaded = store.load()

    assert set(loaded) == {"premier_league"}
    assert loaded["premier_league"].analysis == cache
    assert loaded["premier_league"].rankings == rows
    raw = json.loads((tmp_path / "cache.json").read_text(encoding="utf-8"))
    assert raw["version"] == CACHE_FILE_VERSION
    assert not (tmp_path / "cache.json.tmp").exists()


def test_save_keeps_other_leagues(tmp_path: Path) -> None:
    store = CacheStore.in_dir(tmp_path)
    store.save("premier_league", create_test_cache(), [])
    store.save("la_liga", create_test_cache(), [])
    assert set(store.load()) == {"premier_league", "la_liga"}


def test_corrupt_or_foreign_cache_loads_empty(tmp_path: Path) -> None:
    path = tmp_path / "cache.json"
    path.write_text("{not json", encoding="utf-8")
    assert CacheStore(path).load() == {}

    path.write_text(json.dumps({"version": 99, "leagues": {"x": {}}}), encoding="utf-8")
    assert CacheStore(path).load() == {}

    path.write_text(json.dumps({"version": CACHE_FILE_VERSION, "leagues": {"bad": {"analysis": {"teams": [{"nope": 1}]}}}}), encoding="utf-8")
    assert CacheStore(path).load() == {}


def test_cache_with_non_object_leagues_is_replaced(tmp_path: Path) -> None:
    path = tmp_path / "cache.json"
    path.write_text(json.dumps({"version": CACHE_FILE_VERSION, "leagues": ["oops"]}), encoding="utf-8")
    store = CacheStore(path)
    assert store.load() == {}

    consumer = Consumer(AppState(), queue.Queue(), queue.Queue(), store)
    assert consumer.load_persisted() == set()
    consumer.deltas.put(SetAnalysis("premier_league", create_test_cache()))
    consumer.drain()

    raw = json.loads(path.read_text(encoding="utf-8"))
    assert list(raw["leagues"]) == ["premier_league"]
    assert set(store.load()) == {"premier_league"}


def test_missing_cache_loads_empty(tmp_path: Path) -> None:
    assert CacheStore(tmp_path / "missing" / "cache.json").load() == {}


def test_save_failure_is_not_fatal(tmp_path: Path) -> None:
    blocker = tmp_path / "file"
    blocker.write_text("x", encoding="utf-8")
    store = CacheStore(blocker / "cache.json")
    assert store.save("premier_league", create_test_cache(), []) is False


def test_consumer_persists_on_analysis_and_restores(tmp_path: Path) -> None:
    deltas: queue.Queue = queue.Queue()
    commands: queue.Queue = queue.Queue()
    store = CacheStore.in_dir(tmp_path)
    consumer = Consumer(AppState(), deltas, commands, store)

    deltas.put(SetAnalysis("premier_league", create_test_cache()))
    consumer.drain()
    assert consumer.state.rankings["premier_league"].dirty is False

    restored = Consumer(AppState(), queue.Queue(), queue.Queue(), store)
    assert restored.load_persisted() == {"premier_league"}
    assert restored.state.analysis_for("premier_league") == create_test_cache()
    assert restored.state.rankings_for("premier_league").rows == consumer.state.rankings_for("premier_league").rows
    assert restored.state.rankings_for("premier_league").dirty is False


def test_export_analysis(tmp_path: Path) -> None:
    cache = create_test_cache()
    path = tmp_path / "exports" / "pl.json"
    teams, players = export_analysis(path, "premier_league", cache, compute_role_rankings(cache))

    assert (teams, players) == (1, 2)
    data = json.loads(path.read_text(encoding="utf-8"))
    assert data["league_name"] == "Premier League"
    squad = data["teams"][0]["squad"]
    assert squad[0]["detail"]["stats"]["goals"] == 6.0
    assert squad[1]["detail"] is None
