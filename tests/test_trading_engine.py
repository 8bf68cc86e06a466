from __future__ import annotations

import asyncio
from pathlib import Path

import pytest

from engine.trading_engine import TradingEngine
from market.quotes import FakeQuoteProvider
from shared.config.schema import MainConfig
from shared.models.models import TickSnapshot
from shared.state.sqlite_store import SqliteStore


def _cfg(tmp_path: Path, **storage) -> MainConfig:
    return MainConfig.model_validate(
        {
            "feed": {"provider": "fake", "fake_seed": 1, "refresh_interval_s": 3600, "timeout_s": 1},
            "engine": {"tick_interval_ms": 5, "seed": 42},
            "storage": storage or {"enabled": False},
            "report": {"equity_csv": str(tmp_path / "equity.csv")},
            "logging": {"level": "WARNING"},
        }
    )


def test_build_creates_default_roster(tmp_path: Path):
    engine = TradingEngine(cfg_obj=_cfg(tmp_path))
    sched = engine.build(engine._load_cfg())
    assert [m.name for m in engine.models] == ["Momentum", "Conservative", "Balanced", "Reactive", "Swing", "Explorer"]
    assert [m.model_id for m in engine.models] == [1, 2, 3, 4, 5, 6]
    assert all(m.account.cash == 10000.0 for m in engine.models)
    assert sched.models == engine.models
    assert engine.status()["state"] == "idle"


def test_run_with_max_ticks_returns_summary(tmp_path: Path):
    emitted: list[TickSnapshot] = []
    engine = TradingEngine(
        cfg_obj=_cfg(tmp_path),
        max_ticks=4,
        provider=FakeQuoteProvider(seed=3),
        emit=emitted.append,
    )
    result = engine.run()

    assert [s.tick for s in emitted] == [1, 2, 3, 4]
    assert result.summary["state"] == "stopped"
    assert result.summary["tick"] == 4
    assert result.summary["feed"]["call_count"] >= 1
    assert len(result.summary["leaderboard"]) == 6
    assert (tmp_path / "equity.csv").exists()
    assert result.artifacts == {"equity_csv": str(tmp_path / "equity.csv")}
    for snap in emitted:
        assert len(snap.models) == 6
        assert set(snap.prices) == {"BTC", "ETH", "SOL", "BNB", "DOGE", "XRP"}


def test_run_persists_to_sqlite(tmp_path: Path):
    db = tmp_path / "arena.sqlite3"
    engine = TradingEngine(
        cfg_obj=_cfg(tmp_path, enabled=True, path=str(db)),
        max_ticks=2,
        emit=lambda _snap: None,
    )
    engine.run()

    store = SqliteStore(db)
    try:
        assert len(store.list_models()) == 6
        assert set(store.latest_prices()) == {"BTC", "ETH", "SOL", "BNB", "DOGE", "XRP"}
    finally:
        store.close()


def test_seeded_runs_are_reproducible(tmp_path: Path):
    def run() -> list[dict]:
        snaps: list[TickSnapshot] = []
        TradingEngine(cfg_obj=_cfg(tmp_path), max_ticks=3, emit=snaps.append).run()
        return [
            {"prices": dict(s.prices), "models": [m.to_dict() for m in s.models]}
            for s in snaps
        ]

    assert run() == run()


def test_stop_before_run_is_safe(tmp_path: Path):
    engine = TradingEngine(cfg_obj=_cfg(tmp_path))
    engine.stop()
    engine.build(engine._load_cfg())
    engine.stop()
    engine.stop()
    assert engine.scheduler is not None
    assert engine.scheduler.status()["state"] == "stopped"
    assert engine.feed.closed


@pytest.mark.parametrize("level", ["DEBUG", "warning"])
def test_logging_level_is_accepted(tmp_path: Path, level: str):
    cfg = _cfg(tmp_path)
    cfg.logging.level = level
    TradingEngine(cfg_obj=cfg, max_ticks=1, emit=lambda _s: None).run()


def test_history_capacity_reaches_every_model(tmp_path: Path):
    cfg = _cfg(tmp_path)
    cfg.engine.history_capacity = 10
    engine = TradingEngine(cfg_obj=cfg)
    engine.build(engine._load_cfg())
    assert [m.history.capacity for m in engine.models] == [10] * 6


def test_async_emit_receives_every_tick(tmp_path: Path):
    received: list[int] = []

    async def emit(snapshot: TickSnapshot) -> None:
        await asyncio.sleep(0)
        received.append(snapshot.tick)

    engine = TradingEngine(
        cfg_obj=_cfg(tmp_path),
        max_ticks=3,
        provider=FakeQuoteProvider(seed=3),
        emit=emit,
    )
    result = engine.run()

    assert received == [1, 2, 3]
    assert result.summary["emit_errors"] == 0
