from __future__ import annotations

from datetime import datetime, timedelta, timezone
from pathlib import Path

import pandas as pd

from analysis.reporting import EquityRecorder, LEADERBOARD_COLUMNS
from shared.models.models import ModelSummary, TickSnapshot

T0 = datetime(2024, 1, 1, tzinfo=timezone.utc)


def _snap(tick: int, equities: dict[str, float]) -> TickSnapshot:
    models = tuple(
        ModelSummary(name=n, equity=e, pnl_percent=(e - 10000.0) / 100.0, trade_count=tick, win_rate_percent=50.0)
        for n, e in equities.items()
    )
    return TickSnapshot(timestamp=T0 + timedelta(seconds=5 * tick), tick=tick, prices={"BTC": 1.0}, models=models)


def test_recorder_builds_long_and_wide_frames():
    rec = EquityRecorder()
    rec(_snap(1, {"A": 10000.0, "B": 10000.0}))
    rec(_snap(2, {"A": 10100.0, "B": 9900.0}))

    df = rec.to_frame()
    assert len(df) == 4
    curve = rec.equity_curve()
    assert list(curve.index) == [1, 2]
    assert curve.loc[2, "A"] == 10100.0
    assert curve.loc[2, "B"] == 9900.0


def test_leaderboard_ranks_by_last_equity():
    rec = EquityRecorder()
    rec(_snap(1, {"A": 10200.0, "B": 10000.0}))
    rec(_snap(2, {"A": 9800.0, "B": 10050.0}))

    board = rec.leaderboard()
    assert list(board.columns) == LEADERBOARD_COLUMNS
    assert list(board["name"]) == ["B", "A"]
    assert list(board["rank"]) == [1, 2]
    assert board.iloc[0]["equity"] == 10050.0


def test_empty_recorder():
    rec = EquityRecorder()
    assert rec.to_frame().empty
    assert rec.leaderboard().empty
    assert rec.equity_curve().empty


def test_to_csv_roundtrips(tmp_path: Path):
    rec = EquityRecorder()
    rec(_snap(1, {"A": 10000.0}))
    out = rec.to_csv(tmp_path / "reports" / "equity.csv")
    back = pd.read_csv(out)
    assert list(back["name"]) == ["A"]
    assert back["equity"].iloc[0] == 10000.0
