from __future__ import annotations

import random
from datetime import datetime, timezone

import pytest

from algo.factors.rsi import rsi
from algo.strategy.base import StrategyContext
from algo.strategy.exploratory import ExploratoryStrategy
from algo.strategy.mean_reversion import MeanReversionStrategy
from algo.strategy.momentum import MomentumStrategy
from algo.strategy.reactive import ReactiveStrategy
from algo.strategy.rebalance import RebalanceStrategy
from algo.strategy.swing import SwingStrategy
from shared.models.models import Position

T0 = datetime(2024, 1, 1, tzinfo=timezone.utc)


def _pos(symbol: str, qty: float, entry: float) -> Position:
    return Position(symbol=symbol, qty=qty, entry_price=entry, entry_time=T0, leverage=10)


def _ctx(history, *, cash=10000.0, positions=None, prices=None, trade_count=1) -> StrategyContext:
    prices = prices or {s: series[-1] for s, series in history.items()}
    positions = positions or {}
    equity = cash + sum(p.qty * prices.get(p.symbol, p.entry_price) for p in positions.values())
    return StrategyContext(
        history=history,
        prices=prices,
        positions=positions,
        cash=cash,
        equity=equity,
        trade_count=trade_count,
    )


def _rsi25_series() -> list[float]:
    # 14 个差分：7 个 +1、7 个 -3 -> avg_gain 0.5, avg_loss 1.5 -> RSI 25
    series = [50014.0]
    for i in range(14):
        series.append(series[-1] + (1.0 if i % 2 == 0 else -3.0))
    return series + [50000.0] * 15


class _ScriptedRng:
    def __init__(self, values):
        self.values = list(values)
        self.calls = 0

    def random(self) -> float:
        self.calls += 1
        return self.values.pop(0)


# ---------------------------------------------------------------------------
# momentum
# ---------------------------------------------------------------------------
def test_momentum_flat_history_does_not_buy():
    strat = MomentumStrategy()
    assert strat.generate(_ctx({"BTC": [50000.0] * 30})) == []


def test_momentum_buys_after_jump_diverges_emas():
    # 一次 +5% 跳涨就让 EMA12 (~50384) 高于 EMA26 (~50185)，触发买入
    strat = MomentumStrategy()
    history = {"BTC": [50000.0] * 30 + [52500.0]}
    sigs = strat.generate(_ctx(history))
    assert len(sigs) == 1
    assert sigs[0].side == "buy"
    assert sigs[0].qty == pytest.approx(3000.0 / 52500.0)


def test_momentum_waits_for_slow_period():
    strat = MomentumStrategy()
    history = {"BTC": [float(x) for x in range(100, 125)]}
    assert strat.generate(_ctx(history)) == []


def test_momentum_rising_series_buys_thirty_percent_of_cash():
    strat = MomentumStrategy()
    history = {"ETH": [float(x) for x in range(100, 130)]}
    sigs = strat.generate(_ctx(history))
    assert [(s.symbol, s.side) for s in sigs] == [("ETH", "buy")]
    assert sigs[0].qty * sigs[0].price == pytest.approx(3000.0)


def test_momentum_respects_min_notional():
    strat = MomentumStrategy()
    history = {"ETH": [float(x) for x in range(100, 130)]}
    assert strat.generate(_ctx(history, cash=300.0)) == []


def test_momentum_atr_stop_closes_full_position():
    strat = MomentumStrategy()
    history = {"BTC": [100.0] * 29 + [95.0]}
    pos = _pos("BTC", 2.5, 100.0)
    sigs = strat.generate(_ctx(history, positions={"BTC": pos}))
    assert len(sigs) == 1
    assert sigs[0].side == "sell"
    assert sigs[0].qty == 2.5
    assert sigs[0].reason == "atr_stop"


def test_momentum_cross_down_closes_position():
    strat = MomentumStrategy()
    history = {"BTC": [float(x) for x in range(130, 100, -1)]}
    pos = _pos("BTC", 1.0, 50.0)
    sigs = strat.generate(_ctx(history, positions={"BTC": pos}))
    assert [(s.side, s.reason) for s in sigs] == [("sell", "ema_cross_down")]


def test_momentum_holds_open_position_in_uptrend():
    strat = MomentumStrategy()
    history = {"BTC": [float(x) for x in range(100, 130)]}
    pos = _pos("BTC", 1.0, 110.0)
    assert strat.generate(_ctx(history, positions={"BTC": pos})) == []


# ---------------------------------------------------------------------------
# conservative (RSI mean reversion)
# ---------------------------------------------------------------------------
def test_conservative_buys_when_rsi_is_25():
    strat = MeanReversionStrategy()
    history = {"BTC": _rsi25_series()}
    assert rsi(history["BTC"], 14) == pytest.approx(25.0)

    sigs = strat.generate(_ctx(history, prices={"BTC": 50000.0}))
    assert len(sigs) == 1
    assert sigs[0].side == "buy"
    assert sigs[0].qty == pytest.approx(0.05)


def test_conservative_sells_when_overbought():
    strat = MeanReversionStrategy()
    series = [50000.0 + 10.0 * i for i in range(15)] + [50140.0] * 15
    pos = _pos("BTC", 0.05, 49000.0)
    sigs = strat.generate(_ctx({"BTC": series}, positions={"BTC": pos}))
    assert [(s.side, s.qty) for s in sigs] == [("sell", 0.05)]


def test_conservative_needs_min_history():
    strat = MeanReversionStrategy()
    series = _rsi25_series()[:29]
    assert strat.generate(_ctx({"BTC": series})) == []


def test_conservative_unaffected_by_single_late_jump():
    strat = MeanReversionStrategy()
    flat = [50000.0] * 30
    jumped = flat + [52500.0]
    assert rsi(flat, 14) == rsi(jumped, 14)

    a = strat.generate(_ctx({"BTC": flat}))
    b = strat.generate(_ctx({"BTC": jumped}))
    assert [(s.symbol, s.side) for s in a] == [(s.symbol, s.side) for s in b]
    assert [s.qty * s.price for s in a] == pytest.approx([s.qty * s.price for s in b])


# ---------------------------------------------------------------------------
# balanced (rebalance)
# ---------------------------------------------------------------------------
def test_rebalance_moves_all_in_btc_toward_equal_split():
    strat = RebalanceStrategy()
    prices = {"BTC": 45000.0, "ETH": 3000.0, "SOL": 150.0}
    pos = _pos("BTC", 0.2, 45000.0)
    ctx = _ctx({}, cash=0.0, positions={"BTC": pos}, prices=prices, trade_count=30)

    sigs = {s.symbol: s for s in strat.generate(ctx)}
    assert sigs["BTC"].side == "sell"
    assert sigs["BTC"].qty == pytest.approx(6000.0 / 45000.0)
    assert sigs["ETH"].side == "buy"
    assert sigs["ETH"].qty == pytest.approx(1.0)
    assert sigs["SOL"].side == "buy"
    assert sigs["SOL"].qty == pytest.approx(20.0)


def test_rebalance_only_on_multiples_of_period():
    strat = RebalanceStrategy()
    prices = {"BTC": 45000.0, "ETH": 3000.0, "SOL": 150.0}
    pos = _pos("BTC", 0.2, 45000.0)
    ctx = _ctx({}, cash=0.0, positions={"BTC": pos}, prices=prices, trade_count=31)
    assert strat.generate(ctx) == []


def test_rebalance_from_all_cash_at_zero_trades():
    strat = RebalanceStrategy()
    prices = {"BTC": 45000.0, "ETH": 3000.0, "SOL": 150.0}
    ctx = _ctx({}, cash=9000.0, prices=prices, trade_count=0)
    sigs = strat.generate(ctx)
    assert {s.symbol for s in sigs} == {"BTC", "ETH", "SOL"}
    assert all(s.side == "buy" for s in sigs)
    assert sum(s.qty * s.price for s in sigs) == pytest.approx(9000.0)


def test_rebalance_within_threshold_is_quiet():
    strat = RebalanceStrategy()
    prices = {"BTC": 100.0, "ETH": 100.0, "SOL": 100.0}
    positions = {
        "BTC": _pos("BTC", 31.0, 100.0),
        "ETH": _pos("ETH", 30.0, 100.0),
        "SOL": _pos("SOL", 29.0, 100.0),
    }
    ctx = _ctx({}, cash=0.0, positions=positions, prices=prices, trade_count=60)
    assert strat.generate(ctx) == []


# ---------------------------------------------------------------------------
# reactive
# ---------------------------------------------------------------------------
def test_reactive_buys_on_upward_deviation():
    strat = ReactiveStrategy()
    sigs = strat.generate(_ctx({"BTC": [100.0, 100.0, 100.0, 100.0, 101.0]}))
    assert len(sigs) == 1
    assert sigs[0].side == "buy"
    assert sigs[0].qty == pytest.approx(2000.0 / 101.0)


def test_reactive_sells_on_downward_deviation():
    strat = ReactiveStrategy()
    pos = _pos("BTC", 3.0, 100.0)
    sigs = strat.generate(_ctx({"BTC": [100.0, 100.0, 100.0, 100.0, 99.5]}, positions={"BTC": pos}))
    assert [(s.side, s.qty) for s in sigs] == [("sell", 3.0)]


def test_reactive_ignores_small_moves_and_short_history():
    strat = ReactiveStrategy()
    assert strat.generate(_ctx({"BTC": [100.0, 100.0, 100.0, 100.0, 100.2]})) == []
    assert strat.generate(_ctx({"BTC": [100.0, 100.0, 105.0]})) == []


# ---------------------------------------------------------------------------
# swing
# ---------------------------------------------------------------------------
def test_swing_buys_above_ema_band():
    strat = SwingStrategy()
    sigs = strat.generate(_ctx({"SOL": [100.0] * 20 + [103.0]}))
    assert len(sigs) == 1
    assert sigs[0].qty * sigs[0].price == pytest.approx(3500.0)


def test_swing_stop_is_anchored_to_entry():
    strat = SwingStrategy()
    pos = _pos("SOL", 10.0, 100.0)
    sell = strat.generate(_ctx({"SOL": [100.0] * 20 + [98.0]}, positions={"SOL": pos}))
    hold = strat.generate(_ctx({"SOL": [100.0] * 20 + [99.0]}, positions={"SOL": pos}))
    assert [(s.side, s.qty) for s in sell] == [("sell", 10.0)]
    assert hold == []


# ---------------------------------------------------------------------------
# exploratory
# ---------------------------------------------------------------------------
def test_exploratory_buys_on_low_draw():
    strat = ExploratoryStrategy(assets=("BTC",), rng=_ScriptedRng([0.01]))
    sigs = strat.generate(_ctx({"BTC": [50000.0]}))
    assert len(sigs) == 1
    assert sigs[0].qty == pytest.approx(1500.0 / 50000.0)


def test_exploratory_sells_on_high_draw():
    strat = ExploratoryStrategy(assets=("BTC",), rng=_ScriptedRng([0.99]))
    pos = _pos("BTC", 0.1, 48000.0)
    sigs = strat.generate(_ctx({"BTC": [50000.0]}, positions={"BTC": pos}))
    assert [(s.side, s.qty) for s in sigs] == [("sell", 0.1)]


def test_exploratory_requires_cash_buffer():
    strat = ExploratoryStrategy(assets=("BTC",), rng=_ScriptedRng([0.01]))
    positions = {"ETH": _pos("ETH", 3.0, 3000.0)}
    ctx = _ctx({"BTC": [50000.0]}, cash=1000.0, positions=positions, prices={"BTC": 50000.0, "ETH": 3000.0})
    assert ctx.equity == pytest.approx(10000.0)
    assert strat.generate(ctx) == []


def test_exploratory_draws_once_per_priced_asset():
    rng = _ScriptedRng([0.5, 0.5])
    strat = ExploratoryStrategy(rng=rng)
    ctx = _ctx({}, prices={"BTC": 50000.0, "XRP": 0.5, "BNB": 580.0})
    assert strat.generate(ctx) == []
    assert rng.calls == 2


def test_exploratory_is_deterministic_with_seeded_rng():
    def run(seed: int):
        strat = ExploratoryStrategy(assets=("BTC", "ETH"), buy_probability=0.3, rng=random.Random(seed))
        out = []
        for _ in range(50):
            sigs = strat.generate(_ctx({}, prices={"BTC": 50000.0, "ETH": 3000.0}))
            out.append([(s.symbol, s.side, s.qty) for s in sigs])
        return out

    assert run(11) == run(11)
