"""短线反应型：当前价相对最近 N 个样本均值的偏离。"""

from __future__ import annotations

from typing import Sequence

from shared.models.models import OrderSignal
from algo.strategy.base import Strategy, StrategyContext, close_position, sized_buy


class ReactiveStrategy(Strategy):
    """短窗口偏离策略。

    偏离 = (price - mean(last window)) / mean；均值窗口包含本 tick 价格。
    偏离 > buy_threshold 且空仓时买入；偏离 < -sell_threshold 且持仓时平仓。
    """

    kind = "reactive"

    def __init__(
        self,
        assets: Sequence[str] = ("BTC", "ETH", "SOL", "BNB"),
        window: int = 5,
        buy_threshold: float = 0.005,
        sell_threshold: float = 0.003,
        position_pct: float = 0.2,
        min_notional: float = 50.0,
    ):
        self.assets = tuple(assets)
        self.window = window
        self.buy_threshold = buy_threshold
        self.sell_threshold = sell_threshold
        self.position_pct = position_pct
        self.min_notional = min_notional

    def generate(self, ctx: StrategyContext) -> list[OrderSignal]:
        signals: list[OrderSignal] = []
        for symbol in self.assets:
            prices = ctx.series(symbol)
            price = ctx.prices.get(symbol)
            if price is None or len(prices) < self.window:
                continue

            recent = list(prices)[-self.window:]
            avg = sum(recent) / len(recent)
            if avg <= 0:
                continue
            change = (price - avg) / avg

            pos = ctx.positions.get(symbol)
            if pos is None and change > self.buy_threshold:
                sig = sized_buy(
                    symbol,
                    cash=ctx.cash,
                    fraction=self.position_pct,
                    price=price,
                    min_notional=self.min_notional,
                    reason=f"spike_up({change:.4f})",
                )
                if sig:
                    signals.append(sig)
            elif pos is not None and change < -self.sell_threshold:
                signals.append(close_position(pos, price, f"spike_down({change:.4f})"))
        return signals
