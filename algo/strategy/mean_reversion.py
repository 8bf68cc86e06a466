"""保守型均值回归：RSI 超卖买入、超买卖出。"""

from __future__ import annotations

from typing import Sequence

from algo.factors.rsi import rsi
from shared.models.models import OrderSignal
from algo.strategy.base import Strategy, StrategyContext, close_position, sized_buy


class MeanReversionStrategy(Strategy):
    """RSI 均值回归策略。"""

    kind = "conservative"

    def __init__(
        self,
        assets: Sequence[str] = ("BTC", "ETH"),
        rsi_period: int = 14,
        oversold: float = 30.0,
        overbought: float = 70.0,
        min_history: int = 30,
        position_pct: float = 0.25,
        min_notional: float = 100.0,
    ):
        self.assets = tuple(assets)
        self.rsi_period = rsi_period
        self.oversold = oversold
        self.overbought = overbought
        self.min_history = min_history
        self.position_pct = position_pct
        self.min_notional = min_notional

    def generate(self, ctx: StrategyContext) -> list[OrderSignal]:
        signals: list[OrderSignal] = []
        for symbol in self.assets:
            prices = ctx.series(symbol)
            price = ctx.prices.get(symbol)
            if price is None or len(prices) < self.min_history:
                continue

            value = rsi(prices, self.rsi_period)
            pos = ctx.positions.get(symbol)
            if pos is None and value < self.oversold:
                sig = sized_buy(
                    symbol,
                    cash=ctx.cash,
                    fraction=self.position_pct,
                    price=price,
                    min_notional=self.min_notional,
                    reason=f"rsi_oversold({value:.1f})",
                )
                if sig:
                    signals.append(sig)
            elif pos is not None and value > self.overbought:
                signals.append(close_position(pos, price, f"rsi_overbought({value:.1f})"))
        return signals
