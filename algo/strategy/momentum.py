"""动量策略：EMA 快慢线交叉 + ATR 止损。"""

from __future__ import annotations

from typing import Sequence

from algo.factors.atr import atr
from algo.factors.ema import ema
from shared.models.models import OrderSignal
from algo.strategy.base import Strategy, StrategyContext, close_position, sized_buy


class MomentumStrategy(Strategy):
    """EMA 交叉动量策略。

    Parameters
    ----------
    fast_period / slow_period:
        快慢 EMA 周期。
    atr_period / atr_multiplier:
        止损位 = 入场价 - atr_multiplier * ATR。
    position_pct:
        开仓使用的现金比例。
    min_notional:
        名义金额需大于该值才开仓。
    """

    kind = "momentum"

    def __init__(
        self,
        assets: Sequence[str] = ("BTC", "ETH", "SOL"),
        fast_period: int = 12,
        slow_period: int = 26,
        atr_period: int = 14,
        atr_multiplier: float = 1.5,
        position_pct: float = 0.3,
        min_notional: float = 100.0,
    ):
        self.assets = tuple(assets)
        self.fast_period = fast_period
        self.slow_period = slow_period
        self.atr_period = atr_period
        self.atr_multiplier = atr_multiplier
        self.position_pct = position_pct
        self.min_notional = min_notional

    def generate(self, ctx: StrategyContext) -> list[OrderSignal]:
        signals: list[OrderSignal] = []
        for symbol in self.assets:
            prices = ctx.series(symbol)
            price = ctx.prices.get(symbol)
            if price is None or len(prices) < self.slow_period:
                continue

            fast = ema(prices, self.fast_period)
            slow = ema(prices, self.slow_period)
            if fast is None or slow is None:
                continue
            # 只有收盘价：同一序列同时作为 high/low/close
            atr_value = atr(prices, prices, prices, self.atr_period)

            pos = ctx.positions.get(symbol)
            if pos is None:
                if fast > slow:
                    sig = sized_buy(
                        symbol,
                        cash=ctx.cash,
                        fraction=self.position_pct,
                        price=price,
                        min_notional=self.min_notional,
                        reason="ema_cross_up",
                    )
                    if sig:
                        signals.append(sig)
                continue

            stop = pos.entry_price - atr_value * self.atr_multiplier
            if price < stop:
                signals.append(close_position(pos, price, "atr_stop"))
            elif fast < slow:
                signals.append(close_position(pos, price, "ema_cross_down"))
        return signals
