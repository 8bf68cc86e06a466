"""波段趋势跟随：价格突破 EMA 上方一定比例入场，锚定入场价止损。"""

from __future__ import annotations

from typing import Sequence

from algo.factors.ema import ema
from shared.models.models import OrderSignal
from algo.strategy.base import Strategy, StrategyContext, close_position, sized_buy


class SwingStrategy(Strategy):
    """趋势跟随策略。

    止损位 = entry_price * stop_ratio，锚定入场价而不是持仓期间的最高价。
    """

    kind = "swing"

    def __init__(
        self,
        assets: Sequence[str] = ("BTC", "ETH", "SOL"),
        ema_period: int = 20,
        entry_ratio: float = 1.02,
        stop_ratio: float = 0.985,
        position_pct: float = 0.35,
        min_notional: float = 100.0,
    ):
        self.assets = tuple(assets)
        self.ema_period = ema_period
        self.entry_ratio = entry_ratio
        self.stop_ratio = stop_ratio
        self.position_pct = position_pct
        self.min_notional = min_notional

    def generate(self, ctx: StrategyContext) -> list[OrderSignal]:
        signals: list[OrderSignal] = []
        for symbol in self.assets:
            prices = ctx.series(symbol)
            price = ctx.prices.get(symbol)
            if price is None or len(prices) < self.ema_period:
                continue

            trend = ema(prices, self.ema_period)
            if trend is None:
                continue

            pos = ctx.positions.get(symbol)
            if pos is None:
                if price > trend * self.entry_ratio:
                    sig = sized_buy(
                        symbol,
                        cash=ctx.cash,
                        fraction=self.position_pct,
                        price=price,
                        min_notional=self.min_notional,
                        reason="trend_breakout",
                    )
                    if sig:
                        signals.append(sig)
            elif price < pos.entry_price * self.stop_ratio:
                signals.append(close_position(pos, price, "entry_stop"))
        return signals
