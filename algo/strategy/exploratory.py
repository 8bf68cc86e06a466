"""探索型：带风险上限的随机开平仓。"""

from __future__ import annotations

import random
from typing import Sequence

from shared.models.models import OrderSignal
from algo.strategy.base import Strategy, StrategyContext, close_position, sized_buy


class ExploratoryStrategy(Strategy):
    """随机游走策略。

    每个资产每 tick 抽一次随机数 r：
    - r < buy_probability，空仓且现金 > equity * min_cash_ratio 时开仓；
    - r > 1 - sell_probability 且持仓时平仓。

    Parameters
    ----------
    rng:
        随机源；测试里注入固定种子的 `random.Random` 即可复现。
    """

    kind = "experimental"

    def __init__(
        self,
        assets: Sequence[str] = ("BTC", "ETH", "SOL", "DOGE", "XRP"),
        buy_probability: float = 0.02,
        sell_probability: float = 0.02,
        min_cash_ratio: float = 0.3,
        position_pct: float = 0.15,
        min_notional: float = 50.0,
        rng: random.Random | None = None,
        seed: int | None = None,
    ):
        self.assets = tuple(assets)
        self.buy_probability = buy_probability
        self.sell_probability = sell_probability
        self.min_cash_ratio = min_cash_ratio
        self.position_pct = position_pct
        self.min_notional = min_notional
        self.rng = rng or random.Random(seed)

    def generate(self, ctx: StrategyContext) -> list[OrderSignal]:
        signals: list[OrderSignal] = []
        for symbol in self.assets:
            price = ctx.prices.get(symbol)
            if price is None:
                continue
            r = self.rng.random()
            pos = ctx.positions.get(symbol)

            if r < self.buy_probability:
                if pos is None and ctx.cash > ctx.equity * self.min_cash_ratio:
                    sig = sized_buy(
                        symbol,
                        cash=ctx.cash,
                        fraction=self.position_pct,
                        price=price,
                        min_notional=self.min_notional,
                        reason="random_entry",
                    )
                    if sig:
                        signals.append(sig)
            elif r > 1.0 - self.sell_probability and pos is not None:
                signals.append(close_position(pos, price, "random_exit"))
        return signals
