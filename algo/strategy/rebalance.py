"""均衡型：按开仓计数周期做等权再平衡。"""

from __future__ import annotations

from typing import Sequence

from shared.models.models import OrderSignal
from algo.strategy.base import Strategy, StrategyContext


class RebalanceStrategy(Strategy):
    """等权再平衡策略。

    仅在 `trade_count % rebalance_every == 0` 时评估（计数为 0 时也会评估）；
    某资产偏离目标市值超过总值 `drift_threshold` 时发出纠偏信号，
    卖出数量不超过当前持仓。
    """

    kind = "balanced"

    def __init__(
        self,
        assets: Sequence[str] = ("BTC", "ETH", "SOL"),
        rebalance_every: int = 30,
        drift_threshold: float = 0.05,
    ):
        if rebalance_every <= 0:
            raise ValueError("rebalance_every must be > 0")
        self.assets = tuple(assets)
        self.rebalance_every = rebalance_every
        self.drift_threshold = drift_threshold

    def generate(self, ctx: StrategyContext) -> list[OrderSignal]:
        if ctx.trade_count % self.rebalance_every != 0:
            return []
        if not self.assets:
            return []

        total = ctx.cash
        for symbol in self.assets:
            pos = ctx.positions.get(symbol)
            price = ctx.prices.get(symbol)
            if pos is not None and price is not None:
                total += pos.qty * price

        target = total / len(self.assets)
        signals: list[OrderSignal] = []
        for symbol in self.assets:
            price = ctx.prices.get(symbol)
            if not price:
                continue
            pos = ctx.positions.get(symbol)
            current = pos.qty * price if pos is not None else 0.0
            diff = target - current
            if abs(diff) <= total * self.drift_threshold:
                continue
            if diff > 0:
                signals.append(
                    OrderSignal(symbol=symbol, side="buy", qty=diff / price, price=price, reason="rebalance_up")
                )
            elif pos is not None:
                qty = min(abs(diff) / price, pos.qty)
                signals.append(
                    OrderSignal(symbol=symbol, side="sell", qty=qty, price=price, reason="rebalance_down")
                )
        return signals
