"""策略抽象：输入模型自己的上下文，输出 0~N 个交易意图。"""

from __future__ import annotations

from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import ClassVar, Mapping, Sequence

from shared.models.models import OrderSignal, Position


@dataclass(frozen=True)
class StrategyContext:
    """一次决策可见的全部输入（只读）。

    history:
        该模型自己的价格历史（从旧到新，已包含本 tick 价格）。
    prices:
        本 tick 的价格快照。
    positions:
        当前持仓（每个资产至多一笔）。
    cash:
        可用现金。
    equity:
        按本 tick 价格重新计算的权益。
    trade_count:
        已执行的开仓计数。
    """
    history: Mapping[str, Sequence[float]]
    prices: Mapping[str, float]
    positions: Mapping[str, Position]
    cash: float
    equity: float
    trade_count: int = 0

    def series(self, symbol: str) -> Sequence[float]:
        return self.history.get(symbol, ())


class Strategy(ABC):
    """策略基类。

    子类必须是纯决策：只读取 context，返回意图，不修改任何共享状态。
    所有阈值通过 `__init__` 参数暴露，便于场景测试覆盖。
    """

    kind: ClassVar[str] = ""

    @abstractmethod
    def generate(self, ctx: StrategyContext) -> list[OrderSignal]:
        """根据上下文输出交易意图。"""
        ...

    def __call__(self, ctx: StrategyContext) -> list[OrderSignal]:
        return self.generate(ctx)


def sized_buy(
    symbol: str,
    *,
    cash: float,
    fraction: float,
    price: float,
    min_notional: float,
    reason: str,
) -> OrderSignal | None:
    """按现金比例下单；名义金额不超过 `min_notional` 时不下单。"""
    if price <= 0:
        return None
    qty = cash * fraction / price
    if qty * price <= min_notional:
        return None
    return OrderSignal(symbol=symbol, side="buy", qty=qty, price=price, reason=reason)


def close_position(pos: Position, price: float, reason: str) -> OrderSignal:
    return OrderSignal(symbol=pos.symbol, side="sell", qty=pos.qty, price=price, reason=reason)
