"""单个参赛模型：价格历史 + 策略 + 纸面账户。"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime
from typing import Mapping

from algo.strategy.base import Strategy, StrategyContext
from broker.paper_broker import PaperAccount
from shared.models.history import PriceHistory
from shared.models.models import ModelState, Trade


@dataclass(frozen=True)
class StepResult:
    """一次 step 的产出：成交记录 + 成交后的状态快照。"""
    trades: list[Trade]
    state: ModelState


class TradingModel:
    """把一个策略绑定到自己的历史与账户上。

    模型之间不共享任何可变状态。
    """

    def __init__(
        self,
        *,
        account: PaperAccount,
        strategy: Strategy,
        history: PriceHistory | None = None,
        description: str = "",
    ):
        self.account = account
        self.strategy = strategy
        self.history = history if history is not None else PriceHistory()
        self.description = description

    @property
    def model_id(self) -> int:
        return self.account.model_id

    @property
    def name(self) -> str:
        return self.account.name

    def context(self, prices: Mapping[str, float]) -> StrategyContext:
        acct = self.account
        return StrategyContext(
            history=self.history.view(),
            prices=prices,
            positions=dict(acct.positions),
            cash=acct.cash,
            equity=acct.calculate_equity(prices),
            trade_count=acct.trade_count,
        )

    def step(self, prices: Mapping[str, float], now: datetime) -> StepResult:
        """追加价格 -> 策略决策 -> 执行 -> 重新计算权益。"""
        self.history.append(prices)
        signals = self.strategy.generate(self.context(prices))
        trades = self.account.execute_signals(signals, now=now)
        return StepResult(trades=trades, state=self.account.state(prices))

    def state(self, prices: Mapping[str, float]) -> ModelState:
        return self.account.state(prices)
