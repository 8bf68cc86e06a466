"""纸面账户：按策略意图更新单个模型的现金与持仓（纯本地记账）。

- buy：成本超过现金时静默丢弃；否则开仓（同资产已有持仓时合并为加权均价）。
- sell：必须存在持仓，总是平掉全部持仓数量；无持仓时静默丢弃。
- 权益每次按最新价重新计算，不做增量缓存。
"""

from __future__ import annotations

import random
import threading
from datetime import datetime, timezone
from typing import Iterable, Mapping

from shared.models.models import ClosedTrade, ModelState, OpenTrade, OrderSignal, Position, Trade
from shared.utils.logging import setup_logger
from utils.pnl import compute_unrealized_pnl, positions_value

DEFAULT_STARTING_CASH = 10000.0
DEFAULT_LEVERAGE_RANGE = (5, 20)


class PaperAccount:
    """单个模型的纸面账户。

    Parameters
    ----------
    model_id / name / strategy:
        模型标识，写入成交记录与状态快照。
    starting_cash:
        初始现金。
    rng:
        随机源，只用于抽取展示用的 leverage。
    leverage_range:
        leverage 的闭区间 [low, high]。
    """

    def __init__(
        self,
        model_id: int,
        name: str,
        strategy: str,
        starting_cash: float = DEFAULT_STARTING_CASH,
        *,
        rng: random.Random | None = None,
        leverage_range: tuple[int, int] = DEFAULT_LEVERAGE_RANGE,
    ):
        if starting_cash <= 0:
            raise ValueError("starting_cash must be > 0")
        low, high = leverage_range
        if low > high:
            raise ValueError("leverage_range low must be <= high")
        self.model_id = model_id
        self.name = name
        self.strategy = strategy
        self.starting_cash = float(starting_cash)
        self.cash = float(starting_cash)
        self.positions: dict[str, Position] = {}
        self.trade_count = 0
        self.win_count = 0
        self.realized_pnl = 0.0
        self.last_trade_at: datetime | None = None
        self.rng = rng or random.Random()
        self.leverage_range = (int(low), int(high))
        self.logger = setup_logger("paper-broker")
        # 查询方可能在其他线程读取快照
        self._lock = threading.RLock()

    def get_position(self, symbol: str) -> Position | None:
        return self.positions.get(symbol)

    def execute_signals(self, signals: Iterable[OrderSignal], now: datetime | None = None) -> list[Trade]:
        """按顺序执行意图，返回实际成交记录；被拒绝的意图不产生记录。"""
        ts = now or datetime.now(timezone.utc)
        trades: list[Trade] = []
        with self._lock:
            for sig in signals:
                if sig.side == "buy":
                    trade: Trade | None = self._buy(sig, ts)
                elif sig.side == "sell":
                    trade = self._sell(sig, ts)
                else:
                    self.logger.debug("[%s] dropped %s: unsupported side", self.name, sig.side)
                    trade = None
                if trade is not None:
                    trades.append(trade)
        return trades

    def _buy(self, sig: OrderSignal, ts: datetime) -> OpenTrade | None:
        qty = float(sig.qty)
        price = float(sig.price)
        if qty <= 0 or price <= 0:
            self.logger.debug("[%s] dropped buy %s: qty=%s price=%s", self.name, sig.symbol, qty, price)
            return None
        cost = qty * price
        if cost > self.cash:
            self.logger.debug(
                "[%s] dropped buy %s: cost=%.2f > cash=%.2f", self.name, sig.symbol, cost, self.cash
            )
            return None

        existing = self.positions.get(sig.symbol)
        if existing is None:
            low, high = self.leverage_range
            pos = Position(
                symbol=sig.symbol,
                qty=qty,
                entry_price=price,
                entry_time=ts,
                leverage=self.rng.randint(low, high),
            )
        else:
            new_qty = existing.qty + qty
            pos = Position(
                symbol=sig.symbol,
                qty=new_qty,
                entry_price=(existing.cost + cost) / new_qty,
                entry_time=existing.entry_time,
                leverage=existing.leverage,
                side=existing.side,
            )

        self.positions[sig.symbol] = pos
        self.cash -= cost
        self.trade_count += 1
        self.last_trade_at = ts
        self.logger.info(
            "[%s ORDER] BUY %s qty=%.6f price=%.4f reason=%s",
            self.name,
            sig.symbol,
            qty,
            price,
            sig.reason,
        )
        return OpenTrade(model_id=self.model_id, symbol=sig.symbol, qty=qty, entry_price=price, ts=ts)

    def _sell(self, sig: OrderSignal, ts: datetime) -> ClosedTrade | None:
        pos = self.positions.get(sig.symbol)
        price = float(sig.price)
        if pos is None:
            self.logger.debug("[%s] dropped sell %s: no position", self.name, sig.symbol)
            return None
        if price <= 0:
            self.logger.debug("[%s] dropped sell %s: price=%s", self.name, sig.symbol, price)
            return None

        # 总是平掉全部持仓
        qty = pos.qty
        revenue = qty * price
        pnl = revenue - pos.cost
        pnl_percent = pnl / pos.cost * 100 if pos.cost > 0 else 0.0

        self.cash += revenue
        self.realized_pnl += pnl
        if pnl > 0:
            self.win_count += 1
        del self.positions[sig.symbol]
        self.last_trade_at = ts
        self.logger.info(
            "[%s ORDER] SELL %s qty=%.6f price=%.4f pnl=%.2f (%.2f%%) reason=%s",
            self.name,
            sig.symbol,
            qty,
            price,
            pnl,
            pnl_percent,
            sig.reason,
        )
        return ClosedTrade(
            model_id=self.model_id,
            symbol=sig.symbol,
            qty=qty,
            entry_price=pos.entry_price,
            exit_price=price,
            pnl=pnl,
            pnl_percent=pnl_percent,
            ts=ts,
        )

    def calculate_equity(self, prices: Mapping[str, float]) -> float:
        """equity = cash + sum(qty * price)，每次重新计算。"""
        with self._lock:
            return self.cash + positions_value(self.positions, prices)

    def state(self, prices: Mapping[str, float]) -> ModelState:
        """返回一致的状态快照（持仓是副本，不会被后续成交修改）。"""
        with self._lock:
            positions = dict(self.positions)
            return ModelState(
                model_id=self.model_id,
                name=self.name,
                strategy=self.strategy,
                starting_cash=self.starting_cash,
                cash=self.cash,
                equity=self.cash + positions_value(positions, prices),
                unrealized_pnl=compute_unrealized_pnl(positions, prices),
                positions=positions,
                trade_count=self.trade_count,
                win_count=self.win_count,
                last_trade_at=self.last_trade_at,
            )
