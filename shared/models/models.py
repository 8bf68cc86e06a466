"""核心数据结构：PriceSample/OrderSignal/Position/Trade/ModelState/TickSnapshot。"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Mapping, Union

# 默认跟踪的资产（固定集合）
DEFAULT_SYMBOLS: tuple[str, ...] = ("BTC", "ETH", "SOL", "BNB", "DOGE", "XRP")


@dataclass(frozen=True)
class PriceSample:
    """单条报价样本（只追加）。"""
    symbol: str
    price: float
    ts: datetime


@dataclass(frozen=True)
class OrderSignal:
    """策略输出的交易意图，只在一个 tick 内存在。"""
    symbol: str
    side: str        # "buy" / "sell"
    qty: float
    price: float
    reason: str | None = None


@dataclass(frozen=True)
class Position:
    """持仓快照（仅做多）。

    leverage 只用于展示，不参与任何盈亏计算。
    """
    symbol: str
    qty: float
    entry_price: float
    entry_time: datetime
    leverage: int = 1
    side: str = "long"

    @property
    def cost(self) -> float:
        return self.qty * self.entry_price


@dataclass(frozen=True)
class OpenTrade:
    """开仓成交记录（buy，尚无退出价）。"""
    model_id: int
    symbol: str
    qty: float
    entry_price: float
    ts: datetime
    side: str = field(default="buy", init=False)
    status: str = field(default="open", init=False)

    def to_dict(self) -> dict[str, Any]:
        return {
            "model_id": self.model_id,
            "asset": self.symbol,
            "side": self.side,
            "entry_price": self.entry_price,
            "quantity": self.qty,
            "status": self.status,
            "ts": self.ts.isoformat(),
        }


@dataclass(frozen=True)
class ClosedTrade:
    """平仓成交记录（终态，不再修改）。"""
    model_id: int
    symbol: str
    qty: float
    entry_price: float
    exit_price: float
    pnl: float
    pnl_percent: float
    ts: datetime
    side: str = field(default="sell", init=False)
    status: str = field(default="closed", init=False)

    def to_dict(self) -> dict[str, Any]:
        return {
            "model_id": self.model_id,
            "asset": self.symbol,
            "side": self.side,
            "entry_price": self.entry_price,
            "exit_price": self.exit_price,
            "quantity": self.qty,
            "pnl": self.pnl,
            "pnl_percent": self.pnl_percent,
            "status": self.status,
            "ts": self.ts.isoformat(),
        }


Trade = Union[OpenTrade, ClosedTrade]


@dataclass(frozen=True)
class ModelState:
    """单个模型在某一时刻的一致快照（供持久化/查询读取）。"""
    model_id: int
    name: str
    strategy: str
    starting_cash: float
    cash: float
    equity: float
    unrealized_pnl: float
    positions: Mapping[str, Position]
    trade_count: int
    win_count: int
    last_trade_at: datetime | None = None

    @property
    def open_positions(self) -> int:
        return len(self.positions)

    @property
    def pnl_percent(self) -> float:
        if self.starting_cash <= 0:
            return 0.0
        return (self.equity - self.starting_cash) / self.starting_cash * 100

    @property
    def win_rate_percent(self) -> float:
        # 分母是开仓计数（与原始统计口径一致）
        if self.trade_count <= 0:
            return 0.0
        return self.win_count / self.trade_count * 100

    def positions_dict(self) -> dict[str, dict[str, Any]]:
        return {
            sym: {
                "quantity": pos.qty,
                "entry_price": pos.entry_price,
                "entry_time": pos.entry_time.isoformat(),
                "leverage": pos.leverage,
                "side": pos.side,
            }
            for sym, pos in self.positions.items()
        }


@dataclass(frozen=True)
class ModelSummary:
    """快照里每个模型的摘要行。"""
    name: str
    equity: float
    pnl_percent: float
    trade_count: int
    win_rate_percent: float

    @classmethod
    def from_state(cls, state: ModelState) -> "ModelSummary":
        return cls(
            name=state.name,
            equity=state.equity,
            pnl_percent=state.pnl_percent,
            trade_count=state.trade_count,
            win_rate_percent=state.win_rate_percent,
        )

    def to_dict(self) -> dict[str, Any]:
        return {
            "name": self.name,
            "equity": self.equity,
            "pnl_percent": self.pnl_percent,
            "trade_count": self.trade_count,
            "win_rate_percent": self.win_rate_percent,
        }


@dataclass(frozen=True)
class TickSnapshot:
    """每个 tick 对外广播的聚合快照（对外唯一稳定的 schema）。"""
    timestamp: datetime
    tick: int
    prices: Mapping[str, float]
    models: tuple[ModelSummary, ...]

    def to_dict(self) -> dict[str, Any]:
        return {
            "timestamp": self.timestamp.isoformat().replace("+00:00", "Z"),
            "tick": self.tick,
            "prices": dict(self.prices),
            "models": [m.to_dict() for m in self.models],
        }
