from __future__ import annotations

from typing import Mapping

from shared.models.models import Position


def mark_price(pos: Position, last_prices: Mapping[str, float]) -> float:
    """持仓的估值价格；缺少最新价时回退到入场价。"""
    price = last_prices.get(pos.symbol)
    if price is None:
        return pos.entry_price
    return float(price)


def positions_value(positions: Mapping[str, Position], last_prices: Mapping[str, float]) -> float:
    """
    持仓市值：sum(qty * mark_price)
    """
    return sum(pos.qty * mark_price(pos, last_prices) for pos in positions.values())


def compute_unrealized_pnl(positions: Mapping[str, Position], last_prices: Mapping[str, float]) -> float:
    """
    计算未实现盈亏：sum(qty * (mark_price - entry_price))
    """
    pnl = 0.0
    for pos in positions.values():
        if pos.qty == 0:
            continue
        pnl += (mark_price(pos, last_prices) - pos.entry_price) * pos.qty
    return pnl
