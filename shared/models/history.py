"""按资产维护的有界价格历史（每个模型独占一份）。"""

from __future__ import annotations

from collections import deque
from typing import Deque, Iterator, Mapping

DEFAULT_HISTORY_CAPACITY = 100


class PriceHistory:
    """每个资产一个 FIFO 队列，超出容量时丢弃最旧的价格。"""

    def __init__(self, capacity: int = DEFAULT_HISTORY_CAPACITY):
        if capacity <= 0:
            raise ValueError("history capacity must be > 0")
        self.capacity = capacity
        self._series: dict[str, Deque[float]] = {}

    def append(self, prices: Mapping[str, float]) -> None:
        for symbol, price in prices.items():
            series = self._series.get(symbol)
            if series is None:
                series = deque(maxlen=self.capacity)
                self._series[symbol] = series
            series.append(float(price))

    def get(self, symbol: str) -> list[float]:
        """返回该资产历史的副本（从旧到新）；未见过的资产返回空列表。"""
        return list(self._series.get(symbol, ()))

    def view(self) -> dict[str, tuple[float, ...]]:
        """只读视图，供策略读取。"""
        return {sym: tuple(series) for sym, series in self._series.items()}

    def __len__(self) -> int:
        return len(self._series)

    def __iter__(self) -> Iterator[str]:
        return iter(self._series)
