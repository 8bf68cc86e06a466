"""持久化契约：引擎只依赖这三个写操作，全部尽力而为。"""

from __future__ import annotations

from typing import Protocol

from shared.models.models import ModelState, PriceSample, Trade


class Repository(Protocol):
    def upsert_model(self, state: ModelState) -> None:
        ...

    def append_trade(self, trade: Trade) -> None:
        ...

    def append_price_sample(self, sample: PriceSample) -> None:
        ...


class NullRepository:
    """不落盘的实现（storage.enabled=false 时使用）。"""

    def upsert_model(self, state: ModelState) -> None:
        return None

    def append_trade(self, trade: Trade) -> None:
        return None

    def append_price_sample(self, sample: PriceSample) -> None:
        return None

    def close(self) -> None:
        return None
