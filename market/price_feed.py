"""价格源：周期性批量拉取报价，维护“每个资产的最新价”。

- 启动时先同步拉取一次，再按 `refresh_interval_s` 轮询；
- 每次拉取都有超时，失败/超时只计数，不影响已有价格；
- 对外只暴露不可变快照：内部字典采用整体替换，读方拿到的视图不会被后续刷新修改。
"""

from __future__ import annotations

import asyncio
import inspect
from datetime import datetime, timezone
from types import MappingProxyType
from typing import Any, Callable, Mapping, Sequence

from market.quotes import QuoteProvider
from shared.models.models import DEFAULT_SYMBOLS, PriceSample
from shared.utils.logging import setup_logger

SampleCallback = Callable[[PriceSample], Any]


class PriceFeed:
    """最新价缓存 + 轮询任务。

    Parameters
    ----------
    provider:
        报价源，`fetch_batch` 是阻塞调用，会被放到线程里执行。
    symbols:
        关注的资产集合（固定）。
    refresh_interval_s:
        轮询间隔（秒）。
    timeout_s:
        单次拉取的超时（秒），超时按失败计数。
    """

    def __init__(
        self,
        provider: QuoteProvider,
        symbols: Sequence[str] = DEFAULT_SYMBOLS,
        *,
        refresh_interval_s: float = 60.0,
        timeout_s: float = 10.0,
    ):
        if refresh_interval_s <= 0:
            raise ValueError("refresh_interval_s must be > 0")
        if timeout_s <= 0:
            raise ValueError("timeout_s must be > 0")
        self.provider = provider
        self.symbols: tuple[str, ...] = tuple(symbols)
        self.refresh_interval_s = float(refresh_interval_s)
        self.timeout_s = float(timeout_s)
        self.logger = setup_logger("price-feed")

        self._prices: dict[str, float] = {}
        self._updated_at: dict[str, datetime] = {}
        self._subscribers: list[SampleCallback] = []

        self.call_count = 0
        self.success_count = 0
        self.error_count = 0

        self._task: asyncio.Task | None = None
        self._loop: asyncio.AbstractEventLoop | None = None
        self._closed = False

    @property
    def closed(self) -> bool:
        return self._closed

    @property
    def running(self) -> bool:
        return self._task is not None and not self._task.done()

    async def start(self) -> None:
        """拉取一次报价，然后启动后台轮询；重复调用无副作用。"""
        if self._closed:
            self.logger.warning("PriceFeed already closed; start ignored")
            return
        if self.running:
            return
        self._loop = asyncio.get_running_loop()
        self.logger.info(
            "Starting price feed: symbols=%s interval=%ss timeout=%ss",
            ",".join(self.symbols),
            self.refresh_interval_s,
            self.timeout_s,
        )
        updated = await self.refresh()
        self._log_startup(updated)
        if self._closed:
            return
        self._task = self._loop.create_task(self._run(), name="price-feed")

    def _log_startup(self, updated: int) -> None:
        s = self.stats()
        self.logger.info(
            "Feed stats: total=%d success=%d failed=%d success_rate=%.1f%%",
            s["call_count"],
            s["success_count"],
            s["error_count"],
            s["success_rate"],
        )
        if updated == 0:
            self.logger.warning("Initial price fetch returned no prices; ticks will wait for data")
        elif updated < len(self.symbols):
            self.logger.warning("Partial initial fetch: %d/%d symbols", updated, len(self.symbols))

    async def _run(self) -> None:
        while not self._closed:
            await asyncio.sleep(self.refresh_interval_s)
            if self._closed:
                break
            await self.refresh()

    async def refresh(self) -> int:
        """执行一次拉取并合并结果，返回本次更新的资产数量。"""
        if self._closed:
            return 0
        self.call_count += 1
        try:
            fetched = await asyncio.wait_for(
                asyncio.to_thread(self.provider.fetch_batch, list(self.symbols)),
                timeout=self.timeout_s,
            )
        except asyncio.TimeoutError:
            self.error_count += 1
            self.logger.warning("Price fetch timed out after %.1fs; keeping stale prices", self.timeout_s)
            return 0
        except Exception as exc:
            self.error_count += 1
            self.logger.warning("Price fetch failed: %s", exc)
            return 0

        if self._closed:
            return 0
        updated = self._apply(fetched or {})
        if updated:
            self.success_count += 1
        else:
            self.error_count += 1
            self.logger.warning("Price fetch returned no usable prices")
        return updated

    def _apply(self, fetched: Mapping[str, float]) -> int:
        now = datetime.now(timezone.utc)
        fresh: dict[str, float] = {}
        for symbol in self.symbols:
            raw = fetched.get(symbol)
            if raw is None:
                continue
            try:
                price = float(raw)
            except (TypeError, ValueError):
                continue
            if price <= 0:
                continue
            fresh[symbol] = price
        if not fresh:
            return 0

        # 整体替换，已发出的快照保持不变
        merged = dict(self._prices)
        merged.update(fresh)
        self._prices = merged
        updated_at = dict(self._updated_at)
        for symbol in fresh:
            updated_at[symbol] = now
        self._updated_at = updated_at

        for symbol, price in fresh.items():
            self.logger.info("%s: $%s", symbol, f"{price:,.4f}")
            self._notify(PriceSample(symbol=symbol, price=price, ts=now))
        return len(fresh)

    def _notify(self, sample: PriceSample) -> None:
        for cb in list(self._subscribers):
            try:
                res = cb(sample)
                if inspect.isawaitable(res) and self._loop is not None:
                    self._loop.create_task(res)
            except Exception as exc:
                self.logger.warning("Price subscriber failed for %s: %s", sample.symbol, exc)

    def subscribe(self, callback: SampleCallback) -> Callable[[], None]:
        """订阅每条新价格样本，返回取消订阅函数。"""
        self._subscribers.append(callback)

        def _unsubscribe() -> None:
            if callback in self._subscribers:
                self._subscribers.remove(callback)

        return _unsubscribe

    def get_price(self, symbol: str) -> float | None:
        return self._prices.get(symbol)

    def get_all_prices(self) -> Mapping[str, float]:
        """当前价格的不可变快照。"""
        return MappingProxyType(self._prices)

    def last_updated(self, symbol: str) -> datetime | None:
        return self._updated_at.get(symbol)

    def stats(self) -> dict[str, Any]:
        rate = self.success_count / self.call_count * 100 if self.call_count else 0.0
        stamps = [t for t in (self.last_updated(s) for s in self.symbols) if t is not None]
        return {
            "call_count": self.call_count,
            "success_count": self.success_count,
            "error_count": self.error_count,
            "success_rate": rate,
            "symbols_priced": len(self._prices),
            "last_update_at": max(stamps).isoformat() if stamps else None,
        }

    def close(self) -> None:
        """停止轮询；幂等，可在其他线程调用。"""
        if self._closed:
            return
        self._closed = True
        task = self._task
        if task is None or task.done():
            return
        loop = self._loop
        try:
            current = asyncio.get_running_loop()
        except RuntimeError:
            current = None
        if loop is not None and current is not loop and loop.is_running():
            loop.call_soon_threadsafe(task.cancel)
        else:
            task.cancel()
        self.logger.info("Price feed closed")
