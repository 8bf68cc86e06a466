"""Tick 调度器：按固定间隔推进所有模型，一次一个 tick，严格串行。

状态机：IDLE -> RUNNING -> STOPPED（终态，不可恢复；重新运行需要新建调度器）。

每个 tick：
1. tick 计数 +1，读取价格源的不可变快照；
2. 快照为空（价格源尚未预热）时跳过本 tick：不修改任何模型，也不广播；
3. 否则按固定顺序逐个模型：追加历史 -> 策略 -> 执行 -> 重算权益 -> 尽力持久化；
4. 汇总为 TickSnapshot 交给 emit（不等待 emit 完成）。
"""

from __future__ import annotations

import asyncio
import inspect
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Callable, Mapping, Protocol, Sequence

from engine.model_runner import StepResult, TradingModel
from shared.models.models import ModelSummary, TickSnapshot
from shared.state.repository import NullRepository, Repository
from shared.utils.logging import setup_logger

DEFAULT_TICK_INTERVAL_MS = 5000

EmitFn = Callable[[TickSnapshot], Any]


class PriceSource(Protocol):
    def get_all_prices(self) -> Mapping[str, float]:
        ...


class SchedulerState(str, Enum):
    IDLE = "idle"
    RUNNING = "running"
    STOPPED = "stopped"


def _utc_now() -> datetime:
    return datetime.now(timezone.utc)


class TickScheduler:
    """模拟调度器。

    Parameters
    ----------
    feed:
        价格源，只使用 `get_all_prices()`。
    models:
        参赛模型；迭代顺序即传入顺序，全局一致。
    repository:
        持久化实现；写失败只计数，不中断后续模型。
    max_ticks:
        达到该 tick 数后自动停止（None 表示一直运行）。
    clock:
        时间源，测试里可注入固定时间。
    """

    def __init__(
        self,
        feed: PriceSource,
        models: Sequence[TradingModel],
        *,
        repository: Repository | None = None,
        max_ticks: int | None = None,
        clock: Callable[[], datetime] = _utc_now,
    ):
        names = [m.name for m in models]
        if len(set(names)) != len(names):
            raise ValueError("model names must be unique")
        self.feed = feed
        self.models: list[TradingModel] = list(models)
        self.repository: Repository = repository or NullRepository()
        self.max_ticks = max_ticks
        self.clock = clock
        self.logger = setup_logger("scheduler")

        self.state = SchedulerState.IDLE
        self.tick_count = 0
        self.skipped_ticks = 0
        self.persist_errors = 0
        self.emit_errors = 0
        self.tick_errors = 0
        self.last_snapshot: TickSnapshot | None = None

        self._emit: EmitFn | None = None
        self._interval_ms = DEFAULT_TICK_INTERVAL_MS
        self._task: asyncio.Task | None = None
        self._loop: asyncio.AbstractEventLoop | None = None
        self._stopped = asyncio.Event()
        self._pending_emits: set[asyncio.Task] = set()

    # ------------------------------------------------------------------
    # 单个 tick（同步，可直接在测试里调用）
    # ------------------------------------------------------------------
    def publish_initial_state(self) -> None:
        """初始化时为每个模型写一次状态。"""
        prices = self.feed.get_all_prices()
        for model in self.models:
            self._safe_write("upsert_model", model.name, self.repository.upsert_model, model.state(prices))

    def tick(self) -> TickSnapshot | None:
        """执行一个 tick；快照为空时返回 None。"""
        self.tick_count += 1
        prices = self.feed.get_all_prices()
        if not prices:
            self.skipped_ticks += 1
            self.logger.info("Tick %d: waiting for prices", self.tick_count)
            return None

        now = self.clock()
        summaries: list[ModelSummary] = []
        for model in self.models:
            result = model.step(prices, now)
            self._persist(model, result)
            summaries.append(ModelSummary.from_state(result.state))

        snapshot = TickSnapshot(
            timestamp=now,
            tick=self.tick_count,
            prices=dict(prices),
            models=tuple(summaries),
        )
        self.last_snapshot = snapshot
        return snapshot

    def _persist(self, model: TradingModel, result: StepResult) -> None:
        for trade in result.trades:
            self._safe_write("append_trade", model.name, self.repository.append_trade, trade)
        self._safe_write("upsert_model", model.name, self.repository.upsert_model, result.state)

    def _safe_write(self, op: str, name: str, fn: Callable[[Any], Any], payload: Any) -> None:
        try:
            fn(payload)
        except Exception as exc:
            self.persist_errors += 1
            self.logger.warning("Persistence %s failed for %s: %s", op, name, exc)

    # ------------------------------------------------------------------
    # 周期调度
    # ------------------------------------------------------------------
    def start(self, emit: EmitFn, interval_ms: int = DEFAULT_TICK_INTERVAL_MS) -> None:
        """启动周期任务；必须在事件循环内调用。重复调用无副作用。"""
        if self.state is SchedulerState.RUNNING:
            return
        if self.state is SchedulerState.STOPPED:
            self.logger.warning("Scheduler already stopped; create a new one to run again")
            return
        if interval_ms <= 0:
            raise ValueError("interval_ms must be > 0")

        self._loop = asyncio.get_running_loop()
        self._emit = emit
        self._interval_ms = int(interval_ms)
        self.state = SchedulerState.RUNNING
        self._task = self._loop.create_task(self._run(self._interval_ms / 1000.0), name="tick-scheduler")
        self.logger.info("Scheduler started: %d models, interval=%dms", len(self.models), self._interval_ms)

    async def _run(self, interval_s: float) -> None:
        loop = asyncio.get_running_loop()
        next_at = loop.time() + interval_s
        while self.state is SchedulerState.RUNNING:
            delay = next_at - loop.time()
            if delay > 0:
                await asyncio.sleep(delay)
            if self.state is not SchedulerState.RUNNING:
                break
            self._run_tick()
            if self.max_ticks is not None and self.tick_count >= self.max_ticks:
                self.logger.info("Reached max_ticks=%d", self.max_ticks)
                self.stop()
                break
            next_at += interval_s
            # 落后时不补跑，避免 tick 堆积
            if next_at < loop.time():
                next_at = loop.time()

    def _run_tick(self) -> None:
        try:
            snapshot = self.tick()
        except Exception:
            self.tick_errors += 1
            self.logger.exception("Tick %d failed", self.tick_count)
            return
        if snapshot is not None:
            self._dispatch(snapshot)

    def _dispatch(self, snapshot: TickSnapshot) -> None:
        emit = self._emit
        if emit is None:
            return
        try:
            res = emit(snapshot)
        except Exception as exc:
            self.emit_errors += 1
            self.logger.warning("Emit failed on tick %d: %s", snapshot.tick, exc)
            return
        if inspect.isawaitable(res):
            task = asyncio.ensure_future(res)
            self._pending_emits.add(task)
            task.add_done_callback(self._on_emit_done)

    def _on_emit_done(self, task: asyncio.Task) -> None:
        self._pending_emits.discard(task)
        if task.cancelled():
            return
        exc = task.exception()
        if exc is not None:
            self.emit_errors += 1
            self.logger.warning("Async emit failed: %s", exc)

    def stop(self) -> None:
        """停止调度；幂等，可在其他线程调用。"""
        if self.state is SchedulerState.STOPPED:
            return
        self.state = SchedulerState.STOPPED
        task = self._task
        loop = self._loop
        try:
            current = asyncio.get_running_loop()
        except RuntimeError:
            current = None

        if loop is not None and current is not loop and loop.is_running():
            loop.call_soon_threadsafe(self._finish_stop, task)
        else:
            self._finish_stop(task)
        self.logger.info("Scheduler stopped after %d ticks", self.tick_count)

    def _finish_stop(self, task: asyncio.Task | None) -> None:
        if task is not None and not task.done() and task is not _current_task():
            task.cancel()
        self._stopped.set()

    async def wait_stopped(self) -> None:
        """等待调度停止，并等已调度的异步 emit 跑完。"""
        await self._stopped.wait()
        if self._pending_emits:
            await asyncio.gather(*list(self._pending_emits), return_exceptions=True)

    def status(self) -> dict[str, Any]:
        prices = self.feed.get_all_prices()
        return {
            "state": self.state.value,
            "tick": self.tick_count,
            "skipped_ticks": self.skipped_ticks,
            "persist_errors": self.persist_errors,
            "emit_errors": self.emit_errors,
            "tick_errors": self.tick_errors,
            "interval_ms": self._interval_ms,
            "models": [ModelSummary.from_state(m.state(prices)).to_dict() for m in self.models],
        }


def _current_task() -> asyncio.Task | None:
    try:
        return asyncio.current_task()
    except RuntimeError:
        return None
