"""TickSnapshot 广播适配器（控制台表格 / 日志）。"""

from __future__ import annotations

import inspect
import json
from typing import Any, Awaitable, Callable, Iterable

from rich import box
from rich.console import Console, Group
from rich.table import Table
from rich.text import Text

from shared.models.models import TickSnapshot
from shared.utils.logging import setup_logger


def _fmt_price(price: float) -> str:
    if price >= 100:
        return f"${price:,.2f}"
    return f"${price:,.4f}"


class ConsoleBroadcaster:
    """每个 tick 打印一张排行榜表格。"""

    def __init__(self, console: Console | None = None):
        self.console = console or Console()

    def render(self, snapshot: TickSnapshot) -> Group:
        prices = Table(box=box.SIMPLE_HEAD, expand=True)
        prices.add_column("Asset", style="cyan bold")
        prices.add_column("Price", justify="right")
        for symbol, price in snapshot.prices.items():
            prices.add_row(symbol, _fmt_price(price))

        board = Table(box=box.SIMPLE_HEAD, expand=True)
        board.add_column("#", justify="right", style="dim")
        board.add_column("Model", style="bold white")
        board.add_column("Equity", justify="right")
        board.add_column("PnL %", justify="right")
        board.add_column("Trades", justify="right")
        board.add_column("Win %", justify="right")
        ranked = sorted(snapshot.models, key=lambda m: m.equity, reverse=True)
        for rank, m in enumerate(ranked, start=1):
            style = "green" if m.pnl_percent >= 0 else "red"
            board.add_row(
                str(rank),
                m.name,
                f"${m.equity:,.2f}",
                Text(f"{m.pnl_percent:+.2f}%", style=style),
                str(m.trade_count),
                f"{m.win_rate_percent:.1f}",
            )

        header = Text(f"Tick {snapshot.tick} @ {snapshot.to_dict()['timestamp']}", style="bold underline")
        return Group(header, prices, board)

    def __call__(self, snapshot: TickSnapshot) -> None:
        self.console.print(self.render(snapshot))


class LogBroadcaster:
    """把快照写成一行 JSON 日志。"""

    def __init__(self, logger_name: str = "broadcast"):
        self.logger = setup_logger(logger_name)

    def __call__(self, snapshot: TickSnapshot) -> None:
        self.logger.info("%s", json.dumps(snapshot.to_dict(), ensure_ascii=False))


class FanOut:
    """依次调用多个 emit；某一个失败不影响其余。

    异步 target 返回的 awaitable 会被收集成一个协程返回，
    由调度器作为任务调度（调度器不会等待它完成）。
    """

    def __init__(self, targets: Iterable[Callable[[TickSnapshot], Any]]):
        self.targets = list(targets)
        self.logger = setup_logger("broadcast")

    def __call__(self, snapshot: TickSnapshot) -> Awaitable[None] | None:
        pending: list[tuple[Any, Awaitable[Any]]] = []
        for target in self.targets:
            try:
                res = target(snapshot)
            except Exception as exc:
                self.logger.warning("Broadcast target %r failed: %s", target, exc)
                continue
            if inspect.isawaitable(res):
                pending.append((target, res))
        if pending:
            return self._drain(pending)
        return None

    async def _drain(self, pending: list[tuple[Any, Awaitable[Any]]]) -> None:
        for target, aw in pending:
            try:
                await aw
            except Exception as exc:
                self.logger.warning("Async broadcast target %r failed: %s", target, exc)
