"""运行报告：逐 tick 记录各模型权益，导出权益曲线与排行榜。"""

from __future__ import annotations

from pathlib import Path
from typing import Any

import pandas as pd

from shared.models.models import TickSnapshot

EQUITY_COLUMNS = ["tick", "timestamp", "name", "equity", "pnl_percent", "trade_count", "win_rate_percent"]
LEADERBOARD_COLUMNS = ["rank", "name", "equity", "pnl_percent", "win_rate_percent", "trade_count"]


class EquityRecorder:
    """作为 emit 目标挂到调度器上，按行累积快照。"""

    def __init__(self):
        self._rows: list[dict[str, Any]] = []

    def __call__(self, snapshot: TickSnapshot) -> None:
        self.record(snapshot)

    def record(self, snapshot: TickSnapshot) -> None:
        for m in snapshot.models:
            self._rows.append(
                {
                    "tick": snapshot.tick,
                    "timestamp": snapshot.timestamp,
                    "name": m.name,
                    "equity": m.equity,
                    "pnl_percent": m.pnl_percent,
                    "trade_count": m.trade_count,
                    "win_rate_percent": m.win_rate_percent,
                }
            )

    def __len__(self) -> int:
        return len(self._rows)

    def to_frame(self) -> pd.DataFrame:
        """长表：每个 (tick, 模型) 一行。"""
        return pd.DataFrame(self._rows, columns=EQUITY_COLUMNS)

    def equity_curve(self) -> pd.DataFrame:
        """宽表：index=tick，列=模型名，值=权益。"""
        df = self.to_frame()
        if df.empty:
            return pd.DataFrame()
        return df.pivot_table(index="tick", columns="name", values="equity", aggfunc="last")

    def leaderboard(self) -> pd.DataFrame:
        """按最后一个 tick 的权益排序。"""
        df = self.to_frame()
        if df.empty:
            return pd.DataFrame(columns=LEADERBOARD_COLUMNS)
        last = df.sort_values("tick").groupby("name", sort=False).tail(1)
        last = last.sort_values("equity", ascending=False).reset_index(drop=True)
        last.insert(0, "rank", range(1, len(last) + 1))
        return last[LEADERBOARD_COLUMNS]

    def to_csv(self, path: str | Path) -> Path:
        out = Path(path)
        out.parent.mkdir(parents=True, exist_ok=True)
        self.to_frame().to_csv(out, index=False)
        return out
