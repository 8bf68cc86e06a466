"""SQLite 本地存储：模型状态（upsert）、成交与价格样本（append-only）。

设计
----
- SQLite + WAL，单连接，写操作自动提交；
- models 以 name 为主键做 upsert；
- trades / prices 只追加，保留完整轨迹用于事后分析。
"""

from __future__ import annotations

import json
import sqlite3
import threading
from datetime import datetime, timezone
from pathlib import Path
from typing import Any

from shared.models.models import ClosedTrade, ModelState, PriceSample, Trade
from shared.utils.logging import setup_logger


def _utc_now_iso() -> str:
    return datetime.now(timezone.utc).isoformat().replace("+00:00", "Z")


def _iso(ts: datetime | None) -> str | None:
    if ts is None:
        return None
    return ts.isoformat().replace("+00:00", "Z")


def _json_dumps(obj: Any) -> str:
    return json.dumps(obj, ensure_ascii=False, default=str, allow_nan=False)


class SqliteStore:
    def __init__(self, path: str | Path):
        self.path = Path(path)
        self.path.parent.mkdir(parents=True, exist_ok=True)
        self.logger = setup_logger("sqlite-store")
        self._lock = threading.Lock()
        self._conn = sqlite3.connect(self.path, isolation_level=None, check_same_thread=False)
        self._conn.row_factory = sqlite3.Row
        self._conn.execute("PRAGMA journal_mode=WAL;")
        self._ensure_schema()
        self._closed = False

    def close(self) -> None:
        with self._lock:
            if self._closed:
                return
            self._closed = True
            try:
                self._conn.close()
            except sqlite3.Error as exc:
                self.logger.warning("Failed to close %s: %s", self.path, exc)

    def _ensure_schema(self) -> None:
        self._conn.execute(
            """
            CREATE TABLE IF NOT EXISTS models (
              name TEXT PRIMARY KEY,
              model_id INTEGER NOT NULL,
              strategy TEXT NOT NULL,
              starting_cash REAL NOT NULL,
              cash REAL NOT NULL,
              equity REAL NOT NULL,
              unrealized_pnl REAL NOT NULL,
              pnl_percent REAL NOT NULL,
              trade_count INTEGER NOT NULL,
              win_count INTEGER NOT NULL,
              win_rate_percent REAL NOT NULL,
              open_positions INTEGER NOT NULL,
              positions_json TEXT NOT NULL,
              last_trade_at TEXT,
              updated_at TEXT NOT NULL
            );
            """
        )
        self._conn.execute(
            """
            CREATE TABLE IF NOT EXISTS trades (
              id INTEGER PRIMARY KEY AUTOINCREMENT,
              model_id INTEGER NOT NULL,
              asset TEXT NOT NULL,
              side TEXT NOT NULL,
              quantity REAL NOT NULL,
              entry_price REAL NOT NULL,
              exit_price REAL,
              pnl REAL,
              pnl_percent REAL,
              status TEXT NOT NULL,
              ts TEXT NOT NULL
            );
            """
        )
        self._conn.execute(
            """
            CREATE TABLE IF NOT EXISTS prices (
              id INTEGER PRIMARY KEY AUTOINCREMENT,
              asset TEXT NOT NULL,
              price REAL NOT NULL,
              ts TEXT NOT NULL
            );
            """
        )
        self._conn.execute("CREATE INDEX IF NOT EXISTS idx_trades_model ON trades(model_id);")
        self._conn.execute("CREATE INDEX IF NOT EXISTS idx_prices_asset_ts ON prices(asset, ts);")

    def upsert_model(self, state: ModelState) -> None:
        with self._lock:
            self._conn.execute(
                """
                INSERT INTO models (
                  name, model_id, strategy, starting_cash, cash, equity, unrealized_pnl,
                  pnl_percent, trade_count, win_count, win_rate_percent, open_positions,
                  positions_json, last_trade_at, updated_at
                ) VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?)
                ON CONFLICT(name) DO UPDATE SET
                  model_id = excluded.model_id,
                  strategy = excluded.strategy,
                  starting_cash = excluded.starting_cash,
                  cash = excluded.cash,
                  equity = excluded.equity,
                  unrealized_pnl = excluded.unrealized_pnl,
                  pnl_percent = excluded.pnl_percent,
                  trade_count = excluded.trade_count,
                  win_count = excluded.win_count,
                  win_rate_percent = excluded.win_rate_percent,
                  open_positions = excluded.open_positions,
                  positions_json = excluded.positions_json,
                  last_trade_at = excluded.last_trade_at,
                  updated_at = excluded.updated_at;
                """,
                (
                    state.name,
                    int(state.model_id),
                    state.strategy,
                    float(state.starting_cash),
                    float(state.cash),
                    float(state.equity),
                    float(state.unrealized_pnl),
                    float(state.pnl_percent),
                    int(state.trade_count),
                    int(state.win_count),
                    float(state.win_rate_percent),
                    int(state.open_positions),
                    _json_dumps(state.positions_dict()),
                    _iso(state.last_trade_at),
                    _utc_now_iso(),
                ),
            )

    def append_trade(self, trade: Trade) -> None:
        closed = isinstance(trade, ClosedTrade)
        with self._lock:
            self._conn.execute(
                """
                INSERT INTO trades (
                  model_id, asset, side, quantity, entry_price, exit_price, pnl, pnl_percent, status, ts
                ) VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?);
                """,
                (
                    int(trade.model_id),
                    trade.symbol,
                    trade.side,
                    float(trade.qty),
                    float(trade.entry_price),
                    float(trade.exit_price) if closed else None,
                    float(trade.pnl) if closed else None,
                    float(trade.pnl_percent) if closed else None,
                    trade.status,
                    _iso(trade.ts),
                ),
            )

    def append_price_sample(self, sample: PriceSample) -> None:
        with self._lock:
            self._conn.execute(
                "INSERT INTO prices (asset, price, ts) VALUES (?, ?, ?);",
                (sample.symbol, float(sample.price), _iso(sample.ts)),
            )

    def get_model(self, name: str) -> dict[str, Any] | None:
        with self._lock:
            row = self._conn.execute("SELECT * FROM models WHERE name = ?;", (name,)).fetchone()
        if row is None:
            return None
        out = dict(row)
        out["positions"] = json.loads(out.pop("positions_json") or "{}")
        return out

    def list_models(self) -> list[dict[str, Any]]:
        with self._lock:
            rows = self._conn.execute("SELECT name FROM models ORDER BY equity DESC;").fetchall()
        return [m for m in (self.get_model(r["name"]) for r in rows) if m is not None]

    def list_trades(self, model_id: int | None = None, limit: int = 100) -> list[dict[str, Any]]:
        with self._lock:
            if model_id is None:
                rows = self._conn.execute(
                    "SELECT * FROM trades ORDER BY id DESC LIMIT ?;", (int(limit),)
                ).fetchall()
            else:
                rows = self._conn.execute(
                    "SELECT * FROM trades WHERE model_id = ? ORDER BY id DESC LIMIT ?;",
                    (int(model_id), int(limit)),
                ).fetchall()
        return [dict(r) for r in rows]

    def latest_prices(self) -> dict[str, float]:
        with self._lock:
            rows = self._conn.execute(
                """
                SELECT p.asset, p.price FROM prices p
                JOIN (SELECT asset, MAX(id) AS max_id FROM prices GROUP BY asset) last
                  ON p.id = last.max_id;
                """
            ).fetchall()
        return {r["asset"]: float(r["price"]) for r in rows}
