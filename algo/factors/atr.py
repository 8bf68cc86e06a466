"""ATR 因子。"""

from __future__ import annotations

from typing import Sequence

import numpy as np

# 样本不足时的兜底：最近收盘价的 2%
FALLBACK_PCT = 0.02


def atr(
    highs: Sequence[float],
    lows: Sequence[float],
    closes: Sequence[float],
    period: int = 14,
) -> float:
    """平均真实波幅（ATR）。

    真实波幅 `max(high - low, |high - prev_close|, |low - prev_close|)` 只在序列
    开头的固定窗口（下标 1..period-1）上累加，再除以 `period`；不是滚动窗口。

    本系统只有收盘价，调用方通常把同一条序列同时作为 highs/lows/closes 传入，
    此时 `high - low` 恒为 0，ATR 退化为前若干个相邻收盘价差的绝对值均值。

    Returns
    -------
    float
        `len(closes) < period` 时返回 `2% * 最近收盘价`。
    """
    if period <= 0:
        raise ValueError("ATR period must be > 0")
    close = np.asarray(closes, dtype=float)
    if close.size == 0:
        return 0.0
    if close.size < period:
        return float(close[-1]) * FALLBACK_PCT

    high = np.asarray(highs, dtype=float)[1:period]
    low = np.asarray(lows, dtype=float)[1:period]
    prev_close = close[: period - 1]

    tr = np.maximum.reduce(
        [
            high - low,
            np.abs(high - prev_close),
            np.abs(low - prev_close),
        ]
    )
    return float(tr.sum()) / period
