"""RSI 因子。"""

from __future__ import annotations

from typing import Sequence

import numpy as np

NEUTRAL_RSI = 50.0


def rsi(values: Sequence[float], period: int = 14) -> float:
    """相对强弱指数（RSI，SMA 版本，只取序列开头的 `period` 个差分）。

    - 样本少于 `period + 1` 时返回中性值 50。
    - avg_loss 为 0 时以 1 代替作除数，因此全涨序列偏向 100 而不是无定义；
      全跌序列 avg_gain 为 0，结果恰为 0。
    - rs >= 0，因此结果天然落在 [0, 100]。
    """
    if period <= 0:
        raise ValueError("RSI period must be > 0")
    arr = np.asarray(values, dtype=float)
    if arr.size < period + 1:
        return NEUTRAL_RSI

    deltas = np.diff(arr[: period + 1])
    gains = float(deltas[deltas > 0].sum())
    losses = float(-deltas[deltas < 0].sum())

    avg_gain = gains / period
    avg_loss = losses / period
    rs = avg_gain / (avg_loss or 1.0)
    return 100.0 - (100.0 / (1.0 + rs))
