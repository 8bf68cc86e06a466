"""EMA 因子。"""

from __future__ import annotations

from typing import Sequence

import numpy as np


def ema(values: Sequence[float], period: int) -> float | None:
    """指数移动平均（EMA），返回序列最后一个位置的值。

    种子为前 `period` 个值的算术平均，之后按
    `ema_i = ema_{i-1} + k * (price_i - ema_{i-1})`，`k = 2 / (period + 1)` 从左到右递推
    （常数序列的 EMA 严格等于该常数）。

    Parameters
    ----------
    values:
        从旧到新的价格序列。
    period:
        周期，必须 > 0。

    Returns
    -------
    float | None
        样本数不足 `period` 时返回 None。
    """
    if period <= 0:
        raise ValueError("EMA period must be > 0")
    arr = np.asarray(values, dtype=float)
    if arr.size < period:
        return None

    k = 2.0 / (period + 1)
    out = float(arr[:period].mean())
    for price in arr[period:]:
        out += k * (float(price) - out)
    return out
