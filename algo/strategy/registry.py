"""策略注册表：策略类型名 -> Strategy 实现。

注册表是显式对象：在应用初始化时构建一次，再交给引擎使用，
不存在模块级可变全局表。
"""

from __future__ import annotations

import inspect
import random
from typing import Any, Mapping

from algo.strategy.base import Strategy
from algo.strategy.exploratory import ExploratoryStrategy
from algo.strategy.mean_reversion import MeanReversionStrategy
from algo.strategy.momentum import MomentumStrategy
from algo.strategy.reactive import ReactiveStrategy
from algo.strategy.rebalance import RebalanceStrategy
from algo.strategy.swing import SwingStrategy
from shared.config.schema import StrategyConfig
from shared.utils.logging import setup_logger

logger = setup_logger("strategy-registry")


def _filter_init_kwargs(cls: type, params: Mapping[str, Any]) -> dict[str, Any]:
    """过滤出 __init__ 支持的参数，避免配置里多字段导致报错。"""
    try:
        sig = inspect.signature(cls.__init__)
    except (TypeError, ValueError):
        return dict(params)

    if any(p.kind == inspect.Parameter.VAR_KEYWORD for p in sig.parameters.values()):
        return dict(params)

    allowed = {name for name in sig.parameters.keys() if name != "self"}
    dropped = sorted(k for k in params if k not in allowed)
    if dropped:
        logger.warning("Ignoring unknown params for %s: %s", cls.__name__, ", ".join(dropped))
    return {k: v for k, v in params.items() if k in allowed}


def _accepts(cls: type, name: str) -> bool:
    try:
        return name in inspect.signature(cls.__init__).parameters
    except (TypeError, ValueError):
        return False


class StrategyRegistry:
    """策略类型名到实现类的映射。"""

    def __init__(self):
        self._classes: dict[str, type[Strategy]] = {}

    def register(self, name: str, cls: type[Strategy]) -> None:
        self._classes[name] = cls

    def get(self, name: str) -> type[Strategy]:
        if name not in self._classes:
            raise ValueError(f"Unknown strategy: {name}")
        return self._classes[name]

    def names(self) -> list[str]:
        return list(self._classes)

    def __contains__(self, name: object) -> bool:
        return name in self._classes

    def build(
        self,
        cfg: StrategyConfig | Mapping[str, Any],
        *,
        rng: random.Random | None = None,
    ) -> Strategy:
        """从配置构建策略实例。

        支持：
        - StrategyConfig（来自 shared.config.schema）
        - dict（含 type + 参数字段）

        `rng` 只注入给声明了 `rng` 参数的策略（例如 exploratory）。
        """
        if isinstance(cfg, StrategyConfig):
            name = str(cfg.type)
            params = dict(cfg.params or {})
        elif isinstance(cfg, Mapping):
            name = str(cfg.get("type"))
            params = dict(cfg)
            params.pop("type", None)
        else:
            raise ValueError("strategy cfg must be StrategyConfig or dict")

        cls = self.get(name)
        kwargs = _filter_init_kwargs(cls, params)
        if rng is not None and "seed" not in kwargs and _accepts(cls, "rng"):
            kwargs.setdefault("rng", rng)
        return cls(**kwargs)


def default_registry() -> StrategyRegistry:
    """注册全部内置策略。"""
    registry = StrategyRegistry()
    registry.register("momentum", MomentumStrategy)
    registry.register("conservative", MeanReversionStrategy)
    registry.register("balanced", RebalanceStrategy)
    registry.register("reactive", ReactiveStrategy)
    registry.register("swing", SwingStrategy)
    registry.register("experimental", ExploratoryStrategy)
    return registry
