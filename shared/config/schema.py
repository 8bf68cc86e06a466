"""配置架构定义（Pydantic Schema）。

目标：
- 让配置成为“强类型 + 可演进”的边界协议；
- 启动阶段尽早失败，避免 typo/类型错误在长时间模拟中“隐蔽爆炸”；
- 业务代码只读 `cfg.engine.tick_interval_ms` 这类属性，不做深层字典索引。
"""

from __future__ import annotations

from typing import Any, Dict, List, Literal, Optional

from pydantic import BaseModel, ConfigDict, Field, model_validator

from shared.models.models import DEFAULT_SYMBOLS

DEFAULT_COIN_IDS: Dict[str, str] = {
    "BTC": "bitcoin",
    "ETH": "ethereum",
    "SOL": "solana",
    "BNB": "binance-coin",
    "DOGE": "dogecoin",
    "XRP": "ripple",
}

DEFAULT_BASE_PRICES: Dict[str, float] = {
    "BTC": 65000.0,
    "ETH": 3200.0,
    "SOL": 150.0,
    "BNB": 580.0,
    "DOGE": 0.15,
    "XRP": 0.55,
}


class FeedConfig(BaseModel):
    """行情源配置。"""
    provider: Literal["coinstats", "fake"] = "coinstats"
    base_url: str = "https://openapiv1.coinstats.app"
    api_key: Optional[str] = None
    symbols: List[str] = Field(default_factory=lambda: list(DEFAULT_SYMBOLS))
    coin_ids: Dict[str, str] = Field(default_factory=lambda: dict(DEFAULT_COIN_IDS))

    refresh_interval_s: float = Field(default=60.0, gt=0)
    timeout_s: float = Field(default=10.0, gt=0)

    # 仅 provider=fake 使用
    fake_seed: Optional[int] = None
    fake_base_prices: Dict[str, float] = Field(default_factory=lambda: dict(DEFAULT_BASE_PRICES))

    model_config = ConfigDict(extra="forbid")


class EngineConfig(BaseModel):
    """模拟引擎配置。"""
    tick_interval_ms: int = Field(default=5000, gt=0)
    starting_cash: float = Field(default=10000.0, gt=0)
    history_capacity: int = Field(default=100, gt=0)
    # None 表示使用真实熵源
    seed: Optional[int] = None
    leverage_min: int = 5
    leverage_max: int = 20

    model_config = ConfigDict(extra="forbid")

    @model_validator(mode="after")
    def _check_leverage(self) -> "EngineConfig":
        if self.leverage_min > self.leverage_max:
            raise ValueError("engine.leverage_min must be <= engine.leverage_max")
        return self


class StrategyConfig(BaseModel):
    """策略配置（type + params）。

    说明：
    - 策略参数不允许“散落在顶层”：必须进入 `params`；
    - `strategy:` 下的扁平字段会被自动挪到 `params`，从而实现：
      - 用户写起来方便
      - schema 又能做到严格（forbid extra keys）
    """
    type: str
    params: Dict[str, Any] = Field(default_factory=dict)
    model_config = ConfigDict(extra="forbid")

    @model_validator(mode="before")
    @classmethod
    def _pack_flat_params(cls, data: Any) -> Any:
        if not isinstance(data, dict):
            return data
        if "params" in data and isinstance(data.get("params"), dict) and set(data.keys()) <= {"type", "params"}:
            return data
        params = {k: v for k, v in data.items() if k not in {"type", "params"}}
        existing = data.get("params")
        if isinstance(existing, dict):
            params = {**params, **existing}
        packed: dict[str, Any] = {"params": params}
        if "type" in data:
            packed["type"] = data["type"]
        return packed


class ModelConfig(BaseModel):
    """一个参赛模型：名称 + 绑定的策略。"""
    name: str = Field(min_length=1)
    description: str = ""
    strategy: StrategyConfig

    model_config = ConfigDict(extra="forbid")


def default_models() -> List[ModelConfig]:
    """默认阵容：每种策略各一个模型。"""
    roster = [
        ("Momentum", "EMA crossover with ATR stop", "momentum"),
        ("Conservative", "RSI mean reversion", "conservative"),
        ("Balanced", "Equal-weight rebalancing", "balanced"),
        ("Reactive", "Short-window deviation", "reactive"),
        ("Swing", "Trend following anchored stop", "swing"),
        ("Explorer", "Randomized risk-capped entries", "experimental"),
    ]
    return [
        ModelConfig(name=name, description=desc, strategy=StrategyConfig(type=kind))
        for name, desc, kind in roster
    ]


class StorageConfig(BaseModel):
    """本地持久化（SQLite）配置。"""
    enabled: bool = False
    path: str = "dataset/state/arena.sqlite3"
    model_config = ConfigDict(extra="forbid")


class ReportConfig(BaseModel):
    """运行结束时导出的报告。"""
    equity_csv: Optional[str] = None
    model_config = ConfigDict(extra="forbid")


class LoggingConfig(BaseModel):
    level: str = "INFO"
    model_config = ConfigDict(extra="forbid")


class MainConfig(BaseModel):
    """应用总配置。"""
    feed: FeedConfig = Field(default_factory=FeedConfig)
    engine: EngineConfig = Field(default_factory=EngineConfig)
    models: List[ModelConfig] = Field(default_factory=default_models)
    storage: StorageConfig = Field(default_factory=StorageConfig)
    report: ReportConfig = Field(default_factory=ReportConfig)
    logging: LoggingConfig = Field(default_factory=LoggingConfig)

    model_config = ConfigDict(extra="forbid", validate_assignment=True)

    @model_validator(mode="after")
    def _unique_model_names(self) -> "MainConfig":
        names = [m.name for m in self.models]
        dupes = sorted({n for n in names if names.count(n) > 1})
        if dupes:
            raise ValueError(f"Duplicate model names: {', '.join(dupes)}")
        return self


AppConfig = MainConfig
