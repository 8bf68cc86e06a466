"""模拟竞技场引擎（TradingEngine）。

目标是“一眼能看懂”：配置 → 价格源 → 模型阵容 → 调度器 → 总结。
"""

from __future__ import annotations

import asyncio
import random
import signal
from typing import Any, Callable

from algo.strategy.registry import StrategyRegistry, default_registry
from analysis.reporting import EquityRecorder
from broker.paper_broker import PaperAccount
from engine.base_engine import BaseEngine, EngineResult
from engine.broadcast import ConsoleBroadcaster, FanOut
from engine.model_runner import TradingModel
from engine.scheduler import EmitFn, TickScheduler
from market.price_feed import PriceFeed
from market.quotes import QuoteProvider, build_quote_provider
from shared.config.config_loader import AppConfig, load_config
from shared.models.history import PriceHistory
from shared.models.models import TickSnapshot
from shared.state.repository import NullRepository, Repository
from shared.state.sqlite_store import SqliteStore
from shared.utils.logging import set_global_level, setup_logger


class TradingEngine(BaseEngine):
    def __init__(
        self,
        *,
        cfg_path: str = "config/config.yml",
        cfg_obj: AppConfig | None = None,
        max_ticks: int | None = None,
        provider: QuoteProvider | None = None,
        registry: StrategyRegistry | None = None,
        emit: EmitFn | None = None,
    ):
        self._cfg_path = cfg_path
        self._cfg_obj = cfg_obj
        self._max_ticks = max_ticks
        self._provider = provider
        self._registry = registry
        self._emit = emit

        self.cfg: AppConfig | None = None
        self.feed: PriceFeed | None = None
        self.models: list[TradingModel] = []
        self.scheduler: TickScheduler | None = None
        self.repository: Repository = NullRepository()
        self.recorder = EquityRecorder()
        self.logger = setup_logger("engine")

    def run(self) -> EngineResult:
        cfg = self._load_cfg()
        self.cfg = cfg
        set_global_level(cfg.logging.level)
        self.build(cfg)

        try:
            asyncio.run(self._run_async(cfg))
        except KeyboardInterrupt:
            self.logger.info("Interrupted; shutting down")
            self.stop()
        finally:
            self._shutdown(cfg)

        return EngineResult(summary=self._build_summary(), artifacts=self._build_artifacts(cfg))

    def _load_cfg(self) -> AppConfig:
        return self._cfg_obj or load_config(self._cfg_path)

    def build(self, cfg: AppConfig) -> TickScheduler:
        """按配置构建价格源、模型阵容与调度器（不启动）。"""
        registry = self._registry or default_registry()
        self.repository = self._build_repository(cfg)

        provider = self._provider or build_quote_provider(cfg.feed)
        self.feed = PriceFeed(
            provider,
            cfg.feed.symbols,
            refresh_interval_s=cfg.feed.refresh_interval_s,
            timeout_s=cfg.feed.timeout_s,
        )
        self.feed.subscribe(self.repository.append_price_sample)

        self.models = self._build_models(cfg, registry)
        self.scheduler = TickScheduler(
            self.feed,
            self.models,
            repository=self.repository,
            max_ticks=self._max_ticks,
        )
        return self.scheduler

    @staticmethod
    def _build_repository(cfg: AppConfig) -> Repository:
        if cfg.storage.enabled:
            return SqliteStore(cfg.storage.path)
        return NullRepository()

    def _build_models(self, cfg: AppConfig, registry: StrategyRegistry) -> list[TradingModel]:
        eng = cfg.engine
        # 有 seed 时所有随机源都从同一个主随机源派生，保证可复现
        master = random.Random(eng.seed) if eng.seed is not None else None

        def _rng() -> random.Random:
            return random.Random(master.random()) if master is not None else random.Random()

        models: list[TradingModel] = []
        for model_id, mcfg in enumerate(cfg.models, start=1):
            strategy = registry.build(mcfg.strategy, rng=_rng())
            account = PaperAccount(
                model_id=model_id,
                name=mcfg.name,
                strategy=mcfg.strategy.type,
                starting_cash=eng.starting_cash,
                rng=_rng(),
                leverage_range=(eng.leverage_min, eng.leverage_max),
            )
            models.append(
                TradingModel(
                    account=account,
                    strategy=strategy,
                    history=PriceHistory(eng.history_capacity),
                    description=mcfg.description,
                )
            )
            self.logger.info("Model %d: %s (%s)", model_id, mcfg.name, mcfg.strategy.type)
        return models

    def _default_emit(self) -> Callable[[TickSnapshot], Any]:
        return FanOut([ConsoleBroadcaster(), self.recorder])

    async def _run_async(self, cfg: AppConfig) -> None:
        assert self.feed is not None and self.scheduler is not None
        loop = asyncio.get_running_loop()
        self._install_signal_handlers(loop)

        await self.feed.start()
        self.scheduler.publish_initial_state()
        emit = self._emit
        if emit is None:
            emit = self._default_emit()
        elif emit is not self.recorder:
            emit = FanOut([emit, self.recorder])
        self.scheduler.start(emit, cfg.engine.tick_interval_ms)
        try:
            await self.scheduler.wait_stopped()
        finally:
            self.feed.close()

    def _install_signal_handlers(self, loop: asyncio.AbstractEventLoop) -> None:
        for sig in (signal.SIGINT, signal.SIGTERM):
            try:
                loop.add_signal_handler(sig, self.stop)
            except (NotImplementedError, RuntimeError):
                # 非主线程或 Windows：退回 KeyboardInterrupt 路径
                self.logger.debug("Signal handler for %s not installed", sig)

    def stop(self) -> None:
        """停止调度与价格轮询；幂等，可在其他线程调用。"""
        if self.scheduler is not None:
            self.scheduler.stop()
        if self.feed is not None:
            self.feed.close()

    def _shutdown(self, cfg: AppConfig) -> None:
        if cfg.report.equity_csv and len(self.recorder):
            path = self.recorder.to_csv(cfg.report.equity_csv)
            self.logger.info("Equity curve written to %s", path)
        close = getattr(self.repository, "close", None)
        if callable(close):
            close()

    def status(self) -> dict[str, Any]:
        """运行状态：调度器状态、tick 数、模型摘要、价格源统计。"""
        if self.scheduler is None or self.feed is None:
            return {"state": "idle", "tick": 0, "models": [], "feed": {}}
        out = self.scheduler.status()
        out["feed"] = self.feed.stats()
        return out

    def _build_summary(self) -> dict[str, Any]:
        summary = self.status()
        board = self.recorder.leaderboard()
        summary["leaderboard"] = board.to_dict(orient="records")
        return summary

    @staticmethod
    def _build_artifacts(cfg: AppConfig) -> dict[str, Any] | None:
        if cfg.report.equity_csv:
            return {"equity_csv": cfg.report.equity_csv}
        return None
