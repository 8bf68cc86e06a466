"""模拟引擎层（engine）。

`TradingEngine.run() -> EngineResult` 是唯一的运行入口；
tick 调度在 `engine.scheduler`，单个模型的推进在 `engine.model_runner`。
命令行入口由仓库根目录 `main.py` 统一承载。
"""
