"""加密货币模拟竞技场命令行入口。

通过子命令驱动不同任务：

- `runner`：启动价格源与 tick 调度，多个策略模型在同一行情下用纸面资金对战。
- `test`：运行单元测试。
"""

from __future__ import annotations

import argparse
from dataclasses import dataclass
from typing import Any

from engine.trading_engine import TradingEngine


@dataclass
class CliArgs:
    """命令行参数结构。

    config: 配置文件路径
    task: 要运行的任务类型 (runner/test)
    """
    config: str
    task: str
    max_ticks: int | None = None  # 跑多少个 tick 后退出
    include_live_tests: bool = False


def build_parser() -> argparse.ArgumentParser:
    """构建 CLI 参数解析器。"""
    parser = argparse.ArgumentParser(prog="arena", description="Crypto paper-trading arena")

    def _add_config_arg(p: argparse.ArgumentParser, *, default: Any) -> None:
        p.add_argument(
            "--config",
            default=default,
            help="配置文件路径 (默认: config/config.yml)",
        )

    # 允许 `python main.py --config ... runner`（全局）与 `python main.py runner --config ...`（子命令）
    _add_config_arg(parser, default="config/config.yml")

    sub = parser.add_subparsers(dest="task")

    p_runner = sub.add_parser("runner", help="运行模拟竞技场")
    _add_config_arg(p_runner, default=argparse.SUPPRESS)
    p_runner.add_argument(
        "--max-ticks",
        type=int,
        default=None,
        help="跑多少个 tick 后退出（用于演示/测试）",
    )

    p_test = sub.add_parser("test", help="运行 pytest（默认跳过 live）")
    _add_config_arg(p_test, default=argparse.SUPPRESS)
    p_test.add_argument(
        "--include-live",
        action="store_true",
        help="包含 @pytest.mark.live 测试（会联网）",
    )

    return parser


def parse_args(argv: list[str] | None = None) -> CliArgs:
    """解析命令行参数。

    Parameters
    ----------
    argv:
        传入的参数列表；为 None 时读取 sys.argv。

    Returns
    -------
    CliArgs
        解析后的参数对象。
    """
    parser = build_parser()
    ns = parser.parse_args(argv)
    task = ns.task or "runner"
    config = getattr(ns, "config", "config/config.yml")
    return CliArgs(
        config=str(config),
        task=task,
        max_ticks=getattr(ns, "max_ticks", None),
        include_live_tests=bool(getattr(ns, "include_live", False)),
    )


def main(argv: list[str] | None = None) -> Any:
    """程序主入口。

    Returns
    -------
    Any
        runner 返回运行总结 dict；test 返回 pytest 退出码。
    """
    args = parse_args(argv)

    if args.task == "runner":
        return TradingEngine(cfg_path=args.config, max_ticks=args.max_ticks).run().summary

    if args.task == "test":
        import pytest

        pytest_args = ["-q"]
        if not args.include_live_tests:
            pytest_args += ["-m", "not live"]
        return pytest.main(pytest_args)

    raise ValueError(f"Unknown task: {args.task}")


if __name__ == "__main__":
    main()
