"""
轻量日志封装。

Notes
-----
`setup_logger` 会避免重复添加 handler，否则多次调用会出现重复日志。
"""

from __future__ import annotations

import logging

_LEVELS = {
    "DEBUG": logging.DEBUG,
    "INFO": logging.INFO,
    "WARNING": logging.WARNING,
    "ERROR": logging.ERROR,
}


def parse_level(level: str | int | None, default: int = logging.INFO) -> int:
    """把配置里的字符串级别转换为 logging 常量。"""
    if level is None:
        return default
    if isinstance(level, int):
        return level
    return _LEVELS.get(str(level).strip().upper(), default)


def setup_logger(name: str = "arena", level: int | str | None = None) -> logging.Logger:
    """
    创建或获取命名 logger。

    Parameters
    ----------
    name:
        Logger 名称。
    level:
        日志级别；为 None 时沿用已有级别（首次创建默认 INFO）。

    Returns
    -------
    logging.Logger
        已配置的 logger。
    """
    logger = logging.getLogger(name)
    if level is not None:
        logger.setLevel(parse_level(level))
    elif logger.level == logging.NOTSET:
        logger.setLevel(logging.INFO)
    logger.propagate = False

    has_stream = any(isinstance(h, logging.StreamHandler) for h in logger.handlers)
    if not has_stream:
        ch = logging.StreamHandler()
        fmt = logging.Formatter("%(asctime)s [%(levelname)s] %(name)s - %(message)s")
        ch.setFormatter(fmt)
        logger.addHandler(ch)

    return logger


def set_global_level(level: int | str) -> None:
    """统一调整所有已创建 logger 的级别（CLI 读取配置后调用）。"""
    lvl = parse_level(level)
    for name in list(logging.root.manager.loggerDict.keys()):
        existing = logging.getLogger(name)
        if existing.handlers:
            existing.setLevel(lvl)
