"""
日志配置工具。

agentwire 按子系统划分 logger，可单独调整级别::

    tools      agentwire.tools       schema 推导、dispatch
    agent      agentwire.agent       tool loop
    callbacks  agentwire.callbacks   回调与钩子失败
    tracing    agentwire.tracing     ConsoleExporter 输出的 span
    config     agentwire.config      配置回退警告

Usage::

    setup_logging(levels={"callbacks": "WARNING", "tools": logging.DEBUG})
"""

from __future__ import annotations

import logging
import os
from logging.handlers import RotatingFileHandler
from typing import Dict, Mapping, Optional, Union

LOG_FORMAT = "%(asctime)s | %(name)s | %(levelname)s | %(message)s"

PACKAGE_LOGGER = "agentwire"
SUBSYSTEMS = ("tools", "agent", "callbacks", "tracing", "config")

# provider SDK 的 HTTP 客户端
_NOISY_LOGGERS = ("httpx", "httpcore", "urllib3", "botocore", "openai", "anthropic")

Level = Union[int, str]


def resolve_level(level: Level) -> int:
    """Accept ``logging.DEBUG`` or ``"debug"`` / ``"DEBUG"``."""
    if isinstance(level, int):
        return level
    value = logging.getLevelName(str(level).strip().upper())
    if not isinstance(value, int):
        raise ValueError(f"Unknown log level: {level!r}")
    return value


def subsystem_logger(name: str) -> logging.Logger:
    """``"tools"`` → ``agentwire.tools``; full dotted names are kept as is."""
    if name == PACKAGE_LOGGER or name.startswith(PACKAGE_LOGGER + "."):
        return logging.getLogger(name)
    if name not in SUBSYSTEMS:
        raise ValueError(f"Unknown agentwire subsystem: {name!r} (expected one of {SUBSYSTEMS})")
    return logging.getLogger(f"{PACKAGE_LOGGER}.{name}")


def setup_logging(
    level: Level = logging.INFO,
    log_file: str = "",
    debug: bool = False,
    levels: Optional[Mapping[str, Level]] = None,
) -> logging.Logger:
    """
    初始化统一的日志配置。

    Args:
        level: 默认日志级别。
        log_file: 日志文件路径（为空则仅输出到终端）。
        debug: 是否开启 DEBUG 模式（覆盖 level）。
        levels: 子系统级别，如 ``{"callbacks": "WARNING"}``。

    Returns:
        ``agentwire`` 包的 Logger 实例。
    """
    root_level = logging.DEBUG if debug else resolve_level(level)
    logging.basicConfig(level=root_level, format=LOG_FORMAT, force=True)

    for name in _NOISY_LOGGERS:
        logging.getLogger(name).setLevel(logging.WARNING)

    # 重新配置时先清除上一次的子系统级别
    for name in SUBSYSTEMS:
        subsystem_logger(name).setLevel(logging.NOTSET)
    for name, sub_level in (levels or {}).items():
        subsystem_logger(name).setLevel(resolve_level(sub_level))

    if log_file:
        log_dir = os.path.dirname(log_file)
        if log_dir:
            os.makedirs(log_dir, exist_ok=True)
        fh = RotatingFileHandler(
            log_file, maxBytes=5 * 1024 * 1024, backupCount=3, encoding="utf-8"
        )
        fh.setFormatter(logging.Formatter(LOG_FORMAT))
        fh.setLevel(root_level)
        logging.getLogger().addHandler(fh)

    return logging.getLogger(PACKAGE_LOGGER)


def parse_levels(raw: str) -> Dict[str, str]:
    """Parse ``"tools=DEBUG,callbacks=WARNING"`` into a level mapping.

    Malformed entries are skipped with a warning.
    """
    levels: Dict[str, str] = {}
    for item in raw.split(","):
        item = item.strip()
        if not item:
            continue
        name, sep, value = item.partition("=")
        name, value = name.strip(), value.strip()
        if not sep or not name or not value:
            logging.getLogger("agentwire.config").warning("Ignoring log level entry %r", item)
            continue
        levels[name] = value
    return levels


def setup_logging_from_config(config) -> logging.Logger:
    """Apply the ``debug`` / ``log_file`` / ``log_levels`` fields of an OrchestratorConfig."""
    return setup_logging(log_file=config.log_file, debug=config.debug, levels=config.log_levels)
