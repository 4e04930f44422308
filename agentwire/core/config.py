"""
编排层配置管理。

支持从环境变量 (.env) 或代码直接构造。
Provider: "claude" | "bedrock" | "openai"。
Dispatch: "sequential" | "parallel"。
Callback: "await" | "fire_and_forget"。
"""

from __future__ import annotations

import logging
import os
from dataclasses import dataclass, field
from typing import Dict, Optional

from dotenv import load_dotenv

from agentwire.utils.logger import parse_levels

logger = logging.getLogger("agentwire.config")

_PROVIDERS = {"claude", "bedrock", "openai"}
_DISPATCH_POLICIES = {"sequential", "parallel"}
_CALLBACK_POLICIES = {"await", "fire_and_forget"}


def _to_bool(value: Optional[str], default: bool = False) -> bool:
    if value is None:
        return default
    return value.strip().lower() in {"1", "true", "yes", "on"}


def _choice(name: str, allowed: set, default: str) -> str:
    value = os.getenv(name, default).strip().lower()
    if value not in allowed:
        logger.warning("%s=%r is not one of %s, using %r", name, value, sorted(allowed), default)
        return default
    return value


def _number(name: str, default: float, cast=float):
    raw = os.getenv(name)
    if raw is None or not raw.strip():
        return default
    try:
        value = cast(raw.strip())
    except ValueError:
        logger.warning("%s=%r is not a valid number, using %r", name, raw, default)
        return default
    if value < 0:
        logger.warning("%s=%r must not be negative, using %r", name, raw, default)
        return default
    return value


@dataclass
class OrchestratorConfig:
    """Tool loop 运行配置。"""

    # ── Provider ──
    provider: str = "claude"

    # ── Tool loop ──
    max_recursions: int = 5
    dispatch_policy: str = "sequential"
    tool_timeout: float = 0.0  # 0 = 不限时

    # ── Callbacks ──
    callback_policy: str = "await"
    callback_timeout: float = 5.0

    # ── 调试 ──
    debug: bool = False
    log_file: str = ""
    log_levels: Dict[str, str] = field(default_factory=dict)  # 子系统 → 级别

    # ── 扩展配置 (业务层自行使用) ──
    extras: dict = field(default_factory=dict)

    def __post_init__(self) -> None:
        if self.provider not in _PROVIDERS:
            raise ValueError(f"Unknown provider: {self.provider!r}")
        if self.max_recursions < 0:
            raise ValueError(f"max_recursions must be >= 0, got {self.max_recursions}")
        if self.dispatch_policy not in _DISPATCH_POLICIES:
            raise ValueError(f"Unknown dispatch_policy: {self.dispatch_policy!r}")
        if self.callback_policy not in _CALLBACK_POLICIES:
            raise ValueError(f"Unknown callback_policy: {self.callback_policy!r}")

    @classmethod
    def from_env(cls, env_file: str = ".env") -> "OrchestratorConfig":
        """
        从 .env 文件和环境变量中加载配置。

        环境变量优先级高于 .env 文件；非法取值回退到默认值并记录警告。
        """
        load_dotenv(env_file, override=False)

        return cls(
            provider=_choice("AGENTWIRE_PROVIDER", _PROVIDERS, "claude"),
            max_recursions=_number("AGENTWIRE_MAX_RECURSIONS", 5, cast=int),
            dispatch_policy=_choice("AGENTWIRE_DISPATCH_POLICY", _DISPATCH_POLICIES, "sequential"),
            tool_timeout=_number("AGENTWIRE_TOOL_TIMEOUT", 0.0),
            callback_policy=_choice("AGENTWIRE_CALLBACK_POLICY", _CALLBACK_POLICIES, "await"),
            callback_timeout=_number("AGENTWIRE_CALLBACK_TIMEOUT", 5.0),
            debug=_to_bool(os.getenv("DEBUG")),
            log_file=os.getenv("LOG_FILE", "").strip(),
            log_levels=parse_levels(os.getenv("AGENTWIRE_LOG_LEVELS", "")),
        )

    def summary(self) -> str:
        """返回配置摘要。"""
        return (
            f"Provider: {self.provider.upper()}\n"
            f"Max recursions: {self.max_recursions}\n"
            f"Dispatch: {self.dispatch_policy}\n"
            f"Tool timeout: {self.tool_timeout or 'none'}\n"
            f"Callbacks: {self.callback_policy} (timeout {self.callback_timeout}s)\n"
            f"Debug: {self.debug}"
        )
