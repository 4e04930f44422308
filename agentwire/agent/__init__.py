"""
Agent 层 — 有界 tool 调用循环与递归保护。
"""

from agentwire.agent.loop import (
    LoopResult,
    StopReason,
    ToolCallRecord,
    ToolLoop,
    TurnRecord,
)
from agentwire.agent.recursion import GuardState, RecursionGuard

__all__ = [
    "ToolLoop",
    "LoopResult",
    "StopReason",
    "ToolCallRecord",
    "TurnRecord",
    "RecursionGuard",
    "GuardState",
]
