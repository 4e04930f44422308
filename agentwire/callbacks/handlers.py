"""
Callback handler sets — agent / classifier / tool 三类生命周期钩子。

每类钩子形状相同:
- ``on_*_start(name, inputs)`` 返回一个不透明的 context 值；
- ``on_*_end(context, result)`` 在成功时调用；
- ``on_*_error(context, error)`` 在失败时调用（此时不调用 end）。

子类只需覆盖关心的方法，钩子可以是 async 或普通函数。
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from enum import Enum
from typing import Any, Optional

logger = logging.getLogger("agentwire.callbacks")


class CallbackCategory(str, Enum):
    AGENT = "agent"
    CLASSIFIER = "classifier"
    TOOL = "tool"


# category → (start, end, error) hook names
HOOK_NAMES = {
    CallbackCategory.AGENT: ("on_agent_start", "on_agent_end", "on_agent_error"),
    CallbackCategory.CLASSIFIER: (
        "on_classifier_start",
        "on_classifier_end",
        "on_classifier_error",
    ),
    CallbackCategory.TOOL: ("on_tool_start", "on_tool_end", "on_tool_error"),
}


class AgentCallbacks:
    """Hooks around one agent run (a full tool loop turn)."""

    async def on_agent_start(self, agent_name: str, inputs: Any) -> Any:
        return None

    async def on_agent_end(self, context: Any, result: Any) -> None:
        pass

    async def on_agent_error(self, context: Any, error: BaseException) -> None:
        pass


class ClassifierCallbacks:
    """Hooks around a classifier / router decision."""

    async def on_classifier_start(self, classifier_name: str, inputs: Any) -> Any:
        return None

    async def on_classifier_end(self, context: Any, result: Any) -> None:
        pass

    async def on_classifier_error(self, context: Any, error: BaseException) -> None:
        pass


class ToolCallbacks:
    """Hooks around one tool invocation.

    ``inputs`` is the argument mapping sent by the model; ``error`` is the
    :class:`~agentwire.errors.ToolInvocationError` describing the failure.
    """

    async def on_tool_start(self, tool_name: str, inputs: Any) -> Any:
        return None

    async def on_tool_end(self, context: Any, result: Any) -> None:
        pass

    async def on_tool_error(self, context: Any, error: BaseException) -> None:
        pass


@dataclass
class CallbackSet:
    """At most one handler set per category."""

    agent: Optional[AgentCallbacks] = None
    classifier: Optional[ClassifierCallbacks] = None
    tool: Optional[ToolCallbacks] = None

    @classmethod
    def all(cls, handler: Any) -> "CallbackSet":
        """Use one object implementing every category."""
        return cls(agent=handler, classifier=handler, tool=handler)

    def get(self, category: CallbackCategory) -> Optional[Any]:
        return getattr(self, CallbackCategory(category).value)

    def __bool__(self) -> bool:
        return any(h is not None for h in (self.agent, self.classifier, self.tool))


class LoggingCallbacks(AgentCallbacks, ClassifierCallbacks, ToolCallbacks):
    """Logs every lifecycle event to the ``agentwire.callbacks`` logger."""

    def __init__(self, level: int = logging.INFO) -> None:
        self.level = level

    def _start(self, category: str, name: str, inputs: Any) -> str:
        logger.log(self.level, "[%s] start %s | inputs=%s", category, name, inputs)
        return name

    def _end(self, category: str, name: Any, result: Any) -> None:
        logger.log(self.level, "[%s] end %s | result=%s", category, name, result)

    def _error(self, category: str, name: Any, error: BaseException) -> None:
        logger.log(self.level, "[%s] error %s | %s", category, name, error)

    async def on_agent_start(self, agent_name, inputs):
        return self._start("agent", agent_name, inputs)

    async def on_agent_end(self, context, result):
        self._end("agent", context, result)

    async def on_agent_error(self, context, error):
        self._error("agent", context, error)

    async def on_classifier_start(self, classifier_name, inputs):
        return self._start("classifier", classifier_name, inputs)

    async def on_classifier_end(self, context, result):
        self._end("classifier", context, result)

    async def on_classifier_error(self, context, error):
        self._error("classifier", context, error)

    async def on_tool_start(self, tool_name, inputs):
        return self._start("tool", tool_name, inputs)

    async def on_tool_end(self, context, result):
        self._end("tool", context, result)

    async def on_tool_error(self, context, error):
        self._error("tool", context, error)
