"""
agentwire — multi-agent 编排层的 tool 调用核心。

提供 tool schema 推导与多 provider 导出（Claude / Bedrock / OpenAI）、
带部分失败隔离的 tool 调用分发、有界的 tool 循环，以及 agent / classifier / tool
三类生命周期回调。

Quick Start:
    from agentwire import ToolLoop, ToolRegistry, tool

    @tool
    async def get_weather(location: str, units: str = "celsius") -> str:
        \"\"\"Get the current weather.\"\"\"
        return f"{location}: 18°C"

    loop = ToolLoop(llm_fn=my_llm, registry=ToolRegistry([get_weather]), provider="claude")
    result = await loop.run("Weather in Paris?")
"""

__version__ = "0.1.0"

from agentwire.agent.loop import LoopResult, StopReason, ToolLoop
from agentwire.agent.recursion import RecursionGuard
from agentwire.callbacks.bus import CallbackBus, CallbackPolicy
from agentwire.callbacks.handlers import (
    AgentCallbacks,
    CallbackSet,
    ClassifierCallbacks,
    LoggingCallbacks,
    ToolCallbacks,
)
from agentwire.callbacks.tracing import ConsoleExporter, TracingCallbacks
from agentwire.core.config import OrchestratorConfig
from agentwire.errors import (
    AgentwireError,
    ArgumentError,
    CallableFault,
    SchemaError,
    ToolCancelled,
    ToolInvocationError,
    ToolNotFoundError,
    ToolTimeout,
    UnsupportedFormatError,
)
from agentwire.tools.dispatcher import DispatchPolicy, ToolDispatcher, dispatch
from agentwire.tools.formats import ProviderKind, from_provider_format, to_provider_format
from agentwire.tools.messages import ConversationMessage, ToolInvocationResult
from agentwire.tools.registry import ToolRegistry
from agentwire.tools.schema import ParameterSpec, ToolContext, ToolDefinition, derive_tool, tool
from agentwire.utils.logger import setup_logging

__all__ = [
    "ToolLoop",
    "LoopResult",
    "StopReason",
    "RecursionGuard",
    "CallbackBus",
    "CallbackPolicy",
    "CallbackSet",
    "AgentCallbacks",
    "ClassifierCallbacks",
    "ToolCallbacks",
    "LoggingCallbacks",
    "TracingCallbacks",
    "ConsoleExporter",
    "OrchestratorConfig",
    "AgentwireError",
    "SchemaError",
    "UnsupportedFormatError",
    "ToolInvocationError",
    "ToolNotFoundError",
    "ArgumentError",
    "CallableFault",
    "ToolTimeout",
    "ToolCancelled",
    "ToolDispatcher",
    "DispatchPolicy",
    "dispatch",
    "ProviderKind",
    "to_provider_format",
    "from_provider_format",
    "ConversationMessage",
    "ToolInvocationResult",
    "ToolRegistry",
    "ToolDefinition",
    "ParameterSpec",
    "ToolContext",
    "derive_tool",
    "tool",
    "setup_logging",
    "__version__",
]
