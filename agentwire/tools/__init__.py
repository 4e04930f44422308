"""
Tool Calling 框架 — schema 推导、多 provider 导出与调用分发。

Quick Start::

    from agentwire.tools import tool, ToolRegistry, ToolDispatcher

    @tool(enum_values={"units": ["celsius", "fahrenheit"]})
    async def get_weather(location: str, units: str = "celsius") -> str:
        \"\"\"Get the current weather for a location.\"\"\"
        return f"{location}: 18°C"

    registry = ToolRegistry([get_weather])

    # 导出给 LLM
    tools = registry.export_all("claude")

    # 执行模型请求的 tool 调用
    dispatcher = ToolDispatcher(registry, provider="claude")
    message = await dispatcher.dispatch(response)
"""

from agentwire.tools.dispatcher import DispatchPolicy, ToolDispatcher, dispatch
from agentwire.tools.formats import (
    ProviderKind,
    from_provider_format,
    to_provider_format,
)
from agentwire.tools.messages import (
    ConversationMessage,
    ErrorDetail,
    ToolInvocationRequest,
    ToolInvocationResult,
    parse_response,
)
from agentwire.tools.registry import ToolRegistry
from agentwire.tools.schema import (
    ParameterSpec,
    ToolContext,
    ToolDefinition,
    derive_tool,
    tool,
)

__all__ = [
    "ToolRegistry",
    "ToolDefinition",
    "ParameterSpec",
    "ToolContext",
    "tool",
    "derive_tool",
    "ProviderKind",
    "to_provider_format",
    "from_provider_format",
    "ToolDispatcher",
    "DispatchPolicy",
    "dispatch",
    "ConversationMessage",
    "ErrorDetail",
    "ToolInvocationRequest",
    "ToolInvocationResult",
    "parse_response",
]
