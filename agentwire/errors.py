"""
异常体系 — tool 注册、导出与调用分发中使用的全部异常。

两类异常:
- 注册 / 导出期错误 (SchemaError, UnsupportedFormatError): 属于编程错误，直接抛给调用方。
- 调用期错误 (ToolInvocationError 子类): 由 dispatcher 捕获，转换为 tool result 反馈给 LLM。
"""

from __future__ import annotations

from typing import Any, Optional


class AgentwireError(Exception):
    """Base class for every error raised by agentwire."""


# ──────────────────────────────────────────────
# Registration / export time
# ──────────────────────────────────────────────


class SchemaError(AgentwireError):
    """Raised when a tool definition is malformed or self-contradictory."""

    def __init__(self, tool_name: str, reason: str) -> None:
        self.tool_name = tool_name
        self.reason = reason
        super().__init__(f"Invalid schema for tool {tool_name!r}: {reason}")


class UnsupportedFormatError(AgentwireError):
    """Raised when a provider kind has no exporter."""

    def __init__(self, provider: Any) -> None:
        self.provider = provider
        super().__init__(f"Unsupported provider format: {provider!r}")


# ──────────────────────────────────────────────
# Invocation time (captured into tool results)
# ──────────────────────────────────────────────


class ToolInvocationError(AgentwireError):
    """Base class for failures that become an error tool result."""

    def __init__(self, tool_name: str, message: str) -> None:
        self.tool_name = tool_name
        super().__init__(message)


class ToolNotFoundError(ToolInvocationError):
    """The requested tool is not registered."""

    def __init__(self, tool_name: str) -> None:
        super().__init__(tool_name, f"Tool not found: {tool_name!r}")


class ArgumentError(ToolInvocationError):
    """Arguments supplied by the model do not match the tool's parameters."""

    def __init__(
        self, tool_name: str, message: str, parameter: Optional[str] = None
    ) -> None:
        self.parameter = parameter
        super().__init__(tool_name, message)


class CallableFault(ToolInvocationError):
    """The tool handler itself raised."""

    def __init__(self, tool_name: str, cause: BaseException) -> None:
        self.cause = cause
        super().__init__(tool_name, f"{type(cause).__name__}: {cause}")


class ToolTimeout(ToolInvocationError):
    def __init__(self, tool_name: str, timeout: float) -> None:
        self.timeout = timeout
        super().__init__(tool_name, f"Tool {tool_name!r} timed out after {timeout:g}s")


class ToolCancelled(ToolInvocationError):
    def __init__(self, tool_name: str) -> None:
        super().__init__(tool_name, f"Tool {tool_name!r} was cancelled")
