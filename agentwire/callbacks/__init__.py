"""
回调体系 — agent / classifier / tool 生命周期钩子。

Quick Start::

    from agentwire.callbacks import CallbackBus, CallbackSet, ToolCallbacks

    class Audit(ToolCallbacks):
        async def on_tool_start(self, tool_name, inputs):
            return tool_name

        async def on_tool_error(self, context, error):
            print(f"{context} failed: {error}")

    bus = CallbackBus(CallbackSet(tool=Audit()), timeout=2.0)
"""

from agentwire.callbacks.bus import CallbackBus, CallbackPolicy, HookHandle
from agentwire.callbacks.handlers import (
    AgentCallbacks,
    CallbackCategory,
    CallbackSet,
    ClassifierCallbacks,
    LoggingCallbacks,
    ToolCallbacks,
)
from agentwire.callbacks.tracing import (
    CallbackExporter,
    ConsoleExporter,
    NullExporter,
    Span,
    SpanKind,
    TracingCallbacks,
)

__all__ = [
    "CallbackBus",
    "CallbackPolicy",
    "HookHandle",
    "AgentCallbacks",
    "ClassifierCallbacks",
    "ToolCallbacks",
    "CallbackCategory",
    "CallbackSet",
    "LoggingCallbacks",
    "TracingCallbacks",
    "Span",
    "SpanKind",
    "ConsoleExporter",
    "CallbackExporter",
    "NullExporter",
]
