"""
Tracing — 把生命周期回调转换成结构化 Span。

Span 类型:
- agent: 一次完整的 tool loop 运行
- classifier: 一次路由 / 分类决策
- tool: 一次工具执行

``TracingCallbacks`` 同时实现三类回调: start 钩子创建 Span 并作为 context 返回，
end / error 钩子结束 Span 并交给 exporter。同一个实例产生的 Span 共享 trace_id。
"""

from __future__ import annotations

import logging
import time
import uuid
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Callable, Dict, Optional, Protocol, runtime_checkable

from agentwire.callbacks.handlers import AgentCallbacks, ClassifierCallbacks, ToolCallbacks

logger = logging.getLogger("agentwire.tracing")


class SpanKind(str, Enum):
    AGENT = "agent"
    CLASSIFIER = "classifier"
    TOOL = "tool"


@dataclass
class Span:
    """A single unit of work in a trace.

    Attributes:
        span_id: Unique ID for this span.
        trace_id: Shared by all spans from one TracingCallbacks instance.
        name: Agent / classifier / tool name.
        kind: Span type.
        start_time: Unix timestamp (seconds).
        end_time: Unix timestamp (seconds), 0 if not ended.
        attributes: Key-value metadata (inputs, output).
        status: "ok", "error", or "running".
        error: Error message if status is "error".
    """

    name: str = ""
    kind: SpanKind = SpanKind.TOOL
    trace_id: str = ""
    span_id: str = ""
    start_time: float = 0.0
    end_time: float = 0.0
    attributes: Dict[str, Any] = field(default_factory=dict)
    status: str = "running"
    error: str = ""

    def __post_init__(self) -> None:
        if not self.span_id:
            self.span_id = uuid.uuid4().hex[:12]
        if not self.start_time:
            self.start_time = time.time()

    @property
    def duration_ms(self) -> float:
        end = self.end_time if self.end_time > 0 else time.time()
        return (end - self.start_time) * 1000

    def end(self, status: str = "ok", error: str = "") -> None:
        self.end_time = time.time()
        self.status = status
        if error:
            self.error = error

    def to_dict(self) -> Dict[str, Any]:
        d: Dict[str, Any] = {
            "span_id": self.span_id,
            "trace_id": self.trace_id,
            "name": self.name,
            "kind": self.kind.value,
            "start_time": self.start_time,
            "end_time": self.end_time,
            "duration_ms": round(self.duration_ms, 2),
            "status": self.status,
            "attributes": self.attributes,
        }
        if self.error:
            d["error"] = self.error
        return d


# ──────────────────────────────────────────────
# Exporters
# ──────────────────────────────────────────────


@runtime_checkable
class SpanExporter(Protocol):
    def export(self, span: Span) -> None: ...


class NullExporter:
    def export(self, span: Span) -> None:
        pass


class ConsoleExporter:
    """Logs each finished span."""

    def export(self, span: Span) -> None:
        logger.info(
            "[Trace] %s %s | %s | %.1fms | %s",
            span.kind.value.upper(),
            span.name,
            span.status,
            span.duration_ms,
            span.attributes,
        )


class CallbackExporter:
    """Calls a user-provided function for each span.

    Usage::

        spans = []
        exporter = CallbackExporter(lambda span: spans.append(span.to_dict()))
    """

    def __init__(self, callback: Callable[[Span], None]) -> None:
        self._callback = callback

    def export(self, span: Span) -> None:
        self._callback(span)


# ──────────────────────────────────────────────
# TracingCallbacks
# ──────────────────────────────────────────────


class TracingCallbacks(AgentCallbacks, ClassifierCallbacks, ToolCallbacks):
    """Handler set for every category that records one span per operation.

    Usage::

        tracing = TracingCallbacks(ConsoleExporter())
        bus = CallbackBus(CallbackSet.all(tracing))
    """

    def __init__(self, exporter: Optional[SpanExporter] = None) -> None:
        self._exporter = exporter or NullExporter()
        self.trace_id = uuid.uuid4().hex

    def _open(self, kind: SpanKind, name: str, inputs: Any) -> Span:
        return Span(name=name, kind=kind, trace_id=self.trace_id, attributes={"inputs": inputs})

    def _close(self, span: Any, result: Any = None, error: Optional[BaseException] = None) -> None:
        if not isinstance(span, Span):
            return
        if error is not None:
            span.end(status="error", error=str(error))
        else:
            span.attributes["output"] = result
            span.end(status="ok")
        self._exporter.export(span)

    async def on_agent_start(self, agent_name, inputs):
        return self._open(SpanKind.AGENT, agent_name, inputs)

    async def on_agent_end(self, context, result):
        self._close(context, result)

    async def on_agent_error(self, context, error):
        self._close(context, error=error)

    async def on_classifier_start(self, classifier_name, inputs):
        return self._open(SpanKind.CLASSIFIER, classifier_name, inputs)

    async def on_classifier_end(self, context, result):
        self._close(context, result)

    async def on_classifier_error(self, context, error):
        self._close(context, error=error)

    async def on_tool_start(self, tool_name, inputs):
        return self._open(SpanKind.TOOL, tool_name, inputs)

    async def on_tool_end(self, context, result):
        self._close(context, result)

    async def on_tool_error(self, context, error):
        self._close(context, error=error)
