"""
ToolLoop — 有界的 tool 调用循环。

核心流程:
    User Input → LLM → [tool calls?] → Dispatch → Feed Results → LLM → ... → Final Output

- 每个 tool 调用批次消耗 RecursionGuard 的一个单位；
  额度耗尽后，最后一次响应即使仍请求 tool 也作为最终结果返回。
- 整次运行包裹在 agent 回调中，每个 tool 调用包裹在 tool 回调中。
- 支持 Claude / Bedrock / OpenAI 三种 provider 的响应与消息格式（通过 llm_fn 注入）。

Usage::

    async def my_llm(messages, tools=None):
        return await client.messages.create(
            model=..., max_tokens=1024, messages=messages, tools=tools,
        )

    loop = ToolLoop(llm_fn=my_llm, registry=registry, provider="claude", max_recursions=5)
    result = await loop.run("What's the weather in Paris?")
    print(result.final_output)
    print(result.stopped_reason)     # StopReason.COMPLETED
"""

from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Awaitable, Callable, Dict, List, Mapping, Optional, Union

from agentwire.agent.recursion import RecursionGuard
from agentwire.callbacks.bus import CallbackBus
from agentwire.callbacks.handlers import CallbackCategory, CallbackSet
from agentwire.core.config import OrchestratorConfig
from agentwire.tools.dispatcher import DispatchPolicy, ToolDispatcher
from agentwire.tools.formats import ProviderKind, resolve_provider
from agentwire.tools.messages import assistant_message, parse_response, user_message
from agentwire.tools.registry import ToolRegistry

logger = logging.getLogger("agentwire.agent")

# returned by _call_llm when cancel_event wins the race
_CANCELLED = object()


# ──────────────────────────────────────────────
# Types
# ──────────────────────────────────────────────

# LLM function signature:
#   async def llm_fn(messages: List[dict], tools: Optional[List[dict]]) -> provider response
# ``tools`` is already in the provider's declaration format.
LLMFn = Callable[[List[Dict[str, Any]], Optional[List[Dict[str, Any]]]], Awaitable[Any]]


class StopReason(str, Enum):
    COMPLETED = "completed"
    RECURSION_EXHAUSTED = "recursion_exhausted"
    CANCELLED = "cancelled"
    ERROR = "error"


@dataclass
class ToolCallRecord:
    """Record of a single tool invocation within a turn."""

    tool_name: str
    invocation_id: str
    arguments: Dict[str, Any]
    result: Any = None
    error: Optional[str] = None


@dataclass
class TurnRecord:
    """Record of a single LLM call and the tool batch it requested."""

    turn_number: int
    text: str = ""
    tool_calls: List[ToolCallRecord] = field(default_factory=list)
    is_final: bool = False


@dataclass
class LoopResult:
    """Final result of a ToolLoop run.

    Attributes:
        final_output: Text of the last LLM response.
        final_response: The last raw provider response.
        turns: Turn-by-turn trace.
        tool_calls_count: Total tool invocations across all cycles.
        cycles: Dispatch cycles consumed.
        stopped_reason: Why the loop stopped.
        messages: Full message history, in provider format.
        error: The exception that stopped the loop, if any.
    """

    final_output: str = ""
    final_response: Any = None
    turns: List[TurnRecord] = field(default_factory=list)
    tool_calls_count: int = 0
    cycles: int = 0
    stopped_reason: StopReason = StopReason.COMPLETED
    messages: List[Dict[str, Any]] = field(default_factory=list)
    error: Optional[BaseException] = None

    @property
    def total_turns(self) -> int:
        return len(self.turns)


# ──────────────────────────────────────────────
# ToolLoop
# ──────────────────────────────────────────────


class ToolLoop:
    """LLM → tool calls → results → LLM → ... with a hard cycle cap.

    Parameters:
        llm_fn: Async function that calls the provider.
        registry: Tools available to the model.
        provider: ``"claude"``, ``"bedrock"`` or ``"openai"``.
        name: Agent name reported to agent callbacks.
        max_recursions: Maximum tool-call cycles per run (default 5, 0 disables tools).
        policy: Dispatch policy (``"sequential"`` or ``"parallel"``).
        callbacks: :class:`CallbackBus` or :class:`CallbackSet`.
        tool_timeout: Per-invocation timeout in seconds.
    """

    def __init__(
        self,
        llm_fn: LLMFn,
        registry: ToolRegistry,
        provider: Union[ProviderKind, str] = ProviderKind.CLAUDE,
        name: str = "agent",
        max_recursions: int = 5,
        policy: Union[DispatchPolicy, str] = DispatchPolicy.SEQUENTIAL,
        callbacks: Union[CallbackBus, CallbackSet, None] = None,
        tool_timeout: Optional[float] = None,
    ) -> None:
        # validates early, the per-run guard is built in run()
        RecursionGuard(max_recursions)
        self.llm_fn = llm_fn
        self.registry = registry
        self.provider = resolve_provider(provider)
        self.name = name
        self.max_recursions = max_recursions
        self.callbacks = callbacks if isinstance(callbacks, CallbackBus) else CallbackBus(callbacks)
        self.dispatcher = ToolDispatcher(
            registry,
            provider=self.provider,
            policy=policy,
            callbacks=self.callbacks,
            tool_timeout=tool_timeout,
        )

    @classmethod
    def from_config(
        cls,
        config: OrchestratorConfig,
        llm_fn: LLMFn,
        registry: ToolRegistry,
        callbacks: Optional[CallbackSet] = None,
        name: str = "agent",
    ) -> "ToolLoop":
        bus = CallbackBus(
            callbacks,
            policy=config.callback_policy,
            timeout=config.callback_timeout,
        )
        return cls(
            llm_fn=llm_fn,
            registry=registry,
            provider=config.provider,
            name=name,
            max_recursions=config.max_recursions,
            policy=config.dispatch_policy,
            callbacks=bus,
            tool_timeout=config.tool_timeout or None,
        )

    async def run(
        self,
        user_input: str,
        conversation_history: Optional[List[Dict[str, Any]]] = None,
        cancel_event: Optional[asyncio.Event] = None,
        extra: Optional[Mapping[str, Any]] = None,
    ) -> LoopResult:
        """Execute one conversation turn.

        Parameters:
            user_input: The user's message.
            conversation_history: Prior messages, already in provider format.
            cancel_event: Checked before every LLM call and tool invocation, and
                raced against both while they are in flight.
            extra: Shared data exposed to tools via ``ToolContext.extra``.

        Returns:
            LoopResult with the final output, trace, and statistics.
        """
        handle = await self.callbacks.start(CallbackCategory.AGENT, self.name, user_input)
        result = await self._run(user_input, conversation_history, cancel_event, extra)
        if result.error is not None:
            await self.callbacks.error(handle, result.error)
        else:
            await self.callbacks.end(handle, result)
        return result

    async def _run(
        self,
        user_input: str,
        conversation_history: Optional[List[Dict[str, Any]]],
        cancel_event: Optional[asyncio.Event],
        extra: Optional[Mapping[str, Any]],
    ) -> LoopResult:
        messages: List[Dict[str, Any]] = list(conversation_history or [])
        messages.append(user_message(user_input, self.provider))

        tools_schema = self.registry.export_all(self.provider) if len(self.registry) > 0 else None

        guard = RecursionGuard(self.max_recursions)
        result = LoopResult(messages=messages)
        turn_number = 0

        while True:
            if cancel_event is not None and cancel_event.is_set():
                result.stopped_reason = StopReason.CANCELLED
                break

            turn_number += 1
            turn = TurnRecord(turn_number=turn_number)

            try:
                response = await self._call_llm(messages, tools_schema, cancel_event)
            except Exception as e:
                logger.error("ToolLoop %s: LLM call failed at turn %d: %s", self.name, turn_number, e)
                result.stopped_reason = StopReason.ERROR
                result.final_output = f"Error: {e}"
                result.error = e
                break

            if response is _CANCELLED:
                logger.info("ToolLoop %s: cancelled while waiting for the LLM", self.name)
                result.stopped_reason = StopReason.CANCELLED
                break

            parsed = parse_response(response, self.provider)
            turn.text = parsed.text
            result.final_response = response
            result.final_output = parsed.text

            # --- Final output (no tool calls) ---
            if not parsed.has_tool_calls:
                turn.is_final = True
                result.turns.append(turn)
                messages.append(assistant_message(response, self.provider))
                result.stopped_reason = StopReason.COMPLETED
                break

            # --- Cycle budget spent: hard stop ---
            if not guard.consume():
                turn.is_final = True
                result.turns.append(turn)
                result.stopped_reason = StopReason.RECURSION_EXHAUSTED
                logger.info(
                    "ToolLoop %s: recursion limit %d reached, returning last response",
                    self.name, self.max_recursions,
                )
                break

            # --- Execute tool calls ---
            messages.append(assistant_message(response, self.provider))
            tool_message = await self.dispatcher.dispatch_requests(parsed.requests, cancel_event, extra)

            for request, outcome in zip(parsed.requests, tool_message.results):
                turn.tool_calls.append(
                    ToolCallRecord(
                        tool_name=request.tool_name,
                        invocation_id=request.invocation_id,
                        arguments=request.arguments,
                        result=outcome.payload,
                        error=str(outcome.error) if outcome.error else None,
                    )
                )
            result.tool_calls_count += len(tool_message.results)
            messages.extend(tool_message.to_provider_messages())
            result.turns.append(turn)

        result.cycles = guard.cycles
        return result

    async def _call_llm(
        self,
        messages: List[Dict[str, Any]],
        tools_schema: Optional[List[Dict[str, Any]]],
        cancel_event: Optional[asyncio.Event],
    ) -> Any:
        """Call the LLM, giving up as soon as *cancel_event* is set.

        Returns ``_CANCELLED`` when the call was abandoned.
        """
        if cancel_event is None:
            return await self.llm_fn(messages, tools_schema)

        call = asyncio.ensure_future(self.llm_fn(messages, tools_schema))
        waiter = asyncio.ensure_future(cancel_event.wait())
        try:
            await asyncio.wait({call, waiter}, return_when=asyncio.FIRST_COMPLETED)
        except asyncio.CancelledError:
            call.cancel()
            raise
        finally:
            waiter.cancel()

        if not call.done():
            call.cancel()
            return _CANCELLED
        if call.cancelled():
            return _CANCELLED
        return call.result()
