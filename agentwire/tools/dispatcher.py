"""
ToolDispatcher — 将 LLM 返回的 tool 调用请求分发到已注册的 handler。

流程（每个请求）:
    resolve → 参数校验 → 注入 ToolContext → 执行 (sync / async) → 收集结果

- 部分失败隔离: 单个请求失败（未注册、参数错误、handler 异常、超时、取消）
  只会产生一个 error result，不影响同批次其他请求，也不会抛出 dispatch。
- ``sequential``（默认）按顺序执行；``parallel`` 并发执行。两种模式下
  结果都按请求顺序返回。
- 每次调用都包裹在 tool 回调（start / end / error）中。

Usage::

    dispatcher = ToolDispatcher(registry, provider="claude")
    message = await dispatcher.dispatch(response)
    messages.extend(message.to_provider_messages())
"""

from __future__ import annotations

import asyncio
import copy
import inspect
import logging
from enum import Enum
from typing import Any, Dict, List, Mapping, Optional, Sequence, Union

from agentwire.callbacks.bus import CallbackBus
from agentwire.callbacks.handlers import CallbackCategory, CallbackSet
from agentwire.errors import (
    ArgumentError,
    CallableFault,
    ToolCancelled,
    ToolInvocationError,
    ToolTimeout,
)
from agentwire.tools.formats import ProviderKind, resolve_provider
from agentwire.tools.messages import (
    ConversationMessage,
    ErrorDetail,
    ToolInvocationRequest,
    ToolInvocationResult,
    parse_response,
    result_role,
)
from agentwire.tools.registry import ToolRegistry
from agentwire.tools.schema import ToolContext, ToolDefinition

logger = logging.getLogger("agentwire.tools")


class DispatchPolicy(str, Enum):
    SEQUENTIAL = "sequential"
    PARALLEL = "parallel"


def _as_bus(callbacks: Union[CallbackBus, CallbackSet, None]) -> CallbackBus:
    if isinstance(callbacks, CallbackBus):
        return callbacks
    return CallbackBus(callbacks)


class ToolDispatcher:
    """Executes tool invocation requests against a :class:`ToolRegistry`.

    Parameters:
        registry: Read-only tool registry.
        provider: Provider kind used to parse responses and render results.
        policy: ``"sequential"`` (default) or ``"parallel"``.
        callbacks: A :class:`CallbackBus` (or bare :class:`CallbackSet`).
        tool_timeout: Per-invocation timeout in seconds (``None`` = no limit).
        sync_in_thread: Run synchronous handlers in a worker thread so that
            timeouts and cancellation do not wait on them.
    """

    def __init__(
        self,
        registry: ToolRegistry,
        provider: Union[ProviderKind, str] = ProviderKind.CLAUDE,
        policy: Union[DispatchPolicy, str] = DispatchPolicy.SEQUENTIAL,
        callbacks: Union[CallbackBus, CallbackSet, None] = None,
        tool_timeout: Optional[float] = None,
        sync_in_thread: bool = False,
    ) -> None:
        self.registry = registry
        self.provider = resolve_provider(provider)
        self.policy = DispatchPolicy(policy)
        self.callbacks = _as_bus(callbacks)
        self.tool_timeout = tool_timeout if tool_timeout and tool_timeout > 0 else None
        self.sync_in_thread = sync_in_thread

    async def dispatch(
        self,
        response: Any,
        cancel_event: Optional[asyncio.Event] = None,
        extra: Optional[Mapping[str, Any]] = None,
    ) -> ConversationMessage:
        """Run every tool call found in a provider *response*.

        Text blocks in the response are not tool calls and are ignored here.

        Parameters:
            response: Raw provider response (dict or SDK object).
            cancel_event: Set it to stop waiting on in-flight tools.
            extra: Shared data exposed to handlers through ``ToolContext.extra``.

        Returns:
            A :class:`ConversationMessage` with one result per request,
            in request order.
        """
        parsed = parse_response(response, self.provider)
        return await self.dispatch_requests(parsed.requests, cancel_event, extra)

    async def dispatch_requests(
        self,
        requests: Sequence[ToolInvocationRequest],
        cancel_event: Optional[asyncio.Event] = None,
        extra: Optional[Mapping[str, Any]] = None,
    ) -> ConversationMessage:
        results: List[ToolInvocationResult]
        if self.policy is DispatchPolicy.PARALLEL and len(requests) > 1:
            # gather preserves argument order
            results = list(
                await asyncio.gather(*(self._execute(r, cancel_event, extra) for r in requests))
            )
        else:
            results = []
            for request in requests:
                results.append(await self._execute(request, cancel_event, extra))

        return ConversationMessage(
            role=result_role(self.provider),
            results=results,
            provider=self.provider,
        )

    # ─── Single invocation ───

    async def _execute(
        self,
        request: ToolInvocationRequest,
        cancel_event: Optional[asyncio.Event],
        extra: Optional[Mapping[str, Any]],
    ) -> ToolInvocationResult:
        if cancel_event is not None and cancel_event.is_set():
            return _failure(request, ToolCancelled(request.tool_name))

        # hooks get their own copy, binding always reads request.arguments
        handle = await self.callbacks.start(
            CallbackCategory.TOOL, request.tool_name, copy.deepcopy(request.arguments)
        )
        try:
            payload = await self._run(request, cancel_event, extra)
        except ToolInvocationError as e:
            error: ToolInvocationError = e
        except Exception as e:
            error = CallableFault(request.tool_name, e)
        else:
            await self.callbacks.end(handle, payload)
            return ToolInvocationResult(
                invocation_id=request.invocation_id,
                tool_name=request.tool_name,
                payload=payload,
            )

        logger.warning("Tool call failed: %s(%s) -> %s", request.tool_name, request.arguments, error)
        await self.callbacks.error(handle, error)
        return _failure(request, error)

    async def _run(
        self,
        request: ToolInvocationRequest,
        cancel_event: Optional[asyncio.Event],
        extra: Optional[Mapping[str, Any]],
    ) -> Any:
        if request.parse_error:
            raise ArgumentError(request.tool_name, request.parse_error)

        definition = self.registry.resolve(request.tool_name)
        call_args = definition.bind_arguments(request.arguments)

        if definition.handler is None:
            raise CallableFault(request.tool_name, RuntimeError("tool has no handler"))

        if definition.context_param:
            call_args[definition.context_param] = ToolContext(
                tool_name=request.tool_name,
                call_id=request.invocation_id,
                extra=dict(extra or {}),
            )

        return await self._supervised(definition, call_args, cancel_event)

    async def _call(self, definition: ToolDefinition, call_args: Dict[str, Any]) -> Any:
        handler = definition.handler
        if not definition.is_async and self.sync_in_thread:
            return await asyncio.to_thread(handler, **call_args)
        result = handler(**call_args)
        if inspect.isawaitable(result):
            result = await result
        return result

    async def _supervised(
        self,
        definition: ToolDefinition,
        call_args: Dict[str, Any],
        cancel_event: Optional[asyncio.Event],
    ) -> Any:
        """Run the handler as a task bounded by the timeout and cancel signal.

        A handler that raises ``CancelledError`` itself yields ``ToolCancelled``.
        A handler that ignores cancellation keeps running in the background;
        it is never awaited once it has been given up on.
        """
        task = asyncio.ensure_future(self._call(definition, call_args))
        waiters = {task}
        cancel_waiter = None
        if cancel_event is not None:
            cancel_waiter = asyncio.ensure_future(cancel_event.wait())
            waiters.add(cancel_waiter)

        try:
            done, _ = await asyncio.wait(
                waiters, timeout=self.tool_timeout, return_when=asyncio.FIRST_COMPLETED
            )
        except asyncio.CancelledError:
            # dispatch itself was cancelled
            task.cancel()
            raise
        finally:
            if cancel_waiter is not None:
                cancel_waiter.cancel()

        if task in done:
            if task.cancelled():
                raise ToolCancelled(definition.name)
            exc = task.exception()
            if isinstance(exc, ToolInvocationError):
                raise exc
            if exc is not None:
                raise CallableFault(definition.name, exc) from exc
            return task.result()

        task.cancel()
        task.add_done_callback(_discard_outcome)
        if cancel_event is not None and cancel_event.is_set():
            raise ToolCancelled(definition.name)
        raise ToolTimeout(definition.name, self.tool_timeout or 0)


def _discard_outcome(task: "asyncio.Future[Any]") -> None:
    if not task.cancelled() and task.exception() is not None:
        logger.debug("Abandoned tool task finished with %r", task.exception())


def _failure(request: ToolInvocationRequest, error: ToolInvocationError) -> ToolInvocationResult:
    return ToolInvocationResult(
        invocation_id=request.invocation_id,
        tool_name=request.tool_name,
        error=ErrorDetail(kind=type(error).__name__, message=str(error)),
    )


async def dispatch(
    response: Any,
    registry: ToolRegistry,
    callbacks: Union[CallbackBus, CallbackSet, None] = None,
    *,
    provider: Union[ProviderKind, str] = ProviderKind.CLAUDE,
    policy: Union[DispatchPolicy, str] = DispatchPolicy.SEQUENTIAL,
    tool_timeout: Optional[float] = None,
    cancel_event: Optional[asyncio.Event] = None,
) -> ConversationMessage:
    """One-shot helper around :meth:`ToolDispatcher.dispatch`."""
    dispatcher = ToolDispatcher(
        registry,
        provider=provider,
        policy=policy,
        callbacks=callbacks,
        tool_timeout=tool_timeout,
    )
    return await dispatcher.dispatch(response, cancel_event=cancel_event)
