"""
CallbackBus — 驱动生命周期钩子，隔离钩子自身的失败。

钩子只用于观测:
- 钩子抛出的异常被记录并吞掉，绝不改变被包裹操作的结果；
- ``await`` 策略: 逐个等待钩子，每个钩子受 ``timeout`` 限制；
- ``fire_and_forget`` 策略: 钩子作为后台任务运行，end/error 会等待对应的 start 完成。

Bus 通过参数显式传递（dispatcher / loop），不使用进程级全局状态。

Usage::

    bus = CallbackBus(CallbackSet(tool=MyToolCallbacks()), timeout=2.0)
    handle = await bus.start(CallbackCategory.TOOL, "get_weather", {"location": "Paris"})
    await bus.end(handle, "18°C")
"""

from __future__ import annotations

import asyncio
import inspect
import logging
from dataclasses import dataclass
from enum import Enum
from typing import Any, Awaitable, Callable, Optional, Set, Union

from agentwire.callbacks.handlers import HOOK_NAMES, CallbackCategory, CallbackSet

logger = logging.getLogger("agentwire.callbacks")


class CallbackPolicy(str, Enum):
    AWAIT = "await"
    FIRE_AND_FORGET = "fire_and_forget"


@dataclass
class HookHandle:
    """Ties a start event to its end/error event.

    Attributes:
        category: Hook category.
        name: Agent / classifier / tool name.
        context: Value returned by the start hook.
    """

    category: CallbackCategory
    name: str
    context: Any = None
    start_task: Optional["asyncio.Task[Any]"] = None


class CallbackBus:
    """Invokes the installed handler sets around wrapped operations.

    Parameters:
        callbacks: Handler sets per category (all optional).
        policy: ``"await"`` (default) or ``"fire_and_forget"``.
        timeout: Per-hook timeout in seconds for the ``await`` policy and
            for background hooks. ``None`` waits indefinitely.
    """

    def __init__(
        self,
        callbacks: Optional[CallbackSet] = None,
        policy: Union[CallbackPolicy, str] = CallbackPolicy.AWAIT,
        timeout: Optional[float] = 5.0,
    ) -> None:
        self._callbacks = callbacks or CallbackSet()
        self._policy = CallbackPolicy(policy)
        self._timeout = timeout if timeout and timeout > 0 else None
        self._pending: Set["asyncio.Task[Any]"] = set()

    @property
    def callbacks(self) -> CallbackSet:
        return self._callbacks

    @property
    def policy(self) -> CallbackPolicy:
        return self._policy

    @property
    def enabled(self) -> bool:
        return bool(self._callbacks)

    @property
    def pending(self) -> int:
        return len(self._pending)

    # ─── Events ───

    async def start(self, category: Union[CallbackCategory, str], name: str, inputs: Any = None) -> HookHandle:
        category = CallbackCategory(category)
        handle = HookHandle(category=category, name=name)
        hook = self._hook(category, 0)
        if hook is None:
            return handle

        if self._policy is CallbackPolicy.FIRE_AND_FORGET:
            handle.start_task = self._spawn(self._run(hook, name, inputs))
        else:
            handle.context = await self._run(hook, name, inputs)
        return handle

    async def end(self, handle: HookHandle, result: Any = None) -> None:
        await self._finish(handle, 1, result)

    async def error(self, handle: HookHandle, error: BaseException) -> None:
        await self._finish(handle, 2, error)

    async def observe(
        self,
        category: Union[CallbackCategory, str],
        name: str,
        inputs: Any,
        fn: Callable[..., Any],
        *args: Any,
        **kwargs: Any,
    ) -> Any:
        """Run ``fn(*args, **kwargs)`` (sync or async) between start and end/error.

        Exceptions from *fn* are reported to the error hook and re-raised.
        """
        handle = await self.start(category, name, inputs)
        try:
            result = fn(*args, **kwargs)
            if inspect.isawaitable(result):
                result = await result
        except Exception as e:
            await self.error(handle, e)
            raise
        await self.end(handle, result)
        return result

    async def drain(self) -> None:
        """Wait for all background hooks (``fire_and_forget`` policy)."""
        while self._pending:
            await asyncio.gather(*list(self._pending), return_exceptions=True)

    # ─── Internals ───

    def _hook(self, category: CallbackCategory, index: int) -> Optional[Callable[..., Any]]:
        handler = self._callbacks.get(category)
        if handler is None:
            return None
        return getattr(handler, HOOK_NAMES[category][index], None)

    async def _finish(self, handle: HookHandle, index: int, value: Any) -> None:
        hook = self._hook(handle.category, index)
        if hook is None:
            return

        if self._policy is CallbackPolicy.FIRE_AND_FORGET:
            self._spawn(self._chained(handle, hook, value))
        else:
            await self._run(hook, handle.context, value)

    async def _chained(self, handle: HookHandle, hook: Callable[..., Any], value: Any) -> None:
        task = handle.start_task
        if task is not None:
            await asyncio.wait([task])
            handle.context = None if task.cancelled() else task.result()
        await self._run(hook, handle.context, value)

    async def _run(self, hook: Callable[..., Any], *args: Any) -> Any:
        """Call *hook*; log and swallow any failure, return ``None`` on failure."""
        hook_name = getattr(hook, "__qualname__", repr(hook))
        try:
            result = hook(*args)
            if inspect.isawaitable(result):
                if self._timeout is None:
                    result = await result
                else:
                    result = await asyncio.wait_for(result, self._timeout)
            return result
        except asyncio.TimeoutError:
            logger.warning("Callback %s timed out after %ss", hook_name, self._timeout)
        except Exception:
            logger.exception("Callback %s failed", hook_name)
        return None

    def _spawn(self, coro: Awaitable[Any]) -> "asyncio.Task[Any]":
        task = asyncio.ensure_future(coro)
        self._pending.add(task)
        task.add_done_callback(self._pending.discard)
        return task
