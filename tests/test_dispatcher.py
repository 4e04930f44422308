"""
测试 ToolDispatcher: 响应解析、参数校验、部分失败隔离、并发策略、超时与取消、回调顺序。
"""

import asyncio
import enum
import json

import pytest

from agentwire.callbacks.bus import CallbackBus
from agentwire.callbacks.handlers import CallbackSet, ToolCallbacks
from agentwire.tools.dispatcher import DispatchPolicy, ToolDispatcher, dispatch
from agentwire.tools.messages import parse_response
from agentwire.tools.registry import ToolRegistry
from agentwire.tools.schema import ToolContext, tool


# ══════════════════════════════════════════════
# Fake provider responses
# ══════════════════════════════════════════════


def claude_response(calls, text="Let me check."):
    content = [{"type": "text", "text": text}] if text else []
    for i, (name, args) in enumerate(calls):
        content.append({"type": "tool_use", "id": f"toolu_{i}", "name": name, "input": args})
    return {"role": "assistant", "content": content, "stop_reason": "tool_use"}


def openai_response(calls, content=None):
    return {
        "role": "assistant",
        "content": content,
        "tool_calls": [
            {
                "id": f"call_{i}",
                "type": "function",
                "function": {"name": name, "arguments": json.dumps(args)},
            }
            for i, (name, args) in enumerate(calls)
        ],
    }


def bedrock_response(calls, text=""):
    content = [{"text": text}] if text else []
    for i, (name, args) in enumerate(calls):
        content.append({"toolUse": {"toolUseId": f"tooluse_{i}", "name": name, "input": args}})
    return {"output": {"message": {"role": "assistant", "content": content}}, "stopReason": "tool_use"}


class Recorder(ToolCallbacks):
    def __init__(self, events):
        self.events = events

    async def on_tool_start(self, tool_name, inputs):
        self.events.append(f"start:{tool_name}")
        return tool_name

    async def on_tool_end(self, context, result):
        self.events.append(f"end:{context}")

    async def on_tool_error(self, context, error):
        self.events.append(f"error:{context}:{type(error).__name__}")


# ══════════════════════════════════════════════
# Fixtures
# ══════════════════════════════════════════════


@pytest.fixture
def events():
    return []


@pytest.fixture
def registry(events):
    @tool(enum_values={"units": ["celsius", "fahrenheit"]})
    async def get_weather(location: str, units: str = "celsius") -> str:
        """Get the weather."""
        events.append("call:get_weather")
        return f"{location}: 18 {units}"

    @tool
    def add(a: int, b: int) -> int:
        """Add two numbers."""
        return a + b

    @tool
    async def boom() -> str:
        events.append("call:boom")
        raise RuntimeError("kaboom")

    @tool
    async def whoami(ctx: ToolContext) -> dict:
        return {"tool": ctx.tool_name, "call_id": ctx.call_id, "user": ctx.extra.get("user")}

    @tool
    async def stuck(seconds: float = 10.0) -> str:
        await asyncio.sleep(seconds)
        return "done"

    return ToolRegistry([get_weather, add, boom, whoami, stuck])


# ══════════════════════════════════════════════
# Parsing
# ══════════════════════════════════════════════


class TestParseResponse:
    """provider 响应解析测试。"""

    def test_claude(self):
        parsed = parse_response(claude_response([("add", {"a": 1, "b": 2})]), "claude")
        assert parsed.text == "Let me check."
        assert parsed.requests[0].tool_name == "add"
        assert parsed.requests[0].invocation_id == "toolu_0"
        assert parsed.requests[0].arguments == {"a": 1, "b": 2}

    def test_openai(self):
        parsed = parse_response(openai_response([("add", {"a": 1, "b": 2})]), "openai")
        assert parsed.text == ""
        assert parsed.requests[0].invocation_id == "call_0"
        assert parsed.requests[0].arguments == {"a": 1, "b": 2}

    def test_openai_chat_completion_envelope(self):
        completion = {"choices": [{"message": openai_response([("add", {"a": 1, "b": 1})])}]}
        assert parse_response(completion, "openai").requests[0].tool_name == "add"

    def test_bedrock_converse_envelope(self):
        parsed = parse_response(bedrock_response([("add", {"a": 1, "b": 2})], text="ok"), "bedrock")
        assert parsed.text == "ok"
        assert parsed.requests[0].invocation_id == "tooluse_0"

    def test_sdk_objects(self):
        class Block:
            def __init__(self, **kw):
                self.__dict__.update(kw)

        response = Block(content=[
            Block(type="text", text="hi"),
            Block(type="tool_use", id="toolu_x", name="add", input={"a": 1, "b": 2}),
        ])
        parsed = parse_response(response, "claude")
        assert parsed.text == "hi"
        assert parsed.requests[0].invocation_id == "toolu_x"

    def test_text_only(self):
        parsed = parse_response({"content": [{"type": "text", "text": "Done."}]}, "claude")
        assert parsed.has_tool_calls is False
        assert parsed.text == "Done."

    def test_bad_openai_arguments(self):
        response = {"tool_calls": [{"id": "c1", "function": {"name": "add", "arguments": "{not json"}}]}
        parsed = parse_response(response, "openai")
        assert parsed.requests[0].parse_error is not None


# ══════════════════════════════════════════════
# Dispatch
# ══════════════════════════════════════════════


class TestDispatch:
    """dispatch 核心行为测试。"""

    @pytest.mark.asyncio
    async def test_single_call(self, registry):
        dispatcher = ToolDispatcher(registry, provider="claude")
        message = await dispatcher.dispatch(claude_response([("get_weather", {"location": "Paris"})]))

        assert message.role == "user"
        assert len(message.results) == 1
        result = message.results[0]
        assert result.invocation_id == "toolu_0"
        assert result.payload == "Paris: 18 celsius"
        assert result.error is None

    @pytest.mark.asyncio
    async def test_partial_failure_isolation(self, registry):
        response = claude_response([
            ("add", {"a": 1, "b": 2}),
            ("nonexistent_tool", {}),
            ("get_weather", {"location": "Oslo", "units": "fahrenheit"}),
        ])
        message = await ToolDispatcher(registry).dispatch(response)

        assert len(message.results) == 3
        assert [r.is_error for r in message.results] == [False, True, False]
        assert message.results[0].payload == 3
        assert message.results[1].error.kind == "ToolNotFoundError"
        assert "not found" in message.results[1].error.message.lower()
        assert message.results[2].payload == "Oslo: 18 fahrenheit"

    @pytest.mark.asyncio
    async def test_enum_violation_is_argument_error_result(self, registry, events):
        response = claude_response([("get_weather", {"location": "Paris", "units": "kelvin"})])
        message = await ToolDispatcher(registry).dispatch(response)

        result = message.results[0]
        assert result.is_error
        assert result.error.kind == "ArgumentError"
        assert "kelvin" in result.error.message
        assert "call:get_weather" not in events

    @pytest.mark.asyncio
    async def test_unknown_and_missing_arguments(self, registry):
        response = claude_response([
            ("add", {"a": 1, "b": 2, "c": 3}),
            ("add", {"a": 1}),
        ])
        message = await ToolDispatcher(registry).dispatch(response)
        assert [r.error.kind for r in message.results] == ["ArgumentError", "ArgumentError"]
        assert "unknown argument" in message.results[0].error.message
        assert "missing required argument" in message.results[1].error.message

    @pytest.mark.asyncio
    async def test_handler_exception_is_contained(self, registry):
        message = await ToolDispatcher(registry).dispatch(claude_response([("boom", {}), ("add", {"a": 2, "b": 2})]))

        assert message.results[0].error.kind == "CallableFault"
        assert "kaboom" in message.results[0].error.message
        assert message.results[1].payload == 4

    @pytest.mark.asyncio
    async def test_handler_raising_cancelled_error_is_contained(self, events):
        @tool
        async def flaky() -> str:
            raise asyncio.CancelledError()

        @tool
        async def ok() -> str:
            return "fine"

        registry = ToolRegistry([flaky, ok])
        bus = CallbackBus(CallbackSet(tool=Recorder(events)))
        message = await ToolDispatcher(registry, callbacks=bus).dispatch(
            claude_response([("flaky", {}), ("ok", {})])
        )

        assert len(message.results) == 2
        assert message.results[0].error.kind == "ToolCancelled"
        assert message.results[1].payload == "fine"
        assert "error:flaky:ToolCancelled" in events

    @pytest.mark.asyncio
    async def test_undecodable_arguments(self, registry):
        response = {"tool_calls": [{"id": "c1", "function": {"name": "add", "arguments": "{oops"}}]}
        message = await ToolDispatcher(registry, provider="openai").dispatch(response)
        assert message.results[0].error.kind == "ArgumentError"

    @pytest.mark.asyncio
    async def test_tool_context_injection(self, registry):
        dispatcher = ToolDispatcher(registry)
        message = await dispatcher.dispatch(claude_response([("whoami", {})]), extra={"user": "u1"})
        assert message.results[0].payload == {"tool": "whoami", "call_id": "toolu_0", "user": "u1"}

    @pytest.mark.asyncio
    async def test_text_only_response(self, registry):
        message = await ToolDispatcher(registry).dispatch({"content": [{"type": "text", "text": "Hi"}]})
        assert message.results == []
        assert message.to_provider_messages() == []

    @pytest.mark.asyncio
    async def test_module_level_dispatch(self, registry):
        message = await dispatch(
            openai_response([("add", {"a": 3, "b": 4})]), registry, provider="openai"
        )
        assert message.role == "tool"
        assert message.results[0].payload == 7


# ══════════════════════════════════════════════
# Policies
# ══════════════════════════════════════════════


class TestDispatchPolicy:
    """sequential / parallel 策略测试。"""

    @pytest.fixture
    def timed_registry(self):
        finished = []

        @tool
        async def wait(label: str, delay: float) -> str:
            await asyncio.sleep(delay)
            finished.append(label)
            return label

        return ToolRegistry([wait]), finished

    @pytest.mark.asyncio
    async def test_sequential_runs_in_order(self, timed_registry):
        registry, finished = timed_registry
        response = claude_response([
            ("wait", {"label": "slow", "delay": 0.05}),
            ("wait", {"label": "fast", "delay": 0.0}),
        ])
        message = await ToolDispatcher(registry, policy="sequential").dispatch(response)

        assert finished == ["slow", "fast"]
        assert [r.payload for r in message.results] == ["slow", "fast"]

    @pytest.mark.asyncio
    async def test_parallel_keeps_request_order(self, timed_registry):
        registry, finished = timed_registry
        response = claude_response([
            ("wait", {"label": "slow", "delay": 0.05}),
            ("wait", {"label": "fast", "delay": 0.0}),
        ])
        message = await ToolDispatcher(registry, policy=DispatchPolicy.PARALLEL).dispatch(response)

        assert finished == ["fast", "slow"]
        assert [r.payload for r in message.results] == ["slow", "fast"]
        assert [r.invocation_id for r in message.results] == ["toolu_0", "toolu_1"]

    def test_unknown_policy(self, timed_registry):
        registry, _ = timed_registry
        with pytest.raises(ValueError):
            ToolDispatcher(registry, policy="random")


# ══════════════════════════════════════════════
# Timeout & cancellation
# ══════════════════════════════════════════════


class TestTimeoutAndCancel:
    """超时与取消测试。"""

    @pytest.mark.asyncio
    async def test_timeout(self, registry):
        dispatcher = ToolDispatcher(registry, tool_timeout=0.05)
        message = await asyncio.wait_for(
            dispatcher.dispatch(claude_response([("stuck", {}), ("add", {"a": 1, "b": 1})])),
            timeout=2,
        )
        assert message.results[0].error.kind == "ToolTimeout"
        assert message.results[1].payload == 2

    @pytest.mark.asyncio
    async def test_cancel_before_dispatch(self, registry):
        cancel = asyncio.Event()
        cancel.set()
        message = await ToolDispatcher(registry).dispatch(
            claude_response([("add", {"a": 1, "b": 1}), ("add", {"a": 2, "b": 2})]),
            cancel_event=cancel,
        )
        assert len(message.results) == 2
        assert all(r.error.kind == "ToolCancelled" for r in message.results)

    @pytest.mark.asyncio
    async def test_cancel_in_flight(self, registry):
        cancel = asyncio.Event()
        asyncio.get_running_loop().call_later(0.05, cancel.set)

        message = await asyncio.wait_for(
            ToolDispatcher(registry).dispatch(
                claude_response([("stuck", {}), ("add", {"a": 1, "b": 1})]),
                cancel_event=cancel,
            ),
            timeout=2,
        )
        assert [r.error.kind for r in message.results] == ["ToolCancelled", "ToolCancelled"]

    @pytest.mark.asyncio
    async def test_fast_tool_unaffected_by_timeout(self, registry):
        dispatcher = ToolDispatcher(registry, tool_timeout=1.0)
        message = await dispatcher.dispatch(claude_response([("add", {"a": 5, "b": 5})]))
        assert message.results[0].payload == 10

    @pytest.mark.asyncio
    async def test_sync_handler_in_thread(self, registry):
        dispatcher = ToolDispatcher(registry, tool_timeout=1.0, sync_in_thread=True)
        message = await dispatcher.dispatch(claude_response([("add", {"a": 2, "b": 3})]))
        assert message.results[0].payload == 5


# ══════════════════════════════════════════════
# Callbacks
# ══════════════════════════════════════════════


class TestDispatchCallbacks:
    """tool 回调顺序测试。"""

    @pytest.mark.asyncio
    async def test_success_start_then_end(self, registry, events):
        bus = CallbackBus(CallbackSet(tool=Recorder(events)))
        await ToolDispatcher(registry, callbacks=bus).dispatch(
            claude_response([("get_weather", {"location": "Paris"})])
        )
        assert events == ["start:get_weather", "call:get_weather", "end:get_weather"]

    @pytest.mark.asyncio
    async def test_failure_start_then_error_no_end(self, registry, events):
        await ToolDispatcher(registry, callbacks=CallbackSet(tool=Recorder(events))).dispatch(
            claude_response([("boom", {})])
        )
        assert events == ["start:boom", "call:boom", "error:boom:CallableFault"]

    @pytest.mark.asyncio
    async def test_validation_failure_reports_error(self, registry, events):
        await ToolDispatcher(registry, callbacks=CallbackSet(tool=Recorder(events))).dispatch(
            claude_response([("get_weather", {"location": "Paris", "units": "kelvin"})])
        )
        assert events == ["start:get_weather", "error:get_weather:ArgumentError"]

    @pytest.mark.asyncio
    async def test_failing_hook_does_not_change_outcome(self, registry):
        class Broken(ToolCallbacks):
            async def on_tool_start(self, tool_name, inputs):
                raise ValueError("hook bug")

            async def on_tool_end(self, context, result):
                raise ValueError("hook bug")

        message = await ToolDispatcher(registry, callbacks=CallbackSet(tool=Broken())).dispatch(
            claude_response([("add", {"a": 1, "b": 2})])
        )
        assert message.results[0].payload == 3


# ══════════════════════════════════════════════
# Result rendering
# ══════════════════════════════════════════════


class TestResultMessages:
    """结果消息渲染测试。"""

    @pytest.mark.asyncio
    async def test_claude_rendering(self, registry):
        message = await ToolDispatcher(registry, provider="claude").dispatch(
            claude_response([("add", {"a": 1, "b": 2}), ("nope", {})])
        )
        rendered = message.to_provider_messages()
        assert len(rendered) == 1
        assert rendered[0]["role"] == "user"
        ok, bad = rendered[0]["content"]
        assert ok == {"type": "tool_result", "tool_use_id": "toolu_0", "content": "3"}
        assert bad["tool_use_id"] == "toolu_1"
        assert bad["is_error"] is True
        assert bad["content"].startswith("Error: ToolNotFoundError")

    @pytest.mark.asyncio
    async def test_bedrock_rendering(self, registry):
        message = await ToolDispatcher(registry, provider="bedrock").dispatch(
            bedrock_response([("whoami", {}), ("boom", {})])
        )
        rendered = message.to_provider_messages()
        assert len(rendered) == 1
        first, second = (block["toolResult"] for block in rendered[0]["content"])
        assert first["toolUseId"] == "tooluse_0"
        assert first["status"] == "success"
        assert first["content"][0]["json"]["tool"] == "whoami"
        assert second["status"] == "error"
        assert "kaboom" in second["content"][0]["text"]

    @pytest.mark.asyncio
    async def test_openai_rendering(self, registry):
        message = await ToolDispatcher(registry, provider="openai").dispatch(
            openai_response([("add", {"a": 1, "b": 2}), ("get_weather", {"location": "北京"})])
        )
        rendered = message.to_provider_messages()
        assert rendered == [
            {"role": "tool", "tool_call_id": "call_0", "content": "3"},
            {"role": "tool", "tool_call_id": "call_1", "content": "北京: 18 celsius"},
        ]
        assert message.has_errors is False


class TestHookIsolation:
    """钩子只能观察，不能改变 tool 的参数。"""

    @pytest.fixture
    def echo_registry(self):
        @tool
        async def echo(location: str) -> str:
            return location

        return ToolRegistry([echo])

    class Scrubber(ToolCallbacks):
        async def on_tool_start(self, tool_name, inputs):
            inputs["location"] = "***"
            return inputs

    @pytest.mark.asyncio
    @pytest.mark.parametrize("policy", ["await", "fire_and_forget"])
    async def test_start_hook_mutating_inputs(self, echo_registry, policy):
        bus = CallbackBus(CallbackSet(tool=self.Scrubber()), policy=policy)
        response = claude_response([("echo", {"location": "Paris"})])
        message = await ToolDispatcher(echo_registry, callbacks=bus).dispatch(response)
        await bus.drain()

        assert message.results[0].payload == "Paris"
        assert response["content"][1]["input"] == {"location": "Paris"}


class TestOuterCancellation:
    """dispatch 自身被取消时，正在运行的 tool 也会被取消。"""

    @pytest.mark.asyncio
    async def test_cancelling_dispatch_cancels_tool(self):
        started = asyncio.Event()
        outcome = []

        @tool
        async def slow() -> str:
            started.set()
            try:
                await asyncio.sleep(10)
            except asyncio.CancelledError:
                outcome.append("cancelled")
                raise
            return "done"

        dispatcher = ToolDispatcher(ToolRegistry([slow]), tool_timeout=5.0)
        task = asyncio.ensure_future(dispatcher.dispatch(claude_response([("slow", {})])))
        await asyncio.wait_for(started.wait(), timeout=1)
        task.cancel()

        with pytest.raises(asyncio.CancelledError):
            await task
        await asyncio.sleep(0.01)
        assert outcome == ["cancelled"]


class Units(enum.Enum):
    C = "celsius"
    F = "fahrenheit"


class TestEnumArguments:

    @pytest.mark.asyncio
    async def test_handler_gets_enum_member(self):
        @tool
        async def convert(value: float, units: Units = Units.C) -> str:
            return f"{value} {units.value}"

        message = await ToolDispatcher(ToolRegistry([convert])).dispatch(
            claude_response([("convert", {"value": 20, "units": "fahrenheit"}), ("convert", {"value": 5})])
        )
        assert [r.payload for r in message.results] == ["20 fahrenheit", "5 celsius"]
        json.dumps(ToolRegistry([convert]).export_all("openai"))
