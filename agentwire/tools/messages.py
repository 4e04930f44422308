"""
消息模型 — provider 响应解析与 tool result 消息渲染。

- ``parse_response``: 从 Claude / Bedrock / OpenAI 的响应中拆出文本块与 tool 调用请求。
- ``ConversationMessage``: dispatcher 的输出，按请求顺序聚合所有 ToolInvocationResult，
  通过 ``to_provider_messages()`` 渲染为目标 provider 期望的消息格式。

响应既可以是 dict，也可以是 SDK 返回的对象（属性访问）。
"""

from __future__ import annotations

import json
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional, Union

from agentwire.tools.formats import ProviderKind, resolve_provider

# ──────────────────────────────────────────────
# Types
# ──────────────────────────────────────────────


@dataclass
class ToolInvocationRequest:
    """A model's request to run one tool.

    ``parse_error`` is set when the provider sent arguments that could not
    be decoded; the dispatcher turns it into an ``ArgumentError`` result.
    """

    tool_name: str
    invocation_id: str
    arguments: Dict[str, Any] = field(default_factory=dict)
    parse_error: Optional[str] = None


@dataclass
class ErrorDetail:
    kind: str
    message: str

    def __str__(self) -> str:
        return f"{self.kind}: {self.message}"


@dataclass
class ToolInvocationResult:
    """Outcome of one invocation: ``payload`` on success, ``error`` on failure."""

    invocation_id: str
    tool_name: str
    payload: Any = None
    error: Optional[ErrorDetail] = None

    @property
    def is_error(self) -> bool:
        return self.error is not None

    def content_text(self) -> str:
        """Serialize the payload (or error) as text for the provider."""
        if self.error is not None:
            return f"Error: {self.error}"
        if isinstance(self.payload, str):
            return self.payload
        return json.dumps(self.payload, ensure_ascii=False, default=str)


@dataclass
class TextBlock:
    text: str


@dataclass
class ParsedResponse:
    text_blocks: List[TextBlock] = field(default_factory=list)
    requests: List[ToolInvocationRequest] = field(default_factory=list)

    @property
    def text(self) -> str:
        return "".join(b.text for b in self.text_blocks)

    @property
    def has_tool_calls(self) -> bool:
        return bool(self.requests)


@dataclass
class ConversationMessage:
    """Aggregated tool-result message returned by the dispatcher.

    Attributes:
        role: ``"user"`` for Claude/Bedrock, ``"tool"`` for OpenAI.
        results: One entry per request, in request order.
        provider: Target provider kind used for rendering.
    """

    role: str
    results: List[ToolInvocationResult] = field(default_factory=list)
    provider: ProviderKind = ProviderKind.CLAUDE

    @property
    def has_errors(self) -> bool:
        return any(r.is_error for r in self.results)

    def to_provider_messages(self) -> List[Dict[str, Any]]:
        """Render as the list of messages to append to the conversation.

        Claude and Bedrock take a single user message with one result block
        per invocation; OpenAI takes one ``tool`` message per invocation.
        """
        if not self.results:
            return []
        if self.provider is ProviderKind.OPENAI:
            return [
                {"role": "tool", "tool_call_id": r.invocation_id, "content": r.content_text()}
                for r in self.results
            ]
        if self.provider is ProviderKind.BEDROCK:
            return [{"role": self.role, "content": [_bedrock_result(r) for r in self.results]}]
        return [{"role": self.role, "content": [_claude_result(r) for r in self.results]}]


def _claude_result(result: ToolInvocationResult) -> Dict[str, Any]:
    block: Dict[str, Any] = {
        "type": "tool_result",
        "tool_use_id": result.invocation_id,
        "content": result.content_text(),
    }
    if result.is_error:
        block["is_error"] = True
    return block


def _bedrock_result(result: ToolInvocationResult) -> Dict[str, Any]:
    if result.is_error:
        content: List[Dict[str, Any]] = [{"text": result.content_text()}]
    elif isinstance(result.payload, (dict, list)):
        content = [{"json": result.payload}]
    else:
        content = [{"text": result.content_text()}]
    return {
        "toolResult": {
            "toolUseId": result.invocation_id,
            "content": content,
            "status": "error" if result.is_error else "success",
        }
    }


def user_message(text: str, provider: Union[ProviderKind, str]) -> Dict[str, Any]:
    if resolve_provider(provider) is ProviderKind.BEDROCK:
        return {"role": "user", "content": [{"text": text}]}
    return {"role": "user", "content": text}


def result_role(provider: Union[ProviderKind, str]) -> str:
    return "tool" if resolve_provider(provider) is ProviderKind.OPENAI else "user"


# ──────────────────────────────────────────────
# Parsing
# ──────────────────────────────────────────────


def _get(obj: Any, key: str, default: Any = None) -> Any:
    """Get attribute or dict key, with fallback."""
    if isinstance(obj, dict):
        return obj.get(key, default)
    return getattr(obj, key, default)


def _decode_arguments(raw: Any) -> Any:
    if raw is None or raw == "":
        return {}
    if isinstance(raw, str):
        return json.loads(raw)
    if isinstance(raw, dict):
        return dict(raw)
    return raw


def _parse_claude(response: Any) -> ParsedResponse:
    parsed = ParsedResponse()
    content = _get(response, "content") or []
    if isinstance(content, str):
        parsed.text_blocks.append(TextBlock(content))
        return parsed
    for block in content:
        block_type = _get(block, "type")
        if block_type == "text":
            parsed.text_blocks.append(TextBlock(_get(block, "text", "")))
        elif block_type == "tool_use":
            parsed.requests.append(
                ToolInvocationRequest(
                    tool_name=_get(block, "name", ""),
                    invocation_id=_get(block, "id", ""),
                    arguments=_get(block, "input") or {},
                )
            )
    return parsed


def _parse_bedrock(response: Any) -> ParsedResponse:
    # Converse API envelope: {"output": {"message": {...}}}
    output = _get(response, "output")
    if output is not None and _get(output, "message") is not None:
        response = _get(output, "message")

    parsed = ParsedResponse()
    for block in _get(response, "content") or []:
        if _get(block, "text") is not None:
            parsed.text_blocks.append(TextBlock(_get(block, "text")))
        tool_use = _get(block, "toolUse")
        if tool_use is not None:
            parsed.requests.append(
                ToolInvocationRequest(
                    tool_name=_get(tool_use, "name", ""),
                    invocation_id=_get(tool_use, "toolUseId", ""),
                    arguments=_get(tool_use, "input") or {},
                )
            )
    return parsed


def _parse_openai(response: Any) -> ParsedResponse:
    # Accept a full ChatCompletion as well as the bare message
    choices = _get(response, "choices")
    if choices:
        response = _get(choices[0], "message") or response

    parsed = ParsedResponse()
    content = _get(response, "content")
    if content:
        parsed.text_blocks.append(TextBlock(content))

    for tc in _get(response, "tool_calls") or []:
        func = _get(tc, "function") or tc
        request = ToolInvocationRequest(
            tool_name=_get(func, "name", "") or "",
            invocation_id=_get(tc, "id", "") or "",
        )
        try:
            request.arguments = _decode_arguments(_get(func, "arguments"))
        except (json.JSONDecodeError, TypeError) as e:
            request.parse_error = f"Could not decode arguments: {e}"
        parsed.requests.append(request)
    return parsed


_PARSERS = {
    ProviderKind.CLAUDE: _parse_claude,
    ProviderKind.BEDROCK: _parse_bedrock,
    ProviderKind.OPENAI: _parse_openai,
}


def parse_response(response: Any, provider: Union[ProviderKind, str]) -> ParsedResponse:
    """Split a provider response into text blocks and tool invocation requests."""
    if response is None:
        return ParsedResponse()
    return _PARSERS[resolve_provider(provider)](response)


def assistant_message(response: Any, provider: Union[ProviderKind, str]) -> Dict[str, Any]:
    """Build the assistant turn to append to history before the tool results.

    Text blocks are carried over unchanged.
    """
    kind = resolve_provider(provider)
    if kind is ProviderKind.OPENAI:
        parsed = _parse_openai(response)
        message: Dict[str, Any] = {"role": "assistant", "content": parsed.text}
        if parsed.requests:
            message["tool_calls"] = [
                {
                    "id": r.invocation_id,
                    "type": "function",
                    "function": {
                        "name": r.tool_name,
                        "arguments": json.dumps(r.arguments, ensure_ascii=False),
                    },
                }
                for r in parsed.requests
            ]
        return message

    if kind is ProviderKind.BEDROCK:
        output = _get(response, "output")
        if output is not None and _get(output, "message") is not None:
            response = _get(output, "message")
    return {"role": "assistant", "content": _plain(_get(response, "content") or [])}


def _plain(content: Any) -> Any:
    """Convert SDK content block objects into plain dicts."""
    if isinstance(content, (str, dict)):
        return content
    if isinstance(content, list):
        return [_plain(item) for item in content]
    for attr in ("model_dump", "to_dict"):
        fn = getattr(content, attr, None)
        if callable(fn):
            return fn()
    return content
