"""
Provider 格式导出 — 将规范化的 ToolDefinition 渲染为各 LLM provider 的 tool 声明格式。

每个 provider 对应一个纯函数，不修改源定义::

    claude   {"name", "description", "input_schema"}
    bedrock  {"toolSpec": {"name", "description", "inputSchema": {"json"}}}
    openai   {"type": "function", "function": {"name", "description", "parameters"}}
"""

from __future__ import annotations

import copy
from enum import Enum
from typing import Any, Callable, Dict, List, Mapping

from agentwire.errors import SchemaError, UnsupportedFormatError
from agentwire.tools.schema import ParameterSpec, ToolDefinition


class ProviderKind(str, Enum):
    CLAUDE = "claude"
    BEDROCK = "bedrock"
    OPENAI = "openai"


def resolve_provider(provider: Any) -> ProviderKind:
    """Normalize a ``ProviderKind`` or its string value.

    Raises:
        UnsupportedFormatError: for anything else.
    """
    if isinstance(provider, ProviderKind):
        return provider
    if isinstance(provider, str):
        try:
            return ProviderKind(provider.strip().lower())
        except ValueError:
            pass
    raise UnsupportedFormatError(provider)


# ──────────────────────────────────────────────
# Export
# ──────────────────────────────────────────────


def _schema(definition: ToolDefinition) -> Dict[str, Any]:
    # exported dicts never share enum/default objects with the definition
    return copy.deepcopy(definition.to_json_schema())


def to_claude(definition: ToolDefinition) -> Dict[str, Any]:
    return {
        "name": definition.name,
        "description": definition.description,
        "input_schema": _schema(definition),
    }


def to_bedrock(definition: ToolDefinition) -> Dict[str, Any]:
    return {
        "toolSpec": {
            "name": definition.name,
            "description": definition.description,
            "inputSchema": {"json": _schema(definition)},
        }
    }


def to_openai(definition: ToolDefinition) -> Dict[str, Any]:
    return {
        "type": "function",
        "function": {
            "name": definition.name,
            "description": definition.description,
            "parameters": _schema(definition),
        },
    }


_EXPORTERS: Dict[ProviderKind, Callable[[ToolDefinition], Dict[str, Any]]] = {
    ProviderKind.CLAUDE: to_claude,
    ProviderKind.BEDROCK: to_bedrock,
    ProviderKind.OPENAI: to_openai,
}


def to_provider_format(definition: ToolDefinition, provider: Any) -> Dict[str, Any]:
    """Render *definition* in the tool-declaration format of *provider*."""
    return _EXPORTERS[resolve_provider(provider)](definition)


# ──────────────────────────────────────────────
# Re-parse
# ──────────────────────────────────────────────


def _unwrap(spec: Mapping[str, Any], kind: ProviderKind) -> Dict[str, Any]:
    """Return ``{"name", "description", "schema"}`` from a provider declaration."""
    if kind is ProviderKind.CLAUDE:
        return {
            "name": spec.get("name", ""),
            "description": spec.get("description", ""),
            "schema": spec.get("input_schema") or {},
        }
    if kind is ProviderKind.BEDROCK:
        inner = spec.get("toolSpec") or {}
        return {
            "name": inner.get("name", ""),
            "description": inner.get("description", ""),
            "schema": (inner.get("inputSchema") or {}).get("json") or {},
        }
    inner = spec.get("function") or {}
    return {
        "name": inner.get("name", ""),
        "description": inner.get("description", ""),
        "schema": inner.get("parameters") or {},
    }


def extract_parameters(schema: Mapping[str, Any]) -> List[ParameterSpec]:
    """Extract top-level :class:`ParameterSpec` entries from a JSON Schema object."""
    props = schema.get("properties")
    if not isinstance(props, dict):
        return []

    required_raw = schema.get("required")
    required_set = set()
    if isinstance(required_raw, list):
        required_set = {r for r in required_raw if isinstance(r, str)}

    params: List[ParameterSpec] = []
    for name, prop in props.items():
        if not isinstance(prop, dict):
            prop = {}
        enum = prop.get("enum")
        params.append(
            ParameterSpec(
                name=name,
                type=prop.get("type"),
                description=prop.get("description", ""),
                required=name in required_set,
                default=prop.get("default"),
                enum=list(enum) if isinstance(enum, list) else None,
            )
        )
    return params


def from_provider_format(spec: Mapping[str, Any], provider: Any) -> ToolDefinition:
    """Re-parse a provider tool declaration into a handler-less ToolDefinition.

    Raises:
        UnsupportedFormatError: for an unknown provider kind.
        SchemaError: if the declaration has no name or an unsupported type.
    """
    kind = resolve_provider(provider)
    if not isinstance(spec, Mapping):
        raise SchemaError("<unknown>", f"{kind.value} tool declaration must be a mapping")
    parts = _unwrap(spec, kind)
    return ToolDefinition.create(
        name=parts["name"],
        description=parts["description"] or "",
        parameters=extract_parameters(parts["schema"]),
    )
