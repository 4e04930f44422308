"""
ToolRegistry — 只读的有序 tool 注册表。

构造时一次性注册全部 tool（ToolDefinition 或普通函数，后者自动推导 schema），
之后不可增删，可被多个并发 dispatch 安全共享。
"""

from __future__ import annotations

import logging
from typing import Any, Callable, Dict, Iterable, Iterator, List, Optional, Union

from agentwire.errors import SchemaError, ToolNotFoundError
from agentwire.tools.formats import to_provider_format
from agentwire.tools.schema import ToolDefinition, derive_tool

logger = logging.getLogger("agentwire.tools")


class ToolRegistry:
    """Ordered, immutable collection of tools.

    Usage::

        @tool(enum_values={"units": ["celsius", "fahrenheit"]})
        async def get_weather(location: str, units: str = "celsius") -> str:
            return f"{location}: 25°C"

        registry = ToolRegistry([get_weather])
        registry.export_all("claude")
        registry.resolve("get_weather")

    Raises:
        SchemaError: on an empty or duplicate tool name.
    """

    def __init__(self, tools: Iterable[Union[ToolDefinition, Callable[..., Any]]] = ()) -> None:
        self._tools: Dict[str, ToolDefinition] = {}
        for item in tools:
            definition = item if isinstance(item, ToolDefinition) else derive_tool(item)
            if definition.name in self._tools:
                raise SchemaError(definition.name, "tool name registered twice")
            self._tools[definition.name] = definition
            logger.debug("Tool registered: %s", definition.name)

    def resolve(self, name: str) -> ToolDefinition:
        """Return the definition registered as *name*.

        Raises:
            ToolNotFoundError: if no such tool exists.
        """
        definition = self._tools.get(name)
        if definition is None:
            raise ToolNotFoundError(name)
        return definition

    def get(self, name: str) -> Optional[ToolDefinition]:
        return self._tools.get(name)

    def list(self) -> List[ToolDefinition]:
        return list(self._tools.values())

    def names(self) -> List[str]:
        return list(self._tools.keys())

    def __len__(self) -> int:
        return len(self._tools)

    def __contains__(self, name: object) -> bool:
        return name in self._tools

    def __iter__(self) -> Iterator[ToolDefinition]:
        return iter(list(self._tools.values()))

    # ─── Schema export ───

    def export_all(self, provider: Any) -> List[Dict[str, Any]]:
        """Export every tool for *provider*, preserving registration order."""
        return [to_provider_format(t, provider) for t in self._tools.values()]

    def to_json_schema(self) -> List[Dict[str, Any]]:
        """Export all tools as provider-neutral ``{"name", "description", "parameters"}``."""
        return [
            {"name": t.name, "description": t.description, "parameters": t.to_json_schema()}
            for t in self._tools.values()
        ]
