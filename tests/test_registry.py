"""
测试 ToolRegistry 注册表。
"""

import pytest

from agentwire.errors import SchemaError, ToolNotFoundError
from agentwire.tools.registry import ToolRegistry
from agentwire.tools.schema import ToolDefinition, tool


@tool
async def alpha(x: str) -> str:
    """First tool."""
    return x


@tool
def beta(n: int = 1) -> int:
    """Second tool."""
    return n


def gamma(flag: bool) -> bool:
    """Plain function, derived on registration."""
    return flag


class TestToolRegistry:
    """ToolRegistry 注册表测试。"""

    @pytest.fixture
    def registry(self):
        return ToolRegistry([alpha, beta, gamma])

    def test_resolve_returns_registered_definition(self, registry):
        assert registry.resolve("alpha") is alpha
        assert registry.resolve("beta") is beta

    def test_plain_function_is_derived(self, registry):
        definition = registry.resolve("gamma")
        assert isinstance(definition, ToolDefinition)
        assert definition.handler is gamma
        assert definition.parameters["flag"].type == "boolean"

    def test_resolve_unknown(self, registry):
        with pytest.raises(ToolNotFoundError, match="Tool not found") as exc:
            registry.resolve("delta")
        assert exc.value.tool_name == "delta"

    def test_get(self, registry):
        assert registry.get("alpha") is alpha
        assert registry.get("nonexistent") is None

    def test_order_and_container_protocol(self, registry):
        assert registry.names() == ["alpha", "beta", "gamma"]
        assert [t.name for t in registry] == ["alpha", "beta", "gamma"]
        assert [t.name for t in registry.list()] == ["alpha", "beta", "gamma"]
        assert len(registry) == 3
        assert "beta" in registry
        assert "delta" not in registry

    def test_duplicate_names_rejected(self):
        with pytest.raises(SchemaError, match="registered twice"):
            ToolRegistry([alpha, alpha])

    def test_empty_registry(self):
        registry = ToolRegistry()
        assert len(registry) == 0
        assert registry.export_all("claude") == []

    @pytest.mark.parametrize("provider", ["claude", "bedrock", "openai"])
    def test_export_all_preserves_order(self, registry, provider):
        specs = registry.export_all(provider)
        assert len(specs) == 3
        if provider == "claude":
            names = [s["name"] for s in specs]
        elif provider == "bedrock":
            names = [s["toolSpec"]["name"] for s in specs]
        else:
            names = [s["function"]["name"] for s in specs]
        assert names == ["alpha", "beta", "gamma"]

    def test_to_json_schema(self, registry):
        schemas = registry.to_json_schema()
        assert schemas[0]["name"] == "alpha"
        assert schemas[0]["parameters"]["required"] == ["x"]
