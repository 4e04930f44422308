"""
Schema 推导 — 从函数签名、type hints 与 docstring 生成规范化的 tool 定义。

两种参数描述来源:
- 运行时内省: ``derive_tool`` / ``@tool`` 读取签名与注解。
- 显式声明: ``ToolDefinition.create`` 接收 ``ParameterSpec`` 列表。

两者产出同一个 :class:`ToolDefinition`，之后交给 formats 模块导出为各 provider 格式。
"""

from __future__ import annotations

import inspect
import logging
import re
import types
from dataclasses import dataclass, field
from enum import Enum
from typing import (
    Any,
    Callable,
    Dict,
    Iterable,
    List,
    Literal,
    Mapping,
    Optional,
    Tuple,
    Union,
    get_args,
    get_origin,
    get_type_hints,
)

from agentwire.errors import ArgumentError, SchemaError

logger = logging.getLogger("agentwire.tools")

# ──────────────────────────────────────────────
# Type mapping: Python type → JSON Schema type
# ──────────────────────────────────────────────

_PY_TO_JSON_TYPE: Dict[type, str] = {
    str: "string",
    int: "integer",
    float: "number",
    bool: "boolean",
    list: "array",
    tuple: "array",
    set: "array",
    frozenset: "array",
    dict: "object",
}

JSON_TYPES = frozenset({"string", "integer", "number", "boolean", "array", "object"})

_UNION_TYPES: Tuple[Any, ...] = (Union,)
if hasattr(types, "UnionType"):
    _UNION_TYPES += (types.UnionType,)


def _literal_type(values: List[Any]) -> Optional[str]:
    kinds = {_PY_TO_JSON_TYPE.get(type(v)) for v in values}
    if len(kinds) == 1:
        return kinds.pop()
    return None


def _python_type_to_json(py_type: Any) -> Tuple[Optional[str], Optional[List[Any]]]:
    """Convert a Python annotation to ``(json_type, enum_values)``.

    ``json_type`` is ``None`` when the annotation has no JSON equivalent.
    """
    origin = get_origin(py_type)
    if origin in _UNION_TYPES:
        args = [a for a in get_args(py_type) if a is not type(None)]
        if len(args) == 1:
            return _python_type_to_json(args[0])
        return None, None
    if origin is Literal:
        values = list(get_args(py_type))
        return _literal_type(values), values
    if origin is not None:
        # List[int], Dict[str, Any], ...
        return _PY_TO_JSON_TYPE.get(origin), None
    if isinstance(py_type, type) and issubclass(py_type, Enum):
        values = [member.value for member in py_type]
        return _literal_type(values), values
    return _PY_TO_JSON_TYPE.get(py_type), None


def _enum_class(py_type: Any) -> Optional[type]:
    """Return the Enum subclass behind *py_type* (``Optional`` unwrapped), if any."""
    if get_origin(py_type) in _UNION_TYPES:
        args = [a for a in get_args(py_type) if a is not type(None)]
        return _enum_class(args[0]) if len(args) == 1 else None
    if isinstance(py_type, type) and issubclass(py_type, Enum):
        return py_type
    return None


def _is_optional(py_type: Any) -> bool:
    return get_origin(py_type) in _UNION_TYPES and type(None) in get_args(py_type)


def _enum_contains(allowed: List[Any], value: Any) -> bool:
    # True == 1 in Python, not in JSON
    return any(
        value == v and isinstance(value, bool) == isinstance(v, bool) for v in allowed
    )


def _matches_type(value: Any, json_type: str) -> bool:
    if json_type == "string":
        return isinstance(value, str)
    if json_type == "boolean":
        return isinstance(value, bool)
    if json_type == "integer":
        return isinstance(value, int) and not isinstance(value, bool)
    if json_type == "number":
        return isinstance(value, (int, float)) and not isinstance(value, bool)
    if json_type == "array":
        return isinstance(value, (list, tuple))
    if json_type == "object":
        return isinstance(value, dict)
    return True


# ──────────────────────────────────────────────
# ToolContext
# ──────────────────────────────────────────────


@dataclass
class ToolContext:
    """Context passed to tool handlers during execution.

    Attributes:
        tool_name: Name of the tool being invoked.
        call_id: Provider-supplied invocation id (``tool_use_id`` / ``tool_call_id``).
        extra: Arbitrary shared state.
    """

    tool_name: str = ""
    call_id: str = ""
    extra: Dict[str, Any] = field(default_factory=dict)


# ──────────────────────────────────────────────
# ParameterSpec
# ──────────────────────────────────────────────

_MISSING = object()


@dataclass
class ParameterSpec:
    """Description of a single tool parameter.

    ``type`` is ``None`` for an untyped parameter, which accepts any JSON value.
    ``nullable`` parameters (``Optional[...]``) also accept ``null``.
    ``enum_class`` converts incoming values to the handler's Enum members.
    """

    name: str
    type: Optional[str] = None
    description: str = ""
    required: bool = True
    default: Any = None
    enum: Optional[List[Any]] = None
    nullable: bool = False
    enum_class: Optional[type] = field(default=None, repr=False, compare=False)

    def to_json_schema(self) -> Dict[str, Any]:
        prop: Dict[str, Any] = {}
        if self.type:
            prop["type"] = self.type
        if self.description:
            prop["description"] = self.description
        if self.enum is not None:
            prop["enum"] = list(self.enum)
        if self.default is not None:
            prop["default"] = self.default
        return prop

    def check(self, tool_name: str, value: Any) -> None:
        """Raise :class:`ArgumentError` if *value* is not acceptable."""
        if value is None and (self.nullable or (not self.required and self.default is None)):
            return
        if self.enum is not None and not _enum_contains(self.enum, value):
            raise ArgumentError(
                tool_name,
                f"Invalid value {value!r} for argument {self.name!r}; "
                f"expected one of {self.enum!r}",
                parameter=self.name,
            )
        if self.type and not _matches_type(value, self.type):
            raise ArgumentError(
                tool_name,
                f"Argument {self.name!r} must be of type {self.type}, "
                f"got {type(value).__name__}",
                parameter=self.name,
            )

    def convert(self, value: Any) -> Any:
        """Map a validated JSON value to what the handler expects."""
        if self.enum_class is None or value is None or isinstance(value, self.enum_class):
            return value
        return self.enum_class(value)


# ──────────────────────────────────────────────
# ToolDefinition
# ──────────────────────────────────────────────


@dataclass
class ToolDefinition:
    """A canonical tool definition.

    Attributes:
        name: Unique tool name.
        description: Human-readable description (shown to the LLM).
        parameters: Ordered mapping of parameter name to :class:`ParameterSpec`.
        handler: The callable to execute (sync or async). ``None`` for
            definitions re-parsed from a provider declaration.
        is_async: Whether the handler is a coroutine function.
        context_param: Name of the handler argument that receives a
            :class:`ToolContext`, if any.
        warnings: Non-fatal degradations recorded during derivation.
    """

    name: str
    description: str = ""
    parameters: Dict[str, ParameterSpec] = field(default_factory=dict)
    handler: Optional[Callable[..., Any]] = None
    is_async: bool = False
    context_param: Optional[str] = None
    warnings: List[str] = field(default_factory=list)

    def __post_init__(self) -> None:
        if not isinstance(self.name, str) or not self.name.strip():
            raise SchemaError(str(self.name), "tool name must be a non-empty string")
        for key, spec in self.parameters.items():
            if key != spec.name:
                raise SchemaError(
                    self.name, f"parameter key {key!r} does not match spec name {spec.name!r}"
                )
            if spec.type is not None and spec.type not in JSON_TYPES:
                raise SchemaError(self.name, f"unsupported type {spec.type!r} for {key!r}")
        if self.handler is not None and not self.is_async:
            self.is_async = inspect.iscoroutinefunction(self.handler)

    @classmethod
    def create(
        cls,
        name: str,
        description: str = "",
        parameters: Iterable[ParameterSpec] = (),
        handler: Optional[Callable[..., Any]] = None,
        enum_values: Optional[Mapping[str, Iterable[Any]]] = None,
    ) -> "ToolDefinition":
        """Build a definition from explicitly declared parameters."""
        params: Dict[str, ParameterSpec] = {}
        for spec in parameters:
            if spec.name in params:
                raise SchemaError(name, f"duplicate parameter name {spec.name!r}")
            params[spec.name] = spec
        _apply_enum_values(name, params, enum_values)
        return cls(name=name, description=description, parameters=params, handler=handler)

    @property
    def enum_values(self) -> Dict[str, List[Any]]:
        return {n: list(p.enum) for n, p in self.parameters.items() if p.enum is not None}

    @property
    def required(self) -> List[str]:
        return [n for n, p in self.parameters.items() if p.required]

    def to_json_schema(self) -> Dict[str, Any]:
        """Export the parameter set as a JSON Schema ``object``."""
        schema: Dict[str, Any] = {
            "type": "object",
            "properties": {n: p.to_json_schema() for n, p in self.parameters.items()},
        }
        required = self.required
        if required:
            schema["required"] = required
        return schema

    def to_provider_format(self, provider: Any) -> Dict[str, Any]:
        from agentwire.tools.formats import to_provider_format

        return to_provider_format(self, provider)

    def bind_arguments(self, arguments: Any) -> Dict[str, Any]:
        """Validate model-supplied *arguments* and return handler kwargs.

        Raises:
            ArgumentError: on unknown names, missing required arguments,
                enum violations or JSON type mismatches.
        """
        if arguments is None:
            arguments = {}
        if not isinstance(arguments, Mapping):
            raise ArgumentError(
                self.name, f"Arguments must be an object, got {type(arguments).__name__}"
            )

        unknown = [k for k in arguments if k not in self.parameters]
        if unknown:
            raise ArgumentError(
                self.name,
                f"Tool {self.name!r} got unknown argument(s): {', '.join(map(repr, unknown))}",
                parameter=unknown[0],
            )

        call_args: Dict[str, Any] = {}
        for spec in self.parameters.values():
            if spec.name in arguments:
                value = arguments[spec.name]
                spec.check(self.name, value)
                call_args[spec.name] = spec.convert(value)
            elif spec.required:
                raise ArgumentError(
                    self.name,
                    f"Tool {self.name!r} missing required argument: {spec.name!r}",
                    parameter=spec.name,
                )
            elif spec.default is not None:
                call_args[spec.name] = spec.convert(spec.default)
        return call_args


# ──────────────────────────────────────────────
# Docstring parsing
# ──────────────────────────────────────────────

_REST_PARAM = re.compile(r"^:param\s+(?:[^:\s]+\s+)?(\w+)\s*:\s*(.*)$")
_SECTION_HEADER = re.compile(r"^[A-Z][A-Za-z ]*:$")


def _parse_docstring_args(docstring: str) -> Dict[str, str]:
    """Extract parameter descriptions.

    Understands Google-style ``Args:`` sections and reST ``:param name:`` tags.
    """
    descriptions: Dict[str, str] = {}
    if not docstring:
        return descriptions

    in_args = False
    current_name = ""
    current_parts: List[str] = []

    def flush() -> None:
        if current_name:
            descriptions[current_name] = " ".join(current_parts).strip()

    for line in docstring.split("\n"):
        stripped = line.strip()

        rest = _REST_PARAM.match(stripped)
        if rest:
            flush()
            in_args = False
            current_name, current_parts = rest.group(1), [rest.group(2).strip()]
            continue

        if stripped.lower() in ("args:", "arguments:", "parameters:"):
            flush()
            in_args = True
            current_name, current_parts = "", []
            continue

        if stripped.startswith(":") or _SECTION_HEADER.match(stripped):
            # Returns:, Raises:, :return:, ...
            flush()
            in_args = False
            current_name, current_parts = "", []
            continue

        if in_args and ":" in stripped:
            name_part, _, desc_part = stripped.partition(":")
            # "name (type): description"
            candidate = name_part.split("(")[0].strip()
            if candidate.isidentifier():
                flush()
                current_name, current_parts = candidate, [desc_part.strip()]
                continue

        if current_name and stripped:
            current_parts.append(stripped)
        elif current_name and not stripped and not in_args:
            flush()
            current_name, current_parts = "", []

    flush()
    return descriptions


def _docstring_summary(docstring: str) -> str:
    lines: List[str] = []
    for line in docstring.strip().split("\n"):
        stripped = line.strip()
        if not stripped or stripped.startswith(":") or stripped.lower() == "args:":
            break
        lines.append(stripped)
    return " ".join(lines)


# ──────────────────────────────────────────────
# Derivation
# ──────────────────────────────────────────────


def _apply_enum_values(
    tool_name: str,
    params: Dict[str, ParameterSpec],
    enum_values: Optional[Mapping[str, Iterable[Any]]],
) -> None:
    for param_name, values in (enum_values or {}).items():
        if param_name not in params:
            raise SchemaError(
                tool_name, f"enum constraint references unknown parameter {param_name!r}"
            )
        allowed = list(values)
        if not allowed:
            raise SchemaError(tool_name, f"enum constraint for {param_name!r} is empty")
        params[param_name].enum = allowed


def _apply_properties(
    tool_name: str,
    params: Dict[str, ParameterSpec],
    properties: Optional[Mapping[str, Mapping[str, Any]]],
) -> None:
    for param_name, overrides in (properties or {}).items():
        spec = params.get(param_name)
        if spec is None:
            raise SchemaError(
                tool_name, f"property override references unknown parameter {param_name!r}"
            )
        if "type" in overrides:
            explicit = overrides["type"]
            if explicit not in JSON_TYPES:
                raise SchemaError(tool_name, f"unsupported type {explicit!r} for {param_name!r}")
            if spec.type and spec.type != explicit:
                logger.debug(
                    "Tool %s: explicit type %s overrides inferred %s for %s",
                    tool_name, explicit, spec.type, param_name,
                )
            spec.type = explicit
        if "description" in overrides:
            spec.description = overrides["description"] or ""
        if "enum" in overrides:
            spec.enum = list(overrides["enum"])


def derive_tool(
    fn: Callable[..., Any],
    name: Optional[str] = None,
    description: Optional[str] = None,
    properties: Optional[Mapping[str, Mapping[str, Any]]] = None,
    enum_values: Optional[Mapping[str, Iterable[Any]]] = None,
) -> ToolDefinition:
    """Build a :class:`ToolDefinition` from a function's signature and docstring.

    Parameters:
        fn: The tool handler (sync or async).
        name: Tool name (defaults to ``fn.__name__``).
        description: Tool description (defaults to the docstring summary).
        properties: Per-parameter overrides, e.g.
            ``{"city": {"description": "City name", "type": "string"}}``.
            Explicit values win over inferred ones.
        enum_values: Closed sets of permitted values per parameter.

    Raises:
        SchemaError: if an override or enum references a missing parameter.
    """
    func_name = name or getattr(fn, "__name__", "")
    sig = inspect.signature(fn)

    try:
        hints = get_type_hints(fn)
    except Exception:
        hints = {}

    docstring = inspect.getdoc(fn) or ""
    func_desc = description if description is not None else _docstring_summary(docstring)
    arg_descs = _parse_docstring_args(docstring)

    params: Dict[str, ParameterSpec] = {}
    warnings: List[str] = []
    context_param: Optional[str] = None

    for param_name, param in sig.parameters.items():
        if param_name in ("self", "cls"):
            continue
        if param.kind in (inspect.Parameter.VAR_POSITIONAL, inspect.Parameter.VAR_KEYWORD):
            continue

        annotation = hints.get(param_name, param.annotation)
        if annotation is ToolContext:
            context_param = param_name
            continue

        json_type: Optional[str] = None
        enum: Optional[List[Any]] = None
        if annotation is not inspect.Parameter.empty and not isinstance(annotation, str):
            json_type, enum = _python_type_to_json(annotation)
        if json_type is None and enum is None:
            message = f"parameter {param_name!r} has no JSON-mappable annotation; accepting any value"
            warnings.append(message)
            logger.warning("Tool %s: %s", func_name, message)

        has_default = param.default is not inspect.Parameter.empty
        default = param.default if has_default else None
        if isinstance(default, Enum):
            default = default.value
        params[param_name] = ParameterSpec(
            name=param_name,
            type=json_type,
            description=arg_descs.get(param_name, ""),
            required=not has_default,
            default=default,
            enum=enum,
            nullable=_is_optional(annotation),
            enum_class=_enum_class(annotation),
        )

    _apply_properties(func_name, params, properties)
    _apply_enum_values(func_name, params, enum_values)

    return ToolDefinition(
        name=func_name,
        description=func_desc,
        parameters=params,
        handler=fn,
        is_async=inspect.iscoroutinefunction(fn),
        context_param=context_param,
        warnings=warnings,
    )


def tool(
    fn: Optional[Callable[..., Any]] = None,
    *,
    name: Optional[str] = None,
    description: Optional[str] = None,
    properties: Optional[Mapping[str, Mapping[str, Any]]] = None,
    enum_values: Optional[Mapping[str, Iterable[Any]]] = None,
) -> Union[ToolDefinition, Callable[[Callable[..., Any]], ToolDefinition]]:
    """Decorator that turns a function into a :class:`ToolDefinition`.

    Can be used with or without arguments::

        @tool
        async def get_weather(location: str, units: str = "celsius") -> str: ...

        @tool(enum_values={"units": ["celsius", "fahrenheit"]})
        def convert(value: float, units: str) -> float: ...
    """

    def decorator(func: Callable[..., Any]) -> ToolDefinition:
        return derive_tool(
            func,
            name=name,
            description=description,
            properties=properties,
            enum_values=enum_values,
        )

    if fn is not None:
        return decorator(fn)
    return decorator
