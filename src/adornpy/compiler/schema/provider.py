from __future__ import annotations

from typing import Any, Optional, Protocol, TypeVar

from adornpy.compiler.schema.nodes import (
    ArrayNode,
    BooleanNode,
    LiteralNode,
    NullableNode,
    NumberNode,
    ObjectNode,
    OptionalNode,
    RefNode,
    SchemaNode,
    StringNode,
    UnionNode,
)

REF_PREFIX = "#/components/schemas/"

T = TypeVar("T")


class SchemaProvider(Protocol[T]):
    """Capability interface for a schema backend.

    One method per primitive/combinator; ``render`` walks a SchemaNode and
    calls them bottom-up.
    """

    def string(self, node: StringNode) -> T: ...

    def number(self, node: NumberNode) -> T: ...

    def boolean(self) -> T: ...

    def literal(self, value: Any) -> T: ...

    def array(self, items: T) -> T: ...

    def object(
        self, properties: dict[str, T], required: list[str], strict: bool, additional: Optional[T]
    ) -> T: ...

    def union(self, members: list[T]) -> T: ...

    def optional(self, inner: T) -> T: ...

    def nullable(self, inner: T) -> T: ...

    def ref(self, name: str) -> T: ...

    def to_schema_ref(self, name: str) -> str: ...


def render(provider: SchemaProvider[T], node: SchemaNode) -> T:
    if isinstance(node, StringNode):
        return provider.string(node)
    if isinstance(node, NumberNode):
        return provider.number(node)
    if isinstance(node, BooleanNode):
        return provider.boolean()
    if isinstance(node, LiteralNode):
        return provider.literal(node.value)
    if isinstance(node, ArrayNode):
        return provider.array(render(provider, node.items))
    if isinstance(node, ObjectNode):
        props = {name: render(provider, child) for name, child in node.properties}
        additional = render(provider, node.additional) if node.additional is not None else None
        return provider.object(props, list(node.required), node.strict, additional)
    if isinstance(node, UnionNode):
        return provider.union([render(provider, m) for m in node.any_of])
    if isinstance(node, OptionalNode):
        return provider.optional(render(provider, node.inner))
    if isinstance(node, NullableNode):
        return provider.nullable(render(provider, node.inner))
    if isinstance(node, RefNode):
        return provider.ref(node.name)
    raise TypeError(f"Unknown schema node: {node!r}")


def _json_type(value: Any) -> Optional[str]:
    if isinstance(value, bool):
        return "boolean"
    if isinstance(value, int):
        return "integer"
    if isinstance(value, float):
        return "number"
    if isinstance(value, str):
        return "string"
    return None


class JsonSchemaProvider:
    """Renders nodes as OpenAPI 3.1 (JSON Schema 2020-12) dicts."""

    def string(self, node: StringNode) -> dict[str, Any]:
        out: dict[str, Any] = {"type": "string"}
        if node.min_length is not None:
            out["minLength"] = node.min_length
        if node.max_length is not None:
            out["maxLength"] = node.max_length
        if node.pattern is not None:
            out["pattern"] = node.pattern
        if node.format is not None:
            out["format"] = node.format
        if node.enum is not None:
            out["enum"] = list(node.enum)
        return out

    def number(self, node: NumberNode) -> dict[str, Any]:
        out: dict[str, Any] = {"type": "integer" if node.integer else "number"}
        if node.minimum is not None:
            out["minimum"] = node.minimum
        if node.maximum is not None:
            out["maximum"] = node.maximum
        if node.enum is not None:
            out["enum"] = list(node.enum)
        return out

    def boolean(self) -> dict[str, Any]:
        return {"type": "boolean"}

    def literal(self, value: Any) -> dict[str, Any]:
        out: dict[str, Any] = {"const": value}
        t = _json_type(value)
        if t is not None:
            out["type"] = t
        return out

    def array(self, items: dict[str, Any]) -> dict[str, Any]:
        return {"type": "array", "items": items}

    def object(
        self,
        properties: dict[str, dict[str, Any]],
        required: list[str],
        strict: bool,
        additional: Optional[dict[str, Any]],
    ) -> dict[str, Any]:
        out: dict[str, Any] = {"type": "object", "properties": properties}
        if required:
            out["required"] = required
        if strict:
            out["additionalProperties"] = False
        elif additional is not None:
            out["additionalProperties"] = additional
        return out

    def union(self, members: list[dict[str, Any]]) -> dict[str, Any]:
        consts = [m.get("const") for m in members if set(m) <= {"const", "type"} and "const" in m]
        if len(consts) == len(members):
            types = {_json_type(c) for c in consts}
            if len(types) == 1 and None not in types:
                return {"type": types.pop(), "enum": consts}
        return {"anyOf": members}

    def optional(self, inner: dict[str, Any]) -> dict[str, Any]:
        # absence is expressed by the parent's "required" list
        return inner

    def nullable(self, inner: dict[str, Any]) -> dict[str, Any]:
        t = inner.get("type")
        if isinstance(t, str) and "$ref" not in inner and "anyOf" not in inner:
            out = dict(inner)
            out["type"] = [t, "null"]
            if "enum" in out:
                out["enum"] = list(out["enum"]) + [None]
            if "const" in out:
                out["enum"] = [out.pop("const"), None]
            return out
        return {"anyOf": [inner, {"type": "null"}]}

    def ref(self, name: str) -> dict[str, Any]:
        return {"$ref": self.to_schema_ref(name)}

    def to_schema_ref(self, name: str) -> str:
        return f"{REF_PREFIX}{name}"


def to_json_schema(node: SchemaNode) -> dict[str, Any]:
    return render(JsonSchemaProvider(), node)


def schema_type(node: SchemaNode) -> Optional[str]:
    """JSON type name of a node (``integer``, ``string``...), when it has one."""
    while isinstance(node, (OptionalNode, NullableNode)):
        node = node.inner
    if isinstance(node, StringNode):
        return "string"
    if isinstance(node, NumberNode):
        return "integer" if node.integer else "number"
    if isinstance(node, BooleanNode):
        return "boolean"
    if isinstance(node, ArrayNode):
        return "array"
    if isinstance(node, ObjectNode):
        return "object"
    if isinstance(node, LiteralNode):
        return _json_type(node.value)
    if isinstance(node, UnionNode):
        types = {schema_type(m) for m in node.any_of}
        if len(types) == 1:
            return types.pop()
    return None
