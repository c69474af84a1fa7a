from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Optional, Union


@dataclass(frozen=True)
class StringNode:
    min_length: Optional[int] = None
    max_length: Optional[int] = None
    pattern: Optional[str] = None
    format: Optional[str] = None
    enum: Optional[tuple[str, ...]] = None


@dataclass(frozen=True)
class NumberNode:
    integer: bool = False
    minimum: Optional[float] = None
    maximum: Optional[float] = None
    enum: Optional[tuple[float, ...]] = None


@dataclass(frozen=True)
class BooleanNode:
    pass


@dataclass(frozen=True)
class LiteralNode:
    value: Any


@dataclass(frozen=True)
class ArrayNode:
    items: "SchemaNode"


@dataclass(frozen=True)
class ObjectNode:
    properties: tuple[tuple[str, "SchemaNode"], ...] = ()
    required: tuple[str, ...] = ()
    strict: bool = True
    additional: Optional["SchemaNode"] = None

    def property_map(self) -> dict[str, "SchemaNode"]:
        return dict(self.properties)


@dataclass(frozen=True)
class UnionNode:
    any_of: tuple["SchemaNode", ...]


@dataclass(frozen=True)
class OptionalNode:
    """The value may be absent."""

    inner: "SchemaNode"


@dataclass(frozen=True)
class NullableNode:
    """The value may be null."""

    inner: "SchemaNode"


@dataclass(frozen=True)
class RefNode:
    """Reference to a hoisted component by name."""

    name: str


SchemaNode = Union[
    StringNode,
    NumberNode,
    BooleanNode,
    LiteralNode,
    ArrayNode,
    ObjectNode,
    UnionNode,
    OptionalNode,
    NullableNode,
    RefNode,
]


def unwrap(node: SchemaNode) -> SchemaNode:
    """Strip optional/nullable wrappers."""
    while isinstance(node, (OptionalNode, NullableNode)):
        node = node.inner
    return node
