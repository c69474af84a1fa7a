import ast

from adornpy.compiler.schema.nodes import (
    ArrayNode,
    LiteralNode,
    NullableNode,
    NumberNode,
    ObjectNode,
    OptionalNode,
    RefNode,
    StringNode,
    UnionNode,
)
from adornpy.compiler.schema.provider import to_json_schema
from adornpy.compiler.schema.translator import TypeSchemaTranslator
from adornpy.compiler.source import SourceProgram
from adornpy.compiler.types import parse_annotation

MODELS = """
from dataclasses import dataclass, field
from enum import Enum
from typing import Annotated, Any, Callable, Generic, Literal, NotRequired, Optional, TypedDict, TypeVar

from adornpy import MaxLength, MinLength, Minimum, Pattern, Undefined

T = TypeVar("T")


class Color(str, Enum):
    RED = "red"
    GREEN = "green"


@dataclass
class Node:
    value: int
    children: list["Node"] = field(default_factory=list)


@dataclass
class Base:
    id: int


@dataclass
class User(Base):
    name: Annotated[str, MinLength(2), MaxLength(40)]
    email: Annotated[str, Pattern(r"^[^@]+@[^@]+$")]
    age: Annotated[int, Minimum(0)] = 0
    nickname: str | None | Undefined = None
    callback: Callable[[], None] | None = None


@dataclass
class Page(Generic[T]):
    items: list[T]
    total: int


class Patch(TypedDict, total=False):
    name: str
    color: Color


class Partial(TypedDict):
    id: int
    note: NotRequired[str]
"""


def _setup():
    program = SourceProgram.from_source(MODELS, module="app")
    return program, TypeSchemaTranslator(program)


def _t(translator, text: str):
    expr = parse_annotation(ast.parse(text, mode="eval").body, "app")
    return translator.translate(expr, context="test")


def test_primitives_and_literals():
    _, tr = _setup()
    assert _t(tr, "str") == StringNode()
    assert _t(tr, "int") == NumberNode(integer=True)
    assert _t(tr, "float") == NumberNode()
    assert _t(tr, "Literal['a']") == LiteralNode("a")
    assert _t(tr, "Literal['a', 'b']") == UnionNode((LiteralNode("a"), LiteralNode("b")))
    assert to_json_schema(_t(tr, "Literal['a', 'b']")) == {"type": "string", "enum": ["a", "b"]}


def test_union_wrapper_ordering():
    _, tr = _setup()
    assert _t(tr, "int | None") == NullableNode(NumberNode(integer=True))
    assert _t(tr, "Optional[str]") == NullableNode(StringNode())
    assert _t(tr, "str | Undefined") == OptionalNode(StringNode())
    # undefined outside, null inside, whatever the spelling order
    expected = OptionalNode(NullableNode(StringNode()))
    assert _t(tr, "str | None | Undefined") == expected
    assert _t(tr, "Undefined | None | str") == expected
    assert _t(tr, "None") is None


def test_arrays_and_mappings():
    _, tr = _setup()
    assert _t(tr, "list[int]") == ArrayNode(NumberNode(integer=True))
    assert _t(tr, "tuple[str, ...]") == ArrayNode(StringNode())
    assert _t(tr, "dict[str, int]") == ObjectNode(strict=False, additional=NumberNode(integer=True))
    # element failure propagates to the array
    assert _t(tr, "list[Callable[[], None]]") is None


def test_class_is_hoisted_with_base_fields_and_constraints():
    _, tr = _setup()
    assert _t(tr, "User") == RefNode("User")
    user = tr.registry.get("User")
    assert isinstance(user, ObjectNode)
    props = user.property_map()
    assert list(props) == ["id", "name", "email", "age", "nickname"]
    assert user.required == ("id", "name", "email")
    assert props["name"] == StringNode(min_length=2, max_length=40)
    assert props["email"].pattern == r"^[^@]+@[^@]+$"
    assert props["age"] == OptionalNode(NumberNode(integer=True, minimum=0))
    assert props["nickname"] == OptionalNode(NullableNode(StringNode()))
    # Callable field was skipped with a warning
    assert any("callback" in w for w in tr.warnings)


def test_recursive_type_terminates():
    _, tr = _setup()
    assert _t(tr, "Node") == RefNode("Node")
    node = tr.registry.get("Node")
    assert node.property_map()["children"] == OptionalNode(ArrayNode(RefNode("Node")))
    assert list(tr.registry.components()) == ["Node"]


def test_generic_instantiation_gets_its_own_component():
    _, tr = _setup()
    assert _t(tr, "Page[User]") == RefNode("Page_User")
    page = tr.registry.get("Page_User")
    assert page.property_map()["items"] == ArrayNode(RefNode("User"))
    # same instantiation is not hoisted twice
    assert _t(tr, "Page[User]") == RefNode("Page_User")
    assert sorted(tr.registry.components()) == ["Page_User", "User"]


def test_enums_and_typed_dicts():
    _, tr = _setup()
    assert _t(tr, "Color") == RefNode("Color")
    assert tr.registry.get("Color") == StringNode(enum=("red", "green"))

    _t(tr, "Patch")
    patch = tr.registry.get("Patch")
    assert patch.required == ()
    assert patch.property_map()["color"] == OptionalNode(RefNode("Color"))

    _t(tr, "Partial")
    partial = tr.registry.get("Partial")
    assert partial.required == ("id",)


def test_unsupported_shapes_return_none_with_warning():
    _, tr = _setup()
    assert _t(tr, "Any") is None
    assert _t(tr, "Missing") is None
    assert len(tr.warnings) == 2


def test_json_schema_rendering():
    _, tr = _setup()
    _t(tr, "User")
    schema = to_json_schema(tr.registry.get("User"))
    assert schema["type"] == "object"
    assert schema["additionalProperties"] is False
    assert schema["required"] == ["id", "name", "email"]
    assert schema["properties"]["nickname"] == {"type": ["string", "null"]}
    assert schema["properties"]["name"] == {"type": "string", "minLength": 2, "maxLength": 40}


def test_bool_and_int_literals_stay_distinct():
    _, tr = _setup()
    node = _t(tr, "Literal[1, True, 1]")
    assert isinstance(node, UnionNode)
    assert [(type(m.value), m.value) for m in node.any_of] == [(int, 1), (bool, True)]
    assert to_json_schema(node) == {
        "anyOf": [{"const": 1, "type": "integer"}, {"const": True, "type": "boolean"}]
    }
