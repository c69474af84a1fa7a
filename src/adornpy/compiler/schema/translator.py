from __future__ import annotations

import logging
from dataclasses import replace
from typing import Any, Hashable, Mapping, Optional

from adornpy.compiler.schema.columns import EntityIntrospector, hoist_entity
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
from adornpy.compiler.schema.registry import SchemaRegistry
from adornpy.compiler.shapes import TypeInspector, _is_typing
from adornpy.compiler.source import ClassDecl, SourceProgram
from adornpy.compiler.types import TypeExpr

logger = logging.getLogger(__name__)

# type parameter name -> (argument, substitution in effect where it was written)
Subst = dict[str, tuple[TypeExpr, "Subst"]]

_EXTERNAL: dict[str, SchemaNode] = {
    "builtins.str": StringNode(),
    "builtins.int": NumberNode(integer=True),
    "builtins.float": NumberNode(),
    "builtins.bool": BooleanNode(),
    "builtins.bytes": StringNode(format="byte"),
    "builtins.dict": ObjectNode(strict=False),
    "decimal.Decimal": NumberNode(),
    "datetime.datetime": StringNode(format="date-time"),
    "datetime.date": StringNode(format="date"),
    "datetime.time": StringNode(format="time"),
    "datetime.timedelta": StringNode(format="duration"),
    "uuid.UUID": StringNode(format="uuid"),
    "pydantic.EmailStr": StringNode(format="email"),
    "pydantic.AnyUrl": StringNode(format="uri"),
    "pydantic.HttpUrl": StringNode(format="uri"),
}
_ARRAYS = ("list", "List", "Sequence", "MutableSequence", "Set", "set", "FrozenSet",
           "frozenset", "Iterable", "Collection", "AbstractSet", "MutableSet")
_MAPPINGS = ("dict", "Dict", "Mapping", "MutableMapping")


class UnsupportedType(Exception):
    """Internal signal: the shape has no schema. Never escapes the translator."""


def _same_node(a: SchemaNode, b: SchemaNode) -> bool:
    # Literal[1, True]: 1 == True, but they are distinct JSON values
    if isinstance(a, LiteralNode) and isinstance(b, LiteralNode):
        return type(a.value) is type(b.value) and a.value == b.value
    return a == b


class TypeSchemaTranslator:
    """Translate annotations into SchemaNodes, hoisting named types.

    Unsupported shapes yield ``None`` and a warning; callers skip the field or
    parameter instead of failing the build.
    """

    def __init__(
        self,
        program: SourceProgram,
        registry: Optional[SchemaRegistry] = None,
        introspector: Optional[EntityIntrospector] = None,
        entity_tables: Optional[Mapping[str, str]] = None,
    ):
        self.program = program
        self.inspector = TypeInspector(program)
        self.registry = registry if registry is not None else SchemaRegistry()
        # class name or qualname -> table read through the introspector
        self.introspector = introspector
        self.entity_tables = dict(entity_tables or {})
        self.warnings: list[str] = []

    def translate(self, expr: Optional[TypeExpr], context: str = "") -> Optional[SchemaNode]:
        if expr is None:
            return None
        try:
            return self._translate(expr, {}, 0)
        except UnsupportedType as exc:
            self._warn(f"{context or expr.module}: unsupported type {exc}; skipped")
            return None

    def _warn(self, message: str) -> None:
        self.warnings.append(message)
        logger.warning("%s", message)

    # ----------------------------
    # dispatch
    # ----------------------------

    def _translate(self, expr: TypeExpr, subst: Subst, depth: int) -> SchemaNode:
        if depth > 64:
            raise UnsupportedType(f"{expr.text or expr.name} (nesting too deep)")

        if expr.kind == "name" and "." not in expr.name and expr.name in subst:
            arg, outer = subst[expr.name]
            return self._translate(arg, outer, depth + 1)

        if expr.kind == "constant":
            if expr.value is Ellipsis:
                raise UnsupportedType("...")
            return LiteralNode(expr.value)

        if expr.kind == "none":
            raise UnsupportedType("None")

        if expr.kind == "union":
            return self._union(list(expr.args), subst, depth)

        if expr.kind == "name":
            return self._name(expr, subst, depth)

        if expr.kind == "subscript":
            return self._subscript(expr, subst, depth)

        raise UnsupportedType(expr.text or expr.kind)

    def _name(self, expr: TypeExpr, subst: Subst, depth: int) -> SchemaNode:
        r = self.inspector.resolve(expr)
        if r.kind == "external":
            node = _EXTERNAL.get(r.qualname)
            if node is not None:
                return node
            raise UnsupportedType(expr.text or r.qualname)
        if r.kind == "alias" and r.alias is not None:
            return self._translate(r.alias, {}, depth + 1)
        if r.kind == "class" and r.cls is not None:
            return self._class(r.cls, (), subst, depth)
        raise UnsupportedType(expr.text or expr.name)

    def _subscript(self, expr: TypeExpr, subst: Subst, depth: int) -> SchemaNode:
        r = self.inspector.resolve(expr)
        q = r.qualname
        args = list(expr.args)

        if r.kind == "class" and r.cls is not None:
            return self._class(r.cls, tuple(args), subst, depth)

        if r.kind == "external" and self.program.is_framework_module(q.rpartition(".")[0]):
            if r.last_name == "Reply" and args:
                return self._translate(args[0], subst, depth + 1)
            raise UnsupportedType(expr.text)

        if _is_typing(q, "Optional") and args:
            return self._union([args[0], TypeExpr(kind="none", module=expr.module)], subst, depth)
        if _is_typing(q, "Union"):
            return self._union(args, subst, depth)
        if _is_typing(q, "Literal"):
            return self._union(args, subst, depth)
        if _is_typing(q, "Annotated") and args:
            inner = self._translate(args[0], subst, depth + 1)
            return self._apply_markers(inner, args[1:])
        if _is_typing(q, "NotRequired") and args:
            inner = self._translate(args[0], subst, depth + 1)
            return inner if isinstance(inner, OptionalNode) else OptionalNode(inner)
        if _is_typing(q, "Required", "ReadOnly") and args:
            return self._translate(args[0], subst, depth + 1)
        if _is_typing(q, *_ARRAYS) and len(args) == 1:
            return ArrayNode(self._translate(args[0], subst, depth + 1))
        if _is_typing(q, "tuple", "Tuple"):
            if len(args) == 2 and args[1].kind == "constant" and args[1].value is Ellipsis:
                return ArrayNode(self._translate(args[0], subst, depth + 1))
            raise UnsupportedType(f"{expr.text} (fixed-length tuple)")
        if _is_typing(q, *_MAPPINGS) and len(args) == 2:
            key = self._translate(args[0], subst, depth + 1)
            if not isinstance(key, StringNode):
                raise UnsupportedType(f"{expr.text} (non-string keys)")
            return ObjectNode(strict=False, additional=self._translate(args[1], subst, depth + 1))

        raise UnsupportedType(expr.text or q)

    # ----------------------------
    # unions
    # ----------------------------

    def _union(self, members: list[TypeExpr], subst: Subst, depth: int) -> SchemaNode:
        has_null = False
        has_absent = False
        real: list[SchemaNode] = []

        for m in members:
            if self.inspector.is_none(m):
                has_null = True
                continue
            if self.inspector.is_absent(m):
                has_absent = True
                continue
            try:
                node = self._translate(m, subst, depth + 1)
            except UnsupportedType as exc:
                self._warn(f"{m.module}: union member {exc} skipped")
                continue
            # normalise nested wrappers so the outer ordering stays optional(nullable(T))
            if isinstance(node, OptionalNode):
                has_absent = True
                node = node.inner
            if isinstance(node, NullableNode):
                has_null = True
                node = node.inner
            if isinstance(node, UnionNode):
                candidates = list(node.any_of)
            else:
                candidates = [node]
            for c in candidates:
                if not any(_same_node(c, r) for r in real):
                    real.append(c)

        if not real:
            raise UnsupportedType("union without members")

        result: SchemaNode = real[0] if len(real) == 1 else UnionNode(tuple(real))
        if has_null:
            result = NullableNode(result)
        if has_absent:
            result = OptionalNode(result)
        return result

    # ----------------------------
    # classes
    # ----------------------------

    def _type_key(self, expr: TypeExpr, subst: Subst) -> Hashable:
        if expr.kind == "name" and "." not in expr.name and expr.name in subst:
            arg, outer = subst[expr.name]
            return self._type_key(arg, outer)
        if expr.kind in ("name", "subscript"):
            r = self.inspector.resolve(expr)
            base = r.qualname or expr.name
            return (base, tuple(self._type_key(a, subst) for a in expr.args))
        if expr.kind == "union":
            return ("|", tuple(self._type_key(a, subst) for a in expr.args))
        return (expr.kind, repr(expr.value))

    def _display(self, expr: TypeExpr, subst: Subst) -> str:
        if expr.kind == "name" and "." not in expr.name and expr.name in subst:
            arg, outer = subst[expr.name]
            return self._display(arg, outer)
        if expr.kind == "name":
            return expr.last_name.capitalize() if expr.last_name.islower() else expr.last_name
        if expr.kind == "subscript":
            inner = "_".join(self._display(a, subst) for a in expr.args)
            return f"{expr.last_name.capitalize()}_{inner}" if inner else expr.last_name
        if expr.kind == "constant":
            return str(expr.value)
        return "Any"

    def _class(self, cls: ClassDecl, args: tuple[TypeExpr, ...], subst: Subst, depth: int) -> SchemaNode:
        if self.inspector.is_enum(cls):
            return self._enum(cls)

        table = self.entity_tables.get(cls.qualname) or self.entity_tables.get(cls.name)
        if table is not None and self.introspector is not None:
            return hoist_entity(self.registry, self.introspector, table, name=cls.name)

        local: Subst = {}
        preferred = cls.name
        if cls.type_params and args:
            if len(args) != len(cls.type_params):
                raise UnsupportedType(f"{cls.name} (expected {len(cls.type_params)} type arguments)")
            local = {tp: (a, subst) for tp, a in zip(cls.type_params, args)}
            preferred = cls.name + "_" + "_".join(self._display(a, subst) for a in args)

        key = (cls.qualname, tuple(self._type_key(a, subst) for a in args))
        existing = self.registry.lookup(key)
        if existing is not None:
            # reserved (possibly still being filled) or complete: a reference either way
            return RefNode(existing)

        name = self.registry.reserve(key, preferred)
        body = self._object_body(cls, local, depth)
        self.registry.define(name, body)
        return RefNode(name)

    def _enum(self, cls: ClassDecl) -> SchemaNode:
        key = (cls.qualname, ())
        existing = self.registry.lookup(key)
        if existing is not None:
            return RefNode(existing)
        values = [v for v in cls.enum_values if v is not None]
        if values and all(isinstance(v, str) for v in values):
            node: SchemaNode = StringNode(enum=tuple(values))
        elif values and all(isinstance(v, (int, float)) and not isinstance(v, bool) for v in values):
            node = NumberNode(
                integer=all(isinstance(v, int) for v in values), enum=tuple(values)
            )
        else:
            raise UnsupportedType(f"{cls.name} (enum without literal values)")
        name = self.registry.reserve(key, cls.name)
        self.registry.define(name, node)
        return RefNode(name)

    def _collect_fields(
        self, cls: ClassDecl, subst: Subst, seen: set[str]
    ) -> dict[str, tuple[Any, Subst, bool]]:
        """Fields of ``cls`` and its scanned bases, bases first."""
        if cls.qualname in seen:
            return {}
        seen.add(cls.qualname)

        fields: dict[str, tuple[Any, Subst, bool]] = {}
        for base in cls.bases:
            base_expr = base
            if base.kind == "name" and base.name in subst:
                base_expr = subst[base.name][0]
            r = self.inspector.resolve(base_expr)
            if r.kind != "class" or r.cls is None:
                continue
            base_subst: Subst = {}
            if base_expr.kind == "subscript" and r.cls.type_params:
                base_subst = {
                    tp: (a, subst) for tp, a in zip(r.cls.type_params, base_expr.args)
                }
            fields.update(self._collect_fields(r.cls, base_subst, seen))

        for f in cls.fields:
            fields[f.name] = (f, subst, cls.total)
        return fields

    def _object_body(self, cls: ClassDecl, subst: Subst, depth: int) -> ObjectNode:
        properties: list[tuple[str, SchemaNode]] = []
        required: list[str] = []

        for name, (f, fsubst, total) in self._collect_fields(cls, subst, set()).items():
            if f.annotation is None:
                continue
            try:
                node = self._translate(f.annotation, fsubst, depth + 1)
            except UnsupportedType as exc:
                self._warn(f"{cls.qualname}.{name}: unsupported type {exc}; field skipped")
                continue
            optional = f.has_default or not total or isinstance(node, OptionalNode)
            if optional and not isinstance(node, OptionalNode):
                node = OptionalNode(node)
            properties.append((name, node))
            if not optional:
                required.append(name)

        return ObjectNode(properties=tuple(properties), required=tuple(required), strict=True)

    # ----------------------------
    # Annotated constraints
    # ----------------------------

    def _apply_markers(self, node: SchemaNode, metadata: list[TypeExpr]) -> SchemaNode:
        if isinstance(node, OptionalNode):
            return OptionalNode(self._apply_markers(node.inner, metadata))
        if isinstance(node, NullableNode):
            return NullableNode(self._apply_markers(node.inner, metadata))

        for m in metadata:
            if m.kind != "call":
                continue
            name = self.inspector.framework_name(m) or m.last_name
            value = m.value[0] if m.value else None
            kwargs = dict(m.kwargs)

            if isinstance(node, StringNode):
                if name in ("MinLength", "MinLen") and isinstance(value, int):
                    node = replace(node, min_length=value)
                elif name in ("MaxLength", "MaxLen") and isinstance(value, int):
                    node = replace(node, max_length=value)
                elif name == "Pattern" and isinstance(value, str):
                    node = replace(node, pattern=value)
                elif name == "Format" and isinstance(value, str):
                    node = replace(node, format=value)
                elif name == "Field":
                    node = replace(
                        node,
                        min_length=kwargs.get("min_length", node.min_length),
                        max_length=kwargs.get("max_length", node.max_length),
                        pattern=kwargs.get("pattern", node.pattern),
                    )
            elif isinstance(node, NumberNode):
                if name in ("Minimum", "Ge") and isinstance(value, (int, float)):
                    node = replace(node, minimum=value)
                elif name in ("Maximum", "Le") and isinstance(value, (int, float)):
                    node = replace(node, maximum=value)
                elif name == "Field":
                    node = replace(
                        node,
                        minimum=kwargs.get("ge", node.minimum),
                        maximum=kwargs.get("le", node.maximum),
                    )
        return node
