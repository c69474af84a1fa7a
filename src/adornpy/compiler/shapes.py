from __future__ import annotations

from typing import Optional

from adornpy.compiler.source import ClassDecl, Resolved, SourceProgram
from adornpy.compiler.types import TypeExpr
from adornpy.domain.models import ScalarHint

_ARRAY_NAMES = {
    "list", "List", "Sequence", "MutableSequence", "Set", "set", "FrozenSet",
    "frozenset", "Iterable", "Collection", "AbstractSet", "MutableSet", "tuple", "Tuple",
}
_MAPPING_NAMES = {"dict", "Dict", "Mapping", "MutableMapping"}
_SCALAR_HINTS: dict[str, ScalarHint] = {
    "builtins.str": "string",
    "builtins.int": "int",
    "builtins.float": "number",
    "decimal.Decimal": "number",
    "builtins.bool": "boolean",
    "uuid.UUID": "uuid",
}
_PLACEMENT_MARKERS = {"Body": "body", "Query": "query", "Ctx": "ctx", "Header": "header", "Cookie": "cookie"}
_ABSENT_NAMES = {"Undefined", "_UndefinedType"}


def _is_typing(qualname: str, *names: str) -> bool:
    mod, _, last = qualname.rpartition(".")
    return mod in ("typing", "builtins") and last in names


class TypeInspector:
    """Shape questions about annotations, answered against a SourceProgram."""

    def __init__(self, program: SourceProgram):
        self.program = program

    # ----------------------------
    # resolution helpers
    # ----------------------------

    def resolve(self, expr: TypeExpr) -> Resolved:
        return self.program.resolve_type(expr)

    def follow_alias(self, expr: TypeExpr, limit: int = 16) -> TypeExpr:
        while limit > 0 and expr.kind == "name":
            r = self.resolve(expr)
            if r.kind != "alias" or r.alias is None:
                break
            expr = r.alias
            limit -= 1
        return expr

    def framework_name(self, expr: TypeExpr) -> Optional[str]:
        if expr.kind not in ("name", "subscript", "call"):
            return None
        return self.program.framework_symbol(expr.module, expr.name)

    def strip(self, expr: TypeExpr) -> tuple[TypeExpr, tuple[TypeExpr, ...]]:
        """Peel ``Annotated``/``NotRequired``/aliases; return (inner, metadata)."""
        metadata: list[TypeExpr] = []
        for _ in range(16):
            expr = self.follow_alias(expr)
            if expr.kind != "subscript" or not expr.args:
                break
            q = self.resolve(expr).qualname
            if _is_typing(q, "Annotated"):
                metadata.extend(expr.args[1:])
                expr = expr.args[0]
            elif _is_typing(q, "NotRequired", "Required", "ReadOnly"):
                expr = expr.args[0]
            else:
                break
        return expr, tuple(metadata)

    def is_none(self, expr: TypeExpr) -> bool:
        if expr.kind == "none":
            return True
        if expr.kind == "name":
            q = self.resolve(expr).qualname
            return q in ("types.NoneType", "builtins.NoneType")
        return False

    def is_absent(self, expr: TypeExpr) -> bool:
        return expr.kind == "name" and self.framework_name(expr) in _ABSENT_NAMES

    def union_members(self, expr: TypeExpr) -> Optional[list[TypeExpr]]:
        """Members when ``expr`` is a union (``A | B``, ``Union``, ``Optional``)."""
        expr = self.follow_alias(expr)
        if expr.kind == "union":
            return list(expr.args)
        if expr.kind == "subscript":
            q = self.resolve(expr).qualname
            if _is_typing(q, "Union"):
                return list(expr.args)
            if _is_typing(q, "Optional") and expr.args:
                return [expr.args[0], TypeExpr(kind="none", module=expr.module)]
        return None

    def non_null(self, expr: TypeExpr) -> TypeExpr:
        """``T | None`` -> ``T``; anything else unchanged."""
        inner, _ = self.strip(expr)
        members = self.union_members(inner)
        if members is None:
            return inner
        real = [m for m in members if not self.is_none(m) and not self.is_absent(m)]
        if len(real) == 1:
            return self.strip(real[0])[0]
        return inner

    def class_of(self, expr: TypeExpr) -> Optional[ClassDecl]:
        r = self.resolve(expr)
        return r.cls if r.kind == "class" else None

    def is_enum(self, cls: ClassDecl, _seen: Optional[set[str]] = None) -> bool:
        seen = _seen if _seen is not None else set()
        if cls.qualname in seen:
            return False
        seen.add(cls.qualname)
        for base in cls.bases:
            r = self.resolve(base)
            if r.kind == "external" and r.qualname.startswith("enum."):
                return True
            if r.kind == "class" and r.cls is not None and self.is_enum(r.cls, seen):
                return True
        return False

    # ----------------------------
    # placement questions
    # ----------------------------

    def placement_marker(self, expr: Optional[TypeExpr]) -> Optional[str]:
        if expr is None:
            return None
        _, metadata = self.strip(expr)
        for m in metadata:
            name = self.framework_name(m)
            if name in _PLACEMENT_MARKERS:
                return _PLACEMENT_MARKERS[name]
        return None

    def is_request_context(self, expr: Optional[TypeExpr]) -> bool:
        if expr is None:
            return False
        inner = self.non_null(expr)
        if inner.kind not in ("name", "subscript"):
            return False
        if self.framework_name(inner) == "RequestContext":
            return True
        return inner.last_name == "RequestContext"

    def is_array(self, expr: TypeExpr) -> bool:
        inner = self.non_null(expr)
        if inner.kind not in ("name", "subscript"):
            return False
        q = self.resolve(inner).qualname
        return _is_typing(q, *_ARRAY_NAMES)

    def is_object_like(self, expr: Optional[TypeExpr]) -> bool:
        if expr is None:
            return False
        inner = self.non_null(expr)
        if inner.kind not in ("name", "subscript"):
            return False
        if self.is_array(inner) or self.scalar_hint(inner) is not None:
            return False
        r = self.resolve(inner)
        if r.kind == "class" and r.cls is not None:
            return not self.is_enum(r.cls)
        return _is_typing(r.qualname, *_MAPPING_NAMES)

    def scalar_hint(self, expr: Optional[TypeExpr]) -> Optional[ScalarHint]:
        if expr is None:
            return None
        inner = self.non_null(expr)
        if inner.kind == "name":
            r = self.resolve(inner)
            if r.qualname in _SCALAR_HINTS:
                return _SCALAR_HINTS[r.qualname]
            if r.kind == "class" and r.cls is not None and self.is_enum(r.cls):
                values = r.cls.enum_values
                if values and all(isinstance(v, int) and not isinstance(v, bool) for v in values):
                    return "int"
                return "string"
            return None
        if inner.kind == "subscript" and _is_typing(self.resolve(inner).qualname, "Literal"):
            values = [a.value for a in inner.args if a.kind == "constant"]
            if values and all(isinstance(v, str) for v in values):
                return "string"
            if values and all(isinstance(v, bool) for v in values):
                return "boolean"
            if values and all(isinstance(v, int) for v in values):
                return "int"
        return None

    # ----------------------------
    # replies
    # ----------------------------

    def reply_variants(self, expr: Optional[TypeExpr]) -> list[tuple[int, Optional[TypeExpr]]]:
        """``Reply[Body, Literal[200, 201]] | Reply[Err, Literal[404]]`` -> [(200, Body), ...]"""
        if expr is None:
            return []
        expr, _ = self.strip(expr)
        members = self.union_members(expr)
        if members is not None:
            out: list[tuple[int, Optional[TypeExpr]]] = []
            for m in members:
                out.extend(self.reply_variants(m))
            return out
        if expr.kind != "subscript" or self.framework_name(expr) != "Reply" or len(expr.args) < 2:
            return []
        body = expr.args[0]
        body_or_none = None if self.is_none(body) else body
        return [(status, body_or_none) for status in self._literal_ints(expr.args[1])]

    def _literal_ints(self, expr: TypeExpr) -> list[int]:
        if expr.kind == "constant" and isinstance(expr.value, int):
            return [expr.value]
        members = self.union_members(expr)
        if members is not None:
            return [v for m in members for v in self._literal_ints(m)]
        if expr.kind == "subscript" and _is_typing(self.resolve(expr).qualname, "Literal"):
            return [
                a.value for a in expr.args
                if a.kind == "constant" and isinstance(a.value, int) and not isinstance(a.value, bool)
            ]
        return []
