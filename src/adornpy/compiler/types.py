from __future__ import annotations

import ast
from dataclasses import dataclass
from typing import Any, Literal, Optional

TypeKind = Literal["name", "subscript", "union", "none", "constant", "call", "unknown"]

_NO_FORWARD_REF = {"Literal"}


@dataclass(frozen=True)
class TypeExpr:
    """An annotation as written in source, not yet resolved.

    ``name`` is the dotted name as spelled (``Optional``, ``typing.List``,
    ``dtos.User``); ``module`` is the module the annotation appears in, which is
    where name resolution starts.
    """

    kind: TypeKind
    name: str = ""
    args: tuple["TypeExpr", ...] = ()
    value: Any = None
    kwargs: tuple[tuple[str, Any], ...] = ()
    module: str = ""
    text: str = ""

    @property
    def last_name(self) -> str:
        return self.name.rsplit(".", 1)[-1]


def parse_annotation(node: Optional[ast.AST], module: str) -> Optional[TypeExpr]:
    if node is None:
        return None
    return _parse(node, module)


def _unparse(node: ast.AST) -> str:
    try:
        return ast.unparse(node)
    except Exception:
        return node.__class__.__name__


def dotted_name(node: ast.AST) -> Optional[str]:
    if isinstance(node, ast.Name):
        return node.id
    if isinstance(node, ast.Attribute):
        head = dotted_name(node.value)
        return f"{head}.{node.attr}" if head else None
    return None


def _literal(node: ast.AST) -> Any:
    try:
        return ast.literal_eval(node)
    except Exception:
        return None


def _parse(node: ast.AST, module: str, forward_refs: bool = True) -> TypeExpr:
    text = _unparse(node)

    if isinstance(node, ast.Constant):
        if node.value is None:
            return TypeExpr(kind="none", module=module, text="None")
        if isinstance(node.value, str) and forward_refs:
            # "User" -> forward reference
            try:
                inner = ast.parse(node.value.strip(), mode="eval").body
            except SyntaxError:
                return TypeExpr(kind="unknown", module=module, text=text)
            return _parse(inner, module)
        return TypeExpr(kind="constant", value=node.value, module=module, text=text)

    if isinstance(node, ast.UnaryOp) and isinstance(node.op, ast.USub):
        value = _literal(node)
        if isinstance(value, (int, float)):
            return TypeExpr(kind="constant", value=value, module=module, text=text)
        return TypeExpr(kind="unknown", module=module, text=text)

    if isinstance(node, (ast.Name, ast.Attribute)):
        name = dotted_name(node)
        if name is None:
            return TypeExpr(kind="unknown", module=module, text=text)
        if name == "None":
            return TypeExpr(kind="none", module=module, text="None")
        return TypeExpr(kind="name", name=name, module=module, text=text)

    if isinstance(node, ast.BinOp) and isinstance(node.op, ast.BitOr):
        members: list[TypeExpr] = []
        for side in (node.left, node.right):
            parsed = _parse(side, module, forward_refs)
            if parsed.kind == "union":
                members.extend(parsed.args)
            else:
                members.append(parsed)
        return TypeExpr(kind="union", args=tuple(members), module=module, text=text)

    if isinstance(node, ast.Subscript):
        base = dotted_name(node.value)
        if base is None:
            return TypeExpr(kind="unknown", module=module, text=text)
        elts = node.slice.elts if isinstance(node.slice, ast.Tuple) else [node.slice]
        last = base.rsplit(".", 1)[-1]
        if last == "Annotated" and elts:
            args = [_parse(elts[0], module)] + [_parse_metadata(e, module) for e in elts[1:]]
        else:
            refs = last not in _NO_FORWARD_REF
            args = [_parse(e, module, refs) for e in elts]
        return TypeExpr(kind="subscript", name=base, args=tuple(args), module=module, text=text)

    if isinstance(node, ast.Call):
        return _parse_metadata(node, module)

    return TypeExpr(kind="unknown", module=module, text=text)


def _parse_metadata(node: ast.AST, module: str) -> TypeExpr:
    """Annotated metadata: ``Body()``, ``MinLength(3)``, ``Query`` or a plain constant."""
    text = _unparse(node)
    if isinstance(node, ast.Call):
        name = dotted_name(node.func) or ""
        args = tuple(_literal(a) for a in node.args)
        kwargs = tuple((kw.arg, _literal(kw.value)) for kw in node.keywords if kw.arg)
        return TypeExpr(kind="call", name=name, value=args, kwargs=kwargs, module=module, text=text)
    if isinstance(node, (ast.Name, ast.Attribute)):
        name = dotted_name(node) or ""
        return TypeExpr(kind="call", name=name, value=(), module=module, text=text)
    return _parse(node, module, forward_refs=False)
