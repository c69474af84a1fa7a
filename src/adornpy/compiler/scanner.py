from __future__ import annotations

import ast
import logging
from typing import Optional

from adornpy.compiler.paths import normalize_path
from adornpy.compiler.source import ModuleInfo, SourceProgram
from adornpy.compiler.types import dotted_name, parse_annotation
from adornpy.domain.models import ControllerSource, HttpMethod, RawParameter, SourceOperation

logger = logging.getLogger(__name__)

_HTTP_DECORATORS: dict[str, HttpMethod] = {
    "get": "GET",
    "post": "POST",
    "put": "PUT",
    "patch": "PATCH",
    "delete": "DELETE",
}


def scan_controllers(program: SourceProgram) -> list[ControllerSource]:
    """Find framework-decorated controller classes in every parsed module.

    Uses ast only; does not import/execute code. Classes without at least one
    framework verb decorator are ignored.
    """
    out: list[ControllerSource] = []
    for info in sorted(program.modules.values(), key=lambda m: m.name):
        for node in info.tree.body:
            if not isinstance(node, ast.ClassDef):
                continue
            ctrl = _scan_class(program, info, node)
            if ctrl is not None:
                out.append(ctrl)
    return out


def extract_controllers_from_source(
    source: str, module: str = "app", package_name: str = "adornpy"
) -> list[ControllerSource]:
    program = SourceProgram.from_source(source, module=module, package_name=package_name)
    return scan_controllers(program)


def _scan_class(program: SourceProgram, info: ModuleInfo, node: ast.ClassDef) -> Optional[ControllerSource]:
    operations: list[SourceOperation] = []
    for item in node.body:
        if not isinstance(item, (ast.FunctionDef, ast.AsyncFunctionDef)):
            continue
        try:
            operations.extend(_scan_method(program, info, node.name, item))
        except Exception as exc:  # unparsable methods are skipped, never fatal
            logger.warning("Skipping %s.%s in %s: %s", node.name, item.name, info.path, exc)

    if not operations:
        return None

    base_path = ""
    for dec in node.decorator_list:
        if _framework_call(program, info, dec) == "controller":
            assert isinstance(dec, ast.Call)
            value = _first_arg(dec, "base_path")
            literal = _const_str(value) if value is not None else ""
            if literal is not None:
                base_path = literal

    # stable ordering: by decorator line, then handler name
    operations.sort(key=lambda o: (o.line, o.method_name))
    return ControllerSource(
        name=node.name,
        base_path=base_path,
        module=info.name,
        file_path=str(info.path),
        line=node.lineno,
        operations=tuple(operations),
    )


def _scan_method(
    program: SourceProgram,
    info: ModuleInfo,
    class_name: str,
    fn: ast.FunctionDef | ast.AsyncFunctionDef,
) -> list[SourceOperation]:
    routes: list[tuple[HttpMethod, str, int]] = []
    operation_id: Optional[str] = None
    status: Optional[int] = None
    is_static = False

    for dec in fn.decorator_list:
        if isinstance(dec, ast.Name) and dec.id == "staticmethod":
            is_static = True
            continue
        name = _framework_call(program, info, dec)
        if name is None:
            continue
        assert isinstance(dec, ast.Call)
        verb = _HTTP_DECORATORS.get(name.lower())
        if verb is not None:
            value = _first_arg(dec, "path")
            path = _const_str(value) if value is not None else ""
            if path is None:
                # non-literal path: cannot be known statically
                continue
            routes.append((verb, path, getattr(dec, "lineno", fn.lineno)))
        elif name == "operation_id":
            operation_id = _const_str(_first_arg(dec, "value"))
        elif name == "status":
            status = _const_int(_first_arg(dec, "code"))

    if not routes:
        return []

    params = _parameters(info.name, fn, skip_first=not is_static)
    returns = parse_annotation(fn.returns, info.name)
    return [
        SourceOperation(
            controller=class_name,
            method_name=fn.name,
            http_method=verb,
            path=normalize_path(path),
            parameters=params,
            returns=returns,
            operation_id=operation_id,
            status=status,
            is_async=isinstance(fn, ast.AsyncFunctionDef),
            module=info.name,
            file_path=str(info.path),
            line=line,
        )
        for verb, path, line in routes
    ]


def _parameters(
    module: str, fn: ast.FunctionDef | ast.AsyncFunctionDef, skip_first: bool
) -> tuple[RawParameter, ...]:
    a = fn.args
    positional = list(a.posonlyargs) + list(a.args)
    # defaults align to the tail of the positional list
    first_default = len(positional) - len(a.defaults)
    flagged = [(p, i >= first_default) for i, p in enumerate(positional)]
    flagged += [(p, d is not None) for p, d in zip(a.kwonlyargs, a.kw_defaults)]

    if skip_first and flagged:
        flagged = flagged[1:]

    return tuple(
        RawParameter(
            name=p.arg,
            index=i,
            annotation=parse_annotation(p.annotation, module),
            optional=has_default,
        )
        for i, (p, has_default) in enumerate(flagged)
    )


def _framework_call(program: SourceProgram, info: ModuleInfo, dec: ast.AST) -> Optional[str]:
    """Name of the framework decorator factory called by ``dec``, or None.

    ``@get("/x")`` only counts when ``get`` resolves to the framework package;
    a same-named local function or a foreign ``@router.get`` does not.
    """
    if not isinstance(dec, ast.Call):
        return None
    callee = dotted_name(dec.func)
    if callee is None:
        return None
    return program.framework_symbol(info.name, callee)


def _first_arg(call: ast.Call, keyword: str) -> Optional[ast.AST]:
    if call.args:
        return call.args[0]
    for kw in call.keywords or []:
        if kw.arg == keyword:
            return kw.value
    return None


def _const_str(node: Optional[ast.AST]) -> Optional[str]:
    if isinstance(node, ast.Constant) and isinstance(node.value, str):
        return node.value.strip()

    # f-strings, concatenations and names are not evaluated
    return None


def _const_int(node: Optional[ast.AST]) -> Optional[int]:
    if isinstance(node, ast.Constant) and isinstance(node.value, int) and not isinstance(node.value, bool):
        return node.value
    return None
