from __future__ import annotations

import logging
import platform
from datetime import datetime, timezone
from typing import Optional

from adornpy.compiler.paths import default_operation_id, join_paths, normalize_path
from adornpy.compiler.placement import ParamPlacementInferencer
from adornpy.compiler.schema.nodes import (
    ArrayNode,
    ObjectNode,
    OptionalNode,
    RefNode,
    SchemaNode,
    StringNode,
    unwrap,
)
from adornpy.compiler.schema.provider import JsonSchemaProvider, render, schema_type
from adornpy.compiler.schema.registry import SchemaRegistry
from adornpy.compiler.schema.translator import TypeSchemaTranslator
from adornpy.compiler.source import SourceProgram
from adornpy.compiler.types import TypeExpr
from adornpy.domain.manifest import (
    Args,
    BodyArg,
    ContextArg,
    ControllerEntry,
    GeneratorInfo,
    HandlerInfo,
    HttpInfo,
    Manifest,
    NamedArg,
    OperationEntry,
    ResponseSpec,
    ValidationInfo,
)
from adornpy.domain.models import ControllerSource, ParamBinding, RawParameter, SourceOperation
from adornpy.errors import DuplicateOperationIdError, DuplicateRouteError
from adornpy.version import __version__

logger = logging.getLogger(__name__)

JSON = "application/json"


class ManifestBuilder:
    """Turn scanned controllers into a Manifest plus a populated SchemaRegistry.

    Raises DuplicateOperationIdError / DuplicateRouteError before anything is
    returned; a partial manifest never escapes.
    """

    def __init__(
        self,
        program: SourceProgram,
        translator: Optional[TypeSchemaTranslator] = None,
    ):
        self.program = program
        self.translator = translator or TypeSchemaTranslator(program)
        self.registry: SchemaRegistry = self.translator.registry
        self.inspector = self.translator.inspector
        self.placement = ParamPlacementInferencer(self.inspector)
        self.provider = JsonSchemaProvider()
        self.warnings: list[str] = []

    def build(
        self,
        controllers: list[ControllerSource],
        validation: Optional[ValidationInfo] = None,
        generated_at: Optional[str] = None,
    ) -> Manifest:
        seen_ids: dict[str, str] = {}
        seen_routes: dict[tuple[str, str], str] = {}
        entries: list[ControllerEntry] = []

        for ctrl in controllers:
            ops: list[OperationEntry] = []
            for op in ctrl.operations:
                full_path = join_paths(ctrl.base_path, op.path)
                op_id = op.operation_id or default_operation_id(ctrl.name, op.method_name)

                if op_id in seen_ids:
                    raise DuplicateOperationIdError(op_id, seen_ids[op_id], op.location)
                seen_ids[op_id] = op.location

                route = (op.http_method, full_path)
                if route in seen_routes:
                    raise DuplicateRouteError(op.http_method, full_path, seen_routes[route], op.location)
                seen_routes[route] = op.location

                ops.append(self.build_operation(op, op_id, full_path))

            entries.append(
                ControllerEntry(
                    controller_id=ctrl.name,
                    base_path=normalize_path(ctrl.base_path) if ctrl.base_path else "",
                    operations=ops,
                )
            )

        self.warnings.extend(self.translator.warnings)
        return Manifest(
            generated_at=generated_at or datetime.now(timezone.utc).isoformat(),
            generator=GeneratorInfo(version=__version__, python=platform.python_version()),
            validation=validation or ValidationInfo(),
            controllers=entries,
        )

    # ----------------------------
    # one operation
    # ----------------------------

    def build_operation(self, op: SourceOperation, op_id: str, full_path: str) -> OperationEntry:
        params = {p.index: p for p in op.parameters}
        body: Optional[BodyArg] = None
        path: list[NamedArg] = []
        query: list[NamedArg] = []
        headers: list[NamedArg] = []
        cookies: list[NamedArg] = []
        context: Optional[ContextArg] = None

        for b in self.placement.infer(op):
            p = params[b.index]
            where = f"{op_id} parameter '{p.name}'"
            if b.kind == "body":
                body = BodyArg(
                    index=b.index,
                    required=not b.optional,
                    content_type=JSON,
                    schema_ref=self._component_ref(p.annotation, f"{op_id}Body", where),
                )
            elif b.kind == "path":
                path.append(self._scalar_arg(b, p, b.name or p.name, True, where))
            elif b.kind == "queryScalar":
                query.append(self._scalar_arg(b, p, p.name, not b.optional, where))
            elif b.kind == "query":
                query.extend(self._spread_query(b, p, where))
            elif b.kind == "header":
                headers.append(self._scalar_arg(b, p, p.name.replace("_", "-"), not b.optional, where))
            elif b.kind == "cookie":
                cookies.append(self._scalar_arg(b, p, p.name, not b.optional, where))
            elif b.kind == "ctx":
                context = ContextArg(index=b.index)

        return OperationEntry(
            operation_id=op_id,
            http=HttpInfo(method=op.http_method, path=full_path),
            handler=HandlerInfo(method_name=op.method_name),
            args=Args(
                body=body, path=path, query=query, headers=headers, cookies=cookies, context=context
            ),
            responses=self._responses(op, op_id),
        )

    # ----------------------------
    # arguments
    # ----------------------------

    def _translate(self, expr: Optional[TypeExpr], where: str) -> Optional[SchemaNode]:
        if expr is None:
            return None
        return self.translator.translate(expr, context=where)

    def _component_ref(self, expr: Optional[TypeExpr], inline_name: str, where: str) -> str:
        """Body schemas always point at a component; inline shapes get one."""
        node = self._translate(expr, where)
        if node is None:
            self._warn(f"{where}: no schema; accepting any object")
            node = ObjectNode(strict=False)
        inner = unwrap(node)
        if isinstance(inner, RefNode):
            return self.provider.to_schema_ref(inner.name)
        return self.provider.to_schema_ref(self.registry.add(inline_name, inner))

    def _scalar_arg(
        self, b: ParamBinding, p: RawParameter, name: str, required: bool, where: str
    ) -> NamedArg:
        node = self._translate(p.annotation, where) or StringNode()
        return self._named(name, b.index, required, node)

    def _named(
        self,
        name: str,
        index: int,
        required: bool,
        node: SchemaNode,
        spread: Optional[bool] = None,
        style: Optional[str] = None,
    ) -> NamedArg:
        if isinstance(node, OptionalNode):
            node = node.inner
        inner = unwrap(node)
        ref = self.provider.to_schema_ref(inner.name) if isinstance(inner, RefNode) else None
        resolved = self._deref(inner)
        fmt = resolved.format if isinstance(resolved, StringNode) else None
        return NamedArg(
            name=name,
            index=index,
            required=required,
            schema_ref=ref,
            schema_type=schema_type(resolved) or "string",
            format=fmt,
            spread=spread,
            style=style,
            schema=render(self.provider, node),
        )

    def _deref(self, node: SchemaNode) -> SchemaNode:
        for _ in range(16):
            node = unwrap(node)
            if not isinstance(node, RefNode):
                break
            target = self.registry.get(node.name)
            if target is None:
                break
            node = target
        return node

    def _spread_query(self, b: ParamBinding, p: RawParameter, where: str) -> list[NamedArg]:
        node = self._translate(p.annotation, where)
        if node is None:
            return []
        obj = self._deref(node)
        if not isinstance(obj, ObjectNode):
            self._warn(f"{where}: query object is not an object; skipped")
            return []
        if not obj.properties:
            # free-form dict[str, T]: the whole query string goes to this parameter
            return [self._named(p.name, b.index, False, obj, spread=True, style="form")]

        out: list[NamedArg] = []
        for prop, child in obj.properties:
            required = prop in obj.required and not b.optional
            style = "deepObject" if schema_type(self._deref(child)) == "object" else None
            out.append(self._named(prop, b.index, required, child, spread=True, style=style))
        return out

    # ----------------------------
    # responses
    # ----------------------------

    def _responses(self, op: SourceOperation, op_id: str) -> list[ResponseSpec]:
        where = f"{op_id} return type"
        variants = self.inspector.reply_variants(op.returns)
        if variants:
            multiple = len(variants) > 1
            return [
                self._response(
                    status, body, f"{op_id}Response{status if multiple else ''}", where
                )
                for status, body in variants
            ]

        status = op.status or (201 if op.http_method == "POST" else 200)
        return [self._response(status, op.returns, f"{op_id}Response", where)]

    def _response(
        self, status: int, expr: Optional[TypeExpr], inline_name: str, where: str
    ) -> ResponseSpec:
        if expr is None or self.inspector.is_none(self.inspector.strip(expr)[0]):
            return ResponseSpec(status=status, content_type=JSON, schema_ref=None)

        node = self._translate(expr, where)
        if node is None:
            self._warn(f"{where}: no schema for status {status}")
            return ResponseSpec(status=status, content_type=JSON, schema_ref=None)

        inner = node.inner if isinstance(node, OptionalNode) else node
        if isinstance(inner, ArrayNode) and isinstance(inner.items, RefNode):
            return ResponseSpec(
                status=status,
                content_type=JSON,
                schema_ref=self.provider.to_schema_ref(inner.items.name),
                is_array=True,
            )
        if isinstance(inner, RefNode):
            return ResponseSpec(
                status=status, content_type=JSON, schema_ref=self.provider.to_schema_ref(inner.name)
            )
        # anything else, including ``T | None``, becomes an inline component
        name = self.registry.add(inline_name, inner)
        return ResponseSpec(status=status, content_type=JSON, schema_ref=self.provider.to_schema_ref(name))

    def _warn(self, message: str) -> None:
        self.warnings.append(message)
        logger.warning("%s", message)
