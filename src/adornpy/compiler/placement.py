from __future__ import annotations

from typing import Optional

from adornpy.compiler.paths import path_tokens
from adornpy.compiler.shapes import TypeInspector
from adornpy.domain.models import ParamBinding, RawParameter, SourceOperation

_BODY_METHODS = {"POST", "PUT", "PATCH"}


class ParamPlacementInferencer:
    """Assign every handler parameter exactly one role.

    Order: path tokens, explicit markers, request context, body (POST/PUT/PATCH
    only, first object-like parameter), then query object / query scalar.
    """

    def __init__(self, inspector: TypeInspector):
        self.inspector = inspector

    def infer(self, op: SourceOperation) -> list[ParamBinding]:
        params = list(op.parameters)
        roles: list[Optional[str]] = [None] * len(params)
        token_for: dict[int, str] = {}

        # 1. path tokens: exact name wins, otherwise next unassigned positionally
        for tok in path_tokens(op.path):
            idx = next(
                (i for i, p in enumerate(params) if roles[i] is None and p.name == tok), None
            )
            if idx is None:
                idx = next((i for i in range(len(params)) if roles[i] is None), None)
            if idx is None:
                continue
            roles[idx] = "path"
            token_for[idx] = tok

        # 2. explicit markers
        for i, p in enumerate(params):
            if roles[i] is not None:
                continue
            marker = self.inspector.placement_marker(p.annotation)
            if marker == "query":
                roles[i] = "query" if self.inspector.is_object_like(p.annotation) else "queryScalar"
            elif marker is not None:
                roles[i] = marker

        # 3. request context
        for i, p in enumerate(params):
            if roles[i] is None and self.inspector.is_request_context(p.annotation):
                roles[i] = "ctx"

        # 4. body: at most one, never for GET/DELETE/...
        if op.http_method in _BODY_METHODS and "body" not in roles:
            for i, p in enumerate(params):
                if roles[i] is None and self.inspector.is_object_like(p.annotation):
                    roles[i] = "body"
                    break

        # 5. the rest
        for i, p in enumerate(params):
            if roles[i] is None:
                roles[i] = "query" if self.inspector.is_object_like(p.annotation) else "queryScalar"

        return [self._binding(p, roles[i] or "queryScalar", token_for.get(i)) for i, p in enumerate(params)]

    def _binding(self, p: RawParameter, role: str, token: Optional[str]) -> ParamBinding:
        if role == "path":
            return ParamBinding(
                kind="path", index=p.index, name=token or p.name,
                hint=self.inspector.scalar_hint(p.annotation),
            )
        if role == "queryScalar":
            return ParamBinding(
                kind="queryScalar", index=p.index, name=p.name,
                hint=self.inspector.scalar_hint(p.annotation),
                optional=p.optional or self._accepts_missing(p),
            )
        if role == "ctx":
            return ParamBinding(kind="ctx", index=p.index)
        return ParamBinding(
            kind=role,  # type: ignore[arg-type]
            index=p.index,
            name=p.name,
            optional=p.optional or self._accepts_missing(p),
        )

    def _accepts_missing(self, p: RawParameter) -> bool:
        if p.annotation is None:
            return False
        inner, _ = self.inspector.strip(p.annotation)
        members = self.inspector.union_members(inner)
        if members is None:
            return False
        return any(self.inspector.is_none(m) or self.inspector.is_absent(m) for m in members)
