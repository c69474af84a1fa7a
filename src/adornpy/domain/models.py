from __future__ import annotations

from dataclasses import dataclass
from typing import Literal, Optional

from adornpy.compiler.types import TypeExpr

HttpMethod = Literal["GET", "POST", "PUT", "PATCH", "DELETE", "OPTIONS", "HEAD"]
BindingKind = Literal["path", "query", "queryScalar", "body", "ctx", "header", "cookie"]
ScalarHint = Literal["string", "int", "number", "boolean", "uuid"]


@dataclass(frozen=True)
class RawParameter:
    name: str
    index: int
    annotation: Optional[TypeExpr]
    optional: bool = False


@dataclass(frozen=True)
class SourceOperation:
    """One decorated controller method, as read from source."""

    controller: str
    method_name: str
    http_method: HttpMethod
    path: str
    parameters: tuple[RawParameter, ...]
    returns: Optional[TypeExpr]
    operation_id: Optional[str] = None
    status: Optional[int] = None
    is_async: bool = False
    module: str = ""
    file_path: str = ""
    line: int = 0

    @property
    def location(self) -> str:
        return f"{self.controller}.{self.method_name} ({self.file_path}:{self.line})"


@dataclass(frozen=True)
class ControllerSource:
    name: str
    base_path: str
    module: str
    file_path: str
    line: int
    operations: tuple[SourceOperation, ...]


@dataclass(frozen=True)
class ParamBinding:
    kind: BindingKind
    index: int
    name: Optional[str] = None
    hint: Optional[ScalarHint] = None
    optional: bool = False
