from __future__ import annotations

from typing import Any, ClassVar, Iterator, Literal, Optional

from pydantic import BaseModel, ConfigDict, Field, model_serializer
from pydantic.alias_generators import to_camel

from adornpy.domain.models import HttpMethod

MANIFEST_VERSION = 1
CACHE_VERSION = 1

ValidationMode = Literal["none", "runtime", "precompiled"]


class _Wire(BaseModel):
    """camelCase on the wire, snake_case in Python."""

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True, frozen=True)

    # aliases dropped from the JSON when their value is None
    omit_if_none: ClassVar[frozenset[str]] = frozenset()

    @model_serializer(mode="wrap")
    def _compact(self, handler: Any) -> dict[str, Any]:
        data = handler(self)
        if not self.omit_if_none:
            return data
        return {k: v for k, v in data.items() if not (v is None and k in self.omit_if_none)}


class GeneratorInfo(_Wire):
    name: str = "adornpy"
    version: str
    python: str


class SchemasInfo(_Wire):
    kind: str = "openapi-3.1"
    file: str = "./openapi.json"
    components_schemas_pointer: str = "/components/schemas"


class ValidationInfo(_Wire):
    mode: ValidationMode = "none"
    precompiled_module: Optional[str] = None


class BodyArg(_Wire):
    index: int
    required: bool = True
    content_type: str = "application/json"
    schema_ref: str


class NamedArg(_Wire):
    """A path / query / header / cookie argument."""

    omit_if_none: ClassVar[frozenset[str]] = frozenset(
        {"schemaRef", "schema_ref", "schemaType", "schema_type", "spread", "style", "schema", "format"}
    )

    name: str
    index: int
    required: bool = False
    schema_ref: Optional[str] = None
    schema_type: Optional[str] = None
    format: Optional[str] = None
    spread: Optional[bool] = None
    style: Optional[str] = None
    # rendered inline schema, used by the OpenAPI emitter
    schema_: Optional[dict[str, Any]] = Field(default=None, alias="schema")


class ContextArg(_Wire):
    index: int


class Args(_Wire):
    body: Optional[BodyArg] = None
    path: list[NamedArg] = Field(default_factory=list)
    query: list[NamedArg] = Field(default_factory=list)
    headers: list[NamedArg] = Field(default_factory=list)
    cookies: list[NamedArg] = Field(default_factory=list)
    context: Optional[ContextArg] = None


class ResponseSpec(_Wire):
    omit_if_none: ClassVar[frozenset[str]] = frozenset({"isArray", "is_array"})

    status: int
    content_type: str = "application/json"
    schema_ref: Optional[str] = None
    is_array: Optional[bool] = None


class HttpInfo(_Wire):
    method: HttpMethod
    path: str


class HandlerInfo(_Wire):
    method_name: str


class OperationEntry(_Wire):
    operation_id: str
    http: HttpInfo
    handler: HandlerInfo
    args: Args = Field(default_factory=Args)
    responses: list[ResponseSpec] = Field(default_factory=list)


class ControllerEntry(_Wire):
    controller_id: str
    base_path: str = ""
    operations: list[OperationEntry] = Field(default_factory=list)


class Manifest(_Wire):
    manifest_version: int = MANIFEST_VERSION
    generated_at: str
    generator: GeneratorInfo
    schemas: SchemasInfo = Field(default_factory=SchemasInfo)
    validation: ValidationInfo = Field(default_factory=ValidationInfo)
    controllers: list[ControllerEntry] = Field(default_factory=list)

    def operations(self) -> Iterator[OperationEntry]:
        for c in self.controllers:
            yield from c.operations

    def find(self, operation_id: str) -> Optional[OperationEntry]:
        for op in self.operations():
            if op.operation_id == operation_id:
                return op
        return None

    def to_json(self) -> str:
        return self.model_dump_json(by_alias=True, indent=2)


# ----------------------------
# cache.json
# ----------------------------


class LockfileStamp(_Wire):
    path: str
    mtime_ms: float


class ProjectStamp(_Wire):
    config_path: Optional[str] = None
    config_files: dict[str, float] = Field(default_factory=dict)
    lockfile: Optional[LockfileStamp] = None


class CacheGenerator(_Wire):
    name: str = "adornpy"
    version: str


class CacheFile(_Wire):
    cache_version: int = CACHE_VERSION
    generator: CacheGenerator
    project: ProjectStamp = Field(default_factory=ProjectStamp)
    # effective build settings; see AdornSettings.fingerprint
    settings: Optional[dict[str, Any]] = None
    inputs: dict[str, float] = Field(default_factory=dict)
