import json
from pathlib import Path

from adornpy.compiler.manifest import ManifestBuilder
from adornpy.compiler.openapi import build_openapi
from adornpy.compiler.scanner import scan_controllers
from adornpy.compiler.source import SourceProgram
from adornpy.compiler.validators import META_FILE, ValidatorEmitter
from adornpy.runtime.validation import ValidatorSet, compile_in_memory, load_precompiled

APP = """
from dataclasses import dataclass
from typing import Annotated, Literal, Optional

from adornpy import MaxLength, MinLength, Minimum, Pattern, controller, get, post


@dataclass
class Tag:
    label: str


@dataclass
class CreateUser:
    name: Annotated[str, MinLength(2), MaxLength(10)]
    email: Annotated[str, Pattern(r"^[^@]+@[^@]+$")]
    age: Annotated[int, Minimum(0)] = 0
    role: Literal["admin", "user"] = "user"
    nickname: Optional[str] = None
    tags: list[Tag] = None


@dataclass
class User:
    id: int
    name: str


@controller("/users")
class UserController:
    @post("/")
    def create(self, data: CreateUser) -> User:
        ...

    @get("/")
    def list_users(self) -> list[User]:
        ...
"""


def _artifacts(src: str = APP):
    program = SourceProgram.from_source(src, module="app")
    builder = ManifestBuilder(program)
    manifest = builder.build(scan_controllers(program))
    return manifest, build_openapi(manifest, builder.registry)


def _validators(src: str = APP) -> ValidatorSet:
    manifest, doc = _artifacts(src)
    return ValidatorSet(compile_in_memory(doc, manifest), source="runtime")


def test_valid_body_passes():
    v = _validators()
    out = v.check_body("UserController_create", {"name": "Ada", "email": "ada@example.com"})
    assert out.ok is True
    assert out.issues == ()


def test_invalid_body_reports_paths():
    v = _validators()
    out = v.check_body(
        "UserController_create",
        {"name": "A", "email": "nope", "age": -1, "role": "root", "extra": 1, "tags": [{"label": 3}]},
    )
    assert out.ok is False
    paths = {i.path for i in out.issues}
    assert {"/name", "/email", "/age", "/role", "/extra", "/tags/0/label"} <= paths


def test_missing_required_and_wrong_types():
    v = _validators()
    out = v.check_body("UserController_create", {"name": 12})
    paths = {(i.path, i.message) for i in out.issues}
    assert ("/email", "is required") in paths
    assert ("/name", "expected string") in paths

    out = v.check_body("UserController_create", ["not", "an", "object"])
    assert out.ok is False


def test_nullable_fields_accept_null():
    v = _validators()
    out = v.check_body("UserController_create", {"name": "Ada", "email": "a@b.c", "nickname": None})
    assert out.ok is True


def test_responses_and_unknown_operations():
    v = _validators()
    ok = v.check_response("UserController_list_users", 200, "application/json", [{"id": 1, "name": "x"}])
    assert ok.ok is True
    bad = v.check_response("UserController_list_users", 200, "application/json", [{"id": "1", "name": "x"}])
    assert bad.ok is False
    assert bad.issues[0].path == "/0/id"

    # no validator for this op/status: everything passes
    assert v.check_body("nope", {"x": 1}).ok is True
    assert v.check_response("UserController_list_users", 500, "application/json", "boom").ok is True


def test_emit_writes_module_and_meta_once(tmp_path: Path):
    manifest, doc = _artifacts()
    emitter = ValidatorEmitter(doc, manifest)

    first = emitter.emit(tmp_path)
    assert first.written is True
    meta = json.loads((tmp_path / META_FILE).read_text(encoding="utf-8"))
    assert meta["codeHash"] == first.code_hash
    assert "UserController_create" in meta["operations"]

    second = emitter.emit(tmp_path)
    assert second.written is False
    assert second.code_hash == first.code_hash

    module = load_precompiled(first.path)
    assert module.CODE_HASH == first.code_hash
    assert module.validate_body("UserController_create", {"name": "Ada", "email": "a@b.c"}).ok is True


def test_compile_failure_only_drops_that_operation():
    src = APP.replace(r'Pattern(r"^[^@]+@[^@]+$")', 'Pattern("([unclosed")')
    manifest, doc = _artifacts(src)
    generated = ValidatorEmitter(doc, manifest).generate()
    assert generated.skipped == ["UserController_create"]
    assert generated.operations == ["UserController_list_users"]


def test_literal_true_does_not_accept_one():
    src = """
from dataclasses import dataclass
from typing import Literal

from adornpy import controller, post


@dataclass
class Flags:
    mixed: Literal[1, True]
    on: Literal[True, "yes"]


@controller("/flags")
class FlagController:
    @post("/")
    def set_flags(self, data: Flags) -> None:
        ...
"""
    v = _validators(src)
    op = "FlagController_set_flags"
    assert v.check_body(op, {"mixed": 1, "on": True}).ok is True
    assert v.check_body(op, {"mixed": True, "on": "yes"}).ok is True

    out = v.check_body(op, {"mixed": 2, "on": 1})
    assert out.ok is False
    assert {i.path for i in out.issues} == {"/mixed", "/on"}
