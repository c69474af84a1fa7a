from adornpy.compiler.placement import ParamPlacementInferencer
from adornpy.compiler.scanner import scan_controllers
from adornpy.compiler.shapes import TypeInspector
from adornpy.compiler.source import SourceProgram

HEADER = """
from dataclasses import dataclass
from typing import Annotated, Optional
from uuid import UUID

from adornpy import Body, Cookie, Header, Query, RequestContext, controller, delete, get, post, put


@dataclass
class CreateUser:
    name: str
    email: str


@dataclass
class Filters:
    q: Optional[str] = None
    limit: int = 10
"""


def _placements(body: str) -> dict[str, list[tuple]]:
    program = SourceProgram.from_source(HEADER + body)
    inferencer = ParamPlacementInferencer(TypeInspector(program))
    out = {}
    for ctrl in scan_controllers(program):
        for op in ctrl.operations:
            out[op.method_name] = [
                (b.kind, b.index, b.name, b.hint, b.optional) for b in inferencer.infer(op)
            ]
    return out


def test_path_token_matches_by_name_then_position():
    got = _placements(
        """
class C:
    @get("/users/{id}/posts/{post}")
    def by_name(self, post: int, id: UUID):
        ...

    @get("/orgs/{org}")
    def by_position(self, organisation: str, verbose: bool = False):
        ...
"""
    )
    assert got["by_name"] == [
        ("path", 0, "post", "int", False),
        ("path", 1, "id", "uuid", False),
    ]
    assert got["by_position"] == [
        ("path", 0, "org", "string", False),
        ("queryScalar", 1, "verbose", "boolean", True),
    ]


def test_post_infers_body_from_first_object_like_parameter():
    got = _placements(
        """
class C:
    @post("/users")
    def create(self, data: CreateUser, dry_run: bool = False):
        ...
"""
    )
    assert got["create"] == [
        ("body", 0, "data", None, False),
        ("queryScalar", 1, "dry_run", "boolean", True),
    ]


def test_get_never_infers_body():
    got = _placements(
        """
class C:
    @get("/users")
    def search(self, filters: Filters, page: int = 1):
        ...

    @delete("/users")
    def purge(self, filters: Filters):
        ...
"""
    )
    assert [b[0] for b in got["search"]] == ["query", "queryScalar"]
    assert [b[0] for b in got["purge"]] == ["query"]


def test_at_most_one_inferred_body():
    got = _placements(
        """
class C:
    @put("/users/{id}")
    def replace(self, id: int, data: CreateUser, extra: Filters):
        ...
"""
    )
    assert [b[0] for b in got["replace"]] == ["path", "body", "query"]


def test_explicit_markers_and_context():
    got = _placements(
        """
class C:
    @post("/things")
    def make(
        self,
        ctx: RequestContext,
        filters: Annotated[Filters, Query()],
        payload: Annotated[dict, Body()],
        x_trace: Annotated[str, Header()],
        session: Annotated[Optional[str], Cookie()] = None,
    ):
        ...
"""
    )
    assert [b[0] for b in got["make"]] == ["ctx", "query", "body", "header", "cookie"]
    assert got["make"][4][4] is True


def test_every_parameter_gets_exactly_one_role():
    got = _placements(
        """
class C:
    @post("/a/{x}")
    def many(self, x: int, y: str, z: CreateUser, w: Filters, ctx: RequestContext, v: list[int]):
        ...
"""
    )
    roles = got["many"]
    assert [r[1] for r in roles] == [0, 1, 2, 3, 4, 5]
    assert [r[0] for r in roles] == ["path", "queryScalar", "body", "query", "ctx", "queryScalar"]
