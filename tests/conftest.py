import importlib.util
import sys
import textwrap
from pathlib import Path

import pytest

from adornpy.config import AdornSettings
from adornpy.orchestrator.pipeline import run_build

USERS_APP = """
from dataclasses import dataclass
from typing import Annotated, Literal, Optional

from adornpy import (
    ControllerRegistry,
    Header,
    Reply,
    RequestContext,
    controller,
    delete,
    get,
    paginated,
    post,
    status,
    use,
)
from adornpy.runtime.markers import MinLength

REGISTRY = ControllerRegistry()
USERS = {1: {"id": 1, "name": "Ada", "email": "ada@example.com"}}
SEEN = []


@dataclass
class User:
    id: int
    name: str
    email: str


@dataclass
class CreateUser:
    name: Annotated[str, MinLength(2)]
    email: str


@dataclass
class NotFound:
    message: str


@dataclass
class Search:
    q: Optional[str] = None
    limit: int = 10


async def audit(ctx, call_next):
    SEEN.append(ctx.operation_id)
    return await call_next()


@controller("/users", registry=REGISTRY)
class UserController:
    @get("/{id}")
    def get_user(self, id: int) -> Reply[User, Literal[200]] | Reply[NotFound, Literal[404]]:
        if id not in USERS:
            return Reply(status=404, body=NotFound(message=f"user {id} not found"))
        return Reply(status=200, body=User(**USERS[id]))

    @post("/")
    @use(audit)
    async def create_user(self, data: CreateUser, x_tenant: Annotated[Optional[str], Header()] = None) -> User:
        new_id = max(USERS) + 1
        USERS[new_id] = {"id": new_id, "name": data.name, "email": data.email}
        return User(**USERS[new_id])

    @get("/")
    @paginated(default_page_size=2, max_page_size=5)
    def list_users(self, search: Search, ctx: RequestContext) -> list[User]:
        page = ctx.state["pagination"]
        users = [User(**u) for u in USERS.values() if not search.q or search.q in u["name"]]
        return users[: min(search.limit, page["page_size"])]

    @delete("/{id}")
    @status(204)
    def remove(self, id: int) -> None:
        USERS.pop(id, None)

    @get("/boom")
    def boom(self) -> dict[str, str]:
        raise RuntimeError("kaboom")

    @get("/bad")
    def bad(self) -> User:
        return {"id": "not-an-int", "name": "x", "email": "y"}
"""


def write(p: Path, s: str) -> None:
    p.parent.mkdir(parents=True, exist_ok=True)
    p.write_text(textwrap.dedent(s), encoding="utf-8")


def import_file(monkeypatch: pytest.MonkeyPatch, name: str, path: Path):
    spec = importlib.util.spec_from_file_location(name, path)
    module = importlib.util.module_from_spec(spec)
    monkeypatch.setitem(sys.modules, name, module)
    spec.loader.exec_module(module)
    return module


@pytest.fixture()
def users_project(tmp_path: Path, monkeypatch: pytest.MonkeyPatch):
    """A built project: (root, out_dir, imported controller module)."""
    root = tmp_path / "proj"
    src = root / "users_app.py"
    write(src, USERS_APP)
    out_dir = root / ".adorn"

    settings = AdornSettings(out_dir=out_dir, validation_mode="precompiled")
    result = run_build(root, settings)
    assert result.skipped is False

    module = import_file(monkeypatch, "users_app", src)
    return root, out_dir, module
