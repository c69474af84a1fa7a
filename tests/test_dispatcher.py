import asyncio
import os
from pathlib import Path

from adornpy.cache.artifacts import ArtifactCache
from adornpy.config import AdornSettings
from adornpy.orchestrator.pipeline import run_build
from adornpy.runtime.app import create_dispatcher
from adornpy.runtime.context import IncomingRequest

from conftest import import_file, write

ITEMS_APP = """
from adornpy import ControllerRegistry, controller, get

REGISTRY = ControllerRegistry()


@controller("/items", registry=REGISTRY)
class ItemController:
    @get("/{id}")
    def show(self, id: int, *, verbose: bool = False, fields: str = "all") -> dict[str, object]:
        return {"id": id, "verbose": verbose, "fields": fields}
"""


def _run(dispatcher, method, path, **kw):
    return asyncio.run(dispatcher.dispatch(IncomingRequest(method=method, path=path, **kw)))


def test_path_argument_is_coerced(users_project):
    _, out_dir, app = users_project
    d = create_dispatcher(out_dir, registry=app.REGISTRY)

    res = _run(d, "GET", "/users/1")
    assert res.status == 200
    assert res.body == {"id": 1, "name": "Ada", "email": "ada@example.com"}
    assert res.content_type == "application/json"

    missing = _run(d, "GET", "/users/99")
    assert missing.status == 404
    assert missing.body == {"message": "user 99 not found"}

    bad = _run(d, "GET", "/users/abc")
    assert bad.status == 400
    assert bad.body["details"] == [{"path": "/path/id", "message": "expected integer, got 'abc'"}]


def test_literal_routes_win_over_tokens(users_project):
    _, out_dir, app = users_project
    d = create_dispatcher(out_dir, registry=app.REGISTRY)
    route, params = d.match("GET", "/users/boom")
    assert route.operation_id == "UserController_boom"
    assert params == {}


def test_post_body_is_validated_then_hydrated(users_project):
    _, out_dir, app = users_project
    d = create_dispatcher(out_dir, registry=app.REGISTRY)

    res = _run(d, "POST", "/users", body={"name": "Grace", "email": "grace@example.com"})
    assert res.status == 201
    assert res.body == {"id": 2, "name": "Grace", "email": "grace@example.com"}
    assert app.SEEN == ["UserController_create_user"]

    bad = _run(d, "POST", "/users", body={"name": "G"})
    assert bad.status == 400
    assert bad.body["error"] == "Validation failed"
    paths = {i["path"] for i in bad.body["details"]}
    assert paths == {"/body/name", "/body/email"}

    empty = _run(d, "POST", "/users")
    assert empty.status == 400
    assert empty.body["details"] == [{"path": "/body", "message": "is required"}]


def test_query_object_and_pagination(users_project):
    _, out_dir, app = users_project
    app.USERS[2] = {"id": 2, "name": "Adam", "email": "adam@example.com"}
    app.USERS[3] = {"id": 3, "name": "Bob", "email": "bob@example.com"}
    d = create_dispatcher(out_dir, registry=app.REGISTRY)

    res = _run(d, "GET", "/users")
    assert res.status == 200
    # default page size caps the listing
    assert [u["id"] for u in res.body] == [1, 2]

    res = _run(d, "GET", "/users", query={"q": "Ad", "limit": "1"})
    assert [u["name"] for u in res.body] == ["Ada"]

    bad = _run(d, "GET", "/users", query={"limit": "many"})
    assert bad.status == 400
    assert bad.body["details"][0]["path"] == "/query/limit"


def test_status_override_and_empty_body(users_project):
    _, out_dir, app = users_project
    d = create_dispatcher(out_dir, registry=app.REGISTRY)

    res = _run(d, "DELETE", "/users/1")
    assert res.status == 204
    assert res.body is None
    assert res.content_type is None
    assert 1 not in app.USERS


def test_unexpected_errors_become_500(users_project):
    _, out_dir, app = users_project
    d = create_dispatcher(out_dir, registry=app.REGISTRY)

    res = _run(d, "GET", "/users/boom")
    assert res.status == 500
    assert res.body == {"error": "Internal Server Error", "status": 500}


def test_unknown_route_is_404(users_project):
    _, out_dir, app = users_project
    d = create_dispatcher(out_dir, registry=app.REGISTRY)

    res = _run(d, "GET", "/nowhere")
    assert res.status == 404
    res = _run(d, "PUT", "/users/1")
    assert res.status == 404


def test_response_validation_is_opt_in(users_project):
    _, out_dir, app = users_project
    cache = ArtifactCache()

    lenient = create_dispatcher(out_dir, registry=app.REGISTRY, cache=cache)
    assert _run(lenient, "GET", "/users/bad").status == 200

    strict = create_dispatcher(out_dir, registry=app.REGISTRY, cache=cache, validate_responses=True)
    res = _run(strict, "GET", "/users/bad")
    assert res.status == 500
    assert res.body["error"] == "Response validation failed"


def test_artifact_cache_reuses_snapshot(users_project):
    _, out_dir, _ = users_project
    cache = ArtifactCache()
    first = cache.get(out_dir)
    assert cache.get(out_dir) is first
    assert first.validators.source == "precompiled"
    assert first.validators.code_hash is not None

    cache.invalidate(out_dir)
    assert cache.get(out_dir) is not first


def test_artifact_cache_reloads_when_an_artifact_changes(users_project):
    _, out_dir, _ = users_project
    cache = ArtifactCache()
    first = cache.get(out_dir)

    manifest = out_dir / "manifest.json"
    st = manifest.stat()
    os.utime(manifest, ns=(st.st_atime_ns, st.st_mtime_ns + 5_000_000_000))
    second = cache.get(out_dir)
    assert second is not first
    assert cache.get(out_dir) is second

    validators = out_dir / "validators.py"
    st = validators.stat()
    os.utime(validators, ns=(st.st_atime_ns, st.st_mtime_ns + 5_000_000_000))
    assert cache.get(out_dir) is not second


def test_keyword_only_parameters_are_passed_by_name(tmp_path: Path, monkeypatch):
    root = tmp_path / "items"
    src = root / "items_app.py"
    write(src, ITEMS_APP)
    out_dir = root / ".adorn"
    run_build(root, AdornSettings(out_dir=out_dir, validation_mode="precompiled"))
    app = import_file(monkeypatch, "items_app", src)
    d = create_dispatcher(out_dir, registry=app.REGISTRY)

    res = _run(d, "GET", "/items/3", query={"verbose": "true"})
    assert res.status == 200
    assert res.body == {"id": 3, "verbose": True, "fields": "all"}

    res = _run(d, "GET", "/items/3", query={"fields": "name"})
    assert res.body == {"id": 3, "verbose": False, "fields": "name"}

    bad = _run(d, "GET", "/items/3", query={"verbose": "perhaps"})
    assert bad.status == 400
    assert bad.body["details"][0]["path"] == "/query/verbose"
