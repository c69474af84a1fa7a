from __future__ import annotations

import inspect
import logging
import re
import types
import typing
from dataclasses import dataclass, is_dataclass
from typing import Any, Awaitable, Callable, Mapping, Optional

from pydantic import BaseModel, TypeAdapter, ValidationError

from adornpy.domain.manifest import NamedArg
from adornpy.errors import HttpError, InternalServerError, Issue, ValidationFailed
from adornpy.runtime.binder import BoundRoute
from adornpy.runtime.coerce import CoercionError, coerce_value, deep_object, header_lookup
from adornpy.runtime.context import IncomingRequest, OutgoingResponse, Reply, RequestContext
from adornpy.runtime.markers import _UndefinedType
from adornpy.runtime.validation import ValidatorSet

logger = logging.getLogger(__name__)

AuthCheck = Callable[[RequestContext, Any], Any]
Middleware = Callable[[RequestContext, Callable[[], Awaitable[Any]]], Any]

_TOKEN = re.compile(r"\{([A-Za-z_][A-Za-z0-9_]*)\}")
_ANY = TypeAdapter(Any)


@dataclass(frozen=True)
class _Matcher:
    route: BoundRoute
    regex: re.Pattern[str]


def _compile(route: BoundRoute) -> _Matcher:
    pattern = ""
    pos = 0
    for m in _TOKEN.finditer(route.full_path):
        pattern += re.escape(route.full_path[pos:m.start()]) + f"(?P<{m.group(1)}>[^/]+)"
        pos = m.end()
    pattern += re.escape(route.full_path[pos:])
    return _Matcher(route=route, regex=re.compile(f"^{pattern}/?$"))


async def _maybe_await(value: Any) -> Any:
    if inspect.isawaitable(value):
        return await value
    return value


def to_jsonable(value: Any) -> Any:
    if value is None or isinstance(value, (str, int, float, bool)):
        return value
    return _ANY.dump_python(value, mode="json")


class RequestDispatcher:
    """Framework-agnostic request handling over an immutable route table.

    ``dispatch`` binds arguments from the request, validates the body, runs
    middleware and the handler, and maps errors: ``ValidationFailed`` -> 400,
    other ``HttpError`` -> its status, anything unexpected -> 500.
    """

    def __init__(
        self,
        routes: tuple[BoundRoute, ...],
        validators: Optional[ValidatorSet] = None,
        validate_responses: bool = False,
        controller_factory: Optional[Callable[[type], Any]] = None,
        auth_check: Optional[AuthCheck] = None,
    ):
        self.routes = routes
        self.validators = validators or ValidatorSet()
        self.validate_responses = validate_responses
        self.controller_factory = controller_factory or (lambda cls: cls())
        self.auth_check = auth_check
        # routes with fewer {tokens} are tried first
        self._matchers = sorted((_compile(r) for r in routes), key=lambda m: m.regex.groups)
        self._instances: dict[type, Any] = {}
        self._hints: dict[str, dict[int, Any]] = {}

    # ----------------------------
    # routing
    # ----------------------------

    def match(self, method: str, path: str) -> Optional[tuple[BoundRoute, dict[str, str]]]:
        method = method.upper()
        for m in self._matchers:
            if m.route.http_method != method:
                continue
            found = m.regex.match(path)
            if found:
                return m.route, found.groupdict()
        return None

    async def dispatch(self, request: IncomingRequest) -> OutgoingResponse:
        hit = self.match(request.method, request.path)
        if hit is None:
            return _error_response(HttpError(404, f"No route for {request.method.upper()} {request.path}"))
        route, params = hit
        if params and not request.path_params:
            request = IncomingRequest(
                method=request.method,
                path=request.path,
                path_params=params,
                query=request.query,
                headers=request.headers,
                cookies=request.cookies,
                body=request.body,
            )
        return await self.handle(route, request)

    async def handle(self, route: BoundRoute, request: IncomingRequest) -> OutgoingResponse:
        ctx = RequestContext(request=request, operation_id=route.operation_id)
        try:
            return await self._handle(route, ctx)
        except HttpError as exc:
            if exc.status >= 500:
                logger.error("%s failed: %s", route.operation_id, exc)
            return _error_response(exc)
        except Exception:
            logger.exception("Unhandled error in %s", route.operation_id)
            return _error_response(InternalServerError())

    # ----------------------------
    # pipeline
    # ----------------------------

    async def _handle(self, route: BoundRoute, ctx: RequestContext) -> OutgoingResponse:
        if route.auth is not None and self.auth_check is not None:
            allowed = await _maybe_await(self.auth_check(ctx, route.auth))
            if not allowed:
                raise HttpError(401, "Unauthorized")

        if route.pagination is not None:
            ctx.state["pagination"] = _pagination(ctx.request.query, route.pagination)

        handler = self._handler(route)
        args, kwargs = self._bind(route, ctx, handler)

        async def call_handler() -> Any:
            return await _maybe_await(handler(*args, **kwargs))

        call = call_handler
        for mw in reversed(route.use):
            call = _wrap(mw, ctx, call)
        result = await call()
        return self._respond(route, result)

    def _handler(self, route: BoundRoute) -> Callable[..., Any]:
        instance = self._instances.get(route.controller_cls)
        if instance is None:
            instance = self.controller_factory(route.controller_cls)
            self._instances[route.controller_cls] = instance
        return getattr(instance, route.method_name)

    def _bind(
        self, route: BoundRoute, ctx: RequestContext, handler: Callable[..., Any]
    ) -> tuple[list[Any], dict[str, Any]]:
        # *args and **kwargs carry no manifest index
        params = [
            p
            for p in inspect.signature(handler).parameters.values()
            if p.kind not in (inspect.Parameter.VAR_POSITIONAL, inspect.Parameter.VAR_KEYWORD)
        ]
        hints = self._param_hints(route, handler, params)
        values: dict[int, Any] = {}
        issues: list[Issue] = []
        req = ctx.request
        a = route.args

        for arg in a.path:
            raw = req.path_params.get(arg.name)
            if raw is None:
                issues.append(Issue(f"/path/{arg.name}", "is required"))
                continue
            self._put(values, issues, arg, raw, f"/path/{arg.name}")
        ctx.params = {arg.name: values.get(arg.index) for arg in a.path}

        spread: dict[int, dict[str, Any]] = {}
        for arg in a.query:
            if arg.spread:
                bucket = spread.setdefault(arg.index, {})
                if arg.style == "form":
                    bucket.update({k: _last(v) for k, v in req.query.items()})
                    continue
                raw = deep_object(req.query, arg.name) if arg.style == "deepObject" else req.query.get(arg.name)
                if raw is None:
                    if arg.required:
                        issues.append(Issue(f"/query/{arg.name}", "is required"))
                    continue
                try:
                    bucket[arg.name] = raw if arg.style == "deepObject" else coerce_value(raw, arg.schema_, arg.schema_type)
                except CoercionError as exc:
                    issues.append(Issue(f"/query/{arg.name}", str(exc)))
                continue
            raw = req.query.get(arg.name)
            if raw is None:
                if arg.required:
                    issues.append(Issue(f"/query/{arg.name}", "is required"))
                continue
            self._put(values, issues, arg, raw, f"/query/{arg.name}")
        for index, obj in spread.items():
            values[index] = self._hydrate(hints.get(index), obj, "/query", issues)
        ctx.query = {k: _last(v) for k, v in req.query.items()}

        for arg in a.headers:
            raw = header_lookup(req.headers, arg.name)
            if raw is None:
                if arg.required:
                    issues.append(Issue(f"/headers/{arg.name}", "is required"))
                continue
            self._put(values, issues, arg, raw, f"/headers/{arg.name}")

        for arg in a.cookies:
            raw = req.cookies.get(arg.name)
            if raw is None:
                if arg.required:
                    issues.append(Issue(f"/cookies/{arg.name}", "is required"))
                continue
            self._put(values, issues, arg, raw, f"/cookies/{arg.name}")

        if a.body is not None:
            body = req.body
            if body is None:
                if a.body.required:
                    issues.append(Issue("/body", "is required"))
            else:
                outcome = self.validators.check_body(route.operation_id, body)
                if not outcome.ok:
                    issues.extend(Issue("/body" + (i.path if i.path != "/" else ""), i.message) for i in outcome.issues)
                else:
                    values[a.body.index] = self._hydrate(hints.get(a.body.index), body, "/body", issues)
            ctx.body = body

        if a.context is not None:
            values[a.context.index] = ctx

        if issues:
            raise ValidationFailed(issues)

        args: list[Any] = []
        kwargs: dict[str, Any] = {}
        for i, p in enumerate(params):
            if i in values:
                value = values[i]
            elif p.default is not inspect.Parameter.empty:
                value = p.default
            else:
                value = None
            if p.kind is inspect.Parameter.KEYWORD_ONLY:
                kwargs[p.name] = value
            else:
                args.append(value)
        return args, kwargs

    def _put(self, values: dict[int, Any], issues: list[Issue], arg: NamedArg, raw: Any, where: str) -> None:
        try:
            values[arg.index] = coerce_value(raw, arg.schema_, arg.schema_type)
        except CoercionError as exc:
            issues.append(Issue(where, str(exc)))

    def _param_hints(
        self, route: BoundRoute, handler: Callable[..., Any], params: list[inspect.Parameter]
    ) -> dict[int, Any]:
        cached = self._hints.get(route.operation_id)
        if cached is not None:
            return cached
        try:
            resolved = typing.get_type_hints(handler)
        except Exception as exc:  # unresolvable forward refs: bind raw values
            logger.debug("no runtime type hints for %s: %s", route.operation_id, exc)
            resolved = {}
        hints = {i: resolved[p.name] for i, p in enumerate(params) if p.name in resolved}
        self._hints[route.operation_id] = hints
        return hints

    def _hydrate(self, hint: Any, data: Any, where: str, issues: list[Issue]) -> Any:
        cls = _model_class(hint)
        if cls is None:
            return data
        try:
            return TypeAdapter(cls).validate_python(data)
        except ValidationError as exc:
            for err in exc.errors():
                loc = "/".join(str(p) for p in err.get("loc", ()))
                issues.append(Issue(f"{where}/{loc}" if loc else where, err.get("msg", "invalid")))
            return None

    # ----------------------------
    # responses
    # ----------------------------

    def _respond(self, route: BoundRoute, result: Any) -> OutgoingResponse:
        headers: Mapping[str, str] = {}
        content_type: Optional[str] = "application/json"
        if isinstance(result, Reply):
            status, body = result.status, result.body
            headers, content_type = result.headers, result.content_type
        elif isinstance(result, OutgoingResponse):
            return result
        else:
            status, body = route.success_status, result

        payload = to_jsonable(body)
        if self.validate_responses and payload is not None and content_type:
            outcome = self.validators.check_response(route.operation_id, status, content_type, payload)
            if not outcome.ok:
                logger.error(
                    "Response for %s (%s) does not match its schema: %s",
                    route.operation_id,
                    status,
                    [i.as_dict() for i in outcome.issues],
                )
                raise InternalServerError("Response validation failed")

        return OutgoingResponse(
            status=status,
            body=payload,
            headers=dict(headers),
            content_type=content_type if payload is not None else None,
        )


def _wrap(mw: Middleware, ctx: RequestContext, nxt: Callable[[], Awaitable[Any]]) -> Callable[[], Awaitable[Any]]:
    async def call() -> Any:
        return await _maybe_await(mw(ctx, nxt))

    return call


def _last(value: Any) -> Any:
    if isinstance(value, list):
        return value[-1] if value else None
    return value


def _pagination(query: Mapping[str, Any], policy: Any) -> dict[str, int]:
    default_size = int(policy.get("defaultPageSize", 20)) if isinstance(policy, dict) else 20
    max_size = int(policy.get("maxPageSize", 100)) if isinstance(policy, dict) else 100

    def _int(name: str, fallback: int) -> int:
        raw = _last(query.get(name))
        try:
            return int(raw) if raw is not None else fallback
        except (TypeError, ValueError):
            return fallback

    page = max(1, _int("page", 1))
    size = min(max(1, _int("pageSize", default_size)), max_size)
    return {"page": page, "page_size": size}


def _model_class(hint: Any) -> Optional[type]:
    """The dataclass / pydantic model a parameter hint names, if any."""
    if hint is None:
        return None
    if typing.get_origin(hint) is typing.Annotated:
        hint = typing.get_args(hint)[0]
    args = [a for a in typing.get_args(hint) if a not in (type(None), _UndefinedType)]
    if typing.get_origin(hint) in (typing.Union, types.UnionType) and len(args) == 1:
        hint = args[0]
    if isinstance(hint, type) and (issubclass(hint, BaseModel) or is_dataclass(hint)):
        return hint
    return None


def _error_response(exc: HttpError) -> OutgoingResponse:
    return OutgoingResponse(status=exc.status, body=exc.to_body())
