from __future__ import annotations

from typing import Any, Callable, Optional, TypeVar

from adornpy.runtime.registry import (
    ControllerDescriptor,
    ControllerRegistry,
    OperationDescriptor,
    default_registry,
)

F = TypeVar("F", bound=Callable[..., Any])
C = TypeVar("C", bound=type)

_ROUTES_ATTR = "__adorn_routes__"
_OPTIONS_ATTR = "__adorn_options__"


def _options(fn: Callable[..., Any]) -> dict[str, Any]:
    opts = getattr(fn, _OPTIONS_ATTR, None)
    if opts is None:
        opts = {}
        setattr(fn, _OPTIONS_ATTR, opts)
    return opts


def _route(http_method: str) -> Callable[[str], Callable[[F], F]]:
    def factory(path: str = "") -> Callable[[F], F]:
        def decorator(fn: F) -> F:
            routes = getattr(fn, _ROUTES_ATTR, None)
            if routes is None:
                routes = []
                setattr(fn, _ROUTES_ATTR, routes)
            # decorators run bottom-up; keep source order
            routes.insert(0, (http_method, path))
            return fn

        return decorator

    factory.__name__ = http_method.lower()
    factory.__doc__ = f"Declare a {http_method} route on a controller method."
    return factory


get = _route("GET")
post = _route("POST")
put = _route("PUT")
patch = _route("PATCH")
delete = _route("DELETE")


def operation_id(value: str) -> Callable[[F], F]:
    def decorator(fn: F) -> F:
        _options(fn)["operation_id"] = value
        return fn

    return decorator


def status(code: int) -> Callable[[F], F]:
    def decorator(fn: F) -> F:
        _options(fn)["status"] = int(code)
        return fn

    return decorator


def auth(policy: Any = True) -> Callable[[F], F]:
    def decorator(fn: F) -> F:
        _options(fn)["auth"] = policy
        return fn

    return decorator


def paginated(default_page_size: int = 20, max_page_size: int = 100) -> Callable[[F], F]:
    def decorator(fn: F) -> F:
        _options(fn)["pagination"] = {
            "defaultPageSize": default_page_size,
            "maxPageSize": max_page_size,
        }
        return fn

    return decorator


def use(*middleware: Callable[..., Any]) -> Callable[[F], F]:
    def decorator(fn: F) -> F:
        existing = _options(fn).get("use", ())
        _options(fn)["use"] = tuple(middleware) + tuple(existing)
        return fn

    return decorator


def controller(
    base_path: str = "", registry: Optional[ControllerRegistry] = None
) -> Callable[[C], C]:
    """Register a class as a controller.

    Collects every method carrying a route decorator and hands an explicit
    ``ControllerDescriptor`` to the registry.
    """

    def decorator(cls: C) -> C:
        ops: list[OperationDescriptor] = []
        for name, member in vars(cls).items():
            fn = member.__func__ if isinstance(member, (staticmethod, classmethod)) else member
            routes = getattr(fn, _ROUTES_ATTR, None)
            if not routes:
                continue
            opts = getattr(fn, _OPTIONS_ATTR, {})
            for http_method, path in routes:
                ops.append(
                    OperationDescriptor(
                        http_method=http_method,
                        path=path,
                        method_name=name,
                        operation_id=opts.get("operation_id"),
                        status=opts.get("status"),
                        auth=opts.get("auth"),
                        pagination=opts.get("pagination"),
                        use=tuple(opts.get("use", ())),
                    )
                )

        target = registry if registry is not None else default_registry
        descriptor = target.register(
            ControllerDescriptor(controller_cls=cls, base_path=base_path, ops=tuple(ops))
        )
        setattr(cls, "__adorn_controller__", descriptor)
        return cls

    return decorator
