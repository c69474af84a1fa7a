from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Any, Callable, Optional

from adornpy.compiler.paths import default_operation_id, join_paths
from adornpy.domain.manifest import Args, Manifest, ResponseSpec
from adornpy.errors import ManifestEntryMissingError, RouteDriftError
from adornpy.runtime.registry import ControllerRegistry, default_registry

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class BoundRoute:
    operation_id: str
    full_path: str
    http_method: str
    controller_cls: type
    method_name: str
    args: Args
    responses: tuple[ResponseSpec, ...]
    auth: Optional[Any] = None
    use: tuple[Callable[..., Any], ...] = ()
    pagination: Optional[Any] = None
    status: Optional[int] = None

    @property
    def success_status(self) -> int:
        if self.status is not None:
            return self.status
        ok = sorted(r.status for r in self.responses if 200 <= r.status < 300)
        return ok[0] if ok else 200

    def response_for(self, status: int) -> Optional[ResponseSpec]:
        for r in self.responses:
            if r.status == status:
                return r
        return None


class RuntimeBinder:
    """Reconcile declared controllers with the manifest.

    Every declared operation must have a manifest entry with the same method
    and full path; otherwise binding fails before any route is served.
    """

    def __init__(self, manifest: Manifest, registry: Optional[ControllerRegistry] = None):
        self.manifest = manifest
        self.registry = registry if registry is not None else default_registry

    def bind(self) -> tuple[BoundRoute, ...]:
        self.registry.freeze()
        routes: list[BoundRoute] = []

        for ctrl in self.registry.controllers():
            for op in ctrl.ops:
                op_id = op.operation_id or default_operation_id(ctrl.controller_id, op.method_name)
                entry = self.manifest.find(op_id)
                if entry is None:
                    raise ManifestEntryMissingError(op_id)

                full_path = join_paths(ctrl.base_path, op.path)
                declared = (op.http_method.upper(), full_path)
                recorded = (entry.http.method, entry.http.path)
                if declared != recorded:
                    raise RouteDriftError(op_id, declared, recorded)

                routes.append(
                    BoundRoute(
                        operation_id=op_id,
                        full_path=full_path,
                        http_method=declared[0],
                        controller_cls=ctrl.controller_cls,
                        method_name=op.method_name,
                        args=entry.args,
                        responses=tuple(entry.responses),
                        auth=op.auth,
                        use=op.use,
                        pagination=op.pagination,
                        status=op.status,
                    )
                )

        logger.info("Bound %d routes from %d controllers", len(routes), len(self.registry.controllers()))
        return tuple(routes)
