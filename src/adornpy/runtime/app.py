from __future__ import annotations

import logging
from pathlib import Path
from typing import Any, Callable, Optional

from adornpy.cache.artifacts import ArtifactCache
from adornpy.runtime.binder import RuntimeBinder
from adornpy.runtime.dispatch import AuthCheck, RequestDispatcher
from adornpy.runtime.registry import ControllerRegistry

logger = logging.getLogger(__name__)


def create_dispatcher(
    out_dir: Path,
    registry: Optional[ControllerRegistry] = None,
    cache: Optional[ArtifactCache] = None,
    validate_responses: bool = False,
    controller_factory: Optional[Callable[[type], Any]] = None,
    auth_check: Optional[AuthCheck] = None,
) -> RequestDispatcher:
    """Startup: load artifacts, bind declared controllers, return a dispatcher.

    Raises ``RouteConfigError`` on drift and ``ArtifactLoadError`` when the
    build output is missing; no dispatcher is created in either case.
    """
    artifacts = (cache or ArtifactCache()).get(out_dir)
    routes = RuntimeBinder(artifacts.manifest, registry).bind()
    logger.info("Serving %d routes (validation: %s)", len(routes), artifacts.validators.source)
    return RequestDispatcher(
        routes,
        validators=artifacts.validators,
        validate_responses=validate_responses,
        controller_factory=controller_factory,
        auth_check=auth_check,
    )
