from __future__ import annotations

import logging
import threading
from dataclasses import dataclass
from typing import Any, Callable, Optional

from adornpy.errors import RegistryFrozenError

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class OperationDescriptor:
    http_method: str
    path: str
    method_name: str
    operation_id: Optional[str] = None
    status: Optional[int] = None
    auth: Optional[Any] = None
    pagination: Optional[Any] = None
    use: tuple[Callable[..., Any], ...] = ()


@dataclass(frozen=True)
class ControllerDescriptor:
    controller_cls: type
    base_path: str
    ops: tuple[OperationDescriptor, ...]

    @property
    def controller_id(self) -> str:
        return self.controller_cls.__name__


class ControllerRegistry:
    """Process-wide list of controller descriptors.

    Filled while controller modules load, read-only once ``freeze()`` has been
    called by the binder.
    """

    def __init__(self) -> None:
        self._controllers: list[ControllerDescriptor] = []
        self._frozen = False
        self._lock = threading.Lock()

    def register(self, descriptor: ControllerDescriptor) -> ControllerDescriptor:
        with self._lock:
            if self._frozen:
                raise RegistryFrozenError(
                    f"Cannot register {descriptor.controller_id}: routes are already bound"
                )
            # re-importing a module replaces its previous descriptor
            self._controllers = [
                c for c in self._controllers if c.controller_cls is not descriptor.controller_cls
            ]
            self._controllers.append(descriptor)
        logger.debug(
            "Registered controller %s (%d operations)", descriptor.controller_id, len(descriptor.ops)
        )
        return descriptor

    def controllers(self) -> tuple[ControllerDescriptor, ...]:
        return tuple(self._controllers)

    def get(self, controller_cls: type) -> Optional[ControllerDescriptor]:
        for c in self._controllers:
            if c.controller_cls is controller_cls:
                return c
        return None

    def freeze(self) -> None:
        with self._lock:
            self._frozen = True

    @property
    def frozen(self) -> bool:
        return self._frozen


default_registry = ControllerRegistry()
