from __future__ import annotations

import re
from typing import Hashable, Iterator, Optional

from adornpy.compiler.schema.nodes import SchemaNode

_SAFE = re.compile(r"[^A-Za-z0-9_.-]+")


class SchemaRegistry:
    """Hoisted component schemas for one build.

    Maps a type identity (``TypeKey``) to the component name it was hoisted
    under. A name is reserved before the type body is translated so recursive
    types resolve to a reference instead of recursing again; the body is
    filled in once the first traversal completes.

    Single writer: one build owns one registry.
    """

    def __init__(self) -> None:
        self._by_key: dict[Hashable, str] = {}
        self._schemas: dict[str, Optional[SchemaNode]] = {}

    def lookup(self, key: Hashable) -> Optional[str]:
        return self._by_key.get(key)

    def reserve(self, key: Hashable, preferred: str) -> str:
        existing = self._by_key.get(key)
        if existing is not None:
            return existing
        name = self._unique(preferred)
        self._by_key[key] = name
        self._schemas[name] = None
        return name

    def define(self, name: str, node: SchemaNode) -> None:
        self._schemas[name] = node

    def add(self, preferred: str, node: SchemaNode) -> str:
        """Register an anonymous shape under a fresh name."""
        name = self._unique(preferred)
        self._schemas[name] = node
        return name

    def get(self, name: str) -> Optional[SchemaNode]:
        return self._schemas.get(name)

    def __contains__(self, name: object) -> bool:
        return name in self._schemas

    def __iter__(self) -> Iterator[str]:
        return iter(self.components())

    def components(self) -> dict[str, SchemaNode]:
        return {k: v for k, v in self._schemas.items() if v is not None}

    def _unique(self, preferred: str) -> str:
        base = _SAFE.sub("_", preferred).strip("_") or "Schema"
        name = base
        n = 2
        while name in self._schemas:
            name = f"{base}{n}"
            n += 1
        return name
