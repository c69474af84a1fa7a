from __future__ import annotations

from dataclasses import dataclass
from typing import Optional


class _Placement:
    """Annotated marker that pins a handler parameter to a request part."""

    kind = ""

    def __repr__(self) -> str:
        return f"{type(self).__name__}()"


class Body(_Placement):
    kind = "body"


class Query(_Placement):
    kind = "query"


class Ctx(_Placement):
    kind = "ctx"


class Header(_Placement):
    kind = "header"


class Cookie(_Placement):
    kind = "cookie"


@dataclass(frozen=True)
class MinLength:
    value: int


@dataclass(frozen=True)
class MaxLength:
    value: int


@dataclass(frozen=True)
class Pattern:
    regex: str


@dataclass(frozen=True)
class Format:
    name: str


@dataclass(frozen=True)
class Minimum:
    value: float


@dataclass(frozen=True)
class Maximum:
    value: float


class _UndefinedType:
    """Type of a value that may be absent from the payload.

    ``int | None | Undefined`` means "may be missing, may be null".
    """

    _instance: Optional["_UndefinedType"] = None

    def __new__(cls) -> "_UndefinedType":
        if cls._instance is None:
            cls._instance = super().__new__(cls)
        return cls._instance

    def __repr__(self) -> str:
        return "Undefined"

    def __bool__(self) -> bool:
        return False


Undefined = _UndefinedType
UNDEFINED = _UndefinedType()
