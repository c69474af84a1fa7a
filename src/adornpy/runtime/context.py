from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Generic, Mapping, Optional, TypeVar

B = TypeVar("B")
S = TypeVar("S")


@dataclass(frozen=True)
class IncomingRequest:
    """What an HTTP adapter hands to the dispatcher.

    ``query`` values may be a string or a list of strings (repeated keys).
    """

    method: str
    path: str
    path_params: Mapping[str, str] = field(default_factory=dict)
    query: Mapping[str, Any] = field(default_factory=dict)
    headers: Mapping[str, str] = field(default_factory=dict)
    cookies: Mapping[str, str] = field(default_factory=dict)
    body: Any = None


@dataclass(frozen=True)
class OutgoingResponse:
    status: int
    body: Any = None
    headers: Mapping[str, str] = field(default_factory=dict)
    content_type: Optional[str] = "application/json"


@dataclass
class RequestContext:
    request: IncomingRequest
    operation_id: str
    params: dict[str, Any] = field(default_factory=dict)
    query: dict[str, Any] = field(default_factory=dict)
    body: Any = None
    state: dict[str, Any] = field(default_factory=dict)

    @property
    def headers(self) -> Mapping[str, str]:
        return self.request.headers

    @property
    def cookies(self) -> Mapping[str, str]:
        return self.request.cookies


@dataclass(frozen=True)
class Reply(Generic[B, S]):
    """Explicit status/body reply.

    Annotate handlers as ``Reply[User, Literal[200]] | Reply[NotFound, Literal[404]]``
    to document every variant.
    """

    status: int
    body: Any = None
    headers: Mapping[str, str] = field(default_factory=dict)
    content_type: Optional[str] = "application/json"
