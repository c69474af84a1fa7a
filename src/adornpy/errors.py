from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Optional


class AdornError(Exception):
    """Base class for every error raised by adornpy."""


# ----------------------------
# Build time
# ----------------------------


class ManifestBuildError(AdornError):
    """The manifest cannot be produced; nothing is written."""


class DuplicateOperationIdError(ManifestBuildError):
    def __init__(self, operation_id: str, first: str, second: str):
        self.operation_id = operation_id
        super().__init__(
            f'Duplicate operationId "{operation_id}" declared by {first} and {second}. '
            "Use @operation_id(...) to disambiguate."
        )


class DuplicateRouteError(ManifestBuildError):
    def __init__(self, method: str, path: str, first: str, second: str):
        self.method = method
        self.path = path
        super().__init__(f"Duplicate route {method} {path} declared by {first} and {second}")


# ----------------------------
# Startup
# ----------------------------


class RouteConfigError(AdornError):
    """Declared routes and the manifest disagree; the server must not start."""


class ManifestEntryMissingError(RouteConfigError):
    def __init__(self, operation_id: str):
        self.operation_id = operation_id
        super().__init__(
            f'No manifest entry for operationId="{operation_id}". '
            'Did you run "adornpy build"? Are your operationId rules aligned?'
        )


class RouteDriftError(RouteConfigError):
    def __init__(self, operation_id: str, declared: tuple[str, str], recorded: tuple[str, str]):
        self.operation_id = operation_id
        self.declared = declared
        self.recorded = recorded
        super().__init__(
            f'Route drift for operationId="{operation_id}": declared {declared[0]} {declared[1]}, '
            f'manifest has {recorded[0]} {recorded[1]}. Rebuild with "adornpy build".'
        )


class RegistryFrozenError(AdornError):
    """Controllers cannot be registered once routes have been bound."""


class ArtifactLoadError(AdornError):
    """Build artifacts are missing or unreadable."""


# ----------------------------
# Per request
# ----------------------------


@dataclass(frozen=True)
class Issue:
    path: str
    message: str

    def as_dict(self) -> dict[str, str]:
        return {"path": self.path, "message": self.message}


class HttpError(AdornError):
    def __init__(self, status: int, message: str, details: Optional[Any] = None):
        self.status = status
        self.message = message
        self.details = details
        super().__init__(message)

    def to_body(self) -> dict[str, Any]:
        body: dict[str, Any] = {"error": self.message, "status": self.status}
        if self.details is not None:
            body["details"] = self.details
        return body


class ValidationFailed(HttpError):
    def __init__(self, issues: list[Issue], message: str = "Validation failed"):
        self.issues = issues
        super().__init__(400, message, details=[i.as_dict() for i in issues])


class InternalServerError(HttpError):
    def __init__(self, message: str = "Internal Server Error"):
        super().__init__(500, message)
