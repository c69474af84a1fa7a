from adornpy.runtime.context import IncomingRequest, OutgoingResponse, Reply, RequestContext
from adornpy.runtime.decorators import (
    auth,
    controller,
    delete,
    get,
    operation_id,
    paginated,
    patch,
    post,
    put,
    status,
    use,
)
from adornpy.runtime.markers import (
    UNDEFINED,
    Body,
    Cookie,
    Ctx,
    Format,
    Header,
    Maximum,
    MaxLength,
    Minimum,
    MinLength,
    Pattern,
    Query,
    Undefined,
)
from adornpy.runtime.registry import ControllerRegistry, default_registry
from adornpy.version import __version__

__all__ = [
    "UNDEFINED",
    "Body",
    "ControllerRegistry",
    "Cookie",
    "Ctx",
    "Format",
    "Header",
    "IncomingRequest",
    "Maximum",
    "MaxLength",
    "Minimum",
    "MinLength",
    "OutgoingResponse",
    "Pattern",
    "Query",
    "Reply",
    "RequestContext",
    "Undefined",
    "__version__",
    "auth",
    "controller",
    "default_registry",
    "delete",
    "get",
    "operation_id",
    "paginated",
    "patch",
    "post",
    "put",
    "status",
    "use",
]
