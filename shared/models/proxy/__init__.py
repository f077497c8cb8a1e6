from .envelope import (
    U64_MAX,
    ErrorEnvelope,
    HttpHeader,
    HttpMethod,
    HttpResponse,
    RequestEnvelope,
    ResponseEnvelope,
    SetupProxyClient,
)

__all__ = [
    "U64_MAX",
    "ErrorEnvelope",
    "HttpHeader",
    "HttpMethod",
    "HttpResponse",
    "RequestEnvelope",
    "ResponseEnvelope",
    "SetupProxyClient",
]
