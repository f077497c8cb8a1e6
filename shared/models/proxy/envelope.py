from __future__ import annotations

import base64
import binascii
from enum import Enum
from typing import Annotated, Any, List, Optional

from pydantic import BaseModel, BeforeValidator, ConfigDict, Field, PlainSerializer, field_validator

U64_MAX = 2**64 - 1


def _decode_body(value: Any) -> Any:
    if isinstance(value, (bytes, bytearray)):
        return bytes(value)
    if isinstance(value, str):
        try:
            return base64.b64decode(value, validate=True)
        except binascii.Error as exc:
            raise ValueError(f"body is not valid base64: {exc}") from exc
    return value


def _encode_body(value: bytes) -> str:
    return base64.b64encode(value).decode("ascii")


RequestId = Annotated[int, Field(ge=0, le=U64_MAX, strict=True)]
Body = Annotated[
    bytes,
    BeforeValidator(_decode_body),
    PlainSerializer(_encode_body, return_type=str, when_used="json"),
]


class HttpMethod(str, Enum):
    """HTTP verbs the relay is allowed to execute."""

    GET = "GET"
    POST = "POST"
    PUT = "PUT"
    HEAD = "HEAD"
    DELETE = "DELETE"


class HttpHeader(BaseModel):
    model_config = ConfigDict(frozen=True)

    name: str
    value: str


class HttpResponse(BaseModel):
    """Outcome of an executed HTTP call, before it is tied to a request id."""

    status: int = Field(ge=0)
    headers: List[HttpHeader] = Field(default_factory=list)
    body: Body = b""


class SetupProxyClient(BaseModel):
    """Handshake sent once after open; registers this process as an executor."""


class RequestEnvelope(BaseModel):
    """HTTP request the remote platform asks the relay to execute."""

    id: RequestId
    url: str
    method: HttpMethod
    headers: List[HttpHeader] = Field(default_factory=list)
    body: Optional[Body] = None

    @field_validator("method", mode="before")
    @classmethod
    def _unwrap_tagged_method(cls, value: Any) -> Any:
        # tagged-variant encoders send {"GET": null}
        if isinstance(value, dict) and len(value) == 1:
            return next(iter(value))
        return value


class ResponseEnvelope(HttpResponse):
    id: RequestId


class ErrorEnvelope(BaseModel):
    id: Optional[RequestId] = None
    message: str
