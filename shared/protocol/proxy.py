"""Helpers for building/parsing HTTP-over-WebSocket frames.

A frame is a JSON object with a single key naming the variant:

    {"SetupProxyClient": null}
    {"HttpRequest": [id, {"url", "method", "headers", "body"}]}
    {"HttpResponse": [id, {"status", "headers", "body"}]}
    {"Error": [id | null, "message"]}

Bodies travel as standard base64 strings.
"""

from __future__ import annotations

import json
from typing import Any, Optional, Union

from pydantic import TypeAdapter, ValidationError

from shared.models.proxy import (
    ErrorEnvelope,
    RequestEnvelope,
    ResponseEnvelope,
    SetupProxyClient,
)
from shared.models.proxy.envelope import RequestId

VARIANT_SETUP = "SetupProxyClient"
VARIANT_REQUEST = "HttpRequest"
VARIANT_RESPONSE = "HttpResponse"
VARIANT_ERROR = "Error"

ProxyMessage = Union[SetupProxyClient, RequestEnvelope, ResponseEnvelope, ErrorEnvelope]

_REQUEST_ID = TypeAdapter(RequestId)


class DecodeError(ValueError):
    """Raised when an inbound frame cannot be decoded into a proxy message.

    ``request_id`` is set when the frame was recognisably a request and its id
    could still be read, so the failure can be answered.
    """

    def __init__(self, message: str, *, request_id: Optional[int] = None) -> None:
        super().__init__(message)
        self.request_id = request_id


def build_setup_message() -> SetupProxyClient:
    return SetupProxyClient()


def encode_message(message: ProxyMessage) -> str:
    """Serialise a proxy message into a text frame."""

    match message:
        case SetupProxyClient():
            data: dict[str, Any] = {VARIANT_SETUP: None}
        case RequestEnvelope():
            data = {VARIANT_REQUEST: [message.id, message.model_dump(mode="json", exclude={"id"})]}
        case ResponseEnvelope():
            data = {VARIANT_RESPONSE: [message.id, message.model_dump(mode="json", exclude={"id"})]}
        case ErrorEnvelope():
            data = {VARIANT_ERROR: [message.id, message.message]}
        case _:
            raise TypeError(f"Unsupported proxy message {type(message).__name__}")
    return json.dumps(data, separators=(",", ":"))


def parse_message(raw: str | bytes) -> ProxyMessage:
    """Decode a raw frame; raises DecodeError on anything malformed."""

    if isinstance(raw, (bytes, bytearray)):
        try:
            raw = bytes(raw).decode("utf-8")
        except UnicodeDecodeError as exc:
            raise DecodeError(f"frame is not valid UTF-8: {exc}") from exc
    try:
        data = json.loads(raw)
    except json.JSONDecodeError as exc:
        raise DecodeError(f"frame is not valid JSON: {exc}") from exc
    if not isinstance(data, dict) or len(data) != 1:
        raise DecodeError("frame must be an object with exactly one variant key")

    ((variant, body),) = data.items()
    match variant:
        case "SetupProxyClient":
            return SetupProxyClient()
        case "HttpRequest":
            return _parse_request(body)
        case "HttpResponse":
            return _parse_response(body)
        case "Error":
            return _parse_error(body)
    raise DecodeError(f"unknown variant {variant!r}")


def _split_pair(variant: str, body: Any) -> tuple[Any, Any]:
    if not isinstance(body, list) or len(body) != 2:
        raise DecodeError(f"{variant} must be a two-element array")
    return body[0], body[1]


def _parse_id(variant: str, value: Any) -> int:
    try:
        return _REQUEST_ID.validate_python(value)
    except ValidationError as exc:
        raise DecodeError(f"{variant} carries an invalid id {value!r}") from exc


def _parse_request(body: Any) -> RequestEnvelope:
    raw_id, payload = _split_pair(VARIANT_REQUEST, body)
    request_id = _parse_id(VARIANT_REQUEST, raw_id)
    if not isinstance(payload, dict):
        raise DecodeError("HttpRequest payload must be an object", request_id=request_id)
    try:
        return RequestEnvelope.model_validate({**payload, "id": request_id})
    except ValidationError as exc:
        raise DecodeError(f"invalid HttpRequest: {_summarise(exc)}", request_id=request_id) from exc


def _parse_response(body: Any) -> ResponseEnvelope:
    raw_id, payload = _split_pair(VARIANT_RESPONSE, body)
    request_id = _parse_id(VARIANT_RESPONSE, raw_id)
    if not isinstance(payload, dict):
        raise DecodeError("HttpResponse payload must be an object")
    try:
        return ResponseEnvelope.model_validate({**payload, "id": request_id})
    except ValidationError as exc:
        raise DecodeError(f"invalid HttpResponse: {_summarise(exc)}") from exc


def _parse_error(body: Any) -> ErrorEnvelope:
    raw_id, message = _split_pair(VARIANT_ERROR, body)
    # optional ids may also arrive as [] / [id]
    if isinstance(raw_id, list):
        if len(raw_id) > 1:
            raise DecodeError("Error id option holds more than one value")
        raw_id = raw_id[0] if raw_id else None
    request_id = None if raw_id is None else _parse_id(VARIANT_ERROR, raw_id)
    if not isinstance(message, str):
        raise DecodeError("Error message must be a string")
    return ErrorEnvelope(id=request_id, message=message)


def _summarise(exc: ValidationError) -> str:
    parts = []
    for error in exc.errors():
        location = ".".join(str(item) for item in error.get("loc", ())) or "<root>"
        parts.append(f"{location}: {error.get('msg')}")
    return "; ".join(parts)
