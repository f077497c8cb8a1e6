"""Outbound HTTP execution for relayed requests."""

from __future__ import annotations

import asyncio
import contextlib
import logging
import threading
from dataclasses import dataclass
from typing import Any, Callable, Iterable, Optional, TypeVar

import requests
from requests.structures import CaseInsensitiveDict

from shared.models.proxy import HttpHeader, HttpMethod, HttpResponse, RequestEnvelope

from relay.config import RelaySettings

LOGGER = logging.getLogger(__name__)

_T = TypeVar("_T")


class ExecutionError(RuntimeError):
    """Raised when an outbound HTTP call fails; ``str()`` is the message relayed back."""


@dataclass(frozen=True)
class OutboundCall:
    method: str
    url: str
    headers: CaseInsensitiveDict
    body: Optional[bytes]


def merge_headers(headers: Iterable[HttpHeader]) -> CaseInsensitiveDict:
    """Fold the ordered header list into a mapping, joining repeated names with ", "."""

    merged: CaseInsensitiveDict = CaseInsensitiveDict()
    for header in headers:
        if header.name in merged:
            merged[header.name] = f"{merged[header.name]}, {header.value}"
        else:
            merged[header.name] = header.value
    return merged


def build_outbound_call(request: RequestEnvelope) -> OutboundCall:
    # GET never carries a body, whatever the remote side supplied
    body = request.body if request.method is not HttpMethod.GET and request.body is not None else None
    return OutboundCall(
        method=request.method.value,
        url=request.url,
        headers=merge_headers(request.headers),
        body=body,
    )


def describe_failure(exc: BaseException) -> str:
    detail = str(exc) or repr(exc)
    return f"{type(exc).__name__}: {detail}"


def run_in_own_thread(fn: Callable[..., _T], *args: Any, name: Optional[str] = None) -> asyncio.Future[_T]:
    """Run a blocking call on a dedicated daemon thread and await its outcome.

    Each call gets its own thread, never the loop's bounded default executor.
    Cancelling the returned future abandons the result; the thread still runs
    to completion.
    """

    loop = asyncio.get_running_loop()
    future: asyncio.Future[_T] = loop.create_future()

    def _settle(result: Any, exc: Optional[BaseException]) -> None:
        if future.done():
            return
        if exc is not None:
            future.set_exception(exc)
        else:
            future.set_result(result)

    def _target() -> None:
        try:
            result = fn(*args)
        except Exception as exc:  # noqa: BLE001
            outcome: tuple[Any, Optional[BaseException]] = (None, exc)
        else:
            outcome = (result, None)
        # the loop may already be closed during interpreter shutdown
        with contextlib.suppress(RuntimeError):
            loop.call_soon_threadsafe(_settle, *outcome)

    threading.Thread(target=_target, name=name, daemon=True).start()
    return future


@dataclass
class HttpExecutor:
    """Runs one HTTP call per relayed request on a worker thread."""

    request_fn: Callable[..., Any] = requests.request
    timeout_seconds: Optional[float] = None
    verify_tls: bool = True

    @classmethod
    def from_settings(cls, settings: RelaySettings) -> HttpExecutor:
        return cls(
            timeout_seconds=settings.http_timeout_seconds,
            verify_tls=settings.http_verify_tls,
        )

    async def execute(self, request: RequestEnvelope) -> HttpResponse:
        call = build_outbound_call(request)
        LOGGER.info(
            "Executing HTTP request id=%s url=%s method=%s body_bytes=%s",
            request.id,
            call.url,
            call.method,
            len(call.body) if call.body is not None else 0,
        )
        try:
            response = await run_in_own_thread(self._perform, call, name=f"relay-http-{request.id}")
        except asyncio.CancelledError:
            raise
        except Exception as exc:  # noqa: BLE001
            raise ExecutionError(describe_failure(exc)) from exc

        LOGGER.info(
            "HTTP response id=%s url=%s status=%s body_bytes=%s",
            request.id,
            call.url,
            response.status,
            len(response.body),
        )
        return response

    def _perform(self, call: OutboundCall) -> HttpResponse:
        response = self.request_fn(
            call.method,
            call.url,
            headers=call.headers,
            data=call.body,
            timeout=self.timeout_seconds,
            verify=self.verify_tls,
            allow_redirects=True,
        )
        try:
            return HttpResponse(
                status=response.status_code,
                headers=[HttpHeader(name=name.lower(), value=value) for name, value in response.headers.items()],
                body=response.content or b"",
            )
        finally:
            close = getattr(response, "close", None)
            if callable(close):
                close()
