"""Channel session: one connection instance, its frames and its close."""

from __future__ import annotations

import asyncio
import contextlib
import logging
import uuid
from collections.abc import Awaitable, Callable
from typing import Optional

from shared.models.proxy import ErrorEnvelope, RequestEnvelope, ResponseEnvelope, SetupProxyClient
from shared.protocol import DecodeError, ProxyMessage, build_setup_message, encode_message, parse_message

from relay.config import RelaySettings
from relay.network.session_state import CloseReason, ConnectionState, SessionTracker, classify_close_reason
from relay.network.transport.base import BaseTransport, TransportClosed

LOGGER = logging.getLogger(__name__)

TransportFactory = Callable[[RelaySettings, str], BaseTransport]
RequestHandler = Callable[["ChannelSession", RequestEnvelope], Awaitable[None]]
OpenHandler = Callable[["ChannelSession"], None]
CloseHandler = Callable[["ChannelSession", CloseReason], Awaitable[None]]


class ChannelError(RuntimeError):
    """Raised when the channel connection itself fails."""


class ChannelSession:
    """Owns one transport connection.

    Inbound frames are decoded and routed to ``on_request``; ``send`` is safe to
    call from many concurrent request tasks and silently drops anything sent
    while the session is not open. Close notifications go to ``on_close``
    exactly once.
    """

    def __init__(
        self,
        settings: RelaySettings,
        transport_factory: TransportFactory,
        *,
        identity: Optional[str] = None,
        on_request: Optional[RequestHandler] = None,
        on_open: Optional[OpenHandler] = None,
        on_close: Optional[CloseHandler] = None,
    ) -> None:
        self._settings = settings
        self._transport_factory = transport_factory
        self._identity = identity or str(uuid.uuid4())
        self._on_request = on_request
        self._on_open = on_open
        self._on_close = on_close
        self._tracker = SessionTracker()
        self._transport: Optional[BaseTransport] = None
        self._send_lock = asyncio.Lock()
        self._recv_task: Optional[asyncio.Task[None]] = None

    @property
    def identity(self) -> str:
        return self._identity

    @property
    def state(self) -> ConnectionState:
        return self._tracker.state

    @property
    def is_open(self) -> bool:
        return self._tracker.is_open

    async def open(self) -> bool:
        """Connect, send the setup handshake and start receiving.

        Returns False when the connection could not be established; the failure
        has then already been reported through ``on_close``.
        """

        if self.state is not ConnectionState.CONNECTING:
            raise ChannelError(f"session {self._identity} cannot be reopened ({self.state.value})")
        transport = self._transport_factory(self._settings, self._identity)
        try:
            await transport.connect()
        except asyncio.CancelledError:
            LOGGER.debug("Connect of session %s cancelled", self._identity)
            with contextlib.suppress(Exception):
                await transport.close()
            raise
        except Exception as exc:  # noqa: BLE001
            LOGGER.warning("WebSocket connect failed: %s", exc)
            with contextlib.suppress(Exception):
                await transport.close()
            await self.on_close(CloseReason.UNKNOWN)
            return False

        # closed locally while the connect was in progress
        if self.state is not ConnectionState.CONNECTING:
            LOGGER.info("Session %s closed during connect; discarding connection", self._identity)
            await transport.close()
            return False

        self._transport = transport
        self._tracker.transition(ConnectionState.OPEN)
        LOGGER.info("WebSocket connected with principal %s", self._identity)
        if self._on_open:
            self._on_open(self)

        if await self.send(build_setup_message()):
            LOGGER.info("Setup message sent")
        self._recv_task = asyncio.create_task(self._receive_loop(), name=f"relay-recv-{self._identity[:8]}")
        return True

    async def send(self, envelope: ProxyMessage) -> bool:
        """Send an envelope if the session is open; returns whether it went out."""

        if not self.is_open or self._transport is None:
            LOGGER.debug("Dropping outbound %s: session is %s", type(envelope).__name__, self.state.value)
            return False
        frame = encode_message(envelope)
        async with self._send_lock:
            if not self.is_open or self._transport is None:
                LOGGER.debug("Dropping outbound %s: session closed while waiting", type(envelope).__name__)
                return False
            try:
                await self._transport.send(frame)
            except asyncio.CancelledError:
                raise
            except Exception as exc:  # noqa: BLE001
                LOGGER.warning("Send of %s failed, dropping it: %s", type(envelope).__name__, exc)
                return False
        return True

    async def on_frame(self, raw: str | bytes) -> None:
        """Decode one inbound frame and route it."""

        try:
            message = parse_message(raw)
        except DecodeError as exc:
            if exc.request_id is None:
                LOGGER.warning("Dropping undecodable frame: %s", exc)
                return
            LOGGER.warning("Rejecting request id=%s: %s", exc.request_id, exc)
            await self.send(ErrorEnvelope(id=exc.request_id, message=str(exc)))
            return

        try:
            await self._route(message)
        except asyncio.CancelledError:
            raise
        except Exception as exc:  # noqa: BLE001
            LOGGER.exception("http-over-ws: failed to route inbound %s", type(message).__name__)
            request_id = message.id if isinstance(message, RequestEnvelope) else None
            await self.send(ErrorEnvelope(id=request_id, message=str(exc)))

    async def on_close(self, reason: CloseReason) -> None:
        """Mark the session closed and report ``reason`` once."""

        if self.state is ConnectionState.CLOSED:
            return
        self._tracker.transition(ConnectionState.CLOSED)
        transport, self._transport = self._transport, None
        if transport is not None:
            try:
                await transport.close()
            except Exception:  # noqa: BLE001
                LOGGER.debug("Suppress transport close error", exc_info=True)
        if self._on_close:
            await self._on_close(self, reason)

    async def close(self) -> None:
        """Close locally without reporting to the close handler."""

        if self.state is not ConnectionState.CLOSED:
            self._tracker.transition(ConnectionState.CLOSED)
        task, self._recv_task = self._recv_task, None
        if task and task is not asyncio.current_task():
            task.cancel()
            with contextlib.suppress(asyncio.CancelledError):
                await task
        transport, self._transport = self._transport, None
        if transport is not None:
            await transport.close()

    async def _route(self, message: ProxyMessage) -> None:
        match message:
            case RequestEnvelope():
                if self._on_request is None:
                    raise ChannelError("no request handler registered")
                await self._on_request(self, message)
            case ErrorEnvelope(id=request_id, message=text):
                LOGGER.error("http-over-ws: incoming error id=%s: %s", request_id, text)
            case SetupProxyClient() | ResponseEnvelope():
                LOGGER.warning("Ignoring unexpected inbound %s frame", type(message).__name__)

    async def _receive_loop(self) -> None:
        transport = self._transport
        if transport is None:
            return
        try:
            while True:
                raw = await transport.receive()
                await self.on_frame(raw)
        except asyncio.CancelledError:
            raise
        except TransportClosed as exc:
            LOGGER.warning("WebSocket disconnected. Reason: %s (code=%s)", exc.reason or "<none>", exc.code)
            await self.on_close(classify_close_reason(exc.reason, exc.code))
        except Exception as exc:  # noqa: BLE001
            LOGGER.error("WebSocket error: %s", exc)
            await self.on_close(CloseReason.UNKNOWN)
