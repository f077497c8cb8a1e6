"""WebSocket transport implementation."""

from __future__ import annotations

import logging
from typing import Optional

from websockets.asyncio.client import ClientConnection, connect
from websockets.exceptions import ConnectionClosed

from relay.config import RelaySettings
from relay.network.transport.base import BaseTransport, TransportClosed

LOGGER = logging.getLogger(__name__)

PRINCIPAL_HEADER = "X-Relay-Principal"
NETWORK_URL_HEADER = "X-Relay-Network-Url"
ENDPOINT_ID_HEADER = "X-Relay-Endpoint-Id"


def _closed_from(exc: ConnectionClosed) -> TransportClosed:
    frame = exc.rcvd or exc.sent
    if frame is None:
        return TransportClosed(code=None, reason="")
    return TransportClosed(code=frame.code, reason=frame.reason)


class WebSocketTransport(BaseTransport):
    """WebSocket-based channel transport."""

    def __init__(self, settings: RelaySettings, identity: str) -> None:
        self._settings = settings
        self._identity = identity
        self._ws: Optional[ClientConnection] = None

    def handshake_headers(self) -> dict[str, str]:
        headers = {
            PRINCIPAL_HEADER: self._identity,
            NETWORK_URL_HEADER: str(self._settings.network_url),
        }
        if self._settings.endpoint_id:
            headers[ENDPOINT_ID_HEADER] = self._settings.endpoint_id
        return headers

    async def connect(self) -> None:
        LOGGER.info("Connecting to gateway WebSocket at %s", self._settings.gateway_url)
        self._ws = await connect(
            str(self._settings.gateway_url),
            additional_headers=self.handshake_headers(),
        )

    async def send(self, frame: str) -> None:
        if not self._ws:
            raise TransportClosed(reason="transport not connected")
        LOGGER.debug("WebSocket send: %s", frame)
        try:
            await self._ws.send(frame)
        except ConnectionClosed as exc:
            raise _closed_from(exc) from exc

    async def receive(self) -> str | bytes:
        if not self._ws:
            raise TransportClosed(reason="transport not connected")
        try:
            raw = await self._ws.recv()
        except ConnectionClosed as exc:
            raise _closed_from(exc) from exc
        LOGGER.debug("WebSocket receive: %s", raw)
        return raw

    async def close(self) -> None:
        if self._ws:
            LOGGER.info("Closing WebSocket transport")
            await self._ws.close()
            self._ws = None
