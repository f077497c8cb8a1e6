"""In-memory transport for offline runs and tests."""

from __future__ import annotations

import asyncio
import logging
from typing import Optional

from .base import BaseTransport, TransportClosed

LOGGER = logging.getLogger(__name__)


class DummyTransport(BaseTransport):
    """Queue-backed transport: frames are fed in by hand and sent frames are recorded."""

    def __init__(self, settings=None, identity: str = "dummy", *, connect_error: Optional[Exception] = None) -> None:
        self._settings = settings
        self.identity = identity
        self.connect_error = connect_error
        self.inbound: asyncio.Queue[str | bytes | TransportClosed] = asyncio.Queue()
        self.sent: list[str] = []
        self.connected = False
        self.closed = False

    async def connect(self) -> None:
        LOGGER.debug("Dummy transport connect() identity=%s", self.identity)
        if self.connect_error is not None:
            raise self.connect_error
        self.connected = True

    async def send(self, frame: str) -> None:
        if self.closed:
            raise TransportClosed(reason="transport closed")
        LOGGER.debug("Dummy transport send(): %s", frame)
        self.sent.append(frame)

    async def receive(self) -> str | bytes:
        item = await self.inbound.get()
        if isinstance(item, TransportClosed):
            self.closed = True
            raise item
        return item

    async def close(self) -> None:
        LOGGER.debug("Dummy transport close()")
        self.closed = True

    def feed(self, frame: str | bytes) -> None:
        self.inbound.put_nowait(frame)

    def drop(self, reason: str = "", code: Optional[int] = 1000) -> None:
        """Simulate the remote end closing the channel."""

        self.inbound.put_nowait(TransportClosed(code=code, reason=reason))
