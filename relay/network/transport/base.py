"""Transport abstractions for the relay channel."""

from __future__ import annotations

from abc import ABC, abstractmethod
from typing import Optional


class TransportClosed(ConnectionError):
    """Raised by a transport once the underlying channel has closed."""

    def __init__(self, code: Optional[int] = None, reason: str = "") -> None:
        super().__init__(f"channel closed (code={code}, reason={reason!r})")
        self.code = code
        self.reason = reason


class BaseTransport(ABC):
    """Abstract WebSocket-like transport carrying raw text frames."""

    @abstractmethod
    async def connect(self) -> None:
        ...

    @abstractmethod
    async def send(self, frame: str) -> None:
        ...

    @abstractmethod
    async def receive(self) -> str | bytes:
        """Return the next raw frame; raise TransportClosed when the channel ends."""

    @abstractmethod
    async def close(self) -> None:
        ...
