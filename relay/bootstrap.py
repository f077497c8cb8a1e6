"""Relay bootstrap entrypoint for network/session wiring."""

from __future__ import annotations

import asyncio
import contextlib
import logging
from importlib import metadata
from typing import Optional

from relay.config import RelaySettings, get_settings
from relay.execution import HttpExecutor
from relay.handlers import RequestDispatcher
from relay.network.client import RelayClient
from relay.network.session import TransportFactory
from relay.network.transport.dummy import DummyTransport
from relay.network.transport.websocket import WebSocketTransport

LOGGER = logging.getLogger(__name__)

DISTRIBUTION_NAME = "ws-http-relay"
LOG_FORMAT = "%(asctime)s [%(levelname)s] %(name)s: %(message)s"


def package_version() -> str:
    try:
        return metadata.version(DISTRIBUTION_NAME)
    except metadata.PackageNotFoundError:
        return "0.0.0"


def resolve_transport_factory(settings: RelaySettings) -> TransportFactory:
    if settings.transport == "dummy":
        return lambda s, identity: DummyTransport(s, identity)
    return lambda s, identity: WebSocketTransport(s, identity)


def configure_logging(settings: RelaySettings) -> None:
    logging.basicConfig(
        level=getattr(logging, settings.log_level.upper(), logging.INFO),
        format=LOG_FORMAT,
    )


def build_client(settings: RelaySettings) -> RelayClient:
    dispatcher = RequestDispatcher(executor=HttpExecutor.from_settings(settings))
    transport_factory = resolve_transport_factory(settings)
    LOGGER.debug("Initialising relay connection via %s transport", settings.transport)
    return RelayClient(settings=settings, transport_factory=transport_factory, dispatcher=dispatcher)


async def serve_forever(settings: Optional[RelaySettings] = None) -> None:
    """Run the relay until the gateway ends the channel for good or the task is cancelled."""

    settings = settings or get_settings()
    LOGGER.info("Config: %s", settings.describe())
    LOGGER.info("Version: v%s", package_version())
    client = build_client(settings)
    await client.start()
    try:
        await client.wait_closed()
        LOGGER.info("Relay stopped: channel permanently closed")
    except asyncio.CancelledError:
        LOGGER.info("Relay shutdown requested")
        raise
    finally:
        await client.stop()
        assert client.dispatcher is not None
        if not await client.dispatcher.drain(timeout=settings.shutdown_grace_seconds):
            LOGGER.warning(
                "Abandoning %s in-flight request(s) after %ss",
                client.dispatcher.inflight(),
                settings.shutdown_grace_seconds,
            )


def main() -> None:
    settings = get_settings()
    configure_logging(settings)
    with contextlib.suppress(KeyboardInterrupt):
        asyncio.run(serve_forever(settings))


if __name__ == "__main__":
    main()
