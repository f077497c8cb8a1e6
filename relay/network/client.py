"""Relay client facade: one channel session at a time under a reconnect supervisor."""

from __future__ import annotations

import asyncio
import logging
import uuid
from dataclasses import dataclass, field
from typing import Optional

from relay.config import RelaySettings
from relay.handlers import RequestDispatcher
from relay.execution import HttpExecutor
from relay.network.session import ChannelSession, TransportFactory
from relay.network.session_state import CloseReason
from relay.network.supervisor import ReconnectSupervisor, Scheduler, SupervisorState

LOGGER = logging.getLogger(__name__)


@dataclass
class RelayClient:
    """Wires the channel session, request dispatcher and reconnect supervisor."""

    settings: RelaySettings
    transport_factory: TransportFactory
    dispatcher: Optional[RequestDispatcher] = None
    schedule: Optional[Scheduler] = None
    identity: str = field(default_factory=lambda: str(uuid.uuid4()))

    session: Optional[ChannelSession] = field(default=None, init=False, repr=False)
    supervisor: ReconnectSupervisor = field(init=False, repr=False)
    _permanently_closed: asyncio.Event = field(default_factory=asyncio.Event, init=False, repr=False)

    def __post_init__(self) -> None:
        if self.dispatcher is None:
            self.dispatcher = RequestDispatcher(executor=HttpExecutor.from_settings(self.settings))
        self.supervisor = ReconnectSupervisor(
            self.settings,
            reopen=self.open_session,
            schedule=self.schedule,
            on_transition=self._on_supervisor_transition,
        )

    async def start(self) -> None:
        LOGGER.info("WebSocket principal: %s", self.identity)
        await self.open_session()

    async def open_session(self) -> None:
        """Open a fresh session, discarding the previous one."""

        if self.supervisor.state is SupervisorState.PERMANENTLY_CLOSED:
            return
        assert self.dispatcher is not None
        session = ChannelSession(
            self.settings,
            self.transport_factory,
            identity=self.identity,
            on_request=self.dispatcher.handle,
            on_open=self._handle_open,
            on_close=self._handle_close,
        )
        self.session = session
        await session.open()

    async def stop(self) -> None:
        """Cancel any pending reconnect and close the active session.

        In-flight requests keep running; their sends become no-ops.
        """

        self.supervisor.shutdown()
        reopening = self.supervisor.reopen_tasks()
        if reopening:
            await asyncio.gather(*reopening, return_exceptions=True)
        assert self.dispatcher is not None
        LOGGER.info("Stopping relay client with %s request(s) in flight", self.dispatcher.inflight())
        session, self.session = self.session, None
        if session is not None:
            await session.close()

    async def wait_closed(self) -> None:
        """Block until the supervisor gives up on the channel."""

        await self._permanently_closed.wait()

    def _handle_open(self, session: ChannelSession) -> None:
        if session is not self.session:
            return
        self.supervisor.on_open()

    async def _handle_close(self, session: ChannelSession, reason: CloseReason) -> None:
        if session is not self.session:
            LOGGER.debug("Ignoring close of superseded session %s", session.identity)
            return
        self.supervisor.on_close(reason)

    def _on_supervisor_transition(self, previous: SupervisorState, current: SupervisorState) -> None:
        LOGGER.debug("Supervisor %s → %s", previous.value, current.value)
        if current is SupervisorState.PERMANENTLY_CLOSED:
            self._permanently_closed.set()
