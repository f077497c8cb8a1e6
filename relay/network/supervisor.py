"""Reconnect policy: decides whether and when to reopen a closed channel."""

from __future__ import annotations

import asyncio
import enum
import logging
from collections.abc import Awaitable, Callable
from dataclasses import dataclass
from typing import Optional, Protocol

from relay.config import RelaySettings
from relay.network.session_state import CloseReason

LOGGER = logging.getLogger(__name__)


class SupervisorState(enum.Enum):
    IDLE = "Idle"
    CONNECTED = "Connected"
    RECONNECTING = "Reconnecting"
    PERMANENTLY_CLOSED = "PermanentlyClosed"


class TimerHandle(Protocol):
    def cancel(self) -> None:
        ...


Scheduler = Callable[[float, Callable[[], None]], TimerHandle]
TransitionHandler = Callable[[SupervisorState, SupervisorState], None]


@dataclass(frozen=True)
class ReconnectDecision:
    reason: CloseReason
    delay_seconds: Optional[float]

    @property
    def permanent(self) -> bool:
        return self.delay_seconds is None


def decide_reconnect(reason: CloseReason, *, reconnect_after_seconds: float) -> ReconnectDecision:
    # the gateway ends the connection when the target endpoint rejected it or does not exist
    if reason is CloseReason.CONNECTION_ENDED_BY_GATEWAY:
        return ReconnectDecision(reason=reason, delay_seconds=None)
    # usually a planned restart on the remote side
    if reason is CloseReason.CLOSED_BY_APPLICATION:
        return ReconnectDecision(reason=reason, delay_seconds=float(reconnect_after_seconds))
    return ReconnectDecision(reason=reason, delay_seconds=0.0)


def _loop_scheduler(delay: float, callback: Callable[[], None]) -> TimerHandle:
    return asyncio.get_running_loop().call_later(delay, callback)


class ReconnectSupervisor:
    """State machine driving the channel lifecycle across closes.

    ``reopen`` is awaited in a fresh task whenever a reconnect timer fires. A
    close arriving while a timer is still pending replaces that timer.
    """

    def __init__(
        self,
        settings: RelaySettings,
        *,
        reopen: Callable[[], Awaitable[None]],
        schedule: Optional[Scheduler] = None,
        on_transition: Optional[TransitionHandler] = None,
    ) -> None:
        self._reconnect_after = float(settings.reconnect_after_seconds)
        self._reopen = reopen
        self._schedule = schedule or _loop_scheduler
        self._on_transition = on_transition
        self._state = SupervisorState.IDLE
        self._timer: Optional[TimerHandle] = None
        self._reopen_tasks: set[asyncio.Task[None]] = set()

    @property
    def state(self) -> SupervisorState:
        return self._state

    @property
    def reconnect_pending(self) -> bool:
        return self._timer is not None

    def reopen_tasks(self) -> tuple[asyncio.Task[None], ...]:
        return tuple(self._reopen_tasks)

    def on_open(self) -> None:
        if self._state is not SupervisorState.IDLE:
            raise ValueError(f"Invalid transition {self._state.value} → {SupervisorState.CONNECTED.value}")
        self._set_state(SupervisorState.CONNECTED)

    def on_close(self, reason: CloseReason) -> ReconnectDecision:
        """Apply the reconnect policy to a close event and schedule the reopen."""

        if self._state is SupervisorState.PERMANENTLY_CLOSED:
            LOGGER.debug("Ignoring close (%s): supervisor permanently closed", reason.value)
            return ReconnectDecision(reason=reason, delay_seconds=None)

        decision = decide_reconnect(reason, reconnect_after_seconds=self._reconnect_after)
        self._cancel_timer()
        if decision.permanent:
            LOGGER.warning("Connection ended by gateway; not reconnecting")
            self._set_state(SupervisorState.PERMANENTLY_CLOSED)
            return decision

        self._set_state(SupervisorState.RECONNECTING)
        if decision.delay_seconds:
            LOGGER.info("Reconnecting in %s seconds...", decision.delay_seconds)
        self._timer = self._schedule(decision.delay_seconds or 0.0, self._fire)
        return decision

    def shutdown(self) -> None:
        """Stop for good: cancel any pending reconnect, including one already reopening."""

        self._cancel_timer()
        for task in list(self._reopen_tasks):
            task.cancel()
        if self._state is not SupervisorState.PERMANENTLY_CLOSED:
            self._set_state(SupervisorState.PERMANENTLY_CLOSED)

    def _fire(self) -> None:
        self._timer = None
        if self._state is not SupervisorState.RECONNECTING:
            return
        self._set_state(SupervisorState.IDLE)
        LOGGER.info("Reconnecting...")
        task = asyncio.ensure_future(self._reopen())
        self._reopen_tasks.add(task)
        task.add_done_callback(self._reopen_done)

    def _reopen_done(self, task: asyncio.Task[None]) -> None:
        self._reopen_tasks.discard(task)
        if task.cancelled():
            return
        exc = task.exception()
        if exc is not None:
            LOGGER.error("Reopen failed: %s", exc, exc_info=exc)

    def _cancel_timer(self) -> None:
        timer, self._timer = self._timer, None
        if timer is not None:
            timer.cancel()

    def _set_state(self, state: SupervisorState) -> None:
        previous, self._state = self._state, state
        if self._on_transition and previous is not state:
            self._on_transition(previous, state)
