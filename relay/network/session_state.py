"""Connection state tracking for a single channel session."""

from __future__ import annotations

import enum
from dataclasses import dataclass
from typing import Optional

# Close reasons the gateway reports verbatim.
GATEWAY_CONNECTION_ENDED = "Connection ended"
APPLICATION_CLOSED = "ClosedByApplication"
NORMAL_CLOSE_CODE = 1000


class ConnectionState(enum.Enum):
    CONNECTING = "Connecting"
    OPEN = "Open"
    CLOSED = "Closed"


class CloseReason(enum.Enum):
    NORMAL = "Normal"
    CLOSED_BY_APPLICATION = "ClosedByApplication"
    CONNECTION_ENDED_BY_GATEWAY = "ConnectionEndedByGateway"
    UNKNOWN = "Unknown"


def classify_close_reason(reason: Optional[str], code: Optional[int] = None) -> CloseReason:
    """Map the close reason text (and code) reported by the transport onto CloseReason."""

    text = (reason or "").strip()
    if text == GATEWAY_CONNECTION_ENDED:
        return CloseReason.CONNECTION_ENDED_BY_GATEWAY
    if text == APPLICATION_CLOSED:
        return CloseReason.CLOSED_BY_APPLICATION
    if not text and code == NORMAL_CLOSE_CODE:
        return CloseReason.NORMAL
    return CloseReason.UNKNOWN


@dataclass
class SessionTracker:
    """In-memory connection state with validated transitions."""

    state: ConnectionState = ConnectionState.CONNECTING

    def transition(self, next_state: ConnectionState) -> None:
        """Move the session into a new state, validating allowed transitions."""

        if not self._is_valid_transition(self.state, next_state):
            raise ValueError(f"Invalid transition {self.state.value} → {next_state.value}")
        self.state = next_state

    @staticmethod
    def _is_valid_transition(current: ConnectionState, nxt: ConnectionState) -> bool:
        allowed = {
            ConnectionState.CONNECTING: {ConnectionState.OPEN, ConnectionState.CLOSED},
            ConnectionState.OPEN: {ConnectionState.CLOSED},
            ConnectionState.CLOSED: set(),
        }
        return nxt in allowed.get(current, set())

    @property
    def is_open(self) -> bool:
        return self.state is ConnectionState.OPEN
