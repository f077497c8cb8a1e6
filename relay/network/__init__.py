"""Network stack (transport/session/supervisor/client) for the relay channel."""

from relay.network.client import RelayClient
from relay.network.session import ChannelError, ChannelSession, TransportFactory
from relay.network.session_state import CloseReason, ConnectionState, classify_close_reason
from relay.network.supervisor import ReconnectDecision, ReconnectSupervisor, SupervisorState, decide_reconnect
from relay.network.transport import BaseTransport, DummyTransport, TransportClosed, WebSocketTransport

__all__ = [
    "RelayClient",
    "ChannelError",
    "ChannelSession",
    "TransportFactory",
    "CloseReason",
    "ConnectionState",
    "classify_close_reason",
    "ReconnectDecision",
    "ReconnectSupervisor",
    "SupervisorState",
    "decide_reconnect",
    "BaseTransport",
    "DummyTransport",
    "TransportClosed",
    "WebSocketTransport",
]
