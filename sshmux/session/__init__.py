"""
Session management - connection lifecycle, reconnect, and command channels.

- SessionManager: one shared transport, many concurrent commands
- ReconnectPolicy / BackoffSchedule: delays between automatic reconnects
- ParamikoTransport: the SSH transport the manager uses by default

Transport and Channel are the seams for plugging in something other
than paramiko (tests use in-memory fakes).
"""

from .base import (
    SessionState,
    StatusListener,
    Transport,
    Channel,
)
from .errors import (
    SessionError,
    ConnectError,
    AuthenticationError,
    NetworkError,
    NotConnectedError,
    ChannelError,
    CommandFailedError,
)
from .reconnect import BackoffSchedule, ReconnectPolicy, DEFAULT_BACKOFF_DELAYS
from .ssh import ParamikoTransport, ParamikoChannel
from .manager import SessionManager, get_manager, reset_manager

__all__ = [
    # Base classes
    "SessionState",
    "StatusListener",
    "Transport",
    "Channel",
    # Errors
    "SessionError",
    "ConnectError",
    "AuthenticationError",
    "NetworkError",
    "NotConnectedError",
    "ChannelError",
    "CommandFailedError",
    # Reconnect
    "BackoffSchedule",
    "ReconnectPolicy",
    "DEFAULT_BACKOFF_DELAYS",
    # Implementations
    "ParamikoTransport",
    "ParamikoChannel",
    "SessionManager",
    "get_manager",
    "reset_manager",
]
