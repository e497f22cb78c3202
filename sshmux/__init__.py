"""
sshmux - Shared SSH sessions for remote command execution.

- One authenticated connection per manager, shared by all callers
- Concurrent commands, each on its own channel
- Buffered (exec) and line-streaming (exec_stream) output
- Automatic reconnect with backoff after unexpected drops
"""

__version__ = "0.1.0"

from .session import (
    SessionManager,
    SessionState,
    BackoffSchedule,
    SessionError,
    ConnectError,
    AuthenticationError,
    NetworkError,
    NotConnectedError,
    ChannelError,
    CommandFailedError,
    get_manager,
    reset_manager,
)
from .connection import ConnectionConfig, load_hosts
from .config import ManagerSettings, get_settings

__all__ = [
    # Manager
    "SessionManager",
    "SessionState",
    "BackoffSchedule",
    "get_manager",
    "reset_manager",
    # Errors
    "SessionError",
    "ConnectError",
    "AuthenticationError",
    "NetworkError",
    "NotConnectedError",
    "ChannelError",
    "CommandFailedError",
    # Connection
    "ConnectionConfig",
    "load_hosts",
    # Settings
    "ManagerSettings",
    "get_settings",
]
