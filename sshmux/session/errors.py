"""
Session error hierarchy.

Connectivity problems derive from ConnectError and are either raised to
the caller of connect() or retried by the reconnect policy. Command
problems are always raised to the exec caller.
"""

from __future__ import annotations


class SessionError(Exception):
    """Base class for all sshmux errors."""
    pass


class ConnectError(SessionError):
    """Connection could not be established."""
    pass


class AuthenticationError(ConnectError):
    """Remote host rejected the credentials."""
    pass


class NetworkError(ConnectError):
    """Host unreachable, handshake failed, or connection closed before ready."""
    pass


class NotConnectedError(SessionError):
    """Command issued while the session is not connected."""

    def __init__(self, message: str = "SSH session is not connected"):
        super().__init__(message)


class ChannelError(SessionError):
    """A command channel could not be opened on the live transport."""
    pass


class CommandFailedError(SessionError):
    """
    Remote command exited with a non-zero status.

    Attributes:
        command: The command string as issued
        exit_code: Remote exit status (-1 if none was reported)
        stderr: Captured standard error text
    """

    def __init__(self, command: str, exit_code: int, stderr: str):
        self.command = command
        self.exit_code = exit_code
        self.stderr = stderr
        detail = stderr.strip() or "no stderr output"
        super().__init__(f"Command failed with exit code {exit_code}: {detail}")
