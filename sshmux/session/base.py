"""
Abstract transport and channel interfaces.
"""

from __future__ import annotations
from abc import ABC, abstractmethod
from enum import Enum, auto
from typing import Callable, TYPE_CHECKING

if TYPE_CHECKING:
    from ..connection.profile import ConnectionConfig


class SessionState(Enum):
    """Session lifecycle states."""
    DISCONNECTED = auto()
    CONNECTING = auto()
    CONNECTED = auto()
    RECONNECTING = auto()


# Called with True when the session becomes connected, False when it stops being connected
StatusListener = Callable[[bool], None]

DataHandler = Callable[[bytes], None]
ExitHandler = Callable[[int], None]


class Channel(ABC):
    """
    One command's sub-stream over a shared transport.

    Delivers stdout chunks, stderr chunks, then exactly one close
    event with the exit code. Never reused across commands.
    """

    @abstractmethod
    def start(
        self,
        on_stdout: DataHandler,
        on_stderr: DataHandler,
        on_close: ExitHandler,
    ) -> None:
        """Begin delivering events to the given handlers."""
        pass

    @abstractmethod
    def close(self) -> None:
        """Release the channel. No handlers are called afterwards."""
        pass


class Transport(ABC):
    """
    A single authenticated connection to a remote shell.

    The session manager talks to this, doesn't know about paramiko.
    """

    @property
    @abstractmethod
    def is_active(self) -> bool:
        """Is the underlying connection still usable?"""
        pass

    @abstractmethod
    def connect(
        self,
        config: ConnectionConfig,
        on_close: Callable[[Transport], None],
    ) -> None:
        """
        Open the connection. Blocks until ready.

        Raises AuthenticationError or NetworkError on failure.
        on_close is called once, with this transport, when the
        connection ends for any reason after becoming ready.
        """
        pass

    @abstractmethod
    def open_channel(self, command: str) -> Channel:
        """Open a new channel running command."""
        pass

    @abstractmethod
    def close(self) -> None:
        """Send end-of-session and release the connection."""
        pass
