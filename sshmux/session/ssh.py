"""
SSH transport implementation using Paramiko.
"""

from __future__ import annotations
import logging
import socket
import threading
from io import StringIO
from typing import Optional, Callable

import paramiko

from .base import Transport, Channel, DataHandler, ExitHandler
from .errors import (
    AuthenticationError, NetworkError, NotConnectedError, ChannelError
)
from ..config import ManagerSettings
from ..connection.profile import ConnectionConfig

logger = logging.getLogger(__name__)


HOST_KEY_POLICY_CLASSES = {
    "auto_add": paramiko.AutoAddPolicy,
    "warn": paramiko.WarningPolicy,
    "reject": paramiko.RejectPolicy,
}

KEY_CLASSES = (
    paramiko.Ed25519Key,
    paramiko.RSAKey,
    paramiko.ECDSAKey,
)


def load_private_key(key_data: str, passphrase: str = None) -> paramiko.PKey:
    """
    Load SSH private key from PEM/OpenSSH text.

    Raises:
        AuthenticationError: If no supported key type parses the data
    """
    for key_class in KEY_CLASSES:
        try:
            return key_class.from_private_key(StringIO(key_data), password=passphrase)
        except paramiko.PasswordRequiredException as e:
            raise AuthenticationError("Private key is encrypted but no passphrase was given") from e
        except (paramiko.SSHException, ValueError):
            continue

    raise AuthenticationError("Unable to parse private key")


class ParamikoChannel(Channel):
    """
    exec channel on a paramiko transport.

    Runs reads on a background thread and hands chunks to the
    handlers as they arrive.
    """

    READ_BUFFER_SIZE = 65536
    POLL_INTERVAL = 0.1

    def __init__(self, channel: paramiko.Channel, command: str):
        self._channel = channel
        self.command = command
        self._stop_event = threading.Event()
        self._pump_thread: Optional[threading.Thread] = None

    def start(
        self,
        on_stdout: DataHandler,
        on_stderr: DataHandler,
        on_close: ExitHandler,
    ) -> None:
        """Start the read thread."""
        self._pump_thread = threading.Thread(
            target=self._pump,
            args=(on_stdout, on_stderr, on_close),
            daemon=True,
        )
        self._pump_thread.start()

    def _pump(
        self,
        on_stdout: DataHandler,
        on_stderr: DataHandler,
        on_close: ExitHandler,
    ) -> None:
        chan = self._channel
        exit_code = -1
        try:
            while not self._stop_event.is_set():
                got_data = False
                if chan.recv_ready():
                    data = chan.recv(self.READ_BUFFER_SIZE)
                    if data:
                        on_stdout(data)
                        got_data = True
                if chan.recv_stderr_ready():
                    data = chan.recv_stderr(self.READ_BUFFER_SIZE)
                    if data:
                        on_stderr(data)
                        got_data = True

                drained = not chan.recv_ready() and not chan.recv_stderr_ready()
                if chan.exit_status_ready() and drained:
                    exit_code = chan.recv_exit_status()
                    break
                if chan.closed and drained:
                    logger.debug(f"Channel closed without exit status: {self.command!r}")
                    break
                if not got_data:
                    chan.status_event.wait(self.POLL_INTERVAL)

        except (socket.error, paramiko.SSHException, EOFError) as e:
            logger.warning(f"Read error on channel for {self.command!r}: {e}")

        finally:
            try:
                chan.close()
            except Exception as e:
                logger.debug(f"Error closing channel: {e}")

        if not self._stop_event.is_set():
            on_close(exit_code)

    def close(self) -> None:
        """Stop delivery and close the channel."""
        self._stop_event.set()
        try:
            self._channel.close()
        except Exception as e:
            logger.debug(f"Error closing channel: {e}")


class ParamikoTransport(Transport):
    """
    One paramiko SSHClient connection.

    Watches the underlying transport on a background thread and
    reports loss of connection through the on_close callback.
    """

    WATCH_INTERVAL = 0.5

    def __init__(self, settings: ManagerSettings = None):
        self.settings = settings or ManagerSettings()
        self._client: Optional[paramiko.SSHClient] = None
        self._on_close: Optional[Callable[[Transport], None]] = None
        self._watch_thread: Optional[threading.Thread] = None
        self._stop_event = threading.Event()
        self._close_lock = threading.Lock()
        self._close_notified = False

    @property
    def is_active(self) -> bool:
        if self._client is None:
            return False
        transport = self._client.get_transport()
        return transport is not None and transport.is_active()

    def _create_client(self) -> paramiko.SSHClient:
        """Create a new SSHClient with standard settings."""
        client = paramiko.SSHClient()
        client.load_system_host_keys()
        policy_class = HOST_KEY_POLICY_CLASSES.get(
            self.settings.host_key_policy, paramiko.AutoAddPolicy
        )
        client.set_missing_host_key_policy(policy_class())
        return client

    def _connect_kwargs(self, config: ConnectionConfig) -> dict:
        """Convert ConnectionConfig to paramiko connect kwargs."""
        try:
            key_data = config.read_private_key()
        except OSError as e:
            raise AuthenticationError(f"Cannot read private key {config.key_file}: {e}") from e

        return {
            "username": config.username,
            "pkey": load_private_key(key_data, config.passphrase),
            "timeout": self.settings.connect_timeout,
            "allow_agent": False,
            "look_for_keys": False,
        }

    def connect(
        self,
        config: ConnectionConfig,
        on_close: Callable[[Transport], None],
    ) -> None:
        """Connect and authenticate, then start watching the connection."""
        kwargs = self._connect_kwargs(config)
        client = self._create_client()

        logger.info(f"Connecting to {config.target}")
        try:
            client.connect(config.host, port=config.port, **kwargs)
        except paramiko.AuthenticationException as e:
            client.close()
            raise AuthenticationError(f"Authentication failed for {config.target}: {e}") from e
        except (paramiko.SSHException, OSError, EOFError) as e:
            client.close()
            raise NetworkError(f"Cannot connect to {config.target}: {e}") from e

        transport = client.get_transport()
        if transport is None or not transport.is_active():
            client.close()
            raise NetworkError(f"Connection to {config.target} closed before ready")

        transport.set_keepalive(self.settings.keepalive_interval)
        logger.debug(
            f"Negotiated: cipher={transport.remote_cipher}, "
            f"mac={transport.remote_mac}"
        )

        self._client = client
        self._on_close = on_close
        self._watch_thread = threading.Thread(target=self._watch, daemon=True)
        self._watch_thread.start()

    def _watch(self) -> None:
        """Poll the transport until it dies or we are closed."""
        while not self._stop_event.wait(self.WATCH_INTERVAL):
            if not self.is_active:
                logger.info("SSH transport no longer active")
                break
        self._notify_closed()

    def _notify_closed(self) -> None:
        with self._close_lock:
            if self._close_notified or self._on_close is None:
                return
            self._close_notified = True
        try:
            self._on_close(self)
        except Exception:
            logger.exception("Close handler error")

    def open_channel(self, command: str) -> ParamikoChannel:
        """Open a session channel and start command on it."""
        transport = self._client.get_transport() if self._client else None
        if transport is None or not transport.is_active():
            raise NotConnectedError("SSH transport is no longer active")

        try:
            chan = transport.open_session()
        except (paramiko.SSHException, EOFError, socket.error) as e:
            raise ChannelError(f"Cannot open channel: {e}") from e

        try:
            chan.exec_command(command)
        except (paramiko.SSHException, socket.error) as e:
            chan.close()
            raise ChannelError(f"Cannot start command {command!r}: {e}") from e

        logger.debug(f"Opened channel for {command!r}")
        return ParamikoChannel(chan, command)

    def close(self) -> None:
        """Close the client and report the close."""
        self._stop_event.set()
        if self._client:
            try:
                self._client.close()
            except Exception as e:
                logger.debug(f"Error closing SSH client: {e}")
        self._notify_closed()
