"""
Shared SSH session manager.

One manager owns one transport. Any number of commands run over it
concurrently, each on its own channel. When the transport drops without
a disconnect() call, the manager reconnects on the backoff schedule.

Usage:
    manager = SessionManager.get_instance()
    manager.connect(ConnectionConfig(host="10.0.0.5", username="deploy",
                                     private_key_path="~/.ssh/id_ed25519"))

    print(manager.exec("docker ps"))

    for line in manager.exec_stream("docker logs -f web"):
        print(line)

    manager.disconnect()
"""

from __future__ import annotations
import codecs
import logging
import queue
import threading
from contextlib import contextmanager
from functools import partial
from typing import Optional, Callable, Iterator, Generator

from .base import SessionState, StatusListener, Transport, Channel
from .errors import NetworkError, NotConnectedError, CommandFailedError
from .reconnect import ReconnectPolicy
from .ssh import ParamikoTransport
from ..config import ManagerSettings, get_settings
from ..connection.profile import ConnectionConfig

logger = logging.getLogger(__name__)

_STDOUT = "stdout"
_CLOSE = "close"


class SessionManager:
    """
    Connection lifecycle, reconnect, and command execution over one transport.

    Thread-safe. connect/disconnect/reconnect attempts are serialized;
    exec and exec_stream calls run concurrently on independent channels.
    """

    _instance: Optional[SessionManager] = None
    _instance_lock = threading.Lock()

    # Chunks buffered per exec_stream before the channel reader blocks
    STREAM_QUEUE_SIZE = 64
    STREAM_PUT_TIMEOUT = 0.1

    def __init__(
        self,
        settings: ManagerSettings = None,
        transport_factory: Callable[[], Transport] = None,
        timer_factory: Callable[..., threading.Timer] = threading.Timer,
    ):
        """
        Initialize session manager.

        Args:
            settings: Transport and reconnect settings (defaults if omitted)
            transport_factory: Builds a fresh, unconnected Transport per attempt
            timer_factory: threading.Timer-compatible factory for reconnect delays
        """
        self.settings = settings or ManagerSettings()
        self._transport_factory = transport_factory or partial(ParamikoTransport, self.settings)

        self._state = SessionState.DISCONNECTED
        self._state_lock = threading.Lock()
        self._transition_lock = threading.Lock()

        self._transport: Optional[Transport] = None
        self._config: Optional[ConnectionConfig] = None
        self._intentional_close = False

        self._listeners: list[tuple[object, StatusListener]] = []
        self._listeners_lock = threading.Lock()

        self._reconnect = ReconnectPolicy(
            self._reconnect_now,
            schedule=self.settings.backoff_schedule(),
            timer_factory=timer_factory,
        )

    # -------------------------------------------------------------------------
    # Shared instance
    # -------------------------------------------------------------------------

    @classmethod
    def get_instance(cls) -> SessionManager:
        """Get the process-wide manager, creating it on first use."""
        with cls._instance_lock:
            if cls._instance is None:
                cls._instance = cls(settings=get_settings())
            return cls._instance

    @classmethod
    def reset_instance(cls) -> None:
        """Disconnect and drop the process-wide manager."""
        with cls._instance_lock:
            old, cls._instance = cls._instance, None
        if old is not None:
            old.disconnect()

    # -------------------------------------------------------------------------
    # State
    # -------------------------------------------------------------------------

    @property
    def state(self) -> SessionState:
        """Current session state (thread-safe)."""
        with self._state_lock:
            return self._state

    @property
    def config(self) -> Optional[ConnectionConfig]:
        """Config of the last connect() call, re-used for reconnects."""
        return self._config

    @property
    def reconnect_policy(self) -> ReconnectPolicy:
        """Backoff state and the pending reconnect timer."""
        return self._reconnect

    def is_connected(self) -> bool:
        """Is the session connected and usable for commands?"""
        return self.state == SessionState.CONNECTED

    def _set_state(self, new_state: SessionState) -> None:
        with self._state_lock:
            old_state = self._state
            self._state = new_state
        if old_state != new_state:
            logger.info(f"Session state: {old_state.name} -> {new_state.name}")

    def on_status_change(self, listener: StatusListener) -> Callable[[], None]:
        """
        Register a connected/disconnected listener.

        Returns:
            Function that removes this registration. Safe to call twice.
        """
        token = object()
        with self._listeners_lock:
            self._listeners.append((token, listener))

        def unsubscribe() -> None:
            with self._listeners_lock:
                self._listeners = [
                    entry for entry in self._listeners if entry[0] is not token
                ]

        return unsubscribe

    def _notify(self, connected: bool) -> None:
        with self._listeners_lock:
            listeners = [listener for _, listener in self._listeners]
        for listener in listeners:
            try:
                listener(connected)
            except Exception as e:
                logger.exception(f"Status listener error: {e}")

    # -------------------------------------------------------------------------
    # Connection lifecycle
    # -------------------------------------------------------------------------

    def connect(self, config: ConnectionConfig) -> None:
        """
        Connect to the remote host.

        No-op if already connected. A pending automatic reconnect is
        cancelled and replaced by this attempt.

        Raises:
            AuthenticationError: Credentials rejected
            NetworkError: Host unreachable or connection closed before ready
        """
        with self._transition_lock:
            if self.state == SessionState.CONNECTED:
                logger.debug("Already connected")
                return

            self._reconnect.cancel()
            with self._state_lock:
                self._intentional_close = False
                self._config = config

            self._open_transport(config, SessionState.CONNECTING, SessionState.DISCONNECTED)
            self._reconnect.reset()

        self._notify(True)

    def _open_transport(
        self,
        config: ConnectionConfig,
        attempt_state: SessionState,
        failure_state: SessionState,
    ) -> None:
        """
        Create and connect a transport. Caller holds _transition_lock
        and notifies listeners after releasing it.
        """
        self._set_state(attempt_state)
        transport = self._transport_factory()

        try:
            transport.connect(config, self._handle_transport_closed)
            with self._state_lock:
                ready = transport.is_active
                if ready:
                    self._transport = transport
                    self._state = SessionState.CONNECTED
            if not ready:
                raise NetworkError(f"Connection to {config.target} closed before ready")

        except Exception:
            self._discard(transport)
            self._set_state(failure_state)
            raise

        logger.info(f"Session state: {attempt_state.name} -> CONNECTED ({config.target})")

    def _discard(self, transport: Transport) -> None:
        """Best-effort teardown of a transport that is not (or no longer) live."""
        try:
            transport.close()
        except Exception as e:
            logger.debug(f"Error closing transport: {e}")

    def disconnect(self) -> None:
        """
        Gracefully disconnect.

        Never followed by an automatic reconnect. Always ends DISCONNECTED.
        """
        # Stop a reconnect loop that is mid-attempt
        with self._state_lock:
            self._intentional_close = True
        self._reconnect.cancel()

        with self._transition_lock:
            # connect() may have cleared the flag while we waited
            self._reconnect.cancel()
            with self._state_lock:
                self._intentional_close = True
                transport, self._transport = self._transport, None
                was_connected = self._state == SessionState.CONNECTED
                old_state = self._state
                self._state = SessionState.DISCONNECTED

            if old_state != SessionState.DISCONNECTED:
                logger.info(f"Session state: {old_state.name} -> DISCONNECTED (user disconnected)")

            if transport is not None:
                self._discard(transport)

        if was_connected:
            self._notify(False)

    @contextmanager
    def session(self, config: ConnectionConfig) -> Generator[SessionManager, None, None]:
        """
        Context manager: connect, yield self, disconnect.

        Example:
            with manager.session(config) as s:
                s.exec("uptime")
        """
        self.connect(config)
        try:
            yield self
        finally:
            self.disconnect()

    def _handle_transport_closed(self, transport: Transport) -> None:
        """Called by the transport (any thread) when its connection ends."""
        with self._state_lock:
            if transport is not self._transport:
                # Torn down by us, or a failed attempt
                return
            self._transport = None
            self._state = SessionState.DISCONNECTED
            intentional = self._intentional_close

        logger.info("Session state: CONNECTED -> DISCONNECTED (connection lost)")
        self._notify(False)

        if intentional:
            return

        with self._state_lock:
            if self._intentional_close or self._state != SessionState.DISCONNECTED:
                return
            self._state = SessionState.RECONNECTING
            delay = self._reconnect.schedule()

        logger.warning(f"Connection lost unexpectedly, reconnecting in {delay:.1f}s")

    def _reconnect_now(self) -> None:
        """Reconnect timer callback."""
        with self._transition_lock:
            with self._state_lock:
                if self._intentional_close or self._state != SessionState.RECONNECTING:
                    logger.debug("Reconnect skipped, session no longer waiting to reconnect")
                    return
                config = self._config

            attempt = self._reconnect.index + 1
            logger.info(f"Reconnect attempt {attempt} to {config.target}")
            try:
                self._open_transport(config, SessionState.RECONNECTING, SessionState.RECONNECTING)
            except Exception as e:
                logger.warning(f"Reconnect attempt {attempt} failed: {e}")
                with self._state_lock:
                    if self._intentional_close or self._state != SessionState.RECONNECTING:
                        return
                    self._reconnect.record_failure()
                    self._reconnect.schedule()
                return

            self._reconnect.reset()
            logger.info(f"Reconnected to {config.target} after {attempt} attempt(s)")

        self._notify(True)

    # -------------------------------------------------------------------------
    # Command execution
    # -------------------------------------------------------------------------

    def _open_channel(self, command: str) -> Channel:
        with self._state_lock:
            if self._state != SessionState.CONNECTED or self._transport is None:
                raise NotConnectedError()
            transport = self._transport
        return transport.open_channel(command)

    def exec(self, command: str) -> str:
        """
        Run command and return its complete stdout.

        The command string is sent as-is; quoting is the caller's job.

        Raises:
            NotConnectedError: Session is not connected
            CommandFailedError: Remote exit code was non-zero
        """
        channel = self._open_channel(command)
        stdout: list[bytes] = []
        stderr: list[bytes] = []
        exit_codes: list[int] = []
        done = threading.Event()

        def on_close(exit_code: int) -> None:
            exit_codes.append(exit_code)
            done.set()

        try:
            channel.start(stdout.append, stderr.append, on_close)
            done.wait()
        finally:
            channel.close()

        exit_code = exit_codes[0]
        if exit_code != 0:
            stderr_text = b"".join(stderr).decode("utf-8", errors="replace")
            logger.debug(f"Command {command!r} exited {exit_code}")
            raise CommandFailedError(command, exit_code, stderr_text)

        return b"".join(stdout).decode("utf-8", errors="replace")

    def exec_stream(self, command: str) -> Iterator[str]:
        """
        Run command and iterate its stdout line by line.

        Lines are yielded without the trailing newline. A final partial
        line is yielded when the command ends. The exit code is not
        checked. Stop iterating (or close() the iterator) to release
        the channel early.

        Raises:
            NotConnectedError: Session is not connected (raised immediately)
        """
        if not self.is_connected():
            raise NotConnectedError()
        return self._stream_lines(command)

    def _stream_lines(self, command: str) -> Generator[str, None, None]:
        events: queue.Queue = queue.Queue(maxsize=self.STREAM_QUEUE_SIZE)
        released = threading.Event()
        channel = self._open_channel(command)

        def deliver(kind: str, payload) -> None:
            # Blocks the channel reader while the consumer is behind
            while not released.is_set():
                try:
                    events.put((kind, payload), timeout=self.STREAM_PUT_TIMEOUT)
                    return
                except queue.Full:
                    continue

        def on_stderr(data: bytes) -> None:
            logger.debug(f"stderr from {command!r}: {data!r}")

        decoder = codecs.getincrementaldecoder("utf-8")(errors="replace")
        buffer = ""
        try:
            channel.start(
                partial(deliver, _STDOUT),
                on_stderr,
                partial(deliver, _CLOSE),
            )
            while True:
                kind, payload = events.get()
                if kind == _CLOSE:
                    break
                buffer += decoder.decode(payload)
                *lines, buffer = buffer.split("\n")
                for line in lines:
                    yield line

            buffer += decoder.decode(b"", final=True)
            if buffer:
                yield buffer
        finally:
            released.set()
            channel.close()


# Global instance for convenience
def get_manager() -> SessionManager:
    """Get the shared session manager."""
    return SessionManager.get_instance()


def reset_manager() -> None:
    """Disconnect and discard the shared session manager."""
    SessionManager.reset_instance()
