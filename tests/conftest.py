"""
Shared fixtures: in-memory SSH transport and a manually driven timer clock.
"""

from __future__ import annotations
import threading
import time
from typing import Optional

import pytest

from sshmux.config import ManagerSettings
from sshmux.connection.profile import ConnectionConfig
from sshmux.session.base import Channel, Transport
from sshmux.session.errors import NotConnectedError
from sshmux.session.manager import SessionManager


class FakeChannel(Channel):
    """
    Channel that either replays a script on start() or waits for the
    test to emit events by hand.
    """

    def __init__(self, command: str, script: Optional[list] = None):
        self.command = command
        self.script = script
        self.started = threading.Event()
        self.closed = False
        self._on_stdout = None
        self._on_stderr = None
        self._on_close = None

    def start(self, on_stdout, on_stderr, on_close) -> None:
        self._on_stdout = on_stdout
        self._on_stderr = on_stderr
        self._on_close = on_close
        self.started.set()
        for kind, payload in self.script or ():
            if kind == "stdout":
                self.emit_data(payload)
            elif kind == "stderr":
                self.emit_stderr(payload)
            else:
                self.emit_close(payload)

    @staticmethod
    def _as_bytes(chunk) -> bytes:
        return chunk if isinstance(chunk, bytes) else chunk.encode()

    def emit_data(self, chunk) -> None:
        if not self.closed:
            self._on_stdout(self._as_bytes(chunk))

    def emit_stderr(self, chunk) -> None:
        if not self.closed:
            self._on_stderr(self._as_bytes(chunk))

    def emit_close(self, exit_code: int = 0) -> None:
        if not self.closed:
            self._on_close(exit_code)

    def close(self) -> None:
        self.closed = True


class FakeTransport(Transport):
    def __init__(self, server: FakeSSHServer):
        self.server = server
        self.active = False
        self.closed = False
        self._on_close = None

    @property
    def is_active(self) -> bool:
        return self.active

    def connect(self, config, on_close) -> None:
        self.server.record_connect(config)
        if self.server.failures:
            raise self.server.failures.pop(0)
        if self.server.drop_during_connect:
            self.server.drop_during_connect -= 1
            return
        self._on_close = on_close
        self.active = True

    def open_channel(self, command: str) -> FakeChannel:
        if not self.active:
            raise NotConnectedError("fake transport is not active")
        channel = FakeChannel(command, self.server.scripts.get(command))
        self.server.channels.append(channel)
        return channel

    def close(self) -> None:
        self.closed = True
        self.drop()
        if self.server.close_error is not None:
            raise self.server.close_error

    def drop(self) -> None:
        """Connection ends. Called by close(), or by a test to simulate a network drop."""
        self.active = False
        on_close, self._on_close = self._on_close, None
        if on_close is not None:
            on_close(self)


class FakeSSHServer:
    """Hands out FakeTransports and records what the manager did with them."""

    def __init__(self, clock: FakeClock = None):
        self.clock = clock
        self.transports: list[FakeTransport] = []
        self.connect_calls: list[ConnectionConfig] = []
        self.connect_times: list[float] = []
        self.channels: list[FakeChannel] = []
        self.scripts: dict[str, list] = {}
        self.failures: list[Exception] = []
        self.drop_during_connect = 0
        self.close_error: Optional[Exception] = None

    def create_transport(self) -> FakeTransport:
        transport = FakeTransport(self)
        self.transports.append(transport)
        return transport

    def record_connect(self, config) -> None:
        self.connect_calls.append(config)
        if self.clock is not None:
            self.connect_times.append(self.clock.now)

    @property
    def last_transport(self) -> FakeTransport:
        return self.transports[-1]

    def fail_next(self, error: Exception, times: int = 1) -> None:
        self.failures.extend([error] * times)

    def script(self, command: str, stdout=(), stderr=(), exit_code: int = 0) -> None:
        events = [("stdout", chunk) for chunk in stdout]
        events += [("stderr", chunk) for chunk in stderr]
        events.append(("close", exit_code))
        self.scripts[command] = events

    def wait_for_channels(self, count: int, timeout: float = 2.0) -> list[FakeChannel]:
        deadline = time.monotonic() + timeout
        while time.monotonic() < deadline:
            started = [c for c in self.channels if c.started.is_set()]
            if len(started) >= count:
                return started
            time.sleep(0.005)
        raise AssertionError(f"expected {count} started channels, got {len(self.channels)}")


class FakeTimer:
    def __init__(self, clock: FakeClock, interval: float, function):
        self.clock = clock
        self.interval = interval
        self.function = function
        self.daemon = False
        self.deadline: Optional[float] = None
        self.started = False
        self.cancelled = False
        self.fired = False

    def start(self) -> None:
        self.started = True
        self.deadline = self.clock.now + self.interval

    def cancel(self) -> None:
        self.cancelled = True

    def fire(self) -> None:
        self.fired = True
        self.function()


class FakeClock:
    """threading.Timer replacement; time only moves when advance() is called."""

    def __init__(self):
        self.now = 0.0
        self.timers: list[FakeTimer] = []

    def __call__(self, interval, function) -> FakeTimer:
        timer = FakeTimer(self, interval, function)
        self.timers.append(timer)
        return timer

    @property
    def pending(self) -> list[FakeTimer]:
        return [
            t for t in self.timers
            if t.started and not t.cancelled and not t.fired
        ]

    def advance(self, seconds: float) -> None:
        """Move time forward, firing due timers in deadline order."""
        target = self.now + seconds
        while True:
            due = [t for t in self.pending if t.deadline <= target + 1e-9]
            if not due:
                break
            timer = min(due, key=lambda t: t.deadline)
            self.now = timer.deadline
            timer.fire()
        self.now = target


class StatusRecorder:
    def __init__(self):
        self.calls: list[bool] = []

    def __call__(self, connected: bool) -> None:
        self.calls.append(connected)


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
def server(clock) -> FakeSSHServer:
    return FakeSSHServer(clock)


@pytest.fixture
def settings() -> ManagerSettings:
    return ManagerSettings()


@pytest.fixture
def config() -> ConnectionConfig:
    return ConnectionConfig(
        host="127.0.0.1",
        port=22,
        username="root",
        private_key_path="/home/test/.ssh/id_rsa",
    )


@pytest.fixture
def manager(server, clock, settings):
    manager = SessionManager(
        settings=settings,
        transport_factory=server.create_transport,
        timer_factory=clock,
    )
    yield manager
    manager.disconnect()


@pytest.fixture
def connected(manager, config):
    manager.connect(config)
    return manager


@pytest.fixture
def recorder() -> StatusRecorder:
    return StatusRecorder()


@pytest.fixture
def in_thread():
    """Run a call on a worker thread and fail if it has not returned within timeout."""
    def run(fn, *args, timeout: float = 2.0):
        errors = []

        def target():
            try:
                fn(*args)
            except Exception as e:
                errors.append(e)

        worker = threading.Thread(target=target, daemon=True)
        worker.start()
        worker.join(timeout)
        assert not worker.is_alive(), f"{fn.__name__} did not return within {timeout}s"
        if errors:
            raise errors[0]

    return run
