"""Shared pytest fixtures and SSH fakes for SSH Mob tests."""

from __future__ import annotations

import threading

import pytest

from sshmob.runner.agent import Agent, AgentConfig


class FakeClock:
    """Monotonic clock that only moves when told to."""

    def __init__(self, start: float = 0.0) -> None:
        self.now = start

    def __call__(self) -> float:
        return self.now


class FakeCancel(threading.Event):
    """Cancellation token whose waits return at once and advance a fake clock.

    With ``cancel_on_wait=n`` the token is set during the n-th wait, which
    then returns True as a real wait woken by cancellation would.
    """

    def __init__(self, clock: FakeClock, cancel_on_wait: int | None = None) -> None:
        super().__init__()
        self.clock = clock
        self.cancel_on_wait = cancel_on_wait
        self.waits: list[float | None] = []

    def wait(self, timeout: float | None = None) -> bool:
        self.waits.append(timeout)
        if self.is_set():
            return True
        if self.cancel_on_wait is not None and len(self.waits) >= self.cancel_on_wait:
            self.set()
            return True
        if timeout:
            self.clock.now += timeout
        return False


class FakeSession:
    """Stands in for :class:`sshmob.runner.transport.SSHSession`."""

    def __init__(self, connection: FakeConnection) -> None:
        self.connection = connection
        self.terminal: tuple[str, int, int] | None = None
        self.shell_started = False
        self._closed = threading.Event()

    @property
    def closed(self) -> bool:
        return self._closed.is_set()

    def run_and_capture(self, command: str) -> bytes:
        self.connection.executed.append(command)
        if self.connection.exec_error is not None:
            raise self.connection.exec_error
        return f"ran {command}".encode()

    def request_terminal(self, term: str, width: int, height: int) -> None:
        if self.connection.pty_error is not None:
            raise self.connection.pty_error
        self.terminal = (term, width, height)

    def start_shell(self) -> None:
        self.shell_started = True

    def write(self, data: bytes) -> None:
        if self.connection.write_error is not None:
            raise self.connection.write_error
        self.connection.written.append(data)

    def read_stdout(self, size: int) -> bytes:
        self._closed.wait(timeout=10)
        return b""

    def read_stderr(self, size: int) -> bytes:
        self._closed.wait(timeout=10)
        return b""

    def close(self) -> None:
        self._closed.set()


class FakeConnection:
    """Stands in for :class:`sshmob.runner.transport.SSHConnection`."""

    def __init__(self) -> None:
        self.sessions: list[FakeSession] = []
        self.executed: list[str] = []
        self.written: list[bytes] = []
        self.close_calls = 0
        self.max_open_sessions = 0
        self.open_error: BaseException | None = None
        self.exec_error: BaseException | None = None
        self.pty_error: BaseException | None = None
        self.write_error: BaseException | None = None
        self.close_error: BaseException | None = None

    def open_session(self) -> FakeSession:
        if self.open_error is not None:
            raise self.open_error
        session = FakeSession(self)
        self.sessions.append(session)
        open_now = sum(1 for s in self.sessions if not s.closed)
        self.max_open_sessions = max(self.max_open_sessions, open_now)
        return session

    def close(self) -> None:
        self.close_calls += 1
        if self.close_error is not None:
            raise self.close_error


class FakeDialer:
    """Callable dialer. Each queued outcome is an exception to raise or None."""

    def __init__(self, outcomes: list[BaseException | None] | None = None) -> None:
        self.outcomes = list(outcomes or [])
        self.calls = 0
        self.connections: list[FakeConnection] = []
        self.configure = None  # optional callback(FakeConnection)
        self._lock = threading.Lock()

    def __call__(self, host, port, username, password, *, timeout=None) -> FakeConnection:  # noqa: ANN001
        with self._lock:
            self.calls += 1
            outcome = self.outcomes.pop(0) if self.outcomes else None
            if outcome is not None:
                raise outcome
            connection = FakeConnection()
            if self.configure is not None:
                self.configure(connection)
            self.connections.append(connection)
            return connection


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def cancel(clock):
    return FakeCancel(clock)


@pytest.fixture
def dialer():
    return FakeDialer()


@pytest.fixture
def make_agent(clock, cancel, dialer):
    """Build an agent wired to the fake clock, token and dialer."""
    def _make(agent_id: str = "agent-001", **overrides) -> Agent:
        fields = {"host": "target", "port": 22, "username": "mob", "password": "pw"}
        fields.update(overrides)
        return Agent(agent_id, AgentConfig(**fields), cancel, dialer=dialer, clock=clock)
    return _make
