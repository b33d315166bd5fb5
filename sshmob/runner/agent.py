"""Agent data model and per-connection lifecycle.

An agent owns exactly one SSH connection. It waits out its pre-connect
delay, dials with exponential backoff, then issues commands at a fixed
cadence until its TTL runs out or the run is cancelled. Every wait is
``cancel.wait(timeout)``, so cancellation is observed between network
operations and never interrupts one.
"""

from __future__ import annotations

import threading
import time
from contextlib import contextmanager
from dataclasses import dataclass, field
from typing import Any, Callable, Iterator

import structlog

from sshmob.common.constants import (
    DEFAULT_CONNECT_TIMEOUT,
    PTY_HEIGHT,
    PTY_TERM,
    PTY_WIDTH,
    SHELL_WARMUP_SECS,
)
from sshmob.runner.backoff import backoff_delay
from sshmob.runner.drain import OutputDrain
from sshmob.runner.errors import (
    CancelledError,
    ConnectFailedError,
    NotConnectedError,
    SessionError,
)
from sshmob.runner.script import CommandScript
from sshmob.runner.transport import TRANSPORT_ERRORS, SSHConnection, SSHSession, dial

Dialer = Callable[..., SSHConnection]


@dataclass(frozen=True)
class AgentConfig:
    """Everything one agent needs; shared fields are copied from the run config."""

    host: str
    port: int
    username: str
    password: str = field(repr=False)
    connect_delay: float = 0.0   # seconds before the first dial
    ttl: float = 60.0            # seconds, measured from connection_start
    rate: int = 6                # commands per minute
    interactive: bool = False    # one PTY shell instead of one exec per command
    max_retries: int = 0         # extra dial attempts after the first
    script: CommandScript = field(default_factory=CommandScript)
    connect_timeout: float = DEFAULT_CONNECT_TIMEOUT

    def __post_init__(self) -> None:
        if self.rate <= 0:
            raise ValueError(f"rate must be positive, got {self.rate}")
        if self.max_retries < 0:
            raise ValueError(f"max_retries must be non-negative, got {self.max_retries}")

    @property
    def address(self) -> str:
        return f"{self.host}:{self.port}"

    @property
    def command_interval(self) -> float:
        """Seconds between two commands."""
        return 60.0 / self.rate


class Agent:
    """One SSH connection driven through connect -> run -> close."""

    def __init__(
        self,
        agent_id: str,
        config: AgentConfig,
        cancel: threading.Event,
        *,
        dialer: Dialer = dial,
        clock: Callable[[], float] = time.monotonic,
        file_log: Any = None,
    ) -> None:
        self.agent_id = agent_id
        self.config = config
        self.connection: SSHConnection | None = None
        self.connection_start: float | None = None
        self.command_index = 0
        self.status = "pending"  # pending | connecting | running | completed | cancelled | failed
        self.stop_reason: str | None = None  # "ttl" | "cancelled" once the command loop ends
        self._cancel = cancel
        self._dialer = dialer
        self._clock = clock
        self._log = structlog.get_logger("agent").bind(agent_id=agent_id)
        self._file_log = file_log.bind(agent_id=agent_id) if file_log is not None else None

    def _emit(self, level: str, event: str, **kw: Any) -> None:
        """Log to the console and, when configured, the agent's JSON file."""
        getattr(self._log, level)(event, **kw)
        if self._file_log is not None:
            getattr(self._file_log, level)(event, **kw)

    # ── Connect ──────────────────────────────────────────────────────────

    def connect(self) -> None:
        """Dial the target, retrying with backoff.

        Raises ``CancelledError`` if the token is set during the delay, a
        backoff wait, or before an attempt; ``ConnectFailedError`` once
        every attempt has failed.
        """
        if self.connection is not None:
            return

        cfg = self.config
        if cfg.connect_delay > 0:
            self._emit("debug", "connect_delay", seconds=cfg.connect_delay)
            if self._cancel.wait(timeout=cfg.connect_delay):
                raise CancelledError("cancelled during connection delay")

        attempts = cfg.max_retries + 1
        last_error: BaseException | None = None

        for attempt in range(attempts):
            if self._cancel.is_set():
                raise CancelledError(f"cancelled before connection attempt {attempt + 1}")

            try:
                connection = self._dialer(
                    cfg.host, cfg.port, cfg.username, cfg.password,
                    timeout=cfg.connect_timeout,
                )
            except TRANSPORT_ERRORS as exc:
                last_error = exc
            else:
                self.connection_start = self._clock()
                self.connection = connection
                self._emit("debug", "connected", address=cfg.address, attempt=attempt + 1)
                return

            if attempt < attempts - 1:
                backoff = backoff_delay(attempt)
                self._emit(
                    "warning",
                    "connect_retry",
                    attempt=attempt + 1,
                    attempts=attempts,
                    backoff=backoff,
                    error=str(last_error),
                )
                if self._cancel.wait(timeout=backoff):
                    raise CancelledError("cancelled during connection backoff")

        self._emit("error", "connect_failed", attempts=attempts, error=str(last_error))
        raise ConnectFailedError(cfg.address, attempts) from last_error

    # ── Command loop ─────────────────────────────────────────────────────

    def run(self) -> None:
        """Issue commands until TTL expiry or cancellation.

        Returns normally on either; raises ``SessionError`` (after releasing
        the connection) when a session cannot be opened or used.
        """
        if self.connection is None:
            raise NotConnectedError(f"{self.agent_id} has no live connection")

        try:
            if self.config.interactive:
                self._run_interactive()
            else:
                self._run_standard()
        except SessionError:
            self.close()
            raise

    def _run_standard(self) -> None:
        self.command_index = 0
        while not self._should_stop():
            command = self.config.script.command_at(self.command_index)
            output = self._execute(command)
            self._emit(
                "info",
                "command_output",
                index=self.command_index,
                command=command,
                output=output.decode("utf-8", errors="replace"),
            )
            if self._pause():
                return
            self.command_index += 1

    def _execute(self, command: str) -> bytes:
        """Run *command* on a fresh session that lives for this command only."""
        with self._session_step("open_session"):
            session = self._require_connection().open_session()
        try:
            self._emit("debug", "running", command=command)
            with self._session_step("exec"):
                return session.run_and_capture(command)
        finally:
            session.close()

    def _run_interactive(self) -> None:
        with self._session_step("open_session"):
            session = self._require_connection().open_session()
        try:
            with self._session_step("request_pty"):
                session.request_terminal(PTY_TERM, PTY_WIDTH, PTY_HEIGHT)
            with OutputDrain(session, name=self.agent_id):
                with self._session_step("start_shell"):
                    session.start_shell()

                self._emit("debug", "shell_warmup", seconds=SHELL_WARMUP_SECS)
                if self._cancel.wait(timeout=SHELL_WARMUP_SECS):
                    self._stopped("cancelled")
                    return

                self._shell_loop(session)
        finally:
            session.close()

    def _shell_loop(self, session: SSHSession) -> None:
        self.command_index = 0
        while not self._should_stop():
            command = self.config.script.command_at(self.command_index)
            self._emit("debug", "writing", index=self.command_index, command=command)
            with self._session_step("write"):
                session.write((command + "\r").encode("utf-8"))
            if self._pause():
                return
            self.command_index += 1

    def _should_stop(self) -> bool:
        """Top-of-cycle check: cancellation first, then TTL."""
        if self._cancel.is_set():
            self._stopped("cancelled")
            return True
        elapsed = self._clock() - (self.connection_start or 0.0)
        if elapsed >= self.config.ttl:
            self._stopped("ttl", ttl=self.config.ttl, elapsed=round(elapsed, 3))
            return True
        return False

    def _pause(self) -> bool:
        """Sleep one cadence interval; True if the run was cancelled meanwhile."""
        interval = self.config.command_interval
        self._emit("debug", "sleeping", seconds=interval)
        if self._cancel.wait(timeout=interval):
            self._stopped("cancelled")
            return True
        return False

    def _stopped(self, reason: str, **kw: Any) -> None:
        self.stop_reason = reason
        self._emit("info", "ttl_reached" if reason == "ttl" else "cancelled", **kw)

    def _require_connection(self) -> SSHConnection:
        if self.connection is None:
            raise NotConnectedError(f"{self.agent_id} has no live connection")
        return self.connection

    @contextmanager
    def _session_step(self, action: str) -> Iterator[None]:
        """Turn transport failures during *action* into ``SessionError``."""
        try:
            yield
        except SessionError as exc:
            self._emit("error", "session_failed", action=action, error=str(exc))
            raise
        except TRANSPORT_ERRORS as exc:
            self._emit("error", "session_failed", action=action, error=str(exc))
            raise SessionError(f"{action} failed: {exc}") from exc

    # ── Close ────────────────────────────────────────────────────────────

    def close(self) -> None:
        """Release the connection. Safe to call any number of times."""
        connection, self.connection = self.connection, None
        if connection is None:
            return
        self._emit("debug", "closing_connection")
        try:
            connection.close()
        except TRANSPORT_ERRORS as exc:
            self._emit("warning", "close_failed", error=str(exc))
