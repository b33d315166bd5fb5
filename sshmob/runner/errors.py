"""Agent-local error taxonomy."""

from __future__ import annotations


class MobError(Exception):
    """Base class for every error an agent can raise."""


class CancelledError(MobError):
    """The run's cancellation token was observed mid-wait or mid-retry.

    Not a failure: the lifecycle runner treats it as a graceful stop.
    """


class ConnectFailedError(MobError):
    """Every dial attempt failed; ``__cause__`` holds the last dial error."""

    def __init__(self, address: str, attempts: int) -> None:
        super().__init__(f"could not connect to {address} after {attempts} attempt(s)")
        self.address = address
        self.attempts = attempts


class NotConnectedError(MobError):
    """The command loop was started without a live connection."""


class SessionError(MobError):
    """Opening, configuring or using an SSH session failed."""


class CommandExitError(SessionError):
    """A remote command finished with a non-zero exit status."""

    def __init__(self, command: str, exit_status: int, output: bytes = b"") -> None:
        super().__init__(f"{command!r} exited with status {exit_status}")
        self.command = command
        self.exit_status = exit_status
        self.output = output
