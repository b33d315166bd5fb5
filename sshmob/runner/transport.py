"""Thin paramiko adapter: the only module that speaks SSH.

Agents see an :class:`SSHConnection` that opens :class:`SSHSession` objects;
everything else (handshake, auth, channel multiplexing) is paramiko's job.
"""

from __future__ import annotations

import paramiko

from sshmob.runner.errors import CommandExitError

# Failures raised by paramiko or the socket layer under it
TRANSPORT_ERRORS = (paramiko.SSHException, OSError, EOFError)


class SSHSession:
    """One SSH channel: either a single exec or a long-lived shell."""

    def __init__(self, channel: paramiko.Channel) -> None:
        self._channel = channel

    def run_and_capture(self, command: str) -> bytes:
        """Execute *command* and return stdout with stderr merged in."""
        self._channel.set_combine_stderr(True)
        self._channel.exec_command(command)
        with self._channel.makefile("rb") as stdout:
            output = stdout.read()
        status = self._channel.recv_exit_status()
        if status != 0:
            raise CommandExitError(command, status, output)
        return output

    def request_terminal(self, term: str, width: int, height: int) -> None:
        self._channel.get_pty(term=term, width=width, height=height)

    def start_shell(self) -> None:
        self._channel.invoke_shell()

    def write(self, data: bytes) -> None:
        self._channel.sendall(data)

    def read_stdout(self, size: int) -> bytes:
        return self._channel.recv(size)

    def read_stderr(self, size: int) -> bytes:
        return self._channel.recv_stderr(size)

    def close(self) -> None:
        self._channel.close()


class SSHConnection:
    """An authenticated client connection owned by a single agent."""

    def __init__(self, client: paramiko.SSHClient) -> None:
        self._client = client

    def open_session(self) -> SSHSession:
        transport = self._client.get_transport()
        if transport is None or not transport.is_active():
            raise paramiko.SSHException("SSH transport is not active")
        return SSHSession(transport.open_session())

    def close(self) -> None:
        self._client.close()


def dial(
    host: str,
    port: int,
    username: str,
    password: str,
    *,
    timeout: float | None = None,
) -> SSHConnection:
    """Connect and authenticate with a password.

    Host keys are accepted without verification: the target is a server
    under load test, not a trusted peer.
    """
    client = paramiko.SSHClient()
    client.set_missing_host_key_policy(paramiko.AutoAddPolicy())
    try:
        client.connect(
            host,
            port=port,
            username=username,
            password=password,
            timeout=timeout,
            banner_timeout=timeout,
            auth_timeout=timeout,
            allow_agent=False,
            look_for_keys=False,
        )
    except TRANSPORT_ERRORS:
        client.close()
        raise
    return SSHConnection(client)
