"""Background draining of an interactive shell's output streams."""

from __future__ import annotations

import threading
from typing import Callable

import structlog

from sshmob.common.constants import DRAIN_CHUNK
from sshmob.runner.transport import TRANSPORT_ERRORS, SSHSession


class OutputDrain:
    """Context manager that reads and discards a session's stdout and stderr.

    The remote side blocks once its output window fills up, so both streams
    must be consumed for as long as the shell is open. Leaving the block
    closes the session, which ends both readers, and joins them.

    Usage::

        with OutputDrain(session, name="agent-001"):
            session.start_shell()
            # ... write commands ...
    """

    def __init__(
        self,
        session: SSHSession,
        *,
        name: str = "drain",
        join_timeout: float = 5.0,
    ) -> None:
        self._session = session
        self._name = name
        self._join_timeout = join_timeout
        self._threads: list[threading.Thread] = []
        self._log = structlog.get_logger("drain")

    @property
    def threads(self) -> list[threading.Thread]:
        return list(self._threads)

    def __enter__(self) -> OutputDrain:
        for stream, reader in (
            ("stdout", self._session.read_stdout),
            ("stderr", self._session.read_stderr),
        ):
            thread = threading.Thread(
                target=self._drain_loop,
                args=(stream, reader),
                name=f"{self._name}-{stream}",
                daemon=True,
            )
            thread.start()
            self._threads.append(thread)
        return self

    def __exit__(self, exc_type, exc_val, exc_tb) -> None:  # noqa: ANN001
        self._session.close()
        for thread in self._threads:
            thread.join(timeout=self._join_timeout)

    def _drain_loop(self, stream: str, reader: Callable[[int], bytes]) -> None:
        """Read until EOF; the bytes themselves are thrown away."""
        while True:
            try:
                chunk = reader(DRAIN_CHUNK)
            except TRANSPORT_ERRORS as exc:
                self._log.debug("drain_stopped", name=self._name, stream=stream, error=str(exc))
                return
            if not chunk:
                return
