"""Two-stage interrupt handling: graceful first, forced second."""

from __future__ import annotations

import enum
import os
import signal
import sys
import threading
from typing import Callable

import structlog

from sshmob.common.console import warn
from sshmob.common.constants import FORCED_EXIT_CODE


class ShutdownState(enum.Enum):
    RUNNING = "running"
    GRACE_PERIOD = "grace_period"
    FORCED_EXIT = "forced_exit"


class ShutdownController:
    """Owns the run's cancellation token and the interrupt state machine.

    RUNNING -> GRACE_PERIOD on the first interrupt (token set, agents wind
    down at their next wait). GRACE_PERIOD -> FORCED_EXIT on the second
    interrupt: the process ends at once, skipping all cleanup.

    Usage::

        with ShutdownController() as shutdown:
            Orchestrator(run_config, shutdown.token).run()
    """

    def __init__(
        self,
        *,
        signals: tuple[signal.Signals, ...] = (signal.SIGINT, signal.SIGTERM),
        exit_code: int = FORCED_EXIT_CODE,
        exit_fn: Callable[[int], object] = os._exit,
    ) -> None:
        self.token = threading.Event()
        self.state = ShutdownState.RUNNING
        self._signals = signals
        self._exit_code = exit_code
        self._exit_fn = exit_fn
        self._previous: dict[signal.Signals, object] = {}
        self._log = structlog.get_logger("shutdown")

    def __enter__(self) -> ShutdownController:
        for sig in self._signals:
            self._previous[sig] = signal.signal(sig, self.handle_interrupt)
        return self

    def __exit__(self, exc_type, exc_val, exc_tb) -> None:  # noqa: ANN001
        for sig, handler in self._previous.items():
            signal.signal(sig, handler)
        self._previous.clear()

    def handle_interrupt(self, signum: int | None = None, frame: object = None) -> None:
        """Signal handler; also callable directly."""
        if self.state is ShutdownState.RUNNING:
            self.state = ShutdownState.GRACE_PERIOD
            self.token.set()
            print()
            warn("Shutting down gracefully... press Ctrl+C again to force exit.")
            self._log.info("shutdown_requested", signal=signum)
        elif self.state is ShutdownState.GRACE_PERIOD:
            self.state = ShutdownState.FORCED_EXIT
            warn("Forcing exit.")
            sys.stdout.flush()
            sys.stderr.flush()
            self._exit_fn(self._exit_code)
