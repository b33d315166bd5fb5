"""Command scripts: loading and positional lookup."""

from __future__ import annotations

import os
from dataclasses import dataclass
from pathlib import Path

from sshmob.common.constants import DEFAULT_COMMAND


@dataclass(frozen=True)
class CommandScript:
    """Ordered commands an agent walks through, one per cycle.

    An empty script means "no script": every position yields the default
    command. Past the end of a real script every position yields ``""``,
    so an agent keeps its cadence until its TTL runs out.
    """

    commands: tuple[str, ...] = ()

    def __len__(self) -> int:
        return len(self.commands)

    def command_at(self, index: int) -> str:
        if not self.commands:
            return DEFAULT_COMMAND
        if index >= len(self.commands):
            return ""
        return self.commands[index]


def split_script(text: str) -> list[str]:
    """Split on newlines, or on ``;`` when the text is a single line."""
    lines = text.split("\n")
    if len(lines) == 1:
        lines = text.split(";")
    return lines


def load_script(source: str) -> CommandScript:
    """Build a script from a file path or from literal text.

    Raises ``OSError`` when *source* names an existing path that cannot be read.
    """
    if not source:
        return CommandScript()
    if os.path.exists(source):
        text = Path(source).read_text()
    else:
        text = source
    return CommandScript(tuple(split_script(text)))
