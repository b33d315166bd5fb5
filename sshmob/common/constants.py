"""Shared constants for SSH Mob."""

# ── CLI defaults ─────────────────────────────────────────────────────────────
DEFAULT_HOST = "localhost"
DEFAULT_PORT = 22
DEFAULT_USERNAME = "sshmob"
DEFAULT_COUNT = 1
DEFAULT_TTL_SECS = 60
DEFAULT_RATE = 6                # commands per minute
DEFAULT_MAX_RETRIES = 3
DEFAULT_CONNECT_TIMEOUT = 10.0  # seconds, handed to paramiko

# Environment overrides for the identity options (also read from .env)
ENV_HOST = "SSHMOB_HOST"
ENV_USERNAME = "SSHMOB_USER"
ENV_PASSWORD = "SSHMOB_PASSWORD"

# ── Agent behaviour ──────────────────────────────────────────────────────────
DEFAULT_COMMAND = "echo 'Hello, world!'"
BACKOFF_CAP_SECS = 16.0
SHELL_WARMUP_SECS = 10.0

# Interactive terminal geometry
PTY_TERM = "xterm-256color"
PTY_WIDTH = 100
PTY_HEIGHT = 30

# Bytes per recv() while draining an interactive shell
DRAIN_CHUNK = 4096

# Exit status used when a second interrupt forces termination
FORCED_EXIT_CODE = 1
