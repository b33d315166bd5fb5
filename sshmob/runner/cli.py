"""CLI entrypoint for the SSH load generator.

Flow:
  1. Parse flags, load .env, prompt for any missing host / user / password
  2. Parse the command script (file path or inline text)
  3. Launch ``--count`` agents in parallel, each on its own connection
  4. First Ctrl+C: graceful shutdown; second Ctrl+C: immediate exit
"""

from __future__ import annotations

import argparse
import getpass
import os
import textwrap
from pathlib import Path

import structlog

from sshmob.common.console import banner, fail, info, ok, warn
from sshmob.common.constants import (
    DEFAULT_CONNECT_TIMEOUT,
    DEFAULT_COUNT,
    DEFAULT_HOST,
    DEFAULT_MAX_RETRIES,
    DEFAULT_PORT,
    DEFAULT_RATE,
    DEFAULT_TTL_SECS,
    DEFAULT_USERNAME,
    ENV_HOST,
    ENV_PASSWORD,
    ENV_USERNAME,
)
from sshmob.common.logging import configure_structlog, parse_level
from sshmob.runner.orchestrator import Orchestrator, RunConfig
from sshmob.runner.script import CommandScript, load_script
from sshmob.runner.shutdown import ShutdownController


def _load_dotenv(env_path: Path | None = None) -> None:
    """Load variables from .env file into os.environ (no overwrite)."""
    env_path = env_path or Path.cwd() / ".env"
    if not env_path.is_file():
        return
    info(f"Loading environment from {env_path}")
    with open(env_path) as f:
        for line in f:
            line = line.strip()
            if not line or line.startswith("#") or "=" not in line:
                continue
            key, _, value = line.partition("=")
            key = key.strip()
            value = value.strip().strip("\"'")
            os.environ.setdefault(key, value)


def _positive_int(value: str) -> int:
    number = int(value)
    if number < 1:
        raise argparse.ArgumentTypeError(f"must be at least 1, got {number}")
    return number


def _non_negative_int(value: str) -> int:
    number = int(value)
    if number < 0:
        raise argparse.ArgumentTypeError(f"must be non-negative, got {number}")
    return number


def _positive_float(value: str) -> float:
    number = float(value)
    if number <= 0:
        raise argparse.ArgumentTypeError(f"must be positive, got {number}")
    return number


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="sshmob",
        description="SSH Mob: open many SSH sessions and keep them busy.",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog=textwrap.dedent("""\
            examples:
              sshmob --host 10.0.0.5 -u bench --count 50 --ttl 300
              sshmob --host 10.0.0.5 --script 'uptime;whoami' --rate 12
              sshmob --host 10.0.0.5 --tty --script commands.txt --random-max 30
        """),
    )
    parser.add_argument("--host", default=None,
                        help=f"Host to connect to. Default: ${ENV_HOST} or {DEFAULT_HOST}")
    parser.add_argument("--port", type=int, default=DEFAULT_PORT,
                        help=f"Port to connect to. Default: {DEFAULT_PORT}")
    parser.add_argument("-u", "--username", default=None,
                        help=f"Username to connect with. Default: ${ENV_USERNAME} or {DEFAULT_USERNAME}")
    parser.add_argument("-p", "--password", default=None,
                        help=f"Password to connect with. Default: ${ENV_PASSWORD}, else prompted")
    parser.add_argument("--count", type=_positive_int, default=DEFAULT_COUNT,
                        help=f"Number of connections to make. Default: {DEFAULT_COUNT}")
    parser.add_argument("--ttl", type=_non_negative_int, default=DEFAULT_TTL_SECS,
                        help=f"Seconds each connection stays alive. Default: {DEFAULT_TTL_SECS}")
    parser.add_argument("--random-max", type=_non_negative_int, default=0,
                        help="Maximum random delay in seconds before connecting. Default: 0")
    parser.add_argument("--rate", type=_positive_int, default=DEFAULT_RATE,
                        help=f"Commands per minute per connection. Default: {DEFAULT_RATE}")
    parser.add_argument("--tty", action="store_true", default=False,
                        help="Drive one interactive shell per connection instead of one exec per command")
    parser.add_argument("--log-level", default="info",
                        choices=["debug", "info", "warn", "error", "fatal"],
                        help="Log level. Default: info")
    parser.add_argument("--script", default="",
                        help="Commands to run: a file path, or inline text split on newlines (or ';')")
    parser.add_argument("--max-retries", type=_non_negative_int, default=DEFAULT_MAX_RETRIES,
                        help=f"Extra connection attempts after the first. Default: {DEFAULT_MAX_RETRIES}")
    parser.add_argument("--connect-timeout", type=_positive_float, default=DEFAULT_CONNECT_TIMEOUT,
                        help=f"Seconds allowed for TCP connect and SSH handshake. Default: {DEFAULT_CONNECT_TIMEOUT:g}")
    parser.add_argument("--log-dir", type=Path, default=None,
                        help="Write one JSON-lines log per agent into this directory")
    return parser


def _prompt_missing(args: argparse.Namespace) -> None:
    """Fill host / username / password from the environment or by asking."""
    if args.host is None:
        args.host = os.environ.get(ENV_HOST, DEFAULT_HOST).strip()
    if args.username is None:
        args.username = os.environ.get(ENV_USERNAME, DEFAULT_USERNAME).strip()
    if args.password is None:
        args.password = os.environ.get(ENV_PASSWORD, "")

    if not args.host:
        args.host = input("Please enter the host to connect to: ").strip()
        if not args.host:
            fail("Host cannot be empty.")
    if not args.username:
        args.username = input("Please enter the username to connect with: ").strip()
        if not args.username:
            fail("Username cannot be empty.")
    if not args.password:
        args.password = getpass.getpass("Please enter the password for the SSH connection: ")
        if not args.password:
            fail("Password cannot be empty.")


def _read_script(source: str) -> CommandScript:
    try:
        return load_script(source)
    except OSError as exc:
        fail(f"Failed to read script file: {exc}")
    return CommandScript()  # unreachable, fail() exits


def main(argv: list[str] | None = None) -> None:
    parser = build_parser()
    args = parser.parse_args(argv)

    _load_dotenv()
    _prompt_missing(args)

    configure_structlog(parse_level(args.log_level))
    log = structlog.get_logger("cli")

    script = _read_script(args.script)

    run_config = RunConfig(
        host=args.host,
        port=args.port,
        username=args.username,
        password=args.password,
        count=args.count,
        ttl=args.ttl,
        random_max=args.random_max,
        rate=args.rate,
        interactive=args.tty,
        max_retries=args.max_retries,
        script=script,
        connect_timeout=args.connect_timeout,
    )

    # ── Banner ───────────────────────────────────────────────────────────
    banner("SSH Mob")
    info(f"Target:      {run_config.username}@{run_config.host}:{run_config.port}")
    info(f"Connections: {run_config.count}  (ttl={run_config.ttl}s, rate={run_config.rate}/min)")
    info(f"Mode:        {'interactive shell' if run_config.interactive else 'exec per command'}")
    if len(script):
        info(f"Script:      {len(script)} command(s)")
    if args.log_dir is not None:
        info(f"Agent logs:  {args.log_dir}")
    print()

    log.info(
        "starting",
        host=run_config.host,
        port=run_config.port,
        username=run_config.username,
        count=run_config.count,
        ttl=run_config.ttl,
    )

    with ShutdownController() as shutdown:
        agents = Orchestrator(run_config, shutdown.token, log_dir=args.log_dir).run()

    failed = [a.agent_id for a in agents if a.status == "failed"]
    if failed:
        warn(f"{len(failed)} connection(s) ended with an error; see the log above.")
    ok("All connections closed.")
