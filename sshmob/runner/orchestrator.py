"""Fan a run configuration out into agents and drive them concurrently."""

from __future__ import annotations

import random
import threading
from concurrent.futures import ThreadPoolExecutor, as_completed
from dataclasses import dataclass, field
from pathlib import Path

import structlog

from sshmob.common.constants import DEFAULT_CONNECT_TIMEOUT
from sshmob.common.logging import get_json_file_logger
from sshmob.runner.agent import Agent, AgentConfig, Dialer
from sshmob.runner.errors import (
    CancelledError,
    ConnectFailedError,
    NotConnectedError,
    SessionError,
)
from sshmob.runner.script import CommandScript
from sshmob.runner.transport import dial

log = structlog.get_logger("orchestrator")


@dataclass(frozen=True)
class RunConfig:
    """Options shared by every agent in one run."""

    host: str
    port: int
    username: str
    password: str = field(repr=False)
    count: int = 1
    ttl: float = 60.0
    random_max: int = 0          # upper bound (exclusive) of the per-agent delay
    rate: int = 6
    interactive: bool = False
    max_retries: int = 0
    script: CommandScript = field(default_factory=CommandScript)
    connect_timeout: float = DEFAULT_CONNECT_TIMEOUT

    def __post_init__(self) -> None:
        if self.count < 1:
            raise ValueError(f"count must be at least 1, got {self.count}")
        if self.random_max < 0:
            raise ValueError(f"random_max must be non-negative, got {self.random_max}")

    def agent_config(self, connect_delay: float = 0.0) -> AgentConfig:
        return AgentConfig(
            host=self.host,
            port=self.port,
            username=self.username,
            password=self.password,
            connect_delay=connect_delay,
            ttl=self.ttl,
            rate=self.rate,
            interactive=self.interactive,
            max_retries=self.max_retries,
            script=self.script,
            connect_timeout=self.connect_timeout,
        )


def run_agent(agent: Agent) -> Agent:
    """Take one agent through connect -> run -> close and record its status.

    Agent errors end only this agent; the connection is released on every path.
    """
    try:
        agent.status = "connecting"
        agent.connect()
        agent.status = "running"
        agent.run()
        agent.status = "cancelled" if agent.stop_reason == "cancelled" else "completed"
    except CancelledError as exc:
        agent.status = "cancelled"
        log.info("agent_cancelled", agent_id=agent.agent_id, reason=str(exc))
    except ConnectFailedError as exc:
        agent.status = "failed"
        log.error("agent_connect_failed", agent_id=agent.agent_id, error=str(exc),
                  cause=str(exc.__cause__))
    except (SessionError, NotConnectedError) as exc:
        agent.status = "failed"
        log.error("agent_failed", agent_id=agent.agent_id, error=str(exc))
    finally:
        agent.close()
    return agent


class Orchestrator:
    """Builds ``count`` agents from a :class:`RunConfig` and runs them in parallel.

    Usage::

        shutdown = ShutdownController()
        agents = Orchestrator(run_config, shutdown.token).run()
    """

    def __init__(
        self,
        run_config: RunConfig,
        cancel: threading.Event,
        *,
        dialer: Dialer = dial,
        rng: random.Random | None = None,
        log_dir: Path | None = None,
    ) -> None:
        self._run_config = run_config
        self._cancel = cancel
        self._dialer = dialer
        self._rng = rng or random.Random()
        self._log_dir = log_dir

    def build_agents(self) -> list[Agent]:
        agents: list[Agent] = []
        for i in range(1, self._run_config.count + 1):
            delay = 0
            if self._run_config.random_max > 0:
                delay = self._rng.randrange(self._run_config.random_max)

            agent_id = f"agent-{i:03d}"
            file_log = None
            if self._log_dir is not None:
                file_log = get_json_file_logger(self._log_dir / f"{agent_id}.jsonl")

            agents.append(Agent(
                agent_id,
                self._run_config.agent_config(connect_delay=delay),
                self._cancel,
                dialer=self._dialer,
                file_log=file_log,
            ))
        return agents

    def run(self) -> list[Agent]:
        """Run every agent to a terminal state and return them."""
        agents = self.build_agents()
        log.debug("agents_created", count=len(agents))

        with ThreadPoolExecutor(
            max_workers=len(agents), thread_name_prefix="agent",
        ) as pool:
            futures = {pool.submit(run_agent, agent): agent for agent in agents}
            for future in as_completed(futures):
                agent = futures[future]
                try:
                    future.result()
                except Exception as exc:
                    agent.status = "failed"
                    agent.close()
                    log.error("agent_crashed", agent_id=agent.agent_id, error=repr(exc))
                else:
                    log.debug("agent_finished", agent_id=agent.agent_id, status=agent.status)

        log.info("all_agents_finished", count=len(agents))
        return agents
