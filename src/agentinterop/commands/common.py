"""Plumbing shared by the CLI commands: catalogue lookup, spawning, exit codes."""

from __future__ import annotations

import asyncio
import contextlib
import logging
import os
from collections.abc import AsyncIterator, Coroutine
from dataclasses import dataclass
from pathlib import Path
from typing import Any, NoReturn, TypeVar

import click

from agentinterop.client.driver import (
    AgentClient,
    ReplyTimeoutError,
    TaskError,
    UnexpectedEndOfStream,
)
from agentinterop.config import AgentInteropConfig, AgentSpec, ConfigError, load_config
from agentinterop.constants import DEFAULT_REPLY_TIMEOUT
from agentinterop.protocol.framing import FrameError
from agentinterop.protocol.transport import TransportClosedError
from agentinterop.runtime.supervisor import AgentSpawnError, spawn_local_agent
from agentinterop.storage import RecordNotFoundError

logger = logging.getLogger(__name__)

_T = TypeVar("_T")

#: Exit status for a missing reply (timeout or the agent going away).
EXIT_NO_REPLY = 2


@dataclass
class CliContext:
    """Options from the root group, shared with every subcommand."""

    config_file: Path | None = None
    timeout: float = DEFAULT_REPLY_TIMEOUT
    _config: AgentInteropConfig | None = None

    def config(self) -> AgentInteropConfig:
        if self._config is None:
            self._config = load_config(self.config_file)
        return self._config


pass_cli_context = click.make_pass_decorator(CliContext, ensure=True)


def fail(message: str, code: int = 1) -> NoReturn:
    click.echo(f"Error: {message}", err=True)
    raise SystemExit(code)


def run_async(coro: Coroutine[Any, Any, _T]) -> _T:
    """Run *coro* and map runtime failures to ``Error: ...`` and an exit code."""
    try:
        return asyncio.run(coro)
    except (ReplyTimeoutError, UnexpectedEndOfStream) as exc:
        click.echo(f"Error: {exc}", err=True)
        raise SystemExit(EXIT_NO_REPLY) from exc
    except (
        AgentSpawnError,
        ConfigError,
        FrameError,
        RecordNotFoundError,
        TaskError,
        TransportClosedError,
    ) as exc:
        click.echo(f"Error: {exc}", err=True)
        raise SystemExit(1) from exc


@contextlib.asynccontextmanager
async def connect(agent: AgentSpec, timeout: float) -> AsyncIterator[AgentClient]:
    """Spawn *agent*, wait for its ``ready`` and yield a driver for it."""
    env = {**os.environ, **agent.env} if agent.env else None
    connection = await spawn_local_agent(agent.command, agent.args, env=env)
    async with connection:
        client = AgentClient(connection.transport, timeout=timeout)
        try:
            ready = await client.wait_ready()
        except UnexpectedEndOfStream as exc:
            preview = connection.stderr_preview()
            detail = f"\n  {preview}" if preview else ""
            msg = f"Agent '{agent.id}' exited before it was ready{detail}"
            raise UnexpectedEndOfStream(msg) from exc
        logger.debug("agent %s ready (pid %s)", agent.id, ready.pid)
        yield client
