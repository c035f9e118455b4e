"""Process supervisor: spawn an agent with piped stdio and own its lifetime."""

from __future__ import annotations

import asyncio
import contextlib
import logging
from collections import deque
from collections.abc import Mapping, Sequence
from types import TracebackType

from agentinterop.protocol.transport import StdioTransport
from agentinterop.runtime.helpers import format_stderr_preview

logger = logging.getLogger(__name__)

#: Seconds to wait after SIGTERM before SIGKILL.
_SIGTERM_WAIT = 3.0

#: Seconds to wait for exit after SIGKILL.
_SIGKILL_WAIT = 5.0

#: Stderr lines kept for diagnostics.
_STDERR_TAIL_LINES = 80


class AgentSpawnError(Exception):
    """Raised when the agent process cannot be started."""


class LocalAgentConnection:
    """A running agent process plus the transport attached to its stdio.

    ``close()`` tears down in order: transport, SIGTERM if the child is
    still alive, bounded wait for exit, then SIGKILL.  It is idempotent and
    safe to call after the child already exited.
    """

    def __init__(
        self,
        process: asyncio.subprocess.Process,
        transport: StdioTransport,
        *,
        terminate_timeout: float = _SIGTERM_WAIT,
    ) -> None:
        self.process = process
        self.transport = transport
        self._terminate_timeout = terminate_timeout
        self._stderr_tail: deque[str] = deque(maxlen=_STDERR_TAIL_LINES)
        self._stderr_task: asyncio.Task[None] | None = None
        self._closed = False
        if process.stderr is not None:
            self._stderr_task = asyncio.create_task(self._drain_stderr())

    @property
    def pid(self) -> int:
        return self.process.pid

    @property
    def returncode(self) -> int | None:
        return self.process.returncode

    @property
    def stderr_tail(self) -> list[str]:
        """Most recent stderr lines written by the agent."""
        return list(self._stderr_tail)

    def stderr_preview(self, max_lines: int = 5) -> str:
        return format_stderr_preview("\n".join(self._stderr_tail), max_lines)

    async def close(self) -> int | None:
        """Shut the agent down and return its exit code."""
        if self._closed:
            return self.process.returncode
        self._closed = True

        self.transport.close()

        proc = self.process
        if proc.returncode is None:
            with contextlib.suppress(ProcessLookupError):
                proc.terminate()
            try:
                await asyncio.wait_for(proc.wait(), timeout=self._terminate_timeout)
            except TimeoutError:
                logger.warning(
                    "agent pid %s ignored SIGTERM, sending SIGKILL", proc.pid
                )
                with contextlib.suppress(ProcessLookupError):
                    proc.kill()
                with contextlib.suppress(TimeoutError):
                    await asyncio.wait_for(proc.wait(), timeout=_SIGKILL_WAIT)
        else:
            await proc.wait()

        if self._stderr_task is not None and not self._stderr_task.done():
            self._stderr_task.cancel()
            with contextlib.suppress(asyncio.CancelledError):
                await self._stderr_task

        logger.debug("agent pid %s exited with code %s", proc.pid, proc.returncode)
        return proc.returncode

    async def __aenter__(self) -> LocalAgentConnection:
        return self

    async def __aexit__(
        self,
        exc_type: type[BaseException] | None,
        exc: BaseException | None,
        tb: TracebackType | None,
    ) -> None:
        await self.close()

    async def _drain_stderr(self) -> None:
        stderr = self.process.stderr
        if stderr is None:
            return
        try:
            while True:
                line = await stderr.readline()
                if not line:
                    return
                text = line.decode("utf-8", errors="replace").rstrip()
                self._stderr_tail.append(text)
                logger.debug("agent stderr: %s", text)
        except (OSError, ValueError) as exc:
            logger.debug("stderr drain stopped: %s", exc)


async def spawn_local_agent(
    command: str,
    args: Sequence[str] = (),
    *,
    cwd: str | None = None,
    env: Mapping[str, str] | None = None,
    terminate_timeout: float = _SIGTERM_WAIT,
) -> LocalAgentConnection:
    """Launch *command* with piped stdio and attach a transport to it.

    The child's stdout is the transport's readable side and its stdin the
    writable side.  Stderr is kept for diagnostics only.
    """
    try:
        proc = await asyncio.create_subprocess_exec(
            command,
            *args,
            stdin=asyncio.subprocess.PIPE,
            stdout=asyncio.subprocess.PIPE,
            stderr=asyncio.subprocess.PIPE,
            cwd=cwd,
            env=dict(env) if env is not None else None,
        )
    except FileNotFoundError as exc:
        msg = (
            f"Command not found: {command}\n"
            f"Make sure '{command}' is installed and on your PATH."
        )
        raise AgentSpawnError(msg) from exc
    except OSError as exc:
        msg = f"Failed to spawn agent process: {exc}"
        raise AgentSpawnError(msg) from exc

    if proc.stdout is None or proc.stdin is None:
        msg = "Agent process was started without stdio pipes"
        raise AgentSpawnError(msg)

    logger.debug("spawned agent pid %s: %s %s", proc.pid, command, " ".join(args))
    transport = StdioTransport(proc.stdout, proc.stdin)
    return LocalAgentConnection(proc, transport, terminate_timeout=terminate_timeout)
