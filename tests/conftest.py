"""Shared fixtures: in-memory transports and an in-process mock agent."""

from __future__ import annotations

import asyncio
import contextlib
from collections.abc import AsyncIterator, Awaitable, Callable

import pytest

from agentinterop.agent.config import MockAgentConfig
from agentinterop.agent.runtime import MockAgentRuntime
from agentinterop.client.driver import AgentClient
from agentinterop.protocol.transport import StdioTransport


class MemoryWriter:
    """Sink that feeds bytes straight into a peer ``StreamReader``.

    ``drain()`` never suspends, so consecutive sends land in the peer's
    buffer back to back.
    """

    def __init__(self, peer: asyncio.StreamReader) -> None:
        self._peer = peer
        self.closed = False
        self.written = bytearray()

    def write(self, data: bytes) -> None:
        if self.closed:
            raise BrokenPipeError("pipe closed")
        self.written += data
        self._peer.feed_data(data)

    async def drain(self) -> None:
        return None

    def close(self) -> None:
        if not self.closed:
            self.closed = True
            self._peer.feed_eof()


@pytest.fixture
async def linked_transports() -> AsyncIterator[tuple[StdioTransport, StdioTransport]]:
    """Two transports wired back to back: (agent side, client side)."""
    to_agent = asyncio.StreamReader()
    to_client = asyncio.StreamReader()
    agent_side = StdioTransport(to_agent, MemoryWriter(to_client))
    client_side = StdioTransport(to_client, MemoryWriter(to_agent))
    yield agent_side, client_side
    await client_side.aclose()
    await agent_side.aclose()


StartAgent = Callable[..., Awaitable[tuple[AgentClient, MockAgentRuntime]]]


@pytest.fixture
async def start_agent(
    linked_transports: tuple[StdioTransport, StdioTransport],
) -> AsyncIterator[StartAgent]:
    """Factory running a ``MockAgentRuntime`` on the agent side of the pair."""
    runs: list[asyncio.Task[None]] = []

    async def _start(
        config: MockAgentConfig | None = None,
    ) -> tuple[AgentClient, MockAgentRuntime]:
        agent_side, client_side = linked_transports
        runtime = MockAgentRuntime(agent_side, config or MockAgentConfig())
        runs.append(asyncio.create_task(runtime.run()))
        client = AgentClient(client_side, timeout=2.0)
        await client.wait_ready()
        return client, runtime

    yield _start

    for run in runs:
        run.cancel()
        with contextlib.suppress(asyncio.CancelledError):
            await run
