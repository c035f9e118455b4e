"""Entry point for the mock agent: ``python -m agentinterop.agent``."""

from __future__ import annotations

import asyncio
import logging
import os
import sys

import click

from agentinterop.agent.config import MockAgentConfig
from agentinterop.agent.runtime import MockAgentRuntime
from agentinterop.protocol.transport import open_stdio_transport


@click.command(context_settings={"help_option_names": ["-h", "--help"]})
@click.option("--chunks", default=None, help="Chunks per streamed response.")
@click.option("--streaming", default=None, help="Stream deltas: 'on' or 'off'.")
@click.option(
    "--emitToolCalls",
    "emit_tool_calls",
    is_flag=True,
    help="Emit a tool/call notification before each streamed reply.",
)
@click.option("-v", "--verbose", is_flag=True, help="Debug logging on stderr.")
def main(
    chunks: str | None,
    streaming: str | None,
    emit_tool_calls: bool,
    verbose: bool,
) -> None:
    """Deterministic stdio agent speaking the length-prefixed JSON protocol."""
    # stdout carries frames, so diagnostics must go to stderr.
    logging.basicConfig(
        stream=sys.stderr,
        level=logging.DEBUG if verbose else logging.WARNING,
        format="%(asctime)s %(name)s %(levelname)s %(message)s",
    )
    config = MockAgentConfig.from_options(
        chunks=chunks,
        streaming=streaming,
        emit_tool_calls=emit_tool_calls,
        environ=os.environ,
    )
    asyncio.run(serve(config))


async def serve(config: MockAgentConfig) -> None:
    """Serve the protocol on this process's stdio until stdin closes."""
    transport = await open_stdio_transport()
    try:
        await MockAgentRuntime(transport, config).run()
    finally:
        await transport.aclose()


if __name__ == "__main__":
    main()
