"""Root CLI group, version flag and global options."""

from __future__ import annotations

import logging
import signal
import sys
from pathlib import Path

import click

from agentinterop import __version__
from agentinterop.commands.agents import agents
from agentinterop.commands.chat import chat
from agentinterop.commands.common import CliContext
from agentinterop.constants import DEFAULT_REPLY_TIMEOUT

# Ensure SIGPIPE doesn't silently kill the process when stdout is piped
# into something that exits early (e.g. ``| head``).
if hasattr(signal, "SIGPIPE"):
    signal.signal(signal.SIGPIPE, signal.SIG_IGN)


@click.group()
@click.version_option(version=__version__, prog_name="agentinterop")
@click.option(
    "-c",
    "--config",
    "config_file",
    type=click.Path(dir_okay=False),
    default=None,
    help="Path to agentinterop.yaml (default: ./agentinterop.yaml if present).",
)
@click.option(
    "--timeout",
    type=float,
    default=DEFAULT_REPLY_TIMEOUT,
    show_default=True,
    help="Seconds to wait for each reply from an agent.",
)
@click.option("-v", "--verbose", is_flag=True, help="Debug logging on stderr.")
@click.pass_context
def cli(
    ctx: click.Context,
    config_file: str | None,
    timeout: float,
    verbose: bool,
) -> None:
    """agentinterop: talk to local agents over a framed stdio protocol."""
    logging.basicConfig(
        stream=sys.stderr,
        level=logging.DEBUG if verbose else logging.WARNING,
        format="%(asctime)s %(name)s %(levelname)s %(message)s",
    )
    ctx.obj = CliContext(
        config_file=Path(config_file) if config_file else None,
        timeout=timeout,
    )


cli.add_command(agents)
cli.add_command(chat)
