"""agentinterop chat: interactive conversation with one agent."""

from __future__ import annotations

import asyncio
import sys

import click

from agentinterop.client.driver import AgentClient, ReplyTimeoutError
from agentinterop.commands.common import (
    CliContext,
    connect,
    fail,
    pass_cli_context,
    run_async,
)
from agentinterop.config import AgentSpec, ConfigError, require_skill, resolve_agent
from agentinterop.constants import CHAT_SKILL
from agentinterop.runtime.helpers import random_id
from agentinterop.storage import (
    JsonRecordStore,
    PersistedChat,
    RecordNotFoundError,
    chat_store,
)

HELP_TEXT = """\
Commands:
  /help         Show this help
  /list         List saved chats
  /new          Start a new chat
  /chat <id>    Switch to a saved chat
  /delete <id>  Delete a saved chat
  /exit         Leave"""


@click.command()
@click.option("--agent", "agent_id", default=None, help="Agent id (default: mock-agent).")
@click.option("--chat", "chat_id", default=None, help="Resume a saved chat.")
@pass_cli_context
def chat(ctx: CliContext, agent_id: str | None, chat_id: str | None) -> None:
    """Chat with an agent; history is saved after every turn."""
    if not sys.stdin.isatty():
        fail("chat needs an interactive terminal (stdin is not a TTY)")
    try:
        agent = resolve_agent(agent_id, ctx.config())
        require_skill(agent, CHAT_SKILL)
    except ConfigError as exc:
        fail(str(exc))

    store = chat_store()
    if chat_id is not None:
        try:
            store.read(chat_id)
        except (RecordNotFoundError, ValueError) as exc:
            fail(f"Unknown chat: {chat_id} ({exc})")

    run_async(_chat_session(agent, store, chat_id, ctx.timeout))


class ChatSession:
    """State of one REPL: the live agent, the current chat and the store."""

    def __init__(
        self,
        client: AgentClient,
        store: JsonRecordStore[PersistedChat],
    ) -> None:
        self.client = client
        self.store = store
        self.current: PersistedChat | None = None
        # Chats whose history the live agent already holds.
        self._synced: set[str] = set()

    async def new(self) -> PersistedChat:
        chat_id = random_id("chat")
        await self.client.start_session(chat_id)
        self._synced.add(chat_id)
        self.current = PersistedChat(chat_id=chat_id)
        self.store.write(chat_id, self.current)
        return self.current

    async def switch(self, chat_id: str) -> PersistedChat:
        record = self.store.read(chat_id)
        if chat_id not in self._synced:
            await self.client.start_session(chat_id)
            await self.client.replay(chat_id, record.history)
            self._synced.add(chat_id)
        self.current = record
        return record

    async def send(self, content: str) -> None:
        current = self.current or await self.new()
        printed: list[str] = []

        def _on_delta(delta: str) -> None:
            click.echo(delta, nl=False)
            printed.append(delta)

        turn = await self.client.send_prompt(
            current.chat_id, content, on_delta=_on_delta
        )
        if not printed:
            click.echo(turn.message.content, nl=False)
        click.echo()
        current.history = turn.history
        self.store.write(current.chat_id, current)

    def delete(self, chat_id: str) -> bool:
        """Delete a saved chat; returns True when it was the current one."""
        self.store.delete(chat_id)
        self._synced.discard(chat_id)
        if self.current is not None and self.current.chat_id == chat_id:
            self.current = None
            return True
        return False


async def _chat_session(
    agent: AgentSpec,
    store: JsonRecordStore[PersistedChat],
    chat_id: str | None,
    timeout: float,
) -> None:
    async with connect(agent, timeout) as client:
        repl = ChatSession(client, store)
        if chat_id is not None:
            record = await repl.switch(chat_id)
            click.echo(f"Resumed {chat_id} ({len(record.history)} messages)")
        else:
            record = await repl.new()
            click.echo(f"New chat {record.chat_id}")
        click.echo("Type /help for commands.")
        await _repl_loop(repl)


async def _repl_loop(repl: ChatSession) -> None:
    loop = asyncio.get_running_loop()
    while True:
        try:
            line = await loop.run_in_executor(None, _read_input)
        except EOFError:
            click.echo()
            return

        line = line.strip()
        if not line:
            continue

        if line.startswith("/"):
            try:
                if await _handle_command(line, repl):
                    return
            except (RecordNotFoundError, ReplyTimeoutError, ValueError) as exc:
                click.echo(f"Error: {exc}")
            continue

        try:
            await repl.send(line)
        except ReplyTimeoutError as exc:
            click.echo(f"Error: {exc}")


async def _handle_command(line: str, repl: ChatSession) -> bool:
    """Process a slash command. Returns ``True`` if the REPL should exit."""
    parts = line.split()
    cmd = parts[0].lower()
    arg = parts[1] if len(parts) > 1 else None

    if cmd == "/exit":
        return True

    if cmd == "/help":
        click.echo(HELP_TEXT)
        return False

    if cmd == "/list":
        refs = repl.store.list()
        if not refs:
            click.echo("No saved chats.")
        current = repl.current.chat_id if repl.current is not None else None
        for ref in refs:
            marker = "*" if ref.record_id == current else " "
            click.echo(f" {marker} {ref.record_id}")
        return False

    if cmd == "/new":
        record = await repl.new()
        click.echo(f"New chat {record.chat_id}")
        return False

    if cmd in {"/chat", "/delete"} and arg is None:
        click.echo(f"Usage: {cmd} <id>")
        return False

    if cmd == "/chat":
        record = await repl.switch(arg)
        click.echo(f"Switched to {arg} ({len(record.history)} messages)")
        return False

    if cmd == "/delete":
        was_current = repl.delete(arg)
        click.echo(f"Deleted {arg}")
        if was_current:
            record = await repl.new()
            click.echo(f"New chat {record.chat_id}")
        return False

    click.echo(f"Unknown command: {cmd}")
    return False


def _read_input() -> str:
    r"""Blocking stdin reader for use with ``run_in_executor``.

    Lines ending with ``\`` continue on the next line.
    """
    lines: list[str] = []
    prompt = "> "

    while True:
        sys.stdout.write(prompt)
        sys.stdout.flush()

        line = sys.stdin.readline()
        if not line:
            raise EOFError
        line = line.rstrip("\n")

        if line.endswith("\\"):
            lines.append(line[:-1])
            prompt = "... "
        else:
            lines.append(line)
            return "\n".join(lines)
