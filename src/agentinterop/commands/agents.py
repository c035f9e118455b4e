"""agentinterop agents: inspect the catalogue and talk to agents."""

from __future__ import annotations

import json

import click

from agentinterop.client.driver import AgentClient, ChatTurn
from agentinterop.commands.common import (
    CliContext,
    connect,
    fail,
    pass_cli_context,
    run_async,
)
from agentinterop.config import (
    AgentSpec,
    ConfigError,
    list_agents,
    require_skill,
    resolve_agent,
)
from agentinterop.constants import CHAT_SKILL
from agentinterop.protocol.messages import (
    ChatMessage,
    MessageDeltaEvent,
    TaskCancelledEvent,
)
from agentinterop.runtime.helpers import random_id
from agentinterop.storage import PersistedSession, RecordNotFoundError, session_store


@click.group()
def agents() -> None:
    """List, describe and invoke agents."""


# ------------------------------------------------------------------ #
# Catalogue
# ------------------------------------------------------------------ #


@agents.command("list")
@click.option(
    "--json",
    "_as_json",
    is_flag=True,
    help="Accepted for compatibility; output is always JSON.",
)
@pass_cli_context
def list_command(ctx: CliContext, _as_json: bool) -> None:
    """List the agents that can be launched."""
    catalogue = _catalogue(ctx)
    click.echo(json.dumps([_describe(spec) for spec in catalogue], indent=2))


@agents.command("describe")
@click.argument("agent_id")
@click.option(
    "--json",
    "_as_json",
    is_flag=True,
    help="Accepted for compatibility; output is always JSON.",
)
@pass_cli_context
def describe_command(ctx: CliContext, agent_id: str, _as_json: bool) -> None:
    """Show one agent's launch command and skills."""
    agent = _resolve(ctx, agent_id)
    click.echo(json.dumps(_describe(agent), indent=2))


# ------------------------------------------------------------------ #
# One-shot invocation
# ------------------------------------------------------------------ #


@agents.command("invoke")
@click.option("--agent", "agent_id", default=None, help="Agent id (default: mock-agent).")
@click.option("--skill", required=True, help="Skill to invoke, e.g. 'chat'.")
@click.option("--prompt", required=True, help="Prompt text.")
@pass_cli_context
def invoke(ctx: CliContext, agent_id: str | None, skill: str, prompt: str) -> None:
    """Send one prompt and stream the reply to stdout."""
    agent = _resolve(ctx, agent_id, skill)
    run_async(_invoke(agent, prompt, ctx.timeout))


async def _invoke(agent: AgentSpec, prompt: str, timeout: float) -> None:
    async with connect(agent, timeout) as client:
        session_id = await client.start_session()
        await _stream_turn(client, session_id, prompt)


# ------------------------------------------------------------------ #
# Persistent sessions
# ------------------------------------------------------------------ #


@agents.group()
def session() -> None:
    """Multi-turn conversations kept across invocations."""


@session.command("open")
@click.option("--agent", "agent_id", default=None, help="Agent id (default: mock-agent).")
@click.option("--skill", default=CHAT_SKILL, show_default=True, help="Skill to use.")
@pass_cli_context
def session_open(ctx: CliContext, agent_id: str | None, skill: str) -> None:
    """Create a session and print its id."""
    agent = _resolve(ctx, agent_id, skill)
    session_id = random_id("session")
    session_store().write(
        session_id,
        PersistedSession(session_id=session_id, agent_id=agent.id, skill=skill),
    )
    click.echo(session_id)


@session.command("send")
@click.option("--session", "session_id", required=True, help="Session id.")
@click.option("--prompt", required=True, help="Prompt text.")
@pass_cli_context
def session_send(ctx: CliContext, session_id: str, prompt: str) -> None:
    """Send one turn; earlier turns are replayed to a fresh agent first."""
    store = session_store()
    try:
        record = store.read(session_id)
    except (RecordNotFoundError, ValueError) as exc:
        fail(f"Unknown session: {session_id} ({exc})")
    agent = _resolve(ctx, record.agent_id, record.skill)
    record.history = run_async(_send(agent, record, prompt, ctx.timeout))
    store.write(session_id, record)


async def _send(
    agent: AgentSpec,
    record: PersistedSession,
    prompt: str,
    timeout: float,
) -> list[ChatMessage]:
    async with connect(agent, timeout) as client:
        session_id = await client.start_session(record.session_id)
        await client.replay(session_id, record.history)
        turn = await _stream_turn(client, session_id, prompt)
    return turn.history


@session.command("close")
@click.option("--session", "session_id", required=True, help="Session id.")
def session_close(session_id: str) -> None:
    """Forget a session."""
    try:
        session_store().delete(session_id)
    except ValueError as exc:
        fail(str(exc))
    click.echo("ok")


# ------------------------------------------------------------------ #
# Tasks
# ------------------------------------------------------------------ #


@agents.command("task")
@click.option("--agent", "agent_id", default=None, help="Agent id (default: mock-agent).")
@click.option("--prompt", required=True, help="Task prompt.")
@click.option("--title", default=None, help="Task title.")
@pass_cli_context
def task(ctx: CliContext, agent_id: str | None, prompt: str, title: str | None) -> None:
    """Create a task and stream its output until it finishes."""
    agent = _resolve(ctx, agent_id)
    task_id = run_async(_run_task(agent, prompt, title, ctx.timeout))
    if task_id is not None:
        fail(f"Task {task_id} was cancelled")


async def _run_task(
    agent: AgentSpec,
    prompt: str,
    title: str | None,
    timeout: float,
) -> str | None:
    """Stream one task run; returns the task id when it was cancelled."""
    async with connect(agent, timeout) as client:
        ref = await client.create_task(agent_id=agent.id, title=title, prompt=prompt)
        text = ""
        async for event in client.subscribe_task(ref.id):
            if isinstance(event, MessageDeltaEvent):
                click.echo(event.delta, nl=False)
                text += event.delta
            elif isinstance(event, TaskCancelledEvent):
                _finish_line(text)
                return ref.id
        _finish_line(text)
    return None


# ------------------------------------------------------------------ #
# Helpers
# ------------------------------------------------------------------ #


def _catalogue(ctx: CliContext) -> list[AgentSpec]:
    try:
        return list_agents(ctx.config())
    except ConfigError as exc:
        fail(str(exc))


def _resolve(ctx: CliContext, agent_id: str | None, skill: str | None = None) -> AgentSpec:
    try:
        agent = resolve_agent(agent_id, ctx.config())
        if skill is not None:
            require_skill(agent, skill)
    except ConfigError as exc:
        fail(str(exc))
    return agent


def _describe(agent: AgentSpec) -> dict[str, object]:
    return agent.model_dump(mode="json")


async def _stream_turn(
    client: AgentClient, session_id: str, prompt: str
) -> ChatTurn:
    """Echo deltas as they arrive and make sure the output ends in a newline."""
    printed: list[str] = []

    def _on_delta(delta: str) -> None:
        click.echo(delta, nl=False)
        printed.append(delta)

    turn = await client.send_prompt(session_id, prompt, on_delta=_on_delta)
    text = "".join(printed)
    if not printed:
        # Streaming disabled: only the final message arrives.
        text = turn.message.content
        click.echo(text, nl=False)
    _finish_line(text)
    return turn


def _finish_line(text: str) -> None:
    if not text.endswith("\n"):
        click.echo()
