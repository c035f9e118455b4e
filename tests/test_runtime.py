"""Tests for the mock agent runtime: dispatch, ordering and cancellation."""

from __future__ import annotations

import asyncio
import contextlib
import os
import sys
from typing import Any

from agentinterop.agent.config import MockAgentConfig
from agentinterop.agent.runtime import MockAgentRuntime
from agentinterop.client.driver import AgentClient, collect_task_text
from agentinterop.protocol.messages import (
    ChatMessage,
    TaskCancelledEvent,
    TaskCompletedEvent,
    TaskStartedEvent,
)
from agentinterop.runtime.supervisor import spawn_local_agent

# ------------------------------------------------------------------ #
# Helpers
# ------------------------------------------------------------------ #


async def _collect_until(
    client: AgentClient, last_type: str, limit: int = 50
) -> list[dict[str, Any]]:
    """Read raw messages until one of *last_type* arrives."""
    received: list[dict[str, Any]] = []
    for _ in range(limit):
        raw = await asyncio.wait_for(client.transport.receive(), timeout=2.0)
        assert raw is not None, f"stream ended before {last_type}"
        received.append(raw)
        if raw["type"] == last_type:
            return received
    raise AssertionError(f"no {last_type} within {limit} messages")


class TestReady:
    async def test_ready_is_first(self, linked_transports) -> None:
        agent_side, client_side = linked_transports
        run = asyncio.create_task(MockAgentRuntime(agent_side).run())
        first = await asyncio.wait_for(client_side.receive(), timeout=2.0)
        assert first["type"] == "ready"
        assert first["version"] == 1
        assert isinstance(first["pid"], int)
        run.cancel()
        with contextlib.suppress(asyncio.CancelledError):
            await run

    async def test_run_ends_at_eof(self, linked_transports) -> None:
        agent_side, client_side = linked_transports
        run = asyncio.create_task(MockAgentRuntime(agent_side).run())
        await client_side.receive()
        await client_side.aclose()
        await asyncio.wait_for(run, timeout=2.0)


class TestSessions:
    async def test_streaming_chat_scenario(self, start_agent) -> None:
        client, _ = await start_agent(MockAgentConfig(chunks=3))
        session_id = await client.start_session("s1")
        assert session_id == "s1"

        deltas: list[str] = []
        turn = await client.send_prompt("s1", "hello", on_delta=deltas.append)
        assert len(deltas) == 3
        assert turn.text == "MockAgent response #1: hello"
        assert turn.message.content == turn.text
        assert len(turn.history) == 2

    async def test_two_turns_count_up(self, start_agent) -> None:
        client, _ = await start_agent()
        await client.start_session("s1")
        await client.send_prompt("s1", "a")
        turn = await client.send_prompt("s1", "b")
        assert turn.text == "MockAgent response #2: b"
        assert [m.content for m in turn.history][::2] == ["a", "b"]

    async def test_non_streaming_only_completes(self, start_agent) -> None:
        client, _ = await start_agent(MockAgentConfig(streaming=False))
        await client.start_session("s1")
        deltas: list[str] = []
        turn = await client.send_prompt("s1", "hi", on_delta=deltas.append)
        assert deltas == []
        assert turn.text == ""
        assert turn.message.content == "MockAgent response #1: hi"

    async def test_tool_calls_reported(self, start_agent) -> None:
        client, _ = await start_agent(MockAgentConfig(emit_tool_calls=True))
        await client.start_session("s1")
        calls = []
        await client.send_prompt("s1", "hi", on_tool_call=calls.append)
        assert len(calls) == 1
        assert calls[0].args == {"turn": 1, "inputLength": 2}

    async def test_replay_rebuilds_turns(self, start_agent) -> None:
        client, runtime = await start_agent(MockAgentConfig(chunks=1))
        history = [
            ChatMessage(role="user", content="one"),
            ChatMessage(role="assistant", content="MockAgent response #1: one"),
        ]
        await client.start_session("s1")
        await client.replay("s1", history)
        turn = await client.send_prompt("s1", "two")
        assert turn.text == "MockAgent response #2: two"
        assert len(runtime.sessions.history("s1")) == 4


class TestTasks:
    async def test_task_run_scenario(self, start_agent) -> None:
        client, _ = await start_agent(MockAgentConfig(chunks=4))
        task = await client.create_task(prompt="do the thing")
        assert task.status == "created"

        events = [event async for event in client.subscribe_task(task.id)]
        assert isinstance(events[0], TaskStartedEvent)
        assert isinstance(events[-1], TaskCompletedEvent)
        assert collect_task_text(events) == "MockTask response #1: do the thing"
        assert (await client.get_task(task.id)).status == "completed"

    async def test_cancel_racing_subscribe(self, start_agent) -> None:
        client, runtime = await start_agent(MockAgentConfig(chunks=5))
        task = await client.create_task(task_id="t1", prompt="a fairly long prompt")

        # Queue both requests before the agent reads either.
        await client.transport.send({"type": "tasks/subscribe", "taskId": "t1"})
        await client.transport.send({"type": "tasks/cancel", "taskId": "t1"})

        received = await _collect_until(client, "task.cancelled")
        types = [m["type"] for m in received]
        assert types[0] == "task.started"
        assert "tasks/cancelResult" in types
        assert types.count("message.delta") <= 1
        assert "task.completed" not in types
        assert runtime.tasks.get(task.id).status == "cancelled"

    async def test_queued_cancel_waits_behind_earlier_requests(
        self, start_agent
    ) -> None:
        client, runtime = await start_agent(MockAgentConfig(chunks=3))
        await client.create_task(task_id="t1", prompt="first")

        await client.transport.send({"type": "tasks/subscribe", "taskId": "t1"})
        await client.transport.send(
            {"type": "tasks/create", "taskId": "t2", "prompt": "second"}
        )
        await client.transport.send({"type": "tasks/cancel", "taskId": "t2"})

        received = await _collect_until(client, "tasks/cancelResult")
        types = [m["type"] for m in received]
        assert "tasks/error" not in types
        assert types.index("task.completed") < types.index("tasks/created")
        assert types.index("tasks/created") < types.index("tasks/cancelResult")
        assert received[-1]["ok"] is True
        assert runtime.tasks.get("t1").status == "completed"
        assert runtime.tasks.get("t2").status == "cancelled"

    async def test_queued_cancel_after_subscribe_of_same_task(
        self, start_agent
    ) -> None:
        client, runtime = await start_agent(MockAgentConfig(chunks=3))
        await client.create_task(task_id="t1", prompt="first")
        await client.create_task(task_id="t2", prompt="second")

        await client.transport.send({"type": "tasks/subscribe", "taskId": "t1"})
        await client.transport.send({"type": "tasks/subscribe", "taskId": "t2"})
        await client.transport.send({"type": "tasks/cancel", "taskId": "t2"})

        received = await _collect_until(client, "task.cancelled")
        started = [m["taskId"] for m in received if m["type"] == "task.started"]
        assert started == ["t1", "t2"]
        assert runtime.tasks.get("t1").status == "completed"
        assert runtime.tasks.get("t2").status == "cancelled"

    async def test_cancel_then_subscribe(self, start_agent) -> None:
        client, _ = await start_agent()
        task = await client.create_task()
        assert await client.cancel_task(task.id) is True
        events = [event async for event in client.subscribe_task(task.id)]
        assert len(events) == 1
        assert isinstance(events[0], TaskCancelledEvent)

    async def test_pagination_scenario(self, start_agent) -> None:
        client, _ = await start_agent()
        for i in range(5):
            await client.create_task(task_id=f"t{i}")

        page, cursor = await client.list_tasks(limit=2)
        assert [t.id for t in page] == ["t0", "t1"]
        assert cursor == "2"

        ids = [task.id async for task in client.iter_tasks(limit=2)]
        assert ids == [f"t{i}" for i in range(5)]

    async def test_unknown_task_gets_error(self, start_agent) -> None:
        client, _ = await start_agent()
        await client.transport.send({"type": "tasks/get", "taskId": "ghost"})
        reply = await asyncio.wait_for(client.transport.receive(), timeout=2.0)
        assert reply == {
            "type": "tasks/error",
            "taskId": "ghost",
            "error": "Unknown task: ghost",
        }

    async def test_malformed_task_request_gets_error(self, start_agent) -> None:
        client, _ = await start_agent()
        await client.transport.send({"type": "tasks/get", "taskId": 5})
        reply = await asyncio.wait_for(client.transport.receive(), timeout=2.0)
        assert reply["type"] == "tasks/error"
        assert "tasks/get" in reply["error"]


class TestDispatch:
    async def test_unknown_and_malformed_messages_skipped(self, start_agent) -> None:
        client, _ = await start_agent()
        await client.transport.send({"type": "bogus/thing"})
        await client.transport.send({"nope": True})
        await client.transport.send({"type": "session/send", "content": ["x"]})
        await client.transport.send({"type": "session/start", "sessionId": "ok"})

        reply = await asyncio.wait_for(client.transport.receive(), timeout=2.0)
        assert reply == {"type": "session/started", "sessionId": "ok"}

    async def test_replies_in_request_order(self, start_agent) -> None:
        client, _ = await start_agent(MockAgentConfig(chunks=2))
        await client.transport.send({"type": "session/send", "sessionId": "a", "content": "x"})
        await client.transport.send({"type": "tasks/create", "taskId": "t"})

        received = await _collect_until(client, "tasks/created")
        types = [m["type"] for m in received]
        assert types == [
            "session/stream",
            "session/stream",
            "session/complete",
            "tasks/created",
        ]


class TestEndToEnd:
    async def test_child_process_task_and_chat(self) -> None:
        conn = await spawn_local_agent(
            sys.executable,
            ["-m", "agentinterop.agent", "--chunks=3", "--emitToolCalls"],
        )
        async with conn:
            client = AgentClient(conn.transport, timeout=10.0)
            await client.wait_ready()

            task = await client.create_task(prompt="ship it")
            events = [event async for event in client.subscribe_task(task.id)]
            assert collect_task_text(events) == "MockTask response #1: ship it"

            calls = []
            session_id = await client.start_session()
            turn = await client.send_prompt(session_id, "hey", on_tool_call=calls.append)
            assert turn.text == "MockAgent response #1: hey"
            assert len(calls) == 1

    async def test_streaming_off_via_env(self) -> None:
        env = {**os.environ, "AGENTINTEROP_STREAMING": "0"}
        conn = await spawn_local_agent(
            sys.executable, ["-m", "agentinterop.agent"], env=env
        )
        async with conn:
            client = AgentClient(conn.transport, timeout=10.0)
            await client.wait_ready()
            await client.start_session("s")
            turn = await client.send_prompt("s", "quiet")
            assert turn.text == ""
            assert turn.message.content == "MockAgent response #1: quiet"
