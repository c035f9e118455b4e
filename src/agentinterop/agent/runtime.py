"""Mock agent runtime, the receiving end of the transport in the child."""

from __future__ import annotations

import asyncio
import contextlib
import logging
import os
from collections import deque
from collections.abc import Awaitable, Callable
from typing import Any

from agentinterop.agent.config import MockAgentConfig
from agentinterop.agent.sessions import SessionEngine
from agentinterop.agent.tasks import TaskEngine, TaskNotFoundError
from agentinterop.constants import PROTOCOL_VERSION
from agentinterop.protocol.messages import (
    MessageDecodeError,
    ReadyMessage,
    SessionSendRequest,
    SessionStartedMessage,
    SessionStartRequest,
    TasksCancelRequest,
    TasksCancelResultMessage,
    TasksCreatedMessage,
    TasksCreateRequest,
    TasksErrorMessage,
    TasksGetRequest,
    TasksGetResultMessage,
    TasksListRequest,
    TasksListResultMessage,
    TasksSubscribeRequest,
    parse_client_message,
)
from agentinterop.protocol.transport import StdioTransport, TransportClosedError

logger = logging.getLogger(__name__)

Handler = Callable[[Any], Awaitable[None]]


class MockAgentRuntime:
    """Deterministic agent that serves the task and session protocols.

    Inbound messages are handled strictly one at a time in arrival order.
    While a task or chat turn streams, the engines await ``checkpoint()``
    between units; the checkpoint yields to the loop and answers any
    ``tasks/cancel`` already waiting in the inbox, so a cancel queued behind
    a subscribe takes effect before the stream finishes.
    """

    def __init__(
        self,
        transport: StdioTransport,
        config: MockAgentConfig | None = None,
    ) -> None:
        self._transport = transport
        self._config = config or MockAgentConfig()
        self.tasks = TaskEngine(
            chunks=self._config.chunks,
            provider_id=self._config.provider_id,
        )
        self.sessions = SessionEngine(
            chunks=self._config.chunks,
            streaming=self._config.streaming,
            emit_tool_calls=self._config.emit_tool_calls,
        )

        self._inbox: deque[dict[str, Any]] = deque()
        self._inbox_ready = asyncio.Event()
        self._source_ended = False

        self._handlers: dict[str, Handler] = {
            "session/start": self._on_session_start,
            "session/send": self._on_session_send,
            "tasks/create": self._on_tasks_create,
            "tasks/list": self._on_tasks_list,
            "tasks/get": self._on_tasks_get,
            "tasks/cancel": self._on_tasks_cancel,
            "tasks/subscribe": self._on_tasks_subscribe,
        }

    # ------------------------------------------------------------------ #
    # Main loop
    # ------------------------------------------------------------------ #

    async def run(self) -> None:
        """Announce readiness, then serve requests until the input ends."""
        reader_task = asyncio.create_task(self._fill_inbox())
        try:
            await self._emit(
                ReadyMessage(pid=os.getpid(), version=PROTOCOL_VERSION).to_wire()
            )
            while True:
                raw = await self._next_inbound()
                if raw is None:
                    break
                await self.handle(raw)
        except TransportClosedError as exc:
            logger.error("transport closed while serving: %s", exc)
        finally:
            reader_task.cancel()
            with contextlib.suppress(asyncio.CancelledError):
                await reader_task

    async def handle(self, raw: dict[str, Any]) -> None:
        """Validate and dispatch one decoded inbound message."""
        try:
            message = parse_client_message(raw)
        except MessageDecodeError as exc:
            await self._reject(raw, str(exc))
            return

        if message is None:
            logger.debug("skipping unrecognised message type %r", raw.get("type"))
            return

        handler = self._handlers[message.type]
        try:
            await handler(message)
        except TaskNotFoundError as exc:
            await self._emit(
                TasksErrorMessage(task_id=exc.task_id, error=str(exc)).to_wire()
            )

    async def checkpoint(self) -> None:
        """Yield once, then service cancellations at the head of the inbox.

        Only the leading run of ``tasks/cancel`` messages is taken; anything
        queued behind an earlier request waits its turn so replies keep
        arrival order.
        """
        await asyncio.sleep(0)

        while self._inbox and self._inbox[0].get("type") == "tasks/cancel":
            await self.handle(self._inbox.popleft())

    # ------------------------------------------------------------------ #
    # Handlers
    # ------------------------------------------------------------------ #

    async def _on_session_start(self, message: SessionStartRequest) -> None:
        session_id = self.sessions.start(message.session_id)
        await self._emit(SessionStartedMessage(session_id=session_id).to_wire())

    async def _on_session_send(self, message: SessionSendRequest) -> None:
        await self.sessions.send(
            message.session_id,
            message.content,
            self._emit,
            self.checkpoint,
        )

    async def _on_tasks_create(self, message: TasksCreateRequest) -> None:
        task = self.tasks.create(
            task_id=message.task_id,
            agent_id=message.agent_id,
            title=message.title,
            prompt=message.prompt,
        )
        await self._emit(TasksCreatedMessage(task=task).to_wire())

    async def _on_tasks_list(self, message: TasksListRequest) -> None:
        page, next_cursor = self.tasks.list_page(
            provider_id=message.provider_id,
            status=message.status,
            cursor=message.cursor,
            limit=message.limit,
        )
        await self._emit(
            TasksListResultMessage(tasks=page, next_cursor=next_cursor).to_wire()
        )

    async def _on_tasks_get(self, message: TasksGetRequest) -> None:
        task = self.tasks.get(message.task_id)
        await self._emit(TasksGetResultMessage(task=task).to_wire())

    async def _on_tasks_cancel(self, message: TasksCancelRequest) -> None:
        self.tasks.cancel(message.task_id)
        await self._emit(TasksCancelResultMessage(ok=True).to_wire())

    async def _on_tasks_subscribe(self, message: TasksSubscribeRequest) -> None:
        await self.tasks.subscribe(message.task_id, self._emit, self.checkpoint)

    # ------------------------------------------------------------------ #
    # Plumbing
    # ------------------------------------------------------------------ #

    async def _emit(self, message: dict[str, Any]) -> None:
        await self._transport.send(message)

    async def _reject(self, raw: dict[str, Any], error: str) -> None:
        """Answer a malformed request; only the task protocol has an error reply."""
        msg_type = str(raw.get("type", ""))
        if not msg_type.startswith("tasks/"):
            logger.warning("dropping malformed %s message: %s", msg_type, error)
            return
        task_id = raw.get("taskId")
        await self._emit(
            TasksErrorMessage(
                task_id=task_id if isinstance(task_id, str) else "",
                error=error,
            ).to_wire()
        )

    async def _fill_inbox(self) -> None:
        try:
            async for raw in self._transport:
                self._inbox.append(raw)
                self._inbox_ready.set()
        finally:
            self._source_ended = True
            self._inbox_ready.set()

    async def _next_inbound(self) -> dict[str, Any] | None:
        while not self._inbox:
            if self._source_ended:
                return None
            self._inbox_ready.clear()
            await self._inbox_ready.wait()
        return self._inbox.popleft()

