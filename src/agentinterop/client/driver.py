"""Client-side protocol driver, the controller's half of the conversation."""

from __future__ import annotations

import asyncio
import logging
from collections.abc import AsyncIterator, Callable, Iterable
from dataclasses import dataclass
from typing import Any, TypeVar

from agentinterop.constants import DEFAULT_REPLY_TIMEOUT
from agentinterop.protocol.messages import (
    AgentMessage,
    ChatMessage,
    MessageDecodeError,
    MessageDeltaEvent,
    ReadyMessage,
    SessionCompleteMessage,
    SessionSendRequest,
    SessionStartedMessage,
    SessionStartRequest,
    SessionStreamMessage,
    TaskCancelledEvent,
    TaskCompletedEvent,
    TaskEvent,
    TaskRef,
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
    TaskStartedEvent,
    ToolCallMessage,
    parse_agent_message,
)
from agentinterop.protocol.transport import StdioTransport

logger = logging.getLogger(__name__)

_M = TypeVar("_M")

_TASK_EVENT_TYPES = (
    TaskStartedEvent,
    MessageDeltaEvent,
    TaskCompletedEvent,
    TaskCancelledEvent,
)


class ReplyTimeoutError(Exception):
    """No reply arrived within the driver's own deadline."""


class UnexpectedEndOfStream(Exception):
    """The transport ended while a reply was still expected."""


class TaskError(Exception):
    """The agent answered a task request with ``tasks/error``."""

    def __init__(self, task_id: str, error: str) -> None:
        super().__init__(error)
        self.task_id = task_id
        self.error = error


@dataclass(frozen=True)
class ChatTurn:
    """Outcome of one ``session/send``."""

    message: ChatMessage
    history: list[ChatMessage]
    text: str
    """Deltas reassembled by index (empty when the agent did not stream)."""


class AgentClient:
    """Issue requests over a transport and pick out the matching replies.

    The protocol has no request timeouts of its own, so every wait here is
    bounded by *timeout* seconds per message.  Messages that do not match
    what is being waited for are skipped.
    """

    def __init__(
        self,
        transport: StdioTransport,
        *,
        timeout: float = DEFAULT_REPLY_TIMEOUT,
    ) -> None:
        self._transport = transport
        self._timeout = timeout

    @property
    def transport(self) -> StdioTransport:
        return self._transport

    # ------------------------------------------------------------------ #
    # Receiving
    # ------------------------------------------------------------------ #

    async def next_message(self, label: str) -> AgentMessage:
        """Return the next recognised message or fail locally."""
        while True:
            try:
                raw = await asyncio.wait_for(
                    self._transport.receive(), timeout=self._timeout
                )
            except TimeoutError as exc:
                msg = f"Timeout waiting for {label}"
                raise ReplyTimeoutError(msg) from exc
            if raw is None:
                msg = f"Unexpected end of stream while waiting for {label}"
                raise UnexpectedEndOfStream(msg)

            try:
                message = parse_agent_message(raw)
            except MessageDecodeError as exc:
                logger.warning("ignoring malformed agent message: %s", exc)
                continue
            if message is None:
                logger.debug("ignoring unknown agent message %r", raw.get("type"))
                continue
            return message

    async def wait_for(
        self,
        kind: type[_M],
        label: str,
        predicate: Callable[[_M], bool] | None = None,
    ) -> _M:
        """Skip messages until one of *kind* (matching *predicate*) arrives."""
        while True:
            message = await self.next_message(label)
            if isinstance(message, kind) and (predicate is None or predicate(message)):
                return message

    async def wait_ready(self) -> ReadyMessage:
        return await self.wait_for(ReadyMessage, 'message type "ready"')

    # ------------------------------------------------------------------ #
    # Sessions
    # ------------------------------------------------------------------ #

    async def start_session(self, session_id: str | None = None) -> str:
        await self._send(SessionStartRequest(session_id=session_id))
        started = await self.wait_for(
            SessionStartedMessage,
            'message type "session/started"',
            lambda m: session_id is None or m.session_id == session_id,
        )
        return started.session_id

    async def send_prompt(
        self,
        session_id: str,
        content: str,
        on_delta: Callable[[str], Any] | None = None,
        on_tool_call: Callable[[ToolCallMessage], Any] | None = None,
    ) -> ChatTurn:
        """Send one user turn and collect the reply.

        *on_delta* sees each delta in arrival order; the returned text is
        reassembled by index.
        """
        await self._send(SessionSendRequest(session_id=session_id, content=content))

        label = f'stream/complete for session "{session_id}"'
        deltas: dict[int, str] = {}
        while True:
            message = await self.next_message(label)
            if getattr(message, "session_id", None) != session_id:
                continue
            if isinstance(message, SessionStreamMessage):
                deltas[message.index] = message.delta
                if on_delta is not None:
                    on_delta(message.delta)
            elif isinstance(message, ToolCallMessage):
                if on_tool_call is not None:
                    on_tool_call(message)
            elif isinstance(message, SessionCompleteMessage):
                text = "".join(deltas[i] for i in sorted(deltas))
                return ChatTurn(
                    message=message.message,
                    history=list(message.history),
                    text=text,
                )

    async def replay(self, session_id: str, history: Iterable[ChatMessage]) -> None:
        """Re-send earlier user turns so a fresh agent rebuilds the session."""
        for turn in history:
            if turn.role == "user":
                await self.send_prompt(session_id, turn.content)

    # ------------------------------------------------------------------ #
    # Tasks
    # ------------------------------------------------------------------ #

    async def create_task(
        self,
        task_id: str | None = None,
        agent_id: str | None = None,
        title: str | None = None,
        prompt: str | None = None,
    ) -> TaskRef:
        await self._send(
            TasksCreateRequest(
                task_id=task_id, agent_id=agent_id, title=title, prompt=prompt
            )
        )
        created = await self.wait_for(
            TasksCreatedMessage,
            'message type "tasks/created"',
            lambda m: task_id is None or m.task.id == task_id,
        )
        return created.task

    async def list_tasks(
        self,
        provider_id: str | None = None,
        status: str | None = None,
        cursor: str | None = None,
        limit: int | None = None,
    ) -> tuple[list[TaskRef], str | None]:
        """Fetch one page; the second item is the next cursor or ``None``."""
        await self._send(
            TasksListRequest(
                provider_id=provider_id,
                status=status,
                cursor=cursor,
                limit=str(limit) if limit is not None else None,
            )
        )
        result = await self.wait_for(
            TasksListResultMessage, 'message type "tasks/listResult"'
        )
        return list(result.tasks), result.next_cursor

    async def iter_tasks(
        self,
        provider_id: str | None = None,
        status: str | None = None,
        limit: int | None = None,
    ) -> AsyncIterator[TaskRef]:
        """Yield every task, following ``nextCursor`` until it is absent."""
        cursor: str | None = None
        while True:
            page, cursor = await self.list_tasks(provider_id, status, cursor, limit)
            for task in page:
                yield task
            if cursor is None:
                return

    async def get_task(self, task_id: str) -> TaskRef:
        await self._send(TasksGetRequest(task_id=task_id))
        reply = await self._wait_task_reply(
            TasksGetResultMessage, task_id, "tasks/getResult"
        )
        return reply.task

    async def cancel_task(self, task_id: str) -> bool:
        await self._send(TasksCancelRequest(task_id=task_id))
        reply = await self._wait_task_reply(
            TasksCancelResultMessage, task_id, "tasks/cancelResult"
        )
        return reply.ok

    async def subscribe_task(self, task_id: str) -> AsyncIterator[TaskEvent]:
        """Yield events of one task run until it completes or is cancelled."""
        await self._send(TasksSubscribeRequest(task_id=task_id))
        label = f'events for task "{task_id}"'
        while True:
            message = await self.next_message(label)
            if isinstance(message, TasksErrorMessage) and message.task_id == task_id:
                raise TaskError(message.task_id, message.error)
            if not isinstance(message, _TASK_EVENT_TYPES) or message.task_id != task_id:
                continue
            yield message
            if isinstance(message, TaskCompletedEvent | TaskCancelledEvent):
                return

    async def _wait_task_reply(self, kind: type[_M], task_id: str, type_name: str) -> _M:
        label = f'message type "{type_name}" for task "{task_id}"'
        while True:
            message = await self.next_message(label)
            if isinstance(message, TasksErrorMessage) and message.task_id == task_id:
                raise TaskError(message.task_id, message.error)
            if isinstance(message, kind):
                task = getattr(message, "task", None)
                if task is None or task.id == task_id:
                    return message

    async def _send(self, request: Any) -> None:
        await self._transport.send(request.to_wire())


def collect_task_text(events: Iterable[TaskEvent]) -> str:
    """Concatenate ``message.delta`` events sorted by index."""
    deltas = sorted(
        (e for e in events if isinstance(e, MessageDeltaEvent)),
        key=lambda e: e.index,
    )
    return "".join(e.delta for e in deltas)
