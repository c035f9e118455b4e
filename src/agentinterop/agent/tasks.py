"""Task engine: create/list/get/cancel/subscribe with a status lifecycle."""

from __future__ import annotations

import logging
import math
from dataclasses import dataclass

from agentinterop.agent.helpers import Checkpoint, Emit, chunk_text, yield_now
from agentinterop.constants import (
    DEFAULT_CHUNKS,
    DEFAULT_PAGE_LIMIT,
    LOCAL_PROVIDER_ID,
    MOCK_AGENT_ID,
)
from agentinterop.protocol.messages import (
    MessageDeltaEvent,
    TaskCancelledEvent,
    TaskCompletedEvent,
    TaskRef,
    TaskStartedEvent,
    iso_now,
)

logger = logging.getLogger(__name__)


class TaskNotFoundError(Exception):
    """Raised for operations on a task id the engine has never seen."""

    def __init__(self, task_id: str) -> None:
        super().__init__(f"Unknown task: {task_id}")
        self.task_id = task_id


@dataclass
class _TaskState:
    task: TaskRef
    prompt: str
    turns: int = 0

    @property
    def cancelled(self) -> bool:
        return self.task.status == "cancelled"


class TaskEngine:
    """Owns the task registry of one agent runtime.

    Tasks are kept in creation order for the life of the process.  Status
    moves ``created -> running -> completed | cancelled``; ``cancelled`` is
    final and may also overwrite ``completed``.
    """

    def __init__(
        self,
        chunks: int = DEFAULT_CHUNKS,
        provider_id: str = LOCAL_PROVIDER_ID,
    ) -> None:
        self._chunks = max(1, chunks)
        self._provider_id = provider_id
        self._tasks: dict[str, _TaskState] = {}
        self._counter = 0

    def __len__(self) -> int:
        return len(self._tasks)

    def create(
        self,
        task_id: str | None = None,
        agent_id: str | None = None,
        title: str | None = None,
        prompt: str | None = None,
    ) -> TaskRef:
        """Register a task, or refresh the prompt of an existing one."""
        if not task_id:
            self._counter += 1
            task_id = f"task-{self._counter}"

        existing = self._tasks.get(task_id)
        if existing is not None:
            if prompt:
                existing.prompt = prompt
            return existing.task

        ts = iso_now()
        task = TaskRef(
            id=task_id,
            agent_id=agent_id or MOCK_AGENT_ID,
            status="created",
            title=title or f"Mock Task {task_id}",
            created_at=ts,
            updated_at=ts,
        )
        self._tasks[task_id] = _TaskState(task=task, prompt=prompt or "")
        logger.debug("created task %s", task_id)
        return task

    def list_page(
        self,
        provider_id: str | None = None,
        status: str | None = None,
        cursor: str | int | None = None,
        limit: str | int | None = None,
    ) -> tuple[list[TaskRef], str | None]:
        """Return one page of tasks and the cursor of the next page.

        The next cursor is ``None`` on the final page.
        """
        if provider_id and provider_id != self._provider_id:
            return [], None

        offset = _parse_number(cursor, minimum=0, default=0)
        page_size = _parse_number(limit, minimum=1, default=DEFAULT_PAGE_LIMIT)

        matching = [
            state.task
            for state in self._tasks.values()
            if not status or state.task.status == status
        ]
        page = matching[offset : offset + page_size]
        end = offset + page_size
        next_cursor = str(end) if end < len(matching) else None
        return page, next_cursor

    def get(self, task_id: str) -> TaskRef:
        return self._require(task_id).task

    def cancel(self, task_id: str) -> TaskRef:
        """Mark a task cancelled.  Repeating the call is harmless."""
        state = self._require(task_id)
        state.task.status = "cancelled"
        state.task.updated_at = iso_now()
        logger.debug("cancelled task %s", task_id)
        return state.task

    async def subscribe(
        self,
        task_id: str,
        emit: Emit,
        checkpoint: Checkpoint = yield_now,
    ) -> None:
        """Run one turn of the task, streaming its events through *emit*.

        *checkpoint* is awaited before every delta and before completion;
        a cancellation observed after it stops the stream with
        ``task.cancelled``.
        """
        state = self._require(task_id)

        if state.cancelled:
            await emit(_cancelled_event(state).to_wire())
            return

        state.turns += 1
        state.task.status = "running"
        state.task.updated_at = iso_now()
        await emit(TaskStartedEvent(task_id=task_id, timestamp=iso_now()).to_wire())

        body = f"MockTask response #{state.turns}: {state.prompt}".rstrip()
        message_id = f"msg-{task_id}-{state.turns}"

        for index, delta in enumerate(chunk_text(body, self._chunks)):
            await checkpoint()
            if state.cancelled:
                await emit(_cancelled_event(state).to_wire())
                return
            await emit(
                MessageDeltaEvent(
                    task_id=task_id,
                    timestamp=iso_now(),
                    message_id=message_id,
                    index=index,
                    delta=delta,
                ).to_wire()
            )

        await checkpoint()
        if state.cancelled:
            await emit(_cancelled_event(state).to_wire())
            return

        state.task.status = "completed"
        state.task.updated_at = iso_now()
        await emit(
            TaskCompletedEvent(
                task_id=task_id, timestamp=iso_now(), task=state.task
            ).to_wire()
        )

    def _require(self, task_id: str) -> _TaskState:
        state = self._tasks.get(task_id)
        if state is None:
            raise TaskNotFoundError(task_id)
        return state


def _cancelled_event(state: _TaskState) -> TaskCancelledEvent:
    return TaskCancelledEvent(
        task_id=state.task.id, timestamp=iso_now(), task=state.task
    )


def _parse_number(raw: str | int | None, *, minimum: int, default: int) -> int:
    """Parse a cursor/limit value, falling back to *default* when invalid."""
    if raw is None or isinstance(raw, bool):
        return default
    if isinstance(raw, str):
        if not raw.strip():
            return default
        try:
            value = float(raw)
        except ValueError:
            return default
    else:
        value = float(raw)
    if not math.isfinite(value) or value < minimum:
        return default
    return math.floor(value)
