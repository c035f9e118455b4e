"""Pydantic v2 models for every message on the agent wire protocol.

Messages are JSON objects tagged by a ``type`` string.  Field names are
camelCase on the wire and snake_case in Python; models accept both.
There is one tagged union per direction: ``ClientMessage`` (controller to
agent) and ``AgentMessage`` (agent to controller).
"""

from __future__ import annotations

from datetime import UTC, datetime
from typing import Annotated, Any, Literal

from pydantic import (
    BaseModel,
    ConfigDict,
    Discriminator,
    Field,
    Tag,
    TypeAdapter,
    ValidationError,
)
from pydantic.alias_generators import to_camel

from agentinterop.constants import LOCAL_PROVIDER_ID, MOCK_AGENT_ID

TaskStatus = Literal["created", "running", "completed", "cancelled"]

#: Statuses a task never leaves once reached (except cancel over completed).
TERMINAL_STATUSES: frozenset[str] = frozenset({"completed", "cancelled"})


class MessageDecodeError(Exception):
    """A message carried a known ``type`` but a malformed payload."""


class _WireModel(BaseModel):
    model_config = ConfigDict(
        alias_generator=to_camel,
        populate_by_name=True,
        extra="ignore",
    )

    def to_wire(self) -> dict[str, Any]:
        """Return the JSON-ready dict sent on the wire."""
        return self.model_dump(mode="json", by_alias=True, exclude_none=True)


# ------------------------------------------------------------------ #
# Shared payload types
# ------------------------------------------------------------------ #


class ChatMessage(_WireModel):
    """One turn of a chat conversation."""

    role: Literal["user", "assistant"]
    content: str


class TaskExecution(_WireModel):
    """Where and how durably a task runs."""

    location: str = "local"
    durability: str = "ephemeral"
    provider_id: str = LOCAL_PROVIDER_ID
    hint: str = "This task runs locally and may stop if the process exits."


class TaskRef(_WireModel):
    """The public record of a task."""

    id: str
    agent_id: str = MOCK_AGENT_ID
    status: TaskStatus = "created"
    title: str
    created_at: str
    updated_at: str
    execution: TaskExecution = Field(default_factory=TaskExecution)
    raw_data: dict[str, Any] = Field(
        default_factory=lambda: {"mock": True, "kind": "task"},
        alias="_rawData",
    )


# ------------------------------------------------------------------ #
# Controller -> agent
# ------------------------------------------------------------------ #


class SessionStartRequest(_WireModel):
    type: Literal["session/start"] = "session/start"
    session_id: str | None = None


class SessionSendRequest(_WireModel):
    type: Literal["session/send"] = "session/send"
    session_id: str | None = None
    content: str = ""


class TasksCreateRequest(_WireModel):
    type: Literal["tasks/create"] = "tasks/create"
    task_id: str | None = None
    agent_id: str | None = None
    title: str | None = None
    prompt: str | None = None


class TasksListRequest(_WireModel):
    """Page through tasks.  ``cursor``/``limit`` are numeric strings."""

    type: Literal["tasks/list"] = "tasks/list"
    provider_id: str | None = None
    status: str | None = None
    cursor: str | int | None = None
    limit: str | int | None = None


class TasksGetRequest(_WireModel):
    type: Literal["tasks/get"] = "tasks/get"
    task_id: str = ""


class TasksCancelRequest(_WireModel):
    type: Literal["tasks/cancel"] = "tasks/cancel"
    task_id: str = ""


class TasksSubscribeRequest(_WireModel):
    type: Literal["tasks/subscribe"] = "tasks/subscribe"
    task_id: str = ""


# ------------------------------------------------------------------ #
# Agent -> controller
# ------------------------------------------------------------------ #


class ReadyMessage(_WireModel):
    """First message an agent sends once it can accept requests."""

    type: Literal["ready"] = "ready"
    pid: int | None = None
    version: int | None = None


class SessionStartedMessage(_WireModel):
    type: Literal["session/started"] = "session/started"
    session_id: str


class SessionStreamMessage(_WireModel):
    type: Literal["session/stream"] = "session/stream"
    session_id: str
    index: int
    delta: str


class SessionCompleteMessage(_WireModel):
    type: Literal["session/complete"] = "session/complete"
    session_id: str
    message: ChatMessage
    history: list[ChatMessage]


class ToolCallMessage(_WireModel):
    type: Literal["tool/call"] = "tool/call"
    session_id: str
    name: str
    args: dict[str, Any] = Field(default_factory=dict)


class TasksCreatedMessage(_WireModel):
    type: Literal["tasks/created"] = "tasks/created"
    task: TaskRef


class TasksListResultMessage(_WireModel):
    type: Literal["tasks/listResult"] = "tasks/listResult"
    tasks: list[TaskRef]
    next_cursor: str | None = None


class TasksGetResultMessage(_WireModel):
    type: Literal["tasks/getResult"] = "tasks/getResult"
    task: TaskRef


class TasksCancelResultMessage(_WireModel):
    type: Literal["tasks/cancelResult"] = "tasks/cancelResult"
    ok: bool


class TasksErrorMessage(_WireModel):
    type: Literal["tasks/error"] = "tasks/error"
    task_id: str
    error: str


class TaskStartedEvent(_WireModel):
    type: Literal["task.started"] = "task.started"
    task_id: str
    timestamp: str


class MessageDeltaEvent(_WireModel):
    type: Literal["message.delta"] = "message.delta"
    task_id: str
    timestamp: str
    message_id: str
    index: int
    delta: str


class TaskCompletedEvent(_WireModel):
    type: Literal["task.completed"] = "task.completed"
    task_id: str
    timestamp: str
    task: TaskRef


class TaskCancelledEvent(_WireModel):
    type: Literal["task.cancelled"] = "task.cancelled"
    task_id: str
    timestamp: str
    task: TaskRef


# ------------------------------------------------------------------ #
# Tagged unions
# ------------------------------------------------------------------ #


def _message_discriminator(v: Any) -> str:
    """Extract the discriminator value from raw data or a model instance."""
    if isinstance(v, dict):
        return str(v.get("type", ""))
    return str(getattr(v, "type", ""))


ClientMessage = Annotated[
    Annotated[SessionStartRequest, Tag("session/start")]
    | Annotated[SessionSendRequest, Tag("session/send")]
    | Annotated[TasksCreateRequest, Tag("tasks/create")]
    | Annotated[TasksListRequest, Tag("tasks/list")]
    | Annotated[TasksGetRequest, Tag("tasks/get")]
    | Annotated[TasksCancelRequest, Tag("tasks/cancel")]
    | Annotated[TasksSubscribeRequest, Tag("tasks/subscribe")],
    Discriminator(_message_discriminator),
]
"""Discriminated union of controller-to-agent requests."""

TaskEvent = (
    TaskStartedEvent | MessageDeltaEvent | TaskCompletedEvent | TaskCancelledEvent
)

AgentMessage = Annotated[
    Annotated[ReadyMessage, Tag("ready")]
    | Annotated[SessionStartedMessage, Tag("session/started")]
    | Annotated[SessionStreamMessage, Tag("session/stream")]
    | Annotated[SessionCompleteMessage, Tag("session/complete")]
    | Annotated[ToolCallMessage, Tag("tool/call")]
    | Annotated[TasksCreatedMessage, Tag("tasks/created")]
    | Annotated[TasksListResultMessage, Tag("tasks/listResult")]
    | Annotated[TasksGetResultMessage, Tag("tasks/getResult")]
    | Annotated[TasksCancelResultMessage, Tag("tasks/cancelResult")]
    | Annotated[TasksErrorMessage, Tag("tasks/error")]
    | Annotated[TaskStartedEvent, Tag("task.started")]
    | Annotated[MessageDeltaEvent, Tag("message.delta")]
    | Annotated[TaskCompletedEvent, Tag("task.completed")]
    | Annotated[TaskCancelledEvent, Tag("task.cancelled")],
    Discriminator(_message_discriminator),
]
"""Discriminated union of agent-to-controller messages and events."""

CLIENT_MESSAGE_TYPES: frozenset[str] = frozenset(
    {
        "session/start",
        "session/send",
        "tasks/create",
        "tasks/list",
        "tasks/get",
        "tasks/cancel",
        "tasks/subscribe",
    }
)

AGENT_MESSAGE_TYPES: frozenset[str] = frozenset(
    {
        "ready",
        "session/started",
        "session/stream",
        "session/complete",
        "tool/call",
        "tasks/created",
        "tasks/listResult",
        "tasks/getResult",
        "tasks/cancelResult",
        "tasks/error",
        "task.started",
        "message.delta",
        "task.completed",
        "task.cancelled",
    }
)

_CLIENT_ADAPTER: TypeAdapter[ClientMessage] = TypeAdapter(ClientMessage)
_AGENT_ADAPTER: TypeAdapter[AgentMessage] = TypeAdapter(AgentMessage)


def parse_client_message(raw: Any) -> ClientMessage | None:
    """Validate a decoded request.

    Returns ``None`` for anything without a recognised ``type``; unknown
    messages are skipped rather than treated as errors.  A recognised type
    with a malformed payload raises ``MessageDecodeError``.
    """
    if not isinstance(raw, dict) or raw.get("type") not in CLIENT_MESSAGE_TYPES:
        return None
    try:
        return _CLIENT_ADAPTER.validate_python(raw)
    except ValidationError as exc:
        msg = f"Invalid {raw['type']} message: {_summarize(exc)}"
        raise MessageDecodeError(msg) from exc


def parse_agent_message(raw: Any) -> AgentMessage | None:
    """Validate a decoded agent message; same contract as the client side."""
    if not isinstance(raw, dict) or raw.get("type") not in AGENT_MESSAGE_TYPES:
        return None
    try:
        return _AGENT_ADAPTER.validate_python(raw)
    except ValidationError as exc:
        msg = f"Invalid {raw['type']} message: {_summarize(exc)}"
        raise MessageDecodeError(msg) from exc


def iso_now() -> str:
    """Return the current UTC time as ISO 8601 with milliseconds."""
    return datetime.now(tz=UTC).strftime("%Y-%m-%dT%H:%M:%S.%f")[:-3] + "Z"


def _summarize(exc: ValidationError) -> str:
    parts: list[str] = []
    for err in exc.errors():
        loc = ".".join(str(s) for s in err["loc"])
        parts.append(f"{loc}: {err['msg']}" if loc else err["msg"])
    return "; ".join(parts)
