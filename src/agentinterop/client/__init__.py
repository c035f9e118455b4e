"""Controller-side protocol driver."""

from agentinterop.client.driver import (
    AgentClient,
    ChatTurn,
    ReplyTimeoutError,
    TaskError,
    UnexpectedEndOfStream,
    collect_task_text,
)

__all__ = [
    "AgentClient",
    "ChatTurn",
    "ReplyTimeoutError",
    "TaskError",
    "UnexpectedEndOfStream",
    "collect_task_text",
]
