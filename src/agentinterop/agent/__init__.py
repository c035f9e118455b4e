"""Reference mock agent: task and session engines behind a stdio runtime."""

from agentinterop.agent.config import MockAgentConfig
from agentinterop.agent.helpers import chunk_text
from agentinterop.agent.runtime import MockAgentRuntime
from agentinterop.agent.sessions import SessionEngine
from agentinterop.agent.tasks import TaskEngine, TaskNotFoundError

__all__ = [
    "MockAgentConfig",
    "MockAgentRuntime",
    "SessionEngine",
    "TaskEngine",
    "TaskNotFoundError",
    "chunk_text",
]
