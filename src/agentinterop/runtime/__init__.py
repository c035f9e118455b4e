"""Process supervision for locally spawned agents."""

from agentinterop.runtime.supervisor import (
    AgentSpawnError,
    LocalAgentConnection,
    spawn_local_agent,
)

__all__ = ["AgentSpawnError", "LocalAgentConnection", "spawn_local_agent"]
