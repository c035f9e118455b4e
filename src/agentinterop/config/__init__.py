"""Agent catalogue models and the agentinterop.yaml parser."""

from agentinterop.config.models import AgentEntry, AgentInteropConfig, AgentSpec, SkillSpec
from agentinterop.config.parser import (
    ConfigError,
    UnknownAgentError,
    UnknownSkillError,
    builtin_agents,
    list_agents,
    load_config,
    require_skill,
    resolve_agent,
)

__all__ = [
    "AgentEntry",
    "AgentInteropConfig",
    "AgentSpec",
    "ConfigError",
    "SkillSpec",
    "UnknownAgentError",
    "UnknownSkillError",
    "builtin_agents",
    "list_agents",
    "load_config",
    "require_skill",
    "resolve_agent",
]
