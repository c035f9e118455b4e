"""Load agentinterop.yaml and resolve agents from the catalogue."""

from __future__ import annotations

import sys
from pathlib import Path
from typing import Any

import yaml
from dotenv import load_dotenv
from pydantic import ValidationError

from agentinterop.config.models import AgentInteropConfig, AgentSpec
from agentinterop.constants import MOCK_AGENT_ID

DEFAULT_CONFIG_NAME = "agentinterop.yaml"


class ConfigError(Exception):
    """User-facing configuration error."""


class UnknownAgentError(ConfigError):
    """The requested agent id is not in the catalogue."""


class UnknownSkillError(ConfigError):
    """The agent does not advertise the requested skill."""


def builtin_agents() -> list[AgentSpec]:
    """Agents that are always available, with or without a config file."""
    return [
        AgentSpec(
            id=MOCK_AGENT_ID,
            name="Mock Agent",
            description="Deterministic local agent that echoes prompts",
            command=sys.executable,
            args=["-m", "agentinterop.agent"],
        )
    ]


def load_config(path: Path | None = None) -> AgentInteropConfig:
    """Load and validate an agentinterop.yaml file.

    Args:
        path: Explicit config file path. If None, looks for
              agentinterop.yaml in the current directory and falls back
              to an empty configuration when there is none.

    Raises:
        ConfigError: On a missing explicit file, bad YAML, or validation
            failure.
    """
    config_path = _resolve_path(path)
    if config_path is None:
        return AgentInteropConfig()
    raw = _read_yaml(config_path)
    _load_env(config_path.parent)
    return _validate(raw)


def list_agents(config: AgentInteropConfig | None = None) -> list[AgentSpec]:
    """Built-in agents followed by configured ones; config entries win on id."""
    config = config or AgentInteropConfig()
    agents = {spec.id: spec for spec in builtin_agents()}
    for agent_id, entry in config.agents.items():
        agents[agent_id] = entry.to_spec(agent_id)
    return list(agents.values())


def resolve_agent(
    agent_id: str | None,
    config: AgentInteropConfig | None = None,
) -> AgentSpec:
    """Look up *agent_id* (or the configured default) in the catalogue."""
    config = config or AgentInteropConfig()
    wanted = agent_id or config.default_agent or MOCK_AGENT_ID
    for spec in list_agents(config):
        if spec.id == wanted:
            return spec
    msg = f"Unknown agent: {wanted}"
    raise UnknownAgentError(msg)


def require_skill(agent: AgentSpec, skill: str) -> None:
    if not agent.has_skill(skill):
        msg = f"Unknown skill: {skill}"
        raise UnknownSkillError(msg)


def _resolve_path(path: Path | None) -> Path | None:
    if path is not None:
        resolved = Path(path)
        if not resolved.is_file():
            msg = f"Config file not found: {resolved}"
            raise ConfigError(msg)
        return resolved

    default = Path.cwd() / DEFAULT_CONFIG_NAME
    return default if default.is_file() else None


def _read_yaml(path: Path) -> dict[str, Any]:
    try:
        text = path.read_text(encoding="utf-8")
    except OSError as exc:
        msg = f"Cannot read config file: {exc}"
        raise ConfigError(msg) from exc

    try:
        data = yaml.safe_load(text)
    except yaml.YAMLError as exc:
        detail = ""
        if hasattr(exc, "problem_mark") and exc.problem_mark is not None:
            mark = exc.problem_mark
            detail = f" (line {mark.line + 1}, column {mark.column + 1})"
        msg = f"Invalid YAML in {path.name}{detail}"
        raise ConfigError(msg) from exc

    if data is None:
        return {}
    if not isinstance(data, dict):
        msg = f"Expected a YAML mapping in {path.name}, got {type(data).__name__}"
        raise ConfigError(msg)

    return data


def _load_env(config_dir: Path) -> None:
    env_path = config_dir / ".env"
    if env_path.is_file():
        load_dotenv(env_path)


def _validate(raw: dict[str, Any]) -> AgentInteropConfig:
    try:
        return AgentInteropConfig.model_validate(raw)
    except ValidationError as exc:
        parts: list[str] = []
        for err in exc.errors():
            loc = " → ".join(str(s) for s in err["loc"])
            msg = err["msg"]
            if "field required" in msg.lower():
                msg = "This field is required"
            elif "input should be" in msg.lower():
                msg = f"Invalid value: {msg}"
            parts.append(f"  {loc}: {msg}")
        joined = "\n".join(parts)
        msg = f"Config validation failed:\n{joined}"
        raise ConfigError(msg) from exc
