"""Pydantic v2 models for the agent catalogue (agentinterop.yaml)."""

from __future__ import annotations

import re

from pydantic import BaseModel, ConfigDict, Field, field_validator

from agentinterop.constants import CHAT_SKILL

_AGENT_ID_RE = re.compile(r"^[a-zA-Z0-9_.-]+$")


class SkillSpec(BaseModel):
    """A capability an agent advertises."""

    model_config = ConfigDict(extra="forbid")

    id: str = Field(description="Skill identifier, e.g. 'chat'")
    description: str = Field(default="", description="Human-readable summary")


def _default_skills() -> list[SkillSpec]:
    return [
        SkillSpec(
            id=CHAT_SKILL,
            description="Chat-style interaction over session/start + session/send",
        )
    ]


class AgentSpec(BaseModel):
    """How to launch one agent and what it can do."""

    model_config = ConfigDict(extra="forbid")

    id: str = Field(description="Agent identifier used on the command line")
    name: str = Field(default="", description="Display name")
    description: str = Field(default="", description="Human-readable summary")
    command: str = Field(description="Executable to spawn")
    args: list[str] = Field(default_factory=list, description="Launch arguments")
    env: dict[str, str] = Field(
        default_factory=dict,
        description="Extra environment variables for the agent process",
    )
    skills: list[SkillSpec] = Field(
        default_factory=_default_skills,
        description="Skills the agent supports",
    )

    @field_validator("id")
    @classmethod
    def _check_id(cls, value: str) -> str:
        if not _AGENT_ID_RE.match(value):
            msg = (
                f"Invalid agent id {value!r}: use letters, digits, '.', '_' or '-'"
            )
            raise ValueError(msg)
        return value

    def has_skill(self, skill: str) -> bool:
        return any(s.id == skill for s in self.skills)


class AgentEntry(BaseModel):
    """An agent as written in YAML; the id comes from the mapping key."""

    model_config = ConfigDict(extra="forbid")

    name: str | None = None
    description: str = ""
    command: str
    args: list[str] = Field(default_factory=list)
    env: dict[str, str] = Field(default_factory=dict)
    skills: list[SkillSpec] = Field(default_factory=_default_skills)

    def to_spec(self, agent_id: str) -> AgentSpec:
        return AgentSpec(
            id=agent_id,
            name=self.name or agent_id,
            description=self.description,
            command=self.command,
            args=self.args,
            env=self.env,
            skills=self.skills,
        )


class AgentInteropConfig(BaseModel):
    """Top-level agentinterop.yaml configuration."""

    model_config = ConfigDict(extra="forbid")

    version: str = Field(default="1", description="Config schema version")
    default_agent: str | None = Field(
        default=None,
        description="Agent used when --agent is omitted",
    )
    agents: dict[str, AgentEntry] = Field(
        default_factory=dict,
        description="Additional agents, keyed by id",
    )

    @field_validator("version", mode="before")
    @classmethod
    def _coerce_version(cls, value: object) -> object:
        return str(value) if isinstance(value, int) else value
