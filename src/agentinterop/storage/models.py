"""Pydantic v2 models for records persisted between CLI invocations."""

from __future__ import annotations

from typing import Literal

from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel

from agentinterop.constants import CHAT_SKILL, LOCAL_PROVIDER_ID, MOCK_AGENT_ID
from agentinterop.protocol.messages import ChatMessage


class _RecordBase(BaseModel):
    model_config = ConfigDict(
        alias_generator=to_camel,
        populate_by_name=True,
        extra="ignore",
    )

    version: Literal[1] = 1
    history: list[ChatMessage] = Field(default_factory=list)


class PersistedSession(_RecordBase):
    """A CLI session kept alive across separate agent processes."""

    session_id: str
    agent_id: str = MOCK_AGENT_ID
    skill: str = CHAT_SKILL


class PersistedChat(_RecordBase):
    """Transcript of an interactive chat."""

    chat_id: str
    provider_id: str = LOCAL_PROVIDER_ID
