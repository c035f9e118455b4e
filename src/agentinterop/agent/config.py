"""Launch configuration for the mock agent."""

from __future__ import annotations

import math
from collections.abc import Mapping

from pydantic import BaseModel, ConfigDict, Field

from agentinterop.constants import DEFAULT_CHUNKS, LOCAL_PROVIDER_ID, STREAMING_ENV_VAR

_TRUTHY = {"1", "true", "on"}
_FALSY = {"0", "false", "off"}


class MockAgentConfig(BaseModel):
    """Determinism knobs for the mock agent.

    These only shape the mock's output for tests; they are not part of the
    wire protocol.
    """

    model_config = ConfigDict(extra="forbid")

    chunks: int = Field(
        default=DEFAULT_CHUNKS,
        ge=1,
        description="Number of chunks each response is split into",
    )
    streaming: bool = Field(
        default=True,
        description="Emit session/stream deltas before session/complete",
    )
    emit_tool_calls: bool = Field(
        default=False,
        description="Emit one tool/call notification per streamed chat turn",
    )
    provider_id: str = Field(
        default=LOCAL_PROVIDER_ID,
        description="Provider namespace this agent serves in tasks/list",
    )

    @classmethod
    def from_options(
        cls,
        chunks: str | None = None,
        streaming: str | None = None,
        emit_tool_calls: bool = False,
        environ: Mapping[str, str] | None = None,
    ) -> MockAgentConfig:
        """Build a config from raw launch options and the environment.

        The streaming env var is applied first so ``streaming`` (``on`` or
        ``off``) overrides it.  Unparseable values keep the default.
        """
        values: dict[str, object] = {"emit_tool_calls": emit_tool_calls}

        env_value = (environ or {}).get(STREAMING_ENV_VAR, "").strip().lower()
        if env_value in _TRUTHY:
            values["streaming"] = True
        elif env_value in _FALSY:
            values["streaming"] = False

        flag = (streaming or "").strip().lower()
        if flag == "on":
            values["streaming"] = True
        elif flag == "off":
            values["streaming"] = False

        if chunks is not None:
            parsed = _parse_positive_int(chunks)
            if parsed is not None:
                values["chunks"] = parsed

        return cls.model_validate(values)


def _parse_positive_int(raw: str) -> int | None:
    try:
        value = float(raw.strip())
    except ValueError:
        return None
    if not math.isfinite(value) or value < 1:
        return None
    return int(value)
