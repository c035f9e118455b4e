"""Session engine: turn-based chat with streamed deltas."""

from __future__ import annotations

import logging
from dataclasses import dataclass, field

from agentinterop.agent.helpers import Checkpoint, Emit, chunk_text, yield_now
from agentinterop.constants import DEFAULT_CHUNKS
from agentinterop.protocol.messages import (
    ChatMessage,
    SessionCompleteMessage,
    SessionStreamMessage,
    ToolCallMessage,
)

logger = logging.getLogger(__name__)

#: Name of the tool reported by the optional tool-call notification.
MOCK_TOOL_NAME = "mock.tool"


@dataclass
class _SessionState:
    history: list[ChatMessage] = field(default_factory=list)
    turns: int = 0


class SessionEngine:
    """Owns the chat sessions of one agent runtime.

    Sessions are created on first reference and live in memory only.
    """

    def __init__(
        self,
        chunks: int = DEFAULT_CHUNKS,
        streaming: bool = True,
        emit_tool_calls: bool = False,
    ) -> None:
        self._chunks = max(1, chunks)
        self._streaming = streaming
        self._emit_tool_calls = emit_tool_calls
        self._sessions: dict[str, _SessionState] = {}
        self._counter = 0

    def __contains__(self, session_id: object) -> bool:
        return session_id in self._sessions

    def start(self, session_id: str | None = None) -> str:
        """Ensure a session exists and return its id."""
        session_id = session_id or self._next_id()
        self._get_or_create(session_id)
        return session_id

    def history(self, session_id: str) -> list[ChatMessage]:
        state = self._sessions.get(session_id)
        return list(state.history) if state is not None else []

    async def send(
        self,
        session_id: str | None,
        content: str,
        emit: Emit,
        checkpoint: Checkpoint = yield_now,
    ) -> ChatMessage:
        """Accept one user turn and answer it.

        With streaming on, the reply is announced as ``session/stream``
        deltas (preceded by an optional ``tool/call``).  Exactly one
        ``session/complete`` follows in every mode.
        """
        session_id = session_id or self._next_id()
        state = self._get_or_create(session_id)

        state.history.append(ChatMessage(role="user", content=content))
        state.turns += 1
        reply = f"MockAgent response #{state.turns}: {content}"

        if self._streaming:
            if self._emit_tool_calls:
                await emit(
                    ToolCallMessage(
                        session_id=session_id,
                        name=MOCK_TOOL_NAME,
                        args={"turn": state.turns, "inputLength": len(content)},
                    ).to_wire()
                )
            for index, delta in enumerate(chunk_text(reply, self._chunks)):
                await emit(
                    SessionStreamMessage(
                        session_id=session_id, index=index, delta=delta
                    ).to_wire()
                )
                await checkpoint()

        message = ChatMessage(role="assistant", content=reply)
        state.history.append(message)
        await emit(
            SessionCompleteMessage(
                session_id=session_id,
                message=message,
                history=list(state.history),
            ).to_wire()
        )
        logger.debug("session %s completed turn %d", session_id, state.turns)
        return message

    def _get_or_create(self, session_id: str) -> _SessionState:
        state = self._sessions.get(session_id)
        if state is None:
            state = _SessionState()
            self._sessions[session_id] = state
        return state

    def _next_id(self) -> str:
        self._counter += 1
        return f"session-{self._counter}"
