"""Wire protocol: framing, message models and the duplex transport."""

from agentinterop.protocol.framing import FrameDecoder, FrameError, encode_frame
from agentinterop.protocol.messages import (
    AgentMessage,
    ChatMessage,
    ClientMessage,
    MessageDecodeError,
    TaskRef,
    parse_agent_message,
    parse_client_message,
)
from agentinterop.protocol.transport import (
    StdioTransport,
    TransportClosedError,
    open_stdio_transport,
)

__all__ = [
    "AgentMessage",
    "ChatMessage",
    "ClientMessage",
    "FrameDecoder",
    "FrameError",
    "MessageDecodeError",
    "StdioTransport",
    "TaskRef",
    "TransportClosedError",
    "encode_frame",
    "open_stdio_transport",
    "parse_agent_message",
    "parse_client_message",
]
