"""Length-prefixed JSON framing: ``[uint32be length][utf-8 JSON]``."""

from __future__ import annotations

import json
import struct
from typing import Any

from agentinterop.constants import MAX_FRAME_BYTES

#: Size of the big-endian length prefix.
HEADER_SIZE = 4

_HEADER = struct.Struct(">I")


class FrameError(Exception):
    """Raised when a frame cannot be encoded or decoded.

    Decoding failures are fatal for the stream they came from.  When raised
    from :meth:`FrameDecoder.push`, ``messages`` holds the frames that were
    fully decoded from the same chunk before the bad one.
    """

    def __init__(self, message: str) -> None:
        super().__init__(message)
        self.messages: list[dict[str, Any]] = []


def encode_frame(
    message: dict[str, Any],
    max_frame_bytes: int = MAX_FRAME_BYTES,
) -> bytes:
    """Serialize *message* to a single self-delimiting frame."""
    body = json.dumps(message, separators=(",", ":"), ensure_ascii=False).encode(
        "utf-8"
    )
    if len(body) > max_frame_bytes:
        msg = f"Frame too large: {len(body)} bytes (limit {max_frame_bytes})"
        raise FrameError(msg)
    return _HEADER.pack(len(body)) + body


class FrameDecoder:
    """Incremental decoder for a stream of frames.

    ``push()`` accepts chunks of any size, including empty chunks, partial
    headers and several frames glued together, and returns every message
    completed so far.  Incomplete trailing bytes stay buffered for the next
    call.

    The decoder fails closed: after the first error every further ``push``
    raises and the buffered bytes are dropped.  Messages completed before
    the error travel on the exception as ``messages``.
    """

    def __init__(self, max_frame_bytes: int = MAX_FRAME_BYTES) -> None:
        self._max_frame_bytes = max_frame_bytes
        self._buffer = bytearray()
        self._offset = 0
        self._failed = False

    @property
    def buffered(self) -> int:
        """Number of received bytes not yet decoded into a message."""
        return len(self._buffer) - self._offset

    @property
    def failed(self) -> bool:
        return self._failed

    def push(self, chunk: bytes) -> list[dict[str, Any]]:
        if self._failed:
            msg = "Decoder is closed after a previous framing error"
            raise FrameError(msg)
        if not chunk:
            return []

        # Compact before growing so consumed bytes are released.
        if self._offset:
            del self._buffer[: self._offset]
            self._offset = 0
        self._buffer += chunk

        messages: list[dict[str, Any]] = []
        try:
            while True:
                remaining = len(self._buffer) - self._offset
                if remaining < HEADER_SIZE:
                    break
                (length,) = _HEADER.unpack_from(self._buffer, self._offset)
                if length > self._max_frame_bytes:
                    msg = f"Frame too large: {length} bytes (limit {self._max_frame_bytes})"
                    raise FrameError(msg)
                if remaining < HEADER_SIZE + length:
                    break
                start = self._offset + HEADER_SIZE
                end = start + length
                payload = bytes(self._buffer[start:end])
                self._offset = end
                messages.append(_decode_payload(payload))
        except FrameError as exc:
            self._fail()
            exc.messages = messages
            raise

        if self._offset == len(self._buffer):
            self._buffer.clear()
            self._offset = 0

        return messages

    def _fail(self) -> None:
        self._failed = True
        self._buffer = bytearray()
        self._offset = 0


def _decode_payload(payload: bytes) -> dict[str, Any]:
    try:
        text = payload.decode("utf-8")
    except UnicodeDecodeError as exc:
        msg = f"Frame payload is not valid UTF-8: {exc}"
        raise FrameError(msg) from exc
    try:
        data = json.loads(text)
    except json.JSONDecodeError as exc:
        msg = f"Frame payload is not valid JSON: {exc.msg}"
        raise FrameError(msg) from exc
    if not isinstance(data, dict):
        msg = f"Frame payload must be a JSON object, got {type(data).__name__}"
        raise FrameError(msg)
    return data
