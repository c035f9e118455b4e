"""Duplex framed transport over a pair of asyncio byte streams."""

from __future__ import annotations

import asyncio
import contextlib
import logging
import sys
from collections import deque
from collections.abc import AsyncIterator
from typing import Any, Protocol

from agentinterop.constants import MAX_FRAME_BYTES
from agentinterop.protocol.framing import FrameDecoder, FrameError, encode_frame

logger = logging.getLogger(__name__)

#: Bytes requested from the source per read.
_READ_SIZE = 64 * 1024


class TransportClosedError(Exception):
    """Raised when sending on a closed transport or the sink fails."""


class ByteSource(Protocol):
    async def read(self, n: int = -1) -> bytes: ...


class ByteSink(Protocol):
    def write(self, data: bytes) -> None: ...

    async def drain(self) -> None: ...


class StdioTransport:
    """Send and receive framed messages over a readable/writable pair.

    Inbound bytes are pumped by a background task into a FIFO of decoded
    messages that a single consumer drains with ``receive()`` or
    ``async for``.  ``send()`` returns only once the sink has accepted the
    frame (``drain()`` completes) or raises if the sink failed.

    Must be constructed while an event loop is running.
    """

    def __init__(
        self,
        reader: ByteSource,
        writer: ByteSink,
        *,
        max_frame_bytes: int = MAX_FRAME_BYTES,
        read_size: int = _READ_SIZE,
    ) -> None:
        self._reader = reader
        self._writer = writer
        self._max_frame_bytes = max_frame_bytes
        self._read_size = read_size
        self._decoder = FrameDecoder(max_frame_bytes)

        self._queue: deque[dict[str, Any]] = deque()
        self._waiters: deque[asyncio.Future[None]] = deque()
        self._closed = False

        self._pump_task: asyncio.Task[None] = asyncio.create_task(self._pump())

    @property
    def closed(self) -> bool:
        return self._closed

    # ------------------------------------------------------------------ #
    # Outbound
    # ------------------------------------------------------------------ #

    async def send(self, message: dict[str, Any]) -> None:
        """Write one frame, suspending while the sink applies backpressure."""
        if self._closed:
            msg = "Transport is closed"
            raise TransportClosedError(msg)

        frame = encode_frame(message, self._max_frame_bytes)
        try:
            self._writer.write(frame)
            await self._writer.drain()
        except (BrokenPipeError, ConnectionResetError, OSError, RuntimeError) as exc:
            logger.warning("transport write failed: %s", exc)
            self.close()
            msg = f"Failed to write to transport: {exc}"
            raise TransportClosedError(msg) from exc

    # ------------------------------------------------------------------ #
    # Inbound
    # ------------------------------------------------------------------ #

    async def receive(self) -> dict[str, Any] | None:
        """Return the next message, or ``None`` once the stream has ended.

        Messages decoded before the transport closed are still delivered.
        """
        while True:
            if self._queue:
                return self._queue.popleft()
            if self._closed:
                return None

            waiter: asyncio.Future[None] = asyncio.get_running_loop().create_future()
            self._waiters.append(waiter)
            try:
                await waiter
            finally:
                with contextlib.suppress(ValueError):
                    self._waiters.remove(waiter)

    def __aiter__(self) -> AsyncIterator[dict[str, Any]]:
        return self

    async def __anext__(self) -> dict[str, Any]:
        message = await self.receive()
        if message is None:
            raise StopAsyncIteration
        return message

    # ------------------------------------------------------------------ #
    # Lifecycle
    # ------------------------------------------------------------------ #

    def close(self) -> None:
        """Stop reading and release every pending consumer.  Idempotent."""
        if self._closed:
            return
        self._closed = True

        if not self._pump_task.done() and self._pump_task is not _current_task():
            self._pump_task.cancel()

        while self._waiters:
            waiter = self._waiters.popleft()
            if not waiter.done():
                waiter.set_result(None)

    async def aclose(self) -> None:
        """Close, then close the underlying writer if it supports it."""
        self.close()
        with contextlib.suppress(asyncio.CancelledError):
            await self._pump_task
        close_writer = getattr(self._writer, "close", None)
        if close_writer is not None:
            with contextlib.suppress(OSError, RuntimeError):
                close_writer()

    async def _pump(self) -> None:
        """Read chunks, decode frames, enqueue messages until EOF or error."""
        try:
            while not self._closed:
                chunk = await self._reader.read(self._read_size)
                if not chunk:
                    logger.debug("transport source reached end of stream")
                    break
                try:
                    messages = self._decoder.push(chunk)
                except FrameError as exc:
                    for message in exc.messages:
                        self._enqueue(message)
                    logger.error("framing error, closing transport: %s", exc)
                    break
                for message in messages:
                    self._enqueue(message)
        except asyncio.CancelledError:
            raise
        except (OSError, ValueError) as exc:
            logger.warning("transport read failed: %s", exc)
        finally:
            self.close()

    def _enqueue(self, message: dict[str, Any]) -> None:
        self._queue.append(message)
        while self._waiters:
            waiter = self._waiters.popleft()
            if not waiter.done():
                waiter.set_result(None)
                break


def _current_task() -> asyncio.Task[Any] | None:
    try:
        return asyncio.current_task()
    except RuntimeError:
        return None


async def open_stdio_transport(**kwargs: Any) -> StdioTransport:
    """Build a transport over this process's own stdin/stdout pipes."""
    loop = asyncio.get_running_loop()

    reader = asyncio.StreamReader()
    protocol = asyncio.StreamReaderProtocol(reader)
    await loop.connect_read_pipe(lambda: protocol, sys.stdin)

    w_transport, w_protocol = await loop.connect_write_pipe(
        asyncio.streams.FlowControlMixin, sys.stdout
    )
    writer = asyncio.StreamWriter(w_transport, w_protocol, reader, loop)
    return StdioTransport(reader, writer, **kwargs)
