"""Shared helper functions for the engines of the mock agent."""

from __future__ import annotations

import asyncio
import math
from collections.abc import Awaitable, Callable
from typing import Any

#: Coroutine that writes one outbound message.
Emit = Callable[[dict[str, Any]], Awaitable[None]]

#: Cooperative yield point awaited between streamed units.
Checkpoint = Callable[[], Awaitable[None]]


def chunk_text(text: str, parts: int) -> list[str]:
    """Split *text* into at most *parts* contiguous, equally sized chunks.

    The chunk size is ``ceil(len / parts)``, so short texts produce fewer
    chunks than requested.  Always returns at least one chunk.
    """
    if parts <= 1:
        return [text]
    size = math.ceil(len(text) / parts)
    chunks = [
        text[start : start + size]
        for start in range(0, len(text), size or 1)
    ][:parts]
    return chunks or [""]


async def yield_now() -> None:
    """Default checkpoint: give other coroutines one loop iteration."""
    await asyncio.sleep(0)
