"""Small helpers shared by the supervisor and the command layer."""

from __future__ import annotations

import secrets
import time


def format_stderr_preview(stderr_text: str, max_lines: int = 5) -> str:
    """Extract and format the last N non-empty lines from stderr output."""
    lines = [line for line in stderr_text.split("\n") if line.strip()]
    last = lines[-max_lines:] if len(lines) > max_lines else lines
    return "\n  ".join(last)


def random_id(prefix: str) -> str:
    """Return ``<prefix>-<epoch ms>-<8 hex chars>``."""
    return f"{prefix}-{int(time.time() * 1000)}-{secrets.token_hex(4)}"
