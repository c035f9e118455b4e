"""Shared constants for the agentinterop runtime."""

from __future__ import annotations

#: Largest frame payload accepted on a transport (100 MiB).
MAX_FRAME_BYTES = 100 * 1024 * 1024

#: Protocol version announced in the agent's ``ready`` message.
PROTOCOL_VERSION = 1

#: Id of the built-in deterministic agent.
MOCK_AGENT_ID = "mock-agent"

#: Provider namespace served by locally spawned agents.
LOCAL_PROVIDER_ID = "local"

#: The only skill the bundled agents understand.
CHAT_SKILL = "chat"

#: Env var toggling streaming in the mock agent ("1/true/on", "0/false/off").
STREAMING_ENV_VAR = "AGENTINTEROP_STREAMING"

#: Default number of chunks a mock response is split into.
DEFAULT_CHUNKS = 5

#: Default ``tasks/list`` page size.
DEFAULT_PAGE_LIMIT = 50

#: Seconds a driver waits for any single reply before giving up.
DEFAULT_REPLY_TIMEOUT = 10.0

#: Project-scoped cache directory for sessions and chats.
CACHE_DIR = ".cache/agentinterop"
