"""Persistence for CLI sessions and chats."""

from agentinterop.storage.models import PersistedChat, PersistedSession
from agentinterop.storage.store import (
    JsonRecordStore,
    RecordNotFoundError,
    RecordRef,
    chat_store,
    session_store,
)

__all__ = [
    "JsonRecordStore",
    "PersistedChat",
    "PersistedSession",
    "RecordNotFoundError",
    "RecordRef",
    "chat_store",
    "session_store",
]
