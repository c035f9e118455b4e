"""One-JSON-file-per-record store under the project cache directory."""

from __future__ import annotations

import json
import logging
import re
from dataclasses import dataclass
from pathlib import Path
from typing import Generic, TypeVar

from pydantic import BaseModel, ValidationError

from agentinterop.constants import CACHE_DIR
from agentinterop.storage.models import PersistedChat, PersistedSession

logger = logging.getLogger(__name__)

#: Record ids may only contain these characters so paths stay inside the store.
_SAFE_ID_RE = re.compile(r"^[A-Za-z0-9_.-]+$")

SESSIONS_DIR = Path(CACHE_DIR) / "sessions"
CHATS_DIR = Path(CACHE_DIR) / "chats"

_R = TypeVar("_R", bound=BaseModel)


class RecordNotFoundError(Exception):
    """No readable record exists for the requested id."""

    def __init__(self, record_id: str, reason: str = "not found") -> None:
        super().__init__(f"{record_id}: {reason}")
        self.record_id = record_id


@dataclass(frozen=True)
class RecordRef:
    record_id: str
    path: Path
    mtime: float


class JsonRecordStore(Generic[_R]):
    """Read and write pydantic records as pretty-printed JSON files."""

    def __init__(self, directory: Path, model: type[_R]) -> None:
        self._directory = Path(directory)
        self._model = model

    @property
    def directory(self) -> Path:
        return self._directory

    def path(self, record_id: str) -> Path:
        if record_id in {".", ".."} or not _SAFE_ID_RE.match(record_id):
            msg = (
                f"Invalid record id {record_id!r}: use letters, digits, "
                "'.', '_' or '-'"
            )
            raise ValueError(msg)
        return self._directory / f"{record_id}.json"

    def exists(self, record_id: str) -> bool:
        return self.path(record_id).is_file()

    def read(self, record_id: str) -> _R:
        path = self.path(record_id)
        try:
            raw = json.loads(path.read_text(encoding="utf-8"))
        except FileNotFoundError as exc:
            raise RecordNotFoundError(record_id) from exc
        except (OSError, json.JSONDecodeError) as exc:
            raise RecordNotFoundError(record_id, f"unreadable ({exc})") from exc

        try:
            return self._model.model_validate(raw)
        except ValidationError as exc:
            raise RecordNotFoundError(record_id, "invalid record") from exc

    def write(self, record_id: str, record: _R) -> Path:
        path = self.path(record_id)
        self._directory.mkdir(parents=True, exist_ok=True)
        data = record.model_dump(mode="json", by_alias=True)
        path.write_text(json.dumps(data, indent=2) + "\n", encoding="utf-8")
        logger.debug("wrote %s", path)
        return path

    def delete(self, record_id: str) -> None:
        self.path(record_id).unlink(missing_ok=True)

    def list(self) -> list[RecordRef]:
        """Return every record, most recently modified first."""
        if not self._directory.is_dir():
            return []
        refs: list[RecordRef] = []
        for entry in self._directory.glob("*.json"):
            try:
                mtime = entry.stat().st_mtime
            except OSError:
                # Deleted between glob and stat.
                continue
            refs.append(RecordRef(record_id=entry.stem, path=entry, mtime=mtime))
        refs.sort(key=lambda ref: ref.mtime, reverse=True)
        return refs


def session_store(root: Path | None = None) -> JsonRecordStore[PersistedSession]:
    directory = (root / "sessions") if root is not None else SESSIONS_DIR
    return JsonRecordStore(directory, PersistedSession)


def chat_store(root: Path | None = None) -> JsonRecordStore[PersistedChat]:
    directory = (root / "chats") if root is not None else CHATS_DIR
    return JsonRecordStore(directory, PersistedChat)
