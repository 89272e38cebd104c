"""
Local persistence for saved comparison records and the user's API token.

Both live in a small key/value store. `JsonFileKeyValueStore` keeps every key
in a single JSON file and rewrites it atomically on each change; concurrent
writers from different processes are last-write-wins.
"""

from __future__ import annotations

from datetime import datetime, timezone
import json
import logging
import os
from pathlib import Path
import tempfile
import threading
import uuid
from typing import Any, Dict, List, Optional

from pydantic import ValidationError

from .errors import StorageError
from .models import Record

logger = logging.getLogger(__name__)

RECORDS_KEY = "bg_compare_tests"
API_KEY_KEY = "replicate_api_key"


class KeyValueStore:
    """Minimal key/value interface the record and credential stores depend on."""

    def get(self, key: str, default: Any = None) -> Any:
        raise NotImplementedError

    def set(self, key: str, value: Any) -> None:
        raise NotImplementedError

    def delete(self, key: str) -> None:
        raise NotImplementedError

    def list_all(self) -> Dict[str, Any]:
        raise NotImplementedError


class MemoryKeyValueStore(KeyValueStore):
    def __init__(self, initial: Optional[Dict[str, Any]] = None):
        self._data: Dict[str, Any] = dict(initial or {})
        self._lock = threading.Lock()

    def get(self, key: str, default: Any = None) -> Any:
        with self._lock:
            return self._data.get(key, default)

    def set(self, key: str, value: Any) -> None:
        with self._lock:
            self._data[key] = value

    def delete(self, key: str) -> None:
        with self._lock:
            self._data.pop(key, None)

    def list_all(self) -> Dict[str, Any]:
        with self._lock:
            return dict(self._data)


class JsonFileKeyValueStore(KeyValueStore):
    """All keys in one JSON object on disk."""

    def __init__(self, path: Path):
        self.path = Path(path)
        self._lock = threading.Lock()

    def _read(self) -> Dict[str, Any]:
        if not self.path.exists():
            return {}
        try:
            with open(self.path, "r", encoding="utf-8") as f:
                data = json.load(f)
        except (OSError, json.JSONDecodeError) as exc:
            raise StorageError(f"Could not read store at {self.path}: {exc}") from exc
        if not isinstance(data, dict):
            raise StorageError(f"Store at {self.path} is not a JSON object")
        return data

    def _write(self, data: Dict[str, Any]) -> None:
        try:
            self.path.parent.mkdir(parents=True, exist_ok=True)
            fd, tmp_name = tempfile.mkstemp(prefix=".kv-", suffix=".json", dir=self.path.parent)
            try:
                with os.fdopen(fd, "w", encoding="utf-8") as f:
                    json.dump(data, f, indent=2, ensure_ascii=False)
                os.replace(tmp_name, self.path)
            except BaseException:
                if os.path.exists(tmp_name):
                    os.unlink(tmp_name)
                raise
        except OSError as exc:
            raise StorageError(f"Could not write store at {self.path}: {exc}") from exc

    def get(self, key: str, default: Any = None) -> Any:
        with self._lock:
            return self._read().get(key, default)

    def set(self, key: str, value: Any) -> None:
        with self._lock:
            data = self._read()
            data[key] = value
            self._write(data)

    def delete(self, key: str) -> None:
        with self._lock:
            data = self._read()
            if key in data:
                del data[key]
                self._write(data)

    def list_all(self) -> Dict[str, Any]:
        with self._lock:
            return self._read()


class RecordStore:
    """Saved comparison records, newest first."""

    def __init__(self, kv: KeyValueStore, key: str = RECORDS_KEY):
        self.kv = kv
        self.key = key

    def _load_raw(self) -> List[Dict[str, Any]]:
        raw = self.kv.get(self.key, [])
        if not isinstance(raw, list):
            raise StorageError(f"Record list under '{self.key}' is corrupt")
        return raw

    def create(self, record: Record) -> Record:
        saved = record.model_copy(
            update={
                "id": str(uuid.uuid4()),
                "timestamp": datetime.now(timezone.utc).isoformat(),
            }
        )
        raw = self._load_raw()
        raw.insert(0, saved.model_dump(mode="json"))
        self.kv.set(self.key, raw)
        logger.info("saved record id=%s name=%s category=%s", saved.id, saved.name, saved.category)
        return saved

    def list(self) -> List[Record]:
        records = []
        for item in self._load_raw():
            try:
                records.append(Record.model_validate(item))
            except ValidationError as exc:
                logger.warning("skipping unreadable record %s: %s", item.get("id") if isinstance(item, dict) else item, exc)
        return records

    def get(self, record_id: str) -> Optional[Record]:
        for record in self.list():
            if record.id == record_id:
                return record
        return None

    def delete(self, record_id: str) -> bool:
        raw = self._load_raw()
        kept = [item for item in raw if not (isinstance(item, dict) and item.get("id") == record_id)]
        if len(kept) == len(raw):
            return False
        self.kv.set(self.key, kept)
        logger.info("deleted record id=%s", record_id)
        return True


class CredentialStore:
    """The user's own Replicate token, kept apart from the records."""

    def __init__(self, kv: KeyValueStore, key: str = API_KEY_KEY):
        self.kv = kv
        self.key = key

    def get(self) -> Optional[str]:
        value = self.kv.get(self.key)
        return value or None

    def set(self, token: str) -> None:
        if not token:
            raise ValueError("token must not be empty")
        self.kv.set(self.key, token)

    def clear(self) -> None:
        self.kv.delete(self.key)
