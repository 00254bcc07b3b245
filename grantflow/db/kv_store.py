from __future__ import annotations

import json
import os
import tempfile
import threading
from pathlib import Path
from typing import Any, Protocol

from ..observability.logging import get_logger

log = get_logger("kv_store")


class KeyValueStore(Protocol):
    """
    Get/set/delete bag the core persists into.

    Only single-key atomicity is assumed; there are no transactions across keys.
    Values must be JSON-serializable.
    """

    def get(self, key: str, default: Any = None) -> Any: ...

    def set(self, key: str, value: Any) -> None: ...

    def delete(self, key: str) -> None: ...


class InMemoryKeyValueStore:
    def __init__(self, initial: dict[str, Any] | None = None):
        self._items: dict[str, Any] = {}
        for k, v in (initial or {}).items():
            self._items[str(k)] = _roundtrip(v)

    def get(self, key: str, default: Any = None) -> Any:
        if key not in self._items:
            return default
        # Hand out copies so callers cannot mutate stored state in place.
        return _roundtrip(self._items[key])

    def set(self, key: str, value: Any) -> None:
        self._items[str(key)] = _roundtrip(value)

    def delete(self, key: str) -> None:
        self._items.pop(str(key), None)

    def keys(self) -> list[str]:
        return list(self._items.keys())


class JsonFileKeyValueStore:
    """
    Single JSON document on disk. Each `set`/`delete` rewrites the document via
    write-to-temp + os.replace so a crash never leaves a torn file.
    """

    def __init__(self, path: str | Path):
        self.path = Path(path)
        self._lock = threading.Lock()
        self._items: dict[str, Any] = self._read()

    def _read(self) -> dict[str, Any]:
        if not self.path.exists():
            return {}
        try:
            raw = json.loads(self.path.read_text(encoding="utf-8") or "{}")
        except json.JSONDecodeError as e:
            log.warning("kv_store_corrupt_document", path=str(self.path), error=str(e))
            return {}
        return raw if isinstance(raw, dict) else {}

    def _write(self) -> None:
        self.path.parent.mkdir(parents=True, exist_ok=True)
        fd, tmp = tempfile.mkstemp(prefix=".kv-", dir=str(self.path.parent))
        try:
            with os.fdopen(fd, "w", encoding="utf-8") as f:
                json.dump(self._items, f, ensure_ascii=False, indent=2, default=str)
            os.replace(tmp, self.path)
        except Exception:
            Path(tmp).unlink(missing_ok=True)
            raise

    def get(self, key: str, default: Any = None) -> Any:
        with self._lock:
            if key not in self._items:
                return default
            return _roundtrip(self._items[key])

    def set(self, key: str, value: Any) -> None:
        with self._lock:
            self._items[str(key)] = _roundtrip(value)
            self._write()

    def delete(self, key: str) -> None:
        with self._lock:
            if self._items.pop(str(key), None) is not None:
                self._write()


def _roundtrip(value: Any) -> Any:
    return json.loads(json.dumps(value, default=str))


def open_store(path: str | None = None) -> KeyValueStore:
    if path and str(path).strip():
        return JsonFileKeyValueStore(str(path).strip())
    return InMemoryKeyValueStore()
