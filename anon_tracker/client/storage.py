# anon_tracker/client/storage.py

import json
import os
import tempfile
import threading
from pathlib import Path

from anon_tracker.services.errors import StorageUnavailable


class MemoryStorage:
    """Key-value scope that lives as long as the process."""

    def __init__(self, initial=None):
        self._items = dict(initial or {})

    def get_item(self, key):
        return self._items.get(key)

    def set_item(self, key, value):
        self._items[key] = value


class JSONFileStorage:
    """
    Key-value scope persisted as one JSON object in a file, the on-disk
    counterpart of browser localStorage. One file is one scope.
    """

    def __init__(self, path):
        self.path = Path(path)
        self._lock = threading.Lock()

    def _read(self):
        try:
            raw = self.path.read_text(encoding="utf-8")
        except FileNotFoundError:
            return {}
        except OSError as e:
            raise StorageUnavailable(f"Cannot read {self.path}: {e}") from e

        try:
            data = json.loads(raw) if raw.strip() else {}
        except json.JSONDecodeError as e:
            raise StorageUnavailable(f"{self.path} is not valid JSON: {e}") from e
        if not isinstance(data, dict):
            raise StorageUnavailable(f"{self.path} does not hold a JSON object")
        return data

    def get_item(self, key):
        with self._lock:
            value = self._read().get(key)
        return value if isinstance(value, str) else None

    def set_item(self, key, value):
        with self._lock:
            data = self._read()
            data[key] = value
            try:
                self.path.parent.mkdir(parents=True, exist_ok=True)
                # Atomic replace: readers never see a partial file.
                fd, tmp = tempfile.mkstemp(dir=self.path.parent, prefix=".storage-")
                with os.fdopen(fd, "w", encoding="utf-8") as fh:
                    json.dump(data, fh, indent=2, sort_keys=True)
                os.replace(tmp, self.path)
            except OSError as e:
                raise StorageUnavailable(f"Cannot write {self.path}: {e}") from e
