"""Key-value persistence backends.

Connections and collection mappings are stored as serialized strings under
string keys. Reads and writes are synchronous; callers own the payload format.
"""

import json
import logging
import os
import threading
from abc import ABC, abstractmethod
from pathlib import Path
from typing import Dict, List, Optional, Union

import keyring
from keyring.errors import KeyringError, PasswordDeleteError


logger = logging.getLogger(__name__)


class KeyValueStore(ABC):
    """Synchronous string-keyed, string-valued store."""

    @abstractmethod
    def get(self, key: str) -> Optional[str]:
        """Return the value stored under ``key`` or None."""
        pass

    @abstractmethod
    def set(self, key: str, value: str) -> None:
        """Store ``value`` under ``key``, replacing any previous value."""
        pass

    @abstractmethod
    def delete(self, key: str) -> None:
        """Remove ``key``; removing a missing key is not an error."""
        pass

    @abstractmethod
    def keys(self) -> List[str]:
        """List stored keys."""
        pass


class MemoryKeyValueStore(KeyValueStore):
    """Process-local store, used in tests and for ephemeral sessions."""

    def __init__(self, initial: Optional[Dict[str, str]] = None):
        self._data: Dict[str, str] = dict(initial or {})

    def get(self, key: str) -> Optional[str]:
        return self._data.get(key)

    def set(self, key: str, value: str) -> None:
        self._data[key] = value

    def delete(self, key: str) -> None:
        self._data.pop(key, None)

    def keys(self) -> List[str]:
        return list(self._data)


class JsonFileKeyValueStore(KeyValueStore):
    """Store backed by a single JSON object file.

    Every write rewrites the file through a temporary file and an atomic
    rename so a crash never leaves a truncated document behind.
    """

    def __init__(self, path: Union[str, Path]):
        self.path = Path(path)
        self._lock = threading.Lock()
        self.logger = logging.getLogger(__name__)

    def _read(self) -> Dict[str, str]:
        if not self.path.exists():
            return {}
        try:
            with open(self.path, 'r', encoding='utf-8') as f:
                data = json.load(f)
        except json.JSONDecodeError as e:
            self.logger.error(f"Corrupted store file {self.path}: {e}")
            return {}
        if not isinstance(data, dict):
            self.logger.error(f"Unexpected content in store file {self.path}, ignoring it")
            return {}
        return data

    def _write(self, data: Dict[str, str]) -> None:
        self.path.parent.mkdir(parents=True, exist_ok=True)
        temp_file = self.path.with_suffix('.tmp')
        with open(temp_file, 'w', encoding='utf-8') as f:
            json.dump(data, f, indent=2, sort_keys=True)
        os.replace(temp_file, self.path)
        # Tokens live in this file
        try:
            os.chmod(self.path, 0o600)
        except OSError:
            self.logger.debug(f"Could not restrict permissions on {self.path}")

    def get(self, key: str) -> Optional[str]:
        with self._lock:
            return self._read().get(key)

    def set(self, key: str, value: str) -> None:
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

    def keys(self) -> List[str]:
        with self._lock:
            return list(self._read())


class KeyringKeyValueStore(KeyValueStore):
    """Store backed by the system keyring.

    Keyring backends cannot enumerate entries, so the list of keys is kept
    in an index entry. When the backend fails at runtime the store keeps
    working from an in-process fallback and logs a warning.
    """

    SERVICE_NAME = "dashsync"
    INDEX_KEY = "__index__"

    def __init__(self, service_name: Optional[str] = None):
        self.service_name = service_name or self.SERVICE_NAME
        self._fallback_storage: Dict[str, str] = {}
        self._keyring_available = True
        self.logger = logging.getLogger(__name__)

    def _disable(self, error: Exception) -> None:
        if self._keyring_available:
            self.logger.warning(f"Keyring unavailable ({error}), using in-memory fallback storage")
        self._keyring_available = False

    def _load_index(self) -> List[str]:
        raw = self.get(self.INDEX_KEY)
        if not raw:
            return []
        try:
            return list(json.loads(raw))
        except (json.JSONDecodeError, TypeError):
            self.logger.error("Keyring key index is corrupted, rebuilding it")
            return []

    def _save_index(self, keys: List[str]) -> None:
        self._store(self.INDEX_KEY, json.dumps(sorted(set(keys))))

    def _store(self, key: str, value: str) -> None:
        if self._keyring_available:
            try:
                keyring.set_password(self.service_name, key, value)
                return
            except KeyringError as e:
                self._disable(e)
        self._fallback_storage[key] = value

    def get(self, key: str) -> Optional[str]:
        if self._keyring_available:
            try:
                value = keyring.get_password(self.service_name, key)
                if value is not None:
                    return value
            except KeyringError as e:
                self._disable(e)
        return self._fallback_storage.get(key)

    def set(self, key: str, value: str) -> None:
        self._store(key, value)
        if key != self.INDEX_KEY:
            index = self._load_index()
            if key not in index:
                index.append(key)
                self._save_index(index)

    def delete(self, key: str) -> None:
        self._fallback_storage.pop(key, None)
        if self._keyring_available:
            try:
                keyring.delete_password(self.service_name, key)
            except PasswordDeleteError:
                pass
            except KeyringError as e:
                self._disable(e)
        index = self._load_index()
        if key in index:
            index.remove(key)
            self._save_index(index)

    def keys(self) -> List[str]:
        return self._load_index()
