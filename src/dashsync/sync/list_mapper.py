"""Resolution of local collection names to remote collection ids.

Each provider service keeps its own ``local name -> remote id`` table in the
key-value store. A cached id is confirmed with a cheap existence probe;
when the probe reports the collection missing, the entry is discarded and
resolved again from the full collection list, creating the collection if no
exact name match exists.
"""

import json
import logging
from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import Dict, List, Optional

from ..storage import KeyValueStore


logger = logging.getLogger(__name__)


@dataclass
class RemoteCollection:
    """A remote task list or calendar."""

    id: str
    name: str


class CollectionBackend(ABC):
    """Remote operations needed to resolve collections."""

    @abstractmethod
    async def probe_collection(self, collection_id: str) -> bool:
        """Return False if the collection does not exist (404); other failures raise."""
        pass

    @abstractmethod
    async def list_collections(self) -> List[RemoteCollection]:
        pass

    @abstractmethod
    async def create_collection(self, name: str) -> RemoteCollection:
        pass


class ListMapper:
    """Persisted cache of collection ids with self-healing on staleness."""

    KEY_PREFIX = "list_mappings:"

    def __init__(self, store: KeyValueStore):
        self.store = store
        self.logger = logging.getLogger(__name__)

    def _key(self, namespace: str) -> str:
        return f"{self.KEY_PREFIX}{namespace}"

    def get_mappings(self, namespace: str) -> Dict[str, str]:
        raw = self.store.get(self._key(namespace))
        if not raw:
            return {}
        try:
            data = json.loads(raw)
        except json.JSONDecodeError:
            self.logger.error(f"Collection mappings for {namespace} are corrupted, starting over")
            return {}
        return {str(k): str(v) for k, v in data.items()} if isinstance(data, dict) else {}

    def _save_mappings(self, namespace: str, mappings: Dict[str, str]) -> None:
        self.store.set(self._key(namespace), json.dumps(mappings, sort_keys=True))

    def cached_id(self, namespace: str, local_name: str) -> Optional[str]:
        return self.get_mappings(namespace).get(local_name)

    def remember(self, namespace: str, local_name: str, remote_id: str) -> None:
        mappings = self.get_mappings(namespace)
        mappings[local_name] = remote_id
        self._save_mappings(namespace, mappings)

    def invalidate(self, namespace: str, local_name: str) -> None:
        """Discard the cached id for ``local_name``."""
        mappings = self.get_mappings(namespace)
        if mappings.pop(local_name, None) is not None:
            self._save_mappings(namespace, mappings)
            self.logger.info(f"Discarded cached {namespace} collection id for {local_name!r}")

    def clear(self, namespace: str) -> None:
        self.store.delete(self._key(namespace))

    async def resolve(self, namespace: str, local_name: str, backend: CollectionBackend) -> str:
        """Resolve ``local_name`` to a remote collection id.

        Args:
            namespace: Provider service owning the mapping table
            local_name: Local collection name
            backend: Remote operations of that service

        Returns:
            Remote collection id, cached for the next call

        Raises:
            SyncError: If a remote call fails for a reason other than the
                cached collection being missing
        """
        cached = self.cached_id(namespace, local_name)
        if cached is not None:
            if await backend.probe_collection(cached):
                return cached
            self.logger.warning(f"Cached {namespace} collection {cached} for {local_name!r} no longer exists")
            self.invalidate(namespace, local_name)

        collections = await backend.list_collections()
        match = next((c for c in collections if c.name == local_name), None)
        if match is None:
            match = await backend.create_collection(local_name)
            self.logger.info(f"Created {namespace} collection {local_name!r} ({match.id})")
        else:
            self.logger.debug(f"Matched {namespace} collection {local_name!r} to {match.id}")

        self.remember(namespace, local_name, match.id)
        return match.id
