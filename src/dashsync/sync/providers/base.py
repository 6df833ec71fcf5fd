"""Base classes for sync providers.

A sync provider composes the OAuth manager, the list mapper, an entity
mapper and the batch executor into ``pull`` (remote to local) and ``push``
(local to remote). ``sync`` runs both against an attached local store and
never raises; every failure ends up in the returned :class:`SyncResult`.
"""

import logging
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Dict, List, Optional, Sequence, Tuple

from ...auth.manager import OAuthManager
from ...auth.models import OAuthProvider
from ...exceptions import (
    NoConnectionError,
    NotFoundError,
    StaleReferenceError,
    SyncError,
    ValidationError,
    reconnect_required,
)
from ..batch import BatchExecutor
from ..ids import RemoteId, parse_entity_id, tag_remote
from ..list_mapper import CollectionBackend, ListMapper
from ..models import BatchItemResult, BatchOperationGroup, Entity, OperationType, SyncResult
from ..store import EntityStore


logger = logging.getLogger(__name__)


@dataclass
class PullOutcome:
    """Entities read from one or more collections plus the items skipped."""

    entities: List[Entity] = field(default_factory=list)
    skipped: List[str] = field(default_factory=list)

    def extend(self, other: "PullOutcome") -> None:
        self.entities.extend(other.entities)
        self.skipped.extend(other.skipped)


@dataclass
class PushOutcome:
    """Identifier reconciliation map and per-item results of a push."""

    created: Dict[str, str] = field(default_factory=dict)
    results: List[BatchItemResult] = field(default_factory=list)

    @property
    def failures(self) -> List[BatchItemResult]:
        return [r for r in self.results if not r.success]

    @property
    def succeeded(self) -> int:
        return sum(1 for r in self.results if r.success)


class SyncProvider(ABC):
    """Base class for all sync providers."""

    key: str = ""
    name: str = ""
    oauth_provider: Optional[OAuthProvider] = None

    def __init__(self, oauth_manager: Optional[OAuthManager] = None,
                 entity_store: Optional[EntityStore] = None,
                 enabled: bool = True):
        """Initialize the provider.

        Args:
            oauth_manager: Source of access tokens
            entity_store: Local store used by sync()
            enabled: Whether the sync manager should run this provider
        """
        self.oauth_manager = oauth_manager
        self.entity_store = entity_store
        self.enabled = enabled
        self.logger = logging.getLogger(f"{self.__class__.__module__}.{self.__class__.__name__}")

    @abstractmethod
    async def pull(self, collection_name: Optional[str] = None) -> List[Entity]:
        """Read remote entities and convert them to local ones.

        Args:
            collection_name: Local collection name; provider default when omitted

        Returns:
            Entities with provider-tagged identifiers
        """
        pass

    @abstractmethod
    async def push(self, entities: Sequence[Entity], collection_name: Optional[str] = None) -> Dict[str, str]:
        """Write local entities to the provider.

        Args:
            entities: Entities to create (untagged) or update (tagged)
            collection_name: Local collection name; provider default when omitted

        Returns:
            Mapping of local id to newly tagged id for every successful create
        """
        pass

    @abstractmethod
    async def delete(self, entity_id: str, collection_name: Optional[str] = None) -> bool:
        """Delete the remote counterpart of a local entity."""
        pass

    async def sync(self) -> SyncResult:
        """Push pending local changes, then pull, capturing every failure.

        Returns:
            Result describing what happened; never raises
        """
        result = SyncResult(provider=self.key)
        try:
            await self._sync(result)
        except Exception as e:
            error = SyncError.from_error(e)
            result.add_error(str(error))
            result.reconnect_required = reconnect_required(error)
            self.logger.error(f"{self.name} sync failed: {error}")
        result.complete()
        return result

    @abstractmethod
    async def _sync(self, result: SyncResult) -> None:
        """Perform the sync, raising on failure."""
        pass


class CollectionSyncProvider(SyncProvider):
    """Sync provider whose entities live in named remote collections.

    Subclasses supply the remote backend and the entity conversion; this
    class implements collection resolution with stale-reference recovery,
    create/update classification and batched writes.
    """

    provider_tag: str = ""
    namespace: str = ""

    def __init__(self, oauth_manager: Optional[OAuthManager],
                 list_mapper: ListMapper,
                 batch_executor: Optional[BatchExecutor] = None,
                 entity_store: Optional[EntityStore] = None,
                 default_collection: Optional[str] = None,
                 enabled: bool = True):
        super().__init__(oauth_manager, entity_store=entity_store, enabled=enabled)
        self.list_mapper = list_mapper
        self.batch_executor = batch_executor or BatchExecutor()
        self.default_collection = default_collection

    # Hooks implemented by concrete providers

    @property
    @abstractmethod
    def backend(self) -> CollectionBackend:
        pass

    @abstractmethod
    async def _fetch_collection(self, collection_id: str, collection_name: str) -> PullOutcome:
        """Read every entity of a collection, following pagination."""
        pass

    @abstractmethod
    def _to_remote(self, entity: Entity, for_create: bool) -> Dict[str, Any]:
        pass

    @abstractmethod
    async def _create_remote(self, collection_id: str, payload: Dict[str, Any]) -> str:
        """Create an entity and return its remote id."""
        pass

    @abstractmethod
    async def _update_remote(self, collection_id: str, remote_id: str, payload: Dict[str, Any]) -> None:
        pass

    @abstractmethod
    async def _delete_remote(self, collection_id: str, remote_id: str) -> None:
        pass

    def collection_of(self, entity: Entity) -> Optional[str]:
        """Local collection an entity belongs to, used by sync()."""
        return None

    # Shared implementation

    async def access_token(self, force_refresh: bool = False) -> str:
        if self.oauth_manager is None:
            raise NoConnectionError(f"{self.name} has no OAuth manager configured")
        return await self.oauth_manager.get_valid_access_token(self.oauth_provider, force_refresh=force_refresh)

    def _collection_name(self, collection_name: Optional[str]) -> str:
        name = collection_name or self.default_collection
        if not name:
            raise ValueError(f"{self.name} needs a collection name")
        return name

    async def resolve_collection(self, collection_name: Optional[str]) -> str:
        return await self.list_mapper.resolve(self.namespace, self._collection_name(collection_name), self.backend)

    async def pull(self, collection_name: Optional[str] = None) -> List[Entity]:
        outcome = await self._pull(collection_name)
        for message in outcome.skipped:
            self.logger.warning(f"Skipped remote item: {message}")
        return outcome.entities

    async def _pull(self, collection_name: Optional[str]) -> PullOutcome:
        name = self._collection_name(collection_name)

        # A collection deleted after its last probe 404s during the fetch.
        # Retry once from a clean resolution.
        for attempt in range(2):
            collection_id = await self.resolve_collection(name)
            try:
                outcome = await self._fetch_collection(collection_id, name)
            except NotFoundError as e:
                self.list_mapper.invalidate(self.namespace, name)
                if attempt == 1:
                    raise StaleReferenceError(
                        f"{self.name} collection {name!r} disappeared twice during pull",
                        original_error=e,
                    ) from e
                self.logger.warning(f"{self.name} collection {name!r} vanished during pull, resolving again")
                continue

            self.logger.info(f"Pulled {len(outcome.entities)} items from {self.name} collection {name!r}")
            return outcome

        return PullOutcome()

    async def push(self, entities: Sequence[Entity], collection_name: Optional[str] = None) -> Dict[str, str]:
        outcome = await self._push(entities, collection_name)
        return outcome.created

    def build_operations(self, entities: Sequence[Entity]) -> Tuple[List[BatchOperationGroup], List[BatchItemResult]]:
        """Classify entities into creates and updates and build their payloads.

        Returns:
            Operation groups, and failed results for entities rejected before
            any remote call
        """
        groups: List[BatchOperationGroup] = []
        rejected: List[BatchItemResult] = []

        for entity in entities:
            entity_id = entity.id
            try:
                if isinstance(entity_id, RemoteId):
                    if entity_id.provider_tag != self.provider_tag:
                        raise ValidationError(f"{entity_id} belongs to another provider")
                    groups.append(BatchOperationGroup(
                        entity=entity,
                        operation=OperationType.UPDATE,
                        payload=self._to_remote(entity, for_create=False),
                        remote_id=entity_id.remote_id,
                    ))
                else:
                    groups.append(BatchOperationGroup(
                        entity=entity,
                        operation=OperationType.CREATE,
                        payload=self._to_remote(entity, for_create=True),
                    ))
            except ValidationError as e:
                self.logger.warning(f"Not pushing {entity_id}: {e}")
                rejected.append(BatchItemResult(id=str(entity_id), success=False, error=str(e)))

        return groups, rejected

    async def _push(self, entities: Sequence[Entity], collection_name: Optional[str]) -> PushOutcome:
        groups, rejected = self.build_operations(entities)
        if not groups:
            return PushOutcome(results=rejected)

        collection_id = await self.resolve_collection(collection_name)

        async def apply(group: BatchOperationGroup) -> str:
            if group.operation == OperationType.CREATE:
                return await self._create_remote(collection_id, group.payload)
            await self._update_remote(collection_id, group.remote_id, group.payload)
            return group.remote_id

        results = await self.batch_executor.execute(groups, apply)

        created = {
            result.id: str(tag_remote(self.provider_tag, result.remote_id))
            for group, result in zip(groups, results)
            if group.operation == OperationType.CREATE and result.success and result.remote_id
        }
        outcome = PushOutcome(created=created, results=rejected + results)
        self.logger.info(
            f"Pushed {outcome.succeeded}/{len(entities)} items to {self.name} "
            f"({len(created)} created, {len(outcome.failures)} failed)"
        )
        return outcome

    async def delete(self, entity_id: str, collection_name: Optional[str] = None) -> bool:
        """Delete the remote counterpart of ``entity_id``.

        Returns:
            False for locally originated entities, which have nothing remote
        """
        parsed = self._parse_id(entity_id)
        if parsed is None:
            return False
        collection_id = await self.resolve_collection(collection_name)
        await self._delete_remote(collection_id, parsed.remote_id)
        return True

    def _parse_id(self, entity_id: str) -> Optional[RemoteId]:
        parsed = parse_entity_id(entity_id, tags=(self.provider_tag,))
        return parsed if isinstance(parsed, RemoteId) else None

    def _is_pending(self, entity: Entity, since: Optional[datetime]) -> bool:
        if not isinstance(entity.id, RemoteId):
            return True
        return since is not None and entity.updated_at > since

    def _pull_targets(self, local: Sequence[Entity]) -> List[Optional[str]]:
        names = {self.collection_of(e) for e in local}
        names.discard(None)
        return [self.default_collection] + sorted(n for n in names if n != self.default_collection)

    async def _sync(self, result: SyncResult) -> None:
        connection = self.oauth_manager.get_connection(self.oauth_provider) if self.oauth_manager else None
        if connection is None:
            raise NoConnectionError(f"{self.name} is not connected")
        since = connection.last_sync_at

        local = self.entity_store.load_all() if self.entity_store else []
        pending = [e for e in local if self._is_pending(e, since)]

        # Push pending local changes grouped by collection
        by_collection: Dict[Optional[str], List[Entity]] = {}
        for entity in pending:
            by_collection.setdefault(self.collection_of(entity), []).append(entity)

        for collection_name, entities in by_collection.items():
            outcome = await self._push(entities, collection_name)
            for old_id, new_id in outcome.created.items():
                self.entity_store.rename(old_id, new_id)
            result.pushed_count += outcome.succeeded
            for failure in outcome.failures:
                result.skipped_count += 1
                result.add_warning(f"{failure.id}: {failure.error}")

        # Pull every collection we know about
        pulled = PullOutcome()
        for collection_name in self._pull_targets(local):
            pulled.extend(await self._pull(collection_name))

        if self.entity_store is not None:
            self.entity_store.upsert(pulled.entities)
        result.pulled_count = len(pulled.entities)
        result.skipped_count += len(pulled.skipped)
        for message in pulled.skipped:
            result.add_warning(message)

        result.synced_count = result.pushed_count + result.pulled_count
        self.oauth_manager.touch_last_sync(self.oauth_provider)
