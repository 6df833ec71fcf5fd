"""Google Tasks sync provider."""

from typing import Any, Dict, Optional

import httpx

from ...auth.manager import OAuthManager
from ...auth.models import OAuthProvider
from ...exceptions import ValidationError
from ..api.google_tasks import GoogleTasksAPI
from ..batch import BatchExecutor
from ..ids import GOOGLE_TAG
from ..list_mapper import CollectionBackend, ListMapper
from ..mappers.tasks import task_from_remote, task_to_remote
from ..models import Task
from ..store import EntityStore
from .base import CollectionSyncProvider, PullOutcome


DEFAULT_TASK_LIST = "Dashboard"


class GoogleTasksSyncProvider(CollectionSyncProvider):
    """Synchronizes local tasks with Google Tasks lists."""

    key = "google-tasks"
    name = "Google Tasks"
    oauth_provider = OAuthProvider.GOOGLE
    provider_tag = GOOGLE_TAG
    namespace = "google-tasks"

    def __init__(self, oauth_manager: Optional[OAuthManager], list_mapper: ListMapper,
                 api: Optional[GoogleTasksAPI] = None,
                 batch_executor: Optional[BatchExecutor] = None,
                 entity_store: Optional[EntityStore] = None,
                 default_collection: str = DEFAULT_TASK_LIST,
                 enabled: bool = True,
                 http_client: Optional[httpx.AsyncClient] = None):
        super().__init__(
            oauth_manager,
            list_mapper,
            batch_executor=batch_executor,
            entity_store=entity_store,
            default_collection=default_collection,
            enabled=enabled,
        )
        self.api = api or GoogleTasksAPI(self.access_token, http_client=http_client)

    @property
    def backend(self) -> CollectionBackend:
        return self.api

    def collection_of(self, entity: Task) -> Optional[str]:
        return entity.list_name or self.default_collection

    async def _fetch_collection(self, collection_id: str, collection_name: str) -> PullOutcome:
        outcome = PullOutcome()
        page_token: Optional[str] = None

        while True:
            page = await self.api.list_tasks_page(collection_id, page_token)
            for item in page.items:
                try:
                    task = task_from_remote(item, list_name=collection_name)
                except ValidationError as e:
                    outcome.skipped.append(str(e))
                    continue
                if task is not None:
                    outcome.entities.append(task)

            page_token = page.next_page_token
            if not page_token:
                return outcome

    def _to_remote(self, entity: Task, for_create: bool) -> Dict[str, Any]:
        return task_to_remote(entity, for_create=for_create)

    async def _create_remote(self, collection_id: str, payload: Dict[str, Any]) -> str:
        created = await self.api.create_task(collection_id, payload)
        return created["id"]

    async def _update_remote(self, collection_id: str, remote_id: str, payload: Dict[str, Any]) -> None:
        await self.api.update_task(collection_id, remote_id, payload)

    async def _delete_remote(self, collection_id: str, remote_id: str) -> None:
        await self.api.delete_task(collection_id, remote_id)
