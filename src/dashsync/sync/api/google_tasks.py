"""Google Tasks REST API client."""

from typing import Any, Dict, List, Optional

from ...exceptions import NotFoundError
from ..list_mapper import CollectionBackend, RemoteCollection
from ..schemas import GoogleTaskList, GoogleTaskListsPage, GoogleTasksPage, validate_payload
from .base import GoogleApiClient


TASKS_PAGE_SIZE = 100


class GoogleTasksAPI(GoogleApiClient, CollectionBackend):
    """Task lists and tasks of the connected Google account."""

    BASE_URL = "https://www.googleapis.com/tasks/v1"
    SERVICE_NAME = "Google Tasks"

    # Task lists

    async def list_collections(self) -> List[RemoteCollection]:
        """Get all task lists, following pagination."""
        collections: List[RemoteCollection] = []
        page_token: Optional[str] = None
        while True:
            data = await self._make_request("GET", "users/@me/lists", params={"pageToken": page_token})
            page = validate_payload(GoogleTaskListsPage, data)
            collections.extend(RemoteCollection(id=item.id, name=item.title) for item in page.items)
            page_token = page.next_page_token
            if not page_token:
                return collections

    async def probe_collection(self, collection_id: str) -> bool:
        """Check that a task list still exists by reading at most one task."""
        try:
            await self._make_request("GET", f"lists/{collection_id}/tasks", params={"maxResults": 1})
        except NotFoundError:
            return False
        return True

    async def create_collection(self, name: str) -> RemoteCollection:
        data = await self._make_request("POST", "users/@me/lists", data={"title": name})
        task_list = validate_payload(GoogleTaskList, data)
        return RemoteCollection(id=task_list.id, name=task_list.title or name)

    # Tasks

    async def list_tasks_page(self, list_id: str, page_token: Optional[str] = None) -> GoogleTasksPage:
        """Get one page of tasks, completed ones included and hidden ones excluded."""
        data = await self._make_request("GET", f"lists/{list_id}/tasks", params={
            "showCompleted": "true",
            "showHidden": "false",
            "maxResults": TASKS_PAGE_SIZE,
            "pageToken": page_token,
        })
        return validate_payload(GoogleTasksPage, data)

    async def create_task(self, list_id: str, payload: Dict[str, Any]) -> Dict[str, Any]:
        return await self._make_request("POST", f"lists/{list_id}/tasks", data=payload)

    async def update_task(self, list_id: str, task_id: str, payload: Dict[str, Any]) -> Dict[str, Any]:
        return await self._make_request("PATCH", f"lists/{list_id}/tasks/{task_id}", data=payload)

    async def delete_task(self, list_id: str, task_id: str) -> bool:
        """Delete a task; a task that is already gone counts as deleted."""
        try:
            await self._make_request("DELETE", f"lists/{list_id}/tasks/{task_id}")
        except NotFoundError:
            self.logger.debug(f"Task {task_id} already deleted")
        return True
