"""Providers that can be connected but not yet synchronized."""

from typing import Dict, List, Optional, Sequence

from ...auth.models import OAuthProvider
from ...exceptions import ProviderNotImplementedError
from ..models import Entity, SyncResult
from .base import SyncProvider


class NotImplementedSyncProvider(SyncProvider):
    """Sync provider placeholder reporting every operation as not implemented."""

    def _not_implemented(self) -> ProviderNotImplementedError:
        return ProviderNotImplementedError(f"{self.name} synchronization is not yet implemented")

    async def pull(self, collection_name: Optional[str] = None) -> List[Entity]:
        raise self._not_implemented()

    async def push(self, entities: Sequence[Entity], collection_name: Optional[str] = None) -> Dict[str, str]:
        raise self._not_implemented()

    async def delete(self, entity_id: str, collection_name: Optional[str] = None) -> bool:
        raise self._not_implemented()

    async def _sync(self, result: SyncResult) -> None:
        raise self._not_implemented()


class OutlookCalendarSyncProvider(NotImplementedSyncProvider):
    key = "outlook-calendar"
    name = "Outlook Calendar"
    oauth_provider = OAuthProvider.MICROSOFT


class NotionSyncProvider(NotImplementedSyncProvider):
    key = "notion"
    name = "Notion"
    oauth_provider = OAuthProvider.NOTION
