"""Google Calendar sync provider."""

import re
from datetime import datetime
from typing import Any, Callable, Dict, List, Optional, Sequence

import httpx

from ...auth.manager import OAuthManager
from ...auth.models import OAuthProvider
from ...exceptions import NotFoundError, PermissionDeniedError, ValidationError
from ...utils.datetime import add_months, now_utc
from ..api.google_calendar import PRIMARY_CALENDAR, GoogleCalendarAPI
from ..batch import BatchExecutor
from ..ids import GOOGLE_TAG
from ..list_mapper import CollectionBackend, ListMapper
from ..mappers.calendar import event_from_remote, event_to_remote
from ..models import CalendarEvent, Entity
from ..store import EntityStore
from .base import CollectionSyncProvider, PullOutcome


# Week-number calendars only mirror the date
_WEEK_NUMBER_CALENDAR = re.compile(r"^(week|semaine)\s+\d+$", re.IGNORECASE)


class GoogleCalendarSyncProvider(CollectionSyncProvider):
    """Synchronizes local events with Google calendars.

    Without a calendar name, pull reads every visible calendar and push
    writes to the primary calendar.
    """

    key = "google-calendar"
    name = "Google Calendar"
    oauth_provider = OAuthProvider.GOOGLE
    provider_tag = GOOGLE_TAG
    namespace = "google-calendar"

    def __init__(self, oauth_manager: Optional[OAuthManager], list_mapper: ListMapper,
                 api: Optional[GoogleCalendarAPI] = None,
                 batch_executor: Optional[BatchExecutor] = None,
                 entity_store: Optional[EntityStore] = None,
                 default_collection: Optional[str] = None,
                 window_months: int = 3,
                 enabled: bool = True,
                 http_client: Optional[httpx.AsyncClient] = None,
                 clock: Callable[[], datetime] = now_utc):
        super().__init__(
            oauth_manager,
            list_mapper,
            batch_executor=batch_executor,
            entity_store=entity_store,
            default_collection=default_collection,
            enabled=enabled,
        )
        self.api = api or GoogleCalendarAPI(self.access_token, http_client=http_client)
        self.window_months = window_months
        self.clock = clock

    @property
    def backend(self) -> CollectionBackend:
        return self.api

    def time_window(self):
        """Pull window: ``window_months`` back and forward from now."""
        now = self.clock()
        return add_months(now, -self.window_months), add_months(now, self.window_months)

    def collection_of(self, entity: CalendarEvent) -> Optional[str]:
        return entity.source_calendar or self.default_collection

    async def resolve_collection(self, collection_name: Optional[str]) -> str:
        name = collection_name or self.default_collection
        if not name or name == PRIMARY_CALENDAR:
            return PRIMARY_CALENDAR
        return await super().resolve_collection(name)

    async def _pull(self, collection_name: Optional[str]) -> PullOutcome:
        name = collection_name or self.default_collection
        if name == PRIMARY_CALENDAR:
            return await self._fetch_collection(PRIMARY_CALENDAR, PRIMARY_CALENDAR)
        if name:
            return await super()._pull(name)
        return await self._pull_all_calendars()

    async def _pull_all_calendars(self) -> PullOutcome:
        """Read every visible calendar, isolating per-calendar failures."""
        outcome = PullOutcome()
        for calendar in await self.api.list_calendars():
            if _WEEK_NUMBER_CALENDAR.match(calendar.summary.strip()):
                continue
            name = PRIMARY_CALENDAR if calendar.primary else calendar.summary
            try:
                outcome.extend(await self._fetch_collection(calendar.id, name))
            except (NotFoundError, PermissionDeniedError) as e:
                self.logger.warning(f"Skipping calendar {calendar.summary!r}: {e}")
                outcome.skipped.append(f"Calendar {calendar.summary!r} unavailable: {e}")

        self.logger.info(f"Pulled {len(outcome.entities)} events from all calendars")
        return outcome

    def _pull_targets(self, local: Sequence[Entity]) -> List[Optional[str]]:
        return [self.default_collection]

    async def _fetch_collection(self, collection_id: str, collection_name: str) -> PullOutcome:
        outcome = PullOutcome()
        time_min, time_max = self.time_window()
        page_token: Optional[str] = None

        while True:
            page = await self.api.list_events_page(collection_id, time_min, time_max, page_token)
            for item in page.items:
                try:
                    event = event_from_remote(item, calendar_name=collection_name)
                except ValidationError as e:
                    outcome.skipped.append(str(e))
                    continue
                if event is not None:
                    outcome.entities.append(event)

            page_token = page.next_page_token
            if not page_token:
                return outcome

    def _to_remote(self, entity: CalendarEvent, for_create: bool) -> Dict[str, Any]:
        if not (entity.title or "").strip() and for_create:
            raise ValidationError(f"Event {entity.id} has no title")
        return event_to_remote(entity)

    async def _create_remote(self, collection_id: str, payload: Dict[str, Any]) -> str:
        created = await self.api.create_event(collection_id, payload)
        return created["id"]

    async def _update_remote(self, collection_id: str, remote_id: str, payload: Dict[str, Any]) -> None:
        await self.api.update_event(collection_id, remote_id, payload)

    async def _delete_remote(self, collection_id: str, remote_id: str) -> None:
        await self.api.delete_event(collection_id, remote_id)
