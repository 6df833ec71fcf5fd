"""Google Calendar REST API client."""

from datetime import datetime
from typing import Any, Dict, List, Optional
from urllib.parse import quote

from ...exceptions import NotFoundError
from ...utils.datetime import to_rfc3339
from ..list_mapper import CollectionBackend, RemoteCollection
from ..schemas import CalendarListEntry, CalendarListPage, GoogleEventsPage, validate_payload
from .base import GoogleApiClient


EVENTS_PAGE_SIZE = 2500
PRIMARY_CALENDAR = "primary"


def _calendar_path(calendar_id: str) -> str:
    return f"calendars/{quote(calendar_id, safe='')}"


class GoogleCalendarAPI(GoogleApiClient, CollectionBackend):
    """Calendars and events of the connected Google account."""

    BASE_URL = "https://www.googleapis.com/calendar/v3"
    SERVICE_NAME = "Google Calendar"

    # Calendars

    async def list_calendars(self) -> List[CalendarListEntry]:
        """Get every calendar in the user's list except hidden ones."""
        calendars: List[CalendarListEntry] = []
        page_token: Optional[str] = None
        while True:
            data = await self._make_request("GET", "users/me/calendarList", params={"pageToken": page_token})
            page = validate_payload(CalendarListPage, data)
            calendars.extend(entry for entry in page.items if not entry.hidden)
            page_token = page.next_page_token
            if not page_token:
                return calendars

    async def list_collections(self) -> List[RemoteCollection]:
        return [RemoteCollection(id=c.id, name=c.summary) for c in await self.list_calendars()]

    async def probe_collection(self, collection_id: str) -> bool:
        """Check that a calendar still exists by reading at most one event."""
        try:
            await self._make_request("GET", f"{_calendar_path(collection_id)}/events", params={"maxResults": 1})
        except NotFoundError:
            return False
        return True

    async def create_collection(self, name: str) -> RemoteCollection:
        data = await self._make_request("POST", "calendars", data={"summary": name})
        return RemoteCollection(id=data["id"], name=data.get("summary") or name)

    # Events

    async def list_events_page(self, calendar_id: str, time_min: datetime, time_max: datetime,
                               page_token: Optional[str] = None) -> GoogleEventsPage:
        """Get one page of events in a time window, recurring events expanded."""
        data = await self._make_request("GET", f"{_calendar_path(calendar_id)}/events", params={
            "timeMin": to_rfc3339(time_min),
            "timeMax": to_rfc3339(time_max),
            "singleEvents": "true",
            "orderBy": "startTime",
            "maxResults": EVENTS_PAGE_SIZE,
            "pageToken": page_token,
        })
        return validate_payload(GoogleEventsPage, data)

    async def create_event(self, calendar_id: str, payload: Dict[str, Any]) -> Dict[str, Any]:
        return await self._make_request("POST", f"{_calendar_path(calendar_id)}/events", data=payload)

    async def update_event(self, calendar_id: str, event_id: str, payload: Dict[str, Any]) -> Dict[str, Any]:
        return await self._make_request("PUT", f"{_calendar_path(calendar_id)}/events/{event_id}", data=payload)

    async def delete_event(self, calendar_id: str, event_id: str) -> bool:
        """Delete an event; an event that is already gone counts as deleted."""
        try:
            await self._make_request("DELETE", f"{_calendar_path(calendar_id)}/events/{event_id}")
        except NotFoundError:
            self.logger.debug(f"Event {event_id} already deleted")
        return True
