"""Tests of the Google Calendar provider against a fake API server."""

import json
from datetime import date, datetime, time, timezone

import httpx
import pytest

from dashsync.auth.manager import OAuthManager
from dashsync.storage import MemoryKeyValueStore
from dashsync.sync.batch import BatchExecutor
from dashsync.sync.list_mapper import ListMapper
from dashsync.sync.models import CalendarEvent
from dashsync.sync.providers import GoogleCalendarSyncProvider
from dashsync.sync.store import MemoryEntityStore

PREFIX = "/calendar/v3"


class FakeGoogleCalendar:
    """Minimal in-memory Google Calendar API."""

    def __init__(self):
        self.calendars = {"primary": {"id": "primary", "summary": "ada@example.com", "primary": True}}
        self.events = {"primary": {}}
        self.requests = []
        self.forbidden = set()
        self._next_id = 0

    def add_calendar(self, summary, calendar_id=None, **fields):
        self._next_id += 1
        calendar_id = calendar_id or f"cal{self._next_id}"
        self.calendars[calendar_id] = {"id": calendar_id, "summary": summary, **fields}
        self.events[calendar_id] = {}
        return calendar_id

    def add_event(self, calendar_id, **fields):
        self._next_id += 1
        event_id = fields.pop("id", None) or f"ev{self._next_id}"
        self.events[calendar_id][event_id] = {"id": event_id, **fields}
        return event_id

    def handler(self, request):
        self.requests.append((request.method, request.url.path, dict(request.url.params)))
        parts = request.url.path[len(PREFIX):].strip("/").split("/")
        body = json.loads(request.content) if request.content else None

        if parts == ["users", "me", "calendarList"]:
            return httpx.Response(200, json={"items": list(self.calendars.values())})
        if parts == ["calendars"] and request.method == "POST":
            calendar_id = self.add_calendar(body["summary"])
            return httpx.Response(200, json=self.calendars[calendar_id])

        calendar_id = parts[1]
        if calendar_id not in self.calendars:
            return httpx.Response(404, json={"error": {"message": "Not Found"}})
        if calendar_id in self.forbidden:
            return httpx.Response(403, json={"error": {"message": "Forbidden"}})

        events = self.events[calendar_id]
        if len(parts) == 3 and request.method == "GET":
            return httpx.Response(200, json={"items": list(events.values())})
        if len(parts) == 3 and request.method == "POST":
            event_id = self.add_event(calendar_id, **body)
            return httpx.Response(200, json=events[event_id])
        if len(parts) == 4 and request.method == "PUT":
            events[parts[3]] = {"id": parts[3], **body}
            return httpx.Response(200, json=events[parts[3]])
        if len(parts) == 4 and request.method == "DELETE":
            return httpx.Response(204 if events.pop(parts[3], None) else 404)
        return httpx.Response(400)


@pytest.fixture
def server():
    return FakeGoogleCalendar()


@pytest.fixture
def oauth_manager(token_store, google_connection):
    token_store.save_connection(google_connection)
    return OAuthManager(token_store, providers={}, clock=token_store.clock)


def make_provider(server, oauth_manager, clock, default_collection=None):
    return GoogleCalendarSyncProvider(
        oauth_manager,
        ListMapper(MemoryKeyValueStore()),
        batch_executor=BatchExecutor(pause_seconds=0),
        entity_store=MemoryEntityStore(),
        default_collection=default_collection,
        window_months=3,
        http_client=httpx.AsyncClient(transport=httpx.MockTransport(server.handler)),
        clock=clock,
    )


class TestPull:
    """Reading events."""

    async def test_window_and_expansion_parameters(self, server, oauth_manager, clock):
        provider = make_provider(server, oauth_manager, clock, default_collection="primary")

        await provider.pull()

        method, path, params = server.requests[-1]
        assert path == f"{PREFIX}/calendars/primary/events"
        assert params["timeMin"] == "2023-12-15T12:00:00.000Z"
        assert params["timeMax"] == "2024-06-15T12:00:00.000Z"
        assert params["singleEvents"] == "true"
        assert params["orderBy"] == "startTime"

    def test_window_clamps_month_end(self, server, oauth_manager, clock):
        clock.now = datetime(2024, 5, 31, tzinfo=timezone.utc)
        provider = make_provider(server, oauth_manager, clock)

        start, end = provider.time_window()

        assert start == datetime(2024, 2, 29, tzinfo=timezone.utc)
        assert end == datetime(2024, 8, 31, tzinfo=timezone.utc)

    async def test_pull_all_calendars(self, server, oauth_manager, clock):
        server.add_event("primary", summary="Dentist", start={"date": "2024-03-20"}, end={"date": "2024-03-21"})
        family = server.add_calendar("Family")
        server.add_event(family, summary="Birthday", start={"dateTime": "2024-03-22T18:00:00Z"},
                         end={"dateTime": "2024-03-22T21:00:00Z"})
        server.add_event(family, summary="Old", status="cancelled", start={"date": "2024-03-01"})
        weeks = server.add_calendar("Week 12")
        server.add_event(weeks, summary="W12", start={"date": "2024-03-18"})
        hidden = server.add_calendar("Hidden", hidden=True)
        server.add_event(hidden, summary="Secret", start={"date": "2024-03-18"})
        shared = server.add_calendar("Shared")
        server.forbidden.add(shared)

        provider = make_provider(server, oauth_manager, clock)
        events = await provider.pull()

        by_title = {e.title: e for e in events}
        assert set(by_title) == {"Dentist", "Birthday"}
        assert by_title["Dentist"].source_calendar == "primary"
        assert by_title["Birthday"].source_calendar == "Family"
        assert by_title["Birthday"].start_time == time(18, 0)
        assert by_title["Birthday"].end_time == time(21, 0)

    async def test_forbidden_calendar_becomes_sync_warning(self, server, oauth_manager, clock):
        shared = server.add_calendar("Shared")
        server.forbidden.add(shared)
        provider = make_provider(server, oauth_manager, clock)

        result = await provider.sync()

        assert result.success
        assert result.skipped_count == 1
        assert "Shared" in result.warnings[0]

    async def test_named_calendar_is_resolved(self, server, oauth_manager, clock):
        work = server.add_calendar("Work")
        server.add_event(work, summary="Review", start={"date": "2024-03-25"})
        provider = make_provider(server, oauth_manager, clock)

        events = await provider.pull("Work")

        assert [e.title for e in events] == ["Review"]
        assert events[0].source_calendar == "Work"

    async def test_primary_event_pushes_back_to_primary_after_rename(self, server, oauth_manager, clock):
        event_id = server.add_event("primary", summary="Dentist", start={"date": "2024-03-20"})
        provider = make_provider(server, oauth_manager, clock)
        dentist = (await provider.pull())[0]
        server.calendars["primary"]["summary"] = "ada@newdomain.example"

        dentist.title = "Dentist (moved)"
        await provider.push([dentist], provider.collection_of(dentist))

        assert list(server.calendars) == ["primary"]
        assert server.events["primary"][event_id]["summary"] == "Dentist (moved)"


class TestPush:
    """Writing events."""

    async def test_push_defaults_to_primary(self, server, oauth_manager, clock):
        provider = make_provider(server, oauth_manager, clock)

        created = await provider.push([
            CalendarEvent(id="e1", title="Lunch", date=date(2024, 3, 20), start_time=time(12, 0),
                          end_time=time(13, 0), reminder_minutes=10),
        ])

        remote_id = created["e1"].split("-", 1)[1]
        stored = server.events["primary"][remote_id]
        assert stored["start"] == {"dateTime": "2024-03-20T12:00:00Z", "timeZone": "UTC"}
        assert stored["reminders"]["overrides"] == [{"method": "popup", "minutes": 10}]

    async def test_update_uses_put(self, server, oauth_manager, clock):
        event_id = server.add_event("primary", summary="Old", start={"date": "2024-03-20"})
        provider = make_provider(server, oauth_manager, clock)

        created = await provider.push([
            CalendarEvent(id=f"google-{event_id}", title="New", date=date(2024, 3, 21)),
        ])

        assert created == {}
        assert server.events["primary"][event_id]["summary"] == "New"
        assert server.events["primary"][event_id]["start"] == {"date": "2024-03-21"}
        assert ("PUT", f"{PREFIX}/calendars/primary/events/{event_id}") in [(m, p) for m, p, _ in server.requests]

    async def test_push_to_new_named_calendar(self, server, oauth_manager, clock):
        provider = make_provider(server, oauth_manager, clock)

        created = await provider.push([CalendarEvent(id="e1", title="Gym", date=date(2024, 3, 20))], "Fitness")

        calendar_id = next(cid for cid, cal in server.calendars.items() if cal["summary"] == "Fitness")
        assert created["e1"].split("-", 1)[1] in server.events[calendar_id]

    async def test_untitled_event_is_not_created(self, server, oauth_manager, clock):
        provider = make_provider(server, oauth_manager, clock)

        created = await provider.push([CalendarEvent(id="e1", title=" ", date=date(2024, 3, 20))])

        assert created == {}
        assert server.events["primary"] == {}


class TestSync:
    """Round trip through a local store."""

    async def test_new_local_event_ends_up_tagged(self, server, oauth_manager, clock):
        provider = make_provider(server, oauth_manager, clock, default_collection="primary")
        provider.entity_store.upsert([CalendarEvent(id="e1", title="Planning", date=date(2024, 3, 28))])

        result = await provider.sync()

        assert result.success, result.errors
        assert result.pushed_count == 1
        assert result.pulled_count == 1
        stored = provider.entity_store.load_all()
        assert len(stored) == 1
        assert str(stored[0].id).startswith("google-")
        assert stored[0].source_calendar == "primary"
