"""Sync providers."""

from .base import CollectionSyncProvider, PullOutcome, PushOutcome, SyncProvider
from .google_calendar import GoogleCalendarSyncProvider
from .google_tasks import GoogleTasksSyncProvider
from .stubs import NotionSyncProvider, OutlookCalendarSyncProvider

__all__ = [
    "CollectionSyncProvider",
    "GoogleCalendarSyncProvider",
    "GoogleTasksSyncProvider",
    "NotionSyncProvider",
    "OutlookCalendarSyncProvider",
    "PullOutcome",
    "PushOutcome",
    "SyncProvider",
]
