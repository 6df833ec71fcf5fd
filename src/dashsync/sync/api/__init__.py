"""HTTP clients for provider APIs."""

from .base import GoogleApiClient
from .google_calendar import GoogleCalendarAPI
from .google_tasks import GoogleTasksAPI

__all__ = ["GoogleApiClient", "GoogleCalendarAPI", "GoogleTasksAPI"]
