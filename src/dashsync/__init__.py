"""Dashsync - OAuth connections and task/calendar synchronization for a personal dashboard."""

__version__ = "0.1.0"

from .exceptions import SyncError
from .sync.models import CalendarEvent, SyncResult, SyncSummary, Task

__all__ = ["CalendarEvent", "SyncError", "SyncResult", "SyncSummary", "Task", "__version__"]
