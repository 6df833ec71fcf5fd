"""Synchronization engine for tasks and calendar events."""

from .batch import BatchExecutor
from .ids import EntityId, LocalId, RemoteId, parse_entity_id
from .list_mapper import CollectionBackend, ListMapper, RemoteCollection
from .manager import SyncManager
from .models import (
    BatchItemResult,
    BatchOperationGroup,
    CalendarEvent,
    OperationType,
    Recurrence,
    RecurrenceType,
    SyncResult,
    SyncSummary,
    Task,
)

__all__ = [
    "BatchExecutor",
    "BatchItemResult",
    "BatchOperationGroup",
    "CalendarEvent",
    "CollectionBackend",
    "EntityId",
    "ListMapper",
    "LocalId",
    "OperationType",
    "Recurrence",
    "RecurrenceType",
    "RemoteCollection",
    "RemoteId",
    "SyncManager",
    "SyncResult",
    "SyncSummary",
    "Task",
    "parse_entity_id",
]
