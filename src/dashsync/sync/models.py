"""Data models for synchronization.

Local entities (tasks and calendar events), the transient structures a sync
pass builds, and the results reported back to callers.
"""

from dataclasses import dataclass, field
from datetime import date, datetime, time
from enum import Enum
from typing import Any, Dict, List, Optional, Union

from ..utils.datetime import now_utc, parse_date, parse_iso_datetime, to_iso_string
from .ids import EntityId, parse_entity_id


class RecurrenceType(Enum):
    """Supported recurrence frequencies."""
    DAILY = "daily"
    WEEKLY = "weekly"
    MONTHLY = "monthly"
    YEARLY = "yearly"


@dataclass
class Recurrence:
    """Structured recurrence rule."""

    type: RecurrenceType
    interval: Optional[int] = None
    count: Optional[int] = None
    end_date: Optional[date] = None

    def __post_init__(self):
        if isinstance(self.type, str):
            self.type = RecurrenceType(self.type)
        if self.interval is not None and self.interval < 1:
            raise ValueError("Recurrence interval must be at least 1")
        if self.count is not None and self.count < 1:
            raise ValueError("Recurrence count must be at least 1")

    def to_dict(self) -> Dict[str, Any]:
        return {
            "type": self.type.value,
            "interval": self.interval,
            "count": self.count,
            "end_date": self.end_date.isoformat() if self.end_date else None,
        }

    @classmethod
    def from_dict(cls, data: Optional[Dict[str, Any]]) -> Optional["Recurrence"]:
        if not data or data.get("type") in (None, "none"):
            return None
        return cls(
            type=RecurrenceType(data["type"]),
            interval=data.get("interval"),
            count=data.get("count"),
            end_date=parse_date(data.get("end_date")),
        )


def _parse_time(value: Optional[str]) -> Optional[time]:
    return time.fromisoformat(value) if value else None


def _format_time(value: Optional[time]) -> Optional[str]:
    return value.strftime("%H:%M") if value else None


def _coerce_id(value: Union[str, EntityId]) -> EntityId:
    return parse_entity_id(value) if isinstance(value, str) else value


@dataclass
class Task:
    """Locally owned task."""

    id: EntityId
    title: str
    completed: bool = False
    due: Optional[date] = None
    notes: Optional[str] = None
    priority: bool = False
    completed_at: Optional[datetime] = None
    created_at: datetime = field(default_factory=now_utc)
    updated_at: datetime = field(default_factory=now_utc)
    list_name: Optional[str] = None

    def __post_init__(self):
        self.id = _coerce_id(self.id)

    def to_dict(self) -> Dict[str, Any]:
        """Convert to dictionary representation."""
        return {
            "id": str(self.id),
            "title": self.title,
            "completed": self.completed,
            "due": self.due.isoformat() if self.due else None,
            "notes": self.notes,
            "priority": self.priority,
            "completed_at": to_iso_string(self.completed_at),
            "created_at": to_iso_string(self.created_at),
            "updated_at": to_iso_string(self.updated_at),
            "list_name": self.list_name,
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "Task":
        """Create from dictionary representation."""
        return cls(
            id=parse_entity_id(str(data["id"])),
            title=data.get("title", ""),
            completed=bool(data.get("completed", False)),
            due=parse_date(data.get("due")),
            notes=data.get("notes"),
            priority=bool(data.get("priority", False)),
            completed_at=parse_iso_datetime(data.get("completed_at")),
            created_at=parse_iso_datetime(data.get("created_at")) or now_utc(),
            updated_at=parse_iso_datetime(data.get("updated_at")) or now_utc(),
            list_name=data.get("list_name"),
        )


@dataclass
class CalendarEvent:
    """Locally owned calendar event.

    Events without ``start_time`` are all-day events. ``end_date`` is
    inclusive and only set for events spanning several days.
    """

    id: EntityId
    title: str
    date: date
    end_date: Optional[date] = None
    start_time: Optional[time] = None
    end_time: Optional[time] = None
    description: Optional[str] = None
    color: Optional[str] = None
    recurrence: Optional[Recurrence] = None
    reminder_minutes: Optional[int] = None
    source_calendar: Optional[str] = None
    created_at: datetime = field(default_factory=now_utc)
    updated_at: datetime = field(default_factory=now_utc)

    def __post_init__(self):
        self.id = _coerce_id(self.id)

    @property
    def all_day(self) -> bool:
        return self.start_time is None

    def to_dict(self) -> Dict[str, Any]:
        """Convert to dictionary representation."""
        return {
            "id": str(self.id),
            "title": self.title,
            "date": self.date.isoformat(),
            "end_date": self.end_date.isoformat() if self.end_date else None,
            "start_time": _format_time(self.start_time),
            "end_time": _format_time(self.end_time),
            "description": self.description,
            "color": self.color,
            "recurrence": self.recurrence.to_dict() if self.recurrence else None,
            "reminder_minutes": self.reminder_minutes,
            "source_calendar": self.source_calendar,
            "created_at": to_iso_string(self.created_at),
            "updated_at": to_iso_string(self.updated_at),
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "CalendarEvent":
        """Create from dictionary representation."""
        return cls(
            id=parse_entity_id(str(data["id"])),
            title=data.get("title", ""),
            date=parse_date(data["date"]),
            end_date=parse_date(data.get("end_date")),
            start_time=_parse_time(data.get("start_time")),
            end_time=_parse_time(data.get("end_time")),
            description=data.get("description"),
            color=data.get("color"),
            recurrence=Recurrence.from_dict(data.get("recurrence")),
            reminder_minutes=data.get("reminder_minutes"),
            source_calendar=data.get("source_calendar"),
            created_at=parse_iso_datetime(data.get("created_at")) or now_utc(),
            updated_at=parse_iso_datetime(data.get("updated_at")) or now_utc(),
        )


Entity = Union[Task, CalendarEvent]


class OperationType(Enum):
    """Remote write operations performed by push."""
    CREATE = "create"
    UPDATE = "update"


@dataclass
class BatchOperationGroup:
    """One pending remote write, built per push and never persisted."""

    entity: Entity
    operation: OperationType
    payload: Dict[str, Any]
    remote_id: Optional[str] = None

    @property
    def id(self) -> str:
        return str(self.entity.id)


@dataclass
class BatchItemResult:
    """Outcome of one batch operation."""

    id: str
    success: bool
    remote_id: Optional[str] = None
    error: Optional[str] = None


@dataclass
class SyncResult:
    """Result of one provider sync, returned for reporting and never persisted."""

    provider: str
    success: bool = True
    synced_count: int = 0
    pulled_count: int = 0
    pushed_count: int = 0
    skipped_count: int = 0
    errors: List[str] = field(default_factory=list)
    warnings: List[str] = field(default_factory=list)
    reconnect_required: bool = False
    started_at: datetime = field(default_factory=now_utc)
    completed_at: Optional[datetime] = None
    duration_seconds: float = 0.0

    def complete(self):
        """Mark sync as completed and calculate duration."""
        self.completed_at = now_utc()
        self.duration_seconds = (self.completed_at - self.started_at).total_seconds()

    def add_error(self, error: str):
        """Add an error and mark the result as failed."""
        self.errors.append(error)
        self.success = False

    def add_warning(self, warning: str):
        """Add a warning; warnings do not fail the sync."""
        self.warnings.append(warning)

    def to_dict(self) -> Dict[str, Any]:
        """Convert to dictionary representation."""
        return {
            "provider": self.provider,
            "success": self.success,
            "synced_count": self.synced_count,
            "pulled_count": self.pulled_count,
            "pushed_count": self.pushed_count,
            "skipped_count": self.skipped_count,
            "errors": list(self.errors),
            "warnings": list(self.warnings),
            "reconnect_required": self.reconnect_required,
            "started_at": to_iso_string(self.started_at),
            "completed_at": to_iso_string(self.completed_at),
            "duration_seconds": self.duration_seconds,
        }


@dataclass
class SyncSummary:
    """Aggregated results of a multi-provider sync."""

    results: Dict[str, SyncResult] = field(default_factory=dict)

    @property
    def success(self) -> bool:
        return all(result.success for result in self.results.values())

    @property
    def synced_count(self) -> int:
        return sum(result.synced_count for result in self.results.values())

    @property
    def errors(self) -> List[str]:
        return [f"{key}: {error}" for key, result in self.results.items() for error in result.errors]

    @property
    def reconnect_required(self) -> List[str]:
        return [key for key, result in self.results.items() if result.reconnect_required]
