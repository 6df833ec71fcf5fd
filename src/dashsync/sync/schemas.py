"""Validation schemas for Google Tasks and Calendar payloads.

Every remote payload passes through these models before it is mapped to a
local entity. A payload that fails validation raises
:class:`~dashsync.exceptions.ValidationError` so the caller can skip that
single item.
"""

from typing import Any, Dict, List, Literal, Optional, Type, TypeVar

import pydantic
from pydantic import BaseModel, ConfigDict, Field

from ..exceptions import ValidationError


class RemoteModel(BaseModel):
    """Base for remote payloads; unknown fields are kept."""

    model_config = ConfigDict(extra="allow", populate_by_name=True)


class GoogleTaskList(RemoteModel):
    id: str = Field(min_length=1)
    title: str = ""
    updated: Optional[str] = None


class GoogleTaskListsPage(RemoteModel):
    items: List[GoogleTaskList] = Field(default_factory=list)
    next_page_token: Optional[str] = Field(default=None, alias="nextPageToken")


class GoogleTask(RemoteModel):
    id: str = Field(min_length=1)
    title: Optional[str] = None
    notes: Optional[str] = None
    status: Literal["needsAction", "completed"] = "needsAction"
    due: Optional[str] = None
    completed: Optional[str] = None
    updated: Optional[str] = None
    position: Optional[str] = None
    parent: Optional[str] = None
    deleted: bool = False
    hidden: bool = False


class GoogleTasksPage(RemoteModel):
    """A page of tasks; items are validated one by one by the caller."""

    items: List[Dict[str, Any]] = Field(default_factory=list)
    next_page_token: Optional[str] = Field(default=None, alias="nextPageToken")


class CalendarListEntry(RemoteModel):
    id: str = Field(min_length=1)
    summary: str = ""
    hidden: bool = False
    primary: bool = False
    access_role: Optional[str] = Field(default=None, alias="accessRole")
    background_color: Optional[str] = Field(default=None, alias="backgroundColor")


class CalendarListPage(RemoteModel):
    items: List[CalendarListEntry] = Field(default_factory=list)
    next_page_token: Optional[str] = Field(default=None, alias="nextPageToken")


class EventDateTime(RemoteModel):
    date: Optional[str] = None
    date_time: Optional[str] = Field(default=None, alias="dateTime")
    time_zone: Optional[str] = Field(default=None, alias="timeZone")


class ReminderOverride(RemoteModel):
    method: Literal["email", "popup"]
    minutes: int = Field(ge=0)


class EventReminders(RemoteModel):
    use_default: bool = Field(default=True, alias="useDefault")
    overrides: List[ReminderOverride] = Field(default_factory=list)


class GoogleEvent(RemoteModel):
    id: str = Field(min_length=1)
    summary: Optional[str] = None
    description: Optional[str] = None
    status: Optional[str] = None
    start: Optional[EventDateTime] = None
    end: Optional[EventDateTime] = None
    color_id: Optional[str] = Field(default=None, alias="colorId")
    recurrence: List[str] = Field(default_factory=list)
    reminders: Optional[EventReminders] = None
    recurring_event_id: Optional[str] = Field(default=None, alias="recurringEventId")
    created: Optional[str] = None
    updated: Optional[str] = None


class GoogleEventsPage(RemoteModel):
    """A page of events; items are validated one by one by the caller."""

    items: List[Dict[str, Any]] = Field(default_factory=list)
    next_page_token: Optional[str] = Field(default=None, alias="nextPageToken")


ModelT = TypeVar("ModelT", bound=BaseModel)


def validate_payload(model: Type[ModelT], payload: Any) -> ModelT:
    """Validate ``payload`` against ``model``.

    Raises:
        ValidationError: If the payload does not match the schema
    """
    try:
        return model.model_validate(payload)
    except pydantic.ValidationError as e:
        item_id = payload.get("id") if isinstance(payload, dict) else None
        label = f"{model.__name__} {item_id}" if item_id else model.__name__
        raise ValidationError(f"Invalid {label}: {e.error_count()} validation error(s)", original_error=e) from e
