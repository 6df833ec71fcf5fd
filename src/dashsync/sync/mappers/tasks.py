"""Conversion between local tasks and Google Tasks payloads."""

import logging
from typing import Any, Dict, Optional

from ...exceptions import ValidationError
from ...utils.datetime import date_to_midnight_utc, now_utc, parse_date, parse_iso_datetime, to_rfc3339
from ..ids import GOOGLE_TAG, tag_remote
from ..models import Task
from ..schemas import GoogleTask, validate_payload


logger = logging.getLogger(__name__)

UNTITLED = "Untitled"

STATUS_COMPLETED = "completed"
STATUS_NEEDS_ACTION = "needsAction"


def task_to_remote(task: Task, for_create: bool = True) -> Dict[str, Any]:
    """Map a local task to a Google Tasks payload.

    Due dates are sent as midnight UTC so the calendar date survives the
    round trip. On creation the open state is expressed by omitting
    ``status``; updates send ``needsAction`` explicitly so a task reopened
    locally is reopened remotely.

    Args:
        task: Local task
        for_create: Build an insert payload rather than a patch

    Returns:
        JSON-ready payload

    Raises:
        ValidationError: If a task to create has an empty title
    """
    title = (task.title or "").strip()
    if for_create and not title:
        raise ValidationError(f"Task {task.id} has no title")

    payload: Dict[str, Any] = {"title": title or UNTITLED}

    if task.notes:
        payload["notes"] = task.notes
    elif not for_create:
        payload["notes"] = None

    if task.due:
        payload["due"] = date_to_midnight_utc(task.due)
    elif not for_create:
        payload["due"] = None

    if task.completed:
        payload["status"] = STATUS_COMPLETED
        payload["completed"] = to_rfc3339(task.completed_at or now_utc())
    elif not for_create:
        payload["status"] = STATUS_NEEDS_ACTION
        payload["completed"] = None

    return payload


def task_from_remote(payload: Dict[str, Any], list_name: Optional[str] = None) -> Optional[Task]:
    """Map a Google Tasks payload to a local task.

    Args:
        payload: Raw task resource
        list_name: Local collection the task belongs to

    Returns:
        Task with a tagged identifier, or None for deleted or hidden tasks

    Raises:
        ValidationError: If the payload does not match the task schema or
            holds an unparseable date
    """
    remote = validate_payload(GoogleTask, payload)
    if remote.deleted or remote.hidden:
        return None

    completed = remote.status == STATUS_COMPLETED
    try:
        updated_at = parse_iso_datetime(remote.updated) or now_utc()
        return Task(
            id=tag_remote(GOOGLE_TAG, remote.id),
            title=(remote.title or "").strip() or UNTITLED,
            completed=completed,
            due=parse_date(remote.due),
            notes=remote.notes or None,
            completed_at=parse_iso_datetime(remote.completed) if completed else None,
            created_at=updated_at,
            updated_at=updated_at,
            list_name=list_name,
        )
    except ValueError as e:
        raise ValidationError(f"Invalid GoogleTask {remote.id}: {e}", original_error=e) from e
