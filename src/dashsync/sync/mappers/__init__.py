"""Stateless conversion between local entities and provider payloads."""

from .calendar import (
    color_id_to_color,
    color_to_color_id,
    event_from_remote,
    event_to_remote,
    parse_recurrence,
    serialize_recurrence,
)
from .tasks import task_from_remote, task_to_remote

__all__ = [
    "color_id_to_color",
    "color_to_color_id",
    "event_from_remote",
    "event_to_remote",
    "parse_recurrence",
    "serialize_recurrence",
    "task_from_remote",
    "task_to_remote",
]
