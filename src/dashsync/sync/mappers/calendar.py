"""Conversion between local calendar events and Google Calendar payloads.

Timed events are expressed in UTC. All-day events use Google's exclusive
end date, while the local ``end_date`` is inclusive. Colours go through the
fixed eleven-entry event palette; a local colour outside the palette is not
sent, so the event takes the calendar's default colour, and an unknown
``colorId`` maps to no local colour.
"""

import logging
from datetime import date, datetime, time, timedelta, timezone
from typing import Any, Dict, List, Optional

from ...exceptions import ValidationError
from ...utils.datetime import now_utc, parse_iso_datetime
from ..ids import GOOGLE_TAG, tag_remote
from ..models import CalendarEvent, Recurrence, RecurrenceType
from ..schemas import GoogleEvent, validate_payload


logger = logging.getLogger(__name__)

UNTITLED = "Untitled"
CANCELLED_PREFIX = "CANCELED:"

EVENT_COLORS: Dict[str, str] = {
    "1": "#a4bdfc",
    "2": "#7ae7bf",
    "3": "#dbadff",
    "4": "#ff887c",
    "5": "#fbd75b",
    "6": "#ffb878",
    "7": "#46d6db",
    "8": "#e1e1e1",
    "9": "#5484ed",
    "10": "#51b749",
    "11": "#dc2127",
}

_FREQUENCIES = {
    RecurrenceType.DAILY: "DAILY",
    RecurrenceType.WEEKLY: "WEEKLY",
    RecurrenceType.MONTHLY: "MONTHLY",
    RecurrenceType.YEARLY: "YEARLY",
}


def color_to_color_id(color: Optional[str]) -> Optional[str]:
    """Return the palette id for a hex colour, or None if it is not in the palette."""
    if not color:
        return None
    wanted = color.strip().lower()
    for color_id, hex_value in EVENT_COLORS.items():
        if hex_value == wanted:
            return color_id
    return None


def color_id_to_color(color_id: Optional[str]) -> Optional[str]:
    return EVENT_COLORS.get(color_id) if color_id else None


def serialize_recurrence(recurrence: Recurrence, all_day: bool = True) -> str:
    """Build an ``RRULE:`` line from a structured rule."""
    parts = [f"FREQ={_FREQUENCIES[recurrence.type]}"]
    if recurrence.interval is not None:
        parts.append(f"INTERVAL={recurrence.interval}")
    if recurrence.count is not None:
        parts.append(f"COUNT={recurrence.count}")
    elif recurrence.end_date is not None:
        until = recurrence.end_date.strftime("%Y%m%d")
        parts.append(f"UNTIL={until}" if all_day else f"UNTIL={until}T235959Z")
    return "RRULE:" + ";".join(parts)


def parse_recurrence(lines: List[str]) -> Optional[Recurrence]:
    """Parse the first ``RRULE:`` line of a recurrence list.

    Returns:
        Structured rule, or None when there is no rule or its frequency is
        not supported locally
    """
    rule = next((line for line in lines if line.upper().startswith("RRULE:")), None)
    if rule is None:
        return None

    fields: Dict[str, str] = {}
    for part in rule[len("RRULE:"):].split(";"):
        key, sep, value = part.partition("=")
        if sep:
            fields[key.strip().upper()] = value.strip()

    frequency = fields.get("FREQ", "").upper()
    rec_type = next((t for t, name in _FREQUENCIES.items() if name == frequency), None)
    if rec_type is None:
        logger.debug(f"Unsupported recurrence rule {rule!r}")
        return None

    end_date = None
    if "UNTIL" in fields and len(fields["UNTIL"]) >= 8:
        end_date = datetime.strptime(fields["UNTIL"][:8], "%Y%m%d").date()

    return Recurrence(
        type=rec_type,
        interval=int(fields["INTERVAL"]) if "INTERVAL" in fields else None,
        count=int(fields["COUNT"]) if "COUNT" in fields else None,
        end_date=end_date,
    )


def extract_reminder(reminders: Optional[Dict[str, Any]]) -> Optional[int]:
    """Return the minutes of the first popup override, ignoring the rest."""
    if not reminders or reminders.get("useDefault", True):
        return None
    for override in reminders.get("overrides") or []:
        if override.get("method") == "popup":
            return int(override["minutes"])
    return None


def _timed(day: date, at: time) -> Dict[str, str]:
    moment = datetime.combine(day, at.replace(second=0, microsecond=0), tzinfo=timezone.utc)
    return {"dateTime": moment.strftime("%Y-%m-%dT%H:%M:%SZ"), "timeZone": "UTC"}


def event_to_remote(event: CalendarEvent) -> Dict[str, Any]:
    """Map a local event to a Google Calendar event resource.

    A timed event without ``end_time`` ends when it starts. An all-day event
    without ``end_date`` lasts one day.
    """
    payload: Dict[str, Any] = {"summary": event.title or UNTITLED}
    if event.description:
        payload["description"] = event.description

    if event.all_day:
        last_day = event.end_date or event.date
        payload["start"] = {"date": event.date.isoformat()}
        payload["end"] = {"date": (last_day + timedelta(days=1)).isoformat()}
    else:
        payload["start"] = _timed(event.date, event.start_time)
        payload["end"] = _timed(event.end_date or event.date, event.end_time or event.start_time)

    color_id = color_to_color_id(event.color)
    if color_id:
        payload["colorId"] = color_id

    if event.recurrence:
        payload["recurrence"] = [serialize_recurrence(event.recurrence, all_day=event.all_day)]

    if event.reminder_minutes is not None:
        payload["reminders"] = {
            "useDefault": False,
            "overrides": [{"method": "popup", "minutes": event.reminder_minutes}],
        }
    else:
        payload["reminders"] = {"useDefault": True}

    return payload


def event_from_remote(payload: Dict[str, Any], calendar_name: Optional[str] = None) -> Optional[CalendarEvent]:
    """Map a Google Calendar event resource to a local event.

    Args:
        payload: Raw event resource
        calendar_name: Name of the calendar the event was read from

    Returns:
        Event with a tagged identifier, or None for cancelled events and
        events without a start

    Raises:
        ValidationError: If the payload does not match the event schema or
            holds an unparseable date, time or recurrence rule
    """
    remote = validate_payload(GoogleEvent, payload)
    summary = remote.summary or ""
    if remote.status == "cancelled" or summary.startswith(CANCELLED_PREFIX):
        return None
    if remote.start is None or not (remote.start.date or remote.start.date_time):
        return None

    try:
        return _convert_event(remote, summary, calendar_name)
    except ValueError as e:
        raise ValidationError(f"Invalid GoogleEvent {remote.id}: {e}", original_error=e) from e


def _convert_event(remote: GoogleEvent, summary: str, calendar_name: Optional[str]) -> CalendarEvent:
    end_date = None
    start_time = None
    end_time = None

    if remote.start.date_time:
        start = parse_iso_datetime(remote.start.date_time)
        end = parse_iso_datetime(remote.end.date_time) if remote.end and remote.end.date_time else start
        start_date = start.date()
        start_time = start.time().replace(second=0, microsecond=0)
        if end.date() != start_date:
            end_date = end.date()
        if end.time().replace(second=0, microsecond=0) != start_time:
            end_time = end.time().replace(second=0, microsecond=0)
    else:
        start_date = date.fromisoformat(remote.start.date)
        if remote.end and remote.end.date:
            last_day = date.fromisoformat(remote.end.date) - timedelta(days=1)
            if last_day > start_date:
                end_date = last_day

    reminders = remote.reminders.model_dump(by_alias=True) if remote.reminders else None
    updated_at = parse_iso_datetime(remote.updated) or now_utc()

    return CalendarEvent(
        id=tag_remote(GOOGLE_TAG, remote.id),
        title=summary.strip() or UNTITLED,
        date=start_date,
        end_date=end_date,
        start_time=start_time,
        end_time=end_time,
        description=remote.description or None,
        color=color_id_to_color(remote.color_id),
        recurrence=parse_recurrence(remote.recurrence),
        reminder_minutes=extract_reminder(reminders),
        source_calendar=calendar_name,
        created_at=parse_iso_datetime(remote.created) or updated_at,
        updated_at=updated_at,
    )
