"""Check-in QR and calendar invite generation for verified teams.

The check-in token is a pure function of the team snapshot, so a lost QR can
be regenerated later without drift.
"""
import io
import json
import math
from datetime import datetime, time, timezone
from typing import Any, Dict

import segno
from icalendar import Calendar, Event, vCalAddress, vText

from event_settings import DEFAULT_EVENT_SETTINGS, EVENT_DATE, EventSettingsSnapshot
from time_utils import app_timezone, parse_event_date, parse_event_time_range

QR_MIN_SIZE_PX = 300
QR_BORDER = 2
CALENDAR_FILENAME = "innovate-x-2025.ics"
CALENDAR_PRODID = "-//Innovate-X//Team Verification//EN"
EVENT_TITLE = "Innovate-X 2025 - Project Expo"
ORGANIZER_NAME = "Innovate-X Team"
ORGANIZER_EMAIL = "organizer@innovatex.com"
DEFAULT_START = time(9, 0)
DEFAULT_END = time(17, 0)


class ArtifactGenerationError(RuntimeError):
    pass


def _enum_value(value: Any) -> str:
    return str(getattr(value, "value", value))


def check_in_payload(team) -> Dict[str, Any]:
    return {
        "teamId": str(team.id),
        "teamName": team.team_name,
        "category": _enum_value(team.category),
        "verified": True,
    }


def make_check_in_token(team) -> bytes:
    payload = check_in_payload(team)
    return json.dumps(payload, sort_keys=True, separators=(",", ":"), ensure_ascii=False).encode("utf-8")


def render_qr_image(token: bytes) -> bytes:
    if not token:
        raise ArtifactGenerationError("Empty check-in token")
    try:
        qr = segno.make_qr(token, error="h")
        width, _ = qr.symbol_size(scale=1, border=QR_BORDER)
        scale = max(1, math.ceil(QR_MIN_SIZE_PX / width))
        buffer = io.BytesIO()
        qr.save(buffer, kind="png", scale=scale, border=QR_BORDER)
    except Exception as exc:
        raise ArtifactGenerationError(f"QR rendering failed: {exc}") from exc
    return buffer.getvalue()


def _event_window(settings: EventSettingsSnapshot):
    event_date = parse_event_date(settings.event_date) or parse_event_date(DEFAULT_EVENT_SETTINGS[EVENT_DATE])
    window = parse_event_time_range(settings.event_time) or (DEFAULT_START, DEFAULT_END)
    tz = app_timezone()
    start = datetime.combine(event_date, window[0], tzinfo=tz)
    end = datetime.combine(event_date, window[1], tzinfo=tz)
    return start.astimezone(timezone.utc), end.astimezone(timezone.utc)


def render_calendar_event(settings: EventSettingsSnapshot, team) -> bytes:
    try:
        start, end = _event_window(settings)

        calendar = Calendar()
        calendar.add("prodid", CALENDAR_PRODID)
        calendar.add("version", "2.0")
        calendar.add("method", "PUBLISH")

        event = Event()
        event.add("uid", f"{team.id}@innovatex")
        event.add("dtstamp", datetime.now(timezone.utc))
        event.add("dtstart", start)
        event.add("dtend", end)
        event.add("summary", EVENT_TITLE)
        event.add(
            "description",
            f"Team: {team.team_name}\nProject: {team.project_title}\n\n"
            "Please arrive 30 minutes early for check-in and setup.",
        )
        event.add("location", f"{settings.venue}, {settings.address}")
        event.add("status", "CONFIRMED")
        event.add("transp", "OPAQUE")

        organizer = vCalAddress(f"MAILTO:{ORGANIZER_EMAIL}")
        organizer.params["cn"] = vText(ORGANIZER_NAME)
        event["organizer"] = organizer

        calendar.add_component(event)
        return calendar.to_ical()
    except Exception as exc:
        raise ArtifactGenerationError(f"Calendar rendering failed: {exc}") from exc


def calendar_filename() -> str:
    return CALENDAR_FILENAME
