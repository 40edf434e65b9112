import json
from types import SimpleNamespace

import pytest

from artifacts import (
    ArtifactGenerationError,
    calendar_filename,
    make_check_in_token,
    render_calendar_event,
    render_qr_image,
)
from event_settings import EventSettingsSnapshot
from models import TeamCategory


def _team(**overrides):
    values = {
        "id": "t1",
        "team_name": "Alpha",
        "category": TeamCategory.SOFTWARE,
        "project_title": "Smart Irrigation",
    }
    values.update(overrides)
    return SimpleNamespace(**values)


def test_check_in_token_is_deterministic():
    first = make_check_in_token(_team())
    second = make_check_in_token(_team())
    assert first == second
    assert json.loads(first) == {"teamId": "t1", "teamName": "Alpha", "category": "SOFTWARE", "verified": True}


def test_check_in_token_keeps_unicode():
    token = make_check_in_token(_team(team_name="Équipe"))
    assert "Équipe" in token.decode("utf-8")


def test_qr_image_is_png_and_large_enough():
    png = render_qr_image(make_check_in_token(_team()))
    assert png[:8] == b"\x89PNG\r\n\x1a\n"
    width = int.from_bytes(png[16:20], "big")
    height = int.from_bytes(png[20:24], "big")
    assert width >= 300
    assert height >= 300


def test_qr_image_rejects_empty_token():
    with pytest.raises(ArtifactGenerationError):
        render_qr_image(b"")


def test_calendar_event_uses_settings():
    settings = EventSettingsSnapshot({
        "EVENT_DATE": "2025-11-25",
        "EVENT_TIME": "10:00 AM - 4:00 PM",
        "EVENT_VENUE": "Hall B",
        "EVENT_ADDRESS": "Pune",
    })
    ics = render_calendar_event(settings, _team()).decode("utf-8")
    assert "BEGIN:VEVENT" in ics
    assert "STATUS:CONFIRMED" in ics
    assert "UID:t1@innovatex" in ics
    # 10:00 Asia/Kolkata is 04:30 UTC.
    assert "DTSTART:20251125T043000Z" in ics
    assert "DTEND:20251125T103000Z" in ics
    assert "Hall B" in ics


def test_calendar_event_falls_back_to_defaults():
    settings = EventSettingsSnapshot({"EVENT_DATE": "sometime soon", "EVENT_TIME": "all day"})
    ics = render_calendar_event(settings, _team()).decode("utf-8")
    assert "DTSTART:20251125T033000Z" in ics
    assert "DTEND:20251125T113000Z" in ics
    assert "Main Auditorium" in ics


def test_calendar_filename():
    assert calendar_filename().endswith(".ics")
