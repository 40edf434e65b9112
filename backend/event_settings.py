from dataclasses import dataclass, field
from typing import Any, Dict, Mapping, Optional

from sqlalchemy.orm import Session

from models import EventSetting

EVENT_DATE = "EVENT_DATE"
EVENT_TIME = "EVENT_TIME"
EVENT_VENUE = "EVENT_VENUE"
EVENT_ADDRESS = "EVENT_ADDRESS"
PAYMENT_QR_URL = "PAYMENT_QR_URL"
REGISTRATION_OPEN = "REGISTRATION_OPEN"
# Bootstrap bookkeeping rows share the table but are never exposed.
INTERNAL_KEY_PREFIX = "migration:"

DEFAULT_EVENT_SETTINGS = {
    EVENT_DATE: "November 25, 2025",
    EVENT_TIME: "9:00 AM - 5:00 PM",
    EVENT_VENUE: "Main Auditorium",
    EVENT_ADDRESS: "Your College",
    REGISTRATION_OPEN: "true",
}


@dataclass(frozen=True)
class EventSettingsSnapshot:
    """Read-only copy of the settings table taken at request time."""

    values: Mapping[str, str] = field(default_factory=dict)

    def get(self, key: str, default: Optional[str] = None) -> Optional[str]:
        value = self.values.get(key)
        if value is None or not str(value).strip():
            return default
        return str(value).strip()

    @property
    def event_date(self) -> str:
        return self.get(EVENT_DATE, DEFAULT_EVENT_SETTINGS[EVENT_DATE])

    @property
    def event_time(self) -> str:
        return self.get(EVENT_TIME, DEFAULT_EVENT_SETTINGS[EVENT_TIME])

    @property
    def venue(self) -> str:
        return self.get(EVENT_VENUE, DEFAULT_EVENT_SETTINGS[EVENT_VENUE])

    @property
    def address(self) -> str:
        return self.get(EVENT_ADDRESS, DEFAULT_EVENT_SETTINGS[EVENT_ADDRESS])

    @property
    def registration_open(self) -> bool:
        value = self.get(REGISTRATION_OPEN, DEFAULT_EVENT_SETTINGS[REGISTRATION_OPEN])
        return value.lower() not in {"0", "false", "no", "off"}


def get_settings_map(db: Session) -> Dict[str, str]:
    rows = db.query(EventSetting).all()
    return {row.key: row.value for row in rows if not row.key.startswith(INTERNAL_KEY_PREFIX)}


def load_settings_snapshot(db: Session) -> EventSettingsSnapshot:
    return EventSettingsSnapshot(values=get_settings_map(db))


def upsert_setting(db: Session, key: str, value: str) -> EventSetting:
    row = db.query(EventSetting).filter(EventSetting.key == key).first()
    if row:
        row.value = value
    else:
        row = EventSetting(key=key, value=value)
        db.add(row)
    return row


def upsert_settings(db: Session, updates: Mapping[str, Any]) -> int:
    changed = 0
    for key, value in updates.items():
        if not isinstance(value, str) or key.startswith(INTERNAL_KEY_PREFIX):
            continue
        upsert_setting(db, key, value)
        changed += 1
    db.commit()
    return changed
