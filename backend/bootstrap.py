from __future__ import annotations

import logging
import os
from datetime import datetime, timezone
from typing import Optional

from sqlalchemy import inspect

from auth import get_password_hash
from database import Base, engine, get_db
from event_settings import DEFAULT_EVENT_SETTINGS
from models import Admin, EventSetting

logger = logging.getLogger(__name__)

MIGRATION_MARKER_KEY = "migration:backend_bootstrap:v1"


def has_bootstrap_marker() -> bool:
    if not inspect(engine).has_table(EventSetting.__tablename__):
        return False
    db = next(get_db())
    try:
        marker = db.query(EventSetting).filter(EventSetting.key == MIGRATION_MARKER_KEY).first()
        return marker is not None
    finally:
        db.close()


def set_bootstrap_marker() -> None:
    db = next(get_db())
    try:
        marker = db.query(EventSetting).filter(EventSetting.key == MIGRATION_MARKER_KEY).first()
        value = datetime.now(timezone.utc).isoformat()
        if marker:
            marker.value = value
        else:
            db.add(EventSetting(key=MIGRATION_MARKER_KEY, value=value))
        db.commit()
    finally:
        db.close()


def clear_bootstrap_marker() -> bool:
    db = next(get_db())
    try:
        marker = db.query(EventSetting).filter(EventSetting.key == MIGRATION_MARKER_KEY).first()
        if not marker:
            return False
        db.delete(marker)
        db.commit()
        return True
    finally:
        db.close()


def ensure_default_admin(db, email: Optional[str] = None, password: Optional[str] = None) -> bool:
    email = (email or os.environ.get("ADMIN_EMAIL") or "").strip().lower()
    password = password or os.environ.get("ADMIN_PASSWORD") or ""
    if not email or not password:
        logger.warning("ADMIN_EMAIL/ADMIN_PASSWORD not set; skipping default admin creation.")
        return False

    existing = db.query(Admin).filter(Admin.email == email).first()
    if existing:
        return False
    db.add(Admin(email=email, hashed_password=get_password_hash(password)))
    db.commit()
    logger.info("Admin account created: %s", email)
    return True


def ensure_default_settings(db) -> int:
    created = 0
    for key, value in DEFAULT_EVENT_SETTINGS.items():
        if not db.query(EventSetting).filter(EventSetting.key == key).first():
            db.add(EventSetting(key=key, value=value))
            created += 1
    if created:
        db.commit()
    return created


def run_bootstrap_migrations() -> None:
    Base.metadata.create_all(bind=engine)

    db = next(get_db())
    try:
        ensure_default_admin(db)
        created = ensure_default_settings(db)
        if created:
            logger.info("Seeded %d default event setting(s).", created)
    finally:
        db.close()
