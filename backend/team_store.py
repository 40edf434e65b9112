from typing import List, Optional

from sqlalchemy.orm import Session

from models import AuditAction, AuditLog, Member, NotificationStatus, Team, TeamStatus
from time_utils import now_tz

DELIVERY_ERROR_MAX_LENGTH = 1000


def get_team(db: Session, team_id: str) -> Optional[Team]:
    return db.query(Team).filter(Team.id == team_id).first()


def list_members(db: Session, team_id: str) -> List[Member]:
    return db.query(Member).filter(Member.team_id == team_id).order_by(Member.created_at.asc(), Member.id.asc()).all()


def list_audit_logs(db: Session, team_id: str) -> List[AuditLog]:
    return (
        db.query(AuditLog)
        .filter(AuditLog.team_id == team_id)
        .order_by(AuditLog.created_at.desc())
        .all()
    )


def append_audit_log(db: Session, team_id: str, action: str, performed_by: str, details: Optional[str] = None) -> AuditLog:
    """Stage an audit row; the caller commits it together with its state change."""
    entry = AuditLog(team_id=team_id, action=action, performed_by=performed_by, details=details)
    db.add(entry)
    return entry


def claim_decision(
    db: Session,
    team_id: str,
    status: TeamStatus,
    note: Optional[str],
    actor: str,
    audit_action: str,
) -> bool:
    """Move a PENDING team to ``status`` and record the audit entry in one commit.

    The UPDATE only matches while the row is still PENDING, so of two
    concurrent callers exactly one sees a row count of 1.
    """
    now = now_tz()
    values = {
        Team.status: status,
        Team.verification_note: note,
        Team.notification_status: NotificationStatus.PENDING,
        Team.updated_at: now,
    }
    if status == TeamStatus.VERIFIED:
        values[Team.verified_at] = now
        values[Team.verified_by] = actor

    updated = (
        db.query(Team)
        .filter(Team.id == team_id, Team.status == TeamStatus.PENDING)
        .update(values, synchronize_session=False)
    )
    if updated != 1:
        db.rollback()
        return False

    append_audit_log(db, team_id, audit_action, actor, note)
    db.commit()
    return True


def set_team_artifact_ref(db: Session, team_id: str, url: str) -> None:
    db.query(Team).filter(Team.id == team_id).update(
        {Team.qr_code_url: url, Team.updated_at: now_tz()},
        synchronize_session=False,
    )
    db.commit()


def claim_notification_attempt(db: Session, team_id: str, observed_attempts: int) -> bool:
    """Reserve the next send attempt; fails if another caller got there first or it was already sent."""
    updated = (
        db.query(Team)
        .filter(
            Team.id == team_id,
            Team.notification_attempts == observed_attempts,
            Team.notification_status != NotificationStatus.SENT,
        )
        .update({Team.notification_attempts: observed_attempts + 1}, synchronize_session=False)
    )
    if updated != 1:
        db.rollback()
        return False
    db.commit()
    return True


def record_delivery_error(db: Session, team_id: str, error: str) -> None:
    db.query(Team).filter(Team.id == team_id).update(
        {Team.delivery_error: error[:DELIVERY_ERROR_MAX_LENGTH], Team.updated_at: now_tz()},
        synchronize_session=False,
    )


def record_notification_result(db: Session, team_id: str, sent: bool, error: Optional[str] = None) -> None:
    values = {Team.updated_at: now_tz()}
    if sent:
        values[Team.notification_status] = NotificationStatus.SENT
        values[Team.notified_at] = now_tz()
    else:
        values[Team.notification_status] = NotificationStatus.FAILED
        values[Team.delivery_error] = (error or "Notification failed")[:DELIVERY_ERROR_MAX_LENGTH]
    db.query(Team).filter(Team.id == team_id).update(values, synchronize_session=False)


def set_gallery_visibility(db: Session, team: Team, visible: bool, actor: str) -> Team:
    team.show_in_gallery = visible
    append_audit_log(
        db,
        team.id,
        AuditAction.GALLERY_ENABLED if visible else AuditAction.GALLERY_DISABLED,
        actor,
        f"Gallery visibility {'enabled' if visible else 'disabled'}",
    )
    db.commit()
    db.refresh(team)
    return team


def refresh_team(db: Session, team_id: str) -> Optional[Team]:
    db.expire_all()
    return get_team(db, team_id)


def clear_delivery_error(db: Session, team_id: str) -> None:
    db.query(Team).filter(Team.id == team_id).update({Team.delivery_error: None}, synchronize_session=False)
