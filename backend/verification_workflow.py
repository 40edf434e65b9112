"""Admin verify/reject decisions for registered teams.

A decision is committed first (status change plus its audit entry in one
transaction, guarded so only a PENDING team can move). The QR upload and the
notification run afterwards as separate delivery steps; when one of them
fails the decision stands, the failure is written to the team row and the
audit log, and ``retry_delivery`` re-runs only the steps that did not finish.
"""
import enum
import logging
from dataclasses import dataclass, field
from typing import List, Optional

from sqlalchemy.orm import Session

import team_store
from artifacts import (
    ArtifactGenerationError,
    calendar_filename,
    make_check_in_token,
    render_calendar_event,
    render_qr_image,
)
from blob_store import BlobStoreError
from email_templates import build_rejection_email, build_verification_email
from emailer import Attachment, InlineImage, NotificationError, OutgoingEmail, make_content_id
from event_settings import EventSettingsSnapshot
from models import AuditAction, NotificationStatus, Team, TeamStatus

logger = logging.getLogger(__name__)

QR_FOLDER = "qr-codes"
QR_FILENAME = "team-qr.png"

__all__ = [
    "ArtifactGenerationError",
    "Decision",
    "DecisionOutcome",
    "InvalidStateTransitionError",
    "TeamNotFoundError",
    "VerificationWorkflow",
]


class Decision(str, enum.Enum):
    VERIFY = "VERIFY"
    REJECT = "REJECT"

    @classmethod
    def from_status(cls, status: str) -> "Decision":
        mapping = {"VERIFIED": cls.VERIFY, "REJECTED": cls.REJECT}
        try:
            return mapping[str(status).upper()]
        except KeyError:
            return cls(str(status).upper())


class TeamNotFoundError(LookupError):
    def __init__(self, team_id: str):
        super().__init__(f"Team {team_id} not found")
        self.team_id = team_id


class InvalidStateTransitionError(RuntimeError):
    def __init__(self, team_id: str, current: Optional[TeamStatus], message: Optional[str] = None):
        current_label = current.value if current else "UNKNOWN"
        super().__init__(message or f"Team {team_id} is already {current_label}")
        self.team_id = team_id
        self.current = current


@dataclass
class DecisionOutcome:
    team: Team
    issues: List[str] = field(default_factory=list)

    @property
    def degraded(self) -> bool:
        return bool(self.issues)


@dataclass
class _Artifacts:
    qr_png: bytes
    calendar: bytes


def _clean_note(note: Optional[str]) -> Optional[str]:
    if note is None:
        return None
    cleaned = str(note).strip()
    return cleaned or None


class VerificationWorkflow:
    def __init__(self, db: Session, blob_store, notifier):
        self.db = db
        self.blob_store = blob_store
        self.notifier = notifier

    def decide(
        self,
        team_id: str,
        decision: Decision,
        note: Optional[str],
        acting_admin: str,
        settings: EventSettingsSnapshot,
    ) -> DecisionOutcome:
        decision = Decision(decision)
        note = _clean_note(note)

        team = team_store.get_team(self.db, team_id)
        if team is None:
            raise TeamNotFoundError(team_id)
        if team.status != TeamStatus.PENDING:
            logger.warning("Ignoring %s for team %s: already %s", decision.value, team_id, team.status.value)
            raise InvalidStateTransitionError(team_id, team.status)

        if decision == Decision.VERIFY:
            return self._verify(team, note, acting_admin, settings)
        return self._reject(team, note, acting_admin)

    def _claim(self, team: Team, status: TeamStatus, note: Optional[str], actor: str, action: str) -> None:
        team_id = team.id
        if not team_store.claim_decision(self.db, team_id, status, note, actor, action):
            current = team_store.refresh_team(self.db, team_id)
            logger.warning("Lost decision race for team %s", team_id)
            raise InvalidStateTransitionError(team_id, current.status if current else None)
        logger.info("Team %s marked %s by %s", team_id, status.value, actor)

    def _verify(self, team: Team, note: Optional[str], actor: str, settings: EventSettingsSnapshot) -> DecisionOutcome:
        # Rendering is pure, so a failure here leaves the team untouched.
        artifacts = self._render(team, settings)
        self._claim(team, TeamStatus.VERIFIED, note, actor, AuditAction.TEAM_VERIFIED)

        issues: List[str] = []
        qr_url, upload_issue = self._upload_qr(team.id, artifacts.qr_png, actor)
        if upload_issue:
            issues.append(upload_issue)

        email = self._verification_email(team.id, artifacts, settings, note, qr_url)
        send_issue = self._deliver(team.id, email, actor, observed_attempts=0)
        if send_issue:
            issues.append(send_issue)

        return self._finish(team.id, issues)

    def _reject(self, team: Team, note: Optional[str], actor: str) -> DecisionOutcome:
        self._claim(team, TeamStatus.REJECTED, note, actor, AuditAction.TEAM_REJECTED)
        email = self._rejection_email(team.id, note)
        issues: List[str] = []
        send_issue = self._deliver(team.id, email, actor, observed_attempts=0)
        if send_issue:
            issues.append(send_issue)
        return self._finish(team.id, issues)

    def retry_delivery(self, team_id: str, acting_admin: str, settings: EventSettingsSnapshot) -> DecisionOutcome:
        """Re-run the delivery steps that have not completed for a decided team."""
        team = team_store.get_team(self.db, team_id)
        if team is None:
            raise TeamNotFoundError(team_id)
        if team.status == TeamStatus.PENDING:
            raise InvalidStateTransitionError(team_id, team.status, f"Team {team_id} has not been decided yet")

        issues: List[str] = []
        artifacts = None
        qr_url = team.qr_code_url
        needs_notification = team.notification_status != NotificationStatus.SENT
        if team.status == TeamStatus.VERIFIED and (needs_notification or not qr_url):
            artifacts = self._render(team, settings)
            if not qr_url:
                qr_url, upload_issue = self._upload_qr(team.id, artifacts.qr_png, acting_admin, retried=True)
                if upload_issue:
                    issues.append(upload_issue)

        team = team_store.refresh_team(self.db, team_id)
        if team.notification_status != NotificationStatus.SENT:
            if artifacts is not None:
                email = self._verification_email(team.id, artifacts, settings, team.verification_note, qr_url)
            else:
                email = self._rejection_email(team.id, team.verification_note)
            send_issue = self._deliver(
                team.id,
                email,
                acting_admin,
                observed_attempts=team.notification_attempts or 0,
                resent=True,
            )
            if send_issue:
                issues.append(send_issue)
        else:
            logger.info("Notification for team %s already delivered; not resending", team_id)

        return self._finish(team_id, issues)

    def _render(self, team: Team, settings: EventSettingsSnapshot) -> _Artifacts:
        try:
            token = make_check_in_token(team)
            return _Artifacts(qr_png=render_qr_image(token), calendar=render_calendar_event(settings, team))
        except ArtifactGenerationError:
            logger.exception("Artifact generation failed for team %s", team.id)
            raise
        except Exception as exc:
            logger.exception("Artifact generation failed for team %s", team.id)
            raise ArtifactGenerationError(str(exc)) from exc

    def _upload_qr(self, team_id: str, qr_png: bytes, actor: str, retried: bool = False):
        try:
            url = self.blob_store.put(qr_png, QR_FOLDER, QR_FILENAME, "image/png")
        except BlobStoreError as exc:
            message = f"QR upload failed: {exc}"
            logger.warning("Team %s verified but QR artifact missing: %s", team_id, exc)
            team_store.record_delivery_error(self.db, team_id, message)
            team_store.append_audit_log(self.db, team_id, AuditAction.QR_UPLOAD_FAILED, actor, message)
            self.db.commit()
            return None, message

        team_store.set_team_artifact_ref(self.db, team_id, url)
        if retried:
            team_store.append_audit_log(self.db, team_id, AuditAction.QR_UPLOADED, actor, url)
            self.db.commit()
        return url, None

    def _deliver(
        self,
        team_id: str,
        email: OutgoingEmail,
        actor: str,
        observed_attempts: int,
        resent: bool = False,
    ) -> Optional[str]:
        if not team_store.claim_notification_attempt(self.db, team_id, observed_attempts):
            logger.warning("Notification for team %s already sent or being retried elsewhere", team_id)
            return "Notification already sent or being retried by another request"

        try:
            self.notifier.send(email)
        except NotificationError as exc:
            message = f"Notification failed: {exc}"
            logger.warning("Team %s decided but notification failed: %s", team_id, exc)
            team_store.record_notification_result(self.db, team_id, sent=False, error=message)
            team_store.append_audit_log(self.db, team_id, AuditAction.NOTIFICATION_FAILED, actor, message)
            self.db.commit()
            return message

        team_store.record_notification_result(self.db, team_id, sent=True)
        if resent:
            team_store.append_audit_log(
                self.db,
                team_id,
                AuditAction.NOTIFICATION_RESENT,
                actor,
                f"Sent to {', '.join(email.recipients)}",
            )
        self.db.commit()
        logger.info("Notification for team %s sent to %d recipient(s)", team_id, len(email.recipients))
        return None

    def _verification_email(
        self,
        team_id: str,
        artifacts: _Artifacts,
        settings: EventSettingsSnapshot,
        note: Optional[str],
        qr_url: Optional[str],
    ) -> OutgoingEmail:
        team = team_store.get_team(self.db, team_id)
        members = team_store.list_members(self.db, team_id)
        qr_cid = make_content_id()
        subject, html, text = build_verification_email(
            team_name=team.team_name,
            event_date=settings.event_date,
            event_time=settings.event_time,
            venue=settings.venue,
            qr_cid=qr_cid,
            note=note,
            qr_url=qr_url,
        )
        return OutgoingEmail(
            recipients=[member.email for member in members],
            subject=subject,
            html=html,
            text=text,
            attachments=[Attachment(calendar_filename(), artifacts.calendar, "text/calendar")],
            inline_images=[InlineImage(qr_cid, artifacts.qr_png, "png", "team-qr.png")],
        )

    def _rejection_email(self, team_id: str, note: Optional[str]) -> OutgoingEmail:
        team = team_store.get_team(self.db, team_id)
        subject, html, text = build_rejection_email(team.team_name, note)
        return OutgoingEmail(recipients=[team.contact_email], subject=subject, html=html, text=text)

    def _finish(self, team_id: str, issues: List[str]) -> DecisionOutcome:
        team = team_store.refresh_team(self.db, team_id)
        fully_delivered = team.notification_status == NotificationStatus.SENT and (
            team.status != TeamStatus.VERIFIED or bool(team.qr_code_url)
        )
        if fully_delivered and team.delivery_error:
            team_store.clear_delivery_error(self.db, team_id)
            self.db.commit()
            team = team_store.refresh_team(self.db, team_id)
        if issues:
            logger.warning("Team %s decision committed with delivery issues: %s", team_id, "; ".join(issues))
        return DecisionOutcome(team=team, issues=issues)
