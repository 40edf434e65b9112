import logging
import os
from typing import Optional

import requests
from fastapi import UploadFile
from sqlalchemy.orm import Session

from blob_store import BlobStoreError
from email_templates import build_registration_alert_email
from emailer import NotificationError, OutgoingEmail
from models import AuditAction, Member, Team, TeamCategory, TeamStatus
from schemas import TeamRegistration
from team_store import append_audit_log

logger = logging.getLogger(__name__)

HCAPTCHA_VERIFY_URL = "https://api.hcaptcha.com/siteverify"
CAPTCHA_TIMEOUT_SECONDS = 10
MAX_UPLOAD_BYTES = 10 * 1024 * 1024
ALLOWED_UPLOAD_TYPES = ["image/png", "image/jpeg", "image/webp", "application/pdf"]
SYSTEM_ACTOR = "system"


class RegistrationError(ValueError):
    pass


def organizer_email() -> Optional[str]:
    return os.environ.get("ORGANIZER_EMAIL") or os.environ.get("ADMIN_EMAIL")


def verify_hcaptcha(token: Optional[str]) -> bool:
    secret = os.environ.get("HCAPTCHA_SECRET_KEY")
    if not token or not secret:
        return False
    try:
        response = requests.post(
            HCAPTCHA_VERIFY_URL,
            data={"secret": secret, "response": token},
            timeout=CAPTCHA_TIMEOUT_SECONDS,
        )
        response.raise_for_status()
        return bool(response.json().get("success"))
    except (requests.RequestException, ValueError) as exc:
        logger.error("hCaptcha verification error: %s", exc)
        return False


def upload_registration_file(blob_store, file: UploadFile, folder: str) -> str:
    if not file.content_type or file.content_type not in ALLOWED_UPLOAD_TYPES:
        raise RegistrationError("Invalid file type")
    data = file.file.read(MAX_UPLOAD_BYTES + 1)
    if not data:
        raise RegistrationError("Uploaded file is empty")
    if len(data) > MAX_UPLOAD_BYTES:
        raise RegistrationError("File exceeds 10MB limit")
    return blob_store.put(data, folder, file.filename or "upload", file.content_type)


def create_team_with_members(
    db: Session,
    data: TeamRegistration,
    payment_proof_url: str,
    extra_doc_url: Optional[str] = None,
) -> Team:
    """Insert the team, its members and the registration audit entry in one commit."""
    team = Team(
        team_name=data.team_name,
        category=TeamCategory(data.category.value),
        project_title=data.project_title,
        project_summary=data.project_summary,
        college_name=data.college_name,
        mentor_name=data.mentor_name,
        mentor_email=str(data.mentor_email) if data.mentor_email else None,
        contact_phone=data.contact_phone,
        contact_email=str(data.contact_email),
        member_count=len(data.members),
        payment_proof_url=payment_proof_url,
        extra_doc_url=extra_doc_url,
        status=TeamStatus.PENDING,
    )
    team.members = [
        Member(
            full_name=member.full_name,
            email=str(member.email),
            year=member.year,
            department=member.department,
        )
        for member in data.members
    ]
    try:
        db.add(team)
        db.flush()
        append_audit_log(db, team.id, AuditAction.TEAM_REGISTERED, SYSTEM_ACTOR, "Team registered via website")
        db.commit()
    except Exception:
        db.rollback()
        raise
    db.refresh(team)
    logger.info("Registered team %s (%s) with %d members", team.id, team.team_name, team.member_count)
    return team


def send_registration_alert(notifier, team: Team) -> bool:
    recipient = organizer_email()
    if not recipient:
        logger.warning("ORGANIZER_EMAIL not configured; skipping alert for team %s", team.id)
        return False
    subject, html, text = build_registration_alert_email(team, team.payment_proof_url, team.extra_doc_url)
    try:
        notifier.send(OutgoingEmail(recipients=[recipient], subject=subject, html=html, text=text))
    except NotificationError as exc:
        logger.warning("Organizer alert for team %s failed: %s", team.id, exc)
        return False
    return True


def register_team(
    db: Session,
    data: TeamRegistration,
    blob_store,
    notifier,
    payment_file: UploadFile,
    extra_file: Optional[UploadFile] = None,
) -> Team:
    if payment_file is None:
        raise RegistrationError("Payment proof is required")
    try:
        payment_proof_url = upload_registration_file(blob_store, payment_file, "payment-proofs")
        extra_doc_url = None
        if extra_file is not None and extra_file.filename:
            extra_doc_url = upload_registration_file(blob_store, extra_file, "extra-docs")
    except BlobStoreError:
        logger.exception("Registration upload failed")
        raise

    team = create_team_with_members(db, data, payment_proof_url, extra_doc_url)
    send_registration_alert(notifier, team)
    return team
