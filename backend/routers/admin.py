import logging
from typing import Any, Dict, List, Literal

from fastapi import APIRouter, Body, Depends, File, HTTPException, Query, Request, Response, UploadFile, status
from sqlalchemy.orm import Session, selectinload

import team_store
from auth import create_admin_token, decode_token, get_access_payload, issue_csrf_token, revoke_session, verify_password
from blob_store import BlobStoreError, get_blob_store
from database import get_db
from emailer import get_notifier
from event_settings import PAYMENT_QR_URL, get_settings_map, load_settings_snapshot, upsert_setting, upsert_settings
from exports import export_response
from models import Admin, Team
from rate_limit import LOGIN_LIMIT, limiter
from registration import RegistrationError, upload_registration_file
from schemas import (
    AdminLogin,
    AdminTokenResponse,
    AuditLogResponse,
    CsrfTokenResponse,
    DecisionResponse,
    GalleryVisibilityUpdate,
    MessageResponse,
    TeamDetailResponse,
    TeamResponse,
    TeamStatusUpdate,
    UploadResponse,
)
from security import require_admin, require_admin_with_csrf
from verification_workflow import (
    ArtifactGenerationError,
    Decision,
    DecisionOutcome,
    InvalidStateTransitionError,
    TeamNotFoundError,
    VerificationWorkflow,
)

logger = logging.getLogger(__name__)

router = APIRouter()


def get_workflow(
    db: Session = Depends(get_db),
    blob_store=Depends(get_blob_store),
    notifier=Depends(get_notifier),
) -> VerificationWorkflow:
    return VerificationWorkflow(db, blob_store, notifier)


def _decision_response(outcome: DecisionOutcome, response: Response, message: str) -> DecisionResponse:
    if outcome.degraded:
        response.status_code = status.HTTP_202_ACCEPTED
        message = f"{message}; some follow-up steps need attention"
    return DecisionResponse(
        message=message,
        degraded=outcome.degraded,
        issues=outcome.issues,
        team=TeamResponse.model_validate(outcome.team),
    )


def _raise_for_workflow_error(exc: Exception) -> None:
    if isinstance(exc, TeamNotFoundError):
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Team not found")
    if isinstance(exc, InvalidStateTransitionError):
        raise HTTPException(status_code=status.HTTP_409_CONFLICT, detail=str(exc))
    if isinstance(exc, ArtifactGenerationError):
        raise HTTPException(status_code=status.HTTP_500_INTERNAL_SERVER_ERROR, detail="Failed to generate verification artifacts")
    raise exc


# ==================== AUTH ====================
@router.post("/auth/login", response_model=AdminTokenResponse)
@limiter.limit(LOGIN_LIMIT, error_message="Too many login attempts, please try again later.")
def admin_login(request: Request, response: Response, login_data: AdminLogin, db: Session = Depends(get_db)):
    admin = db.query(Admin).filter(Admin.email == str(login_data.email).lower()).first()
    if not admin or not verify_password(login_data.password, admin.hashed_password):
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="Invalid credentials")

    access_token = create_admin_token(admin)
    payload = decode_token(access_token)
    return AdminTokenResponse(
        access_token=access_token,
        csrf_token=issue_csrf_token(payload["sid"]),
        email=admin.email,
    )


@router.get("/auth/csrf", response_model=CsrfTokenResponse)
def get_csrf_token(
    admin: Admin = Depends(require_admin),
    payload: dict = Depends(get_access_payload),
):
    return CsrfTokenResponse(csrf_token=issue_csrf_token(payload.get("sid")))


@router.post("/auth/logout", response_model=MessageResponse)
def admin_logout(
    admin: Admin = Depends(require_admin_with_csrf),
    payload: dict = Depends(get_access_payload),
    db: Session = Depends(get_db),
):
    revoke_session(db, payload)
    logger.info("Admin %s logged out", admin.email)
    return MessageResponse(message="Logged out successfully")


# ==================== TEAMS ====================
@router.get("/admin/teams", response_model=List[TeamResponse])
def list_teams(admin: Admin = Depends(require_admin), db: Session = Depends(get_db)):
    teams = (
        db.query(Team)
        .options(selectinload(Team.members))
        .order_by(Team.created_at.desc())
        .all()
    )
    return [TeamResponse.model_validate(team) for team in teams]


@router.get("/admin/teams/{team_id}", response_model=TeamDetailResponse)
def get_team_detail(team_id: str, admin: Admin = Depends(require_admin), db: Session = Depends(get_db)):
    team = team_store.get_team(db, team_id)
    if not team:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Team not found")
    detail = TeamDetailResponse.model_validate(team)
    detail.audit_logs = [AuditLogResponse.model_validate(log) for log in team_store.list_audit_logs(db, team_id)]
    return detail


@router.patch("/admin/teams/{team_id}/status", response_model=DecisionResponse)
def update_team_status(
    team_id: str,
    update: TeamStatusUpdate,
    response: Response,
    admin: Admin = Depends(require_admin_with_csrf),
    db: Session = Depends(get_db),
    workflow: VerificationWorkflow = Depends(get_workflow),
):
    settings = load_settings_snapshot(db)
    try:
        outcome = workflow.decide(team_id, Decision.from_status(update.status), update.note, admin.email, settings)
    except (TeamNotFoundError, InvalidStateTransitionError, ArtifactGenerationError) as exc:
        _raise_for_workflow_error(exc)
    return _decision_response(outcome, response, "Team status updated successfully")


@router.post("/admin/teams/{team_id}/retry-delivery", response_model=DecisionResponse)
def retry_team_delivery(
    team_id: str,
    response: Response,
    admin: Admin = Depends(require_admin_with_csrf),
    db: Session = Depends(get_db),
    workflow: VerificationWorkflow = Depends(get_workflow),
):
    settings = load_settings_snapshot(db)
    try:
        outcome = workflow.retry_delivery(team_id, admin.email, settings)
    except (TeamNotFoundError, InvalidStateTransitionError, ArtifactGenerationError) as exc:
        _raise_for_workflow_error(exc)
    return _decision_response(outcome, response, "Delivery steps completed")


@router.patch("/admin/teams/{team_id}/gallery", response_model=MessageResponse)
def update_gallery_visibility(
    team_id: str,
    update: GalleryVisibilityUpdate,
    admin: Admin = Depends(require_admin_with_csrf),
    db: Session = Depends(get_db),
):
    team = team_store.get_team(db, team_id)
    if not team:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Team not found")
    team_store.set_gallery_visibility(db, team, update.show_in_gallery, admin.email)
    return MessageResponse(message="Gallery visibility updated")


@router.get("/admin/export")
def export_teams(
    format: Literal["csv", "xlsx"] = Query("csv"),
    admin: Admin = Depends(require_admin),
    db: Session = Depends(get_db),
):
    teams = (
        db.query(Team)
        .options(selectinload(Team.members))
        .order_by(Team.created_at.desc())
        .all()
    )
    return export_response(teams, format=format)


# ==================== SETTINGS ====================
@router.get("/admin/settings", response_model=Dict[str, str])
def get_admin_settings(admin: Admin = Depends(require_admin), db: Session = Depends(get_db)):
    return get_settings_map(db)


@router.post("/admin/settings", response_model=MessageResponse)
def update_admin_settings(
    updates: Dict[str, Any] = Body(...),
    admin: Admin = Depends(require_admin_with_csrf),
    db: Session = Depends(get_db),
):
    changed = upsert_settings(db, updates)
    logger.info("Admin %s updated %d setting(s)", admin.email, changed)
    return MessageResponse(message="Settings updated successfully")


@router.post("/admin/upload-qr", response_model=UploadResponse)
def upload_payment_qr(
    file: UploadFile = File(...),
    admin: Admin = Depends(require_admin_with_csrf),
    db: Session = Depends(get_db),
    blob_store=Depends(get_blob_store),
):
    try:
        url = upload_registration_file(blob_store, file, "payment-qr")
    except RegistrationError as exc:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=str(exc))
    except BlobStoreError as exc:
        raise HTTPException(status_code=status.HTTP_502_BAD_GATEWAY, detail="Failed to upload QR code") from exc

    upsert_setting(db, PAYMENT_QR_URL, url)
    db.commit()
    return UploadResponse(message="QR code uploaded successfully", url=url)
