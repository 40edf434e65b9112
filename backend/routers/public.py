import json
import logging
from typing import Dict, List, Optional

from fastapi import APIRouter, Depends, File, Form, HTTPException, Request, Response, UploadFile, status
from pydantic import ValidationError
from sqlalchemy.orm import Session

from blob_store import BlobStoreError, get_blob_store
from database import get_db
from emailer import get_notifier
from event_settings import get_settings_map, load_settings_snapshot
from models import Team, TeamStatus
from rate_limit import REGISTRATION_LIMIT, limiter
from registration import RegistrationError, register_team, verify_hcaptcha
from schemas import GalleryTeamResponse, RegistrationResponse, TeamRegistration

logger = logging.getLogger(__name__)

router = APIRouter()


def get_captcha_verifier():
    return verify_hcaptcha


@router.get("/settings/public", response_model=Dict[str, str])
def get_public_settings(db: Session = Depends(get_db)):
    return get_settings_map(db)


@router.get("/gallery", response_model=List[GalleryTeamResponse])
def get_gallery(db: Session = Depends(get_db)):
    teams = (
        db.query(Team)
        .filter(Team.show_in_gallery == True, Team.status == TeamStatus.VERIFIED)
        .order_by(Team.created_at.desc())
        .all()
    )
    return [GalleryTeamResponse.model_validate(team) for team in teams]


@router.post(
    "/register",
    response_model=RegistrationResponse,
    status_code=status.HTTP_201_CREATED,
)
@limiter.limit(REGISTRATION_LIMIT, error_message="Too many registration attempts, please try again later.")
def register(
    request: Request,
    response: Response,
    data: str = Form(...),
    captcha_token: Optional[str] = Form(None, alias="captchaToken"),
    payment_file: Optional[UploadFile] = File(None, alias="paymentFile"),
    extra_file: Optional[UploadFile] = File(None, alias="extraFile"),
    db: Session = Depends(get_db),
    blob_store=Depends(get_blob_store),
    notifier=Depends(get_notifier),
    captcha_verifier=Depends(get_captcha_verifier),
):
    if not load_settings_snapshot(db).registration_open:
        raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail="Registration is closed")

    try:
        payload = TeamRegistration.model_validate(json.loads(data))
    except json.JSONDecodeError:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="Invalid registration payload")
    except ValidationError as exc:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail={"error": "Validation failed", "details": json.loads(exc.json())},
        )

    if not captcha_verifier(captcha_token):
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="Captcha verification failed")
    if payment_file is None or not payment_file.filename:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="Payment proof is required")

    try:
        team = register_team(db, payload, blob_store, notifier, payment_file, extra_file)
    except RegistrationError as exc:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=str(exc))
    except BlobStoreError as exc:
        raise HTTPException(status_code=status.HTTP_502_BAD_GATEWAY, detail="Upload failed") from exc

    return RegistrationResponse(message="Registration successful", team_id=team.id)
