from typing import Optional
from fastapi import Depends, Header, HTTPException, status

from auth import get_access_payload, get_current_admin, verify_csrf_token
from models import Admin

CSRF_HEADER = "X-CSRF-Token"


def require_admin(admin: Admin = Depends(get_current_admin)) -> Admin:
    return admin


def require_admin_with_csrf(
    admin: Admin = Depends(get_current_admin),
    payload: dict = Depends(get_access_payload),
    csrf_token: Optional[str] = Header(None, alias=CSRF_HEADER),
) -> Admin:
    if not verify_csrf_token(payload.get("sid"), csrf_token):
        raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail="Invalid or expired CSRF token")
    return admin
