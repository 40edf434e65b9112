from datetime import datetime, timedelta, timezone
from typing import Optional
from jose import JWTError, jwt
from fastapi import Depends, HTTPException, status
from fastapi.security import HTTPBearer, HTTPAuthorizationCredentials
from sqlalchemy.orm import Session
import bcrypt
import hashlib
import hmac
import os
import secrets
from dotenv import load_dotenv
from pathlib import Path
from database import get_db
from models import Admin, RevokedSession

ROOT_DIR = Path(__file__).parent
load_dotenv(ROOT_DIR / '.env')

def _load_jwt_secret() -> str:
    secret = os.environ.get('JWT_SECRET_KEY')
    if not secret:
        raise RuntimeError('JWT_SECRET_KEY is required and must be set in environment')
    weak_values = {
        'default_secret_key',
        'changeme',
        'change_me',
        'secret',
        'jwt_secret',
        'password',
        'admin123',
    }
    if len(secret) < 32 or secret.strip().lower() in weak_values:
        raise RuntimeError('JWT_SECRET_KEY is too weak; use a random secret with at least 32 characters')
    return secret


SECRET_KEY = _load_jwt_secret()
ALGORITHM = os.environ.get('JWT_ALGORITHM', 'HS256')
ACCESS_TOKEN_EXPIRE_MINUTES = int(os.environ.get('ACCESS_TOKEN_EXPIRE_MINUTES', 24 * 60))
CSRF_TOKEN_TTL_SECONDS = int(os.environ.get('CSRF_TOKEN_TTL_SECONDS', 60 * 60))

security = HTTPBearer()


def verify_password(plain_password: str, hashed_password: str) -> bool:
    try:
        pw_bytes = plain_password.encode('utf-8')
    except Exception:
        pw_bytes = str(plain_password).encode('utf-8')
    digest = hashlib.sha256(pw_bytes).digest()
    try:
        return bcrypt.checkpw(digest, hashed_password.encode('utf-8'))
    except ValueError:
        return False


def get_password_hash(password: str) -> str:
    # Always pre-hash password with SHA-256, then bcrypt the digest
    try:
        pw_bytes = password.encode('utf-8')
    except Exception:
        pw_bytes = str(password).encode('utf-8')
    digest = hashlib.sha256(pw_bytes).digest()
    hashed = bcrypt.hashpw(digest, bcrypt.gensalt())
    return hashed.decode('utf-8')


def create_access_token(data: dict, expires_delta: Optional[timedelta] = None) -> str:
    to_encode = data.copy()
    if expires_delta:
        expire = datetime.now(timezone.utc) + expires_delta
    else:
        expire = datetime.now(timezone.utc) + timedelta(minutes=ACCESS_TOKEN_EXPIRE_MINUTES)
    # sid ties CSRF tokens to this login session.
    to_encode.setdefault("sid", secrets.token_urlsafe(16))
    to_encode.update({"exp": expire, "type": "access"})
    encoded_jwt = jwt.encode(to_encode, SECRET_KEY, algorithm=ALGORITHM)
    return encoded_jwt


def create_admin_token(admin: Admin) -> str:
    return create_access_token({"sub": admin.email, "user_type": "admin"})


def decode_token(token: str) -> dict:
    try:
        payload = jwt.decode(token, SECRET_KEY, algorithms=[ALGORITHM])
        return payload
    except JWTError:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Could not validate credentials",
            headers={"WWW-Authenticate": "Bearer"},
        )


def _csrf_signature(session_id: str, expires: int) -> str:
    message = f"{session_id}:{expires}".encode('utf-8')
    return hmac.new(SECRET_KEY.encode('utf-8'), message, hashlib.sha256).hexdigest()


def issue_csrf_token(session_id: str, ttl_seconds: Optional[int] = None) -> str:
    ttl = CSRF_TOKEN_TTL_SECONDS if ttl_seconds is None else ttl_seconds
    expires = int(datetime.now(timezone.utc).timestamp()) + ttl
    return f"{expires}.{_csrf_signature(session_id, expires)}"


def verify_csrf_token(session_id: Optional[str], token: Optional[str]) -> bool:
    if not session_id or not token or "." not in token:
        return False
    expires_raw, signature = token.split(".", 1)
    try:
        expires = int(expires_raw)
    except ValueError:
        return False
    if expires < int(datetime.now(timezone.utc).timestamp()):
        return False
    return hmac.compare_digest(signature, _csrf_signature(session_id, expires))


def is_session_revoked(db: Session, session_id: Optional[str]) -> bool:
    if not session_id:
        return False
    return db.query(RevokedSession).filter(RevokedSession.sid == session_id).first() is not None


def revoke_session(db: Session, payload: dict) -> None:
    session_id = payload.get("sid")
    if not session_id:
        return
    now = datetime.now(timezone.utc)
    expires_at = datetime.fromtimestamp(int(payload.get("exp") or now.timestamp()), tz=timezone.utc)
    db.query(RevokedSession).filter(RevokedSession.expires_at < now).delete(synchronize_session=False)
    if not is_session_revoked(db, session_id):
        db.add(RevokedSession(sid=session_id, expires_at=expires_at))
    db.commit()


def get_access_payload(credentials: HTTPAuthorizationCredentials = Depends(security)) -> dict:
    payload = decode_token(credentials.credentials)

    if payload.get("type") != "access":
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Invalid token type"
        )

    if payload.get("user_type") != "admin":
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Invalid token user type"
        )
    return payload


def get_current_admin(
    payload: dict = Depends(get_access_payload),
    db: Session = Depends(get_db)
) -> Admin:
    email: str = payload.get("sub")
    if email is None:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Could not validate credentials"
        )

    if is_session_revoked(db, payload.get("sid")):
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Session has been logged out"
        )

    admin = db.query(Admin).filter(Admin.email == email).first()
    if admin is None:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Admin not found"
        )

    return admin
