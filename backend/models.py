from sqlalchemy import Column, Integer, String, Boolean, DateTime, Enum as SQLEnum, ForeignKey, Text
from sqlalchemy.orm import relationship
from sqlalchemy.sql import func
from database import Base
import enum
import uuid


def _new_id() -> str:
    return uuid.uuid4().hex


class TeamCategory(str, enum.Enum):
    SOFTWARE = "SOFTWARE"
    HARDWARE = "HARDWARE"


class TeamStatus(str, enum.Enum):
    PENDING = "PENDING"
    VERIFIED = "VERIFIED"
    REJECTED = "REJECTED"


class NotificationStatus(str, enum.Enum):
    PENDING = "PENDING"
    SENT = "SENT"
    FAILED = "FAILED"


class AuditAction:
    TEAM_REGISTERED = "TEAM_REGISTERED"
    TEAM_VERIFIED = "TEAM_VERIFIED"
    TEAM_REJECTED = "TEAM_REJECTED"
    QR_UPLOADED = "QR_UPLOADED"
    QR_UPLOAD_FAILED = "QR_UPLOAD_FAILED"
    NOTIFICATION_FAILED = "NOTIFICATION_FAILED"
    NOTIFICATION_RESENT = "NOTIFICATION_RESENT"
    GALLERY_ENABLED = "GALLERY_ENABLED"
    GALLERY_DISABLED = "GALLERY_DISABLED"


class Admin(Base):
    __tablename__ = "admins"

    id = Column(String(32), primary_key=True, default=_new_id)
    email = Column(String(255), unique=True, index=True, nullable=False)
    hashed_password = Column(String(255), nullable=False)
    created_at = Column(DateTime(timezone=True), server_default=func.now())


class EventSetting(Base):
    __tablename__ = "event_settings"

    id = Column(String(32), primary_key=True, default=_new_id)
    key = Column(String(100), unique=True, nullable=False)
    value = Column(Text, nullable=False)
    updated_at = Column(DateTime(timezone=True), server_default=func.now(), onupdate=func.now())


class Team(Base):
    __tablename__ = "teams"

    id = Column(String(32), primary_key=True, default=_new_id)
    team_name = Column(String(255), nullable=False)
    category = Column(SQLEnum(TeamCategory), nullable=False)
    project_title = Column(String(255), nullable=False)
    project_summary = Column(Text, nullable=False)
    college_name = Column(String(255), nullable=False)
    mentor_name = Column(String(255), nullable=True)
    mentor_email = Column(String(255), nullable=True)
    contact_phone = Column(String(20), nullable=False)
    contact_email = Column(String(255), nullable=False)
    member_count = Column(Integer, nullable=False)
    payment_proof_url = Column(String(500), nullable=False)
    extra_doc_url = Column(String(500), nullable=True)
    status = Column(SQLEnum(TeamStatus), default=TeamStatus.PENDING, nullable=False, index=True)
    verification_note = Column(Text, nullable=True)
    qr_code_url = Column(String(500), nullable=True)
    verified_at = Column(DateTime(timezone=True), nullable=True)
    verified_by = Column(String(255), nullable=True)
    show_in_gallery = Column(Boolean, default=False, nullable=False)
    # Delivery bookkeeping for the post-decision side effects.
    notification_status = Column(SQLEnum(NotificationStatus), nullable=True)
    notification_attempts = Column(Integer, default=0, nullable=False)
    notified_at = Column(DateTime(timezone=True), nullable=True)
    delivery_error = Column(Text, nullable=True)
    created_at = Column(DateTime(timezone=True), server_default=func.now())
    updated_at = Column(DateTime(timezone=True), server_default=func.now(), onupdate=func.now())

    members = relationship(
        "Member",
        back_populates="team",
        cascade="all, delete-orphan",
        passive_deletes=True,
        order_by="Member.created_at",
    )
    audit_logs = relationship("AuditLog", back_populates="team", order_by="AuditLog.created_at")


class Member(Base):
    __tablename__ = "members"

    id = Column(String(32), primary_key=True, default=_new_id)
    team_id = Column(String(32), ForeignKey("teams.id", ondelete="CASCADE"), nullable=False, index=True)
    full_name = Column(String(255), nullable=False)
    email = Column(String(255), nullable=False)
    year = Column(String(50), nullable=False)
    department = Column(String(150), nullable=False)
    created_at = Column(DateTime(timezone=True), server_default=func.now())

    team = relationship("Team", back_populates="members")


class AuditLog(Base):
    __tablename__ = "audit_logs"

    id = Column(String(32), primary_key=True, default=_new_id)
    team_id = Column(String(32), ForeignKey("teams.id", ondelete="CASCADE"), nullable=False, index=True)
    action = Column(String(64), nullable=False)
    performed_by = Column(String(255), nullable=False)
    details = Column(Text, nullable=True)
    created_at = Column(DateTime(timezone=True), server_default=func.now())

    team = relationship("Team", back_populates="audit_logs")


class RevokedSession(Base):
    """JWT session ids invalidated by logout; rows are pruned once the token would have expired."""

    __tablename__ = "revoked_sessions"

    sid = Column(String(64), primary_key=True)
    expires_at = Column(DateTime(timezone=True), nullable=False, index=True)
    revoked_at = Column(DateTime(timezone=True), server_default=func.now())
