from pydantic import BaseModel, ConfigDict, EmailStr, Field, field_validator, model_validator
from pydantic.alias_generators import to_camel
from typing import Optional, List, Literal
from enum import Enum
from datetime import datetime
import re

PHONE_RE = re.compile(r"^[0-9]{10}$")


class CategoryEnum(str, Enum):
    SOFTWARE = "SOFTWARE"
    HARDWARE = "HARDWARE"


class TeamStatusEnum(str, Enum):
    PENDING = "PENDING"
    VERIFIED = "VERIFIED"
    REJECTED = "REJECTED"


class NotificationStatusEnum(str, Enum):
    PENDING = "PENDING"
    SENT = "SENT"
    FAILED = "FAILED"


class CamelModel(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True, from_attributes=True)


def _blank_to_none(value):
    if value is None:
        return None
    if isinstance(value, str) and not value.strip():
        return None
    return value


# Registration Schemas
class MemberCreate(CamelModel):
    full_name: str = Field(..., min_length=2, max_length=255)
    email: EmailStr
    year: str = Field(..., min_length=1, max_length=50)
    department: str = Field(..., min_length=1, max_length=150)

    @field_validator('full_name', 'year', 'department', mode='before')
    @classmethod
    def strip_text(cls, v):
        return v.strip() if isinstance(v, str) else v


class TeamRegistration(CamelModel):
    team_name: str = Field(..., min_length=2, max_length=255)
    category: CategoryEnum
    project_title: str = Field(..., min_length=5, max_length=255)
    project_summary: str = Field(..., min_length=100, max_length=1000)
    college_name: str = Field(..., min_length=2, max_length=255)
    mentor_name: Optional[str] = Field(default=None, max_length=255)
    mentor_email: Optional[EmailStr] = None
    contact_phone: str
    contact_email: EmailStr
    member_count: int = Field(..., ge=2, le=4)
    members: List[MemberCreate] = Field(..., min_length=2, max_length=4)

    @field_validator('mentor_name', 'mentor_email', mode='before')
    @classmethod
    def optional_blank(cls, v):
        return _blank_to_none(v)

    @field_validator('team_name', 'project_title', 'project_summary', 'college_name', mode='before')
    @classmethod
    def strip_text(cls, v):
        return v.strip() if isinstance(v, str) else v

    @field_validator('contact_phone')
    @classmethod
    def validate_phone(cls, v):
        if not PHONE_RE.match(v or ""):
            raise ValueError('Phone must be 10 digits')
        return v

    @model_validator(mode='after')
    def validate_members(self):
        if self.member_count != len(self.members):
            raise ValueError('memberCount must equal the number of members')
        emails = [str(member.email).lower() for member in self.members]
        if len(set(emails)) != len(emails):
            raise ValueError('Each member must have a distinct email address')
        return self


class RegistrationResponse(CamelModel):
    message: str
    team_id: str


# Team Schemas
class MemberResponse(CamelModel):
    id: str
    full_name: str
    email: str
    year: str
    department: str


class AuditLogResponse(CamelModel):
    id: str
    action: str
    performed_by: str
    details: Optional[str] = None
    created_at: Optional[datetime] = None


class TeamResponse(CamelModel):
    id: str
    team_name: str
    category: CategoryEnum
    project_title: str
    project_summary: str
    college_name: str
    mentor_name: Optional[str] = None
    mentor_email: Optional[str] = None
    contact_phone: str
    contact_email: str
    member_count: int
    payment_proof_url: str
    extra_doc_url: Optional[str] = None
    status: TeamStatusEnum
    verification_note: Optional[str] = None
    qr_code_url: Optional[str] = None
    verified_at: Optional[datetime] = None
    verified_by: Optional[str] = None
    show_in_gallery: bool = False
    notification_status: Optional[NotificationStatusEnum] = None
    notification_attempts: int = 0
    notified_at: Optional[datetime] = None
    delivery_error: Optional[str] = None
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None
    members: List[MemberResponse] = []


class TeamDetailResponse(TeamResponse):
    audit_logs: List[AuditLogResponse] = []


class GalleryTeamResponse(CamelModel):
    id: str
    team_name: str
    category: CategoryEnum
    project_title: str
    project_summary: str
    college_name: str


class TeamStatusUpdate(CamelModel):
    status: Literal["VERIFIED", "REJECTED"]
    note: Optional[str] = Field(default=None, max_length=1000)


class GalleryVisibilityUpdate(CamelModel):
    show_in_gallery: bool


class DecisionResponse(CamelModel):
    message: str
    degraded: bool = False
    issues: List[str] = []
    team: TeamResponse


# Auth Schemas
class AdminLogin(CamelModel):
    email: EmailStr
    password: str = Field(..., min_length=1)


class AdminTokenResponse(BaseModel):
    access_token: str
    token_type: str = "bearer"
    csrf_token: str
    email: str


class CsrfTokenResponse(BaseModel):
    csrf_token: str


class MessageResponse(BaseModel):
    message: str


class UploadResponse(BaseModel):
    message: str
    url: str
