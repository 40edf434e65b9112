from pathlib import Path
import os
import sys

ROOT = Path(__file__).resolve().parents[1]
BACKEND_DIR = ROOT / "backend"
if str(BACKEND_DIR) not in sys.path:
    sys.path.insert(0, str(BACKEND_DIR))

os.environ.setdefault("DATABASE_URL", "sqlite:///:memory:")
os.environ.setdefault("JWT_SECRET_KEY", "test-secret-key-for-innovatex-backend-0123456789")
os.environ["RATE_LIMIT_ENABLED"] = "false"
os.environ["RUN_BOOTSTRAP_ON_STARTUP"] = "false"

import pytest

from blob_store import BlobStoreError
from database import Base, SessionLocal, engine
from emailer import NotificationError
from models import Member, Team, TeamCategory, TeamStatus


class FakeBlobStore:
    def __init__(self, fail: bool = False):
        self.fail = fail
        self.calls = []

    def put(self, data, folder, filename, content_type="application/octet-stream"):
        self.calls.append((folder, filename, content_type, data))
        if self.fail:
            raise BlobStoreError("bucket unavailable")
        return f"https://bucket.s3.test/innovate-x/{folder}/{len(self.calls)}-{filename}"


class FakeNotifier:
    def __init__(self, fail: bool = False):
        self.fail = fail
        self.sent = []
        self.attempts = 0

    def send(self, email):
        self.attempts += 1
        if self.fail:
            raise NotificationError("smtp down")
        self.sent.append(email)


@pytest.fixture
def db():
    Base.metadata.create_all(bind=engine)
    session = SessionLocal()
    try:
        yield session
    finally:
        session.close()
        Base.metadata.drop_all(bind=engine)


@pytest.fixture
def blob_store():
    return FakeBlobStore()


@pytest.fixture
def notifier():
    return FakeNotifier()


@pytest.fixture
def make_team(db):
    def _make(team_id=None, team_name="Alpha", member_emails=("a@college.edu", "b@college.edu"), status=TeamStatus.PENDING):
        team = Team(
            team_name=team_name,
            category=TeamCategory.SOFTWARE,
            project_title="Smart Irrigation",
            project_summary="A low cost soil moisture network for small farms.",
            college_name="Test College",
            contact_phone="9876543210",
            contact_email="contact@college.edu",
            member_count=len(member_emails),
            payment_proof_url="https://bucket.s3.test/innovate-x/payment-proofs/p.png",
            status=status,
        )
        if team_id:
            team.id = team_id
        team.members = [
            Member(full_name=f"Member {index + 1}", email=email, year="3rd", department="CSE")
            for index, email in enumerate(member_emails)
        ]
        db.add(team)
        db.commit()
        db.refresh(team)
        return team

    return _make
