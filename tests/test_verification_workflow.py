import pytest

import team_store
from conftest import FakeBlobStore, FakeNotifier
from database import SessionLocal
from event_settings import EventSettingsSnapshot
from models import AuditAction, NotificationStatus, TeamStatus
from verification_workflow import (
    ArtifactGenerationError,
    Decision,
    InvalidStateTransitionError,
    TeamNotFoundError,
    VerificationWorkflow,
)

SETTINGS = EventSettingsSnapshot({
    "EVENT_DATE": "November 25, 2025",
    "EVENT_TIME": "9:00 AM - 5:00 PM",
    "EVENT_VENUE": "Main Auditorium",
    "EVENT_ADDRESS": "Your College",
})


def _actions(db, team_id):
    return sorted(log.action for log in team_store.list_audit_logs(db, team_id))


def test_verify_team_end_to_end(db, make_team, blob_store, notifier):
    make_team(team_id="t1", team_name="Alpha")
    workflow = VerificationWorkflow(db, blob_store, notifier)

    outcome = workflow.decide("t1", Decision.VERIFY, "Payment ok", "admin@innovatex.org", SETTINGS)

    team = outcome.team
    assert not outcome.degraded
    assert team.status == TeamStatus.VERIFIED
    assert team.verified_by == "admin@innovatex.org"
    assert team.verified_at is not None
    assert team.verification_note == "Payment ok"
    assert team.qr_code_url.startswith("https://")
    assert team.notification_status == NotificationStatus.SENT
    assert team.notification_attempts == 1
    assert team.delivery_error is None

    assert len(blob_store.calls) == 1
    assert blob_store.calls[0][0] == "qr-codes"
    assert blob_store.calls[0][3][:8] == b"\x89PNG\r\n\x1a\n"

    assert len(notifier.sent) == 1
    email = notifier.sent[0]
    assert sorted(email.recipients) == ["a@college.edu", "b@college.edu"]
    assert email.subject == "Team Verified - Innovate-X 2025"
    assert "Dear Team Alpha" in email.text
    assert email.attachments[0].filename.endswith(".ics")
    assert b"BEGIN:VEVENT" in email.attachments[0].content
    assert f"cid:{email.inline_images[0].content_id}" in email.html

    assert _actions(db, "t1") == [AuditAction.TEAM_VERIFIED]
    log = team_store.list_audit_logs(db, "t1")[0]
    assert log.performed_by == "admin@innovatex.org"
    assert log.details == "Payment ok"


def test_decide_unknown_team(db, blob_store, notifier):
    workflow = VerificationWorkflow(db, blob_store, notifier)
    with pytest.raises(TeamNotFoundError):
        workflow.decide("missing", Decision.VERIFY, None, "admin@innovatex.org", SETTINGS)
    assert blob_store.calls == []
    assert notifier.sent == []


def test_second_decision_is_rejected(db, make_team, blob_store, notifier):
    make_team(team_id="t1")
    workflow = VerificationWorkflow(db, blob_store, notifier)
    workflow.decide("t1", Decision.VERIFY, None, "admin@innovatex.org", SETTINGS)

    with pytest.raises(InvalidStateTransitionError):
        workflow.decide("t1", Decision.REJECT, "late", "other@innovatex.org", SETTINGS)

    team = team_store.refresh_team(db, "t1")
    assert team.status == TeamStatus.VERIFIED
    assert len(notifier.sent) == 1
    assert _actions(db, "t1") == [AuditAction.TEAM_VERIFIED]


def test_lost_race_does_not_send(db, make_team, blob_store, notifier, monkeypatch):
    make_team(team_id="t1")
    workflow = VerificationWorkflow(db, blob_store, notifier)
    monkeypatch.setattr(team_store, "claim_decision", lambda *args, **kwargs: False)

    with pytest.raises(InvalidStateTransitionError):
        workflow.decide("t1", Decision.VERIFY, None, "admin@innovatex.org", SETTINGS)
    assert blob_store.calls == []
    assert notifier.sent == []


def test_reject_notifies_contact_only(db, make_team, blob_store, notifier):
    make_team(team_id="t2", team_name="Beta")
    workflow = VerificationWorkflow(db, blob_store, notifier)

    outcome = workflow.decide("t2", Decision.REJECT, "Payment proof unreadable", "admin@innovatex.org", SETTINGS)

    assert outcome.team.status == TeamStatus.REJECTED
    assert outcome.team.verified_at is None
    assert outcome.team.qr_code_url is None
    assert blob_store.calls == []
    assert len(notifier.sent) == 1
    assert notifier.sent[0].recipients == ["contact@college.edu"]
    assert "Payment proof unreadable" in notifier.sent[0].text
    assert notifier.sent[0].attachments == []
    assert _actions(db, "t2") == [AuditAction.TEAM_REJECTED]


def test_all_members_get_one_message(db, make_team, blob_store, notifier):
    make_team(team_id="t3", member_emails=("x@college.edu", "y@college.edu", "z@college.edu"))
    workflow = VerificationWorkflow(db, blob_store, notifier)

    workflow.decide("t3", Decision.VERIFY, None, "admin@innovatex.org", SETTINGS)

    assert notifier.attempts == 1
    assert sorted(notifier.sent[0].recipients) == ["x@college.edu", "y@college.edu", "z@college.edu"]


def test_blob_failure_keeps_decision(db, make_team, notifier):
    make_team(team_id="t1")
    workflow = VerificationWorkflow(db, FakeBlobStore(fail=True), notifier)

    outcome = workflow.decide("t1", Decision.VERIFY, None, "admin@innovatex.org", SETTINGS)

    assert outcome.degraded
    assert outcome.team.status == TeamStatus.VERIFIED
    assert outcome.team.qr_code_url is None
    assert "QR upload failed" in outcome.team.delivery_error
    # The email still carries the QR inline.
    assert len(notifier.sent) == 1
    assert notifier.sent[0].inline_images
    assert _actions(db, "t1") == sorted([AuditAction.TEAM_VERIFIED, AuditAction.QR_UPLOAD_FAILED])


def test_notification_failure_keeps_decision(db, make_team, blob_store):
    make_team(team_id="t1")
    workflow = VerificationWorkflow(db, blob_store, FakeNotifier(fail=True))

    outcome = workflow.decide("t1", Decision.VERIFY, None, "admin@innovatex.org", SETTINGS)

    assert outcome.degraded
    assert outcome.team.status == TeamStatus.VERIFIED
    assert outcome.team.qr_code_url is not None
    assert outcome.team.notification_status == NotificationStatus.FAILED
    assert "smtp down" in outcome.team.delivery_error
    assert _actions(db, "t1") == sorted([AuditAction.TEAM_VERIFIED, AuditAction.NOTIFICATION_FAILED])


def test_artifact_failure_leaves_team_pending(db, make_team, blob_store, notifier, monkeypatch):
    import verification_workflow

    make_team(team_id="t1")

    def broken(token):
        raise ArtifactGenerationError("no encoder")

    monkeypatch.setattr(verification_workflow, "render_qr_image", broken)
    workflow = VerificationWorkflow(db, blob_store, notifier)

    with pytest.raises(ArtifactGenerationError):
        workflow.decide("t1", Decision.VERIFY, None, "admin@innovatex.org", SETTINGS)

    team = team_store.refresh_team(db, "t1")
    assert team.status == TeamStatus.PENDING
    assert team_store.list_audit_logs(db, "t1") == []
    assert notifier.sent == []


def test_retry_resends_failed_notification_once(db, make_team, blob_store):
    make_team(team_id="t1")
    failing = FakeNotifier(fail=True)
    VerificationWorkflow(db, blob_store, failing).decide("t1", Decision.VERIFY, None, "admin@innovatex.org", SETTINGS)

    working = FakeNotifier()
    workflow = VerificationWorkflow(db, blob_store, working)
    outcome = workflow.retry_delivery("t1", "admin@innovatex.org", SETTINGS)

    assert not outcome.degraded
    assert outcome.team.notification_status == NotificationStatus.SENT
    assert outcome.team.notification_attempts == 2
    assert outcome.team.delivery_error is None
    assert len(working.sent) == 1
    # QR was already stored, so it is not uploaded again.
    assert len(blob_store.calls) == 1
    assert AuditAction.NOTIFICATION_RESENT in _actions(db, "t1")

    workflow.retry_delivery("t1", "admin@innovatex.org", SETTINGS)
    assert len(working.sent) == 1


def test_retry_does_not_resend_sent_notification(db, make_team, blob_store, notifier):
    make_team(team_id="t1")
    workflow = VerificationWorkflow(db, blob_store, notifier)
    workflow.decide("t1", Decision.VERIFY, None, "admin@innovatex.org", SETTINGS)

    outcome = workflow.retry_delivery("t1", "admin@innovatex.org", SETTINGS)

    assert not outcome.degraded
    assert len(notifier.sent) == 1
    assert len(blob_store.calls) == 1


def test_retry_uploads_missing_qr(db, make_team, notifier):
    make_team(team_id="t1")
    VerificationWorkflow(db, FakeBlobStore(fail=True), notifier).decide(
        "t1", Decision.VERIFY, None, "admin@innovatex.org", SETTINGS
    )

    store = FakeBlobStore()
    outcome = VerificationWorkflow(db, store, notifier).retry_delivery("t1", "admin@innovatex.org", SETTINGS)

    assert not outcome.degraded
    assert outcome.team.qr_code_url is not None
    assert outcome.team.delivery_error is None
    assert len(store.calls) == 1
    assert len(notifier.sent) == 1
    assert AuditAction.QR_UPLOADED in _actions(db, "t1")


def test_retry_on_pending_team_is_invalid(db, make_team, blob_store, notifier):
    make_team(team_id="t1")
    with pytest.raises(InvalidStateTransitionError):
        VerificationWorkflow(db, blob_store, notifier).retry_delivery("t1", "admin@innovatex.org", SETTINGS)


def test_retry_resends_rejection(db, make_team, blob_store):
    make_team(team_id="t2")
    VerificationWorkflow(db, blob_store, FakeNotifier(fail=True)).decide(
        "t2", Decision.REJECT, None, "admin@innovatex.org", SETTINGS
    )
    working = FakeNotifier()

    outcome = VerificationWorkflow(db, blob_store, working).retry_delivery("t2", "admin@innovatex.org", SETTINGS)

    assert outcome.team.notification_status == NotificationStatus.SENT
    assert working.sent[0].recipients == ["contact@college.edu"]
    assert blob_store.calls == []


def test_decision_from_status():
    assert Decision.from_status("VERIFIED") == Decision.VERIFY
    assert Decision.from_status("rejected") == Decision.REJECT
    with pytest.raises(ValueError):
        Decision.from_status("PENDING")


def test_concurrent_decisions_only_one_wins(db, make_team, blob_store, notifier):
    make_team(team_id="t1")
    first, second = SessionLocal(), SessionLocal()
    try:
        stale = team_store.get_team(first, "t1")
        assert stale.status == TeamStatus.PENDING

        VerificationWorkflow(second, blob_store, notifier).decide(
            "t1", Decision.VERIFY, None, "admin@innovatex.org", SETTINGS
        )

        # The first session still believes the team is PENDING.
        assert stale.status == TeamStatus.PENDING
        with pytest.raises(InvalidStateTransitionError):
            VerificationWorkflow(first, blob_store, notifier).decide(
                "t1", Decision.REJECT, "late", "other@innovatex.org", SETTINGS
            )
        assert team_store.claim_decision(
            first, "t1", TeamStatus.REJECTED, None, "other@innovatex.org", AuditAction.TEAM_REJECTED
        ) is False
    finally:
        first.close()
        second.close()

    assert len(notifier.sent) == 1
    assert team_store.refresh_team(db, "t1").status == TeamStatus.VERIFIED
    decisions = [action for action in _actions(db, "t1") if action.startswith("TEAM_")]
    assert decisions == [AuditAction.TEAM_VERIFIED]


def test_stale_notification_attempt_is_refused(db, make_team, blob_store):
    make_team(team_id="t1")
    VerificationWorkflow(db, blob_store, FakeNotifier(fail=True)).decide(
        "t1", Decision.VERIFY, None, "admin@innovatex.org", SETTINGS
    )
    assert team_store.refresh_team(db, "t1").notification_attempts == 1

    assert team_store.claim_notification_attempt(db, "t1", 0) is False
    assert team_store.claim_notification_attempt(db, "t1", 1) is True
    assert team_store.claim_notification_attempt(db, "t1", 1) is False
    assert team_store.refresh_team(db, "t1").notification_attempts == 2


def test_sent_notification_cannot_be_claimed(db, make_team, blob_store, notifier):
    make_team(team_id="t1")
    VerificationWorkflow(db, blob_store, notifier).decide("t1", Decision.VERIFY, None, "admin@innovatex.org", SETTINGS)

    assert team_store.claim_notification_attempt(db, "t1", 1) is False


def test_every_member_row_is_a_recipient(db, make_team, blob_store, notifier):
    make_team(team_id="t3", member_emails=("x@college.edu", "x@college.edu", "z@college.edu"))

    VerificationWorkflow(db, blob_store, notifier).decide("t3", Decision.VERIFY, None, "admin@innovatex.org", SETTINGS)

    assert notifier.attempts == 1
    assert len(notifier.sent[0].recipients) == 3
