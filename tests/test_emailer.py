import smtplib

import pytest

import emailer
from emailer import (
    Attachment,
    InlineImage,
    NotificationError,
    OutgoingEmail,
    SMTPConfig,
    SMTPNotifier,
    build_message,
    make_content_id,
)


def _config(host):
    return SMTPConfig(host=host, port=587, user=None, password=None, use_tls=True, use_ssl=False, sender=f"noreply@{host}")


def _email():
    cid = make_content_id()
    return OutgoingEmail(
        recipients=["a@college.edu", "b@college.edu"],
        subject="Team Verified",
        html=f'<img src="cid:{cid}">',
        text="Verified",
        attachments=[Attachment("innovate-x-2025.ics", b"BEGIN:VCALENDAR\r\nEND:VCALENDAR\r\n", "text/calendar")],
        inline_images=[InlineImage(cid, b"\x89PNG\r\n\x1a\n", "png", "team-qr.png")],
    )


def test_build_message_embeds_inline_image_and_attachment():
    email = _email()
    message = build_message("noreply@innovatex.org", email)

    assert message["To"] == "a@college.edu, b@college.edu"
    content_types = [part.get_content_type() for part in message.walk()]
    assert content_types[0] == "multipart/mixed"
    assert "multipart/related" in content_types
    assert "image/png" in content_types
    assert "text/calendar" in content_types

    image = next(part for part in message.walk() if part.get_content_type() == "image/png")
    assert image["Content-ID"] == f"<{email.inline_images[0].content_id}>"
    calendar = next(part for part in message.walk() if part.get_content_type() == "text/calendar")
    assert calendar.get_filename() == "innovate-x-2025.ics"


def test_content_id_has_no_brackets():
    cid = make_content_id()
    assert not cid.startswith("<")
    assert not cid.endswith(">")


def test_send_falls_back_to_secondary(monkeypatch):
    used = []

    def fake_send(config, message):
        used.append(config.host)
        if config.host == "primary.test":
            raise smtplib.SMTPServerDisconnected("gone")

    monkeypatch.setattr(emailer, "_send_via_config", fake_send)
    SMTPNotifier(_config("primary.test"), _config("secondary.test")).send(_email())

    assert used == ["primary.test", "secondary.test"]


def test_send_raises_when_both_fail(monkeypatch):
    def fake_send(config, message):
        raise OSError("connection refused")

    monkeypatch.setattr(emailer, "_send_via_config", fake_send)
    with pytest.raises(NotificationError):
        SMTPNotifier(_config("primary.test"), _config("secondary.test")).send(_email())


def test_send_without_configuration_raises():
    with pytest.raises(NotificationError):
        SMTPNotifier().send(_email())


def test_send_without_recipients_raises():
    email = _email()
    email.recipients = []
    with pytest.raises(NotificationError):
        SMTPNotifier(_config("primary.test")).send(email)


def test_load_smtp_from_env(monkeypatch):
    monkeypatch.setenv("SMTP_PRIMARY_HOST", "smtp.test")
    monkeypatch.setenv("SMTP_PRIMARY_PORT", "465")
    monkeypatch.setenv("SMTP_PRIMARY_FROM", "noreply@innovatex.org")
    monkeypatch.setenv("SMTP_PRIMARY_SSL", "true")
    monkeypatch.delenv("SMTP_SECONDARY_HOST", raising=False)

    notifier = SMTPNotifier.from_env()

    assert notifier.primary.port == 465
    assert notifier.primary.use_ssl is True
    assert notifier.secondary is None
