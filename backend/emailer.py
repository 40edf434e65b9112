import os
import smtplib
import ssl
import logging
from dataclasses import dataclass, field
from email.message import EmailMessage
from email.utils import make_msgid
from typing import List, Optional

logger = logging.getLogger(__name__)

SMTP_TIMEOUT_SECONDS = float(os.environ.get("SMTP_TIMEOUT_SECONDS", "20"))


class NotificationError(RuntimeError):
    pass


@dataclass
class SMTPConfig:
    host: str
    port: int
    user: Optional[str]
    password: Optional[str]
    use_tls: bool
    use_ssl: bool
    sender: str


@dataclass
class Attachment:
    filename: str
    content: bytes
    content_type: str = "application/octet-stream"


@dataclass
class InlineImage:
    """Image referenced from the HTML body as ``cid:<content_id>``."""

    content_id: str
    content: bytes
    subtype: str = "png"
    filename: Optional[str] = None


@dataclass
class OutgoingEmail:
    recipients: List[str]
    subject: str
    html: str
    text: str
    attachments: List[Attachment] = field(default_factory=list)
    inline_images: List[InlineImage] = field(default_factory=list)


def _bool_env(value: Optional[str], default: bool = False) -> bool:
    if value is None:
        return default
    return value.strip().lower() in {"1", "true", "yes", "on"}


def _load_smtp(prefix: str) -> Optional[SMTPConfig]:
    host = os.environ.get(f"{prefix}_HOST")
    port_raw = os.environ.get(f"{prefix}_PORT")
    sender = os.environ.get(f"{prefix}_FROM")
    if not host or not port_raw or not sender:
        return None

    try:
        port = int(port_raw)
    except ValueError:
        raise NotificationError(f"Invalid {prefix}_PORT: {port_raw}")

    return SMTPConfig(
        host=host,
        port=port,
        user=os.environ.get(f"{prefix}_USER"),
        password=os.environ.get(f"{prefix}_PASS"),
        use_tls=_bool_env(os.environ.get(f"{prefix}_TLS"), default=True),
        use_ssl=_bool_env(os.environ.get(f"{prefix}_SSL"), default=False),
        sender=sender,
    )


def make_content_id(domain: str = "innovatex") -> str:
    # make_msgid wraps the id in angle brackets; the html body references it without them.
    return make_msgid(domain=domain)[1:-1]


def build_message(sender: str, email: OutgoingEmail) -> EmailMessage:
    message = EmailMessage()
    message["From"] = sender
    message["To"] = ", ".join(email.recipients)
    message["Subject"] = email.subject
    message.set_content(email.text)
    message.add_alternative(email.html, subtype="html")

    if email.inline_images:
        html_part = message.get_payload()[1]
        for image in email.inline_images:
            html_part.add_related(
                image.content,
                maintype="image",
                subtype=image.subtype,
                cid=f"<{image.content_id}>",
                filename=image.filename,
                disposition="inline",
            )

    for attachment in email.attachments:
        maintype, _, subtype = attachment.content_type.partition("/")
        message.add_attachment(
            attachment.content,
            maintype=maintype,
            subtype=subtype or "octet-stream",
            filename=attachment.filename,
        )
    return message


def _send_via_config(config: SMTPConfig, message: EmailMessage) -> None:
    if config.use_ssl:
        context = ssl.create_default_context()
        with smtplib.SMTP_SSL(config.host, config.port, context=context, timeout=SMTP_TIMEOUT_SECONDS) as server:
            if config.user and config.password:
                server.login(config.user, config.password)
            server.send_message(message)
        return

    with smtplib.SMTP(config.host, config.port, timeout=SMTP_TIMEOUT_SECONDS) as server:
        server.ehlo()
        if config.use_tls:
            context = ssl.create_default_context()
            server.starttls(context=context)
            server.ehlo()
        if config.user and config.password:
            server.login(config.user, config.password)
        server.send_message(message)


class SMTPNotifier:
    """Sends one message per call; primary SMTP first, secondary as fallback."""

    def __init__(self, primary: Optional[SMTPConfig] = None, secondary: Optional[SMTPConfig] = None):
        self.primary = primary
        self.secondary = secondary

    @classmethod
    def from_env(cls) -> "SMTPNotifier":
        return cls(primary=_load_smtp("SMTP_PRIMARY"), secondary=_load_smtp("SMTP_SECONDARY"))

    def send(self, email: OutgoingEmail) -> None:
        recipients = [address for address in email.recipients if address]
        if not recipients:
            raise NotificationError("No recipients")
        if not self.primary:
            raise NotificationError("SMTP_PRIMARY configuration missing")
        email.recipients = recipients

        try:
            _send_via_config(self.primary, build_message(self.primary.sender, email))
            return
        except (smtplib.SMTPException, OSError) as exc:
            logger.warning("Primary SMTP failed, attempting secondary: %s", exc)
            primary_error = exc

        if not self.secondary:
            raise NotificationError(
                f"Primary SMTP failed and SMTP_SECONDARY configuration missing: {primary_error}"
            ) from primary_error

        try:
            _send_via_config(self.secondary, build_message(self.secondary.sender, email))
        except (smtplib.SMTPException, OSError) as exc:
            raise NotificationError(f"Primary and secondary SMTP failed: {exc}") from exc
        logger.info("Email sent via secondary SMTP")


def get_notifier() -> SMTPNotifier:
    return SMTPNotifier.from_env()
