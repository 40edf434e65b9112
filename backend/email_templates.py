import html as html_lib
from typing import Optional, Tuple

SIGNATURE_TEXT = "Best regards,\nInnovate-X Team\n"
SIGNATURE_HTML = '<p style="margin-bottom: 0;">Best regards,<br><strong>Innovate-X Team</strong></p>'


def _esc(value: Optional[str]) -> str:
    return html_lib.escape(str(value or ""))


def _wrap(body: str) -> str:
    return f"""
    <html>
      <body style="font-family: Arial, sans-serif; line-height: 1.6; color: #1b1f24;">
        <div style="max-width: 560px; margin: 0 auto; padding: 24px; border: 1px solid #e6e6e6; border-radius: 12px;">
          {body}
          <hr style="border: none; border-top: 1px solid #e6e6e6; margin: 24px 0;" />
          {SIGNATURE_HTML}
        </div>
      </body>
    </html>
    """


def build_verification_email(
    team_name: str,
    event_date: str,
    event_time: str,
    venue: str,
    qr_cid: str,
    note: Optional[str] = None,
    qr_url: Optional[str] = None,
) -> Tuple[str, str, str]:
    subject = "Team Verified - Innovate-X 2025"
    note_text = f"Note from organizers: {note}\n\n" if note else ""
    text = (
        f"Dear Team {team_name},\n\n"
        "We're excited to inform you that your registration for Innovate-X 2025 has been verified!\n\n"
        "Event Details:\n"
        f"Date: {event_date}\n"
        f"Time: {event_time}\n"
        f"Venue: {venue}\n\n"
        "Please bring the attached team QR code on the event day for check-in.\n"
        + (f"You can also open it here: {qr_url}\n" if qr_url else "")
        + "\nWhat to bring:\n"
        "- Your project and required equipment\n"
        "- Team ID proof\n"
        "- This confirmation email and QR code\n\n"
        f"{note_text}"
        "We've also attached a calendar invite (.ics file) so you don't miss the event.\n\n"
        "See you at Innovate-X 2025!\n\n"
        f"{SIGNATURE_TEXT}"
    )
    note_html = f"<p><strong>Note from organizers:</strong> {_esc(note)}</p>" if note else ""
    link_html = f'<p style="word-break: break-all;">Can\'t see the image? <a href="{_esc(qr_url)}">Open your QR code</a></p>' if qr_url else ""
    body = f"""
          <h2 style="margin-top: 0;">Congratulations! Your Team Has Been Verified</h2>
          <p>Dear Team {_esc(team_name)},</p>
          <p>We're excited to inform you that your registration for Innovate-X 2025 has been verified!</p>
          <h3>Event Details</h3>
          <p><strong>Date:</strong> {_esc(event_date)}<br><strong>Time:</strong> {_esc(event_time)}<br><strong>Venue:</strong> {_esc(venue)}</p>
          <h3>Your Team QR Code</h3>
          <p>Please bring this QR code on the event day for check-in:</p>
          <p style="text-align: center;">
            <img src="cid:{qr_cid}" alt="Team QR Code" style="width: 250px; height: 250px; border: 2px solid #00FF85; border-radius: 8px;"/>
          </p>
          {link_html}
          <h3>What to Bring</h3>
          <ul>
            <li>Your project and required equipment</li>
            <li>Team ID proof</li>
            <li>This confirmation email and QR code</li>
          </ul>
          {note_html}
          <p>We've also attached a calendar invite (.ics file) - add it to your calendar so you don't miss the event!</p>
          <p>See you at Innovate-X 2025!</p>
    """
    return subject, _wrap(body), text


def build_rejection_email(team_name: str, note: Optional[str] = None, contact_email: str = "organizer@innovatex.edu") -> Tuple[str, str, str]:
    subject = "Innovate-X 2025 Registration Update"
    text = (
        f"Dear Team {team_name},\n\n"
        "Thank you for your interest in Innovate-X 2025. Unfortunately, we are unable to accept your registration at this time.\n\n"
        + (f"Reason: {note}\n\n" if note else "")
        + f"If you believe this is an error or have questions, please contact us at {contact_email}\n\n"
        "We appreciate your participation and hope to see you in future events.\n\n"
        f"{SIGNATURE_TEXT}"
    )
    note_html = f"<p><strong>Reason:</strong> {_esc(note)}</p>" if note else ""
    body = f"""
          <h2 style="margin-top: 0;">Innovate-X 2025 Registration Update</h2>
          <p>Dear Team {_esc(team_name)},</p>
          <p>Thank you for your interest in Innovate-X 2025. Unfortunately, we are unable to accept your registration at this time.</p>
          {note_html}
          <p>If you believe this is an error or have questions, please contact us at {_esc(contact_email)}</p>
          <p>We appreciate your participation and hope to see you in future events.</p>
    """
    return subject, _wrap(body), text


def build_registration_alert_email(team, payment_proof_url: str, extra_doc_url: Optional[str] = None) -> Tuple[str, str, str]:
    subject = "New Team Registration - Innovate-X"
    category = getattr(team.category, "value", team.category)
    text = (
        "New Team Registration - Innovate-X 2025\n\n"
        f"Team Name: {team.team_name}\n"
        f"Category: {category}\n"
        f"Project: {team.project_title}\n"
        f"College: {team.college_name}\n"
        f"Contact: {team.contact_email} | {team.contact_phone}\n"
        f"Members: {team.member_count}\n\n"
        f"Payment proof: {payment_proof_url}\n"
        + (f"Supporting document: {extra_doc_url}\n" if extra_doc_url else "")
        + "\nPlease review and verify this registration in the admin dashboard.\n"
    )
    extra_html = f'<p><a href="{_esc(extra_doc_url)}" target="_blank">View Supporting Document</a></p>' if extra_doc_url else ""
    body = f"""
          <h2 style="margin-top: 0;">New Team Registration - Innovate-X 2025</h2>
          <p><strong>Team Name:</strong> {_esc(team.team_name)}</p>
          <p><strong>Category:</strong> {_esc(category)}</p>
          <p><strong>Project:</strong> {_esc(team.project_title)}</p>
          <p><strong>College:</strong> {_esc(team.college_name)}</p>
          <p><strong>Contact:</strong> {_esc(team.contact_email)} | {_esc(team.contact_phone)}</p>
          <p><strong>Members:</strong> {team.member_count}</p>
          <p><a href="{_esc(payment_proof_url)}" target="_blank">View Payment Proof</a></p>
          {extra_html}
          <p>Please review and verify this registration in the admin dashboard.</p>
    """
    return subject, _wrap(body), text
