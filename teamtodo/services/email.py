"""Email helpers for team invitations.

Supports SendGrid (default) and SMTP.
"""

import logging
import smtplib
from email.mime.multipart import MIMEMultipart
from email.mime.text import MIMEText
from email.utils import formataddr
from typing import Optional

from sendgrid import SendGridAPIClient
from sendgrid.helpers.mail import Mail

from teamtodo.config import Settings

logger = logging.getLogger(__name__)


def build_invite_content(
    invite_link: str,
    team_name: str,
    role: str,
    expires_at: str,
    invited_by: Optional[str] = None,
):
    inviter = invited_by or "Someone on your team"
    subject = f"You're invited to join {team_name}"

    body_lines = [
        f"{inviter} invited you to join {team_name} as {role}.",
        f"Accept the invitation: {invite_link}",
        f"This invitation expires at {expires_at}.",
    ]

    html_content = "<br>".join(body_lines)
    plain_content = "\n".join(body_lines)
    return subject, plain_content, html_content


def is_configured(settings: Settings) -> bool:
    if not settings.email_from_email:
        return False
    if settings.email_provider == "smtp":
        return bool(settings.smtp_username and settings.smtp_password)
    return bool(settings.sendgrid_api_key)


def _send_with_sendgrid(
    settings: Settings,
    to_email: str,
    subject: str,
    plain_content: str,
    html_content: str,
) -> dict:
    if not settings.sendgrid_api_key or not settings.email_from_email:
        return {"sent": False, "error": "SendGrid is not configured"}

    mail = Mail(
        from_email=(settings.email_from_email, settings.email_from_name),
        to_emails=to_email,
        subject=subject,
        plain_text_content=plain_content,
        html_content=html_content,
    )

    try:
        client = SendGridAPIClient(settings.sendgrid_api_key)
        response = client.send(mail)
        return {"sent": 200 <= response.status_code < 300, "status_code": response.status_code}
    except Exception as exc:  # noqa: BLE001
        return {"sent": False, "error": str(exc)}


def _send_with_smtp(
    settings: Settings,
    to_email: str,
    subject: str,
    plain_content: str,
    html_content: str,
) -> dict:
    if not (settings.email_from_email and settings.smtp_username and settings.smtp_password):
        return {"sent": False, "error": "SMTP is not configured"}

    msg = MIMEMultipart("alternative")
    msg["Subject"] = subject
    msg["From"] = formataddr((settings.email_from_name, settings.email_from_email))
    msg["To"] = to_email

    msg.attach(MIMEText(plain_content, "plain"))
    msg.attach(MIMEText(html_content, "html"))

    try:
        with smtplib.SMTP(settings.smtp_host, settings.smtp_port) as server:
            server.starttls()
            server.login(settings.smtp_username, settings.smtp_password)
            server.sendmail(settings.email_from_email, [to_email], msg.as_string())
        return {"sent": True, "provider": "smtp"}
    except Exception as exc:  # noqa: BLE001
        return {"sent": False, "error": str(exc)}


def send_invitation_email(
    settings: Settings,
    to_email: str,
    invite_link: str,
    team_name: str,
    role: str,
    expires_at: str,
    invited_by: Optional[str] = None,
) -> dict:
    """Send a team invitation email using the configured provider."""
    subject, plain_content, html_content = build_invite_content(
        invite_link, team_name, role, expires_at, invited_by
    )

    if settings.email_provider == "smtp":
        result = _send_with_smtp(settings, to_email, subject, plain_content, html_content)
    else:
        result = _send_with_sendgrid(settings, to_email, subject, plain_content, html_content)

    if result.get("sent"):
        logger.info(f"Invitation email sent to {to_email}")
    else:
        logger.warning(f"Invitation email to {to_email} not sent: {result.get('error')}")
    return result
