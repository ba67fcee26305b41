import smtplib
from email.message import EmailMessage
from typing import Optional
from core.config import settings
from core.errors import TransportError
import logging

logger = logging.getLogger(__name__)


def _from_header() -> str:
    if settings.SMTP_FROM_NAME and settings.SMTP_FROM_EMAIL:
        return f"{settings.SMTP_FROM_NAME} <{settings.SMTP_FROM_EMAIL}>"
    return settings.SMTP_FROM_EMAIL or "no-reply@example.com"


def build_message(subject: str, to_email: str, html_body: str, text_body: Optional[str] = None) -> EmailMessage:
    msg = EmailMessage()
    msg["Subject"] = subject
    msg["From"] = _from_header()
    msg["To"] = to_email
    if text_body:
        msg.set_content(text_body)
    msg.add_alternative(html_body, subtype="html")
    return msg


def send_email(subject: str, to_email: str, html_body: str, text_body: Optional[str] = None) -> None:
    """Deliver one message over SMTP; raises TransportError instead of retrying."""
    if not settings.SMTP_HOST or not settings.SMTP_FROM_EMAIL:
        raise TransportError(detail="SMTP is not configured (SMTP_HOST / SMTP_FROM_EMAIL)")
    msg = build_message(subject, to_email, html_body, text_body)
    timeout = settings.SMTP_TIMEOUT or 15
    debug = 1 if settings.SMTP_DEBUG else 0
    try:
        # SSL (SMTPS) or STARTTLS
        if settings.SMTP_USE_SSL:
            with smtplib.SMTP_SSL(settings.SMTP_HOST, settings.SMTP_PORT, timeout=timeout) as server:
                server.set_debuglevel(debug)
                if settings.SMTP_USERNAME and settings.SMTP_PASSWORD:
                    server.login(settings.SMTP_USERNAME, settings.SMTP_PASSWORD)
                server.send_message(msg)
        else:
            with smtplib.SMTP(settings.SMTP_HOST, settings.SMTP_PORT, timeout=timeout) as server:
                server.set_debuglevel(debug)
                if settings.SMTP_USE_TLS:
                    server.starttls()
                if settings.SMTP_USERNAME and settings.SMTP_PASSWORD:
                    server.login(settings.SMTP_USERNAME, settings.SMTP_PASSWORD)
                server.send_message(msg)
    except (smtplib.SMTPException, OSError) as exc:
        raise TransportError(detail=f"SMTP delivery to {to_email} failed: {exc}") from exc
    logger.info(f"Sent email to {to_email} with subject '{subject}'")
