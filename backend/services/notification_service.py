from dataclasses import dataclass
from typing import Protocol
import logging

from db.models.passcode import PasscodePurpose
from utils.email import send_email

logger = logging.getLogger(__name__)


class NotificationDispatcher(Protocol):
    def send(self, address: str, purpose: PasscodePurpose, code: str) -> None:
        ...

    def send_welcome(self, address: str, username: str) -> None:
        ...


@dataclass(frozen=True)
class RenderedMessage:
    subject: str
    text: str
    html: str


_FOOTER = """
      <hr style='margin: 30px 0;'>
      <p style='color: #666; font-size: 12px;'>This is an automated message, please do not reply to this email.</p>
"""


def render_passcode_message(purpose: PasscodePurpose, code: str, validity_minutes: int, app_name: str) -> RenderedMessage:
    if purpose == PasscodePurpose.PASSWORD_RESET:
        subject = "Password Reset - OTP Code"
        text = (
            f"Your {app_name} password reset code is {code}. "
            f"It expires in {validity_minutes} minutes. "
            "If you did not request a password reset, ignore this email and your password will remain unchanged."
        )
        html = f"""
    <div style='font-family: Arial, sans-serif; max-width: 600px; margin: 0 auto;'>
      <h2 style='color: #dc3545;'>Password Reset Request</h2>
      <p>We received a request to reset your password for {app_name}.</p>
      <p>Your password reset verification code is:</p>
      <p style='font-size: 32px; font-weight: bold; letter-spacing: 5px;'>{code}</p>
      <p>This code will expire in <strong>{validity_minutes} minutes</strong>.</p>
      <p><strong>Important:</strong> If you did not request a password reset, please ignore this email and your password will remain unchanged.</p>
      <p>Never share this code with anyone.</p>{_FOOTER}
    </div>
    """
        return RenderedMessage(subject, text, html)

    subject = "Email Verification - OTP Code"
    text = (
        f"Thank you for registering with {app_name}! Your email verification code is {code}. "
        f"It expires in {validity_minutes} minutes."
    )
    html = f"""
    <div style='font-family: Arial, sans-serif; max-width: 600px; margin: 0 auto;'>
      <h2>Email Verification</h2>
      <p>Thank you for registering with {app_name}!</p>
      <p>Your email verification code is:</p>
      <p style='font-size: 32px; font-weight: bold; letter-spacing: 5px;'>{code}</p>
      <p>This code will expire in <strong>{validity_minutes} minutes</strong>.</p>
      <p>If you did not create an account, please ignore this email.</p>{_FOOTER}
    </div>
    """
    return RenderedMessage(subject, text, html)


def render_welcome_message(username: str, app_name: str) -> RenderedMessage:
    subject = f"Welcome to {app_name}!"
    text = f"Hello {username}, your email has been verified. Welcome to {app_name}!"
    html = f"""
    <div style='font-family: Arial, sans-serif; max-width: 600px; margin: 0 auto;'>
      <h2 style='color: #28a745;'>Welcome to {app_name}!</h2>
      <p>Hello <strong>{username}</strong>,</p>
      <p>Congratulations! Your email has been successfully verified.</p>
      <p>You can now enjoy all the features of our platform.</p>{_FOOTER}
    </div>
    """
    return RenderedMessage(subject, text, html)


class EmailDispatcher:
    """SMTP-backed dispatcher. Failures surface as TransportError; no retries here."""

    def __init__(self, validity_minutes: int, app_name: str):
        self.validity_minutes = validity_minutes
        self.app_name = app_name

    def send(self, address: str, purpose: PasscodePurpose, code: str) -> None:
        message = render_passcode_message(purpose, code, self.validity_minutes, self.app_name)
        send_email(message.subject, address, message.html, message.text)

    def send_welcome(self, address: str, username: str) -> None:
        message = render_welcome_message(username, self.app_name)
        send_email(message.subject, address, message.html, message.text)
