"""
Outbound email.

The transport is chosen by `settings.email_backend`:
  - "log" (default): writes the message to the application log
  - "smtp": sends through the configured SMTP server
  - "resend": posts to the Resend HTTP API
"""

import logging
import smtplib
from html import escape
from datetime import datetime
from email.mime.multipart import MIMEMultipart
from email.mime.text import MIMEText
from typing import Optional

import httpx

from app.core.config import settings
from app.core.exceptions import EmailDeliveryError

logger = logging.getLogger(__name__)

RESEND_API_URL = "https://api.resend.com/emails"


def _layout(title: str, body: str) -> str:
    return f"""<!DOCTYPE html>
<html>
  <body style="font-family: Arial, sans-serif; line-height: 1.6; color: #333;">
    <div style="max-width: 600px; margin: 0 auto; padding: 20px;">
      <h1 style="color: #2563eb;">{title}</h1>
      {body}
      <p style="color: #6b7280; font-size: 14px;">QuizBanner</p>
    </div>
  </body>
</html>"""


class EmailService:
    def __init__(self, http_client: Optional[httpx.Client] = None):
        self.http_client = http_client
        self.logger = logging.getLogger(__name__)

    def send(self, to: str, subject: str, html: str, text: str = "") -> None:
        """Send one message. Raises EmailDeliveryError if the transport rejects it."""
        self.logger.info(f"send: Entry - to: {to}, subject: {subject}, backend: {settings.email_backend}")

        try:
            if settings.email_backend == "resend":
                self._send_resend(to, subject, html)
            elif settings.email_backend == "smtp":
                self._send_smtp(to, subject, html, text)
            else:
                self.logger.info(f"EMAIL [to={to}] subject={subject}\n{text or html}")
            self.logger.info(f"send: Success - to: {to}")
        except EmailDeliveryError:
            raise
        except Exception as e:
            self.logger.error(f"send: Failure - {e}")
            raise EmailDeliveryError(str(e)) from e

    def _send_resend(self, to: str, subject: str, html: str):
        if not settings.resend_api_key:
            raise EmailDeliveryError("RESEND_API_KEY is not configured")

        payload = {
            "from": settings.email_from,
            "to": [to],
            "subject": subject,
            "html": html,
        }
        headers = {"Authorization": f"Bearer {settings.resend_api_key}"}
        if self.http_client is not None:
            response = self.http_client.post(RESEND_API_URL, json=payload, headers=headers)
        else:
            with httpx.Client(timeout=10.0) as client:
                response = client.post(RESEND_API_URL, json=payload, headers=headers)
        if response.status_code >= 400:
            raise EmailDeliveryError(f"Resend rejected message: {response.status_code} {response.text}")

    def _send_smtp(self, to: str, subject: str, html: str, text: str):
        msg = MIMEMultipart("alternative")
        msg["Subject"] = subject
        msg["From"] = settings.email_from
        msg["To"] = to
        if text:
            msg.attach(MIMEText(text, "plain"))
        msg.attach(MIMEText(html, "html"))

        if settings.smtp_port == 465:
            smtp = smtplib.SMTP_SSL(settings.smtp_host, settings.smtp_port)
        else:
            smtp = smtplib.SMTP(settings.smtp_host, settings.smtp_port)
        with smtp:
            if settings.smtp_port != 465:
                smtp.starttls()
            if settings.smtp_user and settings.smtp_password:
                smtp.login(settings.smtp_user, settings.smtp_password)
            smtp.send_message(msg)

    # Messages

    def send_welcome(self, email: str, first_name: str = ""):
        greeting = f"Hi {first_name}," if first_name else "Hi,"
        html = _layout(
            "Welcome to QuizBanner!",
            f"<p>{greeting}</p><p>Your account is ready. Add your first questions and start learning "
            f"while you work.</p><p><a href=\"{settings.app_url}\">Open QuizBanner</a></p>",
        )
        self.send(email, "Welcome to QuizBanner!", html, f"{greeting} Your QuizBanner account is ready.")

    def send_password_reset(self, email: str, reset_token: str):
        reset_url = f"{settings.app_url}/reset-password?token={reset_token}"
        html = _layout(
            "Reset your password",
            f"<p>We received a request to reset your password.</p>"
            f"<p><a href=\"{reset_url}\">Reset password</a></p>"
            f"<p>This link expires in {settings.reset_token_expire_minutes} minutes. "
            f"If you didn't request this, you can ignore this email.</p>",
        )
        self.send(email, "Reset Your QuizBanner Password", html, f"Reset your password: {reset_url}")

    def send_magic_link(self, email: str, token: str, is_premium: bool = False):
        link = f"{settings.app_url}/verify-magic-link?token={token}"
        intro = "Sign in to your premium account" if is_premium else "Sign in to your account"
        html = _layout(
            intro,
            f"<p>Click the link below to sign in. No password needed.</p>"
            f"<p><a href=\"{link}\">Sign in to QuizBanner</a></p>"
            f"<p>This link expires in {settings.magic_link_expire_minutes} minutes.</p>",
        )
        self.send(email, "Your QuizBanner sign-in link", html, f"Sign in: {link}")

    def send_renewal_reminder(self, email: str, expires_at: datetime):
        html = _layout(
            "Your premium access is ending soon",
            f"<p>Your QuizBanner premium subscription expires on {expires_at.strftime('%B %d, %Y')}.</p>"
            f"<p><a href=\"{settings.app_url}/upgrade\">Renew now</a> to keep up to 50 questions.</p>",
        )
        self.send(email, "Your QuizBanner premium is expiring soon", html,
                  f"Your premium subscription expires on {expires_at.date().isoformat()}.")

    def send_payment_failed(self, email: str):
        html = _layout(
            "Payment failed",
            f"<p>We couldn't process your latest QuizBanner payment.</p>"
            f"<p><a href=\"{settings.app_url}/upgrade\">Update your payment method</a> to keep premium access.</p>",
        )
        self.send(email, "QuizBanner payment failed", html, "Your QuizBanner payment failed.")

    def send_contact_notification(self, inbox: str, name: str, email: str, message: str):
        html = _layout(
            "New contact message",
            f"<p><strong>From:</strong> {escape(name)} &lt;{escape(email)}&gt;</p><p>{escape(message)}</p>",
        )
        self.send(inbox, f"QuizBanner contact: {name}", html, f"From {name} <{email}>: {message}")
