from __future__ import annotations

import smtplib
from email.message import EmailMessage
from typing import Protocol

from filevault.core.config import Settings
from filevault.core.logging import logger


class Notifier(Protocol):
    def send_otp(self, email: str, code: str, expires_in_minutes: int) -> None: ...


class LogNotifier:
    """Development sink: the code only goes to the server log."""

    def send_otp(self, email: str, code: str, expires_in_minutes: int) -> None:
        logger.warning(f"OTP for {email}: {code} (valid {expires_in_minutes} min)")


class SmtpNotifier:
    def __init__(
        self,
        host: str,
        port: int = 587,
        username: str | None = None,
        password: str | None = None,
        sender: str = "no-reply@filevault.local",
        use_tls: bool = True,
        timeout: float = 10.0,
    ):
        self.host = host
        self.port = port
        self.username = username
        self.password = password
        self.sender = sender
        self.use_tls = use_tls
        self.timeout = timeout

    def build_message(self, email: str, code: str, expires_in_minutes: int) -> EmailMessage:
        msg = EmailMessage()
        msg["Subject"] = "Password Reset OTP - FileVault"
        msg["From"] = self.sender
        msg["To"] = email
        msg.set_content(
            f"Your password reset code is {code}.\n"
            f"It expires in {expires_in_minutes} minutes.\n"
            "If you didn't request this, please ignore this email."
        )
        msg.add_alternative(
            "<h2>Password Reset Request</h2>"
            f"<p>Your one-time code is <strong>{code}</strong>.</p>"
            f"<p>This code will expire in {expires_in_minutes} minutes.</p>"
            "<p>If you didn't request this, please ignore this email.</p>",
            subtype="html",
        )
        return msg

    def send_otp(self, email: str, code: str, expires_in_minutes: int) -> None:
        msg = self.build_message(email, code, expires_in_minutes)
        with smtplib.SMTP(self.host, self.port, timeout=self.timeout) as smtp:
            if self.use_tls:
                smtp.starttls()
            if self.username:
                smtp.login(self.username, self.password or "")
            smtp.send_message(msg)
        logger.info(f"Sent OTP email to {email}")


def build_notifier(settings: Settings) -> Notifier:
    if settings.smtp_host:
        return SmtpNotifier(
            host=settings.smtp_host,
            port=settings.smtp_port,
            username=settings.smtp_username,
            password=settings.smtp_password,
            sender=settings.smtp_sender,
            use_tls=settings.smtp_use_tls,
        )
    return LogNotifier()
