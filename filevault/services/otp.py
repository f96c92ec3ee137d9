"""
Password recovery with one-time codes.

The challenge lives on the user row (``otp_code`` / ``otp_expires_at``), so a
user has at most one at a time and every new request replaces the old one.
Expiry is checked when a code is used; nothing sweeps stale codes.

    NoChallenge --request_otp--> Issued --verify_otp--> Issued (unchanged)
    Issued --reset_password--> NoChallenge
"""

from __future__ import annotations

import hmac
import secrets
import time
from typing import Callable

from sqlalchemy.orm import Session

from filevault.core.errors import InvalidOrExpiredOtpError
from filevault.core.logging import logger
from filevault.models.user import User
from filevault.services.credentials import CredentialStore
from filevault.services.notifier import Notifier

OTP_MIN = 100000
OTP_MAX = 999999


def generate_code() -> str:
    return str(OTP_MIN + secrets.randbelow(OTP_MAX - OTP_MIN + 1))


class OtpRecoveryEngine:
    def __init__(
        self,
        credentials: CredentialStore,
        notifier: Notifier,
        ttl_seconds: int = 10 * 60,
        clock: Callable[[], float] = time.time,
        code_factory: Callable[[], str] = generate_code,
    ):
        self.credentials = credentials
        self.notifier = notifier
        self.ttl_seconds = ttl_seconds
        self.clock = clock
        self.code_factory = code_factory

    def _now_ms(self) -> int:
        return int(self.clock() * 1000)

    def request_otp(self, db: Session, email: str) -> str:
        code = self.code_factory()
        expires_at = self._now_ms() + self.ttl_seconds * 1000
        user = self.credentials.set_otp(db, email, code, expires_at)

        # Issuance is committed before delivery; a failed send keeps the code valid
        try:
            self.notifier.send_otp(user.email, code, self.ttl_seconds // 60)
        except Exception:
            logger.exception(f"OTP delivery failed for user id={user.id}, code {code} stays valid")
        return code

    def _matching_user(self, db: Session, email: str, code: str) -> User:
        user = self.credentials.find_by_email(db, email or "")
        if user is None or not user.otp_code or user.otp_expires_at is None:
            raise InvalidOrExpiredOtpError()
        if not hmac.compare_digest(user.otp_code.encode(), (code or "").encode()):
            raise InvalidOrExpiredOtpError()
        if self._now_ms() > user.otp_expires_at:
            raise InvalidOrExpiredOtpError()
        return user

    def verify_otp(self, db: Session, email: str, code: str) -> bool:
        # Does not consume the code
        self._matching_user(db, email, code)
        return True

    def reset_password(self, db: Session, email: str, code: str, new_password: str) -> None:
        self.credentials.check_password_strength(new_password)
        user = self._matching_user(db, email, code)

        new_hash = self.credentials.hash_password(new_password)
        self.credentials.update_password_hash(db, user.id, new_hash, commit=False)
        self.credentials.clear_otp(db, user.id, commit=False)
        db.commit()
        logger.info(f"Password reset for user id={user.id}")
