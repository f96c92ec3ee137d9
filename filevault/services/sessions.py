"""
Stateless bearer tokens.

Tokens are itsdangerous-signed payloads carrying ``user_id``, ``email``,
``iat`` and ``exp`` (epoch seconds). Nothing is stored server side: a token is
valid iff its signature checks out against the configured secret and the
injected clock reads strictly before ``exp``.
"""

from __future__ import annotations

import time
from dataclasses import dataclass
from typing import Callable

from itsdangerous import BadSignature, URLSafeSerializer
from sqlalchemy.orm import Session

from filevault.core.errors import AuthenticationError, InvalidCredentialsError
from filevault.core.logging import logger
from filevault.models.user import User
from filevault.services.credentials import CredentialStore

TOKEN_SALT = "filevault-session"


@dataclass(frozen=True)
class Identity:
    user_id: int
    email: str
    issued_at: int
    expires_at: int

    def to_dict(self) -> dict:
        return {
            "user_id": self.user_id,
            "email": self.email,
            "iat": self.issued_at,
            "exp": self.expires_at,
        }


class SessionAuthenticator:
    def __init__(
        self,
        credentials: CredentialStore,
        secret_key: str,
        ttl_seconds: int = 24 * 60 * 60,
        clock: Callable[[], float] = time.time,
    ):
        if not secret_key:
            raise ValueError("secret_key must not be empty")
        self.credentials = credentials
        self.ttl_seconds = ttl_seconds
        self.clock = clock
        self._serializer = URLSafeSerializer(secret_key=secret_key, salt=TOKEN_SALT)

    def login(self, db: Session, email: str, password: str) -> tuple[str, User]:
        user = self.credentials.find_by_email(db, email or "")
        # Same error and the same hashing work for unknown email and wrong password
        if user is None:
            valid = self.credentials.verify_unknown(password or "")
        else:
            valid = self.credentials.verify_password(user, password or "")
        if not valid:
            logger.info("Rejected login attempt")
            raise InvalidCredentialsError()
        return self.issue(user), user

    def issue(self, user: User) -> str:
        issued_at = int(self.clock())
        payload = {
            "user_id": user.id,
            "email": user.email,
            "iat": issued_at,
            "exp": issued_at + self.ttl_seconds,
        }
        return self._serializer.dumps(payload)

    def authenticate(self, token: str | None) -> Identity:
        if not token:
            raise AuthenticationError("No token provided")
        try:
            data = self._serializer.loads(token)
        except BadSignature:
            raise AuthenticationError("Invalid token")

        try:
            identity = Identity(
                user_id=int(data["user_id"]),
                email=str(data["email"]),
                issued_at=int(data["iat"]),
                expires_at=int(data["exp"]),
            )
        except (KeyError, TypeError, ValueError):
            raise AuthenticationError("Invalid token")

        if not self.clock() < identity.expires_at:
            raise AuthenticationError("Token expired")
        return identity
