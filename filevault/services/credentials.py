import secrets

from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session
from werkzeug.security import check_password_hash, generate_password_hash

from filevault.core.errors import (
    DuplicateEmailError,
    UserNotFoundError,
    ValidationError,
    WeakPasswordError,
)
from filevault.core.logging import logger
from filevault.models.user import User


def normalize_email(email: str) -> str:
    return email.strip().lower()


class CredentialStore:
    """Users table access: password hashing and the embedded OTP fields."""

    def __init__(self, hash_method: str = "scrypt", min_password_length: int = 6):
        self.hash_method = hash_method
        self.min_password_length = min_password_length
        self._dummy_hash: str | None = None

    def check_password_strength(self, password: str) -> None:
        if password is None or len(password) < self.min_password_length:
            raise WeakPasswordError(self.min_password_length)

    def hash_password(self, password: str) -> str:
        self.check_password_strength(password)
        return generate_password_hash(password, method=self.hash_method)

    def verify_password(self, user: User, password: str) -> bool:
        return check_password_hash(user.password_hash, password)

    def verify_unknown(self, password: str) -> bool:
        """Run a hash check that always fails, so unknown emails cost as much as known ones."""
        if self._dummy_hash is None:
            self._dummy_hash = generate_password_hash(secrets.token_urlsafe(16), method=self.hash_method)
        check_password_hash(self._dummy_hash, password)
        return False

    def create_user(self, db: Session, email: str, username: str, password: str) -> User:
        email = normalize_email(email)
        username = (username or "").strip()
        if not email or not username:
            raise ValidationError("All fields are required")
        self.check_password_strength(password)

        # Check if user exists
        if self.find_by_email(db, email) is not None:
            raise DuplicateEmailError()

        user = User(email=email, username=username, password_hash=self.hash_password(password))
        db.add(user)
        try:
            db.commit()
        except IntegrityError:
            # Lost a race with a concurrent registration for the same email
            db.rollback()
            raise DuplicateEmailError()
        db.refresh(user)
        logger.info(f"Registered user id={user.id}")
        return user

    def find_by_email(self, db: Session, email: str) -> User | None:
        return db.query(User).filter(User.email == normalize_email(email)).first()

    def get(self, db: Session, user_id: int) -> User | None:
        return db.get(User, user_id)

    def update_password_hash(self, db: Session, user_id: int, new_hash: str, *, commit: bool = True) -> None:
        user = self.get(db, user_id)
        if user is None:
            raise UserNotFoundError()
        user.password_hash = new_hash
        if commit:
            db.commit()

    def set_otp(self, db: Session, email: str, code: str, expires_at: int) -> User:
        user = self.find_by_email(db, email)
        if user is None:
            raise UserNotFoundError()
        user.otp_code = code
        user.otp_expires_at = expires_at
        db.commit()
        return user

    def clear_otp(self, db: Session, user_id: int, *, commit: bool = True) -> None:
        user = self.get(db, user_id)
        if user is None:
            return
        user.otp_code = None
        user.otp_expires_at = None
        if commit:
            db.commit()
