from datetime import datetime, timezone

from sqlalchemy import BigInteger, Column, DateTime, Integer, String
from sqlalchemy.orm import relationship

from filevault.models.database import Base


class User(Base):
    __tablename__ = "users"

    id = Column(Integer, primary_key=True, index=True)
    email = Column(String(255), unique=True, index=True, nullable=False)
    username = Column(String(50), nullable=False)
    password_hash = Column(String(255), nullable=False)

    # Active password-reset challenge, if any. Expiry is epoch millis.
    otp_code = Column(String(6), nullable=True)
    otp_expires_at = Column(BigInteger, nullable=True)

    created_at = Column(DateTime(timezone=True), default=lambda: datetime.now(timezone.utc))

    # One user → many files
    files = relationship("FileRecord", back_populates="owner", cascade="all, delete-orphan")

    def to_public(self) -> dict:
        return {"id": self.id, "email": self.email, "username": self.username}
