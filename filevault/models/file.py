# filevault/models/file.py
from datetime import datetime, timezone

from sqlalchemy import BigInteger, Column, DateTime, ForeignKey, Integer, String
from sqlalchemy.orm import relationship

from filevault.models.database import Base


class FileRecord(Base):
    __tablename__ = "files"

    id = Column(Integer, primary_key=True, index=True)
    original_name = Column(String, nullable=False)   # Name user uploaded
    stored_name = Column(String, nullable=False, unique=True)  # Blob name in the store
    path = Column(String, nullable=False)            # Full path on disk, or S3 key
    size = Column(BigInteger, nullable=False)        # Size in bytes
    content_type = Column(String(255), nullable=False, default="application/octet-stream")
    uploaded_at = Column(DateTime(timezone=True), default=lambda: datetime.now(timezone.utc), index=True)

    owner_id = Column(Integer, ForeignKey("users.id", ondelete="CASCADE"), nullable=False, index=True)

    # Many files → one owner (User)
    owner = relationship("User", back_populates="files")

    def to_public(self) -> dict:
        # stored_name and path stay server-side
        return {
            "id": self.id,
            "original_name": self.original_name,
            "size": self.size,
            "content_type": self.content_type,
            "uploaded_at": self.uploaded_at.isoformat() if self.uploaded_at else None,
        }
