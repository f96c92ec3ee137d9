from datetime import datetime

from sqlalchemy import func
from sqlalchemy.orm import Session

from filevault.models.file import FileRecord
from filevault.services.access import owned_files, resolve_owned
from filevault.services.sessions import Identity


class FileLedger:
    """Metadata rows for stored files, always scoped to one owner."""

    def insert(
        self,
        db: Session,
        identity: Identity,
        *,
        stored_name: str,
        original_name: str,
        size: int,
        content_type: str,
        path: str,
        uploaded_at: datetime,
    ) -> FileRecord:
        record = FileRecord(
            owner_id=identity.user_id,
            stored_name=stored_name,
            original_name=original_name,
            size=size,
            content_type=content_type,
            path=path,
            uploaded_at=uploaded_at,
        )
        db.add(record)
        db.commit()
        db.refresh(record)
        return record

    def list(self, db: Session, identity: Identity) -> list[FileRecord]:
        return (
            owned_files(db, identity)
            .order_by(FileRecord.uploaded_at.desc(), FileRecord.id.desc())
            .all()
        )

    def get(self, db: Session, identity: Identity, file_id: int) -> FileRecord:
        return resolve_owned(db, identity, file_id)

    def remove(self, db: Session, identity: Identity, file_id: int, *, commit: bool = True) -> bool:
        """Compare-and-delete. False when the row was already gone."""
        deleted = (
            owned_files(db, identity)
            .filter(FileRecord.id == file_id)
            .delete(synchronize_session=False)
        )
        if commit:
            db.commit()
        return deleted > 0

    def usage(self, db: Session, identity: Identity) -> dict:
        count, total = (
            db.query(func.count(FileRecord.id), func.coalesce(func.sum(FileRecord.size), 0))
            .filter(FileRecord.owner_id == identity.user_id)
            .one()
        )
        return {"total_files": count, "total_storage": int(total)}
