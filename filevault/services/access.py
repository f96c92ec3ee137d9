from sqlalchemy.orm import Session

from filevault.core.errors import FileNotFoundInLedgerError
from filevault.models.file import FileRecord
from filevault.services.sessions import Identity


def owned_files(db: Session, identity: Identity):
    return db.query(FileRecord).filter(FileRecord.owner_id == identity.user_id)


def resolve_owned(db: Session, identity: Identity, file_id: int) -> FileRecord:
    """Return the caller's file or raise NotFound.

    Someone else's file and a missing one look the same to the caller.
    """
    record = owned_files(db, identity).filter(FileRecord.id == file_id).first()
    if record is None:
        raise FileNotFoundInLedgerError()
    return record
