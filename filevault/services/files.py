"""
Keeps blob content and ledger rows in step.

Upload writes the blob first and the row second; if the row cannot be saved the
blob is removed again. Delete removes the row first and the blob second inside
one transaction: a blob that is already missing does not fail the delete, any
other blob failure rolls the row back.
"""

from __future__ import annotations

import os
import re
import secrets
import time
from datetime import datetime, timezone
from typing import BinaryIO, Callable, Iterator

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from filevault.core.config import MAX_UPLOAD_BYTES
from filevault.core.errors import (
    BlobDeleteFailedError,
    BlobNotFound,
    BlobWriteFailedError,
    FileNotFoundInLedgerError,
    MetadataWriteFailedError,
    PayloadTooLargeError,
    ValidationError,
)
from filevault.core.logging import logger
from filevault.models.file import FileRecord
from filevault.services.blobs import BlobStore
from filevault.services.ledger import FileLedger
from filevault.services.sessions import Identity

DEFAULT_CONTENT_TYPE = "application/octet-stream"
SAFE_EXTENSION = re.compile(r"\.[A-Za-z0-9]{1,16}")


def stream_size(stream: BinaryIO) -> int:
    stream.seek(0, os.SEEK_END)
    size = stream.tell()
    stream.seek(0)
    return size


def make_stored_name(original_name: str, now: float) -> str:
    # time prefix + random suffix, original extension kept when short and alphanumeric
    _, ext = os.path.splitext(os.path.basename(original_name))
    if not SAFE_EXTENSION.fullmatch(ext):
        ext = ""
    return f"{int(now * 1000)}_{secrets.token_hex(8)}{ext.lower()}"


class FileService:
    def __init__(
        self,
        ledger: FileLedger,
        blobs: BlobStore,
        max_upload_bytes: int = MAX_UPLOAD_BYTES,
        clock: Callable[[], float] = time.time,
    ):
        self.ledger = ledger
        self.blobs = blobs
        self.max_upload_bytes = max_upload_bytes
        self.clock = clock

    def upload(
        self,
        db: Session,
        identity: Identity,
        stream: BinaryIO,
        original_name: str,
        content_type: str | None,
    ) -> FileRecord:
        original_name = os.path.basename((original_name or "").replace("\\", "/")).strip()
        if not original_name:
            raise ValidationError("No file uploaded", kind="missing_file")

        size = stream_size(stream)
        if size > self.max_upload_bytes:
            raise PayloadTooLargeError(size, self.max_upload_bytes)

        now = self.clock()
        stored_name = make_stored_name(original_name, now)
        content_type = content_type or DEFAULT_CONTENT_TYPE

        try:
            path = self.blobs.write(stored_name, stream, content_type)
        except Exception:
            logger.exception(f"Blob write failed for {stored_name}")
            self._discard_blob(stored_name)
            raise BlobWriteFailedError()

        try:
            record = self.ledger.insert(
                db,
                identity,
                stored_name=stored_name,
                original_name=original_name,
                size=size,
                content_type=content_type,
                path=path,
                uploaded_at=datetime.fromtimestamp(now, tz=timezone.utc),
            )
        except SQLAlchemyError:
            db.rollback()
            logger.exception(f"Metadata insert failed for {stored_name}, removing blob")
            self._discard_blob(stored_name)
            raise MetadataWriteFailedError()

        logger.info(f"Stored file id={record.id} owner={identity.user_id} size={size}")
        return record

    def _discard_blob(self, stored_name: str) -> None:
        try:
            self.blobs.delete(stored_name)
        except Exception:
            logger.exception(f"Could not remove orphaned blob {stored_name}")

    def list(self, db: Session, identity: Identity) -> list[FileRecord]:
        return self.ledger.list(db, identity)

    def info(self, db: Session, identity: Identity, file_id: int) -> FileRecord:
        return self.ledger.get(db, identity, file_id)

    def download(self, db: Session, identity: Identity, file_id: int) -> tuple[Iterator[bytes], FileRecord]:
        record = self.ledger.get(db, identity, file_id)
        try:
            content = self.blobs.open(record.stored_name)
        except BlobNotFound:
            logger.error(f"File id={record.id} has a ledger row but no blob {record.stored_name}")
            raise FileNotFoundInLedgerError("File missing in storage")
        return content, record

    def delete(self, db: Session, identity: Identity, file_id: int) -> None:
        record = self.ledger.get(db, identity, file_id)
        stored_name = record.stored_name

        # Row delete stays uncommitted until the blob is gone
        if not self.ledger.remove(db, identity, file_id, commit=False):
            db.rollback()
            # A concurrent delete got there first
            logger.info(f"File id={file_id} already removed by another request")
            return

        try:
            self.blobs.delete(stored_name)
        except Exception:
            db.rollback()
            logger.exception(f"Blob {stored_name} could not be deleted, keeping file id={file_id}")
            raise BlobDeleteFailedError()
        db.commit()
        logger.info(f"Deleted file id={file_id} owner={identity.user_id}")

    def usage(self, db: Session, identity: Identity) -> dict:
        return self.ledger.usage(db, identity)
