"""Tests for the file ledger / blob store coordination."""

from io import BytesIO

import pytest
from conftest import identity_for
from sqlalchemy.exc import OperationalError

from filevault.core.config import MAX_UPLOAD_BYTES
from filevault.core.errors import (
    BlobDeleteFailedError,
    BlobWriteFailedError,
    MetadataWriteFailedError,
    NotFoundError,
    PayloadTooLargeError,
    ValidationError,
)
from filevault.models.file import FileRecord
from filevault.services.files import FileService, make_stored_name
from filevault.services.ledger import FileLedger


@pytest.fixture
def service(blobs, clock):
    return FileService(FileLedger(), blobs, clock=clock)


def read_all(chunks) -> bytes:
    return b"".join(chunks)


def blob_files(blob_dir):
    return sorted(p.name for p in blob_dir.iterdir() if not p.name.startswith("."))


def test_make_stored_name_keeps_extension():
    name = make_stored_name("Holiday Photo.JPG", 1_700_000_000.5)

    assert name.startswith("1700000000500_")
    assert name.endswith(".jpg")
    assert make_stored_name("a.txt", 1.0) != make_stored_name("a.txt", 1.0)


def test_upload_and_download_round_trip(db, service, user, blob_dir):
    identity = identity_for(user)
    payload = b"hello \x00 world" * 100

    record = service.upload(db, identity, BytesIO(payload), "notes.bin", "application/x-custom")

    assert record.size == len(payload)
    assert record.content_type == "application/x-custom"
    assert record.original_name == "notes.bin"
    assert blob_files(blob_dir) == [record.stored_name]

    content, fetched = service.download(db, identity, record.id)
    assert read_all(content) == payload
    assert fetched.original_name == "notes.bin"


def test_upload_defaults_content_type_and_strips_directories(db, service, user):
    record = service.upload(db, identity_for(user), BytesIO(b"x"), "../../etc/passwd", None)

    assert record.original_name == "passwd"
    assert record.content_type == "application/octet-stream"


def test_upload_requires_filename(db, service, user, blob_dir):
    with pytest.raises(ValidationError) as exc:
        service.upload(db, identity_for(user), BytesIO(b"x"), "", "text/plain")

    assert exc.value.kind == "missing_file"
    assert blob_files(blob_dir) == []


def test_upload_exactly_max_size_succeeds(db, service, user, tmp_path):
    big = tmp_path / "big.bin"
    with big.open("wb") as fh:
        fh.truncate(MAX_UPLOAD_BYTES)

    with big.open("rb") as stream:
        record = service.upload(db, identity_for(user), stream, "big.bin", "application/octet-stream")

    assert record.size == MAX_UPLOAD_BYTES


def test_upload_over_max_size_rejected_before_write(db, service, user, tmp_path, blob_dir):
    big = tmp_path / "big.bin"
    with big.open("wb") as fh:
        fh.truncate(MAX_UPLOAD_BYTES + 1)

    with big.open("rb") as stream, pytest.raises(PayloadTooLargeError):
        service.upload(db, identity_for(user), stream, "big.bin", "application/octet-stream")

    assert blob_files(blob_dir) == []
    assert db.query(FileRecord).count() == 0


def test_metadata_failure_removes_orphan_blob(db, service, user, blob_dir, monkeypatch):
    def broken_insert(*args, **kwargs):
        raise OperationalError("INSERT", {}, Exception("disk full"))

    monkeypatch.setattr(service.ledger, "insert", broken_insert)

    with pytest.raises(MetadataWriteFailedError):
        service.upload(db, identity_for(user), BytesIO(b"data"), "a.txt", "text/plain")

    assert blob_files(blob_dir) == []


def test_blob_failure_leaves_no_record(db, service, user, monkeypatch):
    def broken_write(*args, **kwargs):
        raise OSError("read-only file system")

    monkeypatch.setattr(service.blobs, "write", broken_write)

    with pytest.raises(BlobWriteFailedError):
        service.upload(db, identity_for(user), BytesIO(b"data"), "a.txt", "text/plain")

    assert db.query(FileRecord).count() == 0


def test_list_newest_first_and_stable(db, service, user, other_user, clock):
    identity = identity_for(user)
    first = service.upload(db, identity, BytesIO(b"1"), "first.txt", "text/plain")
    clock.advance(5)
    second = service.upload(db, identity, BytesIO(b"22"), "second.txt", "text/plain")
    service.upload(db, identity_for(other_user), BytesIO(b"3"), "bobs.txt", "text/plain")

    listed = [r.id for r in service.list(db, identity)]

    assert listed == [second.id, first.id]
    assert [r.id for r in service.list(db, identity)] == listed


def test_other_user_sees_not_found(db, service, user, other_user, blob_dir):
    record = service.upload(db, identity_for(user), BytesIO(b"private"), "a.txt", "text/plain")
    intruder = identity_for(other_user)

    with pytest.raises(NotFoundError):
        service.info(db, intruder, record.id)
    with pytest.raises(NotFoundError):
        service.download(db, intruder, record.id)
    with pytest.raises(NotFoundError):
        service.delete(db, intruder, record.id)

    assert blob_files(blob_dir) == [record.stored_name]
    assert service.info(db, identity_for(user), record.id).id == record.id


def test_delete_removes_row_and_blob(db, service, user, blob_dir):
    identity = identity_for(user)
    record = service.upload(db, identity, BytesIO(b"bye"), "a.txt", "text/plain")
    file_id = record.id

    service.delete(db, identity, file_id)

    assert blob_files(blob_dir) == []
    with pytest.raises(NotFoundError):
        service.info(db, identity, file_id)
    with pytest.raises(NotFoundError):
        service.delete(db, identity, file_id)


def test_delete_with_missing_blob_succeeds(db, service, user, blob_dir):
    identity = identity_for(user)
    record = service.upload(db, identity, BytesIO(b"bye"), "a.txt", "text/plain")
    (blob_dir / record.stored_name).unlink()

    service.delete(db, identity, record.id)

    assert db.query(FileRecord).count() == 0


def test_download_with_missing_blob_is_not_found(db, service, user, blob_dir):
    identity = identity_for(user)
    record = service.upload(db, identity, BytesIO(b"gone"), "a.txt", "text/plain")
    (blob_dir / record.stored_name).unlink()

    with pytest.raises(NotFoundError):
        service.download(db, identity, record.id)


def test_concurrent_delete_loser_is_success(db, service, user, monkeypatch):
    identity = identity_for(user)
    record = service.upload(db, identity, BytesIO(b"x"), "a.txt", "text/plain")
    file_id = record.id

    # the row disappears between the ownership read and the delete
    original_remove = service.ledger.remove

    def racing_remove(session, ident, fid, **kwargs):
        assert original_remove(session, ident, fid)
        return original_remove(session, ident, fid, **kwargs)

    monkeypatch.setattr(service.ledger, "remove", racing_remove)

    service.delete(db, identity, file_id)

    assert db.query(FileRecord).count() == 0


def test_usage(db, service, user, other_user):
    identity = identity_for(user)
    assert service.usage(db, identity) == {"total_files": 0, "total_storage": 0}

    service.upload(db, identity, BytesIO(b"abc"), "a.txt", "text/plain")
    service.upload(db, identity, BytesIO(b"defgh"), "b.txt", "text/plain")
    service.upload(db, identity_for(other_user), BytesIO(b"zz"), "c.txt", "text/plain")

    assert service.usage(db, identity) == {"total_files": 2, "total_storage": 8}


def test_make_stored_name_drops_unsafe_extensions():
    assert make_stored_name("r." + "x" * 240, 1.0).count(".") == 0
    assert make_stored_name("odd.t!xt", 1.0).count(".") == 0
    assert make_stored_name("archive.tar.gz", 1.0).endswith(".gz")
    assert make_stored_name("no_extension", 1.0).count(".") == 0


def test_upload_with_very_long_extension(db, service, user, blob_dir):
    name = "r." + "x" * 240

    record = service.upload(db, identity_for(user), BytesIO(b"data"), name, "text/plain")

    assert record.original_name == name
    assert len(record.stored_name) < 64
    assert blob_files(blob_dir) == [record.stored_name]


def test_blob_delete_failure_keeps_row_and_reports_error(db, service, user, blob_dir, monkeypatch):
    identity = identity_for(user)
    record = service.upload(db, identity, BytesIO(b"keep"), "a.txt", "text/plain")
    file_id, stored_name = record.id, record.stored_name

    def broken_delete(name):
        raise OSError("EIO")

    monkeypatch.setattr(service.blobs, "delete", broken_delete)

    with pytest.raises(BlobDeleteFailedError):
        service.delete(db, identity, file_id)

    assert db.query(FileRecord).filter(FileRecord.id == file_id).count() == 1
    assert blob_files(blob_dir) == [stored_name]
    content, _ = service.download(db, identity, file_id)
    assert read_all(content) == b"keep"
