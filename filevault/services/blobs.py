"""Physical storage for uploaded file content."""

from __future__ import annotations

import os
import shutil
import tempfile
from pathlib import Path
from typing import BinaryIO, Iterator, Protocol

import boto3
from botocore.exceptions import ClientError

from filevault.core.config import Settings
from filevault.core.errors import BlobNotFound
from filevault.core.logging import logger

CHUNK_SIZE = 1024 * 1024


class BlobStore(Protocol):
    def write(self, name: str, stream: BinaryIO, content_type: str) -> str: ...

    def open(self, name: str) -> Iterator[bytes]: ...

    def delete(self, name: str) -> None: ...


def _iter_file(fh: BinaryIO) -> Iterator[bytes]:
    try:
        while chunk := fh.read(CHUNK_SIZE):
            yield chunk
    finally:
        fh.close()


class LocalBlobStore:
    """One directory, one file per stored name."""

    def __init__(self, root: Path | str):
        self.root = Path(root).resolve()
        self.root.mkdir(parents=True, exist_ok=True)

    def _path(self, name: str) -> Path:
        path = (self.root / name).resolve()
        if path.parent != self.root:
            raise ValueError(f"Invalid blob name: {name!r}")
        return path

    def write(self, name: str, stream: BinaryIO, content_type: str) -> str:
        path = self._path(name)
        # Write to a temp file first so a failed copy never leaves a partial blob
        fd, tmp = tempfile.mkstemp(dir=self.root, prefix=".upload-")
        try:
            with os.fdopen(fd, "wb") as out:
                shutil.copyfileobj(stream, out, CHUNK_SIZE)
            os.replace(tmp, path)
        except BaseException:
            Path(tmp).unlink(missing_ok=True)
            raise
        return str(path)

    def open(self, name: str) -> Iterator[bytes]:
        try:
            fh = self._path(name).open("rb")
        except FileNotFoundError:
            raise BlobNotFound(name)
        return _iter_file(fh)

    def delete(self, name: str) -> None:
        self._path(name).unlink(missing_ok=True)


class S3BlobStore:
    def __init__(self, client, bucket: str, prefix: str = ""):
        self.client = client
        self.bucket = bucket
        self.prefix = prefix.strip("/")

    def _key(self, name: str) -> str:
        return f"{self.prefix}/{name}" if self.prefix else name

    def write(self, name: str, stream: BinaryIO, content_type: str) -> str:
        key = self._key(name)
        self.client.upload_fileobj(
            stream,
            self.bucket,
            key,
            ExtraArgs={"ContentType": content_type or "application/octet-stream"},
        )
        return key

    def open(self, name: str) -> Iterator[bytes]:
        try:
            obj = self.client.get_object(Bucket=self.bucket, Key=self._key(name))
        except ClientError as exc:
            if exc.response.get("Error", {}).get("Code") in ("NoSuchKey", "404"):
                raise BlobNotFound(name)
            raise
        return obj["Body"].iter_chunks(CHUNK_SIZE)

    def delete(self, name: str) -> None:
        # S3 delete_object succeeds for missing keys too
        self.client.delete_object(Bucket=self.bucket, Key=self._key(name))


def build_blob_store(settings: Settings) -> BlobStore:
    if settings.storage_backend == "s3":
        if not settings.aws_s3_bucket_name:
            raise ValueError("AWS_S3_BUCKET_NAME is required for the s3 storage backend")
        s3 = boto3.client(
            "s3",
            aws_access_key_id=settings.aws_access_key_id,
            aws_secret_access_key=settings.aws_secret_access_key,
            region_name=settings.aws_region,
        )
        logger.info(f"Using S3 blob store bucket={settings.aws_s3_bucket_name}")
        return S3BlobStore(s3, settings.aws_s3_bucket_name, settings.aws_s3_prefix)
    if settings.storage_backend != "local":
        raise ValueError(f"Unknown storage backend: {settings.storage_backend!r}")
    logger.info(f"Using local blob store at {settings.storage_dir}")
    return LocalBlobStore(settings.storage_dir)
