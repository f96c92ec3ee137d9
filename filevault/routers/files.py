from urllib.parse import quote

from fastapi import APIRouter, Depends, File, UploadFile
from fastapi.responses import StreamingResponse
from sqlalchemy.orm import Session

from filevault.core.errors import ValidationError
from filevault.routers.deps import get_db, get_identity, get_services
from filevault.services.container import Services
from filevault.services.sessions import Identity

router = APIRouter(prefix="/files", tags=["files"])


def content_disposition(filename: str) -> str:
    # ASCII fallback plus RFC 5987 form for non-ASCII names
    fallback = filename.encode("ascii", "replace").decode("ascii").replace('"', "_")
    return f"attachment; filename=\"{fallback}\"; filename*=UTF-8''{quote(filename)}"


# --- upload a new file ---
@router.post("/upload")
def upload_file(
    file: UploadFile | None = File(None),
    identity: Identity = Depends(get_identity),
    db: Session = Depends(get_db),
    services: Services = Depends(get_services),
):
    if file is None or not file.filename:
        raise ValidationError("No file uploaded", kind="missing_file")

    record = services.files.upload(db, identity, file.file, file.filename, file.content_type)
    return {"message": "File uploaded successfully", "file": record.to_public()}


# --- list the caller's files, newest first ---
@router.get("/list")
def list_files(
    identity: Identity = Depends(get_identity),
    db: Session = Depends(get_db),
    services: Services = Depends(get_services),
):
    files = services.files.list(db, identity)
    return {"files": [f.to_public() for f in files]}


@router.get("/stats")
def file_stats(
    identity: Identity = Depends(get_identity),
    db: Session = Depends(get_db),
    services: Services = Depends(get_services),
):
    return services.files.usage(db, identity)


# --- download a file ---
@router.get("/download/{file_id}")
def download_file(
    file_id: int,
    identity: Identity = Depends(get_identity),
    db: Session = Depends(get_db),
    services: Services = Depends(get_services),
):
    content, record = services.files.download(db, identity, file_id)
    return StreamingResponse(
        content,
        media_type=record.content_type or "application/octet-stream",
        headers={
            "Content-Disposition": content_disposition(record.original_name),
            "Content-Length": str(record.size),
        },
    )


# --- delete a file ---
@router.delete("/delete/{file_id}")
def delete_file(
    file_id: int,
    identity: Identity = Depends(get_identity),
    db: Session = Depends(get_db),
    services: Services = Depends(get_services),
):
    services.files.delete(db, identity, file_id)
    return {"message": "File deleted successfully"}


@router.get("/info/{file_id}")
def file_info(
    file_id: int,
    identity: Identity = Depends(get_identity),
    db: Session = Depends(get_db),
    services: Services = Depends(get_services),
):
    record = services.files.info(db, identity, file_id)
    return {"file": record.to_public()}
