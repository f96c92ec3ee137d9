from dataclasses import dataclass

from sqlalchemy.engine import Engine
from sqlalchemy.orm import sessionmaker

from filevault.core.config import Settings
from filevault.models.database import init_db, make_engine, make_session_factory
from filevault.services.blobs import BlobStore, build_blob_store
from filevault.services.credentials import CredentialStore
from filevault.services.files import FileService
from filevault.services.ledger import FileLedger
from filevault.services.notifier import Notifier, build_notifier
from filevault.services.otp import OtpRecoveryEngine
from filevault.services.sessions import SessionAuthenticator


@dataclass
class Services:
    engine: Engine
    session_factory: sessionmaker
    credentials: CredentialStore
    sessions: SessionAuthenticator
    otp: OtpRecoveryEngine
    files: FileService


def build_services(
    settings: Settings,
    *,
    blobs: BlobStore | None = None,
    notifier: Notifier | None = None,
) -> Services:
    engine = make_engine(settings.database_url)
    init_db(engine)

    credentials = CredentialStore(
        hash_method=settings.password_hash_method,
        min_password_length=settings.min_password_length,
    )
    return Services(
        engine=engine,
        session_factory=make_session_factory(engine),
        credentials=credentials,
        sessions=SessionAuthenticator(
            credentials,
            secret_key=settings.secret_key,
            ttl_seconds=settings.token_ttl_seconds,
        ),
        otp=OtpRecoveryEngine(
            credentials,
            notifier or build_notifier(settings),
            ttl_seconds=settings.otp_ttl_seconds,
        ),
        files=FileService(
            FileLedger(),
            blobs or build_blob_store(settings),
            max_upload_bytes=settings.max_upload_bytes,
        ),
    )
