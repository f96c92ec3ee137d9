from fastapi import Request
from sqlalchemy.orm import Session

from filevault.core.errors import AuthenticationError
from filevault.services.container import Services
from filevault.services.sessions import Identity


def get_services(request: Request) -> Services:
    return request.app.state.services


# DB session dependency
def get_db(request: Request):
    db: Session = get_services(request).session_factory()
    try:
        yield db
    finally:
        db.close()


def bearer_token(request: Request) -> str | None:
    header = request.headers.get("Authorization")
    if not header:
        return None
    scheme, _, token = header.partition(" ")
    if scheme.lower() != "bearer" or not token.strip():
        raise AuthenticationError("Invalid authorization header")
    return token.strip()


# --- helper: resolve the caller from the bearer token ---
def get_identity(request: Request) -> Identity:
    return get_services(request).sessions.authenticate(bearer_token(request))
