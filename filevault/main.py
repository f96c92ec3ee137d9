from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from filevault.core.config import DEFAULT_SECRET_KEY, Settings, get_settings
from filevault.core.errors import AppError
from filevault.core.logging import bind_request_logging, logger, setup_logging
from filevault.routers import auth, files
from filevault.services.blobs import BlobStore
from filevault.services.container import build_services
from filevault.services.notifier import Notifier


def _first_validation_message(exc: RequestValidationError) -> str:
    errors = exc.errors()
    if not errors:
        return "Invalid request"
    first = errors[0]
    field = ".".join(str(part) for part in first.get("loc", ()) if part not in ("body", "query", "path"))
    message = first.get("msg", "Invalid value")
    return f"{field}: {message}" if field else message


def register_error_handlers(app: FastAPI) -> None:
    @app.exception_handler(AppError)
    async def _app_error(request: Request, exc: AppError):
        logger.warning(f"Handled application error {exc.kind} on {request.method} {request.url.path}")
        return JSONResponse(status_code=int(exc.status), content=exc.to_dict())

    @app.exception_handler(RequestValidationError)
    async def _validation_error(request: Request, exc: RequestValidationError):
        return JSONResponse(
            status_code=400,
            content={"kind": "validation_error", "message": _first_validation_message(exc)},
        )

    @app.exception_handler(Exception)
    async def _unhandled(request: Request, exc: Exception):
        logger.exception(f"Unhandled error on {request.method} {request.url.path}")
        return JSONResponse(
            status_code=500,
            content={"kind": "internal_error", "message": "Internal server error"},
        )


def uses_default_secret(settings: Settings) -> bool:
    if settings.secret_key != DEFAULT_SECRET_KEY:
        return False
    logger.warning("SECRET_KEY is not set, bearer tokens are signed with the built-in development key")
    return True


def create_app(
    settings: Settings | None = None,
    *,
    blobs: BlobStore | None = None,
    notifier: Notifier | None = None,
) -> FastAPI:
    settings = settings or get_settings()
    setup_logging(settings.log_level)
    uses_default_secret(settings)

    app = FastAPI(title="FileVault", version="1.0.0")
    app.state.settings = settings
    app.state.services = build_services(settings, blobs=blobs, notifier=notifier)

    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.cors_origins,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )
    bind_request_logging(app)
    register_error_handlers(app)

    # include our routers
    app.include_router(auth.router, prefix=settings.api_prefix)
    app.include_router(files.router, prefix=settings.api_prefix)

    @app.get("/health")
    def health_check():
        return {"status": "ok"}

    return app


def run() -> None:
    import uvicorn

    uvicorn.run("filevault.main:create_app", factory=True, host="0.0.0.0", port=5000)
