import os
from contextlib import asynccontextmanager

from fastapi import APIRouter, Depends, FastAPI, File, Request, UploadFile
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from starlette.datastructures import Headers
from starlette.types import ASGIApp, Receive, Scope, Send

from .conversion import ConversionFailure, ConversionService, MissingFile, PayloadTooLarge
from .conversion.adapters import LocalStorage, build_converter
from .conversion.interfaces import ConverterGateway
from .delivery import PdfDownloadResponse
from .settings import ServiceSettings
from .utils.logging import get_logger, setup_logging

logger = get_logger(__name__)

CONVERT_PATH = "/convertFile"
# Room for the multipart boundaries and part headers around the file itself.
MULTIPART_ALLOWANCE = 64 * 1024

router = APIRouter()


class UploadLimitMiddleware:
    """Rejects a conversion upload whose Content-Length is already too big.

    Runs before the body is read, so an oversized upload is refused without
    being received. Uploads without a Content-Length are still capped while
    they are written to storage.
    """

    def __init__(self, app: ASGIApp, max_bytes: int, path: str = CONVERT_PATH) -> None:
        self._app = app
        self._limit = max_bytes + MULTIPART_ALLOWANCE
        self._path = path

    async def __call__(self, scope: Scope, receive: Receive, send: Send) -> None:
        if scope["type"] == "http" and scope["method"] == "POST" and scope["path"] == self._path:
            length = Headers(scope=scope).get("content-length", "")
            if length.isdigit() and int(length) > self._limit:
                logger.warning("http.upload_rejected", content_length=int(length), limit=self._limit)
                response = JSONResponse(status_code=400, content={"message": PayloadTooLarge.default_message})
                await response(scope, receive, send)
                return
        await self._app(scope, receive, send)


def get_service(request: Request) -> ConversionService:
    return request.app.state.service


@router.get("/")
def root(request: Request) -> dict[str, str]:
    """Liveness probe reporting the service name and version."""
    settings: ServiceSettings = request.app.state.settings
    return {"service": settings.service_name, "version": settings.version}


@router.get("/health")
def health() -> dict[str, str]:
    """Basic health check endpoint."""
    return {"status": "ok"}


@router.post(CONVERT_PATH, responses={200: {"content": {"application/pdf": {}}}})
async def convert_file(
    file: UploadFile | None = File(None),
    service: ConversionService = Depends(get_service),
):
    """Convert an uploaded Word document and stream back the PDF.

    Accepts multipart/form-data with a single part named "file". The PDF and
    the stored upload are deleted once the response has been sent, or has
    failed to send.
    """
    if file is None:
        raise MissingFile("multipart form has no 'file' part")

    job = await service.submit(file.filename, file.content_type, file.read, declared_size=file.size)
    try:
        return PdfDownloadResponse(job, on_complete=service.complete_delivery)
    except Exception as exc:
        service.complete_delivery(job, delivered=False, error=exc)
        raise


def setup_exception_handlers(app: FastAPI) -> None:
    @app.exception_handler(ConversionFailure)
    async def conversion_failure_handler(request: Request, exc: ConversionFailure) -> JSONResponse:
        return JSONResponse(status_code=exc.status_code, content={"message": exc.message})

    @app.exception_handler(RequestValidationError)
    async def validation_exception_handler(request: Request, exc: RequestValidationError) -> JSONResponse:
        logger.warning("http.invalid_request", path=request.url.path, errors=exc.errors())
        return JSONResponse(status_code=400, content={"message": "Invalid request"})

    @app.exception_handler(Exception)
    async def general_exception_handler(request: Request, exc: Exception) -> JSONResponse:
        logger.exception("http.unhandled_error", path=request.url.path)
        return JSONResponse(status_code=500, content={"message": "Internal server error"})


def create_app(
    settings: ServiceSettings | None = None,
    converter: ConverterGateway | None = None,
) -> FastAPI:
    """Build the ASGI app.

    ``converter`` overrides the backend chosen by ``settings``; the working
    directory is prepared once at startup.
    """
    settings = settings or ServiceSettings.from_env()

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        setup_logging(settings.log_level, json_logs=settings.log_json)
        backend = converter or build_converter(
            settings.converter_backend,
            soffice_path=settings.soffice_path,
            timeout_sec=settings.conversion_timeout_sec,
        )
        service = ConversionService(
            storage=LocalStorage(settings.work_dir),
            converter=backend,
            policy=settings.policy,
            timeout_sec=settings.conversion_timeout_sec,
            workers=settings.conversion_workers,
        )
        service.start()
        app.state.service = service
        yield
        service.stop()

    app = FastAPI(
        title="Word to PDF Conversion Service",
        version=settings.version,
        description="Converts uploaded Word documents (.doc, .docx) to PDF.",
        lifespan=lifespan,
    )
    app.state.settings = settings
    app.add_middleware(UploadLimitMiddleware, max_bytes=settings.max_upload_bytes)
    app.add_middleware(
        CORSMiddleware,
        allow_origins=list(settings.cors_origins),
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )
    setup_exception_handlers(app)
    app.include_router(router)
    return app


app = create_app()


def run() -> None:
    """Run a development ASGI server using uvicorn.

    Exposes the app at host:port (default 0.0.0.0:3000). Set PORT env var to override.
    """
    import uvicorn

    host = os.getenv("HOST", "0.0.0.0")
    port = int(os.getenv("PORT", "3000"))
    # Enable reload in dev unless explicitly disabled
    reload = os.getenv("RELOAD", "true").lower() in {"1", "true", "yes", "on"}

    uvicorn.run("word2pdf.webapi:app", host=host, port=port, reload=reload)


if __name__ == "__main__":
    run()
