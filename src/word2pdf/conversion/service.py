import asyncio
import contextvars
import functools
from concurrent.futures import ThreadPoolExecutor
from pathlib import Path
from typing import Any, Awaitable, Callable

from structlog.contextvars import bound_contextvars

from ..utils.logging import get_logger
from .errors import (
    ConversionError,
    ConversionFailure,
    ConversionTimeout,
    DeliveryError,
    MissingFile,
    OutputMissing,
    PayloadTooLarge,
    StorageError,
)
from .interfaces import ConverterGateway, StorageGateway
from .models import ArtifactRole, ConversionRequest, Stage, ValidationPolicy
from .validation import check_signature, validate_upload

logger = get_logger(__name__)

Reader = Callable[[int], Awaitable[bytes]]

CHUNK = 1024 * 1024
PDF_MAGIC = b"%PDF-"
DEFAULT_WORKERS = 4


async def _settled(func: Callable[..., Any], *args: Any) -> Any:
    """Run blocking file I/O in a thread and never abandon it.

    A cancelled caller waits for the thread to return before the
    cancellation propagates, so whatever file it creates already exists
    when cleanup runs.
    """
    task = asyncio.ensure_future(asyncio.to_thread(func, *args))
    try:
        return await asyncio.shield(task)
    except asyncio.CancelledError:
        await asyncio.wait([task])
        if not task.cancelled():
            task.exception()
        raise


class ConversionService:
    """Core domain service driving one upload from receipt to cleanup.

    This service is framework-agnostic. ``submit`` validates, stores and
    converts an upload and hands back a request whose output artifact holds
    a verified PDF. The transport then streams that file and reports back
    through ``complete_delivery``, which is when the request's temporary
    files are removed. Every failure inside ``submit`` removes them before
    the error propagates.

    Backend calls run on a bounded pool of their own. A call that times out
    keeps its worker until the backend returns, but it never holds up the
    upload and output writes, which use the default executor.
    """

    def __init__(
        self,
        storage: StorageGateway,
        converter: ConverterGateway,
        policy: ValidationPolicy | None = None,
        *,
        timeout_sec: float = 60.0,
        workers: int = DEFAULT_WORKERS,
    ) -> None:
        self._storage = storage
        self._converter = converter
        self._policy = policy or ValidationPolicy()
        self._timeout = timeout_sec
        self._workers = workers
        self._executor = ThreadPoolExecutor(max_workers=workers, thread_name_prefix="word2pdf-convert")

    @property
    def policy(self) -> ValidationPolicy:
        return self._policy

    def start(self) -> None:
        work_dir = self._storage.ensure_ready()
        logger.info(
            "service.ready",
            work_dir=str(work_dir),
            converter=type(self._converter).__name__,
            timeout_sec=self._timeout,
            workers=self._workers,
            max_bytes=self._policy.max_bytes,
        )

    def stop(self) -> None:
        # Queued conversions are dropped; running ones finish on their own.
        self._executor.shutdown(wait=False, cancel_futures=True)
        logger.info("service.stopped")

    async def submit(
        self,
        filename: str | None,
        content_type: str | None,
        reader: Reader,
        *,
        declared_size: int | None = None,
    ) -> ConversionRequest:
        request = ConversionRequest(
            filename=filename or "",
            content_type=content_type or "application/octet-stream",
            size_bytes=declared_size,
        )
        with bound_contextvars(request_id=request.id):
            logger.info("conversion.stage", stage=request.stage, size_bytes=declared_size)
            try:
                ext = validate_upload(filename, declared_size, self._policy)
                self._advance(request, Stage.VALIDATED)
                await self._store(request, reader, ext)
                await self._convert(request)
            except ConversionFailure as exc:
                self._abort(request, exc)
                raise
            except asyncio.CancelledError:
                self._abort(request, DeliveryError("client went away before delivery"))
                raise
            except Exception as exc:
                self._abort(request, ConversionFailure(f"unexpected {type(exc).__name__}: {exc}"))
                raise
        return request

    def complete_delivery(
        self,
        request: ConversionRequest,
        *,
        delivered: bool,
        error: BaseException | None = None,
    ) -> None:
        """Record the transport outcome and remove the request's files.

        Safe to call more than once; only the first call has an effect.
        """
        if request.finished:
            return
        with bound_contextvars(request_id=request.id):
            if delivered:
                self._advance(request, Stage.DELIVERED)
            elif request.stage != Stage.FAILED:
                detail = f"transfer aborted: {error!r}" if error is not None else "transfer aborted"
                self._fail(request, DeliveryError(detail))
            self._cleanup(request)

    async def _store(self, request: ConversionRequest, reader: Reader, ext: str) -> None:
        artifact = self._storage.allocate(request.id, ArtifactRole.INPUT, request.filename)
        request.artifacts.append(artifact)
        size = 0
        try:
            with artifact.path.open("wb") as f_out:
                while True:
                    chunk = await reader(CHUNK)
                    if not chunk:
                        break
                    size += len(chunk)
                    if size > self._policy.max_bytes:
                        raise PayloadTooLarge(f"upload exceeds {self._policy.max_bytes} bytes")
                    await _settled(f_out.write, chunk)
            if size == 0:
                raise MissingFile("upload was empty")
            if self._policy.check_signature:
                await _settled(check_signature, artifact.path, ext)
        except OSError as e:
            raise StorageError(f"writing {artifact.path}: {e}") from e
        request.size_bytes = size
        self._advance(request, Stage.STORED)

    async def _convert(self, request: ConversionRequest) -> None:
        source = request.input_artifact
        output = self._storage.allocate(request.id, ArtifactRole.OUTPUT, request.download_name)
        request.artifacts.append(output)
        self._advance(request, Stage.CONVERTING)
        loop = asyncio.get_running_loop()
        call = functools.partial(
            contextvars.copy_context().run, self._converter.convert_to_pdf, str(source.path)
        )
        try:
            pdf = await asyncio.wait_for(loop.run_in_executor(self._executor, call), timeout=self._timeout)
        except asyncio.TimeoutError as e:
            raise ConversionTimeout(f"backend exceeded {self._timeout}s") from e
        except ConversionFailure:
            raise
        except Exception as e:
            raise ConversionError(f"{type(e).__name__}: {e}") from e

        if not pdf:
            raise OutputMissing("backend returned no bytes")
        try:
            await _settled(output.path.write_bytes, pdf)
        except OSError as e:
            raise StorageError(f"writing {output.path}: {e}") from e
        await _settled(self._verify_output, output.path)
        self._advance(request, Stage.CONVERTED)

    @staticmethod
    def _verify_output(path: Path) -> None:
        if not path.is_file() or path.stat().st_size == 0:
            raise OutputMissing(f"{path} is missing or empty after conversion")
        with path.open("rb") as f:
            head = f.read(len(PDF_MAGIC))
        if head != PDF_MAGIC:
            raise ConversionError(f"{path} does not start with a PDF header")

    def _advance(self, request: ConversionRequest, stage: str) -> None:
        request.advance(stage)
        logger.info("conversion.stage", stage=stage)

    def _fail(self, request: ConversionRequest, failure: ConversionFailure) -> None:
        at = request.stage
        request.fail(failure)
        log = logger.warning if failure.status_code < 500 else logger.error
        log("conversion.failed", code=failure.code, stage=at, detail=failure.detail)

    def _abort(self, request: ConversionRequest, failure: ConversionFailure) -> None:
        self._fail(request, failure)
        self._cleanup(request)

    def _cleanup(self, request: ConversionRequest) -> None:
        if request.finished:
            return
        for artifact in request.artifacts:
            self._storage.release(artifact)
        self._advance(request, Stage.CLEANED)
