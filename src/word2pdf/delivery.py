from typing import Callable
from urllib.parse import quote

from fastapi.responses import FileResponse
from starlette.types import Receive, Scope, Send

from .conversion.models import ConversionRequest

CompletionCallback = Callable[..., None]


def content_disposition(filename: str) -> str:
    fallback = filename.encode("ascii", "replace").decode("ascii").replace('"', "").replace("\\", "")
    value = f'attachment; filename="{fallback}"'
    if fallback != filename:
        value += f"; filename*=utf-8''{quote(filename)}"
    return value


class PdfDownloadResponse(FileResponse):
    """Streams a converted PDF, then reports how the transfer ended.

    The callback fires exactly once after the transport is done with the
    file: on a completed send, on a transport error and on cancellation
    when the client goes away. The callback must be synchronous so that it
    still runs inside a cancelled task.
    """

    def __init__(self, request: ConversionRequest, on_complete: CompletionCallback) -> None:
        super().__init__(
            request.output_artifact.path,
            media_type="application/pdf",
            headers={"Content-Disposition": content_disposition(request.download_name)},
        )
        self._job = request
        self._on_complete = on_complete

    async def __call__(self, scope: Scope, receive: Receive, send: Send) -> None:
        delivered = False
        error: BaseException | None = None
        try:
            await super().__call__(scope, receive, send)
            delivered = True
        except BaseException as exc:
            error = exc
            raise
        finally:
            self._on_complete(self._job, delivered=delivered, error=error)
