import os
import re
import shutil
import signal
import subprocess
import tempfile
import time
from pathlib import Path

from ..utils.logging import get_logger
from .errors import ConversionError, ConversionTimeout, OutputMissing
from .interfaces import ConverterGateway, StorageGateway
from .models import TemporaryArtifact, base_name

logger = get_logger(__name__)

_UNSAFE_CHARS = re.compile(r"[^A-Za-z0-9._-]+")
_MAX_NAME = 100


def _safe_name(suggested: str) -> str:
    name = _UNSAFE_CHARS.sub("_", base_name(suggested)).strip("._")
    return name[-_MAX_NAME:] or "file"


class LocalStorage(StorageGateway):
    """Per-request temporary files inside one shared working directory.

    Every path carries the owning request id and a millisecond timestamp, so
    requests never touch each other's files and no locking is needed.
    """

    def __init__(self, work_dir: str | Path) -> None:
        self._base = Path(work_dir).resolve()

    @property
    def base_dir(self) -> Path:
        return self._base

    def ensure_ready(self) -> Path:
        self._base.mkdir(parents=True, exist_ok=True)
        return self._base

    def allocate(self, request_id: str, role: str, suggested_name: str) -> TemporaryArtifact:
        if not self._base.is_dir():
            self.ensure_ready()
        stamp = int(time.time() * 1000)
        path = self._base / f"{request_id}-{stamp}-{role}-{_safe_name(suggested_name)}"
        return TemporaryArtifact(path=path, role=role)

    def release(self, artifact: TemporaryArtifact) -> None:
        if not artifact.alive:
            return
        try:
            artifact.path.unlink(missing_ok=True)
        except OSError as e:
            # Never propagated: the request outcome is already decided.
            logger.warning("storage.release_failed", role=artifact.role, path=str(artifact.path), error=str(e))
            return
        artifact.alive = False


class LibreOfficeConverter(ConverterGateway):
    """Delegates to a headless LibreOffice (``soffice --convert-to pdf``)."""

    EXECUTABLES = ("soffice", "libreoffice")

    def __init__(self, binary: str | None = None, *, timeout_sec: float = 60.0) -> None:
        self._binary = binary or self._find_binary()
        self._timeout = timeout_sec

    @classmethod
    def _find_binary(cls) -> str | None:
        for name in cls.EXECUTABLES:
            path = shutil.which(name)
            if path:
                logger.debug("converter.soffice_found", path=path)
                return path
        logger.warning("converter.soffice_missing", tried=list(cls.EXECUTABLES))
        return None

    @property
    def is_available(self) -> bool:
        return self._binary is not None

    def convert_to_pdf(self, input_uri: str) -> bytes:
        if self._binary is None:
            raise ConversionError("LibreOffice executable not found (tried soffice, libreoffice)")
        src = Path(input_uri)
        with tempfile.TemporaryDirectory(prefix="word2pdf-soffice-") as scratch:
            outdir = Path(scratch) / "out"
            # A private profile lets several conversions run side by side.
            profile = Path(scratch) / "profile"
            cmd = [
                self._binary,
                f"-env:UserInstallation={profile.as_uri()}",
                "--headless",
                "--norestore",
                "--nolockcheck",
                "--convert-to",
                "pdf",
                "--outdir",
                str(outdir),
                str(src),
            ]
            try:
                proc = subprocess.Popen(
                    cmd,
                    stdout=subprocess.PIPE,
                    stderr=subprocess.PIPE,
                    start_new_session=os.name != "nt",
                )
            except OSError as e:
                raise ConversionError(f"could not start {self._binary}: {e}") from e
            try:
                _, stderr = proc.communicate(timeout=self._timeout)
            except subprocess.TimeoutExpired as e:
                self._kill(proc)
                raise ConversionTimeout(f"soffice exceeded {self._timeout}s converting {src.name}") from e

            if proc.returncode != 0:
                msg = stderr.decode("utf-8", errors="replace").strip()
                raise ConversionError(f"soffice exited with status {proc.returncode}: {msg}")

            produced = outdir / f"{src.stem}.pdf"
            if not produced.is_file() or produced.stat().st_size == 0:
                raise OutputMissing(f"soffice reported success but {produced.name} is missing or empty")
            return produced.read_bytes()

    @staticmethod
    def _kill(proc: subprocess.Popen) -> None:
        # soffice forks soffice.bin; take down the whole session.
        try:
            if os.name != "nt":
                os.killpg(proc.pid, signal.SIGKILL)
            else:
                proc.kill()
        except ProcessLookupError:
            pass
        proc.communicate()


def build_converter(backend: str, *, soffice_path: str | None = None, timeout_sec: float = 60.0) -> ConverterGateway:
    if backend == "html":
        from .rendering import HtmlRenderConverter

        return HtmlRenderConverter()
    if backend == "libreoffice":
        return LibreOfficeConverter(soffice_path, timeout_sec=timeout_sec)
    raise ValueError(f"unknown converter backend {backend!r}")
