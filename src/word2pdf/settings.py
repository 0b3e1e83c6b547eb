import os
from dataclasses import dataclass
from pathlib import Path

from . import __version__
from .conversion.models import DEFAULT_MAX_BYTES, ValidationPolicy

BACKENDS = ("libreoffice", "html")
DEV_CLIENT_ORIGIN = "http://localhost:5173"


def _flag(name: str, default: str) -> bool:
    return os.getenv(name, default).lower() in {"1", "true", "yes", "on"}


@dataclass(frozen=True)
class ServiceSettings:
    work_dir: Path = Path("./work")
    max_upload_bytes: int = DEFAULT_MAX_BYTES
    allowed_extensions: tuple[str, ...] = (".doc", ".docx")
    check_signature: bool = True
    converter_backend: str = "libreoffice"
    conversion_timeout_sec: float = 60.0
    conversion_workers: int = 4
    soffice_path: str | None = None
    cors_origins: tuple[str, ...] = (DEV_CLIENT_ORIGIN,)
    log_level: str = "INFO"
    log_json: bool = False
    service_name: str = "word2pdf"
    version: str = __version__

    def __post_init__(self) -> None:
        if self.max_upload_bytes <= 0:
            raise ValueError("MAX_UPLOAD_BYTES must be positive")
        if self.conversion_timeout_sec <= 0:
            raise ValueError("CONVERSION_TIMEOUT_SEC must be positive")
        if self.conversion_workers <= 0:
            raise ValueError("CONVERSION_WORKERS must be positive")
        if self.converter_backend not in BACKENDS:
            raise ValueError(f"CONVERTER_BACKEND must be one of {BACKENDS}, got {self.converter_backend!r}")
        if not self.allowed_extensions:
            raise ValueError("ALLOWED_EXTENSIONS must not be empty")
        for ext in self.allowed_extensions:
            if not ext.startswith(".") or ext != ext.lower():
                raise ValueError(f"extension {ext!r} must be lower-case and start with a dot")

    @classmethod
    def from_env(cls) -> "ServiceSettings":
        exts = tuple(
            e.strip().lower()
            for e in os.getenv("ALLOWED_EXTENSIONS", ".doc,.docx").split(",")
            if e.strip()
        )
        origins = [DEV_CLIENT_ORIGIN]
        client_url = os.getenv("CLIENT_URL")
        if client_url:
            origins.insert(0, client_url.rstrip("/"))
        return cls(
            work_dir=Path(os.getenv("WORK_DIR", "./work")).resolve(),
            max_upload_bytes=int(os.getenv("MAX_UPLOAD_BYTES", str(DEFAULT_MAX_BYTES))),
            allowed_extensions=exts,
            check_signature=_flag("CHECK_SIGNATURE", "true"),
            converter_backend=os.getenv("CONVERTER_BACKEND", "libreoffice").strip().lower(),
            conversion_timeout_sec=float(os.getenv("CONVERSION_TIMEOUT_SEC", "60")),
            conversion_workers=int(os.getenv("CONVERSION_WORKERS", "4")),
            soffice_path=os.getenv("SOFFICE_PATH") or None,
            cors_origins=tuple(origins),
            log_level=os.getenv("LOG_LEVEL", "INFO"),
            log_json=_flag("LOG_JSON", "false"),
            version=os.getenv("WORD2PDF_VERSION", __version__),
        )

    @property
    def policy(self) -> ValidationPolicy:
        return ValidationPolicy(
            allowed_extensions=self.allowed_extensions,
            max_bytes=self.max_upload_bytes,
            check_signature=self.check_signature,
        )
