import uuid
from dataclasses import dataclass, field
from datetime import datetime, timezone
from pathlib import Path, PurePosixPath

from .errors import ConversionFailure


class Stage:
    RECEIVED = "received"
    VALIDATED = "validated"
    STORED = "stored"
    CONVERTING = "converting"
    CONVERTED = "converted"
    DELIVERED = "delivered"
    FAILED = "failed"
    CLEANED = "cleaned"

    ORDER = (RECEIVED, VALIDATED, STORED, CONVERTING, CONVERTED, DELIVERED)
    TERMINAL = (DELIVERED, FAILED)


class ArtifactRole:
    INPUT = "input"
    OUTPUT = "output"


DEFAULT_ALLOWED_EXTENSIONS = (".doc", ".docx")
DEFAULT_MAX_BYTES = 10 * 1024 * 1024


@dataclass(frozen=True)
class ValidationPolicy:
    allowed_extensions: tuple[str, ...] = DEFAULT_ALLOWED_EXTENSIONS
    max_bytes: int = DEFAULT_MAX_BYTES
    check_signature: bool = True


@dataclass
class TemporaryArtifact:
    path: Path
    role: str
    alive: bool = True


def _utcnow() -> str:
    return datetime.now(timezone.utc).isoformat().replace("+00:00", "Z")


def base_name(filename: str) -> str:
    """Final path component of a client-supplied name, for either separator style."""
    return PurePosixPath(filename.replace("\\", "/")).name


@dataclass
class ConversionRequest:
    """State of one upload as it moves through the conversion lifecycle."""

    filename: str
    content_type: str
    size_bytes: int | None = None
    id: str = field(default_factory=lambda: uuid.uuid4().hex)
    created_at: str = field(default_factory=_utcnow)
    stage: str = Stage.RECEIVED
    history: list[str] = field(default_factory=lambda: [Stage.RECEIVED])
    failure: ConversionFailure | None = None
    artifacts: list[TemporaryArtifact] = field(default_factory=list)

    def advance(self, stage: str) -> None:
        current = self.stage
        if stage == Stage.FAILED:
            ok = current in Stage.ORDER and current != Stage.DELIVERED
        elif stage == Stage.CLEANED:
            ok = current in Stage.TERMINAL
        else:
            ok = (
                current in Stage.ORDER
                and stage in Stage.ORDER
                and Stage.ORDER.index(stage) == Stage.ORDER.index(current) + 1
            )
        if not ok:
            raise RuntimeError(f"illegal stage transition {current} -> {stage}")
        self.stage = stage
        self.history.append(stage)

    def fail(self, failure: ConversionFailure) -> None:
        self.failure = failure
        self.advance(Stage.FAILED)

    @property
    def finished(self) -> bool:
        return self.stage == Stage.CLEANED

    @property
    def download_name(self) -> str:
        name = base_name(self.filename)
        stem = name.rsplit(".", 1)[0] if "." in name else name
        return f"{stem or 'document'}.pdf"

    def _artifact(self, role: str) -> TemporaryArtifact | None:
        for artifact in self.artifacts:
            if artifact.role == role:
                return artifact
        return None

    @property
    def input_artifact(self) -> TemporaryArtifact | None:
        return self._artifact(ArtifactRole.INPUT)

    @property
    def output_artifact(self) -> TemporaryArtifact | None:
        return self._artifact(ArtifactRole.OUTPUT)
