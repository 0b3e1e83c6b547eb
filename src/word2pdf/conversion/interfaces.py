from pathlib import Path
from typing import Protocol

from .models import TemporaryArtifact


class ConverterGateway(Protocol):
    def convert_to_pdf(self, input_uri: str) -> bytes:
        """Convert the given input file into PDF bytes synchronously.
        This is a blocking call; callers should offload to threads and
        enforce their own timeout.
        """


class StorageGateway(Protocol):
    def ensure_ready(self) -> Path:
        ...

    def allocate(self, request_id: str, role: str, suggested_name: str) -> TemporaryArtifact:
        ...

    def release(self, artifact: TemporaryArtifact) -> None:
        ...
