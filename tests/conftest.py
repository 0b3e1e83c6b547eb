"""Pytest fixtures for conversion service tests."""

import io
from pathlib import Path

import pytest

from word2pdf.conversion.adapters import LocalStorage
from word2pdf.conversion.models import ValidationPolicy
from word2pdf.conversion.service import ConversionService

from tests.helpers.converters import EchoPdfConverter


@pytest.fixture
def work_dir(tmp_path: Path) -> Path:
    return tmp_path / "work"


@pytest.fixture
def storage(work_dir: Path) -> LocalStorage:
    store = LocalStorage(work_dir)
    store.ensure_ready()
    return store


@pytest.fixture
def policy() -> ValidationPolicy:
    return ValidationPolicy(max_bytes=64 * 1024)


@pytest.fixture
def echo_converter() -> EchoPdfConverter:
    return EchoPdfConverter()


@pytest.fixture
def make_service(storage, policy):
    services = []

    def factory(converter, *, timeout_sec: float = 5.0, workers: int = 2, policy_override=None) -> ConversionService:
        service = ConversionService(
            storage, converter, policy_override or policy, timeout_sec=timeout_sec, workers=workers
        )
        service.start()
        services.append(service)
        return service

    yield factory
    for service in services:
        service.stop()


@pytest.fixture
def reader_for():
    """Build an async chunk reader over a byte string, like UploadFile.read."""

    def factory(data: bytes):
        buf = io.BytesIO(data)

        async def read(size: int = -1) -> bytes:
            return buf.read(size)

        return read

    return factory
