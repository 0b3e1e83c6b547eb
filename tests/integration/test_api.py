"""HTTP surface tests against the FastAPI app with stub conversion backends."""

from contextlib import ExitStack

import pytest
from fastapi.testclient import TestClient

from word2pdf import __version__
from word2pdf.settings import ServiceSettings
from word2pdf.webapi import MULTIPART_ALLOWANCE, create_app

from tests.helpers.converters import (
    DOC_MAGIC,
    CrashingConverter,
    EchoPdfConverter,
    EmptyOutputConverter,
    HangingConverter,
    docx_payload,
)

DOCX_TYPE = "application/vnd.openxmlformats-officedocument.wordprocessingml.document"


@pytest.fixture
def make_client(work_dir):
    with ExitStack() as stack:

        def factory(converter, **overrides) -> TestClient:
            settings = ServiceSettings(work_dir=work_dir, **overrides)
            app = create_app(settings, converter=converter)
            return stack.enter_context(TestClient(app))

        yield factory


@pytest.fixture
def converter():
    return EchoPdfConverter()


@pytest.fixture
def client(make_client, converter):
    return make_client(converter)


def upload(client, name="report.docx", content=None, content_type=DOCX_TYPE):
    body = docx_payload("two pages") if content is None else content
    return client.post("/convertFile", files={"file": (name, body, content_type)})


class TestProbes:
    def test_root_reports_service_and_version(self, client):
        response = client.get("/")
        assert response.status_code == 200
        assert response.json() == {"service": "word2pdf", "version": __version__}

    def test_health(self, client):
        assert client.get("/health").json() == {"status": "ok"}

    def test_startup_prepares_work_dir(self, client, work_dir):
        assert work_dir.is_dir()


class TestConvertFile:
    def test_returns_pdf_attachment(self, client, converter, work_dir):
        response = upload(client)

        assert response.status_code == 200
        assert response.headers["content-type"] == "application/pdf"
        assert response.headers["content-disposition"] == 'attachment; filename="report.pdf"'
        assert response.content.startswith(b"%PDF-")
        assert len(converter.calls) == 1
        assert list(work_dir.iterdir()) == []

    def test_legacy_doc_upload(self, client, work_dir):
        response = upload(client, name="Old Letter.DOC", content=DOC_MAGIC + b"body")
        assert response.status_code == 200
        assert response.headers["content-disposition"] == 'attachment; filename="Old Letter.pdf"'
        assert list(work_dir.iterdir()) == []

    def test_unsupported_type(self, client, converter, work_dir):
        response = upload(client, name="notes.txt", content=b"hello", content_type="text/plain")

        assert response.status_code == 400
        assert response.json() == {"message": "Unsupported file type"}
        assert converter.calls == []
        assert list(work_dir.iterdir()) == []

    def test_missing_file_part(self, client, converter):
        response = client.post("/convertFile", data={"other": "value"})

        assert response.status_code == 400
        assert response.json() == {"message": "No file uploaded"}
        assert converter.calls == []

    def test_empty_file(self, client, work_dir):
        response = upload(client, content=b"")
        assert response.status_code == 400
        assert response.json() == {"message": "No file uploaded"}
        assert list(work_dir.iterdir()) == []

    def test_too_large_by_declared_size(self, make_client, converter, work_dir):
        client = make_client(converter, max_upload_bytes=1024)

        response = upload(client, content=docx_payload("x" * 4096))

        assert response.status_code == 400
        assert response.json() == {"message": "File too large"}
        assert converter.calls == []
        assert list(work_dir.iterdir()) == []

    def test_too_large_rejected_from_content_length(self, make_client, converter, work_dir):
        client = make_client(converter, max_upload_bytes=1024)

        response = upload(client, content=docx_payload("x" * (MULTIPART_ALLOWANCE + 4096)))

        assert response.status_code == 400
        assert response.json() == {"message": "File too large"}
        assert converter.calls == []
        assert list(work_dir.iterdir()) == []

    @pytest.mark.parametrize(
        "backend, message",
        [
            (CrashingConverter(), "Error converting file"),
            (EmptyOutputConverter(), "Conversion produced no output"),
        ],
    )
    def test_backend_failures_are_500(self, make_client, work_dir, backend, message):
        client = make_client(backend)

        response = upload(client)

        assert response.status_code == 500
        assert response.json() == {"message": message}
        assert str(work_dir) not in response.text
        assert list(work_dir.iterdir()) == []

    def test_timeout_is_500(self, make_client, work_dir):
        client = make_client(HangingConverter(seconds=1.0), conversion_timeout_sec=0.1)

        response = upload(client)

        assert response.status_code == 500
        assert response.json() == {"message": "Conversion timed out"}
        assert list(work_dir.iterdir()) == []

    def test_signature_mismatch(self, client, work_dir):
        response = upload(client, content=b"%PDF-1.4 pretending to be docx")
        assert response.status_code == 400
        assert response.json() == {"message": "Unsupported file type"}
        assert list(work_dir.iterdir()) == []


class TestCors:
    def test_dev_origin_allowed(self, client):
        response = client.options(
            "/convertFile",
            headers={"Origin": "http://localhost:5173", "Access-Control-Request-Method": "POST"},
        )
        assert response.status_code == 200
        assert response.headers["access-control-allow-origin"] == "http://localhost:5173"

    def test_configured_client_origin(self, make_client, converter):
        client = make_client(converter, cors_origins=("https://convert.example.com",))
        response = client.post(
            "/convertFile",
            files={"file": ("a.docx", docx_payload(), DOCX_TYPE)},
            headers={"Origin": "https://convert.example.com"},
        )
        assert response.status_code == 200
        assert response.headers["access-control-allow-origin"] == "https://convert.example.com"
