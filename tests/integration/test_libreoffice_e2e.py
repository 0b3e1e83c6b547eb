"""End-to-end conversion through a real LibreOffice install."""

import io

import pytest
from fastapi.testclient import TestClient

from word2pdf.conversion.adapters import LibreOfficeConverter
from word2pdf.settings import ServiceSettings
from word2pdf.webapi import create_app

docx = pytest.importorskip("docx")

pytestmark = pytest.mark.skipif(
    not LibreOfficeConverter().is_available, reason="LibreOffice (soffice) is not installed"
)


def two_page_document() -> bytes:
    document = docx.Document()
    document.add_heading("Quarterly report", level=1)
    document.add_paragraph("First page body.")
    document.add_page_break()
    document.add_paragraph("Second page body.")
    buf = io.BytesIO()
    document.save(buf)
    return buf.getvalue()


def test_docx_converts_to_pdf(tmp_path):
    work_dir = tmp_path / "work"
    settings = ServiceSettings(work_dir=work_dir, converter_backend="libreoffice", conversion_timeout_sec=120)

    with TestClient(create_app(settings)) as client:
        response = client.post(
            "/convertFile",
            files={"file": ("Quarterly Report.docx", two_page_document(), "application/octet-stream")},
        )

    assert response.status_code == 200
    assert response.headers["content-type"] == "application/pdf"
    assert 'filename="Quarterly Report.pdf"' in response.headers["content-disposition"]
    assert response.content.startswith(b"%PDF-")
    assert list(work_dir.iterdir()) == []
