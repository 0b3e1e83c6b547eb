"""
Structural rendering backend: document -> HTML -> PDF.

docling extracts the document structure as HTML, the body is placed in a
fixed print template and WeasyPrint lays it out on fixed-size pages.
"""

import html
import re
from pathlib import Path

import jinja2

from ..utils.logging import get_logger
from .errors import ConversionError, EmptyContent
from .interfaces import ConverterGateway

logger = get_logger(__name__)

PAGE_SIZE = "A4"
PAGE_MARGIN = "20mm"

_BODY = re.compile(r"<body[^>]*>(.*)</body>", re.IGNORECASE | re.DOTALL)
_TAG = re.compile(r"<[^>]+>")


def body_of(markup: str) -> str:
    m = _BODY.search(markup)
    return m.group(1) if m else markup


def has_content(body: str) -> bool:
    if "<img" in body.lower():
        return True
    text = html.unescape(_TAG.sub(" ", body))
    return bool(text.strip())


class HtmlRenderConverter(ConverterGateway):
    def __init__(self) -> None:
        self._env = jinja2.Environment(
            loader=jinja2.PackageLoader("word2pdf", "templates"),
            autoescape=jinja2.select_autoescape(["html"]),
        )

    def convert_to_pdf(self, input_uri: str) -> bytes:
        body = body_of(self.extract_html(input_uri))
        if not has_content(body):
            raise EmptyContent(f"no text or images extracted from {Path(input_uri).name}")
        return self.render_pdf(self.render_page(body))

    def extract_html(self, input_uri: str) -> str:
        try:
            from docling.document_converter import DocumentConverter

            result = DocumentConverter().convert(input_uri)
        except Exception as e:
            raise ConversionError(f"docling failed on {Path(input_uri).name}: {e}") from e
        doc = result.document
        # method name differs across docling releases
        for m in ("export_to_html", "to_html", "as_html"):
            fn = getattr(doc, m, None)
            if callable(fn):
                return fn()
        raise ConversionError("docling document lacks an HTML export method")

    def render_page(self, body: str) -> str:
        template = self._env.get_template("document.html")
        return template.render(body=body, page_size=PAGE_SIZE, page_margin=PAGE_MARGIN)

    def render_pdf(self, page: str) -> bytes:
        from weasyprint import HTML

        try:
            return HTML(string=page).write_pdf()
        except Exception as e:
            raise ConversionError(f"WeasyPrint rendering failed: {e}") from e
