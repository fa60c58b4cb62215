"""Tests for the pypdf-backed page source."""

from __future__ import annotations

import base64

import pytest
from pypdf import PdfWriter

from pagewise.ai.ai_types import DocumentSource
from pagewise.ai.orchestration.errors import DocumentSourceError
from pagewise.documents import PdfDocumentSource, image_part_from_bytes


class _Page:
    def __init__(self, text: str | Exception):
        self._text = text
        self.calls = 0

    def extract_text(self) -> str:
        self.calls += 1
        if isinstance(self._text, Exception):
            raise self._text
        return self._text


def _reader_for(pages):
    class _Reader:
        def __init__(self, path: str):
            self.path = path
            self.pages = pages

    return _Reader


def test_page_text_is_one_based_and_cached():
    pages = [_Page("  first page  "), _Page("second page")]
    source = PdfDocumentSource("book.pdf", reader_cls=_reader_for(pages))

    assert isinstance(source, DocumentSource)
    assert source.total_pages == 2
    assert source.title == "book"
    assert source.page_text(1) == "first page"
    assert source.page_text(1) == "first page"
    assert pages[0].calls == 1
    assert source.page_text(2) == "second page"


@pytest.mark.parametrize("page_number", [0, 3, -1])
def test_out_of_range_pages_are_described_not_raised(page_number):
    source = PdfDocumentSource("book.pdf", reader_cls=_reader_for([_Page("a"), _Page("b")]))

    text = source.page_text(page_number)

    assert f"Page {page_number} does not exist" in text
    assert "2 page(s)" in text


def test_extraction_failure_is_described():
    source = PdfDocumentSource("book.pdf", reader_cls=_reader_for([_Page(ValueError("bad stream"))]))

    assert source.page_text(1) == "Could not read the text of page 1: bad stream"


def test_reader_failure_raises_document_source_error():
    class _Broken:
        def __init__(self, path: str):
            raise ValueError("not a PDF")

    with pytest.raises(DocumentSourceError):
        PdfDocumentSource("broken.pdf", reader_cls=_Broken)


def test_missing_file_raises_document_source_error(tmp_path):
    with pytest.raises(DocumentSourceError):
        PdfDocumentSource(tmp_path / "missing.pdf")


def test_blank_pdf_page_reads_as_placeholder(tmp_path):
    path = tmp_path / "blank.pdf"
    writer = PdfWriter()
    writer.add_blank_page(width=200, height=200)
    with path.open("wb") as handle:
        writer.write(handle)

    source = PdfDocumentSource(path)

    assert source.total_pages == 1
    assert source.page_text(1) == "(No extractable text found on page 1.)"


def test_page_image_uses_the_renderer():
    rendered: list[int] = []

    def renderer(page_number: int) -> bytes:
        rendered.append(page_number)
        return b"\x89PNG"

    source = PdfDocumentSource("book.pdf", reader_cls=_reader_for([_Page("a")]), renderer=renderer)

    image = source.page_image(1)

    assert rendered == [1]
    assert image is not None
    assert image.url == "data:image/png;base64," + base64.b64encode(b"\x89PNG").decode("ascii")
    assert source.page_image(2) is None


def test_page_image_is_none_without_renderer_or_on_failure():
    source = PdfDocumentSource("book.pdf", reader_cls=_reader_for([_Page("a")]))
    assert source.page_image(1) is None

    def broken(page_number: int) -> bytes:
        raise RuntimeError("renderer crashed")

    source = PdfDocumentSource("book.pdf", reader_cls=_reader_for([_Page("a")]), renderer=broken)
    assert source.page_image(1) is None


def test_image_part_from_bytes_uses_the_mime_type():
    part = image_part_from_bytes(b"abc", mime_type="image/jpeg", detail="low")

    assert part.url == "data:image/jpeg;base64,YWJj"
    assert part.detail == "low"
