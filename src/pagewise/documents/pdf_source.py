"""Page access over a PDF file using pypdf."""

from __future__ import annotations

import base64
import logging
from pathlib import Path
from typing import Any, Callable

from pypdf import PdfReader

from ..ai.orchestration.errors import DocumentSourceError
from ..ai.orchestration.types import ImagePart

__all__ = ["PageRenderer", "PdfDocumentSource", "image_part_from_bytes"]

_LOGGER = logging.getLogger(__name__)

# Returns encoded image bytes for a 1-based page number, or None.
PageRenderer = Callable[[int], "bytes | None"]

_EMPTY_PAGE_TEXT = "(No extractable text found on page {page}.)"


def image_part_from_bytes(data: bytes, *, mime_type: str = "image/png", detail: str = "auto") -> ImagePart:
    """Wrap encoded image bytes in a base64 data URL part."""

    encoded = base64.b64encode(data).decode("ascii")
    return ImagePart(url=f"data:{mime_type};base64,{encoded}", detail=detail)  # type: ignore[arg-type]


class PdfDocumentSource:
    """Read-only page view of a PDF.

    Text is extracted lazily with pypdf and cached per page. Rendering pages
    to images is left to an injected *renderer*; without one, image-grounded
    turns have no picture to attach.
    """

    def __init__(
        self,
        path: str | Path,
        *,
        reader_cls: type | None = None,
        renderer: PageRenderer | None = None,
        image_mime_type: str = "image/png",
    ) -> None:
        self.path = Path(path)
        self._renderer = renderer
        self._image_mime_type = image_mime_type
        self._text_cache: dict[int, str] = {}
        reader_cls = reader_cls or PdfReader
        try:
            self._reader: Any = reader_cls(str(self.path))
        except FileNotFoundError as exc:
            raise DocumentSourceError(f"PDF not found: {self.path}") from exc
        except Exception as exc:
            raise DocumentSourceError(f"Unable to open PDF {self.path.name}: {exc}") from exc
        self._pages = list(getattr(self._reader, "pages", []))
        _LOGGER.debug("Opened %s (%s page(s))", self.path, len(self._pages))

    @property
    def total_pages(self) -> int:
        return len(self._pages)

    @property
    def title(self) -> str:
        return self.path.stem

    def page_text(self, page_number: int) -> str:
        """Return the text of *page_number* (1-based).

        Invalid page numbers produce a message the model can act on instead of
        an exception.
        """
        if not self._in_range(page_number):
            return (
                f"Page {page_number} does not exist. "
                f"This document has {self.total_pages} page(s), numbered from 1."
            )
        cached = self._text_cache.get(page_number)
        if cached is not None:
            return cached

        page = self._pages[page_number - 1]
        extractor = getattr(page, "extract_text", None)
        text = ""
        if callable(extractor):
            try:
                text = str(extractor() or "").strip()
            except Exception as exc:
                _LOGGER.debug("Failed to extract page %s: %s", page_number, exc)
                return f"Could not read the text of page {page_number}: {exc}"
        if not text:
            text = _EMPTY_PAGE_TEXT.format(page=page_number)
        self._text_cache[page_number] = text
        return text

    def page_image(self, page_number: int) -> ImagePart | None:
        if self._renderer is None or not self._in_range(page_number):
            return None
        try:
            data = self._renderer(page_number)
        except Exception:
            _LOGGER.warning("Renderer failed for page %s", page_number, exc_info=True)
            return None
        if not data:
            return None
        return image_part_from_bytes(data, mime_type=self._image_mime_type)

    def _in_range(self, page_number: int) -> bool:
        return isinstance(page_number, int) and 1 <= page_number <= self.total_pages
