"""Document sources that feed page text and images to the engine."""

from .pdf_source import PageRenderer, PdfDocumentSource, image_part_from_bytes

__all__ = ["PageRenderer", "PdfDocumentSource", "image_part_from_bytes"]
