"""PyMuPDF backed text extraction and page rendering.

All functions are blocking and are meant to run in a worker thread.
"""
from __future__ import annotations

import logging
from pathlib import Path
from typing import Iterable, Protocol

import fitz  # PyMuPDF

from rulecheck.core.errors import DocumentReadError

logger = logging.getLogger(__name__)


class DocumentReader(Protocol):
    """Contract used by the pipeline to read PDF content."""

    def extract_page_texts(self, path: Path) -> list[str]: ...

    def render_pages(
        self,
        path: Path,
        *,
        scale: float,
        page_numbers: Iterable[int] | None = None,
    ) -> list[tuple[int, bytes]]: ...


class PdfDocumentReader:
    """Reads embedded text and renders page images with PyMuPDF."""

    @staticmethod
    def _open(path: Path) -> fitz.Document:
        try:
            return fitz.open(str(path))
        except Exception as exc:
            raise DocumentReadError(f"Cannot open PDF {path.name}: {exc}") from exc

    def extract_page_texts(self, path: Path) -> list[str]:
        """Return the embedded text layer of every page, in page order."""

        with self._open(path) as doc:
            if doc.page_count == 0:
                raise DocumentReadError("PDF does not contain any pages")
            texts = [doc.load_page(index).get_text("text") or "" for index in range(doc.page_count)]
        logger.debug("Extracted text layer from %d pages of %s", len(texts), path.name)
        return texts

    def render_pages(
        self,
        path: Path,
        *,
        scale: float,
        page_numbers: Iterable[int] | None = None,
    ) -> list[tuple[int, bytes]]:
        """Render pages to PNG bytes.

        Returns ``(page_number, png_bytes)`` tuples with 1-based page numbers.
        When ``page_numbers`` is omitted every page is rendered.
        """

        matrix = fitz.Matrix(scale, scale)
        rendered: list[tuple[int, bytes]] = []
        with self._open(path) as doc:
            if page_numbers is None:
                wanted = list(range(1, doc.page_count + 1))
            else:
                wanted = sorted({number for number in page_numbers if 1 <= number <= doc.page_count})
            for number in wanted:
                try:
                    pixmap = doc.load_page(number - 1).get_pixmap(matrix=matrix, alpha=False)
                    rendered.append((number, pixmap.tobytes("png")))
                except Exception as exc:
                    raise DocumentReadError(f"Cannot render page {number}: {exc}") from exc
        logger.info("Rendered %d pages of %s at scale %s", len(rendered), path.name, scale)
        return rendered


__all__ = ["DocumentReader", "PdfDocumentReader"]
