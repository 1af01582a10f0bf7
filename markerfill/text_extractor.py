"""
Text Run Extractor
==================
Reads the text layer of a PDF using PyMuPDF (fitz).
Every span becomes a TextRun whose origin is converted from MuPDF page
coordinates (top-left origin) to PDF user space (bottom-left origin, y up).
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field

import fitz  # PyMuPDF

from .errors import MalformedDocument
from .models import TextRun

logger = logging.getLogger(__name__)


@dataclass
class ExtractedText:
    """Runs of a whole document plus its page count."""

    page_count: int
    runs: list[TextRun] = field(default_factory=list)


def open_pdf(pdf_bytes: bytes) -> fitz.Document:
    """
    Open PDF bytes for reading.

    Raises:
        MalformedDocument: empty or corrupt stream, encryption, no pages.
    """
    if not pdf_bytes:
        raise MalformedDocument("PDF is empty")

    try:
        doc = fitz.open(stream=pdf_bytes, filetype="pdf")
    except (RuntimeError, ValueError) as e:
        raise MalformedDocument("Cannot open PDF", detail=str(e)) from e

    if doc.needs_pass:
        doc.close()
        raise MalformedDocument("PDF is encrypted")
    if doc.page_count == 0:
        doc.close()
        raise MalformedDocument("PDF has no pages")
    return doc


class TextRunExtractor:
    """Extracts positioned text runs in text-layer order."""

    def extract(self, pdf_bytes: bytes) -> ExtractedText:
        doc = open_pdf(pdf_bytes)
        with doc:
            result = ExtractedText(page_count=doc.page_count)
            for page_index, page in enumerate(doc):
                page_runs = self._extract_page(page, page_index)
                result.runs.extend(page_runs)
                logger.debug(f"Page {page_index}: {len(page_runs)} text runs")

        logger.info(
            f"Extracted {len(result.runs)} text runs from "
            f"{result.page_count} page(s)"
        )
        return result

    def _extract_page(self, page: fitz.Page, page_index: int) -> list[TextRun]:
        to_user_space = ~page.transformation_matrix
        page_dict = page.get_text("dict", flags=fitz.TEXT_PRESERVE_WHITESPACE)

        runs: list[TextRun] = []
        for block in page_dict.get("blocks", []):
            if block.get("type") != 0:  # images
                continue
            for line in block.get("lines", []):
                for span in line.get("spans", []):
                    text = span.get("text", "")
                    if not text:
                        continue
                    origin = fitz.Point(span["origin"]) * to_user_space
                    runs.append(TextRun(
                        page=page_index,
                        text=text,
                        x=origin.x,
                        y=origin.y,
                        font_size=span.get("size"),
                    ))
        return runs
