"""
Shared fixtures: PDFs are built in memory with PyMuPDF.
Coordinates passed to ``make_pdf`` are page space (top-left origin); the
detector reports PDF user space, so y_user = PAGE_HEIGHT - y.
"""

from __future__ import annotations

import fitz  # PyMuPDF
import pytest

from markerfill.engine import EngineConfig, TemplateEngine

PAGE_HEIGHT = 842


def build_pdf(pages, widgets=()):
    """
    pages:   list of pages, each a list of (x, y, text)
    widgets: (page_index, field_name, fitz.Rect) text widgets
    """
    doc = fitz.open()
    for lines in pages:
        page = doc.new_page()
        for x, y, text in lines:
            page.insert_text((x, y), text, fontname="helv", fontsize=10)

    for page_index, field_name, rect in widgets:
        widget = fitz.Widget()
        widget.field_name = field_name
        widget.field_type = fitz.PDF_WIDGET_TYPE_TEXT
        widget.rect = rect
        doc[page_index].add_widget(widget)

    data = doc.tobytes()
    doc.close()
    return data


@pytest.fixture
def make_pdf():
    return build_pdf


@pytest.fixture
def marker_pdf():
    """Two-page template using every standard marker plus one custom marker."""
    return build_pdf([
        [
            (72, 60, "Pump specification"),
            (72, 100, "msr:"),
            (72, 140, "msr:"),
            (72, 180, "n:"),
            (72, 220, "mchr:"),
            (72, 260, "Client: {{ client name }}"),
        ],
        [
            (72, 100, "sh:"),
        ],
    ])


@pytest.fixture
def engine(tmp_path):
    return TemplateEngine(EngineConfig(
        storage_dir=str(tmp_path / "storage"),
        bundled_font_path=None,
        log_level="WARNING",
    ))


def page_text(pdf_bytes: bytes) -> str:
    doc = fitz.open(stream=pdf_bytes, filetype="pdf")
    text = "".join(page.get_text() for page in doc)
    doc.close()
    return text


@pytest.fixture
def read_text():
    return page_text
