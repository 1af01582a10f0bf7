"""
Field Filler
============
Stamps values into a template according to its manifest.

Text fields are drawn with a PyMuPDF TextWriter at the manifest's draw
anchor. AcroForm fields are written through the page widgets. A missing
interactive field is logged and skipped; structural problems abort the fill
and no partial PDF is returned.
"""

from __future__ import annotations

import logging
from collections.abc import Mapping
from typing import Optional

import fitz  # PyMuPDF

from .errors import FontUnavailable, MissingFormField, TemplateLoadError
from .fonts import FontConfig, ResolvedFont, needs_unicode, resolve_font
from .models import AcroFormField, FillOptions, Manifest, TemplateField, TextField

logger = logging.getLogger(__name__)

TEXT_COLOR = (0, 0, 0)


def stringify(value) -> str:
    """Render a scalar value as drawn text."""
    if isinstance(value, bool):
        return "true" if value else "false"
    if isinstance(value, float) and value.is_integer():
        return str(int(value))
    return str(value)


class FieldFiller:
    """
    Fills templates. The font configuration is resolved on each call, so one
    filler can serve many concurrent fills.
    """

    def __init__(self, font_config: Optional[FontConfig] = None):
        self.font_config = font_config or FontConfig()

    def fill(
        self,
        template_bytes: bytes,
        manifest: Manifest,
        values: Mapping[str, object],
        options: Optional[FillOptions] = None,
    ) -> bytes:
        """
        Fill a template and return the new PDF bytes.

        Args:
            template_bytes: Raw template PDF; never modified.
            manifest: Field layout detected for this template.
            values: Field name → scalar. Extra keys are ignored, fields with
                no value are skipped.
            options: Optional font size override.

        Raises:
            TemplateLoadError: Template unreadable or page count mismatch.
            FontUnavailable: Non-Latin text with no Unicode font available.
        """
        options = options or FillOptions()
        populated = self._populated_fields(manifest, values)

        font = resolve_font(self.font_config)
        self._check_font(font, populated)

        doc = self._open_template(template_bytes, manifest)
        with doc:
            drawn = 0
            written = 0
            for field, text in populated:
                if isinstance(field, TextField):
                    if self._draw_text(doc, field, text, font, options):
                        drawn += 1
                elif isinstance(field, AcroFormField):
                    try:
                        self._fill_acroform(doc, field, text)
                        written += 1
                    except MissingFormField as e:
                        logger.warning(e.message)

            result = doc.tobytes(garbage=1, deflate=True)

        logger.info(
            f"Filled template {manifest.template_id[:12]}: "
            f"{drawn} drawn, {written} form field(s), "
            f"{len(manifest.fields) - len(populated)} skipped"
        )
        return result

    # ─── Steps ────────────────────────────────────────────────────────────

    def _populated_fields(
        self, manifest: Manifest, values: Mapping[str, object]
    ) -> list[tuple[TemplateField, str]]:
        populated = []
        for field in manifest.fields:
            value = values.get(field.name)
            if value is None:
                continue
            populated.append((field, stringify(value)))
        return populated

    def _check_font(
        self, font: ResolvedFont, populated: list[tuple[TemplateField, str]]
    ) -> None:
        if font.unicode:
            return
        for field, text in populated:
            if isinstance(field, TextField) and needs_unicode(text):
                raise FontUnavailable(
                    f"Field '{field.name}' contains characters outside Latin-1 "
                    f"but no Unicode font is configured",
                    detail="set MARKERFILL_FONT_PATH or install the bundled font",
                )

    def _open_template(self, template_bytes: bytes, manifest: Manifest) -> fitz.Document:
        if not template_bytes:
            raise TemplateLoadError("Template is empty")
        try:
            doc = fitz.open(stream=template_bytes, filetype="pdf")
        except (RuntimeError, ValueError) as e:
            raise TemplateLoadError("Cannot open template", detail=str(e)) from e

        if doc.needs_pass:
            doc.close()
            raise TemplateLoadError("Template is encrypted")
        if doc.page_count != manifest.pages:
            page_count = doc.page_count
            doc.close()
            raise TemplateLoadError(
                f"Template has {page_count} page(s), manifest expects {manifest.pages}"
            )
        return doc

    def _draw_text(
        self,
        doc: fitz.Document,
        field: TextField,
        text: str,
        font: ResolvedFont,
        options: FillOptions,
    ) -> bool:
        if field.page >= doc.page_count:
            logger.warning(
                f"Field '{field.name}' points at page {field.page}, "
                f"template has {doc.page_count}; skipped"
            )
            return False

        page = doc[field.page]
        size = options.font_size or field.draw.size
        # Manifest coordinates are PDF user space; the writer wants page space.
        point = fitz.Point(field.draw.x, field.draw.y) * page.transformation_matrix

        writer = fitz.TextWriter(page.rect)
        writer.append(point, text, font=font.font, fontsize=size)
        writer.write_text(page, color=TEXT_COLOR)
        logger.debug(f"Drew '{field.name}' on page {field.page} at {point}")
        return True

    def _fill_acroform(self, doc: fitz.Document, field: AcroFormField, text: str) -> None:
        for page in doc:
            for widget in page.widgets():
                if widget.field_name != field.acroform_name:
                    continue
                widget.field_value = text
                widget.update()
                logger.debug(f"Set form field '{field.acroform_name}'")
                return

        raise MissingFormField(
            f"Form field '{field.acroform_name}' for '{field.name}' "
            f"not found in template; skipped",
            field_name=field.name,
            acroform_name=field.acroform_name,
        )


def fill(
    template_bytes: bytes,
    manifest: Manifest,
    values: Mapping[str, object],
    options: Optional[FillOptions] = None,
    font_config: Optional[FontConfig] = None,
) -> bytes:
    """Functional entry point around FieldFiller."""
    return FieldFiller(font_config).fill(template_bytes, manifest, values, options)
