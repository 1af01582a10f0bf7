"""
Errors
======
Exception taxonomy for detection, registry and fill operations.

Every error carries a ``kind`` discriminator so the HTTP and CLI layers can
report a stable code next to the human-readable message.
"""

from __future__ import annotations

from typing import Optional


class MarkerFillError(Exception):
    """Base class for all markerfill failures."""

    kind = "markerfill_error"

    def __init__(self, message: str, *, detail: Optional[str] = None) -> None:
        super().__init__(message)
        self.message = message
        self.detail = detail

    def to_dict(self) -> dict:
        data = {"code": self.kind, "message": self.message}
        if self.detail:
            data["details"] = self.detail
        return data


class MalformedDocument(MarkerFillError):
    """Input bytes are not a loadable PDF (corrupt, empty, encrypted, no pages)."""

    kind = "malformed_document"


class TemplateLoadError(MarkerFillError):
    """Template bytes exist but cannot be opened against the manifest."""

    kind = "template_load_error"


class TemplateNotFound(MarkerFillError):
    """No manifest or no stored template for a template id."""

    kind = "template_not_found"

    def __init__(self, message: str, *, template_id: Optional[str] = None) -> None:
        super().__init__(message)
        self.template_id = template_id


class FontUnavailable(MarkerFillError):
    """Non-Latin text must be drawn but no Unicode font could be loaded."""

    kind = "font_unavailable"


class MissingFormField(MarkerFillError):
    """An AcroForm field named in the manifest does not exist in the template."""

    kind = "missing_form_field"

    def __init__(self, message: str, *, field_name: str, acroform_name: str) -> None:
        super().__init__(message)
        self.field_name = field_name
        self.acroform_name = acroform_name


class ManifestValidationError(MarkerFillError):
    """A manifest violates its shape or uniqueness invariants."""

    kind = "validation_error"

    def __init__(self, message: str, *, errors: Optional[list[str]] = None) -> None:
        super().__init__(message, detail="; ".join(errors) if errors else None)
        self.errors = list(errors or [])
