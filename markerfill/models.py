"""
Data Models
===========
Pydantic models for template manifests, fields and fill options.
All models serialize to the camelCase JSON stored next to each template.
"""

from __future__ import annotations

from datetime import datetime, timezone
from typing import Annotated, Literal, Optional, Union

from pydantic import BaseModel, ConfigDict, Field, field_validator

MANIFEST_VERSION = 1

DEFAULT_FONT_NAME = "Helvetica"
DEFAULT_FONT_SIZE = 10.0
DEFAULT_GAP = 6.0


def _utc_now() -> str:
    return datetime.now(timezone.utc).isoformat()


# ─── Geometry ─────────────────────────────────────────────────────────────────


class MarkerBox(BaseModel):
    """Estimated bounding box of the marker glyph run (PDF user space)."""

    model_config = ConfigDict(frozen=True, populate_by_name=True)

    x: float
    y: float
    width: float = Field(alias="w", ge=0)
    height: float = Field(alias="h", ge=0)


class DrawSpec(BaseModel):
    """Where and how a value is drawn for a text field."""

    model_config = ConfigDict(frozen=True, populate_by_name=True)

    x: float
    y: float
    gap: float = DEFAULT_GAP
    font: str = DEFAULT_FONT_NAME
    size: float = Field(default=DEFAULT_FONT_SIZE, gt=0)


# ─── Fields ───────────────────────────────────────────────────────────────────


class _FieldBase(BaseModel):
    model_config = ConfigDict(frozen=True, populate_by_name=True)

    name: str = Field(min_length=1)
    marker: str = ""
    page: int = Field(default=0, ge=0)


class TextField(_FieldBase):
    """Value drawn as text right of the detected marker."""

    strategy: Literal["text"] = "text"
    marker_box: MarkerBox = Field(alias="markerBox")
    draw: DrawSpec


class AcroFormField(_FieldBase):
    """Value written into an interactive form field."""

    strategy: Literal["acroform"] = "acroform"
    acroform_name: str = Field(alias="acroformName", min_length=1)


TemplateField = Annotated[
    Union[TextField, AcroFormField],
    Field(discriminator="strategy"),
]


# ─── Manifest ─────────────────────────────────────────────────────────────────


class Manifest(BaseModel):
    """
    Positional field layout of one template, keyed by its content hash.
    Field order is detection order.
    """

    model_config = ConfigDict(populate_by_name=True)

    template_id: str = Field(alias="templateId", min_length=1)
    file_name: str = Field(alias="fileName", min_length=1)
    pages: int = Field(default=1, ge=0)
    fields: list[TemplateField] = Field(default_factory=list)
    created_at: str = Field(alias="createdAt", default_factory=_utc_now)
    version: int = MANIFEST_VERSION
    storage_file_name: Optional[str] = Field(default=None, alias="storageFileName")

    @field_validator("fields")
    @classmethod
    def _names_unique(cls, fields: list) -> list:
        seen: set[str] = set()
        for item in fields:
            if item.name in seen:
                raise ValueError(f"duplicate field name: {item.name}")
            seen.add(item.name)
        return fields

    def to_json_dict(self) -> dict:
        """JSON-ready dict using the on-disk camelCase keys."""
        return self.model_dump(mode="json", by_alias=True, exclude_none=True)

    @property
    def field_names(self) -> list[str]:
        return [f.name for f in self.fields]


# ─── Detection input ──────────────────────────────────────────────────────────


class TextRun(BaseModel):
    """
    A positioned string from a page's text layer.
    ``x``/``y`` is the run origin in PDF user space (y grows upwards).
    """

    model_config = ConfigDict(frozen=True, populate_by_name=True)

    page: int = Field(ge=0)
    text: str
    x: float
    y: float
    font_size: Optional[float] = Field(default=None, alias="fontSize")


# ─── Options ──────────────────────────────────────────────────────────────────


class CalculationOptions(BaseModel):
    """Parameters of the daily → hourly → secondly consumption formula."""

    model_config = ConfigDict(populate_by_name=True, extra="ignore")

    hourly_multiplier: float = Field(default=3.9, alias="hourlyMultiplier", gt=0)
    secondly_divisor: float = Field(default=3.6, alias="secondlyDivisor", gt=0)
    precision: int = Field(default=2, ge=0, le=10)


class FillOptions(BaseModel):
    """Caller-supplied options for upload and generate requests."""

    model_config = ConfigDict(populate_by_name=True, extra="ignore")

    font_size: Optional[float] = Field(default=None, alias="fontSize", gt=0)
    gap: Optional[float] = Field(default=None, ge=0)
    calculation_options: Optional[CalculationOptions] = Field(
        default=None, alias="calculationOptions"
    )
