"""
Manifest Model Tests
====================
Models, manifest helpers and the error taxonomy.
"""

from __future__ import annotations

import json

import pytest
from pydantic import ValidationError

from markerfill.errors import (
    ManifestValidationError,
    MarkerFillError,
    TemplateNotFound,
)
from markerfill.manifest import (
    create_empty,
    ensure_valid,
    find_field,
    manifest_from_json,
    manifest_to_json,
    validate_manifest,
)
from markerfill.models import (
    MANIFEST_VERSION,
    AcroFormField,
    DrawSpec,
    FillOptions,
    Manifest,
    MarkerBox,
    TextField,
)

TEMPLATE_ID = "a" * 64


def text_field(name: str, page: int = 0) -> TextField:
    return TextField(
        name=name,
        marker="msr:",
        page=page,
        marker_box=MarkerBox(x=72, y=742, width=24, height=10),
        draw=DrawSpec(x=102, y=742),
    )


# ═══════════════════════════════════════════════════════════════════════════════
# MODEL TESTS
# ═══════════════════════════════════════════════════════════════════════════════


class TestManifestModel:
    """Test Manifest construction and serialization."""

    def test_create_empty(self):
        manifest = create_empty(TEMPLATE_ID, "form.pdf", 3)
        assert manifest.template_id == TEMPLATE_ID
        assert manifest.file_name == "form.pdf"
        assert manifest.pages == 3
        assert manifest.fields == []
        assert manifest.version == MANIFEST_VERSION
        assert manifest.created_at

    def test_json_uses_camel_case(self):
        manifest = create_empty(TEMPLATE_ID, "form.pdf").model_copy(
            update={"fields": [text_field("msr_daily")]}
        )
        data = manifest.to_json_dict()
        assert data["templateId"] == TEMPLATE_ID
        assert data["fileName"] == "form.pdf"
        assert "createdAt" in data
        assert "storageFileName" not in data

        field = data["fields"][0]
        assert field["strategy"] == "text"
        assert field["markerBox"] == {"x": 72.0, "y": 742.0, "w": 24.0, "h": 10.0}
        assert field["draw"]["font"] == "Helvetica"
        assert field["draw"]["size"] == 10.0

    def test_duplicate_field_names_rejected(self):
        with pytest.raises(ValidationError):
            Manifest(
                template_id=TEMPLATE_ID,
                file_name="form.pdf",
                fields=[text_field("a"), text_field("a", page=1)],
            )

    def test_strategy_discriminator(self):
        manifest = Manifest.model_validate({
            "templateId": TEMPLATE_ID,
            "fileName": "form.pdf",
            "fields": [
                {"name": "client", "strategy": "acroform", "acroformName": "customer"},
                text_field("msr_daily").model_dump(by_alias=True),
            ],
        })
        assert isinstance(manifest.fields[0], AcroFormField)
        assert manifest.fields[0].acroform_name == "customer"
        assert isinstance(manifest.fields[1], TextField)
        assert manifest.field_names == ["client", "msr_daily"]

    def test_fill_options_aliases(self):
        options = FillOptions.model_validate({
            "fontSize": 12,
            "calculationOptions": {"hourlyMultiplier": 4.0},
            "unknown": True,
        })
        assert options.font_size == 12
        assert options.calculation_options.hourly_multiplier == 4.0
        assert options.calculation_options.secondly_divisor == 3.6

    def test_fill_options_reject_bad_font_size(self):
        with pytest.raises(ValidationError):
            FillOptions(font_size=0)


# ═══════════════════════════════════════════════════════════════════════════════
# VALIDATION TESTS
# ═══════════════════════════════════════════════════════════════════════════════


class TestValidateManifest:
    """Test validate_manifest / ensure_valid."""

    def test_valid_instance(self):
        manifest = create_empty(TEMPLATE_ID, "form.pdf").model_copy(
            update={"fields": [text_field("a"), text_field("b")]}
        )
        assert validate_manifest(manifest) is True

    def test_none_is_invalid(self):
        assert validate_manifest(None) is False

    def test_missing_template_id(self):
        assert validate_manifest({"fileName": "form.pdf", "fields": []}) is False

    def test_fields_must_be_list(self):
        raw = {"templateId": TEMPLATE_ID, "fileName": "f.pdf", "fields": "nope"}
        assert validate_manifest(raw) is False

    def test_duplicate_names_in_raw_mapping(self):
        field = text_field("a").model_dump(by_alias=True)
        raw = {"templateId": TEMPLATE_ID, "fileName": "f.pdf", "fields": [field, field]}
        assert validate_manifest(raw) is False

    def test_duplicates_after_mutation(self):
        manifest = create_empty(TEMPLATE_ID, "form.pdf")
        manifest.fields.extend([text_field("a"), text_field("a")])
        assert validate_manifest(manifest) is False

    def test_ensure_valid_lists_errors(self):
        with pytest.raises(ManifestValidationError) as exc_info:
            ensure_valid({"fields": []})
        error = exc_info.value
        assert error.kind == "validation_error"
        assert "templateId is required" in error.errors
        assert "fileName is required" in error.errors

    def test_ensure_valid_builds_model(self):
        raw = create_empty(TEMPLATE_ID, "form.pdf").to_json_dict()
        assert isinstance(ensure_valid(raw), Manifest)


class TestManifestHelpers:
    """Test lookup and JSON helpers."""

    def test_find_field(self):
        manifest = create_empty(TEMPLATE_ID, "form.pdf").model_copy(
            update={"fields": [text_field("a"), text_field("b")]}
        )
        assert find_field(manifest, "b").name == "b"
        assert find_field(manifest, "zzz") is None

    def test_json_round_trip(self):
        manifest = create_empty(TEMPLATE_ID, "form.pdf").model_copy(
            update={"fields": [text_field("msr_daily")]}
        )
        restored = manifest_from_json(manifest_to_json(manifest))
        assert restored == manifest

    def test_invalid_json(self):
        with pytest.raises(ManifestValidationError):
            manifest_from_json("{not json")


# ═══════════════════════════════════════════════════════════════════════════════
# ERROR TESTS
# ═══════════════════════════════════════════════════════════════════════════════


class TestErrors:
    """Test error payloads."""

    def test_to_dict(self):
        error = ManifestValidationError("bad", errors=["x", "y"])
        assert error.to_dict() == {
            "code": "validation_error",
            "message": "bad",
            "details": "x; y",
        }

    def test_not_found_carries_id(self):
        error = TemplateNotFound("missing", template_id=TEMPLATE_ID)
        assert isinstance(error, MarkerFillError)
        assert error.template_id == TEMPLATE_ID
        assert "details" not in error.to_dict()
        assert json.dumps(error.to_dict())
