"""
Manifest Operations
===================
Pure functions over manifests: construction, validation, lookup and JSON
conversion. No I/O happens here; the registry owns persistence.
"""

from __future__ import annotations

import json
from collections.abc import Mapping
from typing import Optional, Union

from pydantic import ValidationError

from .errors import ManifestValidationError
from .models import MANIFEST_VERSION, Manifest, TemplateField


def create_empty(template_id: str, file_name: str, page_count: int = 1) -> Manifest:
    """Build a manifest with no fields."""
    return Manifest(
        template_id=template_id,
        file_name=file_name,
        pages=page_count,
        fields=[],
        version=MANIFEST_VERSION,
    )


def validate_manifest(manifest: Union[Manifest, Mapping, None]) -> bool:
    """
    Check the manifest invariants.

    Accepts a Manifest or the raw JSON mapping read from disk. True when
    ``templateId`` and ``fileName`` are present, ``fields`` is a sequence of
    well-formed fields and no field name repeats.
    """
    return not _collect_errors(manifest)


def ensure_valid(manifest: Union[Manifest, Mapping, None]) -> Manifest:
    """Return a validated Manifest or raise ManifestValidationError."""
    errors = _collect_errors(manifest)
    if errors:
        raise ManifestValidationError("Manifest failed validation", errors=errors)
    if isinstance(manifest, Manifest):
        return manifest
    return Manifest.model_validate(manifest)


def find_field(manifest: Manifest, name: str) -> Optional[TemplateField]:
    for item in manifest.fields:
        if item.name == name:
            return item
    return None


def manifest_to_json(manifest: Manifest) -> str:
    return json.dumps(manifest.to_json_dict(), indent=2, ensure_ascii=False)


def manifest_from_json(text: str) -> Manifest:
    try:
        raw = json.loads(text)
    except json.JSONDecodeError as exc:
        raise ManifestValidationError(
            "Manifest is not valid JSON", errors=[str(exc)]
        ) from exc
    return ensure_valid(raw)


# ─── Helpers ──────────────────────────────────────────────────────────────────


def _collect_errors(manifest) -> list[str]:
    if manifest is None:
        return ["manifest is missing"]

    if isinstance(manifest, Manifest):
        # Instances can be mutated after construction, so re-check here.
        errors = []
        if not manifest.template_id:
            errors.append("templateId is required")
        if not manifest.file_name:
            errors.append("fileName is required")
        if not isinstance(manifest.fields, list):
            errors.append("fields must be a list")
            return errors
        errors.extend(_duplicate_name_errors([f.name for f in manifest.fields]))
        return errors

    if not isinstance(manifest, Mapping):
        return ["manifest must be an object"]

    errors = []
    if not manifest.get("templateId"):
        errors.append("templateId is required")
    if not manifest.get("fileName"):
        errors.append("fileName is required")
    fields = manifest.get("fields")
    if not isinstance(fields, list):
        errors.append("fields must be a list")
        return errors
    names = [f.get("name") for f in fields if isinstance(f, Mapping)]
    errors.extend(_duplicate_name_errors(names))
    if errors:
        return errors

    try:
        Manifest.model_validate(manifest)
    except ValidationError as exc:
        errors.extend(
            f"{'.'.join(str(p) for p in err['loc'])}: {err['msg']}"
            for err in exc.errors()
        )
    return errors


def _duplicate_name_errors(names: list) -> list[str]:
    seen: set = set()
    dupes: list = []
    for name in names:
        if name in seen and name not in dupes:
            dupes.append(name)
        seen.add(name)
    return [f"duplicate field name: {name}" for name in dupes]
