"""
Template Registry
=================
Content-addressed filesystem store for templates and their manifests.

Directory Layout:
    <base_dir>/
    ├── manifests/   # <templateId>.json
    └── templates/   # template_<templateId>.pdf

The template id is the hex SHA-256 of the PDF bytes, so identical uploads
always resolve to the same manifest. Registration is insert-if-absent and
serialized per digest.
"""

from __future__ import annotations

import hashlib
import json
import logging
import os
import re
import threading
from dataclasses import dataclass
from pathlib import Path
from typing import Callable, Optional

from .errors import ManifestValidationError, TemplateNotFound
from .manifest import create_empty, ensure_valid, validate_manifest
from .models import Manifest, TextField

logger = logging.getLogger(__name__)

_TEMPLATE_ID_RE = re.compile(r"^[0-9a-f]{64}$")

# scan(pdf_bytes) -> (page_count, fields)
ScanFunc = Callable[[bytes], tuple[int, list[TextField]]]


def compute_template_id(pdf_bytes: bytes) -> str:
    """Hex SHA-256 digest of the template bytes."""
    return hashlib.sha256(pdf_bytes).hexdigest()


def canonical_template_name(template_id: str) -> str:
    return f"template_{template_id}.pdf"


@dataclass
class Registration:
    template_id: str
    manifest: Manifest
    created: bool


@dataclass
class MigrationReport:
    updated_manifests: int = 0
    renamed_files: int = 0
    warnings: int = 0


class TemplateRegistry:
    """Stores template bytes and manifests keyed by content hash."""

    def __init__(self, base_dir: str | Path):
        self.base_dir = Path(base_dir)
        self.manifests_dir = self.base_dir / "manifests"
        self.templates_dir = self.base_dir / "templates"
        self.manifests_dir.mkdir(parents=True, exist_ok=True)
        self.templates_dir.mkdir(parents=True, exist_ok=True)

        self._locks: dict[str, threading.Lock] = {}
        self._locks_guard = threading.Lock()

    # ─── Registration ─────────────────────────────────────────────────────

    def register(self, pdf_bytes: bytes, file_name: str, scan: ScanFunc) -> Registration:
        """
        Return the manifest for these bytes, detecting it only when needed.

        A valid stored manifest is a cache hit and ``scan`` is not called.
        Concurrent registrations of the same bytes run one at a time.
        """
        template_id = compute_template_id(pdf_bytes)

        with self._lock_for(template_id):
            existing = self.get_manifest(template_id)
            if existing is not None:
                logger.info(f"Template {template_id[:12]} already registered")
                self.save_template(template_id, pdf_bytes)
                return Registration(template_id, existing, created=False)

            page_count, fields = scan(pdf_bytes)
            manifest = create_empty(template_id, file_name, page_count)
            manifest = manifest.model_copy(update={"fields": list(fields)})

            self.save_template(template_id, pdf_bytes)
            self.save_manifest(manifest)
            logger.info(
                f"Registered template {template_id[:12]} ({file_name}, "
                f"{page_count} page(s), {len(fields)} field(s))"
            )
            return Registration(template_id, manifest, created=True)

    def _lock_for(self, template_id: str) -> threading.Lock:
        with self._locks_guard:
            lock = self._locks.get(template_id)
            if lock is None:
                lock = self._locks[template_id] = threading.Lock()
            return lock

    # ─── Manifests ────────────────────────────────────────────────────────

    def manifest_path(self, template_id: str) -> Path:
        return self.manifests_dir / f"{template_id}.json"

    def get_manifest(self, template_id: str) -> Optional[Manifest]:
        """Stored manifest, or None when missing or invalid."""
        if not _TEMPLATE_ID_RE.match(template_id or ""):
            return None
        path = self.manifest_path(template_id)
        if not path.exists():
            return None

        try:
            raw = json.loads(path.read_text(encoding="utf-8"))
        except (OSError, json.JSONDecodeError) as e:
            logger.warning(f"Unreadable manifest {path.name}: {e}")
            return None

        if not validate_manifest(raw):
            logger.warning(f"Invalid manifest {path.name}; ignoring it")
            return None
        return Manifest.model_validate(raw)

    def require_manifest(self, template_id: str) -> Manifest:
        manifest = self.get_manifest(template_id)
        if manifest is None:
            raise TemplateNotFound(
                f"Template {template_id} not found", template_id=template_id
            )
        return manifest

    def save_manifest(self, manifest: Manifest) -> Path:
        """
        Validate and atomically write a manifest.

        Raises:
            ManifestValidationError: If the manifest breaks its invariants.
        """
        manifest = ensure_valid(manifest)
        if not _TEMPLATE_ID_RE.match(manifest.template_id):
            raise ManifestValidationError(
                "Manifest templateId is not a SHA-256 hex digest",
                errors=[f"templateId: {manifest.template_id!r}"],
            )
        path = self.manifest_path(manifest.template_id)
        payload = json.dumps(manifest.to_json_dict(), indent=2, ensure_ascii=False)
        _atomic_write(path, payload.encode("utf-8"))
        return path

    def list_manifests(self) -> list[Manifest]:
        manifests = []
        for path in sorted(self.manifests_dir.glob("*.json")):
            manifest = self.get_manifest(path.stem)
            if manifest is not None:
                manifests.append(manifest)
        return manifests

    # ─── Templates ────────────────────────────────────────────────────────

    def save_template(self, template_id: str, pdf_bytes: bytes) -> Path:
        path = self.templates_dir / canonical_template_name(template_id)
        if not path.exists():
            _atomic_write(path, pdf_bytes)
            logger.debug(f"Stored template bytes: {path.name}")
        return path

    def resolve_template_path(self, template_id: str) -> Path:
        """
        Locate the stored template file.

        Tries the canonical name, then any PDF whose name contains the
        digest, then any PDF at all. Fallbacks are logged.
        """
        if not _TEMPLATE_ID_RE.match(template_id or ""):
            raise TemplateNotFound(
                f"Invalid template id: {template_id!r}", template_id=template_id
            )

        canonical = self.templates_dir / canonical_template_name(template_id)
        if canonical.exists():
            return canonical

        pdfs = sorted(
            p for p in self.templates_dir.iterdir()
            if p.is_file() and p.suffix.lower() == ".pdf"
        )
        for candidate in pdfs:
            if template_id in candidate.name:
                logger.warning(
                    f"Template {template_id[:12]} found under non-canonical "
                    f"name {candidate.name}"
                )
                return candidate

        if pdfs:
            logger.warning(
                f"No file for template {template_id[:12]}; falling back to "
                f"{pdfs[0].name}"
            )
            return pdfs[0]

        raise TemplateNotFound(
            f"Template file for {template_id} not found", template_id=template_id
        )

    def read_template(self, template_id: str) -> bytes:
        return self.resolve_template_path(template_id).read_bytes()

    # ─── Migration ────────────────────────────────────────────────────────

    def migrate(self) -> MigrationReport:
        """
        Rename stored templates to ``template_<templateId>.pdf`` and record
        ``storageFileName`` in their manifests. Fields are never touched.
        """
        report = MigrationReport()
        hash_index: dict[str, Path] = {}
        for path in sorted(self.templates_dir.glob("*.pdf")):
            try:
                hash_index.setdefault(compute_template_id(path.read_bytes()), path)
            except OSError as e:
                logger.warning(f"Cannot hash {path.name}: {e}")
                report.warnings += 1

        for manifest_file in sorted(self.manifests_dir.glob("*.json")):
            try:
                raw = json.loads(manifest_file.read_text(encoding="utf-8"))
            except (OSError, json.JSONDecodeError) as e:
                logger.warning(f"Cannot read {manifest_file.name}: {e}")
                report.warnings += 1
                continue

            template_id = raw.get("templateId") if isinstance(raw, dict) else None
            if not template_id:
                logger.warning(f"Manifest without templateId: {manifest_file.name}")
                report.warnings += 1
                continue

            expected = canonical_template_name(template_id)
            current = hash_index.get(template_id)
            if current is None:
                logger.warning(f"No stored file matches template {template_id[:12]}")
                report.warnings += 1
            elif current.name != expected:
                current.rename(self.templates_dir / expected)
                logger.info(f"Renamed {current.name} -> {expected}")
                report.renamed_files += 1

            if raw.get("storageFileName") != expected:
                raw["storageFileName"] = expected
                _atomic_write(
                    manifest_file,
                    json.dumps(raw, indent=2, ensure_ascii=False).encode("utf-8"),
                )
                report.updated_manifests += 1

        logger.info(
            f"Migration complete: {report.updated_manifests} manifest(s) updated, "
            f"{report.renamed_files} file(s) renamed, {report.warnings} warning(s)"
        )
        return report


def _atomic_write(path: Path, data: bytes) -> None:
    path.parent.mkdir(parents=True, exist_ok=True)
    temp_path = path.with_suffix(f"{path.suffix}.{os.getpid()}.{threading.get_ident()}.tmp")
    temp_path.write_bytes(data)
    temp_path.replace(path)
