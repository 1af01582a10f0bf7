"""
Registry Tests
==============
Content-addressed storage, idempotent registration and migration.
"""

from __future__ import annotations

import hashlib
import json
import logging
import threading
import time
from concurrent.futures import ThreadPoolExecutor

import pytest

from markerfill.errors import ManifestValidationError, TemplateNotFound
from markerfill.manifest import create_empty
from markerfill.registry import (
    TemplateRegistry,
    canonical_template_name,
    compute_template_id,
)

PDF_BYTES = b"%PDF-1.4 registry test payload"


class CountingScan:
    """Scan stub that records how often detection ran."""

    def __init__(self, page_count=1, delay=0.0):
        self.calls = 0
        self.page_count = page_count
        self.delay = delay
        self._lock = threading.Lock()

    def __call__(self, pdf_bytes):
        with self._lock:
            self.calls += 1
        if self.delay:
            time.sleep(self.delay)
        return self.page_count, []


@pytest.fixture
def registry(tmp_path):
    return TemplateRegistry(tmp_path / "storage")


# ═══════════════════════════════════════════════════════════════════════════════
# IDENTITY TESTS
# ═══════════════════════════════════════════════════════════════════════════════


class TestIdentity:
    """Test template ids."""

    def test_sha256_hex(self):
        assert compute_template_id(PDF_BYTES) == hashlib.sha256(PDF_BYTES).hexdigest()
        assert len(compute_template_id(PDF_BYTES)) == 64

    def test_canonical_name(self):
        assert canonical_template_name("abc") == "template_abc.pdf"

    def test_layout_created(self, registry):
        assert registry.manifests_dir.is_dir()
        assert registry.templates_dir.is_dir()


# ═══════════════════════════════════════════════════════════════════════════════
# REGISTRATION TESTS
# ═══════════════════════════════════════════════════════════════════════════════


class TestRegister:
    """Test insert-if-absent registration."""

    def test_first_registration(self, registry):
        scan = CountingScan(page_count=3)
        registration = registry.register(PDF_BYTES, "form.pdf", scan)

        assert registration.created is True
        assert registration.template_id == compute_template_id(PDF_BYTES)
        assert registration.manifest.pages == 3
        assert registration.manifest.file_name == "form.pdf"
        assert scan.calls == 1

        template_file = registry.templates_dir / canonical_template_name(
            registration.template_id
        )
        assert template_file.read_bytes() == PDF_BYTES
        assert registry.manifest_path(registration.template_id).exists()

    def test_second_registration_is_cache_hit(self, registry):
        scan = CountingScan()
        first = registry.register(PDF_BYTES, "form.pdf", scan)
        second = registry.register(PDF_BYTES, "renamed.pdf", scan)

        assert second.created is False
        assert second.template_id == first.template_id
        assert second.manifest == first.manifest
        assert second.manifest.file_name == "form.pdf"
        assert scan.calls == 1

    def test_different_bytes_different_ids(self, registry):
        scan = CountingScan()
        a = registry.register(PDF_BYTES, "a.pdf", scan)
        b = registry.register(PDF_BYTES + b" ", "b.pdf", scan)
        assert a.template_id != b.template_id
        assert scan.calls == 2

    def test_invalid_stored_manifest_is_rebuilt(self, registry):
        scan = CountingScan()
        template_id = registry.register(PDF_BYTES, "form.pdf", scan).template_id
        registry.manifest_path(template_id).write_text("{broken", encoding="utf-8")

        again = registry.register(PDF_BYTES, "form.pdf", scan)
        assert again.created is True
        assert scan.calls == 2

    def test_scan_failure_stores_nothing(self, registry):
        def failing_scan(pdf_bytes):
            raise RuntimeError("boom")

        with pytest.raises(RuntimeError):
            registry.register(PDF_BYTES, "form.pdf", failing_scan)
        assert list(registry.manifests_dir.iterdir()) == []
        assert list(registry.templates_dir.iterdir()) == []

    def test_concurrent_registration_scans_once(self, registry):
        scan = CountingScan(delay=0.05)

        with ThreadPoolExecutor(max_workers=8) as pool:
            results = list(pool.map(
                lambda _: registry.register(PDF_BYTES, "form.pdf", scan), range(8)
            ))

        assert scan.calls == 1
        assert len({r.template_id for r in results}) == 1
        assert sum(r.created for r in results) == 1
        assert len(list(registry.manifests_dir.glob("*.json"))) == 1


# ═══════════════════════════════════════════════════════════════════════════════
# MANIFEST STORAGE TESTS
# ═══════════════════════════════════════════════════════════════════════════════


class TestManifestStorage:
    """Test manifest reads and writes."""

    def test_get_unknown(self, registry):
        assert registry.get_manifest("0" * 64) is None

    def test_get_rejects_non_hex_id(self, registry):
        assert registry.get_manifest("../../etc/passwd") is None
        assert registry.get_manifest("") is None

    def test_require_unknown(self, registry):
        with pytest.raises(TemplateNotFound) as exc_info:
            registry.require_manifest("0" * 64)
        assert exc_info.value.template_id == "0" * 64

    def test_save_rejects_non_hex_id(self, registry):
        with pytest.raises(ManifestValidationError):
            registry.save_manifest(create_empty("not-a-digest", "form.pdf"))

    def test_saved_json_is_camel_case(self, registry):
        template_id = compute_template_id(PDF_BYTES)
        path = registry.save_manifest(create_empty(template_id, "form.pdf"))
        raw = json.loads(path.read_text(encoding="utf-8"))
        assert raw["templateId"] == template_id
        assert raw["fileName"] == "form.pdf"
        assert raw["fields"] == []

    def test_list_manifests_skips_invalid(self, registry):
        registry.register(PDF_BYTES, "form.pdf", CountingScan())
        (registry.manifests_dir / ("f" * 64 + ".json")).write_text("[]", encoding="utf-8")
        assert len(registry.list_manifests()) == 1


# ═══════════════════════════════════════════════════════════════════════════════
# TEMPLATE LOOKUP TESTS
# ═══════════════════════════════════════════════════════════════════════════════


class TestTemplateLookup:
    """Test template file resolution and fallbacks."""

    def test_canonical(self, registry):
        template_id = registry.register(PDF_BYTES, "form.pdf", CountingScan()).template_id
        assert registry.read_template(template_id) == PDF_BYTES

    def test_name_containing_digest(self, registry, caplog):
        template_id = "1" * 64
        legacy = registry.templates_dir / f"upload_{template_id}.pdf"
        legacy.write_bytes(PDF_BYTES)

        with caplog.at_level(logging.WARNING, logger="markerfill.registry"):
            assert registry.resolve_template_path(template_id) == legacy
        assert "non-canonical" in caplog.text

    def test_any_pdf_fallback(self, registry, caplog):
        other = registry.templates_dir / "something.pdf"
        other.write_bytes(PDF_BYTES)

        with caplog.at_level(logging.WARNING, logger="markerfill.registry"):
            assert registry.resolve_template_path("2" * 64) == other
        assert "falling back" in caplog.text

    def test_nothing_stored(self, registry):
        with pytest.raises(TemplateNotFound):
            registry.resolve_template_path("3" * 64)

    def test_invalid_id(self, registry):
        with pytest.raises(TemplateNotFound):
            registry.resolve_template_path("zz")


# ═══════════════════════════════════════════════════════════════════════════════
# MIGRATION TESTS
# ═══════════════════════════════════════════════════════════════════════════════


class TestMigration:
    """Test renaming legacy template files."""

    def test_renames_and_records_storage_name(self, registry):
        template_id = compute_template_id(PDF_BYTES)
        registry.save_manifest(create_empty(template_id, "legacy.pdf"))
        (registry.templates_dir / "legacy.pdf").write_bytes(PDF_BYTES)

        report = registry.migrate()

        assert report.renamed_files == 1
        assert report.updated_manifests == 1
        assert report.warnings == 0
        canonical = registry.templates_dir / canonical_template_name(template_id)
        assert canonical.read_bytes() == PDF_BYTES
        assert not (registry.templates_dir / "legacy.pdf").exists()

        manifest = registry.get_manifest(template_id)
        assert manifest.storage_file_name == canonical.name

    def test_idempotent(self, registry):
        registry.register(PDF_BYTES, "form.pdf", CountingScan())
        registry.migrate()
        report = registry.migrate()
        assert report.renamed_files == 0
        assert report.updated_manifests == 0

    def test_fields_untouched(self, registry, marker_pdf):
        from markerfill.detector import MarkerDetector

        def scan(data):
            result = MarkerDetector().scan(data)
            return result.page_count, result.fields

        registration = registry.register(marker_pdf, "form.pdf", scan)
        registry.migrate()
        assert registry.get_manifest(registration.template_id).fields == (
            registration.manifest.fields
        )

    def test_missing_file_is_warning(self, registry):
        registry.save_manifest(create_empty("4" * 64, "gone.pdf"))
        report = registry.migrate()
        assert report.warnings == 1
        assert report.updated_manifests == 1
