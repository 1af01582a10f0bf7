"""
Template Engine
===============
Orchestrates the upload and generate flows.

Usage:
    engine = TemplateEngine(EngineConfig(storage_dir="storage"))
    registration = engine.upload(pdf_bytes, "form.pdf")
    pdf = engine.generate(registration.template_id, {"msr_daily": 100.5})

Architecture:
    upload:   bytes → TemplateRegistry (digest) → MarkerDetector (new digests
              only) → Manifest persisted
    generate: templateId → Manifest + template bytes → FieldFiller → bytes
"""

from __future__ import annotations

import logging
import os
from collections.abc import Mapping
from dataclasses import dataclass
from pathlib import Path
from typing import Optional

from .calculations import derive_field_values
from .detector import DetectorConfig, MarkerDetector
from .filler import FieldFiller
from .fonts import DEFAULT_BUNDLED_FONT, FONT_PATH_ENV, FontConfig
from .models import DEFAULT_GAP, FillOptions, Manifest
from .registry import Registration, TemplateRegistry

logger = logging.getLogger(__name__)

LOG_FORMAT = "[%(asctime)s] %(levelname)-8s %(name)s: %(message)s"
LOG_DATE_FORMAT = "%Y-%m-%d %H:%M:%S"


@dataclass
class EngineConfig:
    """Configuration for the template engine."""

    # Storage
    storage_dir: str = "storage"

    # Fonts
    font_path: Optional[str] = None
    bundled_font_path: Optional[str] = str(DEFAULT_BUNDLED_FONT)

    # Detection
    gap: float = DEFAULT_GAP

    # Logging
    log_level: str = "INFO"
    log_file: Optional[str] = None

    @classmethod
    def from_env(cls) -> "EngineConfig":
        return cls(
            storage_dir=os.getenv("MARKERFILL_STORAGE_DIR", "storage"),
            font_path=os.getenv(FONT_PATH_ENV) or None,
            log_level=os.getenv("MARKERFILL_LOG_LEVEL", "INFO"),
            log_file=os.getenv("MARKERFILL_LOG_FILE") or None,
        )

    def font_config(self) -> FontConfig:
        return FontConfig(
            override_path=self.font_path,
            bundled_path=self.bundled_font_path,
        )


class TemplateEngine:
    """
    Composes registry, detector and filler.
    Safe to share between request threads.
    """

    def __init__(self, config: Optional[EngineConfig] = None):
        self.config = config or EngineConfig()
        self._setup_logging()
        self.registry = TemplateRegistry(self.config.storage_dir)

    def _setup_logging(self):
        """Configure logging based on config."""
        log_level = getattr(logging, self.config.log_level.upper(), logging.INFO)

        package_logger = logging.getLogger("markerfill")
        package_logger.setLevel(log_level)

        if not package_logger.handlers:
            console = logging.StreamHandler()
            console.setLevel(log_level)
            console.setFormatter(logging.Formatter(LOG_FORMAT, datefmt=LOG_DATE_FORMAT))
            package_logger.addHandler(console)

        if self.config.log_file:
            log_path = Path(self.config.log_file)
            already = any(
                isinstance(h, logging.FileHandler)
                and os.path.abspath(h.baseFilename) == os.path.abspath(log_path)
                for h in package_logger.handlers
            )
            if not already:
                log_path.parent.mkdir(parents=True, exist_ok=True)
                file_handler = logging.FileHandler(log_path, encoding="utf-8")
                file_handler.setLevel(log_level)
                file_handler.setFormatter(
                    logging.Formatter(LOG_FORMAT, datefmt=LOG_DATE_FORMAT)
                )
                package_logger.addHandler(file_handler)

    # ─── Upload ───────────────────────────────────────────────────────────

    def upload(
        self,
        pdf_bytes: bytes,
        file_name: str,
        options: Optional[FillOptions] = None,
    ) -> Registration:
        """
        Register a template, detecting markers only for unseen content.

        Raises:
            MalformedDocument: If the bytes are not a readable PDF.
        """
        options = options or FillOptions()
        gap = options.gap if options.gap is not None else self.config.gap
        detector = MarkerDetector(DetectorConfig(gap=gap))

        def scan(data: bytes):
            result = detector.scan(data)
            return result.page_count, result.fields

        return self.registry.register(pdf_bytes, file_name, scan)

    def upload_file(self, pdf_path: str, options: Optional[FillOptions] = None) -> Registration:
        path = Path(pdf_path)
        if not path.exists():
            raise FileNotFoundError(f"PDF not found: {path}")
        return self.upload(path.read_bytes(), path.name, options)

    def get_manifest(self, template_id: str) -> Manifest:
        return self.registry.require_manifest(template_id)

    # ─── Generate ─────────────────────────────────────────────────────────

    def generate(
        self,
        template_id: str,
        values: Mapping[str, object],
        options: Optional[FillOptions] = None,
    ) -> bytes:
        """
        Fill a registered template.

        Raises:
            TemplateNotFound: Unknown template id or missing template file.
            TemplateLoadError: Stored bytes do not match the manifest.
            FontUnavailable: Non-Latin values without a Unicode font.
        """
        options = options or FillOptions()
        manifest = self.registry.require_manifest(template_id)
        template_bytes = self.registry.read_template(template_id)

        if options.calculation_options is not None:
            values = derive_field_values(values, options.calculation_options)

        filler = FieldFiller(self.config.font_config())
        return filler.fill(template_bytes, manifest, values, options)
