"""
Font Resolution
===============
Chooses the font used for drawn values.

Resolution order:
    1. injected font buffer / explicit override path
    2. bundled Unicode font
    3. built-in Helvetica (Latin-1 only)

The configuration is an explicit value passed to the filler and resolved on
every fill call; nothing is cached at module level.
"""

from __future__ import annotations

import logging
import os
from dataclasses import dataclass
from pathlib import Path
from typing import Optional

import fitz  # PyMuPDF

logger = logging.getLogger(__name__)

FONT_PATH_ENV = "MARKERFILL_FONT_PATH"

DEFAULT_BUNDLED_FONT = Path(__file__).parent / "assets" / "fonts" / "DejaVuSans.ttf"

BUILTIN_FONT = "helv"

# Highest code point the built-in font can encode.
LATIN1_MAX = 0x00FF


@dataclass(frozen=True)
class FontConfig:
    """Where to look for an embeddable Unicode font."""

    override_path: Optional[str] = None
    bundled_path: Optional[str] = str(DEFAULT_BUNDLED_FONT)
    font_buffer: Optional[bytes] = None

    @classmethod
    def from_env(cls, bundled_path: Optional[str] = None) -> "FontConfig":
        return cls(
            override_path=os.getenv(FONT_PATH_ENV) or None,
            bundled_path=bundled_path or str(DEFAULT_BUNDLED_FONT),
        )


@dataclass(frozen=True)
class ResolvedFont:
    font: fitz.Font
    source: str
    unicode: bool

    @property
    def name(self) -> str:
        return self.font.name


def needs_unicode(text: str) -> bool:
    """True when text has characters the built-in font cannot encode."""
    return any(ord(ch) > LATIN1_MAX for ch in text)


def resolve_font(config: Optional[FontConfig] = None) -> ResolvedFont:
    """Load the first available font according to the resolution order."""
    config = config or FontConfig()

    if config.font_buffer:
        try:
            font = fitz.Font(fontbuffer=config.font_buffer)
            logger.debug(f"Using injected font {font.name}")
            return ResolvedFont(font=font, source="injected", unicode=True)
        except RuntimeError as e:
            logger.warning(f"Injected font buffer could not be loaded: {e}")

    for source, path in (("override", config.override_path),
                         ("bundled", config.bundled_path)):
        font = _load_font_file(path, source)
        if font is not None:
            return ResolvedFont(font=font, source=source, unicode=True)

    logger.info("No Unicode font available; falling back to built-in Helvetica")
    return ResolvedFont(font=fitz.Font(BUILTIN_FONT), source="builtin", unicode=False)


def _load_font_file(path: Optional[str], source: str) -> Optional[fitz.Font]:
    if not path:
        return None
    if not Path(path).is_file():
        logger.debug(f"{source.title()} font not found: {path}")
        return None
    try:
        font = fitz.Font(fontfile=str(path))
    except RuntimeError as e:
        logger.warning(f"{source.title()} font {path} could not be loaded: {e}")
        return None
    logger.debug(f"Using {source} font {font.name} from {path}")
    return font
