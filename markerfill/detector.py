"""
Marker Detector
===============
Deterministic scan of a PDF text layer for fill markers.

Two marker syntaxes are recognized:
    - standard tokens (``msr:``, ``n:``, ``sh:``, ``mchr:``) occupying a whole
      line, bound to field names through MARKER_BINDINGS
    - custom ``{{ name }}`` markers anywhere in a line, bound to ``name``

Pipeline:
    TextRuns → lines (rounded baseline) → raw hits → reading order →
    binding → TextFields
"""

from __future__ import annotations

import logging
import math
import re
from dataclasses import dataclass
from enum import Enum
from functools import cmp_to_key
from types import MappingProxyType
from typing import Mapping, Optional

from .models import (
    DEFAULT_FONT_NAME,
    DEFAULT_FONT_SIZE,
    DEFAULT_GAP,
    DrawSpec,
    MarkerBox,
    TextField,
    TextRun,
)
from .text_extractor import TextRunExtractor

logger = logging.getLogger(__name__)


# ─── Marker Vocabulary ────────────────────────────────────────────────────────


class StandardMarker(str, Enum):
    """Fixed marker tokens."""
    MSR = "msr:"
    N = "n:"
    SH = "sh:"
    MCHR = "mchr:"


class FieldName(str, Enum):
    """Field names bound to standard markers."""
    MSR_DAILY = "msr_daily"
    MSR_SECONDLY = "msr_secondly"
    PUMP_MODEL = "pump_model"
    PROJECT_CODE = "project_code"
    MAX_HOURLY = "max_hourly"


# Nth occurrence of a token binds to the Nth name; extra occurrences are dropped.
MARKER_BINDINGS: Mapping[StandardMarker, tuple[FieldName, ...]] = MappingProxyType({
    StandardMarker.MSR: (FieldName.MSR_DAILY, FieldName.MSR_SECONDLY),
    StandardMarker.N: (FieldName.PUMP_MODEL,),
    StandardMarker.SH: (FieldName.PROJECT_CODE,),
    StandardMarker.MCHR: (FieldName.MAX_HOURLY,),
})


def _check_bindings(bindings: Mapping[StandardMarker, tuple[FieldName, ...]]) -> None:
    missing = [m.value for m in StandardMarker if not bindings.get(m)]
    if missing:
        raise ValueError(f"Markers without bound field names: {missing}")
    bound = [name for names in bindings.values() for name in names]
    if len(bound) != len(set(bound)):
        raise ValueError("A field name is bound to more than one marker slot")


_check_bindings(MARKER_BINDINGS)

_STANDARD_TOKENS = {m.value: m for m in StandardMarker}

# ─── Custom Marker Pattern ────────────────────────────────────────────────────

# "{{ name }}": the captured name is validated separately so that the length
# limit applies to the trimmed name.
CUSTOM_MARKER_PATTERN = re.compile(r"\{\{([^{}]*)\}\}")

# Letters (any script, so Cyrillic too), digits, "_", ".", "-", inner spaces.
CUSTOM_NAME_PATTERN = re.compile(r"[\w.\-]+(?:\s+[\w.\-]+)*")

CUSTOM_NAME_MAX_LENGTH = 64


def parse_custom_name(raw: str) -> Optional[str]:
    """Trimmed marker name, or None when it is not an acceptable name."""
    name = raw.strip()
    if not name or len(name) > CUSTOM_NAME_MAX_LENGTH:
        return None
    if not CUSTOM_NAME_PATTERN.fullmatch(name):
        return None
    return name


# ─── Configuration ────────────────────────────────────────────────────────────


@dataclass(frozen=True)
class DetectorConfig:
    """Geometry constants of the coarse layout model."""

    glyph_width: float = 6.0
    marker_height: float = 10.0
    gap: float = DEFAULT_GAP
    font_name: str = DEFAULT_FONT_NAME
    font_size: float = DEFAULT_FONT_SIZE
    row_tolerance: float = 5.0


# ─── Intermediate Structures ──────────────────────────────────────────────────


@dataclass
class TextLine:
    """Adjacent runs sharing a rounded baseline."""
    page: int
    baseline: int
    x: float
    y: float
    text: str


@dataclass(frozen=True)
class MarkerHit:
    """
    A recognized marker before binding.
    ``x`` is the sort anchor; ``box_x`` is the left edge of the marker box.
    """
    page: int
    marker: str
    x: float
    y: float
    box_x: float
    custom_name: Optional[str] = None


@dataclass
class DetectionResult:
    page_count: int
    fields: list[TextField]


# ─── Detector ─────────────────────────────────────────────────────────────────


class MarkerDetector:
    """
    Turns PDF bytes into an ordered list of text-strategy fields.
    Holds no state between calls.
    """

    def __init__(
        self,
        config: Optional[DetectorConfig] = None,
        extractor: Optional[TextRunExtractor] = None,
    ):
        self.config = config or DetectorConfig()
        self.extractor = extractor or TextRunExtractor()

    def detect(self, pdf_bytes: bytes) -> list[TextField]:
        """
        Detect marker fields in a PDF.

        Raises:
            MalformedDocument: If the bytes cannot be parsed as a PDF.
        """
        return self.scan(pdf_bytes).fields

    def scan(self, pdf_bytes: bytes) -> DetectionResult:
        """Like detect(), also reporting the page count."""
        extracted = self.extractor.extract(pdf_bytes)
        fields = self.detect_runs(extracted.runs)
        return DetectionResult(page_count=extracted.page_count, fields=fields)

    def detect_runs(self, runs: list[TextRun]) -> list[TextField]:
        """Run grouping, recognition, ordering and binding over text runs."""
        lines = group_lines(runs)
        hits = self._find_standard_hits(lines) + self._find_custom_hits(lines)
        ordered = sort_hits(hits, self.config.row_tolerance)
        fields = self._bind(ordered)

        logger.info(
            f"Detected {len(fields)} field(s) from {len(hits)} marker hit(s) "
            f"in {len(lines)} line(s)"
        )
        return fields

    # ─── Recognition ──────────────────────────────────────────────────────

    def _find_standard_hits(self, lines: list[TextLine]) -> list[MarkerHit]:
        hits = []
        for line in lines:
            token = line.text.strip()
            if token not in _STANDARD_TOKENS:
                continue
            hits.append(MarkerHit(
                page=line.page,
                marker=token,
                x=line.x,
                y=line.y,
                box_x=line.x,
            ))
        return hits

    def _find_custom_hits(self, lines: list[TextLine]) -> list[MarkerHit]:
        hits = []
        seen: set[str] = set()
        glyph = self.config.glyph_width

        for line in lines:
            for match in CUSTOM_MARKER_PATTERN.finditer(line.text):
                name = parse_custom_name(match.group(1))
                if name is None:
                    logger.debug(f"Ignoring malformed custom marker {match.group(0)!r}")
                    continue
                if name in seen:
                    logger.debug(
                        f"Dropping repeated custom marker '{name}' "
                        f"on page {line.page}"
                    )
                    continue
                seen.add(name)

                marker = match.group(0)
                # Offset estimate: characters up to the end of "}}" times a
                # fixed glyph width. No real font metrics are consulted.
                anchor_x = line.x + match.end() * glyph
                hits.append(MarkerHit(
                    page=line.page,
                    marker=marker,
                    x=anchor_x,
                    y=line.y,
                    box_x=anchor_x - len(marker) * glyph,
                    custom_name=name,
                ))
        return hits

    # ─── Binding ──────────────────────────────────────────────────────────

    def _bind(self, hits: list[MarkerHit]) -> list[TextField]:
        counters: dict[str, int] = {}
        fields: list[TextField] = []
        names: set[str] = set()

        for hit in hits:
            if hit.custom_name is not None:
                name = hit.custom_name
            else:
                binding = MARKER_BINDINGS[_STANDARD_TOKENS[hit.marker]]
                occurrence = counters.get(hit.marker, 0)
                counters[hit.marker] = occurrence + 1
                if occurrence >= len(binding):
                    logger.debug(
                        f"Dropping occurrence {occurrence + 1} of '{hit.marker}' "
                        f"(only {len(binding)} binding(s))"
                    )
                    continue
                name = binding[occurrence].value

            if name in names:
                logger.warning(
                    f"Field '{name}' already bound; ignoring marker "
                    f"{hit.marker!r} on page {hit.page}"
                )
                continue
            names.add(name)
            fields.append(self._build_field(name, hit))

        return fields

    def _build_field(self, name: str, hit: MarkerHit) -> TextField:
        cfg = self.config
        width = len(hit.marker) * cfg.glyph_width
        return TextField(
            name=name,
            marker=hit.marker,
            page=hit.page,
            marker_box=MarkerBox(
                x=hit.box_x,
                y=hit.y,
                width=width,
                height=cfg.marker_height,
            ),
            draw=DrawSpec(
                x=hit.box_x + width + cfg.gap,
                y=hit.y,
                gap=cfg.gap,
                font=cfg.font_name,
                size=cfg.font_size,
            ),
        )


# ─── Ordering Helpers ─────────────────────────────────────────────────────────


def round_baseline(y: float) -> int:
    """Half-up rounding of a baseline coordinate."""
    return math.floor(y + 0.5)


def group_lines(runs: list[TextRun]) -> list[TextLine]:
    """Concatenate adjacent runs on the same page and rounded baseline."""
    lines: list[TextLine] = []
    current: Optional[TextLine] = None

    for run in runs:
        baseline = round_baseline(run.y)
        if (
            current is not None
            and current.page == run.page
            and current.baseline == baseline
        ):
            current.text += run.text
            continue
        current = TextLine(
            page=run.page,
            baseline=baseline,
            x=run.x,
            y=run.y,
            text=run.text,
        )
        lines.append(current)

    return lines


def sort_hits(hits: list[MarkerHit], row_tolerance: float = 5.0) -> list[MarkerHit]:
    """
    Reading order: page, then top to bottom (higher y first), then left to
    right. Hits whose y differ by at most ``row_tolerance`` share a row.
    """

    def compare(a: MarkerHit, b: MarkerHit) -> float:
        if a.page != b.page:
            return a.page - b.page
        if abs(a.y - b.y) > row_tolerance:
            return b.y - a.y
        return a.x - b.x

    return sorted(hits, key=cmp_to_key(compare))
