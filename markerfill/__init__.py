"""
markerfill
==========
Marker detection and field filling for PDF templates.

Architecture:
    - Text Run Extractor: positioned text runs from the PDF text layer
    - Marker Detector: recognizes ``msr:``-style and ``{{name}}`` markers and
      binds them to field names in reading order
    - Template Registry: content-addressed store of templates and manifests
    - Field Filler: draws values (or sets form fields) at manifest positions
    - Template Engine: upload / generate orchestration

Version: 1.0.0
"""

__version__ = "1.0.0"
