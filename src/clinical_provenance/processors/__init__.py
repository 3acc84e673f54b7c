# ============================================================================
# src/clinical_provenance/processors/__init__.py
# ============================================================================
"""
Extraction job orchestration.
"""

from .extraction_coordinator import (
    DocumentProcessingResult,
    ExtractionCoordinator,
    ExtractionOutcome,
)

__all__ = [
    "DocumentProcessingResult",
    "ExtractionCoordinator",
    "ExtractionOutcome",
]
