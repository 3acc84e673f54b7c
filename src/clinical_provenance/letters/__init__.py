# ============================================================================
# src/clinical_provenance/letters/__init__.py
# ============================================================================
"""
Letter review: citation anchors, source coverage, hallucination checks and
clinician verification.
"""

from .source_anchoring import (
    AnchorParseResult,
    SourceAnchor,
    SourceRecord,
    SourceRegistry,
    count_anchors_by_type,
    generate_source_summary,
    parse_source_anchors,
)
from .clinical_sources import SourceValidation, validate_clinical_sources
from .hallucination import (
    HallucinationRisk,
    calculate_hallucination_risk,
    detect_hallucinations,
    recommend_approval,
)
from .verification import ApprovalCheck, VerificationSession

__all__ = [
    "AnchorParseResult",
    "SourceAnchor",
    "SourceRecord",
    "SourceRegistry",
    "count_anchors_by_type",
    "generate_source_summary",
    "parse_source_anchors",
    "SourceValidation",
    "validate_clinical_sources",
    "HallucinationRisk",
    "calculate_hallucination_risk",
    "detect_hallucinations",
    "recommend_approval",
    "ApprovalCheck",
    "VerificationSession",
]
