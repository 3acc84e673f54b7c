# ============================================================================
# src/clinical_provenance/extractors/__init__.py
# ============================================================================
"""
Extraction parsers: model response text -> typed, confidence-scored records.
"""

from .base import ExtractionMetadata, FieldReader, StructuredRecord, extract_json_object, normalize_date
from .echo_report import EchoReport, parse_echo_report
from .angiogram_report import AngiogramReport, parse_angiogram_report
from .lab_result import LabResult, parse_lab_result
from .generic import GenericDocument, parse_generic_document
from .patient_identity import PatientIdentity, parse_patient_identity
from .referral_letter import ReferralLetter, parse_referral_letter
from .registry import ExtractorSpec, StructuredExtraction, get_extractor

__all__ = [
    "ExtractionMetadata",
    "FieldReader",
    "StructuredRecord",
    "extract_json_object",
    "normalize_date",
    "EchoReport",
    "parse_echo_report",
    "AngiogramReport",
    "parse_angiogram_report",
    "LabResult",
    "parse_lab_result",
    "GenericDocument",
    "parse_generic_document",
    "PatientIdentity",
    "parse_patient_identity",
    "ReferralLetter",
    "parse_referral_letter",
    "ExtractorSpec",
    "StructuredExtraction",
    "get_extractor",
]
