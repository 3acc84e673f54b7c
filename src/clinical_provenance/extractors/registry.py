# ============================================================================
# src/clinical_provenance/extractors/registry.py
# ============================================================================
"""
Extractor Registry

Maps a document type to its prompt, parser, token budget and expected
field count.
"""

from dataclasses import dataclass
from typing import Callable, Dict, Optional, Union

from ..core.context.enums import DocumentType
from .angiogram_report import ANGIOGRAM_EXTRACTION_PROMPT, AngiogramReport, parse_angiogram_report
from .angiogram_report import EXPECTED_FIELDS as ANGIOGRAM_EXPECTED_FIELDS
from .echo_report import ECHO_EXTRACTION_PROMPT, EchoReport, parse_echo_report
from .echo_report import EXPECTED_FIELDS as ECHO_EXPECTED_FIELDS
from .generic import GENERIC_EXTRACTION_PROMPT, GenericDocument, parse_generic_document
from .generic import EXPECTED_FIELDS as GENERIC_EXPECTED_FIELDS
from .lab_result import LAB_EXTRACTION_PROMPT, LabResult, parse_lab_result
from .lab_result import EXPECTED_FIELDS as LAB_EXPECTED_FIELDS
from .patient_identity import PatientIdentity
from .referral_letter import REFERRAL_EXTRACTION_PROMPT, ReferralLetter, parse_referral_letter
from .referral_letter import EXPECTED_FIELDS as REFERRAL_LETTER_EXPECTED_FIELDS

StructuredExtraction = Union[EchoReport, AngiogramReport, LabResult, GenericDocument, ReferralLetter, PatientIdentity]

Parser = Callable[[str, str, int], StructuredExtraction]


@dataclass(frozen=True)
class ExtractorSpec:
    document_type: DocumentType
    prompt: str
    parser: Parser
    expected_fields: int
    max_tokens: Optional[int] = None   # None: use EXTRACTION_MAX_TOKENS

    def build_prompt(self, content: Optional[str] = None) -> str:
        """Prompt with the document text appended (image documents pass None)."""
        if not content:
            return self.prompt
        return f"{self.prompt}\n\n---\n\nDOCUMENT TEXT:\n{content}"


_REGISTRY: Dict[DocumentType, ExtractorSpec] = {
    DocumentType.ECHO_REPORT: ExtractorSpec(
        DocumentType.ECHO_REPORT, ECHO_EXTRACTION_PROMPT, parse_echo_report, ECHO_EXPECTED_FIELDS
    ),
    DocumentType.ANGIOGRAM_REPORT: ExtractorSpec(
        DocumentType.ANGIOGRAM_REPORT, ANGIOGRAM_EXTRACTION_PROMPT, parse_angiogram_report, ANGIOGRAM_EXPECTED_FIELDS
    ),
    DocumentType.LAB_RESULT: ExtractorSpec(
        DocumentType.LAB_RESULT, LAB_EXTRACTION_PROMPT, parse_lab_result, LAB_EXPECTED_FIELDS
    ),
    DocumentType.REFERRAL: ExtractorSpec(
        DocumentType.REFERRAL, GENERIC_EXTRACTION_PROMPT, parse_generic_document, GENERIC_EXPECTED_FIELDS
    ),
    DocumentType.OTHER: ExtractorSpec(
        DocumentType.OTHER, GENERIC_EXTRACTION_PROMPT, parse_generic_document, GENERIC_EXPECTED_FIELDS
    ),
    DocumentType.REFERRAL_LETTER: ExtractorSpec(
        DocumentType.REFERRAL_LETTER, REFERRAL_EXTRACTION_PROMPT, parse_referral_letter,
        REFERRAL_LETTER_EXPECTED_FIELDS
    ),
}


def get_extractor(document_type: Union[DocumentType, str]) -> ExtractorSpec:
    """
    Raises:
        KeyError: no extractor for this document type
    """
    return _REGISTRY[DocumentType(document_type)]
