# ============================================================================
# src/clinical_provenance/extractors/generic.py
# ============================================================================
"""
Generic Document Extraction

Summary, key findings and recommendations for referrals and any document
without a dedicated parser.
"""

from dataclasses import dataclass
from typing import ClassVar

from ..core.context.enums import DocumentType
from ..core.context.extracted_field import ExtractedField
from .base import ExtractionMetadata, FieldReader, StructuredRecord, build_metadata, extract_json_object

EXPECTED_FIELDS = 3

GENERIC_EXTRACTION_PROMPT = """You are parsing a clinical document. Summarize it and extract the key information into JSON.

Use null for anything the document does not state. Return ONLY the JSON object.

{
  "type": <"REFERRAL" if this is clearly a referral letter, otherwise "OTHER">,
  "confidence": <0.0-1.0, your confidence in the extraction overall>,
  "summary": <one or two sentences on what the document is about, or null>,
  "keyFindings": [<each significant clinical finding>],
  "recommendations": [<each recommendation or follow-up action>]
}"""


@dataclass(frozen=True)
class GenericDocument(StructuredRecord):
    kind: ClassVar[DocumentType] = DocumentType.OTHER

    document_type: DocumentType
    summary: ExtractedField
    key_findings: ExtractedField
    recommendations: ExtractedField
    metadata: ExtractionMetadata


def parse_generic_document(response_text: str, model_id: str, processing_time_ms: int) -> GenericDocument:
    """
    Parse a generic extraction response.

    `type` is REFERRAL only when the model says so exactly; anything else
    is OTHER.

    Raises:
        ParseError: response holds no JSON object, or its top level is not one
    """
    data = extract_json_object(response_text)
    reader = FieldReader(data)

    document_type = DocumentType.REFERRAL if data.get("type") == "REFERRAL" else DocumentType.OTHER
    values = dict(
        summary=reader.string("summary"),
        key_findings=reader.strings("keyFindings"),
        recommendations=reader.strings("recommendations"),
    )

    metadata = build_metadata(
        values,
        model_id=model_id,
        processing_time_ms=processing_time_ms,
        expected_fields=EXPECTED_FIELDS,
    )
    return GenericDocument(document_type=document_type, **values, metadata=metadata)
