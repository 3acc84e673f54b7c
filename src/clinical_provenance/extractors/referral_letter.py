# ============================================================================
# src/clinical_provenance/extractors/referral_letter.py
# ============================================================================
"""
Referral Letter Extraction

Patient demographics and identifiers, GP details, the referring doctor
(when different from the GP) and the clinical context of the referral.
Each section carries its own confidence; fields inside a section inherit
it.
"""

from dataclasses import dataclass
from typing import Any, ClassVar, List, Optional

from ..core.confidence import ConfidenceScore, WeightedField, clamp, weighted_overall
from ..core.context.enums import DocumentType
from ..core.context.extracted_field import ExtractedField
from ..utils.exceptions import ValidationError
from .base import ExtractionMetadata, FieldReader, StructuredRecord, build_metadata, extract_json_object

EXPECTED_FIELDS = 12

LOW_OVERALL_CONFIDENCE = 0.3
LOW_SECTION_CONFIDENCE = 0.7

# Section weights for the derived overall confidence
PATIENT_WEIGHT = 2.0
SECTION_WEIGHT = 1.0

_SEX_ALIASES = {"male": "male", "m": "male", "female": "female", "f": "female", "other": "other"}
_URGENCY_VALUES = ("routine", "urgent", "emergency")

REFERRAL_EXTRACTION_PROMPT = """You are parsing a referral letter. Extract only what is explicitly stated; use null otherwise.

Return ONLY this JSON object:
{
  "patient": {
    "fullName": <as written, including any title>, "dateOfBirth": <YYYY-MM-DD>,
    "sex": <"male" | "female" | "other">, "medicare": <string>, "mrn": <string>, "urn": <string>,
    "address": <string>, "phone": <string>, "email": <string>,
    "confidence": <0.0-1.0>
  },
  "gp": {
    "fullName": <string>, "practiceName": <string>, "address": <string>, "phone": <string>,
    "fax": <string>, "email": <string>, "providerNumber": <string>,
    "confidence": <0.0-1.0>
  },
  "referrer": <null when the GP is the referrer, otherwise {
    "fullName", "specialty", "organisation", "address", "phone", "fax", "email", "confidence"
  }>,
  "referralContext": {
    "reasonForReferral": <1-3 sentences>,
    "keyProblems": [<each problem or condition>],
    "investigationsMentioned": [<each test or procedure>],
    "medicationsMentioned": [<each medication>],
    "urgency": <"routine" | "urgent" | "emergency">,
    "referralDate": <YYYY-MM-DD>,
    "confidence": <0.0-1.0>
  },
  "overallConfidence": <0.0-1.0>
}

Confidence guide: 0.9-1.0 explicitly labelled; 0.7-0.9 clearly stated but unlabelled;
0.5-0.7 implied; below 0.5 inferred."""


def normalize_sex(value: Any) -> Optional[str]:
    if value is None:
        return None
    if not isinstance(value, str):
        raise ValidationError("sex", "not a string")
    sex = _SEX_ALIASES.get(value.strip().lower())
    if sex is None:
        raise ValidationError("sex", "unrecognized value")
    return sex


def normalize_urgency(value: Any) -> Optional[str]:
    if value is None:
        return None
    if not isinstance(value, str) or value.strip().lower() not in _URGENCY_VALUES:
        raise ValidationError("urgency", "unrecognized value")
    return value.strip().lower()


def _section_reader(data: Any) -> Optional[FieldReader]:
    if not isinstance(data, dict):
        return None
    # A section without its own score contributes 0
    return FieldReader(data, default_confidence=0.0)


@dataclass(frozen=True)
class ReferralPatient(StructuredRecord):
    full_name: ExtractedField
    date_of_birth: ExtractedField
    sex: ExtractedField
    medicare: ExtractedField
    mrn: ExtractedField
    urn: ExtractedField
    address: ExtractedField
    phone: ExtractedField
    email: ExtractedField
    confidence: ConfidenceScore


@dataclass(frozen=True)
class ReferralGp(StructuredRecord):
    full_name: ExtractedField
    practice_name: ExtractedField
    address: ExtractedField
    phone: ExtractedField
    fax: ExtractedField
    email: ExtractedField
    provider_number: ExtractedField
    confidence: ConfidenceScore


@dataclass(frozen=True)
class ReferralReferrer(StructuredRecord):
    full_name: ExtractedField
    specialty: ExtractedField
    organisation: ExtractedField
    address: ExtractedField
    phone: ExtractedField
    fax: ExtractedField
    email: ExtractedField
    confidence: ConfidenceScore


@dataclass(frozen=True)
class ReferralContext(StructuredRecord):
    reason_for_referral: ExtractedField
    key_problems: ExtractedField
    investigations_mentioned: ExtractedField
    medications_mentioned: ExtractedField
    urgency: ExtractedField
    referral_date: ExtractedField
    confidence: ConfidenceScore


def _parse_patient(reader: FieldReader) -> ReferralPatient:
    return ReferralPatient(
        full_name=reader.string("fullName"),
        date_of_birth=reader.date("dateOfBirth"),
        sex=reader.field("sex", normalize_sex),
        medicare=reader.string("medicare"),
        mrn=reader.string("mrn"),
        urn=reader.string("urn"),
        address=reader.string("address"),
        phone=reader.string("phone"),
        email=reader.string("email"),
        confidence=ConfidenceScore.of(reader.default_confidence),
    )


def _parse_gp(reader: FieldReader) -> ReferralGp:
    return ReferralGp(
        full_name=reader.string("fullName"),
        practice_name=reader.string("practiceName"),
        address=reader.string("address"),
        phone=reader.string("phone"),
        fax=reader.string("fax"),
        email=reader.string("email"),
        provider_number=reader.string("providerNumber"),
        confidence=ConfidenceScore.of(reader.default_confidence),
    )


def _parse_referrer(reader: FieldReader) -> ReferralReferrer:
    return ReferralReferrer(
        full_name=reader.string("fullName"),
        specialty=reader.string("specialty"),
        organisation=reader.string("organisation"),
        address=reader.string("address"),
        phone=reader.string("phone"),
        fax=reader.string("fax"),
        email=reader.string("email"),
        confidence=ConfidenceScore.of(reader.default_confidence),
    )


def _parse_context(reader: FieldReader) -> ReferralContext:
    return ReferralContext(
        reason_for_referral=reader.string("reasonForReferral"),
        key_problems=reader.strings("keyProblems"),
        investigations_mentioned=reader.strings("investigationsMentioned"),
        medications_mentioned=reader.strings("medicationsMentioned"),
        urgency=reader.field("urgency", normalize_urgency),
        referral_date=reader.date("referralDate"),
        confidence=ConfidenceScore.of(reader.default_confidence),
    )


def _section(data: Any, builder) -> ExtractedField:
    reader = _section_reader(data)
    if reader is None:
        return ExtractedField.absent()
    record = builder(reader)
    if record.is_empty():
        return ExtractedField.absent()
    return ExtractedField(value=record, confidence=record.confidence)


@dataclass(frozen=True)
class ReferralLetter(StructuredRecord):
    kind: ClassVar[DocumentType] = DocumentType.REFERRAL_LETTER

    patient: ExtractedField
    gp: ExtractedField
    referrer: ExtractedField
    referral_context: ExtractedField
    metadata: ExtractionMetadata

    def has_low_confidence(self, threshold: float = LOW_OVERALL_CONFIDENCE) -> bool:
        return self.metadata.overall_confidence.value < threshold

    def low_confidence_sections(self, threshold: float = LOW_SECTION_CONFIDENCE) -> List[str]:
        """Sections below threshold; missing patient/GP/context sections count as 0."""
        low = []
        for name in ("patient", "gp", "referrer", "referral_context"):
            section = getattr(self, name)
            if not section.present:
                if name != "referrer":
                    low.append(name)
                continue
            if section.confidence.value < threshold:
                low.append(name)
        return low


def parse_referral_letter(response_text: str, model_id: str, processing_time_ms: int) -> ReferralLetter:
    """
    Parse a referral letter extraction response.

    Overall confidence is the model's `overallConfidence` when numeric,
    otherwise the section confidences weighted patient 2, GP 1, context 1
    and referrer 1 (referrer only when present).

    Raises:
        ParseError: response holds no JSON object, or its top level is not one
    """
    data = extract_json_object(response_text)

    values = dict(
        patient=_section(data.get("patient"), _parse_patient),
        gp=_section(data.get("gp"), _parse_gp),
        referrer=_section(data.get("referrer"), _parse_referrer),
        referral_context=_section(data.get("referralContext"), _parse_context),
    )

    raw_overall = data.get("overallConfidence")
    if isinstance(raw_overall, (int, float)) and not isinstance(raw_overall, bool):
        overall = ConfidenceScore.of(clamp(raw_overall))
    else:
        overall = weighted_overall([
            WeightedField(PATIENT_WEIGHT, values["patient"].confidence.value, True),
            WeightedField(SECTION_WEIGHT, values["gp"].confidence.value, True),
            WeightedField(SECTION_WEIGHT, values["referral_context"].confidence.value, True),
            WeightedField(SECTION_WEIGHT, values["referrer"].confidence.value, values["referrer"].present),
        ])

    metadata = build_metadata(
        values,
        model_id=model_id,
        processing_time_ms=processing_time_ms,
        expected_fields=EXPECTED_FIELDS,
        overall=overall,
    )
    return ReferralLetter(**values, metadata=metadata)
