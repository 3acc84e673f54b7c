# ============================================================================
# src/clinical_provenance/extractors/patient_identity.py
# ============================================================================
"""
Fast Patient Identity Extraction

Name, date of birth and MRN only, from a small model with a short token
budget. Runs beside the full extraction as a best-effort hint; the
coordinator absorbs its failures.

Per-field confidence comes from `<field>Confidence`; a missing or
non-numeric score counts as 0. Overall confidence weights name, DOB and
identifier (0.40 / 0.35 / 0.25 by default) over the fields present.
"""

from dataclasses import dataclass
from typing import Optional

from ..core.confidence import WeightedField, completeness_ratio, weighted_overall
from ..core.context.extracted_field import ExtractedField
from .base import (
    ExtractionMetadata,
    FieldReader,
    StructuredRecord,
    extract_json_object,
    utc_timestamp,
)

EXPECTED_FIELDS = 3

FAST_PATIENT_EXTRACTION_PROMPT = """Extract the patient identifiers from this clinical document.

Return ONLY this JSON object:
{
  "name": <patient full name as written, or null>,
  "nameConfidence": <0.0-1.0>,
  "dob": <date of birth, YYYY-MM-DD or DD/MM/YYYY, or null>,
  "dobConfidence": <0.0-1.0>,
  "mrn": <medical record number / URN, or null>,
  "mrnConfidence": <0.0-1.0>
}

Only extract the PATIENT's details, never the doctor's or the practice's.
Use null when a value is not clearly stated."""


@dataclass(frozen=True)
class IdentityWeights:
    name: float = 0.40
    date_of_birth: float = 0.35
    identifier: float = 0.25

    @classmethod
    def from_settings(cls) -> "IdentityWeights":
        from ..config.thresholds_config import threshold_settings
        return cls(
            name=threshold_settings.IDENTITY_NAME_WEIGHT,
            date_of_birth=threshold_settings.IDENTITY_DOB_WEIGHT,
            identifier=threshold_settings.IDENTITY_IDENTIFIER_WEIGHT,
        )


@dataclass(frozen=True)
class PatientIdentity(StructuredRecord):
    patient_name: ExtractedField
    date_of_birth: ExtractedField
    mrn: ExtractedField
    metadata: ExtractionMetadata

    def has_data(self) -> bool:
        return not self.is_empty()

    def has_minimum_data(self) -> bool:
        """A name is enough to attempt a patient match."""
        return self.patient_name.present

    def summary(self) -> str:
        parts = []
        if self.patient_name.present:
            parts.append(f"Name: {self.patient_name.value}")
        if self.date_of_birth.present:
            parts.append(f"DOB: {self.date_of_birth.value}")
        if self.mrn.present:
            parts.append(f"MRN: {self.mrn.value}")
        return ", ".join(parts) if parts else "No patient identifiers extracted"


def parse_patient_identity(
    response_text: str,
    model_id: str,
    processing_time_ms: int,
    weights: Optional[IdentityWeights] = None,
) -> PatientIdentity:
    """
    Parse a fast identity extraction response.

    Raises:
        ParseError: response holds no JSON object, or its top level is not one
    """
    weights = weights or IdentityWeights.from_settings()
    reader = FieldReader(extract_json_object(response_text), default_confidence=0.0)

    name = reader.string("name")
    dob = reader.date("dob")
    mrn = reader.string("mrn")

    overall = weighted_overall([
        WeightedField(weights.name, name.confidence.value, name.present),
        WeightedField(weights.date_of_birth, dob.confidence.value, dob.present),
        WeightedField(weights.identifier, mrn.confidence.value, mrn.present),
    ])
    extracted = sum(1 for f in (name, dob, mrn) if f.present)

    metadata = ExtractionMetadata(
        model_id=model_id,
        extracted_at=utc_timestamp(),
        processing_time_ms=processing_time_ms,
        overall_confidence=overall,
        completeness=completeness_ratio(extracted, EXPECTED_FIELDS),
    )
    return PatientIdentity(patient_name=name, date_of_birth=dob, mrn=mrn, metadata=metadata)
