# ============================================================================
# src/clinical_provenance/extractors/lab_result.py
# ============================================================================
"""
Laboratory Result Extraction

Cardiac markers, lipids, renal function, electrolytes, haematology,
coagulation, thyroid and glycaemic analytes. An analyte without a
numeric value is absent, whatever else the model reported for it.
"""

from dataclasses import dataclass
from typing import ClassVar

from ..core.context.enums import DocumentType
from ..core.context.extracted_field import ExtractedField
from .base import ExtractionMetadata, FieldReader, StructuredRecord, build_metadata, extract_json_object

EXPECTED_FIELDS = 10

LAB_FLAGS = ("high", "low", "critical")

# (response key, record attribute)
ANALYTES = (
    ("troponin", "troponin"),
    ("bnp", "bnp"),
    ("ntProBnp", "nt_pro_bnp"),
    ("totalCholesterol", "total_cholesterol"),
    ("ldl", "ldl"),
    ("hdl", "hdl"),
    ("triglycerides", "triglycerides"),
    ("creatinine", "creatinine"),
    ("egfr", "egfr"),
    ("bun", "bun"),
    ("potassium", "potassium"),
    ("sodium", "sodium"),
    ("magnesium", "magnesium"),
    ("hemoglobin", "hemoglobin"),
    ("hematocrit", "hematocrit"),
    ("platelets", "platelets"),
    ("inr", "inr"),
    ("tsh", "tsh"),
    ("hba1c", "hba1c"),
    ("glucose", "glucose"),
)

LAB_EXTRACTION_PROMPT = """You are parsing a laboratory results report. Extract every listed analyte into JSON.

Use null for anything the report does not state explicitly. Return ONLY the JSON object.

{
  "type": "LAB_RESULT",
  "confidence": <0.0-1.0, your confidence in the extraction overall>,
  "fieldConfidence": {<optional per-analyte confidence, e.g. "troponin": 0.9>},
  "testDate": <date the tests were collected, YYYY-MM-DD or DD/MM/YYYY, or null>,

  "<analyte>": {
    "value": <number>,
    "unit": <string>,
    "referenceRange": <string or null>,
    "flag": <"high" | "low" | "critical" | null>
  }
}

Analytes: troponin, bnp, ntProBnp, totalCholesterol, ldl, hdl, triglycerides,
creatinine, egfr, bun, potassium, sodium, magnesium, hemoglobin, hematocrit,
platelets, inr, tsh, hba1c, glucose.

Rules:
1. Copy values and units exactly as written
2. Include the reference range when printed
3. Flag abnormal values as high, low or critical"""


@dataclass(frozen=True)
class LabValue(StructuredRecord):
    value: ExtractedField
    unit: ExtractedField
    reference_range: ExtractedField
    flag: ExtractedField

    def is_empty(self) -> bool:
        return not self.value.present


def _parse_lab_value(reader: FieldReader) -> LabValue:
    return LabValue(
        value=reader.number("value"),
        unit=reader.string("unit"),
        reference_range=reader.string("referenceRange"),
        flag=reader.enum("flag", LAB_FLAGS),
    )


@dataclass(frozen=True)
class LabResult(StructuredRecord):
    kind: ClassVar[DocumentType] = DocumentType.LAB_RESULT

    test_date: ExtractedField
    troponin: ExtractedField
    bnp: ExtractedField
    nt_pro_bnp: ExtractedField
    total_cholesterol: ExtractedField
    ldl: ExtractedField
    hdl: ExtractedField
    triglycerides: ExtractedField
    creatinine: ExtractedField
    egfr: ExtractedField
    bun: ExtractedField
    potassium: ExtractedField
    sodium: ExtractedField
    magnesium: ExtractedField
    hemoglobin: ExtractedField
    hematocrit: ExtractedField
    platelets: ExtractedField
    inr: ExtractedField
    tsh: ExtractedField
    hba1c: ExtractedField
    glucose: ExtractedField
    metadata: ExtractionMetadata


def parse_lab_result(response_text: str, model_id: str, processing_time_ms: int) -> LabResult:
    """
    Parse a lab extraction response.

    Raises:
        ParseError: response holds no JSON object, or its top level is not one
    """
    reader = FieldReader(extract_json_object(response_text))

    values = {"test_date": reader.date("testDate")}
    for key, attribute in ANALYTES:
        values[attribute] = reader.record(key, _parse_lab_value)

    metadata = build_metadata(
        values,
        model_id=model_id,
        processing_time_ms=processing_time_ms,
        expected_fields=EXPECTED_FIELDS,
    )
    return LabResult(**values, metadata=metadata)
