# ============================================================================
# src/clinical_provenance/extractors/angiogram_report.py
# ============================================================================
"""
Coronary Angiogram / Catheterization Report Extraction

Per-vessel findings for the native coronaries and major branches,
dominance, haemodynamics and PCI details. TIMI flow is a bounded 0-3
grade.
"""

from dataclasses import dataclass
from typing import ClassVar

from ..core.context.enums import DocumentType
from ..core.context.extracted_field import ExtractedField
from .base import ExtractionMetadata, FieldReader, StructuredRecord, build_metadata, extract_json_object

EXPECTED_FIELDS = 15

VESSELS = ("lmca", "lad", "lcx", "rca", "d1", "d2", "om1", "om2", "pda", "plv", "ramus")
DOMINANCE_VALUES = ("right", "left", "codominant")
TIMI_MIN, TIMI_MAX = 0, 3

ANGIOGRAM_EXTRACTION_PROMPT = """You are parsing a coronary angiography / cardiac catheterization report. Extract the clinical values into JSON.

Use null for anything the report does not state explicitly. Return ONLY the JSON object.

{
  "type": "ANGIOGRAM_REPORT",
  "confidence": <0.0-1.0, your confidence in the extraction overall>,
  "fieldConfidence": {<optional per-field confidence, e.g. "lad": 0.9>},

  "lmca": <vessel object or null>,
  "lad": <vessel object or null>,
  "lcx": <vessel object or null>,
  "rca": <vessel object or null>,
  "d1": <vessel object or null>,
  "d2": <vessel object or null>,
  "om1": <vessel object or null>,
  "om2": <vessel object or null>,
  "pda": <vessel object or null>,
  "plv": <vessel object or null>,
  "ramus": <vessel object or null>,

  "dominance": <"right" | "left" | "codominant" | null>,
  "lvedp": <number or null, mmHg>,
  "aorticPressure": <string or null, e.g. "120/80">,
  "cardiacOutput": <number or null, L/min>,

  "pciPerformed": <true | false | null>,
  "pciDetails": [
    {
      "vessel": <string, e.g. "LAD">,
      "stentType": <string or null>,
      "stentSize": <string or null, e.g. "3.0 x 28mm">,
      "preDilatation": <true | false | null>,
      "postDilatation": <true | false | null>,
      "timiFlow": <0 | 1 | 2 | 3 | null, final TIMI flow>,
      "result": <string or null>
    }
  ],

  "overallImpression": <string or null>,
  "recommendations": [<each recommendation>]
}

Vessel object:
{
  "stenosis": <number, percent>, "stenosisLocation": <"ostial" | "proximal" | "mid" | "distal" | string>,
  "calcification": <string>, "thrombus": <bool>, "dissection": <bool>,
  "previousStent": <bool>, "stentPatent": <bool>,
  "graftType": <string, e.g. "LIMA", "SVG">, "graftStatus": <string>,
  "description": <string>
}

Rules:
1. When a stenosis range is given (e.g. "70-80%"), use the maximum
2. Include vessels described as normal with stenosis 0
3. Record every PCI in pciDetails"""


@dataclass(frozen=True)
class VesselData(StructuredRecord):
    stenosis: ExtractedField
    stenosis_location: ExtractedField
    calcification: ExtractedField
    thrombus: ExtractedField
    dissection: ExtractedField
    previous_stent: ExtractedField
    stent_patent: ExtractedField
    graft_type: ExtractedField
    graft_status: ExtractedField
    description: ExtractedField


@dataclass(frozen=True)
class PciDetail(StructuredRecord):
    vessel: ExtractedField
    stent_type: ExtractedField
    stent_size: ExtractedField
    pre_dilatation: ExtractedField
    post_dilatation: ExtractedField
    timi_flow: ExtractedField
    result: ExtractedField


def _parse_vessel(reader: FieldReader) -> VesselData:
    return VesselData(
        stenosis=reader.number("stenosis"),
        stenosis_location=reader.string("stenosisLocation"),
        calcification=reader.string("calcification"),
        thrombus=reader.boolean("thrombus"),
        dissection=reader.boolean("dissection"),
        previous_stent=reader.boolean("previousStent"),
        stent_patent=reader.boolean("stentPatent"),
        graft_type=reader.string("graftType"),
        graft_status=reader.string("graftStatus"),
        description=reader.string("description"),
    )


def _parse_pci(reader: FieldReader) -> PciDetail:
    return PciDetail(
        vessel=reader.string("vessel"),
        stent_type=reader.string("stentType"),
        stent_size=reader.string("stentSize"),
        pre_dilatation=reader.boolean("preDilatation"),
        post_dilatation=reader.boolean("postDilatation"),
        timi_flow=reader.bounded_int("timiFlow", TIMI_MIN, TIMI_MAX),
        result=reader.string("result"),
    )


@dataclass(frozen=True)
class AngiogramReport(StructuredRecord):
    kind: ClassVar[DocumentType] = DocumentType.ANGIOGRAM_REPORT

    lmca: ExtractedField
    lad: ExtractedField
    lcx: ExtractedField
    rca: ExtractedField
    d1: ExtractedField
    d2: ExtractedField
    om1: ExtractedField
    om2: ExtractedField
    pda: ExtractedField
    plv: ExtractedField
    ramus: ExtractedField
    dominance: ExtractedField
    lvedp: ExtractedField
    aortic_pressure: ExtractedField
    cardiac_output: ExtractedField
    pci_performed: ExtractedField
    pci_details: ExtractedField
    overall_impression: ExtractedField
    recommendations: ExtractedField
    metadata: ExtractionMetadata


def parse_angiogram_report(response_text: str, model_id: str, processing_time_ms: int) -> AngiogramReport:
    """
    Parse an angiogram extraction response.

    Raises:
        ParseError: response holds no JSON object, or its top level is not one
    """
    reader = FieldReader(extract_json_object(response_text))

    values = {vessel: reader.record(vessel, _parse_vessel) for vessel in VESSELS}
    values.update(
        dominance=reader.enum("dominance", DOMINANCE_VALUES),
        lvedp=reader.number("lvedp"),
        aortic_pressure=reader.string("aorticPressure"),
        cardiac_output=reader.number("cardiacOutput"),
        pci_performed=reader.boolean("pciPerformed"),
        pci_details=reader.records("pciDetails", _parse_pci),
        overall_impression=reader.string("overallImpression"),
        recommendations=reader.strings("recommendations"),
    )

    metadata = build_metadata(
        values,
        model_id=model_id,
        processing_time_ms=processing_time_ms,
        expected_fields=EXPECTED_FIELDS,
    )
    return AngiogramReport(**values, metadata=metadata)
