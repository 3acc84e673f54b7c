# ============================================================================
# src/clinical_provenance/extractors/echo_report.py
# ============================================================================
"""
Echocardiogram Report Extraction

LV / RV function, four valves, diastolic indices, wall motion and
conclusions. Valve sub-records with nothing reported collapse to absent.
"""

from dataclasses import dataclass
from typing import ClassVar

from ..core.context.enums import DocumentType
from ..core.context.extracted_field import ExtractedField
from .base import ExtractionMetadata, FieldReader, StructuredRecord, build_metadata, extract_json_object

EXPECTED_FIELDS = 25

STENOSIS_GRADES = ("none", "mild", "moderate", "severe")
REGURGITATION_GRADES = ("none", "trace", "mild", "moderate", "severe")
LA_PRESSURE_VALUES = ("normal", "elevated", "indeterminate")

ECHO_EXTRACTION_PROMPT = """You are parsing an echocardiography report. Extract the clinical values into JSON.

Use null for anything the report does not state explicitly. Return ONLY the JSON object.

{
  "type": "ECHO_REPORT",
  "confidence": <0.0-1.0, your confidence in the extraction overall>,
  "fieldConfidence": {<optional per-field confidence, e.g. "lvef": 0.95>},

  "lvef": <number or null, percent>,
  "lvefMethod": <string or null, e.g. "biplane Simpson's">,
  "lvedv": <number or null, mL>,
  "lvesv": <number or null, mL>,
  "gls": <number or null, global longitudinal strain, e.g. -18>,
  "lvedd": <number or null, mm>,
  "lvesd": <number or null, mm>,
  "ivs": <number or null, mm>,
  "pw": <number or null, mm>,
  "lvMass": <number or null, g>,
  "lvMassIndex": <number or null, g/m2>,

  "rvef": <number or null, percent>,
  "tapse": <number or null, mm>,
  "rvs": <number or null, RV S' cm/s>,
  "rvBasalDiameter": <number or null, mm>,

  "aorticValve": <valve object or null>,
  "mitralValve": <valve object or null>,
  "tricuspidValve": <valve object or null>,
  "pulmonicValve": <valve object or null>,

  "eVelocity": <number or null, cm/s>,
  "aVelocity": <number or null, cm/s>,
  "eaRatio": <number or null>,
  "ePrime": <number or null, septal e' cm/s>,
  "eePrime": <number or null, E/e'>,
  "decelTime": <number or null, ms>,
  "laPressure": <"normal" | "elevated" | "indeterminate" | null>,

  "pericardialEffusion": <string or null>,
  "regionalWallMotion": [<each wall motion abnormality>],
  "conclusions": [<each key conclusion>]
}

Valve object:
{
  "peakVelocity": <m/s>, "meanGradient": <mmHg>, "peakGradient": <mmHg>,
  "valveArea": <cm2>,
  "stenosisSeverity": <"none" | "mild" | "moderate" | "severe" | null>,
  "regurgitationSeverity": <"none" | "trace" | "mild" | "moderate" | "severe" | null>,
  "regurgitantVolume": <mL>, "regurgitantFraction": <percent>,
  "ero": <cm2>, "vcWidth": <mm>, "rvsp": <mmHg, tricuspid only>,
  "morphology": <string>, "calcification": <string>,
  "prosthetic": <true | false | null>, "prostheticType": <string>
}

Rules:
1. Copy numeric values exactly as written; do not round or convert units
2. Severity grades must use exactly: none, trace, mild, moderate, severe
3. List every wall motion abnormality separately"""


@dataclass(frozen=True)
class ValveData(StructuredRecord):
    peak_velocity: ExtractedField
    mean_gradient: ExtractedField
    peak_gradient: ExtractedField
    valve_area: ExtractedField
    stenosis_severity: ExtractedField
    regurgitation_severity: ExtractedField
    regurgitant_volume: ExtractedField
    regurgitant_fraction: ExtractedField
    ero: ExtractedField
    vc_width: ExtractedField
    rvsp: ExtractedField
    morphology: ExtractedField
    calcification: ExtractedField
    prosthetic: ExtractedField
    prosthetic_type: ExtractedField


def _parse_valve(reader: FieldReader) -> ValveData:
    return ValveData(
        peak_velocity=reader.number("peakVelocity"),
        mean_gradient=reader.number("meanGradient"),
        peak_gradient=reader.number("peakGradient"),
        valve_area=reader.number("valveArea"),
        stenosis_severity=reader.enum("stenosisSeverity", STENOSIS_GRADES),
        regurgitation_severity=reader.enum("regurgitationSeverity", REGURGITATION_GRADES),
        regurgitant_volume=reader.number("regurgitantVolume"),
        regurgitant_fraction=reader.number("regurgitantFraction"),
        ero=reader.number("ero"),
        vc_width=reader.number("vcWidth"),
        rvsp=reader.number("rvsp"),
        morphology=reader.string("morphology"),
        calcification=reader.string("calcification"),
        prosthetic=reader.boolean("prosthetic"),
        prosthetic_type=reader.string("prostheticType"),
    )


@dataclass(frozen=True)
class EchoReport(StructuredRecord):
    kind: ClassVar[DocumentType] = DocumentType.ECHO_REPORT

    lvef: ExtractedField
    lvef_method: ExtractedField
    lvedv: ExtractedField
    lvesv: ExtractedField
    gls: ExtractedField
    lvedd: ExtractedField
    lvesd: ExtractedField
    ivs: ExtractedField
    pw: ExtractedField
    lv_mass: ExtractedField
    lv_mass_index: ExtractedField
    rvef: ExtractedField
    tapse: ExtractedField
    rvs: ExtractedField
    rv_basal_diameter: ExtractedField
    aortic_valve: ExtractedField
    mitral_valve: ExtractedField
    tricuspid_valve: ExtractedField
    pulmonic_valve: ExtractedField
    e_velocity: ExtractedField
    a_velocity: ExtractedField
    ea_ratio: ExtractedField
    e_prime: ExtractedField
    ee_prime: ExtractedField
    decel_time: ExtractedField
    la_pressure: ExtractedField
    pericardial_effusion: ExtractedField
    regional_wall_motion: ExtractedField
    conclusions: ExtractedField
    metadata: ExtractionMetadata


def parse_echo_report(response_text: str, model_id: str, processing_time_ms: int) -> EchoReport:
    """
    Parse an echo extraction response.

    Raises:
        ParseError: response holds no JSON object, or its top level is not one
    """
    reader = FieldReader(extract_json_object(response_text))

    values = dict(
        lvef=reader.number("lvef"),
        lvef_method=reader.string("lvefMethod"),
        lvedv=reader.number("lvedv"),
        lvesv=reader.number("lvesv"),
        gls=reader.number("gls"),
        lvedd=reader.number("lvedd"),
        lvesd=reader.number("lvesd"),
        ivs=reader.number("ivs"),
        pw=reader.number("pw"),
        lv_mass=reader.number("lvMass"),
        lv_mass_index=reader.number("lvMassIndex"),
        rvef=reader.number("rvef"),
        tapse=reader.number("tapse"),
        rvs=reader.number("rvs"),
        rv_basal_diameter=reader.number("rvBasalDiameter"),
        aortic_valve=reader.record("aorticValve", _parse_valve),
        mitral_valve=reader.record("mitralValve", _parse_valve),
        tricuspid_valve=reader.record("tricuspidValve", _parse_valve),
        pulmonic_valve=reader.record("pulmonicValve", _parse_valve),
        e_velocity=reader.number("eVelocity"),
        a_velocity=reader.number("aVelocity"),
        ea_ratio=reader.number("eaRatio"),
        e_prime=reader.number("ePrime"),
        ee_prime=reader.number("eePrime"),
        decel_time=reader.number("decelTime"),
        la_pressure=reader.enum("laPressure", LA_PRESSURE_VALUES),
        pericardial_effusion=reader.string("pericardialEffusion"),
        regional_wall_motion=reader.strings("regionalWallMotion"),
        conclusions=reader.strings("conclusions"),
    )

    metadata = build_metadata(
        values,
        model_id=model_id,
        processing_time_ms=processing_time_ms,
        expected_fields=EXPECTED_FIELDS,
    )
    return EchoReport(**values, metadata=metadata)
