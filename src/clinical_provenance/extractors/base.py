# ============================================================================
# src/clinical_provenance/extractors/base.py
# ============================================================================
"""
Base Extraction Parsing

Every document parser goes through the same steps:
1. Strip code fences and locate the first JSON object in the model output
2. Read known keys through FieldReader, which normalizes each value and
   attaches a confidence score (absent on any validation failure)
3. Collapse nested sub-records whose leaves are all absent
4. Attach ExtractionMetadata (model, timestamp, duration, overall
   confidence, completeness)

LLMs often wrap JSON in prose or fenced blocks, and truncate it when they
hit the token limit. json_repair covers the malformed cases strict
decoding rejects.
"""

from dataclasses import dataclass, fields as dataclass_fields
from datetime import date, datetime, timezone
from enum import Enum
from typing import Any, Callable, Dict, Iterable, List, Optional, Sequence, Tuple, TypeVar
import json
import logging
import math
import re

from json_repair import repair_json

from ..core.confidence import ConfidenceScore, WeightedField, clamp, completeness_ratio, weighted_overall
from ..core.context.extracted_field import ExtractedField
from ..utils.exceptions import ParseError, ValidationError

logger = logging.getLogger(__name__)

R = TypeVar("R")

_FENCE_OPEN = re.compile(r"^\s*```[A-Za-z0-9_-]*[ \t]*\r?\n?")
_FENCE_CLOSE = re.compile(r"\r?\n?```\s*$")

_ISO_DATE = re.compile(r"^(\d{4})-(\d{2})-(\d{2})(?:[T ][0-9:.]+(?:Z|[+-]\d{2}:?\d{2})?)?$")
_DMY_DATE = re.compile(r"^(\d{1,2})([/.-])(\d{1,2})\2(\d{4})$")

_decoder = json.JSONDecoder()

# Strict decode tries per response before falling back to json_repair
MAX_DECODE_ATTEMPTS = 32

# Plain ASCII decimal: no digit separators, inf or nan
_DECIMAL = re.compile(r"[+-]?(?:[0-9]+(?:\.[0-9]*)?|\.[0-9]+)(?:[eE][+-]?[0-9]+)?")


# ----------------------------------------------------------------------------
# JSON location
# ----------------------------------------------------------------------------

def strip_code_fences(text: str) -> str:
    """Remove an enclosing ``` / ```json fence if present."""
    stripped = text.strip()
    if not stripped.startswith("```"):
        return stripped
    stripped = _FENCE_OPEN.sub("", stripped, count=1)
    stripped = _FENCE_CLOSE.sub("", stripped, count=1)
    return stripped.strip()


def _matching_brace(text: str, start: int) -> Optional[int]:
    """Index of the brace closing text[start], ignoring braces inside strings."""
    depth = 0
    in_string = False
    escaped = False
    for i in range(start, len(text)):
        char = text[i]
        if in_string:
            if escaped:
                escaped = False
            elif char == "\\":
                escaped = True
            elif char == '"':
                in_string = False
            continue
        if char == '"':
            in_string = True
        elif char == "{":
            depth += 1
        elif char == "}":
            depth -= 1
            if depth == 0:
                return i
    return None


def extract_json_object(response_text: str) -> Dict[str, Any]:
    """
    Locate the first JSON object in a model response.

    Raises:
        ParseError: "not an object" when the top-level value is an array or
            scalar, "no object found" when no object literal is present.
    """
    if not response_text or not response_text.strip():
        raise ParseError.no_object()

    text = strip_code_fences(response_text)

    # Try 1: whole response is JSON
    try:
        parsed = json.loads(text)
    except json.JSONDecodeError:
        pass
    else:
        if isinstance(parsed, dict):
            return parsed
        raise ParseError.not_an_object()

    # A leading array followed by trailing prose is still a top-level array
    if text.startswith("["):
        try:
            value, _ = _decoder.raw_decode(text)
        except json.JSONDecodeError:
            pass
        else:
            if isinstance(value, list):
                raise ParseError.not_an_object()

    first_brace = text.find("{")
    if first_brace == -1:
        raise ParseError.no_object()

    # Try 2: strict decode at each opening brace, past any leading prose
    index = first_brace
    attempts = 0
    while index != -1 and attempts < MAX_DECODE_ATTEMPTS:
        attempts += 1
        try:
            value, _ = _decoder.raw_decode(text, index)
        except json.JSONDecodeError:
            pass
        else:
            if isinstance(value, dict):
                return value
        index = text.find("{", index + 1)

    # Try 3: json_repair on the first brace-matched block (or the truncated tail)
    end = _matching_brace(text, first_brace)
    block = text[first_brace:end + 1] if end is not None else text[first_brace:]
    repaired = repair_json(block, return_objects=True)
    if isinstance(repaired, dict) and repaired:
        logger.debug("json_repair recovered object from malformed block")
        return repaired

    raise ParseError.no_object()


# ----------------------------------------------------------------------------
# Normalizers (raise ValidationError; FieldReader absorbs it)
# ----------------------------------------------------------------------------

def parse_number(value: Any) -> Optional[float]:
    if value is None:
        return None
    if isinstance(value, bool):
        raise ValidationError("number", "boolean is not numeric")
    if isinstance(value, (int, float)):
        number = float(value)
    elif isinstance(value, str):
        candidate = value.strip()
        if not candidate:
            return None
        if not _DECIMAL.fullmatch(candidate):
            raise ValidationError("number", "non-numeric string")
        number = float(candidate)
    else:
        raise ValidationError("number", f"unsupported type {type(value).__name__}")
    if not math.isfinite(number):
        raise ValidationError("number", "not finite")
    return number


def parse_string(value: Any) -> Optional[str]:
    if value is None:
        return None
    if isinstance(value, bool):
        raise ValidationError("string", "boolean is not text")
    if isinstance(value, (int, float)):
        return str(value)
    if not isinstance(value, str):
        raise ValidationError("string", f"unsupported type {type(value).__name__}")
    stripped = value.strip()
    return stripped or None


def parse_bool(value: Any) -> Optional[bool]:
    if value is None:
        return None
    if not isinstance(value, bool):
        raise ValidationError("bool", "not a boolean")
    return value


def parse_enum(value: Any, allowed: Sequence[str]) -> Optional[str]:
    if value is None:
        return None
    if not isinstance(value, str) or value not in allowed:
        raise ValidationError("enum", "value outside the allowed set")
    return value


def normalize_date(value: Any) -> Optional[str]:
    """
    Normalize a date to YYYY-MM-DD.

    Accepts ISO dates (optionally with a time part) and DD/MM/YYYY,
    DD-MM-YYYY, DD.MM.YYYY. Anything else, including impossible calendar
    dates, is rejected.
    """
    if value is None:
        return None
    if not isinstance(value, str):
        raise ValidationError("date", "not a string")
    text = value.strip()
    if not text:
        return None

    iso = _ISO_DATE.match(text)
    if iso:
        year, month, day = int(iso.group(1)), int(iso.group(2)), int(iso.group(3))
    else:
        dmy = _DMY_DATE.match(text)
        if not dmy:
            raise ValidationError("date", "unrecognized date shape")
        day, month, year = int(dmy.group(1)), int(dmy.group(3)), int(dmy.group(4))

    try:
        return date(year, month, day).isoformat()
    except ValueError:
        raise ValidationError("date", "not a calendar date")


def bounded_int(value: Any, low: int, high: int) -> Optional[int]:
    """Round half up to the nearest integer, then require low <= n <= high."""
    number = parse_number(value)
    if number is None:
        return None
    rounded = math.floor(number + 0.5)
    if rounded < low or rounded > high:
        raise ValidationError("bounded_int", f"{rounded} outside [{low}, {high}]")
    return rounded


def parse_string_array(value: Any) -> Optional[Tuple[str, ...]]:
    """Keep non-empty string entries; an empty result is absent."""
    if value is None:
        return None
    if not isinstance(value, list):
        raise ValidationError("string_array", "not an array")
    items = tuple(v.strip() for v in value if isinstance(v, str) and v.strip())
    return items or None


# ----------------------------------------------------------------------------
# Records
# ----------------------------------------------------------------------------

class StructuredRecord:
    """Mixin for dataclass records made of ExtractedField attributes."""

    def iter_fields(self) -> Iterable[Tuple[str, ExtractedField]]:
        for f in dataclass_fields(self):
            value = getattr(self, f.name)
            if isinstance(value, ExtractedField):
                yield f.name, value

    def present_fields(self) -> List[str]:
        return [name for name, value in self.iter_fields() if value.present]

    def is_empty(self) -> bool:
        return not any(value.present for _, value in self.iter_fields())

    def count_extracted(self) -> int:
        return sum(count_extracted(value) for _, value in self.iter_fields())

    def to_dict(self) -> Dict[str, Any]:
        result = {}
        for f in dataclass_fields(self):
            value = getattr(self, f.name)
            if isinstance(value, ExtractedField):
                result[f.name] = value.to_dict() if value.present else None
            elif hasattr(value, "to_dict"):
                result[f.name] = value.to_dict()
            elif isinstance(value, Enum):
                result[f.name] = value.value
            elif isinstance(value, ConfidenceScore):
                result[f.name] = value.value
            else:
                result[f.name] = value
        return result


def count_extracted(field: ExtractedField) -> int:
    """
    Leaves with a value. Nested records count their own leaves; a list
    counts once.
    """
    if not field.present:
        return 0
    if isinstance(field.value, StructuredRecord):
        return field.value.count_extracted()
    return 1


@dataclass(frozen=True)
class ExtractionMetadata:
    model_id: str
    extracted_at: str
    processing_time_ms: int
    overall_confidence: ConfidenceScore
    completeness: float

    def to_dict(self) -> Dict[str, Any]:
        return {
            "model_id": self.model_id,
            "extracted_at": self.extracted_at,
            "processing_time_ms": self.processing_time_ms,
            "overall_confidence": self.overall_confidence.value,
            "completeness": self.completeness,
        }


def utc_timestamp() -> str:
    return datetime.now(timezone.utc).isoformat()


def build_metadata(
    field_values: Dict[str, ExtractedField],
    *,
    model_id: str,
    processing_time_ms: int,
    expected_fields: int,
    overall: Optional[ConfidenceScore] = None,
) -> ExtractionMetadata:
    """
    Overall confidence defaults to the equal-weight mean over present
    top-level fields.
    """
    if overall is None:
        overall = weighted_overall(
            WeightedField(1.0, f.confidence.value, f.present)
            for f in field_values.values()
        )
    extracted = sum(count_extracted(f) for f in field_values.values())
    return ExtractionMetadata(
        model_id=model_id,
        extracted_at=utc_timestamp(),
        processing_time_ms=processing_time_ms,
        overall_confidence=overall,
        completeness=completeness_ratio(extracted, expected_fields),
    )


# ----------------------------------------------------------------------------
# Field reader
# ----------------------------------------------------------------------------

def _is_number(value: Any) -> bool:
    return isinstance(value, (int, float)) and not isinstance(value, bool)


class FieldReader:
    """
    Reads named keys off a parsed object into ExtractedFields.

    Field confidence, in order of precedence:
    - `fieldConfidence[key]` or a sibling `<key>Confidence`
    - the object's own top-level `confidence`
    - the inherited default (UNSCORED_FIELD_CONFIDENCE at the root)
    Absent fields always score 0.
    """

    def __init__(self, data: Dict[str, Any], default_confidence: Optional[float] = None):
        if default_confidence is None:
            from ..config.thresholds_config import threshold_settings
            default_confidence = threshold_settings.UNSCORED_FIELD_CONFIDENCE
        self.data = data
        scores = data.get("fieldConfidence")
        self._field_scores = scores if isinstance(scores, dict) else {}
        own = data.get("confidence")
        self.default_confidence = clamp(own) if _is_number(own) else default_confidence

    def get(self, key: str) -> Any:
        return self.data.get(key)

    def confidence_for(self, key: str) -> float:
        score = self._field_scores.get(key)
        if _is_number(score):
            return clamp(score)
        score = self.data.get(f"{key}Confidence")
        if _is_number(score):
            return clamp(score)
        return self.default_confidence

    def field(self, key: str, normalizer: Callable[..., Any], *args: Any) -> ExtractedField:
        try:
            value = normalizer(self.data.get(key), *args)
        except ValidationError as e:
            logger.debug(f"Dropping field '{key}': {e}")
            value = None
        if value is None:
            return ExtractedField.absent()
        return ExtractedField(value=value, confidence=ConfidenceScore.of(self.confidence_for(key)))

    def number(self, key: str) -> ExtractedField:
        return self.field(key, parse_number)

    def string(self, key: str) -> ExtractedField:
        return self.field(key, parse_string)

    def boolean(self, key: str) -> ExtractedField:
        return self.field(key, parse_bool)

    def enum(self, key: str, allowed: Sequence[str]) -> ExtractedField:
        return self.field(key, parse_enum, allowed)

    def date(self, key: str) -> ExtractedField:
        return self.field(key, normalize_date)

    def bounded_int(self, key: str, low: int, high: int) -> ExtractedField:
        return self.field(key, bounded_int, low, high)

    def strings(self, key: str) -> ExtractedField:
        return self.field(key, parse_string_array)

    def child(self, key: str) -> Optional["FieldReader"]:
        value = self.data.get(key)
        if not isinstance(value, dict):
            return None
        return FieldReader(value, default_confidence=self.confidence_for(key))

    def record(self, key: str, builder: Callable[["FieldReader"], R]) -> ExtractedField:
        """Nested sub-record; collapses to absent when every leaf is absent."""
        reader = self.child(key)
        if reader is None:
            return ExtractedField.absent()
        record = builder(reader)
        if record.is_empty():
            return ExtractedField.absent()
        return ExtractedField(value=record, confidence=ConfidenceScore.of(self.confidence_for(key)))

    def records(self, key: str, builder: Callable[["FieldReader"], R]) -> ExtractedField:
        """Array of sub-records; empty entries are dropped, an empty array is absent."""
        items = self.data.get(key)
        if not isinstance(items, list):
            return ExtractedField.absent()
        default = self.confidence_for(key)
        built = []
        for item in items:
            if not isinstance(item, dict):
                continue
            record = builder(FieldReader(item, default_confidence=default))
            if not record.is_empty():
                built.append(record)
        if not built:
            return ExtractedField.absent()
        return ExtractedField(value=tuple(built), confidence=ConfidenceScore.of(default))
