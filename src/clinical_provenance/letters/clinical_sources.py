# ============================================================================
# src/clinical_provenance/letters/clinical_sources.py
# ============================================================================
"""
Clinical Source Validator

Finds clinical assertions that carry a concrete number (ejection fraction,
stenosis, blood pressure, heart rate, gradients, doses, measurements) and
checks that each one is covered by a source anchor.

A statement runs from its match to the end of its sentence, including a
citation marker placed right after the full stop. Text inside citation
markers is never treated as a statement.

Coverage is 100 when the letter makes no clinical statements at all.
"""

from dataclasses import dataclass, field
from typing import Dict, Iterable, List, Optional, Tuple
import logging
import re

from ..config.thresholds_config import threshold_settings
from .source_anchoring import SOURCE_MARKER_PATTERN, SourceAnchor

logger = logging.getLogger(__name__)


CLINICAL_VALUE_PATTERNS: Dict[str, re.Pattern] = {
    "ejection_fraction": re.compile(
        r"\b(?:LVEF|EF|ejection fraction)\s*(?:was|is|of|:|=)?\s*(?:approximately\s+|~\s*)?"
        r"\d+(?:\.\d+)?\s*(?:-\s*\d+(?:\.\d+)?\s*)?%",
        re.IGNORECASE,
    ),
    "stenosis": re.compile(
        r"\b\d+(?:\.\d+)?\s*%\s*(?:stenosis|narrowing|occlusion|lesion)"
        r"|\bstenosis\s+of\s+\d+(?:\.\d+)?\s*%",
        re.IGNORECASE,
    ),
    "blood_pressure": re.compile(
        r"\b(?:BP|blood pressure)\s*(?:was|is|of|:|=)?\s*\d{2,3}\s*/\s*\d{2,3}(?:\s*mmHg)?",
        re.IGNORECASE,
    ),
    "heart_rate": re.compile(
        r"\b(?:HR|heart rate|pulse(?: rate)?)\s*(?:was|is|of|:|=)?\s*\d{2,3}(?:\s*(?:bpm|beats per minute))?\b"
        r"|\b\d{2,3}\s*bpm\b",
        re.IGNORECASE,
    ),
    "gradient": re.compile(
        r"\b(?:mean |peak )?gradient\s*(?:was|is|of|:|=)?\s*\d+(?:\.\d+)?\s*mmHg",
        re.IGNORECASE,
    ),
    "dose": re.compile(
        r"\b[a-z][a-z-]+\s+\d+(?:\.\d+)?\s*(?:mg|mcg|units)\b",
        re.IGNORECASE,
    ),
    "measurement": re.compile(
        r"\b\d+(?:\.\d+)?\s*(?:mmHg|mL/m2|mL|cm2|cm/s|m/s|mm|ms|%)(?![A-Za-z0-9])",
    ),
}


@dataclass(frozen=True)
class ClinicalStatement:
    start: int
    end: int
    excerpt: str
    sourced: bool


@dataclass(frozen=True)
class SourceValidation:
    is_valid: bool
    coverage: float
    total_statements: int
    sourced_statements: int
    unsourced_statements: List[str] = field(default_factory=list)
    statements: List[ClinicalStatement] = field(default_factory=list)


def _marker_spans(text: str) -> Dict[int, int]:
    return {m.start(): m.end() for m in SOURCE_MARKER_PATTERN.finditer(text)}


def _inside_marker(start: int, end: int, markers: Dict[int, int]) -> bool:
    return any(m_start < end and start < m_end for m_start, m_end in markers.items())


def _find_clinical_matches(text: str, markers: Dict[int, int]) -> List[Tuple[int, int]]:
    """Match spans outside citation markers, overlaps merged."""
    spans = []
    for pattern in CLINICAL_VALUE_PATTERNS.values():
        for match in pattern.finditer(text):
            if _inside_marker(match.start(), match.end(), markers):
                continue
            spans.append((match.start(), match.end()))

    merged: List[Tuple[int, int]] = []
    for start, end in sorted(spans):
        if merged and start < merged[-1][1]:
            merged[-1] = (merged[-1][0], max(merged[-1][1], end))
        else:
            merged.append((start, end))
    return merged


def _statement_end(text: str, pos: int, markers: Dict[int, int]) -> int:
    n = len(text)
    i = pos
    end = n
    while i < n:
        if i in markers:
            i = markers[i]
            continue
        ch = text[i]
        if ch == "\n":
            end = i
            break
        if ch in "!?":
            end = i + 1
            break
        if ch == ".":
            # decimal point
            if 0 < i < n - 1 and text[i - 1].isdigit() and text[i + 1].isdigit():
                i += 1
                continue
            end = i + 1
            break
        i += 1

    # A citation placed after the full stop still belongs to the sentence
    j = end
    while j < n and text[j] in " \t":
        j += 1
    if j in markers:
        end = markers[j]
    return end


def find_clinical_statements(text: str, anchors: Iterable[SourceAnchor] = ()) -> List[ClinicalStatement]:
    markers = _marker_spans(text)
    anchors = list(anchors)

    statements = []
    for start, match_end in _find_clinical_matches(text, markers):
        end = _statement_end(text, match_end, markers)
        sourced = any(anchor.overlaps(start, end) for anchor in anchors)
        statements.append(ClinicalStatement(
            start=start,
            end=end,
            excerpt=text[start:match_end],
            sourced=sourced,
        ))
    return statements


def validate_clinical_sources(
    text: str,
    anchors: Iterable[SourceAnchor],
    threshold: Optional[float] = None,
) -> SourceValidation:
    """
    Check that clinical statements in the marked-up letter text are cited.

    Args:
        text: letter text with citation markers still in place
        anchors: anchors parsed from the same text
        threshold: minimum coverage percentage (default: SOURCE_COVERAGE_THRESHOLD)
    """
    if threshold is None:
        threshold = threshold_settings.SOURCE_COVERAGE_THRESHOLD

    statements = find_clinical_statements(text, anchors)
    total = len(statements)
    sourced = sum(1 for s in statements if s.sourced)
    coverage = 100.0 if total == 0 else 100.0 * sourced / total

    unsourced = [s.excerpt for s in statements if not s.sourced]
    if unsourced:
        logger.info(f"{len(unsourced)} of {total} clinical statements lack a citation")

    return SourceValidation(
        is_valid=coverage >= threshold,
        coverage=coverage,
        total_statements=total,
        sourced_statements=sourced,
        unsourced_statements=unsourced,
        statements=statements,
    )
