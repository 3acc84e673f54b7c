# ============================================================================
# FILE: tests/unit/test_clinical_sources.py
# ============================================================================
"""
Tests for clinical statement detection and citation coverage
"""

import pytest

from src.clinical_provenance.letters.clinical_sources import (
    CLINICAL_VALUE_PATTERNS,
    find_clinical_statements,
    validate_clinical_sources,
)
from src.clinical_provenance.letters.source_anchoring import parse_source_anchors


def _validate(text, registry, **kwargs):
    anchors = parse_source_anchors(text, registry).all_anchors
    return validate_clinical_sources(text, anchors, **kwargs)


@pytest.mark.parametrize("kind,text", [
    ("ejection_fraction", "LVEF was 45%"),
    ("ejection_fraction", "ejection fraction of approximately 50-55%"),
    ("stenosis", "70% stenosis of the proximal LAD"),
    ("blood_pressure", "blood pressure 138/84 mmHg"),
    ("heart_rate", "heart rate 72 bpm"),
    ("gradient", "peak gradient 45 mmHg"),
    ("dose", "metoprolol 25 mg"),
    ("measurement", "LVEDD 5.6 mm"),
])
def test_clinical_patterns(kind, text):
    """Test each clinical value pattern"""
    assert CLINICAL_VALUE_PATTERNS[kind].search(text)


def test_cited_statement_is_sourced(letter_sources):
    """Test a citation inside the sentence covers it"""
    result = _validate("LVEF is 45% {{SOURCE:doc-echo-1:LVEF 45%}}.", letter_sources)

    assert result.total_statements == 1
    assert result.sourced_statements == 1
    assert result.coverage == 100.0
    assert result.is_valid


def test_citation_after_full_stop(letter_sources):
    """Test a marker after the full stop still belongs to the sentence"""
    text = "BP 138/84. {{SOURCE:transcript-1:Blood pressure today 138/84}}"
    result = _validate(text, letter_sources)

    assert result.sourced_statements == 1
    assert result.statements[0].end == len(text)


def test_uncited_statement(letter_sources):
    """Test uncited numbers are reported with their matched text"""
    result = _validate("Mean gradient 28 mmHg.", letter_sources)

    assert not result.is_valid
    assert result.coverage == 0.0
    assert result.unsourced_statements == ["Mean gradient 28 mmHg"]


def test_coverage_threshold(letter_sources):
    """Test coverage against default and explicit thresholds"""
    text = "LVEF is 45% {{SOURCE:doc-echo-1:LVEF 45%}}. Mean gradient 28 mmHg."

    assert _validate(text, letter_sources).coverage == 50.0
    assert not _validate(text, letter_sources).is_valid
    assert _validate(text, letter_sources, threshold=50.0).is_valid


def test_no_statements_is_full_coverage(letter_sources):
    """Test letters without clinical numbers pass"""
    result = _validate("Thank you for seeing this pleasant patient.", letter_sources)
    assert result.total_statements == 0
    assert result.coverage == 100.0
    assert result.is_valid


def test_marker_text_not_a_statement(letter_sources):
    """Test numbers inside citation markers are ignored"""
    result = _validate("Echo reviewed {{SOURCE:doc-echo-1:LVEF 45%}}.", letter_sources)
    assert result.total_statements == 0


def test_decimal_point_does_not_end_sentence():
    """Test a decimal point is not a sentence boundary"""
    text = "EF 45% with valve area 1.1 cm2."
    statements = find_clinical_statements(text)

    assert statements[0].excerpt == "EF 45%"
    assert statements[0].end == len(text)
    assert statements[1].excerpt == "1.1 cm2"


def test_newline_ends_statement():
    """Test a newline ends the statement before it"""
    text = "BP 120/80\nReview in clinic"
    statements = find_clinical_statements(text)
    assert len(statements) == 1
    assert statements[0].end == text.index("\n")
    assert not statements[0].sourced


def test_overlapping_matches_merged():
    """Test one value matched by several patterns counts once"""
    statements = find_clinical_statements("LVEF 45%.")
    assert len(statements) == 1
    assert statements[0].excerpt == "LVEF 45%"
