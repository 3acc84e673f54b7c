# ============================================================================
# FILE: tests/unit/test_confidence.py
# ============================================================================
"""
Unit tests for the confidence model
"""

import math

import pytest

from src.clinical_provenance.config.thresholds_config import threshold_settings
from src.clinical_provenance.core.confidence import (
    ConfidenceScore,
    ConfidenceThresholds,
    WeightedField,
    clamp,
    completeness_ratio,
    confidence_level,
    weighted_overall,
)
from src.clinical_provenance.core.context.enums import ConfidenceLevel


@pytest.mark.parametrize("raw,expected", [
    (1.5, 1.0),
    (-0.2, 0.0),
    (0.42, 0.42),
    (0, 0.0),
    (1, 1.0),
])
def test_clamp_bounds(raw, expected):
    """Test clamp keeps scores in [0, 1]"""
    assert clamp(raw) == expected


@pytest.mark.parametrize("raw", ["0.9", None, True, float("nan"), [0.5]])
def test_clamp_non_numeric_scores_zero(raw):
    """Test non-numeric confidence scores 0"""
    assert clamp(raw) == 0.0


def test_confidence_levels():
    """Test level thresholds"""
    assert confidence_level(0.95) == ConfidenceLevel.HIGH
    assert confidence_level(0.85) == ConfidenceLevel.HIGH
    assert confidence_level(0.75) == ConfidenceLevel.MEDIUM
    assert confidence_level(0.70) == ConfidenceLevel.MEDIUM
    assert confidence_level(0.5) == ConfidenceLevel.LOW


def test_custom_thresholds():
    """Test level thresholds can be tuned"""
    strict = ConfidenceThresholds(high=0.95, medium=0.9)
    assert strict.get_level(0.92) == ConfidenceLevel.MEDIUM
    assert confidence_level(0.92, strict) == ConfidenceLevel.MEDIUM



def test_levels_follow_settings(monkeypatch):
    """Test the default bands come from HIGH_CONFIDENCE / MEDIUM_CONFIDENCE"""
    monkeypatch.setattr(threshold_settings, "HIGH_CONFIDENCE", 0.95)
    monkeypatch.setattr(threshold_settings, "MEDIUM_CONFIDENCE", 0.9)

    assert ConfidenceThresholds.from_settings() == ConfidenceThresholds(high=0.95, medium=0.9)
    assert confidence_level(0.92) == ConfidenceLevel.MEDIUM
    assert ConfidenceScore.of(0.85).level == ConfidenceLevel.LOW

def test_confidence_score_rejects_direct_out_of_range():
    """Test scores outside [0, 1] cannot be constructed directly"""
    with pytest.raises(ValueError):
        ConfidenceScore(1.5)
    with pytest.raises(ValueError):
        ConfidenceScore(-0.1)


def test_confidence_score_of_clamps():
    """Test ConfidenceScore.of goes through clamp"""
    assert ConfidenceScore.of(1.7).value == 1.0
    assert ConfidenceScore.of("high").value == 0.0
    assert ConfidenceScore.of(0.9).level == ConfidenceLevel.HIGH


def test_weighted_overall_all_present():
    """Test identity weighting example"""
    overall = weighted_overall([
        WeightedField(0.40, 1.0, True),
        WeightedField(0.35, 0.8, True),
        WeightedField(0.25, 0.6, True),
    ])
    assert overall.value == pytest.approx(0.83)


def test_weighted_overall_renormalizes_over_present():
    """Test a single present field scores at its own confidence"""
    overall = weighted_overall([
        WeightedField(0.40, 0.8, True),
        WeightedField(0.35, 0.9, False),
        WeightedField(0.25, 0.9, False),
    ])
    assert overall.value == pytest.approx(0.8)


def test_weighted_overall_nothing_present():
    """Test zero when no field is present"""
    overall = weighted_overall([WeightedField(0.5, 0.9, False)])
    assert overall.value == 0.0
    assert weighted_overall([]).value == 0.0


def test_weighted_overall_clamps_inputs():
    """Test raw confidences are clamped before weighting"""
    overall = weighted_overall([WeightedField(1.0, 3.0, True), WeightedField(1.0, -1.0, True)])
    assert overall.value == pytest.approx(0.5)


def test_completeness_ratio():
    """Test completeness cap and floor"""
    assert completeness_ratio(0, 25) == 0.0
    assert completeness_ratio(1, 25) == 0.1
    assert completeness_ratio(10, 25) == pytest.approx(0.4)
    assert completeness_ratio(40, 25) == 1.0
    assert not math.isnan(completeness_ratio(3, 0))
