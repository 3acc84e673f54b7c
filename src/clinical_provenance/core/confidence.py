# ============================================================================
# src/clinical_provenance/core/confidence.py
# ============================================================================
"""
Confidence Scoring and Aggregation

Provides utilities for:
- Clamping raw model confidence into [0, 1]
- Determining confidence levels
- Weighted overall confidence over optional fields
- Completeness ratio against an expected field count
"""

from typing import Any, Iterable, Optional
from dataclasses import dataclass
import math

from ..config.thresholds_config import threshold_settings
from .context.enums import ConfidenceLevel


def clamp(raw: Any) -> float:
    """
    Clamp a raw confidence value to [0, 1].

    Non-numeric input (including booleans, strings and NaN) scores 0.
    """
    if isinstance(raw, bool) or not isinstance(raw, (int, float)):
        return 0.0
    if math.isnan(raw):
        return 0.0
    if raw < 0:
        return 0.0
    if raw > 1:
        return 1.0
    return float(raw)


@dataclass
class ConfidenceThresholds:
    """Confidence level thresholds"""
    high: float = 0.85
    medium: float = 0.70

    @classmethod
    def from_settings(cls) -> "ConfidenceThresholds":
        return cls(
            high=threshold_settings.HIGH_CONFIDENCE,
            medium=threshold_settings.MEDIUM_CONFIDENCE,
        )

    def get_level(self, score: float) -> ConfidenceLevel:
        """
        Get confidence level from score.

        Args:
            score: Confidence score (0.0-1.0)

        Returns:
            ConfidenceLevel.HIGH, MEDIUM or LOW
        """
        if score >= self.high:
            return ConfidenceLevel.HIGH
        elif score >= self.medium:
            return ConfidenceLevel.MEDIUM
        else:
            return ConfidenceLevel.LOW


def confidence_level(score: float, thresholds: Optional[ConfidenceThresholds] = None) -> ConfidenceLevel:
    """Map a score to high / medium / low; configured bands unless given."""
    return (thresholds or ConfidenceThresholds.from_settings()).get_level(score)


@dataclass(frozen=True)
class ConfidenceScore:
    """
    A clamped confidence value.

    Build through `ConfidenceScore.of`; the constructor rejects
    anything outside [0, 1].
    """
    value: float

    def __post_init__(self):
        if not isinstance(self.value, float) or not 0.0 <= self.value <= 1.0:
            raise ValueError(f"Confidence must be a float in [0, 1], got {self.value!r}")

    @classmethod
    def of(cls, raw: Any) -> "ConfidenceScore":
        return cls(clamp(raw))

    @property
    def level(self) -> ConfidenceLevel:
        return confidence_level(self.value)


@dataclass(frozen=True)
class WeightedField:
    """One input to weighted_overall."""
    weight: float
    raw_confidence: Any
    present: bool


def weighted_overall(fields: Iterable[WeightedField]) -> ConfidenceScore:
    """
    Weighted mean of confidences over present fields only.

    Weights of absent fields are dropped from the denominator, so a
    single present field scores at its own confidence. Returns 0 when
    nothing is present.
    """
    weighted_sum = 0.0
    total_weight = 0.0
    for f in fields:
        if not f.present or f.weight <= 0:
            continue
        weighted_sum += f.weight * clamp(f.raw_confidence)
        total_weight += f.weight

    if total_weight == 0:
        return ConfidenceScore.of(0.0)
    return ConfidenceScore.of(weighted_sum / total_weight)


def completeness_ratio(extracted: int, expected: int) -> float:
    """
    Crude completeness: extracted / expected, capped at 1.0.

    Floored at 0.1 when anything at all was extracted; 0 otherwise.
    """
    if extracted <= 0 or expected <= 0:
        return 0.0
    return min(1.0, max(0.1, extracted / expected))
