# ============================================================================
# src/clinical_provenance/config/thresholds_config.py
# ============================================================================
"""
Confidence Thresholds
- Confidence levels
- Review escalation
- Source coverage
- Patient identity weights
"""

from pydantic import Field
from pydantic_settings import BaseSettings

class ThresholdSettings(BaseSettings):
    HIGH_CONFIDENCE: float = Field(
        default=0.85,
        ge=0.0, le=1.0,
        description="Scores at or above this are 'high'"
    )
    MEDIUM_CONFIDENCE: float = Field(
        default=0.70,
        ge=0.0, le=1.0,
        description="Scores at or above this (and below high) are 'medium'"
    )
    UNSCORED_FIELD_CONFIDENCE: float = Field(
        default=0.75,
        ge=0.0, le=1.0,
        description="Confidence given to a present field when the model reported none"
    )
    LOW_YIELD_COMPLETENESS: float = Field(
        default=0.3,
        ge=0.0, le=1.0,
        description="Completeness below this flags the extraction for review"
    )
    LOW_CONFIDENCE_REVIEW: float = Field(
        default=0.70,
        ge=0.0, le=1.0,
        description="Overall confidence below this flags the extraction for review"
    )
    SOURCE_COVERAGE_THRESHOLD: float = Field(
        default=100.0,
        ge=0.0, le=100.0,
        description="Minimum percentage of clinical statements that must carry a source"
    )

    # Patient identity weighting; a tunable policy, not a derived model
    IDENTITY_NAME_WEIGHT: float = Field(default=0.40, ge=0.0)
    IDENTITY_DOB_WEIGHT: float = Field(default=0.35, ge=0.0)
    IDENTITY_IDENTIFIER_WEIGHT: float = Field(default=0.25, ge=0.0)

threshold_settings = ThresholdSettings()
