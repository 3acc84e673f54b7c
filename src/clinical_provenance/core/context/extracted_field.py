# ============================================================================
# src/clinical_provenance/core/context/extracted_field.py
# ============================================================================
"""
Single extracted field representation
- Normalized value (or None when absent)
- Confidence score derived through the confidence model
"""

from dataclasses import dataclass
from typing import Any, Generic, Optional, TypeVar

from ..confidence import ConfidenceScore

T = TypeVar("T")

@dataclass(frozen=True)
class ExtractedField(Generic[T]):
    value: Optional[T]
    confidence: ConfidenceScore

    @classmethod
    def absent(cls) -> "ExtractedField[Any]":
        return cls(value=None, confidence=ConfidenceScore.of(0.0))

    @property
    def present(self) -> bool:
        return self.value is not None

    def to_dict(self) -> dict:
        value = self.value
        if hasattr(value, "to_dict"):
            value = value.to_dict()
        elif isinstance(value, tuple):
            value = [v.to_dict() if hasattr(v, "to_dict") else v for v in value]
        return {"value": value, "confidence": self.confidence.value}
