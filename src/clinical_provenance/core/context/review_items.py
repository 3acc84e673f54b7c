# ============================================================================
# src/clinical_provenance/core/context/review_items.py
# ============================================================================
"""
Items a clinician reviews before a letter can be approved:
- VerifiableValue: a clinical value quoted in the letter
- HallucinationFlag: a span the checker could not tie to a source

Both are immutable; the verification session replaces them on change.
"""

from dataclasses import dataclass
from typing import Any, Dict, Optional

from .enums import FlagSeverity, FlagType, ValueCategory


@dataclass(frozen=True)
class VerifiableValue:
    id: str
    category: ValueCategory
    name: str
    value: str
    unit: Optional[str] = None
    source_anchor_id: Optional[str] = None
    critical: bool = False
    verified: bool = False
    verified_by: Optional[str] = None
    verified_at: Optional[str] = None

    @property
    def display(self) -> str:
        return f"{self.name}: {self.value}{self.unit or ''}"

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "category": self.category.value,
            "name": self.name,
            "value": self.value,
            "unit": self.unit,
            "source_anchor_id": self.source_anchor_id,
            "critical": self.critical,
            "verified": self.verified,
            "verified_by": self.verified_by,
            "verified_at": self.verified_at,
        }


@dataclass(frozen=True)
class HallucinationFlag:
    id: str
    flag_type: FlagType
    severity: FlagSeverity
    flagged_text: str
    reason: str
    start: Optional[int] = None
    end: Optional[int] = None
    dismissed: bool = False
    dismissed_reason: Optional[str] = None
    dismissed_by: Optional[str] = None
    dismissed_at: Optional[str] = None

    @property
    def is_critical(self) -> bool:
        return self.severity == FlagSeverity.CRITICAL

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "flag_type": self.flag_type.value,
            "severity": self.severity.value,
            "flagged_text": self.flagged_text,
            "reason": self.reason,
            "start": self.start,
            "end": self.end,
            "dismissed": self.dismissed,
            "dismissed_reason": self.dismissed_reason,
            "dismissed_by": self.dismissed_by,
            "dismissed_at": self.dismissed_at,
        }
