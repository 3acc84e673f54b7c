# ============================================================================
# src/clinical_provenance/core/context/enums.py
# ============================================================================
"""
Shared Enums
- Confidence levels
- Extraction job status and document types
- Letter source types, value categories, flag severities
"""

from enum import Enum

class ConfidenceLevel(str, Enum):
    HIGH = "high"       # >= 0.85
    MEDIUM = "medium"   # 0.70 - 0.85
    LOW = "low"         # < 0.70

class JobStatus(str, Enum):
    PENDING = "PENDING"
    PROCESSING = "PROCESSING"
    COMPLETE = "COMPLETE"
    FAILED = "FAILED"

class DocumentType(str, Enum):
    ECHO_REPORT = "ECHO_REPORT"
    ANGIOGRAM_REPORT = "ANGIOGRAM_REPORT"
    LAB_RESULT = "LAB_RESULT"
    REFERRAL = "REFERRAL"
    OTHER = "OTHER"
    REFERRAL_LETTER = "REFERRAL_LETTER"   # full referral-letter extraction

class SourceType(str, Enum):
    TRANSCRIPT = "transcript"
    DOCUMENT = "document"
    USER_INPUT = "user-input"

class ValueCategory(str, Enum):
    CARDIAC_FUNCTION = "cardiac_function"
    CORONARY_DISEASE = "coronary_disease"
    VALVULAR = "valvular"
    MEDICATION = "medication"
    PROCEDURAL = "procedural"

class FlagSeverity(str, Enum):
    WARNING = "warning"
    CRITICAL = "critical"

class FlagType(str, Enum):
    UNSOURCED_VALUE = "unsourced_value"
    UNSUPPORTED_DATE = "unsupported_date"
    VESSEL_FINDING = "vessel_finding"
    MEDICATION_CHANGE = "medication_change"
    DEVICE_SIZE = "device_size"

class RiskLevel(str, Enum):
    CRITICAL = "critical"
    HIGH = "high"
    MEDIUM = "medium"
    LOW = "low"
