# src/clinical_provenance/core/context/__init__.py

from .enums import (
    ConfidenceLevel,
    JobStatus,
    DocumentType,
    SourceType,
    ValueCategory,
    FlagSeverity,
    FlagType,
    RiskLevel,
)

__all__ = [
    "ConfidenceLevel",
    "JobStatus",
    "DocumentType",
    "SourceType",
    "ValueCategory",
    "FlagSeverity",
    "FlagType",
    "RiskLevel",
]
