# ============================================================================
# src/clinical_provenance/utils/exceptions.py
# ============================================================================
"""
Custom exceptions for the clinical provenance engine.
"""

from typing import Optional


class ClinicalProvenanceError(Exception):
    """Base exception for all clinical provenance errors."""
    pass


class ExtractionError(ClinicalProvenanceError):
    """Error while turning source material into structured data."""
    pass


class ParseError(ExtractionError):
    """Model response does not contain the expected JSON shape."""

    NO_OBJECT = "no_object"
    NOT_AN_OBJECT = "not_an_object"

    def __init__(self, message: str, code: str):
        super().__init__(message)
        self.code = code

    @classmethod
    def no_object(cls) -> "ParseError":
        return cls("no object found", cls.NO_OBJECT)

    @classmethod
    def not_an_object(cls) -> "ParseError":
        return cls("not an object", cls.NOT_AN_OBJECT)


class DataError(ExtractionError):
    """Document has nothing a model could extract from."""

    def __init__(self, message: str, document_id: Optional[str] = None):
        super().__init__(message)
        self.document_id = document_id


class ValidationError(ClinicalProvenanceError):
    """A field value violates its domain constraint."""

    def __init__(self, field_name: str, message: str):
        super().__init__(f"{field_name}: {message}")
        self.field_name = field_name


class LockConflictError(ClinicalProvenanceError):
    """Another worker already holds the extraction job."""

    def __init__(self, document_id: str):
        super().__init__(f"Extraction already in progress for document {document_id}")
        self.document_id = document_id


class ModelInvocationError(ClinicalProvenanceError):
    """Error calling the language model."""
    pass


class TransientModelError(ModelInvocationError):
    """Retryable model failure (timeout, connection, throttling)."""
    pass


class TerminalModelError(ModelInvocationError):
    """Model failure that will not succeed on retry."""

    def __init__(self, message: str, attempts: int = 1):
        super().__init__(message)
        self.attempts = attempts


class ProvenanceIntegrityError(ClinicalProvenanceError):
    """Stored content hash does not match the provenance record."""
    pass
