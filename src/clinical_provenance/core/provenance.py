# ============================================================================
# src/clinical_provenance/core/provenance.py
# ============================================================================
"""
Provenance Recorder

Builds the immutable audit artifact for an approved letter:
- models, token counts and generation time
- source files the letter was generated from
- the final clinical values and hallucination flags
- reviewer, review time, edits and a draft/final diff summary
- verification rate and hallucination risk score

Content hash:
    SHA-256 over the canonical serialization (JSON, keys sorted at every
    depth, compact separators, UTF-8, no NaN/Infinity, integral floats
    written as integers). The same logical record always hashes the same.
"""

from dataclasses import dataclass, field
from decimal import Decimal, ROUND_HALF_UP
from typing import Any, Dict, Iterable, List, Optional, Tuple
from datetime import datetime, timezone
import hashlib
import json
import logging
import math

from ..config.logging_config import logging_settings
from ..utils.exceptions import ProvenanceIntegrityError
from .audit import AuditLogger
from .context.review_items import HallucinationFlag, VerifiableValue

logger = logging.getLogger(__name__)

REPORT_WIDTH = 80


@dataclass(frozen=True)
class SourceFile:
    id: str
    type: str               # "recording" | "document"
    name: str
    created_at: Optional[str] = None

    def to_dict(self) -> Dict[str, Any]:
        return {"id": self.id, "type": self.type, "name": self.name, "created_at": self.created_at}


@dataclass(frozen=True)
class Reviewer:
    id: str
    name: str
    email: str

    def to_dict(self) -> Dict[str, Any]:
        return {"id": self.id, "name": self.name, "email": self.email}


@dataclass(frozen=True)
class ContentEdit:
    type: str               # "addition" | "deletion" | "modification"
    index: int
    original_text: Optional[str] = None
    new_text: Optional[str] = None
    timestamp: Optional[str] = None

    def to_dict(self) -> Dict[str, Any]:
        return {
            "type": self.type,
            "index": self.index,
            "original_text": self.original_text,
            "new_text": self.new_text,
            "timestamp": self.timestamp,
        }


@dataclass(frozen=True)
class ContentDiff:
    original: str
    final: str
    percent_changed: float

    def to_dict(self) -> Dict[str, Any]:
        return {"original": self.original, "final": self.final, "percent_changed": self.percent_changed}


@dataclass(frozen=True)
class ProvenanceRecord:
    letter_id: str
    generated_at: str
    approved_at: str
    primary_model: str
    critic_model: Optional[str]
    patient_id: str
    reviewer: Reviewer
    review_duration_ms: int
    content_diff: ContentDiff
    verification_rate: float
    hallucination_risk_score: int
    input_tokens: int = 0
    output_tokens: int = 0
    generation_duration_ms: int = 0
    source_files: Tuple[SourceFile, ...] = field(default_factory=tuple)
    extracted_values: Tuple[VerifiableValue, ...] = field(default_factory=tuple)
    hallucination_checks: Tuple[HallucinationFlag, ...] = field(default_factory=tuple)
    edits: Tuple[ContentEdit, ...] = field(default_factory=tuple)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "letter_id": self.letter_id,
            "generated_at": self.generated_at,
            "approved_at": self.approved_at,
            "primary_model": self.primary_model,
            "critic_model": self.critic_model,
            "patient": {"id": self.patient_id},
            "reviewing_physician": self.reviewer.to_dict(),
            "review_duration_ms": self.review_duration_ms,
            "content_diff": self.content_diff.to_dict(),
            "verification_rate": self.verification_rate,
            "hallucination_risk_score": self.hallucination_risk_score,
            "input_tokens": self.input_tokens,
            "output_tokens": self.output_tokens,
            "generation_duration_ms": self.generation_duration_ms,
            "source_files": [s.to_dict() for s in self.source_files],
            "extracted_values": [v.to_dict() for v in self.extracted_values],
            "hallucination_checks": [f.to_dict() for f in self.hallucination_checks],
            "edits": [e.to_dict() for e in self.edits],
        }

    @property
    def content_hash(self) -> str:
        return compute_content_hash(self)


# ----------------------------------------------------------------------
# Canonical serialization and hashing
# ----------------------------------------------------------------------
def _canonical_value(value: Any) -> Any:
    if isinstance(value, dict):
        return {str(k): _canonical_value(v) for k, v in value.items()}
    if isinstance(value, (list, tuple)):
        return [_canonical_value(v) for v in value]
    if isinstance(value, float):
        if not math.isfinite(value):
            raise ValueError(f"Non-finite number in provenance record: {value}")
        if value.is_integer():
            return int(value)
    return value


def canonical_serialize(data: Any) -> str:
    if hasattr(data, "to_dict"):
        data = data.to_dict()
    return json.dumps(
        _canonical_value(data),
        sort_keys=True,
        separators=(",", ":"),
        ensure_ascii=False,
        allow_nan=False,
    )


def compute_content_hash(data: Any) -> str:
    """SHA-256 hex digest of the canonical serialization."""
    return hashlib.sha256(canonical_serialize(data).encode("utf-8")).hexdigest()


def verify_provenance(record: ProvenanceRecord, expected_hash: str) -> bool:
    """True when the record still hashes to the stored value."""
    actual = compute_content_hash(record)
    if actual != expected_hash:
        logger.error(f"Provenance hash mismatch for letter {record.letter_id}")
        return False
    return True


def require_intact(record: ProvenanceRecord, expected_hash: str) -> None:
    """
    Raises:
        ProvenanceIntegrityError: record does not match the stored hash
    """
    if not verify_provenance(record, expected_hash):
        raise ProvenanceIntegrityError(f"Provenance record for letter {record.letter_id} has been modified")


# ----------------------------------------------------------------------
# Content changes
# ----------------------------------------------------------------------
def calculate_percent_changed(draft: str, final: str) -> float:
    """
    Share of characters that differ position by position, relative to the
    longer text. 100 when there was no draft.
    """
    if not draft:
        return 100.0

    longest = max(len(draft), len(final))
    matches = sum(1 for a, b in zip(draft, final) if a == b)
    changed = 100.0 - (matches / longest) * 100.0
    return float(Decimal(repr(changed)).quantize(Decimal("0.1"), rounding=ROUND_HALF_UP))


def calculate_content_diff(draft: str, final: str, timestamp: Optional[str] = None) -> List[ContentEdit]:
    """Line-by-line edits between draft and final, ordered by index."""
    draft_lines = draft.split("\n")
    final_lines = final.split("\n")
    edits: List[ContentEdit] = []
    index = 0

    for position in range(max(len(draft_lines), len(final_lines))):
        old = draft_lines[position] if position < len(draft_lines) else None
        new = final_lines[position] if position < len(final_lines) else None

        if old is None:
            edits.append(ContentEdit("addition", index, new_text=new, timestamp=timestamp))
            index += len(new) + 1
        elif new is None:
            edits.append(ContentEdit("deletion", index, original_text=old, timestamp=timestamp))
            index += len(old) + 1
        elif old == new:
            index += len(old) + 1
        else:
            edits.append(ContentEdit("modification", index, original_text=old, new_text=new, timestamp=timestamp))
            index += max(len(old), len(new)) + 1

    return edits


# ----------------------------------------------------------------------
# Recorder
# ----------------------------------------------------------------------
class ProvenanceRecorder:
    """
    Assembles provenance records at approval time.

    Only reads the letter and review state it is given; the optional audit
    logger receives the hash and counts, never the content.
    """

    def __init__(self, audit_logger: Optional[AuditLogger] = None):
        self.audit_logger = audit_logger if logging_settings.ENABLE_AUDIT_TRAIL else None

    def record(
        self,
        letter_id: str,
        draft: str,
        final: str,
        primary_model: Optional[str],
        reviewer: Reviewer,
        review_duration_ms: int,
        values: Iterable[VerifiableValue],
        flags: Iterable[HallucinationFlag],
        verification_rate: float,
        hallucination_risk_score: int,
        critic_model: Optional[str] = None,
        patient_id: Optional[str] = None,
        source_files: Iterable[SourceFile] = (),
        generated_at: Optional[str] = None,
        approved_at: Optional[str] = None,
        input_tokens: int = 0,
        output_tokens: int = 0,
        generation_duration_ms: int = 0,
        edits: Optional[Iterable[ContentEdit]] = None,
    ) -> ProvenanceRecord:
        now = datetime.now(timezone.utc).isoformat()
        approved_at = approved_at or now

        if edits is None:
            edits = calculate_content_diff(draft, final, timestamp=approved_at)

        record = ProvenanceRecord(
            letter_id=letter_id,
            generated_at=generated_at or now,
            approved_at=approved_at,
            primary_model=primary_model or "unknown",
            critic_model=critic_model,
            patient_id=patient_id or "unknown",
            reviewer=reviewer,
            review_duration_ms=review_duration_ms,
            content_diff=ContentDiff(
                original=draft,
                final=final,
                percent_changed=calculate_percent_changed(draft, final),
            ),
            verification_rate=verification_rate,
            hallucination_risk_score=hallucination_risk_score,
            input_tokens=input_tokens,
            output_tokens=output_tokens,
            generation_duration_ms=generation_duration_ms,
            source_files=tuple(source_files),
            extracted_values=tuple(values),
            hallucination_checks=tuple(flags),
            edits=tuple(sorted(edits, key=lambda e: e.index)),
        )
        content_hash = record.content_hash

        logger.info(
            f"Provenance recorded for letter {letter_id}: "
            f"{len(record.source_files)} sources, {len(record.extracted_values)} values, "
            f"{len(record.hallucination_checks)} flags, {len(record.edits)} edits, "
            f"{record.content_diff.percent_changed}% changed"
        )

        if self.audit_logger is not None:
            self.audit_logger.record("letter.provenance_recorded", {
                "content_hash": content_hash,
                "source_count": len(record.source_files),
                "value_count": len(record.extracted_values),
                "flag_count": len(record.hallucination_checks),
                "edit_count": len(record.edits),
                "percent_changed": record.content_diff.percent_changed,
                "verification_rate": record.verification_rate,
                "hallucination_risk_score": record.hallucination_risk_score,
            }, resource_id=letter_id)

        return record


# ----------------------------------------------------------------------
# Report
# ----------------------------------------------------------------------
def format_provenance_report(record: ProvenanceRecord) -> str:
    """Fixed-section plain-text report; a pure function of the record."""
    bar = "=" * REPORT_WIDTH
    lines = [bar, "LETTER PROVENANCE REPORT", bar, ""]

    lines.append(f"Letter ID: {record.letter_id}")
    lines.append(f"Generated: {record.generated_at}")
    lines.append(f"Approved: {record.approved_at}")
    lines.append("")

    lines.append("AI MODELS USED:")
    lines.append(f"  Primary: {record.primary_model}")
    if record.critic_model:
        lines.append(f"  Critic: {record.critic_model}")
    lines.append(f"  Input Tokens: {record.input_tokens:,}")
    lines.append(f"  Output Tokens: {record.output_tokens:,}")
    lines.append(f"  Generation Time: {record.generation_duration_ms / 1000:.2f}s")
    lines.append("")

    lines.append("SOURCE MATERIALS:")
    for source in record.source_files:
        lines.append(f"  - {source.type.upper()}: {source.name}")
    lines.append("")

    values = record.extracted_values
    verified = sum(1 for v in values if v.verified)
    lines.append("CLINICAL VALUES EXTRACTED:")
    lines.append(f"  Total: {len(values)}")
    if values:
        lines.append(f"  Verified: {verified} ({verified / len(values) * 100:.1f}%)")
    else:
        lines.append("  Verified: 0")
    for value in values:
        status = "[VERIFIED]" if value.verified else "[NOT VERIFIED]"
        unit = f" {value.unit}" if value.unit else ""
        lines.append(f"    {status} {value.name}: {value.value}{unit}")
    lines.append("")

    checks = record.hallucination_checks
    lines.append("HALLUCINATION CHECKS:")
    lines.append(f"  Total Flags: {len(checks)}")
    lines.append(f"  Critical: {sum(1 for f in checks if f.is_critical)}")
    lines.append(f"  Dismissed: {sum(1 for f in checks if f.dismissed)}")
    lines.append(f"  Hallucination Risk Score: {record.hallucination_risk_score}/100")
    lines.append("")

    lines.append("REVIEW PROCESS:")
    lines.append(f"  Physician: {record.reviewer.name} ({record.reviewer.email})")
    lines.append(f"  Review Duration: {record.review_duration_ms / 60000:.1f} minutes")
    lines.append(f"  Content Changed: {record.content_diff.percent_changed:.1f}%")
    lines.append(f"  Edits Made: {len(record.edits)}")
    lines.append("")

    lines.append("QUALITY METRICS:")
    lines.append(f"  Verification Rate: {record.verification_rate * 100:.1f}%")
    lines.append(f"  Hallucination Risk: {record.hallucination_risk_score}/100")
    lines.append("")

    lines.extend([bar, "END OF REPORT", bar])
    return "\n".join(lines)
