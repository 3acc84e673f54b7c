# ============================================================================
# FILE: tests/unit/test_provenance.py
# ============================================================================
"""
Tests for provenance records, canonical hashing and the report
"""

from dataclasses import replace

import pytest

from src.clinical_provenance.core.context.enums import FlagSeverity, FlagType, ValueCategory
from src.clinical_provenance.core.context.review_items import HallucinationFlag, VerifiableValue
from src.clinical_provenance.core.provenance import (
    ContentEdit,
    ProvenanceRecorder,
    Reviewer,
    SourceFile,
    calculate_content_diff,
    calculate_percent_changed,
    canonical_serialize,
    compute_content_hash,
    format_provenance_report,
    require_intact,
    verify_provenance,
)
from src.clinical_provenance.utils.exceptions import ProvenanceIntegrityError

DRAFT = "Dear Dr Brown,\nLVEF is 45%.\nKind regards"
FINAL = "Dear Dr Brown,\nLVEF is 45 percent.\nKind regards\nDr Green"


@pytest.fixture
def reviewer():
    return Reviewer(id="u-7", name="Dr Green", email="green@example.org")


@pytest.fixture
def record(reviewer, audit_logger):
    values = [
        VerifiableValue("v1", ValueCategory.CARDIAC_FUNCTION, "LVEF", "45", "%", critical=True, verified=True),
        VerifiableValue("v2", ValueCategory.MEDICATION, "Metoprolol", "25", "mg"),
    ]
    flags = [
        HallucinationFlag("hallucination-0", FlagType.UNSUPPORTED_DATE, FlagSeverity.WARNING,
                          "05/06/2024", "Specific date '05/06/2024' not found in sources"),
    ]
    recorder = ProvenanceRecorder(audit_logger=audit_logger)
    return recorder.record(
        letter_id="letter-1",
        draft=DRAFT,
        final=FINAL,
        primary_model="llama3.1:70b",
        critic_model="llama3.1:8b",
        patient_id="p-1",
        reviewer=reviewer,
        review_duration_ms=90000,
        values=values,
        flags=flags,
        verification_rate=0.5,
        hallucination_risk_score=10,
        source_files=[SourceFile("doc-echo-1", "document", "echo.pdf")],
        generated_at="2024-03-14T09:00:00+00:00",
        approved_at="2024-03-14T09:30:00+00:00",
        input_tokens=12345,
        output_tokens=678,
        generation_duration_ms=2500,
    )


class TestCanonicalSerialization:

    def test_sorted_compact(self):
        """Test keys sorted at every depth with compact separators"""
        data = {"b": "é", "a": {"d": 2.0, "c": [1.5]}}
        assert canonical_serialize(data) == '{"a":{"c":[1.5],"d":2},"b":"é"}'

    def test_known_digest(self):
        """Test the digest is SHA-256 over UTF-8"""
        data = {"b": "é", "a": {"d": 2, "c": [1.5]}}
        assert compute_content_hash(data) == "1e63b2de639325f756705c4032e6fcc64dedab49fcd21eb647af52f5b88fed49"

    def test_key_order_independent(self):
        """Test logically equal data hashes the same"""
        assert compute_content_hash({"x": 1, "y": [1, 2]}) == compute_content_hash({"y": [1, 2], "x": 1.0})

    def test_non_finite_rejected(self):
        """Test NaN and infinity cannot be serialized"""
        with pytest.raises(ValueError):
            canonical_serialize({"score": float("nan")})
        with pytest.raises(ValueError):
            canonical_serialize({"score": float("inf")})


class TestPercentChanged:

    def test_no_draft(self):
        assert calculate_percent_changed("", "anything") == 100.0

    def test_identical(self):
        assert calculate_percent_changed("same", "same") == 0.0

    def test_positional(self):
        """Test positional matches over the longer text"""
        assert calculate_percent_changed("abcd", "abXd") == 25.0
        assert calculate_percent_changed("abc", "abcdef") == 50.0
        assert calculate_percent_changed("abc", "abd") == 33.3


def test_content_diff():
    """Test line edits carry character indexes"""
    edits = calculate_content_diff(
        "Line one\nLine two\nLine three",
        "Line one\nLine 2\nLine three\nSigned",
        timestamp="t",
    )

    assert [(e.type, e.index) for e in edits] == [("modification", 9), ("addition", 29)]
    assert edits[0].original_text == "Line two"
    assert edits[0].new_text == "Line 2"
    assert edits[1].new_text == "Signed"
    assert calculate_content_diff("a\nb", "a") == [ContentEdit("deletion", 2, original_text="b")]


def test_record_fields(record):
    """Test the assembled record"""
    assert record.content_diff.original == DRAFT
    assert record.content_diff.final == FINAL
    assert [e.type for e in record.edits] == ["modification", "addition"]
    assert record.edits[0].timestamp == "2024-03-14T09:30:00+00:00"

    data = record.to_dict()
    assert data["patient"] == {"id": "p-1"}
    assert data["reviewing_physician"]["email"] == "green@example.org"
    assert data["extracted_values"][0]["verified"] is True


def test_record_defaults(reviewer):
    """Test missing model and patient become 'unknown'"""
    record = ProvenanceRecorder().record(
        letter_id="letter-2", draft="", final="Final text", primary_model=None, reviewer=reviewer,
        review_duration_ms=0, values=[], flags=[], verification_rate=1.0, hallucination_risk_score=0,
    )
    assert record.primary_model == "unknown"
    assert record.patient_id == "unknown"
    assert record.content_diff.percent_changed == 100.0


def test_explicit_edits_sorted(reviewer):
    """Test supplied edits are ordered by index"""
    edits = [ContentEdit("addition", 40, new_text="b"), ContentEdit("deletion", 3, original_text="a")]
    record = ProvenanceRecorder().record(
        letter_id="letter-3", draft="x", final="y", primary_model="m", reviewer=reviewer,
        review_duration_ms=0, values=[], flags=[], verification_rate=1.0, hallucination_risk_score=0,
        edits=edits,
    )
    assert [e.index for e in record.edits] == [3, 40]


def test_audit_event_has_hash_not_content(record, audit_logger):
    """Test the audit event carries the hash and counts only"""
    event = audit_logger.get_trail("letter-1")[0]

    assert event["event"] == "letter.provenance_recorded"
    assert event["metadata"]["content_hash"] == record.content_hash
    assert event["metadata"]["value_count"] == 2
    assert "LVEF" not in str(event["metadata"])


def test_integrity(record):
    """Test tamper detection against the stored hash"""
    stored = record.content_hash
    assert verify_provenance(record, stored)
    require_intact(record, stored)

    tampered = replace(record, verification_rate=1.0)
    assert not verify_provenance(tampered, stored)
    with pytest.raises(ProvenanceIntegrityError):
        require_intact(tampered, stored)


def test_report(record):
    """Test the fixed report sections"""
    report = format_provenance_report(record)
    lines = report.splitlines()

    assert lines[0] == "=" * 80
    assert lines[1] == "LETTER PROVENANCE REPORT"
    assert lines[-2] == "END OF REPORT"
    for heading in ("AI MODELS USED:", "SOURCE MATERIALS:", "CLINICAL VALUES EXTRACTED:",
                    "HALLUCINATION CHECKS:", "REVIEW PROCESS:", "QUALITY METRICS:"):
        assert heading in lines

    assert "  Critic: llama3.1:8b" in lines
    assert "  Input Tokens: 12,345" in lines
    assert "  Generation Time: 2.50s" in lines
    assert "  - DOCUMENT: echo.pdf" in lines
    assert "  Verified: 1 (50.0%)" in lines
    assert "    [VERIFIED] LVEF: 45 %" in lines
    assert "    [NOT VERIFIED] Metoprolol: 25 mg" in lines
    assert "  Review Duration: 1.5 minutes" in lines
    assert "  Verification Rate: 50.0%" in lines
    assert format_provenance_report(record) == report
