# ============================================================================
# FILE: tests/unit/test_verification.py
# ============================================================================
"""
Unit tests for the letter verification session
"""

import pytest

from src.clinical_provenance.core.context.enums import FlagSeverity, FlagType, ValueCategory
from src.clinical_provenance.core.context.review_items import HallucinationFlag, VerifiableValue
from src.clinical_provenance.letters.verification import VerificationSession

FIXED_TIME = "2024-03-14T09:30:00+00:00"


@pytest.fixture
def session():
    values = [
        VerifiableValue("v1", ValueCategory.CARDIAC_FUNCTION, "LVEF", "45", "%", critical=True),
        VerifiableValue("v2", ValueCategory.CORONARY_DISEASE, "LAD stenosis", "70", "%", critical=True),
        VerifiableValue("v3", ValueCategory.MEDICATION, "Metoprolol", "25", "mg"),
    ]
    flags = [
        HallucinationFlag("hallucination-0", FlagType.VESSEL_FINDING, FlagSeverity.CRITICAL,
                          "RCA 90%", "Vessel finding for RCA lacks source citation"),
        HallucinationFlag("hallucination-1", FlagType.UNSUPPORTED_DATE, FlagSeverity.WARNING,
                          "05/06/2024", "Specific date '05/06/2024' not found in sources"),
    ]
    return VerificationSession(values, flags, clock=lambda: FIXED_TIME)


def test_initial_state_blocks_approval(session):
    """Test pending critical items block approval"""
    assert not session.can_approve()
    assert session.blocking_reasons() == [
        "2 critical clinical values not verified: LVEF, LAD stenosis",
        "1 critical hallucination flags not addressed",
    ]


def test_verify(session):
    """Test verifying a value records who and when"""
    value = session.verify("v1", user_id="dr-brown")

    assert value.verified
    assert value.verified_by == "dr-brown"
    assert value.verified_at == FIXED_TIME
    assert session.get_value("v1").verified


def test_verify_is_monotonic(session):
    """Test re-verifying keeps the first record"""
    session.verify("v1", user_id="dr-brown")
    again = session.verify("v1", user_id="dr-green")
    assert again.verified_by == "dr-brown"


def test_verify_unknown(session):
    """Test unknown ids raise"""
    with pytest.raises(KeyError):
        session.verify("nope")
    with pytest.raises(KeyError):
        session.dismiss("nope", "reason")


def test_verify_all(session):
    """Test bulk verification counts only changes"""
    session.verify("v1")
    assert session.verify_all(user_id="dr-brown") == 2
    assert session.verify_all() == 0
    assert session.verification_rate == 1.0


def test_dismiss_requires_reason(session):
    """Test blank reasons are rejected without a state change"""
    assert not session.dismiss("hallucination-0", "")
    assert not session.dismiss("hallucination-0", "   ")
    assert not session.dismiss("hallucination-0", None)
    assert not session.get_flag("hallucination-0").dismissed


def test_dismiss(session):
    """Test dismissal stores the stripped reason once"""
    assert session.dismiss("hallucination-0", "  Confirmed in cath report  ", user_id="dr-brown")
    flag = session.get_flag("hallucination-0")

    assert flag.dismissed
    assert flag.dismissed_reason == "Confirmed in cath report"
    assert flag.dismissed_at == FIXED_TIME

    assert not session.dismiss("hallucination-0", "second reason")
    assert session.get_flag("hallucination-0").dismissed_reason == "Confirmed in cath report"


def test_approval_after_review(session):
    """Test critical items cleared, warnings left, approval allowed"""
    session.verify("v1")
    session.verify("v2")
    session.dismiss("hallucination-0", "Confirmed in cath report")

    assert session.can_approve()
    check = session.check_approval()
    assert check.is_valid
    assert check.errors == []
    assert "1 warning-level hallucination flags remain" in check.warnings
    # 2 of 3 verified
    assert "Low verification rate: 66.7% (recommended: >80%)" in check.warnings


def test_high_risk_warning():
    """Test the risk score warning above the recommended maximum"""
    flags = [
        HallucinationFlag(f"hallucination-{i}", FlagType.DEVICE_SIZE, FlagSeverity.CRITICAL, "x", "r")
        for i in range(3)
    ]
    check = VerificationSession(flags=flags).check_approval()

    assert not check.is_valid
    assert "High hallucination risk score: 90/100 (recommended: <70)" in check.warnings


def test_empty_session():
    """Test nothing to review means approvable at full rate"""
    session = VerificationSession()
    assert session.can_approve()
    assert session.verification_rate == 1.0
    assert session.check_approval().warnings == []


def test_progress(session):
    """Test the progress counters"""
    session.verify("v3")
    session.dismiss("hallucination-1", "Date from referral letter")

    assert session.progress() == {
        "values_total": 3,
        "values_verified": 1,
        "critical_values_pending": 2,
        "flags_total": 2,
        "flags_dismissed": 1,
        "critical_flags_active": 1,
    }
    assert session.hallucination_risk().score == 30
