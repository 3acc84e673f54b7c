# ============================================================================
# FILE: tests/unit/test_hallucination.py
# ============================================================================
"""
Tests for rule-based hallucination checks and risk scoring
"""

from src.clinical_provenance.core.context.enums import FlagSeverity, FlagType, RiskLevel, ValueCategory
from src.clinical_provenance.core.context.review_items import HallucinationFlag, VerifiableValue
from src.clinical_provenance.letters.hallucination import (
    active_flags,
    calculate_hallucination_risk,
    detect_hallucinations,
    format_hallucination_report,
    recommend_approval,
)
from src.clinical_provenance.letters.source_anchoring import parse_source_anchors


def _detect(text, registry, values=()):
    anchors = parse_source_anchors(text, registry).all_anchors
    return detect_hallucinations(text, registry, anchors, values)


def _flag(index, severity, dismissed=False):
    return HallucinationFlag(
        id=f"hallucination-{index}",
        flag_type=FlagType.UNSOURCED_VALUE,
        severity=severity,
        flagged_text="45%",
        reason="Clinical value 'LVEF' lacks source citation",
        dismissed=dismissed,
    )


def test_sourced_letter_has_no_flags(letter_sources):
    """Test a fully cited letter passes every check"""
    text = (
        "LAD 70% stenosis {{SOURCE:doc-angio-1:LAD 70% stenosis proximal}}. "
        "Treated with a 3.0 x 18 mm stent {{SOURCE:doc-angio-1:3.0 x 18 mm stent}}. "
        "We started metoprolol 25 mg. Angiogram on 12/03/2024."
    )
    assert _detect(text, letter_sources) == []


def test_fabricated_content_flagged(letter_sources):
    """Test each check raises its flag, in check order"""
    text = (
        "Patient reviewed on 05/06/2024. RCA 90% occlusion noted. "
        "We increased atorvastatin to 80 mg. A 3.5 x 22 mm stent was placed."
    )
    flags = _detect(text, letter_sources)

    assert [f.flag_type for f in flags] == [
        FlagType.UNSUPPORTED_DATE,
        FlagType.VESSEL_FINDING,
        FlagType.MEDICATION_CHANGE,
        FlagType.DEVICE_SIZE,
    ]
    assert [f.id for f in flags] == ["hallucination-0", "hallucination-1", "hallucination-2", "hallucination-3"]
    assert flags[0].severity == FlagSeverity.WARNING
    assert all(f.is_critical for f in flags[1:])
    assert flags[1].flagged_text == "RCA 90%"
    assert text[flags[3].start:flags[3].end] == "3.5 x 22 mm stent"


def test_date_near_citation_not_flagged(letter_sources):
    """Test a nearby citation covers a date absent from sources"""
    text = "Seen 01/01/2023 {{SOURCE:transcript-1:exertional chest tightness}}."
    assert _detect(text, letter_sources) == []


def test_vessel_citation_must_name_vessel(letter_sources):
    """Test a nearby citation about something else does not cover a vessel finding"""
    flags = _detect("LAD 70% stenosis {{SOURCE:doc-echo-1:LVEF 45%}}.", letter_sources)
    assert [f.flag_type for f in flags] == [FlagType.VESSEL_FINDING]


def test_medication_dose_must_match(letter_sources):
    """Test a known drug at an unknown dose is flagged"""
    flags = _detect("We started metoprolol 50 mg.", letter_sources)
    assert [f.flag_type for f in flags] == [FlagType.MEDICATION_CHANGE]


def test_unsourced_values(letter_sources):
    """Test values without anchors are flagged by their criticality"""
    values = [
        VerifiableValue("v1", ValueCategory.CARDIAC_FUNCTION, "LVEF", "45", "%", critical=True),
        VerifiableValue("v2", ValueCategory.CARDIAC_FUNCTION, "Heart rate", "72", "bpm"),
        VerifiableValue("v3", ValueCategory.VALVULAR, "AV area", "1.1", "cm2", source_anchor_id="anchor-0"),
        VerifiableValue("v4", ValueCategory.VALVULAR, "Mean gradient", "28", "mmHg"),
    ]
    flags = _detect("LVEF 45% today. HR 72 bpm.", letter_sources, values)

    assert len(flags) == 3
    assert flags[0].severity == FlagSeverity.CRITICAL
    assert flags[0].flagged_text == "45%"
    assert flags[1].severity == FlagSeverity.WARNING
    assert flags[1].flagged_text == "72 bpm"
    # not in the text: flagged without a location
    assert flags[2].flagged_text == "Mean gradient: 28mmHg"
    assert flags[2].start is None


class TestRisk:

    def test_no_flags(self):
        """Test an empty flag list is low risk"""
        risk = calculate_hallucination_risk([])
        assert risk.score == 0
        assert risk.level == RiskLevel.LOW
        assert recommend_approval([]).should_approve

    def test_levels(self):
        """Test level thresholds by score and critical count"""
        warning, critical = FlagSeverity.WARNING, FlagSeverity.CRITICAL

        assert calculate_hallucination_risk([_flag(0, warning)]).level == RiskLevel.LOW
        assert calculate_hallucination_risk([_flag(0, warning), _flag(1, warning)]).level == RiskLevel.MEDIUM
        assert calculate_hallucination_risk([_flag(0, critical)]).level == RiskLevel.MEDIUM
        assert calculate_hallucination_risk([_flag(0, critical), _flag(1, warning)]).level == RiskLevel.HIGH
        assert calculate_hallucination_risk([_flag(0, critical), _flag(1, critical)]).level == RiskLevel.CRITICAL

    def test_score_capped(self):
        """Test the score never exceeds 100"""
        flags = [_flag(i, FlagSeverity.CRITICAL) for i in range(4)]
        risk = calculate_hallucination_risk(flags)
        assert risk.score == 100
        assert risk.critical_count == 4

    def test_dismissed_flags_ignored(self):
        """Test dismissed flags do not count toward risk"""
        flags = [_flag(0, FlagSeverity.CRITICAL), _flag(1, FlagSeverity.CRITICAL, dismissed=True)]
        risk = calculate_hallucination_risk(flags)

        assert risk.score == 30
        assert risk.flag_count == 2
        assert [f.id for f in active_flags(flags)] == ["hallucination-0"]

    def test_recommendations(self):
        """Test approval recommendations per level"""
        critical = [_flag(i, FlagSeverity.CRITICAL) for i in range(3)]
        recommendation = recommend_approval(critical)
        assert not recommendation.should_approve
        assert recommendation.reason == "3 critical hallucination(s) detected"

        high = recommend_approval([_flag(0, FlagSeverity.CRITICAL), _flag(1, FlagSeverity.WARNING)])
        assert not high.should_approve
        assert high.reason == "High hallucination risk (score: 40)"

        medium = recommend_approval([_flag(0, FlagSeverity.CRITICAL)])
        assert medium.should_approve
        assert medium.action_required == "Review flagged sections before final approval"


def test_format_report():
    """Test the reviewer report text"""
    assert format_hallucination_report([]) == (
        "No potential hallucinations detected. All clinical statements are sourced."
    )

    report = format_hallucination_report([_flag(0, FlagSeverity.CRITICAL), _flag(1, FlagSeverity.WARNING)])
    lines = report.splitlines()
    assert lines[0] == "Hallucination Risk: HIGH (score: 40/100)"
    assert "Critical Flags (1):" in lines
    assert "Warnings (1):" in lines
    assert "- Clinical value 'LVEF' lacks source citation: \"45%\"" in lines
