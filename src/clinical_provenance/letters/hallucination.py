# ============================================================================
# src/clinical_provenance/letters/hallucination.py
# ============================================================================
"""
Hallucination Checks

Rule-based checks over the marked-up letter text. Each check raises a flag
for content that cannot be tied to a source:

1. Clinical values with no source anchor (critical when the value is)
2. Specific dates that appear in no source and sit far from any citation
3. Vessel stenosis findings with no nearby citation naming the vessel
4. Medication dose changes whose drug or dose appears in no source
5. Stent sizes with no nearby citation carrying the dimensions

Risk score: 30 per critical flag, 10 per warning, capped at 100.
Dismissed flags do not count.
"""

from dataclasses import dataclass
from typing import Iterable, List, Optional, Tuple
import logging
import re

from ..core.context.enums import FlagSeverity, FlagType, RiskLevel
from ..core.context.review_items import HallucinationFlag, VerifiableValue
from .source_anchoring import SourceAnchor, SourceRegistry

logger = logging.getLogger(__name__)


DATE_PATTERN = re.compile(
    r"\b(\d{1,2}\s+(?:Jan|Feb|Mar|Apr|May|Jun|Jul|Aug|Sep|Oct|Nov|Dec)[a-z]*\s+\d{4}|\d{1,2}/\d{1,2}/\d{4})\b",
    re.IGNORECASE,
)
VESSEL_FINDING_PATTERN = re.compile(
    r"\b(LMCA|LAD|LCx|RCA|D1|D2|OM1|OM2)\b[^.{]*?(\d+%)",
    re.IGNORECASE,
)
MEDICATION_CHANGE_PATTERN = re.compile(
    r"\b(?:started|commenced|increased|decreased|ceased)\s+([a-z]+)\s+(?:to\s+)?(\d+(?:\.\d+)?\s*mg)",
    re.IGNORECASE,
)
STENT_SIZE_PATTERN = re.compile(
    r"(\d+(?:\.\d+)?)\s*(?:x|×)\s*(\d+)\s*mm\s+stent",
    re.IGNORECASE,
)

# Character distances between a finding and the citation that covers it
DATE_ANCHOR_DISTANCE = 100
FINDING_ANCHOR_DISTANCE = 200

CRITICAL_FLAG_POINTS = 30
WARNING_FLAG_POINTS = 10


@dataclass(frozen=True)
class HallucinationRisk:
    score: int
    level: RiskLevel
    flag_count: int
    critical_count: int


@dataclass(frozen=True)
class ApprovalRecommendation:
    should_approve: bool
    reason: str
    action_required: str


class _FlagCollector:
    def __init__(self):
        self.flags: List[HallucinationFlag] = []

    def add(self, flag_type: FlagType, severity: FlagSeverity, text: str, reason: str,
            start: Optional[int] = None, end: Optional[int] = None):
        self.flags.append(HallucinationFlag(
            id=f"hallucination-{len(self.flags)}",
            flag_type=flag_type,
            severity=severity,
            flagged_text=text,
            reason=reason,
            start=start,
            end=end,
        ))


def _near(anchor: SourceAnchor, position: int, distance: int) -> bool:
    return abs(anchor.start - position) < distance


def _locate_value(text: str, value: VerifiableValue) -> Optional[Tuple[int, int]]:
    """(start, end) of the value as written in the letter, unit included when present."""
    lowered = text.lower()
    unit = value.unit or ""
    for candidate in (f"{value.value}{unit}", f"{value.value} {unit}".strip(), value.value):
        position = lowered.find(candidate.lower())
        if position != -1:
            return position, position + len(candidate)
    return None


def detect_hallucinations(
    letter_text: str,
    registry: SourceRegistry,
    anchors: Iterable[SourceAnchor],
    values: Iterable[VerifiableValue] = (),
) -> List[HallucinationFlag]:
    """
    Run every check and return the raised flags in check order.

    Args:
        letter_text: letter text with citation markers still in place
        registry: sources the letter was generated from
        anchors: anchors parsed from the same text
        values: clinical values extracted from the letter
    """
    anchors = list(anchors)
    flags = _FlagCollector()

    # 1. Values without a citation
    for value in values:
        if value.source_anchor_id:
            continue
        severity = FlagSeverity.CRITICAL if value.critical else FlagSeverity.WARNING
        span = _locate_value(letter_text, value)
        if span is None:
            flags.add(FlagType.UNSOURCED_VALUE, severity, value.display,
                      f"Clinical value '{value.name}' lacks source citation")
        else:
            start, end = span
            flags.add(FlagType.UNSOURCED_VALUE, severity, letter_text[start:end],
                      f"Clinical value '{value.name}' lacks source citation", start, end)

    # 2. Dates
    for match in DATE_PATTERN.finditer(letter_text):
        date = match.group(1)
        if registry.contains_text(date):
            continue
        if any(_near(a, match.start(), DATE_ANCHOR_DISTANCE) for a in anchors):
            continue
        flags.add(FlagType.UNSUPPORTED_DATE, FlagSeverity.WARNING, match.group(0),
                  f"Specific date '{date}' not found in sources", match.start(), match.end())

    # 3. Vessel findings
    for match in VESSEL_FINDING_PATTERN.finditer(letter_text):
        vessel = match.group(1)
        covered = any(
            _near(a, match.start(), FINDING_ANCHOR_DISTANCE) and vessel.lower() in a.excerpt.lower()
            for a in anchors
        )
        if not covered:
            flags.add(FlagType.VESSEL_FINDING, FlagSeverity.CRITICAL, match.group(0),
                      f"Vessel finding for {vessel} lacks source citation", match.start(), match.end())

    # 4. Medication changes
    for match in MEDICATION_CHANGE_PATTERN.finditer(letter_text):
        medication, dose = match.group(1), match.group(2)
        if registry.contains_text(medication) and registry.contains_text(dose):
            continue
        flags.add(FlagType.MEDICATION_CHANGE, FlagSeverity.CRITICAL, match.group(0),
                  f"Medication change '{medication} {dose}' not found in sources", match.start(), match.end())

    # 5. Stent sizes
    for match in STENT_SIZE_PATTERN.finditer(letter_text):
        diameter, length = match.group(1), match.group(2)
        covered = any(
            _near(a, match.start(), FINDING_ANCHOR_DISTANCE) and (diameter in a.excerpt or length in a.excerpt)
            for a in anchors
        )
        if not covered:
            flags.add(FlagType.DEVICE_SIZE, FlagSeverity.CRITICAL, match.group(0),
                      "Stent size specification lacks source citation", match.start(), match.end())

    critical = sum(1 for f in flags.flags if f.is_critical)
    logger.info(f"Hallucination checks complete: {len(flags.flags)} flags ({critical} critical)")
    return flags.flags


def active_flags(flags: Iterable[HallucinationFlag], severity: Optional[FlagSeverity] = None) -> List[HallucinationFlag]:
    """Undismissed flags, optionally of one severity."""
    return [f for f in flags if not f.dismissed and (severity is None or f.severity == severity)]


def calculate_hallucination_risk(flags: Iterable[HallucinationFlag]) -> HallucinationRisk:
    flags = list(flags)
    critical_count = len(active_flags(flags, FlagSeverity.CRITICAL))
    warning_count = len(active_flags(flags, FlagSeverity.WARNING))

    score = min(critical_count * CRITICAL_FLAG_POINTS + warning_count * WARNING_FLAG_POINTS, 100)

    if score >= 60 or critical_count >= 3:
        level = RiskLevel.CRITICAL
    elif score >= 40 or critical_count >= 2:
        level = RiskLevel.HIGH
    elif score >= 20 or critical_count >= 1:
        level = RiskLevel.MEDIUM
    else:
        level = RiskLevel.LOW

    return HallucinationRisk(
        score=score,
        level=level,
        flag_count=len(flags),
        critical_count=critical_count,
    )


def recommend_approval(flags: Iterable[HallucinationFlag]) -> ApprovalRecommendation:
    risk = calculate_hallucination_risk(flags)

    if risk.level == RiskLevel.CRITICAL:
        return ApprovalRecommendation(
            should_approve=False,
            reason=f"{risk.critical_count} critical hallucination(s) detected",
            action_required="Review and correct all critical flags before approval",
        )
    if risk.level == RiskLevel.HIGH:
        return ApprovalRecommendation(
            should_approve=False,
            reason=f"High hallucination risk (score: {risk.score})",
            action_required="Review all flagged sections and verify against sources",
        )
    if risk.level == RiskLevel.MEDIUM:
        return ApprovalRecommendation(
            should_approve=True,
            reason="Moderate hallucination risk, manual review recommended",
            action_required="Review flagged sections before final approval",
        )
    return ApprovalRecommendation(
        should_approve=True,
        reason="Low hallucination risk",
        action_required="Perform standard review",
    )


def format_hallucination_report(flags: Iterable[HallucinationFlag]) -> str:
    flags = list(flags)
    if not flags:
        return "No potential hallucinations detected. All clinical statements are sourced."

    risk = calculate_hallucination_risk(flags)
    lines = [f"Hallucination Risk: {risk.level.value.upper()} (score: {risk.score}/100)", ""]

    for title, severity in (("Critical Flags", FlagSeverity.CRITICAL), ("Warnings", FlagSeverity.WARNING)):
        group = active_flags(flags, severity)
        if not group:
            continue
        lines.append(f"{title} ({len(group)}):")
        for flag in group:
            lines.append(f"- {flag.reason}: \"{flag.flagged_text[:50]}\"")
        lines.append("")

    return "\n".join(lines).rstrip() + "\n"
