# ============================================================================
# src/clinical_provenance/letters/verification.py
# ============================================================================
"""
Verification Session

Review state for one letter draft:
- verify / verify_all: mark clinical values as checked against source
- dismiss: clear a hallucination flag, only with a stated reason

A letter can be approved once every critical value is verified and every
critical flag is dismissed. Warnings and non-critical values never block.

Verified values and dismissed flags stay that way for the session.
"""

from dataclasses import dataclass, field, replace
from datetime import datetime, timezone
from typing import Callable, Dict, Iterable, List, Optional
import logging

from ..core.context.enums import FlagSeverity
from ..core.context.review_items import HallucinationFlag, VerifiableValue
from .hallucination import HallucinationRisk, calculate_hallucination_risk

logger = logging.getLogger(__name__)

# Below this rate approval gets a warning
RECOMMENDED_VERIFICATION_RATE = 0.8
# Above this score approval gets a warning
RECOMMENDED_MAX_RISK_SCORE = 70


def _utc_now() -> str:
    return datetime.now(timezone.utc).isoformat()


@dataclass(frozen=True)
class ApprovalCheck:
    is_valid: bool
    errors: List[str] = field(default_factory=list)
    warnings: List[str] = field(default_factory=list)


class VerificationSession:
    """
    Verification state machine for a letter under review.

    Args:
        values: clinical values quoted in the letter
        flags: hallucination flags raised for the letter
        clock: returns the timestamp recorded on verify/dismiss
    """

    def __init__(
        self,
        values: Iterable[VerifiableValue] = (),
        flags: Iterable[HallucinationFlag] = (),
        clock: Optional[Callable[[], str]] = None,
    ):
        self._values: Dict[str, VerifiableValue] = {v.id: v for v in values}
        self._flags: Dict[str, HallucinationFlag] = {f.id: f for f in flags}
        self._clock = clock or _utc_now

    @property
    def values(self) -> List[VerifiableValue]:
        return list(self._values.values())

    @property
    def flags(self) -> List[HallucinationFlag]:
        return list(self._flags.values())

    def get_value(self, value_id: str) -> VerifiableValue:
        return self._values[value_id]

    def get_flag(self, flag_id: str) -> HallucinationFlag:
        return self._flags[flag_id]

    # ------------------------------------------------------------------
    # Actions
    # ------------------------------------------------------------------
    def verify(self, value_id: str, user_id: Optional[str] = None) -> VerifiableValue:
        """
        Mark one value verified. Already-verified values are left untouched.

        Raises:
            KeyError: unknown value id
        """
        value = self._values[value_id]
        if value.verified:
            return value

        verified = replace(value, verified=True, verified_by=user_id, verified_at=self._clock())
        self._values[value_id] = verified
        logger.debug(f"Verified value {value_id}")
        return verified

    def verify_all(self, user_id: Optional[str] = None) -> int:
        """Verify every value; returns how many changed."""
        changed = 0
        for value_id, value in list(self._values.items()):
            if not value.verified:
                self.verify(value_id, user_id)
                changed += 1
        if changed:
            logger.info(f"Verified {changed} values in bulk")
        return changed

    def dismiss(self, flag_id: str, reason: Optional[str], user_id: Optional[str] = None) -> bool:
        """
        Dismiss a flag with the reviewer's reason.

        Returns False, with no state change, when the reason is blank or the
        flag is already dismissed.

        Raises:
            KeyError: unknown flag id
        """
        flag = self._flags[flag_id]
        if not reason or not reason.strip():
            logger.info(f"Dismissal of {flag_id} rejected: reason required")
            return False
        if flag.dismissed:
            return False

        self._flags[flag_id] = replace(
            flag,
            dismissed=True,
            dismissed_reason=reason.strip(),
            dismissed_by=user_id,
            dismissed_at=self._clock(),
        )
        logger.info(f"Dismissed {flag.severity.value} flag {flag_id}")
        return True

    # ------------------------------------------------------------------
    # Queries
    # ------------------------------------------------------------------
    def pending_critical_values(self) -> List[VerifiableValue]:
        return [v for v in self._values.values() if v.critical and not v.verified]

    def active_critical_flags(self) -> List[HallucinationFlag]:
        return [f for f in self._flags.values() if f.is_critical and not f.dismissed]

    def can_approve(self) -> bool:
        return not self.pending_critical_values() and not self.active_critical_flags()

    @property
    def verification_rate(self) -> float:
        """Fraction of values verified; 1.0 when there is nothing to verify."""
        if not self._values:
            return 1.0
        return sum(1 for v in self._values.values() if v.verified) / len(self._values)

    def hallucination_risk(self) -> HallucinationRisk:
        return calculate_hallucination_risk(self._flags.values())

    def blocking_reasons(self) -> List[str]:
        reasons = []
        pending = self.pending_critical_values()
        if pending:
            names = ", ".join(v.name for v in pending)
            reasons.append(f"{len(pending)} critical clinical values not verified: {names}")
        flags = self.active_critical_flags()
        if flags:
            reasons.append(f"{len(flags)} critical hallucination flags not addressed")
        return reasons

    def check_approval(self) -> ApprovalCheck:
        """Blocking errors plus advisory warnings for the reviewer."""
        errors = self.blocking_reasons()
        warnings = []

        open_warnings = [
            f for f in self._flags.values()
            if f.severity == FlagSeverity.WARNING and not f.dismissed
        ]
        if open_warnings:
            warnings.append(f"{len(open_warnings)} warning-level hallucination flags remain")

        rate = self.verification_rate
        if rate < RECOMMENDED_VERIFICATION_RATE:
            warnings.append(
                f"Low verification rate: {rate * 100:.1f}% "
                f"(recommended: >{RECOMMENDED_VERIFICATION_RATE * 100:.0f}%)"
            )

        risk = self.hallucination_risk()
        if risk.score > RECOMMENDED_MAX_RISK_SCORE:
            warnings.append(
                f"High hallucination risk score: {risk.score}/100 "
                f"(recommended: <{RECOMMENDED_MAX_RISK_SCORE})"
            )

        return ApprovalCheck(is_valid=not errors, errors=errors, warnings=warnings)

    def progress(self) -> Dict[str, int]:
        values = self._values.values()
        flags = self._flags.values()
        return {
            "values_total": len(self._values),
            "values_verified": sum(1 for v in values if v.verified),
            "critical_values_pending": len(self.pending_critical_values()),
            "flags_total": len(self._flags),
            "flags_dismissed": sum(1 for f in flags if f.dismissed),
            "critical_flags_active": len(self.active_critical_flags()),
        }
