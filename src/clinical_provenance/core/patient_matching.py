# ============================================================================
# src/clinical_provenance/core/patient_matching.py
# ============================================================================
"""
Patient Matching

Matches extracted identifiers against existing patient records.

Match strength:
- IDENTIFIER: Medicare number or MRN equal (whitespace ignored)
- NAME_AND_DOB: full name (case and spacing ignored) and date of birth equal
- a name alone never matches

The strongest match across all candidates wins. Among equally strong
matches the earliest candidate wins.
"""

from dataclasses import dataclass
from enum import IntEnum
from typing import Iterable, Optional

from ..extractors.base import normalize_date
from ..utils.exceptions import ValidationError


class MatchStrength(IntEnum):
    NAME_AND_DOB = 1
    IDENTIFIER = 2


@dataclass(frozen=True)
class PatientCandidate:
    patient_id: str
    full_name: str
    date_of_birth: Optional[str] = None
    medicare: Optional[str] = None
    mrn: Optional[str] = None


@dataclass(frozen=True)
class PatientMatch:
    candidate: PatientCandidate
    strength: MatchStrength


def _normalize_identifier(value: Optional[str]) -> Optional[str]:
    if not value:
        return None
    compact = "".join(value.split()).upper()
    return compact or None


def _normalize_name(value: Optional[str]) -> Optional[str]:
    if not value:
        return None
    collapsed = " ".join(value.split()).lower()
    return collapsed or None


def _normalize_dob(value: Optional[str]) -> Optional[str]:
    try:
        return normalize_date(value)
    except ValidationError:
        return None


def _strength(
    candidate: PatientCandidate,
    name: Optional[str],
    dob: Optional[str],
    medicare: Optional[str],
    mrn: Optional[str],
) -> Optional[MatchStrength]:
    if medicare and _normalize_identifier(candidate.medicare) == medicare:
        return MatchStrength.IDENTIFIER
    if mrn and _normalize_identifier(candidate.mrn) == mrn:
        return MatchStrength.IDENTIFIER
    if name and dob and _normalize_name(candidate.full_name) == name and _normalize_dob(candidate.date_of_birth) == dob:
        return MatchStrength.NAME_AND_DOB
    return None


def match_patient(
    candidates: Iterable[PatientCandidate],
    name: Optional[str] = None,
    date_of_birth: Optional[str] = None,
    medicare: Optional[str] = None,
    mrn: Optional[str] = None,
) -> Optional[PatientMatch]:
    """Best match for the extracted identifiers, or None."""
    name = _normalize_name(name)
    dob = _normalize_dob(date_of_birth)
    medicare = _normalize_identifier(medicare)
    mrn = _normalize_identifier(mrn)

    best: Optional[PatientMatch] = None
    for candidate in candidates:
        strength = _strength(candidate, name, dob, medicare, mrn)
        if strength is None:
            continue
        if best is None or strength > best.strength:
            best = PatientMatch(candidate=candidate, strength=strength)
            if strength == MatchStrength.IDENTIFIER:
                break
    return best
