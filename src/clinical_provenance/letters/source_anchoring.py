# ============================================================================
# src/clinical_provenance/letters/source_anchoring.py
# ============================================================================
"""
Source Anchor Parser

Generated letters cite their sources inline:

    LVEF is 45% {{SOURCE:doc-echo-1:LVEF 45%}}

Each marker is resolved against the source registry by exact id:
- resolved   -> SourceAnchor, confidence = lexical overlap of the excerpt
- unresolved -> kept as an unverified anchor (the model cited a source
                that does not exist)

The clean text drops the markers and nothing else.
"""

from dataclasses import dataclass, field
from typing import Any, Dict, Iterable, List, Optional, Tuple
import json
import logging
import re

from ..core.context.enums import SourceType

logger = logging.getLogger(__name__)

SOURCE_MARKER_PATTERN = re.compile(r"\{\{SOURCE:([^:}]+):([^}]+)\}\}")

# Words shorter than this do not count toward excerpt overlap
MIN_OVERLAP_WORD_LENGTH = 4


@dataclass(frozen=True)
class SourceRecord:
    """One piece of source material a letter may cite."""
    source_id: str
    source_type: SourceType
    text: str
    name: Optional[str] = None
    extracted_data: Optional[Dict[str, Any]] = None

    @property
    def search_text(self) -> str:
        """Lowercased text used for excerpt matching."""
        parts = [self.text or ""]
        if self.extracted_data:
            parts.append(json.dumps(self.extracted_data, default=str, sort_keys=True))
        return "\n".join(parts).lower()


class SourceRegistry:
    """
    Read-only lookup of letter sources by id.

    Holds at most one transcript, any number of documents and at most one
    user-input record.
    """

    def __init__(
        self,
        transcript: Optional[SourceRecord] = None,
        documents: Optional[Iterable[SourceRecord]] = None,
        user_input: Optional[SourceRecord] = None,
    ):
        self.transcript = transcript
        self.documents: List[SourceRecord] = list(documents or [])
        self.user_input = user_input

        self._by_id: Dict[str, SourceRecord] = {}
        for record in self.records():
            if record.source_id in self._by_id:
                logger.warning(f"Duplicate source id {record.source_id}; keeping the first")
                continue
            self._by_id[record.source_id] = record

    @classmethod
    def from_texts(
        cls,
        transcript: Optional[Tuple[str, str]] = None,
        documents: Optional[Iterable[Tuple[str, str]]] = None,
        user_input: Optional[Tuple[str, str]] = None,
    ) -> "SourceRegistry":
        """Build from (source_id, text) pairs."""
        return cls(
            transcript=SourceRecord(transcript[0], SourceType.TRANSCRIPT, transcript[1]) if transcript else None,
            documents=[SourceRecord(sid, SourceType.DOCUMENT, text) for sid, text in (documents or [])],
            user_input=SourceRecord(user_input[0], SourceType.USER_INPUT, user_input[1]) if user_input else None,
        )

    def records(self) -> List[SourceRecord]:
        records = []
        if self.transcript is not None:
            records.append(self.transcript)
        records.extend(self.documents)
        if self.user_input is not None:
            records.append(self.user_input)
        return records

    def get(self, source_id: str) -> Optional[SourceRecord]:
        return self._by_id.get(source_id)

    def __contains__(self, source_id: str) -> bool:
        return source_id in self._by_id

    def __len__(self) -> int:
        return len(self._by_id)

    def contains_text(self, text: str) -> bool:
        """Case-insensitive containment in any source."""
        needle = text.lower()
        return any(needle in record.search_text for record in self.records())


@dataclass(frozen=True)
class SourceAnchor:
    """A citation marker's span in the marked-up letter text."""
    id: str
    start: int
    end: int
    source_type: SourceType
    source_id: str
    excerpt: str
    confidence: float
    verified: bool
    marker_text: str

    def __post_init__(self):
        if self.end <= self.start:
            raise ValueError(f"Anchor {self.id} has an empty range [{self.start}, {self.end})")

    def overlaps(self, start: int, end: int) -> bool:
        return self.start < end and start < self.end

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "start": self.start,
            "end": self.end,
            "source_type": self.source_type.value,
            "source_id": self.source_id,
            "excerpt": self.excerpt,
            "confidence": self.confidence,
            "verified": self.verified,
        }


@dataclass(frozen=True)
class AnchorParseResult:
    anchors: List[SourceAnchor] = field(default_factory=list)
    unverified_anchors: List[SourceAnchor] = field(default_factory=list)
    clean_text: str = ""

    @property
    def all_anchors(self) -> List[SourceAnchor]:
        return sorted(self.anchors + self.unverified_anchors, key=lambda a: a.start)

    @property
    def has_unverified(self) -> bool:
        return bool(self.unverified_anchors)


def excerpt_overlap(excerpt: str, source_text: str) -> float:
    """
    1.0 when the excerpt occurs in the source (case-insensitive), else the
    fraction of its longer words that do.
    """
    excerpt_lower = excerpt.lower().strip()
    haystack = source_text.lower()
    if not excerpt_lower:
        return 0.0
    if excerpt_lower in haystack:
        return 1.0

    words = [w for w in excerpt_lower.split() if len(w) >= MIN_OVERLAP_WORD_LENGTH]
    if not words:
        return 0.0
    found = sum(1 for w in words if w in haystack)
    return found / len(words)


def _guess_source_type(source_id: str) -> SourceType:
    lowered = source_id.lower()
    if lowered.startswith(("transcript", "recording")):
        return SourceType.TRANSCRIPT
    if lowered.startswith("user"):
        return SourceType.USER_INPUT
    return SourceType.DOCUMENT


def parse_source_anchors(text: str, registry: SourceRegistry) -> AnchorParseResult:
    """
    Collect citation markers left to right and resolve them.

    Ranges refer to `text` (the marked-up letter), so anchors are
    regenerated whenever the letter text changes.
    """
    anchors: List[SourceAnchor] = []
    unverified: List[SourceAnchor] = []

    for index, match in enumerate(SOURCE_MARKER_PATTERN.finditer(text)):
        source_id = match.group(1).strip()
        excerpt = match.group(2).strip()
        record = registry.get(source_id)

        if record is None:
            unverified.append(SourceAnchor(
                id=f"anchor-{index}",
                start=match.start(),
                end=match.end(),
                source_type=_guess_source_type(source_id),
                source_id=source_id,
                excerpt=excerpt,
                confidence=0.0,
                verified=False,
                marker_text=match.group(0),
            ))
            continue

        anchors.append(SourceAnchor(
            id=f"anchor-{index}",
            start=match.start(),
            end=match.end(),
            source_type=record.source_type,
            source_id=source_id,
            excerpt=excerpt,
            confidence=excerpt_overlap(excerpt, record.search_text),
            verified=True,
            marker_text=match.group(0),
        ))

    if unverified:
        logger.warning(
            f"{len(unverified)} citation(s) reference unknown sources: "
            f"{sorted({a.source_id for a in unverified})}"
        )
    logger.debug(f"Parsed {len(anchors)} source anchors")

    return AnchorParseResult(
        anchors=anchors,
        unverified_anchors=unverified,
        clean_text=strip_source_markers(text),
    )


def strip_source_markers(text: str) -> str:
    """Remove citation markers; every other character is kept as is."""
    return SOURCE_MARKER_PATTERN.sub("", text)


def anchors_for_range(anchors: Iterable[SourceAnchor], start: int, end: int) -> List[SourceAnchor]:
    """Anchors whose span overlaps [start, end)."""
    return [a for a in anchors if a.overlaps(start, end)]


def count_anchors_by_type(anchors: Iterable[SourceAnchor]) -> Dict[str, int]:
    counts = {"transcript": 0, "document": 0, "user_input": 0, "total": 0}
    for anchor in anchors:
        if anchor.source_type == SourceType.TRANSCRIPT:
            counts["transcript"] += 1
        elif anchor.source_type == SourceType.DOCUMENT:
            counts["document"] += 1
        else:
            counts["user_input"] += 1
        counts["total"] += 1
    return counts


def _citations(count: int) -> str:
    return f"{count} citation{'s' if count != 1 else ''}"


def generate_source_summary(anchors: Iterable[SourceAnchor]) -> str:
    """One-line citation summary for reviewers."""
    counts = count_anchors_by_type(anchors)

    parts = []
    if counts["transcript"]:
        parts.append(f"Transcript ({_citations(counts['transcript'])})")
    if counts["document"]:
        parts.append(f"Documents ({_citations(counts['document'])})")
    if counts["user_input"]:
        parts.append(f"User Input ({_citations(counts['user_input'])})")

    if not parts:
        return "No sources cited"
    return "Sources used: " + ", ".join(parts)
