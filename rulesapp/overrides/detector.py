"""
Heuristic detection of cross-jurisdiction rule overrides.

Proposals are only suggestions: they are stored as Proposed and have no
effect on ranking until a reviewer confirms them.
"""
from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Dict, List, Optional

from rulesapp.core.types import Chunk, OverrideProposal, ScopeLevel
from rulesapp.ingestion.patterns import (
    BARE_REFERENCE,
    PREFIXED_REFERENCE,
    implicit_patterns,
    normalize_rule_number,
    override_patterns,
)

logger = logging.getLogger(__name__)

SCOPE_PRECEDENCE: Dict[ScopeLevel, int] = {
    ScopeLevel.REGIONAL: 3,
    ScopeLevel.PROVINCIAL: 2,
    ScopeLevel.NATIONAL: 1,
}

BASE_CONFIDENCE = 0.7
NEARBY_RULE_BONUS = 0.1
MAX_CONFIDENCE = 0.95
IMPLICIT_CONFIDENCE = 0.5
NEARBY_WINDOW = 60  # chars after the phrase searched for a rule number


@dataclass(frozen=True)
class Detection:
    confidence: float
    reason: str


class OverrideDetector:
    def detect(self, chunks: List[Chunk]) -> List[OverrideProposal]:
        """Propose overrides between chunks that share a canonical rule key.

        Keyless chunks and rule keys seen only once are ignored. A flagged
        chunk targets every other chunk of its group with strictly lower
        scope precedence.
        """
        groups: Dict[str, List[Chunk]] = {}
        for c in chunks:
            if c.canonical_rule_key:
                groups.setdefault(c.canonical_rule_key, []).append(c)

        proposals: List[OverrideProposal] = []
        for rule_key, members in groups.items():
            if len(members) < 2:
                continue
            for source in members:
                detection = self.analyze(source)
                if detection is None:
                    continue
                for target in self._targets(source, members):
                    proposals.append(
                        OverrideProposal(
                            source_rule_key=rule_key,
                            source_chunk_id=source.chunk_id,
                            source_scope=source.scope_level,
                            target_rule_key=rule_key,
                            target_chunk_id=target.chunk_id,
                            target_scope=target.scope_level,
                            confidence=detection.confidence,
                            detection_reason=detection.reason,
                        )
                    )

        logger.info("Override detection: %d rule groups, %d proposals", len(groups), len(proposals))
        return proposals

    def analyze(self, chunk: Chunk) -> Optional[Detection]:
        text = chunk.text
        for rp in override_patterns(chunk.language):
            m = rp.pattern.search(text)
            if not m:
                continue
            confidence = BASE_CONFIDENCE + rp.confidence_delta
            if BARE_REFERENCE.search(text[m.end(): m.end() + NEARBY_WINDOW]):
                confidence += NEARBY_RULE_BONUS
            return Detection(
                confidence=round(min(MAX_CONFIDENCE, confidence), 4),
                reason=f"Text contains override pattern: '{m.group(0)}'",
            )

        if chunk.scope_level is not ScopeLevel.NATIONAL:
            for rp in implicit_patterns(chunk.language):
                m = rp.pattern.search(text)
                if m:
                    return Detection(
                        confidence=IMPLICIT_CONFIDENCE,
                        reason=f"Text contains implicit override indicator: '{m.group(0)}'",
                    )
        return None

    @staticmethod
    def _targets(source: Chunk, members: List[Chunk]) -> List[Chunk]:
        rank = SCOPE_PRECEDENCE[source.scope_level]
        return [
            c for c in members
            if c.chunk_id != source.chunk_id and SCOPE_PRECEDENCE[c.scope_level] < rank
        ]


def extract_referenced_rules(text: str) -> List[str]:
    """Rule numbers mentioned in ``text``, first-seen order.

    "Cette règle remplace la règle 1.04" -> ["1.04"]
    """
    seen: List[str] = []
    for rx in (PREFIXED_REFERENCE, BARE_REFERENCE):
        for m in rx.finditer(text):
            num = normalize_rule_number(m.group(1))
            if num not in seen:
                seen.append(num)
    return seen
