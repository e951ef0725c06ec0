"""
Precedence resolution across jurisdiction scopes.

Hits that share a canonical rule key are versions of the same rule. Exactly
one of them is the effective answer (primary): Regional rules of the queried
jurisdiction beat Provincial, which beat National. Relevance score only
breaks ties within the same rank. A human-confirmed override mapping beats
both.
"""
from __future__ import annotations

import logging
from typing import Dict, List, Mapping, Optional, Protocol

from rulesapp.core.types import OverrideMapping, PrecedenceGroup, ScopeLevel, SearchHit

logger = logging.getLogger(__name__)


class OverrideSource(Protocol):
    def confirmed_overrides(self, season_id: str, jurisdiction_id: Optional[str]) -> Mapping[str, OverrideMapping]: ...


def precedence_rank(hit: SearchHit, jurisdiction_id: Optional[str]) -> int:
    """3 = Regional (queried jurisdiction), 2 = Provincial, 1 = National, 0 = not applicable."""
    scope = hit.chunk.scope_level
    if scope is ScopeLevel.REGIONAL:
        if jurisdiction_id and hit.chunk.jurisdiction_id == jurisdiction_id:
            return 3
        return 0
    if scope is ScopeLevel.PROVINCIAL:
        return 2
    if scope is ScopeLevel.NATIONAL:
        return 1
    return 0


class PrecedenceResolver:
    def __init__(self, overrides: Optional[OverrideSource] = None):
        self.overrides = overrides

    def resolve(
        self,
        hits: List[SearchHit],
        season_id: str,
        jurisdiction_id: Optional[str] = None,
    ) -> List[PrecedenceGroup]:
        """Group keyed hits and pick one primary per rule key.

        Groups come out in order of their key's first appearance in ``hits``.
        Keyless hits are not grouped (see ``ungrouped``); hits from another
        jurisdiction's regional rulebook are dropped.
        """
        if not hits:
            return []

        confirmed = self._confirmed(season_id, jurisdiction_id)

        grouped: Dict[str, List[SearchHit]] = {}
        for h in hits:
            if h.rule_key:
                grouped.setdefault(h.rule_key, []).append(h)

        groups: List[PrecedenceGroup] = []
        for rule_key, members in grouped.items():
            ranked = [h for h in members if precedence_rank(h, jurisdiction_id) > 0]
            if not ranked:
                continue
            # rank strictly dominates score; chunk_id keeps ties stable
            ranked.sort(key=lambda h: (-precedence_rank(h, jurisdiction_id), -h.score, h.chunk_id))

            primary, alternates = ranked[0], ranked[1:]
            promoted = next((h for h in ranked if h.chunk_id in confirmed), None)
            if promoted is not None and promoted.chunk_id != primary.chunk_id:
                logger.debug("Confirmed override promotes %s over %s for %s",
                             promoted.chunk_id, primary.chunk_id, rule_key)
                alternates = [primary] + [h for h in alternates if h.chunk_id != promoted.chunk_id]
                primary = promoted

            groups.append(PrecedenceGroup(rule_key=rule_key, primary=primary, alternates=alternates))
        return groups

    @staticmethod
    def ungrouped(hits: List[SearchHit]) -> List[SearchHit]:
        return [h for h in hits if not h.rule_key]

    def _confirmed(self, season_id: str, jurisdiction_id: Optional[str]) -> Mapping[str, OverrideMapping]:
        if self.overrides is None:
            return {}
        try:
            return self.overrides.confirmed_overrides(season_id, jurisdiction_id)
        except Exception:
            # the override table is an enhancement; natural precedence still applies
            logger.warning("Could not load confirmed overrides for %s/%s; using natural precedence",
                           season_id, jurisdiction_id or "global", exc_info=True)
            return {}
