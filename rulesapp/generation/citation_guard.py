from __future__ import annotations
import re
from typing import List, Set

from rulesapp.core.types import Citation, SearchHit
from rulesapp.ingestion.patterns import PREFIXED_REFERENCE, normalize_rule_number


_SUBLETTER_RE = re.compile(r"\([a-z]\)$", re.IGNORECASE)


def extract_rule_references(text: str) -> List[str]:
    seen: List[str] = []
    for m in PREFIXED_REFERENCE.finditer(text):
        ref = normalize_rule_number(m.group(1))
        if ref not in seen:
            seen.append(ref)
    return seen


def _allowed_numbers(citations: List[Citation]) -> Set[str]:
    allowed: Set[str] = set()
    for c in citations:
        for n in (c.rule_number, c.rule_key):
            if n:
                n = normalize_rule_number(n)
                allowed.add(n)
                allowed.add(_SUBLETTER_RE.sub("", n))  # "Rule 6.01" is grounded by 6.01(a)
    return allowed


def unverified_references(answer: str, citations: List[Citation]) -> List[str]:
    allowed = _allowed_numbers(citations)
    return [r for r in extract_rule_references(answer) if r not in allowed]


def validate_citations(answer: str, citations: List[Citation]) -> bool:
    return not unverified_references(answer, citations)


def build_citations(hits: List[SearchHit]) -> List[Citation]:
    # one per context chunk, same order, no extras
    return [Citation.from_hit(h) for h in hits]


def safe_fallback() -> str:
    return "I don't know based on the provided rulebooks."
