"""
Pattern tables for rule headers, override phrasing and rule references.

Control flow in the chunker, the override detector and the citation guard
only iterates these tables; adding a locale means adding rows here.
"""
from __future__ import annotations

import re
from dataclasses import dataclass
from typing import Dict, List, Optional

from rulesapp.core.types import Language


@dataclass(frozen=True)
class RulePattern:
    pattern: re.Pattern
    language: Optional[Language]    # None = applies to every language
    confidence_delta: float = 0.0
    explicit: bool = False          # "replaces"-style wording


def _p(rx: str, language: Optional[Language], delta: float = 0.0, explicit: bool = False,
       flags: int = re.IGNORECASE) -> RulePattern:
    return RulePattern(re.compile(rx, flags), language, delta, explicit)


# A dotted rule number, optionally three-level and sub-lettered: 6.01, 105.2.1, 5.09(a)
RULE_NUMBER = r"\d+\.\d+(?:\.\d+)?(?:[ \t]*\([a-z]\))?"

_UPPER = "A-ZÀÂÇÉÈÊËÎÏÔÛÙÜŸŒÆ"

# =============================================================================
# Rule headers (line-anchored; group 1 is the rule number as written)
# =============================================================================
#   "6.01(a) Batter's interference"   "Rule 1.04 - The playing field"
#   "Règle 5.09 LE RETRAIT"           "34 55.7 - REFUS DE QUITTER" (leading page number)

HEADER_PATTERNS: List[RulePattern] = [
    _p(
        r"^[ \t]*(?:\d+[ \t]+(?=\d+\.\d))?(?:(?i:rule|r[èe]gle)[ \t]+)?"
        rf"({RULE_NUMBER})[ \t]*(?:[-–—][ \t]*|(?=[{_UPPER}]))",
        None,
        flags=re.MULTILINE,
    ),
]

# =============================================================================
# Explicit override phrasing
# =============================================================================

OVERRIDE_PATTERNS: Dict[Language, List[RulePattern]] = {
    Language.EN: [
        _p(r"(?:this\s+rule\s+)?replaces\s+rule", Language.EN, 0.1, explicit=True),
        _p(r"in\s+place\s+of\s+rule", Language.EN),
        _p(r"instead\s+of\s+rule", Language.EN),
        _p(r"exception\s+to\s+rule", Language.EN),
        _p(r"overrides\s+rule", Language.EN),
        _p(r"modifies\s+rule", Language.EN),
        _p(r"supersedes\s+rule", Language.EN),
        _p(r"contrary\s+to\s+rule", Language.EN),
        _p(r"different\s+from\s+rule", Language.EN),
    ],
    Language.FR: [
        _p(r"(?:cette\s+règle\s+)?remplace\s+(?:la\s+)?règle", Language.FR, 0.1, explicit=True),
        _p(r"en\s+remplacement\s+de\s+(?:la\s+)?règle", Language.FR, 0.1, explicit=True),
        _p(r"au\s+lieu\s+de\s+(?:la\s+)?règle", Language.FR),
        _p(r"exception\s+(?:à|a)\s+(?:la\s+)?règle", Language.FR),
        _p(r"modifie\s+(?:la\s+)?règle", Language.FR),
        _p(r"(?:cette\s+règle\s+)?annule\s+(?:la\s+)?règle", Language.FR),
        _p(r"contrairement\s+(?:à|a)\s+(?:la\s+)?règle", Language.FR),
        _p(r"différente?\s+de\s+(?:la\s+)?règle", Language.FR),
    ],
}

# Softer wording, only meaningful below national scope
IMPLICIT_PATTERNS: Dict[Language, List[RulePattern]] = {
    Language.EN: [
        _p(r"for\s+our\s+(?:jurisdiction|association|region)", Language.EN),
        _p(r"\bspecifically\b", Language.EN),
        _p(r"\bunlike\b", Language.EN),
    ],
    Language.FR: [
        _p(r"pour\s+notre\s+(?:juridiction|association|région)", Language.FR),
        _p(r"\bspécifiquement\b", Language.FR),
        _p(r"\bcontrairement\b", Language.FR),
    ],
}

# =============================================================================
# Rule references inside prose
# =============================================================================

# "rule 6.01(a)", "Règle 1.04", "Rules 5.09", "r. 6.01"
PREFIXED_REFERENCE = re.compile(
    rf"(?:\b(?:rules?|r[èe]gles?)\s+|\br\.\s*)({RULE_NUMBER})",
    re.IGNORECASE,
)

BARE_REFERENCE = re.compile(rf"(?<![\d.])({RULE_NUMBER})", re.IGNORECASE)


def override_patterns(language: Language) -> List[RulePattern]:
    return OVERRIDE_PATTERNS.get(language, OVERRIDE_PATTERNS[Language.EN])


def implicit_patterns(language: Language) -> List[RulePattern]:
    return IMPLICIT_PATTERNS.get(language, IMPLICIT_PATTERNS[Language.EN])


def normalize_rule_number(raw: str) -> str:
    """'6.01 (a)' -> '6.01(a)'. Nothing else is rewritten."""
    return re.sub(r"\s+", "", raw)
