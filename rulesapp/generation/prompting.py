from __future__ import annotations
from typing import List

from rulesapp.core.types import SearchHit


SYSTEM_PROMPT = """You are a rulebook assistant. Answer questions strictly based on the provided rule context.

You MUST follow these rules:
1) PRIORITIZE rules marked [MOST RELEVANT] and [HIGH RELEVANCE].
2) Use ONLY the provided CONTEXT. Do not use outside knowledge and never invent or assume rules.
3) Always cite the rule number and page, e.g. "Rule 6.01(a) (p. 12)".
4) Only cite rule numbers that appear in the CONTEXT.
5) If the CONTEXT does not contain enough information, say so plainly.
6) Answer in the same language as the question. Be concise but complete.
"""


def relevance_tier(position: int) -> str:
    if position == 0:
        return "[MOST RELEVANT]"
    if position < 3:
        return "[HIGH RELEVANCE]"
    return "[REFERENCE]"


def rule_label(hit: SearchHit) -> str:
    return hit.chunk.display_rule_number or hit.chunk.canonical_rule_key or "N/A"


def build_user_prompt(query: str, hits: List[SearchHit]) -> str:
    ordered = sorted(hits, key=lambda h: (-h.score, h.chunk_id))
    ctx_lines = []
    for i, h in enumerate(ordered):
        c = h.chunk
        scope = c.scope_level.value if not c.jurisdiction_id else f"{c.scope_level.value}:{c.jurisdiction_id}"
        ctx_lines.append(
            f"{relevance_tier(i)} Rule {rule_label(h)} ({scope}, Page {c.page_start}, Score: {h.score:.2f}):\n"
            f"{c.text}"
        )
    context_block = "\n\n".join(ctx_lines)

    return f"""CONTEXT (official rulebooks, ordered by relevance):
{context_block}

QUESTION:
{query}

INSTRUCTIONS:
- Answer using ONLY the CONTEXT above, prioritizing the most relevant rules.
- Include rule numbers and page references.
- If the CONTEXT is not enough, say that the provided rulebooks do not answer the question.
"""


def build_template_answer(hits: List[SearchHit]) -> str:
    """Deterministic answer used when no completion service is available."""
    lines = ["Based on the rulebook context:", ""]
    for h in hits:
        c = h.chunk
        scope = c.scope_level.value if not c.jurisdiction_id else f"{c.scope_level.value}:{c.jurisdiction_id}"
        lines.append(f"**{rule_label(h)} - {c.title or 'Untitled'}** ({scope}, Page {c.page_start})")
        lines.append(h.text_preview)
        lines.append("")
    return "\n".join(lines).rstrip() + "\n"
