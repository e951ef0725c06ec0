from __future__ import annotations

import logging
from typing import List, Optional, Protocol

from rulesapp.core.errors import CompletionUnavailable
from rulesapp.core.types import ChatAnswer, SearchHit, SearchRequest, SearchResponse
from rulesapp.generation.citation_guard import (
    build_citations,
    safe_fallback,
    unverified_references,
    validate_citations,
)
from rulesapp.generation.openai_client import LLMResponse
from rulesapp.generation.prompting import SYSTEM_PROMPT, build_template_answer, build_user_prompt
from rulesapp.retrieval.precedence import PrecedenceResolver

logger = logging.getLogger(__name__)

STATUS_OK = "ok"
STATUS_NOT_FOUND = "not_found"

NOT_FOUND_TEXT = "No relevant rules were found in the rulebooks for this question."


class SearchIndex(Protocol):
    def search(self, request: SearchRequest) -> SearchResponse: ...


class CompletionClient(Protocol):
    def generate(self, system_prompt: str, user_prompt: str) -> LLMResponse: ...


class GroundedAnswerer:
    """Retrieve, resolve precedence, answer, and check the answer is grounded.

    Terminal states are ``ok`` (with one citation per context chunk) and
    ``not_found`` (no citations). A completion failure never reaches the
    caller: the deterministic template answer is used instead.
    """

    def __init__(
        self,
        index: SearchIndex,
        resolver: PrecedenceResolver,
        llm: Optional[CompletionClient] = None,
        min_relevance_score: float = 1.0,
        retrieval_top_k: int = 15,
        grounding_mode: str = "strict",
        default_season_id: str = "2025",
    ):
        if grounding_mode not in ("strict", "warn"):
            raise ValueError("grounding_mode must be 'strict' or 'warn'")
        self.index = index
        self.resolver = resolver
        self.llm = llm
        self.min_relevance_score = min_relevance_score
        self.retrieval_top_k = retrieval_top_k
        self.grounding_mode = grounding_mode
        self.default_season_id = default_season_id

    def answer(
        self,
        query: str,
        season_id: Optional[str] = None,
        jurisdiction_id: Optional[str] = None,
        max_context: int = 5,
        use_generation: bool = False,
    ) -> ChatAnswer:
        season_id = season_id or self.default_season_id
        max_context = max(1, max_context)

        request = SearchRequest(
            query=query,
            season_id=season_id,
            jurisdiction_id=jurisdiction_id,
            result_limit=max(self.retrieval_top_k, 3 * max_context),
        )
        response = self.index.search(request)
        total = len(response.results)

        candidates = [h for h in response.results if h.score >= self.min_relevance_score]
        if not candidates:
            logger.info("No candidates above %.2f for %r (%s/%s, retrieved=%d)",
                        self.min_relevance_score, query, season_id, jurisdiction_id or "global", total)
            return self._not_found(query, total)

        context = self.select_context(candidates, season_id, jurisdiction_id, max_context)
        if not context:
            return self._not_found(query, total)

        citations = build_citations(context)
        text = build_template_answer(context)
        generated = False

        if use_generation and self.llm is not None:
            try:
                text = self.llm.generate(SYSTEM_PROMPT, build_user_prompt(query, context)).text.strip()
                generated = True
            except CompletionUnavailable as exc:
                logger.warning("Completion unavailable, using template answer: %s", exc)
            except Exception:
                logger.warning("Completion client failed, using template answer", exc_info=True)

        # the template only restates retrieved chunks; generated text must be checked
        if generated and not validate_citations(text, citations):
            unverified = unverified_references(text, citations)
            if self.grounding_mode == "strict":
                logger.warning("Grounding violation for %r, refusing: unverified rules %s", query, unverified)
                return ChatAnswer(
                    status=STATUS_NOT_FOUND,
                    query=query,
                    answer_text=safe_fallback(),
                    citations=[],
                    context_used=0,
                    total_retrieved=total,
                )
            logger.warning("Grounding violation for %r: unverified rules %s", query, unverified)

        return ChatAnswer(
            status=STATUS_OK,
            query=query,
            answer_text=text,
            citations=citations,
            context_used=len(context),
            total_retrieved=total,
        )

    def select_context(
        self,
        hits: List[SearchHit],
        season_id: str,
        jurisdiction_id: Optional[str],
        max_context: int,
    ) -> List[SearchHit]:
        """Primaries of up to ``max_context`` rule groups, then the best keyless hits."""
        groups = self.resolver.resolve(hits, season_id, jurisdiction_id)
        context = [g.primary for g in groups[:max_context]]

        free = max_context - len(context)
        if free > 0:
            loose = sorted(self.resolver.ungrouped(hits), key=lambda h: (-h.score, h.chunk_id))
            context.extend(loose[:free])
        return context

    def _not_found(self, query: str, total: int) -> ChatAnswer:
        return ChatAnswer(
            status=STATUS_NOT_FOUND,
            query=query,
            answer_text=NOT_FOUND_TEXT,
            citations=[],
            context_used=0,
            total_retrieved=total,
        )
