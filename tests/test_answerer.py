"""Tests for the grounded answerer: not-found policy, precedence, fallback and grounding."""

import logging

import pytest

from rulesapp.core.types import ScopeLevel, SearchResponse
from rulesapp.generation.answerer import GroundedAnswerer
from rulesapp.generation.citation_guard import safe_fallback
from rulesapp.retrieval.precedence import PrecedenceResolver


class FakeIndex:
    """Returns canned hits and records the requests it received."""

    def __init__(self, hits):
        self.hits = hits
        self.requests = []

    def search(self, request):
        request.validate()
        self.requests.append(request)
        return SearchResponse(query=request.query, total_results=len(self.hits), results=list(self.hits))


def _answerer(hits, llm=None, **kwargs):
    kwargs.setdefault("min_relevance_score", 1.0)
    return GroundedAnswerer(FakeIndex(hits), PrecedenceResolver(), llm=llm, **kwargs)


@pytest.fixture
def scored_hits(make_hit):
    return [
        make_hit("p1", ScopeLevel.PROVINCIAL, 9.0, query_jurisdiction="ABC", title="Interference"),
        make_hit("r1", ScopeLevel.REGIONAL, 2.0, jurisdiction_id="ABC", query_jurisdiction="ABC",
                 title="Interference (ABC)"),
        make_hit("n1", ScopeLevel.NATIONAL, 5.0, rule_key="5.09", query_jurisdiction="ABC", title="Retiring the batter"),
    ]


class TestNotFound:
    def test_no_candidates(self):
        ans = _answerer([]).answer("what is a balk?", season_id="2025")
        assert ans.status == "not_found"
        assert ans.citations == []
        assert ans.context_used == 0
        assert ans.total_retrieved == 0

    def test_all_candidates_below_threshold(self, make_hit):
        hits = [make_hit("n1", ScopeLevel.NATIONAL, 0.4), make_hit("n2", ScopeLevel.NATIONAL, 0.9, rule_key="5.09")]
        ans = _answerer(hits).answer("balk", season_id="2025")
        assert ans.status == "not_found"
        assert ans.citations == []
        assert ans.total_retrieved == 2

    def test_only_other_jurisdiction_regional_hits(self, make_hit):
        hits = [make_hit("x1", ScopeLevel.REGIONAL, 5.0, jurisdiction_id="XYZ")]
        ans = _answerer(hits).answer("interference", season_id="2025", jurisdiction_id="ABC")
        assert ans.status == "not_found"
        assert ans.citations == []

    def test_never_calls_llm_without_evidence(self, fake_llm):
        llm = fake_llm("Rule 1.01 says so.")
        _answerer([], llm=llm).answer("balk", season_id="2025", use_generation=True)
        assert llm.calls == []


class TestContextSelection:
    def test_precedence_applied_to_context(self, scored_hits):
        ans = _answerer(scored_hits).answer("interference", season_id="2025", jurisdiction_id="ABC")
        assert ans.status == "ok"
        assert [c.chunk_id for c in ans.citations] == ["r1", "n1"]
        assert ans.context_used == 2
        assert ans.total_retrieved == 3

    def test_max_context_limits_groups(self, scored_hits):
        ans = _answerer(scored_hits).answer("interference", season_id="2025", jurisdiction_id="ABC", max_context=1)
        assert [c.chunk_id for c in ans.citations] == ["r1"]

    def test_keyless_hits_fill_remaining_slots(self, make_hit):
        hits = [
            make_hit("n1", ScopeLevel.NATIONAL, 3.0),
            make_hit("k1", ScopeLevel.NATIONAL, 2.0, rule_key=None),
            make_hit("k2", ScopeLevel.NATIONAL, 4.0, rule_key=None),
        ]
        ans = _answerer(hits).answer("interference", season_id="2025", max_context=2)
        assert [c.chunk_id for c in ans.citations] == ["n1", "k2"]

    def test_candidate_set_larger_than_context(self):
        index = FakeIndex([])
        GroundedAnswerer(index, PrecedenceResolver(), retrieval_top_k=5).answer("q", season_id="2025", max_context=4)
        assert index.requests[0].result_limit == 12

    def test_default_season_used_when_missing(self):
        index = FakeIndex([])
        GroundedAnswerer(index, PrecedenceResolver(), default_season_id="2031").answer("q")
        assert index.requests[0].season_id == "2031"

    def test_citations_are_exactly_the_context(self, scored_hits):
        ans = _answerer(scored_hits).answer("interference", season_id="2025", jurisdiction_id="ABC")
        context_ids = {h.chunk_id for h in scored_hits}
        assert {c.chunk_id for c in ans.citations} <= context_ids
        assert len(ans.citations) == ans.context_used
        assert len({c.chunk_id for c in ans.citations}) == len(ans.citations)


class TestTemplateAnswer:
    def test_template_used_without_generation(self, scored_hits, fake_llm):
        llm = fake_llm("Rule 6.01(a) applies.")
        ans = _answerer(scored_hits, llm=llm).answer("interference", season_id="2025", jurisdiction_id="ABC")
        assert llm.calls == []
        assert ans.answer_text.startswith("Based on the rulebook context:")
        assert "**6.01(a) - Interference (ABC)** (Regional:ABC, Page 1)" in ans.answer_text

    def test_template_used_when_no_client(self, scored_hits):
        ans = _answerer(scored_hits).answer("interference", season_id="2025", jurisdiction_id="ABC",
                                            use_generation=True)
        assert ans.status == "ok"
        assert ans.answer_text.startswith("Based on the rulebook context:")

    def test_generation_failure_falls_back_to_template(self, scored_hits, failing_llm, caplog):
        caplog.set_level(logging.WARNING)
        ans = _answerer(scored_hits, llm=failing_llm).answer(
            "interference", season_id="2025", jurisdiction_id="ABC", use_generation=True,
        )
        assert ans.status == "ok"
        assert ans.answer_text.startswith("Based on the rulebook context:")
        assert [c.chunk_id for c in ans.citations] == ["r1", "n1"]
        assert "template" in caplog.text

    def test_unexpected_client_error_falls_back_to_template(self, scored_hits, fake_llm, caplog):
        caplog.set_level(logging.WARNING)
        llm = fake_llm(error=RuntimeError("connection reset"))
        ans = _answerer(scored_hits, llm=llm).answer(
            "interference", season_id="2025", jurisdiction_id="ABC", use_generation=True,
        )
        assert len(llm.calls) == 1
        assert ans.status == "ok"
        assert ans.answer_text.startswith("Based on the rulebook context:")
        assert [c.chunk_id for c in ans.citations] == ["r1", "n1"]
        assert "template" in caplog.text


class TestGeneration:
    def test_generated_answer_returned(self, scored_hits, fake_llm):
        llm = fake_llm("Under Rule 6.01(a) (p. 1) the batter is out.")
        ans = _answerer(scored_hits, llm=llm).answer(
            "interference", season_id="2025", jurisdiction_id="ABC", use_generation=True,
        )
        assert ans.status == "ok"
        assert ans.answer_text == "Under Rule 6.01(a) (p. 1) the batter is out."
        assert len(llm.calls) == 1

    def test_prompt_lists_context_with_tiers(self, scored_hits, fake_llm):
        llm = fake_llm("Rule 6.01(a) applies.")
        _answerer(scored_hits, llm=llm).answer("interference", season_id="2025", jurisdiction_id="ABC",
                                               use_generation=True)
        _, user_prompt = llm.calls[0]
        assert "[MOST RELEVANT] Rule 5.09" in user_prompt
        assert "[HIGH RELEVANCE] Rule 6.01(a) (Regional:ABC" in user_prompt
        assert "interference" in user_prompt

    def test_strict_mode_refuses_unverified_reference(self, scored_hits, fake_llm):
        llm = fake_llm("Rule 9.99 says the batter is out.")
        ans = _answerer(scored_hits, llm=llm, grounding_mode="strict").answer(
            "interference", season_id="2025", jurisdiction_id="ABC", use_generation=True,
        )
        assert ans.status == "not_found"
        assert ans.citations == []
        assert ans.answer_text == safe_fallback()
        assert ans.context_used == 0

    def test_warn_mode_returns_answer_and_logs(self, scored_hits, fake_llm, caplog):
        caplog.set_level(logging.WARNING)
        llm = fake_llm("Rule 9.99 says the batter is out.")
        ans = _answerer(scored_hits, llm=llm, grounding_mode="warn").answer(
            "interference", season_id="2025", jurisdiction_id="ABC", use_generation=True,
        )
        assert ans.status == "ok"
        assert ans.answer_text == "Rule 9.99 says the batter is out."
        assert [c.chunk_id for c in ans.citations] == ["r1", "n1"]
        assert "9.99" in caplog.text

    def test_parent_rule_reference_is_grounded(self, scored_hits, fake_llm):
        llm = fake_llm("Rule 6.01 covers interference.")
        ans = _answerer(scored_hits, llm=llm).answer(
            "interference", season_id="2025", jurisdiction_id="ABC", use_generation=True,
        )
        assert ans.status == "ok"

    def test_invalid_grounding_mode(self):
        with pytest.raises(ValueError):
            GroundedAnswerer(FakeIndex([]), PrecedenceResolver(), grounding_mode="lenient")
