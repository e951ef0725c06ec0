from __future__ import annotations

import logging
from typing import Optional

from fastapi import APIRouter, Depends, HTTPException

from rulesapp.api.deps import Services, get_services
from rulesapp.api.schemas import (
    ChatRequest,
    ChatResponse,
    HitOut,
    JurisdictionsOut,
    RuleGroupOut,
    SearchRequestIn,
    SearchResponseOut,
)
from rulesapp.core.errors import InvalidSearchRequest
from rulesapp.core.types import SearchRequest

logger = logging.getLogger(__name__)
router = APIRouter()


@router.post("/chat", response_model=ChatResponse)
def chat(req: ChatRequest, services: Services = Depends(get_services)) -> ChatResponse:
    query = (req.query or "").strip()
    if not query:
        raise HTTPException(status_code=400, detail="Query is required")
    if len(query) > services.settings.max_query_length:
        raise HTTPException(
            status_code=400,
            detail=f"Query must be at most {services.settings.max_query_length} characters",
        )

    try:
        answer = services.answerer.answer(
            query,
            season_id=req.season_id,
            jurisdiction_id=req.jurisdiction_id,
            max_context=req.max_context or services.settings.max_context,
            use_generation=req.use_generation,
        )
    except InvalidSearchRequest as exc:
        raise HTTPException(status_code=400, detail=str(exc))
    except Exception:
        logger.exception("Chat request failed")
        raise HTTPException(status_code=500, detail="Failed to process chat request")

    return ChatResponse.from_answer(answer)


@router.post("/search", response_model=SearchResponseOut)
def search(req: SearchRequestIn, services: Services = Depends(get_services)) -> SearchResponseOut:
    season_id = req.season_id or services.settings.default_season_id
    request = SearchRequest(
        query=req.query,
        season_id=season_id,
        jurisdiction_id=req.jurisdiction_id,
        scope_levels=req.scope_levels,
        result_limit=req.result_limit,
    )

    try:
        response = services.index.search(request)
        groups = services.resolver.resolve(response.results, season_id, req.jurisdiction_id)
    except InvalidSearchRequest as exc:
        raise HTTPException(status_code=400, detail=str(exc))
    except Exception:
        logger.exception("Search request failed")
        raise HTTPException(status_code=500, detail="Failed to process search request")

    return SearchResponseOut(
        query=req.query,
        season_id=season_id,
        jurisdiction_id=req.jurisdiction_id,
        total_results=response.total_results,
        groups=[RuleGroupOut.from_group(g) for g in groups],
        ungrouped=[HitOut.from_hit(h) for h in services.resolver.ungrouped(response.results)],
    )


@router.get("/jurisdictions", response_model=JurisdictionsOut)
def jurisdictions(season_id: Optional[str] = None, services: Services = Depends(get_services)) -> JurisdictionsOut:
    """Jurisdictions with at least one indexed regional rulebook in the season."""
    season_id = season_id or services.settings.default_season_id
    return JurisdictionsOut(season_id=season_id, jurisdictions=services.index.jurisdictions(season_id))
