from __future__ import annotations
from pydantic import BaseModel, Field
from typing import Optional, List, Literal

from rulesapp.core.types import (
    ChatAnswer,
    Citation,
    DocumentType,
    IngestionJob,
    IngestionStatus,
    OverrideMapping,
    OverrideStatus,
    PrecedenceGroup,
    ScopeLevel,
    SearchHit,
)


class ChatRequest(BaseModel):
    query: str
    season_id: Optional[str] = None
    jurisdiction_id: Optional[str] = None
    max_context: Optional[int] = Field(None, ge=1, le=20)   # None => MAX_CONTEXT setting
    use_generation: bool = False


class CitationOut(BaseModel):
    chunk_id: str
    rule_key: Optional[str] = None
    rule_number: Optional[str] = None
    title: Optional[str] = None
    scope: ScopeLevel
    document_type: DocumentType
    season_id: str
    jurisdiction_id: Optional[str] = None
    page_start: int
    page_end: int
    text_preview: str

    @classmethod
    def from_citation(cls, c: Citation) -> "CitationOut":
        return cls(**c.__dict__)


class ChatResponse(BaseModel):
    status: Literal["ok", "not_found"]
    query: str
    answer: str
    citations: List[CitationOut]
    context_used: int
    total_retrieved: int

    @classmethod
    def from_answer(cls, a: ChatAnswer) -> "ChatResponse":
        return cls(
            status=a.status,
            query=a.query,
            answer=a.answer_text,
            citations=[CitationOut.from_citation(c) for c in a.citations],
            context_used=a.context_used,
            total_retrieved=a.total_retrieved,
        )


class SearchRequestIn(BaseModel):
    query: str
    season_id: Optional[str] = None
    jurisdiction_id: Optional[str] = None
    scope_levels: Optional[List[ScopeLevel]] = None
    result_limit: int = Field(10, ge=1, le=100)


class HitOut(BaseModel):
    chunk_id: str
    rule_key: Optional[str] = None
    rule_number: Optional[str] = None
    title: Optional[str] = None
    scope: ScopeLevel
    jurisdiction_id: Optional[str] = None
    page_start: int
    page_end: int
    score: float
    rank: int
    text_preview: str

    @classmethod
    def from_hit(cls, h: SearchHit) -> "HitOut":
        c = h.chunk
        return cls(
            chunk_id=c.chunk_id,
            rule_key=c.canonical_rule_key,
            rule_number=c.display_rule_number,
            title=c.title,
            scope=c.scope_level,
            jurisdiction_id=c.jurisdiction_id,
            page_start=c.page_start,
            page_end=c.page_end,
            score=h.score,
            rank=h.rank,
            text_preview=h.text_preview,
        )


class RuleGroupOut(BaseModel):
    rule_key: str
    primary: HitOut
    alternates: List[HitOut]

    @classmethod
    def from_group(cls, g: PrecedenceGroup) -> "RuleGroupOut":
        return cls(
            rule_key=g.rule_key,
            primary=HitOut.from_hit(g.primary),
            alternates=[HitOut.from_hit(h) for h in g.alternates],
        )


class SearchResponseOut(BaseModel):
    query: str
    season_id: str
    jurisdiction_id: Optional[str] = None
    total_results: int
    groups: List[RuleGroupOut]
    ungrouped: List[HitOut]


class UploadResponse(BaseModel):
    job_id: str
    blob_path: str
    status: IngestionStatus


class BuildResponse(BaseModel):
    season_id: str
    jurisdiction_id: Optional[str] = None
    jobs: List[UploadResponse]
    missing: List[str]


class JobOut(BaseModel):
    job_id: str
    season_id: str
    jurisdiction_id: Optional[str] = None
    document_type: DocumentType
    status: IngestionStatus
    page_count: int
    chunk_count: int
    started_at: Optional[str] = None
    completed_at: Optional[str] = None
    error_message: Optional[str] = None

    @classmethod
    def from_job(cls, j: IngestionJob) -> "JobOut":
        return cls(
            job_id=j.job_id,
            season_id=j.season_id,
            jurisdiction_id=j.jurisdiction_id,
            document_type=j.document_type,
            status=j.status,
            page_count=j.page_count,
            chunk_count=j.chunk_count,
            started_at=j.started_at.isoformat() if j.started_at else None,
            completed_at=j.completed_at.isoformat() if j.completed_at else None,
            error_message=j.error_message,
        )


class MappingOut(BaseModel):
    mapping_id: str
    season_id: str
    jurisdiction_id: Optional[str] = None
    source_rule_key: str
    source_chunk_id: str
    source_scope: ScopeLevel
    target_rule_key: str
    target_chunk_id: str
    target_scope: ScopeLevel
    status: OverrideStatus
    confidence: float
    detection_reason: Optional[str] = None
    created_at: Optional[str] = None
    reviewed_at: Optional[str] = None
    reviewed_by: Optional[str] = None
    rejection_reason: Optional[str] = None

    @classmethod
    def from_mapping(cls, m: OverrideMapping) -> "MappingOut":
        data = dict(m.__dict__)
        for k in ("created_at", "reviewed_at"):
            data[k] = data[k].isoformat() if data[k] else None
        return cls(**data)


class ReviewRequest(BaseModel):
    action: Literal["confirm", "reject"]
    reviewed_by: str = Field(..., min_length=1)
    reason: Optional[str] = None


class LatestJobsOut(BaseModel):
    season_id: str
    jurisdiction_id: Optional[str] = None
    jobs: List[JobOut]


class IndexStatsOut(BaseModel):
    document_count: int


class JurisdictionsOut(BaseModel):
    season_id: str
    jurisdictions: List[str]
