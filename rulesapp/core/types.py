from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import List, Optional

from rulesapp.core.errors import InvalidSearchRequest, InvalidTransition


class ScopeLevel(str, Enum):
    NATIONAL = "National"
    PROVINCIAL = "Provincial"
    REGIONAL = "Regional"


class Language(str, Enum):
    FR = "fr"  # primary rulebook language
    EN = "en"


class DocumentType(str, Enum):
    NATIONAL_FR = "NationalFr"
    NATIONAL_EN = "NationalEn"
    PROVINCIAL_FR = "ProvincialFr"
    PROVINCIAL_EN = "ProvincialEn"
    REGIONAL_FR = "RegionalFr"
    REGIONAL_EN = "RegionalEn"

    @property
    def scope_level(self) -> ScopeLevel:
        if self.value.startswith("National"):
            return ScopeLevel.NATIONAL
        if self.value.startswith("Provincial"):
            return ScopeLevel.PROVINCIAL
        return ScopeLevel.REGIONAL

    @property
    def language(self) -> Language:
        return Language.FR if self.value.endswith("Fr") else Language.EN

    @property
    def requires_jurisdiction(self) -> bool:
        return self.scope_level is ScopeLevel.REGIONAL


class IngestionStatus(str, Enum):
    QUEUED = "Queued"
    IN_PROGRESS = "InProgress"
    COMPLETED = "Completed"
    FAILED = "Failed"


class OverrideStatus(str, Enum):
    PROPOSED = "Proposed"
    CONFIRMED = "Confirmed"
    REJECTED = "Rejected"

    def transition(self, target: "OverrideStatus") -> "OverrideStatus":
        """Return ``target`` if the lifecycle allows it.

        Only a Proposed mapping can be reviewed; Confirmed and Rejected are
        terminal.
        """
        if self is not OverrideStatus.PROPOSED or target is OverrideStatus.PROPOSED:
            raise InvalidTransition(f"cannot move override mapping from {self.value} to {target.value}")
        return target


@dataclass(frozen=True)
class Page:
    page_number: int  # 1-based
    text: str


@dataclass(frozen=True)
class Chunk:
    chunk_id: str
    season_id: str
    document_type: DocumentType
    scope_level: ScopeLevel
    jurisdiction_id: Optional[str]
    canonical_rule_key: Optional[str]
    display_rule_number: Optional[str]
    title: Optional[str]
    page_start: int
    page_end: int
    source_document_path: str
    text: str
    language: Language

    def to_record(self) -> dict:
        return {
            "chunk_id": self.chunk_id,
            "season_id": self.season_id,
            "document_type": self.document_type.value,
            "scope_level": self.scope_level.value,
            "jurisdiction_id": self.jurisdiction_id,
            "canonical_rule_key": self.canonical_rule_key,
            "display_rule_number": self.display_rule_number,
            "title": self.title,
            "page_start": self.page_start,
            "page_end": self.page_end,
            "source_document_path": self.source_document_path,
            "text": self.text,
            "language": self.language.value,
        }


@dataclass(frozen=True)
class SearchHit:
    chunk: Chunk
    score: float
    rank: int                   # 1-based rank in the index response
    season_id: str              # query context echoed back
    jurisdiction_id: Optional[str] = None

    @property
    def chunk_id(self) -> str:
        return self.chunk.chunk_id

    @property
    def rule_key(self) -> Optional[str]:
        return self.chunk.canonical_rule_key

    @property
    def scope(self) -> ScopeLevel:
        return self.chunk.scope_level

    @property
    def text_preview(self) -> str:
        return self.chunk.text[:200]


@dataclass(frozen=True)
class SearchRequest:
    query: str
    season_id: str
    jurisdiction_id: Optional[str] = None
    scope_levels: Optional[List[ScopeLevel]] = None
    result_limit: int = 10

    def validate(self) -> None:
        if not self.query or not self.query.strip():
            raise InvalidSearchRequest("query is required")
        if not self.season_id:
            raise InvalidSearchRequest("season_id is required")
        if self.result_limit < 1:
            raise InvalidSearchRequest("result_limit must be at least 1")
        if self.scope_levels and ScopeLevel.REGIONAL in self.scope_levels and not self.jurisdiction_id:
            raise InvalidSearchRequest("Regional scope requires a jurisdiction_id")


@dataclass(frozen=True)
class SearchResponse:
    query: str
    total_results: int
    results: List[SearchHit]


@dataclass(frozen=True)
class OverrideProposal:
    source_rule_key: str
    source_chunk_id: str
    source_scope: ScopeLevel
    target_rule_key: str
    target_chunk_id: str
    target_scope: ScopeLevel
    confidence: float
    detection_reason: str


@dataclass(frozen=True)
class OverrideMapping:
    mapping_id: str
    season_id: str
    jurisdiction_id: Optional[str]
    source_rule_key: str
    source_chunk_id: str
    source_scope: ScopeLevel
    target_rule_key: str
    target_chunk_id: str
    target_scope: ScopeLevel
    status: OverrideStatus
    confidence: float
    detection_reason: Optional[str] = None
    created_at: Optional[datetime] = None
    reviewed_at: Optional[datetime] = None
    reviewed_by: Optional[str] = None
    rejection_reason: Optional[str] = None


@dataclass(frozen=True)
class PrecedenceGroup:
    rule_key: str
    primary: SearchHit
    alternates: List[SearchHit] = field(default_factory=list)


@dataclass(frozen=True)
class Citation:
    chunk_id: str
    rule_key: Optional[str]
    rule_number: Optional[str]
    title: Optional[str]
    scope: ScopeLevel
    document_type: DocumentType
    season_id: str
    jurisdiction_id: Optional[str]
    page_start: int
    page_end: int
    text_preview: str

    @classmethod
    def from_hit(cls, hit: SearchHit) -> "Citation":
        c = hit.chunk
        return cls(
            chunk_id=c.chunk_id,
            rule_key=c.canonical_rule_key,
            rule_number=c.display_rule_number,
            title=c.title,
            scope=c.scope_level,
            document_type=c.document_type,
            season_id=c.season_id,
            jurisdiction_id=c.jurisdiction_id,
            page_start=c.page_start,
            page_end=c.page_end,
            text_preview=hit.text_preview,
        )


@dataclass(frozen=True)
class ChatAnswer:
    status: str                 # "ok" | "not_found"
    query: str
    answer_text: str
    citations: List[Citation]
    context_used: int
    total_retrieved: int


@dataclass(frozen=True)
class IngestionJob:
    job_id: str
    season_id: str
    jurisdiction_id: Optional[str]
    document_type: DocumentType
    status: IngestionStatus
    page_count: int = 0
    chunk_count: int = 0
    started_at: Optional[datetime] = None
    completed_at: Optional[datetime] = None
    error_message: Optional[str] = None
