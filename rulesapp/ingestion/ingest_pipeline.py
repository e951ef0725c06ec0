from __future__ import annotations

import json
import logging
from dataclasses import asdict, replace
from datetime import datetime, timezone
from typing import Dict, List, Optional

from pydantic import BaseModel, model_validator

from rulesapp.core.errors import ExtractionError
from rulesapp.core.paths import ingestion_chunks_path, ingestion_pages_path, rules_pdf_path
from rulesapp.core.types import (
    Chunk,
    DocumentType,
    IngestionJob,
    IngestionStatus,
    Language,
    Page,
    ScopeLevel,
)
from rulesapp.indexing.bm25_index import ChunkIndex
from rulesapp.ingestion.chunker import RuleChunker
from rulesapp.ingestion.pdf_loader import extract_pages
from rulesapp.overrides.detector import OverrideDetector
from rulesapp.storage.blob_store import LocalBlobStore
from rulesapp.storage.table_store import TableStore

logger = logging.getLogger(__name__)


class IngestMessage(BaseModel):
    job_id: str
    season_id: str
    jurisdiction_id: Optional[str] = None
    document_type: DocumentType
    scope_level: ScopeLevel
    language: Language
    source_document_path: str

    @model_validator(mode="after")
    def _check_document(self) -> "IngestMessage":
        if self.scope_level is not self.document_type.scope_level:
            raise ValueError(f"scope_level {self.scope_level.value} does not match {self.document_type.value}")
        if self.language is not self.document_type.language:
            raise ValueError(f"language {self.language.value} does not match {self.document_type.value}")
        if self.document_type.requires_jurisdiction and not self.jurisdiction_id:
            raise ValueError("Regional documents require a jurisdiction_id")
        return self

    @classmethod
    def for_document(
        cls,
        job_id: str,
        season_id: str,
        jurisdiction_id: Optional[str],
        document_type: DocumentType,
    ) -> "IngestMessage":
        return cls(
            job_id=job_id,
            season_id=season_id,
            jurisdiction_id=jurisdiction_id,
            document_type=document_type,
            scope_level=document_type.scope_level,
            language=document_type.language,
            source_document_path=rules_pdf_path(season_id, jurisdiction_id, document_type),
        )


def _now() -> datetime:
    return datetime.now(timezone.utc)


def _pages_json(pages: List[Page]) -> str:
    return json.dumps([asdict(p) for p in pages], ensure_ascii=False, indent=2)


def _chunks_json(chunks: List[Chunk]) -> str:
    return json.dumps([c.to_record() for c in chunks], ensure_ascii=False, indent=2)


class IngestWorker:
    """Runs one ingestion job: PDF -> pages -> chunks -> index -> override proposals.

    Extraction or chunking failures mark the job Failed. Indexing and override
    detection errors are logged and the job still completes, because the chunk
    blob is already written and can be re-indexed.
    """

    def __init__(
        self,
        blob_store: LocalBlobStore,
        table_store: TableStore,
        index: ChunkIndex,
        chunker: Optional[RuleChunker] = None,
        detector: Optional[OverrideDetector] = None,
    ):
        self.blob_store = blob_store
        self.table_store = table_store
        self.index = index
        self.chunker = chunker or RuleChunker()
        self.detector = detector or OverrideDetector()

    def queue(self, message: IngestMessage) -> IngestionJob:
        job = IngestionJob(
            job_id=message.job_id,
            season_id=message.season_id,
            jurisdiction_id=message.jurisdiction_id,
            document_type=message.document_type,
            status=IngestionStatus.QUEUED,
        )
        self.table_store.upsert_job(job)
        return job

    def process(self, message: IngestMessage) -> IngestionJob:
        job = self.table_store.get_job(message.season_id, message.jurisdiction_id, message.job_id)
        if job is None:
            job = self.queue(message)
        job = replace(
            job,
            status=IngestionStatus.IN_PROGRESS,
            started_at=job.started_at or _now(),
            completed_at=None,
            error_message=None,
        )
        self.table_store.upsert_job(job)
        logger.info("Job %s started: %s %s/%s", message.job_id, message.document_type.value,
                    message.season_id, message.jurisdiction_id or "global")

        try:
            data = self.blob_store.get_bytes(message.source_document_path)
            pages = extract_pages(data)
        except (ExtractionError, OSError) as exc:
            logger.error("Job %s failed during extraction: %s", message.job_id, exc)
            return self._fail(job, exc)

        try:
            self.blob_store.put_text(ingestion_pages_path(message.job_id), _pages_json(pages))
            chunks = self.chunker.chunk_pages(
                pages,
                season_id=message.season_id,
                jurisdiction_id=message.jurisdiction_id,
                document_type=message.document_type,
                source_document_path=message.source_document_path,
            )
            self.blob_store.put_text(ingestion_chunks_path(message.job_id), _chunks_json(chunks))
        except Exception as exc:
            logger.exception("Job %s failed while chunking", message.job_id)
            return self._fail(job, exc)

        try:
            self.index.upsert_chunks(chunks)
        except Exception:
            logger.exception("Job %s: indexing failed; chunks kept at %s",
                             message.job_id, ingestion_chunks_path(message.job_id))

        try:
            self._propose_overrides(message, chunks)
        except Exception:
            logger.exception("Job %s: override detection failed; no proposals this run", message.job_id)

        job = replace(
            job,
            status=IngestionStatus.COMPLETED,
            page_count=len(pages),
            chunk_count=len(chunks),
            completed_at=_now(),
        )
        self.table_store.upsert_job(job)
        logger.info("Job %s completed: %d pages, %d chunks", message.job_id, len(pages), len(chunks))
        return job

    def _fail(self, job: IngestionJob, exc: Exception) -> IngestionJob:
        job = replace(
            job,
            status=IngestionStatus.FAILED,
            completed_at=_now(),
            error_message=str(exc) or type(exc).__name__,
        )
        self.table_store.upsert_job(job)
        return job

    def _propose_overrides(self, message: IngestMessage, chunks: List[Chunk]) -> int:
        keys = {c.canonical_rule_key for c in chunks if c.canonical_rule_key}
        if not keys:
            return 0

        if message.jurisdiction_id:
            contexts: List[Optional[str]] = [message.jurisdiction_id]
        else:
            # a global rulebook can be overridden by any region already ingested
            contexts = [None] + self.index.jurisdictions(message.season_id)

        stored = 0
        for jurisdiction_id in contexts:
            members: Dict[str, Chunk] = {
                c.chunk_id: c
                for c in self.index.chunks_for_rule_keys(message.season_id, jurisdiction_id, keys)
            }
            for c in chunks:
                members.setdefault(c.chunk_id, c)

            proposals = self.detector.detect(list(members.values()))
            stored += self.table_store.add_proposals(message.season_id, jurisdiction_id, proposals)
        if stored:
            logger.info("Job %s: %d new override proposals", message.job_id, stored)
        return stored
