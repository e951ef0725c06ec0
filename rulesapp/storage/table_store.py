from __future__ import annotations

import hashlib
import logging
from datetime import datetime, timezone
from typing import Any, Dict, List, Optional, Sequence

from sqlalchemy import text
from sqlalchemy.engine import Engine

from rulesapp.core.errors import InvalidTransition, MappingNotFound
from rulesapp.core.paths import partition_key
from rulesapp.core.types import (
    DocumentType,
    IngestionJob,
    IngestionStatus,
    OverrideMapping,
    OverrideProposal,
    OverrideStatus,
    ScopeLevel,
)

logger = logging.getLogger(__name__)

_SCHEMA = [
    """
    CREATE TABLE IF NOT EXISTS ingestion_jobs (
      partition_key TEXT NOT NULL,
      job_id TEXT NOT NULL,
      season_id TEXT NOT NULL,
      jurisdiction_id TEXT,
      document_type TEXT NOT NULL,
      status TEXT NOT NULL,
      page_count INTEGER NOT NULL DEFAULT 0,
      chunk_count INTEGER NOT NULL DEFAULT 0,
      started_at TEXT,
      completed_at TEXT,
      error_message TEXT,
      PRIMARY KEY (partition_key, job_id)
    )
    """,
    """
    CREATE TABLE IF NOT EXISTS override_mappings (
      partition_key TEXT NOT NULL,
      mapping_id TEXT NOT NULL,
      season_id TEXT NOT NULL,
      jurisdiction_id TEXT,
      source_rule_key TEXT NOT NULL,
      source_chunk_id TEXT NOT NULL,
      source_scope TEXT NOT NULL,
      target_rule_key TEXT NOT NULL,
      target_chunk_id TEXT NOT NULL,
      target_scope TEXT NOT NULL,
      status TEXT NOT NULL,
      confidence REAL NOT NULL,
      detection_reason TEXT,
      created_at TEXT,
      reviewed_at TEXT,
      reviewed_by TEXT,
      rejection_reason TEXT,
      PRIMARY KEY (partition_key, mapping_id)
    )
    """,
]


def _now() -> datetime:
    return datetime.now(timezone.utc)


def _iso(dt: Optional[datetime]) -> Optional[str]:
    return dt.isoformat() if dt else None


def _dt(s: Optional[str]) -> Optional[datetime]:
    return datetime.fromisoformat(s) if s else None


def mapping_id_for(source_chunk_id: str, target_chunk_id: str) -> str:
    # same pair => same row, so re-ingestion cannot duplicate or reset a mapping
    return hashlib.sha1(f"{source_chunk_id}->{target_chunk_id}".encode("utf-8")).hexdigest()[:16]


def _row_to_job(r: Dict[str, Any]) -> IngestionJob:
    return IngestionJob(
        job_id=r["job_id"],
        season_id=r["season_id"],
        jurisdiction_id=r["jurisdiction_id"],
        document_type=DocumentType(r["document_type"]),
        status=IngestionStatus(r["status"]),
        page_count=int(r["page_count"] or 0),
        chunk_count=int(r["chunk_count"] or 0),
        started_at=_dt(r["started_at"]),
        completed_at=_dt(r["completed_at"]),
        error_message=r["error_message"],
    )


def _row_to_mapping(r: Dict[str, Any]) -> OverrideMapping:
    return OverrideMapping(
        mapping_id=r["mapping_id"],
        season_id=r["season_id"],
        jurisdiction_id=r["jurisdiction_id"],
        source_rule_key=r["source_rule_key"],
        source_chunk_id=r["source_chunk_id"],
        source_scope=ScopeLevel(r["source_scope"]),
        target_rule_key=r["target_rule_key"],
        target_chunk_id=r["target_chunk_id"],
        target_scope=ScopeLevel(r["target_scope"]),
        status=OverrideStatus(r["status"]),
        confidence=float(r["confidence"]),
        detection_reason=r["detection_reason"],
        created_at=_dt(r["created_at"]),
        reviewed_at=_dt(r["reviewed_at"]),
        reviewed_by=r["reviewed_by"],
        rejection_reason=r["rejection_reason"],
    )


class TableStore:
    """Job status rows and override mappings, partitioned by season:jurisdiction."""

    def __init__(self, engine: Engine):
        self.engine = engine

    def create_schema(self) -> None:
        with self.engine.begin() as conn:
            for ddl in _SCHEMA:
                conn.execute(text(ddl))

    # ------------------------------------------------------------------
    # Ingestion jobs
    # ------------------------------------------------------------------

    def get_job(self, season_id: str, jurisdiction_id: Optional[str], job_id: str) -> Optional[IngestionJob]:
        sql = text("SELECT * FROM ingestion_jobs WHERE partition_key = :pk AND job_id = :job_id")
        with self.engine.connect() as conn:
            r = conn.execute(sql, {"pk": partition_key(season_id, jurisdiction_id), "job_id": job_id}).mappings().first()
        return _row_to_job(r) if r else None

    def upsert_job(self, job: IngestionJob) -> None:
        sql = text("""
        INSERT INTO ingestion_jobs (partition_key, job_id, season_id, jurisdiction_id, document_type,
                                    status, page_count, chunk_count, started_at, completed_at, error_message)
        VALUES (:pk, :job_id, :season_id, :jurisdiction_id, :document_type,
                :status, :page_count, :chunk_count, :started_at, :completed_at, :error_message)
        ON CONFLICT (partition_key, job_id) DO UPDATE SET
          status = EXCLUDED.status,
          page_count = EXCLUDED.page_count,
          chunk_count = EXCLUDED.chunk_count,
          started_at = EXCLUDED.started_at,
          completed_at = EXCLUDED.completed_at,
          error_message = EXCLUDED.error_message
        """)
        with self.engine.begin() as conn:
            conn.execute(sql, {
                "pk": partition_key(job.season_id, job.jurisdiction_id),
                "job_id": job.job_id,
                "season_id": job.season_id,
                "jurisdiction_id": job.jurisdiction_id,
                "document_type": job.document_type.value,
                "status": job.status.value,
                "page_count": job.page_count,
                "chunk_count": job.chunk_count,
                "started_at": _iso(job.started_at),
                "completed_at": _iso(job.completed_at),
                "error_message": job.error_message,
            })

    def latest_jobs(self, season_id: str, jurisdiction_id: Optional[str], limit: int = 10) -> List[IngestionJob]:
        # queued jobs first (not started yet), then most recently started
        sql = text("""
        SELECT * FROM ingestion_jobs WHERE partition_key = :pk
        ORDER BY started_at IS NULL DESC, started_at DESC, job_id
        LIMIT :limit
        """)
        with self.engine.connect() as conn:
            rows = conn.execute(sql, {"pk": partition_key(season_id, jurisdiction_id), "limit": limit}).mappings().all()
        return [_row_to_job(r) for r in rows]

    # ------------------------------------------------------------------
    # Override mappings
    # ------------------------------------------------------------------

    def add_proposals(
        self,
        season_id: str,
        jurisdiction_id: Optional[str],
        proposals: Sequence[OverrideProposal],
    ) -> int:
        """Insert proposals as Proposed rows. Existing rows are left untouched."""
        if not proposals:
            return 0
        sql = text("""
        INSERT INTO override_mappings (partition_key, mapping_id, season_id, jurisdiction_id,
                                       source_rule_key, source_chunk_id, source_scope,
                                       target_rule_key, target_chunk_id, target_scope,
                                       status, confidence, detection_reason, created_at)
        VALUES (:pk, :mapping_id, :season_id, :jurisdiction_id,
                :source_rule_key, :source_chunk_id, :source_scope,
                :target_rule_key, :target_chunk_id, :target_scope,
                :status, :confidence, :detection_reason, :created_at)
        ON CONFLICT (partition_key, mapping_id) DO NOTHING
        """)
        pk = partition_key(season_id, jurisdiction_id)
        created = _iso(_now())
        inserted = 0
        with self.engine.begin() as conn:
            for p in proposals:
                res = conn.execute(sql, {
                    "pk": pk,
                    "mapping_id": mapping_id_for(p.source_chunk_id, p.target_chunk_id),
                    "season_id": season_id,
                    "jurisdiction_id": jurisdiction_id,
                    "source_rule_key": p.source_rule_key,
                    "source_chunk_id": p.source_chunk_id,
                    "source_scope": p.source_scope.value,
                    "target_rule_key": p.target_rule_key,
                    "target_chunk_id": p.target_chunk_id,
                    "target_scope": p.target_scope.value,
                    "status": OverrideStatus.PROPOSED.value,
                    "confidence": p.confidence,
                    "detection_reason": p.detection_reason,
                    "created_at": created,
                })
                inserted += max(res.rowcount or 0, 0)
        return inserted

    def list_mappings(
        self,
        season_id: str,
        jurisdiction_id: Optional[str],
        status: Optional[OverrideStatus] = None,
    ) -> List[OverrideMapping]:
        where = "partition_key = :pk"
        params: Dict[str, Any] = {"pk": partition_key(season_id, jurisdiction_id)}
        if status is not None:
            where += " AND status = :status"
            params["status"] = status.value
        sql = text(f"SELECT * FROM override_mappings WHERE {where} ORDER BY mapping_id")
        with self.engine.connect() as conn:
            rows = conn.execute(sql, params).mappings().all()
        return [_row_to_mapping(r) for r in rows]

    def get_mapping(self, season_id: str, jurisdiction_id: Optional[str], mapping_id: str) -> OverrideMapping:
        sql = text("SELECT * FROM override_mappings WHERE partition_key = :pk AND mapping_id = :mapping_id")
        with self.engine.connect() as conn:
            r = conn.execute(sql, {
                "pk": partition_key(season_id, jurisdiction_id),
                "mapping_id": mapping_id,
            }).mappings().first()
        if r is None:
            raise MappingNotFound(mapping_id)
        return _row_to_mapping(r)

    def review_mapping(
        self,
        season_id: str,
        jurisdiction_id: Optional[str],
        mapping_id: str,
        action: str,
        reviewed_by: str,
        reason: Optional[str] = None,
    ) -> OverrideMapping:
        """Apply a human review ("confirm" or "reject") to a Proposed mapping."""
        action = (action or "").strip().lower()
        if action not in ("confirm", "reject"):
            raise ValueError("action must be 'confirm' or 'reject'")
        target = OverrideStatus.CONFIRMED if action == "confirm" else OverrideStatus.REJECTED

        current = self.get_mapping(season_id, jurisdiction_id, mapping_id)
        current.status.transition(target)

        sql = text("""
        UPDATE override_mappings
        SET status = :status, reviewed_at = :reviewed_at, reviewed_by = :reviewed_by,
            rejection_reason = :rejection_reason
        WHERE partition_key = :pk AND mapping_id = :mapping_id AND status = :expected
        """)
        with self.engine.begin() as conn:
            res = conn.execute(sql, {
                "status": target.value,
                "reviewed_at": _iso(_now()),
                "reviewed_by": reviewed_by,
                "rejection_reason": reason if target is OverrideStatus.REJECTED else None,
                "pk": partition_key(season_id, jurisdiction_id),
                "mapping_id": mapping_id,
                "expected": OverrideStatus.PROPOSED.value,
            })
        if res.rowcount != 1:
            # reviewed concurrently between the read and the update
            raise InvalidTransition(f"mapping {mapping_id} is no longer Proposed")

        logger.info("Override mapping %s %s by %s", mapping_id, target.value, reviewed_by)
        return self.get_mapping(season_id, jurisdiction_id, mapping_id)

    def confirmed_overrides(self, season_id: str, jurisdiction_id: Optional[str]) -> Dict[str, OverrideMapping]:
        """Confirmed mappings keyed by source chunk id."""
        out: Dict[str, OverrideMapping] = {}
        for m in self.list_mappings(season_id, jurisdiction_id, OverrideStatus.CONFIRMED):
            out.setdefault(m.source_chunk_id, m)
        return out
