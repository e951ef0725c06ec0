from __future__ import annotations

import logging
import uuid
from typing import List, Optional

from fastapi import APIRouter, BackgroundTasks, Depends, File, Form, HTTPException, Query, UploadFile

from rulesapp.api.deps import Services, get_services
from rulesapp.api.schemas import (
    BuildResponse,
    IndexStatsOut,
    JobOut,
    LatestJobsOut,
    MappingOut,
    ReviewRequest,
    UploadResponse,
)
from rulesapp.core.errors import InvalidTransition, MappingNotFound
from rulesapp.core.paths import rules_pdf_path
from rulesapp.core.types import DocumentType, OverrideStatus
from rulesapp.ingestion.ingest_pipeline import IngestMessage

logger = logging.getLogger(__name__)
router = APIRouter(prefix="/admin")


@router.post("/upload", response_model=UploadResponse, status_code=202)
def upload(
    background_tasks: BackgroundTasks,
    file: UploadFile = File(...),
    season_id: str = Form(...),
    document_type: str = Form(...),
    jurisdiction_id: Optional[str] = Form(None),
    services: Services = Depends(get_services),
) -> UploadResponse:
    try:
        doc_type = DocumentType(document_type)
    except ValueError:
        raise HTTPException(status_code=400, detail=f"Unknown document_type: {document_type}")

    jurisdiction_id = (jurisdiction_id or "").strip() or None
    if doc_type.requires_jurisdiction and not jurisdiction_id:
        raise HTTPException(status_code=400, detail="jurisdiction_id is required for Regional documents")
    if not (file.filename or "").lower().endswith(".pdf"):
        raise HTTPException(status_code=400, detail="Only PDF files are accepted")

    data = file.file.read()
    if not data:
        raise HTTPException(status_code=400, detail="Uploaded file is empty")

    message = IngestMessage.for_document(
        job_id=uuid.uuid4().hex,
        season_id=season_id.strip(),
        jurisdiction_id=jurisdiction_id,
        document_type=doc_type,
    )
    services.blob_store.put_bytes(message.source_document_path, data)
    return _enqueue(message, background_tasks, services)


@router.post("/build", response_model=BuildResponse)
def build(
    background_tasks: BackgroundTasks,
    season_id: Optional[str] = None,
    jurisdiction_id: Optional[str] = None,
    services: Services = Depends(get_services),
) -> BuildResponse:
    """Re-ingest every stored rulebook of the season (global ones, plus the jurisdiction's own)."""
    season_id = season_id or services.settings.default_season_id
    jurisdiction_id = (jurisdiction_id or "").strip() or None

    jobs: List[UploadResponse] = []
    missing: List[str] = []
    for doc_type in DocumentType:
        if doc_type.requires_jurisdiction and not jurisdiction_id:
            continue
        owner = jurisdiction_id if doc_type.requires_jurisdiction else None
        path = rules_pdf_path(season_id, owner, doc_type)
        if not services.blob_store.exists(path):
            missing.append(path)
            continue
        message = IngestMessage.for_document(uuid.uuid4().hex, season_id, owner, doc_type)
        jobs.append(_enqueue(message, background_tasks, services))

    if missing:
        logger.info("Build %s/%s: %d rulebooks not uploaded", season_id, jurisdiction_id or "global", len(missing))
    return BuildResponse(season_id=season_id, jurisdiction_id=jurisdiction_id, jobs=jobs, missing=missing)


def _enqueue(message: IngestMessage, background_tasks: BackgroundTasks, services: Services) -> UploadResponse:
    job = services.worker.queue(message)
    # fire-and-forget: the caller polls /admin/jobs/{job_id}
    background_tasks.add_task(services.worker.process, message)
    logger.info("Queued job %s for %s", job.job_id, message.source_document_path)
    return UploadResponse(job_id=job.job_id, blob_path=message.source_document_path, status=job.status)


@router.get("/jobs/latest", response_model=LatestJobsOut)
def latest_jobs(
    season_id: Optional[str] = None,
    jurisdiction_id: Optional[str] = None,
    limit: int = Query(10, ge=1, le=100),
    services: Services = Depends(get_services),
) -> LatestJobsOut:
    season_id = season_id or services.settings.default_season_id
    jobs = services.table_store.latest_jobs(season_id, jurisdiction_id, limit)
    return LatestJobsOut(season_id=season_id, jurisdiction_id=jurisdiction_id, jobs=[JobOut.from_job(j) for j in jobs])


@router.get("/jobs/{job_id}", response_model=JobOut)
def get_job(
    job_id: str,
    season_id: str,
    jurisdiction_id: Optional[str] = None,
    services: Services = Depends(get_services),
) -> JobOut:
    job = services.table_store.get_job(season_id, jurisdiction_id, job_id)
    if job is None:
        raise HTTPException(status_code=404, detail="Job not found")
    return JobOut.from_job(job)


@router.get("/overrides", response_model=List[MappingOut])
def list_overrides(
    season_id: str,
    jurisdiction_id: Optional[str] = None,
    status: Optional[OverrideStatus] = None,
    services: Services = Depends(get_services),
) -> List[MappingOut]:
    mappings = services.table_store.list_mappings(season_id, jurisdiction_id, status)
    return [MappingOut.from_mapping(m) for m in mappings]


@router.get("/overrides/{mapping_id}", response_model=MappingOut)
def get_override(
    mapping_id: str,
    season_id: str,
    jurisdiction_id: Optional[str] = None,
    services: Services = Depends(get_services),
) -> MappingOut:
    try:
        return MappingOut.from_mapping(services.table_store.get_mapping(season_id, jurisdiction_id, mapping_id))
    except MappingNotFound:
        raise HTTPException(status_code=404, detail="Override mapping not found")


@router.post("/overrides/{mapping_id}", response_model=MappingOut)
def review_override(
    mapping_id: str,
    req: ReviewRequest,
    season_id: str,
    jurisdiction_id: Optional[str] = None,
    services: Services = Depends(get_services),
) -> MappingOut:
    try:
        mapping = services.table_store.review_mapping(
            season_id, jurisdiction_id, mapping_id, req.action, req.reviewed_by, req.reason,
        )
    except MappingNotFound:
        raise HTTPException(status_code=404, detail="Override mapping not found")
    except InvalidTransition as exc:
        raise HTTPException(status_code=409, detail=str(exc))
    return MappingOut.from_mapping(mapping)


@router.get("/index/stats", response_model=IndexStatsOut)
def index_stats(services: Services = Depends(get_services)) -> IndexStatsOut:
    return IndexStatsOut(document_count=services.index.document_count())
