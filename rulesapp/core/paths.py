from __future__ import annotations

from typing import Optional

from rulesapp.core.types import DocumentType


def partition_key(season_id: str, jurisdiction_id: Optional[str]) -> str:
    return f"{season_id}:{jurisdiction_id or 'global'}"


def rules_pdf_path(season_id: str, jurisdiction_id: Optional[str], document_type: DocumentType) -> str:
    return f"rules/{season_id}/{jurisdiction_id or 'global'}/{document_type.value}.pdf"


def ingestion_pages_path(job_id: str) -> str:
    return f"ingest/{job_id}/pages.json"


def ingestion_chunks_path(job_id: str) -> str:
    return f"ingest/{job_id}/chunks.json"
