from __future__ import annotations

import logging
import re
from typing import Any, Dict, Iterable, List, Optional, Sequence

from rank_bm25 import BM25L
from sqlalchemy import bindparam, text
from sqlalchemy.engine import Engine

from rulesapp.core.types import (
    Chunk,
    DocumentType,
    Language,
    ScopeLevel,
    SearchHit,
    SearchRequest,
    SearchResponse,
)

logger = logging.getLogger(__name__)

_WORD_RE = re.compile(r"\w+", re.UNICODE)

_SCHEMA = """
CREATE TABLE IF NOT EXISTS chunks (
  chunk_id TEXT PRIMARY KEY,
  season_id TEXT NOT NULL,
  jurisdiction_id TEXT,
  document_type TEXT NOT NULL,
  scope TEXT NOT NULL,
  language TEXT NOT NULL,
  rule_key TEXT,
  rule_number TEXT,
  title TEXT,
  page_start INTEGER NOT NULL,
  page_end INTEGER NOT NULL,
  source_document_path TEXT NOT NULL,
  text TEXT NOT NULL,
  text_length INTEGER NOT NULL
)
"""

_UPSERT = text("""
INSERT INTO chunks (chunk_id, season_id, jurisdiction_id, document_type, scope, language,
                    rule_key, rule_number, title, page_start, page_end,
                    source_document_path, text, text_length)
VALUES (:chunk_id, :season_id, :jurisdiction_id, :document_type, :scope, :language,
        :rule_key, :rule_number, :title, :page_start, :page_end,
        :source_document_path, :text, :text_length)
ON CONFLICT (chunk_id) DO UPDATE SET
  season_id = EXCLUDED.season_id,
  jurisdiction_id = EXCLUDED.jurisdiction_id,
  document_type = EXCLUDED.document_type,
  scope = EXCLUDED.scope,
  language = EXCLUDED.language,
  rule_key = EXCLUDED.rule_key,
  rule_number = EXCLUDED.rule_number,
  title = EXCLUDED.title,
  page_start = EXCLUDED.page_start,
  page_end = EXCLUDED.page_end,
  source_document_path = EXCLUDED.source_document_path,
  text = EXCLUDED.text,
  text_length = EXCLUDED.text_length
""")

_COLUMNS = (
    "chunk_id, season_id, jurisdiction_id, document_type, scope, language, rule_key, "
    "rule_number, title, page_start, page_end, source_document_path, text"
)


def simple_tokenize(s: str) -> List[str]:
    return [t.lower() for t in _WORD_RE.findall(s)]


def _row_to_chunk(r: Dict[str, Any]) -> Chunk:
    return Chunk(
        chunk_id=r["chunk_id"],
        season_id=r["season_id"],
        document_type=DocumentType(r["document_type"]),
        scope_level=ScopeLevel(r["scope"]),
        jurisdiction_id=r["jurisdiction_id"],
        canonical_rule_key=r["rule_key"],
        display_rule_number=r["rule_number"],
        title=r["title"],
        page_start=int(r["page_start"]),
        page_end=int(r["page_end"]),
        source_document_path=r["source_document_path"],
        text=r["text"],
        language=Language(r["language"]),
    )


class ChunkIndex:
    """Keyword (BM25) search over the indexed chunks.

    The BM25 model is built per query over the filtered corpus only
    (season, jurisdiction, scope), so scores never leak across contexts.
    BM25L is used instead of BM25Okapi because Okapi's idf goes to zero or
    negative on the small corpora a single season/jurisdiction filter leaves.
    """

    def __init__(self, engine: Engine):
        self.engine = engine

    def create_schema(self) -> None:
        with self.engine.begin() as conn:
            conn.execute(text(_SCHEMA))

    def upsert_chunks(self, chunks: Sequence[Chunk]) -> int:
        if not chunks:
            return 0
        rows = []
        for c in chunks:
            rows.append({
                "chunk_id": c.chunk_id,
                "season_id": c.season_id,
                "jurisdiction_id": c.jurisdiction_id,
                "document_type": c.document_type.value,
                "scope": c.scope_level.value,
                "language": c.language.value,
                "rule_key": c.canonical_rule_key,
                "rule_number": c.display_rule_number,
                "title": c.title,
                "page_start": c.page_start,
                "page_end": c.page_end,
                "source_document_path": c.source_document_path,
                "text": c.text,
                "text_length": len(c.text),
            })
        with self.engine.begin() as conn:
            conn.execute(_UPSERT, rows)
        return len(rows)

    def document_count(self) -> int:
        with self.engine.connect() as conn:
            return int(conn.execute(text("SELECT COUNT(*) FROM chunks")).scalar() or 0)

    def _select(self, where: List[str], params: Dict[str, Any], expanding: Iterable[str] = ()) -> List[Chunk]:
        sql = text(f"SELECT {_COLUMNS} FROM chunks WHERE {' AND '.join(where)} ORDER BY chunk_id")
        for name in expanding:
            sql = sql.bindparams(bindparam(name, expanding=True))
        with self.engine.connect() as conn:
            rows = conn.execute(sql, params).mappings().all()
        return [_row_to_chunk(r) for r in rows]

    def _context_filter(self, season_id: str, jurisdiction_id: Optional[str]):
        where = ["season_id = :season_id"]
        params: Dict[str, Any] = {"season_id": season_id}
        if jurisdiction_id:
            # this jurisdiction's documents plus the global ones
            where.append("(jurisdiction_id = :jurisdiction_id OR jurisdiction_id IS NULL)")
            params["jurisdiction_id"] = jurisdiction_id
        else:
            where.append("jurisdiction_id IS NULL")
        return where, params

    def search(self, request: SearchRequest) -> SearchResponse:
        request.validate()

        where, params = self._context_filter(request.season_id, request.jurisdiction_id)
        expanding = []
        if request.scope_levels:
            where.append("scope IN :scopes")
            params["scopes"] = [s.value for s in request.scope_levels]
            expanding.append("scopes")
        corpus = self._select(where, params, expanding)

        q_tokens = set(simple_tokenize(request.query))
        if not corpus or not q_tokens:
            return SearchResponse(query=request.query, total_results=0, results=[])

        tokenized = [simple_tokenize(c.text) for c in corpus]
        scores = BM25L(tokenized).get_scores(sorted(q_tokens))

        # BM25L gives every document a floor score; only keyword matches are hits
        matching = [i for i, toks in enumerate(tokenized) if q_tokens.intersection(toks)]
        ranked = sorted(matching, key=lambda i: (-scores[i], corpus[i].chunk_id))

        hits = [
            SearchHit(
                chunk=corpus[i],
                score=float(scores[i]),
                rank=rank,
                season_id=request.season_id,
                jurisdiction_id=request.jurisdiction_id,
            )
            for rank, i in enumerate(ranked[: request.result_limit], start=1)
        ]
        logger.debug("Search %r: corpus=%d matches=%d", request.query, len(corpus), len(matching))
        return SearchResponse(query=request.query, total_results=len(matching), results=hits)

    def jurisdictions(self, season_id: str) -> List[str]:
        sql = text("""
        SELECT DISTINCT jurisdiction_id FROM chunks
        WHERE season_id = :season_id AND jurisdiction_id IS NOT NULL
        ORDER BY jurisdiction_id
        """)
        with self.engine.connect() as conn:
            return [r[0] for r in conn.execute(sql, {"season_id": season_id}).all()]

    def chunks_for_rule_keys(
        self,
        season_id: str,
        jurisdiction_id: Optional[str],
        rule_keys: Iterable[str],
    ) -> List[Chunk]:
        keys = sorted(set(k for k in rule_keys if k))
        if not keys:
            return []
        where, params = self._context_filter(season_id, jurisdiction_id)
        where.append("rule_key IN :rule_keys")
        params["rule_keys"] = keys
        return self._select(where, params, expanding=["rule_keys"])
