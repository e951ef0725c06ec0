from __future__ import annotations

from dataclasses import dataclass
from functools import lru_cache
from typing import Optional

from rulesapp.core.config import Settings, settings
from rulesapp.generation.answerer import GroundedAnswerer
from rulesapp.generation.openai_client import OpenAILLM
from rulesapp.indexing.bm25_index import ChunkIndex
from rulesapp.ingestion.chunker import ChunkConfig, RuleChunker
from rulesapp.ingestion.ingest_pipeline import IngestWorker
from rulesapp.retrieval.precedence import PrecedenceResolver
from rulesapp.storage.blob_store import LocalBlobStore
from rulesapp.storage.db import make_engine
from rulesapp.storage.table_store import TableStore


@dataclass
class Services:
    settings: Settings
    blob_store: LocalBlobStore
    table_store: TableStore
    index: ChunkIndex
    resolver: PrecedenceResolver
    answerer: GroundedAnswerer
    worker: IngestWorker


def build_services(cfg: Settings) -> Services:
    engine = make_engine(cfg.database_url)
    table_store = TableStore(engine)
    index = ChunkIndex(engine)
    table_store.create_schema()
    index.create_schema()

    blob_store = LocalBlobStore(cfg.blob_root)
    resolver = PrecedenceResolver(overrides=table_store)

    # no key => template answers only
    llm: Optional[OpenAILLM] = None
    if cfg.openai_api_key:
        llm = OpenAILLM(
            api_key=cfg.openai_api_key,
            model=cfg.llm_model,
            base_url=cfg.openai_base_url,
            timeout=cfg.llm_timeout_seconds,
            temperature=cfg.llm_temperature,
            max_tokens=cfg.llm_max_tokens,
        )

    answerer = GroundedAnswerer(
        index=index,
        resolver=resolver,
        llm=llm,
        min_relevance_score=cfg.min_relevance_score,
        retrieval_top_k=cfg.retrieval_top_k,
        grounding_mode=cfg.grounding_mode,
        default_season_id=cfg.default_season_id,
    )
    chunker = RuleChunker(ChunkConfig(
        min_chunk_size=cfg.min_chunk_size,
        target_chunk_size=cfg.target_chunk_size,
        max_chunk_size=cfg.max_chunk_size,
    ))
    worker = IngestWorker(blob_store, table_store, index, chunker=chunker)

    return Services(
        settings=cfg,
        blob_store=blob_store,
        table_store=table_store,
        index=index,
        resolver=resolver,
        answerer=answerer,
        worker=worker,
    )


@lru_cache(maxsize=1)
def get_services() -> Services:
    return build_services(settings)
