"""
Shared fixtures for the rulebook assistant tests.

Everything runs against in-memory SQLite, a temp blob root and fake
completion clients, so no test needs network access or API keys.
"""

import sys
from pathlib import Path
from typing import List, Optional

import fitz
import pytest

# ---------------------------------------------------------------------------
# Path setup - make `rulesapp` importable without installing
# ---------------------------------------------------------------------------
PROJECT_ROOT = Path(__file__).resolve().parent.parent
if str(PROJECT_ROOT) not in sys.path:
    sys.path.insert(0, str(PROJECT_ROOT))

from rulesapp.core.errors import CompletionUnavailable  # noqa: E402
from rulesapp.core.types import (  # noqa: E402
    Chunk,
    DocumentType,
    Page,
    ScopeLevel,
    SearchHit,
)
from rulesapp.generation.openai_client import LLMResponse  # noqa: E402
from rulesapp.indexing.bm25_index import ChunkIndex  # noqa: E402
from rulesapp.storage.blob_store import LocalBlobStore  # noqa: E402
from rulesapp.storage.db import make_engine  # noqa: E402
from rulesapp.storage.table_store import TableStore  # noqa: E402

# ---------------------------------------------------------------------------
# Sample rulebook text
# ---------------------------------------------------------------------------

FIELD_BODY = (
    "The playing field shall be laid out according to the instructions below. "
    "The infield shall be a square with sides of ninety feet. "
    "The outfield is the area between the two foul lines formed by extending two sides of the square. "
    "The distance from home base to the nearest fence or stand in fair territory shall be two hundred and fifty feet or more."
)

BATTER_BODY = (
    "A batter is out for illegal action when he hits an illegally batted ball. "
    "It is interference by a batter when he steps out of the batter's box and hinders the catcher's play at home base. "
    "The umpire shall call the batter out and no runner may advance on the play. "
    "If the catcher retires the runner anyway the interference is ignored."
)

PREAMBLE = (
    "Official Playing Rules. These rules govern every sanctioned game played during the season. "
    "Officials, coaches and players are expected to know them. Where a provincial or regional "
    "rulebook provides otherwise for its own games, that rulebook applies instead."
)


def _doc_type_for(scope: ScopeLevel, english: bool = True) -> DocumentType:
    suffix = "En" if english else "Fr"
    return DocumentType(f"{scope.value}{suffix}")


@pytest.fixture
def sample_pages() -> List[Page]:
    """Three pages; rule 1.04 runs across the first page break."""
    return [
        Page(1, PREAMBLE + "\n\n1.04 - The playing field\n" + FIELD_BODY[:180]),
        Page(2, FIELD_BODY[180:] + "\n\n6.01(a) Batter's interference\n" + BATTER_BODY),
        Page(3, "5.09 Retiring the batter\nA batter is out when a third strike is legally caught by the catcher. "
                "A batter is out when a fair or foul fly ball, other than a foul tip, is legally caught. "
                "A batter is out when after two strikes he bunts foul and the ball does not become a caught foul."),
    ]


@pytest.fixture
def make_chunk():
    """Factory for Chunk records with sensible defaults."""

    def _make(
        chunk_id: str,
        scope: ScopeLevel,
        rule_key: Optional[str] = "6.01(a)",
        jurisdiction_id: Optional[str] = None,
        text: str = BATTER_BODY,
        season_id: str = "2025",
        english: bool = True,
        page: int = 1,
        title: Optional[str] = "Batter's interference",
    ) -> Chunk:
        doc_type = _doc_type_for(scope, english)
        return Chunk(
            chunk_id=chunk_id,
            season_id=season_id,
            document_type=doc_type,
            scope_level=scope,
            jurisdiction_id=jurisdiction_id,
            canonical_rule_key=rule_key,
            display_rule_number=rule_key,
            title=title,
            page_start=page,
            page_end=page,
            source_document_path=f"rules/{season_id}/{jurisdiction_id or 'global'}/{doc_type.value}.pdf",
            text=text,
            language=doc_type.language,
        )

    return _make


@pytest.fixture
def make_hit(make_chunk):
    """Factory for SearchHit records."""

    def _make(
        chunk_id: str,
        scope: ScopeLevel,
        score: float,
        rule_key: Optional[str] = "6.01(a)",
        jurisdiction_id: Optional[str] = None,
        query_jurisdiction: Optional[str] = None,
        rank: int = 1,
        **chunk_kwargs,
    ) -> SearchHit:
        chunk = make_chunk(chunk_id, scope, rule_key=rule_key, jurisdiction_id=jurisdiction_id, **chunk_kwargs)
        return SearchHit(
            chunk=chunk,
            score=score,
            rank=rank,
            season_id=chunk.season_id,
            jurisdiction_id=query_jurisdiction,
        )

    return _make


# ---------------------------------------------------------------------------
# Storage
# ---------------------------------------------------------------------------


@pytest.fixture
def engine():
    eng = make_engine("sqlite://")
    yield eng
    eng.dispose()


@pytest.fixture
def table_store(engine) -> TableStore:
    store = TableStore(engine)
    store.create_schema()
    return store


@pytest.fixture
def chunk_index(engine) -> ChunkIndex:
    index = ChunkIndex(engine)
    index.create_schema()
    return index


@pytest.fixture
def blob_store(tmp_path) -> LocalBlobStore:
    return LocalBlobStore(str(tmp_path / "blobs"))


# ---------------------------------------------------------------------------
# PDFs built in memory
# ---------------------------------------------------------------------------


def build_pdf(pages: List[str]) -> bytes:
    """One PDF page per string; lines must stay short enough to fit the page."""
    doc = fitz.open()
    try:
        for text in pages:
            page = doc.new_page()
            page.insert_text((50, 60), text, fontsize=9)
        return doc.tobytes()
    finally:
        doc.close()


NATIONAL_PAGES = [
    "1.04 - The playing field\n"
    "The playing field shall be laid out as described in this rule.\n"
    "The infield shall be a square with sides of ninety feet.\n"
    "The outfield is the area between the two foul lines.\n"
    "The fence in fair territory shall be far enough from home base.\n"
    "The pitcher's plate is placed in the middle of the infield.",
    "6.01(a) Batter interference\n"
    "It is interference by a batter when he steps out of the box.\n"
    "The umpire shall call the batter out on the play.\n"
    "No runner may advance after the interference call.\n"
    "If the catcher retires the runner the call is ignored.\n"
    "The ball is dead and runners return to their bases.",
]

REGIONAL_PAGES = [
    "6.01(a) Batter interference\n"
    "This rule replaces rule 6.01(a) of the national book.\n"
    "In our league the batter is warned once before any out.\n"
    "A second interference by the same batter is an out.\n"
    "Runners return to their bases after each warning.\n"
    "The umpire records every warning on the game sheet.",
]


@pytest.fixture
def pdf_builder():
    return build_pdf


@pytest.fixture
def national_pdf() -> bytes:
    """Two pages: rule 1.04 and rule 6.01(a)."""
    return build_pdf(NATIONAL_PAGES)


@pytest.fixture
def regional_pdf() -> bytes:
    """One page: a regional 6.01(a) that replaces the national one."""
    return build_pdf(REGIONAL_PAGES)


# ---------------------------------------------------------------------------
# Completion clients
# ---------------------------------------------------------------------------


class FakeLLM:
    """Returns a canned answer and records the prompts it was given."""

    def __init__(self, text: str = "", error: Optional[Exception] = None):
        self.text = text
        self.error = error
        self.calls = []

    def generate(self, system_prompt: str, user_prompt: str) -> LLMResponse:
        self.calls.append((system_prompt, user_prompt))
        if self.error is not None:
            raise self.error
        return LLMResponse(text=self.text)


@pytest.fixture
def fake_llm():
    return FakeLLM


@pytest.fixture
def failing_llm():
    return FakeLLM(error=CompletionUnavailable("timeout"))
