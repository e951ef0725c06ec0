from __future__ import annotations

import logging
import re
from pathlib import Path
from typing import List

import fitz  # pymupdf

from rulesapp.core.errors import ExtractionError
from rulesapp.core.types import Page

logger = logging.getLogger(__name__)

_HSPACE_RE = re.compile(r"[ \t\u00a0\f\v]+")
_BLANKS_RE = re.compile(r"\n{3,}")


def normalize_page_text(text: str) -> str:
    # keep line structure: headers are detected at line start
    lines = [_HSPACE_RE.sub(" ", ln).strip() for ln in (text or "").splitlines()]
    return _BLANKS_RE.sub("\n\n", "\n".join(lines)).strip()


def extract_pages(data: bytes) -> List[Page]:
    """Turn PDF bytes into ordered, 1-based pages. Empty pages are kept."""
    try:
        doc = fitz.open(stream=data, filetype="pdf")
    except Exception as exc:
        raise ExtractionError(f"unreadable PDF: {exc}") from exc

    pages: List[Page] = []
    try:
        if doc.page_count == 0:
            raise ExtractionError("PDF has no pages")
        for i in range(doc.page_count):
            page = doc.load_page(i)
            pages.append(Page(page_number=i + 1, text=normalize_page_text(page.get_text("text"))))
    except ExtractionError:
        raise
    except Exception as exc:
        raise ExtractionError(f"failed reading page {len(pages) + 1}: {exc}") from exc
    finally:
        doc.close()

    logger.debug("Extracted %d pages (%d with text)", len(pages), sum(1 for p in pages if p.text))
    return pages


def load_pdf(path: str) -> List[Page]:
    return extract_pages(Path(path).read_bytes())
