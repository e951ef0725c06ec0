"""
Rule-aware chunker.

Pages are concatenated into one buffer with an offset -> page map, so a rule
that runs across a page break stays one section and its chunks report the
full page range. Sections are cut at rule headers (or blank-line paragraphs
when a document has no recognisable headers), oversized sections are split
at sentence boundaries, and every piece of a section carries the header that
was detected once on the section itself.
"""
from __future__ import annotations

import hashlib
import logging
import re
from bisect import bisect_right
from dataclasses import dataclass
from typing import Iterable, List, Optional, Tuple

from rulesapp.core.paths import rules_pdf_path
from rulesapp.core.types import Chunk, DocumentType, Page
from rulesapp.ingestion.patterns import HEADER_PATTERNS, normalize_rule_number

logger = logging.getLogger(__name__)

PAGE_SEPARATOR = "\n\n"

_PARAGRAPH_BREAK_RE = re.compile(r"\n[ \t]*\n")
_SENTENCE_END_RE = re.compile(r"(?<=[.!?;])\s+|\n[ \t]*\n")
_TITLE_DASH_RE = re.compile(r"^[-–—:\s]+")

Span = Tuple[int, int]


@dataclass(frozen=True)
class ChunkConfig:
    min_chunk_size: int = 200
    target_chunk_size: int = 2000   # sections longer than this are split
    max_chunk_size: int = 4000      # no piece is ever longer than this
    id_prefix_chars: int = 100
    title_max_chars: int = 100


@dataclass(frozen=True)
class RuleHeader:
    rule_number: str            # as printed, e.g. "6.01 (a)"
    rule_key: str               # "6.01(a)"
    title: Optional[str]


@dataclass(frozen=True)
class Section:
    start: int
    end: int
    header: Optional[RuleHeader]


class PageBuffer:
    """All non-empty page texts joined, with the offset at which each page begins."""

    def __init__(self, pages: Iterable[Page]):
        parts: List[str] = []
        self.starts: List[int] = []
        self.page_numbers: List[int] = []
        pos = 0
        for page in pages:
            if not page.text or not page.text.strip():
                continue
            if parts:
                parts.append(PAGE_SEPARATOR)
                pos += len(PAGE_SEPARATOR)
            self.starts.append(pos)
            self.page_numbers.append(page.page_number)
            parts.append(page.text)
            pos += len(page.text)
        self.text = "".join(parts)

    def page_at(self, offset: int) -> int:
        idx = bisect_right(self.starts, offset) - 1
        return self.page_numbers[max(idx, 0)]

    def page_range(self, start: int, end: int) -> Tuple[int, int]:
        return self.page_at(start), self.page_at(max(start, end - 1))


def make_chunk_id(
    season_id: str,
    jurisdiction_id: Optional[str],
    document_type: DocumentType,
    page_start: int,
    text: str,
    prefix_chars: int = 100,
) -> str:
    raw = f"{season_id}|{jurisdiction_id or 'GLOBAL'}|{document_type.value}|{page_start}|{text[:prefix_chars]}"
    return f"ch_{hashlib.sha1(raw.encode('utf-8')).hexdigest()[:16]}"


def _strip_span(text: str, start: int, end: int) -> Span:
    while start < end and text[start].isspace():
        start += 1
    while end > start and text[end - 1].isspace():
        end -= 1
    return start, end


class RuleChunker:
    def __init__(self, config: Optional[ChunkConfig] = None):
        self.config = config or ChunkConfig()

    def chunk_pages(
        self,
        pages: List[Page],
        season_id: str,
        jurisdiction_id: Optional[str],
        document_type: DocumentType,
        source_document_path: Optional[str] = None,
    ) -> List[Chunk]:
        if document_type.requires_jurisdiction and not jurisdiction_id:
            raise ValueError(f"{document_type.value} documents require a jurisdiction_id")

        buf = PageBuffer(pages)
        if not buf.text:
            return []

        source = source_document_path or rules_pdf_path(season_id, jurisdiction_id, document_type)
        sections = self._header_sections(buf.text)
        mode = "headers"
        if sections is None:
            sections = self._paragraph_sections(buf.text)
            mode = "paragraphs"

        out: List[Chunk] = []
        for section in sections:
            for start, end in self._split_section(buf.text, section):
                text = buf.text[start:end]
                page_start, page_end = buf.page_range(start, end)
                header = section.header
                out.append(
                    Chunk(
                        chunk_id=make_chunk_id(
                            season_id, jurisdiction_id, document_type, page_start, text,
                            self.config.id_prefix_chars,
                        ),
                        season_id=season_id,
                        document_type=document_type,
                        scope_level=document_type.scope_level,
                        jurisdiction_id=jurisdiction_id,
                        canonical_rule_key=header.rule_key if header else None,
                        display_rule_number=header.rule_number if header else None,
                        title=header.title if header else self._first_line(text),
                        page_start=page_start,
                        page_end=page_end,
                        source_document_path=source,
                        text=text,
                        language=document_type.language,
                    )
                )

        logger.info(
            "Chunked %d pages into %d chunks (%s mode, %d sections)",
            len(buf.page_numbers), len(out), mode, len(sections),
        )
        return out

    # ------------------------------------------------------------------
    # Sections
    # ------------------------------------------------------------------

    def _header_sections(self, text: str) -> Optional[List[Section]]:
        matches = sorted(
            (m for rp in HEADER_PATTERNS for m in rp.pattern.finditer(text)),
            key=lambda m: m.start(),
        )
        accepted: List[re.Match] = []
        for m in matches:
            if accepted and m.start() < accepted[-1].end():
                continue
            accepted.append(m)
        if not accepted:
            return None

        sections: List[Section] = []
        if accepted[0].start() > 0:
            sections.append(Section(0, accepted[0].start(), None))
        for i, m in enumerate(accepted):
            end = accepted[i + 1].start() if i + 1 < len(accepted) else len(text)
            sections.append(Section(m.start(), end, self._header_from_match(text, m)))

        return [s for s in sections if self._long_enough(text, s.start, s.end)]

    def _paragraph_sections(self, text: str) -> List[Section]:
        # accumulate paragraphs until the minimum size is reached
        sections: List[Section] = []
        cur_start = 0
        for m in _PARAGRAPH_BREAK_RE.finditer(text):
            if self._long_enough(text, cur_start, m.start()):
                sections.append(Section(cur_start, m.start(), None))
                cur_start = m.end()
        if self._long_enough(text, cur_start, len(text)):
            sections.append(Section(cur_start, len(text), None))
        return sections

    def _header_from_match(self, text: str, m: re.Match) -> RuleHeader:
        number = m.group(1).strip()
        line_end = text.find("\n", m.end())
        rest = text[m.end(): line_end if line_end != -1 else len(text)]
        title = _TITLE_DASH_RE.sub("", rest).strip()[: self.config.title_max_chars].strip()
        return RuleHeader(rule_number=number, rule_key=normalize_rule_number(number), title=title or None)

    def _first_line(self, text: str) -> Optional[str]:
        for line in text.splitlines():
            if line.strip():
                return line.strip()[: self.config.title_max_chars]
        return None

    def _long_enough(self, text: str, start: int, end: int) -> bool:
        s, e = _strip_span(text, start, end)
        return e - s >= self.config.min_chunk_size

    # ------------------------------------------------------------------
    # Splitting
    # ------------------------------------------------------------------

    def _split_section(self, text: str, section: Section) -> List[Span]:
        start, end = _strip_span(text, section.start, section.end)
        if end - start <= self.config.target_chunk_size:
            return [(start, end)]

        # a piece is only closed once it has reached the minimum size
        pieces: List[Span] = []
        cur: Optional[Span] = None
        for a, b in self._sentences(text, start, end):
            if cur is None:
                cur = (a, b)
            elif (b - cur[0] <= self.config.target_chunk_size
                  or self._span_len(text, cur) < self.config.min_chunk_size):
                cur = (cur[0], b)
            else:
                pieces.append(cur)
                cur = (a, b)
        if cur is not None:
            pieces.append(cur)

        spans: List[Span] = []
        for a, b in pieces:
            spans.extend(self._hard_cap(text, a, b))
        spans = [_strip_span(text, a, b) for a, b in spans]
        spans = [(a, b) for a, b in spans if b > a]

        if len(spans) > 1 and spans[-1][1] - spans[-1][0] < self.config.min_chunk_size:
            tail = spans.pop()
            prev = spans.pop()
            spans.extend(self._merge_or_halve(text, prev[0], tail[1]))
        return spans

    def _sentences(self, text: str, start: int, end: int) -> List[Span]:
        cuts = [start] + [start + m.end() for m in _SENTENCE_END_RE.finditer(text[start:end])] + [end]
        return [(a, b) for a, b in zip(cuts, cuts[1:]) if b > a]

    def _span_len(self, text: str, span: Span) -> int:
        a, b = _strip_span(text, span[0], span[1])
        return b - a

    def _hard_cap(self, text: str, start: int, end: int) -> List[Span]:
        out: List[Span] = []
        limit = self.config.max_chunk_size
        while end - start > limit:
            window = text[start:start + limit]
            cut = max(window.rfind(" "), window.rfind("\n"))
            cut = start + cut if cut >= self.config.min_chunk_size else start + limit
            out.append((start, cut))
            start = cut
        if out and self._span_len(text, (start, end)) < self.config.min_chunk_size:
            prev = out.pop()
            out.extend(self._merge_or_halve(text, prev[0], end))
        else:
            out.append((start, end))
        return out

    def _merge_or_halve(self, text: str, start: int, end: int) -> List[Span]:
        """Join a short remainder onto its neighbour; re-cut near the middle if that breaks the cap."""
        start, end = _strip_span(text, start, end)
        if end - start <= self.config.max_chunk_size:
            return [(start, end)]
        lo = start + self.config.min_chunk_size
        mid = (start + end) // 2
        cut = max(text.rfind(" ", lo, mid + 1), text.rfind("\n", lo, mid + 1))
        if cut == -1:
            cut = mid
        return [_strip_span(text, start, cut), _strip_span(text, cut, end)]
