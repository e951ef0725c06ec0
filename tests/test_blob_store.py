import json
import logging

import pytest

from rulesapp.core.logging_utils import _JsonFormatter
from rulesapp.core.paths import ingestion_chunks_path, partition_key, rules_pdf_path
from rulesapp.core.types import DocumentType
from rulesapp.ingestion.pdf_loader import normalize_page_text


def test_put_and_get(blob_store):
    blob_store.put_text("ingest/job1/chunks.json", "[]")
    assert blob_store.exists("ingest/job1/chunks.json")
    assert blob_store.get_text("ingest/job1/chunks.json") == "[]"


def test_overwrite_replaces_content(blob_store):
    blob_store.put_bytes("rules/2025/global/NationalFr.pdf", b"one")
    blob_store.put_bytes("rules/2025/global/NationalFr.pdf", b"two")
    assert blob_store.get_bytes("rules/2025/global/NationalFr.pdf") == b"two"


def test_missing_blob(blob_store):
    assert not blob_store.exists("nope.pdf")
    with pytest.raises(FileNotFoundError):
        blob_store.get_bytes("nope.pdf")


def test_path_escape_rejected(blob_store):
    with pytest.raises(ValueError):
        blob_store.put_text("../outside.txt", "x")


def test_blob_paths():
    assert rules_pdf_path("2025", None, DocumentType.NATIONAL_FR) == "rules/2025/global/NationalFr.pdf"
    assert rules_pdf_path("2025", "ABC", DocumentType.REGIONAL_EN) == "rules/2025/ABC/RegionalEn.pdf"
    assert ingestion_chunks_path("job1") == "ingest/job1/chunks.json"
    assert partition_key("2025", None) == "2025:global"
    assert partition_key("2025", "ABC") == "2025:ABC"


def test_normalize_page_text_keeps_lines():
    raw = "  1.04  -\tThe   playing field \n\n\n\nThe infield is square.  \n"
    assert normalize_page_text(raw) == "1.04 - The playing field\n\nThe infield is square."


def test_json_log_formatter():
    record = logging.LogRecord("rulesapp.test", logging.INFO, __file__, 1, "job %s done", ("j1",), None)
    payload = json.loads(_JsonFormatter().format(record))
    assert payload["msg"] == "job j1 done"
    assert payload["level"] == "INFO"
    assert payload["logger"] == "rulesapp.test"
