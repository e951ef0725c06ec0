import argparse
import sys
import uuid
from pathlib import Path
# Ensure project root is on sys.path so `import rulesapp` works when running this file directly.
sys.path.insert(0, str(Path(__file__).parent.parent))

from dotenv import load_dotenv

load_dotenv()

from rulesapp.api.deps import build_services
from rulesapp.core.config import settings
from rulesapp.core.logging_utils import setup_logging
from rulesapp.core.types import DocumentType
from rulesapp.ingestion.ingest_pipeline import IngestMessage
from rulesapp.ingestion.pdf_loader import load_pdf

parser = argparse.ArgumentParser(description="Ingest one rulebook PDF locally.")
parser.add_argument("pdf", help="path to the PDF")
parser.add_argument("--season", default=settings.default_season_id)
parser.add_argument("--jurisdiction", default=None)
parser.add_argument("--document-type", required=True, choices=[d.value for d in DocumentType])
parser.add_argument("--dry-run", action="store_true", help="extract and chunk only; store nothing")
args = parser.parse_args()

setup_logging(settings.log_level, json_logs=settings.log_json)
services = build_services(settings)

message = IngestMessage.for_document(
    job_id=uuid.uuid4().hex,
    season_id=args.season,
    jurisdiction_id=args.jurisdiction,
    document_type=DocumentType(args.document_type),
)

if args.dry_run:
    pages = load_pdf(args.pdf)
    chunks = services.worker.chunker.chunk_pages(
        pages,
        season_id=message.season_id,
        jurisdiction_id=message.jurisdiction_id,
        document_type=message.document_type,
        source_document_path=message.source_document_path,
    )
    print("pages:", len(pages), "chunks:", len(chunks))
    for c in chunks[:10]:
        print(f"  {c.canonical_rule_key or '-':<10} p{c.page_start}-{c.page_end} {len(c.text):>5}  {c.title or ''}")
    raise SystemExit(0)

services.blob_store.put_bytes(message.source_document_path, Path(args.pdf).read_bytes())
services.worker.queue(message)
job = services.worker.process(message)

print("Ingested:", args.pdf)
print("job_id:", job.job_id, "status:", job.status.value)
print("pages:", job.page_count, "chunks:", job.chunk_count)
if job.error_message:
    print("error:", job.error_message)
    raise SystemExit(1)
