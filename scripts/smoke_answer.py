import sys
from pathlib import Path
sys.path.insert(0, str(Path(__file__).parent.parent))

from dotenv import load_dotenv

load_dotenv()

from rulesapp.api.deps import build_services
from rulesapp.core.config import settings

query = sys.argv[1] if len(sys.argv) > 1 else "What is the size of the playing field?"
jurisdiction = sys.argv[2] if len(sys.argv) > 2 else None

services = build_services(settings)
ans = services.answerer.answer(query, jurisdiction_id=jurisdiction, use_generation=bool(settings.openai_api_key))

print("STATUS:", ans.status, "| context:", ans.context_used, "| retrieved:", ans.total_retrieved)
print("\nANSWER:\n", ans.answer_text)
print("CITATIONS:")
for c in ans.citations:
    print(" ", c.rule_number or "-", c.scope.value, c.jurisdiction_id or "global", f"p.{c.page_start}", c.chunk_id)
