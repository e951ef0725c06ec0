import sys
from pathlib import Path
sys.path.insert(0, str(Path(__file__).parent.parent))

from dotenv import load_dotenv

load_dotenv()

from rulesapp.api.deps import build_services
from rulesapp.core.config import settings
from rulesapp.core.types import SearchRequest

query = sys.argv[1] if len(sys.argv) > 1 else "terrain"
jurisdiction = sys.argv[2] if len(sys.argv) > 2 else None

services = build_services(settings)
resp = services.index.search(SearchRequest(
    query=query,
    season_id=settings.default_season_id,
    jurisdiction_id=jurisdiction,
    result_limit=settings.retrieval_top_k,
))
groups = services.resolver.resolve(resp.results, settings.default_season_id, jurisdiction)

print(f"{resp.total_results} matches, {len(groups)} rule groups")
for g in groups:
    p = g.primary
    print(g.rule_key, "->", p.scope.value, p.chunk.jurisdiction_id or "global", "score=", round(p.score, 3),
          "| alternates:", [(a.scope.value, round(a.score, 3)) for a in g.alternates])
for h in services.resolver.ungrouped(resp.results):
    print("(no rule)", h.scope.value, "score=", round(h.score, 3), "|", h.text_preview[:80])
