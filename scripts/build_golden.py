import json
from pathlib import Path

OUT = Path("data/golden.jsonl")
OUT.parent.mkdir(parents=True, exist_ok=True)

# Edit these to match the rulebooks you ingested
GOLDEN = [
    {
        "id": "q1",
        "season_id": "2025",
        "jurisdiction_id": None,
        "question": "Quelles sont les dimensions du terrain?",
        "expected_rule_keys": ["1.04"],
    },
    {
        "id": "q2",
        "season_id": "2025",
        "jurisdiction_id": "ABC",
        "question": "What counts as batter's interference?",
        "expected_rule_keys": ["6.01(a)"],
    },
    {
        "id": "q3",
        "season_id": "2025",
        "jurisdiction_id": None,
        "question": "Who won the world cup in 1998?",
        "expected_rule_keys": [],
    },
]

with OUT.open("w", encoding="utf-8") as f:
    for row in GOLDEN:
        f.write(json.dumps(row, ensure_ascii=False) + "\n")

print("Wrote", OUT)
