import json
import os
import requests
from pathlib import Path
from typing import Any, Dict, List

import pandas as pd
from dotenv import load_dotenv

load_dotenv()

GOLDEN_PATH = Path(os.getenv("GOLDEN_PATH", "data/golden.jsonl"))
OUT_CSV = Path(os.getenv("EVAL_OUT", "data/eval_results.csv"))
API_URL = os.getenv("CHAT_API_URL", "http://127.0.0.1:8000/chat")


def load_golden(path: Path = GOLDEN_PATH) -> List[Dict[str, Any]]:
    if not path.exists():
        raise FileNotFoundError(f"{path} not found. Run scripts/build_golden.py first.")
    rows = []
    with path.open("r", encoding="utf-8") as f:
        for line in f:
            if line.strip():
                rows.append(json.loads(line))
    return rows


def call_chat(row: Dict[str, Any], use_generation: bool = False) -> Dict[str, Any]:
    payload = {
        "query": row["question"],
        "season_id": row.get("season_id"),
        "jurisdiction_id": row.get("jurisdiction_id"),
        "use_generation": use_generation,
    }
    r = requests.post(API_URL, json=payload, timeout=120)
    r.raise_for_status()
    return r.json()


def score_row(row: Dict[str, Any], out: Dict[str, Any]) -> Dict[str, Any]:
    """Compare one /chat response with its golden row.

    A row with no expected rule keys expects ``not_found``.
    """
    expected = [k for k in row.get("expected_rule_keys") or [] if k]
    cited = [c.get("rule_key") for c in out.get("citations") or [] if c.get("rule_key")]
    found = [k for k in expected if k in cited]

    expected_status = "ok" if expected else "not_found"
    return {
        "id": row.get("id"),
        "question": row["question"],
        "status": out.get("status"),
        "status_ok": out.get("status") == expected_status,
        "expected_rule_keys": ",".join(expected),
        "cited_rule_keys": ",".join(cited),
        "rule_key_recall": (len(found) / len(expected)) if expected else 1.0,
        "context_used": out.get("context_used", 0),
        "total_retrieved": out.get("total_retrieved", 0),
    }


def main():
    rows = load_golden()
    use_generation = os.getenv("EVAL_USE_GENERATION", "").lower() in ("1", "true", "yes")

    scored = [score_row(r, call_chat(r, use_generation)) for r in rows]
    df = pd.DataFrame(scored)

    print("\n=== EVAL RESULTS ===")
    print(df[["id", "status", "status_ok", "rule_key_recall"]])
    print(f"\nstatus accuracy: {df['status_ok'].mean():.2f}")
    print(f"mean rule-key recall: {df['rule_key_recall'].mean():.2f}")

    OUT_CSV.parent.mkdir(parents=True, exist_ok=True)
    df.to_csv(OUT_CSV, index=False)
    print("\nSaved:", OUT_CSV)


if __name__ == "__main__":
    main()
