from __future__ import annotations

import argparse
import csv
import json
import os
from datetime import datetime
from typing import Any

import httpx


BASE_URL = os.environ.get("ALLOCATION_API_BASE_URL", "http://localhost:8000")


def _list_runs(client: httpx.Client) -> list[dict[str, Any]]:
    resp = client.get(f"{BASE_URL}/api/allocation/runs")
    resp.raise_for_status()
    runs = resp.json().get("runs")
    if not isinstance(runs, list):
        raise RuntimeError("Unexpected runs response format")
    return runs


def _pick_latest_run(runs: list[dict[str, Any]]) -> dict[str, Any] | None:
    # Only committed full passes carry a complete decision set.
    committed = [r for r in runs if r.get("status") == "COMMITTED" and r.get("kind") == "RUN"]
    committed.sort(key=lambda r: r.get("created_at", ""), reverse=True)
    return committed[0] if committed else None


def _get_decisions(client: httpx.Client, run_id: str) -> list[dict[str, Any]]:
    resp = client.get(f"{BASE_URL}/api/allocation/runs/{run_id}/decisions")
    resp.raise_for_status()
    decisions = resp.json().get("decisions")
    if not isinstance(decisions, list):
        raise RuntimeError("Unexpected decisions response format")
    return decisions


def _export_json(decisions: list[dict[str, Any]], path: str) -> None:
    with open(path, "w", encoding="utf-8") as f:
        json.dump(decisions, f, ensure_ascii=False, indent=2)


def _export_csv(decisions: list[dict[str, Any]], path: str) -> None:
    header = ["student_id", "course_id", "status", "reason", "rank", "sequence", "waitlist_position", "detail"]
    with open(path, "w", newline="", encoding="utf-8") as f:
        writer = csv.DictWriter(f, fieldnames=header, extrasaction="ignore")
        writer.writeheader()
        for d in decisions:
            writer.writerow(d)


def main() -> None:
    parser = argparse.ArgumentParser(description="Export the decisions of an allocation run to JSON and CSV")
    parser.add_argument("--run-id", default=None, help="Run to export (default: latest committed pass)")
    args = parser.parse_args()

    outputs_dir = os.path.join(os.path.dirname(__file__), "outputs")
    os.makedirs(outputs_dir, exist_ok=True)
    with httpx.Client(follow_redirects=True) as client:
        run_id = args.run_id
        if run_id is None:
            chosen = _pick_latest_run(_list_runs(client))
            if chosen is None:
                print("No committed allocation runs found to export.")
                return
            run_id = chosen["id"]
        decisions = _get_decisions(client, run_id)
        ts = datetime.now().strftime("%Y%m%d_%H%M%S")
        base = os.path.join(outputs_dir, f"allocation_{run_id}_{ts}")
        json_path = f"{base}_decisions.json"
        csv_path = f"{base}_decisions.csv"
        _export_json(decisions, json_path)
        _export_csv(decisions, csv_path)
        print({
            "run_id": run_id,
            "decisions_count": len(decisions),
            "json_path": json_path,
            "csv_path": csv_path,
        })


if __name__ == "__main__":
    main()
