"""Run report aggregation."""

from __future__ import annotations

from pathlib import Path

from carceral_pfas.common.fs import read_json, write_json
from carceral_pfas.pipeline.artifacts import reports_dir, stage_report_path


def _stage_reports(data_dir: Path, stage: str, datasets: list[str]) -> dict[str, dict]:
    out = {}
    for name in datasets:
        path = stage_report_path(data_dir, stage, name)
        out[name] = read_json(path) if path.exists() else {"status": "missing_report"}
    return out


def write_run_summary(
    data_dir: Path,
    *,
    run_id: str,
    run_date: str,
    stages: list[str],
    datasets: list[str],
    failures: list[dict],
    summary: dict | None = None,
) -> Path:
    prepare = _stage_reports(data_dir, "prepare", datasets) if "prepare" in stages else {}
    link = _stage_reports(data_dir, "link", datasets[1:]) if "link" in stages else {}

    totals = {
        "points": sum(int(r.get("points", 0)) for r in prepare.values()),
        "dropped": sum(int(r.get("dropped", 0)) for r in prepare.values()),
        "unattributed": sum(int(r.get("unattributed", 0)) for r in prepare.values()),
        "missing_elevation": sum(int(r.get("missing_elevation", 0)) for r in prepare.values()),
        "links": sum(int(r.get("links", 0)) for r in link.values()),
    }

    status = "success"
    if failures:
        status = "partial"
    if any(r.get("status") == "missing_report" for r in [*prepare.values(), *link.values()]):
        status = "partial"

    payload = {
        "run_id": run_id,
        "run_date": run_date,
        "status": status,
        "stages": stages,
        "datasets": datasets,
        "totals": totals,
        "failures": failures,
        "prepare": prepare,
        "link": link,
        "summary": summary or {},
    }
    summary_path = reports_dir(data_dir) / "run_summary.json"
    write_json(summary_path, payload)
    return summary_path
