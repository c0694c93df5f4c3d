"""Run report aggregation."""

from __future__ import annotations

from pathlib import Path

from district_crashes.common.fs import write_json


def write_run_summary(
    data_dir: Path,
    run_id: str,
    analysis_reports: dict[str, dict],
    *,
    window: dict | None = None,
) -> Path:
    totals = {
        "records": 0,
        "crashes": 0,
        "fatalities": 0,
        "estimated_economic_damages": 0.0,
    }
    error_count = 0

    for report in analysis_reports.values():
        if report.get("status") != "success":
            error_count += 1
            continue
        counts = report.get("totals", {})
        totals["records"] += int(counts.get("records", 0))
        totals["crashes"] += int(counts.get("crashes", 0))
        totals["fatalities"] += int(counts.get("fatalities", 0))
        totals["estimated_economic_damages"] += float(counts.get("estimated_economic_damages", 0.0))

    status = "success"
    if error_count and error_count == len(analysis_reports):
        status = "error"
    elif error_count:
        status = "partial"

    summary_path = data_dir / "out" / "reports" / "run_summary.json"
    payload = {
        "run_id": run_id,
        "status": status,
        "analysis_window": window,
        "analyses": sorted(analysis_reports),
        # Summed per analysis; overlapping analyses count a record more than once.
        "totals": totals,
        "error_count": error_count,
        "analysis_reports": analysis_reports,
    }
    write_json(summary_path, payload)
    return summary_path
