"""Run and refresh status reports."""

from __future__ import annotations

from pathlib import Path
from typing import Any

from roadrollup.common.constants import OP_COMPLETE_REFRESH, OP_REFRESH_ERROR
from roadrollup.common.deterministic import stable_sorted
from roadrollup.common.fs import write_json
from roadrollup.ingest.sources import DistrictRegistry
from roadrollup.pipeline.refresh import BatchResult
from roadrollup.storage.refresh_log import RefreshLog


def refresh_status(registry: DistrictRegistry, refresh_log: RefreshLog, on_date: str) -> list[dict[str, Any]]:
    """Per active district: last complete refresh, last refresh of any kind, errors on ``on_date``."""
    entries = refresh_log.entries()
    by_district: dict[str, list[dict[str, Any]]] = {}
    for entry in entries:
        by_district.setdefault(entry["district_id"], []).append(entry)

    rows = []
    active = stable_sorted((d for d in registry.list_districts() if d.is_active), key=lambda d: (d.name, d.district_id))
    for district in active:
        own = by_district.get(district.district_id, [])
        complete = [e for e in own if e["operation_type"] == OP_COMPLETE_REFRESH]
        errors_today = [e for e in own if e["operation_type"] == OP_REFRESH_ERROR and e["refresh_date"] == on_date]
        rows.append(
            {
                "district_id": district.district_id,
                "name": district.name,
                "last_complete_refresh": complete[-1]["created_at"] if complete else None,
                "last_any_refresh": own[-1]["created_at"] if own else None,
                "errors_on_date": len(errors_today),
                "last_error_code": errors_today[-1]["error_code"] if errors_today else None,
            }
        )
    return rows


def write_run_summary(data_dir: Path, result: BatchResult, run_date: str) -> Path:
    status = "success"
    if result.aborted:
        status = "error"
    elif result.failed:
        status = "partial"

    error_codes: dict[str, int] = {}
    for outcome in result.failed:
        error_codes[outcome.error_code or "UNKNOWN"] = error_codes.get(outcome.error_code or "UNKNOWN", 0) + 1

    summary_path = data_dir / "out" / "reports" / "run_summary.json"
    write_json(
        summary_path,
        {
            "run_id": result.run_id,
            "run_date": run_date,
            "status": status,
            "aborted": result.aborted,
            "abort_error": result.abort_error,
            "district_count": len(result.outcomes),
            "success_count": len(result.succeeded),
            "error_count": len(result.failed),
            "error_codes": error_codes,
            "districts": [outcome.to_dict() for outcome in result.outcomes],
        },
    )
    return summary_path
