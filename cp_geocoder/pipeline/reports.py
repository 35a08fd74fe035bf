"""Run summary report."""

from __future__ import annotations

from pathlib import Path

from cp_geocoder.common.fs import write_json
from cp_geocoder.pipeline.orchestrator import RunStats


def run_status(stats: RunStats) -> str:
    if stats.errors > 0:
        return "partial"
    return "success"


def write_run_summary(
    log_dir: Path,
    *,
    run_id: str,
    stats: RunStats,
    results_path: Path,
    misses_path: Path,
) -> Path:
    summary_path = log_dir / f"{run_id}.summary.json"
    payload = {
        "run_id": run_id,
        "status": run_status(stats),
        "outputs": {
            "results_csv": str(results_path),
            "misses_csv": str(misses_path),
        },
        "counts": stats.to_dict(),
    }
    write_json(summary_path, payload)
    return summary_path
