"""CLI entrypoint for the postal-code geocoding pipeline."""

from __future__ import annotations

import argparse
import logging
import sys
from pathlib import Path

from dotenv import load_dotenv

from cp_geocoder.common.config_loader import DEFAULT_CONFIG_PATH, load_config
from cp_geocoder.common.constants import COMMANDS, EXIT_HARD_FAIL, EXIT_PARTIAL, EXIT_SUCCESS
from cp_geocoder.common.errors import PipelineError
from cp_geocoder.common.logging import build_logger, log_event
from cp_geocoder.common.time_utils import generate_run_id
from cp_geocoder.pipeline.orchestrator import prepare_run, run_geocode
from cp_geocoder.pipeline.reports import run_status, write_run_summary
from cp_geocoder.pipeline.resume import record_resume_key


def parse_args(argv: list[str]) -> argparse.Namespace:
    parser = argparse.ArgumentParser(description=__doc__)
    parser.add_argument("command", choices=COMMANDS)
    parser.add_argument("--config", default=str(DEFAULT_CONFIG_PATH))
    parser.add_argument("--overlay-config", default=None)
    parser.add_argument("--input", default=None)
    parser.add_argument("--output", default=None)
    parser.add_argument("--start-at", type=int, default=None)
    parser.add_argument("--limit", type=int, default=None)
    parser.add_argument("--run-id", default=None)
    parser.add_argument("--log-dir", default=None)
    parser.add_argument("--log-level", default="INFO", choices=["DEBUG", "INFO", "WARN", "ERROR"])
    return parser.parse_args(argv)


def apply_cli_overrides(cfg: dict, args: argparse.Namespace) -> dict:
    if args.input:
        cfg["input"]["path"] = args.input
    if args.output:
        previous = Path(cfg["output"]["results_csv"])
        cfg["output"]["results_csv"] = args.output
        # A derived misses path follows the results file.
        if Path(cfg["output"]["misses_csv"]) == previous.parent / "misses.csv":
            cfg["output"]["misses_csv"] = str(Path(args.output).parent / "misses.csv")
    if args.start_at is not None:
        cfg["input"]["start_at"] = args.start_at
    if args.limit is not None:
        cfg["input"]["sample_limit"] = args.limit
    if args.log_dir:
        cfg["output"]["log_dir"] = args.log_dir
    return cfg


def run_status_command(cfg: dict, logger, run_id: str) -> int:
    records, completed, _collisions = prepare_run(cfg, logger, run_id)
    key_fields = cfg["resume"]["key_fields"]
    done = sum(1 for record in records if record_resume_key(record, key_fields) in completed)
    missing = sum(1 for record in records if not record.municipality)
    log_event(
        logger,
        f"selected={len(records)} done={done} missing_municipality={missing} pending={len(records) - done - missing}",
        run_id=run_id,
        stage="status",
        event="RUN_END",
        status="ok",
        rows_in=len(records),
        rows_out=done,
    )
    return EXIT_SUCCESS


def run_command(args: argparse.Namespace) -> int:
    run_id = args.run_id or generate_run_id()
    cfg = load_config(
        Path(args.config),
        overlay_path=Path(args.overlay_config) if args.overlay_config else None,
    )
    cfg = apply_cli_overrides(cfg, args)
    log_dir = Path(cfg["output"]["log_dir"]) if cfg["output"].get("log_dir") else None
    logger = build_logger(run_id, log_dir=log_dir, level=args.log_level)

    log_event(logger, f"{args.command} start", run_id=run_id, stage=args.command, event="RUN_START", status="ok")
    try:
        if args.command == "status":
            return run_status_command(cfg, logger, run_id)
        stats = run_geocode(cfg, logger, run_id=run_id)
    except PipelineError as exc:
        log_event(
            logger,
            f"{args.command} failed: {exc}",
            level=logging.ERROR,
            run_id=run_id,
            stage=args.command,
            event="RUN_END",
            status="error",
            error_code=exc.error_code,
        )
        return EXIT_HARD_FAIL

    if log_dir is not None:
        write_run_summary(
            log_dir,
            run_id=run_id,
            stats=stats,
            results_path=Path(cfg["output"]["results_csv"]),
            misses_path=Path(cfg["output"]["misses_csv"]),
        )
    log_event(
        logger,
        f"done | processed={stats.processed}, skipped={stats.skipped}, errors={stats.errors}",
        run_id=run_id,
        stage="geocode",
        event="RUN_END",
        status=run_status(stats),
        rows_in=stats.rows_in,
        rows_out=stats.processed,
    )
    if stats.errors:
        return EXIT_PARTIAL
    return EXIT_SUCCESS


def main(argv: list[str] | None = None) -> int:
    load_dotenv()
    args = parse_args(argv or sys.argv[1:])
    try:
        return run_command(args)
    except PipelineError:
        return EXIT_HARD_FAIL
    except Exception:
        return EXIT_HARD_FAIL


if __name__ == "__main__":
    raise SystemExit(main())
