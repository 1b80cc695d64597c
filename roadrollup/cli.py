"""CLI entrypoint for district road-segment rollup refreshes."""

from __future__ import annotations

import argparse
import sys
from pathlib import Path

from pyproj import Transformer

from roadrollup.common.config_loader import RefreshConfig, load_refresh_config
from roadrollup.common.constants import (
    CALC_DEDUPLICATED,
    CALCULATION_TYPES,
    COMMANDS,
    EXIT_HARD_FAIL,
    EXIT_PARTIAL,
    EXIT_SUCCESS,
)
from roadrollup.common.errors import PipelineError, StoreError
from roadrollup.common.fs import write_json
from roadrollup.common.ids import generate_run_id
from roadrollup.common.logging import build_logger, log_event
from roadrollup.common.time_utils import parse_run_date
from roadrollup.ingest.sources import build_sources
from roadrollup.pipeline.exports import budget_inputs, export_tiles, history_series
from roadrollup.pipeline.refresh import BatchResult, RefreshContext, abort_batch, refresh_all, refresh_district
from roadrollup.pipeline.reports import refresh_status, write_run_summary
from roadrollup.storage.refresh_log import RefreshLog
from roadrollup.storage.store import SegmentStore


def parse_args(argv: list[str]) -> argparse.Namespace:
    parser = argparse.ArgumentParser(description=__doc__)
    parser.add_argument("command", choices=COMMANDS)
    parser.add_argument("--district", action="append", default=[], dest="districts")
    parser.add_argument("--run-date", default=None)
    parser.add_argument("--run-id", default=None)
    parser.add_argument("--config-dir", default="./config")
    parser.add_argument("--overlay-config-dir", default=None)
    parser.add_argument("--data-dir", default="./data")
    parser.add_argument("--log-level", default="INFO", choices=["DEBUG", "INFO", "WARN", "ERROR"])
    parser.add_argument("--zoom", type=int, default=14)
    parser.add_argument("--segment-set", default=CALC_DEDUPLICATED, choices=CALCULATION_TYPES)
    parser.add_argument("--calculation-type", default=None, choices=CALCULATION_TYPES)
    parser.add_argument("--strict", action="store_true")
    return parser.parse_args(argv)


def _require_districts(args: argparse.Namespace) -> list[str]:
    if not args.districts:
        raise PipelineError(f"{args.command} requires at least one --district")
    return args.districts


def _wgs84_transformer(config: RefreshConfig) -> Transformer | None:
    if config.crs.source_epsg == 4326:
        return None
    return Transformer.from_crs(config.crs.source_epsg, 4326, always_xy=True)


def _batch_exit_code(result: BatchResult, strict: bool) -> int:
    if result.aborted:
        return EXIT_HARD_FAIL
    if result.failed:
        return EXIT_HARD_FAIL if strict else EXIT_PARTIAL
    return EXIT_SUCCESS


def run_command(args: argparse.Namespace) -> int:
    run_id = args.run_id or generate_run_id()
    run_date = parse_run_date(args.run_date)
    config_dir = Path(args.config_dir)
    overlay_config_dir = Path(args.overlay_config_dir) if args.overlay_config_dir else None
    data_dir = Path(args.data_dir)

    logger = build_logger(run_id, data_dir=data_dir, level=args.log_level)
    config = load_refresh_config(config_dir, overlay_config_dir=overlay_config_dir)
    store = SegmentStore(data_dir / "store", logger=logger)
    refresh_log = RefreshLog.in_store(store.root)
    registry, source = build_sources(config, data_dir)
    exports_dir = data_dir / "out" / "exports"

    log_event(logger, "command start", run_id=run_id, stage=args.command, event="COMMAND_START", status="ok")

    if args.command in ("refresh", "refresh-all"):
        ctx = RefreshContext(
            config=config,
            store=store,
            refresh_log=refresh_log,
            registry=registry,
            source=source,
            logger=logger,
            run_id=run_id,
            refresh_date=run_date,
        )
        if args.command == "refresh":
            result = BatchResult(run_id=run_id, outcomes=[])
            for district_id in _require_districts(args):
                try:
                    result.outcomes.append(refresh_district(ctx, district_id))
                except StoreError as exc:
                    abort_batch(ctx, result, exc, district_id=district_id)
                    break
        else:
            result = refresh_all(ctx, only=args.districts or None)
        write_run_summary(data_dir, result, run_date)
        exit_code = _batch_exit_code(result, args.strict)
    elif args.command == "status":
        write_json(exports_dir / "refresh_status.json", refresh_status(registry, refresh_log, run_date))
        exit_code = EXIT_SUCCESS
    elif args.command == "export-budget":
        for district_id in _require_districts(args):
            write_json(exports_dir / f"{district_id}_budget_inputs.json", budget_inputs(store, district_id))
        exit_code = EXIT_SUCCESS
    elif args.command == "export-tiles":
        for district_id in _require_districts(args):
            counts = export_tiles(
                store,
                district_id,
                data_dir / "out" / "tiles",
                args.zoom,
                segment_set=args.segment_set,
                to_wgs84=_wgs84_transformer(config),
            )
            log_event(logger, "tiles exported", run_id=run_id, stage=args.command, district=district_id, event="TILES_WRITTEN", status="ok", rows_out=len(counts))
        exit_code = EXIT_SUCCESS
    elif args.command == "history":
        for district_id in _require_districts(args):
            write_json(
                exports_dir / f"{district_id}_history.json",
                history_series(store, refresh_log, district_id, args.calculation_type),
            )
        exit_code = EXIT_SUCCESS
    else:
        raise ValueError(f"Unknown command: {args.command}")

    log_event(logger, "command end", run_id=run_id, stage=args.command, event="COMMAND_END", status="ok" if exit_code == EXIT_SUCCESS else "error")
    return exit_code


def main(argv: list[str] | None = None) -> int:
    args = parse_args(argv or sys.argv[1:])
    try:
        return run_command(args)
    except PipelineError as exc:
        print(f"roadrollup: {exc.error_code}: {exc}", file=sys.stderr)
        return EXIT_HARD_FAIL
    except Exception as exc:
        print(f"roadrollup: unexpected failure: {exc!r}", file=sys.stderr)
        return EXIT_HARD_FAIL


if __name__ == "__main__":
    raise SystemExit(main())
