"""Refresh orchestration: per-district state machine and batch driver."""

from __future__ import annotations

import logging
import time
from concurrent.futures import ThreadPoolExecutor
from dataclasses import dataclass, field
from enum import Enum
from typing import Any

from roadrollup.common.config_loader import RefreshConfig
from roadrollup.common.constants import (
    ERROR_RECORDS_SENTINEL,
    OP_COMPLETE_REFRESH,
    OP_REFRESH_DEDUP,
    OP_REFRESH_ERROR,
    OP_REFRESH_RAW,
    OP_REFRESH_ROLLUPS,
)
from roadrollup.common.deterministic import stable_sorted
from roadrollup.common.errors import ComputeError, PipelineError, StateTransitionError, StoreError
from roadrollup.common.geometry import LengthMeasurer, build_metric_transformer
from roadrollup.common.ids import generate_log_id
from roadrollup.common.logging import log_event
from roadrollup.common.models import RefreshLogEntry
from roadrollup.common.time_utils import Deadline, utc_timestamp_iso
from roadrollup.ingest.clip import boundary_geometry, clip_segments, require_refreshable
from roadrollup.ingest.sources import DistrictRegistry, SegmentSource
from roadrollup.pipeline.clustering import cluster_segments
from roadrollup.pipeline.nodes import estimate_intersections
from roadrollup.pipeline.rollup import build_rollups
from roadrollup.storage.refresh_log import RefreshLog, append_best_effort
from roadrollup.storage.store import SegmentStore


class RefreshState(str, Enum):
    PENDING = "pending"
    CLIPPING_SEGMENTS = "clipping_segments"
    CLUSTERING = "clustering"
    AGGREGATING = "aggregating"
    COMPLETE = "complete"
    FAILED = "failed"


TRANSITIONS: dict[RefreshState, set[RefreshState]] = {
    RefreshState.PENDING: {RefreshState.CLIPPING_SEGMENTS, RefreshState.FAILED},
    RefreshState.CLIPPING_SEGMENTS: {RefreshState.CLUSTERING, RefreshState.FAILED},
    RefreshState.CLUSTERING: {RefreshState.AGGREGATING, RefreshState.FAILED},
    RefreshState.AGGREGATING: {RefreshState.COMPLETE, RefreshState.FAILED},
    RefreshState.COMPLETE: set(),
    RefreshState.FAILED: set(),
}


class RefreshStateMachine:
    def __init__(self, district_id: str) -> None:
        self.district_id = district_id
        self.state = RefreshState.PENDING
        self.history = [RefreshState.PENDING]

    @property
    def terminal(self) -> bool:
        return not TRANSITIONS[self.state]

    def advance(self, new_state: RefreshState) -> None:
        if new_state not in TRANSITIONS[self.state]:
            raise StateTransitionError(
                f"Illegal refresh transition for {self.district_id}: {self.state.value} -> {new_state.value}"
            )
        self.state = new_state
        self.history.append(new_state)

    def fail(self) -> None:
        if self.state is not RefreshState.FAILED and not self.terminal:
            self.advance(RefreshState.FAILED)


@dataclass
class RefreshContext:
    config: RefreshConfig
    store: SegmentStore
    refresh_log: RefreshLog
    registry: DistrictRegistry
    source: SegmentSource
    logger: logging.Logger
    run_id: str
    refresh_date: str


@dataclass
class DistrictOutcome:
    district_id: str
    status: str
    state: RefreshState
    duration_seconds: float
    generation: str | None = None
    counts: dict[str, int] = field(default_factory=dict)
    error_code: str | None = None
    error_message: str | None = None

    def to_dict(self) -> dict[str, Any]:
        return {
            "district_id": self.district_id,
            "status": self.status,
            "state": self.state.value,
            "duration_seconds": round(self.duration_seconds, 3),
            "generation": self.generation,
            "counts": dict(self.counts),
            "error_code": self.error_code,
            "error_message": self.error_message,
        }


@dataclass
class BatchResult:
    run_id: str
    outcomes: list[DistrictOutcome]
    aborted: bool = False
    abort_error: str | None = None

    @property
    def failed(self) -> list[DistrictOutcome]:
        return [o for o in self.outcomes if o.status != "success"]

    @property
    def succeeded(self) -> list[DistrictOutcome]:
        return [o for o in self.outcomes if o.status == "success"]


def _log_entry(
    ctx: RefreshContext,
    district_id: str,
    operation_type: str,
    records_processed: int,
    duration_seconds: float | None,
    source_data_version: str,
    *,
    status: str = "success",
    error: PipelineError | None = None,
    details: dict[str, Any] | None = None,
) -> RefreshLogEntry:
    return RefreshLogEntry(
        log_id=generate_log_id(),
        district_id=district_id,
        operation_type=operation_type,
        records_processed=records_processed,
        duration_seconds=round(duration_seconds, 3) if duration_seconds is not None else None,
        status=status,
        source_data_version=source_data_version,
        refresh_date=ctx.refresh_date,
        created_at=utc_timestamp_iso(),
        run_id=ctx.run_id,
        error_code=error.error_code if error is not None else None,
        error_message=str(error) if error is not None else None,
        details=details or {},
    )


def _run_steps(ctx: RefreshContext, district_id: str, machine: RefreshStateMachine, deadline: Deadline) -> DistrictOutcome:
    cfg = ctx.config
    district = require_refreshable(ctx.registry.get(district_id), district_id)
    staged = ctx.store.begin(district_id)
    step_entries: list[tuple[str, int, float, dict[str, Any]]] = []
    try:
        machine.advance(RefreshState.CLIPPING_SEGMENTS)
        step_started = time.monotonic()
        batch = ctx.source.fetch(district)
        deadline.check(RefreshState.CLIPPING_SEGMENTS.value)
        clip = clip_segments(
            district,
            batch,
            cfg.ingest,
            LengthMeasurer(cfg.crs.source_epsg),
            ctx.refresh_date,
        )
        staged.write_raw_segments(clip.segments)
        step_entries.append((OP_REFRESH_RAW, len(clip.segments), time.monotonic() - step_started, clip.stats()))

        deadline.check(RefreshState.CLUSTERING.value)
        machine.advance(RefreshState.CLUSTERING)
        step_started = time.monotonic()
        centroid = boundary_geometry(district).centroid
        transformer = build_metric_transformer(cfg.crs.source_epsg, (centroid.x, centroid.y), cfg.crs.metric_epsg)
        clusters = cluster_segments(district_id, clip.segments, cfg.clustering, transformer)
        staged.write_dedup_groups(clusters.groups)
        step_entries.append((OP_REFRESH_DEDUP, len(clusters.groups), time.monotonic() - step_started, clusters.stats()))

        deadline.check(RefreshState.AGGREGATING.value)
        machine.advance(RefreshState.AGGREGATING)
        step_started = time.monotonic()
        node_input = clip.segments if cfg.intersections.segment_set == "raw" else clusters.groups
        nodes = estimate_intersections(node_input, cfg.intersections.snap_precision, cfg.intersections.classes)
        rollups = build_rollups(
            district,
            clip.segments,
            clusters.groups,
            nodes.intersections,
            source_data_version=batch.source_data_version,
            calculated_at=utc_timestamp_iso(),
        )
        staged.write_rollups(rollups)
        step_entries.append((OP_REFRESH_ROLLUPS, len(rollups), time.monotonic() - step_started, nodes.to_dict()))

        deadline.check("commit")
        generation = ctx.store.commit(
            staged,
            {
                "district_id": district_id,
                "run_id": ctx.run_id,
                "refresh_date": ctx.refresh_date,
                "source_data_version": batch.source_data_version,
                "committed_at": utc_timestamp_iso(),
                "nodes": nodes.to_dict(),
            },
        )
        staged = None
        machine.advance(RefreshState.COMPLETE)
    finally:
        if staged is not None:
            ctx.store.discard(staged)

    for operation_type, records, duration, details in step_entries:
        append_best_effort(
            ctx.refresh_log,
            _log_entry(ctx, district_id, operation_type, records, duration, batch.source_data_version, details=details),
            ctx.logger,
        )
    counts = {
        "raw_segments": len(clip.segments),
        "dedup_groups": len(clusters.groups),
        "rollups": len(rollups),
        "intersections": nodes.intersections,
    }
    append_best_effort(
        ctx.refresh_log,
        _log_entry(
            ctx,
            district_id,
            OP_COMPLETE_REFRESH,
            counts["raw_segments"] + counts["dedup_groups"] + counts["rollups"],
            deadline.elapsed(),
            batch.source_data_version,
            details={**counts, "generation": generation},
        ),
        ctx.logger,
    )
    return DistrictOutcome(
        district_id=district_id,
        status="success",
        state=machine.state,
        duration_seconds=deadline.elapsed(),
        generation=generation,
        counts=counts,
    )


def refresh_district(ctx: RefreshContext, district_id: str) -> DistrictOutcome:
    """Refresh one district end to end.

    Domain failures are logged as a ``refresh_error`` entry and returned as a
    failed outcome; the previously committed generation stays live.
    ``StoreError`` propagates so a batch can abort.
    """
    machine = RefreshStateMachine(district_id)
    deadline = Deadline(ctx.config.batch.deadline_seconds)
    log_event(ctx.logger, "district refresh start", run_id=ctx.run_id, stage="refresh", district=district_id, event="DISTRICT_START", status="ok")
    try:
        with ctx.store.exclusive(district_id):
            ctx.store.purge_stale_staging(district_id)
            outcome = _run_steps(ctx, district_id, machine, deadline)
    except StoreError:
        machine.fail()
        raise
    except PipelineError as exc:
        machine.fail()
        return _fail(ctx, district_id, machine, deadline, exc)
    except Exception as exc:
        machine.fail()
        wrapped = ComputeError(f"{type(exc).__name__}: {exc}")
        wrapped.__cause__ = exc
        return _fail(ctx, district_id, machine, deadline, wrapped)

    log_event(
        ctx.logger,
        "district refresh complete",
        run_id=ctx.run_id,
        stage="refresh",
        district=district_id,
        event="DISTRICT_COMPLETE",
        status="ok",
        duration_ms=int(outcome.duration_seconds * 1000),
        rows_out=outcome.counts.get("raw_segments"),
    )
    return outcome


def _fail(
    ctx: RefreshContext,
    district_id: str,
    machine: RefreshStateMachine,
    deadline: Deadline,
    exc: PipelineError,
) -> DistrictOutcome:
    append_best_effort(
        ctx.refresh_log,
        _log_entry(
            ctx,
            district_id,
            OP_REFRESH_ERROR,
            ERROR_RECORDS_SENTINEL,
            deadline.elapsed(),
            ctx.config.source.get("source_data_version") or "unknown",
            status="error",
            error=exc,
            details={"failed_in": machine.history[-2].value if len(machine.history) > 1 else machine.state.value},
        ),
        ctx.logger,
    )
    log_event(
        ctx.logger,
        f"district refresh failed: {exc}",
        run_id=ctx.run_id,
        stage="refresh",
        district=district_id,
        event="DISTRICT_FAIL",
        status="error",
        error_code=exc.error_code,
        duration_ms=int(deadline.elapsed() * 1000),
    )
    return DistrictOutcome(
        district_id=district_id,
        status="error",
        state=machine.state,
        duration_seconds=deadline.elapsed(),
        error_code=exc.error_code,
        error_message=str(exc),
    )


def batch_district_ids(registry: DistrictRegistry, only: list[str] | None = None) -> list[str]:
    active = [d for d in registry.list_districts() if d.is_active]
    ordered = [d.district_id for d in stable_sorted(active, key=lambda d: (d.name, d.district_id))]
    if not only:
        return ordered
    wanted = set(only)
    # Ids the registry does not know still run so they fail with an error entry.
    return [d for d in ordered if d in wanted] + sorted(wanted - set(ordered))


def refresh_all(ctx: RefreshContext, only: list[str] | None = None) -> BatchResult:
    """Refresh every active district through a bounded worker pool.

    A failing district does not stop the batch. An unreachable store does.
    """
    result = BatchResult(run_id=ctx.run_id, outcomes=[])
    try:
        ctx.store.check_available()
        district_ids = batch_district_ids(ctx.registry, only)
    except StoreError as exc:
        return abort_batch(ctx, result, exc)

    log_event(ctx.logger, "batch start", run_id=ctx.run_id, stage="refresh", event="BATCH_START", status="ok", rows_in=len(district_ids))
    with ThreadPoolExecutor(max_workers=ctx.config.batch.max_workers, thread_name_prefix="refresh") as pool:
        futures = [(district_id, pool.submit(refresh_district, ctx, district_id)) for district_id in district_ids]
        for district_id, future in futures:
            # After an abort only queued work is dropped; districts already running may still commit.
            if result.aborted and future.cancel():
                continue
            try:
                result.outcomes.append(future.result())
            except StoreError as exc:
                if not result.aborted:
                    abort_batch(ctx, result, exc, district_id=district_id)
                    for _, pending in futures:
                        pending.cancel()

    log_event(
        ctx.logger,
        "batch end",
        run_id=ctx.run_id,
        stage="refresh",
        event="BATCH_END",
        status="error" if result.aborted else ("partial" if result.failed else "ok"),
        rows_in=len(district_ids),
        rows_out=len(result.succeeded),
    )
    return result


def abort_batch(ctx: RefreshContext, result: BatchResult, exc: StoreError, district_id: str | None = None) -> BatchResult:
    result.aborted = True
    result.abort_error = str(exc)
    log_event(
        ctx.logger,
        f"batch aborted: {exc}",
        run_id=ctx.run_id,
        stage="refresh",
        district=district_id,
        event="BATCH_ABORT",
        status="error",
        error_code=exc.error_code,
    )
    return result
