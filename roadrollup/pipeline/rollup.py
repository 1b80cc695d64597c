"""Per-district rollup aggregation."""

from __future__ import annotations

from collections import defaultdict
from typing import Any

from roadrollup.common.constants import CALC_DEDUPLICATED, CALC_RAW
from roadrollup.common.deterministic import round_metric
from roadrollup.common.models import DedupGroup, District, RawSegment, RollupRecord
from roadrollup.common.units import meters_to_feet, meters_to_miles, per_area

FULL_CLIP_TOLERANCE = 1e-9


def _class_breakdown(rows, *, with_merged: bool) -> dict[str, dict[str, Any]]:
    buckets: dict[str, dict[str, Any]] = defaultdict(lambda: {"count": 0, "length_meters": 0.0})
    for row in rows:
        bucket = buckets[row.road_class]
        bucket["count"] += 1
        bucket["length_meters"] += row.length_meters
        if with_merged:
            bucket["original_segments_merged"] = bucket.get("original_segments_merged", 0) + row.member_count

    out: dict[str, dict[str, Any]] = {}
    for road_class in sorted(buckets):
        bucket = buckets[road_class]
        entry = {
            "count": bucket["count"],
            "length_meters": round_metric(bucket["length_meters"]),
            "length_miles": round_metric(meters_to_miles(bucket["length_meters"])),
        }
        if with_merged:
            entry["original_segments_merged"] = bucket["original_segments_merged"]
        out[road_class] = entry
    return out


def _totals(rows, area_sq_miles: float | None) -> dict[str, Any]:
    total_m = sum(row.length_meters for row in rows)
    count = len(rows)
    return {
        "total_segments": count,
        "total_length_meters": round_metric(total_m),
        "total_length_miles": round_metric(meters_to_miles(total_m)),
        "total_length_feet": round_metric(meters_to_feet(total_m)),
        "segments_per_sq_mile": round_metric(per_area(count, area_sq_miles)),
        "meters_per_sq_mile": round_metric(per_area(total_m, area_sq_miles)),
    }


def build_raw_rollup(
    district: District,
    segments: list[RawSegment],
    intersection_count: int,
    source_data_version: str | None,
    calculated_at: str | None,
) -> RollupRecord:
    return RollupRecord(
        district_id=district.district_id,
        calculation_type=CALC_RAW,
        **_totals(segments, district.area_sq_miles),
        class_breakdown=_class_breakdown(segments, with_merged=False),
        intersection_count=intersection_count,
        boundary_segments=sum(1 for s in segments if s.is_boundary_segment),
        segments_clipped_to_boundary=sum(
            1 for s in segments if s.clip_percentage is not None and s.clip_percentage < 1.0 - FULL_CLIP_TOLERANCE
        ),
        source_data_version=source_data_version,
        calculated_at=calculated_at,
    )


def build_dedup_rollup(
    district: District,
    groups: list[DedupGroup],
    intersection_count: int,
    source_data_version: str | None,
    calculated_at: str | None,
) -> RollupRecord:
    return RollupRecord(
        district_id=district.district_id,
        calculation_type=CALC_DEDUPLICATED,
        **_totals(groups, district.area_sq_miles),
        class_breakdown=_class_breakdown(groups, with_merged=True),
        intersection_count=intersection_count,
        source_data_version=source_data_version,
        calculated_at=calculated_at,
    )


def build_rollups(
    district: District,
    segments: list[RawSegment],
    groups: list[DedupGroup],
    intersection_count: int,
    *,
    source_data_version: str | None = None,
    calculated_at: str | None = None,
) -> list[RollupRecord]:
    """Full recompute of both rollup records; never incremental."""
    return [
        build_raw_rollup(district, segments, intersection_count, source_data_version, calculated_at),
        build_dedup_rollup(district, groups, intersection_count, source_data_version, calculated_at),
    ]
