"""Read-only export helpers over committed refresh data."""

from __future__ import annotations

import math
from collections import defaultdict
from pathlib import Path
from typing import Any, Iterable

from pyproj import Transformer
from shapely.geometry import box

from roadrollup.common.constants import CALC_DEDUPLICATED, CALC_RAW, CALCULATION_TYPES
from roadrollup.common.errors import GeometryError, InputError
from roadrollup.common.fs import write_json
from roadrollup.common.geometry import geometry_from_geojson, geometry_to_geojson, project
from roadrollup.storage.refresh_log import RefreshLog
from roadrollup.storage.store import SegmentStore

MAX_MERCATOR_LAT = 85.05112878


def budget_inputs(store: SegmentStore, district_id: str) -> dict[str, Any]:
    rollups = {r.calculation_type: r for r in store.read_rollups(district_id)}
    if not rollups:
        raise InputError(f"No committed rollups for district {district_id}")

    payload: dict[str, Any] = {"district_id": district_id}
    for calculation_type in CALCULATION_TYPES:
        record = rollups.get(calculation_type)
        if record is None:
            payload[calculation_type] = None
            continue
        payload[calculation_type] = {
            "total_segments": record.total_segments,
            "total_length_meters": record.total_length_meters,
            "total_length_miles": record.total_length_miles,
            "total_length_feet": record.total_length_feet,
            "segments_per_sq_mile": record.segments_per_sq_mile,
            "meters_per_sq_mile": record.meters_per_sq_mile,
            "class_breakdown": record.class_breakdown,
        }
    first = rollups.get(CALC_RAW) or next(iter(rollups.values()))
    payload["intersection_count"] = first.intersection_count
    payload["source_data_version"] = first.source_data_version
    payload["calculated_at"] = first.calculated_at
    return payload


def lonlat_to_tile(lon: float, lat: float, zoom: int) -> tuple[int, int]:
    n = 2**zoom
    lat = max(-MAX_MERCATOR_LAT, min(MAX_MERCATOR_LAT, lat))
    x = int((lon + 180.0) / 360.0 * n)
    y = int((1.0 - math.asinh(math.tan(math.radians(lat))) / math.pi) / 2.0 * n)
    return min(max(x, 0), n - 1), min(max(y, 0), n - 1)


def tile_bounds(zoom: int, x: int, y: int) -> tuple[float, float, float, float]:
    """(west, south, east, north) in degrees."""
    n = 2**zoom
    west = x / n * 360.0 - 180.0
    east = (x + 1) / n * 360.0 - 180.0
    north = math.degrees(math.atan(math.sinh(math.pi * (1 - 2 * y / n))))
    south = math.degrees(math.atan(math.sinh(math.pi * (1 - 2 * (y + 1) / n))))
    return west, south, east, north


def tile_key(zoom: int, x: int, y: int) -> str:
    return f"{zoom}/{x}/{y}"


def _feature_rows(store: SegmentStore, district_id: str, segment_set: str) -> list[dict[str, Any]]:
    if segment_set == CALC_DEDUPLICATED:
        return [
            {
                "id": g.group_id,
                "geometry": g.geometry,
                "properties": {
                    "class": g.road_class,
                    "subclass": g.subclass,
                    "name": g.name,
                    "length_meters": g.length_meters,
                    "member_count": g.member_count,
                },
            }
            for g in store.read_dedup_groups(district_id)
        ]
    return [
        {
            "id": s.segment_record_id,
            "geometry": s.geometry,
            "properties": {
                "class": s.road_class,
                "subclass": s.subclass,
                "name": s.name,
                "length_meters": s.length_meters,
                "is_boundary_segment": s.is_boundary_segment,
            },
        }
        for s in store.read_raw_segments(district_id)
    ]


def bucket_features(
    rows: Iterable[dict[str, Any]],
    zoom: int,
    to_wgs84: Transformer | None = None,
) -> dict[str, list[dict[str, Any]]]:
    """Assign each feature to every z/x/y tile its geometry touches."""
    buckets: dict[str, list[dict[str, Any]]] = defaultdict(list)
    for row in rows:
        try:
            geom = geometry_from_geojson(row["geometry"])
        except GeometryError:
            continue
        if to_wgs84 is not None:
            geom = project(geom, to_wgs84)
        if geom.is_empty:
            continue
        min_lon, min_lat, max_lon, max_lat = geom.bounds
        x0, y0 = lonlat_to_tile(min_lon, max_lat, zoom)
        x1, y1 = lonlat_to_tile(max_lon, min_lat, zoom)
        feature = {
            "type": "Feature",
            "id": row["id"],
            "geometry": geometry_to_geojson(geom),
            "properties": row["properties"],
        }
        for x in range(x0, x1 + 1):
            for y in range(y0, y1 + 1):
                if geom.intersects(box(*tile_bounds(zoom, x, y))):
                    buckets[tile_key(zoom, x, y)].append(feature)
    return {key: buckets[key] for key in sorted(buckets)}


def export_tiles(
    store: SegmentStore,
    district_id: str,
    out_dir: Path,
    zoom: int,
    segment_set: str = CALC_DEDUPLICATED,
    to_wgs84: Transformer | None = None,
) -> dict[str, int]:
    buckets = bucket_features(_feature_rows(store, district_id, segment_set), zoom, to_wgs84)
    for key, features in buckets.items():
        write_json(out_dir / district_id / f"{key}.geojson", {"type": "FeatureCollection", "features": features})
    return {key: len(features) for key, features in buckets.items()}


def history_series(
    store: SegmentStore,
    refresh_log: RefreshLog,
    district_id: str,
    calculation_type: str | None = None,
) -> dict[str, Any]:
    rollups = store.rollup_history(district_id)
    if calculation_type is not None:
        rollups = [row for row in rollups if row.get("calculation_type") == calculation_type]
    rollups = sorted(rollups, key=lambda row: (row.get("calculated_at") or "", row.get("calculation_type") or ""))
    return {
        "district_id": district_id,
        "rollups": rollups,
        "refresh_log": refresh_log.entries(district_id),
    }
