"""Clip upstream road features to a district boundary."""

from __future__ import annotations

from collections import Counter
from dataclasses import dataclass, field

from shapely.geometry.base import BaseGeometry
from shapely.validation import make_valid

from roadrollup.common.config_loader import IngestSettings
from roadrollup.common.deterministic import round_metric, stable_sorted
from roadrollup.common.errors import GeometryError, InputError
from roadrollup.common.geometry import (
    LengthMeasurer,
    as_lines,
    degeneracy_reason,
    geometry_from_geojson,
    geometry_to_geojson,
)
from roadrollup.common.ids import segment_record_id
from roadrollup.common.models import District, RawSegment
from roadrollup.common.units import meters_to_feet, meters_to_miles
from roadrollup.ingest.sources import SourceBatch


@dataclass
class ClipResult:
    segments: list[RawSegment]
    features_in: int = 0
    filtered_class: int = 0
    outside_boundary: int = 0
    dropped_short: int = 0
    duplicates: int = 0
    skipped_reasons: Counter = field(default_factory=Counter)

    @property
    def skipped_geometries(self) -> int:
        return sum(self.skipped_reasons.values())

    def stats(self) -> dict[str, int]:
        return {
            "features_in": self.features_in,
            "segments_out": len(self.segments),
            "filtered_class": self.filtered_class,
            "outside_boundary": self.outside_boundary,
            "dropped_short": self.dropped_short,
            "duplicates": self.duplicates,
            "skipped_geometries": self.skipped_geometries,
        }


def require_refreshable(district: District | None, district_id: str) -> District:
    if district is None:
        raise InputError(f"Unknown district: {district_id}")
    if not district.is_active:
        raise InputError(f"District {district_id} is inactive")
    if not district.boundary:
        raise InputError(f"District {district_id} has no boundary")
    return district


def boundary_geometry(district: District) -> BaseGeometry:
    boundary = geometry_from_geojson(district.boundary)
    if boundary.is_empty:
        raise InputError(f"District {district.district_id} has an empty boundary")
    if boundary.geom_type not in ("Polygon", "MultiPolygon"):
        raise GeometryError(f"District {district.district_id} boundary is {boundary.geom_type}, not a polygon")
    if not boundary.is_valid:
        boundary = make_valid(boundary)
    return boundary


def clip_segments(
    district: District,
    batch: SourceBatch,
    settings: IngestSettings,
    measurer: LengthMeasurer,
    refresh_date: str,
) -> ClipResult:
    boundary = boundary_geometry(district)
    allowed = set(settings.classes)
    result = ClipResult(segments=[], features_in=len(batch.features))
    seen: set[str] = set()

    for feature in batch.features:
        if feature.road_class not in allowed:
            result.filtered_class += 1
            continue
        try:
            geom = geometry_from_geojson(feature.geometry)
        except GeometryError:
            result.skipped_reasons["unreadable"] += 1
            continue
        reason = degeneracy_reason(geom)
        if reason is not None:
            result.skipped_reasons[reason] += 1
            continue

        clipped = as_lines(geom.intersection(boundary))
        if clipped.is_empty:
            result.outside_boundary += 1
            continue
        clipped_length = measurer.length_meters(clipped)
        if clipped_length <= settings.min_clip_length_meters:
            result.dropped_short += 1
            continue

        record_id = segment_record_id(district.district_id, feature.segment_id)
        if record_id in seen:
            result.duplicates += 1
            continue
        seen.add(record_id)

        original_length = measurer.length_meters(geom)
        clip_fraction = min(1.0, clipped_length / original_length) if original_length > 0 else 1.0
        result.segments.append(
            RawSegment(
                segment_record_id=record_id,
                district_id=district.district_id,
                segment_id=feature.segment_id,
                road_class=feature.road_class,
                subclass=feature.subclass,
                name=feature.name,
                geometry=geometry_to_geojson(clipped),
                length_meters=round_metric(clipped_length),
                length_miles=round_metric(meters_to_miles(clipped_length)),
                length_feet=round_metric(meters_to_feet(clipped_length)),
                is_boundary_segment=not geom.within(boundary),
                clip_percentage=round_metric(clip_fraction),
                source_data_version=batch.source_data_version,
                refresh_date=refresh_date,
            )
        )

    result.segments = stable_sorted(result.segments, key=lambda s: s.segment_record_id)
    return result
