"""Data models used across the refresh pipeline."""

from __future__ import annotations

from dataclasses import asdict, dataclass, field
from typing import Any

from roadrollup.common.units import sq_meters_to_sq_miles


@dataclass(frozen=True)
class District:
    district_id: str
    name: str
    boundary: dict[str, Any] | None
    area_sq_meters: float | None
    is_active: bool = True
    updated_at: str | None = None
    source: str | None = None

    @property
    def area_sq_miles(self) -> float | None:
        return sq_meters_to_sq_miles(self.area_sq_meters)

    def to_dict(self) -> dict[str, Any]:
        return asdict(self)


@dataclass(frozen=True)
class SourceFeature:
    """One road feature as delivered by the upstream geometry source."""

    segment_id: str
    road_class: str
    subclass: str | None
    name: str | None
    geometry: dict[str, Any] | None


@dataclass(frozen=True)
class RawSegment:
    segment_record_id: str
    district_id: str
    segment_id: str
    road_class: str
    subclass: str | None
    name: str | None
    geometry: dict[str, Any]
    length_meters: float
    length_miles: float
    length_feet: float
    is_boundary_segment: bool
    clip_percentage: float | None
    source_data_version: str
    refresh_date: str

    def to_dict(self) -> dict[str, Any]:
        return asdict(self)

    @classmethod
    def from_dict(cls, payload: dict[str, Any]) -> "RawSegment":
        return cls(**payload)


@dataclass(frozen=True)
class DedupGroup:
    group_id: str
    district_id: str
    member_ids: list[str]
    road_class: str
    subclass: str | None
    name: str | None
    geometry: dict[str, Any]
    length_meters: float
    length_miles: float
    length_feet: float
    member_count: int

    def to_dict(self) -> dict[str, Any]:
        return asdict(self)

    @classmethod
    def from_dict(cls, payload: dict[str, Any]) -> "DedupGroup":
        return cls(**payload)


@dataclass(frozen=True)
class RollupRecord:
    district_id: str
    calculation_type: str
    total_segments: int
    total_length_meters: float
    total_length_miles: float
    total_length_feet: float
    segments_per_sq_mile: float | None
    meters_per_sq_mile: float | None
    class_breakdown: dict[str, dict[str, Any]]
    intersection_count: int
    boundary_segments: int | None = None
    segments_clipped_to_boundary: int | None = None
    source_data_version: str | None = None
    calculated_at: str | None = None

    def to_dict(self) -> dict[str, Any]:
        return asdict(self)

    @classmethod
    def from_dict(cls, payload: dict[str, Any]) -> "RollupRecord":
        return cls(**payload)


@dataclass(frozen=True)
class RefreshLogEntry:
    log_id: str
    district_id: str
    operation_type: str
    records_processed: int | None
    duration_seconds: float | None
    status: str
    source_data_version: str
    refresh_date: str
    created_at: str
    run_id: str | None = None
    error_code: str | None = None
    error_message: str | None = None
    details: dict[str, Any] = field(default_factory=dict)

    def to_dict(self) -> dict[str, Any]:
        return asdict(self)
