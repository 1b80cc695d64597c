"""GeoJSON file backed district registry and segment source."""

from __future__ import annotations

import hashlib
import json
import threading
from pathlib import Path
from typing import Any

from shapely.geometry import box

from roadrollup.common.errors import GeometryError, SourceError
from roadrollup.common.geometry import geometry_from_geojson
from roadrollup.common.models import District, SourceFeature
from roadrollup.ingest.sources import SourceBatch


def _read_feature_collection(path: Path) -> dict[str, Any]:
    if not path.exists():
        raise SourceError(f"Missing GeoJSON file: {path}")
    try:
        payload = json.loads(path.read_text(encoding="utf-8"))
    except (OSError, ValueError) as exc:
        raise SourceError(f"Unreadable GeoJSON file {path}: {exc}") from exc
    if not isinstance(payload, dict) or payload.get("type") != "FeatureCollection":
        raise SourceError(f"Expected a FeatureCollection in {path}")
    return payload


def _optional_float(value: Any) -> float | None:
    if value in (None, ""):
        return None
    return float(value)


_TRUE_FLAGS = {"true", "t", "yes", "y", "1"}
_FALSE_FLAGS = {"false", "f", "no", "n", "0", ""}


def _parse_flag(value: Any, default: bool) -> bool:
    if value is None:
        return default
    if isinstance(value, bool):
        return value
    if isinstance(value, (int, float)):
        return value != 0
    text = str(value).strip().lower()
    if text in _TRUE_FLAGS:
        return True
    if text in _FALSE_FLAGS:
        return False
    raise SourceError(f"Unrecognised boolean value: {value!r}")


def district_from_feature(feature: dict[str, Any]) -> District:
    props = feature.get("properties") or {}
    district_id = props.get("district_id") or feature.get("id")
    if not district_id:
        raise SourceError("District feature has no district_id")
    return District(
        district_id=str(district_id),
        name=str(props.get("name") or district_id),
        boundary=feature.get("geometry"),
        area_sq_meters=_optional_float(props.get("area_sq_meters")),
        is_active=_parse_flag(props.get("is_active"), default=True),
        updated_at=props.get("updated_at"),
        source=props.get("source"),
    )


class FileDistrictRegistry:
    def __init__(self, path: Path) -> None:
        self.path = path
        self._districts: dict[str, District] | None = None
        self._lock = threading.Lock()

    def _load(self) -> dict[str, District]:
        with self._lock:
            if self._districts is None:
                payload = _read_feature_collection(self.path)
                districts = [district_from_feature(f) for f in payload.get("features", [])]
                self._districts = {d.district_id: d for d in districts}
            return self._districts

    def get(self, district_id: str) -> District | None:
        return self._load().get(district_id)

    def list_districts(self) -> list[District]:
        return list(self._load().values())


class FileSegmentSource:
    """Road features from a GeoJSON file, prefiltered to a district's bounds."""

    def __init__(self, path: Path, source_data_version: str | None = None) -> None:
        self.path = path
        self.source_data_version = source_data_version

    def _version(self, payload: dict[str, Any]) -> str:
        if self.source_data_version:
            return str(self.source_data_version)
        if payload.get("source_data_version"):
            return str(payload["source_data_version"])
        digest = hashlib.sha1(self.path.read_bytes()).hexdigest()[:12]
        return f"file-{digest}"

    def fetch(self, district: District) -> SourceBatch:
        payload = _read_feature_collection(self.path)
        bounds = box(*geometry_from_geojson(district.boundary).bounds) if district.boundary else None

        features: list[SourceFeature] = []
        for idx, raw in enumerate(payload.get("features", [])):
            props = raw.get("properties") or {}
            geometry = raw.get("geometry")
            if bounds is not None and geometry:
                try:
                    if not geometry_from_geojson(geometry).intersects(bounds):
                        continue
                except GeometryError:
                    # Left in so clipping counts it as skipped.
                    pass
            features.append(
                SourceFeature(
                    segment_id=str(props.get("segment_id") or raw.get("id") or idx),
                    road_class=str(props.get("class") or ""),
                    subclass=props.get("subclass"),
                    name=props.get("name") or None,
                    geometry=geometry,
                )
            )
        return SourceBatch(features=features, source_data_version=self._version(payload))
