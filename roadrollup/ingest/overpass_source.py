"""Overpass API segment source."""

from __future__ import annotations

from typing import Iterable

from roadrollup.common.errors import InputError, SourceError
from roadrollup.common.geometry import geometry_from_geojson
from roadrollup.common.http import HttpClient, TimeoutConfig
from roadrollup.common.models import District, SourceFeature
from roadrollup.ingest.sources import SourceBatch


def _highway_filter(classes: Iterable[str]) -> str:
    values = sorted({c.strip() for c in classes if c and c.strip()})
    if not values:
        return '["highway"]'
    return f'["highway"~"^({"|".join(values)})$"]'


def build_overpass_query(bounds: tuple[float, float, float, float], classes: Iterable[str], timeout_seconds: int = 180) -> str:
    """Query for highway ways within ``bounds`` (min_lon, min_lat, max_lon, max_lat)."""
    min_lon, min_lat, max_lon, max_lat = bounds
    bbox_clause = f"{min_lat},{min_lon},{max_lat},{max_lon}"
    return (
        f"[out:json][timeout:{int(timeout_seconds)}];\n"
        "(\n"
        f"  way{_highway_filter(classes)}({bbox_clause});\n"
        ");\n"
        "out geom tags;"
    )


def features_from_payload(payload: dict) -> list[SourceFeature]:
    features: list[SourceFeature] = []
    seen: set[str] = set()
    for element in payload.get("elements", []):
        if element.get("type") != "way":
            continue
        segment_id = f"w{element.get('id')}"
        if segment_id in seen:
            continue
        seen.add(segment_id)
        tags = element.get("tags") or {}
        coords = [(node["lon"], node["lat"]) for node in element.get("geometry") or [] if node]
        features.append(
            SourceFeature(
                segment_id=segment_id,
                road_class=str(tags.get("highway") or ""),
                subclass=tags.get("service") or tags.get("junction"),
                name=tags.get("name") or None,
                geometry={"type": "LineString", "coordinates": coords} if coords else None,
            )
        )
    return features


class OverpassSegmentSource:
    def __init__(self, overpass_config: dict, classes: Iterable[str], http_client: HttpClient | None = None) -> None:
        self.endpoint = overpass_config["endpoint"]
        self.timeout_seconds = int(overpass_config.get("timeout_seconds", 180))
        self.classes = tuple(classes)
        self.http_client = http_client

    def fetch(self, district: District) -> SourceBatch:
        if not district.boundary:
            raise InputError(f"District {district.district_id} has no boundary")
        query = build_overpass_query(
            geometry_from_geojson(district.boundary).bounds,
            self.classes,
            timeout_seconds=self.timeout_seconds,
        )

        owns_client = self.http_client is None
        client = self.http_client or HttpClient()
        try:
            payload = client.post_form_json(
                self.endpoint,
                data={"data": query},
                timeout=TimeoutConfig(connect=20, read=self.timeout_seconds),
            )
        finally:
            if owns_client:
                client.close()

        if not isinstance(payload, dict):
            raise SourceError("Overpass returned a non-object payload")
        version = (payload.get("osm3s") or {}).get("timestamp_osm_base") or "overpass-unknown"
        return SourceBatch(features=features_from_payload(payload), source_data_version=str(version))
