"""Geometry helpers shared by ingest, clustering and node estimation."""

from __future__ import annotations

from typing import Any, Iterator

from pyproj import CRS, Geod, Transformer
from shapely.geometry import GeometryCollection, LineString, MultiLineString, mapping, shape
from shapely.geometry.base import BaseGeometry
from shapely.ops import transform

from roadrollup.common.errors import GeometryError

_WGS84_GEOD = Geod(ellps="WGS84")


def geometry_from_geojson(payload: dict[str, Any] | None) -> BaseGeometry:
    if not payload:
        raise GeometryError("Missing geometry")
    try:
        return shape(payload)
    except (AttributeError, KeyError, TypeError, ValueError) as exc:
        raise GeometryError(f"Unreadable geometry: {exc}") from exc


def _as_lists(value: Any) -> Any:
    if isinstance(value, (list, tuple)):
        return [_as_lists(item) for item in value]
    if isinstance(value, dict):
        return {key: _as_lists(item) for key, item in value.items()}
    return value


def geometry_to_geojson(geom: BaseGeometry) -> dict[str, Any]:
    # Lists, not tuples, so a payload compares equal after a JSON round trip.
    return _as_lists(mapping(geom))


def line_parts(geom: BaseGeometry) -> list[LineString]:
    if isinstance(geom, LineString):
        return [geom]
    if isinstance(geom, (MultiLineString, GeometryCollection)):
        parts: list[LineString] = []
        for part in geom.geoms:
            parts.extend(line_parts(part))
        return parts
    return []


def as_lines(geom: BaseGeometry) -> BaseGeometry:
    """Reduce a clip result to its linear parts (drops touching points)."""
    parts = [part for part in line_parts(geom) if not part.is_empty]
    if not parts:
        return LineString()
    if len(parts) == 1:
        return parts[0]
    return MultiLineString(parts)


def degeneracy_reason(geom: BaseGeometry | None) -> str | None:
    if geom is None or geom.is_empty:
        return "empty"
    parts = line_parts(geom)
    if not parts:
        return "not_linear"
    if all(len(part.coords) < 2 for part in parts):
        return "too_few_points"
    if geom.length == 0:
        return "zero_length"
    if not geom.is_valid:
        return "invalid"
    if any(not part.is_simple for part in parts):
        return "self_intersecting"
    return None


def iter_endpoints(geom: BaseGeometry) -> Iterator[tuple[float, float]]:
    for part in line_parts(geom):
        coords = part.coords
        if len(coords) < 2:
            continue
        yield coords[0][0], coords[0][1]
        yield coords[-1][0], coords[-1][1]


class LengthMeasurer:
    """Measures line length in metres for a given source CRS."""

    def __init__(self, source_epsg: int = 4326) -> None:
        self.source_crs = CRS.from_epsg(source_epsg)

    @property
    def geographic(self) -> bool:
        return self.source_crs.is_geographic

    def length_meters(self, geom: BaseGeometry) -> float:
        if geom.is_empty:
            return 0.0
        if self.geographic:
            return abs(_WGS84_GEOD.geometry_length(geom))
        return float(geom.length)


def build_metric_transformer(
    source_epsg: int,
    anchor: tuple[float, float],
    metric_epsg: int | None = None,
) -> Transformer:
    """Transformer from the source CRS into a metre-based CRS.

    Without an explicit ``metric_epsg`` an azimuthal equidistant projection
    centred on ``anchor`` (x, y in the source CRS) is used, which keeps
    distances accurate across a single district.
    """
    source_crs = CRS.from_epsg(source_epsg)
    if metric_epsg is not None:
        target_crs = CRS.from_epsg(metric_epsg)
    elif source_crs.is_geographic:
        lon, lat = anchor
        target_crs = CRS.from_proj4(f"+proj=aeqd +lat_0={lat} +lon_0={lon} +datum=WGS84 +units=m +no_defs")
    else:
        target_crs = source_crs
    return Transformer.from_crs(source_crs, target_crs, always_xy=True)


def project(geom: BaseGeometry, transformer: Transformer) -> BaseGeometry:
    return transform(transformer.transform, geom)
