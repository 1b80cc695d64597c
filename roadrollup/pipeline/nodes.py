"""Street intersection estimation from segment endpoints."""

from __future__ import annotations

from collections import Counter
from dataclasses import dataclass
from typing import Iterable, Protocol

from roadrollup.common.errors import GeometryError
from roadrollup.common.geometry import geometry_from_geojson, iter_endpoints


class LinearRecord(Protocol):
    road_class: str
    geometry: dict


@dataclass(frozen=True)
class NodeEstimate:
    intersections: int
    through_points: int
    dead_ends: int
    node_count: int
    skipped_geometries: int = 0

    def to_dict(self) -> dict[str, int]:
        return {
            "intersections": self.intersections,
            "through_points": self.through_points,
            "dead_ends": self.dead_ends,
            "node_count": self.node_count,
            "skipped_geometries": self.skipped_geometries,
        }


def snap_key(x: float, y: float, precision: float) -> tuple[int, int]:
    return round(x / precision), round(y / precision)


def node_degrees(records: Iterable[LinearRecord], precision: float, classes: Iterable[str] | None = None) -> tuple[Counter, int]:
    allowed = set(classes) if classes is not None else None
    degrees: Counter = Counter()
    skipped = 0
    for record in records:
        if allowed is not None and record.road_class not in allowed:
            continue
        try:
            geom = geometry_from_geojson(record.geometry)
        except GeometryError:
            skipped += 1
            continue
        for x, y in iter_endpoints(geom):
            degrees[snap_key(x, y, precision)] += 1
    return degrees, skipped


def estimate_intersections(
    records: Iterable[LinearRecord],
    precision: float = 1e-6,
    classes: Iterable[str] | None = None,
) -> NodeEstimate:
    """Count nodes by how many segment endpoints share a snapped location.

    Degree 3 or more is an intersection, 2 is a through point and 1 a dead end.
    ``classes`` of ``None`` means every class.
    """
    degrees, skipped = node_degrees(records, precision, classes)
    intersections = sum(1 for d in degrees.values() if d >= 3)
    through_points = sum(1 for d in degrees.values() if d == 2)
    dead_ends = sum(1 for d in degrees.values() if d == 1)
    return NodeEstimate(
        intersections=intersections,
        through_points=through_points,
        dead_ends=dead_ends,
        node_count=len(degrees),
        skipped_geometries=skipped,
    )
