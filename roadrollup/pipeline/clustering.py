"""Parallel carriageway clustering.

Segments of the same class and name whose buffers overlap and whose lengths
are within a relative tolerance are candidate pairs. Groups are the connected
components of the candidate graph, so chains A~B~C land in one group even
when A and C never touch.
"""

from __future__ import annotations

from collections import defaultdict
from dataclasses import dataclass, field
from typing import Iterable

from pyproj import Transformer
from shapely import STRtree
from shapely.geometry.base import BaseGeometry
from shapely.ops import unary_union

from roadrollup.common.config_loader import ClusteringSettings
from roadrollup.common.deterministic import round_metric
from roadrollup.common.errors import GeometryError
from roadrollup.common.geometry import degeneracy_reason, geometry_from_geojson, geometry_to_geojson, project
from roadrollup.common.ids import dedup_group_id
from roadrollup.common.models import DedupGroup, RawSegment
from roadrollup.common.units import meters_to_feet, meters_to_miles

MERGED_SUBCLASS = "merged"


class UnionFind:
    """Disjoint sets keyed by segment record id."""

    def __init__(self, items: Iterable[str] = ()) -> None:
        self.parent: dict[str, str] = {}
        self.rank: dict[str, int] = {}
        for item in items:
            self.add(item)

    def add(self, item: str) -> None:
        if item not in self.parent:
            self.parent[item] = item
            self.rank[item] = 0

    def find(self, item: str) -> str:
        root = item
        while self.parent[root] != root:
            root = self.parent[root]
        while self.parent[item] != root:
            self.parent[item], item = root, self.parent[item]
        return root

    def union(self, a: str, b: str) -> None:
        ra, rb = self.find(a), self.find(b)
        if ra == rb:
            return
        if self.rank[ra] < self.rank[rb]:
            ra, rb = rb, ra
        self.parent[rb] = ra
        if self.rank[ra] == self.rank[rb]:
            self.rank[ra] += 1

    def components(self) -> list[list[str]]:
        groups: dict[str, list[str]] = defaultdict(list)
        for item in self.parent:
            groups[self.find(item)].append(item)
        return [sorted(members) for members in groups.values()]


@dataclass
class ClusterResult:
    groups: list[DedupGroup]
    candidate_pairs: int = 0
    passthrough: int = 0
    skipped_reasons: dict[str, int] = field(default_factory=dict)

    @property
    def skipped_geometries(self) -> int:
        return sum(self.skipped_reasons.values())

    @property
    def merged_groups(self) -> int:
        return sum(1 for group in self.groups if group.member_count > 1)

    def stats(self) -> dict[str, int]:
        return {
            "groups_out": len(self.groups),
            "merged_groups": self.merged_groups,
            "candidate_pairs": self.candidate_pairs,
            "passthrough": self.passthrough,
            "skipped_geometries": self.skipped_geometries,
        }


def lengths_within_tolerance(l1: float, l2: float, tolerance: float) -> bool:
    longest = max(l1, l2)
    if longest <= 0:
        return False
    return abs(l1 - l2) / longest < tolerance


def is_candidate_pair(a: RawSegment, b: RawSegment, tolerance: float) -> bool:
    """Attribute half of the candidacy rule; buffer overlap is checked by the caller."""
    if a.road_class != b.road_class:
        return False
    # Two unnamed segments count as the same name.
    if a.name != b.name:
        return False
    return lengths_within_tolerance(a.length_meters, b.length_meters, tolerance)


def _parse_or_none(segment: RawSegment) -> tuple[BaseGeometry | None, str | None]:
    try:
        geom = geometry_from_geojson(segment.geometry)
    except GeometryError:
        return None, "unreadable"
    return geom, degeneracy_reason(geom)


def _build_group(district_id: str, members: list[RawSegment], geometries: dict[str, BaseGeometry]) -> DedupGroup:
    member_ids = sorted(m.segment_record_id for m in members)
    first = min(members, key=lambda m: m.segment_record_id)
    if len(members) == 1:
        geometry = first.geometry
        subclass = first.subclass
    else:
        geometry = geometry_to_geojson(unary_union([geometries[m.segment_record_id] for m in members]))
        subclass = MERGED_SUBCLASS
    total = sum(m.length_meters for m in members)
    return DedupGroup(
        group_id=dedup_group_id(district_id, member_ids),
        district_id=district_id,
        member_ids=member_ids,
        road_class=first.road_class,
        subclass=subclass,
        name=first.name,
        geometry=geometry,
        length_meters=round_metric(total),
        length_miles=round_metric(meters_to_miles(total)),
        length_feet=round_metric(meters_to_feet(total)),
        member_count=len(members),
    )


def cluster_segments(
    district_id: str,
    segments: list[RawSegment],
    settings: ClusteringSettings,
    transformer: Transformer,
) -> ClusterResult:
    """Partition ``segments`` into dedup groups.

    Every input segment lands in exactly one group. Segments outside the
    clustering classes and segments with degenerate geometry are emitted as
    singletons; the latter are counted in ``skipped_reasons``.
    """
    classes = set(settings.classes)
    by_id = {s.segment_record_id: s for s in segments}
    result = ClusterResult(groups=[])
    skipped: dict[str, int] = defaultdict(int)

    candidates: list[RawSegment] = []
    geometries: dict[str, BaseGeometry] = {}
    for segment in segments:
        if segment.road_class not in classes:
            result.passthrough += 1
            continue
        geom, reason = _parse_or_none(segment)
        if reason is not None:
            skipped[reason] += 1
            continue
        geometries[segment.segment_record_id] = geom
        candidates.append(segment)

    uf = UnionFind(by_id)
    if candidates:
        buffers = [project(geometries[s.segment_record_id], transformer).buffer(settings.buffer_meters) for s in candidates]
        tree = STRtree(buffers)
        for i, segment in enumerate(candidates):
            for j in tree.query(buffers[i], predicate="intersects"):
                j = int(j)
                if j <= i:
                    continue
                other = candidates[j]
                if is_candidate_pair(segment, other, settings.length_tolerance):
                    result.candidate_pairs += 1
                    uf.union(segment.segment_record_id, other.segment_record_id)

    groups = [_build_group(district_id, [by_id[m] for m in members], geometries) for members in uf.components()]
    result.groups = sorted(groups, key=lambda g: g.group_id)
    result.skipped_reasons = dict(skipped)
    return result
