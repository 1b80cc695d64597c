"""Upstream interfaces for district boundaries and road features."""

from __future__ import annotations

from dataclasses import dataclass
from pathlib import Path
from typing import Protocol

from roadrollup.common.config_loader import RefreshConfig, resolve_data_path
from roadrollup.common.models import District, SourceFeature


@dataclass(frozen=True)
class SourceBatch:
    features: list[SourceFeature]
    source_data_version: str


class DistrictRegistry(Protocol):
    def get(self, district_id: str) -> District | None: ...

    def list_districts(self) -> list[District]: ...


class SegmentSource(Protocol):
    def fetch(self, district: District) -> SourceBatch: ...


def build_sources(config: RefreshConfig, data_dir: Path) -> tuple[DistrictRegistry, SegmentSource]:
    # Imported here so a file-only deployment never touches the HTTP stack.
    from roadrollup.ingest.file_sources import FileDistrictRegistry, FileSegmentSource

    registry = FileDistrictRegistry(resolve_data_path(config.registry["path"], data_dir))
    source_cfg = config.source
    if source_cfg["kind"] == "overpass":
        from roadrollup.ingest.overpass_source import OverpassSegmentSource

        return registry, OverpassSegmentSource(source_cfg["overpass"], classes=config.ingest.classes)
    segment_source = FileSegmentSource(
        resolve_data_path(source_cfg["path"], data_dir),
        source_data_version=source_cfg.get("source_data_version"),
    )
    return registry, segment_source
