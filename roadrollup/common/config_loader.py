"""Configuration loading and validation."""

from __future__ import annotations

from dataclasses import dataclass
from pathlib import Path
from typing import Any

from roadrollup.common.errors import ConfigError
from roadrollup.common.fs import read_yaml
from roadrollup.common.schema import validate_refresh_config

CONFIG_FILENAME = "refresh.yml"


@dataclass(frozen=True)
class IngestSettings:
    classes: tuple[str, ...]
    min_clip_length_meters: float


@dataclass(frozen=True)
class ClusteringSettings:
    classes: tuple[str, ...]
    buffer_meters: float
    length_tolerance: float


@dataclass(frozen=True)
class IntersectionSettings:
    segment_set: str
    classes: tuple[str, ...] | None
    snap_precision: float


@dataclass(frozen=True)
class CrsSettings:
    source_epsg: int
    metric_epsg: int | None


@dataclass(frozen=True)
class BatchSettings:
    max_workers: int
    deadline_seconds: float | None


@dataclass(frozen=True)
class RefreshConfig:
    raw: dict
    ingest: IngestSettings
    clustering: ClusteringSettings
    intersections: IntersectionSettings
    crs: CrsSettings
    batch: BatchSettings

    @property
    def registry(self) -> dict:
        return self.raw["registry"]

    @property
    def source(self) -> dict:
        return self.raw["source"]


def _deep_merge(base: Any, overlay: Any) -> Any:
    if isinstance(base, dict) and isinstance(overlay, dict):
        merged = dict(base)
        for key, value in overlay.items():
            if key in merged:
                merged[key] = _deep_merge(merged[key], value)
            else:
                merged[key] = value
        return merged
    return overlay


def _load_yaml_with_overlay(path: Path, overlay_path: Path | None) -> dict:
    if not path.exists():
        raise ConfigError(f"Missing config file: {path}")
    base = read_yaml(path)
    if overlay_path is None or not overlay_path.exists():
        return base
    overlay = read_yaml(overlay_path)
    if overlay is None:
        return base
    if not isinstance(overlay, dict):
        raise ConfigError(f"Overlay config must be a mapping: {overlay_path}")
    return _deep_merge(base, overlay)


def _intersection_classes(cfg: dict) -> tuple[str, ...] | None:
    subset = cfg["intersections"]["classes"]
    if subset == "all":
        return None
    if subset == "clustering":
        return tuple(cfg["clustering"]["classes"])
    return tuple(subset)


def build_refresh_config(cfg: dict, *, allow_unknown: bool = False) -> RefreshConfig:
    cfg = validate_refresh_config(cfg, allow_unknown=allow_unknown)
    metric_epsg = cfg["crs"].get("metric_epsg")
    return RefreshConfig(
        raw=cfg,
        ingest=IngestSettings(
            classes=tuple(cfg["ingest"]["classes"]),
            min_clip_length_meters=float(cfg["ingest"]["min_clip_length_meters"]),
        ),
        clustering=ClusteringSettings(
            classes=tuple(cfg["clustering"]["classes"]),
            buffer_meters=float(cfg["clustering"]["buffer_meters"]),
            length_tolerance=float(cfg["clustering"]["length_tolerance"]),
        ),
        intersections=IntersectionSettings(
            segment_set=cfg["intersections"]["segment_set"],
            classes=_intersection_classes(cfg),
            snap_precision=float(cfg["intersections"]["snap_precision"]),
        ),
        crs=CrsSettings(
            source_epsg=int(cfg["crs"]["source_epsg"]),
            metric_epsg=int(metric_epsg) if metric_epsg is not None else None,
        ),
        batch=BatchSettings(
            max_workers=int(cfg["batch"]["max_workers"]),
            deadline_seconds=(
                float(cfg["batch"]["deadline_seconds"])
                if cfg["batch"].get("deadline_seconds") is not None
                else None
            ),
        ),
    )


def load_refresh_config(
    config_dir: Path,
    *,
    allow_unknown: bool = False,
    overlay_config_dir: Path | None = None,
) -> RefreshConfig:
    overlay_path = overlay_config_dir / CONFIG_FILENAME if overlay_config_dir is not None else None
    cfg = _load_yaml_with_overlay(config_dir / CONFIG_FILENAME, overlay_path)
    return build_refresh_config(cfg, allow_unknown=allow_unknown)


def resolve_data_path(value: str, data_dir: Path) -> Path:
    path = Path(value)
    if path.is_absolute():
        return path
    return data_dir / path
