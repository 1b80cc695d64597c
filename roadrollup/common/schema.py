"""Minimal strict schemas for YAML config validation."""

from __future__ import annotations

from roadrollup.common.errors import ConfigError

SECTIONS = ("registry", "source", "crs", "ingest", "clustering", "intersections", "batch")
SOURCE_KINDS = {"file", "overpass"}
SEGMENT_SETS = {"raw", "deduplicated"}
CLASS_SUBSET_KEYWORDS = {"all", "clustering"}


def _assert_required_keys(obj: dict, required: set[str], ctx: str) -> None:
    missing = required - set(obj)
    if missing:
        missing_str = ", ".join(sorted(missing))
        raise ConfigError(f"Missing keys in {ctx}: {missing_str}")


def _assert_no_unknown_keys(obj: dict, known: set[str], ctx: str, allow_unknown: bool) -> None:
    if allow_unknown:
        return
    unknown = set(obj) - known
    if unknown:
        unknown_str = ", ".join(sorted(unknown))
        raise ConfigError(f"Unknown keys in {ctx}: {unknown_str}")


def _assert_mapping(obj, ctx: str) -> dict:
    if not isinstance(obj, dict):
        raise ConfigError(f"{ctx} must be a mapping")
    return obj


def _assert_class_list(value, ctx: str) -> None:
    if not isinstance(value, list) or not value or not all(isinstance(v, str) and v for v in value):
        raise ConfigError(f"{ctx} must be a non-empty list of class names")


def _assert_positive(value, ctx: str, *, allow_zero: bool = False) -> None:
    if isinstance(value, bool) or not isinstance(value, (int, float)):
        raise ConfigError(f"{ctx} must be a number")
    if value < 0 or (value == 0 and not allow_zero):
        raise ConfigError(f"{ctx} must be {'non-negative' if allow_zero else 'positive'}")


def validate_refresh_config(cfg, *, allow_unknown: bool = False) -> dict:
    cfg = _assert_mapping(cfg, "refresh config")
    _assert_required_keys(cfg, set(SECTIONS), "refresh config")
    _assert_no_unknown_keys(cfg, set(SECTIONS), "refresh config", allow_unknown)
    for section in SECTIONS:
        _assert_mapping(cfg[section], section)

    _assert_required_keys(cfg["registry"], {"path"}, "registry")

    source = cfg["source"]
    _assert_required_keys(source, {"kind"}, "source")
    _assert_no_unknown_keys(source, {"kind", "path", "source_data_version", "overpass"}, "source", allow_unknown)
    if source["kind"] not in SOURCE_KINDS:
        raise ConfigError(f"source.kind must be one of {sorted(SOURCE_KINDS)}")
    if source["kind"] == "file" and not source.get("path"):
        raise ConfigError("source.path is required for source.kind=file")
    if source["kind"] == "overpass":
        overpass = _assert_mapping(source.get("overpass"), "source.overpass")
        _assert_required_keys(overpass, {"endpoint", "timeout_seconds"}, "source.overpass")

    _assert_required_keys(cfg["crs"], {"source_epsg"}, "crs")
    _assert_no_unknown_keys(cfg["crs"], {"source_epsg", "metric_epsg"}, "crs", allow_unknown)

    ingest = cfg["ingest"]
    _assert_required_keys(ingest, {"classes", "min_clip_length_meters"}, "ingest")
    _assert_class_list(ingest["classes"], "ingest.classes")
    _assert_positive(ingest["min_clip_length_meters"], "ingest.min_clip_length_meters", allow_zero=True)

    clustering = cfg["clustering"]
    _assert_required_keys(clustering, {"classes", "buffer_meters", "length_tolerance"}, "clustering")
    _assert_no_unknown_keys(clustering, {"classes", "buffer_meters", "length_tolerance"}, "clustering", allow_unknown)
    _assert_class_list(clustering["classes"], "clustering.classes")
    _assert_positive(clustering["buffer_meters"], "clustering.buffer_meters")
    _assert_positive(clustering["length_tolerance"], "clustering.length_tolerance")

    intersections = cfg["intersections"]
    _assert_required_keys(intersections, {"segment_set", "classes", "snap_precision"}, "intersections")
    if intersections["segment_set"] not in SEGMENT_SETS:
        raise ConfigError(f"intersections.segment_set must be one of {sorted(SEGMENT_SETS)}")
    subset = intersections["classes"]
    if isinstance(subset, str):
        if subset not in CLASS_SUBSET_KEYWORDS:
            raise ConfigError(f"intersections.classes must be a list or one of {sorted(CLASS_SUBSET_KEYWORDS)}")
    else:
        _assert_class_list(subset, "intersections.classes")
    _assert_positive(intersections["snap_precision"], "intersections.snap_precision")

    batch = cfg["batch"]
    _assert_required_keys(batch, {"max_workers"}, "batch")
    if isinstance(batch["max_workers"], bool) or not isinstance(batch["max_workers"], int) or batch["max_workers"] < 1:
        raise ConfigError("batch.max_workers must be an integer >= 1")
    if batch.get("deadline_seconds") is not None:
        _assert_positive(batch["deadline_seconds"], "batch.deadline_seconds")

    return cfg
