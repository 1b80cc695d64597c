import copy
from pathlib import Path

import pytest
import yaml

from roadrollup.common.config_loader import build_refresh_config, load_refresh_config, resolve_data_path
from roadrollup.common.errors import ConfigError
from roadrollup.common.schema import validate_refresh_config


def _write_base(directory: Path, cfg: dict) -> None:
    directory.mkdir(parents=True, exist_ok=True)
    (directory / "refresh.yml").write_text(yaml.safe_dump(cfg), encoding="utf-8")


def test_load_refresh_config_from_repo_config_dir():
    config = load_refresh_config(Path("config"))
    assert config.clustering.classes == ("motorway", "trunk", "primary", "secondary")
    assert config.clustering.buffer_meters == 15.0
    assert config.clustering.length_tolerance == 0.4
    assert config.ingest.min_clip_length_meters == 1.0
    assert len(config.ingest.classes) == 13
    assert config.intersections.segment_set == "raw"
    assert config.intersections.classes is None
    assert config.crs.source_epsg == 4326
    assert config.crs.metric_epsg is None
    assert config.batch.deadline_seconds is None


def test_overlay_values_are_deep_merged(tmp_path: Path, base_config_dict):
    base = tmp_path / "base"
    overlay = tmp_path / "overlay"
    _write_base(base, base_config_dict)
    overlay.mkdir()
    (overlay / "refresh.yml").write_text(
        """clustering:
  buffer_meters: 20
batch:
  max_workers: 2
  deadline_seconds: 300
""",
        encoding="utf-8",
    )

    config = load_refresh_config(base, overlay_config_dir=overlay)

    assert config.clustering.buffer_meters == 20.0
    assert config.clustering.length_tolerance == 0.4
    assert config.batch.max_workers == 2
    assert config.batch.deadline_seconds == 300.0


def test_empty_overlay_file_is_ignored(tmp_path: Path, base_config_dict):
    base = tmp_path / "base"
    overlay = tmp_path / "overlay"
    _write_base(base, base_config_dict)
    overlay.mkdir()
    (overlay / "refresh.yml").write_text("", encoding="utf-8")

    assert load_refresh_config(base, overlay_config_dir=overlay).batch.max_workers == 4


def test_non_mapping_overlay_is_rejected(tmp_path: Path, base_config_dict):
    base = tmp_path / "base"
    overlay = tmp_path / "overlay"
    _write_base(base, base_config_dict)
    overlay.mkdir()
    (overlay / "refresh.yml").write_text("- not\n- a\n- mapping\n", encoding="utf-8")

    with pytest.raises(ConfigError):
        load_refresh_config(base, overlay_config_dir=overlay)


def test_missing_config_file_is_a_config_error(tmp_path: Path):
    with pytest.raises(ConfigError):
        load_refresh_config(tmp_path)


def test_unknown_top_level_key_rejected_unless_allowed(base_config_dict):
    bad = copy.deepcopy(base_config_dict)
    bad["unexpected"] = True
    with pytest.raises(ConfigError):
        validate_refresh_config(bad)
    validate_refresh_config(bad, allow_unknown=True)


@pytest.mark.parametrize(
    "section,key,value",
    [
        ("clustering", "buffer_meters", 0),
        ("clustering", "length_tolerance", -0.1),
        ("clustering", "classes", []),
        ("intersections", "segment_set", "both"),
        ("intersections", "classes", "major"),
        ("batch", "max_workers", 0),
        ("batch", "max_workers", True),
        ("ingest", "min_clip_length_meters", -1),
        ("source", "kind", "ftp"),
    ],
)
def test_invalid_values_are_rejected(base_config_dict, section, key, value):
    bad = copy.deepcopy(base_config_dict)
    bad[section][key] = value
    with pytest.raises(ConfigError):
        validate_refresh_config(bad)


def test_intersection_class_subset_resolution(base_config_dict):
    cfg = copy.deepcopy(base_config_dict)
    cfg["intersections"]["classes"] = "clustering"
    assert build_refresh_config(cfg).intersections.classes == ("motorway", "trunk", "primary", "secondary")

    cfg["intersections"]["classes"] = ["residential", "tertiary"]
    assert build_refresh_config(cfg).intersections.classes == ("residential", "tertiary")


def test_overpass_source_requires_endpoint(base_config_dict):
    cfg = copy.deepcopy(base_config_dict)
    cfg["source"]["kind"] = "overpass"
    del cfg["source"]["overpass"]["endpoint"]
    with pytest.raises(ConfigError):
        validate_refresh_config(cfg)


def test_resolve_data_path(tmp_path: Path):
    assert resolve_data_path("districts.geojson", tmp_path) == tmp_path / "districts.geojson"
    assert resolve_data_path(str(tmp_path / "x.geojson"), Path("/elsewhere")) == tmp_path / "x.geojson"
