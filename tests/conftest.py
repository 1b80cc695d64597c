from __future__ import annotations

import logging
import shutil
from pathlib import Path

import pytest
from shapely.geometry import LineString

from roadrollup.common.config_loader import build_refresh_config
from roadrollup.common.fs import read_yaml
from roadrollup.common.geometry import LengthMeasurer, geometry_to_geojson
from roadrollup.common.models import RawSegment
from roadrollup.common.units import meters_to_feet, meters_to_miles

FIXTURES = Path("tests") / "fixtures"


@pytest.fixture
def base_config_dict() -> dict:
    return read_yaml(Path("config") / "refresh.yml")


@pytest.fixture
def refresh_config(base_config_dict):
    return build_refresh_config(base_config_dict)


@pytest.fixture
def fixture_data_dir(tmp_path: Path) -> Path:
    data_dir = tmp_path / "data"
    data_dir.mkdir()
    for name in ("districts.geojson", "segments.geojson"):
        shutil.copy(FIXTURES / name, data_dir / name)
    return data_dir


@pytest.fixture
def quiet_logger() -> logging.Logger:
    logger = logging.getLogger("roadrollup.tests")
    logger.handlers.clear()
    logger.addHandler(logging.NullHandler())
    logger.propagate = False
    return logger


@pytest.fixture
def segment_factory():
    measurer = LengthMeasurer(4326)

    def make(
        segment_id: str,
        coords,
        road_class: str = "primary",
        name: str | None = None,
        district_id: str = "d1",
        is_boundary_segment: bool = False,
        clip_percentage: float = 1.0,
    ) -> RawSegment:
        line = LineString(coords)
        length = measurer.length_meters(line)
        return RawSegment(
            segment_record_id=f"{district_id}_{segment_id}",
            district_id=district_id,
            segment_id=segment_id,
            road_class=road_class,
            subclass=None,
            name=name,
            geometry=geometry_to_geojson(line),
            length_meters=length,
            length_miles=meters_to_miles(length),
            length_feet=meters_to_feet(length),
            is_boundary_segment=is_boundary_segment,
            clip_percentage=clip_percentage,
            source_data_version="test-v1",
            refresh_date="2026-03-02",
        )

    return make
