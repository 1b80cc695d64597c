import pytest

from roadrollup.common.errors import InputError
from roadrollup.common.geometry import LengthMeasurer
from roadrollup.common.models import District, SourceFeature
from roadrollup.ingest.clip import clip_segments, require_refreshable
from roadrollup.ingest.sources import SourceBatch

SQUARE = {"type": "Polygon", "coordinates": [[[0, 0], [0.01, 0], [0.01, 0.01], [0, 0.01], [0, 0]]]}


def _district(**overrides):
    values = {"district_id": "d1", "name": "District One", "boundary": SQUARE, "area_sq_meters": 1e6}
    values.update(overrides)
    return District(**values)


def _feature(segment_id, coords, road_class="primary", name=None):
    geometry = {"type": "LineString", "coordinates": coords} if coords is not None else None
    return SourceFeature(segment_id=segment_id, road_class=road_class, subclass=None, name=name, geometry=geometry)


def _clip(features, refresh_config, district=None):
    return clip_segments(
        district or _district(),
        SourceBatch(features=features, source_data_version="v7"),
        refresh_config.ingest,
        LengthMeasurer(4326),
        "2026-03-02",
    )


def test_require_refreshable_rejects_missing_inactive_and_unbounded():
    with pytest.raises(InputError):
        require_refreshable(None, "ghost")
    with pytest.raises(InputError):
        require_refreshable(_district(is_active=False), "d1")
    with pytest.raises(InputError):
        require_refreshable(_district(boundary=None), "d1")
    assert require_refreshable(_district(), "d1").district_id == "d1"


def test_inside_segment_is_kept_whole(refresh_config):
    result = _clip([_feature("s1", [[0.001, 0.005], [0.004, 0.005]], name="Main Street")], refresh_config)

    (segment,) = result.segments
    assert segment.segment_record_id == "d1_s1"
    assert segment.is_boundary_segment is False
    assert segment.clip_percentage == 1.0
    assert segment.length_meters == pytest.approx(333.96, rel=1e-3)
    assert segment.length_miles == pytest.approx(segment.length_meters / 1609.34, abs=1e-6)
    assert segment.source_data_version == "v7"
    assert segment.refresh_date == "2026-03-02"


def test_crossing_segment_is_clipped_and_flagged(refresh_config):
    result = _clip([_feature("s6", [[0.008, 0.002], [0.012, 0.002]])], refresh_config)

    (segment,) = result.segments
    assert segment.is_boundary_segment is True
    assert segment.clip_percentage == pytest.approx(0.5, abs=1e-4)
    assert max(x for x, _y in segment.geometry["coordinates"]) == pytest.approx(0.01)


def test_filters_classes_outside_and_short_clips(refresh_config):
    features = [
        _feature("foot", [[0.001, 0.001], [0.003, 0.001]], road_class="footway"),
        _feature("away", [[0.02, 0.02], [0.03, 0.02]]),
        # Pokes 0.5 m into the district.
        _feature("stub", [[0.0100045, 0.003], [0.0099955, 0.003]]),
        _feature("ok", [[0.001, 0.001], [0.003, 0.001]]),
    ]

    result = _clip(features, refresh_config)

    assert [s.segment_id for s in result.segments] == ["ok"]
    assert result.filtered_class == 1
    assert result.outside_boundary == 1
    assert result.dropped_short == 1


def test_degenerate_geometries_are_skipped_and_counted(refresh_config):
    features = [
        _feature("none", None),
        _feature("flat", [[0.001, 0.001], [0.001, 0.001]]),
        _feature("bowtie", [[0.001, 0.001], [0.002, 0.002], [0.002, 0.001], [0.001, 0.002]]),
        _feature("ok", [[0.001, 0.001], [0.003, 0.001]]),
    ]

    result = _clip(features, refresh_config)

    assert [s.segment_id for s in result.segments] == ["ok"]
    assert result.skipped_geometries == 3
    assert result.skipped_reasons["self_intersecting"] == 1


def test_duplicate_source_ids_are_kept_once(refresh_config):
    features = [_feature("s1", [[0.001, 0.001], [0.003, 0.001]]), _feature("s1", [[0.001, 0.002], [0.003, 0.002]])]

    result = _clip(features, refresh_config)

    assert len(result.segments) == 1
    assert result.duplicates == 1
