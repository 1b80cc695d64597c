from roadrollup.common.models import District
from roadrollup.ingest.overpass_source import OverpassSegmentSource, build_overpass_query, features_from_payload

SQUARE = {"type": "Polygon", "coordinates": [[[-0.1, 51.5], [-0.09, 51.5], [-0.09, 51.51], [-0.1, 51.51], [-0.1, 51.5]]]}


class FakeClient:
    def __init__(self, payload):
        self.payload = payload
        self.calls = []
        self.closed = False

    def post_form_json(self, url, **kwargs):
        self.calls.append((url, kwargs))
        return self.payload

    def close(self):
        self.closed = True


def test_build_overpass_query_uses_bbox_and_class_filter():
    query = build_overpass_query((-0.1, 51.5, -0.09, 51.51), ["primary", "motorway"], timeout_seconds=60)

    assert query.startswith("[out:json][timeout:60];")
    assert 'way["highway"~"^(motorway|primary)$"](51.5,-0.1,51.51,-0.09);' in query
    assert query.endswith("out geom tags;")


def test_build_overpass_query_without_classes_takes_all_highways():
    assert 'way["highway"](' in build_overpass_query((0, 0, 1, 1), [])


def test_features_from_payload_skips_non_ways_and_duplicates():
    payload = {
        "elements": [
            {"type": "node", "id": 1, "lat": 0, "lon": 0},
            {
                "type": "way",
                "id": 42,
                "tags": {"highway": "primary", "name": "Fleet Street"},
                "geometry": [{"lat": 51.5, "lon": -0.1}, {"lat": 51.501, "lon": -0.099}],
            },
            {"type": "way", "id": 42, "tags": {"highway": "primary"}, "geometry": []},
            {"type": "way", "id": 43, "tags": {"highway": "service", "service": "alley"}},
        ]
    }

    features = features_from_payload(payload)

    assert [f.segment_id for f in features] == ["w42", "w43"]
    assert features[0].road_class == "primary"
    assert features[0].name == "Fleet Street"
    assert features[0].geometry == {"type": "LineString", "coordinates": [(-0.1, 51.5), (-0.099, 51.501)]}
    assert features[1].subclass == "alley"
    assert features[1].geometry is None


def test_source_fetch_posts_query_and_reads_version():
    client = FakeClient({"osm3s": {"timestamp_osm_base": "2026-03-01T00:00:00Z"}, "elements": []})
    source = OverpassSegmentSource(
        {"endpoint": "https://overpass.example/api/interpreter", "timeout_seconds": 90},
        classes=["primary"],
        http_client=client,
    )

    batch = source.fetch(District(district_id="d1", name="One", boundary=SQUARE, area_sq_meters=1.0))

    assert batch.source_data_version == "2026-03-01T00:00:00Z"
    assert batch.features == []
    url, kwargs = client.calls[0]
    assert url == "https://overpass.example/api/interpreter"
    assert "out geom tags;" in kwargs["data"]["data"]
    assert client.closed is False
