import pytest

from roadrollup.common.errors import SourceError
from roadrollup.ingest.file_sources import district_from_feature


def _feature(**props) -> dict:
    return {
        "type": "Feature",
        "properties": {"district_id": "d1", "name": "Harbour", **props},
        "geometry": {"type": "Polygon", "coordinates": [[[0, 0], [0.01, 0], [0.01, 0.01], [0, 0.01], [0, 0]]]},
    }


@pytest.mark.parametrize(
    "raw, expected",
    [
        (True, True),
        (False, False),
        ("true", True),
        ("false", False),
        ("False", False),
        ("no", False),
        ("0", False),
        (0, False),
        (1, True),
    ],
)
def test_is_active_flag_parses_strings_and_numbers(raw, expected):
    assert district_from_feature(_feature(is_active=raw)).is_active is expected


def test_missing_is_active_defaults_to_active():
    assert district_from_feature(_feature()).is_active is True


def test_unrecognised_is_active_value_is_rejected():
    with pytest.raises(SourceError):
        district_from_feature(_feature(is_active="sometimes"))
