from roadrollup.pipeline.nodes import estimate_intersections, snap_key


def _cross(segment_factory, road_class="residential"):
    return [
        segment_factory("n", [(0, 0), (0, 0.001)], road_class=road_class),
        segment_factory("s", [(0, 0), (0, -0.001)], road_class=road_class),
        segment_factory("e", [(0, 0), (0.001, 0)], road_class=road_class),
        segment_factory("w", [(-0.001, 0), (0, 0)], road_class=road_class),
    ]


def test_degree_four_node_counts_once(segment_factory):
    estimate = estimate_intersections(_cross(segment_factory))

    assert estimate.intersections == 1
    assert estimate.dead_ends == 4
    assert estimate.through_points == 0
    assert estimate.node_count == 5


def test_dead_ends_and_through_points_are_not_intersections(segment_factory):
    records = [
        segment_factory("a", [(0, 0), (0.001, 0)]),
        segment_factory("b", [(0.001, 0), (0.002, 0)]),
    ]

    estimate = estimate_intersections(records)

    assert estimate.intersections == 0
    assert estimate.through_points == 1
    assert estimate.dead_ends == 2


def test_endpoints_within_snap_precision_share_a_node(segment_factory):
    records = [
        segment_factory("a", [(0, 0), (0.001, 0)]),
        segment_factory("b", [(0.0010000001, 0), (0.002, 0)]),
        segment_factory("c", [(0.001, 0.0000000002), (0.001, 0.001)]),
    ]

    assert estimate_intersections(records, precision=1e-6).intersections == 1
    assert estimate_intersections(records, precision=1e-12).intersections == 0


def test_class_subset_limits_counted_endpoints(segment_factory):
    records = _cross(segment_factory)[:2] + [segment_factory("m", [(0, 0), (0.001, 0)], road_class="primary")]

    assert estimate_intersections(records, classes=None).intersections == 1
    assert estimate_intersections(records, classes=["residential"]).intersections == 0
    assert estimate_intersections(records, classes=["residential"]).through_points == 1


def test_estimate_is_deterministic(segment_factory):
    records = _cross(segment_factory)
    assert estimate_intersections(records) == estimate_intersections(list(reversed(records)))


def test_snap_key():
    assert snap_key(0.0000004, 0.0000006, 1e-6) == (0, 1)
