import math

import numpy as np
import pytest

from citenet.layout.radial import (
    ClusterBundleLayout,
    RadialLayout,
    bundle_curve,
    bundle_route,
    cluster_layout,
    group_by,
    group_radii,
    pack_circles,
    place_members,
)
from citenet.models import Edge, EdgeKind, Node, NodeKind


def papers(years):
    return [
        Node(key=f"p{i}", kind=NodeKind.PAPER, name=f"p{i}", publish_year=year)
        for i, year in enumerate(years)
    ]


def test_group_by_sorts_keys():
    nodes = papers([2021, 2019, 2021, 2020])
    groups = group_by(nodes, lambda n: n.publish_year)

    assert list(groups) == [2019, 2020, 2021]
    assert [n.key for n in groups[2021]] == ["p0", "p2"]


def test_group_radii_linear():
    assert group_radii([5, 10, 0]) == [70.0, 100.0, 40.0]


def test_pack_circles_non_overlapping():
    radii = [30, 40, 50, 35, 45]
    centers = pack_circles(radii, 300, rng=np.random.default_rng(3))

    for r, (x, y) in zip(radii, centers):
        assert math.hypot(x, y) <= 300 - r - 20 + 1e-9
    for i in range(len(radii)):
        for j in range(i + 1, len(radii)):
            gap = math.dist(centers[i], centers[j])
            assert gap >= radii[i] + radii[j] + 10


def test_pack_circles_is_deterministic():
    first = pack_circles([30, 40, 50], 300, rng=np.random.default_rng(11))
    second = pack_circles([30, 40, 50], 300, rng=np.random.default_rng(11))
    assert first == second


def test_pack_circles_fallback():
    """With no room left every circle takes its angular slot on the allowed radius."""
    radii = [100, 100, 100, 100]
    centers = pack_circles(radii, 150, center=(10.0, 20.0), max_attempts=0)

    for i, (x, y) in enumerate(centers):
        angle = i / 4 * 2 * math.pi
        assert x == pytest.approx(10 + 30 * math.cos(angle))
        assert y == pytest.approx(20 + 30 * math.sin(angle))


def test_place_members_on_ring():
    members = papers([2020] * 4)
    positions = place_members(
        members, (100.0, 100.0), 50.0, rng=np.random.default_rng(0)
    )
    for x, y in positions.values():
        assert math.hypot(x - 100, y - 100) == pytest.approx(35.0)


def test_radial_layout_places_every_node():
    nodes = papers([2018] * 5 + [2019] * 2 + [2020] * 9)
    placement = RadialLayout(seed=5).place(nodes)

    assert set(placement.positions) == {n.key for n in nodes}
    assert placement.group_radii[2020] == pytest.approx(100.0)
    for node in nodes:
        group = placement.group_of[node.key]
        cx, cy = placement.group_centers[group]
        x, y = placement.positions[node.key]
        assert math.hypot(x - cx, y - cy) == pytest.approx(
            placement.group_radii[group] - 15
        )


def test_cluster_layout_angles():
    groups = group_by(papers([2019, 2019, 2020]), lambda n: n.publish_year)
    positions, angles, hubs = cluster_layout(groups, 100.0)

    assert all(0 <= a < 2 * math.pi for a in angles.values())
    assert angles["p0"] < angles["p1"] < angles["p2"]
    # Leaves in different groups are spaced twice as far apart
    assert angles["p2"] - angles["p1"] == pytest.approx(2 * (angles["p1"] - angles["p0"]))
    for x, y in positions.values():
        assert math.hypot(x, y) == pytest.approx(100.0)
    for x, y in hubs.values():
        assert math.hypot(x, y) == pytest.approx(50.0)


def test_bundle_route():
    route = bundle_route((0, 0), (9, 9), (1, 1), (8, 8), (5, 5))
    assert route == [(0, 0), (1, 1), (5, 5), (8, 8), (9, 9)]
    assert bundle_route((0, 0), (9, 9), (1, 1), (1, 1), (5, 5), same_group=True) == [
        (0, 0),
        (1, 1),
        (9, 9),
    ]


@pytest.mark.parametrize("beta", [0.0, 0.85, 1.0])
def test_bundle_curve_endpoints(beta):
    points = [(0, 0), (10, 40), (50, 50), (90, 40), (100, 0)]
    curve = bundle_curve(points, beta=beta, samples=20)

    assert curve.shape == (20, 2)
    assert np.allclose(curve[0], [0, 0])
    assert np.allclose(curve[-1], [100, 0])


def test_bundle_curve_beta_zero_is_straight():
    curve = bundle_curve([(0, 0), (10, 40), (50, 50), (100, 0)], beta=0.0)
    assert np.allclose(curve[:, 1], 0.0)


def test_cluster_bundle_layout():
    nodes = papers([2019, 2019, 2020, 2021])
    edges = [
        Edge("p0", "p2", EdgeKind.CITATION),
        Edge("p0", "p1", EdgeKind.CITATION),
        Edge("p3", "ghost", EdgeKind.CITATION),
    ]
    placement = ClusterBundleLayout(radius=200.0).place(nodes, edges)

    assert len(placement.curves) == 2
    assert placement.skipped_edges == 1
    edge, curve = placement.curves[0]
    assert np.allclose(curve[0], placement.positions["p0"])
    assert np.allclose(curve[-1], placement.positions["p2"])
