"""
Deterministic hierarchical and radial placement.

Two layouts group nodes by a hierarchy key (publication year by default):

- Region packing: each group gets its own circular region inside a
  container circle, placed by rejection-sampled circle packing, and members
  sit on a ring inside their region.
- Radial cluster: a root -> group -> node dendrogram laid out around a
  circle, with edges routed through group hubs and the root and drawn as
  bundled B-spline curves.

Random choices come from a caller-supplied ``numpy.random.Generator`` so
the functions are pure for a fixed seed.
"""

import logging
import math
from dataclasses import dataclass, field
from typing import Callable, Dict, Hashable, List, Optional, Sequence, Tuple

import numpy as np
from scipy.interpolate import BSpline

from citenet.constants import PACK_EDGE_PADDING, PACK_MARGIN, PACK_MAX_ATTEMPTS
from citenet.models import Edge, Node

logger = logging.getLogger(__name__)

Point = Tuple[float, float]


def _sort_key(value: Hashable):
    # Numbers before strings, None last
    if value is None:
        return (2, "")
    if isinstance(value, (int, float)):
        return (0, value)
    return (1, str(value))


def group_by(
    nodes: Sequence[Node], key: Callable[[Node], Hashable]
) -> Dict[Hashable, List[Node]]:
    """Groups nodes by ``key``; groups are ordered ascending, members keep input order."""
    groups: Dict[Hashable, List[Node]] = {}
    for node in nodes:
        groups.setdefault(key(node), []).append(node)
    return {k: groups[k] for k in sorted(groups, key=_sort_key)}


def group_radii(
    sizes: Sequence[int], min_radius: float = 40.0, max_radius: float = 100.0
) -> List[float]:
    """Region radius grows linearly with group size relative to the largest group."""
    largest = max(list(sizes) + [1])
    return [min_radius + (max_radius - min_radius) * (s / largest) for s in sizes]


def pack_circles(
    radii: Sequence[float],
    container_radius: float,
    *,
    center: Point = (0.0, 0.0),
    margin: float = PACK_MARGIN,
    edge_padding: float = PACK_EDGE_PADDING,
    max_attempts: int = PACK_MAX_ATTEMPTS,
    rng: Optional[np.random.Generator] = None,
) -> List[Point]:
    """
    Places non-overlapping circles inside a container circle.

    For each circle, random candidates are drawn inside the allowed radius
    (``container_radius - r - edge_padding``) and the first one whose
    distance to every placed circle is at least the sum of radii plus
    ``margin`` is accepted. After ``max_attempts`` rejections the circle
    falls back to an even angular slot on the allowed radius.

    Returns:
        List of circle centres, in the order of ``radii``.
    """
    rng = rng if rng is not None else np.random.default_rng()
    cx, cy = center
    count = len(radii)
    placed: List[Tuple[float, float, float]] = []
    centers: List[Point] = []
    fallbacks = 0

    for index, r in enumerate(radii):
        reach = max(0.0, container_radius - r - edge_padding)
        accepted: Optional[Point] = None

        for _ in range(max_attempts):
            angle = rng.random() * 2 * math.pi
            distance = rng.random() * reach
            x = cx + distance * math.cos(angle)
            y = cy + distance * math.sin(angle)
            if all(
                math.hypot(x - px, y - py) >= r + pr + margin for px, py, pr in placed
            ):
                accepted = (x, y)
                break

        if accepted is None:
            fallbacks += 1
            angle = index / count * 2 * math.pi
            accepted = (cx + reach * math.cos(angle), cy + reach * math.sin(angle))

        placed.append((accepted[0], accepted[1], r))
        centers.append(accepted)

    if fallbacks:
        logger.info(f"Circle packing fell back to angular slots for {fallbacks} groups")
    return centers


def place_members(
    members: Sequence[Node],
    center: Point,
    radius: float,
    *,
    inset: float = 15.0,
    jitter: float = 0.5,
    rng: Optional[np.random.Generator] = None,
) -> Dict[str, Point]:
    """Spreads members evenly on a ring of ``radius - inset`` around ``center``."""
    rng = rng if rng is not None else np.random.default_rng()
    ring = max(0.0, radius - inset)
    count = len(members)
    positions: Dict[str, Point] = {}
    for index, node in enumerate(members):
        angle = index / count * 2 * math.pi + rng.random() * jitter
        positions[node.key] = (
            center[0] + ring * math.cos(angle),
            center[1] + ring * math.sin(angle),
        )
    return positions


@dataclass
class RadialPlacement:
    """Output of the region-packing layout."""

    positions: Dict[str, Point]
    group_of: Dict[str, Hashable]
    group_centers: Dict[Hashable, Point]
    group_radii: Dict[Hashable, float]
    container_radius: float
    center: Point


class RadialLayout:
    """
    Packs one circular region per group and rings members inside it.

    Args:
        key: Hierarchy key per node (publication year by default).
        container_radius: Radius of the enclosing circle.
        min_radius, max_radius: Region radius bounds.
        inset: Distance of the member ring from the region edge.
        seed: Seed for packing and member jitter.
    """

    def __init__(
        self,
        key: Callable[[Node], Hashable] = lambda n: n.publish_year,
        container_radius: float = 300.0,
        center: Point = (0.0, 0.0),
        min_radius: float = 40.0,
        max_radius: float = 100.0,
        inset: float = 15.0,
        jitter: float = 0.5,
        margin: float = PACK_MARGIN,
        edge_padding: float = PACK_EDGE_PADDING,
        max_attempts: int = PACK_MAX_ATTEMPTS,
        seed: Optional[int] = None,
    ):
        self.key = key
        self.container_radius = container_radius
        self.center = center
        self.min_radius = min_radius
        self.max_radius = max_radius
        self.inset = inset
        self.jitter = jitter
        self.margin = margin
        self.edge_padding = edge_padding
        self.max_attempts = max_attempts
        self.seed = seed

    def place(self, nodes: Sequence[Node]) -> RadialPlacement:
        rng = np.random.default_rng(self.seed)
        groups = group_by(nodes, self.key)
        names = list(groups)
        radii = group_radii(
            [len(groups[g]) for g in names], self.min_radius, self.max_radius
        )
        centers = pack_circles(
            radii,
            self.container_radius,
            center=self.center,
            margin=self.margin,
            edge_padding=self.edge_padding,
            max_attempts=self.max_attempts,
            rng=rng,
        )

        positions: Dict[str, Point] = {}
        group_of: Dict[str, Hashable] = {}
        for name, center, radius in zip(names, centers, radii):
            members = groups[name]
            positions.update(
                place_members(
                    members, center, radius, inset=self.inset, jitter=self.jitter, rng=rng
                )
            )
            for node in members:
                group_of[node.key] = name

        logger.info(f"Radial layout: {len(names)} regions, {len(positions)} nodes")
        return RadialPlacement(
            positions=positions,
            group_of=group_of,
            group_centers=dict(zip(names, centers)),
            group_radii=dict(zip(names, radii)),
            container_radius=self.container_radius,
            center=self.center,
        )


def polar_to_cartesian(angle: float, radius: float, center: Point = (0.0, 0.0)) -> Point:
    """Angle 0 points up (12 o'clock), increasing clockwise in screen space."""
    return (
        center[0] + radius * math.cos(angle - math.pi / 2),
        center[1] + radius * math.sin(angle - math.pi / 2),
    )


def cluster_angles(
    groups: Dict[Hashable, Sequence[Node]],
    same_group_separation: float = 1.5,
    other_group_separation: float = 3.0,
) -> Tuple[Dict[str, float], Dict[Hashable, float]]:
    """
    Angular positions of a two-level radial dendrogram (root -> group -> leaf).

    Consecutive leaves are spaced by the separation weight (divided by leaf
    depth 2), the whole sequence is normalised onto [0, 2pi) leaving half a
    gap on either end, and each group hub takes the mean angle of its leaves.
    """
    leaf_x: Dict[str, float] = {}
    group_x: Dict[Hashable, float] = {}
    position = 0.0
    previous_group: Optional[Hashable] = None
    first_group: Optional[Hashable] = None
    placed = False
    depth = 2

    for name, members in groups.items():
        xs = []
        for node in members:
            if not placed:
                first_group = name
                placed = True
            else:
                same = previous_group == name
                position += (
                    same_group_separation if same else other_group_separation
                ) / depth
            leaf_x[node.key] = position
            xs.append(position)
            previous_group = name
        if xs:
            group_x[name] = sum(xs) / len(xs)

    if not leaf_x:
        return {}, {}

    wrap = same_group_separation if first_group == previous_group else other_group_separation
    gap = wrap / depth
    x0 = -gap / 2
    x1 = position + gap / 2
    span = x1 - x0
    scale = 2 * math.pi / span

    leaves = {k: (x - x0) * scale for k, x in leaf_x.items()}
    hubs = {g: (x - x0) * scale for g, x in group_x.items()}
    return leaves, hubs


def cluster_layout(
    groups: Dict[Hashable, Sequence[Node]],
    radius: float,
    *,
    center: Point = (0.0, 0.0),
    same_group_separation: float = 1.5,
    other_group_separation: float = 3.0,
    hub_ratio: float = 0.5,
) -> Tuple[Dict[str, Point], Dict[str, float], Dict[Hashable, Point]]:
    """
    Places leaves on a circle of ``radius`` and group hubs on an inner circle.

    Returns:
        Tuple of (leaf positions, leaf angles, hub positions).
    """
    leaf_angles, hub_angles = cluster_angles(
        groups, same_group_separation, other_group_separation
    )
    positions = {
        key: polar_to_cartesian(a, radius, center) for key, a in leaf_angles.items()
    }
    hubs = {
        g: polar_to_cartesian(a, radius * hub_ratio, center)
        for g, a in hub_angles.items()
    }
    return positions, leaf_angles, hubs


def bundle_route(
    source: Point,
    target: Point,
    source_hub: Point,
    target_hub: Point,
    root: Point,
    same_group: bool = False,
) -> List[Point]:
    """Control points along the hierarchy path between two leaves."""
    if same_group:
        return [source, source_hub, target]
    return [source, source_hub, root, target_hub, target]


def bundle_curve(points: Sequence[Point], beta: float = 0.85, samples: int = 32) -> np.ndarray:
    """
    Bundled edge curve through hierarchy control points.

    Control points are straightened toward the source-target chord by
    ``1 - beta`` (beta=1 follows the hierarchy fully, beta=0 is a straight
    line) and then smoothed with a clamped cubic B-spline, which passes
    through both endpoints.

    Returns:
        ndarray of shape (samples, 2).
    """
    ctrl = np.asarray(points, dtype=float)
    n = len(ctrl)
    if n == 0:
        return np.zeros((0, 2))
    if n == 1:
        return np.repeat(ctrl, samples, axis=0)
    t = np.arange(n) / (n - 1)
    chord = ctrl[0] + np.outer(t, ctrl[-1] - ctrl[0])
    straightened = beta * ctrl + (1 - beta) * chord

    k = min(3, n - 1)
    interior = np.linspace(0, 1, n - k + 1)[1:-1]
    knots = np.concatenate([np.zeros(k + 1), interior, np.ones(k + 1)])
    spline = BSpline(knots, straightened, k)
    return spline(np.linspace(0, 1, samples))


@dataclass
class ClusterPlacement:
    """Output of the radial cluster layout with bundled edge curves."""

    positions: Dict[str, Point]
    angles: Dict[str, float]
    group_of: Dict[str, Hashable]
    hubs: Dict[Hashable, Point]
    root: Point
    radius: float
    curves: List[Tuple[Edge, np.ndarray]] = field(default_factory=list)
    skipped_edges: int = 0


class ClusterBundleLayout:
    """
    Radial cluster layout (root -> group -> node) with bundled edges.

    Leaves sit on the outer circle; group hubs sit halfway in, at the mean
    angle of their members. An edge runs leaf -> hub -> root -> hub -> leaf,
    so all edges between the same two groups share their inner control
    points and converge.
    """

    def __init__(
        self,
        key: Callable[[Node], Hashable] = lambda n: n.publish_year,
        radius: float = 300.0,
        center: Point = (0.0, 0.0),
        same_group_separation: float = 1.5,
        other_group_separation: float = 3.0,
        hub_ratio: float = 0.5,
        beta: float = 0.85,
        samples: int = 32,
    ):
        self.key = key
        self.radius = radius
        self.center = center
        self.same_group_separation = same_group_separation
        self.other_group_separation = other_group_separation
        self.hub_ratio = hub_ratio
        self.beta = beta
        self.samples = samples

    def place(self, nodes: Sequence[Node], edges: Sequence[Edge] = ()) -> ClusterPlacement:
        groups = group_by(nodes, self.key)
        positions, leaf_angles, hubs = cluster_layout(
            groups,
            self.radius,
            center=self.center,
            same_group_separation=self.same_group_separation,
            other_group_separation=self.other_group_separation,
            hub_ratio=self.hub_ratio,
        )
        group_of = {node.key: name for name, members in groups.items() for node in members}

        placement = ClusterPlacement(
            positions=positions,
            angles=leaf_angles,
            group_of=group_of,
            hubs=hubs,
            root=self.center,
            radius=self.radius,
        )
        placement.curves, placement.skipped_edges = self.bundle(placement, edges)
        logger.info(
            f"Cluster layout: {len(hubs)} groups, {len(positions)} nodes, "
            f"{len(placement.curves)} bundled edges"
        )
        return placement

    def bundle(
        self, placement: ClusterPlacement, edges: Sequence[Edge]
    ) -> Tuple[List[Tuple[Edge, np.ndarray]], int]:
        """Curves for every edge whose endpoints both have a position."""
        curves: List[Tuple[Edge, np.ndarray]] = []
        skipped = 0
        for edge in edges:
            source = placement.positions.get(edge.source)
            target = placement.positions.get(edge.target)
            if source is None or target is None:
                skipped += 1
                continue
            gs = placement.group_of[edge.source]
            gt = placement.group_of[edge.target]
            route = bundle_route(
                source,
                target,
                placement.hubs[gs],
                placement.hubs[gt],
                placement.root,
                same_group=gs == gt,
            )
            curves.append((edge, bundle_curve(route, self.beta, self.samples)))
        return curves, skipped
