"""
Force terms for the force-directed simulation.

Each force follows the d3-force contract: ``initialize(state)`` is called
once when the force is registered (resolving per-node or per-edge
parameters), and ``apply(state, alpha)`` adds its contribution to node
velocities (or, for centering, shifts positions) on every tick.

Parameters accept either a constant or a callable evaluated per node or per
edge at initialization time.
"""

import logging
import math
from typing import Callable, Dict, Optional, Sequence, Union

import numpy as np
from scipy.spatial import cKDTree

from citenet.models import Edge, Node

logger = logging.getLogger(__name__)

NodeParam = Union[float, Callable[[Node], float]]
EdgeParam = Union[float, Callable[[Edge], float]]


def resolve(param, items: Sequence) -> np.ndarray:
    """Evaluates a constant-or-callable parameter for every item."""
    if callable(param):
        return np.array([float(param(item)) for item in items], dtype=float)
    return np.full(len(items), float(param), dtype=float)


class Force:
    """Base class for force terms."""

    def initialize(self, state) -> None:
        self.state = state

    def apply(self, state, alpha: float) -> None:
        raise NotImplementedError


class ManyBody(Force):
    """
    Pairwise charge: attraction for positive strength, repulsion for negative.

    Computed exactly over all pairs; node budgets keep N small enough that
    the O(N^2) vectorised pass is cheaper than a Barnes-Hut tree in Python.
    Pairs farther apart than ``distance_max`` do not interact.
    """

    def __init__(
        self,
        strength: NodeParam = -30.0,
        distance_min: float = 1.0,
        distance_max: float = math.inf,
    ):
        self.strength = strength
        self.distance_min = distance_min
        self.distance_max = distance_max

    def initialize(self, state) -> None:
        super().initialize(state)
        self.strengths = resolve(self.strength, state.nodes)

    def apply(self, state, alpha: float) -> None:
        n = state.size
        if n < 2:
            return

        dx = state.x[None, :] - state.x[:, None]
        dy = state.y[None, :] - state.y[:, None]
        off_diag = ~np.eye(n, dtype=bool)

        # Coincident nodes get a tiny random offset
        zero_x = (dx == 0) & off_diag
        if zero_x.any():
            dx[zero_x] = state.jiggle(int(zero_x.sum()))
        zero_y = (dy == 0) & off_diag
        if zero_y.any():
            dy[zero_y] = state.jiggle(int(zero_y.sum()))

        l2 = dx * dx + dy * dy
        mask = off_diag & (l2 < self.distance_max ** 2)

        dmin2 = self.distance_min ** 2
        l2 = np.where(l2 < dmin2, np.sqrt(dmin2 * l2), l2)
        l2[~mask] = 1.0

        w = np.where(mask, self.strengths[None, :] * alpha / l2, 0.0)
        state.vx += (dx * w).sum(axis=1)
        state.vy += (dy * w).sum(axis=1)


class Link(Force):
    """
    Springs along edges.

    Default strength is ``1 / min(degree(source), degree(target))`` and the
    correction is split between endpoints by degree, so hubs move less.
    Edges whose endpoints are not in the simulation are ignored.
    """

    def __init__(
        self,
        edges: Sequence[Edge],
        distance: EdgeParam = 30.0,
        strength: Optional[EdgeParam] = None,
        iterations: int = 1,
    ):
        self.edges = list(edges)
        self.distance = distance
        self.strength = strength
        self.iterations = iterations

    def initialize(self, state) -> None:
        super().initialize(state)
        resolved = [
            e
            for e in self.edges
            if e.source in state.index and e.target in state.index
        ]
        if len(resolved) < len(self.edges):
            logger.debug(
                f"Link force ignoring {len(self.edges) - len(resolved)} unresolved edges"
            )
        self.active = resolved
        self.source = np.array([state.index[e.source] for e in resolved], dtype=int)
        self.target = np.array([state.index[e.target] for e in resolved], dtype=int)

        count = np.bincount(
            np.concatenate([self.source, self.target]), minlength=state.size
        ).astype(float)
        if resolved:
            self.bias = count[self.source] / (count[self.source] + count[self.target])
        else:
            self.bias = np.zeros(0)

        if self.strength is None:
            if resolved:
                self.strengths = 1.0 / np.minimum(
                    count[self.source], count[self.target]
                )
            else:
                self.strengths = np.zeros(0)
        else:
            self.strengths = resolve(self.strength, resolved)
        self.distances = resolve(self.distance, resolved)

    def apply(self, state, alpha: float) -> None:
        if not len(self.source):
            return
        s, t = self.source, self.target

        for _ in range(self.iterations):
            x = state.x[t] + state.vx[t] - state.x[s] - state.vx[s]
            y = state.y[t] + state.vy[t] - state.y[s] - state.vy[s]
            x = np.where(x == 0, state.jiggle(len(x)), x)
            y = np.where(y == 0, state.jiggle(len(y)), y)

            length = np.sqrt(x * x + y * y)
            k = (length - self.distances) / length * alpha * self.strengths
            x *= k
            y *= k

            np.subtract.at(state.vx, t, x * self.bias)
            np.subtract.at(state.vy, t, y * self.bias)
            np.add.at(state.vx, s, x * (1 - self.bias))
            np.add.at(state.vy, s, y * (1 - self.bias))


class Collide(Force):
    """
    Treats nodes as circles and pushes overlapping pairs apart.

    Overlaps are found with a KD-tree on predicted positions and relaxed
    ``iterations`` times per tick; the push is split by squared radius so
    smaller nodes yield to larger ones.
    """

    def __init__(
        self,
        radius: NodeParam = 1.0,
        strength: float = 1.0,
        iterations: int = 1,
    ):
        self.radius = radius
        self.strength = strength
        self.iterations = iterations

    def initialize(self, state) -> None:
        super().initialize(state)
        self.radii = resolve(self.radius, state.nodes)
        self.max_radius = float(self.radii.max()) if state.size else 0.0

    def apply(self, state, alpha: float) -> None:
        if state.size < 2:
            return

        for _ in range(self.iterations):
            px = state.x + state.vx
            py = state.y + state.vy
            tree = cKDTree(np.column_stack([px, py]))
            pairs = tree.query_pairs(2 * self.max_radius, output_type="ndarray")
            if not len(pairs):
                return

            i, j = pairs[:, 0], pairs[:, 1]
            r = self.radii[i] + self.radii[j]
            x = px[i] - px[j]
            y = py[i] - py[j]
            l2 = x * x + y * y
            hit = l2 < r * r
            if not hit.any():
                return

            i, j, r, x, y, l2 = i[hit], j[hit], r[hit], x[hit], y[hit], l2[hit]
            x = np.where(x == 0, state.jiggle(len(x)), x)
            y = np.where(y == 0, state.jiggle(len(y)), y)
            l2 = np.where(l2 == 0, x * x + y * y, l2)

            length = np.sqrt(l2)
            k = (r - length) / length * self.strength
            x *= k
            y *= k

            ri2 = self.radii[i] ** 2
            rj2 = self.radii[j] ** 2
            share = rj2 / (ri2 + rj2)

            np.add.at(state.vx, i, x * share)
            np.add.at(state.vy, i, y * share)
            np.subtract.at(state.vx, j, x * (1 - share))
            np.subtract.at(state.vy, j, y * (1 - share))


class Center(Force):
    """Translates all nodes so their mean position sits on (x, y)."""

    def __init__(self, x: float = 0.0, y: float = 0.0, strength: float = 1.0):
        self.x = x
        self.y = y
        self.strength = strength

    def apply(self, state, alpha: float) -> None:
        if not state.size:
            return
        sx = (state.x.mean() - self.x) * self.strength
        sy = (state.y.mean() - self.y) * self.strength
        state.x -= sx
        state.y -= sy


class Community(Force):
    """
    Pulls each node toward the centroid of the other members of its group.

    ``groups`` maps node key to group id; nodes without a group (or alone in
    theirs) feel nothing.
    """

    def __init__(self, groups: Dict[str, int], strength: float = 0.1):
        self.groups = groups
        self.strength = strength

    def initialize(self, state) -> None:
        super().initialize(state)
        labels = [self.groups.get(key) for key in state.keys]
        codes: Dict[int, int] = {}
        encoded = []
        for label in labels:
            if label is None:
                encoded.append(-1)
                continue
            encoded.append(codes.setdefault(label, len(codes)))
        self.labels = np.array(encoded, dtype=int)
        self.n_groups = len(codes)

    def apply(self, state, alpha: float) -> None:
        member = self.labels >= 0
        if not member.any():
            return
        labels = self.labels[member]

        count = np.bincount(labels, minlength=self.n_groups).astype(float)
        sum_x = np.bincount(labels, weights=state.x[member], minlength=self.n_groups)
        sum_y = np.bincount(labels, weights=state.y[member], minlength=self.n_groups)

        others = count[labels] - 1
        has_peers = others > 0
        if not has_peers.any():
            return

        x = state.x[member]
        y = state.y[member]
        cx = np.where(has_peers, (sum_x[labels] - x) / np.maximum(others, 1), x)
        cy = np.where(has_peers, (sum_y[labels] - y) / np.maximum(others, 1), y)

        k = self.strength * alpha
        state.vx[member] += (cx - x) * k
        state.vy[member] += (cy - y) * k


class Boundary(Force):
    """Pushes nodes back inside the rectangle [x1, x2] x [y1, y2]."""

    def __init__(
        self, x1: float, y1: float, x2: float, y2: float, strength: float = 0.1
    ):
        self.x1, self.y1, self.x2, self.y2 = x1, y1, x2, y2
        self.strength = strength

    def apply(self, state, alpha: float) -> None:
        s = self.strength * alpha
        state.vx += np.where(state.x < self.x1, (self.x1 - state.x) * s, 0.0)
        state.vx -= np.where(state.x > self.x2, (state.x - self.x2) * s, 0.0)
        state.vy += np.where(state.y < self.y1, (self.y1 - state.y) * s, 0.0)
        state.vy -= np.where(state.y > self.y2, (state.y - self.y2) * s, 0.0)


class CircularBoundary(Force):
    """Pushes nodes back inside a circle by their overshoot."""

    def __init__(
        self, radius: float, x: float = 0.0, y: float = 0.0, strength: float = 0.1
    ):
        self.radius = radius
        self.x = x
        self.y = y
        self.strength = strength

    def apply(self, state, alpha: float) -> None:
        dx = state.x - self.x
        dy = state.y - self.y
        dist = np.sqrt(dx * dx + dy * dy)
        outside = dist > self.radius
        if not outside.any():
            return
        k = (dist[outside] - self.radius) / dist[outside] * self.strength * alpha
        state.vx[outside] -= dx[outside] * k
        state.vy[outside] -= dy[outside] * k


class Radial(Force):
    """
    Pulls each node toward a circle of the given radius around (x, y).

    Radius, centre and strength may all be per-node, which lets each group
    orbit its own centre.
    """

    def __init__(
        self,
        radius: NodeParam,
        x: NodeParam = 0.0,
        y: NodeParam = 0.0,
        strength: NodeParam = 0.1,
    ):
        self.radius = radius
        self.x = x
        self.y = y
        self.strength = strength

    def initialize(self, state) -> None:
        super().initialize(state)
        self.radii = resolve(self.radius, state.nodes)
        self.cx = resolve(self.x, state.nodes)
        self.cy = resolve(self.y, state.nodes)
        self.strengths = resolve(self.strength, state.nodes)

    def apply(self, state, alpha: float) -> None:
        if not state.size:
            return
        dx = state.x - self.cx
        dy = state.y - self.cy
        dx = np.where(dx == 0, 1e-6, dx)
        dist = np.sqrt(dx * dx + dy * dy)
        k = (self.radii - dist) * self.strengths * alpha / dist
        state.vx += dx * k
        state.vy += dy * k
