import logging
import math
from enum import Enum
from typing import Callable, Dict, Iterator, List, Optional, Sequence, Tuple

import numpy as np

from citenet.constants import (
    ALPHA_DECAY,
    ALPHA_MIN,
    INITIAL_ANGLE,
    INITIAL_RADIUS,
    VELOCITY_DECAY,
)
from citenet.layout.forces import Force
from citenet.models import Node

logger = logging.getLogger(__name__)

TickListener = Callable[["ForceSimulation"], None]


class SimulationStatus(str, Enum):
    INITIALIZING = "initializing"
    RUNNING = "running"
    SETTLING = "settling"
    STOPPED = "stopped"


class SimulationState:
    """
    Kinetic state of every node, stored as parallel numpy arrays.

    Row ``i`` belongs to ``keys[i]``; pinned rows carry finite ``fx``/``fy``,
    free rows carry NaN.
    """

    def __init__(self, nodes: Sequence[Node], rng: np.random.Generator):
        self.nodes: List[Node] = list(nodes)
        self.keys: List[str] = [n.key for n in self.nodes]
        self.index: Dict[str, int] = {k: i for i, k in enumerate(self.keys)}
        self.rng = rng

        n = len(self.nodes)
        self.x = np.zeros(n)
        self.y = np.zeros(n)
        self.vx = np.array([node.vx or 0.0 for node in self.nodes], dtype=float)
        self.vy = np.array([node.vy or 0.0 for node in self.nodes], dtype=float)
        self.fx = np.array(
            [np.nan if node.fx is None else node.fx for node in self.nodes], dtype=float
        )
        self.fy = np.array(
            [np.nan if node.fy is None else node.fy for node in self.nodes], dtype=float
        )

        # Phyllotaxis placement for nodes without a position
        for i, node in enumerate(self.nodes):
            if node.x is not None and node.y is not None:
                self.x[i], self.y[i] = node.x, node.y
                continue
            radius = INITIAL_RADIUS * math.sqrt(0.5 + i)
            angle = i * INITIAL_ANGLE
            self.x[i] = radius * math.cos(angle)
            self.y[i] = radius * math.sin(angle)

        pinned = self.pinned
        self.x[pinned] = self.fx[pinned]
        self.y[pinned] = self.fy[pinned]

    @property
    def size(self) -> int:
        return len(self.keys)

    @property
    def pinned(self) -> np.ndarray:
        return ~np.isnan(self.fx) & ~np.isnan(self.fy)

    def jiggle(self, size: int) -> np.ndarray:
        return (self.rng.random(size) - 0.5) * 1e-6

    def sync_to_nodes(self) -> None:
        for i, node in enumerate(self.nodes):
            node.x = float(self.x[i])
            node.y = float(self.y[i])
            node.vx = float(self.vx[i])
            node.vy = float(self.vy[i])
            node.fx = None if np.isnan(self.fx[i]) else float(self.fx[i])
            node.fy = None if np.isnan(self.fy[i]) else float(self.fy[i])


class ForceSimulation:
    """
    Force simulation with a cooling temperature (d3-force integration).

    The engine owns no scheduler: a host calls ``tick()`` once per frame, or
    drives it pull-style with ``run()`` / ``iter_ticks()``. Each tick moves
    ``alpha`` toward ``alpha_target`` by ``alpha_decay``, lets every force
    add to velocities, damps velocities by ``velocity_decay`` and integrates
    positions. Pinned nodes are held at ``(fx, fy)``.

    Lifecycle: INITIALIZING until the first tick, RUNNING while hot (alpha
    above ``settle_alpha`` or a reheat target is held), SETTLING while
    cooling, STOPPED once alpha drops below ``alpha_min`` with a cold target
    or after ``stop()``. Ticking a stopped simulation does nothing.
    """

    def __init__(
        self,
        nodes: Sequence[Node],
        *,
        alpha: float = 1.0,
        alpha_min: float = ALPHA_MIN,
        alpha_decay: float = ALPHA_DECAY,
        alpha_target: float = 0.0,
        velocity_decay: float = VELOCITY_DECAY,
        settle_alpha: float = 0.1,
        seed: Optional[int] = None,
    ):
        if not 0 < alpha_decay <= 1:
            raise ValueError(f"alpha_decay must be in (0, 1], got {alpha_decay}")
        if not 0 <= velocity_decay <= 1:
            raise ValueError(f"velocity_decay must be in [0, 1], got {velocity_decay}")

        self.alpha = alpha
        self.alpha_min = alpha_min
        self.alpha_decay = alpha_decay
        self.alpha_target = alpha_target
        self.velocity_decay = velocity_decay
        self.settle_alpha = settle_alpha

        self.rng = np.random.default_rng(seed)
        self.state = SimulationState(nodes, self.rng)
        self.forces: Dict[str, Force] = {}
        self.status = SimulationStatus.INITIALIZING
        self.ticks = 0
        self._listeners: List[TickListener] = []

        self.state.sync_to_nodes()

    # --- configuration ---

    def add_force(self, name: str, force: Force) -> "ForceSimulation":
        force.initialize(self.state)
        self.forces[name] = force
        return self

    def remove_force(self, name: str) -> Optional[Force]:
        return self.forces.pop(name, None)

    def on_tick(self, listener: TickListener) -> Callable[[], None]:
        """Registers a per-tick listener; returns a function that removes it."""
        self._listeners.append(listener)

        def unsubscribe() -> None:
            if listener in self._listeners:
                self._listeners.remove(listener)

        return unsubscribe

    @property
    def nodes(self) -> List[Node]:
        return self.state.nodes

    # --- scheduling ---

    @property
    def stopped(self) -> bool:
        return self.status is SimulationStatus.STOPPED

    def tick(self) -> float:
        """Advances one step and returns the new alpha."""
        if self.stopped:
            return self.alpha

        state = self.state
        self.alpha += (self.alpha_target - self.alpha) * self.alpha_decay

        prev_x, prev_y = state.x.copy(), state.y.copy()
        for force in self.forces.values():
            force.apply(state, self.alpha)

        free = ~state.pinned
        damping = 1 - self.velocity_decay
        state.vx[free] *= damping
        state.vy[free] *= damping
        state.x[free] += state.vx[free]
        state.y[free] += state.vy[free]

        pinned = ~free
        state.x[pinned] = state.fx[pinned]
        state.y[pinned] = state.fy[pinned]
        state.vx[pinned] = 0.0
        state.vy[pinned] = 0.0

        self._heal(prev_x, prev_y)
        state.sync_to_nodes()
        self.ticks += 1
        self._update_status()

        for listener in list(self._listeners):
            listener(self)
        return self.alpha

    def _heal(self, prev_x: np.ndarray, prev_y: np.ndarray) -> None:
        state = self.state
        bad = ~(np.isfinite(state.x) & np.isfinite(state.y))
        if bad.any():
            logger.debug(f"Resetting {int(bad.sum())} non-finite node positions")
            state.x[bad] = prev_x[bad]
            state.y[bad] = prev_y[bad]
            state.vx[bad] = 0.0
            state.vy[bad] = 0.0

    def _update_status(self) -> None:
        hot_target = self.alpha_target >= self.alpha_min
        if self.alpha < self.alpha_min and not hot_target:
            self.status = SimulationStatus.STOPPED
            logger.debug(f"Simulation settled after {self.ticks} ticks")
        elif hot_target or self.alpha > self.settle_alpha:
            self.status = SimulationStatus.RUNNING
        else:
            self.status = SimulationStatus.SETTLING

    def tick_budget(self, max_ticks: Optional[int]) -> Optional[int]:
        """``max_ticks``, or a finite cap when unbounded ticking would never stop."""
        if max_ticks is not None or self.alpha_target < self.alpha_min:
            return max_ticks
        # A hot target never lets alpha fall below alpha_min
        budget = self.ticks_to_settle(max(self.alpha, self.alpha_target))
        logger.debug(f"Alpha target is hot; bounding the run at {budget} ticks")
        return budget

    def run(self, max_ticks: Optional[int] = None) -> int:
        """
        Ticks until stopped (or ``max_ticks``); returns the ticks taken.

        While a drag holds the alpha target hot the simulation never stops by
        itself, so an unbounded run is capped at ``ticks_to_settle`` from the
        hotter of alpha and the target.
        """
        max_ticks = self.tick_budget(max_ticks)
        taken = 0
        while not self.stopped and (max_ticks is None or taken < max_ticks):
            self.tick()
            taken += 1
        return taken

    def iter_ticks(self, max_ticks: Optional[int] = None) -> Iterator[float]:
        """Pull-based driver yielding alpha after every tick, bounded like ``run``."""
        max_ticks = self.tick_budget(max_ticks)
        taken = 0
        while not self.stopped and (max_ticks is None or taken < max_ticks):
            yield self.tick()
            taken += 1

    def ticks_to_settle(self, alpha: Optional[float] = None) -> int:
        """Ticks needed from ``alpha`` (default: the current one) to fall below ``alpha_min`` with a cold target."""
        alpha = self.alpha if alpha is None else alpha
        if alpha < self.alpha_min:
            return 0
        if self.alpha_decay >= 1:
            return 1
        ratio = math.log(self.alpha_min / alpha) / math.log(1 - self.alpha_decay)
        return int(math.floor(ratio)) + 1

    def restart(self) -> "ForceSimulation":
        if self.stopped:
            self.status = SimulationStatus.RUNNING
        return self

    def stop(self) -> "ForceSimulation":
        self.status = SimulationStatus.STOPPED
        return self

    def reheat(self, alpha_target: float) -> "ForceSimulation":
        """Sets the temperature target (drag start/end) and resumes ticking."""
        self.alpha_target = alpha_target
        if alpha_target >= self.alpha_min:
            self.restart()
        return self

    # --- node access ---

    def pin(self, key: str, x: Optional[float] = None, y: Optional[float] = None) -> bool:
        """Fixes a node at (x, y), defaulting to its current position."""
        i = self.state.index.get(key)
        if i is None:
            return False
        state = self.state
        state.fx[i] = state.x[i] if x is None else x
        state.fy[i] = state.y[i] if y is None else y
        state.x[i], state.y[i] = state.fx[i], state.fy[i]
        state.vx[i] = state.vy[i] = 0.0
        node = state.nodes[i]
        node.fx, node.fy = float(state.fx[i]), float(state.fy[i])
        node.x, node.y = node.fx, node.fy
        return True

    def unpin(self, key: str) -> bool:
        i = self.state.index.get(key)
        if i is None:
            return False
        self.state.fx[i] = np.nan
        self.state.fy[i] = np.nan
        node = self.state.nodes[i]
        node.fx = node.fy = None
        return True

    def position(self, key: str) -> Optional[Tuple[float, float]]:
        i = self.state.index.get(key)
        if i is None:
            return None
        return float(self.state.x[i]), float(self.state.y[i])

    def positions(self) -> Dict[str, Tuple[float, float]]:
        state = self.state
        return {
            key: (float(state.x[i]), float(state.y[i]))
            for i, key in enumerate(state.keys)
        }

    def find(self, x: float, y: float, radius: float = math.inf) -> Optional[str]:
        """Key of the node closest to (x, y) within ``radius``."""
        state = self.state
        if not state.size:
            return None
        d2 = (state.x - x) ** 2 + (state.y - y) ** 2
        i = int(np.argmin(d2))
        if d2[i] > radius * radius:
            return None
        return state.keys[i]


def simulate(
    nodes: Sequence[Node],
    forces: Optional[Dict[str, Force]] = None,
    max_ticks: Optional[int] = None,
    **kwargs,
) -> Dict[str, Tuple[float, float]]:
    """Runs a simulation to rest and returns the final positions."""
    sim = ForceSimulation(nodes, **kwargs)
    for name, force in (forces or {}).items():
        sim.add_force(name, force)
    ticks = sim.run(max_ticks)
    logger.info(f"Layout finished after {ticks} ticks (alpha={sim.alpha:.4f})")
    return sim.positions()
