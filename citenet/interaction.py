"""
Drag, hover and zoom handling on top of a running layout.

The controller never moves nodes itself: dragging pins a node in the
simulation and reheats it, so the rest of the layout keeps reacting to the
dragged node on subsequent ticks. Hover produces a HighlightState of the
focused element and its displayed neighbourhood. Zoom is a view transform
applied at render time only; model coordinates are never rescaled.
"""

import logging
from dataclasses import dataclass, field, replace
from typing import Callable, Dict, FrozenSet, List, Optional, Set, Tuple, Union

from citenet.constants import DRAG_ALPHA_TARGET, SCALE_EXTENT
from citenet.layout.simulation import ForceSimulation
from citenet.models import Graph

logger = logging.getLogger(__name__)

Point = Tuple[float, float]
HighlightListener = Callable[["HighlightState"], None]


@dataclass(frozen=True)
class HighlightState:
    """Hovered element plus the displayed nodes and edge indices around it."""

    focus: Optional[Union[str, int]] = None
    nodes: FrozenSet[str] = frozenset()
    edges: FrozenSet[int] = frozenset()

    @property
    def active(self) -> bool:
        return self.focus is not None


NO_HIGHLIGHT = HighlightState()


@dataclass(frozen=True)
class ZoomTransform:
    """
    Screen = model * k + (x, y).

    Transforms are immutable; every operation returns a new one with the
    scale clamped to ``scale_extent``.
    """

    k: float = 1.0
    x: float = 0.0
    y: float = 0.0
    scale_extent: Tuple[float, float] = field(default=SCALE_EXTENT, compare=False)

    def apply(self, point: Point) -> Point:
        return point[0] * self.k + self.x, point[1] * self.k + self.y

    def invert(self, point: Point) -> Point:
        return (point[0] - self.x) / self.k, (point[1] - self.y) / self.k

    def _clamp(self, k: float) -> float:
        low, high = self.scale_extent
        return max(low, min(high, k))

    def zoom_at(self, factor: float, pivot: Point) -> "ZoomTransform":
        """Scales by ``factor`` keeping the screen point ``pivot`` fixed."""
        anchor = self.invert(pivot)
        k = self._clamp(self.k * factor)
        return replace(self, k=k, x=pivot[0] - anchor[0] * k, y=pivot[1] - anchor[1] * k)

    def scale_by(self, factor: float) -> "ZoomTransform":
        return self.zoom_at(factor, (0.0, 0.0))

    def translate_by(self, dx: float, dy: float) -> "ZoomTransform":
        """Pans by (dx, dy) screen units."""
        return replace(self, x=self.x + dx, y=self.y + dy)


def edge_adjacency(graph: Graph) -> Dict[str, Set[int]]:
    """Node key -> indices of its incident displayed edges."""
    incident: Dict[str, Set[int]] = {key: set() for key in graph.nodes}
    for index, edge in enumerate(graph.edges):
        incident.setdefault(edge.source, set()).add(index)
        incident.setdefault(edge.target, set()).add(index)
    return incident


class InteractionController:
    """
    Translates pointer gestures into engine and highlight updates.

    Args:
        displayed (Graph): The displayed graph; hover neighbourhoods only use
            its edges.
        simulation (ForceSimulation, optional): Engine to pin and reheat.
            Static layouts pass ``None`` and dragging is ignored.
        drag_alpha_target (float): Temperature held while dragging.
        enable_zoom (bool): When false, zoom and pan requests are ignored.
        scale_extent (Tuple[float, float]): Allowed zoom scale range.
    """

    def __init__(
        self,
        displayed: Graph,
        simulation: Optional[ForceSimulation] = None,
        drag_alpha_target: float = DRAG_ALPHA_TARGET,
        enable_zoom: bool = True,
        scale_extent: Tuple[float, float] = SCALE_EXTENT,
    ):
        self.displayed = displayed
        self.simulation = simulation
        self.drag_alpha_target = drag_alpha_target
        self.enable_zoom = enable_zoom
        self.transform = ZoomTransform(scale_extent=scale_extent)
        self.highlight: HighlightState = NO_HIGHLIGHT

        self._incident = edge_adjacency(displayed)
        self._dragging: Set[str] = set()
        self._hover_stack: List[Union[str, int]] = []
        self._listeners: List[HighlightListener] = []
        self.closed = False

    # --- drag ---

    def drag_start(self, key: str) -> bool:
        """Pins the node where it is and heats the layout up."""
        if self.closed or self.simulation is None:
            return False
        if not self.simulation.pin(key):
            logger.debug(f"Ignoring drag on unknown node {key!r}")
            return False
        self._dragging.add(key)
        self.simulation.reheat(self.drag_alpha_target)
        return True

    def drag(self, key: str, x: float, y: float) -> bool:
        """Moves a dragged node to model coordinates (x, y)."""
        if self.closed or key not in self._dragging:
            return False
        return self.simulation.pin(key, x, y)

    def drag_screen(self, key: str, x: float, y: float) -> bool:
        """Moves a dragged node to a screen point, inverted through the zoom."""
        mx, my = self.transform.invert((x, y))
        return self.drag(key, mx, my)

    def drag_end(self, key: str) -> bool:
        """Releases the pin; cools back down once no node is held."""
        if key not in self._dragging:
            return False
        self._dragging.discard(key)
        if self.closed:
            return False
        self.simulation.unpin(key)
        if not self._dragging:
            self.simulation.reheat(0.0)
        return True

    @property
    def dragging(self) -> FrozenSet[str]:
        return frozenset(self._dragging)

    # --- hover ---

    def _node_highlight(self, key: str) -> HighlightState:
        edges = self._incident.get(key, set())
        nodes = {key}
        for index in edges:
            nodes.update(self.displayed.edges[index].endpoints)
        return HighlightState(focus=key, nodes=frozenset(nodes), edges=frozenset(edges))

    def _edge_highlight(self, index: int) -> HighlightState:
        edge = self.displayed.edges[index]
        return HighlightState(
            focus=index, nodes=frozenset(edge.endpoints), edges=frozenset({index})
        )

    def _publish(self) -> None:
        if not self._hover_stack:
            state = NO_HIGHLIGHT
        else:
            top = self._hover_stack[-1]
            state = (
                self._edge_highlight(top) if isinstance(top, int) else self._node_highlight(top)
            )
        if state == self.highlight:
            return
        self.highlight = state
        for listener in list(self._listeners):
            listener(state)

    def hover_enter(self, key: str) -> HighlightState:
        if key in self.displayed.nodes and not self.closed:
            self._hover_stack.append(key)
            self._publish()
        return self.highlight

    def hover_edge_enter(self, index: int) -> HighlightState:
        if 0 <= index < len(self.displayed.edges) and not self.closed:
            self._hover_stack.append(index)
            self._publish()
        return self.highlight

    def hover_leave(self, element: Optional[Union[str, int]] = None) -> HighlightState:
        """
        Leaves ``element`` (the most recent one by default).

        The highlight only clears once nothing is hovered; leaving a node
        while the pointer is still over one of its edges falls back to the
        edge's highlight.
        """
        if not self._hover_stack:
            return self.highlight
        if element is None:
            self._hover_stack.pop()
        else:
            for i in range(len(self._hover_stack) - 1, -1, -1):
                if self._hover_stack[i] == element:
                    del self._hover_stack[i]
                    break
        self._publish()
        return self.highlight

    def subscribe(self, listener: HighlightListener) -> Callable[[], None]:
        """Registers a highlight listener; returns a function that removes it."""
        self._listeners.append(listener)

        def unsubscribe() -> None:
            if listener in self._listeners:
                self._listeners.remove(listener)

        return unsubscribe

    # --- zoom ---

    def zoom(self, factor: float, pivot: Point = (0.0, 0.0)) -> ZoomTransform:
        if self.enable_zoom and not self.closed:
            self.transform = self.transform.zoom_at(factor, pivot)
        return self.transform

    def pan(self, dx: float, dy: float) -> ZoomTransform:
        if self.enable_zoom and not self.closed:
            self.transform = self.transform.translate_by(dx, dy)
        return self.transform

    def close(self) -> None:
        """Drops listeners and hover state; later gestures are ignored."""
        self.closed = True
        self._listeners.clear()
        self._hover_stack.clear()
        self._dragging.clear()
        self.highlight = NO_HIGHLIGHT
