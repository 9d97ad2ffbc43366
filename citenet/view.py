"""
Network views: the load -> build -> prune -> group -> layout pipeline.

A NetworkView is driven through ``IDLE -> LOADING -> READY -> INTERACTIVE
-> TORN_DOWN``. Ingestion failures move it to the terminal ``ERROR`` state
with a diagnostic message instead of raising into the host. Layout
progresses one ``step()`` at a time; every tick produces a RenderFrame for
the rendering surface.

Five presets reproduce the dashboard's views: ``citation``,
``collaboration``, ``community``, ``year_clusters`` and
``bundled_hierarchy``.
"""

import logging
import math
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Callable, Dict, Hashable, Iterator, List, Optional, Tuple, Union

import numpy as np

from citenet.aggregates import graph_summary
from citenet.communities import apply_groups, detect_groups
from citenet.config import PresetForces, ViewConfig
from citenet.constants import SCALE_EXTENT
from citenet.errors import CitenetError, EmptySourceError
from citenet.ingestion import (
    load_graph_json,
    load_graph_json_async,
    load_records,
    load_records_async,
)
from citenet.interaction import NO_HIGHLIGHT, HighlightState, InteractionController, ZoomTransform
from citenet.layout.forces import (
    Boundary,
    Center,
    Collide,
    Community,
    Force,
    Link,
    ManyBody,
    Radial,
)
from citenet.layout.radial import (
    ClusterBundleLayout,
    ClusterPlacement,
    RadialLayout,
    RadialPlacement,
)
from citenet.layout.simulation import ForceSimulation
from citenet.models import DisplayedGraph, Edge, EdgeKind, Graph, Node, NodeKind
from citenet.networks import (
    build_citation_graph,
    build_collaboration_graph,
    graph_from_payload,
)
from citenet.pruning import prune
from citenet.records import AFFILIATION_SCHEMA, CITATION_SCHEMA, RecordSchema

logger = logging.getLogger(__name__)

Point = Tuple[float, float]
Placement = Union[RadialPlacement, ClusterPlacement]
FrameListener = Callable[["RenderFrame"], None]


class ViewState(str, Enum):
    IDLE = "idle"
    LOADING = "loading"
    READY = "ready"
    INTERACTIVE = "interactive"
    TORN_DOWN = "torn_down"
    ERROR = "error"


@dataclass
class RenderFrame:
    """
    Everything the rendering surface needs for one frame.

    ``edges`` holds resolved segments only; an edge whose endpoint has no
    position is left out and counted in ``skipped_edges``. ``curves`` carries
    bundled edge polylines for the hierarchy view.
    """

    nodes: Dict[str, Point]
    edges: List[Tuple[Edge, Point, Point]]
    groups: Dict[str, int]
    highlight: HighlightState
    alpha: float
    tick: int
    skipped_edges: int = 0
    transform: ZoomTransform = field(default_factory=ZoomTransform)
    curves: List[Tuple[Edge, np.ndarray]] = field(default_factory=list)
    regions: Dict[Hashable, Tuple[Point, float]] = field(default_factory=dict)


@dataclass
class LayoutContext:
    """What a preset's force factory sees when the engine is built."""

    displayed: DisplayedGraph
    groups: Dict[str, int]
    config: ViewConfig
    placement: Optional[Placement] = None
    seed: Optional[int] = None

    @property
    def center(self) -> Point:
        return self.config.width / 2, self.config.height / 2


@dataclass
class ViewPreset:
    """
    Source format, builder, budget, grouping and layout of one view.

    ``mode`` is ``"force"`` (simulation only), ``"hybrid"`` (deterministic
    placement seeds a constrained simulation) or ``"static"`` (deterministic
    placement, no physics).
    """

    name: str
    mode: str
    schema: Optional[RecordSchema]
    build: Callable[[Any], Graph]
    max_nodes: int
    grouping: str
    forces: PresetForces = field(default_factory=PresetForces)
    make_forces: Optional[Callable[[LayoutContext], Dict[str, Force]]] = None
    make_placement: Optional[Callable[[LayoutContext, List[Node]], Placement]] = None
    quotas: Optional[Dict[NodeKind, float]] = None
    scale_extent: Tuple[float, float] = SCALE_EXTENT

    def fetch(self, source: str) -> Any:
        if self.schema is None:
            return load_graph_json(source)
        return load_records(source, self.schema).records

    async def fetch_async(self, source: str) -> Any:
        if self.schema is None:
            return await load_graph_json_async(source)
        result = await load_records_async(source, self.schema)
        return result.records


def _log_count(value: float) -> float:
    return math.log(max(value, 1))


# --- citation ---


def citation_forces(ctx: LayoutContext) -> Dict[str, Force]:
    cx, cy = ctx.center
    return {
        "link": Link(
            ctx.displayed.edges,
            distance=lambda e: 120 + (5 - e.value) * 10,
            strength=lambda e: min(0.4, e.value / 5),
        ),
        "charge": ManyBody(strength=-180, distance_max=250),
        "center": Center(cx, cy),
        "collide": Collide(
            radius=lambda n: 15 + 2 * _log_count(n.citation_count), iterations=3
        ),
    }


# --- collaboration ---


def _collab_distance(edge: Edge) -> float:
    if edge.kind is EdgeKind.COLLABORATION:
        return max(50, 150 - 10 * edge.collaboration_count)
    return 80


def _collab_strength(edge: Edge) -> float:
    if edge.kind is EdgeKind.COLLABORATION:
        return min(0.8, 0.2 + 0.1 * edge.collaboration_count)
    return 0.3


def _collab_radius(node: Node) -> float:
    if node.kind is NodeKind.AUTHOR:
        return 12 + 3 * _log_count(node.paper_count)
    return 10 + 2 * _log_count(node.author_count)


def collaboration_forces(ctx: LayoutContext) -> Dict[str, Force]:
    cx, cy = ctx.center
    return {
        "link": Link(
            ctx.displayed.edges, distance=_collab_distance, strength=_collab_strength
        ),
        "charge": ManyBody(
            strength=lambda n: -200 if n.kind is NodeKind.AUTHOR else -150,
            distance_max=300,
        ),
        "center": Center(cx, cy),
        "collide": Collide(radius=_collab_radius, iterations=3),
    }


# --- community ---


def community_forces(ctx: LayoutContext) -> Dict[str, Force]:
    cx, cy = ctx.center
    inset = 50
    return {
        "link": Link(
            ctx.displayed.edges, distance=lambda e: 150 / math.sqrt(max(e.value, 1e-6))
        ),
        "charge": ManyBody(strength=-300),
        "center": Center(cx, cy),
        "community": Community(ctx.groups, strength=0.1),
        "boundary": Boundary(
            inset, inset, ctx.config.width - inset, ctx.config.height - inset, strength=0.1
        ),
    }


# --- year clusters ---


def year_regions(ctx: LayoutContext, nodes: List[Node]) -> RadialPlacement:
    layout = RadialLayout(
        key=lambda n: n.publish_year,
        container_radius=300,
        center=ctx.center,
        seed=ctx.seed,
    )
    return layout.place(nodes)


def year_cluster_forces(ctx: LayoutContext) -> Dict[str, Force]:
    placement = ctx.placement
    inset = 15

    def group_center(node: Node) -> Point:
        return placement.group_centers[placement.group_of[node.key]]

    def ring_radius(node: Node) -> float:
        ring = max(0.0, placement.group_radii[placement.group_of[node.key]] - inset)
        if node.x is None or node.y is None:
            return ring
        # Nodes placed inside their region keep their distance
        cx, cy = group_center(node)
        return min(math.hypot(node.x - cx, node.y - cy), ring)

    return {
        "charge": ManyBody(strength=-100),
        "link": Link(ctx.displayed.edges, distance=50),
        "center": Center(*ctx.center),
        "radial": Radial(
            radius=ring_radius,
            x=lambda n: group_center(n)[0],
            y=lambda n: group_center(n)[1],
            strength=1.5,
        ),
        "collide": Collide(
            radius=lambda n: 10 + _log_count(n.citation_count), iterations=3
        ),
    }


# --- bundled hierarchy ---


def bundled_hierarchy(ctx: LayoutContext, nodes: List[Node]) -> ClusterPlacement:
    radius = min(ctx.config.width, ctx.config.height) / 2 - 40
    layout = ClusterBundleLayout(
        key=lambda n: n.publish_year, radius=radius, center=ctx.center
    )
    return layout.place(nodes, ctx.displayed.edges)


PRESETS: Dict[str, ViewPreset] = {
    "citation": ViewPreset(
        name="citation",
        mode="force",
        schema=CITATION_SCHEMA,
        build=build_citation_graph,
        max_nodes=500,
        grouping="components",
        forces=PresetForces(alpha_decay=0.01, velocity_decay=0.7),
        make_forces=citation_forces,
    ),
    "collaboration": ViewPreset(
        name="collaboration",
        mode="force",
        schema=AFFILIATION_SCHEMA,
        build=build_collaboration_graph,
        max_nodes=800,
        grouping="institution",
        forces=PresetForces(alpha_decay=0.01, velocity_decay=0.7),
        make_forces=collaboration_forces,
        quotas={NodeKind.AUTHOR: 0.7, NodeKind.PAPER: 0.3},
    ),
    "community": ViewPreset(
        name="community",
        mode="force",
        schema=CITATION_SCHEMA,
        build=build_citation_graph,
        max_nodes=1000,
        grouping="components",
        forces=PresetForces(alpha_decay=0.02, velocity_decay=0.4),
        make_forces=community_forces,
    ),
    "year_clusters": ViewPreset(
        name="year_clusters",
        mode="hybrid",
        schema=CITATION_SCHEMA,
        build=build_citation_graph,
        max_nodes=500,
        grouping="year",
        forces=PresetForces(drag_alpha_target=0.3),
        make_forces=year_cluster_forces,
        make_placement=year_regions,
        scale_extent=(0.3, 3.0),
    ),
    "bundled_hierarchy": ViewPreset(
        name="bundled_hierarchy",
        mode="static",
        schema=None,
        build=graph_from_payload,
        max_nodes=2000,
        grouping="year",
        make_placement=bundled_hierarchy,
    ),
}


def get_preset(preset: Union[str, ViewPreset]) -> ViewPreset:
    if isinstance(preset, ViewPreset):
        return preset
    try:
        return PRESETS[preset]
    except KeyError:
        raise ValueError(f"Unknown view {preset!r}; choose from {sorted(PRESETS)}")


class NetworkView:
    """
    One network view over one record source.

    Args:
        preset: Preset name or ViewPreset.
        source (str): File path or URL of the record source.
        config (ViewConfig, optional): Host configuration; unset fields take
            the preset's values.

    Raises:
        ValueError: Unknown preset name.
    """

    def __init__(
        self,
        preset: Union[str, ViewPreset],
        source: str,
        config: Optional[ViewConfig] = None,
    ):
        self.preset = get_preset(preset)
        self.source = source
        self.config = config if config is not None else ViewConfig()
        self.force_config = self.preset.forces.merge(self.config.force)

        self.state = ViewState.IDLE
        self.error: Optional[str] = None

        self.graph: Optional[Graph] = None
        self.displayed: Optional[DisplayedGraph] = None
        self.groups: Dict[str, int] = {}
        self.placement: Optional[Placement] = None
        self.simulation: Optional[ForceSimulation] = None
        self.controller: Optional[InteractionController] = None

        self._subscribers: List[FrameListener] = []
        self._detach_tick: Optional[Callable[[], None]] = None

    # --- loading ---

    def _begin_loading(self) -> None:
        if self.state is not ViewState.IDLE:
            raise RuntimeError(f"Cannot load a view in state {self.state.value}")
        self.state = ViewState.LOADING
        logger.info(f"[{self.preset.name}] Loading {self.source}...")

    def _fail(self, error: Exception) -> ViewState:
        self.graph = None
        self.displayed = None
        self.groups = {}
        self.placement = None
        self.simulation = None
        self.state = ViewState.ERROR
        self.error = str(error)
        logger.error(f"[{self.preset.name}] {type(error).__name__}: {error}")
        return self.state

    def load(self) -> ViewState:
        """Ingests, builds, prunes, groups and prepares the layout."""
        self._begin_loading()
        try:
            data = self.preset.fetch(self.source)
        except CitenetError as e:
            return self._fail(e)
        return self._prepare(data)

    async def load_async(self) -> ViewState:
        """Like ``load`` with non-blocking ingestion; layout starts after it resolves."""
        self._begin_loading()
        try:
            data = await self.preset.fetch_async(self.source)
        except CitenetError as e:
            return self._fail(e)
        return self._prepare(data)

    def _prepare(self, data: Any) -> ViewState:
        if self.state is not ViewState.LOADING:
            # Torn down while ingestion was in flight
            return self.state
        try:
            graph = self.preset.build(data)
            if not graph.number_of_nodes():
                raise EmptySourceError(f"{self.source} produced an empty graph")
        except (CitenetError, ValueError) as e:
            return self._fail(e)

        budget = self.config.budget(self.preset.max_nodes)
        quotas = self.config.quotas if self.config.quotas is not None else self.preset.quotas
        displayed = prune(graph, budget, quotas=quotas)

        groups = detect_groups(displayed, self.config.grouping or self.preset.grouping)
        apply_groups(displayed, groups)

        self.graph = graph
        self.displayed = displayed
        self.groups = groups
        self._build_layout()

        self.state = ViewState.READY
        logger.info(f"[{self.preset.name}] Ready: {self.summary()}")
        return self.state

    def _build_layout(self) -> None:
        ctx = LayoutContext(
            self.displayed, self.groups, self.config, seed=self.force_config.seed
        )
        nodes = list(self.displayed.nodes.values())

        if self.preset.make_placement is not None:
            ctx.placement = self.preset.make_placement(ctx, nodes)
            self.placement = ctx.placement
            for node in nodes:
                position = ctx.placement.positions.get(node.key)
                if position is not None:
                    node.x, node.y = position

        if self.preset.mode == "static":
            return

        simulation = ForceSimulation(nodes, **self.force_config.simulation_kwargs())
        for name, force in self.preset.make_forces(ctx).items():
            simulation.add_force(name, force)
        self._detach_tick = simulation.on_tick(self._on_tick)
        self.simulation = simulation

    # --- lifecycle ---

    @property
    def active(self) -> bool:
        return self.state in (ViewState.READY, ViewState.INTERACTIVE)

    def interactive(self) -> InteractionController:
        """Attaches the interaction controller (READY -> INTERACTIVE)."""
        if self.state is ViewState.INTERACTIVE:
            return self.controller
        if self.state is not ViewState.READY:
            raise RuntimeError(f"View is {self.state.value}, not ready")

        scale_extent = self.config.scale_extent
        if scale_extent == SCALE_EXTENT:
            scale_extent = self.preset.scale_extent
        self.controller = InteractionController(
            self.displayed,
            simulation=self.simulation,
            drag_alpha_target=self.force_config.drag_alpha_target,
            enable_zoom=self.config.enable_zoom,
            scale_extent=scale_extent,
        )
        self.state = ViewState.INTERACTIVE
        return self.controller

    def teardown(self) -> None:
        """Stops the engine and drops every subscriber; later ticks do nothing."""
        if self.simulation is not None:
            self.simulation.stop()
        if self._detach_tick is not None:
            self._detach_tick()
            self._detach_tick = None
        if self.controller is not None:
            self.controller.close()
        self._subscribers.clear()
        if self.state is not ViewState.ERROR:
            self.state = ViewState.TORN_DOWN
        logger.debug(f"[{self.preset.name}] Torn down")

    # --- ticking ---

    def subscribe(self, listener: FrameListener) -> Callable[[], None]:
        """Registers a per-tick frame listener; returns a function that removes it."""
        self._subscribers.append(listener)

        def unsubscribe() -> None:
            if listener in self._subscribers:
                self._subscribers.remove(listener)

        return unsubscribe

    def _on_tick(self, simulation: ForceSimulation) -> None:
        if not self.active or not self._subscribers:
            return
        frame = self.frame()
        for listener in list(self._subscribers):
            listener(frame)

    def step(self) -> Optional[RenderFrame]:
        """Advances the layout one tick; ``None`` once the view is not live."""
        if not self.active:
            return None
        if self.simulation is not None:
            self.simulation.tick()
        return self.frame()

    def frames(self, max_ticks: Optional[int] = None) -> Iterator[RenderFrame]:
        """Pull-based driver: one frame per tick until the layout settles."""
        if not self.active:
            return
        if self.simulation is None:
            yield self.frame()
            return
        max_ticks = self.simulation.tick_budget(max_ticks)
        taken = 0
        while self.active and not self.simulation.stopped:
            if max_ticks is not None and taken >= max_ticks:
                break
            frame = self.step()
            if frame is None:
                break
            yield frame
            taken += 1

    def run(self, max_ticks: Optional[int] = None) -> Optional[RenderFrame]:
        """Drives the layout to rest and returns the last frame."""
        frame = None
        for frame in self.frames(max_ticks):
            pass
        if frame is None and self.active:
            frame = self.frame()
        return frame

    def positions(self) -> Dict[str, Point]:
        if self.simulation is not None:
            return self.simulation.positions()
        if self.placement is not None:
            return dict(self.placement.positions)
        return {}

    def frame(self) -> RenderFrame:
        """Snapshot of the current positions, highlight and zoom."""
        positions = self.positions()
        segments: List[Tuple[Edge, Point, Point]] = []
        skipped = 0
        for edge in self.displayed.edges if self.displayed is not None else []:
            source = positions.get(edge.source)
            target = positions.get(edge.target)
            if source is None or target is None:
                skipped += 1
                continue
            segments.append((edge, source, target))

        curves: List[Tuple[Edge, np.ndarray]] = []
        regions: Dict[Hashable, Tuple[Point, float]] = {}
        if isinstance(self.placement, ClusterPlacement):
            curves = self.placement.curves
        elif isinstance(self.placement, RadialPlacement):
            regions = {
                g: (c, self.placement.group_radii[g])
                for g, c in self.placement.group_centers.items()
            }

        controller = self.controller
        return RenderFrame(
            nodes=positions,
            edges=segments,
            groups=dict(self.groups),
            highlight=controller.highlight if controller is not None else NO_HIGHLIGHT,
            alpha=self.simulation.alpha if self.simulation is not None else 0.0,
            tick=self.simulation.ticks if self.simulation is not None else 0,
            skipped_edges=skipped,
            transform=controller.transform if controller is not None else ZoomTransform(),
            curves=curves,
            regions=regions,
        )

    def summary(self) -> Dict[str, int]:
        if self.graph is None:
            return {}
        return graph_summary(self.graph, self.displayed)
