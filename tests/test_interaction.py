import pytest

from citenet.interaction import NO_HIGHLIGHT, InteractionController, ZoomTransform
from citenet.layout.forces import Link, ManyBody
from citenet.layout.simulation import ForceSimulation
from citenet.models import Edge, EdgeKind, Graph, Node, NodeKind


@pytest.fixture
def star():
    """Hub h linked to a, b, c; d is isolated."""
    nodes = [Node(key=k, kind=NodeKind.PAPER, name=k) for k in "habcd"]
    edges = [Edge("h", k, EdgeKind.CITATION) for k in "abc"]
    graph = Graph(nodes, edges)
    sim = ForceSimulation(list(graph.nodes.values()), seed=0)
    sim.add_force("charge", ManyBody())
    sim.add_force("link", Link(graph.edges))
    return graph, sim


@pytest.fixture
def controller(star):
    graph, sim = star
    return InteractionController(graph, sim)


# --- Drag ---


def test_drag_pins_and_reheats(controller, star):
    _, sim = star
    sim.run()
    assert sim.stopped

    assert controller.drag_start("a")
    assert sim.alpha_target == 0.5
    assert not sim.stopped

    assert controller.drag("a", 40.0, 60.0)
    sim.run(max_ticks=10)
    assert sim.position("a") == (40.0, 60.0)

    assert controller.drag_end("a")
    assert sim.alpha_target == 0.0
    assert sim.nodes[1].fx is None


def test_drag_unknown_node_is_ignored(controller, star):
    _, sim = star
    assert not controller.drag_start("ghost")
    assert not controller.drag("ghost", 1.0, 1.0)
    assert not controller.drag_end("ghost")
    assert sim.alpha_target == 0.0


def test_drag_without_start_is_ignored(controller, star):
    _, sim = star
    assert not controller.drag("a", 1.0, 1.0)
    assert sim.nodes[1].fx is None


def test_drag_screen_inverts_zoom(controller, star):
    _, sim = star
    controller.zoom(2.0, (0.0, 0.0))
    controller.pan(10.0, 20.0)
    controller.drag_start("b")
    controller.drag_screen("b", 110.0, 220.0)
    assert sim.position("b") == (50.0, 100.0)


def test_cooling_waits_for_last_drag(controller, star):
    _, sim = star
    controller.drag_start("a")
    controller.drag_start("b")
    controller.drag_end("a")
    assert sim.alpha_target == 0.5
    controller.drag_end("b")
    assert sim.alpha_target == 0.0


def test_static_layout_ignores_drag(star):
    graph, _ = star
    controller = InteractionController(graph, simulation=None)
    assert not controller.drag_start("a")


# --- Hover ---


def test_hover_node_highlights_neighbourhood(controller):
    state = controller.hover_enter("h")

    assert state.focus == "h"
    assert state.nodes == {"h", "a", "b", "c"}
    assert state.edges == {0, 1, 2}


def test_hover_isolated_node(controller):
    state = controller.hover_enter("d")
    assert state.nodes == {"d"}
    assert state.edges == frozenset()


def test_hover_edge(controller):
    state = controller.hover_edge_enter(1)
    assert state.focus == 1
    assert state.nodes == {"h", "b"}
    assert state.edges == {1}


def test_hover_stack(controller):
    """Leaving a node while its edge is still hovered keeps the edge highlight."""
    controller.hover_edge_enter(0)
    controller.hover_enter("a")
    assert controller.highlight.focus == "a"

    state = controller.hover_leave("a")
    assert state.focus == 0

    assert controller.hover_leave() == NO_HIGHLIGHT
    assert not controller.highlight.active


def test_hover_subscribers(controller):
    seen = []
    unsubscribe = controller.subscribe(seen.append)
    controller.hover_enter("a")
    controller.hover_leave("a")
    unsubscribe()
    controller.hover_enter("b")

    assert [s.focus for s in seen] == ["a", None]


def test_hover_unknown_is_ignored(controller):
    assert controller.hover_enter("ghost") == NO_HIGHLIGHT
    assert controller.hover_edge_enter(99) == NO_HIGHLIGHT


# --- Zoom ---


def test_zoom_transform_round_trip():
    t = ZoomTransform(k=2.0, x=5.0, y=-3.0)
    assert t.apply((1.0, 1.0)) == (7.0, -1.0)
    assert t.invert(t.apply((12.5, -4.0))) == pytest.approx((12.5, -4.0))


def test_zoom_at_keeps_pivot_fixed():
    t = ZoomTransform().translate_by(30.0, 40.0)
    pivot = (200.0, 100.0)
    before = t.invert(pivot)
    zoomed = t.zoom_at(1.5, pivot)

    assert zoomed.k == 1.5
    assert zoomed.invert(pivot) == pytest.approx(before)


def test_zoom_clamped_to_extent():
    t = ZoomTransform(scale_extent=(0.1, 3.0))
    assert t.scale_by(100.0).k == 3.0
    assert t.scale_by(0.0001).k == 0.1


def test_zoom_disabled(star):
    graph, sim = star
    controller = InteractionController(graph, sim, enable_zoom=False)
    controller.zoom(2.0)
    controller.pan(5.0, 5.0)
    assert controller.transform == ZoomTransform()


def test_close_ignores_later_input(controller):
    controller.hover_enter("a")
    controller.close()
    assert controller.highlight == NO_HIGHLIGHT
    assert not controller.drag_start("a")
    assert controller.hover_enter("b") == NO_HIGHLIGHT
