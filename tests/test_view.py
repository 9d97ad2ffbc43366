import asyncio
import json

import pytest

from citenet.config import ForceConfig, ViewConfig, clamp_max_nodes
from citenet.models import NodeKind
from citenet.view import PRESETS, NetworkView, ViewState


def _year(i):
    return 2015 + i // 3


@pytest.fixture
def citation_source(tmp_path):
    """Chain P0 <- P1 <- ... <- P11 with two shortcuts, plus a separate Q1 -> Q0."""
    rows = ["citing_paperid,cited_paperid,year,ref_year,year_diff"]
    for i in range(1, 12):
        rows.append(f"P{i},P{i - 1},{_year(i)},{_year(i - 1)},{_year(i) - _year(i - 1)}")
    rows.append(f"P5,P1,{_year(5)},{_year(1)},{_year(5) - _year(1)}")
    rows.append(f"P9,P2,{_year(9)},{_year(2)},{_year(9) - _year(2)}")
    rows.append("Q1,Q0,2022,2021,1")
    path = tmp_path / "citations.csv"
    path.write_text("\n".join(rows) + "\n", encoding="utf-8")
    return str(path)


@pytest.fixture
def affiliation_source(tmp_path):
    """12 authors over 6 papers, three authors per paper."""
    rows = ["paperid,author_position,authorid,institutionid"]
    for p in range(6):
        for slot, position in enumerate(("first", "middle", "last")):
            author = (p * 2 + slot) % 12
            rows.append(f"W{p},{position},A{author},I{author % 4}")
    path = tmp_path / "affiliations.csv"
    path.write_text("\n".join(rows) + "\n", encoding="utf-8")
    return str(path)


@pytest.fixture
def graph_source(tmp_path):
    payload = {
        "nodes": [
            {"id": f"n{i}", "citation_count": i, "publish_year": 2018 + i % 3}
            for i in range(9)
        ],
        "links": [{"source": f"n{i}", "target": f"n{(i + 4) % 9}"} for i in range(9)],
    }
    path = tmp_path / "graph.json"
    path.write_text(json.dumps(payload), encoding="utf-8")
    return str(path)


@pytest.fixture
def seeded():
    return ViewConfig(force=ForceConfig(seed=0))


def test_presets_registered():
    assert set(PRESETS) == {
        "citation",
        "collaboration",
        "community",
        "year_clusters",
        "bundled_hierarchy",
    }


def test_unknown_preset():
    with pytest.raises(ValueError):
        NetworkView("sankey", "whatever.csv")


def test_citation_view_lifecycle(citation_source, seeded):
    view = NetworkView("citation", citation_source, seeded)
    assert view.state is ViewState.IDLE

    assert view.load() is ViewState.READY
    assert view.displayed.number_of_nodes() == 14
    assert view.displayed.number_of_edges() == 14
    assert len(set(view.groups.values())) == 2
    assert view.simulation.alpha_decay == 0.01
    assert view.simulation.velocity_decay == 0.7

    controller = view.interactive()
    assert view.state is ViewState.INTERACTIVE
    assert view.interactive() is controller

    frame = view.step()
    assert frame.tick == 1
    assert len(frame.nodes) == 14
    assert len(frame.edges) == 14
    assert frame.skipped_edges == 0

    view.teardown()
    assert view.state is ViewState.TORN_DOWN
    assert view.step() is None
    assert view.simulation.stopped


def test_load_twice_is_rejected(citation_source, seeded):
    view = NetworkView("citation", citation_source, seeded)
    view.load()
    with pytest.raises(RuntimeError):
        view.load()


def test_run_settles(citation_source, seeded):
    view = NetworkView("citation", citation_source, seeded)
    view.load()
    frame = view.run()

    assert view.simulation.stopped
    assert frame.alpha < 0.001
    assert list(view.frames()) == []


def test_frames_respects_max_ticks(citation_source, seeded):
    view = NetworkView("community", citation_source, seeded)
    view.load()
    frames = list(view.frames(max_ticks=5))

    assert [f.tick for f in frames] == [1, 2, 3, 4, 5]


def test_subscribers_and_teardown(citation_source, seeded):
    view = NetworkView("citation", citation_source, seeded)
    view.load()
    seen = []
    view.subscribe(lambda frame: seen.append(frame.tick))

    view.step()
    view.step()
    view.teardown()
    # A late tick from the host's scheduler must not reach anyone
    view.simulation.tick()

    assert seen == [1, 2]


def test_drag_through_view(citation_source, seeded):
    view = NetworkView("citation", citation_source, seeded)
    view.load()
    view.run()
    controller = view.interactive()

    controller.drag_start("P3")
    controller.drag("P3", 0.0, 0.0)
    frame = view.step()

    assert frame is not None
    assert frame.nodes["P3"] == (0.0, 0.0)
    assert not view.simulation.stopped

    # Still dragging: an unbounded run returns after a finite number of ticks
    last = view.run()
    assert last.tick > frame.tick
    assert controller.dragging


@pytest.mark.parametrize(
    "content",
    [
        "",
        "citing_paperid,cited_paperid,year,ref_year,year_diff\nP1,P2,1990,1990,0\n",
        "paperid,year\nW1,2020\n",
    ],
)
def test_bad_source_enters_error(tmp_path, content):
    path = tmp_path / "bad.csv"
    path.write_text(content, encoding="utf-8")
    view = NetworkView("citation", str(path))

    assert view.load() is ViewState.ERROR
    assert view.error
    assert view.graph is None
    assert view.displayed is None
    assert view.step() is None
    assert list(view.frames()) == []
    with pytest.raises(RuntimeError):
        view.interactive()


def test_missing_source_enters_error(tmp_path):
    view = NetworkView("citation", str(tmp_path / "missing.csv"))
    assert view.load() is ViewState.ERROR
    view.teardown()
    assert view.state is ViewState.ERROR


def test_load_async(citation_source, seeded):
    view = NetworkView("citation", citation_source, seeded)
    assert asyncio.run(view.load_async()) is ViewState.READY
    assert view.step().tick == 1


def test_collaboration_quotas(affiliation_source, seeded):
    seeded.max_nodes = 10
    view = NetworkView("collaboration", affiliation_source, seeded)
    view.load()

    kinds = [n.kind for n in view.displayed]
    assert kinds.count(NodeKind.AUTHOR) == 7
    assert kinds.count(NodeKind.PAPER) == 3
    # Institution grouping for colouring
    authors = [n for n in view.displayed if n.kind is NodeKind.AUTHOR]
    by_institution = {}
    for node in authors:
        by_institution.setdefault(node.institutionid, set()).add(node.group)
    assert all(len(groups) == 1 for groups in by_institution.values())


def test_max_nodes_clamped(citation_source):
    assert clamp_max_nodes(5) == 10
    assert clamp_max_nodes(5000) == 1000
    assert clamp_max_nodes(300) == 300

    view = NetworkView("citation", citation_source, ViewConfig(max_nodes=3))
    view.load()
    assert view.displayed.number_of_nodes() == 10


def test_summary_counts_full_graph(citation_source, seeded):
    seeded.max_nodes = 10
    view = NetworkView("citation", citation_source, seeded)
    view.load()
    summary = view.summary()

    assert summary["nodes"] == 14
    assert summary["displayed_nodes"] == 10
    assert summary["total_citations"] == 14


def test_year_clusters_view(citation_source, seeded):
    view = NetworkView("year_clusters", citation_source, seeded)
    view.load()
    controller = view.interactive()

    assert controller.drag_alpha_target == 0.3
    assert controller.transform.scale_extent == (0.3, 3.0)

    assert list(view.simulation.forces) == ["charge", "link", "center", "radial", "collide"]
    radial = view.simulation.forces["radial"]
    placement = view.placement
    for node, radius in zip(view.simulation.state.nodes, radial.radii):
        ring = placement.group_radii[placement.group_of[node.key]] - 15
        assert radius <= ring + 1e-9
    frame = view.step()
    assert set(frame.regions) == {2015, 2016, 2017, 2018, 2021, 2022}
    assert set(frame.groups.values()) == set(range(6))


def test_bundled_hierarchy_view(graph_source):
    view = NetworkView("bundled_hierarchy", graph_source)
    assert view.load() is ViewState.READY
    assert view.simulation is None

    frames = list(view.frames())
    assert len(frames) == 1
    frame = frames[0]
    assert frame.tick == 0
    assert len(frame.nodes) == 9
    assert len(frame.curves) == 9

    controller = view.interactive()
    assert not controller.drag_start("n1")
    assert controller.hover_enter("n1").nodes == {"n1", "n5", "n6"}


def test_bundled_hierarchy_server_error(tmp_path):
    path = tmp_path / "graph.json"
    path.write_text(json.dumps({"error": "query failed"}), encoding="utf-8")
    view = NetworkView("bundled_hierarchy", str(path))

    assert view.load() is ViewState.ERROR
    assert view.error == "query failed"


def test_bundled_hierarchy_string_counts(tmp_path):
    payload = {
        "nodes": [
            {"id": "a", "publish_year": 2020, "citation_count": "3"},
            {"id": "b", "publish_year": 2021, "citation_count": 1},
            "stray",
        ],
        "links": [{"source": "a", "target": "b"}],
    }
    path = tmp_path / "graph.json"
    path.write_text(json.dumps(payload), encoding="utf-8")
    view = NetworkView("bundled_hierarchy", str(path))

    assert view.load() is ViewState.READY
    assert [n.key for n in view.displayed] == ["a", "b"]
