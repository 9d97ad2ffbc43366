import networkx as nx
import pytest

from citenet.communities import (
    AttributeGrouping,
    ConnectedComponents,
    LouvainGrouping,
    apply_groups,
    detect_groups,
)
from citenet.models import Edge, EdgeKind, Graph, Node, NodeKind


def graph_from_nx(G: nx.Graph) -> Graph:
    nodes = [Node(key=str(n), kind=NodeKind.PAPER, name=str(n)) for n in G.nodes()]
    edges = [Edge(str(u), str(v), EdgeKind.CITATION) for u, v in G.edges()]
    return Graph(nodes, edges)


@pytest.mark.parametrize("seed", [0, 1, 2, 3, 4])
def test_components_match_networkx(seed):
    """Groups partition the nodes exactly like networkx connected components."""
    G = nx.gnm_random_graph(60, 45, seed=seed)
    groups = ConnectedComponents().assign(graph_from_nx(G))

    expected = {frozenset(str(n) for n in c) for c in nx.connected_components(G)}
    by_group = {}
    for key, group in groups.items():
        by_group.setdefault(group, set()).add(key)
    assert {frozenset(members) for members in by_group.values()} == expected
    assert sorted(by_group) == list(range(len(expected)))


def test_components_first_node_is_group_zero():
    graph = graph_from_nx(nx.Graph([(3, 4), (1, 2)]))
    groups = detect_groups(graph)

    assert groups == {"3": 0, "4": 0, "1": 1, "2": 1}


def test_isolated_nodes_are_singletons():
    G = nx.Graph()
    G.add_nodes_from([1, 2, 3])
    groups = detect_groups(graph_from_nx(G), "components")
    assert sorted(groups.values()) == [0, 1, 2]


def test_year_grouping():
    nodes = [
        Node("a", NodeKind.PAPER, "a", publish_year=2021),
        Node("b", NodeKind.PAPER, "b", publish_year=2018),
        Node("c", NodeKind.PAPER, "c"),
        Node("d", NodeKind.PAPER, "d", publish_year=2021),
    ]
    groups = AttributeGrouping().assign(Graph(nodes))
    assert groups == {"a": 1, "b": 0, "c": 2, "d": 1}


def test_louvain_finds_two_cliques():
    G = nx.disjoint_union(nx.complete_graph(5), nx.complete_graph(5))
    G.add_edge(0, 5)
    groups = LouvainGrouping(random_state=42).assign(graph_from_nx(G))

    assert groups["0"] == 0
    assert len({groups[str(i)] for i in range(5)}) == 1
    assert len({groups[str(i)] for i in range(5, 10)}) == 1
    assert groups["0"] != groups["5"]


def test_unknown_policy():
    with pytest.raises(ValueError):
        detect_groups(Graph(), "spectral")


def test_apply_groups():
    graph = graph_from_nx(nx.path_graph(3))
    apply_groups(graph, detect_groups(graph))
    assert {n.group for n in graph} == {0}
