import pytest

from citenet.models import EdgeKind, NodeKind
from citenet.networks import (
    build_citation_graph,
    build_collaboration_graph,
    collaboration_pairs,
    graph_from_payload,
)
from citenet.records import AffiliationRecord, CitationRecord


@pytest.fixture
def citation_records():
    return [
        CitationRecord("P1", "P2", 2020, 2018, 2),
        CitationRecord("P3", "P2", 2021, 2018, 3),
        CitationRecord("P3", "P1", 2021, 2020, 1),
    ]


@pytest.fixture
def affiliation_records():
    """Paper W1 by A, B, C; paper W2 by A, B."""
    return [
        AffiliationRecord("W1", "first", "A", "I1"),
        AffiliationRecord("W1", "middle", "B", "I2"),
        AffiliationRecord("W1", "last", "C", "I1"),
        AffiliationRecord("W2", "first", "A", "I3"),
        AffiliationRecord("W2", "last", "B", "I2"),
    ]


def test_single_citation():
    """P1 cites P2: two papers, one edge, P2 cited once."""
    graph = build_citation_graph([CitationRecord("P1", "P2", 2020, 2018, 2)])

    assert list(graph.nodes) == ["P1", "P2"]
    p1, p2 = graph.get("P1"), graph.get("P2")
    assert p1.citation_count == 0
    assert p2.citation_count == 1
    assert p1.publish_year == 2020
    assert p2.publish_year == 2018
    assert p2.impact_score == 1.0
    assert p1.impact_score == 0.2
    assert p2.name == "Paper_P2"

    assert graph.number_of_edges() == 1
    edge = graph.edges[0]
    assert (edge.source, edge.target, edge.kind) == ("P1", "P2", EdgeKind.CITATION)
    assert edge.year_diff == 2


def test_citation_counts_and_years(citation_records):
    graph = build_citation_graph(citation_records)

    assert graph.get("P2").citation_count == 2
    assert graph.get("P1").citation_count == 1
    # P1 cites in its first record, so its year comes from the citing side
    assert graph.get("P1").publish_year == 2020
    assert graph.number_of_edges() == 3


def test_self_citation_excluded():
    graph = build_citation_graph(
        [CitationRecord("P1", "P1", 2020, 2020, 0), CitationRecord("P1", "P2", 2020, 2019, 1)]
    )

    assert graph.get("P1").citation_count == 0
    assert [(e.source, e.target) for e in graph.edges] == [("P1", "P2")]


def test_no_dangling_edges(citation_records, affiliation_records):
    for graph in (
        build_citation_graph(citation_records),
        build_collaboration_graph(affiliation_records),
    ):
        for edge in graph.edges:
            assert edge.source in graph.nodes
            assert edge.target in graph.nodes
            assert edge.source != edge.target


def test_collaboration_scenario(affiliation_records):
    """A/B/C on W1 plus A/B on W2: A-B twice, A-C and B-C once."""
    graph = build_collaboration_graph(affiliation_records)

    authors = [n for n in graph if n.kind is NodeKind.AUTHOR]
    papers = [n for n in graph if n.kind is NodeKind.PAPER]
    assert [n.key for n in authors] == ["author_A", "author_B", "author_C"]
    assert [n.key for n in papers] == ["paper_W1", "paper_W2"]
    assert graph.get("author_A").paper_count == 2
    assert graph.get("author_C").paper_count == 1
    assert graph.get("paper_W1").author_count == 3
    # First record wins for the institution
    assert graph.get("author_A").institutionid == "I1"

    authorship = [e for e in graph.edges if e.kind is EdgeKind.AUTHORSHIP]
    assert len(authorship) == 5

    collab = {
        (e.source, e.target): e for e in graph.edges if e.kind is EdgeKind.COLLABORATION
    }
    assert set(collab) == {
        ("author_A", "author_B"),
        ("author_A", "author_C"),
        ("author_B", "author_C"),
    }
    assert collab[("author_A", "author_B")].collaboration_count == 2
    assert collab[("author_A", "author_B")].paper_ids == ["W1", "W2"]
    assert collab[("author_A", "author_C")].collaboration_count == 1


def test_repeated_rows_are_idempotent(affiliation_records):
    once = build_collaboration_graph(affiliation_records)
    twice = build_collaboration_graph(affiliation_records + affiliation_records)

    assert list(once.nodes) == list(twice.nodes)
    assert once.number_of_edges() == twice.number_of_edges()
    assert twice.get("author_A").paper_count == 2


def test_collaboration_pairs_are_canonical():
    pairs = collaboration_pairs({"W1": ["B", "A"], "W2": ["A", "B"]})

    assert list(pairs) == [("A", "B")]
    assert pairs[("A", "B")].collaboration_count == 2


def test_graph_from_payload():
    payload = {
        "nodes": [
            {"id": "p1", "name": "First", "citation_count": 4, "publish_year": 2019, "venue": "X"},
            {"id": "p2"},
            {"id": "p1", "name": "Duplicate"},
            {"name": "no id"},
            {"id": "a1", "type": "author", "paper_count": 3},
        ],
        "links": [
            {"source": "p1", "target": "p2", "value": 2},
            {"source": "p1", "target": "missing"},
            {"source": "p2", "target": "p2"},
            {"source": {"id": "a1"}, "target": "p1", "type": "author-paper"},
        ],
    }
    graph = graph_from_payload(payload)

    assert list(graph.nodes) == ["p1", "p2", "a1"]
    assert graph.get("p1").name == "First"
    assert graph.get("p1").extra == {"venue": "X"}
    assert graph.get("p1").publish_year == 2019
    assert graph.get("a1").kind is NodeKind.AUTHOR
    assert [(e.source, e.target, e.kind) for e in graph.edges] == [
        ("p1", "p2", EdgeKind.CITATION),
        ("a1", "p1", EdgeKind.AUTHORSHIP),
    ]
    assert graph.edges[0].value == 2


def test_graph_from_payload_coerces_counters():
    """Numeric strings become numbers; non-numeric values and stray entries are skipped."""
    payload = {
        "nodes": [
            {"id": "a", "citation_count": "3", "impact_score": "2.6"},
            {"id": "b", "citation_count": "many", "paper_count": None},
            "not-a-node",
            ["c"],
        ],
        "links": [
            {"source": "a", "target": "b", "value": "4", "collaboration_count": "2"},
            "a->b",
        ],
    }
    graph = graph_from_payload(payload)

    assert list(graph.nodes) == ["a", "b"]
    assert graph.get("a").citation_count == 3
    assert graph.get("a").impact_score == 2.6
    assert graph.get("b").citation_count == 0
    assert graph.get("a").importance > graph.get("b").importance
    assert graph.number_of_edges() == 1
    assert graph.edges[0].value == 4.0
    assert graph.edges[0].collaboration_count == 2


def test_graph_from_payload_unknown_kind():
    with pytest.raises(ValueError):
        graph_from_payload({"nodes": [{"id": "x", "kind": "venue"}]})


def test_to_networkx(citation_records):
    G = build_citation_graph(citation_records).to_networkx()

    assert G.number_of_nodes() == 3
    assert G.number_of_edges() == 3
    assert G.nodes["P2"]["importance"] == 2
