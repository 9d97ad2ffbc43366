import pytest

from citenet.aggregates import graph_summary, patent_distribution, publication_timeline
from citenet.networks import build_collaboration_graph
from citenet.pruning import prune
from citenet.records import AffiliationRecord, PublicationRecord


@pytest.fixture
def publications():
    return [
        PublicationRecord("W1", 2016, 3),
        PublicationRecord("W2", 2016, 0),
        PublicationRecord("W3", 2019, 5),
        PublicationRecord("W4", 2025, 9),
        PublicationRecord("W5", 2019, 0),
    ]


def test_publication_timeline(publications):
    df = publication_timeline(publications)

    assert list(df.columns) == ["year", "paper_count", "total_patent_count"]
    assert df["year"].tolist() == list(range(2015, 2025))
    row_2016 = df[df["year"] == 2016].iloc[0]
    assert row_2016["paper_count"] == 2
    assert row_2016["total_patent_count"] == 3
    assert df[df["year"] == 2015]["paper_count"].iloc[0] == 0
    # 2025 lies outside the default window
    assert df["paper_count"].sum() == 4


def test_patent_distribution(publications):
    df = patent_distribution(publications)

    assert list(df.columns) == ["patent_count", "paper_count"]
    assert df["patent_count"].tolist() == [0, 3, 5, 9]
    assert df["paper_count"].tolist() == [2, 1, 1, 1]


def test_graph_summary_uses_full_graph():
    records = [
        AffiliationRecord("W1", "first", "A", "I1"),
        AffiliationRecord("W1", "last", "B", "I1"),
        AffiliationRecord("W2", "first", "A", "I1"),
        AffiliationRecord("W2", "last", "B", "I1"),
        AffiliationRecord("W3", "first", "C", "I2"),
        AffiliationRecord("W3", "last", "D", "I2"),
    ]
    graph = build_collaboration_graph(records)
    displayed = prune(graph, 2)
    summary = graph_summary(graph, displayed)

    assert summary["nodes"] == 7
    assert summary["displayed_nodes"] == 2
    assert summary["total_collaborations"] == 3
