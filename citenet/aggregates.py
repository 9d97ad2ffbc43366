import logging
from typing import Dict, Optional, Sequence

import pandas as pd

from citenet.constants import TIMELINE_RANGE
from citenet.models import DisplayedGraph, EdgeKind, Graph
from citenet.records import PublicationRecord

logger = logging.getLogger(__name__)


def _publications_frame(records: Sequence[PublicationRecord]) -> pd.DataFrame:
    return pd.DataFrame(
        [(r.paperid, r.year, r.patent_count) for r in records],
        columns=["paperid", "year", "patent_count"],
    )


def publication_timeline(
    records: Sequence[PublicationRecord],
    start: int = TIMELINE_RANGE[0],
    end: int = TIMELINE_RANGE[1],
) -> pd.DataFrame:
    """
    Papers and patent citations per publication year.

    Every year in ``[start, end]`` gets a row, zero-filled where no paper was
    published; years outside the window are ignored.

    Returns:
        pd.DataFrame: Columns ``year``, ``paper_count``, ``total_patent_count``.
    """
    df = _publications_frame(records)
    df = df[(df["year"] >= start) & (df["year"] <= end)]

    grouped = df.groupby("year").agg(
        paper_count=("paperid", "size"), total_patent_count=("patent_count", "sum")
    )
    timeline = (
        grouped.reindex(range(start, end + 1), fill_value=0)
        .rename_axis("year")
        .reset_index()
        .astype(int)
    )
    logger.info(
        f"Timeline {start}-{end}: {int(timeline['paper_count'].sum())} papers, "
        f"{int(timeline['total_patent_count'].sum())} patent citations"
    )
    return timeline


def patent_distribution(records: Sequence[PublicationRecord]) -> pd.DataFrame:
    """
    Histogram of papers by number of citing patents.

    Returns:
        pd.DataFrame: Columns ``patent_count``, ``paper_count``, sorted by
        ``patent_count``.
    """
    df = _publications_frame(records)
    counts = (
        df.groupby("patent_count")
        .size()
        .rename("paper_count")
        .reset_index()
        .sort_values("patent_count")
        .reset_index(drop=True)
    )
    return counts.astype(int)


def graph_summary(
    graph: Graph, displayed: Optional[DisplayedGraph] = None
) -> Dict[str, int]:
    """
    Totals for a view header.

    Citation and collaboration totals are always computed over the full
    graph, never only the displayed subset.
    """
    summary = {
        "nodes": graph.number_of_nodes(),
        "edges": graph.number_of_edges(),
        "displayed_nodes": (
            displayed.number_of_nodes() if displayed is not None else graph.number_of_nodes()
        ),
        "displayed_edges": (
            displayed.number_of_edges() if displayed is not None else graph.number_of_edges()
        ),
        "total_citations": sum(n.citation_count for n in graph),
        "total_collaborations": sum(
            e.collaboration_count for e in graph.edges if e.kind is EdgeKind.COLLABORATION
        ),
    }
    return summary
