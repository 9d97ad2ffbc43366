import logging
import math
from typing import Dict, List, Mapping, Optional

from citenet.models import DisplayedGraph, Graph, Node, NodeKind

logger = logging.getLogger(__name__)


def rank_nodes(nodes: List[Node]) -> List[Node]:
    """Sorts by importance, descending. ``sorted`` is stable, so ties keep insertion order."""
    return sorted(nodes, key=lambda n: n.importance, reverse=True)


def quota_budgets(max_nodes: int, quotas: Mapping[NodeKind, float]) -> Dict[NodeKind, int]:
    """
    Splits a node budget across kinds.

    Every kind gets ``floor(max_nodes * fraction)`` except the last one,
    which takes the remainder, so 70/30 of 10 is 7 + 3.
    """
    kinds = list(quotas)
    budgets: Dict[NodeKind, int] = {}
    used = 0
    for kind in kinds[:-1]:
        budgets[kind] = int(math.floor(max_nodes * quotas[kind]))
        used += budgets[kind]
    if kinds:
        budgets[kinds[-1]] = max(0, max_nodes - used)
    return budgets


def prune(
    graph: Graph,
    max_nodes: int,
    quotas: Optional[Mapping[NodeKind, float]] = None,
    min_importance: Optional[float] = None,
) -> DisplayedGraph:
    """
    Selects the displayed subgraph under a node budget.

    Nodes are ranked by importance and cut at ``max_nodes``; with ``quotas``
    each kind is ranked and cut independently against its own share of the
    budget. Edges survive only if both endpoints are selected, which may
    leave isolated nodes.

    Args:
        graph (Graph): Full graph.
        max_nodes (int): Node budget (>= 1).
        quotas (Mapping[NodeKind, float], optional): Budget fraction per kind.
        min_importance (float, optional): Drop nodes below this metric first.

    Returns:
        DisplayedGraph: Pruned nodes and filtered edges. Never empty when the
        full graph has nodes: if the metric filter removes everything, the
        single most important node is kept.
    """
    if max_nodes < 1:
        raise ValueError(f"max_nodes must be positive, got {max_nodes}")

    candidates = list(graph.nodes.values())
    if min_importance is not None:
        candidates = [n for n in candidates if n.importance >= min_importance]

    if quotas:
        budgets = quota_budgets(max_nodes, quotas)
        selected: List[Node] = []
        for kind, budget in budgets.items():
            of_kind = [n for n in candidates if n.kind is kind]
            selected.extend(rank_nodes(of_kind)[:budget])
    else:
        selected = rank_nodes(candidates)[:max_nodes]

    if not selected and graph.nodes:
        selected = rank_nodes(list(graph.nodes.values()))[:1]
        logger.warning(
            f"No node passed the importance filter; keeping {selected[0].key}"
        )

    keys = {n.key for n in selected}
    edges = [e for e in graph.edges if e.source in keys and e.target in keys]

    displayed = DisplayedGraph(graph, selected, edges)
    logger.info(
        f"Displayed: {displayed.number_of_nodes()}/{graph.number_of_nodes()} nodes, "
        f"{displayed.number_of_edges()}/{graph.number_of_edges()} edges"
    )
    return displayed
