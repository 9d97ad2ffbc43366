import logging
from collections import Counter, deque
from typing import Callable, Dict, List, Optional, Protocol, Union

import networkx as nx
from community import community_louvain

from citenet.models import Graph

logger = logging.getLogger(__name__)


class GroupingPolicy(Protocol):
    """Assigns every displayed node exactly one integer group id."""

    def assign(self, graph: Graph) -> Dict[str, int]:
        ...


def _adjacency(graph: Graph) -> Dict[str, List[str]]:
    adjacency: Dict[str, List[str]] = {key: [] for key in graph.nodes}
    for edge in graph.edges:
        if edge.source in adjacency and edge.target in adjacency:
            adjacency[edge.source].append(edge.target)
            adjacency[edge.target].append(edge.source)
    return adjacency


class ConnectedComponents:
    """
    Breadth-first component labelling over the undirected edge adjacency.

    Seeds are taken in node order, so the first node always gets group 0.
    Nodes without edges form singleton groups. O(V + E).
    """

    name = "components"

    def assign(self, graph: Graph) -> Dict[str, int]:
        adjacency = _adjacency(graph)
        groups: Dict[str, int] = {}
        group_id = 0

        for seed in graph.nodes:
            if seed in groups:
                continue
            groups[seed] = group_id
            queue = deque([seed])
            while queue:
                current = queue.popleft()
                for neighbor in adjacency[current]:
                    if neighbor not in groups:
                        groups[neighbor] = group_id
                        queue.append(neighbor)
            group_id += 1

        return groups


class AttributeGrouping:
    """
    Direct mapping from a node attribute (publication year by default).

    Distinct values are sorted ascending and numbered from 0; nodes missing
    the attribute share one trailing group.
    """

    def __init__(self, attribute: str = "publish_year"):
        self.attribute = attribute
        self.name = "year" if attribute == "publish_year" else attribute

    def value_of(self, node) -> object:
        value = getattr(node, self.attribute, None)
        if value is None:
            value = node.extra.get(self.attribute)
        return value

    def assign(self, graph: Graph) -> Dict[str, int]:
        values = {key: self.value_of(node) for key, node in graph.nodes.items()}
        present = sorted({v for v in values.values() if v is not None}, key=str)
        if all(isinstance(v, (int, float)) for v in present):
            present = sorted(present)
        index = {value: i for i, value in enumerate(present)}
        missing = len(present)
        return {
            key: index[value] if value is not None else missing
            for key, value in values.items()
        }


class LouvainGrouping:
    """Modularity communities (python-louvain) over the undirected projection."""

    name = "louvain"

    def __init__(self, random_state: Optional[int] = 0):
        self.random_state = random_state

    def assign(self, graph: Graph) -> Dict[str, int]:
        G = nx.Graph()
        G.add_nodes_from(graph.nodes)
        for edge in graph.edges:
            if G.has_edge(edge.source, edge.target):
                G[edge.source][edge.target]["weight"] += edge.weight
            else:
                G.add_edge(edge.source, edge.target, weight=edge.weight)

        if G.number_of_edges() == 0:
            return {key: i for i, key in enumerate(graph.nodes)}

        partition = community_louvain.best_partition(
            G, weight="weight", random_state=self.random_state
        )
        q = community_louvain.modularity(partition, G)
        logger.info(f"Louvain modularity (Q): {q:.4f}")

        # Renumber by first appearance in node order
        renumber: Dict[int, int] = {}
        groups: Dict[str, int] = {}
        for key in graph.nodes:
            raw = partition[key]
            if raw not in renumber:
                renumber[raw] = len(renumber)
            groups[key] = renumber[raw]
        return groups


POLICIES: Dict[str, Callable[[], GroupingPolicy]] = {
    "components": ConnectedComponents,
    "year": AttributeGrouping,
    "institution": lambda: AttributeGrouping("institutionid"),
    "louvain": LouvainGrouping,
}


def get_policy(policy: Union[str, GroupingPolicy, None]) -> GroupingPolicy:
    if policy is None:
        return ConnectedComponents()
    if isinstance(policy, str):
        try:
            return POLICIES[policy]()
        except KeyError:
            raise ValueError(
                f"Unknown grouping policy {policy!r}; choose from {sorted(POLICIES)}"
            )
    return policy


def detect_groups(
    graph: Graph, policy: Union[str, GroupingPolicy, None] = None
) -> Dict[str, int]:
    """
    Assigns each node of the displayed graph a group id.

    Args:
        graph (Graph): Usually the DisplayedGraph returned by pruning.
        policy: Policy instance or name ("components", "year",
            "institution", "louvain"). Defaults to connected components.

    Returns:
        Dict[str, int]: node key -> group id.
    """
    grouping = get_policy(policy)
    groups = grouping.assign(graph)

    sizes = sorted(Counter(groups.values()).values(), reverse=True)
    logger.info(
        f"Grouping '{getattr(grouping, 'name', type(grouping).__name__)}': "
        f"{len(sizes)} groups, largest {sizes[:5]}"
    )
    return groups


def apply_groups(graph: Graph, groups: Dict[str, int]) -> None:
    """Writes group ids onto the nodes (and onto the full graph's shared nodes)."""
    for key, group in groups.items():
        node = graph.get(key)
        if node is not None:
            node.group = group
