"""
Node/edge graph model shared by every stage of the pipeline.

Nodes live in an insertion-ordered index keyed by their stable string key;
edges reference nodes by key only. Positions are resolved through the index
at tick or render time, so a pruned or unknown key simply fails to resolve.
"""

import logging
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Dict, Iterable, Iterator, List, Optional, Set, Tuple

import networkx as nx

logger = logging.getLogger(__name__)


class NodeKind(str, Enum):
    PAPER = "paper"
    AUTHOR = "author"


class EdgeKind(str, Enum):
    CITATION = "citation"
    AUTHORSHIP = "authorship"
    COLLABORATION = "collaboration"


@dataclass
class Node:
    """
    A paper or an author.

    ``importance`` is the ranking metric used by pruning: citation count for
    citation-graph papers, paper count for authors and author count for
    collaboration-graph papers.
    """

    key: str
    kind: NodeKind
    name: str
    citation_count: int = 0
    paper_count: int = 0
    author_count: int = 0
    paperid: Optional[str] = None
    authorid: Optional[str] = None
    institution: Optional[str] = None
    institutionid: Optional[str] = None
    publish_year: Optional[int] = None
    impact_score: float = 0.0
    extra: Dict[str, Any] = field(default_factory=dict)

    # Mutable layout state
    x: Optional[float] = None
    y: Optional[float] = None
    vx: float = 0.0
    vy: float = 0.0
    fx: Optional[float] = None
    fy: Optional[float] = None
    group: Optional[int] = None

    @property
    def importance(self) -> float:
        if self.kind is NodeKind.AUTHOR:
            return self.paper_count
        if self.kind is NodeKind.PAPER:
            return max(self.citation_count, self.author_count)
        raise ValueError(f"Unknown node kind: {self.kind!r}")

    @property
    def pinned(self) -> bool:
        return self.fx is not None and self.fy is not None

    @property
    def position(self) -> Optional[Tuple[float, float]]:
        if self.x is None or self.y is None:
            return None
        return self.x, self.y


@dataclass
class Edge:
    """A directed (citation, authorship) or canonical undirected (collaboration) edge."""

    source: str
    target: str
    kind: EdgeKind
    value: float = 1.0
    citing_year: Optional[int] = None
    cited_year: Optional[int] = None
    year_diff: Optional[int] = None
    paperid: Optional[str] = None
    author_position: Optional[str] = None
    collaboration_count: int = 0
    paper_ids: List[str] = field(default_factory=list)
    extra: Dict[str, Any] = field(default_factory=dict)

    @property
    def weight(self) -> float:
        if self.kind is EdgeKind.COLLABORATION:
            return float(self.collaboration_count)
        if self.kind in (EdgeKind.CITATION, EdgeKind.AUTHORSHIP):
            return float(self.value or 1)
        raise ValueError(f"Unknown edge kind: {self.kind!r}")

    @property
    def endpoints(self) -> Tuple[str, str]:
        return self.source, self.target


class Graph:
    """Full node index plus full edge list, as produced by the graph builder."""

    def __init__(
        self,
        nodes: Optional[Iterable[Node]] = None,
        edges: Optional[Iterable[Edge]] = None,
    ):
        self.nodes: Dict[str, Node] = {}
        self.edges: List[Edge] = []
        for node in nodes or ():
            self.add_node(node)
        for edge in edges or ():
            self.add_edge(edge)

    def __len__(self) -> int:
        return len(self.nodes)

    def __contains__(self, key: object) -> bool:
        return key in self.nodes

    def __iter__(self) -> Iterator[Node]:
        return iter(self.nodes.values())

    def add_node(self, node: Node) -> Node:
        """Adds ``node`` unless its key exists; returns the stored node."""
        existing = self.nodes.get(node.key)
        if existing is not None:
            return existing
        self.nodes[node.key] = node
        return node

    def add_edge(self, edge: Edge) -> bool:
        """Adds ``edge`` if both endpoints exist and it is not a self loop."""
        if edge.source == edge.target:
            return False
        if edge.source not in self.nodes or edge.target not in self.nodes:
            return False
        self.edges.append(edge)
        return True

    def get(self, key: str) -> Optional[Node]:
        return self.nodes.get(key)

    def number_of_nodes(self) -> int:
        return len(self.nodes)

    def number_of_edges(self) -> int:
        return len(self.edges)

    def kinds(self) -> Set[NodeKind]:
        return {n.kind for n in self.nodes.values()}

    def neighbors(self, key: str) -> Set[str]:
        """Keys adjacent to ``key`` through any incident edge (undirected)."""
        result: Set[str] = set()
        for edge in self.edges:
            if edge.source == key:
                result.add(edge.target)
            elif edge.target == key:
                result.add(edge.source)
        return result

    def degree(self) -> Dict[str, int]:
        counts = {key: 0 for key in self.nodes}
        for edge in self.edges:
            counts[edge.source] += 1
            counts[edge.target] += 1
        return counts

    def to_networkx(self) -> nx.MultiDiGraph:
        """Exports the graph with node and edge attributes for analysis."""
        G = nx.MultiDiGraph()
        for key, node in self.nodes.items():
            G.add_node(
                key,
                kind=node.kind.value,
                name=node.name,
                importance=node.importance,
                publish_year=node.publish_year,
                institutionid=node.institutionid,
                group=node.group,
            )
        for edge in self.edges:
            G.add_edge(
                edge.source,
                edge.target,
                kind=edge.kind.value,
                weight=edge.weight,
            )
        return G


class DisplayedGraph(Graph):
    """
    Pruned subset of a full graph that is laid out and rendered.

    Keeps a reference to the full graph so aggregate totals are reported over
    every node, not only the displayed ones.
    """

    def __init__(
        self,
        full: Graph,
        nodes: Iterable[Node],
        edges: Iterable[Edge],
    ):
        super().__init__(nodes, edges)
        self.full = full
