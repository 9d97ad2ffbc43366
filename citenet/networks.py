import logging
import math
from collections import defaultdict
from typing import (
    Any,
    Callable,
    Dict,
    Iterable,
    List,
    Mapping,
    Optional,
    Sequence,
    Tuple,
)

from citenet.constants import (
    DEFAULT_INSTITUTION,
    DEFAULT_INSTITUTION_ID,
    DEFAULT_PUBLISH_YEAR,
    DISPLAY_ID_CHARS,
)
from citenet.models import Edge, EdgeKind, Graph, Node, NodeKind
from citenet.records import AffiliationRecord, CitationRecord

logger = logging.getLogger(__name__)

AUTHOR_PREFIX = "author_"
PAPER_PREFIX = "paper_"


def display_name(prefix: str, identifier: str) -> str:
    """Short label built from the last characters of an identifier."""
    return f"{prefix}_{identifier[-DISPLAY_ID_CHARS:]}"


def impact_score(citation_count: int) -> float:
    return round(citation_count * 0.8 + 0.2, 2)


def build_citation_graph(
    records: Sequence[CitationRecord], institution: str = DEFAULT_INSTITUTION
) -> Graph:
    """
    Constructs the paper citation network.

    Every paper id seen as citing or cited becomes one node. A paper's
    publication year is taken from the first record in which it cites,
    falling back to the first record in which it is cited. Self-citations
    create the node but neither count nor produce an edge.

    Args:
        records (Sequence[CitationRecord]): Validated citation rows.
        institution (str): Affiliation label stored on every paper.

    Returns:
        Graph: One node per paper and one citation edge per record.
    """
    logger.info("Building Citation Network...")

    citation_counts: Dict[str, int] = defaultdict(int)
    citing_year: Dict[str, int] = {}
    cited_year: Dict[str, int] = {}
    order: Dict[str, None] = {}

    # Pass 1: per-paper counters and first-occurrence years
    for rec in records:
        order.setdefault(rec.citing_paperid)
        order.setdefault(rec.cited_paperid)
        citing_year.setdefault(rec.citing_paperid, rec.year)
        cited_year.setdefault(rec.cited_paperid, rec.ref_year)
        if rec.citing_paperid != rec.cited_paperid:
            citation_counts[rec.cited_paperid] += 1

    graph = Graph()
    for pid in order:
        count = citation_counts.get(pid, 0)
        graph.add_node(
            Node(
                key=pid,
                kind=NodeKind.PAPER,
                name=display_name("Paper", pid),
                citation_count=count,
                paperid=pid,
                institution=institution,
                publish_year=citing_year.get(
                    pid, cited_year.get(pid, DEFAULT_PUBLISH_YEAR)
                ),
                impact_score=impact_score(count),
            )
        )

    # Pass 2: edges, once node state is final
    self_loops = 0
    for rec in records:
        added = graph.add_edge(
            Edge(
                source=rec.citing_paperid,
                target=rec.cited_paperid,
                kind=EdgeKind.CITATION,
                value=1,
                citing_year=rec.year,
                cited_year=rec.ref_year,
                year_diff=rec.year_diff,
            )
        )
        if not added:
            self_loops += 1

    if self_loops:
        logger.info(f"Ignored {self_loops} self-citations.")
    logger.info(
        f"Citation network: {graph.number_of_nodes()} papers, "
        f"{graph.number_of_edges()} citations"
    )
    return graph


def index_authorship(
    records: Iterable[AffiliationRecord],
) -> Tuple[Dict[str, List[str]], Dict[str, List[str]], Dict[str, str]]:
    """
    Builds the bidirectional author/paper index.

    Returns:
        Tuple containing:
        - author_to_papers: Dict[author_id, List[paper_id]] (deduplicated)
        - paper_to_authors: Dict[paper_id, List[author_id]] (deduplicated)
        - author_institution: Dict[author_id, institution_id] (first record wins)
    """
    author_to_papers: Dict[str, List[str]] = defaultdict(list)
    paper_to_authors: Dict[str, List[str]] = defaultdict(list)
    author_institution: Dict[str, str] = {}

    for rec in records:
        if rec.paperid not in author_to_papers[rec.authorid]:
            author_to_papers[rec.authorid].append(rec.paperid)
        if rec.authorid not in paper_to_authors[rec.paperid]:
            paper_to_authors[rec.paperid].append(rec.authorid)
        author_institution.setdefault(
            rec.authorid, rec.institutionid or DEFAULT_INSTITUTION_ID
        )

    return dict(author_to_papers), dict(paper_to_authors), author_institution


def collaboration_pairs(
    paper_to_authors: Mapping[str, Sequence[str]],
) -> Dict[Tuple[str, str], Edge]:
    """
    Enumerates co-author pairs per paper.

    Pair keys are sorted so each unordered author pair maps to exactly one
    edge; every additional shared paper increments ``collaboration_count``
    and joins ``paper_ids``.
    """
    pairs: Dict[Tuple[str, str], Edge] = {}
    for pid, authors in paper_to_authors.items():
        for i in range(len(authors)):
            for j in range(i + 1, len(authors)):
                a1, a2 = sorted((authors[i], authors[j]))
                edge = pairs.get((a1, a2))
                if edge is None:
                    edge = Edge(
                        source=AUTHOR_PREFIX + a1,
                        target=AUTHOR_PREFIX + a2,
                        kind=EdgeKind.COLLABORATION,
                        value=0,
                    )
                    pairs[(a1, a2)] = edge
                edge.collaboration_count += 1
                edge.value = edge.collaboration_count
                if pid not in edge.paper_ids:
                    edge.paper_ids.append(pid)
    return pairs


def build_collaboration_graph(records: Sequence[AffiliationRecord]) -> Graph:
    """
    Constructs the author/paper collaboration network.

    Layer 1 links each author to the papers they wrote (authorship edges).
    Layer 2 projects that bipartite structure onto author pairs
    (collaboration edges), which needs the complete paper -> authors index.

    Args:
        records (Sequence[AffiliationRecord]): Validated affiliation rows.

    Returns:
        Graph: Author nodes first, then paper nodes; authorship edges first,
        then collaboration edges.
    """
    logger.info("Building Collaboration Network...")

    author_to_papers, paper_to_authors, author_institution = index_authorship(
        records
    )

    graph = Graph()
    for aid, papers in author_to_papers.items():
        graph.add_node(
            Node(
                key=AUTHOR_PREFIX + aid,
                kind=NodeKind.AUTHOR,
                name=display_name("Author", aid),
                paper_count=len(papers),
                authorid=aid,
                institutionid=author_institution[aid],
            )
        )
    for pid, authors in paper_to_authors.items():
        graph.add_node(
            Node(
                key=PAPER_PREFIX + pid,
                kind=NodeKind.PAPER,
                name=display_name("Paper", pid),
                author_count=len(authors),
                paperid=pid,
            )
        )

    # --- Layer 1: Authorship ---
    seen = set()
    for rec in records:
        pair = (rec.authorid, rec.paperid)
        if pair in seen:
            continue
        seen.add(pair)
        graph.add_edge(
            Edge(
                source=AUTHOR_PREFIX + rec.authorid,
                target=PAPER_PREFIX + rec.paperid,
                kind=EdgeKind.AUTHORSHIP,
                value=1,
                paperid=rec.paperid,
                author_position=rec.author_position,
            )
        )
    authorship_count = graph.number_of_edges()

    # --- Layer 2: Co-authorship ---
    for edge in collaboration_pairs(paper_to_authors).values():
        graph.add_edge(edge)

    logger.info(
        f"Collaboration network: {len(author_to_papers)} authors, "
        f"{len(paper_to_authors)} papers, {authorship_count} authorships, "
        f"{graph.number_of_edges() - authorship_count} collaborations"
    )
    return graph


def _as_year(value: Any) -> Optional[int]:
    try:
        return int(value)
    except (TypeError, ValueError):
        return None


def _as_number(value: Any, cast: Callable[[float], Any] = float) -> Optional[Any]:
    """Coerces numeric payload values, including numeric strings like ``"3"``."""
    if isinstance(value, bool):
        return None
    try:
        number = float(value)
    except (TypeError, ValueError):
        return None
    if not math.isfinite(number):
        return None
    return cast(number)


def _as_count(value: Any) -> Optional[int]:
    return _as_number(value, int)


_NODE_FIELDS: Dict[str, Callable[[Any], Any]] = {
    "name": str,
    "citation_count": _as_count,
    "paper_count": _as_count,
    "author_count": _as_count,
    "paperid": str,
    "authorid": str,
    "institution": str,
    "institutionid": str,
    "impact_score": _as_number,
}

_EDGE_FIELDS: Dict[str, Callable[[Any], Any]] = {
    "value": _as_number,
    "citing_year": _as_year,
    "cited_year": _as_year,
    "year_diff": _as_year,
    "paperid": str,
    "author_position": str,
    "collaboration_count": _as_count,
}


def _known_fields(
    raw: Mapping[str, Any], fields: Mapping[str, Callable[[Any], Any]]
) -> Dict[str, Any]:
    """Converts the model fields present in ``raw``; unusable values keep the default."""
    known = {}
    for name, convert in fields.items():
        if raw.get(name) is None:
            continue
        value = convert(raw[name])
        if value is None:
            logger.debug(f"Ignoring non-numeric {name}={raw[name]!r} in graph payload")
            continue
        known[name] = value
    return known


def _endpoint_id(endpoint: Any) -> Optional[str]:
    if isinstance(endpoint, Mapping):
        endpoint = endpoint.get("id")
    if endpoint is None or endpoint == "":
        return None
    return str(endpoint)


def _node_kind(raw: Mapping[str, Any]) -> NodeKind:
    value = str(raw.get("kind") or raw.get("type") or NodeKind.PAPER.value)
    try:
        return NodeKind(value)
    except ValueError:
        raise ValueError(f"Unknown node kind in graph payload: {value!r}")


def _edge_kind(raw: Mapping[str, Any]) -> EdgeKind:
    value = str(raw.get("kind") or raw.get("type") or EdgeKind.CITATION.value)
    aliases = {
        "author-paper": EdgeKind.AUTHORSHIP,
        "author-author": EdgeKind.COLLABORATION,
    }
    if value in aliases:
        return aliases[value]
    try:
        return EdgeKind(value)
    except ValueError:
        raise ValueError(f"Unknown edge kind in graph payload: {value!r}")


def graph_from_payload(payload: Mapping[str, Any]) -> Graph:
    """
    Converts a pre-built ``{"nodes": [...], "links": [...]}`` payload.

    Nodes without an id are dropped and duplicate ids keep their first
    occurrence. Links whose endpoints are unknown or identical are dropped.
    Fields outside the node/edge model are preserved under ``extra``.
    """
    graph = Graph()
    skipped_nodes = 0

    for raw in payload.get("nodes") or []:
        if not isinstance(raw, Mapping):
            skipped_nodes += 1
            continue
        key = _endpoint_id(raw)
        if key is None or key in graph:
            skipped_nodes += 1
            continue
        known = _known_fields(raw, _NODE_FIELDS)
        extra = {
            k: v
            for k, v in raw.items()
            if k not in _NODE_FIELDS and k not in ("id", "kind", "type", "publish_year")
        }
        node = Node(
            key=key,
            kind=_node_kind(raw),
            name=str(known.pop("name", display_name("Paper", key))),
            publish_year=_as_year(raw.get("publish_year")),
            extra=extra,
        )
        for name, value in known.items():
            setattr(node, name, value)
        graph.add_node(node)

    dropped_links = 0
    for raw in payload.get("links") or []:
        if not isinstance(raw, Mapping):
            dropped_links += 1
            continue
        source = _endpoint_id(raw.get("source"))
        target = _endpoint_id(raw.get("target"))
        if source is None or target is None:
            dropped_links += 1
            continue
        known = _known_fields(raw, _EDGE_FIELDS)
        extra = {
            k: v
            for k, v in raw.items()
            if k not in _EDGE_FIELDS
            and k not in ("source", "target", "kind", "type", "paper_ids")
        }
        edge = Edge(
            source=source,
            target=target,
            kind=_edge_kind(raw),
            paper_ids=[str(p) for p in raw.get("paper_ids") or []],
            extra=extra,
        )
        for name, value in known.items():
            setattr(edge, name, value)
        if not graph.add_edge(edge):
            dropped_links += 1

    if skipped_nodes or dropped_links:
        logger.warning(
            f"Graph payload: skipped {skipped_nodes} nodes, "
            f"dropped {dropped_links} dangling or self links"
        )
    logger.info(
        f"Graph payload: {graph.number_of_nodes()} nodes, "
        f"{graph.number_of_edges()} links"
    )
    return graph
