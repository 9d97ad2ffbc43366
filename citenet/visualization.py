import logging
import math
import os
from typing import Dict, Iterable, List, Optional

import matplotlib.pyplot as plt
import numpy as np
import pandas as pd
from matplotlib.collections import LineCollection
from pyvis.network import Network

from citenet.constants import CATEGORY10, COLOR_SCHEMES, FALLBACK_COLOR
from citenet.models import Graph, Node, NodeKind

logger = logging.getLogger(__name__)


def _ensure_parent(path: str) -> None:
    output_dir = os.path.dirname(path)
    if output_dir:
        os.makedirs(output_dir, exist_ok=True)


def institution_palette(ids: Iterable[str]) -> Dict[str, str]:
    """
    Assigns a colour to every distinct institution id, in first-seen order.

    Up to 15 institutions use the main scheme, up to 25 the soft one, and
    larger sets the two combined; colours repeat once the scheme runs out.
    """
    distinct: List[str] = list(dict.fromkeys(i for i in ids if i is not None))
    if len(distinct) > 25:
        colors = COLOR_SCHEMES["main"] + COLOR_SCHEMES["soft"]
    elif len(distinct) > 15:
        colors = COLOR_SCHEMES["soft"]
    else:
        colors = COLOR_SCHEMES["main"]
    return {inst: colors[i % len(colors)] for i, inst in enumerate(distinct)}


def node_color(node: Node, palette: Optional[Dict[str, str]] = None) -> str:
    """Institution colour for authors, group colour otherwise."""
    if palette and node.kind is NodeKind.AUTHOR and node.institutionid in palette:
        return palette[node.institutionid]
    if node.group is not None:
        return CATEGORY10[node.group % len(CATEGORY10)]
    return FALLBACK_COLOR


def node_size(node: Node) -> float:
    return 6 + 3 * math.log(max(node.importance, 1))


def _node_title(node: Node) -> str:
    lines = [f"{node.kind.value.title()}: {node.name}"]
    if node.kind is NodeKind.AUTHOR:
        lines.append(f"Papers: {node.paper_count}")
        lines.append(f"Institution: {node.institutionid}")
    else:
        lines.append(f"Citations: {node.citation_count}")
        if node.publish_year is not None:
            lines.append(f"Year: {node.publish_year}")
    if node.group is not None:
        lines.append(f"Group: {node.group}")
    return "\n".join(lines)


def export_html(frame, displayed: Graph, path: str, palette: Optional[Dict[str, str]] = None) -> str:
    """
    Writes the frame as an interactive pyvis page with physics disabled.

    Node positions come from the frame, so the page shows exactly the
    settled layout; highlighted elements are drawn thicker.

    Args:
        frame (RenderFrame): Frame to export.
        displayed (Graph): Displayed graph the frame belongs to.
        path (str): Output HTML path.
        palette (Dict[str, str], optional): Institution colours.

    Returns:
        str: The written path.
    """
    logger.info(f"Exporting interactive map ({len(frame.nodes)} nodes)...")
    _ensure_parent(path)

    net = Network(height="100vh", width="100%", bgcolor="#ffffff", font_color="#333333")
    highlighted_nodes = frame.highlight.nodes
    highlighted_edges = frame.highlight.edges

    for key, (x, y) in frame.nodes.items():
        node = displayed.get(key)
        if node is None:
            continue
        net.add_node(
            key,
            label=node.name,
            title=_node_title(node),
            x=float(x),
            y=float(y),
            size=node_size(node),
            color=node_color(node, palette),
            borderWidth=3 if key in highlighted_nodes else 1,
            physics=False,
        )

    index = {id(edge): i for i, edge in enumerate(displayed.edges)}
    for edge, _, _ in frame.edges:
        hot = index.get(id(edge)) in highlighted_edges
        net.add_edge(
            edge.source,
            edge.target,
            width=3 if hot else 1,
            color="#d62728" if hot else "#999999",
            title=f"{edge.kind.value} ({edge.weight:g})",
        )

    net.toggle_physics(False)
    try:
        net.save_graph(path)
    except OSError as e:
        logger.error(f"Error saving interactive map: {e}")
        raise
    logger.info(f"Interactive map saved to: {path}")
    return path


def _screen(frame, points: np.ndarray) -> np.ndarray:
    t = frame.transform
    return np.column_stack([points[:, 0] * t.k + t.x, points[:, 1] * t.k + t.y])


def plot_frame(frame, displayed: Graph, path: str, palette: Optional[Dict[str, str]] = None) -> str:
    """Static snapshot of a frame with the zoom transform applied."""
    _ensure_parent(path)
    fig, ax = plt.subplots(figsize=(10, 7))

    if frame.curves:
        lines = [_screen(frame, curve) for _, curve in frame.curves]
    else:
        lines = [
            _screen(frame, np.array([source, target], dtype=float))
            for _, source, target in frame.edges
        ]
    if lines:
        ax.add_collection(LineCollection(lines, colors="#999999", linewidths=0.6, alpha=0.5))

    for group, (center, radius) in frame.regions.items():
        cx, cy = frame.transform.apply(center)
        ax.add_patch(
            plt.Circle((cx, cy), radius * frame.transform.k, fill=False, color="#cccccc")
        )
        ax.annotate(str(group), (cx, cy), ha="center", va="center", color="#888888")

    keys = [k for k in frame.nodes if k in displayed]
    if keys:
        xy = _screen(frame, np.array([frame.nodes[k] for k in keys], dtype=float))
        nodes = [displayed.get(k) for k in keys]
        ax.scatter(
            xy[:, 0],
            xy[:, 1],
            s=[node_size(n) ** 2 for n in nodes],
            c=[node_color(n, palette) for n in nodes],
            edgecolors=["black" if k in frame.highlight.nodes else "white" for k in keys],
            linewidths=0.5,
            zorder=2,
        )

    ax.autoscale_view()
    ax.set_aspect("equal")
    ax.invert_yaxis()
    ax.axis("off")
    fig.tight_layout()
    fig.savefig(path)
    plt.close(fig)
    logger.info(f"Layout snapshot saved to: {path}")
    return path


def plot_timeline(df: pd.DataFrame, path: str) -> str:
    """Papers per year as bars, patent citations per year as a line."""
    _ensure_parent(path)
    fig, ax = plt.subplots(figsize=(9, 5))
    ax.bar(df["year"], df["paper_count"], color="#1f77b4", label="Papers")
    ax.set_xlabel("Publication Year")
    ax.set_ylabel("Papers")

    ax2 = ax.twinx()
    ax2.plot(df["year"], df["total_patent_count"], "o-", color="#ff7f0e", label="Patent citations")
    ax2.set_ylabel("Patent citations")

    ax.set_title("Publications and Patent Citations by Year")
    ax.grid(True, alpha=0.3)
    fig.tight_layout()
    fig.savefig(path)
    plt.close(fig)
    return path


def plot_patent_histogram(df: pd.DataFrame, path: str) -> str:
    """Number of papers per patent-citation count."""
    _ensure_parent(path)
    plt.figure(figsize=(8, 5))
    plt.bar(df["patent_count"], df["paper_count"], color="#2ca02c")
    plt.title("Papers by Patent Citation Count")
    plt.xlabel("Patent citations")
    plt.ylabel("Papers")
    plt.grid(True, alpha=0.3)
    plt.savefig(path)
    plt.close()
    return path
