"""
Citation & Collaboration Network Views.

This package contains modules for:
1. Ingestion (validated citation, affiliation and publication records)
2. Graph Construction & Pruning (citation / collaboration graphs, node budgets)
3. Layout & Interaction (force simulation, radial clusters, drag/hover/zoom)
"""

# 1. Ingestion
from .ingestion import load_graph_json, load_records

# 2. Graph construction & pruning
from .networks import build_citation_graph, build_collaboration_graph, graph_from_payload
from .pruning import prune
from .communities import detect_groups

# 3. Views
from .config import ForceConfig, ViewConfig
from .view import PRESETS, NetworkView, RenderFrame, ViewState

__all__ = [
    # Ingestion
    "load_graph_json",
    "load_records",
    # Graphs
    "build_citation_graph",
    "build_collaboration_graph",
    "graph_from_payload",
    "prune",
    "detect_groups",
    # Views
    "ForceConfig",
    "ViewConfig",
    "PRESETS",
    "NetworkView",
    "RenderFrame",
    "ViewState",
]
