"""
Layout engine.

This package contains:
1. Force terms (charge, springs, collision, centering, group cohesion, confinement)
2. The tick-driven force simulation
3. Deterministic radial placement (circle packing, radial cluster, edge bundling)
"""

# 1. Force terms
from .forces import (
    Boundary,
    Center,
    CircularBoundary,
    Collide,
    Community,
    Force,
    Link,
    ManyBody,
    Radial,
)

# 2. Simulation engine
from .simulation import (
    ForceSimulation,
    SimulationState,
    SimulationStatus,
    simulate,
)

# 3. Radial placement & bundling
from .radial import (
    ClusterBundleLayout,
    ClusterPlacement,
    RadialLayout,
    RadialPlacement,
    bundle_curve,
    bundle_route,
    cluster_layout,
    group_by,
    group_radii,
    pack_circles,
    place_members,
)

__all__ = [
    # Forces
    "Boundary",
    "Center",
    "CircularBoundary",
    "Collide",
    "Community",
    "Force",
    "Link",
    "ManyBody",
    "Radial",
    # Simulation
    "ForceSimulation",
    "SimulationState",
    "SimulationStatus",
    "simulate",
    # Radial
    "ClusterBundleLayout",
    "ClusterPlacement",
    "RadialLayout",
    "RadialPlacement",
    "bundle_curve",
    "bundle_route",
    "cluster_layout",
    "group_by",
    "group_radii",
    "pack_circles",
    "place_members",
]
