import logging
from dataclasses import dataclass
from typing import Dict, Optional, Tuple

from citenet.constants import (
    ALPHA_DECAY,
    ALPHA_MIN,
    CANVAS_HEIGHT,
    CANVAS_WIDTH,
    DEFAULT_MAX_NODES,
    DRAG_ALPHA_TARGET,
    MAX_NODES_RANGE,
    SCALE_EXTENT,
    VELOCITY_DECAY,
)
from citenet.models import NodeKind

logger = logging.getLogger(__name__)


def clamp_max_nodes(value: int) -> int:
    """Clamps a node budget into the supported range."""
    low, high = MAX_NODES_RANGE
    clamped = max(low, min(high, int(value)))
    if clamped != value:
        logger.warning(f"max_nodes {value} out of range, using {clamped}")
    return clamped


@dataclass
class ForceConfig:
    """Temperature and damping parameters of the force simulation."""

    alpha: float = 1.0
    alpha_min: float = ALPHA_MIN
    alpha_decay: float = ALPHA_DECAY
    alpha_target: float = 0.0
    velocity_decay: float = VELOCITY_DECAY
    drag_alpha_target: float = DRAG_ALPHA_TARGET
    seed: Optional[int] = None

    def simulation_kwargs(self) -> Dict[str, object]:
        return {
            "alpha": self.alpha,
            "alpha_min": self.alpha_min,
            "alpha_decay": self.alpha_decay,
            "alpha_target": self.alpha_target,
            "velocity_decay": self.velocity_decay,
            "seed": self.seed,
        }


@dataclass
class ViewConfig:
    """
    Host-facing configuration of a network view.

    Fields left as ``None`` take the preset's value: ``max_nodes``,
    ``quotas``, ``grouping`` and every ``ForceConfig`` field the preset
    tunes (decay rates, drag temperature).

    Attributes:
        max_nodes: Node budget, clamped to ``MAX_NODES_RANGE`` on use.
        enable_zoom: Whether the zoom transform responds to input.
        scale_extent: Allowed zoom scale range.
        width, height: Canvas size in model units.
        quotas: Budget fraction per node kind.
        grouping: Grouping policy name.
        force: Simulation parameters.
    """

    max_nodes: Optional[int] = None
    enable_zoom: bool = True
    scale_extent: Tuple[float, float] = SCALE_EXTENT
    width: float = CANVAS_WIDTH
    height: float = CANVAS_HEIGHT
    quotas: Optional[Dict[NodeKind, float]] = None
    grouping: Optional[str] = None
    force: Optional[ForceConfig] = None

    def budget(self, preset_default: int = DEFAULT_MAX_NODES) -> int:
        """Host budgets are clamped; a preset's own default is used as is."""
        if self.max_nodes is None:
            return preset_default
        return clamp_max_nodes(self.max_nodes)


@dataclass
class PresetForces:
    """Force defaults a view preset layers under the host's ForceConfig."""

    alpha_decay: float = ALPHA_DECAY
    velocity_decay: float = VELOCITY_DECAY
    drag_alpha_target: float = DRAG_ALPHA_TARGET

    def merge(self, override: Optional[ForceConfig]) -> ForceConfig:
        """Preset values unless the host config changed them from the defaults."""
        base = ForceConfig(
            alpha_decay=self.alpha_decay,
            velocity_decay=self.velocity_decay,
            drag_alpha_target=self.drag_alpha_target,
        )
        if override is None:
            return base
        defaults = ForceConfig()
        for name in ForceConfig.__dataclass_fields__:
            value = getattr(override, name)
            if value != getattr(defaults, name):
                setattr(base, name, value)
        return base
