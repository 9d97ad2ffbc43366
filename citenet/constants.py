import math
from typing import Dict, List, Tuple

# Plausible ranges for numeric record fields
YEAR_RANGE: Tuple[int, int] = (2015, 2025)
YEAR_DIFF_RANGE: Tuple[int, int] = (-5, 10)
TIMELINE_RANGE: Tuple[int, int] = (2015, 2024)

DEFAULT_PUBLISH_YEAR = 2020
DEFAULT_INSTITUTION = "Yeshiva University"
DEFAULT_INSTITUTION_ID = "default"
DISPLAY_ID_CHARS = 6

# Node budget
MAX_NODES_RANGE: Tuple[int, int] = (10, 1000)
DEFAULT_MAX_NODES = 500

# Zoom
SCALE_EXTENT: Tuple[float, float] = (0.1, 3.0)

# Canvas
CANVAS_WIDTH = 950
CANVAS_HEIGHT = 680

# Simulation defaults (d3-force conventions)
ALPHA_MIN = 0.001
ALPHA_DECAY = 1 - math.pow(ALPHA_MIN, 1 / 300)
VELOCITY_DECAY = 0.4
DRAG_ALPHA_TARGET = 0.5
INITIAL_RADIUS = 10.0
INITIAL_ANGLE = math.pi * (3 - math.sqrt(5))

# Circle packing
PACK_MAX_ATTEMPTS = 1000
PACK_MARGIN = 10.0
PACK_EDGE_PADDING = 20.0

# Colour palettes, reused modulo their length when exhausted
COLOR_SCHEMES: Dict[str, List[str]] = {
    "main": [
        "#1f77b4", "#ff7f0e", "#2ca02c", "#d62728", "#9467bd",
        "#8c564b", "#e377c2", "#7f7f7f", "#bcbd22", "#17becf",
        "#aec7e8", "#ffbb78", "#98df8a", "#ff9896", "#c5b0d5",
    ],
    "soft": [
        "#8dd3c7", "#ffffb3", "#bebada", "#fb8072", "#80b1d3",
        "#fdb462", "#b3de69", "#fccde5", "#d9d9d9", "#bc80bd",
        "#ccebc5", "#ffed6f",
    ],
}
CATEGORY10: List[str] = COLOR_SCHEMES["main"][:10]
FALLBACK_COLOR = "#1a73e8"
