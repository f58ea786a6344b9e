"""
Live Constellation Engine
=========================

Detects drifting particle clusters that fit a constellation template and
animates them as short-lived glowing figures.

Main components:
- patterns: Template catalog (points + edges, pre-normalized)
- claims: Exclusive particle claims
- spatial_index: Screen-space grid and 2x2 candidate blocks
- shape_matcher: Discrete rotation/scale search with greedy assignment
- selector: Best-per-template scoring and softmax pick
- lifecycle: Forming -> Active -> Fading -> Dissolved state machine
- geometry: Line geometries handed to the renderer
- engine: Per-frame orchestration and periodic search
"""

__version__ = "0.1.0"

from .config import Config
from .engine import ConstellationEngine, EngineStats
from .patterns import PatternLibrary, Template
from .claims import ClaimsTable, ClaimError
from .shape_matcher import ShapeMatcher, Match
from .lifecycle import LifecycleManager, LifecycleState, Constellation
from .geometry import LineGeometry, LineScene

__all__ = [
    "Config",
    "ConstellationEngine",
    "EngineStats",
    "PatternLibrary",
    "Template",
    "ClaimsTable",
    "ClaimError",
    "ShapeMatcher",
    "Match",
    "LifecycleManager",
    "LifecycleState",
    "Constellation",
    "LineGeometry",
    "LineScene",
    "__version__",
]
