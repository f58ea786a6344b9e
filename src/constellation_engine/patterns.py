"""
Constellation Pattern Library

Provides the catalog of point-and-edge templates that drifting particle
clusters are matched against. Uses embedded shape data for a handful of
well-known asterisms, drawn in a local 2D frame (x right, y up).
"""

from dataclasses import dataclass, field
from typing import Dict, Iterator, List, Optional, Sequence, Tuple

import numpy as np
from scipy.spatial.distance import pdist


@dataclass(frozen=True, eq=False)
class Template:
    """
    An immutable constellation template.

    Points are re-centred on their centroid at construction, so `points`
    is always expressed relative to the template center.
    """
    name: str
    points: np.ndarray  # (stars, 2), centred
    edges: Tuple[Tuple[int, int], ...]
    center: np.ndarray = field(repr=False)  # centroid of the raw points
    span: float  # max pairwise point distance
    radii: np.ndarray = field(repr=False)  # distance of each point from the center

    @classmethod
    def from_points(cls, name: str,
                    points: Sequence[Tuple[float, float]],
                    edges: Sequence[Tuple[int, int]]) -> "Template":
        """
        Build a normalized template from raw local coordinates.

        Args:
            name: Template name
            points: Local 2D star positions
            edges: Point-index pairs to draw

        Returns:
            Template with precomputed center, span and radii

        Raises:
            ValueError: If the shape is degenerate or an edge is invalid
        """
        raw = np.asarray(points, dtype=np.float64)
        if raw.ndim != 2 or raw.shape[1] != 2 or len(raw) < 2:
            raise ValueError(f"Template {name!r} needs at least two 2D points")

        n = len(raw)
        clean_edges = []
        for a, b in edges:
            if not (0 <= a < n and 0 <= b < n) or a == b:
                raise ValueError(f"Template {name!r} has invalid edge ({a}, {b})")
            clean_edges.append((int(a), int(b)))
        if not clean_edges:
            raise ValueError(f"Template {name!r} has no edges")

        center = raw.mean(axis=0)
        centred = raw - center
        span = float(pdist(raw).max())
        if span <= 0:
            raise ValueError(f"Template {name!r} has zero span")

        radii = np.hypot(centred[:, 0], centred[:, 1])
        for arr in (centred, center, radii):
            arr.setflags(write=False)

        return cls(
            name=name,
            points=centred,
            edges=tuple(clean_edges),
            center=center,
            span=span,
            radii=radii,
        )

    @property
    def star_count(self) -> int:
        return len(self.points)

    @property
    def edge_count(self) -> int:
        return len(self.edges)

    def outer_first_order(self) -> np.ndarray:
        """Point indices sorted by decreasing distance from the center."""
        return np.argsort(-self.radii, kind="stable")


# (name, points, edges)
_EMBEDDED_PATTERNS = [
    (
        "Crux",
        [(0.0, 2.0), (0.1, -1.6), (-1.2, 0.3), (1.0, 0.7)],
        [(0, 1), (2, 3)],
    ),
    (
        "Cassiopeia",
        [(0.0, 0.0), (1.0, -1.2), (2.1, -0.4), (3.0, -1.5), (4.2, -0.2)],
        [(0, 1), (1, 2), (2, 3), (3, 4)],
    ),
    (
        "Cygnus",
        [(0.0, 3.0), (0.1, 1.8), (0.3, -1.1), (-1.7, 2.3), (1.5, 1.3)],
        [(0, 1), (1, 2), (3, 1), (1, 4)],
    ),
    (
        "Lyra",
        [(0.0, 2.1), (0.5, 1.2), (-0.2, 1.0), (0.1, -0.1), (0.8, 0.1)],
        [(0, 1), (0, 2), (1, 2), (1, 4), (4, 3), (3, 2)],
    ),
    (
        "Orion",
        [(0.0, 3.0), (2.0, 2.7), (0.7, 1.2), (1.1, 1.05), (1.5, 0.9),
         (0.3, -0.8), (2.3, -0.5)],
        [(0, 2), (1, 4), (2, 3), (3, 4), (2, 5), (4, 6), (0, 1)],
    ),
    (
        "Big Dipper",
        [(0.0, 0.0), (1.0, 0.35), (2.0, 0.2), (2.9, -0.2), (3.1, -1.2),
         (4.3, -1.35), (4.4, -0.3)],
        [(0, 1), (1, 2), (2, 3), (3, 4), (4, 5), (5, 6), (6, 3)],
    ),
    (
        "Leo",
        [(0.0, 0.0), (0.2, 1.0), (0.9, 1.6), (0.6, 2.4), (-0.1, 2.6),
         (3.0, 1.4), (4.1, 0.7)],
        [(0, 1), (1, 2), (2, 3), (3, 4), (2, 5), (5, 6), (6, 0)],
    ),
]


class PatternLibrary:
    """
    Catalog of constellation templates.

    Contains the embedded asterisms unless an explicit template list
    is given.
    """

    def __init__(self, templates: Optional[List[Template]] = None):
        """
        Initialize the library.

        Args:
            templates: Optional explicit template list (default: embedded catalog)
        """
        if templates is None:
            templates = [Template.from_points(name, pts, edges)
                         for name, pts, edges in _EMBEDDED_PATTERNS]
        if not templates:
            raise ValueError("Pattern library needs at least one template")

        self.templates: List[Template] = list(templates)
        self._by_name: Dict[str, Template] = {}
        for template in self.templates:
            if template.name in self._by_name:
                raise ValueError(f"Duplicate template name: {template.name}")
            self._by_name[template.name] = template

    def __len__(self) -> int:
        return len(self.templates)

    def __iter__(self) -> Iterator[Template]:
        return iter(self.templates)

    def __contains__(self, name: str) -> bool:
        return name in self._by_name

    def get(self, name: str) -> Template:
        """Look up a template by name (KeyError if unknown)."""
        return self._by_name[name]

    @property
    def names(self) -> List[str]:
        return [t.name for t in self.templates]

    @property
    def min_stars(self) -> int:
        """Star count of the smallest template."""
        return min(t.star_count for t in self.templates)

    @property
    def mean_span(self) -> float:
        return float(np.mean([t.span for t in self.templates]))

    @property
    def mean_stars(self) -> float:
        return float(np.mean([t.star_count for t in self.templates]))
