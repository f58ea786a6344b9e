"""
Line geometry handed to the renderer.

One LineGeometry per live constellation, attached to a LineScene while the
constellation lives and detached and disposed when it dissolves.
"""

import logging
from typing import Iterator, List, Tuple

import numpy as np


logger = logging.getLogger(__name__)


class LineGeometry:
    """Segment vertices, opacity and color of one constellation figure."""

    def __init__(self, edge_count: int, color: Tuple[float, float, float], name: str = ""):
        self.name = name
        self.positions = np.zeros((edge_count, 2, 3), dtype=np.float32)
        self.color = color
        self.opacity = 0.0
        self.visible = True
        self.disposed = False

    @property
    def edge_count(self) -> int:
        return len(self.positions)

    def dispose(self) -> None:
        """Release the vertex buffer. Safe to call more than once."""
        if self.disposed:
            return
        self.positions = np.zeros((0, 2, 3), dtype=np.float32)
        self.visible = False
        self.disposed = True


class LineScene:
    """The set of line geometries currently attached for rendering."""

    def __init__(self):
        self._items: List[LineGeometry] = []

    def __len__(self) -> int:
        return len(self._items)

    def __iter__(self) -> Iterator[LineGeometry]:
        return iter(self._items)

    def __contains__(self, geometry: LineGeometry) -> bool:
        return any(g is geometry for g in self._items)

    def add(self, geometry: LineGeometry) -> None:
        if geometry.disposed:
            raise ValueError("Cannot attach a disposed geometry")
        if geometry not in self:
            self._items.append(geometry)

    def remove(self, geometry: LineGeometry) -> None:
        """Detach a geometry (no-op if it is not attached)."""
        self._items = [g for g in self._items if g is not geometry]

    def clear(self) -> None:
        for geometry in self._items:
            geometry.dispose()
        if self._items:
            logger.debug(f"Disposed {len(self._items)} line geometries")
        self._items = []
