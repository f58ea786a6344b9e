"""
Screen-space spatial index and cluster candidate generation.

Each search tick the unclaimed particles are projected to normalized device
coordinates (NDC), bucketed into a uniform grid, and 2x2 windows of adjacent
cells are scanned for blocks dense enough to host the smallest template.
"""

from dataclasses import dataclass
from typing import Dict, List, Optional, Tuple

import numpy as np


@dataclass
class SpatialGrid:
    """Uniform screen-space grid over the padded NDC box."""

    ndc: np.ndarray  # (N, 2) NDC for every particle, NaN where not indexed
    cells: Dict[Tuple[int, int], np.ndarray]  # (ix, iy) -> particle indices
    resolution: int
    padding: float

    @property
    def cell_size(self) -> float:
        return 2.0 * self.padding / self.resolution

    @property
    def num_indexed(self) -> int:
        return int(sum(len(v) for v in self.cells.values()))


@dataclass
class Block:
    """A candidate cluster: particles of one 2x2 cell window."""

    indices: np.ndarray  # particle indices
    centroid: np.ndarray  # (2,) NDC
    extent: float  # window side length in NDC

    @property
    def size(self) -> int:
        return len(self.indices)


class SpatialIndexBuilder:
    """
    Project unclaimed particles and bucket them into a uniform grid.
    """

    def __init__(self, resolution: int = 12, padding: float = 0.9):
        if resolution < 2:
            raise ValueError("Grid resolution must be at least 2")
        self.resolution = resolution
        self.padding = padding

    def build(
        self,
        positions: np.ndarray,
        camera,
        unclaimed: Optional[np.ndarray] = None,
    ) -> SpatialGrid:
        """
        Build the grid for the current frame.

        Args:
            positions: Shared (N, 3) world position buffer
            camera: Object with project((M, 3)) -> (M, 2) NDC
            unclaimed: Optional boolean mask of particles eligible for indexing

        Returns:
            SpatialGrid with the surviving particles bucketed by cell
        """
        n = len(positions)
        ndc = np.full((n, 2), np.nan)

        if unclaimed is None:
            candidates = np.arange(n)
        else:
            candidates = np.flatnonzero(unclaimed)

        if candidates.size == 0:
            return SpatialGrid(ndc=ndc, cells={}, resolution=self.resolution,
                               padding=self.padding)

        projected = np.asarray(camera.project(positions[candidates]), dtype=np.float64)

        finite = np.isfinite(projected).all(axis=1)
        with np.errstate(invalid="ignore"):
            on_screen = (np.abs(projected) <= self.padding).all(axis=1)
        keep = finite & on_screen

        kept_idx = candidates[keep]
        kept_ndc = projected[keep]
        ndc[kept_idx] = kept_ndc

        cell_size = 2.0 * self.padding / self.resolution
        cell_xy = np.floor((kept_ndc + self.padding) / cell_size).astype(np.int64)
        np.clip(cell_xy, 0, self.resolution - 1, out=cell_xy)

        cells: Dict[Tuple[int, int], np.ndarray] = {}
        if kept_idx.size:
            keys = cell_xy[:, 0] * self.resolution + cell_xy[:, 1]
            order = np.argsort(keys, kind="stable")
            sorted_keys = keys[order]
            boundaries = np.flatnonzero(np.diff(sorted_keys)) + 1
            for group in np.split(order, boundaries):
                key = int(keys[group[0]])
                cells[(key // self.resolution, key % self.resolution)] = kept_idx[group]

        return SpatialGrid(ndc=ndc, cells=cells, resolution=self.resolution,
                           padding=self.padding)


class CandidateGenerator:
    """
    Find 2x2 cell windows holding enough unclaimed particles.

    This is a cheap pre-filter: it counts, it does not match shapes.
    """

    def __init__(self, min_particles: int = 4):
        self.min_particles = min_particles

    def generate(self, grid: SpatialGrid) -> List[Block]:
        """
        Scan every 2x2 window of the grid.

        Args:
            grid: Spatial grid for this search tick

        Returns:
            List of candidate blocks (empty on a sparse screen)
        """
        blocks: List[Block] = []
        if not grid.cells:
            return blocks

        extent = 2.0 * grid.cell_size
        empty = np.zeros(0, dtype=np.intp)

        for ix in range(grid.resolution - 1):
            for iy in range(grid.resolution - 1):
                parts = [
                    grid.cells.get((ix + dx, iy + dy), empty)
                    for dx in (0, 1) for dy in (0, 1)
                ]
                count = sum(len(p) for p in parts)
                if count < self.min_particles:
                    continue

                indices = np.concatenate(parts)
                centroid = grid.ndc[indices].mean(axis=0)
                blocks.append(Block(indices=indices, centroid=centroid, extent=extent))

        return blocks
