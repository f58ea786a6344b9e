"""
Template-to-cluster shape matching.

For one candidate block and one template, searches a discrete set of
rotation/scale variants around the block centroid and greedily assigns
particles to template points. Failures are returned as None, never raised.
Every (scale, angle) transform is scored in one vectorised pass per block.

Assignment order matters: outer template points are matched first so the
orientation is pinned down before the ambiguous central points are placed.
"""

from dataclasses import dataclass
from typing import Optional, Sequence

import numpy as np
from scipy.spatial.distance import cdist

from .patterns import Template


@dataclass
class Match:
    """A scored assignment of particles to template points."""

    indices: np.ndarray  # particle index per template point, template order
    score: float  # RMS residual / scale factor
    angle: float  # radians
    scale: float  # NDC units per template unit
    max_residual: float  # worst single-point residual / scale factor


class ShapeMatcher:
    """
    Discrete rotation/scale search with greedy nearest assignment.
    """

    def __init__(
        self,
        pool_size_multiplier: int = 3,
        rotation_steps: int = 12,
        scale_variants: Sequence[float] = (0.8, 1.0, 1.25),
        max_point_residual: float = 2.4,
        quality_threshold: float = 0.9,
    ):
        """
        Initialize the matcher.

        Args:
            pool_size_multiplier: Pool bound as a multiple of the star count
            rotation_steps: Number of evenly spaced rotation angles
            scale_variants: Multipliers applied to the block extent
            max_point_residual: Worst allowed point residual, in scale units
            quality_threshold: Worst accepted score
        """
        self.pool_size_multiplier = pool_size_multiplier
        self.rotation_steps = rotation_steps
        self.scale_variants = tuple(scale_variants)
        self.max_point_residual = max_point_residual
        self.quality_threshold = quality_threshold

        self.angles = 2.0 * np.pi * np.arange(rotation_steps) / rotation_steps
        cos, sin = np.cos(self.angles), np.sin(self.angles)
        self._rotations = np.stack([np.stack([cos, -sin], axis=-1),
                                    np.stack([sin, cos], axis=-1)], axis=1)

    def build_pool(
        self,
        ndc: np.ndarray,
        indices: np.ndarray,
        centroid: np.ndarray,
        star_count: int,
    ) -> np.ndarray:
        """Particle indices nearest the centroid, closest first, bounded in size."""
        pts = ndc[indices]
        finite = np.isfinite(pts).all(axis=1)
        indices = np.asarray(indices)[finite]
        pts = pts[finite]

        dist = np.hypot(pts[:, 0] - centroid[0], pts[:, 1] - centroid[1])
        order = np.argsort(dist, kind="stable")
        limit = max(star_count, self.pool_size_multiplier * star_count)
        return indices[order[:limit]]

    def match(
        self,
        ndc: np.ndarray,
        indices: np.ndarray,
        template: Template,
        centroid: np.ndarray,
        extent: float,
    ) -> Optional[Match]:
        """
        Find the best transform of a template onto a particle subset.

        Args:
            ndc: (N, 2) screen positions of all particles (NaN = not indexed)
            indices: Particle indices of the block
            template: Template to match
            centroid: Target center in NDC
            extent: Block side length in NDC

        Returns:
            Best Match, or None if no transform clears the thresholds
        """
        stars = template.star_count
        if len(indices) < stars or extent <= 0:
            return None
        if not np.isfinite(centroid).all():
            return None

        pool = self.build_pool(ndc, indices, centroid, stars)
        if len(pool) < stars:
            return None

        scales = extent * np.asarray(self.scale_variants) / template.span
        scales = scales[np.isfinite(scales) & (scales > 0)]
        if scales.size == 0:
            return None

        # (scales * angles, stars, 2), scale-major like a nested scale/angle loop
        rotated = np.matmul(template.points, self._rotations.transpose(0, 2, 1))
        targets = rotated[None] * scales[:, None, None, None] + centroid
        targets = targets.reshape(-1, stars, 2)
        transform_scales = np.repeat(scales, self.rotation_steps)

        slots, residuals = self._assign(targets, ndc[pool], template.outer_first_order())

        with np.errstate(invalid="ignore"):
            worst = residuals.max(axis=1) / transform_scales
            scores = np.sqrt(np.mean(residuals ** 2, axis=1)) / transform_scales
        valid = np.isfinite(worst) & (worst <= self.max_point_residual)
        if not valid.any():
            return None

        # argmin keeps the first of equal scores
        best = int(np.argmin(np.where(valid, scores, np.inf)))
        score = float(scores[best])
        if score > self.quality_threshold:
            return None

        return Match(
            indices=pool[slots[best]],
            score=score,
            angle=float(self.angles[best % self.rotation_steps]),
            scale=float(transform_scales[best]),
            max_residual=float(worst[best]),
        )

    @staticmethod
    def _assign(targets: np.ndarray, pool_pts: np.ndarray, order: np.ndarray):
        """
        Greedy nearest assignment, run for every transform at once.

        Args:
            targets: (T, stars, 2) template points placed by each transform
            pool_pts: (P, 2) candidate particle positions
            order: Template point order for the greedy pass

        Returns:
            (pool slot per transform and point, residual per transform and point);
            residuals are inf where a point could not be assigned
        """
        count, stars, _ = targets.shape
        dist = cdist(targets.reshape(-1, 2), pool_pts).reshape(count, stars, len(pool_pts))

        rows = np.arange(count)
        taken = np.zeros((count, len(pool_pts)), dtype=bool)
        slots = np.zeros((count, stars), dtype=np.intp)
        residuals = np.full((count, stars), np.inf)

        for point in order:
            row = np.where(taken, np.inf, dist[:, point, :])
            slot = np.argmin(row, axis=1)
            slots[:, point] = slot
            residuals[:, point] = row[rows, slot]
            taken[rows, slot] = True

        return slots, residuals
