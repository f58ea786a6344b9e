"""
Free-drifting particle swarm.

Owns the shared position and velocity buffers. Each frame every particle
moves by its velocity (one step per frame, not time-scaled) and wraps
around the x/y bounds. Consumers hold indices into these buffers, never
copies.
"""

from typing import Optional, Tuple

import numpy as np
from scipy.spatial import cKDTree


class ParticleField:
    """
    Shared particle state and its per-frame integration.
    """

    def __init__(
        self,
        count: int = 4000,
        spread: float = 1200.0,
        depth: float = 600.0,
        bound: float = 600.0,
        rng: Optional[np.random.Generator] = None,
        connection_distance: float = 120.0,
        max_connections: int = 200,
    ):
        """
        Initialize a random swarm.

        Args:
            count: Number of particles
            spread: Initial x/y extent (centred on the origin)
            depth: Initial z extent (centred on the origin)
            bound: Wrap-around half extent on x and y
            rng: Random source (default: fresh unseeded generator)
            connection_distance: Proximity network link distance (100 on small screens)
            max_connections: Proximity network segment cap (80 on small screens)
        """
        self.count = count
        self.bound = bound
        self.connection_distance = connection_distance
        self.max_connections = max_connections
        self.depth = depth
        rng = rng if rng is not None else np.random.default_rng()

        self.positions = np.empty((count, 3), dtype=np.float32)
        self.positions[:, 0] = (rng.random(count) - 0.5) * spread
        self.positions[:, 1] = (rng.random(count) - 0.5) * spread
        self.positions[:, 2] = (rng.random(count) - 0.5) * depth

        speed = 0.1 + rng.random(count) * 0.4
        angle = rng.random(count) * 2 * np.pi
        elevation = (rng.random(count) - 0.5) * np.pi
        self.velocities = np.empty((count, 3), dtype=np.float32)
        self.velocities[:, 0] = np.cos(angle) * np.cos(elevation) * speed
        self.velocities[:, 1] = np.sin(elevation) * speed
        self.velocities[:, 2] = np.sin(angle) * np.cos(elevation) * speed * 0.3

        # Twinkle parameters
        self.phases = (rng.random(count) * 2 * np.pi).astype(np.float32)
        self.speeds = (1.5 + rng.random(count) * 3.0).astype(np.float32)
        self.base_opacities = (0.3 + rng.random(count) * 0.7).astype(np.float32)

        # HDR depth gradient: near particles cyan, far ones violet
        t = (self.positions[:, 2] + depth / 2) / depth
        self.colors = np.stack([
            0.0 + (1.2 - 0.0) * t,
            2.0 + (0.8 - 2.0) * t,
            2.5 + (2.0 - 2.5) * t,
        ], axis=1).astype(np.float32)

    @classmethod
    def from_arrays(cls, positions: np.ndarray, velocities: Optional[np.ndarray] = None,
                    **kwargs) -> "ParticleField":
        """Wrap explicit buffers (used for scripted scenes and tests); kwargs go to __init__."""
        positions = np.asarray(positions, dtype=np.float32)
        swarm = cls(count=0, **kwargs)
        swarm.count = len(positions)
        swarm.positions = positions.copy()
        swarm.velocities = (np.zeros_like(swarm.positions) if velocities is None
                            else np.asarray(velocities, dtype=np.float32).copy())
        swarm.phases = np.zeros(swarm.count, dtype=np.float32)
        swarm.speeds = np.ones(swarm.count, dtype=np.float32)
        swarm.base_opacities = np.ones(swarm.count, dtype=np.float32)
        swarm.colors = np.ones((swarm.count, 3), dtype=np.float32)
        return swarm

    def step(self) -> None:
        """Integrate one frame and wrap x/y at the bounds."""
        self.positions += self.velocities

        for axis in (0, 1):
            coord = self.positions[:, axis]
            coord[coord > self.bound] = -self.bound
            coord[coord < -self.bound] = self.bound

    def twinkle(self, time: float) -> np.ndarray:
        """Per-particle brightness factor for the given time."""
        wave = 0.5 + 0.5 * np.sin(time * self.speeds + self.phases)
        return 0.3 + 0.7 * self.base_opacities * wave

    def proximity_lines(self) -> Tuple[np.ndarray, np.ndarray]:
        """
        Ambient network between nearby particles.

        Every `stride`-th particle is sampled (stride keeps the sample near
        2000). Sampled pairs closer than `connection_distance` are linked in
        index order until `max_connections` segments exist. Each segment is
        cyan, scaled by 1 - d^2 / connection_distance^2.

        Returns:
            ((M, 2, 3) segment endpoints, (M, 3) HDR RGB colors), float32
        """
        empty = (np.zeros((0, 2, 3), dtype=np.float32), np.zeros((0, 3), dtype=np.float32))
        stride = max(1, self.count // 2000)
        sample = np.arange(0, self.count, stride)
        if len(sample) < 2 or self.max_connections <= 0:
            return empty

        points = self.positions[sample].astype(np.float64)
        pairs = cKDTree(points).query_pairs(self.connection_distance, output_type="ndarray")
        if len(pairs) == 0:
            return empty

        dist_sq = self.connection_distance ** 2
        d2 = np.sum((points[pairs[:, 0]] - points[pairs[:, 1]]) ** 2, axis=1)
        keep = d2 < dist_sq
        pairs, d2 = pairs[keep], d2[keep]

        order = np.lexsort((pairs[:, 1], pairs[:, 0]))[: self.max_connections]
        pairs, d2 = pairs[order], d2[order]

        alpha = 1.0 - d2 / dist_sq
        segments = np.stack([points[pairs[:, 0]], points[pairs[:, 1]]], axis=1)
        colors = np.stack([np.zeros_like(alpha), 1.8 * alpha, 2.0 * alpha], axis=1)
        return segments.astype(np.float32), colors.astype(np.float32)
