"""
Exclusive particle claims.

A particle belongs to at most one live constellation. The table is the
single place where that rule is enforced: claims are added and released
all-or-nothing, and any violation raises ClaimError.
"""

import logging
from typing import Iterable

import numpy as np


logger = logging.getLogger(__name__)


class ClaimError(RuntimeError):
    """Raised when a claim or release would break claim exclusivity."""


class ClaimsTable:
    """Set of particle indices committed to live constellations."""

    def __init__(self, particle_count: int):
        self.particle_count = particle_count
        self._claimed = np.zeros(particle_count, dtype=bool)

    def _as_indices(self, indices: Iterable[int]) -> np.ndarray:
        if not isinstance(indices, np.ndarray):
            indices = list(indices)
        idx = np.asarray(indices, dtype=np.intp).ravel()
        if idx.size and (idx.min() < 0 or idx.max() >= self.particle_count):
            raise ClaimError(f"Particle index out of range [0, {self.particle_count})")
        if len(np.unique(idx)) != len(idx):
            raise ClaimError("Duplicate particle index in claim set")
        return idx

    def claim(self, indices: Iterable[int]) -> None:
        """
        Claim every index, or none of them.

        Raises:
            ClaimError: If any index is already claimed
        """
        idx = self._as_indices(indices)
        taken = idx[self._claimed[idx]]
        if taken.size:
            raise ClaimError(f"Particles already claimed: {taken.tolist()}")
        self._claimed[idx] = True

    def release(self, indices: Iterable[int]) -> None:
        """
        Release every index, or none of them.

        Raises:
            ClaimError: If any index is not currently claimed
        """
        idx = self._as_indices(indices)
        free = idx[~self._claimed[idx]]
        if free.size:
            raise ClaimError(f"Particles released twice: {free.tolist()}")
        self._claimed[idx] = False

    def is_claimed(self, index: int) -> bool:
        return bool(self._claimed[index])

    def any_claimed(self, indices: Iterable[int]) -> bool:
        return bool(self._claimed[self._as_indices(indices)].any())

    def unclaimed_mask(self) -> np.ndarray:
        """Boolean mask of particles free to join a new constellation (copy)."""
        return ~self._claimed

    @property
    def count(self) -> int:
        return int(self._claimed.sum())

    def clear(self) -> None:
        if self.count:
            logger.debug(f"Clearing {self.count} outstanding claims")
        self._claimed[:] = False
