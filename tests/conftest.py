"""Shared test fixtures."""

from __future__ import annotations

import numpy as np
import pytest

from constellation_engine.config import Config, LifecycleConfig
from constellation_engine.patterns import PatternLibrary, Template


class FlatCamera:
    """Orthographic stand-in: NDC = (world x, world y) / scale, minus a pan offset."""

    def __init__(self, scale: float = 500.0):
        self.scale = scale
        self.offset = np.zeros(2)

    def project(self, points):
        points = np.atleast_2d(np.asarray(points, dtype=np.float64))
        return (points[:, :2] - self.offset) / self.scale


class IdentityCamera:
    """World x/y already are NDC."""

    def project(self, points):
        points = np.atleast_2d(np.asarray(points, dtype=np.float64))
        return points[:, :2].copy()


class Swarm:
    """Minimal shared particle buffers."""

    def __init__(self, positions, velocities=None):
        self.positions = np.asarray(positions, dtype=np.float32)
        if velocities is None:
            velocities = np.zeros_like(self.positions)
        self.velocities = np.asarray(velocities, dtype=np.float32)

    def step(self):
        self.positions += self.velocities


TRIANGLE = Template.from_points("Triangle", [(0.0, 0.0), (1.0, 0.0), (0.0, 1.0)],
                                [(0, 1), (1, 2), (2, 0)])


def to_world(ndc: np.ndarray, scale: float = 500.0) -> np.ndarray:
    """Lift NDC points to z = 0 world points for FlatCamera."""
    ndc = np.atleast_2d(ndc)
    return np.hstack([ndc * scale, np.zeros((len(ndc), 1))])


@pytest.fixture
def library() -> PatternLibrary:
    return PatternLibrary()


@pytest.fixture
def config() -> Config:
    return Config()


@pytest.fixture
def lifecycle_config() -> LifecycleConfig:
    return LifecycleConfig(edge_stagger=0.4, draw_duration=0.5, flash_duration=0.3,
                           min_lifetime=100.0)


@pytest.fixture
def rng() -> np.random.Generator:
    return np.random.default_rng(1234)


@pytest.fixture
def flat_camera() -> FlatCamera:
    return FlatCamera()


@pytest.fixture
def identity_camera() -> IdentityCamera:
    return IdentityCamera()


@pytest.fixture
def triangle() -> Template:
    return TRIANGLE
