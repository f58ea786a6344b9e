"""Tests for the template shape matcher."""

from __future__ import annotations

import numpy as np
import pytest

from constellation_engine.shape_matcher import ShapeMatcher


def _place(template, angle, scale, centroid):
    c, s = np.cos(angle), np.sin(angle)
    rotation = np.array([[c, -s], [s, c]])
    return template.points @ rotation.T * scale + centroid


def _scene(template, angle, multiplier, extent, centroid, slots, total=10):
    """NDC array with the template placed exactly at `slots`, noise elsewhere."""
    scale = extent * multiplier / template.span
    ndc = np.empty((total, 2))
    noise = [i for i in range(total) if i not in slots]
    ndc[noise] = centroid + np.array([0.6, 0.6]) + 0.05 * np.arange(len(noise))[:, None]
    ndc[slots] = _place(template, angle, scale, centroid)
    return ndc, scale


def test_exact_transform_recovers_assignment(library):
    template = library.get("Cassiopeia")
    matcher = ShapeMatcher(rotation_steps=12, scale_variants=(0.8, 1.0, 1.25))
    slots = [7, 2, 9, 4, 0]
    centroid = np.array([0.1, -0.2])
    ndc, scale = _scene(template, matcher.angles[3], 1.0, 0.4, centroid, slots)

    match = matcher.match(ndc, np.arange(10), template, centroid, extent=0.4)

    assert match is not None
    assert match.indices.tolist() == slots
    assert match.score == pytest.approx(0.0, abs=1e-9)
    assert match.angle == pytest.approx(np.pi / 2)
    assert match.scale == pytest.approx(scale)


def test_exact_match_at_other_scale_variant(library):
    template = library.get("Orion")
    matcher = ShapeMatcher()
    slots = [1, 3, 5, 7, 9, 11, 13]
    centroid = np.array([-0.3, 0.25])
    ndc, _ = _scene(template, matcher.angles[7], 0.8, 0.3, centroid, slots, total=16)

    match = matcher.match(ndc, np.arange(16), template, centroid, extent=0.3)

    assert match is not None
    assert match.indices.tolist() == slots
    assert match.score < 1e-9


def test_too_few_particles_is_no_match(library):
    template = library.get("Big Dipper")
    ndc = np.zeros((5, 2))
    assert ShapeMatcher().match(ndc, np.arange(5), template, np.zeros(2), 0.3) is None


def test_nonfinite_inputs_are_no_match(library):
    template = library.get("Crux")
    ndc = np.random.default_rng(0).uniform(-0.1, 0.1, size=(8, 2))
    matcher = ShapeMatcher()
    assert matcher.match(ndc, np.arange(8), template, np.array([np.nan, 0.0]), 0.3) is None
    assert matcher.match(ndc, np.arange(8), template, np.zeros(2), 0.0) is None

    ndc[:5] = np.nan
    assert matcher.match(ndc, np.arange(8), template, np.zeros(2), 0.3) is None


def test_random_scatter_fails_strict_threshold(library, rng):
    template = library.get("Cassiopeia")
    ndc = rng.uniform(-0.15, 0.15, size=(12, 2))
    matcher = ShapeMatcher(quality_threshold=0.02)
    assert matcher.match(ndc, np.arange(12), template, ndc.mean(axis=0), 0.3) is None


def test_single_outlier_rejected_by_worst_residual(library):
    template = library.get("Cassiopeia")
    matcher = ShapeMatcher(max_point_residual=0.1, quality_threshold=10.0)
    slots = [0, 1, 2, 3, 4]
    centroid = np.zeros(2)
    ndc, scale = _scene(template, 0.0, 1.0, 0.4, centroid, slots, total=5)
    ndc[2] += np.array([0.5, 0.5]) * scale

    assert matcher.match(ndc, np.arange(5), template, centroid, extent=0.4) is None


def test_pool_is_bounded_and_sorted():
    matcher = ShapeMatcher(pool_size_multiplier=2)
    ndc = np.array([[0.5, 0.0], [0.1, 0.0], [0.3, 0.0], [0.2, 0.0], [0.4, 0.0], [0.0, 0.0]])
    pool = matcher.build_pool(ndc, np.arange(6), np.zeros(2), star_count=2)
    assert pool.tolist() == [5, 1, 3, 2]
