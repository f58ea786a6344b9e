"""Tests for the template catalog."""

from __future__ import annotations

import numpy as np
import pytest
from scipy.spatial.distance import pdist

from constellation_engine.patterns import PatternLibrary, Template


def test_default_catalog(library):
    assert len(library) == 7
    assert "Orion" in library
    assert library.min_stars == 4
    assert library.get("Cassiopeia").star_count == 5


def test_template_is_centred_and_measured(library):
    for template in library:
        assert np.allclose(template.points.mean(axis=0), 0.0, atol=1e-12)
        assert template.span == pytest.approx(pdist(template.points).max())
        assert template.star_count == len(template.points)


def test_outer_points_come_first(library):
    template = library.get("Big Dipper")
    radii = template.radii[template.outer_first_order()]
    assert np.all(np.diff(radii) <= 0)


def test_template_arrays_are_read_only(library):
    template = library.get("Crux")
    with pytest.raises(ValueError):
        template.points[0, 0] = 10.0


def test_invalid_edge_rejected():
    with pytest.raises(ValueError):
        Template.from_points("Bad", [(0, 0), (1, 0)], [(0, 2)])
    with pytest.raises(ValueError):
        Template.from_points("Loop", [(0, 0), (1, 0)], [(1, 1)])


def test_degenerate_template_rejected():
    with pytest.raises(ValueError):
        Template.from_points("Dot", [(1, 1), (1, 1)], [(0, 1)])


def test_duplicate_names_rejected(triangle):
    with pytest.raises(ValueError):
        PatternLibrary([triangle, triangle])
