"""Tests for configuration loading and validation."""

from __future__ import annotations

import pytest
import yaml

from constellation_engine.config import Config


def test_defaults_are_valid():
    cfg = Config()
    cfg.validate()
    assert cfg.search.search_interval == 3.0
    assert cfg.search.max_constellations == 3
    assert cfg.matcher.scale_variants == (0.8, 1.0, 1.25)
    assert cfg.lifecycle.spread_fade_start < cfg.lifecycle.spread_dissolve


def test_yaml_round_trip(tmp_path):
    cfg = Config(seed=42, log_level="DEBUG")
    cfg.search.max_constellations = 5
    cfg.matcher.scale_variants = (0.9, 1.1)
    path = tmp_path / "config.yaml"
    cfg.to_yaml(path)

    # Plain YAML, no Python-specific tags
    raw = yaml.safe_load(path.read_text())
    assert raw["matcher"]["scale_variants"] == [0.9, 1.1]

    loaded = Config.from_yaml(path)
    assert loaded == cfg


def test_partial_yaml_keeps_defaults(tmp_path):
    path = tmp_path / "partial.yaml"
    path.write_text("lifecycle:\n  fade_duration: 5.0\nseed: 7\n")
    cfg = Config.from_yaml(path)

    assert cfg.lifecycle.fade_duration == 5.0
    assert cfg.lifecycle.edge_stagger == 0.4
    assert cfg.seed == 7
    assert cfg.search == Config().search


def test_empty_yaml_gives_defaults(tmp_path):
    path = tmp_path / "empty.yaml"
    path.write_text("")
    assert Config.from_yaml(path) == Config()


def test_unknown_key_rejected(tmp_path):
    path = tmp_path / "bad.yaml"
    path.write_text("search:\n  search_every: 2.0\n")
    with pytest.raises(TypeError):
        Config.from_yaml(path)


@pytest.mark.parametrize("section, key, value", [
    ("search", "grid_resolution", 1),
    ("search", "max_constellations", -1),
    ("search", "match_budget", 0),
    ("matcher", "rotation_steps", 0),
    ("selection", "temperature", 0.0),
    ("lifecycle", "spread_dissolve", 1.5),
    ("lifecycle", "fade_duration", 0.0),
])
def test_invalid_values_rejected(tmp_path, section, key, value):
    path = tmp_path / "invalid.yaml"
    path.write_text(yaml.safe_dump({section: {key: value}}))
    with pytest.raises(ValueError):
        Config.from_yaml(path)
