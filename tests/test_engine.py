"""End-to-end tests for the constellation engine."""

from __future__ import annotations

import numpy as np
import pytest

from constellation_engine import Config, ConstellationEngine, LifecycleState
from constellation_engine.patterns import PatternLibrary
from particle_field import ParticleField, PerspectiveCamera
from tests.conftest import TRIANGLE, Swarm, to_world


def _cassiopeia_scene(library, noise=20):
    """Exact Cassiopeia inside the grid window centred on the origin, noise off screen."""
    template = library.get("Cassiopeia")
    # Window extent at resolution 12, padding 0.9 is 0.3; the 0.8 scale variant fits inside it
    scale = 0.3 * 0.8 / template.span
    shape = to_world(template.points * scale)
    far = to_world(np.column_stack([np.full(noise, 5.0), np.linspace(-3, 3, noise)]))
    return Swarm(np.vstack([shape, far]))


def _config(**search):
    cfg = Config(seed=3)
    cfg.search.search_interval = 1.0
    for key, value in search.items():
        setattr(cfg.search, key, value)
    cfg.selection.top_k = 1
    return cfg


def test_search_spawns_exact_cluster(library, flat_camera):
    swarm = _cassiopeia_scene(library)
    engine = ConstellationEngine(swarm, flat_camera, config=_config(), library=library)

    engine.update(0.5, 1 / 60)
    assert engine.constellations == []

    engine.update(1.0, 1 / 60)
    [c] = engine.constellations
    assert c.template.name == "Cassiopeia"
    assert c.indices.tolist() == [0, 1, 2, 3, 4]
    assert c.state is LifecycleState.FORMING
    assert engine.claims.count == 5
    assert len(engine.scene) == 1
    assert engine.stats.searches_run == 1
    assert engine.stats.spawned == 1
    assert engine.cooldowns.remaining_fraction("Cassiopeia", 1.0) == pytest.approx(1.0)
    assert engine.next_search_at == pytest.approx(2.0)


def test_claimed_particles_are_not_searched_again(library, flat_camera):
    swarm = _cassiopeia_scene(library)
    engine = ConstellationEngine(swarm, flat_camera, config=_config(), library=library)
    engine.update(1.0, 1 / 60)
    engine.update(2.0, 1 / 60)

    assert engine.stats.searches_run == 2
    assert len(engine.constellations) == 1
    assert engine.claims.count == 5


def test_slow_frame_skips_search(library, flat_camera):
    swarm = _cassiopeia_scene(library)
    engine = ConstellationEngine(swarm, flat_camera, config=_config(), library=library)

    engine.update(1.0, 0.5)
    assert engine.stats.searches_skipped == 1
    assert engine.stats.searches_run == 0
    assert engine.constellations == []
    # Rescheduled rather than retried next frame
    engine.update(1.1, 1 / 60)
    assert engine.constellations == []
    engine.update(2.0, 1 / 60)
    assert len(engine.constellations) == 1


def test_no_search_without_capacity(library, flat_camera):
    swarm = _cassiopeia_scene(library)
    engine = ConstellationEngine(swarm, flat_camera, config=_config(max_constellations=0),
                                 library=library)
    engine.update(1.0, 1 / 60)

    assert engine.stats.searches_run == 0
    assert engine.search(1.0) is None
    assert engine.claims.count == 0


def test_sparse_screen_spawns_nothing(library, flat_camera):
    positions = to_world(np.array([[-0.8, -0.8], [0.8, 0.8], [0.0, 0.5]]))
    engine = ConstellationEngine(Swarm(positions), flat_camera, config=_config(), library=library)
    engine.update(1.0, 1 / 60)

    assert engine.stats.searches_run == 1
    assert engine.stats.candidates_seen == 0
    assert engine.constellations == []


def test_dispose_releases_everything(library, flat_camera):
    swarm = _cassiopeia_scene(library)
    engine = ConstellationEngine(swarm, flat_camera, config=_config(), library=library)
    engine.update(1.0, 1 / 60)
    [c] = engine.constellations

    engine.dispose()
    engine.dispose()

    assert engine.claims.count == 0
    assert len(engine.scene) == 0
    assert c.geometry.disposed
    assert c.state is LifecycleState.DISSOLVED
    assert np.all(engine.brightness_boost == 1.0)

    frames = engine.stats.frames
    engine.update(2.0, 1 / 60)
    assert engine.stats.frames == frames


def test_generate_color_is_cyan_blue_hdr(library, flat_camera):
    engine = ConstellationEngine(_cassiopeia_scene(library), flat_camera, config=_config(),
                                 library=library)
    for _ in range(20):
        r, g, b = engine.generate_color()
        assert max(r, g, b) == pytest.approx(2.0)
        assert r < g and r < b


def test_invalid_config_rejected(flat_camera):
    cfg = Config()
    cfg.selection.temperature = 0.0
    with pytest.raises(ValueError):
        ConstellationEngine(Swarm(np.zeros((4, 3))), flat_camera, config=cfg)


def _counting(engine, monkeypatch):
    calls = []
    match = engine.matcher.match

    def counted(*args, **kwargs):
        calls.append(args[2].name)
        return match(*args, **kwargs)

    monkeypatch.setattr(engine.matcher, "match", counted)
    return calls


def test_search_work_is_spread_across_frames(library, flat_camera, monkeypatch):
    # Two templates guarantee at least two template/block pairs per round
    library = PatternLibrary([library.get("Cassiopeia"), TRIANGLE])
    engine = ConstellationEngine(_cassiopeia_scene(library), flat_camera,
                                 config=_config(match_budget=1), library=library)
    calls = _counting(engine, monkeypatch)

    engine.update(1.0, 1 / 60)
    assert len(calls) == 1
    assert engine.searching
    assert engine.constellations == []
    total = len(engine._round.pairs)
    assert total >= 2

    time = 1.0
    while engine.searching:
        time += 1 / 60
        before = len(calls)
        engine.update(time, 1 / 60)
        assert len(calls) - before <= 1

    assert len(calls) == total
    assert engine.stats.matches_evaluated == total
    assert engine.stats.searches_run == 1
    assert len(engine.constellations) == 1
    assert engine.claims.count == engine.constellations[0].template.star_count


def test_direct_search_runs_the_whole_round(library, flat_camera, monkeypatch):
    library = PatternLibrary([library.get("Cassiopeia"), TRIANGLE])
    engine = ConstellationEngine(_cassiopeia_scene(library), flat_camera,
                                 config=_config(match_budget=1), library=library)
    calls = _counting(engine, monkeypatch)

    c = engine.search(1.0)
    assert c is not None
    assert not engine.searching
    assert len(calls) == engine.stats.matches_evaluated >= 2


def test_dispose_drops_a_pending_search(library, flat_camera):
    library = PatternLibrary([library.get("Cassiopeia"), TRIANGLE])
    engine = ConstellationEngine(_cassiopeia_scene(library), flat_camera,
                                 config=_config(match_budget=1), library=library)
    engine.update(1.0, 1 / 60)
    assert engine.searching

    engine.dispose()
    assert not engine.searching
    assert engine.constellations == []


def test_invariants_hold_over_a_long_random_run():
    rng = np.random.default_rng(5)
    field = ParticleField(count=3000, rng=rng)
    camera = PerspectiveCamera()
    cfg = Config(seed=5)
    cfg.search.search_interval = 0.5
    engine = ConstellationEngine(field, camera, config=cfg, rng=rng)
    max_live = cfg.search.max_constellations
    seen = {}

    dt = 1 / 30
    for frame in range(900):
        time = (frame + 1) * dt
        field.step()
        engine.update(time, dt)

        live = engine.constellations
        assert len(live) <= max_live

        owned = np.zeros(field.count, dtype=int)
        for c in live:
            seen[c.id] = c
            assert len(c.indices) == c.template.star_count
            assert 0.0 <= c.opacity <= 1.0
            owned[c.indices] += 1
        assert owned.max(initial=0) <= 1
        assert np.array_equal(owned.astype(bool), ~engine.claims.unclaimed_mask())
        assert len(engine.scene) == len(live)
        assert np.all(engine.brightness_boost >= 1.0)

    assert engine.stats.searches_run > 0
    assert engine.stats.spawned > 0
    assert engine.stats.dissolved > 0
    assert engine.stats.spawned - engine.stats.dissolved == engine.stats.live
    dissolved_in_run = {c.id for c in seen.values() if not c.is_live}

    engine.dispose()
    assert engine.claims.count == 0
    assert len(seen) == engine.stats.spawned

    for c in seen.values():
        states = [s for s, _ in c.history]
        values = [s.value for s in states]
        assert states[0] is LifecycleState.FORMING
        assert states[-1] is LifecycleState.DISSOLVED
        # States only ever move forward, never repeat
        assert values == sorted(set(values))
        times = [t for _, t in c.history]
        assert times == sorted(times)
        if c.id in dissolved_in_run:
            # Natural dissolution always goes through a fade
            assert states[-2] is LifecycleState.FADING
