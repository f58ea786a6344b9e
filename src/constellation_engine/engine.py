"""
Per-frame orchestration of the constellation engine.

This module ties the pieces together: every frame the lifecycle manager
advances the live constellations; every `search_interval` seconds the
spatial index, candidate generator, shape matcher and pattern selector
may spawn one new constellation. A search's matching work is capped per
frame (`match_budget`), so a busy screen spreads it over a few frames
instead of stalling one.

The caller owns the frame loop and must integrate particle drift before
calling `update`, so lines and brightness never lag a frame behind.
"""

import colorsys
from dataclasses import dataclass
import logging
from typing import List, Optional, Tuple

import numpy as np

from .claims import ClaimsTable
from .config import Config
from .geometry import LineScene
from .lifecycle import Constellation, LifecycleManager
from .patterns import PatternLibrary
from .selector import CooldownTable, PatternSelector, SearchRound
from .shape_matcher import ShapeMatcher
from .spatial_index import CandidateGenerator, SpatialIndexBuilder


logger = logging.getLogger(__name__)


@dataclass
class EngineStats:
    """Counters for a run of the engine."""

    frames: int = 0
    searches_run: int = 0
    searches_skipped: int = 0
    candidates_seen: int = 0
    matches_evaluated: int = 0
    spawned: int = 0
    dissolved: int = 0
    live: int = 0

    def summary(self) -> str:
        return (
            f"frames={self.frames} searches={self.searches_run} "
            f"(skipped {self.searches_skipped}) spawned={self.spawned} "
            f"dissolved={self.dissolved} live={self.live}"
        )


class ConstellationEngine:
    """
    Live constellation detection and animation over a shared particle swarm.
    """

    def __init__(
        self,
        particles,
        camera,
        config: Optional[Config] = None,
        library: Optional[PatternLibrary] = None,
        rng: Optional[np.random.Generator] = None,
        scene: Optional[LineScene] = None,
    ):
        """
        Initialize the engine.

        Args:
            particles: Object exposing shared `positions` and `velocities` (N, 3) arrays
            camera: Object with project((M, 3)) -> (M, 2) NDC
            config: Engine configuration (default: Config())
            library: Template catalog (default: embedded catalog)
            rng: Random source for sampling and colors (default: seeded from config)
            scene: Line scene the renderer reads (default: a new one)
        """
        self.config = config or Config()
        self.config.validate()
        self.particles = particles
        self.camera = camera
        self.library = library or PatternLibrary()
        self.rng = rng if rng is not None else np.random.default_rng(self.config.seed)
        self.scene = scene if scene is not None else LineScene()

        count = len(particles.positions)
        self.claims = ClaimsTable(count)
        self.brightness_boost = np.ones(count, dtype=np.float32)
        self.cooldowns = CooldownTable(self.config.selection.cooldown_duration)

        self._setup_components()

        self.next_search_at = self.config.search.search_interval
        self._round: Optional[SearchRound] = None
        self.stats = EngineStats()
        self.disposed = False

    def _setup_components(self) -> None:
        """Initialize all processing components."""
        cfg = self.config

        self.index_builder = SpatialIndexBuilder(
            resolution=cfg.search.grid_resolution,
            padding=cfg.search.screen_padding,
        )

        self.candidate_generator = CandidateGenerator(
            min_particles=max(cfg.search.min_block_particles, self.library.min_stars),
        )

        self.matcher = ShapeMatcher(
            pool_size_multiplier=cfg.matcher.pool_size_multiplier,
            rotation_steps=cfg.matcher.rotation_steps,
            scale_variants=cfg.matcher.scale_variants,
            max_point_residual=cfg.matcher.max_point_residual,
            quality_threshold=cfg.matcher.quality_threshold,
        )

        self.selector = PatternSelector(
            library=self.library,
            matcher=self.matcher,
            cooldowns=self.cooldowns,
            rng=self.rng,
            max_sampled_blocks=cfg.search.max_sampled_blocks,
            top_k=cfg.selection.top_k,
            temperature=cfg.selection.temperature,
            active_penalty=cfg.selection.active_penalty,
            cooldown_penalty=cfg.selection.cooldown_penalty,
            span_bias_exponent=cfg.selection.span_bias_exponent,
            complexity_bias_exponent=cfg.selection.complexity_bias_exponent,
        )

        self.lifecycle = LifecycleManager(
            config=cfg.lifecycle,
            claims=self.claims,
            scene=self.scene,
            max_constellations=cfg.search.max_constellations,
        )

    @property
    def constellations(self) -> List[Constellation]:
        return list(self.lifecycle.constellations)

    @property
    def searching(self) -> bool:
        """True while a search round is spread over frames."""
        return self._round is not None

    def update(self, time: float, dt: float) -> None:
        """
        Advance one frame.

        A due search is started here but only `match_budget` template/block
        matches run per frame; the round finishes on a later frame when the
        work does not fit.

        Args:
            time: Elapsed simulation time (seconds)
            dt: Frame delta (seconds)
        """
        if self.disposed:
            return

        self.brightness_boost.fill(1.0)
        self.lifecycle.update(
            self.particles.positions,
            self.particles.velocities,
            self.camera,
            time,
            dt,
            self.brightness_boost,
        )
        self.stats.frames += 1

        if self._round is not None:
            self._continue_search(time)
        elif time >= self.next_search_at:
            self.next_search_at = time + self.config.search.search_interval
            if dt > self.config.search.max_search_frame_delta:
                self.stats.searches_skipped += 1
                logger.debug(f"Skipping search at t={time:.2f}: slow frame ({dt * 1000:.0f} ms)")
            elif not self.lifecycle.has_capacity:
                logger.debug(f"Skipping search at t={time:.2f}: at capacity")
            elif self._start_search(time):
                self._continue_search(time)

        self._sync_stats()

    def search(self, time: float) -> Optional[Constellation]:
        """
        Run one complete cluster search now and spawn at most one constellation.

        Args:
            time: Simulation time

        Returns:
            The new constellation, or None
        """
        if not self._start_search(time):
            return None
        self.stats.matches_evaluated += self.selector.advance(self._round)
        return self._finish_search(time)

    def _start_search(self, time: float) -> bool:
        """Index the screen and lay out a search round. False if there is nothing to match."""
        if not self.lifecycle.has_capacity:
            return False

        self.stats.searches_run += 1
        grid = self.index_builder.build(
            self.particles.positions,
            self.camera,
            unclaimed=self.claims.unclaimed_mask(),
        )
        blocks = self.candidate_generator.generate(grid)
        self.stats.candidates_seen += len(blocks)
        if not blocks:
            logger.debug(f"No candidate blocks at t={time:.2f} ({grid.num_indexed} particles indexed)")
            return False

        self._round = self.selector.start_round(
            blocks, grid.ndc, self.lifecycle.active_template_names())
        return True

    def _continue_search(self, time: float) -> None:
        self.stats.matches_evaluated += self.selector.advance(
            self._round, self.config.search.match_budget)
        if self._round.done:
            self._finish_search(time)

    def _finish_search(self, time: float) -> Optional[Constellation]:
        search_round, self._round = self._round, None
        if not search_round.best:
            logger.debug(f"No template matched across {search_round.block_count} blocks")
            return None

        # Live templates may have dissolved while the round ran
        active = self.lifecycle.active_template_names()
        selection = self.selector.choose(search_round.best, active, time)
        if selection is None:
            return None

        constellation = self.lifecycle.spawn(
            selection.template,
            selection.match.indices,
            self.particles.positions,
            time,
            self.generate_color(),
        )
        if constellation is not None:
            self.cooldowns.start(selection.template.name, time)
        self._sync_stats()
        return constellation

    def generate_color(self) -> Tuple[float, float, float]:
        """HDR line color in the cyan-to-blue band."""
        hue = 0.48 + self.rng.random() * 0.14
        saturation = 0.5 + self.rng.random() * 0.3
        r, g, b = colorsys.hsv_to_rgb(hue, saturation, 1.0)
        return (2.0 * r, 2.0 * g, 2.0 * b)

    def dispose(self) -> None:
        """Release every claim and every line geometry. Safe to call twice."""
        if self.disposed:
            return
        self._round = None
        self.lifecycle.dispose_all()
        self.scene.clear()
        self.claims.clear()
        self.cooldowns.clear()
        self.brightness_boost.fill(1.0)
        self._sync_stats()
        self.disposed = True
        logger.info(f"Engine disposed: {self.stats.summary()}")

    def _sync_stats(self) -> None:
        self.stats.spawned = self.lifecycle.spawned
        self.stats.dissolved = self.lifecycle.dissolved
        self.stats.live = self.lifecycle.live_count
