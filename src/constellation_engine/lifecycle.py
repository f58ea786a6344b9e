"""
Constellation lifecycle.

Every live constellation moves through Forming -> Active -> Fading ->
Dissolved. The phase is a tagged variant: each phase class carries only the
fields that are meaningful while it lasts, so edge progress and flash timers
exist only while the figure is still drawing in.

Timeline of a figure:
    Forming   edges draw in one after another, each flashing once when done
    Active    held at full opacity while its particles are pushed apart
    Fading    opacity follows the lower of a spread ramp and a time ramp
    Dissolved claims released and geometry disposed together, then pruned
"""

from dataclasses import dataclass, field
from enum import Enum
import itertools
import logging
from typing import ClassVar, Dict, List, Optional, Tuple, Union

import numpy as np
from scipy.spatial.distance import pdist

from .claims import ClaimsTable
from .config import LifecycleConfig
from .geometry import LineGeometry, LineScene
from .patterns import Template


logger = logging.getLogger(__name__)

_EPS = 1e-9


class LifecycleState(Enum):
    """Lifecycle states, in the only order they may occur."""
    FORMING = 0
    ACTIVE = 1
    FADING = 2
    DISSOLVED = 3


@dataclass
class Forming:
    edge_progress: np.ndarray  # per edge, 0..1
    flash_remaining: np.ndarray  # per edge, seconds
    flashed: np.ndarray  # per edge, flash already triggered
    state: ClassVar[LifecycleState] = LifecycleState.FORMING

    @classmethod
    def start(cls, edge_count: int) -> "Forming":
        return cls(
            edge_progress=np.zeros(edge_count),
            flash_remaining=np.zeros(edge_count),
            flashed=np.zeros(edge_count, dtype=bool),
        )


@dataclass
class Active:
    started_at: float
    state: ClassVar[LifecycleState] = LifecycleState.ACTIVE


@dataclass
class Fading:
    started_at: float
    start_opacity: float
    edge_progress: np.ndarray
    wrapped: bool = False  # spread is meaningless after a boundary wrap
    state: ClassVar[LifecycleState] = LifecycleState.FADING


@dataclass
class Dissolved:
    state: ClassVar[LifecycleState] = LifecycleState.DISSOLVED


Phase = Union[Forming, Active, Fading, Dissolved]


@dataclass(eq=False)
class Constellation:
    """A template bound to claimed particles, with its animation state."""

    id: int
    template: Template
    indices: np.ndarray  # particle index per template point
    anchors: np.ndarray  # (stars, 3) world positions frozen at formation
    max_anchor_distance: float
    formed_at: float
    color: Tuple[float, float, float]
    geometry: LineGeometry
    phase: Phase = None
    opacity: float = 0.0
    spread_ratio: float = 1.0
    history: List[Tuple[LifecycleState, float]] = field(default_factory=list)

    def __post_init__(self):
        if self.phase is None:
            self.phase = Forming.start(self.template.edge_count)
        self.history.append((self.phase.state, self.formed_at))

    @property
    def state(self) -> LifecycleState:
        return self.phase.state

    @property
    def is_live(self) -> bool:
        return not isinstance(self.phase, Dissolved)

    @property
    def edge_progress(self) -> np.ndarray:
        if isinstance(self.phase, (Forming, Fading)):
            return self.phase.edge_progress
        if isinstance(self.phase, Active):
            return np.ones(self.template.edge_count)
        return np.zeros(self.template.edge_count)

    def age(self, time: float) -> float:
        return time - self.formed_at

    def transition(self, phase: Phase, time: float) -> None:
        if phase.state.value < self.phase.state.value:
            raise ValueError(f"Illegal transition {self.state.name} -> {phase.state.name}")
        logger.debug(f"Constellation {self.id} ({self.template.name}): "
                     f"{self.state.name} -> {phase.state.name} at t={time:.2f}")
        self.phase = phase
        self.history.append((phase.state, time))


def spread_ratio(positions: np.ndarray, anchors: np.ndarray, max_anchor_distance: float) -> float:
    """1 + mean displacement from anchor, relative to the formation size."""
    if max_anchor_distance <= 0:
        return 1.0
    displacement = np.linalg.norm(positions - anchors, axis=1)
    return 1.0 + float(displacement.mean()) / max_anchor_distance


def spread_opacity(ratio: float, fade_start: float, dissolve: float) -> float:
    """1 below fade_start, linear to 0 at dissolve."""
    if ratio <= fade_start:
        return 1.0
    return float(np.clip(1.0 - (ratio - fade_start) / (dissolve - fade_start), 0.0, 1.0))


class LifecycleManager:
    """
    Owns every live constellation and drives it through its phases.
    """

    def __init__(
        self,
        config: LifecycleConfig,
        claims: ClaimsTable,
        scene: LineScene,
        max_constellations: int = 3,
    ):
        self.config = config
        self.claims = claims
        self.scene = scene
        self.max_constellations = max_constellations
        self.constellations: List[Constellation] = []
        self._ids = itertools.count(1)

        self.spawned = 0
        self.dissolved = 0

    @property
    def live_count(self) -> int:
        return sum(1 for c in self.constellations if c.is_live)

    @property
    def has_capacity(self) -> bool:
        return self.live_count < self.max_constellations

    def active_template_names(self) -> Dict[str, int]:
        """Live instance count per template name."""
        counts: Dict[str, int] = {}
        for c in self.constellations:
            if c.is_live:
                counts[c.template.name] = counts.get(c.template.name, 0) + 1
        return counts

    def spawn(
        self,
        template: Template,
        indices: np.ndarray,
        positions: np.ndarray,
        time: float,
        color: Tuple[float, float, float],
    ) -> Optional[Constellation]:
        """
        Promote matched particles into a new Forming constellation.

        Args:
            template: Matched template
            indices: Particle index per template point
            positions: Shared (N, 3) world position buffer
            time: Simulation time
            color: Line color

        Returns:
            The new constellation, or None if it cannot be formed
        """
        indices = np.asarray(indices, dtype=np.intp)
        if len(indices) != template.star_count:
            raise ValueError(f"{template.name} needs {template.star_count} particles, got {len(indices)}")
        if not self.has_capacity:
            return None
        if self.claims.any_claimed(indices):
            logger.debug(f"Spawn of {template.name} refused: particles already claimed")
            return None

        anchors = np.array(positions[indices], dtype=np.float64)
        if not np.isfinite(anchors).all():
            return None
        max_distance = float(pdist(anchors).max())
        if not np.isfinite(max_distance) or max_distance <= _EPS:
            return None

        self.claims.claim(indices)
        geometry = LineGeometry(template.edge_count, color, name=template.name)
        constellation = Constellation(
            id=next(self._ids),
            template=template,
            indices=indices,
            anchors=anchors,
            max_anchor_distance=max_distance,
            formed_at=time,
            color=color,
            geometry=geometry,
        )
        self.scene.add(geometry)
        self.constellations.append(constellation)
        self.spawned += 1

        logger.info(f"Formed {template.name} #{constellation.id} at t={time:.2f}")
        return constellation

    def update(
        self,
        positions: np.ndarray,
        velocities: np.ndarray,
        camera,
        time: float,
        dt: float,
        boost: np.ndarray,
    ) -> None:
        """
        Advance every live constellation by one frame.

        Args:
            positions: Shared (N, 3) world positions, already integrated this frame
            velocities: Shared (N, 3) velocities (repulsion is added here)
            camera: Object with project((M, 3)) -> (M, 2) NDC
            time: Simulation time
            dt: Frame delta (flash countdown only)
            boost: Per-particle brightness boost, raised in place
        """
        for c in self.constellations:
            if not c.is_live:
                continue

            pts = np.asarray(positions[c.indices], dtype=np.float64)
            wrapped = self._wrapped(c, pts)
            phase = c.phase

            if isinstance(phase, Forming):
                self._advance_forming(c, phase, time, dt)
                if wrapped:
                    self._begin_fading(c, time, wrapped=True)
                elif self._forming_complete(phase):
                    c.transition(Active(started_at=time), time)
                    c.opacity = 1.0
            elif isinstance(phase, Active):
                c.opacity = 1.0
                if wrapped:
                    self._begin_fading(c, time, wrapped=True)
                else:
                    self._repel(c, pts, velocities)
                    c.spread_ratio = spread_ratio(pts, c.anchors, c.max_anchor_distance)
                    if c.spread_ratio >= self.config.spread_fade_start:
                        self._begin_fading(c, time)

            if not isinstance(c.phase, Fading):
                if c.age(time) >= self.config.min_lifetime and self._offscreen(pts, camera):
                    logger.debug(f"Constellation {c.id} drifted off screen")
                    self._begin_fading(c, time)

            if isinstance(c.phase, Fading):
                self._advance_fading(c, c.phase, pts, time, wrapped)
                if c.opacity <= 0.0:
                    self.dissolve(c, time)
                    continue

            self._update_geometry(c, pts)
            self._apply_boost(c, boost)

        self.prune()

    def dissolve(self, constellation: Constellation, time: Optional[float] = None) -> None:
        """Release claims and dispose geometry together."""
        if not constellation.is_live:
            return
        self.claims.release(constellation.indices)
        self.scene.remove(constellation.geometry)
        constellation.geometry.dispose()
        constellation.opacity = 0.0
        when = time if time is not None else constellation.history[-1][1]
        constellation.transition(Dissolved(), when)
        self.dissolved += 1
        logger.info(f"Dissolved {constellation.template.name} #{constellation.id}")

    def prune(self) -> None:
        self.constellations = [c for c in self.constellations if c.is_live]

    def dispose_all(self, time: Optional[float] = None) -> None:
        """Dissolve every live constellation (teardown)."""
        for c in self.constellations:
            self.dissolve(c, time)
        self.prune()

    # -- phase steps -----------------------------------------------------

    def _advance_forming(self, c: Constellation, phase: Forming, time: float, dt: float) -> None:
        cfg = self.config
        elapsed = c.age(time)
        starts = np.arange(c.template.edge_count) * cfg.edge_stagger

        # Flashes that started on an earlier frame count down by the frame delta
        counting = phase.flashed & (phase.flash_remaining > 0)
        phase.flash_remaining[counting] -= dt
        phase.flash_remaining[phase.flash_remaining <= _EPS] = 0.0

        progress = np.clip((elapsed - starts) / cfg.draw_duration, 0.0, 1.0)
        progress[progress >= 1.0 - _EPS] = 1.0
        phase.edge_progress[:] = np.maximum(phase.edge_progress, progress)

        # A flash starts at the exact crossing time, not at the frame that sees it
        finished = (phase.edge_progress >= 1.0) & ~phase.flashed
        overshoot = elapsed - (starts[finished] + cfg.draw_duration)
        phase.flashed[finished] = True
        phase.flash_remaining[finished] = np.clip(cfg.flash_duration - overshoot,
                                                  0.0, cfg.flash_duration)
        phase.flash_remaining[phase.flash_remaining <= _EPS] = 0.0

        forming_span = min(starts[-1] + cfg.draw_duration, cfg.max_forming_duration)
        c.opacity = float(np.clip(elapsed / forming_span, 0.0, 1.0)) if forming_span > 0 else 1.0

    @staticmethod
    def _forming_complete(phase: Forming) -> bool:
        return bool((phase.edge_progress >= 1.0).all() and (phase.flash_remaining <= 0.0).all())

    def _begin_fading(self, c: Constellation, time: float, wrapped: bool = False) -> None:
        if isinstance(c.phase, Fading):
            return
        c.transition(
            Fading(
                started_at=time,
                start_opacity=c.opacity,
                edge_progress=np.array(c.edge_progress, dtype=np.float64),
                wrapped=wrapped,
            ),
            time,
        )

    def _advance_fading(self, c: Constellation, phase: Fading, pts: np.ndarray,
                        time: float, wrapped: bool) -> None:
        cfg = self.config
        phase.wrapped = phase.wrapped or wrapped

        time_opacity = phase.start_opacity * (1.0 - (time - phase.started_at) / cfg.fade_duration)
        if phase.wrapped:
            opacity = time_opacity
        else:
            c.spread_ratio = spread_ratio(pts, c.anchors, c.max_anchor_distance)
            opacity = min(
                spread_opacity(c.spread_ratio, cfg.spread_fade_start, cfg.spread_dissolve),
                time_opacity,
            )
        c.opacity = float(np.clip(opacity, 0.0, 1.0))

    def _repel(self, c: Constellation, pts: np.ndarray, velocities: np.ndarray) -> None:
        """Push claimed particles away from their live centroid (screen plane)."""
        offsets = pts[:, :2] - pts[:, :2].mean(axis=0)
        lengths = np.hypot(offsets[:, 0], offsets[:, 1])
        ok = lengths > _EPS
        if not ok.any():
            return
        impulse = offsets[ok] / lengths[ok, None] * self.config.repulsion
        velocities[c.indices[ok], :2] += impulse.astype(velocities.dtype)

    def _wrapped(self, c: Constellation, pts: np.ndarray) -> bool:
        jump = np.abs(pts[:, :2] - c.anchors[:, :2])
        return bool((jump > self.config.wrap_threshold).any())

    def _offscreen(self, pts: np.ndarray, camera) -> bool:
        """True if no claimed particle projects inside the loose padding."""
        ndc = np.asarray(camera.project(pts), dtype=np.float64)
        finite = np.isfinite(ndc).all(axis=1)
        with np.errstate(invalid="ignore"):
            inside = (np.abs(ndc) <= self.config.offscreen_padding).all(axis=1)
        return not bool((finite & inside).any())

    def flash_multiplier(self, c: Constellation) -> float:
        if not isinstance(c.phase, Forming) or self.config.flash_duration <= 0:
            return 1.0
        fraction = np.clip(c.phase.flash_remaining / self.config.flash_duration, 0.0, 1.0)
        return float(np.max(1.0 + (self.config.flash_intensity - 1.0) * fraction))

    def _update_geometry(self, c: Constellation, pts: np.ndarray) -> None:
        edges = np.asarray(c.template.edges)
        start = pts[edges[:, 0]]
        end = pts[edges[:, 1]]
        progress = c.edge_progress[:, None]

        tip = start + (end - start) * progress
        # An edge spanning a boundary wrap collapses instead of streaking across the screen
        torn = (np.abs(end[:, :2] - start[:, :2]) > self.config.wrap_threshold).any(axis=1)
        tip[torn] = start[torn]

        geometry = c.geometry
        geometry.positions[:, 0] = start
        geometry.positions[:, 1] = tip
        geometry.opacity = c.opacity * self.config.line_dim * self.flash_multiplier(c)

    def _apply_boost(self, c: Constellation, boost: np.ndarray) -> None:
        value = 1.0 + (self.config.star_boost_max - 1.0) * c.opacity
        boost[c.indices] = np.maximum(boost[c.indices], value)
