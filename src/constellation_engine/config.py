"""
Configuration management for the constellation engine.
"""

from dataclasses import dataclass, field
from pathlib import Path
from typing import Optional
import yaml


@dataclass
class SearchConfig:
    """Periodic cluster search configuration."""

    search_interval: float = 3.0  # seconds between scheduled searches
    max_constellations: int = 3
    grid_resolution: int = 12  # cells per axis
    screen_padding: float = 0.9  # NDC half-extent that is searched
    min_block_particles: int = 4
    max_sampled_blocks: int = 24
    match_budget: int = 32  # template/block matches per frame while a search runs

    # A frame slower than this skips the scheduled search
    max_search_frame_delta: float = 0.1


@dataclass
class MatcherConfig:
    """Shape matcher configuration."""

    pool_size_multiplier: int = 3
    rotation_steps: int = 12
    scale_variants: tuple[float, ...] = (0.8, 1.0, 1.25)
    max_point_residual: float = 2.4  # in units of the scale factor
    quality_threshold: float = 0.9


@dataclass
class SelectionConfig:
    """Pattern selection configuration."""

    top_k: int = 3
    temperature: float = 0.15
    active_penalty: float = 0.5
    cooldown_duration: float = 20.0  # seconds
    cooldown_penalty: float = 0.6
    span_bias_exponent: float = 0.5
    complexity_bias_exponent: float = 0.5


@dataclass
class LifecycleConfig:
    """Constellation animation and lifecycle configuration."""

    # Forming
    edge_stagger: float = 0.4  # seconds between edge starts
    draw_duration: float = 0.5
    flash_duration: float = 0.3
    flash_intensity: float = 2.5
    max_forming_duration: float = 3.0

    # Fading
    fade_duration: float = 3.0
    spread_fade_start: float = 1.8
    spread_dissolve: float = 2.5

    # Active
    repulsion: float = 0.004  # world units per frame

    # Teardown triggers
    wrap_threshold: float = 300.0  # world units on a single axis
    min_lifetime: float = 1.0
    offscreen_padding: float = 1.2

    # Appearance
    line_dim: float = 0.6
    star_boost_max: float = 3.0


@dataclass
class Config:
    """Main configuration container."""

    search: SearchConfig = field(default_factory=SearchConfig)
    matcher: MatcherConfig = field(default_factory=MatcherConfig)
    selection: SelectionConfig = field(default_factory=SelectionConfig)
    lifecycle: LifecycleConfig = field(default_factory=LifecycleConfig)

    seed: Optional[int] = None
    log_level: str = "INFO"

    def validate(self) -> None:
        """Raise ValueError on settings the engine cannot run with."""
        if self.search.grid_resolution < 2:
            raise ValueError("grid_resolution must be at least 2")
        if self.search.match_budget < 1:
            raise ValueError("match_budget must be at least 1")
        if self.search.max_constellations < 0:
            raise ValueError("max_constellations must be non-negative")
        if self.matcher.rotation_steps < 1:
            raise ValueError("rotation_steps must be at least 1")
        if not self.matcher.scale_variants:
            raise ValueError("scale_variants must not be empty")
        if self.selection.temperature <= 0:
            raise ValueError("temperature must be positive")
        if self.lifecycle.spread_dissolve <= self.lifecycle.spread_fade_start:
            raise ValueError("spread_dissolve must exceed spread_fade_start")
        if self.lifecycle.draw_duration <= 0 or self.lifecycle.fade_duration <= 0:
            raise ValueError("draw_duration and fade_duration must be positive")

    @classmethod
    def from_yaml(cls, path: Path) -> "Config":
        """Load configuration from YAML file."""
        with open(path, "r") as f:
            data = yaml.safe_load(f)
        return cls._from_dict(data or {})

    @classmethod
    def _from_dict(cls, data: dict) -> "Config":
        """Create Config from dictionary."""
        config = cls()

        if "search" in data:
            config.search = SearchConfig(**data["search"])
        if "matcher" in data:
            matcher_data = dict(data["matcher"])
            if "scale_variants" in matcher_data:
                matcher_data["scale_variants"] = tuple(matcher_data["scale_variants"])
            config.matcher = MatcherConfig(**matcher_data)
        if "selection" in data:
            config.selection = SelectionConfig(**data["selection"])
        if "lifecycle" in data:
            config.lifecycle = LifecycleConfig(**data["lifecycle"])

        config.seed = data.get("seed")
        config.log_level = data.get("log_level", "INFO")

        config.validate()
        return config

    def to_yaml(self, path: Path) -> None:
        """Save configuration to YAML file."""
        import dataclasses

        def convert(obj):
            if dataclasses.is_dataclass(obj):
                return {k: convert(v) for k, v in dataclasses.asdict(obj).items()}
            elif isinstance(obj, dict):
                return {k: convert(v) for k, v in obj.items()}
            elif isinstance(obj, tuple):
                return [convert(v) for v in obj]
            return obj

        data = convert(self)
        with open(path, "w") as f:
            yaml.dump(data, f, default_flow_style=False, sort_keys=False)
