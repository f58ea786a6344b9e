"""
Command-line interface for the constellation engine.
"""

import sys
from pathlib import Path
from typing import Optional, Tuple
import logging

import click
import numpy as np
from tqdm import tqdm

from .config import Config
from .engine import ConstellationEngine
from .patterns import PatternLibrary


logger = logging.getLogger(__name__)


def _setup_logging(level: str) -> None:
    logging.basicConfig(
        level=getattr(logging, level.upper(), logging.INFO),
        format="%(asctime)s - %(name)s - %(levelname)s - %(message)s"
    )


@click.group()
@click.version_option(version="0.1.0")
def main():
    """Live Constellations - procedural star figures over a drifting particle swarm."""
    pass


@main.command()
@click.option(
    "-c", "--config",
    type=click.Path(exists=True, path_type=Path),
    help="Configuration YAML file"
)
@click.option(
    "-n", "--particles",
    type=int,
    default=4000,
    help="Number of particles"
)
@click.option(
    "-s", "--seconds",
    type=float,
    default=30.0,
    help="Simulated duration"
)
@click.option(
    "--fps",
    type=float,
    default=60.0,
    help="Frames per simulated second"
)
@click.option(
    "--seed",
    type=int,
    default=None,
    help="Random seed (overrides the config file)"
)
@click.option(
    "--parallax",
    type=float,
    nargs=2,
    default=(0.0, 0.0),
    show_default=True,
    help="Pointer position X Y in [-1, 1] that shifts the camera"
)
@click.option(
    "--snapshot",
    type=click.Path(path_type=Path),
    default=None,
    help="Write a preview PNG of the final frame"
)
@click.option(
    "-v", "--verbose",
    is_flag=True,
    help="Enable verbose output"
)
def simulate(
    config: Optional[Path],
    particles: int,
    seconds: float,
    fps: float,
    seed: Optional[int],
    parallax: Tuple[float, float],
    snapshot: Optional[Path],
    verbose: bool,
):
    """
    Run the engine headless over a random particle field.
    """
    from particle_field import ParticleField, PerspectiveCamera

    try:
        cfg = Config.from_yaml(config) if config else Config()
    except (TypeError, ValueError) as e:
        click.echo(click.style(f"✗ Invalid configuration: {e}", fg="red"))
        sys.exit(1)

    if seed is not None:
        cfg.seed = seed
    _setup_logging("DEBUG" if verbose else cfg.log_level)

    if particles <= 0 or seconds <= 0 or fps <= 0:
        click.echo(click.style("✗ --particles, --seconds and --fps must be positive", fg="red"))
        sys.exit(1)

    rng = np.random.default_rng(cfg.seed)
    field = ParticleField(count=particles, rng=rng)
    camera = PerspectiveCamera(aspect=16 / 9)
    camera.set_parallax(*parallax)
    engine = ConstellationEngine(field, camera, config=cfg, rng=rng)

    dt = 1.0 / fps
    frames = int(round(seconds * fps))
    click.echo(f"Simulating {particles} particles for {seconds:.1f}s at {fps:.0f} fps")

    try:
        time = 0.0
        for frame in tqdm(range(frames), desc="Simulating", unit="frame"):
            time = (frame + 1) * dt
            field.step()
            engine.update(time, dt)

        if snapshot is not None:
            from particle_field import PreviewRenderer

            renderer = PreviewRenderer()
            camera.set_aspect(renderer.width, renderer.height)
            renderer.render(
                field.positions,
                field.colors,
                field.twinkle(time) * engine.brightness_boost,
                camera,
                lines=engine.scene,
                network=field.proximity_lines(),
            )
            renderer.save(snapshot)
            click.echo(f"  Snapshot: {snapshot}")

        stats = engine.stats
        click.echo(click.style("✓ Simulation complete!", fg="green"))
        click.echo(f"  Frames: {stats.frames}")
        click.echo(f"  Searches: {stats.searches_run} (skipped {stats.searches_skipped})")
        click.echo(f"  Constellations formed: {stats.spawned}")
        click.echo(f"  Constellations dissolved: {stats.dissolved}")
        click.echo(f"  Live at end: {stats.live}")

    except Exception as e:
        click.echo(click.style(f"✗ Error: {e}", fg="red"))
        if verbose:
            import traceback
            traceback.print_exc()
        sys.exit(1)
    finally:
        engine.dispose()


@main.command()
def patterns():
    """
    List the constellation templates.
    """
    library = PatternLibrary()
    click.echo(f"Templates: {len(library)}")
    for template in library:
        click.echo(f"  {template.name:<12} stars={template.star_count} "
                   f"edges={template.edge_count} span={template.span:.2f}")


@main.command()
@click.argument("output_path", type=click.Path(path_type=Path))
def init_config(output_path: Path):
    """
    Create a default configuration file.
    """
    cfg = Config()
    cfg.to_yaml(output_path)
    click.echo(f"Created configuration file: {output_path}")


if __name__ == "__main__":
    main()
