"""
OpenCV preview of the particle field and live constellations.

A quick-look renderer for headless runs. Particles are splatted with their
twinkle times boost brightness and the proximity network is added on top
at a fixed opacity. Constellation lines use their material opacity. No
bloom or tone mapping.
"""

from pathlib import Path
from typing import Iterable, Optional, Tuple

import cv2
import numpy as np


class PreviewRenderer:
    """Draw a frame into a BGR uint8 image."""

    def __init__(self, width: int = 1280, height: int = 720, background: int = 10):
        self.width = width
        self.height = height
        self.background = background
        self.network_opacity = 0.25
        self.image = np.full((height, width, 3), background, dtype=np.uint8)

    def to_pixels(self, ndc: np.ndarray) -> np.ndarray:
        """NDC (y up) to pixel coordinates (y down)."""
        px = (ndc[:, 0] + 1.0) * 0.5 * (self.width - 1)
        py = (1.0 - ndc[:, 1]) * 0.5 * (self.height - 1)
        return np.stack([px, py], axis=1)

    def render(
        self,
        positions: np.ndarray,
        colors: np.ndarray,
        brightness: np.ndarray,
        camera,
        lines: Optional[Iterable] = None,
        network: Optional[Tuple[np.ndarray, np.ndarray]] = None,
    ) -> np.ndarray:
        """
        Render particles and line geometries.

        Args:
            positions: (N, 3) world positions
            colors: (N, 3) HDR RGB particle colors
            brightness: (N,) per-particle brightness factor
            camera: Object with project((M, 3)) -> (M, 2) NDC
            lines: Line geometries with positions, color, opacity, visible
            network: Optional (segments, colors) from ParticleField.proximity_lines

        Returns:
            The rendered BGR image
        """
        self.image = np.full((self.height, self.width, 3), self.background, dtype=np.uint8)

        ndc = camera.project(positions)
        visible = np.isfinite(ndc).all(axis=1) & (np.abs(ndc) <= 1.0).all(axis=1)
        pixels = self.to_pixels(ndc[visible]).astype(np.int32)
        rgb = colors[visible] * brightness[visible, None]
        bgr = np.clip(rgb[:, ::-1] * 0.5 * 255, 0, 255).astype(np.uint8)

        for (x, y), color in zip(pixels, bgr):
            cv2.circle(self.image, (int(x), int(y)), 1, tuple(int(c) for c in color), -1)

        if network is not None:
            self._draw_network(*network, camera)

        for geometry in lines or []:
            if not geometry.visible or geometry.opacity <= 0:
                continue
            self._draw_lines(geometry, camera)

        return self.image

    def _draw_network(self, segments: np.ndarray, colors: np.ndarray, camera) -> None:
        """Additive proximity segments at the network's fixed material opacity."""
        if len(segments) == 0:
            return
        ndc = camera.project(segments.reshape(-1, 3)).reshape(-1, 2, 2)
        drawable = np.isfinite(ndc).all(axis=(1, 2))
        pixels = self.to_pixels(ndc[drawable].reshape(-1, 2)).astype(np.int32).reshape(-1, 2, 2)
        bgr = np.clip(colors[drawable][:, ::-1] * self.network_opacity * 0.5 * 255, 0, 255)

        layer = np.zeros_like(self.image)
        for (a, b_pt), color in zip(pixels, bgr.astype(np.uint8)):
            cv2.line(layer, tuple(int(v) for v in a), tuple(int(v) for v in b_pt),
                     tuple(int(c) for c in color), 1, cv2.LINE_AA)
        cv2.add(self.image, layer, dst=self.image)

    def _draw_lines(self, geometry, camera) -> None:
        segments = geometry.positions.reshape(-1, 3)
        ndc = camera.project(segments)
        if not np.isfinite(ndc).all():
            return
        pixels = self.to_pixels(ndc).astype(np.int32).reshape(-1, 2, 2)

        alpha = float(np.clip(geometry.opacity, 0.0, 1.0))
        r, g, b = (min(255, int(c * 0.5 * 255)) for c in geometry.color)
        overlay = self.image.copy()
        for a, b_pt in pixels:
            cv2.line(overlay, tuple(int(v) for v in a), tuple(int(v) for v in b_pt),
                     (b, g, r), 1, cv2.LINE_AA)
        cv2.addWeighted(overlay, alpha, self.image, 1 - alpha, 0, dst=self.image)

    def save(self, path: Path) -> None:
        path = Path(path)
        path.parent.mkdir(parents=True, exist_ok=True)
        if not cv2.imwrite(str(path), self.image):
            raise IOError(f"Could not write preview image: {path}")
