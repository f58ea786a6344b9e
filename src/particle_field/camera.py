"""
Perspective camera with pointer parallax.

Projects world points to normalized device coordinates (NDC, x right and
y up, visible range [-1, 1]) using the usual look-at view matrix and an
OpenGL-style perspective projection.
"""

from dataclasses import dataclass, field

import numpy as np


@dataclass
class PerspectiveCamera:
    """
    Pinhole perspective camera looking at the origin.

    The eye sits at `distance` on the +z axis and is shifted sideways by
    the smoothed pointer position (parallax).
    """
    fov_degrees: float = 75.0
    aspect: float = 16 / 9
    near: float = 1.0
    far: float = 2000.0
    distance: float = 500.0
    parallax_x: float = 60.0
    parallax_y: float = 40.0
    position: np.ndarray = field(default_factory=lambda: np.zeros(3))

    def __post_init__(self):
        self.position = np.array([0.0, 0.0, self.distance])

    def set_parallax(self, x: float, y: float) -> None:
        """
        Shift the eye by a pointer position.

        Args:
            x, y: Pointer position in [-1, 1] (screen right / up positive)
        """
        self.position = np.array([x * self.parallax_x, y * self.parallax_y, self.distance])

    def set_aspect(self, width: int, height: int) -> None:
        if width > 0 and height > 0:
            self.aspect = width / height

    @property
    def view_matrix(self) -> np.ndarray:
        """4x4 world-to-camera transform looking at the origin."""
        eye = self.position
        forward = -eye / np.linalg.norm(eye)
        up = np.array([0.0, 1.0, 0.0])
        side = np.cross(forward, up)
        side /= np.linalg.norm(side)
        true_up = np.cross(side, forward)

        view = np.eye(4)
        view[0, :3] = side
        view[1, :3] = true_up
        view[2, :3] = -forward
        view[:3, 3] = -view[:3, :3] @ eye
        return view

    @property
    def projection_matrix(self) -> np.ndarray:
        """4x4 OpenGL-style perspective projection."""
        f = 1.0 / np.tan(np.radians(self.fov_degrees) / 2)
        n, far = self.near, self.far
        return np.array([
            [f / self.aspect, 0, 0, 0],
            [0, f, 0, 0],
            [0, 0, (far + n) / (n - far), 2 * far * n / (n - far)],
            [0, 0, -1, 0],
        ])

    def project(self, points: np.ndarray) -> np.ndarray:
        """
        Project world points to NDC.

        Args:
            points: World positions, shape (N, 3) or (3,)

        Returns:
            NDC coordinates, shape (N, 2); NaN for points at or behind the eye
        """
        points = np.atleast_2d(np.asarray(points, dtype=np.float64))
        homogeneous = np.hstack([points, np.ones((len(points), 1))])
        clip = homogeneous @ (self.projection_matrix @ self.view_matrix).T

        w = clip[:, 3]
        ndc = np.full((len(points), 2), np.nan)
        valid = w > 1e-9
        ndc[valid] = clip[valid, :2] / w[valid, None]
        return ndc
