# Particle Field
#
# The drift simulation, camera and preview renderer the constellation
# engine runs against.
#
# Basic usage:
#     from particle_field import ParticleField, PerspectiveCamera
#
#     field = ParticleField(count=4000)
#     camera = PerspectiveCamera(aspect=16 / 9)
#     field.step()
#     ndc = camera.project(field.positions)

from .drift import ParticleField
from .camera import PerspectiveCamera
from .preview import PreviewRenderer

__all__ = [
    'ParticleField',
    'PerspectiveCamera',
    'PreviewRenderer',
]
