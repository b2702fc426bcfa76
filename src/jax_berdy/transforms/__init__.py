"""
JAX spatial algebra used by the rigid-body and estimation code.

This module provides:
- SO(3) rotations (so3 module)
- SE(3) homogeneous transforms and adjoints (se3 module)
- 6D motion/force vector algebra and spatial inertia (spatial module)

All functions are pure and stateless.
"""

from . import so3
from . import se3
from . import spatial

__all__ = [
    "so3",
    "se3",
    "spatial",
]
