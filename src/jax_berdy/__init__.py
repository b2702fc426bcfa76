"""
JAX BERDY: sparse Bayesian estimation of dynamics for floating-base robots.

This library builds the BERDY linear system relating the dynamic variables
of a robot (link accelerations, wrenches, joint torques and accelerations) to
its rigid-body dynamics and to its sensor measurements, using JAX for the
spatial algebra and SciPy for the sparse matrices.
"""

import jax
jax.config.update("jax_enable_x64", True)

# Import core modules
from . import transforms
from . import core
from . import io
from . import dynamics
from . import estimation
from .estimation import BerdyHelper, BerdyOptions, BerdyVariants

__version__ = "0.1.0"
__all__ = ["transforms", "core", "io", "dynamics", "estimation", "BerdyHelper", "BerdyOptions", "BerdyVariants"]
