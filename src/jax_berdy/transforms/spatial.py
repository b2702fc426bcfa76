"""6D spatial vector algebra for body-fixed rigid-body dynamics.

Motion vectors (twists, accelerations) are ``[linear; angular]`` and force
vectors (wrenches) are ``[force; torque]``, both expressed in a body frame.
"""

import jax
import jax.numpy as jnp

from . import so3

Array = jax.Array


def cross_motion(v: Array) -> Array:
    """
    Matrix of the motion cross product ``v x m``.

    Args:
        v: (6,) twist [u, w]

    Returns:
        (6, 6) matrix [[w^, u^], [0, w^]]
    """
    u_skew = so3.skew_symmetric(v[:3])
    w_skew = so3.skew_symmetric(v[3:])
    zeros = jnp.zeros((3, 3), dtype=v.dtype)

    return jnp.block([[w_skew, u_skew], [zeros, w_skew]])


def cross_force(v: Array) -> Array:
    """
    Matrix of the force cross product ``v x* f``, equal to ``-cross_motion(v).T``.

    Args:
        v: (6,) twist [u, w]

    Returns:
        (6, 6) matrix [[w^, 0], [u^, w^]]
    """
    u_skew = so3.skew_symmetric(v[:3])
    w_skew = so3.skew_symmetric(v[3:])
    zeros = jnp.zeros((3, 3), dtype=v.dtype)

    return jnp.block([[w_skew, zeros], [u_skew, w_skew]])


def spatial_inertia(mass: Array, com: Array, inertia_at_com: Array) -> Array:
    """
    6x6 spatial inertia of a rigid body about its frame origin.

    Args:
        mass: scalar mass
        com: (3,) center of mass in the body frame
        inertia_at_com: (3, 3) rotational inertia about the COM, body orientation

    Returns:
        (6, 6) matrix [[m I, -m c^], [m c^, I_c - m c^ c^]]
    """
    c_skew = so3.skew_symmetric(com)
    eye = jnp.eye(3, dtype=c_skew.dtype)

    return jnp.block([
        [mass * eye, -mass * c_skew],
        [mass * c_skew, inertia_at_com - mass * c_skew @ c_skew],
    ])


def classical_acceleration_bias(v: Array) -> Array:
    """
    Difference between the classical and the body acceleration of a frame.

    The classical linear acceleration of the frame origin is the body linear
    acceleration plus ``w x u``; the angular parts coincide.

    Args:
        v: (6,) twist [u, w] of the frame

    Returns:
        (6,) vector [w x u, 0]
    """
    return jnp.concatenate([jnp.cross(v[3:], v[:3]), jnp.zeros(3, dtype=v.dtype)])
