"""SO(3) and so(3) operations in JAX.

This module implements the handful of rotation primitives the rigid-body
code needs: Rodrigues' exponential map, skew-symmetric matrices and the
roll-pitch-yaw convention used by URDF. All functions are pure and operate
on JAX arrays.
"""

import jax
import jax.numpy as jnp

Array = jax.Array


def exp(log_r: Array) -> Array:
    """
    SO(3) exponential map: convert axis-angle vector to rotation matrix.

    Args:
        log_r: (..., 3) array of axis-angle vectors

    Returns:
        (..., 3, 3) array of rotation matrices
    """
    angle = jnp.linalg.norm(log_r, axis=-1, keepdims=True)

    # Taylor expansion below the threshold, Rodrigues above it
    small_angle = angle < 1e-8
    cos_angle = jnp.where(small_angle, 1.0 - 0.5 * angle**2, jnp.cos(angle))
    sin_angle = jnp.where(small_angle, angle - angle**3 / 6.0, jnp.sin(angle))

    axis = jnp.where(angle > 1e-8, log_r / jnp.where(angle > 1e-8, angle, 1.0), log_r)
    K = skew_symmetric(axis)

    I = jnp.eye(3, dtype=log_r.dtype)
    I = jnp.broadcast_to(I, log_r.shape[:-1] + (3, 3))

    # R = I + sin(θ) K + (1 - cos(θ)) K²
    return I + sin_angle[..., None] * K + (1.0 - cos_angle)[..., None] * jnp.matmul(K, K)


def skew_symmetric(v: Array) -> Array:
    """
    Convert 3D vector to the skew-symmetric matrix of the cross product.

    ``skew_symmetric(a) @ b == cross(a, b)``.

    Args:
        v: (..., 3) vector

    Returns:
        (..., 3, 3) skew-symmetric matrix
    """
    zeros = jnp.zeros(v.shape[:-1], dtype=v.dtype)

    return jnp.stack([
        jnp.stack([zeros, -v[..., 2], v[..., 1]], axis=-1),
        jnp.stack([v[..., 2], zeros, -v[..., 0]], axis=-1),
        jnp.stack([-v[..., 1], v[..., 0], zeros], axis=-1)
    ], axis=-2)


def from_rpy(rpy: Array) -> Array:
    """
    Rotation matrix from roll-pitch-yaw angles, R = Rz(yaw) Ry(pitch) Rx(roll).

    Args:
        rpy: (3,) array of [roll, pitch, yaw] angles in radians

    Returns:
        (3, 3) rotation matrix
    """
    roll, pitch, yaw = rpy[0], rpy[1], rpy[2]
    one, zero = jnp.ones_like(roll), jnp.zeros_like(roll)

    R_x = jnp.array([
        [one, zero, zero],
        [zero, jnp.cos(roll), -jnp.sin(roll)],
        [zero, jnp.sin(roll), jnp.cos(roll)]
    ])
    R_y = jnp.array([
        [jnp.cos(pitch), zero, jnp.sin(pitch)],
        [zero, one, zero],
        [-jnp.sin(pitch), zero, jnp.cos(pitch)]
    ])
    R_z = jnp.array([
        [jnp.cos(yaw), -jnp.sin(yaw), zero],
        [jnp.sin(yaw), jnp.cos(yaw), zero],
        [zero, zero, one]
    ])

    return R_z @ R_y @ R_x
