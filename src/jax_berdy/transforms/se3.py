"""SE(3) homogeneous transforms in JAX.

Transforms are 4x4 matrices ``A_H_B`` mapping coordinates of frame B to
frame A. Twists are 6D vectors ordered ``[vx, vy, vz, wx, wy, wz]`` and
wrenches are ordered ``[fx, fy, fz, tx, ty, tz]``.
"""


import jax
import jax.numpy as jnp

from . import so3

Array = jax.Array


def from_position_and_rotation(p: Array, R: Array) -> Array:
    """
    Construct SE(3) transform from position and rotation.

    Args:
        p: (..., 3) position vector
        R: (..., 3, 3) rotation matrix

    Returns:
        (..., 4, 4) homogeneous transformation matrix
    """
    batch_shape = jnp.broadcast_shapes(p.shape[:-1], R.shape[:-2])
    p = jnp.broadcast_to(p, batch_shape + (3,))
    R = jnp.broadcast_to(R, batch_shape + (3, 3))

    T = jnp.zeros(batch_shape + (4, 4), dtype=p.dtype)
    T = T.at[..., :3, :3].set(R)
    T = T.at[..., :3, 3].set(p)
    T = T.at[..., 3, 3].set(1.0)

    return T


def exp(twist: Array) -> Array:
    """
    SE(3) exponential map: convert twist to transformation matrix.

    A single-dof joint moving by ``q`` along the unit motion subspace ``S``
    displaces its child frame by ``exp(S * q)``.

    Args:
        twist: (..., 6) array of twists [vx, vy, vz, wx, wy, wz].

    Returns:
        (..., 4, 4) array of transformation matrices.
    """
    v, w = twist[..., :3], twist[..., 3:]
    angle = jnp.linalg.norm(w, axis=-1, keepdims=True)[..., None]

    eps = jnp.finfo(twist.dtype).eps
    R = so3.exp(w)

    angle_sq = angle * angle
    is_small_angle = angle < 1e-6

    # A = (1 - cos(theta)) / theta^2 ~ 1/2 - theta^2/24
    A = jnp.where(is_small_angle, 0.5 - angle_sq / 24.0, (1.0 - jnp.cos(angle)) / (angle_sq + eps))
    # B = (theta - sin(theta)) / theta^3 ~ 1/6 - theta^2/120
    B = jnp.where(is_small_angle, 1.0 / 6.0 - angle_sq / 120.0, (angle - jnp.sin(angle)) / (angle_sq * angle + eps))

    K = so3.skew_symmetric(w)
    I = jnp.broadcast_to(jnp.eye(3, dtype=twist.dtype), K.shape)

    # V = I + A*K + B*K^2
    V = I + A * K + B * jnp.matmul(K, K)
    t = jnp.einsum("...ij,...j->...i", V, v)

    return from_position_and_rotation(t, R)


def inverse(T: Array) -> Array:
    """
    Compute inverse of SE(3) transformation matrix.

    T^-1 = [[R^T, -R^T @ t], [0, 1]]

    Args:
        T: (..., 4, 4) transformation matrix

    Returns:
        (..., 4, 4) inverse transformation matrix
    """
    R_inv = jnp.swapaxes(T[..., :3, :3], -1, -2)
    t_inv = -jnp.einsum("...ij,...j->...i", R_inv, T[..., :3, 3])

    return from_position_and_rotation(t_inv, R_inv)


def get_position(T: Array) -> Array:
    """(..., 3) origin of frame B expressed in frame A."""
    return T[..., :3, 3]


def get_rotation(T: Array) -> Array:
    """(..., 3, 3) rotation part of the transform."""
    return T[..., :3, :3]


def adjoint(T: Array) -> Array:
    """
    Motion adjoint of ``A_H_B``: maps twists in B coordinates to A coordinates.

    Args:
        T: (..., 4, 4) transformation matrix

    Returns:
        (..., 6, 6) matrix [[R, [t]_x R], [0, R]]
    """
    R = T[..., :3, :3]
    t_skew = so3.skew_symmetric(T[..., :3, 3])
    zeros = jnp.zeros_like(R)

    top = jnp.concatenate([R, jnp.matmul(t_skew, R)], axis=-1)
    bottom = jnp.concatenate([zeros, R], axis=-1)

    return jnp.concatenate([top, bottom], axis=-2)


def adjoint_dual(T: Array) -> Array:
    """
    Force adjoint of ``A_H_B``: maps wrenches in B coordinates to A coordinates.

    This is the inverse transpose of :func:`adjoint`.

    Args:
        T: (..., 4, 4) transformation matrix

    Returns:
        (..., 6, 6) matrix [[R, 0], [[t]_x R, R]]
    """
    R = T[..., :3, :3]
    t_skew = so3.skew_symmetric(T[..., :3, 3])
    zeros = jnp.zeros_like(R)

    top = jnp.concatenate([R, zeros], axis=-1)
    bottom = jnp.concatenate([jnp.matmul(t_skew, R), R], axis=-1)

    return jnp.concatenate([top, bottom], axis=-2)
