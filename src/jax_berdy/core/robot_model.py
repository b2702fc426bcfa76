"""RobotModel PyTree data structure for articulated rigid-body dynamics.

This module defines the core data structure for representing a robot as an
arena of links and joints addressed by dense integer indices, together with
the inertial parameters needed by the dynamics code.
"""

from typing import Tuple

import jax.numpy as jnp
from jax import Array
from flax import struct

from jax_berdy.transforms import se3, spatial

JOINT_TYPES = ("revolute", "prismatic", "fixed")


@struct.dataclass
class RobotModel:
    """Immutable PyTree representation of a robot's kinematic/dynamic tree.

    Every joint connects a parent link to a child link. Joint positions,
    velocities, accelerations and torques are stored in dof-indexed vectors;
    revolute and prismatic joints own one dof, fixed joints none.

    Attributes:
        link_names: Tuple of all link names. Index corresponds to link ID.
        joint_names: Tuple of all joint names, fixed joints included.
        joint_types: Tuple with one of ``JOINT_TYPES`` per joint.
        joint_parents: Tuple with the parent link index of every joint.
        joint_children: Tuple with the child link index of every joint.
        joint_dof_offsets: Tuple with the dof index of every joint, -1 if fixed.
        default_base_link: Index of the link with no parent joint.
        joint_origins: Array of shape (num_joints, 4, 4) with the SE(3)
                       transform parent_H_child at zero joint position.
        joint_axes: Array of shape (num_joints, 6) with the unit motion
                    subspace of each joint in the child frame, [v, w] format.
        link_masses: Array of shape (num_links,).
        link_coms: Array of shape (num_links, 3) with the center of mass of
                   each link in the link frame.
        link_inertias: Array of shape (num_links, 3, 3) with the rotational
                       inertia about the center of mass, link orientation.
    """
    link_names: Tuple[str, ...] = struct.field(pytree_node=False)
    joint_names: Tuple[str, ...] = struct.field(pytree_node=False)
    joint_types: Tuple[str, ...] = struct.field(pytree_node=False)
    joint_parents: Tuple[int, ...] = struct.field(pytree_node=False)
    joint_children: Tuple[int, ...] = struct.field(pytree_node=False)
    joint_dof_offsets: Tuple[int, ...] = struct.field(pytree_node=False)
    default_base_link: int = struct.field(pytree_node=False)
    joint_origins: Array
    joint_axes: Array
    link_masses: Array
    link_coms: Array
    link_inertias: Array

    @property
    def nr_of_links(self) -> int:
        return len(self.link_names)

    @property
    def nr_of_joints(self) -> int:
        return len(self.joint_names)

    @property
    def nr_of_dofs(self) -> int:
        return sum(1 for offset in self.joint_dof_offsets if offset >= 0)

    def link_index(self, name: str) -> int:
        try:
            return self.link_names.index(name)
        except ValueError:
            raise ValueError(f"Link '{name}' not found in robot model")

    def joint_index(self, name: str) -> int:
        try:
            return self.joint_names.index(name)
        except ValueError:
            raise ValueError(f"Joint '{name}' not found in robot model")

    def joint_nr_of_dofs(self, joint: int) -> int:
        return 0 if self.joint_dof_offsets[joint] < 0 else 1

    def joint_dof_range(self, joint: int) -> slice:
        """Slice of the dof vectors owned by ``joint`` (empty for fixed joints)."""
        offset = self.joint_dof_offsets[joint]
        if offset < 0:
            return slice(0, 0)
        return slice(offset, offset + 1)

    def joint_position(self, joint: int, q: Array) -> Array:
        offset = self.joint_dof_offsets[joint]
        return q[offset] if offset >= 0 else jnp.zeros((), dtype=self.joint_axes.dtype)

    def spatial_inertia(self, link: int) -> Array:
        """6x6 spatial inertia of ``link`` about its frame origin."""
        return spatial.spatial_inertia(
            self.link_masses[link], self.link_coms[link], self.link_inertias[link]
        )

    def parent_H_child(self, joint: int, q: Array) -> Array:
        """Transform from the joint's child link to its parent link at ``q``."""
        T_joint_motion = se3.exp(self.joint_axes[joint] * self.joint_position(joint, q))
        return self.joint_origins[joint] @ T_joint_motion

    def link_H_neighbor(self, joint: int, link: int, neighbor: int, q: Array) -> Array:
        """Transform ``link_H_neighbor`` across ``joint``, in either direction."""
        if link == self.joint_parents[joint] and neighbor == self.joint_children[joint]:
            return self.parent_H_child(joint, q)
        if link == self.joint_children[joint] and neighbor == self.joint_parents[joint]:
            return se3.inverse(self.parent_H_child(joint, q))
        raise ValueError(
            f"Joint '{self.joint_names[joint]}' does not connect links "
            f"'{self.link_names[link]}' and '{self.link_names[neighbor]}'"
        )

    def motion_subspace(self, joint: int, child: int, q: Array) -> Array:
        """Motion subspace of ``joint`` expressed in the frame of ``child``.

        ``child`` is the child of the joint in the traversal being used, which
        is the model parent when the traversal runs the joint backwards.
        """
        if child == self.joint_children[joint]:
            return self.joint_axes[joint]
        return -se3.adjoint(self.parent_H_child(joint, q)) @ self.joint_axes[joint]


def zero_dofs(model: RobotModel) -> Array:
    """A zero dof vector (positions, velocities, accelerations or torques)."""
    return jnp.zeros(model.nr_of_dofs)
