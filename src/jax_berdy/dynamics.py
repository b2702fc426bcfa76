"""Reference rigid-body algorithms: forward kinematics and Newton-Euler.

This module implements the recursive algorithms that produce physically
consistent link kinematics, joint wrenches, joint torques and sensor
readings for a RobotModel. BERDY does not use them to build its matrices;
they are the independent ground truth its matrices are checked against.

All link quantities are body-fixed: twists and proper accelerations are
``[linear; angular]`` and wrenches ``[force; torque]``, expressed in the link
frame. Joint wrenches are the wrenches the traversal parent exerts on the
traversal child, expressed in the child frame.
"""

from typing import Dict, NamedTuple, Protocol

import jax
import jax.numpy as jnp
import jax.random as jrandom
from jax import Array

from .core import RobotModel, SensorsList, SensorType, Traversal
from .core.sensors import SixAxisForceTorqueSensor
from .transforms import se3, so3, spatial


class LinkKinematics(NamedTuple):
    """Per-link kinematic quantities, indexed by link."""
    positions: Array              # (num_links, 4, 4) world_H_link
    velocities: Array             # (num_links, 6) body twists
    proper_accelerations: Array   # (num_links, 6) body accelerations minus gravity


class InternalWrenches(NamedTuple):
    """Result of the dynamic phase of the Recursive Newton-Euler Algorithm."""
    joint_wrenches: Array         # (num_joints, 6)
    joint_torques: Array          # (num_dofs,)
    base_wrench: Array            # (6,) wrench missing on the base for equilibrium


class DynamicsInputs(NamedTuple):
    """Free-floating state and external wrenches for the inverse dynamics."""
    world_H_base: Array
    base_velocity: Array
    base_proper_acceleration: Array
    joint_positions: Array
    joint_velocities: Array
    joint_accelerations: Array
    external_wrenches: Array      # (num_links, 6)


def forward_kinematics(
    robot: RobotModel,
    traversal: Traversal,
    world_H_base: Array,
    base_velocity: Array,
    base_proper_acceleration: Array,
    q: Array,
    dq: Array,
    ddq: Array,
) -> LinkKinematics:
    """Propagate positions, velocities and proper accelerations from the base.

    Args:
        robot: RobotModel containing the robot's kinematic structure
        traversal: Traversal rooted at the link the base quantities refer to
        world_H_base: (4, 4) pose of the base link
        base_velocity: (6,) body twist of the base link
        base_proper_acceleration: (6,) body proper acceleration of the base link
        q, dq, ddq: (num_dofs,) joint positions, velocities and accelerations

    Returns:
        LinkKinematics with one entry per link
    """
    positions = [None] * robot.nr_of_links
    velocities = [None] * robot.nr_of_links
    accelerations = [None] * robot.nr_of_links

    for link in traversal.order:
        if traversal.is_base(link):
            positions[link] = jnp.asarray(world_H_base)
            velocities[link] = jnp.asarray(base_velocity)
            accelerations[link] = jnp.asarray(base_proper_acceleration)
            continue

        parent = traversal.parent_links[link]
        joint = traversal.parent_joints[link]
        link_H_parent = robot.link_H_neighbor(joint, link, parent, q)
        X = se3.adjoint(link_H_parent)
        S = robot.motion_subspace(joint, link, q)
        dofs = robot.joint_dof_range(joint)
        S_dq = S * jnp.sum(dq[dofs])
        S_ddq = S * jnp.sum(ddq[dofs])

        positions[link] = positions[parent] @ se3.inverse(link_H_parent)
        velocities[link] = X @ velocities[parent] + S_dq
        accelerations[link] = (
            X @ accelerations[parent] + S_ddq + spatial.cross_motion(velocities[link]) @ S_dq
        )

    return LinkKinematics(
        positions=jnp.stack(positions),
        velocities=jnp.stack(velocities),
        proper_accelerations=jnp.stack(accelerations),
    )


def link_net_wrenches(robot: RobotModel, velocities: Array, proper_accelerations: Array) -> Array:
    """Sum of all the non-gravitational wrenches acting on every link.

    Returns:
        (num_links, 6) array with ``I a + v x* (I v)`` for every link
    """
    wrenches = []
    for link in range(robot.nr_of_links):
        I = robot.spatial_inertia(link)
        v = velocities[link]
        wrenches.append(I @ proper_accelerations[link] + spatial.cross_force(v) @ (I @ v))
    return jnp.stack(wrenches)


def inverse_dynamics(
    robot: RobotModel,
    traversal: Traversal,
    q: Array,
    velocities: Array,
    proper_accelerations: Array,
    external_wrenches: Array,
) -> InternalWrenches:
    """Dynamic phase of the Recursive Newton-Euler Algorithm.

    Walks the traversal from the leaves to the base, computing the wrench each
    joint transmits and its projection on the joint motion subspace.
    """
    net_wrenches = link_net_wrenches(robot, velocities, proper_accelerations)
    transmitted = [None] * robot.nr_of_links
    joint_wrenches = [jnp.zeros(6)] * robot.nr_of_joints
    joint_torques = jnp.zeros(robot.nr_of_dofs)
    base_wrench = jnp.zeros(6)

    for link in reversed(traversal.order):
        wrench = net_wrenches[link] - external_wrenches[link]
        for child in traversal.child_links[link]:
            child_joint = traversal.parent_joints[child]
            link_H_child = robot.link_H_neighbor(child_joint, link, child, q)
            wrench = wrench + se3.adjoint_dual(link_H_child) @ transmitted[child]
        transmitted[link] = wrench

        if traversal.is_base(link):
            base_wrench = wrench
            continue

        joint = traversal.parent_joints[link]
        joint_wrenches[joint] = wrench
        if robot.joint_nr_of_dofs(joint) > 0:
            S = robot.motion_subspace(joint, link, q)
            joint_torques = joint_torques.at[robot.joint_dof_range(joint)].set(S @ wrench)

    return InternalWrenches(
        joint_wrenches=jnp.stack(joint_wrenches) if robot.nr_of_joints else jnp.zeros((0, 6)),
        joint_torques=joint_torques,
        base_wrench=base_wrench,
    )


def predict_sensors_measurements(
    robot: RobotModel,
    sensors: SensorsList,
    traversal: Traversal,
    kinematics: LinkKinematics,
    joint_wrenches: Array,
    external_wrenches: Array,
) -> Dict[str, Array]:
    """Ideal readings of every sensor, keyed by sensor name.

    Accelerometers measure the proper classical linear acceleration of the
    sensor origin, gyroscopes and angular accelerometers the angular velocity
    and acceleration, contact sensors ``[tx, ty, fz]`` of the link external
    wrench, all expressed in the sensor frame.
    """
    measurements = {}
    for sensor in sensors:
        if isinstance(sensor, SixAxisForceTorqueSensor):
            joint = robot.joint_index(sensor.joint)
            child, parent = robot.joint_children[joint], robot.joint_parents[joint]
            if traversal.parent_joints[child] != joint:
                child, parent = parent, child
            applied = robot.link_index(sensor.applied_wrench_link)
            frame = robot.link_index(sensor.frame_link)

            world_H_child = kinematics.positions[child]
            wrench = joint_wrenches[joint]
            if applied == parent:
                parent_H_child = se3.inverse(kinematics.positions[parent]) @ world_H_child
                wrench = -se3.adjoint_dual(parent_H_child) @ wrench

            sensor_H_applied = (
                se3.inverse(sensor.link_H_sensor)
                @ se3.inverse(kinematics.positions[frame])
                @ kinematics.positions[applied]
            )
            measurements[sensor.name] = se3.adjoint_dual(sensor_H_applied) @ wrench
            continue

        link = robot.link_index(sensor.link)
        sensor_H_link = se3.inverse(sensor.link_H_sensor)
        v = se3.adjoint(sensor_H_link) @ kinematics.velocities[link]
        a = se3.adjoint(sensor_H_link) @ kinematics.proper_accelerations[link]

        if sensor.type is SensorType.ACCELEROMETER:
            measurements[sensor.name] = a[:3] + jnp.cross(v[3:], v[:3])
        elif sensor.type is SensorType.GYROSCOPE:
            measurements[sensor.name] = v[3:]
        elif sensor.type is SensorType.THREE_AXIS_ANGULAR_ACCELEROMETER:
            measurements[sensor.name] = a[3:]
        elif sensor.type is SensorType.THREE_AXIS_FORCE_TORQUE_CONTACT:
            wrench = se3.adjoint_dual(sensor_H_link) @ external_wrenches[link]
            measurements[sensor.name] = wrench[jnp.array([3, 4, 2])]

    return measurements


class DynamicsOracle(Protocol):
    """Source of physically consistent states for checking BERDY matrices."""

    def link_kinematics(
        self, robot: RobotModel, traversal: Traversal, inputs: DynamicsInputs
    ) -> LinkKinematics:
        ...

    def consistent_wrenches(
        self,
        robot: RobotModel,
        traversal: Traversal,
        inputs: DynamicsInputs,
        kinematics: LinkKinematics,
    ) -> InternalWrenches:
        ...


class RecursiveNewtonEulerOracle:
    """DynamicsOracle backed by :func:`forward_kinematics` and :func:`inverse_dynamics`."""

    def link_kinematics(self, robot, traversal, inputs):
        return forward_kinematics(
            robot,
            traversal,
            inputs.world_H_base,
            inputs.base_velocity,
            inputs.base_proper_acceleration,
            inputs.joint_positions,
            inputs.joint_velocities,
            inputs.joint_accelerations,
        )

    def consistent_wrenches(self, robot, traversal, inputs, kinematics):
        return inverse_dynamics(
            robot,
            traversal,
            inputs.joint_positions,
            kinematics.velocities,
            kinematics.proper_accelerations,
            inputs.external_wrenches,
        )


def random_dynamics_inputs(key: jax.Array, robot: RobotModel) -> DynamicsInputs:
    """Draw a random free-floating state and random external wrenches."""
    keys = jrandom.split(key, 8)
    num_dofs = robot.nr_of_dofs

    world_R_base = so3.exp(jrandom.uniform(keys[0], (3,), minval=-jnp.pi, maxval=jnp.pi))
    world_p_base = jrandom.uniform(keys[1], (3,), minval=-1.0, maxval=1.0)

    return DynamicsInputs(
        world_H_base=se3.from_position_and_rotation(world_p_base, world_R_base),
        base_velocity=jrandom.uniform(keys[2], (6,), minval=-1.0, maxval=1.0),
        base_proper_acceleration=jrandom.uniform(keys[3], (6,), minval=-10.0, maxval=10.0),
        joint_positions=jrandom.uniform(keys[4], (num_dofs,), minval=-jnp.pi, maxval=jnp.pi),
        joint_velocities=jrandom.uniform(keys[5], (num_dofs,), minval=-2.0, maxval=2.0),
        joint_accelerations=jrandom.uniform(keys[6], (num_dofs,), minval=-5.0, maxval=5.0),
        external_wrenches=jrandom.uniform(keys[7], (robot.nr_of_links, 6), minval=-10.0, maxval=10.0),
    )
