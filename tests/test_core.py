"""Tests for the link/joint arena, its traversals and the sensor descriptions."""

from pathlib import Path

import jax.numpy as jnp
import numpy as np
import pytest

from jax_berdy.core import (
    LinkSensor,
    RobotModel,
    SensorsList,
    SensorType,
    SixAxisForceTorqueSensor,
    compute_traversal,
)
from jax_berdy.exceptions import InconsistentSensorModelError
from jax_berdy.io import load_urdf
from jax_berdy.transforms import se3

FIXTURES = Path(__file__).parent / "fixtures"


def _bare_model(num_links, parents, children):
    """Massless model with revolute joints and identity origins."""
    num_joints = len(parents)
    return RobotModel(
        link_names=tuple(f"l{i}" for i in range(num_links)),
        joint_names=tuple(f"j{i}" for i in range(num_joints)),
        joint_types=("revolute",) * num_joints,
        joint_parents=tuple(parents),
        joint_children=tuple(children),
        joint_dof_offsets=tuple(range(num_joints)),
        default_base_link=0,
        joint_origins=jnp.tile(jnp.eye(4), (num_joints, 1, 1)),
        joint_axes=jnp.tile(jnp.array([0.0, 0.0, 0.0, 0.0, 0.0, 1.0]), (num_joints, 1)),
        link_masses=jnp.zeros(num_links),
        link_coms=jnp.zeros((num_links, 3)),
        link_inertias=jnp.zeros((num_links, 3, 3)),
    )


def test_traversal_from_default_base():
    robot = load_urdf(str(FIXTURES / "branched_tree.urdf"))
    traversal = compute_traversal(robot, robot.default_base_link)

    assert len(traversal) == robot.nr_of_links
    assert traversal.order[0] == traversal.base == 0
    assert traversal.parent_links[0] == -1
    assert traversal.parent_joints[0] == -1
    assert traversal.child_links[0] == (1, 2, 3, 4)
    for link in traversal.order[1:]:
        joint = traversal.parent_joints[link]
        assert robot.joint_children[joint] == link
        assert traversal.order.index(traversal.parent_links[link]) < traversal.order.index(link)


def test_traversal_from_a_leaf_flips_joints():
    robot = load_urdf(str(FIXTURES / "branched_tree.urdf"))
    forearm = robot.link_index("l_forearm")
    traversal = compute_traversal(robot, forearm)

    upper_arm = robot.link_index("l_upper_arm")
    torso = robot.link_index("torso")
    assert traversal.order[:3] == (forearm, upper_arm, torso)
    assert traversal.parent_links[upper_arm] == forearm
    assert traversal.parent_joints[torso] == robot.joint_index("l_shoulder")
    assert traversal.is_base(forearm)
    assert not traversal.is_base(torso)


def test_motion_subspace_of_flipped_joint():
    """Running a joint backwards negates its motion seen from the other link."""
    robot = load_urdf(str(FIXTURES / "branched_tree.urdf"))
    joint = robot.joint_index("l_elbow")
    q = jnp.array([0.1, 0.2, 0.05, 0.7])
    parent, child = robot.joint_parents[joint], robot.joint_children[joint]

    S = robot.motion_subspace(joint, child, q)
    S_flipped = robot.motion_subspace(joint, parent, q)
    parent_H_child = robot.link_H_neighbor(joint, parent, child, q)
    np.testing.assert_allclose(S_flipped, -se3.adjoint(parent_H_child) @ S, atol=1e-12)
    np.testing.assert_allclose(
        robot.link_H_neighbor(joint, child, parent, q), se3.inverse(parent_H_child), atol=1e-12
    )


def test_link_H_neighbor_rejects_unrelated_links():
    robot = load_urdf(str(FIXTURES / "branched_tree.urdf"))
    with pytest.raises(ValueError, match="does not connect"):
        robot.link_H_neighbor(robot.joint_index("neck"), 2, 3, jnp.zeros(robot.nr_of_dofs))


def test_traversal_rejects_loops():
    robot = _bare_model(3, parents=(0, 1, 2), children=(1, 2, 0))
    with pytest.raises(ValueError, match="kinematic loop"):
        compute_traversal(robot, 0)


def test_traversal_rejects_disconnected_links():
    robot = _bare_model(3, parents=(0,), children=(1,))
    with pytest.raises(ValueError, match="not connected"):
        compute_traversal(robot, 0)


def test_traversal_rejects_unknown_base():
    robot = _bare_model(2, parents=(0,), children=(1,))
    with pytest.raises(ValueError, match="out of range"):
        compute_traversal(robot, 5)


def test_lookup_by_name():
    robot = load_urdf(str(FIXTURES / "three_link_arm.urdf"))
    assert robot.link_index("link2") == 2
    assert robot.joint_index("elbow") == 2
    with pytest.raises(ValueError, match="not found"):
        robot.link_index("missing")
    with pytest.raises(ValueError, match="not found"):
        robot.joint_index("missing")


def test_sensors_consistency():
    robot = load_urdf(str(FIXTURES / "three_link_arm.urdf"))
    good = SensorsList([
        SixAxisForceTorqueSensor("ft", "elbow", frame_link="link3", applied_wrench_link="link2"),
        LinkSensor("gyro", SensorType.GYROSCOPE, "link1"),
    ])
    assert isinstance(good.sensors, tuple)
    assert good.nr_of_measurements() == 9
    good.check_consistency(robot)

    unknown_link = SensorsList([LinkSensor("acc", SensorType.ACCELEROMETER, "forearm")])
    assert not unknown_link.is_consistent(robot)
    with pytest.raises(InconsistentSensorModelError, match="unknown link"):
        unknown_link.check_consistency(robot)

    unknown_joint = SensorsList([SixAxisForceTorqueSensor("ft", "wrist", "link3", "link2")])
    with pytest.raises(InconsistentSensorModelError, match="unknown joint"):
        unknown_joint.check_consistency(robot)

    detached = SensorsList([SixAxisForceTorqueSensor("ft", "elbow", "link1", "link2")])
    with pytest.raises(InconsistentSensorModelError, match="not attached"):
        detached.check_consistency(robot)

    duplicated = SensorsList([
        LinkSensor("imu", SensorType.GYROSCOPE, "link1"),
        LinkSensor("imu", SensorType.ACCELEROMETER, "link1"),
    ])
    with pytest.raises(InconsistentSensorModelError, match="Duplicated"):
        duplicated.check_consistency(robot)


def test_link_sensor_rejects_force_torque_type():
    with pytest.raises(ValueError):
        LinkSensor("ft", SensorType.SIX_AXIS_FORCE_TORQUE, "link1")
