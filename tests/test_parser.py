"""Tests for URDF parser functionality."""

import pytest
import jax
import jax.numpy as jnp
import numpy as np
from pathlib import Path

from jax_berdy.io import load_sensors, load_sensors_string, load_urdf, load_urdf_string
from jax_berdy.core import JOINT_TYPES, LinkSensor, RobotModel, SensorType, SixAxisForceTorqueSensor
from jax_berdy.transforms import se3, so3

FIXTURES = Path(__file__).parent / "fixtures"


def test_load_three_link_arm():
    """Test loading a serial arm and verify RobotModel structure."""
    robot = load_urdf(str(FIXTURES / "three_link_arm.urdf"))

    assert isinstance(robot, RobotModel)
    assert robot.link_names == ("base_link", "link1", "link2", "link3")
    assert robot.joint_names == ("shoulder_yaw", "shoulder_pitch", "elbow")
    # continuous joints are revolute joints without limits
    assert robot.joint_types == ("revolute", "revolute", "revolute")
    assert robot.joint_parents == (0, 1, 2)
    assert robot.joint_children == (1, 2, 3)
    assert robot.joint_dof_offsets == (0, 1, 2)
    assert robot.default_base_link == 0
    assert robot.nr_of_links == 4
    assert robot.nr_of_joints == 3
    assert robot.nr_of_dofs == 3

    assert robot.joint_origins.shape == (3, 4, 4)
    assert robot.joint_axes.shape == (3, 6)
    assert robot.link_masses.shape == (4,)
    assert robot.link_coms.shape == (4, 3)
    assert robot.link_inertias.shape == (4, 3, 3)

    # Verify joint transforms are valid SE(3) matrices
    for T in robot.joint_origins:
        np.testing.assert_allclose(T[3, :], jnp.array([0, 0, 0, 1]), rtol=1e-12, atol=1e-12)
        R = T[:3, :3]
        np.testing.assert_allclose(R @ R.T, jnp.eye(3), rtol=1e-10, atol=1e-10)


def test_joint_axes_are_normalized():
    robot = load_urdf(str(FIXTURES / "three_link_arm.urdf"))

    elbow = robot.joint_index("elbow")
    np.testing.assert_allclose(
        robot.joint_axes[elbow], jnp.array([0, 0, 0, 1, 0, 1]) / jnp.sqrt(2.0), atol=1e-12
    )
    # Revolute: linear part zero, unit angular part
    for axis in robot.joint_axes:
        np.testing.assert_allclose(axis[:3], jnp.zeros(3), atol=1e-12)
        np.testing.assert_allclose(jnp.linalg.norm(axis[3:]), 1.0, atol=1e-12)


def test_inertial_parameters():
    """COM and inertia are expressed in the link frame, inertia about the COM."""
    robot = load_urdf(str(FIXTURES / "three_link_arm.urdf"))
    link1 = robot.link_index("link1")

    np.testing.assert_allclose(robot.link_masses[link1], 1.5)
    np.testing.assert_allclose(robot.link_coms[link1], [0.0, 0.01, 0.15], atol=1e-12)

    R = so3.from_rpy(jnp.array([0.1, 0.0, 0.2]))
    inertia = jnp.array([[0.012, 0.001, 0.0], [0.001, 0.011, 0.002], [0.0, 0.002, 0.004]])
    np.testing.assert_allclose(robot.link_inertias[link1], R @ inertia @ R.T, atol=1e-12)

    I = robot.spatial_inertia(link1)
    np.testing.assert_allclose(I, I.T, atol=1e-12)
    np.testing.assert_allclose(I[:3, :3], 1.5 * jnp.eye(3), atol=1e-12)


def test_load_branched_tree():
    """Links are ordered breadth-first, joints as the links they lead to."""
    robot = load_urdf(str(FIXTURES / "branched_tree.urdf"))

    assert robot.link_names == ("torso", "head", "l_upper_arm", "r_upper_arm", "slider", "l_forearm")
    assert robot.joint_names == ("neck", "l_shoulder", "r_shoulder", "slide", "l_elbow")
    assert robot.joint_types == ("fixed", "revolute", "revolute", "prismatic", "revolute")
    assert set(robot.joint_types) == set(JOINT_TYPES)
    assert robot.joint_dof_offsets == (-1, 0, 1, 2, 3)
    assert robot.nr_of_dofs == 4

    neck = robot.joint_index("neck")
    assert robot.joint_nr_of_dofs(neck) == 0
    assert robot.joint_dof_range(neck) == slice(0, 0)
    np.testing.assert_allclose(robot.joint_axes[neck], jnp.zeros(6))

    slide = robot.joint_index("slide")
    assert robot.joint_dof_range(slide) == slice(2, 3)
    np.testing.assert_allclose(robot.joint_axes[slide], [0, 0, 1, 0, 0, 0])


def test_prismatic_joint_motion():
    robot = load_urdf(str(FIXTURES / "branched_tree.urdf"))
    slide = robot.joint_index("slide")
    q = jnp.zeros(robot.nr_of_dofs).at[robot.joint_dof_offsets[slide]].set(0.15)

    T = robot.parent_H_child(slide, q)
    origin = robot.joint_origins[slide]
    np.testing.assert_allclose(se3.get_rotation(T), se3.get_rotation(origin), atol=1e-12)
    np.testing.assert_allclose(
        se3.get_position(T), se3.get_position(origin) + se3.get_rotation(origin) @ jnp.array([0, 0, 0.15]),
        atol=1e-12,
    )


def test_single_link_model():
    robot = load_urdf(str(FIXTURES / "one_link.urdf"))

    assert robot.link_names == ("box",)
    assert robot.joint_names == ()
    assert robot.nr_of_dofs == 0
    assert robot.joint_origins.shape == (0, 4, 4)
    assert robot.joint_axes.shape == (0, 6)


def test_load_sensors():
    robot = load_urdf(str(FIXTURES / "three_link_arm.urdf"))
    sensors = load_sensors(str(FIXTURES / "three_link_arm.urdf"), robot)

    assert [s.name for s in sensors] == [
        "shoulder_ft", "hand_acc", "hand_gyro", "forearm_ang_acc", "hand_contact"
    ]
    assert sensors.nr_of_measurements() == 6 + 4 * 3
    assert sensors.is_consistent(robot)

    ft = sensors.of_type(SensorType.SIX_AXIS_FORCE_TORQUE)[0]
    assert isinstance(ft, SixAxisForceTorqueSensor)
    assert ft.joint == "shoulder_pitch"
    assert ft.frame_link == "link2"
    # child_to_parent: the wrench the child exerts on the parent
    assert ft.applied_wrench_link == "link1"
    np.testing.assert_allclose(se3.get_position(ft.link_H_sensor), [0.0, 0.0, 0.02], atol=1e-12)

    acc = sensors.of_type(SensorType.ACCELEROMETER)[0]
    assert isinstance(acc, LinkSensor)
    assert acc.link == "link3"
    np.testing.assert_allclose(
        se3.get_rotation(acc.link_H_sensor), so3.from_rpy(jnp.array([0.3, 0.0, 0.0])), atol=1e-12
    )


def test_load_sensors_frame_and_direction():
    robot = load_urdf(str(FIXTURES / "branched_tree.urdf"))
    sensors = load_sensors(str(FIXTURES / "branched_tree.urdf"), robot)

    shoulder_ft = next(s for s in sensors if s.name == "r_shoulder_ft")
    assert shoulder_ft.frame_link == "torso"
    assert shoulder_ft.applied_wrench_link == "r_upper_arm"


_TWO_LINKS = """
<robot name="two_links">
  <link name="a"/>
  <link name="b"/>
  <joint name="j" type="{joint_type}">
    <parent link="a"/>
    <child link="b"/>
  </joint>
  {sensor}
</robot>
"""


def test_load_urdf_string_defaults():
    """Missing origin, axis and inertial fall back to URDF defaults."""
    robot = load_urdf_string(_TWO_LINKS.format(joint_type="revolute", sensor=""))

    np.testing.assert_allclose(robot.joint_origins[0], jnp.eye(4))
    np.testing.assert_allclose(robot.joint_axes[0], [0, 0, 0, 1, 0, 0])
    np.testing.assert_allclose(robot.link_masses, [0.0, 0.0])


def test_unsupported_joint_type():
    with pytest.raises(ValueError, match="unsupported type"):
        load_urdf_string(_TWO_LINKS.format(joint_type="floating", sensor=""))


def test_unsupported_sensor_type():
    xml = _TWO_LINKS.format(
        joint_type="fixed",
        sensor='<sensor name="s" type="camera"><parent link="a"/></sensor>',
    )
    robot = load_urdf_string(xml)
    with pytest.raises(ValueError, match="unsupported type"):
        load_sensors_string(xml, robot)


def test_multiple_root_links():
    xml = """
    <robot name="forest">
      <link name="a"/>
      <link name="b"/>
    </robot>
    """
    with pytest.raises(ValueError, match="exactly one root link"):
        load_urdf_string(xml)


def test_robot_model_is_pytree():
    """Test that RobotModel is a valid JAX PyTree."""
    robot = load_urdf(str(FIXTURES / "three_link_arm.urdf"))

    flat_robot, tree_def = jax.tree_util.tree_flatten(robot)
    reconstructed_robot = jax.tree_util.tree_unflatten(tree_def, flat_robot)

    # Static metadata lives in the tree definition, arrays in the leaves
    assert len(flat_robot) == 5
    assert reconstructed_robot.link_names == robot.link_names
    assert reconstructed_robot.joint_names == robot.joint_names
    np.testing.assert_array_equal(reconstructed_robot.joint_origins, robot.joint_origins)
    np.testing.assert_array_equal(reconstructed_robot.link_inertias, robot.link_inertias)


def test_robot_model_jit_compatibility():
    """Test that RobotModel can be used in JIT-compiled functions."""
    robot = load_urdf(str(FIXTURES / "three_link_arm.urdf"))

    @jax.jit
    def end_effector_pose(robot_model, q):
        T = jnp.eye(4)
        for joint in range(robot_model.nr_of_joints):
            T = T @ robot_model.parent_H_child(joint, q)
        return T

    q = jnp.array([0.3, -0.4, 0.5])
    expected = (
        robot.parent_H_child(0, q) @ robot.parent_H_child(1, q) @ robot.parent_H_child(2, q)
    )
    np.testing.assert_allclose(end_effector_pose(robot, q), expected, atol=1e-12)
