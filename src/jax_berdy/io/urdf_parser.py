"""URDF parser for loading robot models and their sensors.

This module parses URDF files into RobotModel PyTrees, inertial parameters
included, and reads the ``<sensor>`` extension used to describe six-axis
force/torque sensors, accelerometers and gyroscopes:

.. code-block:: xml

    <sensor name="l_arm_ft" type="force_torque">
      <parent joint="l_arm_ft_joint"/>
      <force_torque>
        <frame>child</frame>
        <measure_direction>child_to_parent</measure_direction>
      </force_torque>
      <origin xyz="0 0 0" rpy="0 0 0"/>
    </sensor>
    <sensor name="imu_acc" type="accelerometer">
      <parent link="head"/>
      <origin xyz="0 0 0.1" rpy="0 0 0"/>
    </sensor>
"""

import logging
from collections import deque
from typing import Dict, List

import jax.numpy as jnp
import numpy as np
from lxml import etree

from jax_berdy.core.robot_model import RobotModel
from jax_berdy.core.sensors import LinkSensor, SensorsList, SensorType, SixAxisForceTorqueSensor
from jax_berdy.transforms import se3, so3

logger = logging.getLogger(__name__)

# URDF joint type -> RobotModel joint type
_JOINT_TYPES = {
    "revolute": "revolute",
    "continuous": "revolute",
    "prismatic": "prismatic",
    "fixed": "fixed",
}


def load_urdf(urdf_path: str) -> RobotModel:
    """Load a URDF file and convert it to a RobotModel PyTree.

    Args:
        urdf_path: Path to the URDF file to load.

    Returns:
        RobotModel: links in breadth-first order from the root link, joints
        ordered as the child links they lead to.
    """
    return _parse_model(etree.parse(urdf_path).getroot())


def load_urdf_string(urdf_xml: str) -> RobotModel:
    """Same as :func:`load_urdf`, reading the URDF from a string."""
    return _parse_model(etree.fromstring(urdf_xml.encode()))


def load_sensors(urdf_path: str, model: RobotModel) -> SensorsList:
    """Read the ``<sensor>`` elements of a URDF file.

    Args:
        urdf_path: Path to the URDF file.
        model: Model loaded from the same file, used to resolve joint links.

    Returns:
        SensorsList in document order.
    """
    return _parse_sensors(etree.parse(urdf_path).getroot(), model)


def load_sensors_string(urdf_xml: str, model: RobotModel) -> SensorsList:
    """Same as :func:`load_sensors`, reading the URDF from a string."""
    return _parse_sensors(etree.fromstring(urdf_xml.encode()), model)


def _parse_model(root) -> RobotModel:
    # First pass: topology
    link_elems = {link.get('name'): link for link in root.findall('link')}
    joints_info = []
    child_links = set()

    for joint in root.findall('joint'):
        joint_name = joint.get('name')
        joint_type = joint.get('type')
        if joint_type not in _JOINT_TYPES:
            raise ValueError(f"Joint '{joint_name}' has unsupported type '{joint_type}'")

        parent_elem = joint.find('parent')
        child_elem = joint.find('child')
        if parent_elem is None or child_elem is None:
            raise ValueError(f"Joint '{joint_name}' must have a parent and a child link")

        parent_name = parent_elem.get('link')
        child_name = child_elem.get('link')
        for name in (parent_name, child_name):
            if name not in link_elems:
                raise ValueError(f"Joint '{joint_name}' references unknown link '{name}'")
        if child_name in child_links:
            raise ValueError(f"Link '{child_name}' is the child of more than one joint")
        child_links.add(child_name)

        joints_info.append({
            'name': joint_name,
            'type': _JOINT_TYPES[joint_type],
            'parent': parent_name,
            'child': child_name,
            'joint_elem': joint,
        })

    # Find root link (not a child of any joint)
    root_links = [name for name in link_elems if name not in child_links]
    if len(root_links) != 1:
        raise ValueError(f"Expected exactly one root link, found: {root_links}")
    root_link = root_links[0]

    # Order links using breadth-first traversal from root
    ordered_links: List[str] = []
    queue = deque([root_link])
    while queue:
        current_link = queue.popleft()
        ordered_links.append(current_link)
        for joint_info in joints_info:
            if joint_info['parent'] == current_link:
                queue.append(joint_info['child'])

    if len(ordered_links) != len(link_elems):
        raise ValueError("URDF links do not form a single tree")

    link_map: Dict[str, int] = {name: i for i, name in enumerate(ordered_links)}
    joint_by_child = {joint_info['child']: joint_info for joint_info in joints_info}
    ordered_joints = [joint_by_child[name] for name in ordered_links[1:]]

    # Second pass: joints
    joint_origins_list = []
    joint_axes_list = []
    dof_offsets = []
    nr_of_dofs = 0
    for joint_info in ordered_joints:
        joint_elem = joint_info['joint_elem']
        joint_type = joint_info['type']
        joint_origins_list.append(_parse_origin(joint_elem.find('origin')))

        if joint_type == 'fixed':
            axis = jnp.zeros(6)
            dof_offsets.append(-1)
        else:
            axis_xyz = _parse_vector(joint_elem.find('axis'), 'xyz', '1 0 0')
            norm = np.linalg.norm(axis_xyz)
            if norm == 0.0:
                raise ValueError(f"Joint '{joint_info['name']}' has a zero axis")
            axis_xyz = jnp.asarray(axis_xyz / norm)
            if joint_type == 'revolute':
                # Revolute: [0, 0, 0, wx, wy, wz]
                axis = jnp.concatenate([jnp.zeros(3), axis_xyz])
            else:
                # Prismatic: [vx, vy, vz, 0, 0, 0]
                axis = jnp.concatenate([axis_xyz, jnp.zeros(3)])
            dof_offsets.append(nr_of_dofs)
            nr_of_dofs += 1
        joint_axes_list.append(axis)

    # Third pass: inertial parameters
    masses, coms, inertias = [], [], []
    for link_name in ordered_links:
        mass, com, inertia = _parse_inertial(link_elems[link_name].find('inertial'))
        masses.append(mass)
        coms.append(com)
        inertias.append(inertia)

    num_joints = len(ordered_joints)
    logger.debug(
        "Parsed URDF with %d links, %d joints and %d dofs, root link '%s'",
        len(ordered_links), num_joints, nr_of_dofs, root_link,
    )

    return RobotModel(
        link_names=tuple(ordered_links),
        joint_names=tuple(j['name'] for j in ordered_joints),
        joint_types=tuple(j['type'] for j in ordered_joints),
        joint_parents=tuple(link_map[j['parent']] for j in ordered_joints),
        joint_children=tuple(link_map[j['child']] for j in ordered_joints),
        joint_dof_offsets=tuple(dof_offsets),
        default_base_link=link_map[root_link],
        joint_origins=jnp.stack(joint_origins_list) if num_joints else jnp.zeros((0, 4, 4)),
        joint_axes=jnp.stack(joint_axes_list) if num_joints else jnp.zeros((0, 6)),
        link_masses=jnp.array(masses),
        link_coms=jnp.stack(coms),
        link_inertias=jnp.stack(inertias),
    )


def _parse_sensors(root, model: RobotModel) -> SensorsList:
    sensors = []
    for sensor_elem in root.findall('sensor'):
        name = sensor_elem.get('name')
        try:
            sensor_type = SensorType(sensor_elem.get('type'))
        except ValueError:
            raise ValueError(f"Sensor '{name}' has unsupported type '{sensor_elem.get('type')}'")

        parent_elem = sensor_elem.find('parent')
        if parent_elem is None:
            raise ValueError(f"Sensor '{name}' must have a parent element")
        link_H_sensor = _parse_origin(sensor_elem.find('origin'))

        if sensor_type is SensorType.SIX_AXIS_FORCE_TORQUE:
            joint_name = parent_elem.get('joint')
            joint = model.joint_index(joint_name)
            parent_link = model.link_names[model.joint_parents[joint]]
            child_link = model.link_names[model.joint_children[joint]]

            ft_elem = sensor_elem.find('force_torque')
            frame = ft_elem.findtext('frame', 'child') if ft_elem is not None else 'child'
            direction = (
                ft_elem.findtext('measure_direction', 'child_to_parent')
                if ft_elem is not None else 'child_to_parent'
            )
            if frame not in ('child', 'parent'):
                raise ValueError(f"Sensor '{name}' has unsupported frame '{frame}'")
            if direction not in ('child_to_parent', 'parent_to_child'):
                raise ValueError(f"Sensor '{name}' has unsupported measure direction '{direction}'")

            sensors.append(SixAxisForceTorqueSensor(
                name=name,
                joint=joint_name,
                frame_link=child_link if frame == 'child' else parent_link,
                # child_to_parent: the wrench the child exerts on the parent
                applied_wrench_link=parent_link if direction == 'child_to_parent' else child_link,
                link_H_sensor=link_H_sensor,
            ))
        else:
            sensors.append(LinkSensor(
                name=name,
                type=sensor_type,
                link=parent_elem.get('link'),
                link_H_sensor=link_H_sensor,
            ))

    return SensorsList(tuple(sensors))


def _parse_vector(elem, attribute: str, default: str) -> np.ndarray:
    text = elem.get(attribute, default) if elem is not None else default
    return np.array([float(x) for x in text.split()])


def _parse_origin(origin_elem):
    if origin_elem is None:
        return jnp.eye(4)
    xyz = _parse_vector(origin_elem, 'xyz', '0 0 0')
    rpy = _parse_vector(origin_elem, 'rpy', '0 0 0')
    return se3.from_position_and_rotation(jnp.asarray(xyz), so3.from_rpy(jnp.asarray(rpy)))


def _parse_inertial(inertial_elem):
    """Mass, COM in the link frame and inertia about the COM in link orientation."""
    if inertial_elem is None:
        return 0.0, jnp.zeros(3), jnp.zeros((3, 3))

    mass_elem = inertial_elem.find('mass')
    mass = float(mass_elem.get('value', '0')) if mass_elem is not None else 0.0

    link_H_com = _parse_origin(inertial_elem.find('origin'))
    R = se3.get_rotation(link_H_com)

    inertia_elem = inertial_elem.find('inertia')
    if inertia_elem is not None:
        ixx, ixy, ixz, iyy, iyz, izz = (
            float(inertia_elem.get(key, '0')) for key in ('ixx', 'ixy', 'ixz', 'iyy', 'iyz', 'izz')
        )
        inertia = jnp.array([[ixx, ixy, ixz], [ixy, iyy, iyz], [ixz, iyz, izz]])
    else:
        inertia = jnp.zeros((3, 3))

    return mass, se3.get_position(link_H_com), R @ inertia @ R.T
